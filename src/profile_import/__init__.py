"""External profile import service.

Connects an onboarding session to an external professional-network account
through an OAuth authorization-code flow and maps the imported profile into
the physician profile shape used by onboarding.
"""

__version__ = "0.1.0"
