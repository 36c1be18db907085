"""Shared pytest fixtures and helpers for import flow tests."""

from .core import *  # noqa: F401,F403
from .provider import *  # noqa: F401,F403
from .services import *  # noqa: F401,F403
