"""Profile and session models for the import flow."""

from .profile import (
    BoardCertification,
    CertificationRecord,
    EducationRecord,
    ExtendedProfileData,
    ExternalProfile,
    MappedDomainProfile,
    PartialDate,
    PositionRecord,
)
from .session import ImportSession, OAuthState, TokenSet

__all__ = [
    "BoardCertification",
    "CertificationRecord",
    "EducationRecord",
    "ExtendedProfileData",
    "ExternalProfile",
    "ImportSession",
    "MappedDomainProfile",
    "OAuthState",
    "PartialDate",
    "PositionRecord",
    "TokenSet",
]
