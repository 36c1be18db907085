"""External profile and mapped physician profile models.

External records keep the provider's ordering; nothing here sorts or
deduplicates. Every extended attribute is optional and independently absent.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys for the web front end."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PartialDate(CamelModel):
    """Provider date with optional month precision."""

    year: int
    month: int | None = None


class EducationRecord(CamelModel):
    school: str
    degree: str | None = None
    field_of_study: str | None = None
    start_year: int | None = None
    end_year: int | None = None


class PositionRecord(CamelModel):
    title: str
    company: str
    start_date: PartialDate | None = None
    end_date: PartialDate | None = None
    # Sole signal for current employment; a missing end_date does not imply it.
    is_current: bool = False


class CertificationRecord(CamelModel):
    name: str
    authority: str | None = None
    license_number: str | None = None
    start_date: PartialDate | None = None
    end_date: PartialDate | None = None
    url: str | None = None


class ExtendedProfileData(CamelModel):
    """Best-effort attributes that need elevated provider access."""

    profile_url: str | None = None
    photo_url: str | None = None
    headline: str | None = None
    location: str | None = None
    industry: str | None = None
    education: list[EducationRecord] | None = None
    positions: list[PositionRecord] | None = None
    certifications: list[CertificationRecord] | None = None
    skills: list[str] | None = None


class ExternalProfile(CamelModel):
    """Profile imported from the external identity provider.

    ``external_id`` is the only guaranteed claim.
    """

    external_id: str = Field(description="Provider subject identifier")
    given_name: str = ""
    family_name: str = ""
    display_name: str = ""
    email: str | None = None
    photo_url: str | None = None
    profile_url: str | None = None
    headline: str | None = None
    location: str | None = None
    industry: str | None = None
    education: list[EducationRecord] | None = None
    positions: list[PositionRecord] | None = None
    certifications: list[CertificationRecord] | None = None
    skills: list[str] | None = None
    raw_data: dict[str, Any] | None = Field(
        default=None, description="Unmodified basic claims as returned by the provider"
    )


class BoardCertification(CamelModel):
    board: str
    certification: str
    year: int | None = None


class MappedDomainProfile(CamelModel):
    """Physician profile fields derived from an ExternalProfile.

    ``None`` means "no data"; lists are never emitted empty.
    """

    full_name: str | None = None
    email: str | None = None
    photo_url: str | None = None
    linkedin_url: str | None = None
    medical_school: str | None = None
    graduation_year: int | None = None
    current_institutions: list[str] | None = None
    board_certifications: list[BoardCertification] | None = None

    def to_response(self) -> dict[str, Any]:
        """Serialize for the API, omitting absent fields."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
