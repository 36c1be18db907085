"""Mapping of an imported external profile onto physician profile fields."""

from collections.abc import Iterable

from src.profile_import.core.models.profile import (
    BoardCertification,
    EducationRecord,
    ExternalProfile,
    MappedDomainProfile,
)
from src.profile_import.runtime.config.config_data import DEFAULT_MEDICAL_SCHOOL_KEYWORDS

UNKNOWN_BOARD = "Unknown"


class ProfileMapper:
    """Pure, total mapping from ExternalProfile to MappedDomainProfile.

    Absent inputs produce absent outputs; mapping never raises for a valid
    ExternalProfile.
    """

    def __init__(self, medical_school_keywords: Iterable[str] | None = None) -> None:
        keywords = (
            DEFAULT_MEDICAL_SCHOOL_KEYWORDS
            if medical_school_keywords is None
            else medical_school_keywords
        )
        self._keywords = tuple(k.casefold() for k in keywords if k)

    @property
    def keywords(self) -> tuple[str, ...]:
        return self._keywords

    def map(self, profile: ExternalProfile) -> MappedDomainProfile:
        medical_school = self.find_medical_school(profile.education or [])
        current = current_institutions(profile)
        certifications = board_certifications(profile)

        return MappedDomainProfile(
            full_name=profile.display_name or None,
            email=profile.email or None,
            photo_url=profile.photo_url or None,
            linkedin_url=profile.profile_url or None,
            medical_school=medical_school.school if medical_school else None,
            graduation_year=medical_school.end_year if medical_school else None,
            current_institutions=current,
            board_certifications=certifications,
        )

    def find_medical_school(
        self, education: list[EducationRecord]
    ) -> EducationRecord | None:
        """Pick the entry that looks like a medical school.

        First keyword match in provider order wins. Without a match, the
        entry with the highest end year is used (missing years count as 0,
        ties keep the earliest entry).
        """
        if not education:
            return None

        for entry in education:
            if self.is_medical(entry):
                return entry

        # max() returns the first maximal element
        return max(education, key=lambda entry: entry.end_year or 0)

    def is_medical(self, entry: EducationRecord) -> bool:
        search_text = " ".join(
            [entry.school, entry.degree or "", entry.field_of_study or ""]
        ).casefold()
        return any(keyword in search_text for keyword in self._keywords)


def current_institutions(profile: ExternalProfile) -> list[str] | None:
    """Companies of positions flagged current; past employers are never used."""
    companies = [p.company for p in profile.positions or [] if p.is_current]
    return companies or None


def board_certifications(profile: ExternalProfile) -> list[BoardCertification] | None:
    if not profile.certifications:
        return None
    return [
        BoardCertification(
            board=cert.authority or UNKNOWN_BOARD,
            certification=cert.name,
            year=cert.start_date.year if cert.start_date else None,
        )
        for cert in profile.certifications
    ]
