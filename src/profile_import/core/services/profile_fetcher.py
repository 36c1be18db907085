"""Retrieval of the external account's identity claims and extended profile."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx
from loguru import logger
from pydantic import ValidationError

from src.profile_import.core.errors import ProfileFetchFailed
from src.profile_import.core.models.profile import (
    CertificationRecord,
    EducationRecord,
    ExtendedProfileData,
    ExternalProfile,
    PartialDate,
    PositionRecord,
)
from src.profile_import.runtime.config.config_data import ExternalProviderConfig


@dataclass(frozen=True)
class ExtendedProfileResult:
    """Outcome of the best-effort extended fetch.

    Both variants are successes: ``data`` is None when the provider gave
    nothing usable, and ``reason`` says why.
    """

    data: ExtendedProfileData | None = None
    reason: str | None = None

    @classmethod
    def with_data(cls, data: ExtendedProfileData) -> ExtendedProfileResult:
        return cls(data=data)

    @classmethod
    def without_data(cls, reason: str) -> ExtendedProfileResult:
        return cls(reason=reason)

    @property
    def has_data(self) -> bool:
        return self.data is not None


class ProfileFetcher:
    """Fetches basic claims (required) and extended attributes (optional)."""

    def __init__(
        self, provider_config: ExternalProviderConfig, http_client: httpx.AsyncClient
    ) -> None:
        self._config = provider_config
        self._http = http_client

    async def fetch(self, access_token: str) -> ExternalProfile:
        """Fetch the basic profile and merge any extended data on top."""
        profile = await self.fetch_basic(access_token)
        extended = await self.fetch_extended(access_token)
        if not extended.has_data:
            logger.info("Continuing with basic profile only: {}", extended.reason)
            return profile
        return merge_extended(profile, extended.data)

    async def fetch_basic(self, access_token: str) -> ExternalProfile:
        """Fetch guaranteed claims from the OpenID Connect userinfo endpoint.

        Raises:
            ProfileFetchFailed: If the request fails, no subject is returned or a
                claim has an unexpected type
        """
        try:
            response = await self._http.get(
                self._config.userinfo_endpoint,
                headers=_bearer(access_token),
                timeout=self._config.timeout_seconds,
            )
        except httpx.RequestError as e:
            raise ProfileFetchFailed(
                "Userinfo endpoint unreachable", provider_message=str(e)
            ) from e

        if not response.is_success:
            logger.error(
                "Userinfo fetch from {} failed: status={}",
                self._config.name,
                response.status_code,
            )
            raise ProfileFetchFailed(
                f"Userinfo request failed with status {response.status_code}",
                provider_message=response.text[:500],
            )

        try:
            claims = response.json()
        except ValueError as e:
            raise ProfileFetchFailed("Userinfo response is not JSON") from e

        if not isinstance(claims, dict) or not claims.get("sub"):
            raise ProfileFetchFailed("Userinfo response has no subject claim")

        external_id = str(claims["sub"])
        given_name = claims.get("given_name") or ""
        family_name = claims.get("family_name") or ""
        display_name = claims.get("name") or f"{given_name} {family_name}".strip()

        try:
            return ExternalProfile(
                external_id=external_id,
                given_name=given_name,
                family_name=family_name,
                display_name=display_name,
                email=claims.get("email"),
                photo_url=claims.get("picture"),
                profile_url=self._profile_url(external_id),
                raw_data=claims,
            )
        except ValidationError as e:
            raise ProfileFetchFailed(
                "Userinfo claims failed validation", provider_message=str(e)
            ) from e

    async def fetch_extended(self, access_token: str) -> ExtendedProfileResult:
        """Fetch attributes that need elevated API access. Never raises."""
        if not self._config.profile_endpoint:
            return ExtendedProfileResult.without_data("extended endpoint not configured")

        params = {}
        if self._config.profile_projection:
            params["projection"] = self._config.profile_projection

        try:
            response = await self._http.get(
                self._config.profile_endpoint,
                params=params,
                headers=_bearer(access_token),
                timeout=self._config.timeout_seconds,
            )
        except httpx.RequestError as e:
            return ExtendedProfileResult.without_data(f"request error: {type(e).__name__}")

        if not response.is_success:
            return ExtendedProfileResult.without_data(
                f"extended profile unavailable (status {response.status_code})"
            )

        try:
            body = response.json()
        except ValueError:
            return ExtendedProfileResult.without_data("extended profile is not JSON")

        if not isinstance(body, dict):
            return ExtendedProfileResult.without_data("extended profile has unexpected shape")

        try:
            data = self.parse_extended(body)
        except ValidationError:
            return ExtendedProfileResult.without_data("extended profile failed validation")

        if data.model_dump(exclude_none=True):
            return ExtendedProfileResult.with_data(data)
        return ExtendedProfileResult.without_data("extended profile carried no usable fields")

    def parse_extended(self, body: dict[str, Any]) -> ExtendedProfileData:
        """Parse whatever extended attributes the provider returned.

        Each attribute is parsed independently; malformed entries are skipped.
        """
        vanity_name = body.get("vanityName")
        return ExtendedProfileData(
            profile_url=self._profile_url(vanity_name) if vanity_name else None,
            photo_url=_profile_picture(body.get("profilePicture")),
            headline=_text(body.get("headline") or body.get("localizedHeadline")),
            location=_text(body.get("location") or body.get("geoLocation")),
            industry=_text(body.get("industry") or body.get("industryName")),
            education=_records(
                body.get("educations") or body.get("education"), _education
            ),
            positions=_records(body.get("positions"), _position),
            certifications=_records(body.get("certifications"), _certification),
            skills=_skills(body.get("skills")),
        )

    def _profile_url(self, identifier: str) -> str | None:
        template = self._config.profile_url_template
        return template.format(id=identifier) if template else None


def merge_extended(
    profile: ExternalProfile, extended: ExtendedProfileData
) -> ExternalProfile:
    """Merge extended attributes on top of a basic profile.

    The extended profile URL replaces the one derived from the subject id
    since it is more specific. The extended photo only fills a missing basic
    photo. Other extended attributes are taken when present.
    """
    updates: dict[str, Any] = {}

    if extended.profile_url:
        updates["profile_url"] = extended.profile_url
    if extended.photo_url and not profile.photo_url:
        updates["photo_url"] = extended.photo_url

    for field in (
        "headline",
        "location",
        "industry",
        "education",
        "positions",
        "certifications",
        "skills",
    ):
        value = getattr(extended, field)
        if value is not None:
            updates[field] = value

    return profile.model_copy(update=updates)


def _bearer(access_token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {access_token}", "Accept": "application/json"}


def _text(value: Any) -> str | None:
    """Plain string, LinkedIn localized string or {"name": ...} object."""
    if isinstance(value, str):
        return value or None
    if isinstance(value, dict):
        localized = value.get("localized")
        if isinstance(localized, dict):
            for text in localized.values():
                if isinstance(text, str) and text:
                    return text
        return _text(value.get("name"))
    return None


def _year(value: Any) -> int | None:
    if isinstance(value, int):
        return value
    if isinstance(value, dict) and isinstance(value.get("year"), int):
        return value["year"]
    return None


def _date(value: Any) -> PartialDate | None:
    if isinstance(value, dict) and isinstance(value.get("year"), int):
        month = value.get("month")
        return PartialDate(year=value["year"], month=month if isinstance(month, int) else None)
    return None


def _records(entries: Any, parser) -> list | None:
    if isinstance(entries, dict):
        # {"elements": [...]} / {"values": [...]} collections
        entries = entries.get("elements") or entries.get("values")
    if not isinstance(entries, list):
        return None

    records = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        try:
            record = parser(entry)
        except ValidationError:
            continue
        if record is not None:
            records.append(record)
    return records


def _education(entry: dict[str, Any]) -> EducationRecord | None:
    school = _text(entry.get("schoolName") or entry.get("school"))
    if not school:
        return None
    return EducationRecord(
        school=school,
        degree=_text(entry.get("degreeName") or entry.get("degree")),
        field_of_study=_text(entry.get("fieldOfStudy") or entry.get("fieldsOfStudy")),
        start_year=_year(entry.get("startYear") or entry.get("startDate")),
        end_year=_year(entry.get("endYear") or entry.get("endDate")),
    )


def _position(entry: dict[str, Any]) -> PositionRecord | None:
    title = _text(entry.get("title"))
    company = _text(entry.get("companyName") or entry.get("company"))
    if not title or not company:
        return None
    return PositionRecord(
        title=title,
        company=company,
        start_date=_date(entry.get("startDate")),
        end_date=_date(entry.get("endDate")),
        is_current=bool(entry.get("isCurrent", entry.get("current", False))),
    )


def _certification(entry: dict[str, Any]) -> CertificationRecord | None:
    name = _text(entry.get("name"))
    if not name:
        return None
    return CertificationRecord(
        name=name,
        authority=_text(entry.get("authority")),
        license_number=entry.get("licenseNumber") or entry.get("number"),
        start_date=_date(entry.get("startDate")),
        end_date=_date(entry.get("endDate")),
        url=entry.get("url"),
    )


def _skills(entries: Any) -> list[str] | None:
    if not isinstance(entries, list):
        return None
    skills = [_text(entry) for entry in entries]
    return [skill for skill in skills if skill]


def _profile_picture(picture: Any) -> str | None:
    """Largest image of a LinkedIn ``profilePicture(displayImage~...)`` projection."""
    if not isinstance(picture, dict):
        return None
    display = picture.get("displayImage~")
    if not isinstance(display, dict):
        return None
    elements = display.get("elements")
    if not isinstance(elements, list) or not elements:
        return None
    identifiers = elements[-1].get("identifiers") if isinstance(elements[-1], dict) else None
    if isinstance(identifiers, list) and identifiers and isinstance(identifiers[0], dict):
        return identifiers[0].get("identifier")
    return None
