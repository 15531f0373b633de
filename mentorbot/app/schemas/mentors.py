# mentorbot/app/schemas/mentors.py
"""
Mentor profile as returned by the marketplace API.

The API nests display data under ``userRef`` (account) and
``registrationRef`` (application form); ``Mentor.from_api`` flattens both.
"""

from typing import Optional

from pydantic import BaseModel, Field

from .slots import AvailabilityDay


DEFAULT_TITLE = "Professional Mentor"
DEFAULT_EXPERIENCE = "Experienced professional"


class PricingItem(BaseModel):
    """Price for one 15-minute unit of a session type."""
    type: str
    price: Optional[float] = None


class Mentor(BaseModel):
    id: str
    name: str
    avatar: Optional[str] = None
    title: str = DEFAULT_TITLE
    expertise: list[str] = Field(default_factory=list)
    languages: list[str] = Field(default_factory=list)
    qualifications: list[str] = Field(default_factory=list)
    experience: str = DEFAULT_EXPERIENCE
    years_experience: int = 0
    pricing: list[PricingItem] = Field(default_factory=list)
    min_session_duration: int = 15
    availability: list[AvailabilityDay] = Field(default_factory=list)
    is_active: bool = False
    is_available_now: bool = False
    sessions_completed: int = 0
    total_minutes: int = 0
    socials: dict[str, Optional[str]] = Field(default_factory=dict)

    @classmethod
    def from_api(cls, data: dict) -> "Mentor":
        user = data.get("userRef") or {}
        registration = data.get("registrationRef") or {}
        qualifications = registration.get("qualification") or []

        return cls(
            id=str(data.get("_id") or data.get("id")),
            name=user.get("name") or data.get("name") or "",
            avatar=user.get("avatar"),
            title=qualifications[0] if qualifications else DEFAULT_TITLE,
            expertise=registration.get("expertise") or [],
            languages=registration.get("languages") or [],
            qualifications=qualifications,
            experience=registration.get("experienceInfo") or DEFAULT_EXPERIENCE,
            years_experience=registration.get("yearsOfExperience") or 0,
            pricing=data.get("pricing") or [],
            min_session_duration=data.get("minSessionDuration") or 15,
            availability=data.get("availability") or [],
            is_active=bool(data.get("isActive")),
            is_available_now=bool(data.get("isAvailableNow")),
            sessions_completed=data.get("sessionsCompleted") or 0,
            total_minutes=data.get("totalMinutes") or 0,
            socials=data.get("socials") or {},
        )

    @property
    def specialization(self) -> str:
        return ", ".join(self.expertise)

    def pricing_table(self) -> dict[str, float]:
        """{session_type: price per 15 minutes}; types without a price are omitted."""
        return {item.type: item.price for item in self.pricing if item.price}
