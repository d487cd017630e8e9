"""
API request and response models for SafeHaven REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in core/, auth/ and
contacts/, which own the internal domain representation. Route handlers map
between the two.

Separation of concerns: domain dataclasses = domain truth; api/ models = API contract.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, EmailStr, Field, field_validator

from auth.models import User
from contacts.models import EmergencyContact
from core.formatter import to_dict
from core.models import AlertContent, HazardAssessment, HazardReport

# ---------------------------------------------------------------------------
# Shared field constraints
# ---------------------------------------------------------------------------

_OTP_PATTERN = r"^\d{6}$"
_PASSWORD = Field(min_length=8, max_length=128)
_LATITUDE = Field(ge=-90, le=90)
_LONGITUDE = Field(ge=-180, le=180)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class DisasterEnum(str, Enum):
    earthquake = "earthquake"
    flood = "flood"
    cyclone = "cyclone"
    tsunami = "tsunami"


def _lower(value: Any) -> Any:
    return value.strip().lower() if isinstance(value, str) else value


# ---------------------------------------------------------------------------
# Auth requests
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=100)
    email: EmailStr
    password: str = _PASSWORD


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1, max_length=128)


class EmailRequest(BaseModel):
    """Body for resend-otp and forgot-password."""

    email: EmailStr


class OtpRequest(BaseModel):
    """Body for verify-otp and verify-reset-otp."""

    email: EmailStr
    otp: str = Field(pattern=_OTP_PATTERN)


class ResetPasswordRequest(BaseModel):
    """Body for reset-password.

    otp may be left out when verify-reset-otp accepted the code moments before.
    newPassword is accepted as an alias for password.
    """

    email: EmailStr
    otp: Optional[str] = Field(default=None, pattern=_OTP_PATTERN)
    password: str = Field(min_length=8, max_length=128, validation_alias=AliasChoices("password", "newPassword"))


# ---------------------------------------------------------------------------
# Auth responses
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    email: str
    is_verified: bool
    google_linked: bool

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            is_verified=user.is_verified,
            google_linked=user.google_id is not None,
        )


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class RegisterResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    email: str


class AuthResponse(BaseModel):
    """Returned by login and verify-otp: a bearer token plus the user it belongs to."""

    model_config = ConfigDict(frozen=True)

    message: str
    token: str
    token_type: str = "bearer"  # noqa: S105 # nosec B105 -- OAuth token type, not a password
    expires_in: int
    user: UserResponse


# ---------------------------------------------------------------------------
# Emergency contacts
# ---------------------------------------------------------------------------


class ContactCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=100)
    phone: str = Field(min_length=3, max_length=40)
    email: Optional[EmailStr] = None
    relation: Optional[str] = Field(default=None, max_length=100)

    @field_validator("email", "relation", mode="before")
    @classmethod
    def blank_to_none(cls, value: Any) -> Any:
        """Forms post empty strings for untouched optional fields."""
        if isinstance(value, str) and not value.strip():
            return None
        return value


class ContactUpdate(BaseModel):
    """Partial update. Only fields present in the body are written."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    phone: Optional[str] = Field(default=None, min_length=3, max_length=40)
    email: Optional[EmailStr] = None
    relation: Optional[str] = Field(default=None, max_length=100)

    @field_validator("email", "relation", mode="before")
    @classmethod
    def blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("name", "phone")
    @classmethod
    def not_null(cls, value: Optional[str]) -> str:
        if value is None:
            raise ValueError("may not be null")
        return value


class ContactResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    phone: str
    email: Optional[str]
    relation: Optional[str]
    created_at: str

    @classmethod
    def from_contact(cls, contact: EmergencyContact) -> "ContactResponse":
        return cls(
            id=contact.id,
            name=contact.name,
            phone=contact.phone,
            email=contact.email,
            relation=contact.relation,
            created_at=contact.created_at,
        )


class SendEmailRequest(BaseModel):
    latitude: float = _LATITUDE
    longitude: float = _LONGITUDE
    disaster: Optional[DisasterEnum] = None
    message: Optional[str] = Field(default=None, max_length=1000)

    @field_validator("disaster", mode="before")
    @classmethod
    def normalize_disaster(cls, value: Any) -> Any:
        return _lower(value)


class SendEmailResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    sent: int
    failed: int
    skipped: int  # contacts without an email address


# ---------------------------------------------------------------------------
# Alerts
# ---------------------------------------------------------------------------


class TriggerAlertRequest(BaseModel):
    latitude: float = _LATITUDE
    longitude: float = _LONGITUDE
    disaster: DisasterEnum

    @field_validator("disaster", mode="before")
    @classmethod
    def normalize_disaster(cls, value: Any) -> Any:
        """Accept any casing ("Flood", "FLOOD")."""
        return _lower(value)


class AlertContentModel(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str
    message: str
    action: str

    @classmethod
    def from_content(cls, content: AlertContent) -> "AlertContentModel":
        return cls(title=content.title, message=content.message, action=content.action)


class AlertLocation(BaseModel):
    model_config = ConfigDict(frozen=True)

    lat: float
    lng: float


class TriggerAlertResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    ok: bool = True
    message: str
    at: AlertLocation
    triggered_at: str
    disaster: DisasterEnum
    latitude: float
    longitude: float
    alert: AlertContentModel


# ---------------------------------------------------------------------------
# Hazards
# ---------------------------------------------------------------------------


class EvaluateRequest(BaseModel):
    """Body for POST /api/hazards/evaluate.

    features are EONET GeoJSON features, passed through as-is. Malformed
    entries are skipped by the evaluator rather than rejected here.
    """

    latitude: float = _LATITUDE
    longitude: float = _LONGITUDE
    features: list[dict[str, Any]] = Field(default_factory=list, max_length=2000)
    test_mode: bool = False


class HazardAssessmentResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Optional[str] = None
    level: str = "neutral"
    reason: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_assessment(cls, assessment: HazardAssessment) -> "HazardAssessmentResponse":
        return cls(
            type=assessment.type,
            level=assessment.level,
            reason=assessment.reason,
            updated_at=assessment.updated_at,
        )


class EventsResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    count: int
    assessment: HazardAssessmentResponse
    features: list[dict[str, Any]]


class CoordinatesModel(BaseModel):
    latitude: float
    longitude: float


class WeatherDayModel(BaseModel):
    date: str
    temperature: Optional[float] = None
    humidity: Optional[float] = None
    rain: Optional[float] = None


class EarthquakeModel(BaseModel):
    id: str
    magnitude: Optional[float]
    place: str = ""
    time: Optional[int] = None
    url: str = ""
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    depth: Optional[float] = None


class StatusLine(BaseModel):
    label: str
    value: str


class HazardStatusModel(BaseModel):
    status: str
    lines: list[StatusLine]
    note: str = ""


class HazardReportResponse(BaseModel):
    """Full assessment for one coordinate, as served by GET /api/hazards/assessment."""

    coords: CoordinatesModel
    generated_at: str
    weather: list[WeatherDayModel]
    earthquakes: list[EarthquakeModel]
    tsunami_alerts: list[str]
    statuses: dict[str, HazardStatusModel]
    events: HazardAssessmentResponse
    top_hazard: str
    top_level: str
    errors: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_report(cls, report: HazardReport) -> "HazardReportResponse":
        return cls.model_validate(to_dict(report))


# ---------------------------------------------------------------------------
# Error envelope / health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
