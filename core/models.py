from dataclasses import dataclass, field
from typing import Optional

# ---------------------------------------------------------------------------
# Domain constants
# ---------------------------------------------------------------------------

# Severity ladder shared by every hazard rule. Higher rank wins.
LEVEL_RANK: dict[str, int] = {"neutral": 0, "warning": 1, "critical": 2}

# Disaster types a user can raise manually and that alert copy exists for.
DISASTER_TYPES = ("earthquake", "flood", "cyclone", "tsunami")


@dataclass(frozen=True)
class AlertContent:
    title: str
    message: str
    action: str


ALERT_CONTENT: dict[str, AlertContent] = {
    "earthquake": AlertContent(
        title="EARTHQUAKE ALERT",
        message="Strong shaking detected. Take cover under sturdy furniture and stay away from windows.",
        action="TAKE COVER NOW",
    ),
    "tsunami": AlertContent(
        title="TSUNAMI WARNING",
        message="Tsunami waves possible. Move to higher ground immediately and avoid coastal areas.",
        action="EVACUATE TO HIGH GROUND",
    ),
    "cyclone": AlertContent(
        title="CYCLONE ALERT",
        message="Severe storm approaching. Secure loose items and stay indoors in a safe room.",
        action="STAY INDOORS & SECURE",
    ),
    "flood": AlertContent(
        title="FLOOD WARNING",
        message="Rising water levels. Avoid low-lying areas and never cross flooded roads.",
        action="AVOID FLOODED AREAS",
    ),
}


@dataclass(frozen=True)
class Coordinates:
    latitude: float
    longitude: float


@dataclass
class WeatherDay:
    """One NASA POWER daily aggregate. None means POWER had no value yet."""

    date: str  # YYYYMMDD
    temperature: Optional[float] = None  # T2M, deg C
    humidity: Optional[float] = None  # RH2M, %
    rain: Optional[float] = None  # PRECTOTCORR, mm/day


@dataclass
class Earthquake:
    id: str
    magnitude: Optional[float]
    place: str = ""
    time: Optional[int] = None  # epoch millis, as USGS reports it
    url: str = ""
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    depth: Optional[float] = None


@dataclass
class HazardAssessment:
    """Result of evaluating a list of event features against one location.

    type is None when nothing matched (level stays "neutral").
    """

    type: Optional[str] = None
    level: str = "neutral"
    reason: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass
class HazardStatus:
    """One dashboard card: a status plus the label/value lines backing it."""

    status: str
    lines: list[tuple[str, str]] = field(default_factory=list)
    note: str = ""


@dataclass
class HazardReport:
    coords: Coordinates
    generated_at: str
    weather: list[WeatherDay]
    earthquakes: list[Earthquake]
    tsunami_alerts: list[str]  # alert headlines
    statuses: dict[str, HazardStatus]  # flood / cyclone / earthquake / tsunami
    events: HazardAssessment  # EONET evaluation
    top_hazard: str
    top_level: str
    errors: dict[str, str] = field(default_factory=dict)  # source -> message
