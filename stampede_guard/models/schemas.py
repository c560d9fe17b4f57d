import random
import string
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from stampede_guard.config import (
    DEFAULT_PANIC_THRESHOLD,
    DEFAULT_SHAKE_THRESHOLD,
    PANIC_THRESHOLD_RANGE,
    SHAKE_THRESHOLD_RANGE,
    SHAKES_FOR_EMERGENCY,
)


def new_record_id() -> str:
    """Short random base-36 id used for alerts and contacts."""
    return "".join(random.choices(string.digits + string.ascii_lowercase, k=9))


class SafetyLevel(str, Enum):
    GREEN = "GREEN"
    YELLOW = "YELLOW"
    RED = "RED"


class Location(BaseModel):
    lat: float
    lng: float
    accuracy: float


class AlertLocation(BaseModel):
    lat: float
    lng: float


class UserState(BaseModel):
    id: str
    user_name: Optional[str] = None
    safety_level: SafetyLevel = SafetyLevel.GREEN
    sound_level: float = Field(0.0, ge=0, le=100)
    shake_count: int = Field(0, ge=0, le=SHAKES_FOR_EMERGENCY)
    location: Optional[Location] = None
    last_update: int  # epoch milliseconds


class Alert(BaseModel):
    """One emergency trigger. Never mutated once recorded."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_record_id)
    user_id: str
    user_name: Optional[str] = None
    timestamp: int  # epoch milliseconds
    safety_level: SafetyLevel = SafetyLevel.RED
    location: Optional[AlertLocation] = None
    reason: str


class EmergencyContact(BaseModel):
    id: str = Field(default_factory=new_record_id)
    name: str
    phone: str
    active: bool = True


class AdminSettings(BaseModel):
    contacts: list[EmergencyContact] = Field(default_factory=list)
    # persisted and editable, not consulted by any alerting logic
    auto_call: bool = True
    auto_sms: bool = True
    shake_threshold: int = Field(
        DEFAULT_SHAKE_THRESHOLD, ge=SHAKE_THRESHOLD_RANGE[0], le=SHAKE_THRESHOLD_RANGE[1]
    )
    panic_threshold: int = Field(
        DEFAULT_PANIC_THRESHOLD, ge=PANIC_THRESHOLD_RANGE[0], le=PANIC_THRESHOLD_RANGE[1]
    )


class InsightSource(BaseModel):
    uri: Optional[str] = None
    title: Optional[str] = None


class SafetyInsights(BaseModel):
    text: str
    sources: list[InsightSource] = Field(default_factory=list)
