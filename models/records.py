"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

READING_FIELDS = (
    "displacement",
    "strain",
    "pore_pressure",
    "rainfall",
    "temperature",
    "dem_slope",
    "crack_score",
)

CRACK_SCORE_MAX = 10.0


class RiskLevel(str, Enum):
    """Discrete risk bands. ``very_low`` is only produced by the weighted-fraction model."""

    very_low = "very_low"
    low = "low"
    medium = "medium"
    high = "high"


class MineType(str, Enum):
    iron_ore = "iron_ore"
    coal = "coal"


@dataclass(frozen=True, slots=True)
class SensorReading:
    """One multi-sensor snapshot for a mine at one instant."""

    mine_id: str
    displacement: float
    strain: float
    pore_pressure: float
    rainfall: float
    temperature: float
    dem_slope: float
    crack_score: float
    timestamp: datetime
    id: Optional[str] = None

    def clamped(self) -> "SensorReading":
        """Return a copy with magnitudes floored at zero and crack score in [0, 10]."""
        return replace(
            self,
            displacement=max(0.0, self.displacement),
            strain=max(0.0, self.strain),
            pore_pressure=max(0.0, self.pore_pressure),
            rainfall=max(0.0, self.rainfall),
            dem_slope=max(0.0, self.dem_slope),
            crack_score=min(CRACK_SCORE_MAX, max(0.0, self.crack_score)),
        )

    def with_id(self, reading_id: str) -> "SensorReading":
        return replace(self, id=reading_id)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"mine_id": self.mine_id}
        for name in READING_FIELDS:
            payload[name] = getattr(self, name)
        payload["timestamp"] = self.timestamp.isoformat()
        if self.id is not None:
            payload["id"] = self.id
        return payload

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "SensorReading":
        return cls(
            mine_id=str(payload["mine_id"]),
            timestamp=parse_timestamp(payload["timestamp"]),
            id=payload.get("id"),
            **{name: float(payload.get(name) or 0.0) for name in READING_FIELDS},
        )


@dataclass(frozen=True, slots=True)
class RiskAssessment:
    probability: float
    level: RiskLevel
    model: str


@dataclass(slots=True)
class Mine:
    """Mine site as owned by the store; only the risk fields are written by this service."""

    id: str
    name: str
    location: str
    state: str
    latitude: float
    longitude: float
    mine_type: MineType = MineType.coal
    current_risk_level: RiskLevel = RiskLevel.low
    current_risk_probability: float = 0.0
    last_updated: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "location": self.location,
            "state": self.state,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "mine_type": self.mine_type.value,
            "current_risk_level": self.current_risk_level.value,
            "current_risk_probability": self.current_risk_probability,
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "Mine":
        last_updated = payload.get("last_updated")
        return cls(
            id=str(payload["id"]),
            name=payload["name"],
            location=payload.get("location", ""),
            state=payload.get("state", ""),
            latitude=float(payload.get("latitude", 0.0)),
            longitude=float(payload.get("longitude", 0.0)),
            mine_type=MineType(payload.get("mine_type", MineType.coal.value)),
            current_risk_level=RiskLevel(payload.get("current_risk_level", RiskLevel.low.value)),
            current_risk_probability=float(payload.get("current_risk_probability", 0.0)),
            last_updated=parse_timestamp(last_updated) if last_updated else None,
        )


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO-8601 string (``Z`` suffix allowed) into an aware UTC datetime."""
    if isinstance(value, datetime):
        parsed = value
    else:
        candidate = str(value).strip()
        if not candidate:
            raise ValueError("Timestamp is empty.")
        if candidate.endswith("Z"):
            candidate = candidate[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(candidate)
        except ValueError as exc:
            raise ValueError("Invalid timestamp format") from exc

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)
