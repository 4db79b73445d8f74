"""Pydantic schemas for the HTTP API layer."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from models.records import Mine, MineType, RiskAssessment, RiskLevel, SensorReading


class SensorReadingPayload(BaseModel):
    """A sensor reading as exchanged over the API."""

    id: Optional[str] = None
    mine_id: str
    displacement: float = Field(..., ge=0, description="Millimetres.")
    strain: float = Field(..., ge=0, description="Microstrain.")
    pore_pressure: float = Field(..., ge=0, description="kPa.")
    rainfall: float = Field(..., ge=0, description="Millimetres.")
    temperature: float = Field(..., description="Degrees Celsius.")
    dem_slope: float = Field(..., ge=0, description="Degrees.")
    crack_score: float = Field(..., ge=0, le=10)
    timestamp: datetime

    @classmethod
    def from_reading(cls, reading: SensorReading) -> "SensorReadingPayload":
        return cls(
            id=reading.id,
            mine_id=reading.mine_id,
            displacement=reading.displacement,
            strain=reading.strain,
            pore_pressure=reading.pore_pressure,
            rainfall=reading.rainfall,
            temperature=reading.temperature,
            dem_slope=reading.dem_slope,
            crack_score=reading.crack_score,
            timestamp=reading.timestamp,
        )

    def to_reading(self) -> SensorReading:
        return SensorReading(
            id=self.id,
            mine_id=self.mine_id,
            displacement=self.displacement,
            strain=self.strain,
            pore_pressure=self.pore_pressure,
            rainfall=self.rainfall,
            temperature=self.temperature,
            dem_slope=self.dem_slope,
            crack_score=self.crack_score,
            timestamp=self.timestamp,
        )


class RiskAssessmentPayload(BaseModel):
    probability: float = Field(..., ge=0, le=1)
    level: RiskLevel
    model: str

    @classmethod
    def from_assessment(cls, assessment: RiskAssessment) -> "RiskAssessmentPayload":
        return cls(
            probability=assessment.probability,
            level=assessment.level,
            model=assessment.model,
        )


class MinePayload(BaseModel):
    id: str
    name: str
    location: str
    state: str
    latitude: float
    longitude: float
    mine_type: MineType
    current_risk_level: RiskLevel
    current_risk_probability: float = Field(..., ge=0, le=1)
    last_updated: Optional[datetime] = None

    @classmethod
    def from_mine(cls, mine: Mine) -> "MinePayload":
        return cls(
            id=mine.id,
            name=mine.name,
            location=mine.location,
            state=mine.state,
            latitude=mine.latitude,
            longitude=mine.longitude,
            mine_type=mine.mine_type,
            current_risk_level=mine.current_risk_level,
            current_risk_probability=mine.current_risk_probability,
            last_updated=mine.last_updated,
        )


class ReadingAnalyticsPayload(BaseModel):
    """Dashboard statistics for a set of readings."""

    row_count: int = Field(..., ge=0)
    averages: Dict[str, float] = Field(default_factory=dict)
    per_mine_count: Dict[str, int] = Field(default_factory=dict)
    risk_level_counts: Dict[str, int] = Field(default_factory=dict)


class GenerateMineDataResponse(BaseModel):
    success: bool
    message: str
    total_records: int = Field(0, ge=0)
    mines: List[str] = Field(default_factory=list)
    failed_mines: List[str] = Field(default_factory=list)


class SyncWeatherResponse(BaseModel):
    success: bool
    message: str
    timestamp: datetime
    synced_mines: List[str] = Field(default_factory=list)
    failed_mines: List[str] = Field(default_factory=list)


class AlertRequest(BaseModel):
    mine_id: str
    mine_name: str
    location: str
    risk_probability: float = Field(..., ge=0, le=1)


class AlertResponse(BaseModel):
    success: bool
    message: str
