"""Rockfall risk models.

Two independently tuned scoring strategies live here and are selected by
callers by name:

* ``threshold_band`` awards points per factor band and caps the sum at 100.
  The monitoring session uses it for the three-level classification.
* ``weighted_fraction`` takes each factor as a fraction of an assumed maximum
  and sums them with fixed weights. The batch and analytics paths use it for
  the four-level classification.
"""

from __future__ import annotations

from typing import Dict, Protocol, Sequence, Tuple

from models.records import RiskAssessment, RiskLevel, SensorReading


class RiskModel(Protocol):
    name: str

    def score(self, reading: SensorReading) -> RiskAssessment:
        ...


# (threshold, points) ordered from the highest band down; the first match wins.
_Bands = Sequence[Tuple[float, float]]

DISPLACEMENT_BANDS: _Bands = ((8.0, 30.0), (5.0, 20.0), (3.0, 10.0))
STRAIN_BANDS: _Bands = ((300.0, 25.0), (200.0, 15.0), (150.0, 8.0))
PORE_PRESSURE_BANDS: _Bands = ((80.0, 20.0), (60.0, 12.0), (45.0, 6.0))
RAINFALL_BANDS: _Bands = ((50.0, 15.0), (25.0, 10.0), (10.0, 5.0))

MAX_POINTS = 100.0


def _band_points(value: float, bands: _Bands) -> float:
    for threshold, points in bands:
        if value > threshold:
            return points
    return 0.0


def classify_three_level(probability: float) -> RiskLevel:
    if probability > 0.7:
        return RiskLevel.high
    if probability > 0.4:
        return RiskLevel.medium
    return RiskLevel.low


def classify_four_level(probability: float) -> RiskLevel:
    if probability > 0.7:
        return RiskLevel.high
    if probability > 0.5:
        return RiskLevel.medium
    if probability > 0.3:
        return RiskLevel.low
    return RiskLevel.very_low


class ThresholdBandModel:
    """Banded point score; probability is ``min(100, points) / 100``."""

    name = "threshold_band"

    def points(self, reading: SensorReading) -> float:
        return (
            _band_points(reading.displacement, DISPLACEMENT_BANDS)
            + _band_points(reading.strain, STRAIN_BANDS)
            + _band_points(reading.pore_pressure, PORE_PRESSURE_BANDS)
            + _band_points(reading.rainfall, RAINFALL_BANDS)
            + max(0.0, reading.crack_score)
        )

    def score(self, reading: SensorReading) -> RiskAssessment:
        probability = min(MAX_POINTS, self.points(reading)) / MAX_POINTS
        return RiskAssessment(
            probability=probability,
            level=classify_three_level(probability),
            model=self.name,
        )


class WeightedFractionModel:
    """Weighted sum of each factor's fraction of its assumed maximum."""

    name = "weighted_fraction"

    # field -> (assumed maximum, weight)
    FACTORS: Dict[str, Tuple[float, float]] = {
        "displacement": (20.0, 0.25),
        "strain": (500.0, 0.20),
        "pore_pressure": (100.0, 0.15),
        "rainfall": (100.0, 0.15),
        "temperature": (50.0, 0.10),
        "dem_slope": (90.0, 0.10),
        "crack_score": (10.0, 0.05),
    }

    def raw_score(self, reading: SensorReading) -> float:
        return sum(
            getattr(reading, name) / maximum * weight
            for name, (maximum, weight) in self.FACTORS.items()
        )

    def score(self, reading: SensorReading) -> RiskAssessment:
        # Negative temperatures or out-of-range inputs can push the raw sum outside [0, 1].
        probability = min(1.0, max(0.0, self.raw_score(reading)))
        return RiskAssessment(
            probability=probability,
            level=classify_four_level(probability),
            model=self.name,
        )


_MODELS: Dict[str, RiskModel] = {
    ThresholdBandModel.name: ThresholdBandModel(),
    WeightedFractionModel.name: WeightedFractionModel(),
}


def available_models() -> list[str]:
    return sorted(_MODELS)


def get_risk_model(name: str) -> RiskModel:
    try:
        return _MODELS[name]
    except KeyError as exc:
        raise ValueError(
            f"Unknown risk model {name!r}; expected one of {', '.join(available_models())}."
        ) from exc
