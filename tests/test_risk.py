"""Unit tests for the two risk models."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone

import pytest

from models.records import RiskLevel, SensorReading
from services.risk import (
    ThresholdBandModel,
    WeightedFractionModel,
    available_models,
    classify_four_level,
    classify_three_level,
    get_risk_model,
)


def _reading(**overrides: float) -> SensorReading:
    """Helper to build an all-zero reading with selected fields set."""

    values = {
        "displacement": 0.0,
        "strain": 0.0,
        "pore_pressure": 0.0,
        "rainfall": 0.0,
        "temperature": 0.0,
        "dem_slope": 0.0,
        "crack_score": 0.0,
    }
    values.update(overrides)
    return SensorReading(
        mine_id="mine-1", timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc), **values
    )


def test_all_zero_reading_is_low() -> None:
    assessment = ThresholdBandModel().score(_reading())

    assert assessment.probability == 0.0
    assert assessment.level is RiskLevel.low
    assert assessment.model == "threshold_band"


def test_top_band_reading_saturates_at_one() -> None:
    reading = _reading(displacement=9, strain=350, pore_pressure=90, rainfall=60, crack_score=10)

    assessment = ThresholdBandModel().score(reading)

    assert assessment.probability == 1.0
    assert assessment.level is RiskLevel.high


def test_single_displacement_band() -> None:
    assessment = ThresholdBandModel().score(_reading(displacement=4))

    assert assessment.probability == pytest.approx(0.10)
    assert assessment.level is RiskLevel.low


@pytest.mark.parametrize(
    ("field", "value", "points"),
    [
        ("displacement", 3.0, 0),
        ("displacement", 5.0, 10),
        ("displacement", 8.0, 20),
        ("displacement", 8.01, 30),
        ("strain", 150.0, 0),
        ("strain", 200.5, 15),
        ("strain", 301.0, 25),
        ("pore_pressure", 46.0, 6),
        ("pore_pressure", 61.0, 12),
        ("pore_pressure", 80.5, 20),
        ("rainfall", 10.0, 0),
        ("rainfall", 26.0, 10),
        ("rainfall", 51.0, 15),
        ("crack_score", 7.5, 7.5),
    ],
)
def test_band_boundaries_are_strict(field: str, value: float, points: float) -> None:
    assert ThresholdBandModel().points(_reading(**{field: value})) == pytest.approx(points)


def test_points_are_capped_at_one_hundred() -> None:
    reading = _reading(displacement=50, strain=900, pore_pressure=500, rainfall=300, crack_score=10)

    assert ThresholdBandModel().points(reading) == 100
    assert ThresholdBandModel().score(reading).probability == 1.0


def test_temperature_and_slope_do_not_affect_threshold_score() -> None:
    model = ThresholdBandModel()

    assert model.score(_reading(temperature=60, dem_slope=80)).probability == 0.0


@pytest.mark.parametrize(
    ("probability", "level"),
    [
        (0.0, RiskLevel.low),
        (0.4, RiskLevel.low),
        (0.41, RiskLevel.medium),
        (0.7, RiskLevel.medium),
        (0.71, RiskLevel.high),
        (1.0, RiskLevel.high),
    ],
)
def test_three_level_classification(probability: float, level: RiskLevel) -> None:
    assert classify_three_level(probability) is level


@pytest.mark.parametrize(
    ("probability", "level"),
    [
        (0.0, RiskLevel.very_low),
        (0.3, RiskLevel.very_low),
        (0.31, RiskLevel.low),
        (0.5, RiskLevel.low),
        (0.51, RiskLevel.medium),
        (0.7, RiskLevel.medium),
        (0.71, RiskLevel.high),
    ],
)
def test_four_level_classification(probability: float, level: RiskLevel) -> None:
    assert classify_four_level(probability) is level


def test_weighted_fraction_at_assumed_maxima_is_one() -> None:
    reading = _reading(
        displacement=20,
        strain=500,
        pore_pressure=100,
        rainfall=100,
        temperature=50,
        dem_slope=90,
        crack_score=10,
    )

    assessment = WeightedFractionModel().score(reading)

    assert assessment.probability == pytest.approx(1.0)
    assert assessment.level is RiskLevel.high
    assert assessment.model == "weighted_fraction"


def test_weighted_fraction_uses_fixed_weights() -> None:
    model = WeightedFractionModel()

    # 10/20 * 0.25 + 250/500 * 0.20 = 0.225
    assessment = model.score(_reading(displacement=10, strain=250))

    assert assessment.probability == pytest.approx(0.225)
    assert assessment.level is RiskLevel.very_low


def test_weighted_fraction_is_clamped_to_unit_interval() -> None:
    model = WeightedFractionModel()

    assert model.score(_reading(temperature=-40)).probability == 0.0
    assert model.score(_reading(displacement=400, strain=5000)).probability == 1.0


def test_models_disagree_on_the_same_reading() -> None:
    reading = _reading(displacement=9, strain=350, pore_pressure=90, rainfall=60, crack_score=10)

    band = ThresholdBandModel().score(reading)
    fraction = WeightedFractionModel().score(reading)

    assert band.probability == 1.0
    assert fraction.probability < band.probability


@pytest.mark.parametrize("model", [ThresholdBandModel(), WeightedFractionModel()])
def test_score_is_deterministic_and_bounded(model) -> None:
    reading = _reading(displacement=6.2, strain=210, pore_pressure=70, rainfall=30, crack_score=4)

    first = model.score(reading)
    second = model.score(reading)

    assert first == second
    assert 0.0 <= first.probability <= 1.0


@pytest.mark.parametrize("model", [ThresholdBandModel(), WeightedFractionModel()])
@pytest.mark.parametrize(
    "field", ["displacement", "strain", "pore_pressure", "rainfall", "crack_score"]
)
def test_increasing_a_factor_never_lowers_probability(model, field: str) -> None:
    base = _reading(displacement=2, strain=120, pore_pressure=40, rainfall=5, crack_score=2)
    previous = model.score(base).probability

    for step in range(1, 40):
        value = getattr(base, field) + step * (0.25 if field == "crack_score" else 5)
        if field == "crack_score":
            value = min(10.0, value)
        probability = model.score(replace(base, **{field: value})).probability
        assert probability >= previous
        previous = probability


def test_model_registry() -> None:
    assert available_models() == ["threshold_band", "weighted_fraction"]
    assert isinstance(get_risk_model("threshold_band"), ThresholdBandModel)
    assert isinstance(get_risk_model("weighted_fraction"), WeightedFractionModel)

    with pytest.raises(ValueError, match="Unknown risk model"):
        get_risk_model("linear")
