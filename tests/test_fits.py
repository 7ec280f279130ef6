"""Tests for mate fit evaluation."""

import logging

import pytest

from tolerance_engine.errors import ValidationError
from tolerance_engine.fits import classify_fit, lmc_fit, mmc_fit, nominal_fit, validate_fit
from tolerance_engine.models import (
    Feature, FeatureCategory, FeatureKind, Mate, MateKind, Tolerance,
)


def _diameter(name, nominal, plus, minus, category) -> Feature:
    return Feature(
        name=name,
        component_id="c",
        kind=FeatureKind.DIAMETER,
        category=category,
        nominal=nominal,
        tolerance=Tolerance(plus, minus),
    )


def _pin_and_hole():
    pin = _diameter("Pin", 9.98, 0.0, 0.02, FeatureCategory.EXTERNAL)
    hole = _diameter("Hole", 10.02, 0.02, 0.0, FeatureCategory.INTERNAL)
    return pin, hole


class TestFitArithmetic:
    def test_pin_hole_values(self):
        pin, hole = _pin_and_hole()
        assert nominal_fit(hole, pin) == pytest.approx(0.04)
        assert mmc_fit(hole, pin) == pytest.approx(0.04)
        assert lmc_fit(hole, pin) == pytest.approx(0.08)

    def test_order_independent(self):
        pin, hole = _pin_and_hole()
        assert nominal_fit(pin, hole) == pytest.approx(nominal_fit(hole, pin))
        assert mmc_fit(pin, hole) == pytest.approx(mmc_fit(hole, pin))
        assert lmc_fit(pin, hole) == pytest.approx(lmc_fit(hole, pin))

    def test_non_diameter_uses_offset(self):
        a = Feature("Face", "c", FeatureKind.LENGTH, FeatureCategory.EXTERNAL,
                    5.0, Tolerance(0.1, 0.1))
        b = Feature("Slot", "c", FeatureKind.LENGTH, FeatureCategory.INTERNAL,
                    5.2, Tolerance(0.1, 0.1))
        assert nominal_fit(a, b, offset=0.3) == 0.3
        assert mmc_fit(a, b) == 0.0


class TestClassifyFit:
    def test_clearance(self):
        assert classify_fit(MateKind.CLEARANCE, 0.01, 0.05) == (True, None)
        valid, message = classify_fit(MateKind.CLEARANCE, 0.0, 0.05)
        assert not valid
        assert message == "Clearance fit must have positive minimum clearance"

    def test_interference(self):
        assert classify_fit(MateKind.INTERFERENCE, -0.05, -0.01) == (True, None)
        valid, message = classify_fit(MateKind.INTERFERENCE, -0.05, 0.0)
        assert not valid
        assert message == "Interference fit must have negative maximum clearance"

    def test_transition(self):
        assert classify_fit(MateKind.TRANSITION, -0.01, 0.01) == (True, None)
        valid, message = classify_fit(MateKind.TRANSITION, 0.01, 0.02)
        assert not valid
        assert message == "Transition fit must have both positive and negative clearances"


class TestValidateFit:
    def test_pin_hole_clearance_valid(self):
        pin, hole = _pin_and_hole()
        mate = Mate("Pin in hole", MateKind.CLEARANCE, hole.id, pin.id)
        fit = validate_fit(mate, hole, pin)
        assert fit.valid
        assert fit.nominal_fit == pytest.approx(0.04)
        assert fit.min_fit == pytest.approx(0.04)
        assert fit.max_fit == pytest.approx(0.08)
        assert fit.message is None
        assert fit.warning is None

    def test_interference_fail(self):
        shaft = _diameter("Shaft", 10.00, 0.01, 0.01, FeatureCategory.EXTERNAL)
        bore = _diameter("Bore", 9.99, 0.01, 0.01, FeatureCategory.INTERNAL)
        mate = Mate("Press fit", MateKind.INTERFERENCE, shaft.id, bore.id)
        fit = validate_fit(mate, shaft, bore)
        assert fit.max_fit == pytest.approx(0.01)
        assert not fit.valid
        assert "negative maximum clearance" in fit.message

    def test_tight_equal_nominals_not_clearance(self):
        pin = _diameter("Pin", 10.0, 0.005, 0.005, FeatureCategory.EXTERNAL)
        hole = _diameter("Hole", 10.0, 0.005, 0.005, FeatureCategory.INTERNAL)
        mate = Mate("Snug", MateKind.CLEARANCE, hole.id, pin.id)
        fit = validate_fit(mate, hole, pin)
        assert fit.min_fit <= 0
        assert not fit.valid
        assert fit.message

    def test_transition_valid(self):
        pin = _diameter("Pin", 10.0, 0.01, 0.01, FeatureCategory.EXTERNAL)
        hole = _diameter("Hole", 10.0, 0.01, 0.01, FeatureCategory.INTERNAL)
        mate = Mate("Locating", MateKind.TRANSITION, pin.id, hole.id)
        fit = validate_fit(mate, pin, hole)
        assert fit.min_fit == pytest.approx(-0.02)
        assert fit.max_fit == pytest.approx(0.02)
        assert fit.valid

    def test_same_category_warns(self, caplog):
        a = _diameter("Pin A", 10.0, 0.01, 0.01, FeatureCategory.EXTERNAL)
        b = _diameter("Pin B", 9.9, 0.01, 0.01, FeatureCategory.EXTERNAL)
        mate = Mate("Odd", MateKind.CLEARANCE, a.id, b.id)
        with caplog.at_level(logging.WARNING, logger="tolerance_engine.fits"):
            fit = validate_fit(mate, a, b)
        assert fit.warning is not None
        # Primary is treated as internal
        assert fit.nominal_fit == pytest.approx(0.1)
        assert "Odd" in caplog.text

    def test_non_diameter_mate_is_declarative(self):
        a = Feature("Face", "c", FeatureKind.LENGTH, FeatureCategory.EXTERNAL,
                    5.0, Tolerance(0.1, 0.1))
        b = Feature("Pocket", "c", FeatureKind.LENGTH, FeatureCategory.INTERNAL,
                    5.0, Tolerance(0.1, 0.1))
        mate = Mate("Seat", MateKind.INTERFERENCE, a.id, b.id, offset=0.25)
        fit = validate_fit(mate, a, b)
        assert fit.valid
        assert (fit.nominal_fit, fit.min_fit, fit.max_fit) == (0.25, 0.25, 0.25)

    def test_features_must_match_mate(self):
        pin, hole = _pin_and_hole()
        mate = Mate("Pin in hole", MateKind.CLEARANCE, hole.id, pin.id)
        with pytest.raises(ValidationError):
            validate_fit(mate, pin, hole)
