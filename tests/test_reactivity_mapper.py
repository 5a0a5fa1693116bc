import numpy as np
import pytest

from config import CONTROL_ROD_WORTH_PCM, CurveFamily, SHIM_ROD_WORTH_PCM
from reactivity_curve import ReactivityCurve
from reactivity_mapper import PositionReactivityMapper


@pytest.fixture
def mapper():
    return PositionReactivityMapper(ReactivityCurve.build(CurveFamily.SAFETY, 100, CONTROL_ROD_WORTH_PCM))


def test_integer_positions_return_samples(mapper):
    table = mapper.curve.reactivity_table
    for i in (0, 1, 37, 100):
        assert mapper.reactivity_at(i) == pytest.approx(table[i] * CONTROL_ROD_WORTH_PCM)
    assert mapper.reactivity_at(0) == 0.0


def test_fractional_positions_interpolate(mapper):
    lo, hi = mapper.reactivity_at(10), mapper.reactivity_at(11)
    assert mapper.reactivity_at(10.5) == pytest.approx(0.5 * (lo + hi))
    assert mapper.reactivity_at(10.25) == pytest.approx(0.75 * lo + 0.25 * hi)


def test_positions_are_clamped(mapper):
    assert mapper.reactivity_at(-5) == mapper.reactivity_at(0)
    assert mapper.reactivity_at(100 + 100) == mapper.reactivity_at(100)


def test_returns_plain_floats(mapper):
    assert type(mapper.reactivity_at(12.3)) is float
    assert type(mapper.position_at_reactivity(40.0)) is float


def test_reverse_lookup_edges(mapper):
    assert mapper.position_at_reactivity(0.0) == 0.0
    assert mapper.position_at_reactivity(-10.0) == 0.0
    assert mapper.position_at_reactivity(CONTROL_ROD_WORTH_PCM) == 100.0
    assert mapper.position_at_reactivity(10 * CONTROL_ROD_WORTH_PCM) == 100.0


def test_reverse_lookup_hits_samples(mapper):
    value = mapper.reactivity_at(37)
    assert mapper.position_at_reactivity(value) == pytest.approx(37.0, abs=1e-6)


@pytest.mark.parametrize("family,worth", [(CurveFamily.SAFETY, CONTROL_ROD_WORTH_PCM), (CurveFamily.SHIM, SHIM_ROD_WORTH_PCM)])
def test_round_trip_within_one_step(family, worth):
    m = PositionReactivityMapper(ReactivityCurve.build(family, 200, worth))
    for p in np.linspace(0.0, 200.0, 41):
        assert abs(m.position_at_reactivity(m.reactivity_at(p)) - p) <= 1.0


def test_reverse_lookup_is_monotone(mapper):
    values = np.linspace(0.0, CONTROL_ROD_WORTH_PCM, 57)
    positions = [mapper.position_at_reactivity(v) for v in values]
    assert all(b >= a for a, b in zip(positions, positions[1:]))


def test_negative_worth_curve():
    m = PositionReactivityMapper(ReactivityCurve.build(CurveFamily.TABULATED, 50, -300.0))
    assert m.reactivity_at(50) == pytest.approx(-300.0)
    assert m.position_at_reactivity(-300.0) == 50.0
    assert m.position_at_reactivity(10.0) == 0.0
    half = m.position_at_reactivity(m.reactivity_at(25))
    assert half == pytest.approx(25.0, abs=1e-6)
