"""
Reactivity curve construction: table shape, monotonicity, derivative and
configuration errors for every calibration family.
"""

import logging

import numpy as np
import pytest

from config import CONTROL_ROD_WORTH_PCM, ConfigurationError, CurveFamily, RodConfig, SHIM_ROD_WORTH_PCM
from reactivity_curve import CONTROL_ROD_POLY, ReactivityCurve, build_curve

CALIBRATED = [
    (CurveFamily.SAFETY, CONTROL_ROD_WORTH_PCM),
    (CurveFamily.REGULATING, CONTROL_ROD_WORTH_PCM),
    (CurveFamily.SHIM, SHIM_ROD_WORTH_PCM),
    (CurveFamily.TABULATED, 500.0),
]


@pytest.mark.parametrize("family,worth", CALIBRATED)
@pytest.mark.parametrize("steps", [1, 7, 100, 10000])
def test_table_shape_and_origin(family, worth, steps):
    curve = ReactivityCurve.build(family, steps, worth)
    assert curve.reactivity_table.shape == (steps + 1,)
    assert curve.slope_table.shape == (steps + 1,)
    assert curve.reactivity_table[0] == 0.0
    assert curve.slope_table[0] == 0.0
    assert np.all(np.diff(curve.reactivity_table) >= 0.0)


@pytest.mark.parametrize("family,worth", CALIBRATED)
def test_calibrated_curves_end_at_full_worth(family, worth):
    curve = ReactivityCurve.build(family, 1000, worth)
    assert curve.reactivity_table[-1] == pytest.approx(1.0, abs=1e-9)


def test_slope_is_scaled_discrete_derivative():
    steps = 250
    curve = ReactivityCurve.build(CurveFamily.SAFETY, steps, CONTROL_ROD_WORTH_PCM)
    r = curve.reactivity_table
    expected = np.concatenate(([0.0], np.diff(r) * steps))
    np.testing.assert_allclose(curve.slope_table, expected)
    assert curve.max_slope_index() == int(np.argmax(curve.slope_table))
    assert 0 < curve.max_slope_index() < steps


def test_polynomial_samples_match_fit():
    steps = 10
    curve = ReactivityCurve.build(CurveFamily.REGULATING, steps, CONTROL_ROD_WORTH_PCM)
    for i in range(1, steps + 1):
        expected = np.polyval(CONTROL_ROD_POLY, i / steps) / CONTROL_ROD_WORTH_PCM
        assert curve.reactivity_table[i] == pytest.approx(expected)


def test_shim_curve_is_continuous_at_800_mm():
    curve = ReactivityCurve.build(CurveFamily.SHIM, 1000, SHIM_ROD_WORTH_PCM)
    below, at = curve.reactivity_table[799], curve.reactivity_table[800]
    # one millimetre of level apart, either side of the breakpoint
    assert at - below == pytest.approx(curve.reactivity_table[799] - curve.reactivity_table[798], rel=0.05)


def test_parameter_window_limits_evaluation_range():
    curve = ReactivityCurve.build(CurveFamily.SAFETY, 50, CONTROL_ROD_WORTH_PCM, parameters=(0.0, 0.5))
    assert curve.parameters == (0.0, 0.5)
    assert curve.reactivity_table[-1] == pytest.approx(np.polyval(CONTROL_ROD_POLY, 0.5) / CONTROL_ROD_WORTH_PCM)


def test_tables_are_read_only():
    curve = ReactivityCurve.build(CurveFamily.SAFETY, 10, CONTROL_ROD_WORTH_PCM)
    with pytest.raises(ValueError):
        curve.reactivity_table[3] = 1.0
    with pytest.raises(ValueError):
        curve.slope_table[3] = 1.0


def test_family_accepts_names():
    curve = ReactivityCurve.build("shim", 10, SHIM_ROD_WORTH_PCM)
    assert curve.family is CurveFamily.SHIM


@pytest.mark.parametrize("steps", [0, -3, 2.5, True, "10"])
def test_invalid_step_count_fails_fast(steps):
    with pytest.raises(ConfigurationError):
        ReactivityCurve.build(CurveFamily.SAFETY, steps, CONTROL_ROD_WORTH_PCM)


@pytest.mark.parametrize("worth", [0.0, float("nan"), float("inf"), -float("inf")])
def test_invalid_worth_fails_fast(worth):
    with pytest.raises(ConfigurationError):
        ReactivityCurve.build(CurveFamily.SAFETY, 10, worth)


@pytest.mark.parametrize("family", [CurveFamily.SAFETY, CurveFamily.REGULATING, CurveFamily.SHIM])
def test_negative_worth_rejected_for_fitted_families(family):
    with pytest.raises(ConfigurationError, match="positive worth"):
        ReactivityCurve.build(family, 100, -165.273)
    with pytest.raises(ConfigurationError, match="positive worth"):
        RodConfig(name="Inverted", family=family, worth_pcm=-165.273)


def test_negative_worth_allowed_for_tabulated():
    curve = ReactivityCurve.build(CurveFamily.TABULATED, 100, -300.0)
    assert curve.reactivity_table[-1] == pytest.approx(1.0)
    assert RodConfig(family=CurveFamily.TABULATED, worth_pcm=-300.0).worth_pcm == -300.0


def test_flat_curve_fails_fast():
    with pytest.raises(ConfigurationError, match="inserts no reactivity"):
        ReactivityCurve.build(
            CurveFamily.TABULATED, 10, 100.0, calibration_x=[0.0, 1.0], calibration_f=[0.0, 0.0],
        )


def test_unknown_family_fails_fast():
    with pytest.raises(ConfigurationError, match="unknown curve family"):
        ReactivityCurve.build("boron", 10, 100.0)


@pytest.mark.parametrize("params", [(0.5, 0.2), (0.0, 1.5), (-0.1, 1.0), (0.0,), (0.0, float("nan"))])
def test_invalid_parameters_fail_fast(params):
    with pytest.raises(ConfigurationError):
        ReactivityCurve.build(CurveFamily.SAFETY, 10, CONTROL_ROD_WORTH_PCM, parameters=params)


def test_tabulated_custom_points():
    curve = ReactivityCurve.build(
        CurveFamily.TABULATED, 4, 100.0,
        calibration_x=[0.0, 0.5, 1.0], calibration_f=[0.0, 0.25, 1.0],
    )
    assert curve.reactivity_table[2] == pytest.approx(0.25)
    assert curve.reactivity_table[4] == pytest.approx(1.0)


@pytest.mark.parametrize(
    "x,f",
    [
        ([0.0, 1.0], [0.0]),
        ([0.0, 0.0, 1.0], [0.0, 0.5, 1.0]),
        ([0.0, float("nan")], [0.0, 1.0]),
        ([-0.5, -0.1, 1.0], [0.0, 0.5, 1.0]),
        ([0.0, 0.5, 1.0], [0.0, 0.5, 1.2]),
    ],
)
def test_tabulated_bad_points_fail_fast(x, f):
    with pytest.raises(ConfigurationError, match="tabulated calibration"):
        ReactivityCurve.build(CurveFamily.TABULATED, 10, 100.0, calibration_x=x, calibration_f=f)


def test_non_monotonic_fit_is_raised_and_logged(caplog):
    # a shim worth far from calibration pushes the low-level samples negative
    with caplog.at_level(logging.WARNING, logger="reactivity_curve"):
        curve = ReactivityCurve.build(CurveFamily.SHIM, 100, 100.0)
    assert "not monotonic" in caplog.text
    assert curve.reactivity_table[0] == 0.0
    assert np.all(np.diff(curve.reactivity_table) >= 0.0)


def test_build_curve_from_rod_config():
    cfg = RodConfig(name="Water", family=CurveFamily.SHIM, steps=20, worth_pcm=SHIM_ROD_WORTH_PCM)
    curve = build_curve(cfg)
    assert curve.steps == 20
    assert curve.family is CurveFamily.SHIM
    assert cfg.scram_exempt is None
    assert cfg.is_scram_exempt
