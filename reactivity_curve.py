import logging
import math
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np
from scipy.interpolate import PchipInterpolator

from config import (
    ConfigurationError,
    CurveFamily,
    TABULATED_F_DEFAULT,
    TABULATED_X_DEFAULT,
    check_curve_parameters,
)

logger = logging.getLogger(__name__)

# North/South CR integral worth fit (pcm vs. normalized insertion), highest power first
CONTROL_ROD_POLY = (-192.39, 1690.9, -3473.6, 2363.3, -260.91, 37.974, -0.001)

# Water level: extrapolated line below 800 mm, fitted quadratic from 800 to 1000 mm (experiments 9/5/2025)
SHIM_BREAK_MM = 800.0
SHIM_LINE_M = 9.38232899520517
SHIM_LINE_Q = -8785.47016144056
SHIM_QUAD_A = -0.0149964531096730
SHIM_QUAD_B = 33.3916504237934
SHIM_QUAD_C = -18395.1973141205


def _control_rod_fit(cr: np.ndarray, worth: float) -> np.ndarray:
    return np.polyval(CONTROL_ROD_POLY, cr) / worth


def _shim_fit(cr: np.ndarray, worth: float) -> np.ndarray:
    h = cr * 1000.0  # [mm] water level
    line = SHIM_LINE_M * h + SHIM_LINE_Q
    quad = SHIM_QUAD_A * h ** 2 + SHIM_QUAD_B * h + SHIM_QUAD_C
    return (np.where(h < SHIM_BREAK_MM, line, quad) + worth) / worth


def _tabulated_fit(cr: np.ndarray, x_pts: Sequence[float], f_pts: Sequence[float]) -> np.ndarray:
    x = np.asarray(x_pts, dtype=float)
    f = np.asarray(f_pts, dtype=float)
    if x.ndim != 1 or x.shape != f.shape or x.size < 2:
        raise ConfigurationError("tabulated calibration needs matching x/f point lists of length >= 2")
    if not (np.all(np.isfinite(x)) and np.all(np.isfinite(f))):
        raise ConfigurationError("tabulated calibration points must be finite")
    if np.any((x < 0.0) | (x > 1.0)) or np.any((f < 0.0) | (f > 1.0)):
        raise ConfigurationError("tabulated calibration points must lie in [0, 1]")
    if np.any(np.diff(x) <= 0.0):
        raise ConfigurationError("tabulated calibration x points must be strictly increasing")
    # PCHIP keeps monotone data monotone, no overshoot between points
    spline = PchipInterpolator(x, f, extrapolate=True)
    return spline(np.clip(cr, x[0], x[-1]))


@dataclass(frozen=True, eq=False)
class ReactivityCurve:
    """
    Discretized integral worth of one rod.

    reactivity_table[i] is the normalized reactivity inserted at step i
    (multiply by worth for pcm); slope_table[i] is its discrete derivative
    scaled by the step count. Both arrays are read-only: a new configuration
    means a new curve.
    """
    family: CurveFamily
    steps: int
    worth: float
    parameters: Tuple[float, float]
    reactivity_table: np.ndarray
    slope_table: np.ndarray
    max_index: int

    def max_slope_index(self) -> int:
        return self.max_index

    @property
    def positions(self) -> np.ndarray:
        return np.arange(self.steps + 1, dtype=float)

    @classmethod
    def build(
        cls,
        family,
        steps: int,
        worth: float,
        parameters: Sequence[float] = (0.0, 1.0),
        calibration_x: Optional[Sequence[float]] = None,
        calibration_f: Optional[Sequence[float]] = None,
    ) -> "ReactivityCurve":
        family = CurveFamily.parse(family)
        if isinstance(steps, bool) or not isinstance(steps, (int, np.integer)) or steps <= 0:
            raise ConfigurationError(f"step count must be a positive integer, got {steps!r}")
        steps = int(steps)
        worth = float(worth)
        if not math.isfinite(worth) or worth == 0.0:
            raise ConfigurationError(f"rod worth must be finite and non-zero, got {worth}")
        if worth < 0.0 and family is not CurveFamily.TABULATED:
            # the fits divide by worth; a negative one flips every sample below zero
            raise ConfigurationError(f"{family.value} fits need a positive worth, got {worth}")
        p0, p1 = check_curve_parameters(parameters)

        cr = p0 + (p1 - p0) * np.arange(1, steps + 1, dtype=float) / steps
        if family in (CurveFamily.SAFETY, CurveFamily.REGULATING):
            raw = _control_rod_fit(cr, worth)
        elif family is CurveFamily.SHIM:
            raw = _shim_fit(cr, worth)
        elif family is CurveFamily.TABULATED:
            raw = _tabulated_fit(
                cr,
                TABULATED_X_DEFAULT if calibration_x is None else calibration_x,
                TABULATED_F_DEFAULT if calibration_f is None else calibration_f,
            )
        else:
            raise ConfigurationError(f"unknown curve family: {family!r}")

        if not np.all(np.isfinite(raw)):
            raise ConfigurationError(f"{family.value} curve produced non-finite samples")

        table = np.concatenate(([0.0], raw))
        monotone = np.maximum.accumulate(table)
        if not monotone[-1] > 0.0:
            raise ConfigurationError(f"{family.value} curve inserts no reactivity over window {(p0, p1)}")
        n_fixed = int(np.count_nonzero(monotone != table))
        if n_fixed:
            logger.warning(
                "%s curve (worth=%g pcm) was not monotonic, %d of %d samples raised",
                family.value, worth, n_fixed, steps + 1,
            )

        slope = np.diff(monotone, prepend=0.0) * steps
        slope[0] = 0.0
        max_index = int(np.argmax(slope))

        monotone.setflags(write=False)
        slope.setflags(write=False)
        logger.info(
            "built %s curve: %d steps, worth %g pcm, window (%g, %g), peak slope at step %d",
            family.value, steps, worth, p0, p1, max_index,
        )
        return cls(
            family=family,
            steps=steps,
            worth=worth,
            parameters=(p0, p1),
            reactivity_table=monotone,
            slope_table=slope,
            max_index=max_index,
        )


def build_curve(rod_cfg) -> ReactivityCurve:
    """Build the curve described by a config.RodConfig."""
    return ReactivityCurve.build(
        rod_cfg.family,
        rod_cfg.steps,
        rod_cfg.worth_pcm,
        rod_cfg.curve,
        rod_cfg.calibration_x,
        rod_cfg.calibration_f,
    )
