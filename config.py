from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple
import math

import numpy as np


class ConfigurationError(ValueError):
    """Raised when rod, curve or waveform settings cannot produce a valid model."""


class CurveFamily(str, Enum):
    SAFETY = "safety"            # North CR, polynomial fit
    REGULATING = "regulating"    # South CR, same polynomial fit
    SHIM = "shim"                # water level, linear + quadratic fit
    TABULATED = "tabulated"      # PCHIP through calibration points

    @classmethod
    def parse(cls, value) -> "CurveFamily":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ConfigurationError(f"unknown curve family: {value!r}") from None


class SimulationMode(str, Enum):
    SQUARE = "square"
    SINE = "sine"
    SAWTOOTH = "sawtooth"


class SineShape(str, Enum):
    NORMAL = "normal"
    QUADRATIC = "quadratic"


# ---------------- Defaults (CROCUS adapted) ----------------
SETTINGS_VERSION = 1.1

ROD_STEPS_DEFAULT = 10000                 # [steps] discretized travel
CONTROL_ROD_WORTH_PCM = 165.273           # [pcm] North/South CR, printed calibration curves
SHIM_ROD_WORTH_PCM = 8785.47016144056     # [pcm] water level, 0..1000 mm
CONTROL_ROD_SPEED_DEFAULT = 1.0e3         # [steps/s] stopwatch value at IJS TRIGA
SHIM_ROD_SPEED_DEFAULT = 22.0             # [steps/s]

FIRE_ACCELERATION = 50.0                  # [1/s^2] normalized pulse ejection acceleration
SCRAM_DURATION_S = 0.5                    # [s] scram timer span

SIMULATION_PERIOD_DEFAULT = 5.0           # [s]
SIMULATION_AMPLITUDE_DEFAULT = 40.0       # [steps]
SQUARE_WAVE_BREAKS_DEFAULT = (0.0, 0.5, 0.5, 1.0)
SAW_TOOTH_BREAKS_DEFAULT = (0.0, 0.25, 0.5, 0.5, 0.75, 1.0)

# Generic S-shaped integral worth, normalized (used by TABULATED rods)
TABULATED_X_DEFAULT = (0.00, 0.05, 0.10, 0.20, 0.30, 0.40, 0.50, 0.60, 0.70, 0.80, 0.90, 0.95, 1.00)
TABULATED_F_DEFAULT = (0.000, 0.004, 0.015, 0.060, 0.140, 0.250, 0.380, 0.520, 0.660, 0.790, 0.910, 0.960, 1.000)


def check_break_points(points, expected: int, what: str) -> Tuple[float, ...]:
    pts = tuple(float(p) for p in points)
    if len(pts) != expected:
        raise ConfigurationError(f"{what}: expected {expected} break points, got {len(pts)}")
    if not all(math.isfinite(p) and 0.0 <= p <= 1.0 for p in pts):
        raise ConfigurationError(f"{what}: break points must lie in [0, 1], got {pts}")
    if any(b < a for a, b in zip(pts, pts[1:])):
        raise ConfigurationError(f"{what}: break points must be non-decreasing, got {pts}")
    return pts


def check_curve_parameters(parameters) -> Tuple[float, float]:
    """Validate the (start, end) insertion window a calibration fit is evaluated over."""
    pts = tuple(float(p) for p in parameters)
    if len(pts) != 2:
        raise ConfigurationError(f"curve parameters: expected 2 values, got {len(pts)}")
    p0, p1 = pts
    if not (math.isfinite(p0) and math.isfinite(p1)) or not (0.0 <= p0 < p1 <= 1.0):
        raise ConfigurationError(f"curve parameters must satisfy 0 <= p0 < p1 <= 1, got {pts}")
    return p0, p1


@dataclass
class RodConfig:
    name: str = "Control Rod"
    family: CurveFamily = CurveFamily.SAFETY
    steps: int = ROD_STEPS_DEFAULT                  # [steps]
    worth_pcm: float = CONTROL_ROD_WORTH_PCM        # [pcm]
    speed: float = CONTROL_ROD_SPEED_DEFAULT        # [steps/s], <= 0 moves instantly
    curve: Tuple[float, float] = (0.0, 1.0)         # [-] fit evaluation window
    scram_exempt: Optional[bool] = None             # None -> exempt only for SHIM
    calibration_x: Optional[Tuple[float, ...]] = None
    calibration_f: Optional[Tuple[float, ...]] = None

    def __post_init__(self):
        self.family = CurveFamily.parse(self.family)
        if isinstance(self.steps, bool) or not isinstance(self.steps, (int, np.integer)) or self.steps <= 0:
            raise ConfigurationError(f"{self.name}: step count must be a positive integer, got {self.steps!r}")
        self.steps = int(self.steps)
        self.worth_pcm = float(self.worth_pcm)
        if not math.isfinite(self.worth_pcm) or self.worth_pcm == 0.0:
            raise ConfigurationError(f"{self.name}: rod worth must be finite and non-zero, got {self.worth_pcm}")
        if self.worth_pcm < 0.0 and self.family is not CurveFamily.TABULATED:
            raise ConfigurationError(f"{self.name}: {self.family.value} fits need a positive worth, got {self.worth_pcm}")
        self.speed = float(self.speed)
        self.curve = check_curve_parameters(self.curve)
        if self.calibration_x is not None:
            self.calibration_x = tuple(float(x) for x in self.calibration_x)
        if self.calibration_f is not None:
            self.calibration_f = tuple(float(f) for f in self.calibration_f)

    @property
    def is_scram_exempt(self) -> bool:
        if self.scram_exempt is None:
            return self.family is CurveFamily.SHIM
        return bool(self.scram_exempt)


@dataclass
class SquareWaveConfig:
    period_s: float = SIMULATION_PERIOD_DEFAULT
    amplitude: float = SIMULATION_AMPLITUDE_DEFAULT
    break_points: Tuple[float, ...] = SQUARE_WAVE_BREAKS_DEFAULT   # start up, end up, start down, end down

    def __post_init__(self):
        self.break_points = check_break_points(self.break_points, 4, "square wave")


@dataclass
class SineConfig:
    period_s: float = SIMULATION_PERIOD_DEFAULT
    amplitude: float = SIMULATION_AMPLITUDE_DEFAULT
    shape: SineShape = SineShape.NORMAL

    def __post_init__(self):
        self.shape = SineShape(self.shape)


@dataclass
class SawToothConfig:
    period_s: float = SIMULATION_PERIOD_DEFAULT
    amplitude: float = SIMULATION_AMPLITUDE_DEFAULT
    break_points: Tuple[float, ...] = SAW_TOOTH_BREAKS_DEFAULT   # up start/peak/end, down start/peak/end

    def __post_init__(self):
        self.break_points = check_break_points(self.break_points, 6, "saw tooth")


def default_rods() -> List[RodConfig]:
    return [
        RodConfig(name="North CR", family=CurveFamily.SAFETY),
        RodConfig(name="South CR", family=CurveFamily.REGULATING),
        RodConfig(
            name="Water",
            family=CurveFamily.SHIM,
            worth_pcm=SHIM_ROD_WORTH_PCM,
            speed=SHIM_ROD_SPEED_DEFAULT,
        ),
    ]


@dataclass
class Config:
    # ---------------- Simulation ----------------
    dt: float = 0.01             # [s] tick length used by the run driver
    t_final: float = 10.0        # [s] total scenario time

    # ---------------- Rods ----------------
    rods: List[RodConfig] = field(default_factory=default_rods)
    fire_acceleration: float = FIRE_ACCELERATION   # [1/s^2]
    scram_duration_s: float = SCRAM_DURATION_S     # [s]

    # ---------------- Simulation mode waveforms ----------------
    square_wave: SquareWaveConfig = field(default_factory=SquareWaveConfig)
    sine: SineConfig = field(default_factory=SineConfig)
    saw_tooth: SawToothConfig = field(default_factory=SawToothConfig)
    square_wave_uses_rod_speed: bool = False

    def __post_init__(self):
        if not self.rods:
            raise ConfigurationError("at least one rod must be configured")
        if not (self.dt > 0.0 and math.isfinite(self.dt)):
            raise ConfigurationError(f"dt must be positive, got {self.dt}")
        if not (self.fire_acceleration > 0.0 and math.isfinite(self.fire_acceleration)):
            raise ConfigurationError(f"fire acceleration must be positive, got {self.fire_acceleration}")
        if not (self.scram_duration_s > 0.0 and math.isfinite(self.scram_duration_s)):
            raise ConfigurationError(f"scram duration must be positive, got {self.scram_duration_s}")

    def rod(self, name_or_index) -> RodConfig:
        if isinstance(name_or_index, int):
            return self.rods[name_or_index]
        for rod in self.rods:
            if rod.name.lower() == str(name_or_index).lower():
                return rod
        raise KeyError(f"no rod named {name_or_index!r}")
