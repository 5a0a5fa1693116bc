"""
Periodic offset generators for Simulation mode.

Each waveform produces an offset in rod steps as a function of the phase
inside its period. The controller adds the offset to the position captured
when Simulation mode was entered.
"""

import math
from typing import Sequence

from config import (
    ConfigurationError,
    SAW_TOOTH_BREAKS_DEFAULT,
    SQUARE_WAVE_BREAKS_DEFAULT,
    SawToothConfig,
    SimulationMode,
    SineConfig,
    SineShape,
    SquareWaveConfig,
    check_break_points,
)


class PeriodicWaveform:
    """Base class: owns period, amplitude, elapsed time and the paused flag."""

    def __init__(self, period: float, amplitude: float):
        period = float(period)
        if not (math.isfinite(period) and period > 0.0):
            raise ConfigurationError(f"waveform period must be positive, got {period}")
        amplitude = float(amplitude)
        if not math.isfinite(amplitude):
            raise ConfigurationError(f"waveform amplitude must be finite, got {amplitude}")
        self.period = period
        self.amplitude = amplitude
        self.elapsed = 0.0
        self.paused = False

    def phase(self) -> float:
        return (self.elapsed % self.period) / self.period

    def current_offset(self) -> float:
        return float(self._shape(self.phase()))

    def advance(self, dt: float) -> None:
        if self.paused:
            return
        self.elapsed = (self.elapsed + float(dt)) % self.period

    def reset(self) -> None:
        self.elapsed = 0.0

    def _shape(self, phase: float) -> float:
        raise NotImplementedError


class SquareWave(PeriodicWaveform):
    """
    High (amplitude) while start_up <= phase < end_up, low (0) while
    start_down <= phase < end_down. Gaps between the two intervals are
    crossed linearly; with the default break points there are none.
    """

    def __init__(self, period: float, amplitude: float, break_points: Sequence[float] = SQUARE_WAVE_BREAKS_DEFAULT):
        super().__init__(period, amplitude)
        self.break_points = check_break_points(break_points, 4, "square wave")

    def _shape(self, phase: float) -> float:
        start_up, end_up, start_down, end_down = self.break_points
        A = self.amplitude
        if start_up <= phase < end_up:
            return A
        if start_down <= phase < end_down:
            return 0.0
        if end_up <= phase < start_down:
            return A * (start_down - phase) / (start_down - end_up)
        # rising edge, possibly wrapping through the period boundary
        gap = (start_up - end_down) % 1.0
        if gap == 0.0:
            return 0.0
        return A * ((phase - end_down) % 1.0) / gap


class SineWave(PeriodicWaveform):
    def __init__(self, period: float, amplitude: float, shape: SineShape = SineShape.NORMAL):
        super().__init__(period, amplitude)
        self.shape = SineShape(shape)

    def _shape(self, phase: float) -> float:
        s = math.sin(2.0 * math.pi * phase)
        if self.shape is SineShape.QUADRATIC:
            # keeps the sign, flattens the zero crossings
            s = s * abs(s)
        return self.amplitude * s


def _triangle(phase: float, start: float, peak: float, end: float) -> float:
    """Unit triangle: 0 at start, 1 at peak, 0 at end; 0 outside [start, end)."""
    if not (start <= phase < end):
        return 0.0
    if phase < peak:
        return (phase - start) / (peak - start)
    if end == peak:
        return 1.0
    return (end - phase) / (end - peak)


class SawToothWave(PeriodicWaveform):
    """Ramps 0 -> +amplitude -> 0 over the up points, then 0 -> -amplitude -> 0 over the down points."""

    def __init__(self, period: float, amplitude: float, break_points: Sequence[float] = SAW_TOOTH_BREAKS_DEFAULT):
        super().__init__(period, amplitude)
        self.break_points = check_break_points(break_points, 6, "saw tooth")

    def _shape(self, phase: float) -> float:
        up_start, up_peak, up_end, down_start, down_peak, down_end = self.break_points
        up = _triangle(phase, up_start, up_peak, up_end)
        down = _triangle(phase, down_start, down_peak, down_end)
        return self.amplitude * (up - down)


def build_waveforms(square: SquareWaveConfig, sine: SineConfig, saw_tooth: SawToothConfig) -> dict:
    """One waveform instance per simulation mode, owned by a single rod."""
    return {
        SimulationMode.SQUARE: SquareWave(square.period_s, square.amplitude, square.break_points),
        SimulationMode.SINE: SineWave(sine.period_s, sine.amplitude, sine.shape),
        SimulationMode.SAWTOOTH: SawToothWave(saw_tooth.period_s, saw_tooth.amplitude, saw_tooth.break_points),
    }
