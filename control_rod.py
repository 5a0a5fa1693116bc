import logging
import math
from dataclasses import replace
from typing import Optional

import numpy as np

from config import Config, ConfigurationError, RodConfig, SimulationMode
from reactivity_curve import ReactivityCurve, build_curve
from reactivity_mapper import PositionReactivityMapper
from rod_state import SCRAM_IDLE, CommandKind, OperatingMode, RodState
from interfaces import WaveformLike
from waveforms import build_waveforms

logger = logging.getLogger(__name__)

# Modes in which the drive steers toward the commanded position
_DRIVEN_MODES = (OperatingMode.MANUAL, OperatingMode.AUTOMATIC, OperatingMode.PULSE)

# [-] relative to the step count
_FLOOR_TOL = 1e-9


def gate_actual_position(exact: float, actual: float, enabled: bool, firing: bool) -> float:
    """The rod follows its drive only while enabled and not mid-pulse."""
    if enabled and not firing:
        return exact
    return actual


class ControlRod:
    """
    One control rod: position state machine, scram and pulse kinematics,
    Simulation-mode waveforms and the rod's reactivity curve.

    The host calls tick(dt) once per simulation step and reads
    current_reactivity() for the kinetics model. Commands, mode changes and
    reconfiguration must be issued between ticks.
    """

    def __init__(self, rod_cfg: RodConfig, cfg: Optional[Config] = None):
        cfg = Config() if cfg is None else cfg
        self.cfg = cfg
        self.rod_cfg = rod_cfg
        self.name = rod_cfg.name
        self.default_speed = rod_cfg.speed
        self.fire_acceleration = float(cfg.fire_acceleration)
        self.square_wave_uses_rod_speed = bool(cfg.square_wave_uses_rod_speed)

        self.curve: ReactivityCurve = build_curve(rod_cfg)
        self.mapper = PositionReactivityMapper(self.curve)
        self.waveforms = build_waveforms(cfg.square_wave, cfg.sine, cfg.saw_tooth)
        self.state = RodState.init_from_config(rod_cfg, cfg.scram_duration_s)

    @classmethod
    def from_config(cls, cfg: Config, rod) -> "ControlRod":
        """Build the rod named (or indexed) `rod` in cfg.rods."""
        return cls(cfg.rod(rod), cfg)

    # ---------------- Read-only views ----------------
    @property
    def steps(self) -> int:
        return self.curve.steps

    @property
    def exact_position(self) -> float:
        return self.state.exact_position

    @property
    def actual_position(self) -> float:
        return self.state.actual_position

    @property
    def commanded_position(self) -> float:
        return self.state.commanded_position

    @property
    def command_kind(self) -> CommandKind:
        return self.state.command_kind

    @property
    def operating_mode(self) -> OperatingMode:
        return self.state.operating_mode

    @property
    def simulation_mode(self) -> SimulationMode:
        return self.state.simulation_mode

    @property
    def enabled(self) -> bool:
        return self.state.enabled

    @property
    def speed(self) -> float:
        return self.state.speed

    @property
    def firing(self) -> bool:
        return self.state.firing

    @property
    def scramming(self) -> bool:
        return self.state.scramming

    @property
    def scram_exempt(self) -> bool:
        return self.rod_cfg.is_scram_exempt

    @property
    def worth(self) -> float:
        return self.curve.worth

    @property
    def reactivity_table(self) -> np.ndarray:
        return self.curve.reactivity_table

    @property
    def slope_table(self) -> np.ndarray:
        return self.curve.slope_table

    @property
    def waveform(self) -> WaveformLike:
        return self.waveforms[self.state.simulation_mode]

    def snapshot(self) -> RodState:
        return self.state.snapshot()

    def max_slope_index(self) -> int:
        return self.curve.max_slope_index()

    # ---------------- Reactivity ----------------
    def reactivity_at(self, position: float) -> float:
        return self.mapper.reactivity_at(position)

    def position_at_reactivity(self, value: float) -> float:
        return self.mapper.position_at_reactivity(value)

    def current_reactivity(self) -> float:
        return self.mapper.reactivity_at(self.state.actual_position)

    # ---------------- Reconfiguration ----------------
    def _reconfigure(self, **changes) -> None:
        # RodConfig validates in __post_init__; nothing is committed unless both steps succeed
        new_cfg = replace(self.rod_cfg, **changes)
        new_curve = build_curve(new_cfg)
        self.rod_cfg = new_cfg
        self.curve = new_curve
        self.mapper = PositionReactivityMapper(new_curve)
        if self.scram_exempt and self.state.scramming:
            # exempt rods carry no scram timer; the FIXED 0 command still stands
            self.state.scram_elapsed = SCRAM_IDLE

    def set_worth(self, worth: float) -> None:
        self._reconfigure(worth_pcm=worth)

    def set_curve_parameter(self, index: int, value: float) -> None:
        if index not in (0, 1):
            raise ConfigurationError(f"{self.name}: curve parameter index must be 0 or 1, got {index!r}")
        params = list(self.rod_cfg.curve)
        params[index] = value
        self._reconfigure(curve=tuple(params))

    def set_family(self, family) -> None:
        self._reconfigure(family=family)

    def set_steps(self, steps: int) -> None:
        self._reconfigure(steps=steps)
        s = self.state
        s.steps = self.curve.steps
        top = float(s.steps)
        s.simulation_baseline = min(s.simulation_baseline, top)
        self.state = s.clip_invariants()

    def set_speed(self, value: float) -> None:
        value = float(value)
        if not math.isfinite(value):
            raise ConfigurationError(f"{self.name}: rod speed must be finite, got {value}")
        self.state.speed = value

    def set_enabled(self, status: bool) -> None:
        self.state.enabled = bool(status)

    def set_hold_reactivity(self, pcm: Optional[float]) -> None:
        self.state.hold_reactivity = None if pcm is None else float(pcm)

    # ---------------- Positioning ----------------
    def _clamp(self, position: float) -> float:
        return min(max(float(position), 0.0), float(self.curve.steps))

    def move_to_step(self, position: float, force: bool = False) -> None:
        s = self.state
        s.exact_position = self._clamp(position)
        if force:
            s.actual_position = s.exact_position
        else:
            s.actual_position = gate_actual_position(s.exact_position, s.actual_position, s.enabled, s.firing)

    # ---------------- Commands ----------------
    def clear_commands(self, only_if: Optional[CommandKind] = None) -> None:
        s = self.state
        if only_if is not None and CommandKind(only_if) is not s.command_kind:
            return
        s.commanded_position = s.exact_position
        s.command_kind = CommandKind.NONE

    def command(self, kind, target: Optional[float] = None) -> None:
        kind = CommandKind(kind)
        s = self.state
        if kind is CommandKind.NONE:
            self.clear_commands()
        elif kind is CommandKind.FIXED:
            s.commanded_position = s.exact_position if target is None else self._clamp(target)
            s.command_kind = CommandKind.FIXED
        else:
            s.command_kind = kind

    def command_move(self, target: float) -> None:
        self.command(CommandKind.FIXED, target)

    def command_to_top(self) -> None:
        self.command(CommandKind.TOP)

    def command_to_bottom(self) -> None:
        self.command(CommandKind.BOTTOM)

    def _resolve_command(self) -> float:
        s = self.state
        if s.command_kind is CommandKind.TOP:
            return float(self.curve.steps)
        if s.command_kind is CommandKind.BOTTOM:
            return 0.0
        return s.commanded_position

    # ---------------- Modes ----------------
    def set_operating_mode(self, mode) -> None:
        mode = OperatingMode(mode)
        s = self.state
        previous = s.operating_mode
        if mode is previous:
            return

        if previous is OperatingMode.SIMULATION:
            self.move_to_step(s.simulation_baseline)
            self.waveform.reset()
        if previous is OperatingMode.PULSE and s.firing:
            s.firing = False
            self.move_to_step(s.exact_position)

        self.clear_commands()
        if mode is OperatingMode.SIMULATION:
            s.simulation_baseline = s.exact_position
        s.operating_mode = mode

        if mode is OperatingMode.PULSE:
            self.set_enabled(False)
        elif previous is OperatingMode.PULSE:
            self.set_speed(self.default_speed)
        logger.debug("%s: mode %s -> %s", self.name, previous.value, mode.value)

    def set_simulation_mode(self, mode) -> None:
        mode = SimulationMode(mode)
        s = self.state
        if mode is s.simulation_mode:
            return
        if s.operating_mode is OperatingMode.SIMULATION:
            self.move_to_step(s.simulation_baseline)
        s.simulation_mode = mode
        self.waveform.reset()

    # ---------------- Scram / pulse ----------------
    def scram(self) -> None:
        s = self.state
        if s.scramming:
            return
        s.firing = False
        self.clear_commands()
        s.commanded_position = 0.0
        s.command_kind = CommandKind.FIXED
        if self.scram_exempt:
            logger.debug("%s: scram-exempt, driving to bottom at normal speed", self.name)
            return
        s.scram_elapsed = 0.0
        logger.info("%s: scram from step %.2f", self.name, s.actual_position)

    def fire(self, start: bool) -> None:
        s = self.state
        if not start:
            s.firing = False
            return
        if s.operating_mode is OperatingMode.PULSE or s.commanded_position == 0.0:
            self.set_enabled(True)
        if s.operating_mode is OperatingMode.PULSE and not s.scramming:
            s.firing = True
            s.pulse_elapsed = 0.0
            logger.debug("%s: firing toward step %.2f", self.name, s.exact_position)

    # ---------------- Time step ----------------
    def tick(self, dt: float) -> None:
        dt = float(dt)
        if not dt > 0.0:
            # zero, negative and NaN steps leave the rod untouched
            return
        s = self.state
        if s.scramming and not self.scram_exempt:
            self._tick_scram(dt)
            return

        if s.operating_mode is OperatingMode.SIMULATION:
            self._tick_simulation(dt)
        elif s.operating_mode is OperatingMode.AUTOMATIC and s.hold_reactivity is not None:
            s.commanded_position = self.position_at_reactivity(s.hold_reactivity)
            s.command_kind = CommandKind.FIXED

        target = self._resolve_command()
        if s.operating_mode in _DRIVEN_MODES and s.exact_position != target:
            if s.speed <= 0.0 and s.enabled:
                self.move_to_step(target)
            elif not s.firing:
                self._drive_toward(target, max(s.speed, 0.0) * dt)

        if s.firing:
            self._tick_pulse(dt)

    def _drive_toward(self, target: float, max_move: float) -> None:
        exact = self.state.exact_position
        if target > exact:
            self.move_to_step(min(exact + max_move, target))
        else:
            self.move_to_step(max(exact - max_move, target))

    def _tick_scram(self, dt: float) -> None:
        s = self.state
        s.scram_elapsed = min(s.scram_elapsed + dt, s.scram_duration)
        step = s.speed * dt
        # rounding residue within tolerance of the floor lands on it
        if s.speed > 0.0 and s.exact_position > step + _FLOOR_TOL * self.curve.steps:
            position = s.exact_position - step
        else:
            position = 0.0
        # the rod drops whether or not its drive is enabled
        self.move_to_step(position, force=True)
        if s.actual_position == 0.0:
            s.enabled = False
            s.scram_elapsed = SCRAM_IDLE
            logger.debug("%s: scram complete, rod down and disabled", self.name)

    def _tick_simulation(self, dt: float) -> None:
        s = self.state
        wave = self.waveform
        if wave.paused:
            return
        target = s.simulation_baseline + wave.current_offset()
        if (
            self.square_wave_uses_rod_speed
            and s.simulation_mode is SimulationMode.SQUARE
            and s.speed > 0.0
        ):
            self._drive_toward(self._clamp(target), s.speed * dt)
        else:
            self.move_to_step(target)
        wave.advance(dt)

    def _tick_pulse(self, dt: float) -> None:
        s = self.state
        s.pulse_elapsed += dt
        ballistic = 0.5 * self.fire_acceleration * s.pulse_elapsed ** 2 * self.curve.steps
        if ballistic >= s.exact_position:
            s.actual_position = s.exact_position
            s.firing = False
            self.clear_commands()
            logger.debug("%s: pulse complete at step %.2f after %.4f s", self.name, s.exact_position, s.pulse_elapsed)
        else:
            s.actual_position = ballistic
