from dataclasses import dataclass, replace
from typing import Optional
from enum import Enum

from config import RodConfig, SCRAM_DURATION_S, SimulationMode


class OperatingMode(str, Enum):
    MANUAL = "manual"
    SIMULATION = "simulation"
    AUTOMATIC = "automatic"
    PULSE = "pulse"


class CommandKind(str, Enum):
    NONE = "none"
    TOP = "top"
    BOTTOM = "bottom"
    FIXED = "fixed"


SCRAM_IDLE = -1.0


@dataclass
class RodState:
    steps: int = 1

    # Position [steps]
    exact_position: float = 0.0        # where the drive is
    actual_position: float = 0.0       # where the rod is (lags while disabled or firing)
    commanded_position: float = 0.0
    command_kind: CommandKind = CommandKind.NONE

    operating_mode: OperatingMode = OperatingMode.MANUAL
    simulation_mode: SimulationMode = SimulationMode.SQUARE
    enabled: bool = True
    speed: float = 0.0                 # [steps/s], <= 0 moves instantly

    # Scram: active while scram_elapsed >= 0
    scram_elapsed: float = SCRAM_IDLE  # [s]
    scram_duration: float = SCRAM_DURATION_S  # [s]

    # Pulse ejection
    firing: bool = False
    pulse_elapsed: float = 0.0         # [s]

    simulation_baseline: float = 0.0   # [steps] exact position when Simulation was entered
    hold_reactivity: Optional[float] = None  # [pcm] Automatic mode set-point, None = follow commands

    @property
    def scramming(self) -> bool:
        return self.scram_elapsed >= 0.0

    @property
    def step_position(self) -> int:
        return int(round(self.exact_position))

    def snapshot(self) -> "RodState":
        return replace(self)

    def clip_invariants(self) -> "RodState":
        top = float(self.steps)
        return replace(
            self,
            exact_position=float(min(top, max(0.0, self.exact_position))),
            actual_position=float(min(top, max(0.0, self.actual_position))),
            commanded_position=float(min(top, max(0.0, self.commanded_position))),
        )

    @staticmethod
    def init_from_config(rod_cfg: RodConfig, scram_duration: float = SCRAM_DURATION_S) -> "RodState":
        return RodState(steps=rod_cfg.steps, speed=rod_cfg.speed, scram_duration=float(scram_duration))
