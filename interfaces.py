from typing import Protocol


class WaveformLike(Protocol):
    paused: bool

    def current_offset(self) -> float:
        """
        Returns:
            offset from the Simulation baseline [steps] at the current elapsed time
        """
        ...

    def advance(self, dt: float) -> None:
        ...

    def reset(self) -> None:
        ...


class ReactivityConsumer(Protocol):
    def add_rod_reactivity(self, rod_name: str, rho_pcm: float, dt: float) -> None:
        """
        Args:
            rod_name: rod the reactivity belongs to
            rho_pcm: reactivity inserted at the rod's actual position [pcm]
            dt: step size [s]
        """
        ...
