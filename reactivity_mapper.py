import numpy as np

from reactivity_curve import ReactivityCurve


class PositionReactivityMapper:
    """Position (steps) <-> inserted reactivity (pcm) lookups over one ReactivityCurve."""

    def __init__(self, curve: ReactivityCurve):
        self.curve = curve

    def reactivity_at(self, position: float) -> float:
        c = self.curve
        p = min(max(float(position), 0.0), float(c.steps))
        # np.interp returns the sample itself on integer positions
        return float(np.interp(p, c.positions, c.reactivity_table)) * c.worth

    def position_at_reactivity(self, value: float) -> float:
        c = self.curve
        lo, hi = min(0.0, c.worth), max(0.0, c.worth)
        rho = min(max(float(value), lo), hi) / c.worth
        if rho >= 1.0:
            return float(c.steps)
        if rho <= 0.0:
            return 0.0

        table = c.reactivity_table
        i = int(np.searchsorted(table, rho, side="left"))  # first sample >= rho
        if i > c.steps:
            return float(c.steps)
        if table[i] == rho:
            return float(i)
        # table[0] == 0 < rho, so i >= 1 and table[i - 1] < rho < table[i]
        return float((i - 1) + (rho - table[i - 1]) / (table[i] - table[i - 1]))
