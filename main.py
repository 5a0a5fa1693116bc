import argparse
from dataclasses import replace
import logging
import os
import sys
from typing import Callable, Dict, Optional

import matplotlib.pyplot as plt
import numpy as np

from config import Config, ConfigurationError
from control_rod import ControlRod
from interfaces import ReactivityConsumer
from rod_state import OperatingMode
from settings_io import load_settings

SCENARIOS = ("manual", "scram", "pulse", "simulation")


def make_scenario(name: str, rod: ControlRod, t_final: float) -> Callable[[float, ControlRod], None]:
    """Build the operator-action profile for a named scenario.

    Parameters
    ----------
    name : str
        One of SCENARIOS.
    rod : ControlRod
        Rod the scenario drives; used to size targets to its step count.
    t_final : float
        Scenario length (s); event times are placed relative to it.

    The returned callable is invoked with (t, rod) before every tick and
    applies each event once when its time has come.
    """
    steps = rod.steps
    t_event = 0.2 * t_final

    if name == "manual":
        events = [
            (0.0, lambda r: r.command_to_top()),
            (0.5 * t_final, lambda r: r.command_move(0.5 * steps)),
        ]
    elif name == "scram":
        events = [
            (0.0, lambda r: r.move_to_step(steps, force=True)),
            (0.0, lambda r: r.clear_commands()),
            (t_event, lambda r: r.scram()),
        ]
    elif name == "pulse":
        events = [
            (0.0, lambda r: r.set_operating_mode(OperatingMode.PULSE)),
            (0.0, lambda r: r.command_move(0.1 * steps)),
            (t_event, lambda r: r.fire(True)),
        ]
    elif name == "simulation":
        events = [
            (0.0, lambda r: r.move_to_step(0.5 * steps, force=True)),
            (0.0, lambda r: r.set_operating_mode(OperatingMode.SIMULATION)),
            (0.8 * t_final, lambda r: r.set_operating_mode(OperatingMode.MANUAL)),
        ]
    else:
        raise ValueError(f"unknown scenario {name!r}, expected one of {SCENARIOS}")

    pending = list(events)

    def apply(t: float, r: ControlRod) -> None:
        while pending and pending[0][0] <= t + 1e-12:
            _, action = pending.pop(0)
            action(r)

    return apply


def run(
    rod: ControlRod,
    scenario: str = "scram",
    cfg: Optional[Config] = None,
    consumer: Optional[ReactivityConsumer] = None,
    plot: bool = True,
    csv_out: bool = False,
    csv_name: str = "rod_log.csv",
) -> Dict[str, np.ndarray]:
    """
    Time-marching driver: apply scenario events, tick the rod, record positions
    and reactivity. Returns the recorded series keyed by name.
    """
    cfg = rod.cfg if cfg is None else cfg
    dt = cfg.dt
    events = make_scenario(scenario, rod, cfg.t_final)

    N = int(round(cfg.t_final / dt)) + 1
    t = np.zeros(N)
    exact = np.zeros(N)
    actual = np.zeros(N)
    commanded = np.zeros(N)
    rho = np.zeros(N)
    enabled = np.zeros(N)

    t_s = 0.0
    for k in range(N):
        events(t_s, rod)

        # Log current state
        t[k] = t_s
        exact[k] = rod.exact_position
        actual[k] = rod.actual_position
        commanded[k] = rod.commanded_position
        rho[k] = rod.current_reactivity()
        enabled[k] = float(rod.enabled)

        if consumer is not None:
            consumer.add_rod_reactivity(rod.name, rho[k], dt)

        rod.tick(dt)
        t_s += dt

    print(
        f"[{scenario}] {rod.name}: {N} steps of {dt:g} s, "
        f"final exact={exact[-1]:.2f} actual={actual[-1]:.2f} steps, "
        f"rho={rho[-1]:.3f} pcm"
    )

    result = {
        "t": t,
        "exact": exact,
        "actual": actual,
        "commanded": commanded,
        "rho_pcm": rho,
        "enabled": enabled,
    }

    if plot:
        plot_run(result, rod, title=f"{rod.name}: {scenario}")

    if csv_out:
        data = np.column_stack([t, exact, actual, commanded, rho, enabled])
        header = "t,exact,actual,commanded,rho_pcm,enabled"
        np.savetxt(csv_name, data, delimiter=",", header=header, comments="")
        print(f"[csv] wrote {csv_name}")

    return result


def plot_run(result: Dict[str, np.ndarray], rod: ControlRod, title: str = "", show: bool = True):
    fig, axes = plt.subplots(2, 2, figsize=(12, 8))
    t = result["t"]

    # 1. Positions vs time
    ax = axes[0, 0]
    ax.plot(t, result["exact"], label="exact [steps]")
    ax.plot(t, result["actual"], label="actual [steps]")
    ax.plot(t, result["commanded"], "--", label="commanded [steps]")
    ax.set_title("Rod Position")
    ax.set_xlabel("Time [s]")
    ax.set_ylabel("Position [steps]")
    ax.legend()
    ax.grid(True)

    # 2. Reactivity vs time
    ax = axes[0, 1]
    ax.plot(t, result["rho_pcm"], label="rod reactivity [pcm]")
    ax.set_title("Inserted Reactivity")
    ax.set_xlabel("Time [s]")
    ax.set_ylabel("Reactivity [pcm]")
    ax.legend()
    ax.grid(True)

    # 3. Integral worth curve
    ax = axes[1, 0]
    x = rod.curve.positions
    ax.plot(x, rod.reactivity_table * rod.worth, label="integral worth [pcm]")
    ax.set_title(f"Integral Worth ({rod.curve.family.value})")
    ax.set_xlabel("Position [steps]")
    ax.set_ylabel("Reactivity [pcm]")
    ax.legend()
    ax.grid(True)

    # 4. Differential worth, peak marked
    ax = axes[1, 1]
    i_max = rod.max_slope_index()
    ax.plot(x, rod.slope_table * rod.worth, label="differential worth [pcm/stroke]")
    ax.axvline(i_max, color="k", linestyle=":", label=f"max at step {i_max}")
    ax.set_title("Differential Worth")
    ax.set_xlabel("Position [steps]")
    ax.set_ylabel("d(rho)/d(x)")
    ax.legend()
    ax.grid(True)

    if title:
        fig.suptitle(title)
    plt.tight_layout()
    if show:
        try:
            plt.show()
        except Exception as e:
            # Non-interactive backends cannot show; keep the figure on disk instead
            out = os.path.abspath("rod_plot.png")
            fig.savefig(out, dpi=150)
            print(f"[plot] show() failed ({e}). Saved figure to {out}")
    return fig


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Single control-rod scenario runner with optional plots and CSV.")
    parser.add_argument("--scenario", choices=SCENARIOS, default="scram", help="Operator action profile")
    parser.add_argument("--rod", default="0", help="Rod name or index in the settings")
    parser.add_argument("--settings", type=str, default=None, help="JSON settings file (defaults if omitted)")
    parser.add_argument("--dt", type=float, default=None, help="Tick length [s]")
    parser.add_argument("--t-final", type=float, default=None, help="Scenario length [s]")
    parser.add_argument("--csv", type=str, default=None, help="Optional CSV output path")
    parser.add_argument("--no-plots", action="store_true", help="Disable matplotlib plots")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        cfg = load_settings(args.settings) if args.settings else Config()
        overrides = {k: v for k, v in (('dt', args.dt), ('t_final', args.t_final)) if v is not None}
        cfg = replace(cfg, **overrides)
        rod_key = int(args.rod) if args.rod.isdigit() else args.rod
        rod = ControlRod.from_config(cfg, rod_key)
    except (ConfigurationError, KeyError, IndexError) as e:
        print(f"configuration error: {e}", file=sys.stderr)
        return 2

    run(
        rod,
        scenario=args.scenario,
        cfg=cfg,
        plot=not args.no_plots,
        csv_out=args.csv is not None,
        csv_name=args.csv or "rod_log.csv",
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
