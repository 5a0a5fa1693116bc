import matplotlib

matplotlib.use("Agg")

import pytest

from config import Config, CurveFamily, RodConfig
from control_rod import ControlRod


@pytest.fixture
def small_cfg():
    """Three default rods shrunk to 100 steps so tick loops stay short."""
    return Config(
        rods=[
            RodConfig(name="North CR", family=CurveFamily.SAFETY, steps=100, speed=50.0),
            RodConfig(name="South CR", family=CurveFamily.REGULATING, steps=100, speed=50.0),
            RodConfig(name="Water", family=CurveFamily.SHIM, steps=100, worth_pcm=8785.47016144056, speed=22.0),
        ],
        dt=0.01,
        t_final=2.0,
    )


@pytest.fixture
def rod(small_cfg):
    return ControlRod.from_config(small_cfg, "North CR")


@pytest.fixture
def shim_rod(small_cfg):
    return ControlRod.from_config(small_cfg, "Water")
