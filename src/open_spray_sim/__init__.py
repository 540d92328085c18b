"""
Open Spray Sim.

Copyright (c) 2026 Shuoqi Chen
SPDX-License-Identifier: MIT OR Apache-2.0
"""
from .brush.spray_engine import SprayEngine
from .brush.configs import SprayParams

__version__ = "1.0.0"
__author__ = "Shuoqi Chen"
__license__ = "MIT"
__all__ = ["SprayEngine", "SprayParams", "launch_viewer"]


def launch_viewer():
    """Opens the interactive taichi window (needs the `viewer` extra)."""
    from .viewer import launch_viewer as _launch

    _launch()
