"""
Launch styles: gesture vector → initial ball velocity.

Screen-space input arrives as either a release velocity (fling) or the drag
displacement from gesture start to release (slingshot).  Drag styles negate
the displacement, so pulling down-right launches up-left.
"""

import enum
import math
import numpy as np

# Fling: release velocity (px/ms) → px/frame
FLING_SCALE: float = 30.0
# Slingshot: drag displacement (px) → px/frame
DRAG_SCALE: float = 0.2
# 3D slingshot: drag displacement (px) → m/s, capped drag length
DRAG_SPEED_3D: float = 0.03
DRAG_LIMIT_3D: float = 300.0
LIFT_RATIO_3D: float = 1.0   # upward component per unit of horizontal pull


class LaunchStyle(enum.Enum):
    FLING = "fling"
    DRAG = "drag"
    DRAG_3D = "drag_3d"


def fling_velocity(vx: float, vy: float) -> np.ndarray:
    """Release velocity carries straight through, scaled."""
    return np.array([vx * FLING_SCALE, vy * FLING_SCALE], dtype=float)


def drag_velocity(dx: float, dy: float) -> np.ndarray:
    return np.array([-dx * DRAG_SCALE, -dy * DRAG_SCALE], dtype=float)


def drag_velocity_3d(dx: float, dy: float) -> np.ndarray:
    """
    Slingshot into the room.

    Screen x maps to room x, screen y (pulling toward the player) maps to -z.
    The launch direction tilts upward by LIFT_RATIO_3D and the speed grows
    with the drag length, so the vertical component is proportional to it.
    """
    pull = math.hypot(dx, dy)
    if pull == 0.0:
        return np.zeros(3)
    direction = np.array([-dx, pull * LIFT_RATIO_3D, -dy], dtype=float)
    direction /= np.linalg.norm(direction)
    speed = min(pull, DRAG_LIMIT_3D) * DRAG_SPEED_3D
    return direction * speed


def launch_velocity(style: LaunchStyle, dx: float, dy: float) -> np.ndarray:
    """Dispatch a gesture vector to the variant's launch style."""
    if style is LaunchStyle.FLING:
        return fling_velocity(dx, dy)
    if style is LaunchStyle.DRAG:
        return drag_velocity(dx, dy)
    if style is LaunchStyle.DRAG_3D:
        return drag_velocity_3d(dx, dy)
    raise ValueError(f"launch_velocity: unknown style {style!r}")
