"""
PC opponent: closed-form projectile shot at the goal.

The opponent does not search or simulate: it picks the unique velocity that
carries the ball from start to target in a fixed flight time under constant
gravity.  Obstacles are ignored, so a 2D shot can still be deflected.
"""

import numpy as np


def opponent_velocity(start, target, gravity, flight_time: float) -> np.ndarray:
    """
    Launch velocity landing exactly on `target` after `flight_time`.

    Args:
        start:       Launch point (2 or 3 components).
        target:      Point to hit, same dimensionality.
        gravity:     Gravity vector in world units (e.g. [0, 0.6] in 2D
                     screen space, [0, -9.8, 0] in the 3D room).
        flight_time: Nominal time of flight in world time units.

    Returns:
        v = (target - start) / t - gravity * t / 2
    """
    t = float(flight_time)
    if not t > 0.0:
        raise ValueError(f"opponent_velocity: flight_time must be > 0, got {flight_time}")
    start = np.asarray(start, dtype=float)
    target = np.asarray(target, dtype=float)
    gravity = np.asarray(gravity, dtype=float)
    return (target - start) / t - gravity * t / 2.0


def ballistic_position(start, velocity, gravity, t: float) -> np.ndarray:
    """Exact drag-free position after `t` (no collisions)."""
    start = np.asarray(start, dtype=float)
    velocity = np.asarray(velocity, dtype=float)
    gravity = np.asarray(gravity, dtype=float)
    return start + velocity * t + 0.5 * gravity * t * t
