"""
Cup Shot Physics Engine
Ball kinds, arenas (collision strategies) and the per-frame integrator.

Two arenas share one integrator:
  FlatArena: 2D screen space (+y down, floor at the bottom edge), rectangular
             obstacles, square goal.  World time unit = one display frame.
  RoomArena: 3D room (+y up, floor at y = 0), ±X/±Z walls, vertical pillars,
             cylindrical cup.  World time unit = seconds.
"""

import math
import numpy as np
from dataclasses import dataclass
from typing import List, Optional

# ──────────────────────────────────────────────
# Constants, 2D (screen pixels, time in frames)
# ──────────────────────────────────────────────
SCREEN_WIDTH: float = 390.0
SCREEN_HEIGHT: float = 844.0
BALL_RADIUS_2D: float = 20.0
FRAME_RATE: float = 60.0  # frames per second; converts dt seconds → frames

# ──────────────────────────────────────────────
# Constants, 3D (metres, seconds)
# ──────────────────────────────────────────────
ROOM_HALF_WIDTH: float = 2.0   # x in [-w, w]
ROOM_HALF_DEPTH: float = 3.0   # z in [-d, d]
BALL_RADIUS_3D: float = 0.1

# ── Runtime-editable behavior constants ───────────────────────────────────────
# These are read by name every call, so server.py can mutate them live via:
#   import physics as _phys;  _phys.GRAVITY_2D = 0.8
GRAVITY_2D: float = 0.6        # px / frame^2, pulls toward +y
GRAVITY_3D: float = 9.8        # m / s^2, pulls toward -y
SETTLE_SPEED_2D: float = 1.0   # px / frame
SETTLE_SPEED_3D: float = 0.1   # m / s

# Capture and obstacle checks tolerate this much float noise
EPSILON: float = 1e-9


def clean_dt(dt) -> float:
    """Frame-clock guard: negative, NaN or infinite dt counts as no time."""
    try:
        dt = float(dt)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(dt) or dt < 0.0:
        return 0.0
    return dt


# ──────────────────────────────────────────────
# Ball kinds
# ──────────────────────────────────────────────
@dataclass(frozen=True)
class BallKind:
    name: str
    color: str
    restitution: float


BALL_KINDS = {
    "bouncy": BallKind("bouncy", "#0a7ea4", 0.9),
    "heavy":  BallKind("heavy",  "#444444", 0.2),
}
DEFAULT_KIND = "bouncy"


@dataclass
class Ball:
    """Ball kinematic state. `launched` is False while resting, True in flight."""
    position: np.ndarray
    velocity: Optional[np.ndarray] = None
    launched: bool = False
    radius: float = BALL_RADIUS_2D

    def __post_init__(self):
        self.position = np.array(self.position, dtype=float)
        if self.velocity is None:
            self.velocity = np.zeros_like(self.position)
        else:
            self.velocity = np.array(self.velocity, dtype=float)

    @property
    def dim(self) -> int:
        return int(self.position.shape[0])

    @property
    def speed(self) -> float:
        return float(np.linalg.norm(self.velocity))

    def place(self, position) -> None:
        """Put the ball at rest at `position`."""
        self.position = np.array(position, dtype=float)
        self.velocity = np.zeros_like(self.position)
        self.launched = False

    def launch(self, velocity) -> None:
        self.velocity = np.array(velocity, dtype=float)
        self.launched = True

    def copy(self) -> "Ball":
        return Ball(self.position.copy(), self.velocity.copy(),
                    self.launched, self.radius)


# ──────────────────────────────────────────────
# Static geometry
# ──────────────────────────────────────────────
@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle obstacle, top-left corner + size (2D)."""
    x: float
    y: float
    width: float
    height: float

    @property
    def center(self) -> np.ndarray:
        return np.array([self.x + self.width / 2, self.y + self.height / 2])

    def overlaps(self, p: np.ndarray, r: float) -> bool:
        return (p[0] + r > self.x and p[0] - r < self.x + self.width and
                p[1] + r > self.y and p[1] - r < self.y + self.height)

    def penetration(self, p: np.ndarray, r: float):
        """Shallowest penetration depth along x and along y."""
        ox = min(p[0] + r - self.x, self.x + self.width - (p[0] - r))
        oy = min(p[1] + r - self.y, self.y + self.height - (p[1] - r))
        return ox, oy


@dataclass(frozen=True)
class Pillar:
    """Vertical cylinder standing on the floor (3D)."""
    x: float
    z: float
    radius: float
    height: float


@dataclass(frozen=True)
class SquareGoal:
    """Square goal region, top-left corner + side length (2D)."""
    x: float
    y: float
    size: float

    @property
    def center(self) -> np.ndarray:
        return np.array([self.x + self.size / 2, self.y + self.size / 2])

    def contains(self, p: np.ndarray) -> bool:
        return (self.x < p[0] < self.x + self.size and
                self.y < p[1] < self.y + self.size)


@dataclass(frozen=True)
class Cup:
    """Open cylinder on the floor (3D).  Captures below the rim."""
    x: float
    z: float
    radius: float
    rim_height: float

    @property
    def center(self) -> np.ndarray:
        return np.array([self.x, self.rim_height / 2, self.z])

    def contains(self, p: np.ndarray) -> bool:
        if p[1] >= self.rim_height:
            return False
        return math.hypot(p[0] - self.x, p[2] - self.z) < self.radius


def _bounce(v: np.ndarray, axis: int, restitution: float) -> None:
    v[axis] = -v[axis] * restitution


# ──────────────────────────────────────────────
# Arenas (collision strategies)
# ──────────────────────────────────────────────
class Arena:
    """Collision strategy interface shared by the 2D and 3D worlds."""

    name = "arena"
    dim = 0
    time_scale = 1.0
    ball_radius = 0.0
    floor_axis = 1

    def gravity(self) -> np.ndarray:
        raise NotImplementedError

    def settle_speed(self) -> float:
        raise NotImplementedError

    def resolve(self, ball: Ball, obstacles, restitution: float,
                events: list) -> None:
        raise NotImplementedError

    def captures(self, ball: Ball, goal) -> bool:
        return ball.launched and goal.contains(ball.position)

    def capture_point(self, goal) -> np.ndarray:
        return goal.center

    def describe(self) -> dict:
        raise NotImplementedError

    def _settle_if_slow(self, ball: Ball, events: list) -> bool:
        """Floor rest condition.  Returns True when the ball settled."""
        v_floor = float(ball.velocity[self.floor_axis])
        if abs(v_floor) < self.settle_speed():
            ball.velocity[:] = 0.0
            ball.launched = False
            events.append({"type": "settle"})
            return True
        return False


class FlatArena(Arena):
    """2D screen-space court: four walls, bottom wall is the floor."""

    name = "flat"
    dim = 2
    floor_axis = 1

    def __init__(self, width: float = SCREEN_WIDTH, height: float = SCREEN_HEIGHT,
                 ball_radius: float = BALL_RADIUS_2D):
        self.width = width
        self.height = height
        self.ball_radius = ball_radius
        self.time_scale = FRAME_RATE

    def gravity(self) -> np.ndarray:
        return np.array([0.0, GRAVITY_2D])

    def settle_speed(self) -> float:
        return SETTLE_SPEED_2D

    def resolve(self, ball: Ball, obstacles, restitution: float,
                events: list) -> None:
        p, v, r = ball.position, ball.velocity, ball.radius
        e = restitution

        if p[0] < r:
            p[0] = r
            _bounce(v, 0, e)
            events.append({"type": "wall", "side": "left"})
        if p[0] > self.width - r:
            p[0] = self.width - r
            _bounce(v, 0, e)
            events.append({"type": "wall", "side": "right"})
        if p[1] < r:
            p[1] = r
            _bounce(v, 1, e)
            events.append({"type": "wall", "side": "top"})
        if p[1] > self.height - r:
            impact_speed = abs(float(v[1]))
            p[1] = self.height - r
            _bounce(v, 1, e)
            events.append({"type": "floor", "speed": impact_speed})
            if self._settle_if_slow(ball, events):
                return

        # Settling is checked at the floor only; a ball stopped on top of an
        # obstacle stays launched until the user resets it.
        for o in obstacles:
            self._resolve_rect(ball, o, e, events)

    @staticmethod
    def _resolve_rect(ball: Ball, o: Rect, e: float, events: list) -> None:
        """Shallow-axis resolution against one rectangle."""
        p, v, r = ball.position, ball.velocity, ball.radius
        if not o.overlaps(p, r):
            return
        ox, oy = o.penetration(p, r)
        axis, depth = (0, ox) if ox < oy else (1, oy)

        _bounce(v, axis, e)
        # Push away from the obstacle centre; on the centre line fall back to
        # the rebound direction.
        rel = p[axis] - o.center[axis]
        if abs(rel) > EPSILON:
            direction = 1.0 if rel > 0 else -1.0
        else:
            direction = 1.0 if v[axis] > 0 else -1.0
        p[axis] += direction * depth
        events.append({"type": "obstacle", "axis": "xy"[axis], "depth": float(depth)})

    def describe(self) -> dict:
        return {
            "arena": self.name, "dim": self.dim,
            "width": self.width, "height": self.height,
            "ball_radius": self.ball_radius,
        }


class RoomArena(Arena):
    """3D room: ±X and ±Z walls plus the floor at y = 0, open ceiling."""

    name = "room"
    dim = 3
    floor_axis = 1

    def __init__(self, half_width: float = ROOM_HALF_WIDTH,
                 half_depth: float = ROOM_HALF_DEPTH,
                 ball_radius: float = BALL_RADIUS_3D):
        self.half_width = half_width
        self.half_depth = half_depth
        self.ball_radius = ball_radius
        self.time_scale = 1.0

    def gravity(self) -> np.ndarray:
        return np.array([0.0, -GRAVITY_3D, 0.0])

    def settle_speed(self) -> float:
        return SETTLE_SPEED_3D

    def resolve(self, ball: Ball, obstacles, restitution: float,
                events: list) -> None:
        p, v, r = ball.position, ball.velocity, ball.radius
        e = restitution

        for axis, limit, label in ((0, self.half_width, "x"), (2, self.half_depth, "z")):
            if p[axis] > limit - r:
                p[axis] = limit - r
                _bounce(v, axis, e)
                events.append({"type": "wall", "side": "+" + label})
            elif p[axis] < -limit + r:
                p[axis] = -limit + r
                _bounce(v, axis, e)
                events.append({"type": "wall", "side": "-" + label})

        for pillar in obstacles:
            self._resolve_pillar(ball, pillar, e, events)

        if p[1] < r:
            impact_speed = abs(float(v[1]))
            p[1] = r
            _bounce(v, 1, e)
            events.append({"type": "floor", "speed": impact_speed})
            self._settle_if_slow(ball, events)

    @staticmethod
    def _resolve_pillar(ball: Ball, pillar: Pillar, e: float, events: list) -> None:
        p, v, r = ball.position, ball.velocity, ball.radius
        if p[1] - r >= pillar.height:
            return
        dx, dz = p[0] - pillar.x, p[2] - pillar.z
        dist = math.hypot(dx, dz)
        reach = pillar.radius + r
        if dist >= reach:
            return
        if dist < EPSILON:
            # Dead centre: push back against the horizontal motion
            h = math.hypot(v[0], v[2])
            nx, nz = ((-v[0] / h, -v[2] / h) if h > EPSILON else (1.0, 0.0))
        else:
            nx, nz = dx / dist, dz / dist

        p[0] = pillar.x + nx * reach
        p[2] = pillar.z + nz * reach
        v_n = v[0] * nx + v[2] * nz
        if v_n < 0:
            v[0] -= (1.0 + e) * v_n * nx
            v[2] -= (1.0 + e) * v_n * nz
        events.append({"type": "obstacle", "axis": "radial", "depth": float(reach - dist)})

    def describe(self) -> dict:
        return {
            "arena": self.name, "dim": self.dim,
            "half_width": self.half_width, "half_depth": self.half_depth,
            "ball_radius": self.ball_radius,
        }


# ──────────────────────────────────────────────
# Integrator
# ──────────────────────────────────────────────
class PhysicsEngine:
    """Semi-implicit Euler integrator bound to one arena."""

    def __init__(self, arena: Arena):
        self.arena = arena
        self.events: List[dict] = []

    def update(self, ball: Ball, level, restitution: float, dt: float) -> None:
        """Advance `ball` by `dt` wall-clock seconds against `level` geometry."""
        self.events.clear()
        if not ball.launched:
            return
        step = clean_dt(dt) * self.arena.time_scale
        if step == 0.0:
            return

        ball.velocity = ball.velocity + self.arena.gravity() * step
        ball.position = ball.position + ball.velocity * step
        self.arena.resolve(ball, level.obstacles, restitution, self.events)

        if self.arena.captures(ball, level.goal):
            ball.place(self.arena.capture_point(level.goal))
            self.events.append({"type": "capture"})

    def simulate(self, ball: Ball, level, restitution: float,
                 dt: float = 1.0 / FRAME_RATE, max_time: float = 10.0,
                 path: Optional[list] = None, path_limit: int = 0) -> dict:
        """
        Run until the ball comes to rest or max_time (seconds) elapses.

        Returns:
            {"captured": bool, "settled": bool, "sim_time": float}
        """
        t = 0.0
        captured = False
        while t < max_time and ball.launched:
            self.update(ball, level, restitution, dt)
            t += dt
            if path is not None and len(path) < path_limit:
                path.append(ball.position.copy())
            if any(ev["type"] == "capture" for ev in self.events):
                captured = True
        return {
            "captured": captured,
            "settled": not ball.launched and not captured,
            "sim_time": t,
        }
