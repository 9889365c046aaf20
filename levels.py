"""
Level / Mode catalog: static, read-only data.

Levels are consumed strictly in order in "levels" mode; the other modes replay
the first level for every shot.  A Variant bundles an arena, its levels and
the launch style of one of the three game screens.
"""

import enum
from dataclasses import dataclass
from typing import Optional, Tuple

from physics import (
    Arena, FlatArena, RoomArena, Rect, Pillar, SquareGoal, Cup,
    SCREEN_WIDTH, SCREEN_HEIGHT, BALL_RADIUS_3D,
)
from launch import LaunchStyle


class Mode(enum.Enum):
    LEVELS = "levels"
    VERSUS = "versus"
    TOURNAMENT = "tournament"


@dataclass(frozen=True)
class ModeRules:
    alternating: bool             # human and PC take turns
    max_rounds: Optional[int]     # None = no round limit
    advances_levels: bool         # a capture moves to the next level


MAX_ROUNDS = 3

MODE_RULES = {
    Mode.LEVELS:     ModeRules(alternating=False, max_rounds=None, advances_levels=True),
    Mode.VERSUS:     ModeRules(alternating=True,  max_rounds=None, advances_levels=False),
    Mode.TOURNAMENT: ModeRules(alternating=True,  max_rounds=MAX_ROUNDS, advances_levels=False),
}


def parse_mode(value) -> Mode:
    if isinstance(value, Mode):
        return value
    try:
        return Mode(str(value).lower().strip())
    except ValueError:
        valid = ", ".join(m.value for m in Mode)
        raise ValueError(f"unknown mode {value!r} (expected one of: {valid})") from None


@dataclass(frozen=True)
class Level:
    name: str
    start: Tuple[float, ...]
    goal: object                  # SquareGoal (2D) or Cup (3D)
    obstacles: tuple = ()


# ── 2D levels (screen space) ──────────────────────────────────────────────────
_START_2D = (60.0, SCREEN_HEIGHT - 100.0)
_GOAL_2D = SquareGoal(SCREEN_WIDTH - 60.0, 60.0, 40.0)

LEVELS_2D = (
    Level(
        name="Ledge",
        start=_START_2D,
        goal=_GOAL_2D,
        obstacles=(Rect(SCREEN_WIDTH / 2 - 50.0, SCREEN_HEIGHT / 2, 100.0, 20.0),),
    ),
    Level(
        name="Open court",
        start=_START_2D,
        goal=_GOAL_2D,
    ),
)

# ── 3D levels (room, metres) ──────────────────────────────────────────────────
_START_3D = (0.0, BALL_RADIUS_3D, 2.4)
_CUP_3D = Cup(x=0.0, z=-2.0, radius=0.25, rim_height=0.3)

LEVELS_3D = (
    Level(
        name="Cup",
        start=_START_3D,
        goal=_CUP_3D,
    ),
    Level(
        name="Pillar",
        start=_START_3D,
        goal=Cup(x=0.6, z=-2.2, radius=0.25, rim_height=0.3),
        obstacles=(Pillar(x=0.2, z=0.0, radius=0.2, height=1.2),),
    ),
)


@dataclass(frozen=True)
class Variant:
    name: str
    arena: Arena
    levels: tuple
    launch_style: LaunchStyle
    opponent_flight_time: float   # world time units (frames in 2D, seconds in 3D)
    aim_preview: bool


VARIANTS = {
    "classic": Variant("classic", FlatArena(), LEVELS_2D, LaunchStyle.FLING, 30.0, False),
    "aim":     Variant("aim",     FlatArena(), LEVELS_2D, LaunchStyle.DRAG,  30.0, True),
    "cup":     Variant("cup",     RoomArena(), LEVELS_3D, LaunchStyle.DRAG_3D, 1.5, True),
}
DEFAULT_VARIANT = "classic"


def get_variant(name) -> Variant:
    if isinstance(name, Variant):
        return name
    try:
        return VARIANTS[str(name).lower().strip()]
    except KeyError:
        valid = ", ".join(VARIANTS)
        raise ValueError(f"unknown variant {name!r} (expected one of: {valid})") from None
