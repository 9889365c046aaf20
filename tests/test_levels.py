"""
Level / mode catalog tests.
"""

import sys
import os
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from levels import (
    Mode, MODE_RULES, MAX_ROUNDS, VARIANTS, DEFAULT_VARIANT, LEVELS_2D, LEVELS_3D,
    parse_mode, get_variant,
)
from launch import LaunchStyle
from physics import SquareGoal, Cup, Rect, Pillar


class TestModes:

    @pytest.mark.parametrize("raw, mode", [
        ("levels", Mode.LEVELS),
        ("VERSUS", Mode.VERSUS),
        (" tournament ", Mode.TOURNAMENT),
        (Mode.VERSUS, Mode.VERSUS),
    ])
    def test_parse(self, raw, mode):
        assert parse_mode(raw) is mode

    @pytest.mark.parametrize("raw", ["", "coop", None, 3])
    def test_parse_rejects(self, raw):
        with pytest.raises(ValueError):
            parse_mode(raw)

    def test_rules(self):
        assert MODE_RULES[Mode.LEVELS].advances_levels
        assert not MODE_RULES[Mode.LEVELS].alternating
        assert MODE_RULES[Mode.VERSUS].alternating
        assert MODE_RULES[Mode.VERSUS].max_rounds is None
        assert MODE_RULES[Mode.TOURNAMENT].max_rounds == MAX_ROUNDS == 3


class TestVariants:

    def test_default_exists(self):
        assert get_variant(DEFAULT_VARIANT).name == DEFAULT_VARIANT

    def test_lookup_is_case_insensitive(self):
        assert get_variant("Cup") is VARIANTS["cup"]

    def test_unknown_variant(self):
        with pytest.raises(ValueError):
            get_variant("pinball")

    def test_launch_styles(self):
        assert VARIANTS["classic"].launch_style is LaunchStyle.FLING
        assert VARIANTS["aim"].launch_style is LaunchStyle.DRAG
        assert VARIANTS["cup"].launch_style is LaunchStyle.DRAG_3D
        assert not VARIANTS["classic"].aim_preview
        assert VARIANTS["aim"].aim_preview and VARIANTS["cup"].aim_preview

    @pytest.mark.parametrize("name", sorted(VARIANTS))
    def test_levels_fit_arena(self, name):
        variant = VARIANTS[name]
        arena = variant.arena
        assert variant.levels
        assert variant.opponent_flight_time > 0
        for level in variant.levels:
            assert len(level.start) == arena.dim
            r = arena.ball_radius
            if arena.dim == 2:
                x, y = level.start
                assert r <= x <= arena.width - r
                assert r <= y <= arena.height - r
                assert isinstance(level.goal, SquareGoal)
                assert all(isinstance(o, Rect) for o in level.obstacles)
            else:
                x, y, z = level.start
                assert abs(x) <= arena.half_width - r
                assert abs(z) <= arena.half_depth - r
                assert y >= r
                assert isinstance(level.goal, Cup)
                assert all(isinstance(o, Pillar) for o in level.obstacles)

    @pytest.mark.parametrize("name", sorted(VARIANTS))
    def test_start_not_inside_goal(self, name):
        variant = VARIANTS[name]
        for level in variant.levels:
            assert not level.goal.contains(level.start)


class TestLevelData:

    def test_first_2d_level_has_ledge(self):
        assert len(LEVELS_2D[0].obstacles) == 1
        assert LEVELS_2D[1].obstacles == ()

    def test_3d_cups_on_far_side(self):
        for level in LEVELS_3D:
            assert level.goal.z < 0 < level.start[2]
