"""
MatchController: game logic layer

Owns the ball, the match state and the physics engine for one play session,
and drives the turn/score state machine across the three modes.
Communicates with the adapter layer (server.py or any renderer) via:
  - pending_events  : game events (ball_reset, scored, miss, turn, level, …)
  - physics_events  : collision events from the last frame (wall, floor, …)

The adapter calls:
  ctrl.step(dt)               advance physics + state machine each frame
  ctrl.update_aim(dx, dy)     live drag preview
  ctrl.release(dx, dy)        gesture release → launch
  ctrl.select_ball(kind)      switch ball kind (unlocked only)
  ctrl.reset_ball()           user reset to the level start
  ctrl.get_state()            JSON-ready snapshot for rendering
"""

import enum
import logging
from dataclasses import dataclass, field
from typing import Optional

import numpy as np

from physics import (
    PhysicsEngine, Ball, BALL_KINDS, DEFAULT_KIND, clean_dt,
)
from levels import MODE_RULES, DEFAULT_VARIANT, get_variant, parse_mode
from launch import launch_velocity
from opponent import opponent_velocity

logger = logging.getLogger(__name__)


# ── Status messages ───────────────────────────────────────────────────────────
MSG_SCORED = "Scored!"
MSG_LEVELS_COMPLETE = "All levels complete"
MSG_PLAYER_WINS = "You won the tournament!"
MSG_PC_WINS = "PC wins the tournament"
MSG_TIED = "Tournament tied"


class Phase(enum.Enum):
    IDLE = "idle"
    IN_FLIGHT = "in_flight"
    SCORED = "scored"                 # transient
    ROUND_OVER = "round_over"         # transient
    TOURNAMENT_OVER = "tournament_over"
    COMPLETE = "complete"             # all levels cleared


TERMINAL_PHASES = frozenset({Phase.TOURNAMENT_OVER, Phase.COMPLETE})


class ResetReason(enum.Enum):
    """Why the ball came to rest.  Only shot outcomes drive turn logic."""
    SESSION_START = "session_start"
    USER_RESET = "user_reset"
    LEVEL_ADVANCE = "level_advance"
    ROUND_RESET = "round_reset"
    NATURAL_SETTLE = "natural_settle"
    CAPTURE = "capture"


SHOT_OUTCOMES = frozenset({ResetReason.NATURAL_SETTLE, ResetReason.CAPTURE})


@dataclass
class MatchState:
    level: int = 0
    ball_kind: str = DEFAULT_KIND
    unlocked: set = field(default_factory=lambda: {DEFAULT_KIND})
    message: str = ""
    player_turn: bool = True
    player_score: int = 0
    pc_score: int = 0
    round: int = 1


class MatchController:
    """Game-state machine + physics orchestration for one session."""

    # ── Class-level constants ─────────────────────────────────────────────────
    OPPONENT_DELAY     = 0.5     # seconds between handover and the PC shot
    TRAIL_MAX_POINTS   = 200
    PREVIEW_MAX_POINTS = 120
    PREVIEW_MAX_TIME   = 4.0     # seconds of simulated flight for aim preview

    # ── Constructor ───────────────────────────────────────────────────────────

    def __init__(self, mode="levels", variant=DEFAULT_VARIANT, levels=None):
        self.mode = parse_mode(mode)
        self.rules = MODE_RULES[self.mode]
        self.variant = get_variant(variant)
        self.arena = self.variant.arena
        self.levels = tuple(levels) if levels is not None else self.variant.levels
        if not self.levels:
            raise ValueError("MatchController: at least one level is required")
        for lv in self.levels:
            if len(lv.start) != self.arena.dim:
                raise ValueError(
                    f"MatchController: level '{lv.name}' is {len(lv.start)}D, "
                    f"variant '{self.variant.name}' is {self.arena.dim}D"
                )

        # Physics
        self.engine = PhysicsEngine(self.arena)
        self._sim_engine = PhysicsEngine(self.arena)   # reused for simulate_launch()
        self.ball = Ball(self.levels[0].start, radius=self.arena.ball_radius)

        # Game state
        self.state = MatchState()
        self.phase = Phase.IDLE
        self.opponent_timer: Optional[float] = None
        self.closed = False

        # Aiming
        self.aim_vector: Optional[np.ndarray] = None
        self.aim_path: list = []

        # Trail data (positions of the current shot)
        self.trail_positions: list = []

        # Event queues
        self.pending_events: list[dict] = []
        self.physics_events: list[dict] = []

        logger.info("session start: mode=%s variant=%s levels=%d",
                    self.mode.value, self.variant.name, len(self.levels))
        self._place_ball(ResetReason.SESSION_START)

    # ── Read-only views ───────────────────────────────────────────────────────

    @property
    def level_def(self):
        return self.levels[self.state.level]

    @property
    def kind(self):
        return BALL_KINDS[self.state.ball_kind]

    @property
    def is_terminal(self) -> bool:
        return self.phase in TERMINAL_PHASES

    @property
    def shooter(self) -> str:
        return "player" if self.state.player_turn else "pc"

    def can_launch(self) -> bool:
        """Human launch gate: resting ball, human's turn, nothing pending."""
        return (not self.closed
                and self.phase is Phase.IDLE
                and not self.ball.launched
                and self.state.player_turn
                and self.opponent_timer is None)

    # ──────────────────────────────────────────────────────────────────────────
    # Main loop
    # ──────────────────────────────────────────────────────────────────────────

    def step(self, dt_frame: float) -> None:
        """Advance the opponent countdown or the ball in flight.  Called every frame."""
        if self.closed:
            return
        dt = clean_dt(dt_frame)
        self.physics_events.clear()

        if self.opponent_timer is not None:
            self.opponent_timer -= dt
            if self.opponent_timer <= 0.0:
                self.opponent_timer = None
                self._run_opponent_shot()
            return

        if self.phase is not Phase.IN_FLIGHT:
            return

        self.engine.update(self.ball, self.level_def, self.kind.restitution, dt)
        self.physics_events.extend(self.engine.events)
        self._record_trail()

        # Decisions below see this frame's integration result
        if any(ev["type"] == "capture" for ev in self.engine.events):
            self._on_ball_rest(ResetReason.CAPTURE)
        elif not self.ball.launched:
            self._on_ball_rest(ResetReason.NATURAL_SETTLE)

    def _record_trail(self) -> None:
        if len(self.trail_positions) < self.TRAIL_MAX_POINTS:
            self.trail_positions.append(self.ball.position.tolist())

    # ──────────────────────────────────────────────────────────────────────────
    # Human input
    # ──────────────────────────────────────────────────────────────────────────

    def update_aim(self, dx: float, dy: float) -> bool:
        """Live drag preview.  Only variants with an aim indicator keep one."""
        if not self.variant.aim_preview or not self.can_launch():
            return False
        v = launch_velocity(self.variant.launch_style, dx, dy)
        self.aim_vector = v
        preview = self.simulate_launch(v, path_limit=self.PREVIEW_MAX_POINTS,
                                       max_time=self.PREVIEW_MAX_TIME)
        self.aim_path = preview["path"]
        return True

    def clear_aim(self) -> None:
        self.aim_vector = None
        self.aim_path = []

    def release(self, dx: float, dy: float) -> bool:
        """Gesture release: convert the gesture vector and launch."""
        if not self.can_launch():
            logger.debug("release ignored: phase=%s turn=%s", self.phase.value, self.shooter)
            return False
        return self.shoot(launch_velocity(self.variant.launch_style, dx, dy))

    def shoot(self, velocity) -> bool:
        """Launch the human's ball with an explicit velocity (world units)."""
        if not self.can_launch():
            logger.debug("shot ignored: phase=%s turn=%s", self.phase.value, self.shooter)
            return False
        v = np.asarray(velocity, dtype=float)
        if v.shape != (self.arena.dim,):
            raise ValueError(f"shoot: expected {self.arena.dim} velocity components, got {v.shape}")
        if not np.all(np.isfinite(v)):
            logger.debug("shot ignored: non-finite velocity %s", v.tolist())
            return False
        self.state.message = ""
        self._launch(v)
        return True

    def select_ball(self, kind: str) -> bool:
        """Switch ball kind.  Locked or unknown kinds are ignored."""
        if kind not in self.state.unlocked or kind not in BALL_KINDS:
            logger.debug("select_ball ignored: %r not unlocked", kind)
            return False
        self.state.ball_kind = kind
        self.pending_events.append({"type": "ball_kind", "kind": kind})
        return True

    def reset_ball(self) -> bool:
        """User reset: ball back to the level start, no turn handover."""
        if self.closed or self.is_terminal or not self.state.player_turn:
            logger.debug("reset ignored: phase=%s turn=%s", self.phase.value, self.shooter)
            return False
        self._place_ball(ResetReason.USER_RESET)
        return True

    # ──────────────────────────────────────────────────────────────────────────
    # Session lifecycle
    # ──────────────────────────────────────────────────────────────────────────

    def restart(self) -> None:
        """Fresh match on the same mode/variant; cancels any pending PC shot."""
        if self.closed:
            return
        self.opponent_timer = None
        self.state = MatchState()
        self.pending_events.append({"type": "restart"})
        logger.info("session restart: mode=%s variant=%s", self.mode.value, self.variant.name)
        self._place_ball(ResetReason.SESSION_START)

    def close(self) -> None:
        """End the session.  Pending PC shot is dropped, step() becomes a no-op."""
        self.opponent_timer = None
        self.clear_aim()
        self.closed = True

    # ──────────────────────────────────────────────────────────────────────────
    # Ball placement + shot outcome dispatch
    # ──────────────────────────────────────────────────────────────────────────

    def _place_ball(self, reason: ResetReason) -> None:
        self.ball.place(self.level_def.start)
        self.phase = Phase.IDLE
        self.clear_aim()
        self.trail_positions = []
        self.pending_events.append({"type": "ball_reset", "reason": reason.value})
        self._on_ball_rest(reason)

    def _launch(self, velocity: np.ndarray) -> None:
        self.ball.launch(velocity)
        self.phase = Phase.IN_FLIGHT
        self.clear_aim()
        self.trail_positions = [self.ball.position.tolist()]
        self.pending_events.append({"type": "launch", "shooter": self.shooter})

    def _on_ball_rest(self, reason: ResetReason) -> None:
        """Single entry point for every ball-at-rest transition."""
        if reason not in SHOT_OUTCOMES:
            return

        scored = reason is ResetReason.CAPTURE
        if scored:
            self.phase = Phase.SCORED
            self.state.message = MSG_SCORED
            self.pending_events.append({"type": "scored", "shooter": self.shooter})
        else:
            self.phase = Phase.IDLE
            self.pending_events.append({"type": "miss", "shooter": self.shooter})

        if not self.rules.alternating:
            if scored and self.rules.advances_levels:
                self._advance_level()
            return

        if self.state.player_turn:
            if scored:
                self.state.player_score += 1
            self._hand_over()
        else:
            if scored:
                self.state.pc_score += 1
            self._finish_round()

    # ──────────────────────────────────────────────────────────────────────────
    # Mode rules
    # ──────────────────────────────────────────────────────────────────────────

    def _advance_level(self) -> None:
        st = self.state
        if st.level == 0 and "heavy" not in st.unlocked:
            st.unlocked.add("heavy")
            self.pending_events.append({"type": "unlocked", "kind": "heavy"})

        if st.level + 1 < len(self.levels):
            st.level += 1
            logger.info("level %d: %s", st.level, self.level_def.name)
            self.pending_events.append({"type": "level", "level": st.level})
            self._place_ball(ResetReason.LEVEL_ADVANCE)
        else:
            st.message = MSG_LEVELS_COMPLETE
            self.phase = Phase.COMPLETE
            logger.info("all %d levels complete", len(self.levels))
            self.pending_events.append({"type": "game_over", "msg": st.message})

    def _hand_over(self) -> None:
        self.state.player_turn = False
        self.phase = Phase.IDLE
        self.opponent_timer = self.OPPONENT_DELAY
        logger.debug("turn → pc (score %d:%d)", self.state.player_score, self.state.pc_score)
        self.pending_events.append({"type": "turn", "shooter": "pc"})

    def _run_opponent_shot(self) -> None:
        level = self.level_def
        target = self.arena.capture_point(level.goal)
        v = opponent_velocity(level.start, target, self.arena.gravity(),
                              self.variant.opponent_flight_time)
        self.ball.place(level.start)
        logger.debug("pc shot: v=%s", np.round(v, 3).tolist())
        self._launch(v)

    def _finish_round(self) -> None:
        st = self.state
        st.player_turn = True
        self.pending_events.append({"type": "turn", "shooter": "player"})

        if self.rules.max_rounds is None:
            self._place_ball(ResetReason.ROUND_RESET)
            return

        self.phase = Phase.ROUND_OVER
        if st.round < self.rules.max_rounds:
            st.round += 1
            self.pending_events.append({"type": "round", "round": st.round})
            self._place_ball(ResetReason.ROUND_RESET)
        else:
            self._end_tournament()

    def _end_tournament(self) -> None:
        st = self.state
        if st.player_score > st.pc_score:
            st.message = MSG_PLAYER_WINS
        elif st.player_score < st.pc_score:
            st.message = MSG_PC_WINS
        else:
            st.message = MSG_TIED
        self.phase = Phase.TOURNAMENT_OVER
        logger.info("tournament over %d:%d, %s", st.player_score, st.pc_score, st.message)
        self.pending_events.append({"type": "game_over", "msg": st.message})

    # ──────────────────────────────────────────────────────────────────────────
    # Headless simulation + snapshots
    # ──────────────────────────────────────────────────────────────────────────

    def simulate_launch(self, velocity, *, start=None, max_time: float = 10.0,
                        sim_dt: Optional[float] = None, path_limit: int = 0) -> dict:
        """Headless shot simulation.

        Non-destructive: runs on a copy of the ball and does NOT change
        ``self.ball`` or any match state.

        Args:
            velocity:   Launch velocity in world units.
            start:      Launch point; defaults to the ball's current position.
            max_time:   Simulated wall-clock seconds before giving up.
            sim_dt:     Frame length in seconds (default: one 60 fps frame).
            path_limit: Number of positions to record into ``path``.

        Returns:
            ``dict`` with keys ``captured``, ``settled``, ``sim_time``,
            ``final`` (position list) and ``path`` (list of position lists).
        """
        ball = self.ball.copy()
        if start is not None:
            ball.place(start)
        ball.launch(velocity)
        path: list = []
        kwargs = {"max_time": max_time, "path": path, "path_limit": path_limit}
        if sim_dt is not None:
            kwargs["dt"] = sim_dt
        result = self._sim_engine.simulate(ball, self.level_def, self.kind.restitution, **kwargs)
        result["final"] = ball.position.tolist()
        result["path"] = [p.tolist() for p in path]
        return result

    def get_state(self) -> dict:
        st = self.state
        return {
            "mode": self.mode.value,
            "variant": self.variant.name,
            "phase": self.phase.value,
            "ball": {
                "pos": self.ball.position.tolist(),
                "vel": self.ball.velocity.tolist(),
                "launched": self.ball.launched,
                "radius": self.ball.radius,
                "kind": st.ball_kind,
            },
            "level": st.level,
            "level_name": self.level_def.name,
            "unlocked": sorted(st.unlocked),
            "message": st.message,
            "player_turn": st.player_turn,
            "player_score": st.player_score,
            "pc_score": st.pc_score,
            "round": st.round,
            "opponent_pending": self.opponent_timer is not None,
            "aim": None if self.aim_vector is None else self.aim_vector.tolist(),
            "aim_path": self.aim_path,
        }
