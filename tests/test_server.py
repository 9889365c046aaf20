"""
Server tests: frame serialisation, command dispatch, live params and the
WebSocket session lifecycle.
"""

import sys
import os
import json
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

import physics as _phys
import server
from server import (
    app, build_frame_message, build_init_message, handle_command,
    adjust_param, reset_params, get_params_data, PHYSICS_PARAMS,
)
from controller import MatchController
from physics import SCREEN_HEIGHT, BALL_RADIUS_2D


@pytest.fixture(autouse=True)
def restore_params():
    yield
    reset_params()


def receive_until(ws, msg_type, limit=600):
    for _ in range(limit):
        msg = ws.receive_json()
        if msg.get("type") == msg_type:
            return msg
    raise AssertionError(f"no '{msg_type}' message received")


class TestFrameMessage:

    def test_drains_pending_events(self):
        ctrl = MatchController()
        frame = json.loads(build_frame_message(ctrl))
        assert frame["type"] == "frame"
        assert [ev["type"] for ev in frame["events"]] == ["ball_reset"]
        assert ctrl.pending_events == []
        frame = json.loads(build_frame_message(ctrl))
        assert frame["events"] == []

    def test_floor_hit_becomes_sound(self):
        ctrl = MatchController()
        ctrl.ball.place([200.0, SCREEN_HEIGHT - BALL_RADIUS_2D])
        ctrl.shoot([0.0, 0.0])
        ctrl.step(1.0 / 60.0)
        frame = json.loads(build_frame_message(ctrl))
        sounds = [s["type"] for s in frame["sounds"]]
        assert "floor" in sounds
        assert frame["state"]["phase"] == "idle"

    def test_init_describes_levels(self):
        init = json.loads(build_init_message(MatchController(variant="cup")))
        assert init["type"] == "init"
        assert init["arena"]["dim"] == 3
        assert init["levels"][0]["goal"]["kind"] == "Cup"
        assert init["levels"][1]["obstacles"][0]["kind"] == "Pillar"
        assert set(init["kinds"]) == {"bouncy", "heavy"}


class TestCommands:

    def test_release_fling(self):
        ctrl = MatchController()
        assert handle_command(ctrl, {"cmd": "release", "vx": 1.0, "vy": -2.0}) is None
        assert ctrl.ball.launched
        assert ctrl.ball.velocity.tolist() == [30.0, -60.0]

    def test_aim_and_cancel(self):
        ctrl = MatchController(variant="aim")
        handle_command(ctrl, {"cmd": "aim", "dx": 20, "dy": 40})
        assert ctrl.aim_vector is not None
        handle_command(ctrl, {"cmd": "cancel_aim"})
        assert ctrl.aim_vector is None

    def test_reset_and_state(self):
        ctrl = MatchController()
        handle_command(ctrl, {"cmd": "release", "vx": 0.3, "vy": -0.4})
        handle_command(ctrl, {"cmd": "reset"})
        assert not ctrl.ball.launched
        reply = handle_command(ctrl, {"cmd": "GET_STATE"})
        assert reply["type"] == "state"
        assert reply["data"]["phase"] == "idle"

    def test_select_locked_ball(self):
        ctrl = MatchController()
        handle_command(ctrl, {"cmd": "select_ball", "kind": "heavy"})
        assert ctrl.state.ball_kind == "bouncy"

    def test_unknown_command(self):
        reply = handle_command(MatchController(), {"cmd": "teleport"})
        assert reply["type"] == "status"

    def test_restart(self):
        ctrl = MatchController(mode="versus")
        ctrl.state.player_score = 2
        handle_command(ctrl, {"cmd": "restart"})
        assert ctrl.state.player_score == 0


class TestParams:

    def test_listing(self):
        data = get_params_data()
        assert [p["attr"] for p in data] == [p[0] for p in PHYSICS_PARAMS]

    def test_adjust_mutates_module_constant(self):
        new_val = adjust_param(0, +1)
        assert new_val == pytest.approx(0.65)
        assert _phys.GRAVITY_2D == pytest.approx(0.65)
        ctrl = MatchController()
        assert ctrl.arena.gravity()[1] == pytest.approx(0.65)

    def test_fine_step(self):
        assert adjust_param(0, -1, fine=True) == pytest.approx(0.595)

    def test_clamped_to_bounds(self):
        attr, _, mn, mx, _ = PHYSICS_PARAMS[1]
        assert adjust_param(1, 10000) == mx
        assert adjust_param(1, -10000) == mn

    def test_bad_index(self):
        assert adjust_param(99, 1) is None
        reply = handle_command(MatchController(), {"cmd": "adjust_param", "index": -1, "direction": 1})
        assert reply is None

    def test_reset(self):
        adjust_param(2, 3)
        reply = handle_command(MatchController(), {"cmd": "reset_params"})
        assert reply["type"] == "params"
        assert _phys.SETTLE_SPEED_2D == server.PARAM_DEFAULTS["SETTLE_SPEED_2D"]


class TestHTTP:

    def test_variants(self):
        client = TestClient(app)
        body = client.get("/variants").json()
        assert set(body["variants"]) == {"classic", "aim", "cup"}
        assert body["variants"]["cup"]["dim"] == 3
        assert body["modes"]["tournament"]["max_rounds"] == 3
        assert body["modes"]["levels"]["alternating"] is False


class TestWebSocket:

    def test_session_init_and_frames(self):
        client = TestClient(app)
        with client.websocket_connect("/ws?mode=versus&variant=aim") as ws:
            init = ws.receive_json()
            assert init["type"] == "init"
            assert init["mode"] == "versus"
            assert init["variant"] == "aim"
            frame = receive_until(ws, "frame")
            assert frame["state"]["player_turn"] is True

    def test_command_reply(self):
        client = TestClient(app)
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_text(json.dumps({"cmd": "get_params"}))
            reply = receive_until(ws, "params")
            assert len(reply["data"]) == len(PHYSICS_PARAMS)

    def test_bad_payload_is_ignored(self):
        client = TestClient(app)
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_text("not json")
            ws.send_text(json.dumps([1, 2]))
            ws.send_text(json.dumps({"cmd": "get_state"}))
            assert receive_until(ws, "state")["data"]["mode"] == "levels"

    @pytest.mark.parametrize("query", ["mode=coop", "variant=pinball"])
    def test_invalid_session_closes_with_policy_violation(self, query):
        client = TestClient(app)
        with pytest.raises(WebSocketDisconnect) as exc:
            with client.websocket_connect(f"/ws?{query}") as ws:
                ws.receive_json()
        assert exc.value.code == 1008
