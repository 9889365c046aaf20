"""
Cup Shot Web Server: rendering adapter (FastAPI + WebSocket)

Each WebSocket connection is one play session: it owns a MatchController,
runs its own frame loop, and pushes ball/match state to whatever renderer is
on the other end.  Closing the socket cancels the loop and ends the session.
"""

import asyncio
import json
import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket, WebSocketDisconnect, status

from controller import MatchController
from levels import VARIANTS, Mode, MODE_RULES
from physics import BALL_KINDS
import physics as _phys

logger = logging.getLogger(__name__)

# ── Session tasks ─────────────────────────────────────────────────────────────

sessions: set = set()


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    for task in list(sessions):
        task.cancel()
    sessions.clear()


app = FastAPI(lifespan=lifespan)

# ── Physics params (runtime-editable module constants) ────────────────────────

PHYSICS_PARAMS = [
    ("GRAVITY_2D",      "Gravity 2D",      0.1,  3.0,  0.05),
    ("GRAVITY_3D",      "Gravity 3D",      1.0, 20.0,  0.2),
    ("SETTLE_SPEED_2D", "Settle 2D",       0.1,  5.0,  0.1),
    ("SETTLE_SPEED_3D", "Settle 3D",       0.01, 1.0,  0.01),
]

PARAM_DEFAULTS = {attr: getattr(_phys, attr) for attr, *_ in PHYSICS_PARAMS}

# ── Frame loop ────────────────────────────────────────────────────────────────

TARGET_FPS = 60
FRAME_DT = 1.0 / TARGET_FPS
MAX_FRAME_DT = 0.05


async def game_loop(ctrl: MatchController, ws: WebSocket):
    """Per-session loop running at ~60 fps.  First tick carries dt = 0."""
    last_time = None

    while not ctrl.closed:
        now = time.perf_counter()
        dt = 0.0 if last_time is None else now - last_time
        last_time = now

        # Clamp dt to avoid spiral-of-death
        if dt > MAX_FRAME_DT:
            dt = MAX_FRAME_DT

        ctrl.step(dt)
        try:
            await ws.send_text(build_frame_message(ctrl))
        except Exception:
            # Socket went away mid-frame; the receive side cleans up.
            break

        elapsed = time.perf_counter() - now
        sleep_time = FRAME_DT - elapsed
        if sleep_time > 0:
            await asyncio.sleep(sleep_time)
        else:
            await asyncio.sleep(0)


def build_frame_message(ctrl: MatchController) -> str:
    """Serialize controller state into a JSON frame message, draining events."""
    events = list(ctrl.pending_events)
    ctrl.pending_events.clear()

    sounds = []
    for ev in ctrl.physics_events:
        sounds.append({
            "type": ev.get("type", ""),
            "speed": round(float(ev.get("speed", 0.0)), 3),
        })

    frame = {
        "type": "frame",
        "state": ctrl.get_state(),
        "trail": ctrl.trail_positions,
        "events": events,
        "sounds": sounds,
    }
    return json.dumps(frame, separators=(',', ':'))


def build_init_message(ctrl: MatchController) -> str:
    levels = []
    for lv in ctrl.levels:
        levels.append({
            "name": lv.name,
            "start": list(lv.start),
            "goal": {"kind": type(lv.goal).__name__, **vars(lv.goal)},
            "obstacles": [{"kind": type(o).__name__, **vars(o)} for o in lv.obstacles],
        })
    return json.dumps({
        "type": "init",
        "mode": ctrl.mode.value,
        "variant": ctrl.variant.name,
        "arena": ctrl.arena.describe(),
        "levels": levels,
        "kinds": {k.name: {"color": k.color, "restitution": k.restitution}
                  for k in BALL_KINDS.values()},
        "opponent_delay": ctrl.OPPONENT_DELAY,
    })


# ── Physics params helpers ────────────────────────────────────────────────────

def get_params_data() -> list:
    """Return all physics params with current values."""
    result = []
    for attr, label, mn, mx, step in PHYSICS_PARAMS:
        result.append({
            "attr": attr, "label": label,
            "value": round(getattr(_phys, attr), 6),
            "min": mn, "max": mx, "step": step,
        })
    return result


def adjust_param(index: int, direction: int, fine: bool = False):
    """Nudge one param by its step (or a tenth of it) within bounds."""
    if not 0 <= index < len(PHYSICS_PARAMS):
        return None
    attr, label, mn, mx, step = PHYSICS_PARAMS[index]
    s = step / 10.0 if fine else step
    cur = getattr(_phys, attr)
    new_val = max(mn, min(mx, cur + direction * s))
    setattr(_phys, attr, new_val)
    return new_val


def reset_params() -> None:
    for attr, dflt in PARAM_DEFAULTS.items():
        setattr(_phys, attr, dflt)


# ── Command dispatch ──────────────────────────────────────────────────────────

def handle_command(ctrl: MatchController, msg: dict):
    """Apply one client command.  Returns an optional reply dict."""
    cmd = str(msg.get("cmd", "")).lower().strip()

    if cmd == "aim":
        ctrl.update_aim(float(msg.get("dx", 0.0)), float(msg.get("dy", 0.0)))
    elif cmd == "release":
        if "vx" in msg or "vy" in msg:
            ctrl.release(float(msg.get("vx", 0.0)), float(msg.get("vy", 0.0)))
        else:
            ctrl.release(float(msg.get("dx", 0.0)), float(msg.get("dy", 0.0)))
    elif cmd == "cancel_aim":
        ctrl.clear_aim()
    elif cmd == "select_ball":
        ctrl.select_ball(str(msg.get("kind", "")))
    elif cmd == "reset":
        ctrl.reset_ball()
    elif cmd == "restart":
        ctrl.restart()
    elif cmd == "get_state":
        return {"type": "state", "data": ctrl.get_state()}
    elif cmd == "get_params":
        return {"type": "params", "data": get_params_data()}
    elif cmd == "adjust_param":
        idx = int(msg.get("index", 0))
        new_val = adjust_param(idx, int(msg.get("direction", 0)), bool(msg.get("fine", False)))
        if new_val is not None:
            return {"type": "param_update", "index": idx, "value": round(new_val, 6)}
    elif cmd == "reset_params":
        reset_params()
        return {"type": "params", "data": get_params_data()}
    else:
        return {"type": "status", "msg": f"Unknown cmd '{cmd}'."}
    return None


# ── HTTP ──────────────────────────────────────────────────────────────────────

@app.get("/variants")
async def list_variants():
    return {
        "variants": {
            name: {
                "dim": v.arena.dim,
                "launch_style": v.launch_style.value,
                "aim_preview": v.aim_preview,
                "levels": [lv.name for lv in v.levels],
            }
            for name, v in VARIANTS.items()
        },
        "modes": {
            m.value: {"alternating": MODE_RULES[m].alternating,
                      "max_rounds": MODE_RULES[m].max_rounds}
            for m in Mode
        },
        "kinds": sorted(BALL_KINDS),
    }


# ── WebSocket endpoint ────────────────────────────────────────────────────────

@app.websocket("/ws")
async def websocket_endpoint(ws: WebSocket, mode: str = "levels", variant: str = "classic"):
    try:
        ctrl = MatchController(mode=mode, variant=variant)
    except ValueError as exc:
        logger.info("rejecting session: %s", exc)
        await ws.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await ws.accept()
    await ws.send_text(build_init_message(ctrl))

    task = asyncio.create_task(game_loop(ctrl, ws))
    sessions.add(task)
    logger.info("client connected: mode=%s variant=%s", ctrl.mode.value, ctrl.variant.name)

    try:
        while True:
            data = await ws.receive_text()
            try:
                msg = json.loads(data)
            except json.JSONDecodeError:
                continue
            if not isinstance(msg, dict):
                continue
            try:
                reply = handle_command(ctrl, msg)
            except (TypeError, ValueError) as exc:
                reply = {"type": "status", "msg": f"Bad command: {exc}"}
            if reply is not None:
                await ws.send_text(json.dumps(reply))
    except WebSocketDisconnect:
        pass
    finally:
        ctrl.close()
        task.cancel()
        sessions.discard(task)
        logger.info("client disconnected")


# ── Run with uvicorn ──────────────────────────────────────────────────────────

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("server:app", host="0.0.0.0", port=8000, reload=False)
