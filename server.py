"""
Color Ring Web Server: Layer 3 replacement (FastAPI + WebSocket)

Serves the canvas frontend and runs the fixed-step simulation loop,
streaming snapshots and sound tags to browser clients over WebSocket.
"""

import asyncio
import json
import time
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import FileResponse
from fastapi.staticfiles import StaticFiles

from controller import RingController, FrameLoop, Snapshot, SoundEvent, log_events
from physics import RING_RADIUS, BALL_RADIUS, SEGMENTS, Ring
from scenarios import PRESETS

STATIC_DIR = Path(__file__).parent / "static"

# ── Controller ──────────────────────────────────────────────────────────────

ctrl = RingController()


# ── Broadcast renderer / sound sink ─────────────────────────────────────────

class BroadcastRenderer:
    """Renderer that keeps the latest frame message for the broadcast step."""

    def __init__(self):
        self.latest: str = ""

    def draw(self, snapshot: Snapshot) -> None:
        self.latest = _build_frame_message(snapshot, sounds.drain())


class SoundQueue:
    """SoundSink that batches tags into the next frame message."""

    def __init__(self):
        self.tags: list[str] = []

    def on_event(self, tag: SoundEvent) -> None:
        self.tags.append(tag.value)

    def drain(self) -> list[str]:
        tags = self.tags
        self.tags = []
        return tags


renderer = BroadcastRenderer()
sounds = SoundQueue()
loop = FrameLoop(ctrl, renderer, sounds, clock=time.perf_counter)
# Browsers gate playback on a user gesture themselves; forward every tag.
loop.unlock_audio()


# ── Lifespan (startup/shutdown) ─────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    loop.start()
    task = asyncio.create_task(game_loop())
    loop.on_teardown(task.cancel)
    yield
    loop.stop()


app = FastAPI(lifespan=lifespan)

clients: list[WebSocket] = []

# ── Async game loop ─────────────────────────────────────────────────────────

TARGET_FPS = 60
FRAME_DT = 1.0 / TARGET_FPS


async def game_loop():
    """Main frame loop running at ~60 fps."""
    while True:
        now = time.perf_counter()

        # 1. Fixed ticks + one draw
        loop.on_frame(now)
        log_events(ctrl.drain_pending_events())

        # 2. Broadcast
        if clients and renderer.latest:
            dead: list[WebSocket] = []
            for ws in clients:
                try:
                    await ws.send_text(renderer.latest)
                except Exception:
                    dead.append(ws)
            for ws in dead:
                if ws in clients:
                    clients.remove(ws)
                    print(f"[WS] Dropped client ({len(clients)} left)")

        # Sleep to maintain target FPS
        elapsed = time.perf_counter() - now
        sleep_time = FRAME_DT - elapsed
        if sleep_time > 0:
            await asyncio.sleep(sleep_time)
        else:
            await asyncio.sleep(0)


def _build_frame_message(snapshot: Snapshot, sound_tags: list) -> str:
    """Serialize one snapshot plus its sound tags into a JSON frame message."""
    frame = {"type": "frame", "sounds": sound_tags}
    frame.update(snapshot.to_dict())
    return json.dumps(frame, separators=(',', ':'))


def _build_init_message() -> str:
    """Ring geometry and constants the client needs before the first frame."""
    return json.dumps({
        "type": "init",
        "ring_radius": RING_RADIUS,
        "ball_radius": BALL_RADIUS,
        "segments": [c.value for c in Ring().segment_colors()],
        "segment_count": SEGMENTS,
        "win_score": ctrl.WIN_SCORE,
        "round_limit": ctrl.round_limit,
    })


# ── Key press handler ───────────────────────────────────────────────────────

def _handle_key_down(key: str):
    """Handle a key press event from the client."""
    if key == "r":
        ctrl.new_match()
    elif key in PRESETS:
        fn, label = PRESETS[key]
        ctrl.load_scenario(fn, label)


# ── WebSocket endpoint ──────────────────────────────────────────────────────

@app.websocket("/ws")
async def websocket_endpoint(ws: WebSocket):
    await ws.accept()
    clients.append(ws)
    print(f"[WS] Client connected ({len(clients)} total)")

    await ws.send_text(_build_init_message())
    await ws.send_text(_build_frame_message(ctrl.snapshot(), []))

    try:
        while True:
            data = await ws.receive_text()
            try:
                msg = json.loads(data)
            except json.JSONDecodeError:
                continue

            cmd = msg.get("cmd", "")
            if cmd == "key_down":
                _handle_key_down(msg.get("key", ""))
            elif cmd == "get_state":
                await ws.send_text(_build_frame_message(ctrl.snapshot(), []))
    except WebSocketDisconnect:
        pass
    finally:
        if ws in clients:
            clients.remove(ws)


# ── Static files + root route ───────────────────────────────────────────────

app.mount("/static", StaticFiles(directory=STATIC_DIR), name="static")


@app.get("/")
async def root():
    return FileResponse(STATIC_DIR / "index.html")


# ── Run with uvicorn ────────────────────────────────────────────────────────

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("server:app", host="0.0.0.0", port=8000, reload=False)
