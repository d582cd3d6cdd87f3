"""
Color Ring Visualizer (3-Tier Architecture)
Layer 3: Ursina rendering / input handling / sound.
Layer 2: controller.py (RingController)
Layer 1: physics.py (PhysicsEngine)

Click (or touch) the window once to enable sound.
R = new match, 1-5 = scenario presets, Esc = quit.
"""

import math
import os
import tempfile
import time
import wave
from pathlib import Path
import numpy as np
from ursina import (
    Ursina, Entity, Text, Mesh, Audio, Texture, camera, color, window,
    application, Vec3,
)
from PIL import Image, ImageDraw

from physics import RING_RADIUS, BALL_RADIUS, SEGMENTS, SEGMENT_ANGLE, Ring, TeamColor
from controller import RingController, FrameLoop, SoundEvent, Snapshot, log_events
from scenarios import PRESETS

# ── Layer 2: controller instance ──────────────────────────────────────────────
ctrl = RingController()

app = Ursina(title="Color Ring", borderless=False)
window.color = color.hex("#111111")
camera.orthographic = True
camera.fov = 8

# World units → Ursina units; sim y grows down, screen y grows up
WORLD_SCALE = 1 / 100
RING_Y_OFFSET = -0.7
RING_LINE_PX = 14

_TEAM_COLORS = {
    TeamColor.RED:  color.hex("#F52800"),
    TeamColor.BLUE: color.hex("#0000F5"),
}
# Ring / score colors are the lighter palette
_SEGMENT_RGB = {
    TeamColor.RED:  (239, 68, 68),
    TeamColor.BLUE: (59, 130, 246),
}
_NEUTRAL_RGB = (255, 255, 255)
_PIP_EMPTY = color.rgba(1, 1, 1, 0.2)

_asset_dir = tempfile.mkdtemp(prefix="colorring_")


def _to_screen(x: float, y: float) -> Vec3:
    return Vec3(x * WORLD_SCALE, -y * WORLD_SCALE + RING_Y_OFFSET, 0)


# ──────────────────────────────────────────
# Ring texture (PIL)
# ──────────────────────────────────────────

def _make_ring_texture(size=512):
    """12 arcs in ring-local order; PIL angles run clockwise from 3 o'clock,
    which matches the simulation's y-down atan2 angles."""
    img = Image.new("RGBA", (size, size), (0, 0, 0, 0))
    draw = ImageDraw.Draw(img)
    # PIL strokes inward from the box, so the line is centred on RING_RADIUS
    outer = RING_RADIUS + RING_LINE_PX / 2
    px = size / (2 * outer)
    box = [0, 0, size - 1, size - 1]
    for i, seg_color in enumerate(Ring().segment_colors()):
        rgb = _SEGMENT_RGB.get(seg_color, _NEUTRAL_RGB)
        start = math.degrees(i * SEGMENT_ANGLE)
        draw.arc(box, start, start + 360 / SEGMENTS, fill=rgb + (255,),
                 width=max(1, int(RING_LINE_PX * px)))
    path = os.path.join(_asset_dir, "ring.png")
    img.save(path)
    return Texture(path), 2 * outer * WORLD_SCALE


# ──────────────────────────────────────────
# Synthesized Sound Effects (numpy + wave)
# ──────────────────────────────────────────

_SR = 44100


def _synth_wav(filename, samples):
    """Write mono 16-bit 44100Hz WAV and return Path object."""
    path = os.path.join(_asset_dir, filename)
    data = np.clip(samples, -1.0, 1.0)
    data_int = (data * 32767).astype(np.int16)
    with wave.open(path, "w") as wf:
        wf.setnchannels(1)
        wf.setsampwidth(2)
        wf.setframerate(_SR)
        wf.writeframes(data_int.tobytes())
    return Path(path)


def _decay(t, start=0.12, end=0.001):
    """Exponential gain ramp from `start` to `end` over the clip."""
    return start * (end / start) ** (t / t[-1])


def _synth_pop():
    dur = 0.08
    t = np.linspace(0, dur, int(_SR * dur), endpoint=False)
    sig = np.sign(np.sin(2 * np.pi * 300 * t))
    return _synth_wav("pop.wav", sig * _decay(t, 0.12))


def _synth_sweep(filename, f0, f1, dur=0.3):
    t = np.linspace(0, dur, int(_SR * dur), endpoint=False)
    # exponential frequency ramp; phase is the integral of f(t)
    k = math.log(f1 / f0) / dur
    phase = 2 * np.pi * f0 * (np.exp(k * t) - 1) / k
    return _synth_wav(filename, np.sin(phase) * _decay(t, 0.15))


class UrsinaSound:
    """SoundSink backed by synthesized wavs; stays silent if audio is unavailable."""

    def __init__(self):
        self.clips: dict = {}
        self.loaded = False
        self.failed = False

    def load(self) -> None:
        if self.loaded or self.failed:
            return
        try:
            self.clips = {
                SoundEvent.POP:       Audio(_synth_pop(), autoplay=False),
                SoundEvent.ROUND_WIN: Audio(_synth_sweep("round.wav", 600, 200), autoplay=False),
                SoundEvent.MATCH_WIN: Audio(_synth_sweep("match.wav", 900, 300), autoplay=False),
            }
            self.loaded = True
        except Exception as e:
            self.failed = True
            print(f"[SND] Audio disabled: {e}")

    def on_event(self, tag: SoundEvent) -> None:
        if self.failed:
            return
        clip = self.clips.get(tag)
        if clip is None:
            return
        try:
            clip.play()
        except Exception as e:
            self.failed = True
            self.clips.clear()
            print(f"[SND] Audio disabled: {e}")

    def release(self) -> None:
        for clip in self.clips.values():
            clip.stop()
        self.clips.clear()


# ──────────────────────────────────────────
# Renderer
# ──────────────────────────────────────────

class UrsinaRenderer:
    """Renderer: ring quad rotated per frame, balls as one point mesh, HUD text."""

    PIP_GAP = 0.24
    PIP_SIZE = 0.2

    def __init__(self):
        tex, ring_size = _make_ring_texture()
        self.ring = Entity(model="quad", texture=tex, scale=ring_size,
                           position=Vec3(0, RING_Y_OFFSET, 0))

        self.ball_mesh = Mesh(vertices=[], colors=[], mode="point",
                              thickness=BALL_RADIUS * 2)
        self.balls = Entity(model=self.ball_mesh, z=-0.01)

        Text("Select your ball and see who wins", position=(0, 0.45),
             origin=(0, 0), scale=1.6, color=color.white)
        self.red_pips = self._make_pips(-1.2, 2.9, _SEGMENT_RGB[TeamColor.RED])
        self.blue_pips = self._make_pips(0.2, 2.9, _SEGMENT_RGB[TeamColor.BLUE])
        self.red_count = Text("", position=(-0.15, 0.33), origin=(0, 0),
                              scale=1.3, color=color.rgb32(*_SEGMENT_RGB[TeamColor.RED]))
        self.blue_count = Text("", position=(0.15, 0.33), origin=(0, 0),
                               scale=1.3, color=color.rgb32(*_SEGMENT_RGB[TeamColor.BLUE]))

        self.overlay = Entity(model="quad", scale=(20, 20), z=-0.5,
                              color=color.rgba(0, 0, 0, 0.8), enabled=False)
        self.winner_text = Text("", origin=(0, 0), scale=2, color=color.white,
                                enabled=False)

    def _make_pips(self, x0, y, rgb):
        fill = color.rgb32(*rgb)
        pips = []
        for i in range(RingController.WIN_SCORE):
            pip = Entity(model="circle", scale=self.PIP_SIZE, color=_PIP_EMPTY,
                         position=Vec3(x0 + i * self.PIP_GAP, y, 0))
            pip.fill_color = fill
            pips.append(pip)
        return pips

    @staticmethod
    def _set_pips(pips, score):
        for i, pip in enumerate(pips):
            pip.color = pip.fill_color if i < score else _PIP_EMPTY

    def draw(self, snapshot: Snapshot) -> None:
        self.ring.rotation_z = math.degrees(snapshot.rotation)

        self.ball_mesh.vertices = [_to_screen(x, y) for x, y in snapshot.positions]
        self.ball_mesh.colors = [_TEAM_COLORS[c] for c in snapshot.colors]
        self.ball_mesh.generate()

        self._set_pips(self.red_pips, snapshot.red_score)
        self._set_pips(self.blue_pips, snapshot.blue_score)
        self.red_count.text = f"Red: {snapshot.red_count}"
        self.blue_count.text = f"Blue: {snapshot.blue_count}"

        won = snapshot.final_winner is not None
        self.overlay.enabled = won
        self.winner_text.enabled = won
        if won:
            self.winner_text.text = f"{snapshot.final_winner.name} WON THE MATCH"


# ──────────────────────────────────────────
# Frame loop wiring
# ──────────────────────────────────────────

renderer = UrsinaRenderer()
sound = UrsinaSound()
loop = FrameLoop(ctrl, renderer, sound, clock=time.perf_counter)

# One-shot audio unlock listener, released on first use or at teardown
_unlock_keys = {"left mouse down", "right mouse down"}
loop.on_teardown(_unlock_keys.clear)
loop.on_teardown(sound.release)


def input(key):
    if key in _unlock_keys:
        sound.load()
        if sound.loaded:
            loop.unlock_audio()
        _unlock_keys.clear()

    if key == "r":
        ctrl.new_match()
    elif key in PRESETS:
        fn, label = PRESETS[key]
        ctrl.load_scenario(fn, label)
    elif key == "escape":
        loop.stop()
        application.quit()


def update():
    loop.on_frame(time.perf_counter())
    log_events(ctrl.drain_pending_events())


# ──────────────────────────────────────────
# Run
# ──────────────────────────────────────────

if __name__ == "__main__":
    loop.start()
    app.run()
