"""
RingController: Layer 2 (Game Logic)

Owns all simulation state: the ball pool, the ring (via the physics engine),
per-round ball race, match score and final winner.
Communicates with Layer 3 (main.py / server.py) via:
  - ctrl.snapshot()          - immutable state for one draw call
  - ctrl.sound_events        - SoundEvent tags queued since the last drain
  - ctrl.pending_events      - round/match notices (round_start, round_won,
                               match_won, new_match, scenario); hosts pass
                               them to log_events()

Layer 3 calls:
  ctrl.frame(now)            - turn a wall-clock timestamp into fixed ticks
  ctrl.tick()                - advance exactly one fixed tick
  ctrl.new_match()           - zero the score and start over
"""

import enum
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Protocol, Tuple

import numpy as np

from physics import PhysicsEngine, Ball, Ring, TeamColor, GRAVITY


class SoundEvent(enum.Enum):
    POP = "pop"
    ROUND_WIN = "round_win"
    MATCH_WIN = "match_win"


class Phase(enum.Enum):
    PLAYING = "playing"
    ROUND_OVER = "round_over"
    MATCH_OVER = "match_over"


# ── Fixed-step clock ──────────────────────────────────────────────────────────

class FixedStepClock:
    """Converts wall-clock frame timestamps into a whole number of fixed steps.

    Elapsed real time per frame is clamped to `max_frame` so a stall or a
    suspended tab never triggers a large catch-up burst. Any remainder smaller
    than one step stays in the accumulator for the next frame.
    """

    def __init__(self, step: float, max_frame: float):
        if step <= 0:
            raise ValueError(f"fixed step must be positive, got {step}")
        self.step = step
        self.max_frame = max_frame
        self.accumulator = 0.0
        self.last_time: Optional[float] = None

    def reset(self, now: Optional[float] = None) -> None:
        self.accumulator = 0.0
        self.last_time = now

    def advance(self, now: float) -> int:
        """Consume one frame at timestamp `now` (seconds); return steps to run."""
        if self.last_time is None:
            self.last_time = now
            return 0
        elapsed = min(now - self.last_time, self.max_frame)
        self.last_time = now
        self.accumulator += elapsed

        steps = 0
        while self.accumulator >= self.step:
            self.accumulator -= self.step
            steps += 1
        return steps


# ── Snapshot ──────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Snapshot:
    """Everything a renderer needs for one frame."""
    rotation: float
    positions: np.ndarray               # (N, 2)
    colors: Tuple[TeamColor, ...]
    red_score: int
    blue_score: int
    red_count: int
    blue_count: int
    game_over: bool
    restart_timer: float
    final_winner: Optional[TeamColor]
    phase: Phase

    def to_dict(self) -> dict:
        """JSON-ready form: rounded coordinates, colors as names."""
        return {
            "rotation": round(self.rotation, 5),
            "balls": [
                [round(float(p[0]), 2), round(float(p[1]), 2), c.value]
                for p, c in zip(self.positions, self.colors)
            ],
            "red_score": self.red_score,
            "blue_score": self.blue_score,
            "red_count": self.red_count,
            "blue_count": self.blue_count,
            "game_over": self.game_over,
            "final_winner": self.final_winner.name if self.final_winner else None,
            "phase": self.phase.value,
        }


# ── Pending-event log lines ───────────────────────────────────────────────────

def describe_event(ev: dict) -> Optional[str]:
    """Tagged log line for a pending event, or None for events not logged."""
    kind = ev["type"]
    if kind == "round_won":
        red, blue = ev["score"]
        return (f"[ROUND] Round {ev['round']}: red {ev['red_count']} / "
                f"blue {ev['blue_count']}  score {red}-{blue}")
    if kind == "match_won":
        red, blue = ev["score"]
        return f"[MATCH] {ev['winner'].name} won the match {red}-{blue}"
    if kind == "new_match":
        return "[MATCH] New match"
    if kind == "scenario":
        return f"[MATCH] Scenario {ev['label']}"
    return None


def log_events(events: List[dict]) -> None:
    for ev in events:
        line = describe_event(ev)
        if line:
            print(line)


# ── Layer 3 collaborators ─────────────────────────────────────────────────────

class Renderer(Protocol):
    def draw(self, snapshot: Snapshot) -> None: ...


class SoundSink(Protocol):
    def on_event(self, tag: SoundEvent) -> None: ...


# ── Controller ────────────────────────────────────────────────────────────────

class RingController:
    """Layer 2: round/match state machine + physics orchestration."""

    # ── Class-level constants ─────────────────────────────────────────────────
    FIXED_DT      = 1.0 / 60.0
    MAX_FRAME_DT  = 0.1
    ROUND_LIMIT   = 1000
    WIN_SCORE     = 5
    RESTART_DELAY = 1.5

    def __init__(self, rng: Optional[np.random.Generator] = None,
                 gravity: float = GRAVITY, round_limit: Optional[int] = None):
        # Physics
        self.engine = PhysicsEngine(gravity=gravity, rng=rng)
        self.balls: List[Ball] = []

        # Round state
        self.game_over     = False
        self.restart_timer = 0.0
        self.round_number  = 0
        self.round_limit   = round_limit if round_limit is not None else self.ROUND_LIMIT
        # Restored at the next round start after a scenario swaps them out
        self._match_engine = self.engine
        self._match_round_limit = self.round_limit

        # Match state
        self.red_score    = 0
        self.blue_score   = 0
        self.final_winner: Optional[TeamColor] = None

        self.clock = FixedStepClock(self.FIXED_DT, self.MAX_FRAME_DT)
        self.ticks = 0

        # Event queues
        self.sound_events: List[SoundEvent] = []
        self.pending_events: List[dict] = []

        self.reset_round()

    # ── Read-only views ───────────────────────────────────────────────────────

    @property
    def ring(self) -> Ring:
        return self.engine.ring

    @property
    def rotation(self) -> float:
        return self.engine.ring.rotation

    @property
    def phase(self) -> Phase:
        if self.final_winner is not None:
            return Phase.MATCH_OVER
        if self.game_over:
            return Phase.ROUND_OVER
        return Phase.PLAYING

    def team_counts(self) -> Tuple[int, int]:
        """(red, blue) ball counts in the current pool."""
        red = sum(1 for b in self.balls if b.color == TeamColor.RED)
        return red, len(self.balls) - red

    def snapshot(self) -> Snapshot:
        red, blue = self.team_counts()
        if self.balls:
            positions = np.array([b.position for b in self.balls], dtype=float)
        else:
            positions = np.zeros((0, 2))
        return Snapshot(
            rotation=self.rotation,
            positions=positions,
            colors=tuple(b.color for b in self.balls),
            red_score=self.red_score,
            blue_score=self.blue_score,
            red_count=red,
            blue_count=blue,
            game_over=self.game_over,
            restart_timer=self.restart_timer,
            final_winner=self.final_winner,
            phase=self.phase,
        )

    # ──────────────────────────────────────────────────────────────────────────
    # Round / match lifecycle
    # ──────────────────────────────────────────────────────────────────────────

    def reset_round(self) -> None:
        """Ring back to rotation 0 and a fresh pool of one red, one blue ball.

        A scenario only lasts for the round it was loaded into; the match
        engine and round limit are back in force from here on.
        """
        self.engine      = self._match_engine
        self.round_limit = self._match_round_limit
        self.engine.ring.reset()
        self.balls = []
        self.engine.spawn(self.balls, TeamColor.RED)
        self.engine.spawn(self.balls, TeamColor.BLUE)
        self.game_over     = False
        self.restart_timer = 0.0
        self.round_number += 1
        self._collect_engine_events()
        self.pending_events.append({"type": "round_start", "round": self.round_number})

    def new_match(self) -> None:
        """Zero both scores, clear the winner and start round 1."""
        self.red_score    = 0
        self.blue_score   = 0
        self.final_winner = None
        self.round_number = 0
        self.reset_round()
        self.pending_events.append({"type": "new_match"})

    def load_scenario(self, scenario_fn, label: str) -> None:
        """Adopt the state of a scenario preset set up with run=False (keys 1-5)."""
        result = scenario_fn(run=False)
        src: RingController = result["ctrl"]

        self.engine        = src.engine
        self.balls         = src.balls
        self.round_limit   = src.round_limit
        self.red_score     = src.red_score
        self.blue_score    = src.blue_score
        self.final_winner  = None
        self.game_over     = False
        self.restart_timer = 0.0
        self.pending_events.append({"type": "scenario", "label": label})

    # ──────────────────────────────────────────────────────────────────────────
    # Main loop
    # ──────────────────────────────────────────────────────────────────────────

    def frame(self, now: float) -> int:
        """Run every fixed tick owed at wall-clock time `now`; return how many."""
        steps = self.clock.advance(now)
        for _ in range(steps):
            self.tick()
        return steps

    def tick(self, dt: Optional[float] = None) -> None:
        """Advance the state machine by one fixed tick."""
        if dt is None:
            dt = self.FIXED_DT
        if self.final_winner is not None:
            return

        if self.game_over:
            # Balls stay frozen while the restart timer drains.
            self.restart_timer -= dt
            if self.restart_timer <= 0:
                self.reset_round()
            return

        self.engine.update(self.balls, dt)
        self._collect_engine_events()
        self.ticks += 1
        self._check_round_result()

    def _collect_engine_events(self) -> None:
        for ev in self.engine.drain_events():
            if ev["type"] == "pop":
                self.sound_events.append(SoundEvent.POP)

    # ──────────────────────────────────────────────────────────────────────────
    # Game rules
    # ──────────────────────────────────────────────────────────────────────────

    def _check_round_result(self) -> None:
        red, blue = self.team_counts()
        red_won  = red  >= self.round_limit
        blue_won = blue >= self.round_limit
        if not (red_won or blue_won):
            return

        # Independent checks: both teams can take the round on the same tick.
        if red_won:
            self.red_score += 1
        if blue_won:
            self.blue_score += 1
        self.sound_events.append(SoundEvent.ROUND_WIN)
        self.pending_events.append({
            "type": "round_won", "round": self.round_number,
            "red": red_won, "blue": blue_won,
            "red_count": red, "blue_count": blue,
            "score": (self.red_score, self.blue_score),
        })

        # Red is checked first, so a double cross in the deciding round goes to red.
        if self.red_score >= self.WIN_SCORE:
            self._end_match(TeamColor.RED)
        elif self.blue_score >= self.WIN_SCORE:
            self._end_match(TeamColor.BLUE)
        else:
            self.game_over     = True
            self.restart_timer = self.RESTART_DELAY

    def _end_match(self, winner: TeamColor) -> None:
        self.final_winner = winner
        self.sound_events.append(SoundEvent.MATCH_WIN)
        self.pending_events.append({
            "type": "match_won", "winner": winner,
            "score": (self.red_score, self.blue_score),
        })

    def drain_sound_events(self) -> List[SoundEvent]:
        events = self.sound_events
        self.sound_events = []
        return events

    def drain_pending_events(self) -> List[dict]:
        events = self.pending_events
        self.pending_events = []
        return events


# ── Frame loop (host glue) ────────────────────────────────────────────────────

class FrameLoop:
    """One host frame = zero or more fixed ticks, then exactly one draw.

    Sound is gated behind `unlock_audio()`, which hosts call from the first
    click/touch; tags produced while locked are dropped. A sink that fails
    while playing is switched off and the frame carries on. `stop()` runs the
    teardown callbacks registered by the host (frame scheduler, input
    listeners) in reverse order.
    """

    def __init__(self, ctrl: RingController, renderer: Renderer,
                 sound: Optional[SoundSink] = None,
                 clock: Callable[[], float] = time.perf_counter):
        self.ctrl = ctrl
        self.renderer = renderer
        self.sound = sound
        self.clock = clock
        self.running = False
        self.audio_enabled = False
        self._teardown: List[Callable[[], None]] = []

    def on_teardown(self, fn: Callable[[], None]) -> None:
        self._teardown.append(fn)

    def start(self) -> None:
        if self.running:
            return
        self.ctrl.clock.reset(self.clock())
        self.running = True

    def stop(self) -> None:
        self.running = False
        while self._teardown:
            self._teardown.pop()()

    def unlock_audio(self) -> None:
        if self.audio_enabled or self.sound is None:
            return
        self.audio_enabled = True
        print("[SND] Audio unlocked")

    def _play(self, tag: SoundEvent) -> None:
        try:
            self.sound.on_event(tag)
        except Exception as e:
            self.audio_enabled = False
            print(f"[SND] Audio disabled: {e}")

    def on_frame(self, now: Optional[float] = None) -> int:
        if not self.running:
            return 0
        steps = self.ctrl.frame(self.clock() if now is None else now)
        for tag in self.ctrl.drain_sound_events():
            if self.audio_enabled:
                self._play(tag)
        self.renderer.draw(self.ctrl.snapshot())
        return steps
