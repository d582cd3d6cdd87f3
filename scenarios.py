"""
Scenario Presets
Deterministic set-ups for the ring simulation: an aimed single-ball hit on a
chosen segment, and round races pre-filled close to the ball-count limit.
Each preset builds a controller, optionally runs it, and returns a result dict.
"""

import math
import numpy as np

from controller import RingController
from physics import (
    Ball, Ring, TeamColor, NEUTRAL, RING_RADIUS,
    SEGMENTS, SEGMENT_ANGLE, ROTATION_SPEED,
)

# 400 units/s from the centre: still inside at tick 29 (193.3), touching at tick 30 (200.0)
AIM_SPEED = 400.0
_IMPACT_TICK = 30
_MAX_TICKS = 600


def _make_controller(seed=0, gravity=0.0, round_limit=None) -> RingController:
    ctrl = RingController(rng=np.random.default_rng(seed), gravity=gravity,
                          round_limit=round_limit)
    ctrl.drain_sound_events()
    ctrl.drain_pending_events()
    return ctrl


def _first_segment(color) -> int:
    """Lowest ring-local segment index painted `color`."""
    for i in range(SEGMENTS):
        if Ring.local_color(i) == color:
            return i
    raise ValueError(f"no segment painted {color!r}")


def _on_boundary(ball: Ball) -> bool:
    return float(np.linalg.norm(ball.position)) >= RING_RADIUS - ball.radius - 1e-9


class ScenarioPreset:
    """Each preset lays out balls → (optionally) runs → returns a result dict."""

    @staticmethod
    def aimed_hit(ball_color=TeamColor.RED, segment=TeamColor.RED, run=True) -> dict:
        """
        One ball at the centre, zero gravity, fired at the middle of the first
        segment painted `segment`, leading the target by the rotation the ring
        will have gained by the impact tick.
        """
        ctrl = _make_controller()

        index = _first_segment(segment)
        impact_rotation = ROTATION_SPEED * _IMPACT_TICK * ctrl.FIXED_DT
        angle = impact_rotation + (index + 0.5) * SEGMENT_ANGLE
        ball = Ball(ball_color, velocity=[math.cos(angle) * AIM_SPEED,
                                          math.sin(angle) * AIM_SPEED])
        ctrl.balls = [ball]

        impact_tick = None
        if run:
            for n in range(1, _MAX_TICKS + 1):
                ctrl.tick()
                if _on_boundary(ball):
                    impact_tick = n
                    break

        return {
            "ctrl": ctrl,
            "ball": ball,
            "balls": ctrl.balls,
            "segment_index": index,
            "aim_angle": angle,
            "impact_tick": impact_tick,
            "elapsed": ctrl.ticks * ctrl.FIXED_DT,
        }

    @staticmethod
    def neutral_hit(ball_color=TeamColor.RED, run=True) -> dict:
        return ScenarioPreset.aimed_hit(ball_color, NEUTRAL, run=run)

    @staticmethod
    def opposite_hit(ball_color=TeamColor.RED, run=True) -> dict:
        other = TeamColor.BLUE if ball_color == TeamColor.RED else TeamColor.RED
        return ScenarioPreset.aimed_hit(ball_color, other, run=run)

    @staticmethod
    def round_race(red=10, blue=9, round_limit=10, red_score=0, blue_score=0,
                   run=True) -> dict:
        """
        Pool pre-filled with resting balls at the centre (zero gravity, so no
        collisions), scores preset. One tick settles the round.
        """
        ctrl = _make_controller(round_limit=round_limit)
        ctrl.red_score  = red_score
        ctrl.blue_score = blue_score
        ctrl.balls = (
            [Ball(TeamColor.RED) for _ in range(red)] +
            [Ball(TeamColor.BLUE) for _ in range(blue)]
        )
        if run:
            ctrl.tick()
        return {
            "ctrl": ctrl,
            "balls": ctrl.balls,
            "phase": ctrl.phase,
            "red_score": ctrl.red_score,
            "blue_score": ctrl.blue_score,
            "final_winner": ctrl.final_winner,
        }

    @staticmethod
    def final_round(winner=TeamColor.RED, round_limit=10, run=True) -> dict:
        """`winner` sits on WIN_SCORE - 1 and has just filled its pool."""
        last = RingController.WIN_SCORE - 1
        if winner == TeamColor.RED:
            return ScenarioPreset.round_race(round_limit, 1, round_limit,
                                             red_score=last, run=run)
        return ScenarioPreset.round_race(1, round_limit, round_limit,
                                         blue_score=last, run=run)


PRESETS = {
    "1": (ScenarioPreset.aimed_hit,    "1: Same-color hit"),
    "2": (ScenarioPreset.opposite_hit, "2: Opposite-color hit"),
    "3": (ScenarioPreset.neutral_hit,  "3: Neutral hit"),
    "4": (ScenarioPreset.round_race,   "4: Round race"),
    "5": (ScenarioPreset.final_round,  "5: Final round"),
}
