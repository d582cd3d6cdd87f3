"""
Physics Engine Tests: ring classification, reflection, clamping and spawning.

Collision tests run with gravity disabled so a ball travels in a straight
line and the segment it reaches is known in advance.
"""

import sys
import os
import math
import numpy as np
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from physics import (
    Ball, Ring, PhysicsEngine, TeamColor, NEUTRAL,
    RING_RADIUS, BALL_RADIUS, SEGMENTS, SEGMENT_ANGLE, ROTATION_SPEED,
    SPAWN_SPEED_MIN, SPAWN_SPEED_RANGE,
)

DT = 1.0 / 60.0
LIMIT = RING_RADIUS - BALL_RADIUS


# ── Helpers ──────────────────────────────────────────────

def segment_center(index: int, rotation: float = 0.0) -> float:
    """World angle of the middle of ring-local segment `index`."""
    return rotation + (index + 0.5) * SEGMENT_ANGLE


def outbound_ball(color, angle, dist=LIMIT - 1.0, speed=300.0, veer=0.0):
    """Ball at `dist` from the centre on `angle`, heading outward (+veer rad)."""
    return Ball(
        color,
        position=[dist * math.cos(angle), dist * math.sin(angle)],
        velocity=[speed * math.cos(angle + veer), speed * math.sin(angle + veer)],
    )


def make_engine(seed=0, gravity=0.0):
    return PhysicsEngine(gravity=gravity, rng=np.random.default_rng(seed))


# ── Ring ─────────────────────────────────────────────────

class TestRingClassification:

    @pytest.mark.parametrize("index, expected", [
        (0, TeamColor.RED), (1, TeamColor.BLUE), (2, TeamColor.RED),
        (3, TeamColor.BLUE), (4, TeamColor.RED), (5, TeamColor.BLUE),
        (6, NEUTRAL), (7, NEUTRAL), (8, NEUTRAL),
        (9, NEUTRAL), (10, NEUTRAL), (11, NEUTRAL),
    ])
    def test_segment_colors_at_zero_rotation(self, index, expected):
        ring = Ring()
        assert ring.segment_color_at(segment_center(index), 0.0) == expected

    def test_half_the_ring_is_colored(self):
        colors = Ring().segment_colors()
        assert len(colors) == SEGMENTS
        assert colors.count(NEUTRAL) == SEGMENTS // 2
        assert colors.count(TeamColor.RED) == colors.count(TeamColor.BLUE) == 3

    def test_rotation_carries_segments_forward(self):
        """A full segment of rotation moves segment 0's color onto the next slot."""
        ring = Ring()
        angle = segment_center(1)
        assert ring.segment_color_at(angle, 0.0) == TeamColor.BLUE
        assert ring.segment_color_at(angle, SEGMENT_ANGLE) == TeamColor.RED

    @pytest.mark.parametrize("index", range(SEGMENTS))
    @pytest.mark.parametrize("rotation", [0.0, 0.37, 5.9, 123.4])
    def test_classification_is_periodic(self, index, rotation):
        ring = Ring()
        theta = segment_center(index, rotation)
        assert ring.segment_color_at(theta, rotation) == \
            ring.segment_color_at(theta + 2 * math.pi, rotation)
        assert ring.segment_color_at(theta, rotation) == \
            ring.segment_color_at(theta - 2 * math.pi, rotation)

    def test_negative_atan2_angles(self):
        """atan2 returns (-pi, pi]; the lower half must map onto segments 6..11."""
        ring = Ring()
        assert ring.segment_color_at(-0.5 * SEGMENT_ANGLE, 0.0) is NEUTRAL
        assert ring.segment_index(-0.5 * SEGMENT_ANGLE, 0.0) == SEGMENTS - 1

    def test_large_accumulated_rotation(self):
        ring = Ring()
        laps = 40 * 2 * math.pi
        for i in range(SEGMENTS):
            assert ring.segment_color_at(segment_center(i, laps), laps) == ring.local_color(i)

    def test_defaults_to_current_rotation(self):
        ring = Ring()
        ring.rotation = 2 * SEGMENT_ANGLE
        angle = segment_center(3)
        assert ring.segment_color_at(angle) == ring.segment_color_at(angle, 2 * SEGMENT_ANGLE)

    def test_advance_and_reset(self):
        ring = Ring()
        for _ in range(60):
            ring.advance(DT)
        assert ring.rotation == pytest.approx(ROTATION_SPEED)
        ring.reset()
        assert ring.rotation == 0.0


# ── Spawn ────────────────────────────────────────────────

class TestSpawn:

    def test_spawn_appends_at_center(self):
        engine = make_engine()
        balls = []
        ball = engine.spawn(balls, TeamColor.RED)
        assert len(balls) == 1 and balls[0] is ball
        np.testing.assert_array_equal(ball.position, [0.0, 0.0])
        assert ball.color == TeamColor.RED
        assert ball.radius == BALL_RADIUS

    def test_spawn_launches_upward_within_speed_range(self):
        engine = make_engine(seed=3)
        balls = []
        for _ in range(200):
            engine.spawn(balls, TeamColor.BLUE)
        for b in balls:
            assert SPAWN_SPEED_MIN - 1e-9 <= b.speed < SPAWN_SPEED_MIN + SPAWN_SPEED_RANGE + 1e-9
            # -90deg +- 90deg: never pointing down (+y) on the drawing surface
            assert b.velocity[1] <= 1e-9

    def test_spawn_leaves_existing_balls_alone(self):
        engine = make_engine()
        first = Ball(TeamColor.RED, position=[10.0, -20.0], velocity=[1.0, 2.0])
        balls = [first]
        engine.spawn(balls, TeamColor.RED)
        assert balls[0] is first
        np.testing.assert_array_equal(first.position, [10.0, -20.0])
        np.testing.assert_array_equal(first.velocity, [1.0, 2.0])

    def test_spawn_records_pop_event(self):
        engine = make_engine()
        engine.spawn([], TeamColor.BLUE)
        assert engine.drain_events() == [{"type": "pop", "color": TeamColor.BLUE}]
        assert engine.events == []

    def test_spawn_rejects_neutral(self):
        with pytest.raises(ValueError):
            make_engine().spawn([], NEUTRAL)

    def test_same_seed_same_launch(self):
        a = make_engine(seed=11).spawn([], TeamColor.RED)
        b = make_engine(seed=11).spawn([], TeamColor.RED)
        np.testing.assert_array_equal(a.velocity, b.velocity)


# ── Integration ──────────────────────────────────────────

class TestIntegration:

    def test_gravity_then_translation(self):
        engine = make_engine(gravity=1200.0)
        ball = Ball(TeamColor.RED, velocity=[60.0, 0.0])
        engine.update([ball], DT)
        assert ball.velocity[1] == pytest.approx(20.0)
        assert ball.position[0] == pytest.approx(1.0)
        assert ball.position[1] == pytest.approx(20.0 * DT)

    def test_ring_rotates_each_tick(self):
        engine = make_engine()
        engine.update([], DT)
        engine.update([], DT)
        assert engine.ring.rotation == pytest.approx(2 * ROTATION_SPEED * DT)


# ── Boundary collision ───────────────────────────────────

class TestBoundaryCollision:

    # Rotation after the first tick of a fresh engine
    ROT = ROTATION_SPEED * DT

    def test_inside_ball_is_untouched(self):
        engine = make_engine()
        ball = Ball(TeamColor.RED, position=[0.0, 0.0], velocity=[30.0, 0.0])
        engine.update([ball], DT)
        np.testing.assert_allclose(ball.velocity, [30.0, 0.0])
        assert engine.drain_events() == []

    def test_clamped_onto_boundary(self):
        engine = make_engine()
        ball = outbound_ball(TeamColor.RED, segment_center(8, self.ROT))
        engine.update([ball], DT)
        assert float(np.linalg.norm(ball.position)) == pytest.approx(LIMIT)

    def test_reflection_preserves_speed(self):
        engine = make_engine()
        ball = outbound_ball(TeamColor.BLUE, segment_center(9, self.ROT), veer=0.3)
        before = ball.speed
        engine.update([ball], DT)
        assert ball.speed == pytest.approx(before, rel=1e-12)

    def test_reflection_flips_normal_component(self):
        engine = make_engine()
        angle = segment_center(7, self.ROT)
        ball = outbound_ball(TeamColor.BLUE, angle, veer=0.4)
        v_in = ball.velocity.copy()
        engine.update([ball], DT)
        n = ball.position / np.linalg.norm(ball.position)
        t = np.array([-n[1], n[0]])
        assert np.dot(ball.velocity, n) == pytest.approx(-np.dot(v_in, n))
        assert np.dot(ball.velocity, t) == pytest.approx(np.dot(v_in, t))

    def test_same_color_hit_spawns_one_clone(self):
        engine = make_engine()
        ball = outbound_ball(TeamColor.RED, segment_center(0, self.ROT))
        balls = [ball]
        spawned = engine.update(balls, DT)
        assert spawned == 1
        assert len(balls) == 2
        assert balls[1].color == TeamColor.RED

    def test_opposite_color_hit_does_not_spawn(self):
        engine = make_engine()
        ball = outbound_ball(TeamColor.RED, segment_center(1, self.ROT))
        balls = [ball]
        assert engine.update(balls, DT) == 0
        assert len(balls) == 1
        assert float(np.linalg.norm(ball.position)) == pytest.approx(LIMIT)

    def test_neutral_hit_bounces_without_spawning(self):
        engine = make_engine()
        ball = outbound_ball(TeamColor.BLUE, segment_center(10, self.ROT))
        balls = [ball]
        assert engine.update(balls, DT) == 0
        assert len(balls) == 1
        assert np.dot(ball.velocity, ball.position) < 0  # now heading inward

    def test_only_spawns_are_recorded(self):
        engine = make_engine()
        clone_hit = outbound_ball(TeamColor.BLUE, segment_center(3, self.ROT))
        bounce = outbound_ball(TeamColor.BLUE, segment_center(8, self.ROT))
        engine.update([clone_hit, bounce], DT)
        assert engine.drain_events() == [{"type": "pop", "color": TeamColor.BLUE}]

    def test_clone_is_stepped_in_same_tick(self):
        """Clones join the pool order and are integrated on the tick they appear."""
        engine = make_engine()
        balls = [outbound_ball(TeamColor.RED, segment_center(2, self.ROT))]
        engine.update(balls, DT)
        clone = balls[1]
        assert float(np.linalg.norm(clone.position)) > 0.0
        assert float(np.linalg.norm(clone.position)) == pytest.approx(clone.speed * DT)


# ── Invariants over long runs ────────────────────────────

class TestContainment:

    def test_no_ball_escapes_the_ring(self):
        engine = PhysicsEngine(rng=np.random.default_rng(42))
        balls = []
        engine.spawn(balls, TeamColor.RED)
        engine.spawn(balls, TeamColor.BLUE)
        for _ in range(300):
            engine.update(balls, DT)
            engine.drain_events()
            radii = np.linalg.norm(np.array([b.position for b in balls]), axis=1)
            assert radii.max() <= LIMIT + 1e-9
        assert len(balls) >= 2
