"""
Color Ring Physics Engine
Layer 1: ball integration, rotating segmented ring, reflection and spawning.

World coordinates follow the drawing surface: the ring centre is the origin
and +y points down, so gravity is a positive y acceleration and "straight up"
is -90 degrees.
"""

import enum
import math
import numpy as np
from dataclasses import dataclass, field
from typing import List, Optional, Union

# ──────────────────────────────────────────────
# Constants (drawing units, seconds)
# ──────────────────────────────────────────────
RING_CENTER = (0.0, 0.0)
RING_RADIUS: float = 200.0
SEGMENTS: int = 12
SEGMENT_ANGLE: float = 2 * math.pi / SEGMENTS
COLORED_SEGMENTS: int = 6           # ring-local indices 0..5 alternate red/blue
ROTATION_SPEED: float = 0.6         # rad/s

BALL_RADIUS: float = 6.0
GRAVITY: float = 1200.0             # units/s^2

# Spawn launch: speed in [MIN, MIN + RANGE), angle within +-SPAWN_CONE/2 of straight up
SPAWN_SPEED_MIN: float = 180.0
SPAWN_SPEED_RANGE: float = 120.0
SPAWN_CONE: float = math.pi
SPAWN_HEADING: float = -math.pi / 2


class TeamColor(enum.Enum):
    RED = "red"
    BLUE = "blue"


class Neutral(enum.Enum):
    """Tag for the uncolored half of the ring."""
    NEUTRAL = "neutral"


NEUTRAL = Neutral.NEUTRAL

SegmentColor = Union[TeamColor, Neutral]


@dataclass
class Ball:
    """Simulated ball: 2D position/velocity and a team color."""
    color: TeamColor
    position: np.ndarray = field(default_factory=lambda: np.array(RING_CENTER))
    velocity: np.ndarray = field(default_factory=lambda: np.array([0.0, 0.0]))
    radius: float = BALL_RADIUS

    def __post_init__(self):
        self.position = np.array(self.position, dtype=float)
        self.velocity = np.array(self.velocity, dtype=float)

    @property
    def speed(self) -> float:
        return float(np.linalg.norm(self.velocity))


class Ring:
    """Circular boundary split into SEGMENTS slices; the colored half rotates."""

    def __init__(self):
        self.center = np.array(RING_CENTER, dtype=float)
        self.radius = RING_RADIUS
        self.rotation = 0.0

    def reset(self) -> None:
        self.rotation = 0.0

    def advance(self, dt: float) -> None:
        # Only ever read through a modulo, so no wraparound.
        self.rotation += ROTATION_SPEED * dt

    @staticmethod
    def local_color(index: int) -> SegmentColor:
        """Color of a segment by its ring-local (pre-rotation) index."""
        if index < COLORED_SEGMENTS:
            return TeamColor.RED if index % 2 == 0 else TeamColor.BLUE
        return NEUTRAL

    @staticmethod
    def segment_index(world_angle: float, rotation: float) -> int:
        local_angle = (world_angle - rotation) % (2 * math.pi)
        # float rounding can land exactly on SEGMENTS just below 2*pi
        return min(int(local_angle // SEGMENT_ANGLE), SEGMENTS - 1)

    def segment_color_at(self, world_angle: float,
                         rotation: Optional[float] = None) -> SegmentColor:
        """
        Classify a world angle (radians, atan2 convention) against the ring.

        Args:
            world_angle: Angle of the contact point around the ring centre.
            rotation:    Ring rotation to classify against. Defaults to the
                         ring's current rotation.
        """
        if rotation is None:
            rotation = self.rotation
        return self.local_color(self.segment_index(world_angle, rotation))

    def segment_colors(self) -> List[SegmentColor]:
        """All segment colors in ring-local order (index 0 first)."""
        return [self.local_color(i) for i in range(SEGMENTS)]

    def angle_of(self, point: np.ndarray) -> float:
        d = np.asarray(point, dtype=float) - self.center
        return float(math.atan2(d[1], d[0]))


class PhysicsEngine:
    """Fixed-step ball physics inside a rotating segmented ring."""

    def __init__(self, ring: Optional[Ring] = None, gravity: float = GRAVITY,
                 rng: Optional[np.random.Generator] = None):
        self.ring = ring if ring is not None else Ring()
        self.gravity = gravity
        self.rng = rng if rng is not None else np.random.default_rng()
        self.events: list = []

    # ──────────────────────────────────────────
    # Spawn
    # ──────────────────────────────────────────
    def spawn(self, balls: List[Ball], color: TeamColor) -> Ball:
        """
        Append one new ball of `color` at the ring centre.

        Launch direction is uniform within the upward half-plane cone and
        speed is uniform in [SPAWN_SPEED_MIN, SPAWN_SPEED_MIN + SPAWN_SPEED_RANGE).
        Existing balls are never touched.
        """
        if not isinstance(color, TeamColor):
            raise ValueError(f"spawn color must be a TeamColor, got {color!r}")
        angle = SPAWN_HEADING + (self.rng.random() - 0.5) * SPAWN_CONE
        speed = SPAWN_SPEED_MIN + self.rng.random() * SPAWN_SPEED_RANGE
        ball = Ball(
            color,
            position=self.ring.center.copy(),
            velocity=[math.cos(angle) * speed, math.sin(angle) * speed],
        )
        balls.append(ball)
        self.events.append({"type": "pop", "color": color})
        return ball

    # ──────────────────────────────────────────
    # Integration
    # ──────────────────────────────────────────
    def _integrate(self, ball: Ball, dt: float) -> None:
        """Explicit Euler: gravity into velocity, then velocity into position."""
        ball.velocity[1] += self.gravity * dt
        ball.position = ball.position + ball.velocity * dt

    # ──────────────────────────────────────────
    # Boundary collision
    # ──────────────────────────────────────────
    def _resolve_boundary(self, ball: Ball) -> Optional[SegmentColor]:
        """
        Clamp and reflect a ball touching the ring.

        Returns the color of the segment that was hit, or None when the ball
        is still inside the ring. Every segment reflects, colored or not.
        """
        limit = self.ring.radius - ball.radius
        diff = ball.position - self.ring.center
        dist = float(np.linalg.norm(diff))
        if dist < limit:
            return None

        segment = self.ring.segment_color_at(math.atan2(diff[1], diff[0]))

        normal = diff / dist
        ball.position = self.ring.center + normal * limit
        # v' = v - 2 (v.n) n
        ball.velocity = ball.velocity - 2.0 * np.dot(ball.velocity, normal) * normal
        return segment

    # ──────────────────────────────────────────
    # Main update
    # ──────────────────────────────────────────
    def update(self, balls: List[Ball], dt: float) -> int:
        """
        Advance one fixed tick: rotate the ring, then step every ball in pool
        order. Clones appended during the tick are stepped in the same pass.

        Returns:
            Number of balls spawned this tick.
        """
        self.ring.advance(dt)

        spawned = 0
        i = 0
        while i < len(balls):
            ball = balls[i]
            self._integrate(ball, dt)
            segment = self._resolve_boundary(ball)
            if segment == ball.color:
                self.spawn(balls, ball.color)
                spawned += 1
            i += 1
        return spawned

    def drain_events(self) -> list:
        """Return and clear the events recorded since the last drain."""
        events = self.events
        self.events = []
        return events
