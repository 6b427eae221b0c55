"""
Identification of detected sources with catalog stars by comparing the shapes of triangles.

A triangle is described by the lengths of its sides ``(p0, p1)``, ``(p1, p2)``, and ``(p2, p0)`` normalized by the
longest one, and by the orientation of its first side. Two triangles are similar if all normalized sides agree
within a tolerance, their sizes are within a factor of 2.5 and their orientations differ by at most 90 degrees.
Once more than one match has been found, new matches must also agree with the running mean of size ratio and
orientation difference.
"""
import logging
import math
from dataclasses import dataclass
from typing import Any, List, Sequence, Tuple

import numpy as np
from numpy.typing import NDArray

log = logging.getLogger(__name__)


"""Maximum size ratio between catalog and source triangle."""
MAX_SCALE_RATIO = 2.5

"""Maximum deviation of the size ratio from the running mean."""
MAX_SCALE_DEVIATION = 0.2

"""Maximum deviation of the orientation difference from the running mean, in radians."""
MAX_ANGLE_DEVIATION = math.radians(5.0)


@dataclass
class Triangle:
    """Triangle from three points.

    Attributes:
        lengths: Side lengths normalized by the longest side.
        longest: Length of longest side.
        angle: Orientation of first side in radians.
    """

    lengths: Tuple[float, float, float]
    longest: float
    angle: float

    @classmethod
    def from_points(cls, x: Sequence[float], y: Sequence[float], i: int, j: int, k: int) -> "Triangle":
        """Create triangle from three of the given points.

        Args:
            x: X coordinates of points.
            y: Y coordinates of points.
            i: Index of first point.
            j: Index of second point.
            k: Index of third point.

        Returns:
            New triangle.
        """
        sides = [math.hypot(x[a] - x[b], y[a] - y[b]) for a, b in [(i, j), (j, k), (k, i)]]
        longest = max(sides)
        lengths = (sides[0] / longest, sides[1] / longest, sides[2] / longest)
        return cls(lengths=lengths, longest=longest, angle=math.atan2(y[i] - y[j], x[i] - x[j]))


def orientation_difference(a: float, b: float) -> float:
    """Absolute difference between two angles, folded into [0, pi]."""
    diff = (a - b) % (2.0 * math.pi)
    if diff > math.pi:
        diff = abs(diff - 2.0 * math.pi)
    return diff


def is_similar(l1: Sequence[float], l2: Sequence[float], err: float) -> bool:
    """Whether the normalized side lengths of two triangles agree.

    Args:
        l1: Normalized side lengths of first triangle.
        l2: Normalized side lengths of second triangle.
        err: Maximum relative difference for each side.

    Returns:
        True, if all sides agree.
    """
    for a, b in zip(l1, l2):
        m = min(a, b)
        if m <= 0 or abs(a - b) / m >= err:
            return False
    return True


class TriangleMatcher:
    """Finds catalog triangles matching source triangles, keeping running statistics of accepted matches."""

    __module__ = "obsred.images.processors.astrometry"

    def __init__(self, x: NDArray[Any], y: NDArray[Any], tolerance: float):
        """Create a new matcher.

        Args:
            x: X coordinates of catalog stars.
            y: Y coordinates of catalog stars.
            tolerance: Positional tolerance in pixels.
        """
        self.x = np.asarray(x, dtype=float)
        self.y = np.asarray(y, dtype=float)
        self.tolerance = tolerance
        self.reset()

    def reset(self) -> None:
        """Forget all previous matches."""
        self.nobs = 0
        self.scale = 0.0
        self.angle = 0.0

    def snapshot(self) -> Tuple[int, float, float]:
        """Returns the current running statistics."""
        return self.nobs, self.scale, self.angle

    def restore(self, state: Tuple[int, float, float]) -> None:
        """Restores running statistics from a snapshot."""
        self.nobs, self.scale, self.angle = state

    def find(self, source: Triangle, ids: List[int], tri: int) -> List[Tuple[int, int, int]]:
        """Find all catalog triangles matching the given source triangle.

        Sources that are already identified restrict the search to their catalog star, and catalog stars that are
        identified with other sources are skipped.

        Args:
            source: Triangle of sources tri, tri+1, and tri+2.
            ids: Catalog index for each source, -1 for unidentified.
            tri: Index of first source of triangle.

        Returns:
            List of matching catalog indices.
        """
        n = len(self.x)
        ranges = [range(ids[t], ids[t] + 1) if ids[t] >= 0 else range(n) for t in [tri, tri + 1, tri + 2]]

        # catalog stars used by other sources
        used: dict[int, set[int]] = {}
        for m, c in enumerate(ids):
            if c >= 0:
                used.setdefault(c, set()).add(m)

        def taken(star: int, position: int) -> bool:
            return len(used.get(star, set()) - {position}) > 0

        solutions = []
        for i in ranges[0]:
            for j in ranges[1]:
                if j == i:
                    continue
                for k in ranges[2]:
                    if k == i or k == j:
                        continue
                    if taken(i, tri) or taken(j, tri + 1) or taken(k, tri + 2):
                        continue
                    if self._accept(source, Triangle.from_points(self.x, self.y, i, j, k)):
                        solutions.append((i, j, k))
        return solutions

    def _accept(self, source: Triangle, candidate: Triangle) -> bool:
        """Checks a candidate triangle and updates running statistics on success."""

        # size and orientation
        ratio = candidate.longest / source.longest
        if ratio > MAX_SCALE_RATIO or ratio < 1.0 / MAX_SCALE_RATIO:
            return False
        orientation = orientation_difference(source.angle, candidate.angle)
        if orientation > math.pi / 2.0:
            return False

        # shape
        if not is_similar(source.lengths, candidate.lengths, self.tolerance / max(candidate.longest, source.longest)):
            return False

        # consistent with previous matches?
        if self.nobs > 1:
            dif_scale = (self.scale / self.nobs) / ratio
            dif_angle = orientation_difference(self.angle / self.nobs, orientation)
            if abs(dif_scale - 1.0) > MAX_SCALE_DEVIATION or dif_angle > MAX_ANGLE_DEVIATION:
                return False

        log.debug("Accepted triangle with scale ratio %.3f and orientation difference %.2f deg.", ratio,
                  math.degrees(orientation))
        self.nobs += 1
        self.scale += ratio
        self.angle += orientation
        return True


__all__ = ["Triangle", "TriangleMatcher", "is_similar", "orientation_difference"]
