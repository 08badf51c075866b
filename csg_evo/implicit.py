"""
Implicit primitives used as CSG tree leaves.

Each primitive carries a signed distance function and the sample points
(N x 3, or N x 6 with normals) that were attributed to it.
"""

from typing import Any, Dict, List, Optional

import numpy as np


class ImplicitFunction:
    """Base class for implicit primitives"""

    def __init__(self, name: str, points: Optional[np.ndarray] = None):
        self.name = name
        self.points = np.zeros((0, 6)) if points is None else np.asarray(points, dtype=float)

    def signed_distance(self, points: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    def sample_surface(self, count: int, rng: np.random.Generator) -> np.ndarray:
        """Return `count` surface points with outward normals (count x 6)."""
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"


class Sphere(ImplicitFunction):
    """Sphere given by center and radius"""

    def __init__(self, name: str, center, radius: float, points: Optional[np.ndarray] = None):
        super().__init__(name, points)
        self.center = np.asarray(center, dtype=float)
        self.radius = float(radius)
        if self.radius <= 0:
            raise ValueError(f"Sphere radius must be positive, got: {radius}")

    def signed_distance(self, points: np.ndarray) -> np.ndarray:
        points = np.atleast_2d(points)[:, :3]
        return np.linalg.norm(points - self.center, axis=1) - self.radius

    def sample_surface(self, count: int, rng: np.random.Generator) -> np.ndarray:
        normals = rng.normal(size=(count, 3))
        normals /= np.linalg.norm(normals, axis=1, keepdims=True)
        return np.hstack([self.center + self.radius * normals, normals])


class Box(ImplicitFunction):
    """Axis-aligned box given by center and edge lengths"""

    def __init__(self, name: str, center, size, points: Optional[np.ndarray] = None):
        super().__init__(name, points)
        self.center = np.asarray(center, dtype=float)
        self.half_size = np.asarray(size, dtype=float) / 2.0
        if np.any(self.half_size <= 0):
            raise ValueError(f"Box size must be positive along every axis, got: {size}")

    def signed_distance(self, points: np.ndarray) -> np.ndarray:
        points = np.atleast_2d(points)[:, :3]
        q = np.abs(points - self.center) - self.half_size
        outside = np.linalg.norm(np.maximum(q, 0.0), axis=1)
        inside = np.minimum(np.max(q, axis=1), 0.0)
        return outside + inside

    def sample_surface(self, count: int, rng: np.random.Generator) -> np.ndarray:
        # Faces are picked proportionally to their area
        hx, hy, hz = self.half_size
        areas = np.array([hy * hz, hy * hz, hx * hz, hx * hz, hx * hy, hx * hy])
        faces = rng.choice(6, size=count, p=areas / areas.sum())

        local = rng.uniform(-1.0, 1.0, size=(count, 3)) * self.half_size
        normals = np.zeros((count, 3))
        axes = faces // 2
        signs = np.where(faces % 2 == 0, 1.0, -1.0)
        local[np.arange(count), axes] = signs * self.half_size[axes]
        normals[np.arange(count), axes] = signs

        return np.hstack([self.center + local, normals])


def primitive_from_config(entry: Dict[str, Any]) -> ImplicitFunction:
    """
    Build a primitive from a configuration entry.

    Examples:
        {'name': 's0', 'type': 'sphere', 'center': [0, 0, 0], 'radius': 1.0}
        {'name': 'b0', 'type': 'box', 'center': [0, 0, 0], 'size': [1, 2, 1]}

    Raises:
        ValueError: If the entry has an unknown type or misses fields
    """
    kind = entry.get("type")
    name = entry.get("name")
    if not name:
        raise ValueError(f"Primitive entry without name: {entry}")

    if kind == "sphere":
        return Sphere(name, entry["center"], entry["radius"])
    if kind == "box":
        return Box(name, entry["center"], entry["size"])

    raise ValueError(f"Unknown primitive type '{kind}' for primitive '{name}'. Must be 'sphere' or 'box'")


def primitives_from_config(entries: List[Dict[str, Any]]) -> List[ImplicitFunction]:
    primitives = [primitive_from_config(entry) for entry in entries]
    names = [p.name for p in primitives]
    duplicates = {n for n in names if names.count(n) > 1}
    if duplicates:
        raise ValueError(f"Duplicate primitive names: {', '.join(sorted(duplicates))}")
    return primitives


def attach_surface_samples(primitives: List[ImplicitFunction],
                           target,
                           points_per_primitive: int,
                           rng: np.random.Generator,
                           epsilon: float = 1e-6,
                           noise: float = 0.0) -> int:
    """
    Sample each primitive's surface and keep the points lying on the target surface.

    Simulates the output of a primitive detection step for a known target
    shape. Points are stored on each primitive's `points` attribute.

    Args:
        primitives: Primitives to sample
        target: CSG tree describing the target shape (None keeps all samples)
        points_per_primitive: Samples drawn per primitive
        rng: Random number generator
        epsilon: Distance tolerance for "on the target surface"
        noise: Standard deviation of gaussian noise added to kept positions

    Returns:
        Total number of points attached
    """
    total = 0
    for primitive in primitives:
        samples = primitive.sample_surface(points_per_primitive, rng)
        if target is not None:
            on_surface = np.abs(target.signed_distance(samples[:, :3])) <= epsilon
            samples = samples[on_surface]
        if noise > 0 and len(samples):
            samples[:, :3] += rng.normal(scale=noise, size=(len(samples), 3))
        primitive.points = samples
        total += len(samples)
    return total
