"""
Primitive sets: the flat genome of the primitive extraction GA.

A PrimitiveSet is an ordered, size-bounded list of Primitive descriptors.
Descriptors are derived from detected manifolds (planes, cylinders, spheres)
by a PrimitiveFactory, which is also where geometric feasibility is decided.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from enum import Enum
from typing import Iterator, List, Optional, Sequence

import numpy as np


class ManifoldType(Enum):
    """Detected surface types"""
    PLANE = "plane"
    CYLINDER = "cylinder"
    SPHERE = "sphere"


class PrimitiveType(Enum):
    """Primitive types a set can contain"""
    BOX = "box"
    CYLINDER = "cylinder"
    SPHERE = "sphere"


# Primitive type that each manifold type gives rise to
PRIMITIVE_FOR_MANIFOLD = {
    ManifoldType.PLANE: PrimitiveType.BOX,
    ManifoldType.CYLINDER: PrimitiveType.CYLINDER,
    ManifoldType.SPHERE: PrimitiveType.SPHERE,
}


@dataclass(eq=False)
class Manifold:
    """
    A detected surface.

    Attributes:
        type: Surface type
        point: Point on the plane, cylinder axis point or sphere center
        normal: Plane normal or cylinder axis direction (unit length)
        radius: Cylinder/sphere radius (0 for planes)
        name: Optional label
    """
    type: ManifoldType
    point: np.ndarray
    normal: np.ndarray
    radius: float = 0.0
    name: str = ""

    def __post_init__(self):
        self.point = np.asarray(self.point, dtype=float)
        normal = np.asarray(self.normal, dtype=float)
        norm = np.linalg.norm(normal)
        self.normal = normal / norm if norm > 0 else normal


@dataclass
class Primitive:
    """
    A primitive descriptor.

    Attributes:
        type: Primitive type
        manifolds: Manifolds the primitive was derived from (box planes come
            in parallel pairs: 0/1, 2/3, 4/5; a cylinder's first manifold is
            the cylinder surface)
        cutout: True if the primitive is subtracted rather than added
    """
    type: PrimitiveType
    manifolds: tuple
    cutout: bool = False

    def copy(self) -> "Primitive":
        return replace(self, manifolds=tuple(self.manifolds))

    def key(self) -> tuple:
        return (self.type.value, tuple(id(m) for m in self.manifolds), self.cutout)


class PrimitiveSet:
    """Ordered list of primitives with an optional maximum size"""

    def __init__(self, primitives: Optional[Sequence[Primitive]] = None, max_size: Optional[int] = None):
        self.max_size = max_size
        self._primitives: List[Primitive] = list(primitives or [])
        if max_size is not None and len(self._primitives) > max_size:
            raise ValueError(
                f"Primitive set holds {len(self._primitives)} primitives, maximum is {max_size}"
            )

    @property
    def is_full(self) -> bool:
        return self.max_size is not None and len(self._primitives) >= self.max_size

    def append(self, primitive: Primitive) -> None:
        if self.is_full:
            raise ValueError(f"Primitive set is full (maximum {self.max_size})")
        self._primitives.append(primitive)

    def remove_at(self, index: int) -> Primitive:
        return self._primitives.pop(index)

    def copy(self) -> "PrimitiveSet":
        return PrimitiveSet([p.copy() for p in self._primitives], self.max_size)

    def num_nodes(self) -> int:
        return len(self._primitives)

    def key(self) -> tuple:
        return tuple(p.key() for p in self._primitives)

    def __len__(self) -> int:
        return len(self._primitives)

    def __iter__(self) -> Iterator[Primitive]:
        return iter(self._primitives)

    def __getitem__(self, index: int) -> Primitive:
        return self._primitives[index]

    def __setitem__(self, index: int, primitive: Primitive) -> None:
        self._primitives[index] = primitive

    def __eq__(self, other) -> bool:
        if not isinstance(other, PrimitiveSet):
            return NotImplemented
        return self.key() == other.key()

    __hash__ = None

    def __repr__(self) -> str:
        return f"PrimitiveSet({[p.type.value for p in self._primitives]})"


class PrimitiveFactory(ABC):
    """
    Creates and perturbs primitive descriptors.

    Both methods return None when no feasible primitive exists; callers must
    skip such results.
    """

    @abstractmethod
    def create_primitive(self, rng: np.random.Generator) -> Optional[Primitive]:
        pass

    @abstractmethod
    def mutate_primitive(self, primitive: Primitive, rng: np.random.Generator) -> Optional[Primitive]:
        pass

    def info(self) -> str:
        return type(self).__name__


class ManifoldPrimitiveFactory(PrimitiveFactory):
    """
    Builds boxes, cylinders and spheres from a fixed set of manifolds.

    Boxes are made of three pairs of parallel planes, each pair
    perpendicular to the planes picked before. Cylinders use a cylinder
    manifold plus up to two cap planes whose normals are parallel to the
    cylinder axis.
    """

    def __init__(self,
                 manifolds: Sequence[Manifold],
                 angle_epsilon: float = np.pi / 9.0,
                 min_distance_between_parallel_planes: float = 0.001):
        if not manifolds:
            raise ValueError("ManifoldPrimitiveFactory requires at least one manifold")
        self.manifolds = list(manifolds)
        self.angle_epsilon = angle_epsilon
        self.min_distance_between_parallel_planes = min_distance_between_parallel_planes
        self.available_types = sorted(
            {PRIMITIVE_FOR_MANIFOLD[m.type] for m in self.manifolds},
            key=lambda t: t.value
        )

    def _is_parallel(self, n1: np.ndarray, n2: np.ndarray) -> bool:
        return abs(float(np.dot(n1, n2))) >= np.cos(self.angle_epsilon)

    def _is_perpendicular(self, n1: np.ndarray, n2: np.ndarray) -> bool:
        return abs(float(np.dot(n1, n2))) <= np.sin(self.angle_epsilon)

    @staticmethod
    def _unused(candidates: List[Manifold], already_used: Sequence[Manifold]) -> List[Manifold]:
        return [m for m in candidates if not any(m is u for u in already_used)]

    @staticmethod
    def _pick(candidates: List[Manifold], rng: np.random.Generator) -> Optional[Manifold]:
        if not candidates:
            return None
        return candidates[int(rng.integers(0, len(candidates)))]

    def get_manifold(self,
                     manifold_type: ManifoldType,
                     rng: np.random.Generator,
                     direction: Optional[np.ndarray] = None,
                     already_used: Sequence[Manifold] = ()) -> Optional[Manifold]:
        """Random unused manifold of a type, optionally with normal parallel to `direction`."""
        candidates = [m for m in self.manifolds if m.type == manifold_type]
        if direction is not None:
            candidates = [m for m in candidates if self._is_parallel(m.normal, direction)]
        return self._pick(self._unused(candidates, already_used), rng)

    def get_parallel_plane(self,
                           plane: Manifold,
                           already_used: Sequence[Manifold],
                           rng: np.random.Generator) -> Optional[Manifold]:
        """Random unused plane parallel to `plane` and at least the minimal distance away."""
        candidates = []
        for m in self._unused([m for m in self.manifolds if m.type == ManifoldType.PLANE], already_used):
            if m is plane or not self._is_parallel(m.normal, plane.normal):
                continue
            distance = abs(float(np.dot(m.point - plane.point, plane.normal)))
            if distance >= self.min_distance_between_parallel_planes:
                candidates.append(m)
        return self._pick(candidates, rng)

    def get_perpendicular_plane(self,
                                planes: Sequence[Manifold],
                                already_used: Sequence[Manifold],
                                rng: np.random.Generator) -> Optional[Manifold]:
        """Random unused plane perpendicular to all `planes`."""
        candidates = [
            m for m in self._unused([m for m in self.manifolds if m.type == ManifoldType.PLANE], already_used)
            if all(self._is_perpendicular(m.normal, p.normal) for p in planes)
        ]
        return self._pick(candidates, rng)

    def _create_box(self, rng: np.random.Generator) -> Optional[Primitive]:
        planes: List[Manifold] = []

        plane = self.get_manifold(ManifoldType.PLANE, rng)
        for _ in range(3):
            if plane is None:
                return None
            planes.append(plane)

            partner = self.get_parallel_plane(plane, planes, rng)
            if partner is None:
                return None
            planes.append(partner)

            if len(planes) < 6:
                plane = self.get_perpendicular_plane(planes, planes, rng)

        return Primitive(PrimitiveType.BOX, tuple(planes))

    def _cylinder_caps(self, cylinder: Manifold, rng: np.random.Generator) -> List[Manifold]:
        caps: List[Manifold] = []
        for _ in range(int(rng.integers(0, 3))):
            cap = self.get_manifold(ManifoldType.PLANE, rng, direction=cylinder.normal, already_used=caps)
            if cap is not None:
                caps.append(cap)
        return caps

    def create_primitive(self, rng: np.random.Generator) -> Optional[Primitive]:
        primitive_type = self.available_types[int(rng.integers(0, len(self.available_types)))]
        primitive = None

        if primitive_type == PrimitiveType.BOX:
            primitive = self._create_box(rng)
        elif primitive_type == PrimitiveType.CYLINDER:
            cylinder = self.get_manifold(ManifoldType.CYLINDER, rng)
            if cylinder is not None:
                primitive = Primitive(PrimitiveType.CYLINDER, (cylinder, *self._cylinder_caps(cylinder, rng)))
        elif primitive_type == PrimitiveType.SPHERE:
            sphere = self.get_manifold(ManifoldType.SPHERE, rng)
            if sphere is not None:
                primitive = Primitive(PrimitiveType.SPHERE, (sphere,))

        if primitive is not None:
            primitive.cutout = bool(rng.random() < 0.5)
        return primitive

    def mutate_primitive(self, primitive: Primitive, rng: np.random.Generator) -> Optional[Primitive]:
        """
        Perturb one primitive.

        Boxes get one plane of a random parallel pair swapped for another
        parallel plane, cylinders get new caps. The cutout flag is redrawn.
        """
        mutated = primitive.copy()

        if primitive.type == PrimitiveType.BOX:
            if len(primitive.manifolds) != 6:
                return None
            pair = int(rng.integers(0, 3)) * 2
            new_plane = self.get_parallel_plane(primitive.manifolds[pair], primitive.manifolds, rng)
            if new_plane is not None:
                planes = list(primitive.manifolds)
                planes[pair + 1] = new_plane
                mutated.manifolds = tuple(planes)

        elif primitive.type == PrimitiveType.CYLINDER:
            cylinder = primitive.manifolds[0]
            mutated.manifolds = (cylinder, *self._cylinder_caps(cylinder, rng))

        mutated.cutout = bool(rng.random() < 0.5)
        return mutated

    def info(self) -> str:
        return (f"ManifoldPrimitiveFactory (manifolds: {len(self.manifolds)}, "
                f"angle epsilon: {self.angle_epsilon:.4f}, "
                f"min parallel plane distance: {self.min_distance_between_parallel_planes})")
