"""
Geometry helpers used while placing fragments and describing motions.
"""

import math
from typing import Tuple

import numpy as np
from Bio.PDB.vectors import Vector, calc_dihedral
from Bio.SVDSuperimposer import SVDSuperimposer

from confspace.constants import COLLINEAR_TOLERANCE


# -----------------------------
# Exceptions
# -----------------------------
class IllegalAlignmentError(ValueError):
  """Raised when anchor coordinates can't define a unique orientation."""


# -----------------------------
# Functions
# -----------------------------
def are_finite(coords: np.ndarray) -> bool:
  return bool(np.all(np.isfinite(coords)))


def dihedral_degrees(a: np.ndarray, b: np.ndarray, c: np.ndarray, d: np.ndarray) -> float:
  """Return the signed dihedral angle a-b-c-d in degrees, in (-180, 180].

  Args:
    a: First point.
    b: Second point, start of the rotation axis.
    c: Third point, end of the rotation axis.
    d: Fourth point.

  Returns:
    Dihedral angle in degrees (IUPAC sign convention).
  """
  angle = calc_dihedral(Vector(*a), Vector(*b), Vector(*c), Vector(*d))
  return math.degrees(angle)


def is_collinear(points: np.ndarray, tolerance: float = COLLINEAR_TOLERANCE) -> bool:
  """Check whether every point lies (nearly) on the line through the first two distinct points."""
  points = np.asarray(points, dtype=float)
  origin = points[0]
  direction = None
  for p in points[1:]:
    v = p - origin
    norm = np.linalg.norm(v)
    if norm > tolerance:
      direction = v / norm
      break
  if direction is None:
    return True
  for p in points[1:]:
    if np.linalg.norm(np.cross(p - origin, direction)) > tolerance:
      return False
  return True


def superimpose(fixed: np.ndarray, moving: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
  """Least-squares rotation and translation taking ``moving`` onto ``fixed``.

  Args:
    fixed: Reference coordinates, shape (n, 3).
    moving: Coordinates to move, shape (n, 3), in the same order as ``fixed``.

  Returns:
    ``(rot, tran)`` to be applied as ``coords @ rot + tran``.

  Raises:
    IllegalAlignmentError: if either point set is collinear.
  """
  fixed = np.asarray(fixed, dtype=float)
  moving = np.asarray(moving, dtype=float)
  if fixed.shape != moving.shape or fixed.shape[0] < 3:
    raise IllegalAlignmentError(f"Need two matching sets of at least 3 points to align, got {fixed.shape} and {moving.shape}")
  if is_collinear(fixed) or is_collinear(moving):
    raise IllegalAlignmentError("Anchor coordinates are collinear, can't determine an orientation")
  sup = SVDSuperimposer()
  sup.set(fixed, moving)
  sup.run()
  return sup.get_rotran()


def transform(coords: np.ndarray, rot: np.ndarray, tran: np.ndarray) -> np.ndarray:
  return np.dot(np.asarray(coords, dtype=float), rot) + tran
