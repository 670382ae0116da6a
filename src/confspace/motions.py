"""
Continuous motions of a placed conformation, resolved onto molecule atoms.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Optional

from confspace.conflib import DihedralAngle
from confspace.constants import (
  DEFAULT_DIHEDRAL_RADIUS_DEGREES,
  DEFAULT_INCLUDE_HYDROXYLS,
  DEFAULT_INCLUDE_NON_HYDROXYL_H_GROUPS,
)
from confspace.geometry import dihedral_degrees
from confspace.molecule import Atom, Molecule

if TYPE_CHECKING:
  from confspace.design import DesignPosition


@dataclass
class DihedralSettings:
  """How dihedral motions of a fragment are compiled.

  Attributes:
    radius_degrees: Half-width of the allowed interval around the as-built angle
    include_hydroxyls: Keep motions that only rotate a hydroxyl hydrogen
    include_non_hydroxyl_h_groups: Keep motions that only rotate other hydrogen groups, eg. methyls
  """

  radius_degrees: float = DEFAULT_DIHEDRAL_RADIUS_DEGREES
  include_hydroxyls: bool = DEFAULT_INCLUDE_HYDROXYLS
  include_non_hydroxyl_h_groups: bool = DEFAULT_INCLUDE_NON_HYDROXYL_H_GROUPS


@dataclass
class DihedralDescription:
  """A dihedral motion resolved against the molecule with its conformation set."""

  a: Atom
  b: Atom
  c: Atom
  d: Atom
  rotated: List[Atom]
  initial_degrees: float
  min_degrees: float
  max_degrees: float


def find_rotated_atoms(mol: Molecule, b: Atom, c: Atom) -> List[Atom]:
  """Atoms that move when rotating about the b-c bond: ``c``'s side, not counting ``c``."""
  return [atom for atom, _ in mol.bfs(c, should_visit=lambda _from, to, _dist: to.id != b.id)]


def is_h_group(rotated: List[Atom]) -> bool:
  return len(rotated) > 0 and all(atom.is_hydrogen for atom in rotated)


def is_hydroxyl(c: Atom, rotated: List[Atom]) -> bool:
  return is_h_group(rotated) and len(rotated) == 1 and c.element == "O"


def describe_dihedral(pos: DesignPosition, motion: DihedralAngle, settings: DihedralSettings) -> Optional[DihedralDescription]:
  """Resolve a dihedral motion at a design position with its conformation set.

  Returns:
    The description, or ``None`` when settings exclude this hydrogen group
  """
  a, b, c, d = (pos.resolve(p) for p in (motion.a, motion.b, motion.c, motion.d))
  rotated = find_rotated_atoms(pos.mol, b, c)
  if is_hydroxyl(c, rotated):
    if not settings.include_hydroxyls:
      return None
  elif is_h_group(rotated):
    if not settings.include_non_hydroxyl_h_groups:
      return None
  initial = dihedral_degrees(a.pos, b.pos, c.pos, d.pos)
  return DihedralDescription(
    a,
    b,
    c,
    d,
    rotated,
    initial_degrees=initial,
    min_degrees=initial - settings.radius_degrees,
    max_degrees=initial + settings.radius_degrees,
  )
