"""
Fragment templates: atoms, bonds, anchors, conformations and the continuous
motions a fragment allows once it is placed at a design position.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Dict, List, Union

import numpy as np


### CLASSES ###
@dataclass(eq=False)
class AtomInfo:
  """Template for one fragment atom, ``id`` is unique within the fragment."""

  id: int
  name: str
  element: str

  def __repr__(self) -> str:
    return f"AtomInfo({self.id}, {self.name})"


@dataclass(eq=False)
class Bond:
  a: AtomInfo
  b: AtomInfo
  order: float = 1.0


@dataclass(eq=False)
class Anchor:
  """Where a fragment attaches to a design position.

  ``bonds`` holds one list of fragment atoms per bonded anchor atom. A single
  anchor has one list (atoms bonded to anchor atom ``a`` of an ``a, b, c``
  anchor), a double anchor has two (atoms bonded to ``a`` and to ``b`` of an
  ``a, b, c, d`` anchor).
  """

  id: int
  bonds: List[List[AtomInfo]]

  def __post_init__(self):
    if len(self.bonds) not in (1, 2):
      raise ValueError(f"Anchor {self.id} must bond through one or two anchor atoms, got {len(self.bonds)}")

  @property
  def is_double(self) -> bool:
    return len(self.bonds) == 2

  @property
  def num_atoms(self) -> int:
    return 4 if self.is_double else 3


@dataclass(eq=False)
class AnchorAtomPointer:
  """Refers to the ``index``-th atom of whichever position anchor matches ``anchor``."""

  anchor: Anchor
  index: int


AtomPointer = Union[AtomInfo, AnchorAtomPointer]


@dataclass(eq=False)
class Conf:
  """One set of coordinates for a fragment.

  Attributes:
    id: Unique within the fragment
    name: Display name
    coords: ``AtomInfo.id`` -> coordinates
    anchor_coords: ``Anchor.id`` -> coordinates of the anchor atoms, shape (3, 3) or (4, 3)
  """

  id: str
  name: str
  coords: Dict[int, np.ndarray]
  anchor_coords: Dict[int, np.ndarray]

  def __post_init__(self):
    self.coords = {k: np.array(v, dtype=float).reshape(3) for k, v in self.coords.items()}
    self.anchor_coords = {k: np.array(v, dtype=float).reshape(-1, 3) for k, v in self.anchor_coords.items()}


class ContinuousMotion:
  """Base for continuous motions, each kind is its own subclass."""

  kind = "motion"


@dataclass(eq=False)
class DihedralAngle(ContinuousMotion):
  """Rotation about the b-c bond, measured by the a-b-c-d dihedral."""

  a: AtomPointer
  b: AtomPointer
  c: AtomPointer
  d: AtomPointer

  kind = "dihedral"


@dataclass(eq=False)
class Fragment:
  id: str
  name: str
  type: str = ""
  atoms: List[AtomInfo] = field(default_factory=list)
  bonds: List[Bond] = field(default_factory=list)
  anchors: List[Anchor] = field(default_factory=list)
  confs: List[Conf] = field(default_factory=list)
  motions: List[ContinuousMotion] = field(default_factory=list)

  def __repr__(self) -> str:
    return f"Fragment({self.id})"

  def bonded(self, info: AtomInfo) -> List[AtomInfo]:
    out = []
    for bond in self.bonds:
      if bond.a is info:
        out.append(bond.b)
      elif bond.b is info:
        out.append(bond.a)
    return out

  def anchor_atoms(self, anchor: Anchor) -> List[AtomInfo]:
    """Fragment atoms connected to ``anchor``, in fragment atom order."""
    seen = set()
    queue = deque(info for infos in anchor.bonds for info in infos)
    while queue:
      info = queue.popleft()
      if info.id in seen:
        continue
      seen.add(info.id)
      queue.extend(self.bonded(info))
    return [info for info in self.atoms if info.id in seen]

  def validate(self):
    """Check that every conformation covers every atom and anchor.

    Raises:
      ValueError: on the first problem found
    """
    atom_ids = {info.id for info in self.atoms}
    if len(atom_ids) != len(self.atoms):
      raise ValueError(f"Fragment {self.id} has duplicate atom ids")
    claimed = set()
    for anchor in self.anchors:
      claimed.update(info.id for info in self.anchor_atoms(anchor))
    if self.anchors and claimed != atom_ids:
      raise ValueError(f"Fragment {self.id} has atoms not connected to any anchor: {sorted(atom_ids - claimed)}")
    for conf in self.confs:
      missing = atom_ids - set(conf.coords)
      if missing:
        raise ValueError(f"Conformation {self.id}:{conf.id} has no coordinates for atoms {sorted(missing)}")
      for anchor in self.anchors:
        coords = conf.anchor_coords.get(anchor.id)
        if coords is None or coords.shape != (anchor.num_atoms, 3):
          raise ValueError(f"Conformation {self.id}:{conf.id} needs {anchor.num_atoms} anchor coordinates for anchor {anchor.id}")
