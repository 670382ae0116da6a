"""
Stable, dense indices for the positions, fragments and conformations of a
design space. Records refer to their parents by index.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator, List, Tuple

from confspace.conflib import Conf, Fragment
from confspace.design import ConfSpace, DesignPosition, PositionConfSpace
from confspace.molecule import Atom, Molecule


### CLASSES ###
@dataclass(eq=False)
class ConfInfo:
  pos_index: int
  frag_index: int
  index: int
  conf: Conf
  id: str

  def __repr__(self) -> str:
    return self.id


@dataclass(eq=False)
class FragInfo:
  pos_index: int
  index: int
  frag: Fragment
  conf_indices: List[int] = field(default_factory=list)

  def order_atoms(self, dynamic_atoms: List[Atom], pos: DesignPosition) -> List[Atom]:
    """Local atom order of a conformation: dynamic fixed atoms, then this fragment's atoms as placed."""
    return list(dynamic_atoms) + [pos.resolve(info) for info in self.frag.atoms]


class PosInfo:
  """A design position with its fragments and conformations in index order."""

  def __init__(self, index: int, pos: DesignPosition, conf_space: PositionConfSpace):
    self.index = index
    self.pos = pos
    self.conf_space = conf_space
    self.fragments: List[FragInfo] = []
    self.confs: List[ConfInfo] = []
    for frag in sorted(conf_space.fragments.values(), key=lambda f: f.id):
      confs = sorted(conf_space.confs.get(frag.id, []), key=lambda c: c.id)
      if not confs:
        continue
      frag_info = FragInfo(index, len(self.fragments), frag)
      self.fragments.append(frag_info)
      for conf in confs:
        frag_info.conf_indices.append(len(self.confs))
        self.confs.append(ConfInfo(index, frag_info.index, len(self.confs), conf, f"{frag.id}:{conf.id}"))

  def __repr__(self) -> str:
    return f"PosInfo({self.index}, {self.pos.name})"

  @property
  def mol(self) -> Molecule:
    return self.pos.mol

  def frag_info(self, conf_info: ConfInfo) -> FragInfo:
    return self.fragments[conf_info.frag_index]

  def _set_each(self, confs: List[ConfInfo]) -> Iterator[ConfInfo]:
    for conf_info in confs:
      self.pos.set_conf(self.fragments[conf_info.frag_index].frag, conf_info.conf)
      yield conf_info

  @contextmanager
  def _switching(self, confs: List[ConfInfo]):
    with self.pos.mol.locked():
      backup = self.pos.backup()
      try:
        yield self._set_each(confs)
      finally:
        self.pos.restore(backup)

  def switch_confs(self):
    """Context manager yielding an iterator that sets each conformation of this position in turn.

    The molecule lock is held for the whole ``with`` block and the original
    atoms are restored on exit, even if the block raises.
    """
    return self._switching(self.confs)

  def switch_frags(self):
    """Like :meth:`switch_confs`, but sets only the first conformation of each fragment."""
    return self._switching([self.confs[frag_info.conf_indices[0]] for frag_info in self.fragments])


class ConfSpaceIndex:
  """Canonical ordering of a design space.

  Molecules are ordered by name, positions by molecule then by their order on
  the molecule, fragments by id and conformations by id within a fragment.
  Positions without any conformation are left out.
  """

  def __init__(self, conf_space: ConfSpace):
    self.conf_space = conf_space
    self.mols: List[Molecule] = sorted((mol for _, mol in conf_space.mols), key=lambda mol: mol.name)
    self.positions: List[PosInfo] = []
    for mol in self.mols:
      for pos in conf_space.design_positions_by_mol.get(mol, []):
        pos_conf_space = conf_space.position_conf_spaces.get(pos)
        if pos_conf_space is None or pos_conf_space.num_confs == 0:
          continue
        self.positions.append(PosInfo(len(self.positions), pos, pos_conf_space))

  @property
  def num_confs(self) -> int:
    return sum(len(pos_info.confs) for pos_info in self.positions)

  @property
  def num_conf_pairs(self) -> int:
    return sum(len(p1.confs) * len(p2.confs) for p1, p2 in self.pos_pairs())

  def pos_pairs(self) -> Iterator[Tuple[PosInfo, PosInfo]]:
    """Every pair of positions as ``(pos1, pos2)`` with ``pos2.index < pos1.index``."""
    for pos_info1 in self.positions:
      for pos_info2 in self.positions[: pos_info1.index]:
        yield pos_info1, pos_info2

  def positions_of(self, mol: Molecule) -> List[PosInfo]:
    return [pos_info for pos_info in self.positions if pos_info.mol is mol]

  def design_positions(self) -> List[DesignPosition]:
    return [pos_info.pos for pos_info in self.positions]
