"""
Design positions, the conformations allowed at each one, and the design space
(``ConfSpace``) that ties molecules and positions together.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

import numpy as np

from confspace.conflib import Anchor, AnchorAtomPointer, AtomInfo, AtomPointer, Bond, Conf, Fragment
from confspace.geometry import superimpose, transform
from confspace.log import logger
from confspace.molecule import Atom, Molecule, MoleculeType, Polymer, Residue, next_atom_id
from confspace.motions import DihedralSettings


### CLASSES ###
@dataclass(eq=False)
class PositionAnchor:
  """Molecule atoms a fragment anchor is aligned onto.

  Single anchors are ``[a, b, c]`` with fragment atoms bonded to ``a``.
  Double anchors are ``[a, b, c, d]`` with fragment atoms bonded to ``a`` and ``b``.
  """

  atoms: List[Atom]

  def __post_init__(self):
    if len(self.atoms) not in (3, 4):
      raise ValueError(f"Anchors have 3 (single) or 4 (double) atoms, got {len(self.atoms)}")

  @property
  def is_double(self) -> bool:
    return len(self.atoms) == 4

  @property
  def bonded_atoms(self) -> List[Atom]:
    return self.atoms[:2] if self.is_double else self.atoms[:1]

  def matches(self, anchor: Anchor) -> bool:
    return self.is_double == anchor.is_double

  def coords(self) -> np.ndarray:
    return np.array([atom.pos for atom in self.atoms], dtype=float)


@dataclass
class PositionBackup:
  """Everything needed to put a position's atoms back exactly as they were."""

  atoms: List[Tuple[int, Atom]]
  bonds: List[Tuple[int, int, float]]
  residues: List[Tuple[int, Residue, int]]
  current_atoms: List[Atom]
  fragment: Optional[Fragment]
  conf: Optional[Conf]
  placed: Dict[int, Atom]
  anchor_match: Dict[int, PositionAnchor]
  residue: Optional[Residue] = None


class DesignPosition:
  """A site on a molecule whose atoms can be swapped for fragment conformations.

  Parameters:
    name: Position name, eg. ``A42``
    type: Position type, eg. the residue type of the wild-type
    mol: Molecule the position belongs to
    current_atoms: Atoms replaced when a conformation is set
    anchor_groups: Alternative anchor sets, a fragment uses the first group whose anchors match its own
  """

  def __init__(
    self,
    name: str,
    type: str,
    mol: Molecule,
    current_atoms: Optional[Iterable[Atom]] = None,
    anchor_groups: Optional[Iterable[Sequence[PositionAnchor]]] = None,
  ):
    self.name = name
    self.type = type
    self.mol = mol
    self.current_atoms: List[Atom] = list(current_atoms or [])
    self.anchor_groups: List[List[PositionAnchor]] = [list(group) for group in anchor_groups or []]
    self.current_fragment: Optional[Fragment] = None
    self.current_conf: Optional[Conf] = None
    # residue holding the current atoms, polymers only
    self.residue: Optional[Residue] = None
    # (fragment id, atom info id) -> atom id, so re-placing a fragment reuses its atom ids
    self._atom_ids: Dict[Tuple[str, int], int] = {}
    self._placed: Dict[int, Atom] = {}
    self._anchor_match: Dict[int, PositionAnchor] = {}
    self._residues: Dict[int, Optional[Residue]] = {}

  def __repr__(self) -> str:
    return self.name

  def find_anchor_group(self, frag: Fragment) -> List[PositionAnchor]:
    """Return the first anchor group whose anchors match ``frag``'s, in order.

    Raises:
      ValueError: if no anchor group matches
    """
    for group in self.anchor_groups:
      if len(group) == len(frag.anchors) and all(pa.matches(fa) for pa, fa in zip(group, frag.anchors)):
        return group
    raise ValueError(f"No anchor group at design position {self.name} matches the anchors of fragment {frag.id}")

  def set_conf(self, frag: Fragment, conf: Conf):
    """Replace the current atoms with ``frag`` placed in conformation ``conf``.

    Anchors are aligned before the molecule is touched, so if placement raises
    the current atoms are still in place.
    """
    group = self.find_anchor_group(frag)
    with self.mol.locked():
      coords = {info.id: conf.coords[info.id] for info in frag.atoms}
      for pos_anchor, frag_anchor in zip(group, frag.anchors):
        rot, tran = superimpose(pos_anchor.coords(), conf.anchor_coords[frag_anchor.id])
        for info in frag.anchor_atoms(frag_anchor):
          coords[info.id] = transform(conf.coords[info.id], rot, tran)
      residue = self._residue_for(group)

      for atom in self.current_atoms:
        self.mol.remove_atom(atom)
      placed = {}
      for info in frag.atoms:
        atom_id = self._atom_ids.setdefault((frag.id, info.id), next_atom_id())
        placed[info.id] = self.mol.add_atom(Atom(info.element, info.name, coords[info.id], id=atom_id))
      for bond in frag.bonds:
        self.mol.add_bond(placed[bond.a.id], placed[bond.b.id], bond.order)

      anchor_match = {}
      for pos_anchor, frag_anchor in zip(group, frag.anchors):
        anchor_match[frag_anchor.id] = pos_anchor
        for anchor_atom, infos in zip(pos_anchor.bonded_atoms, frag_anchor.bonds):
          for info in infos:
            self.mol.add_bond(anchor_atom, placed[info.id])

      if residue is not None:
        residue.atoms.extend(placed[info.id] for info in frag.atoms)
      self.current_atoms = [placed[info.id] for info in frag.atoms]
      self.current_fragment = frag
      self.current_conf = conf
      self.residue = residue
      self._placed = placed
      self._anchor_match = anchor_match

  def _residue_for(self, group: List[PositionAnchor]) -> Optional[Residue]:
    if not isinstance(self.mol, Polymer):
      return None
    key = id(group)
    if key not in self._residues:
      self._residues[key] = None
      for atom in list(self.current_atoms) + [pa.bonded_atoms[0] for pa in group]:
        found = self.mol.find_chain_and_residue(atom)
        if found is not None:
          self._residues[key] = found[1]
          break
    return self._residues[key]

  def resolve(self, pointer: AtomPointer) -> Atom:
    """Map a fragment atom or anchor atom pointer onto the molecule for the current conformation.

    Raises:
      KeyError: if the pointer does not belong to the current fragment
    """
    if isinstance(pointer, AnchorAtomPointer):
      try:
        return self._anchor_match[pointer.anchor.id].atoms[pointer.index]
      except KeyError:
        raise KeyError(f"Anchor {pointer.anchor.id} is not part of the current conformation at {self.name}") from None
    try:
      return self._placed[pointer.id]
    except KeyError:
      raise KeyError(f"Atom {pointer} is not part of the current conformation at {self.name}") from None

  def backup(self) -> PositionBackup:
    """Snapshot the current atoms so :meth:`restore` can put back the same instances."""
    ids = {atom.id for atom in self.current_atoms}
    atoms = [(i, atom) for i, atom in enumerate(self.mol.atoms) if atom.id in ids]
    bonds = [(a.id, b.id, order) for a, b, order in self.mol.bonds() if a.id in ids or b.id in ids]
    residues = []
    if isinstance(self.mol, Polymer):
      residue_of = self.mol.residues_by_atom()
      for atom in self.current_atoms:
        if atom.id in residue_of:
          res = residue_of[atom.id][1]
          residues.append((res.atoms.index(atom), res, atom.id))
    return PositionBackup(
      atoms,
      bonds,
      sorted(residues, key=lambda entry: entry[0]),
      list(self.current_atoms),
      self.current_fragment,
      self.current_conf,
      dict(self._placed),
      dict(self._anchor_match),
      self.residue,
    )

  def restore(self, backup: PositionBackup):
    with self.mol.locked():
      for atom in self.current_atoms:
        self.mol.remove_atom(atom)
      for index, atom in backup.atoms:
        self.mol.add_atom(atom, index=index)
      for a_id, b_id, order in backup.bonds:
        self.mol.add_bond(self.mol.get_atom(a_id), self.mol.get_atom(b_id), order)
      # ascending, so earlier inserts don't shift later indices
      for index, residue, atom_id in backup.residues:
        residue.atoms.insert(index, self.mol.get_atom(atom_id))
      self.current_atoms = list(backup.current_atoms)
      self.current_fragment = backup.fragment
      self.current_conf = backup.conf
      self.residue = backup.residue
      self._placed = dict(backup.placed)
      self._anchor_match = dict(backup.anchor_match)

  def make_fragment(self, frag_id: str, name: str, conf_id: str = "wt", type: Optional[str] = None) -> Fragment:
    """Describe the current atoms as a fragment with a single conformation.

    The first anchor group that the current atoms are bonded to becomes the fragment's anchors.

    Raises:
      ValueError: if no anchor group is bonded to the current atoms
    """
    atom_infos = {atom.id: AtomInfo(i + 1, atom.name, atom.element) for i, atom in enumerate(self.current_atoms)}
    bonds = [
      Bond(atom_infos[a.id], atom_infos[b.id], order)
      for a, b, order in self.mol.bonds()
      if a.id in atom_infos and b.id in atom_infos
    ]

    for group in self.anchor_groups:
      anchors = []
      for i, pos_anchor in enumerate(group):
        anchor_bonds = [
          [atom_infos[other.id] for other in self.mol.bonded_atoms(anchor_atom) if other.id in atom_infos]
          for anchor_atom in pos_anchor.bonded_atoms
        ]
        if not all(anchor_bonds):
          break
        anchors.append(Anchor(i + 1, anchor_bonds))
      else:
        conf = Conf(
          conf_id,
          conf_id,
          coords={info.id: self.mol.get_atom(atom_id).pos.copy() for atom_id, info in atom_infos.items()},
          anchor_coords={anchor.id: pos_anchor.coords() for anchor, pos_anchor in zip(anchors, group)},
        )
        return Fragment(
          frag_id,
          name,
          type=type if type is not None else self.type,
          atoms=list(atom_infos.values()),
          bonds=bonds,
          anchors=anchors,
          confs=[conf],
        )
    raise ValueError(f"The current atoms of design position {self.name} are not bonded to any of its anchor groups")


@dataclass(eq=False)
class PositionConfSpace:
  """The fragments and conformations allowed at one design position.

  Attributes:
    mutations: Fragment types allowed at the position
    fragments: Fragment id -> fragment
    confs: Fragment id -> allowed conformations of that fragment
    motion_settings: Fragment id -> how the fragment's dihedral motions are compiled
  """

  mutations: Set[str] = field(default_factory=set)
  fragments: Dict[str, Fragment] = field(default_factory=dict)
  confs: Dict[str, List[Conf]] = field(default_factory=dict)
  motion_settings: Dict[str, DihedralSettings] = field(default_factory=dict)

  def add(self, frag: Fragment, confs: Optional[Iterable[Conf]] = None, settings: Optional[DihedralSettings] = None):
    """Allow ``frag`` at this position, with all of its conformations unless ``confs`` is given."""
    frag.validate()
    self.fragments[frag.id] = frag
    self.mutations.add(frag.type)
    chosen = self.confs.setdefault(frag.id, [])
    for conf in frag.confs if confs is None else confs:
      if all(c.id != conf.id for c in chosen):
        chosen.append(conf)
    if settings is not None:
      self.motion_settings[frag.id] = settings

  def settings_for(self, frag: Fragment) -> DihedralSettings:
    return self.motion_settings.get(frag.id) or DihedralSettings()

  @property
  def num_confs(self) -> int:
    return sum(len(confs) for confs in self.confs.values())


class ConfSpace:
  """A design space: molecules, design positions and their conformation spaces."""

  def __init__(self, mols: Iterable[Tuple[MoleculeType, Molecule]], name: str = "Conformation Space"):
    self.name = name
    self.mols: List[Tuple[MoleculeType, Molecule]] = list(mols)
    self.design_positions_by_mol: Dict[Molecule, List[DesignPosition]] = {}
    self.position_conf_spaces: Dict[DesignPosition, PositionConfSpace] = {}

  def mol_type(self, mol: Molecule) -> MoleculeType:
    for mol_type, m in self.mols:
      if m is mol:
        return mol_type
    raise KeyError(f"Molecule {mol} is not part of conformation space {self.name}")

  def add_position(self, pos: DesignPosition) -> PositionConfSpace:
    """Register a design position and return its conformation space, the existing one if already registered."""
    if all(m is not pos.mol for _, m in self.mols):
      raise ValueError(f"Design position {pos.name} belongs to molecule {pos.mol}, which is not in this conformation space")
    if pos not in self.position_conf_spaces:
      self.design_positions_by_mol.setdefault(pos.mol, []).append(pos)
      self.position_conf_spaces[pos] = PositionConfSpace()
    return self.position_conf_spaces[pos]

  def positions(self) -> List[DesignPosition]:
    return [pos for _, mol in self.mols for pos in self.design_positions_by_mol.get(mol, [])]

  def fixed_atoms(self, positions: Optional[Iterable[DesignPosition]] = None) -> Dict[Molecule, List[Atom]]:
    """Atoms of every molecule that are not replaced by any of ``positions`` (default: all positions)."""
    positions = self.positions() if positions is None else list(positions)
    replaced = {atom.id for pos in positions for atom in pos.current_atoms}
    fixed = {}
    for _, mol in self.mols:
      fixed[mol] = [atom for atom in mol.atoms if atom.id not in replaced]
    logger.debug(f"{sum(len(atoms) for atoms in fixed.values())} fixed atoms in {len(fixed)} molecules")
    return fixed
