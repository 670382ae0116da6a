"""
Partition of the fixed atoms (atoms no design position replaces) into atoms
owned by exactly one position (dynamic) and everything else (static).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from confspace.compiler.conf_space_index import ConfInfo, ConfSpaceIndex, PosInfo
from confspace.compiler.errors import ClaimConflict
from confspace.log import logger
from confspace.molecule import Atom, Molecule, Polymer


def fixed_name(mol: Molecule, atom: Atom, residue_of: Optional[Dict] = None) -> str:
  """Globally unique display name of a fixed atom: ``mol[-chainres]-atom``."""
  if isinstance(mol, Polymer):
    found = residue_of.get(atom.id) if residue_of is not None else mol.find_chain_and_residue(atom)
    if found is not None:
      chain, res = found
      return f"{mol.name}-{chain.id}{res.id}-{atom.name}"
  return f"{mol.name}-{atom.name}"


@dataclass(eq=False)
class StaticInfo:
  mol: Molecule
  atom: Atom
  index: int
  name: str


@dataclass(eq=False)
class DynamicInfo:
  atom: Atom
  index: int
  conf_info: ConfInfo


class PosFixedAtoms:
  """The dynamic atoms claimed by one design position."""

  def __init__(self, fixed_atoms: FixedAtoms, pos_info: PosInfo):
    self._fixed_atoms = fixed_atoms
    self.pos_info = pos_info
    self.dynamic_infos: List[DynamicInfo] = []
    self._by_id: Dict[int, DynamicInfo] = {}

  @property
  def dynamics(self) -> List[Atom]:
    """Dynamic atoms in the order they were claimed."""
    return [info.atom for info in self.dynamic_infos]

  def __contains__(self, atom: Atom) -> bool:
    return atom.id in self._by_id

  def add_dynamic(self, atoms: Iterable[Atom], conf_info: ConfInfo) -> Optional[ClaimConflict]:
    """Claim ``atoms`` for this position.

    Claiming an atom this position already owns does nothing. If any atom is
    owned by another position, nothing is claimed.

    Returns:
      ``None`` on success, otherwise the conflict for the first atom owned elsewhere
    """
    atoms = list(atoms)
    for atom in atoms:
      owner = self._fixed_atoms._owners.get(atom.id)
      if owner is not None and owner is not self:
        return ClaimConflict(atom, claimed_by=owner._by_id[atom.id].conf_info, claimant=conf_info)
    for atom in atoms:
      if atom.id in self._by_id:
        continue
      self._fixed_atoms._check_fixed(atom)
      info = DynamicInfo(atom, len(self.dynamic_infos), conf_info)
      self.dynamic_infos.append(info)
      self._by_id[atom.id] = info
      self._fixed_atoms._owners[atom.id] = self
    return None


class FixedAtoms:
  """Ledger of the fixed atom partition for one compile.

  Parameters:
    index: Positions of the design space
    fixed_atoms: Fixed atoms of every molecule, in molecule order
  """

  def __init__(self, index: ConfSpaceIndex, fixed_atoms: Dict[Molecule, List[Atom]]):
    self.index = index
    self._fixed: Dict[Molecule, List[Atom]] = {mol: list(fixed_atoms.get(mol, [])) for mol in index.mols}
    self._fixed_ids = {atom.id for atoms in self._fixed.values() for atom in atoms}
    self._positions = [PosFixedAtoms(self, pos_info) for pos_info in index.positions]
    self._owners: Dict[int, PosFixedAtoms] = {}
    self.statics: List[StaticInfo] = []
    self._statics_by_id: Dict[int, StaticInfo] = {}
    self._updated = False

  def __getitem__(self, pos_info: PosInfo) -> PosFixedAtoms:
    return self._positions[pos_info.index]

  def fixed(self, mol: Molecule) -> List[Atom]:
    """Fixed atoms of ``mol`` that are not yet static. Empty after :meth:`update_static`."""
    return self._fixed.get(mol, [])

  def _check_fixed(self, atom: Atom):
    if atom.id not in self._fixed_ids:
      raise ValueError(f"Atom {atom} is not a fixed atom, it can't be claimed as dynamic")

  def update_static(self):
    """Make every unclaimed fixed atom static. Call once, after all dynamic claims."""
    if self._updated:
      raise RuntimeError("Static atoms have already been assigned")
    for mol in self.index.mols:
      residue_of = mol.residues_by_atom() if isinstance(mol, Polymer) else None
      for atom in self._fixed[mol]:
        if atom.id in self._owners:
          continue
        if atom.id in self._statics_by_id:
          raise ValueError(f"Atom {atom} was already assigned a static index")
        info = StaticInfo(mol, atom, len(self.statics), fixed_name(mol, atom, residue_of))
        self.statics.append(info)
        self._statics_by_id[atom.id] = info
      self._fixed[mol] = []
    self._updated = True
    num_dynamic = sum(len(pos.dynamic_infos) for pos in self._positions)
    logger.debug(f"Partitioned fixed atoms: {len(self.statics)} static, {num_dynamic} dynamic")

  def get_static(self, atom: Atom) -> StaticInfo:
    try:
      return self._statics_by_id[atom.id]
    except KeyError:
      raise KeyError(f"Atom {atom} is not a static atom") from None

  def is_static(self, atom: Atom) -> bool:
    return atom.id in self._statics_by_id

  def is_dynamic(self, atom: Atom) -> bool:
    return atom.id in self._owners

  def owner(self, atom: Atom) -> Optional[PosInfo]:
    owner = self._owners.get(atom.id)
    return None if owner is None else owner.pos_info

  def statics_by_mol(self) -> Dict[Molecule, List[Atom]]:
    out: Dict[Molecule, List[Atom]] = {mol: [] for mol in self.index.mols}
    for info in self.statics:
      out[info.mol].append(info.atom)
    return out
