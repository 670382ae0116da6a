"""
Molecules as ordered atoms plus an undirected bond graph, optionally organized
into chains and residues. Atoms are identified by a stable integer ID that
survives copies, so every lookup in this package is keyed by ``atom.id``.
"""

from __future__ import annotations

import itertools
import threading
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Tuple

import numpy as np
from rdkit import Chem
from rdkit.Geometry import Point3D

from confspace.constants import BOND_ORDERS
from confspace.log import logger

_ATOM_IDS = itertools.count()

_RDKIT_BOND_TYPES = {
  1.0: Chem.BondType.SINGLE,
  1.5: Chem.BondType.AROMATIC,
  2.0: Chem.BondType.DOUBLE,
  3.0: Chem.BondType.TRIPLE,
}


def next_atom_id() -> int:
  """Return a process-wide unique atom ID."""
  return next(_ATOM_IDS)


### CLASSES ###
class MoleculeType(Enum):
  """Chemistry classification of a molecule, decided outside the compiler."""

  PROTEIN = "protein"
  DNA = "dna"
  RNA = "rna"
  SOLVENT = "solvent"
  ATOMIC_ION = "atomic_ion"
  SYNTHETIC = "synthetic"
  SMALL_MOLECULE = "small_molecule"

  @property
  def requires_net_charge(self) -> bool:
    """Charge-generating forcefields need an explicit net charge for small molecules only."""
    return self is MoleculeType.SMALL_MOLECULE


@dataclass(eq=False)
class Atom:
  """A single atom.

  Attributes:
    element: Element symbol, eg. ``C`` or ``Cl``
    name: Atom name, eg. ``CA``
    pos: Cartesian coordinates in Angstrom, shape (3,)
    charge: Formal charge
    id: Stable identifier, kept by :meth:`copy`
  """

  element: str
  name: str
  pos: np.ndarray
  charge: int = 0
  id: int = field(default_factory=next_atom_id)

  def __post_init__(self):
    self.pos = np.array(self.pos, dtype=float).reshape(3)

  @property
  def is_hydrogen(self) -> bool:
    return self.element == "H"

  def copy(self) -> Atom:
    return Atom(self.element, self.name, self.pos.copy(), self.charge, id=self.id)

  def __repr__(self) -> str:
    return f"Atom({self.name}, {self.element}, id={self.id})"


class Molecule:
  """A named set of atoms and bonds.

  Mutation while other threads may be reading should happen inside
  :meth:`locked`. Releasing the lock bumps :attr:`sequence`, so observers can
  poll it to know when coordinates need to be re-read.
  """

  def __init__(self, name: str, atoms: Optional[Iterable[Atom]] = None):
    self.name = name
    self.atoms: List[Atom] = []
    self.sequence = 0
    self._by_id: Dict[int, Atom] = {}
    self._bonds: Dict[int, Dict[int, float]] = {}
    self._lock = threading.RLock()
    for atom in atoms or []:
      self.add_atom(atom)

  def __repr__(self) -> str:
    return self.name

  def __len__(self) -> int:
    return len(self.atoms)

  def __contains__(self, atom: Atom) -> bool:
    return atom.id in self._by_id

  @contextmanager
  def locked(self):
    """Hold this molecule's lock for the duration of a ``with`` block."""
    with self._lock:
      try:
        yield self
      finally:
        self.sequence += 1

  ## atoms
  def add_atom(self, atom: Atom, index: Optional[int] = None) -> Atom:
    """Add an atom at the end, or at ``index`` in the atom order."""
    if atom.id in self._by_id:
      raise ValueError(f"Atom {atom} is already in molecule {self.name}")
    if index is None:
      self.atoms.append(atom)
    else:
      self.atoms.insert(index, atom)
    self._by_id[atom.id] = atom
    self._bonds[atom.id] = {}
    return atom

  def remove_atom(self, atom: Atom) -> Atom:
    """Remove an atom and all of its bonds, returning the instance that was removed."""
    removed = self._by_id.pop(atom.id, None)
    if removed is None:
      raise ValueError(f"Atom {atom} is not in molecule {self.name}")
    for other_id in self._bonds.pop(atom.id):
      del self._bonds[other_id][atom.id]
    self.atoms = [a for a in self.atoms if a.id != atom.id]
    return removed

  def get_atom(self, atom_id: int) -> Atom:
    try:
      return self._by_id[atom_id]
    except KeyError:
      raise KeyError(f"No atom with id {atom_id} in molecule {self.name}") from None

  def coords(self) -> np.ndarray:
    return np.array([atom.pos for atom in self.atoms], dtype=float).reshape(-1, 3)

  ## bonds
  def add_bond(self, a: Atom, b: Atom, order: float = 1.0):
    if a.id == b.id:
      raise ValueError(f"Can't bond atom {a} to itself")
    if a.id not in self._by_id or b.id not in self._by_id:
      raise ValueError(f"Can't bond {a} and {b}, both atoms must be in molecule {self.name}")
    order = float(order)
    if order not in BOND_ORDERS:
      raise ValueError(f"Unsupported bond order {order}, expected one of {BOND_ORDERS}")
    self._bonds[a.id][b.id] = order
    self._bonds[b.id][a.id] = order

  def remove_bond(self, a: Atom, b: Atom):
    self._bonds[a.id].pop(b.id, None)
    self._bonds[b.id].pop(a.id, None)

  def is_bonded(self, a: Atom, b: Atom) -> bool:
    return b.id in self._bonds.get(a.id, {})

  def bond_order(self, a: Atom, b: Atom) -> Optional[float]:
    return self._bonds.get(a.id, {}).get(b.id)

  def bonded_atoms(self, atom: Atom) -> List[Atom]:
    return [self._by_id[i] for i in self._bonds[atom.id]]

  def bonds(self) -> Iterator[Tuple[Atom, Atom, float]]:
    """Yield every bond once as ``(a, b, order)``."""
    for atom in self.atoms:
      for other_id, order in self._bonds[atom.id].items():
        if atom.id < other_id:
          yield atom, self._by_id[other_id], order

  def bfs(
    self,
    source: Atom,
    visit_source: bool = False,
    should_visit: Optional[Callable[[Atom, Atom, int], bool]] = None,
  ) -> Iterator[Tuple[Atom, int]]:
    """Breadth-first traversal of the bond graph.

    Parameters:
      source: Atom to start from
      visit_source: Also yield ``(source, 0)``
      should_visit: Optional ``(from_atom, to_atom, distance)`` predicate, neighbors failing it are not entered

    Yields:
      ``(atom, bonded distance from source)`` in non-decreasing distance order
    """
    if visit_source:
      yield source, 0
    seen = {source.id}
    queue = deque([(source, 0)])
    while queue:
      atom, dist = queue.popleft()
      for other_id in self._bonds[atom.id]:
        if other_id in seen:
          continue
        other = self._by_id[other_id]
        if should_visit is not None and not should_visit(atom, other, dist + 1):
          continue
        seen.add(other_id)
        yield other, dist + 1
        queue.append((other, dist + 1))

  def bonded_distances(self, source: Atom) -> Dict[int, int]:
    """Map atom IDs reachable from ``source`` to their bonded distance."""
    return {atom.id: dist for atom, dist in self.bfs(source)}

  ## copies and conversions
  def copy(self) -> Molecule:
    """Deep copy, atom IDs are preserved."""
    mol = Molecule(self.name)
    self._copy_graph_into(mol)
    return mol

  def _copy_graph_into(self, mol: Molecule):
    for atom in self.atoms:
      mol.add_atom(atom.copy())
    mol._bonds = {atom_id: dict(others) for atom_id, others in self._bonds.items()}

  def to_rdkit(self) -> Chem.Mol:
    """Build a sanitized RDKit molecule, atom ``i`` corresponds to ``self.atoms[i]``.

    Hydrogens must be explicit, no implicit hydrogens are added.
    """
    rwmol = Chem.RWMol()
    index = {}
    for atom in self.atoms:
      rdatom = Chem.Atom(atom.element)
      rdatom.SetFormalCharge(int(atom.charge))
      rdatom.SetNoImplicit(True)
      index[atom.id] = rwmol.AddAtom(rdatom)
    for a, b, order in self.bonds():
      rwmol.AddBond(index[a.id], index[b.id], _RDKIT_BOND_TYPES[order])
      if order == 1.5:
        rwmol.GetBondBetweenAtoms(index[a.id], index[b.id]).SetIsAromatic(True)
        rwmol.GetAtomWithIdx(index[a.id]).SetIsAromatic(True)
        rwmol.GetAtomWithIdx(index[b.id]).SetIsAromatic(True)
    if self.atoms:
      conf = Chem.Conformer(len(self.atoms))
      for atom in self.atoms:
        x, y, z = (float(v) for v in atom.pos)
        conf.SetAtomPosition(index[atom.id], Point3D(x, y, z))
      rwmol.AddConformer(conf, assignId=True)
    mol = rwmol.GetMol()
    Chem.SanitizeMol(mol)
    return mol

  @classmethod
  def from_rdkit(cls, rdmol: Chem.Mol, name: Optional[str] = None, conf_id: int = -1) -> Molecule:
    """Load atoms, bonds and coordinates from an RDKit molecule.

    Parameters:
      rdmol: RDKit molecule, hydrogens should be explicit
      name: Molecule name, defaults to the ``_Name`` property or ``mol``
      conf_id: Conformer to read coordinates from

    Returns:
      A new molecule whose atoms follow RDKit's atom order
    """
    if name is None:
      name = rdmol.GetProp("_Name") if rdmol.HasProp("_Name") and rdmol.GetProp("_Name") else "mol"
    if rdmol.GetNumConformers() > 0:
      positions = rdmol.GetConformer(conf_id).GetPositions()
    else:
      logger.warning(f"Molecule {name} has no conformer, all coordinates are set to zero")
      positions = np.zeros((rdmol.GetNumAtoms(), 3))
    atoms = []
    for rdatom in rdmol.GetAtoms():
      info = rdatom.GetPDBResidueInfo()
      if info is not None and info.GetName().strip():
        atom_name = info.GetName().strip()
      else:
        atom_name = f"{rdatom.GetSymbol()}{rdatom.GetIdx() + 1}"
      atoms.append(Atom(rdatom.GetSymbol(), atom_name, positions[rdatom.GetIdx()], rdatom.GetFormalCharge()))
    mol = cls(name, atoms)
    for bond in rdmol.GetBonds():
      mol.add_bond(atoms[bond.GetBeginAtomIdx()], atoms[bond.GetEndAtomIdx()], bond.GetBondTypeAsDouble())
    return mol


@dataclass(eq=False)
class Residue:
  id: str
  type: str
  atoms: List[Atom] = field(default_factory=list)

  def __repr__(self) -> str:
    return f"{self.type}{self.id}"


@dataclass(eq=False)
class Chain:
  id: str
  residues: List[Residue] = field(default_factory=list)

  def find_residue(self, res_id: str) -> Optional[Residue]:
    for res in self.residues:
      if res.id == res_id:
        return res
    return None


class Polymer(Molecule):
  """A molecule whose atoms are organized into chains of residues."""

  def __init__(self, name: str, atoms: Optional[Iterable[Atom]] = None, chains: Optional[Iterable[Chain]] = None):
    super().__init__(name, atoms)
    self.chains: List[Chain] = list(chains or [])

  def remove_atom(self, atom: Atom) -> Atom:
    removed = super().remove_atom(atom)
    for chain in self.chains:
      for res in chain.residues:
        res.atoms = [a for a in res.atoms if a.id != atom.id]
    return removed

  def residues_by_atom(self) -> Dict[int, Tuple[Chain, Residue]]:
    """Map atom IDs to their owning chain and residue."""
    return {atom.id: (chain, res) for chain in self.chains for res in chain.residues for atom in res.atoms}

  def find_chain_and_residue(self, atom: Atom) -> Optional[Tuple[Chain, Residue]]:
    for chain in self.chains:
      for res in chain.residues:
        if any(a.id == atom.id for a in res.atoms):
          return chain, res
    return None

  def copy(self) -> Polymer:
    mol = Polymer(self.name)
    self._copy_graph_into(mol)
    for chain in self.chains:
      residues = [Residue(res.id, res.type, [mol.get_atom(a.id) for a in res.atoms]) for res in chain.residues]
      mol.chains.append(Chain(chain.id, residues))
    return mol

  @classmethod
  def from_rdkit(cls, rdmol: Chem.Mol, name: Optional[str] = None, conf_id: int = -1) -> Polymer:
    """Like :meth:`Molecule.from_rdkit`, grouping atoms by their PDB residue info.

    Raises:
      ValueError: if an atom carries no PDB residue info
    """
    mol = super().from_rdkit(rdmol, name, conf_id)
    for rdatom, atom in zip(rdmol.GetAtoms(), mol.atoms):
      info = rdatom.GetPDBResidueInfo()
      if info is None:
        raise ValueError(f"Atom {atom} has no residue info, can't build polymer {mol.name}")
      chain_id = info.GetChainId().strip() or "A"
      res_id = f"{info.GetResidueNumber()}{info.GetInsertionCode().strip()}"
      chain = next((ch for ch in mol.chains if ch.id == chain_id), None)
      if chain is None:
        chain = Chain(chain_id)
        mol.chains.append(chain)
      res = chain.find_residue(res_id)
      if res is None:
        res = Residue(res_id, info.GetResidueName().strip())
        chain.residues.append(res)
      res.atoms.append(atom)
    return mol
