"""
The contract between the compiler and a forcefield parameterizer.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Hashable, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from confspace.molecule import Atom, Molecule


def iter_atom_pairs(
  atoms_by_mol1: Mapping[Molecule, Sequence[Atom]],
  atoms_by_mol2: Mapping[Molecule, Sequence[Atom]],
) -> Iterator[Tuple[Molecule, Atom, Molecule, Atom, Optional[int]]]:
  """Yield ``(mol1, atom1, mol2, atom2, bonded distance)`` for every atom pair between two atom sets.

  The bonded distance is ``None`` across molecules or between disconnected
  atoms. When both arguments are the same mapping each unordered pair is
  yielded once, with ``atom1`` later than ``atom2`` in list order.
  """
  same = atoms_by_mol1 is atoms_by_mol2
  items2 = list(atoms_by_mol2.items())
  for moli1, (mol1, atoms1) in enumerate(atoms_by_mol1.items()):
    for moli2, (mol2, atoms2) in enumerate(items2):
      if same and moli2 > moli1:
        break
      if mol1 is not mol2:
        for atom1 in atoms1:
          for atom2 in atoms2:
            yield mol1, atom1, mol2, atom2, None
        continue
      for atomi1, atom1 in enumerate(atoms1):
        dists = mol1.bonded_distances(atom1)
        for atomi2, atom2 in enumerate(atoms2):
          if same and atomi2 >= atomi1:
            break
          if atom1.id == atom2.id:
            continue
          yield mol1, atom1, mol2, atom2, dists.get(atom2.id)


class MolParams:
  """Forcefield parameters for one molecule copy, per atom ID.

  Parameters:
    mol: The molecule copy that was parameterized
    atom_params: ``atom.id`` -> per-atom parameters
  """

  def __init__(self, mol: Molecule, atom_params: Dict[int, Any]):
    self.mol = mol
    self.atom_params = atom_params

  def __contains__(self, atom: Atom) -> bool:
    return atom.id in self.atom_params

  def __getitem__(self, atom: Atom) -> Any:
    try:
      return self.atom_params[atom.id]
    except KeyError:
      raise KeyError(f"No parameters for atom {atom} in molecule {self.mol}") from None

  def fingerprint(self, atom: Atom) -> Hashable:
    """Value that differs exactly when the atom's parameters differ."""
    return self[atom]


class ForcefieldParams(ABC):
  """A forcefield parameterizer.

  Subclasses set :attr:`name` and :attr:`implementation` and implement
  parameterization and pair rules. Energies are in kcal/mol.
  """

  name: str = ""
  implementation: str = ""

  def __repr__(self) -> str:
    return self.name

  def settings(self) -> Dict[str, Any]:
    """Settings that should travel with the compiled conformation space."""
    return {}

  @abstractmethod
  def parameterize(self, mol: Molecule, net_charge: Optional[int] = None) -> MolParams:
    """Compute parameters for every atom of ``mol``, which the caller hands over as a private copy."""

  def internal_energy(self, mol_params: MolParams, atom: Atom) -> Optional[float]:
    """Energy of a single atom, ``None`` when the forcefield has no such term."""
    return None

  @abstractmethod
  def pair_params(
    self, params_a: MolParams, atom_a: Atom, params_b: MolParams, atom_b: Atom, dist: Optional[int]
  ) -> Optional[Tuple[float, ...]]:
    """Parameters for the interaction of two atoms, ``None`` to skip the pair.

    ``dist`` is the bonded distance, or ``None`` for unconnected atoms.
    """

  @abstractmethod
  def pair_energy(self, params: Sequence[float], r: float) -> float:
    """Energy of one atom pair with parameters ``params`` at distance ``r`` (Angstrom)."""

  def calc_energy(self, atoms_by_mol: Mapping[Molecule, Sequence[Atom]], params_by_mol: Mapping[Molecule, MolParams]) -> float:
    """Total energy of the given atoms: internal energies plus every pair among them."""
    energy = 0.0
    for mol, atoms in atoms_by_mol.items():
      for atom in atoms:
        e = self.internal_energy(params_by_mol[mol], atom)
        if e is not None:
          energy += e
    for mol1, atom1, mol2, atom2, dist in iter_atom_pairs(atoms_by_mol, atoms_by_mol):
      params = self.pair_params(params_by_mol[mol1], atom1, params_by_mol[mol2], atom2, dist)
      if params is not None:
        energy += self.pair_energy(params, float(np.linalg.norm(atom1.pos - atom2.pos)))
    return energy

  def filter_changed_atoms(self, atoms: Iterable[Atom], conf_params: MolParams, wild_type_params: MolParams) -> List[Atom]:
    """Atoms whose parameters differ between a conformation and the wild-type, in input order."""
    return [atom for atom in atoms if conf_params.fingerprint(atom) != wild_type_params.fingerprint(atom)]
