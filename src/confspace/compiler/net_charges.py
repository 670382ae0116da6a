"""
Net charge hints for molecules whose forcefields have to generate partial charges.
"""

from typing import Dict, Optional, Tuple

from confspace.conflib import Fragment
from confspace.design import DesignPosition
from confspace.molecule import Molecule, MoleculeType


class MolNetCharges:
  """Net charge of one molecule, optionally overridden per (position, fragment)."""

  def __init__(self, mol: Molecule):
    self.mol = mol
    self.net_charge: Optional[int] = None
    self._overrides: Dict[Tuple[DesignPosition, str], int] = {}

  @property
  def net_charge_or_raise(self) -> int:
    if self.net_charge is None:
      raise ValueError(f"No net charge set for molecule {self.mol}")
    return self.net_charge

  def set(self, pos: DesignPosition, frag: Fragment, charge: int):
    self._overrides[(pos, frag.id)] = charge

  def get(self, pos: DesignPosition, frag: Fragment) -> Optional[int]:
    """Net charge of the molecule with ``frag`` at ``pos``, falling back to the molecule's charge."""
    charge = self._overrides.get((pos, frag.id))
    return self.net_charge if charge is None else charge

  def get_or_raise(self, pos: DesignPosition, frag: Fragment) -> int:
    charge = self.get(pos, frag)
    if charge is None:
      raise ValueError(f"No net charge set for molecule {self.mol} with fragment {frag.id} at {pos.name}")
    return charge


class NetCharges:
  """Net charge hints, only kept for molecule types that need them."""

  def __init__(self):
    self._charges: Dict[Molecule, MolNetCharges] = {}

  def __getitem__(self, mol: Molecule) -> Optional[MolNetCharges]:
    return self._charges.get(mol)

  def get(self, mol: Molecule, mol_type: MoleculeType) -> Optional[MolNetCharges]:
    """Return the hints for ``mol``, created on demand, or ``None`` when its type needs no net charge."""
    if not mol_type.requires_net_charge:
      return None
    charges = self._charges.get(mol)
    if charges is None:
      charges = self._charges[mol] = MolNetCharges(mol)
    return charges
