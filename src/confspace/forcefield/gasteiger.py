"""
A Lennard-Jones + Coulomb forcefield: Gasteiger partial charges computed with
RDKit and van der Waals parameters from RDKit's UFF atom typing.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence, Tuple

from rdkit.Chem import rdForceFieldHelpers, rdPartialCharges

from confspace.constants import (
  BONDED_DISTANCE_14,
  BONDED_EXCLUSION_DISTANCE,
  COULOMB_CONSTANT,
  DEFAULT_CHARGE_PRECISION,
  DEFAULT_DIELECTRIC,
  DEFAULT_DISTANCE_DEPENDENT_DIELECTRIC,
  DEFAULT_SCALE_14_ELEC,
  DEFAULT_SCALE_14_VDW,
)
from confspace.forcefield.base import ForcefieldParams, MolParams
from confspace.log import logger
from confspace.molecule import Atom, Molecule


@dataclass(frozen=True)
class AtomParams:
  """Per-atom parameters.

  Attributes:
    element: Element symbol
    charge: Gasteiger partial charge (e), rounded to the forcefield's precision
    rmin: UFF van der Waals distance (Angstrom)
    epsilon: UFF well depth (kcal/mol)
  """

  element: str
  charge: float
  rmin: float
  epsilon: float


class GasteigerLJParams(ForcefieldParams):
  """Gasteiger charges + UFF Lennard-Jones.

  Partial charges depend on the bond graph, so swapping a fragment changes
  the charges of nearby fixed atoms. Charges are rounded to
  ``charge_precision`` decimals before comparing, so that tiny changes far
  from a design position don't make atoms dynamic.

  Parameters:
    charge_precision: Decimals kept for partial charges
    dielectric: Relative permittivity
    distance_dependent_dielectric: Use ``dielectric * r`` instead of ``dielectric``
    scale_14_vdw: Scale of van der Waals terms between atoms three bonds apart
    scale_14_elec: Scale of electrostatics between atoms three bonds apart
  """

  name = "gasteiger-uff"
  implementation = "lj-coulomb"

  def __init__(
    self,
    charge_precision: int = DEFAULT_CHARGE_PRECISION,
    dielectric: float = DEFAULT_DIELECTRIC,
    distance_dependent_dielectric: bool = DEFAULT_DISTANCE_DEPENDENT_DIELECTRIC,
    scale_14_vdw: float = DEFAULT_SCALE_14_VDW,
    scale_14_elec: float = DEFAULT_SCALE_14_ELEC,
  ):
    if dielectric <= 0:
      raise ValueError(f"dielectric must be positive, got {dielectric}")
    self.charge_precision = charge_precision
    self.dielectric = dielectric
    self.distance_dependent_dielectric = distance_dependent_dielectric
    self.scale_14_vdw = scale_14_vdw
    self.scale_14_elec = scale_14_elec

  def settings(self) -> Dict[str, Any]:
    return {
      "charge_precision": self.charge_precision,
      "dielectric": self.dielectric,
      "distance_dependent_dielectric": self.distance_dependent_dielectric,
      "scale_14_vdw": self.scale_14_vdw,
      "scale_14_elec": self.scale_14_elec,
    }

  def parameterize(self, mol: Molecule, net_charge: Optional[int] = None) -> MolParams:
    formal_charge = sum(atom.charge for atom in mol.atoms)
    if net_charge is not None and net_charge != formal_charge:
      raise ValueError(f"Net charge {net_charge} doesn't match the formal charges of {mol}, which sum to {formal_charge}")

    rdmol = mol.to_rdkit()
    if not rdForceFieldHelpers.UFFHasAllMoleculeParams(rdmol):
      raise ValueError(f"UFF can't type every atom of {mol}")
    rdPartialCharges.ComputeGasteigerCharges(rdmol)

    atom_params = {}
    for atom, rdatom in zip(mol.atoms, rdmol.GetAtoms()):
      charge = float(rdatom.GetProp("_GasteigerCharge"))
      if not math.isfinite(charge):
        raise ValueError(f"Gasteiger charge of atom {atom.name} in {mol} is not finite")
      # the i, i pair gives the atom type's own x_i and D_i
      vdw = rdForceFieldHelpers.GetUFFVdWParams(rdmol, rdatom.GetIdx(), rdatom.GetIdx())
      if vdw is None:
        raise ValueError(f"No UFF van der Waals parameters for atom {atom.name} ({atom.element}) in {mol}")
      rmin, epsilon = vdw
      atom_params[atom.id] = AtomParams(atom.element, round(charge, self.charge_precision), rmin, epsilon)

    logger.debug(f"Parameterized {mol} with {self.name}: {len(atom_params)} atoms, net charge {formal_charge}")
    return MolParams(mol, atom_params)

  def pair_params(
    self, params_a: MolParams, atom_a: Atom, params_b: MolParams, atom_b: Atom, dist: Optional[int]
  ) -> Optional[Tuple[float, ...]]:
    if dist is not None and dist <= BONDED_EXCLUSION_DISTANCE:
      return None
    p1 = params_a[atom_a]
    p2 = params_b[atom_b]
    if dist == BONDED_DISTANCE_14:
      scale_vdw, scale_elec = self.scale_14_vdw, self.scale_14_elec
    else:
      scale_vdw, scale_elec = 1.0, 1.0
    coulomb = COULOMB_CONSTANT * p1.charge * p2.charge * scale_elec / self.dielectric
    rmin = math.sqrt(p1.rmin * p2.rmin)
    epsilon = math.sqrt(p1.epsilon * p2.epsilon) * scale_vdw
    return coulomb, rmin, epsilon

  def pair_energy(self, params: Sequence[float], r: float) -> float:
    coulomb, rmin, epsilon = params
    b6 = (rmin / r) ** 6
    vdw = epsilon * (b6 * b6 - 2.0 * b6)
    if self.distance_dependent_dielectric:
      return vdw + coulomb / (r * r)
    return vdw + coulomb / r
