from typing import Dict, Tuple

from confspace.compiler.conf_space_index import ConfInfo, ConfSpaceIndex
from confspace.forcefield.base import ForcefieldParams, MolParams
from confspace.molecule import Molecule


class MolsParams:
  """Forcefield parameterizations of the wild-type molecules and of every conformation.

  Lookups of entries that were never stored raise ``KeyError``.
  """

  def __init__(self, index: ConfSpaceIndex):
    self.index = index
    self._wild_type: Dict[Tuple[ForcefieldParams, Molecule], MolParams] = {}
    self._confs: Dict[Tuple[ForcefieldParams, int, int], MolParams] = {}

  def __setitem__(self, key, params: MolParams):
    ff, target = key
    if isinstance(target, ConfInfo):
      self._confs[(ff, target.pos_index, target.index)] = params
    else:
      self._wild_type[(ff, target)] = params

  def __getitem__(self, key) -> MolParams:
    ff, target = key
    try:
      if isinstance(target, ConfInfo):
        return self._confs[(ff, target.pos_index, target.index)]
      return self._wild_type[(ff, target)]
    except KeyError:
      raise KeyError(f"No {ff.name} parameters for {target}") from None

  def wild_type_by_mol(self, ff: ForcefieldParams) -> Dict[Molecule, MolParams]:
    return {mol: self[ff, mol] for mol in self.index.mols}
