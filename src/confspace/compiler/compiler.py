"""
Compiles a design space and its forcefields into a :class:`CompiledConfSpace`.
"""

from __future__ import annotations

import threading
from typing import Dict, List, Optional

import numpy as np

from confspace.compiler.atom_index import AtomIndex
from confspace.compiler.atom_pairs import AtomPairs
from confspace.compiler.compiled import (
  CompiledAtom,
  CompiledConf,
  CompiledConfSpace,
  CompiledDihedral,
  CompiledFrag,
  CompiledPosition,
  ForcefieldInfo,
  MolInfo,
  ResInfo,
)
from confspace.compiler.conf_space_index import ConfInfo, ConfSpaceIndex, PosInfo
from confspace.compiler.errors import ClaimConflict, CompilerError, CompilerWarning
from confspace.compiler.fixed_atoms import FixedAtoms, fixed_name
from confspace.compiler.mols_params import MolsParams
from confspace.compiler.net_charges import NetCharges
from confspace.compiler.progress import CompilerProgress, Report, Task
from confspace.conflib import DihedralAngle
from confspace.design import ConfSpace
from confspace.forcefield.base import ForcefieldParams, iter_atom_pairs
from confspace.geometry import are_finite
from confspace.log import logger
from confspace.molecule import Atom, Molecule, Polymer, Residue
from confspace.motions import describe_dihedral


def check_coords(pos: np.ndarray, source: str) -> np.ndarray:
  """Return a copy of ``pos``, raising a :class:`CompilerError` if any value is NaN or infinite."""
  if not are_finite(pos):
    raise CompilerError(f"Coordinates at '{source}' have bad values: {list(pos)}")
  return np.array(pos, dtype=float)


class _Indexer:
  """Indices of the molecules and residues, referenced by compiled atoms."""

  def __init__(self, conf_space: ConfSpace, mols: List[Molecule]):
    self.mol_infos: List[MolInfo] = []
    self.res_infos: List[ResInfo] = []
    self._mol_indices: Dict[Molecule, int] = {}
    self._res_indices: Dict[int, int] = {}
    # atom id -> residue index, for the atoms in place when indexing
    self._res_of_atom: Dict[int, int] = {}
    for mol in mols:
      self._mol_indices[mol] = len(self.mol_infos)
      self.mol_infos.append(MolInfo(mol.name, conf_space.mol_type(mol).value))
      if isinstance(mol, Polymer):
        for chain in mol.chains:
          for resi, res in enumerate(chain.residues):
            self._res_indices[id(res)] = len(self.res_infos)
            self._res_of_atom.update((atom.id, len(self.res_infos)) for atom in res.atoms)
            self.res_infos.append(ResInfo(chain.id, res.id, res.type, resi))

  def compile_atom(self, mol: Molecule, atom: Atom, name: Optional[str] = None, residue: Optional[Residue] = None) -> CompiledAtom:
    """Compile ``atom``; atoms placed since indexing take their residue index from ``residue``."""
    res_index = self._res_of_atom.get(atom.id)
    if res_index is None:
      res_index = -1 if residue is None else self._res_indices.get(id(residue), -1)
    name = atom.name if name is None else name
    return CompiledAtom(name, check_coords(atom.pos, name), self._mol_indices[mol], res_index)


class ConfSpaceCompiler:
  """Collects the atoms, motions and forcefield parameters of a design space into one compiled artifact.

  Parameters:
    conf_space: The design space to compile

  Usage::

    compiler = ConfSpaceCompiler(conf_space)
    compiler.add_forcefield(GasteigerLJParams())
    report = compiler.compile().wait_for_finish()
  """

  def __init__(self, conf_space: ConfSpace):
    self.conf_space = conf_space
    self.forcefields: List[ForcefieldParams] = []
    self.net_charges = NetCharges()

  def add_forcefield(self, ff: ForcefieldParams) -> ForcefieldParams:
    if any(other is ff for other in self.forcefields):
      raise ValueError(f"Forcefield {ff} was already added")
    self.forcefields.append(ff)
    return ff

  def compile(self) -> CompilerProgress:
    """Start compiling on a worker thread and return right away.

    Progress can be followed through the returned handle; its report is set
    once the compile succeeds or fails.
    """
    index = ConfSpaceIndex(self.conf_space)
    nff = len(self.forcefields)
    num_confs = index.num_confs
    progress = CompilerProgress(
      Task("Parameterize molecules", nff * (num_confs + len(index.mols))),
      Task("Partition fixed atoms", nff * num_confs + 2),
      Task("Calculate energy of static atoms", nff),
      Task("Calculate forcefield atom pairs", num_confs * 2 + index.num_conf_pairs),
    )
    thread = threading.Thread(target=self._run, args=(index, progress), name="ConfSpaceCompiler", daemon=False)
    progress._start(thread)
    return progress

  def _run(self, index: ConfSpaceIndex, progress: CompilerProgress):
    warnings: List[CompilerWarning] = []
    try:
      compiled = self._compile(index, progress, warnings)
      report = Report(warnings, None, compiled)
      logger.info(f"Compiled conformation space {compiled.name}")
    except Exception as ex:
      logger.exception(f"Failed to compile conformation space {self.conf_space.name}")
      error = ex if isinstance(ex, CompilerError) else _wrap(ex)
      report = Report(warnings, error, None)
    progress._publish(report)

  def _compile(self, index: ConfSpaceIndex, progress: CompilerProgress, warnings: List[CompilerWarning]) -> CompiledConfSpace:
    params_task, fixed_task, static_task, pairs_task = progress.tasks
    logger.info(
      f"Compiling {self.conf_space.name}: {len(index.mols)} molecules, {len(index.positions)} positions, "
      f"{index.num_confs} conformations, {len(self.forcefields)} forcefields"
    )
    forcefield_infos = [ForcefieldInfo(ff.name, ff.implementation, ff.settings()) for ff in self.forcefields]

    logger.info("Parameterizing molecules")
    params = self._parameterize(index, params_task)

    logger.info("Partitioning fixed atoms")
    fixed_atoms = FixedAtoms(index, self.conf_space.fixed_atoms(index.design_positions()))
    self._find_dynamic_atoms(index, params, fixed_atoms, fixed_task)
    fixed_atoms.update_static()
    fixed_task.increment()

    indexer = _Indexer(self.conf_space, index.mols)
    static_atoms = [indexer.compile_atom(info.mol, info.atom, info.name) for info in fixed_atoms.statics]
    fixed_task.increment()

    logger.info("Calculating energy of static atoms")
    statics_by_mol = fixed_atoms.statics_by_mol()
    static_energies = []
    for ff in self.forcefields:
      static_energies.append(ff.calc_energy(statics_by_mol, params.wild_type_by_mol(ff)))
      static_task.increment()

    logger.info("Compiling conformations")
    positions = [self._compile_position(pos_info, indexer, fixed_atoms, params) for pos_info in index.positions]

    logger.info("Calculating forcefield atom pairs")
    atom_pairs = self._compile_atom_pairs(index, fixed_atoms, params, statics_by_mol, pairs_task)

    return CompiledConfSpace(
      self.conf_space.name,
      forcefield_infos,
      indexer.mol_infos,
      indexer.res_infos,
      static_atoms,
      static_energies,
      positions,
      atom_pairs,
    )

  def _parameterize(self, index: ConfSpaceIndex, task: Task) -> MolsParams:
    params = MolsParams(index)
    for mol in index.mols:
      net_charges = self.net_charges.get(mol, self.conf_space.mol_type(mol))

      # the wild-type first
      for ff in self.forcefields:
        try:
          params[ff, mol] = ff.parameterize(mol.copy(), None if net_charges is None else net_charges.net_charge_or_raise)
        except Exception as ex:
          raise CompilerError(f"Can't parameterize wild-type molecule: {mol}") from ex
        task.increment()

      # then the molecule with each conformation set
      for pos_info in index.positions_of(mol):
        logger.debug(f"Parameterizing {len(pos_info.confs)} conformations at {pos_info.pos.name}")
        with pos_info.switch_confs() as confs:
          for conf_info in confs:
            frag = pos_info.frag_info(conf_info).frag
            for ff in self.forcefields:
              try:
                net_charge = None if net_charges is None else net_charges.get_or_raise(pos_info.pos, frag)
                params[ff, conf_info] = ff.parameterize(mol.copy(), net_charge)
              except Exception as ex:
                raise CompilerError(f"Can't parameterize molecule: {mol} with {pos_info.pos.name}:{conf_info.id}") from ex
              task.increment()
    return params

  def _find_dynamic_atoms(self, index: ConfSpaceIndex, params: MolsParams, fixed_atoms: FixedAtoms, task: Task):
    for ff in self.forcefields:
      for pos_info in index.positions:
        wt_params = params[ff, pos_info.mol]
        mol_fixed = fixed_atoms.fixed(pos_info.mol)
        for conf_info in pos_info.confs:
          changed = ff.filter_changed_atoms(mol_fixed, params[ff, conf_info], wt_params)
          conflict = fixed_atoms[pos_info].add_dynamic(changed, conf_info)
          if conflict is not None:
            raise self._conflict_error(index, ff, params, conflict)
          task.increment()

  def _conflict_error(self, index: ConfSpaceIndex, ff: ForcefieldParams, params: MolsParams, conflict: ClaimConflict) -> CompilerError:
    lines = []
    for conf_info in (conflict.claimed_by, conflict.claimant):
      pos_info = index.positions[conf_info.pos_index]
      name = fixed_name(pos_info.mol, conflict.atom)
      conf_params = params[ff, conf_info]
      desc = conf_params[conflict.atom] if conflict.atom in conf_params else None
      lines.append(f"fixed atom={name}, position={pos_info.pos.name}, conformation={conf_info.id}, {ff.name} params={desc}")
    return CompilerError(
      "Forcefield parameterization of conformations at different design positions yielded conflicting parameters for a fixed atom",
      "\n".join(lines),
    )

  def _conf_atoms(self, pos_info: PosInfo, conf_info: ConfInfo, fixed_atoms: FixedAtoms) -> AtomIndex:
    return AtomIndex(pos_info.frag_info(conf_info).order_atoms(fixed_atoms[pos_info].dynamics, pos_info.pos))

  def _compile_position(self, pos_info: PosInfo, indexer: _Indexer, fixed_atoms: FixedAtoms, params: MolsParams) -> CompiledPosition:
    pos = pos_info.pos
    frags = []
    with pos_info.switch_frags() as confs:
      for conf_info in confs:
        conf_atoms = self._conf_atoms(pos_info, conf_info, fixed_atoms)
        frags.append(CompiledFrag(pos_info.frag_info(conf_info).frag.id, [atom.name for atom in conf_atoms]))

    compiled_confs = []
    with pos_info.switch_confs() as confs:
      for conf_info in confs:
        frag = pos_info.frag_info(conf_info).frag
        conf_atoms = self._conf_atoms(pos_info, conf_info, fixed_atoms)

        motions = []
        settings = pos_info.conf_space.settings_for(frag)
        for motion in frag.motions:
          if not isinstance(motion, DihedralAngle):
            raise TypeError(f"Don't know how to compile motion {type(motion).__name__}")
          desc = describe_dihedral(pos, motion, settings)
          if desc is None:
            continue
          motions.append(
            CompiledDihedral(
              desc.min_degrees,
              desc.max_degrees,
              abcd=[conf_atoms.get_or_static(atom, fixed_atoms) for atom in (desc.a, desc.b, desc.c, desc.d)],
              rotated=[conf_atoms.get_or_raise(atom) for atom in desc.rotated],
            )
          )

        internal_energies = []
        for ff in self.forcefields:
          conf_params = params[ff, conf_info]
          energy = 0.0
          for atom in conf_atoms:
            e = ff.internal_energy(conf_params, atom)
            if e is not None:
              energy += e
          internal_energies.append(energy)

        compiled_confs.append(
          CompiledConf(
            id=conf_info.id,
            type=frag.type,
            atoms=[indexer.compile_atom(pos.mol, atom, residue=pos.residue) for atom in conf_atoms],
            frag_index=conf_info.frag_index,
            motions=motions,
            internal_energies=internal_energies,
          )
        )
    logger.debug(f"Compiled {len(compiled_confs)} conformations at {pos.name}")
    return CompiledPosition(pos.name, pos.type, frags, compiled_confs)

  def _compile_atom_pairs(
    self,
    index: ConfSpaceIndex,
    fixed_atoms: FixedAtoms,
    params: MolsParams,
    statics_by_mol: Dict[Molecule, List[Atom]],
    task: Task,
  ) -> List[AtomPairs]:
    atom_pairs = [AtomPairs.for_index(index) for _ in self.forcefields]
    wt_params = [params.wild_type_by_mol(ff) for ff in self.forcefields]

    for pos_info1 in index.positions:
      mol1 = pos_info1.mol
      with pos_info1.switch_confs() as confs1:
        for conf_info1 in confs1:
          conf_atoms1 = self._conf_atoms(pos_info1, conf_info1, fixed_atoms)
          local1 = {mol1: conf_atoms1.atoms}
          conf_params1 = [params[ff, conf_info1] for ff in self.forcefields]

          # within the conformation
          for _, atom1, _, atom2, dist in iter_atom_pairs(local1, local1):
            for ffi, ff in enumerate(self.forcefields):
              p = ff.pair_params(conf_params1[ffi], atom1, conf_params1[ffi], atom2, dist)
              if p is not None:
                atom_pairs[ffi].singles.add(
                  pos_info1.index, conf_info1.index, conf_atoms1.get_or_raise(atom1), conf_atoms1.get_or_raise(atom2), p
                )
          task.increment()

          # against the static atoms
          for _, atom1, smol, satom, dist in iter_atom_pairs(local1, statics_by_mol):
            for ffi, ff in enumerate(self.forcefields):
              p = ff.pair_params(conf_params1[ffi], atom1, wt_params[ffi][smol], satom, dist)
              if p is not None:
                atom_pairs[ffi].statics.add(
                  pos_info1.index,
                  conf_info1.index,
                  conf_atoms1.get_or_raise(atom1),
                  conf_atoms1.get_or_static(satom, fixed_atoms),
                  p,
                )
          task.increment()

          # against every conformation at each earlier position
          for pos_info2 in index.positions[: pos_info1.index]:
            mol2 = pos_info2.mol
            with pos_info2.switch_confs() as confs2:
              for conf_info2 in confs2:
                conf_atoms2 = self._conf_atoms(pos_info2, conf_info2, fixed_atoms)
                local2 = {mol2: conf_atoms2.atoms}
                for _, atom1, _, atom2, dist in iter_atom_pairs(local1, local2):
                  for ffi, ff in enumerate(self.forcefields):
                    p = ff.pair_params(conf_params1[ffi], atom1, params[ff, conf_info2], atom2, dist)
                    if p is not None:
                      atom_pairs[ffi].pairs.add(
                        pos_info1.index,
                        conf_info1.index,
                        pos_info2.index,
                        conf_info2.index,
                        conf_atoms1.get_or_raise(atom1),
                        conf_atoms2.get_or_raise(atom2),
                        p,
                      )
                task.increment()
    return atom_pairs


def _wrap(ex: Exception) -> CompilerError:
  """Catch-all for failures that aren't already compiler errors, the original is kept as the cause."""
  error = CompilerError("Error")
  error.__cause__ = ex
  return error
