# tests/test_fixed_atoms.py
import pytest
from conftest import build_ethane, h_position

from confspace.compiler.conf_space_index import ConfSpaceIndex
from confspace.compiler.fixed_atoms import FixedAtoms, fixed_name
from confspace.design import ConfSpace
from confspace.molecule import Chain, MoleculeType, Polymer, Residue


def _fixed_atoms():
  mol, atoms = build_ethane()
  space = ConfSpace([(MoleculeType.SYNTHETIC, mol)])
  positions = []
  for name, h, c, other, ref in [("P0", "H11", "C1", "C2", "H12"), ("P1", "H21", "C2", "C1", "H22")]:
    pos = h_position(mol, atoms, name, h, c, other, ref)
    space.add_position(pos).add(pos.make_fragment("H", "hydrogen"))
    positions.append(pos)
  index = ConfSpaceIndex(space)
  return FixedAtoms(index, space.fixed_atoms(index.design_positions())), index, mol, atoms


def test_replaced_atoms_are_not_fixed():
  fixed_atoms, _, mol, atoms = _fixed_atoms()
  names = [atom.name for atom in fixed_atoms.fixed(mol)]
  assert names == ["C1", "C2", "H12", "H13", "H22", "H23"]


def test_partition():
  fixed_atoms, index, mol, atoms = _fixed_atoms()
  p0, p1 = index.positions
  assert fixed_atoms[p0].add_dynamic([atoms["C1"]], p0.confs[0]) is None
  # claiming again is a no-op
  assert fixed_atoms[p0].add_dynamic([atoms["C1"], atoms["H12"]], p0.confs[0]) is None
  assert fixed_atoms[p0].dynamics == [atoms["C1"], atoms["H12"]]

  fixed_atoms.update_static()
  assert [info.name for info in fixed_atoms.statics] == ["ethane-C2", "ethane-H13", "ethane-H22", "ethane-H23"]
  assert [info.index for info in fixed_atoms.statics] == [0, 1, 2, 3]
  assert fixed_atoms.fixed(mol) == []

  for name in ("C1", "C2", "H12", "H13", "H22", "H23"):
    atom = atoms[name]
    assert fixed_atoms.is_static(atom) != fixed_atoms.is_dynamic(atom)
  assert fixed_atoms.owner(atoms["C1"]) is p0
  assert fixed_atoms.owner(atoms["C2"]) is None
  assert fixed_atoms.get_static(atoms["H13"]).index == 1
  with pytest.raises(KeyError):
    fixed_atoms.get_static(atoms["C1"])
  assert fixed_atoms.statics_by_mol() == {mol: [atoms["C2"], atoms["H13"], atoms["H22"], atoms["H23"]]}


def test_conflicting_claim():
  fixed_atoms, index, _, atoms = _fixed_atoms()
  p0, p1 = index.positions
  assert fixed_atoms[p0].add_dynamic([atoms["C1"]], p0.confs[0]) is None

  conflict = fixed_atoms[p1].add_dynamic([atoms["C2"], atoms["C1"]], p1.confs[0])
  assert conflict is not None
  assert conflict.atom is atoms["C1"]
  assert conflict.claimed_by is p0.confs[0]
  assert conflict.claimant is p1.confs[0]
  # nothing was claimed
  assert fixed_atoms[p1].dynamics == []
  assert not fixed_atoms.is_dynamic(atoms["C2"])


def test_only_fixed_atoms_can_be_claimed():
  fixed_atoms, index, _, atoms = _fixed_atoms()
  p0 = index.positions[0]
  with pytest.raises(ValueError):
    fixed_atoms[p0].add_dynamic([atoms["H11"]], p0.confs[0])


def test_update_static_once():
  fixed_atoms, _, _, _ = _fixed_atoms()
  fixed_atoms.update_static()
  with pytest.raises(RuntimeError):
    fixed_atoms.update_static()


def test_fixed_name_uses_residue():
  mol, atoms = build_ethane()
  polymer = Polymer("prot", mol.atoms, [Chain("B", [Residue("7", "ETH", [atoms["C1"]])])])
  assert fixed_name(polymer, atoms["C1"]) == "prot-B7-C1"
  assert fixed_name(polymer, atoms["C2"]) == "prot-C2"
  assert fixed_name(mol, atoms["C1"]) == "ethane-C1"
