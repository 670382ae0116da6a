# tests/test_molecule.py
import numpy as np
import pytest
from conftest import build_ethane
from rdkit import Chem
from rdkit.Chem import AllChem

from confspace.geometry import IllegalAlignmentError, dihedral_degrees, is_collinear, superimpose, transform
from confspace.molecule import Atom, Chain, Molecule, Polymer, Residue


# -----------------------------
# Bond graph
# -----------------------------
def test_bonds_are_symmetric(ethane):
  mol, atoms = ethane
  assert mol.is_bonded(atoms["C1"], atoms["H11"])
  assert mol.is_bonded(atoms["H11"], atoms["C1"])
  assert not mol.is_bonded(atoms["H11"], atoms["H12"])
  assert mol.bond_order(atoms["C1"], atoms["C2"]) == 1.0
  assert len(list(mol.bonds())) == 7


def test_bonded_distances(ethane):
  mol, atoms = ethane
  dists = mol.bonded_distances(atoms["H11"])
  assert dists[atoms["C1"].id] == 1
  assert dists[atoms["H12"].id] == 2
  assert dists[atoms["C2"].id] == 2
  assert dists[atoms["H21"].id] == 3
  assert atoms["H11"].id not in dists


def test_bfs_order_and_filter(ethane):
  mol, atoms = ethane
  visited = list(mol.bfs(atoms["C2"], visit_source=True))
  assert visited[0] == (atoms["C2"], 0)
  assert [d for _, d in visited] == sorted(d for _, d in visited)

  side = [atom.name for atom, _ in mol.bfs(atoms["C2"], should_visit=lambda _f, to, _d: to.id != atoms["C1"].id)]
  assert sorted(side) == ["H21", "H22", "H23"]


def test_remove_atom_drops_bonds(ethane):
  mol, atoms = ethane
  mol.remove_atom(atoms["H11"])
  assert atoms["H11"] not in mol
  assert len(mol) == 7
  assert atoms["H11"].id not in {a.id for a in mol.bonded_atoms(atoms["C1"])}
  with pytest.raises(ValueError):
    mol.remove_atom(atoms["H11"])


def test_invalid_bonds(ethane):
  mol, atoms = ethane
  with pytest.raises(ValueError):
    mol.add_bond(atoms["C1"], atoms["C1"])
  with pytest.raises(ValueError):
    mol.add_bond(atoms["C1"], atoms["H11"], order=4)
  with pytest.raises(ValueError):
    mol.add_bond(atoms["C1"], Atom("H", "X", (0, 0, 0)))


def test_add_atom_at_index(ethane):
  mol, atoms = ethane
  extra = Atom("O", "O1", (5.0, 0.0, 0.0))
  mol.add_atom(extra, index=1)
  assert mol.atoms[1] is extra
  with pytest.raises(ValueError):
    mol.add_atom(extra)


def test_copy_keeps_ids_not_instances(ethane):
  mol, atoms = ethane
  copy = mol.copy()
  assert [a.id for a in copy.atoms] == [a.id for a in mol.atoms]
  assert all(a is not b for a, b in zip(copy.atoms, mol.atoms))
  copy.get_atom(atoms["C1"].id).pos[0] = 10.0
  assert atoms["C1"].pos[0] == 0.0
  assert copy.is_bonded(copy.get_atom(atoms["C1"].id), copy.get_atom(atoms["C2"].id))


def test_locked_bumps_sequence(ethane):
  mol, _ = ethane
  before = mol.sequence
  with mol.locked():
    pass
  assert mol.sequence == before + 1


# -----------------------------
# RDKit conversions
# -----------------------------
def test_rdkit_round_trip():
  rdmol = Chem.AddHs(Chem.MolFromSmiles("CCO"))
  AllChem.EmbedMolecule(rdmol, randomSeed=7)
  mol = Molecule.from_rdkit(rdmol, name="ethanol")
  assert len(mol) == 9
  assert mol.atoms[2].element == "O"
  assert mol.atoms[2].name == "O3"

  back = mol.to_rdkit()
  assert back.GetNumAtoms() == 9
  assert back.GetNumBonds() == 8
  np.testing.assert_allclose(back.GetConformer().GetPositions(), mol.coords())


def test_to_rdkit_aromatic():
  rdmol = Chem.AddHs(Chem.MolFromSmiles("c1ccccc1"))
  AllChem.EmbedMolecule(rdmol, randomSeed=7)
  mol = Molecule.from_rdkit(rdmol)
  assert sum(1 for _, _, order in mol.bonds() if order == 1.5) == 6
  back = mol.to_rdkit()
  assert all(a.GetIsAromatic() for a in back.GetAtoms() if a.GetSymbol() == "C")


# -----------------------------
# Polymers
# -----------------------------
def test_polymer_residues():
  mol, atoms = build_ethane()
  res1 = Residue("1", "ETH", [atoms[n] for n in ("C1", "H11", "H12", "H13")])
  res2 = Residue("2", "ETH", [atoms[n] for n in ("C2", "H21", "H22", "H23")])
  polymer = Polymer("poly", mol.atoms, [Chain("A", [res1, res2])])
  for a, b, order in mol.bonds():
    polymer.add_bond(a, b, order)

  chain, res = polymer.find_chain_and_residue(atoms["H21"])
  assert chain.id == "A" and res is res2
  assert polymer.residues_by_atom()[atoms["C1"].id] == (chain, res1)

  polymer.remove_atom(atoms["H11"])
  assert atoms["H11"] not in res1.atoms

  copy = polymer.copy()
  copy_res = copy.find_chain_and_residue(copy.get_atom(atoms["C2"].id))[1]
  assert copy_res is not res2
  assert [a.id for a in copy_res.atoms] == [a.id for a in res2.atoms]


def test_polymer_from_rdkit():
  rdmol = Chem.MolFromSequence("GA")
  polymer = Polymer.from_rdkit(rdmol, name="peptide")
  assert len(polymer.chains) == 1
  assert [res.type for res in polymer.chains[0].residues] == ["GLY", "ALA"]
  assert sum(len(res.atoms) for res in polymer.chains[0].residues) == len(polymer)


# -----------------------------
# Geometry
# -----------------------------
def test_dihedral_right_angle():
  angle = dihedral_degrees(np.array([1.0, 0, 0]), np.zeros(3), np.array([0, 0, 1.0]), np.array([0, 1.0, 1.0]))
  assert abs(angle) == pytest.approx(90.0)


def test_superimpose_recovers_rotation():
  moving = np.array([[0.0, 0.0, 0.0], [1.5, 0.0, 0.0], [0.0, 1.0, 0.3], [0.4, 0.2, 1.1]])
  rot_z = np.array([[0.0, 1.0, 0.0], [-1.0, 0.0, 0.0], [0.0, 0.0, 1.0]])
  fixed = moving @ rot_z + np.array([1.0, -2.0, 0.5])
  rot, tran = superimpose(fixed, moving)
  np.testing.assert_allclose(transform(moving, rot, tran), fixed, atol=1e-6)


def test_superimpose_rejects_collinear():
  line = np.array([[0.0, 0, 0], [1.0, 0, 0], [2.0, 0, 0]])
  assert is_collinear(line)
  with pytest.raises(IllegalAlignmentError):
    superimpose(line, line)
