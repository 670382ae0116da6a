"""Shared test fixtures for confspace: a hand-built ethane and a fake forcefield."""

import numpy as np
import pytest

from confspace.conflib import Anchor, AnchorAtomPointer, AtomInfo, Bond, Conf, DihedralAngle, Fragment
from confspace.design import ConfSpace, DesignPosition, PositionAnchor
from confspace.forcefield.base import ForcefieldParams, MolParams
from confspace.molecule import Atom, Chain, Molecule, MoleculeType, Polymer, Residue

ELEMENT_VALUES = {"H": 1.0, "C": 6.0, "O": 8.0, "F": 9.0}

ETHANE_ATOMS = [
  ("C", "C1", (0.0, 0.0, 0.0)),
  ("C", "C2", (1.54, 0.0, 0.0)),
  ("H", "H11", (-0.36, 1.03, 0.0)),
  ("H", "H12", (-0.36, -0.51, 0.89)),
  ("H", "H13", (-0.36, -0.51, -0.89)),
  ("H", "H21", (1.90, -1.03, 0.0)),
  ("H", "H22", (1.90, 0.51, 0.89)),
  ("H", "H23", (1.90, 0.51, -0.89)),
]
ETHANE_BONDS = [("C1", "C2"), ("C1", "H11"), ("C1", "H12"), ("C1", "H13"), ("C2", "H21"), ("C2", "H22"), ("C2", "H23")]


class FakeForcefield(ForcefieldParams):
  """Atom parameters are the atom's element plus the sorted elements of its neighbors."""

  implementation = "fake"

  def __init__(self, name="fake"):
    self.name = name
    self.calls = []

  def settings(self):
    return {"flavor": self.name}

  def parameterize(self, mol, net_charge=None):
    self.calls.append((mol.name, net_charge))
    return MolParams(mol, {a.id: (a.element, tuple(sorted(b.element for b in mol.bonded_atoms(a)))) for a in mol.atoms})

  def internal_energy(self, mol_params, atom):
    if atom.is_hydrogen:
      return None
    return 1.0

  def pair_params(self, params_a, atom_a, params_b, atom_b, dist):
    if dist is not None and dist <= 2:
      return None
    product = ELEMENT_VALUES[params_a[atom_a][0]] * ELEMENT_VALUES[params_b[atom_b][0]]
    return product, -1.0 if dist is None else float(dist)

  def pair_energy(self, params, r):
    return params[0] / r


def build_ethane(name="ethane"):
  atoms = {atom_name: Atom(element, atom_name, pos) for element, atom_name, pos in ETHANE_ATOMS}
  mol = Molecule(name, atoms.values())
  for a, b in ETHANE_BONDS:
    mol.add_bond(atoms[a], atoms[b])
  return mol, atoms


def build_polymer(name="prot"):
  """The hand-built ethane as a polymer: chain A, residue 1 is C1 and its hydrogens, residue 2 the rest."""
  mol, atoms = build_ethane(name)
  res1 = Residue("1", "ETH", [atoms[n] for n in ("C1", "H11", "H12", "H13")])
  res2 = Residue("2", "ETH", [atoms[n] for n in ("C2", "H21", "H22", "H23")])
  polymer = Polymer(name, mol.atoms, [Chain("A", [res1, res2])])
  for a, b, order in mol.bonds():
    polymer.add_bond(a, b, order)
  return polymer, atoms


def h_position(mol, atoms, name, h, c, other_c, ref_h):
  """Design position replacing hydrogen ``h`` bonded to ``c``."""
  anchor = PositionAnchor([atoms[c], atoms[other_c], atoms[ref_h]])
  return DesignPosition(name, "H", mol, [atoms[h]], [[anchor]])


def substitute(frag, frag_id, element, name=None):
  """Copy of a one-atom fragment with another element, same geometry."""
  info = AtomInfo(1, name or element, element)
  anchors = [Anchor(a.id, [[info] for _ in a.bonds]) for a in frag.anchors]
  confs = [Conf(c.id, c.name, {1: c.coords[frag.atoms[0].id]}, dict(c.anchor_coords)) for c in frag.confs]
  return Fragment(frag_id, frag_id, type=frag_id, atoms=[info], anchors=anchors, confs=confs)


def collinear_anchor(frag, frag_id, element):
  """Like :func:`substitute`, but every conformation's anchor coordinates lie on a line."""
  out = substitute(frag, frag_id, element)
  for conf in out.confs:
    for anchor_id in conf.anchor_coords:
      conf.anchor_coords[anchor_id] = np.array([(0.0, 0.0, 0.0), (1.0, 0.0, 0.0), (2.0, 0.0, 0.0)])
  return out


def hydroxyl_fragment(atoms):
  """OH fragment aligned to an (C1, C2, H12) anchor of the hand-built ethane, with a dihedral motion."""
  o = AtomInfo(1, "O", "O")
  ho = AtomInfo(2, "HO", "H")
  anchor = Anchor(1, [[o]])
  conf = Conf(
    "up",
    "up",
    coords={1: (-0.472, 1.350, 0.0), 2: (-1.40, 1.45, 0.30)},
    anchor_coords={1: [atoms["C1"].pos, atoms["C2"].pos, atoms["H12"].pos]},
  )
  motion = DihedralAngle(AnchorAtomPointer(anchor, 1), AnchorAtomPointer(anchor, 0), o, ho)
  return Fragment("OH", "hydroxyl", type="OH", atoms=[o, ho], bonds=[Bond(o, ho)], anchors=[anchor], confs=[conf], motions=[motion])


@pytest.fixture
def ethane():
  return build_ethane()


@pytest.fixture
def ff():
  return FakeForcefield()


@pytest.fixture
def ethane_space(ethane):
  mol, atoms = ethane
  return ConfSpace([(MoleculeType.SYNTHETIC, mol)], name="ethane space"), mol, atoms


def coords_snapshot(mol):
  return [(atom.id, atom.name, tuple(np.round(atom.pos, 6))) for atom in mol.atoms]
