# tests/test_compiled.py
import json

import pytest
from conftest import FakeForcefield, build_ethane, h_position, hydroxyl_fragment, substitute

from confspace.compiler.compiled import FORMAT_VERSION, CompiledConfSpace
from confspace.compiler.compiler import ConfSpaceCompiler
from confspace.design import ConfSpace
from confspace.molecule import MoleculeType


@pytest.fixture
def compiled():
  mol, atoms = build_ethane()
  space = ConfSpace([(MoleculeType.SYNTHETIC, mol)], name="ethane design")
  p0 = h_position(mol, atoms, "P0", "H11", "C1", "C2", "H12")
  pcs0 = space.add_position(p0)
  pcs0.add(substitute(p0.make_fragment("H", "hydrogen"), "F", "F"))
  pcs0.add(hydroxyl_fragment(atoms))
  p1 = h_position(mol, atoms, "P1", "H21", "C2", "C1", "H22")
  space.add_position(p1).add(p1.make_fragment("H", "hydrogen"))

  compiler = ConfSpaceCompiler(space)
  compiler.add_forcefield(FakeForcefield())
  report = compiler.compile().wait_for_finish()
  assert report.success
  return report.compiled


def test_dict_is_json(compiled):
  d = json.loads(json.dumps(compiled.to_dict()))
  assert d["version"] == FORMAT_VERSION
  assert d["name"] == "ethane design"
  assert d["molecules"] == [{"name": "ethane", "type": "synthetic"}]
  assert d["residues"] == []
  assert [p["name"] for p in d["positions"]] == ["P0", "P1"]
  assert [c["id"] for c in d["positions"][0]["confs"]] == ["F:wt", "OH:up"]
  assert d["positions"][0]["confs"][1]["motions"][0]["type"] == "dihedral"


def test_from_dict_round_trip(compiled):
  d = compiled.to_dict()
  assert CompiledConfSpace.from_dict(d).to_dict() == d


@pytest.mark.parametrize("filename", ["compiled.json", "compiled.json.gz"])
def test_save_and_load(compiled, tmp_path, filename):
  path = tmp_path / filename
  compiled.save(path)
  loaded = CompiledConfSpace.load(path)
  assert loaded.to_dict() == json.loads(json.dumps(compiled.to_dict()))
  assert loaded.atom_pairs[0].pairs[1, 0, 0, 0] == compiled.atom_pairs[0].pairs[1, 0, 0, 0]


def test_gzip_is_compressed(compiled, tmp_path):
  path = tmp_path / "compiled.json.gz"
  compiled.save(path)
  assert path.read_bytes()[:2] == b"\x1f\x8b"


def test_unsupported_version(compiled):
  d = compiled.to_dict()
  d["version"] = FORMAT_VERSION + 1
  with pytest.raises(ValueError):
    CompiledConfSpace.from_dict(d)


def test_summary(compiled):
  df = compiled.summary()
  assert list(df["conf_id"]) == ["F:wt", "OH:up", "H:wt"]
  assert list(df["position"]) == ["P0", "P0", "P1"]
  assert list(df["num_atoms"]) == [2, 3, 1]
  assert list(df["num_motions"]) == [0, 1, 0]
  for column in ("internal_energy_fake", "num_single_pairs_fake", "num_static_pairs_fake"):
    assert column in df.columns
