"""
The compiled conformation space: a self-contained, index-addressed description
of every atom, conformation, continuous motion and forcefield term, plus its
JSON serialization.
"""

from __future__ import annotations

import gzip
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Union

import numpy as np
import pandas as pd

from confspace.compiler.atom_pairs import AtomPair, AtomPairs
from confspace.log import logger

FORMAT_VERSION = 1


### CLASSES ###
@dataclass
class ForcefieldInfo:
  name: str
  implementation: str
  settings: Dict[str, Any] = field(default_factory=dict)


@dataclass
class MolInfo:
  name: str
  type: str


@dataclass
class ResInfo:
  chain_id: str
  id: str
  type: str
  index_in_chain: int


@dataclass
class CompiledAtom:
  name: str
  pos: np.ndarray
  mol_index: int
  res_index: int = -1

  def to_dict(self) -> Dict[str, Any]:
    return {"name": self.name, "pos": [float(v) for v in self.pos], "mol": self.mol_index, "res": self.res_index}

  @classmethod
  def from_dict(cls, d: Dict[str, Any]) -> CompiledAtom:
    return cls(d["name"], np.array(d["pos"], dtype=float), d["mol"], d.get("res", -1))


@dataclass
class CompiledDihedral:
  """Dihedral motion. ``abcd`` use the atom pair encoding, ``rotated`` are local atom indices."""

  min_degrees: float
  max_degrees: float
  abcd: List[int]
  rotated: List[int]

  kind = "dihedral"

  def to_dict(self) -> Dict[str, Any]:
    return {
      "type": self.kind,
      "min_degrees": self.min_degrees,
      "max_degrees": self.max_degrees,
      "abcd": list(self.abcd),
      "rotated": list(self.rotated),
    }

  @classmethod
  def from_dict(cls, d: Dict[str, Any]) -> CompiledDihedral:
    return cls(d["min_degrees"], d["max_degrees"], list(d["abcd"]), list(d["rotated"]))


MOTION_TYPES = {CompiledDihedral.kind: CompiledDihedral}


@dataclass
class CompiledFrag:
  name: str
  atom_names: List[str]


@dataclass
class CompiledConf:
  id: str
  type: str
  atoms: List[CompiledAtom]
  frag_index: int
  motions: List[CompiledDihedral]
  internal_energies: List[float]


@dataclass
class CompiledPosition:
  name: str
  type: str
  frags: List[CompiledFrag]
  confs: List[CompiledConf]


@dataclass
class CompiledConfSpace:
  """Output of a successful compile.

  Per-forcefield lists (``static_energies``, ``atom_pairs`` and every
  ``CompiledConf.internal_energies``) are in the order of ``forcefields``.
  """

  name: str
  forcefields: List[ForcefieldInfo]
  mol_infos: List[MolInfo]
  res_infos: List[ResInfo]
  static_atoms: List[CompiledAtom]
  static_energies: List[float]
  positions: List[CompiledPosition]
  atom_pairs: List[AtomPairs]

  def summary(self) -> pd.DataFrame:
    """One row per compiled conformation."""
    rows = []
    for posi, pos in enumerate(self.positions):
      for confi, conf in enumerate(pos.confs):
        row = {
          "position": pos.name,
          "pos_index": posi,
          "conf_id": conf.id,
          "conf_index": confi,
          "type": conf.type,
          "num_atoms": len(conf.atoms),
          "num_motions": len(conf.motions),
        }
        for ffi, ff in enumerate(self.forcefields):
          row[f"internal_energy_{ff.name}"] = conf.internal_energies[ffi]
          row[f"num_single_pairs_{ff.name}"] = len(self.atom_pairs[ffi].singles[posi, confi])
          row[f"num_static_pairs_{ff.name}"] = len(self.atom_pairs[ffi].statics[posi, confi])
        rows.append(row)
    return pd.DataFrame(rows)

  ## serialization
  def to_dict(self) -> Dict[str, Any]:
    return {
      "version": FORMAT_VERSION,
      "name": self.name,
      "forcefields": [
        {"name": ff.name, "implementation": ff.implementation, "settings": dict(ff.settings)} for ff in self.forcefields
      ],
      "molecules": [{"name": m.name, "type": m.type} for m in self.mol_infos],
      "residues": [
        {"chain": r.chain_id, "id": r.id, "type": r.type, "index": r.index_in_chain} for r in self.res_infos
      ],
      "static": {
        "atoms": [atom.to_dict() for atom in self.static_atoms],
        "energies": list(self.static_energies),
      },
      "positions": [
        {
          "name": pos.name,
          "type": pos.type,
          "frags": [{"name": frag.name, "atoms": list(frag.atom_names)} for frag in pos.frags],
          "confs": [
            {
              "id": conf.id,
              "type": conf.type,
              "frag": conf.frag_index,
              "atoms": [atom.to_dict() for atom in conf.atoms],
              "motions": [motion.to_dict() for motion in conf.motions],
              "energies": list(conf.internal_energies),
            }
            for conf in pos.confs
          ],
        }
        for pos in self.positions
      ],
      "atom_pairs": [_atom_pairs_to_dict(pairs) for pairs in self.atom_pairs],
    }

  @classmethod
  def from_dict(cls, d: Dict[str, Any]) -> CompiledConfSpace:
    version = d.get("version")
    if version != FORMAT_VERSION:
      raise ValueError(f"Unsupported compiled conformation space version {version}, expected {FORMAT_VERSION}")
    positions = []
    for p in d["positions"]:
      confs = [
        CompiledConf(
          c["id"],
          c["type"],
          [CompiledAtom.from_dict(a) for a in c["atoms"]],
          c["frag"],
          [MOTION_TYPES[m["type"]].from_dict(m) for m in c["motions"]],
          list(c["energies"]),
        )
        for c in p["confs"]
      ]
      frags = [CompiledFrag(f["name"], list(f["atoms"])) for f in p["frags"]]
      positions.append(CompiledPosition(p["name"], p["type"], frags, confs))
    conf_counts = [len(pos.confs) for pos in positions]
    return cls(
      name=d["name"],
      forcefields=[ForcefieldInfo(f["name"], f["implementation"], dict(f["settings"])) for f in d["forcefields"]],
      mol_infos=[MolInfo(m["name"], m["type"]) for m in d["molecules"]],
      res_infos=[ResInfo(r["chain"], r["id"], r["type"], r["index"]) for r in d["residues"]],
      static_atoms=[CompiledAtom.from_dict(a) for a in d["static"]["atoms"]],
      static_energies=list(d["static"]["energies"]),
      positions=positions,
      atom_pairs=[_atom_pairs_from_dict(ap, conf_counts) for ap in d["atom_pairs"]],
    )

  def save(self, path: Union[str, Path]):
    """Write JSON to ``path``, gzip-compressed when it ends in ``.gz``."""
    path = Path(path)
    text = json.dumps(self.to_dict())
    if path.suffix == ".gz":
      with gzip.open(path, "wt", encoding="utf-8") as f:
        f.write(text)
    else:
      path.write_text(text, encoding="utf-8")
    logger.info(f"Saved compiled conformation space {self.name} to {path}")

  @classmethod
  def load(cls, path: Union[str, Path]) -> CompiledConfSpace:
    path = Path(path)
    if path.suffix == ".gz":
      with gzip.open(path, "rt", encoding="utf-8") as f:
        d = json.load(f)
    else:
      d = json.loads(path.read_text(encoding="utf-8"))
    return cls.from_dict(d)


### FUNCTIONS ###
def _pairs_to_list(pairs: List[AtomPair]) -> List[List[int]]:
  return [[p.atomi1, p.atomi2, p.paramsi] for p in pairs]


def _atom_pairs_to_dict(atom_pairs: AtomPairs) -> Dict[str, Any]:
  # empty buckets are left out
  return {
    "params": [list(p) for p in atom_pairs.params_cache.params],
    "singles": [
      {"pos": posi, "conf": confi, "pairs": _pairs_to_list(pairs)} for (posi, confi), pairs in atom_pairs.singles.items() if pairs
    ],
    "statics": [
      {"pos": posi, "conf": confi, "pairs": _pairs_to_list(pairs)} for (posi, confi), pairs in atom_pairs.statics.items() if pairs
    ],
    "pairs": [
      {"pos1": posi1, "conf1": confi1, "pos2": posi2, "conf2": confi2, "pairs": _pairs_to_list(pairs)}
      for (posi1, confi1, posi2, confi2), pairs in atom_pairs.pairs.items()
      if pairs
    ],
  }


def _atom_pairs_from_dict(d: Dict[str, Any], conf_counts: List[int]) -> AtomPairs:
  atom_pairs = AtomPairs(conf_counts)
  for params in d["params"]:
    atom_pairs.params_cache.index(params)
  for bucket in d["singles"]:
    atom_pairs.singles[bucket["pos"], bucket["conf"]].extend(AtomPair(*p) for p in bucket["pairs"])
  for bucket in d["statics"]:
    atom_pairs.statics[bucket["pos"], bucket["conf"]].extend(AtomPair(*p) for p in bucket["pairs"])
  for bucket in d["pairs"]:
    key = (bucket["pos1"], bucket["conf1"], bucket["pos2"], bucket["conf2"])
    atom_pairs.pairs[key].extend(AtomPair(*p) for p in bucket["pairs"])
  return atom_pairs
