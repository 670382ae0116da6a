"""
Compiled forcefield atom pairs, bucketed by conformation and de-duplicated
through a per-forcefield parameter table.
"""

from dataclasses import dataclass
from typing import Dict, Iterator, List, Sequence, Tuple

from confspace.compiler.conf_space_index import ConfSpaceIndex


def pos_index(pos1: int, pos2: int) -> int:
  """Linear index of the position pair ``(pos1, pos2)``, which must satisfy ``pos2 < pos1``."""
  if not 0 <= pos2 < pos1:
    raise ValueError(f"Position pairs must be ordered pos2 < pos1, got pos1={pos1}, pos2={pos2}")
  return pos1 * (pos1 - 1) // 2 + pos2


@dataclass(frozen=True)
class AtomPair:
  """``atomi1`` is a local atom index, ``atomi2`` is local or an encoded static index."""

  atomi1: int
  atomi2: int
  paramsi: int


class ParamsCache:
  """Append-only table of parameter tuples, equal values share one index."""

  def __init__(self):
    self.params: List[Tuple[float, ...]] = []
    self._indices: Dict[Tuple[float, ...], int] = {}

  def __len__(self) -> int:
    return len(self.params)

  def __getitem__(self, index: int) -> Tuple[float, ...]:
    return self.params[index]

  def index(self, params: Sequence[float]) -> int:
    key = tuple(float(p) for p in params)
    index = self._indices.get(key)
    if index is None:
      index = len(self.params)
      self.params.append(key)
      self._indices[key] = index
    return index


class ConfBuckets:
  """One list of atom pairs per (position, conformation), sized up front from the conformation counts."""

  def __init__(self, conf_counts: Sequence[int], cache: ParamsCache):
    self._cache = cache
    self._buckets: List[List[List[AtomPair]]] = [[[] for _ in range(n)] for n in conf_counts]

  def add(self, posi: int, confi: int, atomi1: int, atomi2: int, params: Sequence[float]):
    self._buckets[posi][confi].append(AtomPair(atomi1, atomi2, self._cache.index(params)))

  def __getitem__(self, key: Tuple[int, int]) -> List[AtomPair]:
    posi, confi = key
    return self._buckets[posi][confi]

  def items(self) -> Iterator[Tuple[Tuple[int, int], List[AtomPair]]]:
    for posi, confs in enumerate(self._buckets):
      for confi, pairs in enumerate(confs):
        yield (posi, confi), pairs


class PosPairBuckets:
  """One list of atom pairs per (position 1, conformation 1, position 2, conformation 2), ``pos2 < pos1``."""

  def __init__(self, conf_counts: Sequence[int], cache: ParamsCache):
    self._num_positions = len(conf_counts)
    self._cache = cache
    self._buckets: List[List[List[List[AtomPair]]]] = []
    for posi1, n1 in enumerate(conf_counts):
      for n2 in conf_counts[:posi1]:
        self._buckets.append([[[] for _ in range(n2)] for _ in range(n1)])

  def __len__(self) -> int:
    return len(self._buckets)

  def add(self, posi1: int, confi1: int, posi2: int, confi2: int, atomi1: int, atomi2: int, params: Sequence[float]):
    self._buckets[pos_index(posi1, posi2)][confi1][confi2].append(AtomPair(atomi1, atomi2, self._cache.index(params)))

  def __getitem__(self, key: Tuple[int, int, int, int]) -> List[AtomPair]:
    posi1, confi1, posi2, confi2 = key
    return self._buckets[pos_index(posi1, posi2)][confi1][confi2]

  def items(self) -> Iterator[Tuple[Tuple[int, int, int, int], List[AtomPair]]]:
    for posi1 in range(self._num_positions):
      for posi2 in range(posi1):
        for confi1, confs2 in enumerate(self._buckets[pos_index(posi1, posi2)]):
          for confi2, pairs in enumerate(confs2):
            yield (posi1, confi1, posi2, confi2), pairs


class AtomPairs:
  """All compiled atom pairs of one forcefield.

  Attributes:
    singles: pairs within a conformation's local atoms, ``[posi, confi]``
    statics: pairs between a conformation's local atoms and static atoms, ``[posi, confi]``
    pairs: pairs between conformations at two positions, ``[posi1, confi1, posi2, confi2]`` with ``posi2 < posi1``
    params_cache: parameter table shared by the three
  """

  def __init__(self, conf_counts: Sequence[int]):
    self.conf_counts = list(conf_counts)
    self.params_cache = ParamsCache()
    self.singles = ConfBuckets(self.conf_counts, self.params_cache)
    self.statics = ConfBuckets(self.conf_counts, self.params_cache)
    self.pairs = PosPairBuckets(self.conf_counts, self.params_cache)

  @classmethod
  def for_index(cls, index: ConfSpaceIndex) -> "AtomPairs":
    return cls([len(pos_info.confs) for pos_info in index.positions])
