# tests/test_atom_pairs.py
import pytest

from confspace.compiler.atom_pairs import AtomPair, AtomPairs, ParamsCache, pos_index


def test_pos_index_is_dense_and_unique():
  seen = []
  for pos1 in range(6):
    for pos2 in range(pos1):
      seen.append(pos_index(pos1, pos2))
  assert sorted(seen) == list(range(6 * 5 // 2))


@pytest.mark.parametrize("pos1,pos2", [(0, 0), (1, 1), (2, 3), (3, -1)])
def test_pos_index_rejects_unordered(pos1, pos2):
  with pytest.raises(ValueError):
    pos_index(pos1, pos2)


def test_params_cache_dedups_by_value():
  cache = ParamsCache()
  assert cache.index((1.0, 2.0)) == 0
  assert cache.index([1, 2]) == 0
  assert cache.index((2.0, 1.0)) == 1
  assert len(cache) == 2
  assert cache[1] == (2.0, 1.0)


def test_buckets_are_sized_from_conf_counts():
  pairs = AtomPairs([2, 1, 3])
  assert len(pairs.pairs) == 3
  assert [key for key, _ in pairs.singles.items()] == [(0, 0), (0, 1), (1, 0), (2, 0), (2, 1), (2, 2)]
  keys = [key for key, _ in pairs.pairs.items()]
  assert len(keys) == 2 * 1 + 3 * 2 + 3 * 1
  assert all(posi2 < posi1 for posi1, _, posi2, _ in keys)


def test_add_shares_params_across_buckets():
  pairs = AtomPairs([1, 2])
  pairs.singles.add(0, 0, 1, 0, (3.0,))
  pairs.statics.add(1, 1, 0, -1, (3.0,))
  pairs.pairs.add(1, 0, 0, 0, 0, 0, (4.0,))

  assert pairs.singles[0, 0] == [AtomPair(1, 0, 0)]
  assert pairs.statics[1, 1] == [AtomPair(0, -1, 0)]
  assert pairs.pairs[1, 0, 0, 0] == [AtomPair(0, 0, 1)]
  assert pairs.pairs[1, 1, 0, 0] == []
  assert pairs.params_cache.params == [(3.0,), (4.0,)]


def test_pairs_lookup_needs_ordered_positions():
  pairs = AtomPairs([1, 1])
  with pytest.raises(ValueError):
    pairs.pairs[0, 0, 1, 0]
