from __future__ import annotations

from typing import TYPE_CHECKING, Dict, Iterable, Iterator, List, Optional

from confspace.constants import STATIC_INDEX_OFFSET
from confspace.molecule import Atom

if TYPE_CHECKING:
  from confspace.compiler.fixed_atoms import FixedAtoms


def encode_static(static_index: int) -> int:
  """Atom pair encoding of a static atom: ``-index - 1``, always negative."""
  if static_index < 0:
    raise ValueError(f"Static atom indices are non-negative, got {static_index}")
  return -static_index - STATIC_INDEX_OFFSET


def decode(encoded: int):
  """Inverse of the atom pair encoding.

  Returns:
    ``("local", index)`` for non-negative values, ``("static", index)`` for negative ones
  """
  if encoded >= 0:
    return "local", encoded
  return "static", -encoded - STATIC_INDEX_OFFSET


class AtomIndex:
  """Bidirectional lookup between an ordered atom list and indices into it."""

  def __init__(self, atoms: Iterable[Atom]):
    self.atoms: List[Atom] = list(atoms)
    self._indices: Dict[int, int] = {}
    for i, atom in enumerate(self.atoms):
      if atom.id in self._indices:
        raise ValueError(f"Atom {atom} appears twice in the atom index")
      self._indices[atom.id] = i

  def __len__(self) -> int:
    return len(self.atoms)

  def __iter__(self) -> Iterator[Atom]:
    return iter(self.atoms)

  def __getitem__(self, index: int) -> Atom:
    return self.atoms[index]

  def __contains__(self, atom: Atom) -> bool:
    return atom.id in self._indices

  def get(self, atom: Atom) -> Optional[int]:
    return self._indices.get(atom.id)

  def get_or_raise(self, atom: Atom) -> int:
    try:
      return self._indices[atom.id]
    except KeyError:
      raise KeyError(f"Atom {atom} is not in the atom index") from None

  def get_or_static(self, atom: Atom, fixed_atoms: FixedAtoms) -> int:
    """Local index of ``atom``, or the encoded static index when the atom is static."""
    index = self.get(atom)
    if index is not None:
      return index
    return encode_static(fixed_atoms.get_static(atom).index)
