"""
Errors and warnings reported by the conformation space compiler.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Optional

from confspace.molecule import Atom

if TYPE_CHECKING:
  from confspace.compiler.conf_space_index import ConfInfo


class CompilerError(Exception):
  """A fatal compile problem, meant to be shown to a person.

  Parameters:
    msg: Short description of what went wrong
    extra_info: Optional longer detail, eg. the offending parameters
  """

  def __init__(self, msg: str, extra_info: Optional[str] = None):
    super().__init__(msg)
    self.msg = msg
    self.extra_info = extra_info

  def messages(self) -> List[str]:
    """This error's message followed by every message in its cause chain."""
    out = [self.msg if self.extra_info is None else f"{self.msg}\n{self.extra_info}"]
    seen = {id(self)}
    cause = self.__cause__ or self.__context__
    while cause is not None and id(cause) not in seen:
      seen.add(id(cause))
      text = str(cause)
      out.append(f"{type(cause).__name__}: {text}" if text else type(cause).__name__)
      cause = cause.__cause__ or cause.__context__
    return out


@dataclass
class CompilerWarning:
  msg: str
  extra_info: Optional[str] = None


@dataclass
class ClaimConflict:
  """A fixed atom that a second position tried to claim as dynamic."""

  atom: Atom
  claimed_by: ConfInfo
  claimant: ConfInfo
