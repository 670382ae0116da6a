"""
Progress of a compile running on a worker thread, and the slot its report is
published to.
"""

from __future__ import annotations

import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Optional

from tqdm import tqdm

if TYPE_CHECKING:
  from confspace.compiler.compiled import CompiledConfSpace
  from confspace.compiler.errors import CompilerError, CompilerWarning


@dataclass
class Report:
  """Outcome of one compile. Exactly one of ``error`` and ``compiled`` is set."""

  warnings: List[CompilerWarning]
  error: Optional[CompilerError]
  compiled: Optional[CompiledConfSpace]

  @property
  def success(self) -> bool:
    return self.error is None and self.compiled is not None


class Task:
  """A named unit of work with a known size.

  Only the compiler thread advances ``progress``, readers on other threads may
  read it at any time.
  """

  def __init__(self, name: str, size: int):
    self.name = name
    self.size = size
    self.progress = 0

  def __repr__(self) -> str:
    return f"{self.name}: {self.progress}/{self.size}"

  def increment(self, n: int = 1):
    self.progress += n

  @property
  def fraction(self) -> float:
    if self.size <= 0:
      return 1.0
    return min(self.progress / self.size, 1.0)


class CompilerProgress:
  """Handle returned by :meth:`ConfSpaceCompiler.compile`.

  :attr:`report` stays ``None`` until the compile finishes, then holds the
  complete report. :meth:`wait_for_finish` blocks until then.
  """

  def __init__(self, *tasks: Task):
    self.tasks: List[Task] = list(tasks)
    self._report: Future = Future()
    self._thread: Optional[threading.Thread] = None

  def _start(self, thread: threading.Thread):
    self._thread = thread
    thread.start()

  def _publish(self, report: Report):
    self._report.set_result(report)

  @property
  def report(self) -> Optional[Report]:
    if not self._report.done():
      return None
    return self._report.result()

  @property
  def is_running(self) -> bool:
    return not self._report.done()

  def wait_for_finish(self, timeout: Optional[float] = None) -> Optional[Report]:
    """Join the compiler thread, then return the report (``None`` if ``timeout`` ran out first)."""
    if self._thread is None:
      raise RuntimeError("The compiler thread hasn't been started")
    self._thread.join(timeout)
    return self.report

  def show(self, interval: float = 0.2) -> Report:
    """Draw a progress bar per task until the compile finishes, then return the report."""
    bars = [tqdm(total=task.size, desc=task.name, position=i, leave=True) for i, task in enumerate(self.tasks)]
    try:
      while True:
        done = not self.is_running
        for bar, task in zip(bars, self.tasks):
          bar.update(task.progress - bar.n)
        if done:
          break
        time.sleep(interval)
    finally:
      for bar in bars:
        bar.close()
    self.wait_for_finish()
    return self.report
