"""Process-level measurement window around a measuring phase.

The runner times individual calls with ``time.perf_counter_ns()``.
:func:`measurement_window` captures what surrounds a whole measuring
phase: wall time, process CPU time, and garbage collections in every
generation.

GC policy:
    GC stays enabled by default for realistic measurement.
    ``measurement_window(gc_disabled=True)`` turns automatic GC off for
    the duration of the window; the state found on entry is restored on
    exit, including when the measured block raises.

CPU normalization:
    :attr:`MeasurementWindow.cpu_percent` divides process CPU time by
    wall time and by ``os.cpu_count()``, giving a share of the whole
    machine. Worker threads all add to the same process CPU time.
"""

import contextlib
import gc
import os
import time
from typing import Iterator


class MeasurementWindow:
    """Readings of one measuring phase, filled in when the window closes.

    Attributes:
        wall_s: Elapsed ``time.perf_counter()`` seconds.
        process_s: Elapsed ``time.process_time()`` seconds.
        gc_collections: Collections per generation, youngest first.
        closed: False while the measured block is still running.
    """

    __slots__ = ("wall_s", "process_s", "gc_collections", "closed")

    def __init__(self) -> None:
        self.wall_s: float = 0.0
        self.process_s: float = 0.0
        self.gc_collections: tuple[int, ...] = ()
        self.closed: bool = False

    @property
    def total_gc_collections(self) -> int:
        return sum(self.gc_collections)

    @property
    def cpu_percent(self) -> float:
        """CPU usage per core, 0.0 for a zero-length window."""
        return cpu_percent(self.process_s, self.wall_s)


def cpu_percent(process_s: float, wall_s: float) -> float:
    """``(process_s / wall_s) * 100 / cpu_count``, floored at zero."""
    if wall_s <= 0:
        return 0.0
    cpu_count: int = os.cpu_count() or 1
    return max(process_s, 0.0) / wall_s * 100.0 / cpu_count


def _collection_counts() -> tuple[int, ...]:
    return tuple(generation["collections"] for generation in gc.get_stats())


@contextlib.contextmanager
def measurement_window(gc_disabled: bool = False) -> Iterator[MeasurementWindow]:
    """Measure the enclosed block.

    Collects setup garbage first so it is not charged to the block.

    Args:
        gc_disabled: Turn automatic GC off inside the window.

    Yields:
        A :class:`MeasurementWindow` populated on exit.
    """
    gc.collect()
    gc_was_enabled: bool = gc.isenabled()
    if gc_disabled:
        gc.disable()

    window: MeasurementWindow = MeasurementWindow()
    collections_start: tuple[int, ...] = _collection_counts()
    process_start: float = time.process_time()
    wall_start: float = time.perf_counter()
    try:
        yield window
    finally:
        window.process_s = time.process_time() - process_start
        window.wall_s = time.perf_counter() - wall_start
        window.gc_collections = tuple(
            max(now - start, 0)
            for now, start in zip(_collection_counts(), collections_start)
        )
        window.closed = True
        if gc_was_enabled:
            gc.enable()
        else:
            gc.disable()
