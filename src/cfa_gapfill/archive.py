from __future__ import annotations

import threading

import numpy as np


class HistoryArchive:
    """Append-only store of past chain states shared by all chains.

    Appends take a lock; readers never do. The buffer and its filled length
    are published together as one tuple, and rows below the published length
    are never written again, so a snapshot is always a consistent prefix even
    while another thread appends or grows the buffer.
    """

    def __init__(self, dimension: int, initial_capacity: int = 256) -> None:
        if dimension < 1:
            raise ValueError("Archive dimension must be at least 1.")
        self.dimension = int(dimension)
        self._lock = threading.Lock()
        self._published: tuple[np.ndarray, int] = (np.empty((max(1, initial_capacity), self.dimension)), 0)

    @classmethod
    def from_rows(cls, rows: np.ndarray) -> "HistoryArchive":
        rows = np.asarray(rows, dtype=float)
        if rows.ndim != 2:
            raise ValueError("Archive rows must form a 2-D array.")
        archive = cls(rows.shape[1], initial_capacity=max(256, 2 * rows.shape[0]))
        archive.extend(rows)
        return archive

    def __len__(self) -> int:
        return self._published[1]

    def extend(self, rows: np.ndarray) -> int:
        rows = np.atleast_2d(np.asarray(rows, dtype=float))
        if rows.shape[1] != self.dimension:
            raise ValueError(f"Archive rows must have {self.dimension} columns, got {rows.shape[1]}.")
        with self._lock:
            buffer, size = self._published
            needed = size + rows.shape[0]
            if needed > buffer.shape[0]:
                grown = np.empty((max(needed, 2 * buffer.shape[0]), self.dimension))
                grown[:size] = buffer[:size]
                buffer = grown
            buffer[size:needed] = rows
            self._published = (buffer, needed)
            return needed

    def append(self, row: np.ndarray) -> int:
        return self.extend(np.asarray(row, dtype=float)[np.newaxis, :])

    def snapshot(self) -> np.ndarray:
        """Read-only view of every row appended so far."""
        buffer, size = self._published
        view = buffer[:size]
        view.flags.writeable = False
        return view

    def draw(self, rng: np.random.Generator, count: int) -> np.ndarray:
        return draw_rows(self.snapshot(), rng, count)


def draw_rows(rows: np.ndarray, rng: np.random.Generator, count: int) -> np.ndarray:
    """Pick ``count`` distinct rows uniformly at random."""
    if rows.shape[0] < count:
        raise ValueError(f"Archive holds {rows.shape[0]} states, {count} requested.")
    picks = rng.integers(0, rows.shape[0], size=count)
    while np.unique(picks).size < count:
        picks = rng.integers(0, rows.shape[0], size=count)
    return rows[picks]
