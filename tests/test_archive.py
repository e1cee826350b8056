from __future__ import annotations

import threading

import numpy as np
import pytest

from cfa_gapfill.archive import HistoryArchive, draw_rows


def test_append_grows_and_snapshot_is_prefix():
    archive = HistoryArchive(3, initial_capacity=2)
    archive.append(np.array([1.0, 2.0, 3.0]))
    first = archive.snapshot()
    archive.extend(np.ones((5, 3)))
    assert len(archive) == 6
    assert first.shape == (1, 3)
    np.testing.assert_array_equal(archive.snapshot()[0], [1.0, 2.0, 3.0])


def test_snapshot_is_read_only():
    archive = HistoryArchive.from_rows(np.zeros((2, 2)))
    with pytest.raises(ValueError):
        archive.snapshot()[0, 0] = 1.0


def test_wrong_dimension_rejected():
    archive = HistoryArchive(2)
    with pytest.raises(ValueError):
        archive.append(np.zeros(3))


def test_draw_rows_returns_distinct_rows():
    rows = np.arange(12.0).reshape(4, 3)
    rng = np.random.default_rng(1)
    for _ in range(50):
        picked = draw_rows(rows, rng, 3)
        assert len({tuple(row) for row in picked}) == 3
    with pytest.raises(ValueError):
        draw_rows(rows[:2], rng, 3)


def test_concurrent_appends_keep_every_row():
    archive = HistoryArchive(2, initial_capacity=1)

    def writer(value: float) -> None:
        for _ in range(200):
            archive.append(np.array([value, value]))

    threads = [threading.Thread(target=writer, args=(float(k),)) for k in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    rows = archive.snapshot()
    assert len(archive) == 800
    values, counts = np.unique(rows[:, 0], return_counts=True)
    np.testing.assert_array_equal(values, [0.0, 1.0, 2.0, 3.0])
    assert np.all(counts == 200)
