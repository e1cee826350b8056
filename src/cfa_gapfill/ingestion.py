from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import csv
import math

import numpy as np

from .errors import DataError


@dataclass(frozen=True)
class MeasurementSeries:
    times: np.ndarray
    values: np.ndarray

    def __len__(self) -> int:
        return int(self.times.size)


def _parse_float(token: str | None) -> float:
    if token is None:
        return math.nan
    token = token.strip()
    if not token or token.lower() in {"na", "nan", "null"}:
        return math.nan
    return float(token)


def series_from_arrays(times, values) -> MeasurementSeries:
    """Drop rows with a missing time or value and sort by time."""
    times = np.asarray(times, dtype=float)
    values = np.asarray(values, dtype=float)
    if times.ndim != 1 or times.shape != values.shape:
        raise DataError("Series times and values must be 1-D arrays of equal length.")
    keep = np.isfinite(times) & np.isfinite(values)
    times, values = times[keep], values[keep]
    order = np.argsort(times, kind="stable")
    times, values = times[order], values[order]
    if times.size == 0:
        raise DataError("Series holds no complete (time, value) rows.")
    if times.size > 1 and not np.all(np.diff(times) > 0.0):
        raise DataError("Series contains duplicate time stamps.")
    return MeasurementSeries(times=times, values=values)


def load_series_csv(path: Path, time_column: str = "time", value_column: str = "value") -> MeasurementSeries:
    times: list[float] = []
    values: list[float] = []
    with Path(path).open("r", encoding="utf-8", newline="") as handle:
        reader = csv.DictReader(handle)
        fields = reader.fieldnames or []
        if time_column not in fields or value_column not in fields:
            raise DataError(f"{path}: expected columns '{time_column}' and '{value_column}', found {fields}.")
        for row in reader:
            times.append(_parse_float(row[time_column]))
            values.append(_parse_float(row[value_column]))
    return series_from_arrays(times, values)
