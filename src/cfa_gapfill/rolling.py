from __future__ import annotations

import numpy as np

from .errors import ConfigError


def _check_window(window: int) -> int:
    if int(window) != window or window < 1:
        raise ConfigError(f"Rolling window must be a positive integer, got {window!r}.")
    return int(window)


def _window_sums(series: np.ndarray, window: int) -> tuple[np.ndarray, np.ndarray, np.ndarray, float]:
    # Running sums over a shifted copy keep the sum-of-squares form well conditioned.
    valid = np.isfinite(series)
    shift = float(series[valid].mean()) if valid.any() else 0.0
    centered = np.where(valid, series - shift, 0.0)
    csum = np.concatenate(([0.0], np.cumsum(centered)))
    csq = np.concatenate(([0.0], np.cumsum(centered * centered)))
    ccount = np.concatenate(([0], np.cumsum(valid.astype(np.int64))))
    sums = csum[window:] - csum[:-window]
    squares = csq[window:] - csq[:-window]
    counts = (ccount[window:] - ccount[:-window]).astype(float)
    return sums, squares, counts, shift


def rolling_mean(series, window: int) -> np.ndarray:
    """Windowed mean ignoring missing entries.

    Returns ``len(series) - window + 1`` values; a window without any valid
    entry yields NaN. A window longer than the series yields an empty result.
    """
    window = _check_window(window)
    x = np.asarray(series, dtype=float)
    if window > x.size:
        return np.full(0, np.nan)
    sums, _, counts, shift = _window_sums(x, window)
    out = np.full(sums.shape, np.nan)
    np.divide(sums, counts, out=out, where=counts > 0)
    return out + shift


def rolling_std(series, window: int) -> np.ndarray:
    """Windowed sample standard deviation (ddof=1) ignoring missing entries."""
    window = _check_window(window)
    x = np.asarray(series, dtype=float)
    if window > x.size:
        return np.full(0, np.nan)
    sums, squares, counts, _ = _window_sums(x, window)
    out = np.full(sums.shape, np.nan)
    enough = counts > 1
    var = (squares[enough] - sums[enough] ** 2 / counts[enough]) / (counts[enough] - 1.0)
    out[enough] = np.sqrt(np.maximum(var, 0.0))
    return out


def align_centered(values, window: int, length: int) -> np.ndarray:
    """Place windowed statistics at the centre index of each window."""
    values = np.asarray(values, dtype=float)
    out = np.full(length, np.nan)
    offset = (window - 1) // 2
    stop = min(length, offset + values.size)
    out[offset:stop] = values[: stop - offset]
    return out


def extend_linear(values) -> np.ndarray:
    """Linearly extrapolate beyond the first and last finite value.

    Interior missing entries are left untouched. With a single finite value the
    edges are filled with that value; with none the input is returned as is.
    """
    out = np.array(values, dtype=float, copy=True)
    finite = np.flatnonzero(np.isfinite(out))
    if finite.size == 0:
        return out
    first, last = int(finite[0]), int(finite[-1])
    if finite.size == 1:
        out[:first] = out[first]
        out[last + 1 :] = out[last]
        return out

    second, before_last = int(finite[1]), int(finite[-2])
    head_slope = (out[second] - out[first]) / (second - first)
    tail_slope = (out[last] - out[before_last]) / (last - before_last)
    if first > 0:
        idx = np.arange(first)
        out[:first] = out[first] + head_slope * (idx - first)
    if last < out.size - 1:
        idx = np.arange(last + 1, out.size)
        out[last + 1 :] = out[last] + tail_slope * (idx - last)
    return out


def rolling_mean_full(series, window: int) -> np.ndarray:
    """Centred rolling mean realigned and extrapolated to the series length."""
    x = np.asarray(series, dtype=float)
    return extend_linear(align_centered(rolling_mean(x, window), window, x.size))


def rolling_std_full(series, window: int) -> np.ndarray:
    x = np.asarray(series, dtype=float)
    return extend_linear(align_centered(rolling_std(x, window), window, x.size))


def autocorrelation(series, max_lag: int) -> np.ndarray:
    """Autocorrelation for lags ``0..max_lag`` with pairwise-complete data.

    Each lag's covariance sums the products of pairs where both entries are
    present and divides by ``pairs + lag``; coefficients are normalised by the
    lag-0 value. Zero variance or no data gives NaN coefficients.
    """
    if int(max_lag) != max_lag or max_lag < 0:
        raise ConfigError(f"Autocorrelation lag span must be a non-negative integer, got {max_lag!r}.")
    max_lag = int(max_lag)
    x = np.asarray(series, dtype=float)
    n = x.size
    valid = np.isfinite(x)
    out = np.full(max_lag + 1, np.nan)
    if not valid.any():
        return out

    d = np.where(valid, x - x[valid].mean(), 0.0)
    span = min(max_lag, n - 1)
    if valid.all():
        size = 1 << int(np.ceil(np.log2(2 * n)))
        spectrum = np.fft.rfft(d, size)
        acov = np.fft.irfft(spectrum * np.conj(spectrum), size)[: span + 1] / n
    else:
        acov = np.full(span + 1, np.nan)
        for lag in range(span + 1):
            pairs = int(np.count_nonzero(valid[: n - lag] & valid[lag:]))
            if pairs == 0:
                continue
            acov[lag] = float(np.dot(d[: n - lag], d[lag:])) / (pairs + lag)

    if not acov[0] > 0.0:
        return out
    out[: span + 1] = acov / acov[0]
    return out
