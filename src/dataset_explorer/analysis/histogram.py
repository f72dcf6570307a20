"""
Client-side histogram rebinning.

Redistributes an existing histogram onto a grid of "nice" bin widths
(1, 2 or 5 times a power of ten) without touching the store again. Counts move
in proportion to the overlap between old and new bins.
"""

import math

import structlog

from dataset_explorer.analysis.aggregator import HistogramBin, NumericStats, percentage

logger = structlog.get_logger(__name__)

DEFAULT_MAX_BINS = 60
DEFAULT_MAX_ITERATIONS = 10

_NICE_MULTIPLIERS = (1, 2, 5, 10)
_EPSILON = 1e-9


def nice_bin_width(raw_width: float) -> float:
    """
    Smallest width of the form {1, 2, 5} x 10^k that is >= raw_width.

    Raises:
        ValueError: If raw_width is not a positive finite number
    """
    if not math.isfinite(raw_width) or raw_width <= 0:
        raise ValueError(f"Bin width must be positive and finite, got {raw_width}")

    base = 10.0 ** math.floor(math.log10(raw_width))
    for multiplier in _NICE_MULTIPLIERS:
        candidate = multiplier * base
        if candidate >= raw_width * (1 - _EPSILON):
            return candidate
    return 10 * base


def _grid(minimum: float, maximum: float, width: float) -> tuple[float, int]:
    """Grid start aligned to ``width`` and the bin count needed to cover [min, max]."""
    start = math.floor(minimum / width) * width
    count = max(1, math.ceil((maximum - start) / width - _EPSILON))
    return start, count


def _original_width(histogram: list[HistogramBin]) -> float | None:
    widths = [b.bin_end - b.bin_start for b in histogram]
    if not widths or widths[0] <= 0:
        return None
    first = widths[0]
    # The server's last bin is snapped to the maximum, so allow float drift
    if all(abs(w - first) <= first * 1e-6 for w in widths):
        return first
    return None


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def rebin_histogram(
    histogram: list[HistogramBin],
    stats: NumericStats,
    desired_bins: int,
    max_bins: int = DEFAULT_MAX_BINS,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
) -> list[HistogramBin]:
    """
    Rebin a histogram to roughly ``desired_bins`` bins of a nice width.

    When the original equal-width grid already has ``desired_bins`` bins over
    [min, max] it is kept as is, so rebinning to the current bin count returns
    the original counts.

    Args:
        histogram: Existing bins
        stats: Numeric stats of the same column (min/max bound the grid)
        desired_bins: Target number of bins
        max_bins: Upper bound on produced bins; larger desired_bins are clamped to it
        max_iterations: Cap on width increases while over max_bins

    Returns:
        Contiguous bins covering [min, max]; counts are rounded to integers and
        percentages are relative to the original total

    Raises:
        ValueError: If desired_bins < 1
    """
    if desired_bins < 1:
        raise ValueError(f"desired_bins must be >= 1, got {desired_bins}")
    if not histogram:
        return []

    total = sum(b.count for b in histogram)
    minimum, maximum = stats.min, stats.max

    if maximum <= minimum:
        return [HistogramBin(bin_start=minimum, bin_end=maximum, count=total, percentage=100.0 if total else 0.0)]

    span = maximum - minimum
    desired_bins = min(desired_bins, max_bins)
    original = _original_width(histogram)
    snap_to_max = original is not None and round(span / original) == desired_bins
    if snap_to_max:
        start, width, bin_count = minimum, original, desired_bins
    else:
        width = nice_bin_width(span / desired_bins)
        start, bin_count = _grid(minimum, maximum, width)
        iterations = 0
        while bin_count > max_bins and iterations < max_iterations:
            width = nice_bin_width(width * (1 + 1e-6))
            start, bin_count = _grid(minimum, maximum, width)
            iterations += 1
        if bin_count > max_bins:
            # Cap hit: max_bins equal bins over [min, max]
            logger.warning("rebin_iteration_cap_reached", bins=bin_count, max_bins=max_bins, width=width)
            snap_to_max = True
            start, width, bin_count = minimum, span / max_bins, max_bins

    counts = [0.0] * bin_count
    for old in histogram:
        old_width = old.bin_end - old.bin_start
        if old_width <= 0:
            index = min(bin_count - 1, max(0, math.floor((old.bin_start - start) / width)))
            counts[index] += old.count
            continue

        first = max(0, math.floor((old.bin_start - start) / width))
        last = min(bin_count - 1, math.floor((old.bin_end - start) / width))
        for index in range(first, last + 1):
            new_start = start + index * width
            overlap = min(new_start + width, old.bin_end) - max(new_start, old.bin_start)
            if overlap > 0:
                counts[index] += old.count * overlap / old_width

    result = []
    for index, raw in enumerate(counts):
        count = _round_half_up(raw)
        bin_start = start + index * width
        bin_end = maximum if snap_to_max and index == bin_count - 1 else bin_start + width
        result.append(
            HistogramBin(bin_start=bin_start, bin_end=bin_end, count=count, percentage=percentage(count, total))
        )

    logger.debug("histogram_rebinned", original_bins=len(histogram), bins=bin_count, width=width)
    return result
