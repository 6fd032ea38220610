"""
Spectral peak extraction: one dominant frequency bin per band of a time-slice.
"""

from typing import Sequence, Tuple

import numpy as np

from .config import BANDS, LOWER_LIMIT, UPPER_LIMIT
from .errors import BandTableInvalid


def validate_band_table(bands: Sequence[int], upper_limit: int = UPPER_LIMIT) -> None:
    """Raise ``BandTableInvalid`` unless ``bands`` is strictly increasing and covers ``upper_limit``."""
    if len(bands) == 0:
        raise BandTableInvalid("band table is empty")
    if any(a >= b for a, b in zip(bands, bands[1:])):
        raise BandTableInvalid(f"band boundaries must be strictly increasing: {list(bands)}")
    if bands[-1] < upper_limit:
        raise BandTableInvalid(
            f"last band boundary {bands[-1]} does not cover upper limit {upper_limit}"
        )


def band_ranges(bands: Sequence[int] = BANDS,
                lower_limit: int = LOWER_LIMIT,
                upper_limit: int = UPPER_LIMIT) -> Tuple[Tuple[int, int], ...]:
    """
    Inclusive (lo, hi) bin range scanned for each band.

    Band i holds the bins in (bands[i-1], bands[i]] clipped to
    [lower_limit, upper_limit). A band with no bin inside the limits gets an
    empty range (lo > hi).
    """
    validate_band_table(bands, upper_limit)
    ranges = []
    prev = lower_limit - 1
    for boundary in bands:
        lo = max(lower_limit, prev + 1)
        hi = min(upper_limit - 1, boundary)
        ranges.append((lo, hi))
        prev = boundary
    return tuple(ranges)


def extract_peaks(chunk: Sequence[float],
                  bands: Sequence[int] = BANDS,
                  lower_limit: int = LOWER_LIMIT,
                  upper_limit: int = UPPER_LIMIT) -> Tuple[int, ...]:
    """
    Find the loudest frequency bin of each band in one time-slice.

    Args:
        chunk: Magnitudes indexed by frequency bin
        bands: Increasing band upper boundaries
        lower_limit: First bin considered
        upper_limit: Bins at/above this are ignored

    Returns:
        One bin index per band. Ties go to the lowest bin; a band whose
        magnitudes are all <= 0 reports bin 0.
    """
    chunk = np.asarray(chunk)
    if chunk.ndim != 1:
        raise ValueError(f"expected a 1-D slice, got shape {chunk.shape}")
    if chunk.shape[0] < upper_limit:
        raise ValueError(
            f"slice has {chunk.shape[0]} bins, need at least {upper_limit}"
        )

    peaks = []
    for lo, hi in band_ranges(bands, lower_limit, upper_limit):
        if lo > hi:
            peaks.append(0)
            continue
        band_slice = chunk[lo:hi + 1]
        # argmax returns the first maximum, so ties keep the earliest bin
        local_idx = int(np.argmax(band_slice))
        if band_slice[local_idx] > 0:
            peaks.append(lo + local_idx)
        else:
            peaks.append(0)
    return tuple(peaks)
