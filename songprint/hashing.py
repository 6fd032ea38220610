from typing import Iterator, Sequence, Tuple

import numpy as np

from .config import BANDS, FUZZ_FACTOR, LOWER_LIMIT, UPPER_LIMIT
from .peaks import extract_peaks

FIELD_BITS = 16
FIELD_MASK = (1 << FIELD_BITS) - 1
NUM_POINTS = 4


def _quantize(x: int, fuzz: int = FUZZ_FACTOR) -> int:
    """Round down to nearest multiple of fuzz."""
    return x - (x % fuzz)


def hash_peaks(peaks: Sequence[int], fuzz: int = FUZZ_FACTOR) -> int:
    """
    Pack the first four dominant bins of a slice into one integer.

    Layout (MSB -> LSB):
        [16 bits p4][16 bits p3][16 bits p2][16 bits p1]

    Fewer than four peaks are padded with 0, extra peaks are ignored.
    Every value is quantized with the fuzz factor before packing, so the
    result is injective over the quantized values.
    """
    if fuzz < 1:
        raise ValueError(f"fuzz factor must be >= 1, got {fuzz}")

    points = [int(p) for p in list(peaks)[:NUM_POINTS]]
    points += [0] * (NUM_POINTS - len(points))

    h = 0
    for shift, p in enumerate(points):
        if p < 0 or p > FIELD_MASK:
            raise ValueError(f"frequency bin {p} does not fit in {FIELD_BITS} bits")
        h |= _quantize(p, fuzz) << (shift * FIELD_BITS)
    return h


def compute_hash_entry(chunk: Sequence[float],
                       bands: Sequence[int] = BANDS,
                       lower_limit: int = LOWER_LIMIT,
                       upper_limit: int = UPPER_LIMIT,
                       fuzz: int = FUZZ_FACTOR) -> int:
    """Hash of one time-slice of the magnitude spectrum."""
    return hash_peaks(extract_peaks(chunk, bands, lower_limit, upper_limit), fuzz)


def fingerprint_spectrum(spectrum,
                         bands: Sequence[int] = BANDS,
                         lower_limit: int = LOWER_LIMIT,
                         upper_limit: int = UPPER_LIMIT,
                         fuzz: int = FUZZ_FACTOR) -> Iterator[Tuple[int, int]]:
    """
    spectrum: 2D array (time_slices, frequency_bins)
    yields:   (time_slice, hash) for every slice, in order
    """
    spectrum = np.asarray(spectrum)
    if spectrum.size == 0:
        return
    if spectrum.ndim != 2:
        raise ValueError(f"expected a 2-D spectrum, got shape {spectrum.shape}")
    for c in range(spectrum.shape[0]):
        yield c, compute_hash_entry(spectrum[c], bands, lower_limit, upper_limit, fuzz)
