"""
Shared fixtures for the test suite.

Synthetic spectra give every time-slice a distinct set of dominant bins under
the default band table, so identical slices only ever come from the same
position of the same song.
"""

from __future__ import annotations

import threading
from typing import List, Optional

import numpy as np
import pytest

from songprint.audio import AudioFormat, CaptureSource
from songprint.index import FingerprintIndex

# ---------------------------------------------------------------------------
# Synthetic spectra
# ---------------------------------------------------------------------------

N_BINS = 512
"""Bins per synthetic slice (more than the default upper limit of 300)."""


def slice_peaks(k: int) -> tuple[int, int, int, int]:
    """Dominant bins of synthetic slice ``k`` for the default bands; unique for k < 10469."""
    return (
        40,
        42 + 2 * (k % 19),
        82 + 2 * ((k // 19) % 19),
        122 + 2 * ((k // 361) % 29),
    )


def make_spectrum(n_slices: int, seed: int = 0) -> np.ndarray:
    """(n_slices, N_BINS) magnitudes; song identity comes from ``seed``."""
    spectrum = np.full((n_slices, N_BINS), 0.1, dtype=np.float32)
    for c in range(n_slices):
        for b in slice_peaks(seed + c):
            spectrum[c, b] = 5.0
        spectrum[c, 200] = 3.0
    return spectrum


def tone_song(n_chunks: int, seed: int = 0, chunk_size: int = 4096,
              sample_rate: int = 44100) -> np.ndarray:
    """Float samples whose chunk ``c`` holds tones exactly on the bins of ``slice_peaks(seed + c)``."""
    t = np.arange(chunk_size) / sample_rate
    chunks = []
    for c in range(n_chunks):
        _, b1, b2, b3 = slice_peaks(seed + c)
        chunk = np.zeros(chunk_size)
        for b in (b1, b2, b3):
            chunk += 0.3 * np.sin(2 * np.pi * (b * sample_rate / chunk_size) * t)
        chunks.append(chunk)
    return np.concatenate(chunks)


# ---------------------------------------------------------------------------
# Fake capture source
# ---------------------------------------------------------------------------


class FakeSource(CaptureSource):
    """Serves a fixed list of blocks, then empty reads; ``drained`` is set once empty."""

    def __init__(self, blocks: Optional[List[bytes]] = None, fail_open: Exception | None = None,
                 on_read=None) -> None:
        self.blocks = list(blocks or [])
        self.fail_open = fail_open
        self.on_read = on_read
        self.opened_with: AudioFormat | None = None
        self.closed = False
        self.drained = threading.Event()

    def open(self, audio_format: AudioFormat) -> None:
        if self.fail_open is not None:
            raise self.fail_open
        self.opened_with = audio_format

    def read(self, num_bytes: int) -> bytes:
        if self.on_read is not None:
            self.on_read()
        if not self.blocks:
            self.drained.set()
            return b""
        return self.blocks.pop(0)

    def close(self) -> None:
        self.closed = True


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def index() -> FingerprintIndex:
    return FingerprintIndex()


@pytest.fixture
def db_path(tmp_path) -> str:
    return str(tmp_path / "fingerprints.db")
