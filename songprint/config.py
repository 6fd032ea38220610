"""
Configuration for SongPrint.

Module-level constants are the defaults. ``load_settings`` reads an optional
YAML file whose keys override them.
"""

from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Optional, Tuple, Union

import yaml

# ---------- CONFIG ---------- #

DB_PATH = "fingerprints.db"

# Capture format: 44.1kHz, 8-bit signed mono PCM
SAMPLE_RATE = 44100
SAMPLE_SIZE_IN_BITS = 8
CHANNELS = 1
SIGNED = True
BIG_ENDIAN = True
BUFFER_SIZE = 1024  # frames per blocking read

# Samples per time-slice of the magnitude spectrum
CHUNK_SIZE = 4096

# Band upper boundaries (in frequency bin indices). A bin belongs to the
# first boundary that is >= the bin, so with these values:
#   {40}, 41..80, 81..120, 121..180, 181..299
LOWER_LIMIT = 40
UPPER_LIMIT = 300
BANDS = (40, 80, 120, 180, 300)

FUZZ_FACTOR = 2  # absorb small variations in frequency: 43 -> 42, 81 -> 80, etc.

MAX_CAPTURE_SECONDS = 60
TOP_SONGS_ENTROPY = 10


@dataclass(frozen=True)
class Settings:
    db_path: str = DB_PATH
    sample_rate: int = SAMPLE_RATE
    sample_size_in_bits: int = SAMPLE_SIZE_IN_BITS
    channels: int = CHANNELS
    signed: bool = SIGNED
    big_endian: bool = BIG_ENDIAN
    buffer_size: int = BUFFER_SIZE
    chunk_size: int = CHUNK_SIZE
    lower_limit: int = LOWER_LIMIT
    upper_limit: int = UPPER_LIMIT
    bands: Tuple[int, ...] = BANDS
    fuzz_factor: int = FUZZ_FACTOR
    max_capture_seconds: Optional[float] = MAX_CAPTURE_SECONDS
    top_songs_entropy: int = TOP_SONGS_ENTROPY
    min_votes: int = 1
    fatal_save_errors: bool = True

    def audio_format(self):
        from .audio import AudioFormat
        return AudioFormat(
            sample_rate=self.sample_rate,
            sample_size_in_bits=self.sample_size_in_bits,
            channels=self.channels,
            signed=self.signed,
            big_endian=self.big_endian,
        )


def load_settings(path: Optional[Union[str, Path]] = None, **overrides) -> Settings:
    """
    Build the settings, optionally from a YAML file.

    Args:
        path: YAML file with a flat mapping of setting names to values
        **overrides: Values applied on top of the file (e.g. from the CLI)

    Returns:
        Validated ``Settings``
    """
    from .peaks import validate_band_table

    values = {}
    if path is not None:
        with open(path, "r") as f:
            values = yaml.safe_load(f) or {}
        if not isinstance(values, dict):
            raise ValueError(f"Config file {path} must contain a mapping")

    values.update({k: v for k, v in overrides.items() if v is not None})

    known = {f.name for f in fields(Settings)}
    unknown = sorted(set(values) - known)
    if unknown:
        raise ValueError(f"Unknown config keys: {', '.join(unknown)}")

    if "bands" in values:
        values["bands"] = tuple(int(b) for b in values["bands"])

    settings = replace(Settings(), **values)
    if settings.fuzz_factor < 1:
        raise ValueError("fuzz_factor must be >= 1")
    if settings.lower_limit < 0 or settings.lower_limit >= settings.upper_limit:
        raise ValueError("lower_limit must be in [0, upper_limit)")
    if settings.upper_limit > settings.chunk_size // 2 + 1:
        raise ValueError("upper_limit exceeds the number of frequency bins per slice")
    validate_band_table(settings.bands, settings.upper_limit)
    return settings
