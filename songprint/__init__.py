"""
SongPrint - landmark-based audio fingerprinting.

Classic Shazam-style recognition:
1. Compute the magnitude spectrum of the captured audio
2. Pick the loudest frequency bin in each band of every time-slice
3. Hash the dominant bins of a slice into one integer key
4. Enroll (hash -> song, time-slice) landmarks, or vote on time offsets to match
"""

from .base import BaseFingerprintIndex, Landmark
from .errors import (
    BandTableInvalid,
    DeviceUnavailable,
    IndexLoadFailure,
    IndexSaveFailure,
    RecognizerBusy,
    SongPrintError,
)
from .hashing import compute_hash_entry, fingerprint_spectrum, hash_peaks
from .index import FingerprintIndex
from .matching import MatchResult, find_best_match
from .peaks import extract_peaks
from .recognizer import Recognizer, RecognizerState

__all__ = [
    'BaseFingerprintIndex', 'Landmark', 'FingerprintIndex',
    'SongPrintError', 'BandTableInvalid', 'DeviceUnavailable',
    'IndexLoadFailure', 'IndexSaveFailure', 'RecognizerBusy',
    'extract_peaks', 'hash_peaks', 'compute_hash_entry', 'fingerprint_spectrum',
    'MatchResult', 'find_best_match', 'Recognizer', 'RecognizerState',
]
