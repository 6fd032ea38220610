"""
Offset-histogram voting: find which enrolled song a query spectrum came from.

A genuine match shifts all of its landmarks by the same amount (where in the
song the fragment starts), so its votes pile up on one offset. Hash
collisions scatter over unrelated offsets.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional, Sequence, Tuple

import numpy as np

from .base import BaseFingerprintIndex
from .config import BANDS, FUZZ_FACTOR, LOWER_LIMIT, UPPER_LIMIT, TOP_SONGS_ENTROPY
from .hashing import fingerprint_spectrum
from .logs import Timer

# song_id -> {offset -> count}
Accumulator = Dict[str, Dict[int, int]]


@dataclass
class MatchResult:
    song_id: str
    offset: int
    votes: int
    confidence: float
    metadata: Dict[str, Any] = field(default_factory=dict)


def accumulate_votes(hashes: Iterable[Tuple[int, int]],
                     index: BaseFingerprintIndex) -> Tuple[Accumulator, Dict[str, int]]:
    """
    Look up every (time_slice, hash) of the query and vote for offsets.

    Returns:
        Tuple of (accumulator, stats) where stats counts the query slices,
        the slices whose hash was found and the total landmark votes.
    """
    offset_votes = defaultdict(lambda: defaultdict(int))
    num_slices = 0
    num_db_hits = 0
    num_matches = 0

    for c, h in hashes:
        num_slices += 1
        landmarks = index.lookup(h)
        if landmarks:
            num_db_hits += 1
        for song_id, enrolled_slice in landmarks:
            offset = abs(enrolled_slice - c)
            offset_votes[song_id][offset] += 1
            num_matches += 1

    stats = {
        "num_query_slices": num_slices,
        "num_matched_hashes": num_db_hits,
        "num_total_matches": num_matches,
    }
    return offset_votes, stats


def _peak_offset(offset_counts: Dict[int, int]) -> Tuple[int, int]:
    """(offset, votes) of the histogram peak; equal peaks pick the smallest offset."""
    return min(offset_counts.items(), key=lambda item: (-item[1], item[0]))


def _confidence(scores: Sequence[int], top_k: int) -> float:
    """1 - normalized entropy of the top-k song scores, in [0, 1]."""
    top_scores = np.sort(np.asarray(scores, dtype=np.float64))[::-1][:top_k]
    sum_s = float(np.sum(top_scores))
    if sum_s <= 0 or len(top_scores) == 0:
        return 0.0
    if len(top_scores) == 1:
        return 1.0
    p = top_scores / sum_s
    eps = 1e-12
    H = -float(np.sum(p * np.log(p + eps)))
    H_norm = H / np.log(len(p))
    return max(0.0, min(1.0, 1.0 - H_norm))


def best_match(offset_votes: Accumulator,
               min_votes: int = 1,
               top_songs_entropy: int = TOP_SONGS_ENTROPY) -> Optional[MatchResult]:
    """
    Pick the song whose offset histogram has the highest peak.

    Ties between songs go to the lexicographically smallest song id.

    Returns:
        MatchResult, or None if no song reached ``min_votes``
    """
    song_peaks = {
        song_id: _peak_offset(offset_counts)
        for song_id, offset_counts in offset_votes.items()
        if offset_counts
    }
    if not song_peaks:
        return None

    best_song_id = min(song_peaks, key=lambda s: (-song_peaks[s][1], s))
    best_offset, best_votes = song_peaks[best_song_id]
    if best_votes < max(1, min_votes):
        return None

    scores = [votes for _, votes in song_peaks.values()]
    return MatchResult(
        song_id=best_song_id,
        offset=best_offset,
        votes=best_votes,
        confidence=_confidence(scores, top_songs_entropy),
        metadata={
            "num_candidate_songs": len(song_peaks),
            "song_scores": {s: v for s, (_, v) in song_peaks.items()},
            "best_song_offset_distribution": dict(offset_votes[best_song_id]),
        },
    )


def find_best_match(spectrum,
                    index: BaseFingerprintIndex,
                    bands: Sequence[int] = BANDS,
                    lower_limit: int = LOWER_LIMIT,
                    upper_limit: int = UPPER_LIMIT,
                    fuzz: int = FUZZ_FACTOR,
                    min_votes: int = 1,
                    top_songs_entropy: int = TOP_SONGS_ENTROPY) -> Optional[MatchResult]:
    """
    Recognize a query magnitude spectrum against ``index``.

    Args:
        spectrum: 2D array (time_slices, frequency_bins)
        index: Enrolled fingerprints
        min_votes: Minimum peak height required to report a song

    Returns:
        MatchResult for the best song, or None when nothing matched
    """
    timer = Timer()
    with timer.measure("Hash matching and voting"):
        hashes = fingerprint_spectrum(spectrum, bands, lower_limit, upper_limit, fuzz)
        offset_votes, stats = accumulate_votes(hashes, index)

    with timer.measure("Scoring"):
        result = best_match(offset_votes, min_votes, top_songs_entropy)

    if result is not None:
        result.metadata.update(stats)
        result.metadata["timings"] = timer.timings
        result.metadata["total_time"] = timer.total
    return result
