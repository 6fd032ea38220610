import threading
from typing import Dict, Iterable, List, Optional

from .base import BaseFingerprintIndex, Landmark


class FingerprintIndex(BaseFingerprintIndex):
    """
    In-memory fingerprint index: dict[hash -> list[Landmark]].

    Lists grow without bound; there is no deduplication.
    """

    def __init__(self, table: Optional[Dict[int, List[Landmark]]] = None):
        self.hash_table: Dict[int, List[Landmark]] = {}
        self._lock = threading.Lock()
        if table:
            for h, landmarks in table.items():
                self.hash_table[int(h)] = [Landmark(str(s), int(t)) for s, t in landmarks]

    def enroll(self, song_id: str, time_slice: int, hash_entry: int) -> None:
        point = Landmark(song_id, int(time_slice))
        with self._lock:
            if hash_entry not in self.hash_table:
                self.hash_table[hash_entry] = [point]
            else:
                self.hash_table[hash_entry].append(point)

    def lookup(self, hash_entry: int) -> List[Landmark]:
        with self._lock:
            return list(self.hash_table.get(hash_entry, ()))

    def to_table(self) -> Dict[int, List[Landmark]]:
        with self._lock:
            return {h: list(landmarks) for h, landmarks in self.hash_table.items()}

    def clear(self) -> None:
        with self._lock:
            self.hash_table.clear()

    def song_ids(self) -> Iterable[str]:
        with self._lock:
            seen = {}
            for landmarks in self.hash_table.values():
                for point in landmarks:
                    seen.setdefault(point.song_id, None)
            return list(seen)

    def remove_song(self, song_id: str) -> int:
        """Rebuild the table without ``song_id``. Returns the number of landmarks removed."""
        removed = 0
        with self._lock:
            for h in list(self.hash_table):
                kept = [p for p in self.hash_table[h] if p.song_id != song_id]
                removed += len(self.hash_table[h]) - len(kept)
                if kept:
                    self.hash_table[h] = kept
                else:
                    del self.hash_table[h]
        return removed

    @property
    def num_hashes(self) -> int:
        return len(self.hash_table)

    def __len__(self) -> int:
        with self._lock:
            return sum(len(landmarks) for landmarks in self.hash_table.values())

