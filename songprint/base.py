"""
Base interface for fingerprint indexes.
"""

from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, NamedTuple


class Landmark(NamedTuple):
    """One enrolled occurrence of a hash: which song, and at which time-slice."""
    song_id: str
    time_slice: int


class BaseFingerprintIndex(ABC):
    """
    Abstract base class for fingerprint storage.

    The matcher only talks to this interface, so the in-memory table can be
    swapped for another backend without touching the voting code.
    """

    @abstractmethod
    def enroll(self, song_id: str, time_slice: int, hash_entry: int) -> None:
        """
        Record that ``hash_entry`` was seen at ``time_slice`` of ``song_id``.

        Landmarks are appended; enrolling the same slice twice stores it twice.
        """
        pass

    @abstractmethod
    def lookup(self, hash_entry: int) -> List[Landmark]:
        """
        Return the landmarks enrolled under exactly ``hash_entry``.

        Returns:
            A (possibly empty) list of Landmark
        """
        pass

    @abstractmethod
    def to_table(self) -> Dict[int, List[Landmark]]:
        """
        Snapshot of the whole index as a plain dict[hash -> list[Landmark]].

        This is what gets persisted, so every backend can be saved the same way.
        """
        pass

    @abstractmethod
    def clear(self) -> None:
        """Drop every landmark."""
        pass

    @abstractmethod
    def song_ids(self) -> Iterable[str]:
        """Return the identifiers of all enrolled songs."""
        pass

    @property
    def num_indexed_songs(self) -> int:
        """Return the number of distinct songs currently indexed."""
        return len(set(self.song_ids()))
