import logging
import sys
import threading
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

import numpy as np
from tqdm import tqdm

from .audio import AudioFormat, CaptureSource, FileSource, MicrophoneSource, compute_magnitude_spectrum
from .base import BaseFingerprintIndex
from .config import Settings
from .db import load_db, save_db
from .errors import IndexSaveFailure, RecognizerBusy
from .hashing import fingerprint_spectrum
from .logs import Timer
from .matching import MatchResult, find_best_match

logger = logging.getLogger(__name__)


class RecognizerState(Enum):
    IDLE = "idle"
    CAPTURING = "capturing"
    PROCESSING = "processing"


class StdinStopListener:
    """
    One background reader of stdin shared by every action of a Recognizer.

    Each line (or end of input) sets whichever stop event is armed at that
    moment. Lines read while nothing is armed are dropped, so a keypress
    never leaks into a later action.
    """

    def __init__(self, readline: Optional[Callable[[], str]] = None):
        self.readline = readline or sys.stdin.readline
        self._lock = threading.Lock()
        self._current: Optional[threading.Event] = None
        self._thread: Optional[threading.Thread] = None

    def arm(self, stop_event: threading.Event) -> None:
        with self._lock:
            self._current = stop_event
            if self._thread is None or not self._thread.is_alive():
                self._thread = threading.Thread(target=self._run, name="songprint-stdin", daemon=True)
                self._thread.start()

    def disarm(self, stop_event: threading.Event) -> None:
        with self._lock:
            if self._current is stop_event:
                self._current = None

    def _run(self):
        while True:
            try:
                line = self.readline()
            except (OSError, ValueError):
                line = ""
            with self._lock:
                event, self._current = self._current, None
            if event is not None:
                event.set()
            if not line:
                # end of input: the next arm() starts a new reader
                return


class CaptureWorker(threading.Thread):
    """
    Reads blocks from a capture source into memory until ``stop_event`` is set.

    The event is checked between blocking reads, so the worker exits once the
    read in progress returns. ``max_bytes`` bounds the buffer.
    """

    def __init__(self, source: CaptureSource, stop_event: threading.Event,
                 block_bytes: int, max_bytes: Optional[int] = None):
        super().__init__(name="songprint-capture", daemon=True)
        self.source = source
        self.stop_event = stop_event
        self.block_bytes = block_bytes
        self.max_bytes = max_bytes
        self.buffer = bytearray()
        self.error: Optional[BaseException] = None
        self.limit_reached = False

    def run(self):
        try:
            while not self.stop_event.is_set():
                data = self.source.read(self.block_bytes)
                if data:
                    self.buffer.extend(data)
                if self.max_bytes is not None and len(self.buffer) >= self.max_bytes:
                    del self.buffer[self.max_bytes:]
                    self.limit_reached = True
                    break
        except Exception as e:
            # handed back to the controlling thread
            self.error = e


class Recognizer:
    """
    Capture -> spectrum -> enroll or match -> persist.

    Only one action runs at a time; the state moves
    IDLE -> CAPTURING -> PROCESSING -> IDLE.
    """

    def __init__(self,
                 index: Optional[BaseFingerprintIndex] = None,
                 settings: Optional[Settings] = None,
                 capture_source: Optional[CaptureSource] = None,
                 db_path: Optional[str] = None,
                 stop_listener: Optional[StdinStopListener] = None):
        """
        Args:
            index: Fingerprint index to use; loaded from ``db_path`` when omitted
            settings: Audio/fingerprint settings (defaults from config)
            capture_source: Where ``listen`` reads audio (default microphone)
            db_path: Pickle file the index is saved to (default settings.db_path)
            stop_listener: Stdin reader used when no ``wait_for_stop`` is given
        """
        self.settings = settings or Settings()
        self.db_path = db_path or self.settings.db_path
        self.index = index if index is not None else load_db(self.db_path)
        self.capture_source = capture_source or MicrophoneSource()
        self.audio_format: AudioFormat = self.settings.audio_format()
        self.state = RecognizerState.IDLE
        self._busy = threading.Lock()
        self.stop_listener = stop_listener or StdinStopListener()

    @property
    def num_indexed_songs(self) -> int:
        return self.index.num_indexed_songs

    def _begin(self):
        if not self._busy.acquire(blocking=False):
            raise RecognizerBusy(f"Recognizer is {self.state.value}")

    def _end(self):
        self.state = RecognizerState.IDLE
        self._busy.release()

    # ------------------------------------------------------------------
    # Capture
    # ------------------------------------------------------------------

    def listen(self, song_id: Optional[str] = None, is_matching: bool = False,
               wait_for_stop: Optional[Callable[[], None]] = None) -> Optional[MatchResult]:
        """
        Record from the capture source until stopped, then enroll or match.

        Args:
            song_id: Identifier to enroll under (enrollment only)
            is_matching: Match instead of enrolling
            wait_for_stop: Blocks until capture should stop (default: ENTER on stdin)

        Returns:
            MatchResult or None when matching; None when enrolling
        """
        if not is_matching and not song_id:
            raise ValueError("song_id is required to enroll")
        self._begin()
        try:
            # DeviceUnavailable surfaces here, before any capture or index change
            self.capture_source.open(self.audio_format)
            try:
                self.state = RecognizerState.CAPTURING
                pcm = self._capture(wait_for_stop)
            finally:
                self.capture_source.close()

            self.state = RecognizerState.PROCESSING
            return self._process(pcm, song_id, is_matching, persist=True)
        finally:
            self._end()

    def _capture(self, wait_for_stop: Optional[Callable[[], None]]) -> bytes:
        stop_event = threading.Event()
        max_bytes = None
        if self.settings.max_capture_seconds is not None:
            max_bytes = int(self.settings.max_capture_seconds * self.audio_format.bytes_per_second)
        worker = CaptureWorker(
            self.capture_source,
            stop_event,
            block_bytes=self.settings.buffer_size * self.audio_format.frame_size,
            max_bytes=max_bytes,
        )

        def trigger():
            try:
                wait_for_stop()
            except EOFError:
                pass
            finally:
                stop_event.set()

        worker.start()
        if wait_for_stop is None:
            self.stop_listener.arm(stop_event)
            logger.info("Listening... press ENTER key to stop")
        else:
            threading.Thread(target=trigger, name="songprint-stop", daemon=True).start()
            logger.info("Listening...")
        try:
            while worker.is_alive():
                worker.join(timeout=0.1)
        except KeyboardInterrupt:
            logger.info("Interrupted, stopping capture")
        finally:
            stop_event.set()
            self.stop_listener.disarm(stop_event)
            worker.join()

        if worker.error is not None:
            raise worker.error
        if worker.limit_reached:
            logger.warning(f"Reached the {self.settings.max_capture_seconds}s capture limit")
        logger.info(f"Captured {len(worker.buffer)} bytes "
                    f"({len(worker.buffer) / self.audio_format.bytes_per_second:.1f}s)")
        return bytes(worker.buffer)

    def enroll(self, song_id: str, wait_for_stop: Optional[Callable[[], None]] = None) -> None:
        self.listen(song_id, is_matching=False, wait_for_stop=wait_for_stop)

    def match(self, wait_for_stop: Optional[Callable[[], None]] = None) -> Optional[MatchResult]:
        return self.listen(is_matching=True, wait_for_stop=wait_for_stop)

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    def process(self, pcm: bytes, song_id: Optional[str] = None, is_matching: bool = False,
                persist: bool = True) -> Optional[MatchResult]:
        """Enroll or match already-captured PCM in the configured audio format."""
        if not is_matching and not song_id:
            raise ValueError("song_id is required to enroll")
        self._begin()
        try:
            self.state = RecognizerState.PROCESSING
            return self._process(pcm, song_id, is_matching, persist)
        finally:
            self._end()

    def _process(self, pcm: bytes, song_id: Optional[str], is_matching: bool,
                 persist: bool) -> Optional[MatchResult]:
        timer = Timer()
        with timer.measure("Compute spectrum"):
            spectrum = compute_magnitude_spectrum(pcm, self.audio_format, self.settings.chunk_size)
        logger.debug(f"Spectrum: {spectrum.shape[0]} time-slices")

        result = None
        if is_matching:
            with timer.measure("Match"):
                result = self.match_spectrum(spectrum)
            if result is not None:
                result.metadata.setdefault("timings", {}).update(timer.timings)
        else:
            with timer.measure("Enroll"):
                added = self.enroll_spectrum(song_id, spectrum)
            logger.info(f"Enrolled '{song_id}': {added} landmarks")

        if persist:
            self.save()
        return result

    def enroll_spectrum(self, song_id: str, spectrum: np.ndarray) -> int:
        """Add one landmark per time-slice of ``spectrum``. Returns the number added."""
        s = self.settings
        added = 0
        for c, h in fingerprint_spectrum(spectrum, s.bands, s.lower_limit, s.upper_limit, s.fuzz_factor):
            self.index.enroll(song_id, c, h)
            added += 1
        return added

    def match_spectrum(self, spectrum: np.ndarray) -> Optional[MatchResult]:
        s = self.settings
        return find_best_match(
            spectrum, self.index,
            bands=s.bands,
            lower_limit=s.lower_limit,
            upper_limit=s.upper_limit,
            fuzz=s.fuzz_factor,
            min_votes=s.min_votes,
            top_songs_entropy=s.top_songs_entropy,
        )

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def _read_file(self, audio_path: Path) -> bytes:
        source = FileSource(audio_path)
        source.open(self.audio_format)
        try:
            return source.read_all()
        finally:
            source.close()

    def enroll_file(self, audio_path: Path, song_id: Optional[str] = None,
                    persist: bool = True) -> str:
        """Enroll an audio file under ``song_id`` (default: file name without extension)."""
        audio_path = Path(audio_path)
        song_id = song_id or audio_path.stem
        self.process(self._read_file(audio_path), song_id, is_matching=False, persist=persist)
        return song_id

    def recognize_file(self, query_path: Path) -> Optional[MatchResult]:
        return self.process(self._read_file(Path(query_path)), is_matching=True)

    def index_folder(self, folder: Path, pattern: str = "*.wav", skip_existing: bool = True) -> int:
        """Enroll every file in ``folder`` matching ``pattern`` and save once. Returns songs added."""
        audio_paths = sorted(Path(folder).glob(pattern))
        existing = set(self.index.song_ids()) if skip_existing else set()
        count = 0
        for audio_path in tqdm(audio_paths, desc="Indexing songs", unit="song"):
            if audio_path.stem in existing:
                logger.debug(f"'{audio_path.stem}' is already indexed, skipping")
                continue
            self.enroll_file(audio_path, persist=False)
            count += 1
        self.save()
        return count

    def save(self) -> None:
        """Persist the index; failures are fatal unless ``settings.fatal_save_errors`` is off."""
        try:
            save_db(self.db_path, self.index)
        except IndexSaveFailure as e:
            if self.settings.fatal_save_errors:
                raise
            logger.error(f"{e} (continuing, changes are only in memory)")
