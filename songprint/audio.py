"""
Audio collaborators: PCM format, capture sources and the magnitude spectrum.

The fingerprinting core only ever sees the (time_slices, frequency_bins)
array returned by ``compute_magnitude_spectrum``.
"""

import logging
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

import librosa
import numpy as np
import soundfile as sf

from .config import BIG_ENDIAN, CHANNELS, CHUNK_SIZE, SAMPLE_RATE, SAMPLE_SIZE_IN_BITS, SIGNED
from .errors import DeviceUnavailable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AudioFormat:
    sample_rate: int = SAMPLE_RATE
    sample_size_in_bits: int = SAMPLE_SIZE_IN_BITS
    channels: int = CHANNELS
    signed: bool = SIGNED
    big_endian: bool = BIG_ENDIAN

    def __post_init__(self):
        if self.sample_size_in_bits not in (8, 16):
            raise ValueError(f"Unsupported sample size: {self.sample_size_in_bits} bits")
        if self.channels < 1:
            raise ValueError("channels must be >= 1")
        if self.sample_rate <= 0:
            raise ValueError("sample_rate must be positive")

    @property
    def sample_width(self) -> int:
        return self.sample_size_in_bits // 8

    @property
    def frame_size(self) -> int:
        return self.sample_width * self.channels

    @property
    def bytes_per_second(self) -> int:
        return self.frame_size * self.sample_rate

    @property
    def numpy_dtype(self) -> np.dtype:
        kind = "i" if self.signed else "u"
        if self.sample_width == 1:
            return np.dtype(f"{kind}1")
        order = ">" if self.big_endian else "<"
        return np.dtype(f"{order}{kind}{self.sample_width}")

    @property
    def sounddevice_dtype(self) -> str:
        if self.sample_width == 1:
            return "int8" if self.signed else "uint8"
        if not self.signed:
            raise ValueError("sounddevice only captures signed 16-bit audio")
        return "int16"


def decode_pcm(pcm: bytes, audio_format: AudioFormat) -> np.ndarray:
    """Interleaved PCM bytes -> mono float32 samples in [-1, 1]. A trailing partial frame is dropped."""
    usable = len(pcm) - (len(pcm) % audio_format.frame_size)
    raw = np.frombuffer(pcm[:usable], dtype=audio_format.numpy_dtype).astype(np.float32)
    full_scale = float(1 << (audio_format.sample_size_in_bits - 1))
    if not audio_format.signed:
        raw -= full_scale
    samples = raw / full_scale
    if audio_format.channels > 1:
        samples = samples.reshape(-1, audio_format.channels).mean(axis=1)
    return samples.astype(np.float32)


def encode_pcm(samples: np.ndarray, audio_format: AudioFormat) -> bytes:
    """Mono float samples in [-1, 1] -> interleaved PCM bytes (mono copied to every channel)."""
    samples = np.clip(np.asarray(samples, dtype=np.float64), -1.0, 1.0)
    full_scale = 1 << (audio_format.sample_size_in_bits - 1)
    ints = np.round(samples * (full_scale - 1))
    if not audio_format.signed:
        ints += full_scale
    if audio_format.channels > 1:
        ints = np.repeat(ints[:, None], audio_format.channels, axis=1)
    return ints.astype(audio_format.numpy_dtype).tobytes()


def compute_magnitude_spectrum(pcm: bytes,
                               audio_format: AudioFormat = AudioFormat(),
                               chunk_size: int = CHUNK_SIZE) -> np.ndarray:
    """
    Split the audio into non-overlapping chunks and take the FFT magnitude of each.

    Returns:
        2D array (time_slices, chunk_size // 2 + 1). Leftover samples that
        do not fill a whole chunk are dropped.
    """
    samples = decode_pcm(pcm, audio_format)
    n_slices = len(samples) // chunk_size
    n_bins = chunk_size // 2 + 1
    if n_slices == 0:
        return np.zeros((0, n_bins), dtype=np.float32)

    stft = librosa.stft(
        samples[:n_slices * chunk_size],
        n_fft=chunk_size,
        hop_length=chunk_size,
        window="boxcar",
        center=False,
    )
    return np.ascontiguousarray(np.abs(stft).T)


class CaptureSource(ABC):
    """Something PCM bytes can be read from, block by block."""

    @abstractmethod
    def open(self, audio_format: AudioFormat) -> None:
        """Start capturing. Raises DeviceUnavailable if that is impossible."""
        pass

    @abstractmethod
    def read(self, num_bytes: int) -> bytes:
        """Blocking read of at most ``num_bytes``. May return b"" when nothing is available."""
        pass

    @abstractmethod
    def close(self) -> None:
        pass


class MicrophoneSource(CaptureSource):
    """Default input device through a sounddevice raw input stream."""

    def __init__(self, device: Optional[Union[int, str]] = None, blocksize: int = 0):
        self.device = device
        self.blocksize = blocksize
        self._stream = None
        self._format: Optional[AudioFormat] = None

    def open(self, audio_format: AudioFormat) -> None:
        try:
            import sounddevice as sd
        except OSError as e:
            raise DeviceUnavailable(f"PortAudio is not available: {e}") from e
        try:
            stream = sd.RawInputStream(
                samplerate=audio_format.sample_rate,
                channels=audio_format.channels,
                dtype=audio_format.sounddevice_dtype,
                device=self.device,
                blocksize=self.blocksize,
            )
            stream.start()
        except (sd.PortAudioError, ValueError) as e:
            raise DeviceUnavailable(f"Cannot open input device {self.device!r}: {e}") from e
        self._stream = stream
        self._format = audio_format
        logger.debug(f"Opened input stream at {audio_format.sample_rate} Hz")

    def read(self, num_bytes: int) -> bytes:
        if self._stream is None:
            raise RuntimeError("read() called before open()")
        frames = max(1, num_bytes // self._format.frame_size)
        data, overflowed = self._stream.read(frames)
        if overflowed:
            logger.warning("Input overflow: some audio was dropped")
        data = bytes(data)
        # sounddevice delivers native byte order
        if self._format.sample_width > 1 and self._format.big_endian != (sys.byteorder == "big"):
            native = np.frombuffer(data, dtype=self._format.numpy_dtype.newbyteorder())
            data = native.astype(self._format.numpy_dtype).tobytes()
        return data

    def close(self) -> None:
        if self._stream is not None:
            self._stream.stop()
            self._stream.close()
            self._stream = None


class FileSource(CaptureSource):
    """
    Audio file decoded with soundfile and converted to the capture format.

    Reads serve the converted PCM in order and return b"" once it is exhausted.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._pcm = b""
        self._pos = 0

    def open(self, audio_format: AudioFormat) -> None:
        try:
            signal, sr = sf.read(str(self.path), dtype="float32")
        except (sf.LibsndfileError, RuntimeError, OSError) as e:
            raise DeviceUnavailable(f"Cannot open audio file {self.path}: {e}") from e
        signal = np.asarray(signal)
        if signal.ndim > 1:
            # signal is (num_samples, num_channels); transpose to (channels, samples)
            signal = librosa.to_mono(signal.T)
        if sr != audio_format.sample_rate:
            signal = librosa.resample(signal, orig_sr=sr, target_sr=audio_format.sample_rate)
        self._pcm = encode_pcm(signal, audio_format)
        self._pos = 0
        logger.debug(f"Decoded {self.path.name}: {len(signal)} samples at {audio_format.sample_rate} Hz")

    @property
    def exhausted(self) -> bool:
        return self._pos >= len(self._pcm)

    def read(self, num_bytes: int) -> bytes:
        data = self._pcm[self._pos:self._pos + num_bytes]
        self._pos += len(data)
        return data

    def read_all(self) -> bytes:
        data = self._pcm[self._pos:]
        self._pos = len(self._pcm)
        return data

    def close(self) -> None:
        self._pcm = b""
        self._pos = 0
