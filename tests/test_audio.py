"""Tests for songprint.audio: PCM formats, spectrum and capture sources."""

from __future__ import annotations

import sys
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import numpy as np
import pytest
import soundfile as sf

from songprint.audio import (
    AudioFormat,
    FileSource,
    MicrophoneSource,
    compute_magnitude_spectrum,
    decode_pcm,
    encode_pcm,
)
from songprint.errors import DeviceUnavailable

from conftest import slice_peaks, tone_song

# ---------------------------------------------------------------------------
# Format and PCM conversion
# ---------------------------------------------------------------------------


class TestAudioFormat:
    def test_defaults(self) -> None:
        fmt = AudioFormat()
        assert fmt.sample_rate == 44100
        assert fmt.frame_size == 1
        assert fmt.bytes_per_second == 44100

    def test_stereo_16_bit(self) -> None:
        fmt = AudioFormat(sample_size_in_bits=16, channels=2, big_endian=False)
        assert fmt.frame_size == 4
        assert fmt.numpy_dtype == np.dtype("<i2")
        assert fmt.sounddevice_dtype == "int16"

    def test_unsupported_sample_size(self) -> None:
        with pytest.raises(ValueError):
            AudioFormat(sample_size_in_bits=24)


class TestPcm:
    def test_decode_signed_8_bit(self) -> None:
        samples = decode_pcm(bytes([0, 64, 0xC0]), AudioFormat())
        assert samples.tolist() == pytest.approx([0.0, 0.5, -0.5])

    def test_decode_unsigned_8_bit(self) -> None:
        samples = decode_pcm(bytes([128, 192]), AudioFormat(signed=False))
        assert samples.tolist() == pytest.approx([0.0, 0.5])

    def test_decode_big_endian_16_bit(self) -> None:
        fmt = AudioFormat(sample_size_in_bits=16, big_endian=True)
        samples = decode_pcm(b"\x40\x00", fmt)
        assert samples.tolist() == pytest.approx([0.5])

    def test_decode_averages_channels_and_drops_partial_frame(self) -> None:
        fmt = AudioFormat(channels=2)
        samples = decode_pcm(bytes([64, 0, 0xC0, 0xC0, 7]), fmt)
        assert samples.tolist() == pytest.approx([0.25, -0.5])

    def test_encode_is_inverse_of_decode_within_one_step(self) -> None:
        fmt = AudioFormat(sample_size_in_bits=16, big_endian=True)
        samples = np.array([0.0, 0.25, -0.75, 0.999])
        decoded = decode_pcm(encode_pcm(samples, fmt), fmt)
        assert np.allclose(decoded, samples, atol=1 / 32768 * 2)

    def test_encode_clips(self) -> None:
        fmt = AudioFormat()
        assert encode_pcm(np.array([2.0, -2.0]), fmt) == bytes([127, 0x81])


# ---------------------------------------------------------------------------
# Magnitude spectrum
# ---------------------------------------------------------------------------


class TestMagnitudeSpectrum:
    def test_shape(self) -> None:
        pcm = encode_pcm(tone_song(3), AudioFormat())
        spectrum = compute_magnitude_spectrum(pcm, AudioFormat(), chunk_size=4096)
        assert spectrum.shape == (3, 2049)

    def test_leftover_samples_dropped(self) -> None:
        pcm = encode_pcm(np.zeros(4096 * 2 + 100), AudioFormat())
        assert compute_magnitude_spectrum(pcm).shape[0] == 2

    def test_too_short_gives_no_slices(self) -> None:
        assert compute_magnitude_spectrum(b"\x00" * 100).shape == (0, 2049)

    def test_tone_lands_on_its_bin(self) -> None:
        spectrum = compute_magnitude_spectrum(encode_pcm(tone_song(2), AudioFormat()))
        _, b1, b2, b3 = slice_peaks(1)
        top3 = sorted(np.argsort(spectrum[1])[-3:].tolist())
        assert top3 == [b1, b2, b3]


# ---------------------------------------------------------------------------
# Capture sources
# ---------------------------------------------------------------------------


class _PortAudioError(Exception):
    pass


def _fake_sounddevice(stream=None, error: Exception | None = None) -> SimpleNamespace:
    def raw_input_stream(**kwargs):
        if error is not None:
            raise error
        return stream

    return SimpleNamespace(RawInputStream=raw_input_stream, PortAudioError=_PortAudioError)


class TestMicrophoneSource:
    def test_open_failure_is_device_unavailable(self) -> None:
        fake = _fake_sounddevice(error=_PortAudioError("no device"))
        with patch.dict(sys.modules, {"sounddevice": fake}):
            with pytest.raises(DeviceUnavailable):
                MicrophoneSource().open(AudioFormat())

    def test_read_converts_to_requested_byte_order(self) -> None:
        stream = MagicMock()
        native = np.array([1, 256], dtype=np.int16)
        stream.read.return_value = (native.tobytes(), False)
        fmt = AudioFormat(sample_size_in_bits=16, big_endian=True)
        with patch.dict(sys.modules, {"sounddevice": _fake_sounddevice(stream)}):
            source = MicrophoneSource()
            source.open(fmt)
            data = source.read(4)
            source.close()
        stream.start.assert_called_once()
        stream.read.assert_called_once_with(2)
        stream.close.assert_called_once()
        assert data == np.array([1, 256], dtype=">i2").tobytes()

    def test_read_before_open_raises(self) -> None:
        with pytest.raises(RuntimeError):
            MicrophoneSource().read(10)


class TestFileSource:
    def test_reads_file_in_capture_format(self, tmp_path) -> None:
        path = tmp_path / "song.wav"
        sf.write(str(path), tone_song(2), 44100, subtype="PCM_16")
        source = FileSource(path)
        source.open(AudioFormat())
        first = source.read(4096)
        rest = source.read_all()
        assert len(first) == 4096
        assert len(rest) == 4096
        assert source.exhausted
        assert source.read(10) == b""

    def test_stereo_file_is_mixed_down(self, tmp_path) -> None:
        path = tmp_path / "stereo.wav"
        signal = np.stack([np.full(1000, 0.5), np.full(1000, -0.5)], axis=1)
        sf.write(str(path), signal, 44100, subtype="PCM_16")
        source = FileSource(path)
        source.open(AudioFormat())
        assert set(source.read_all()) == {0}

    def test_missing_file_is_device_unavailable(self, tmp_path) -> None:
        with pytest.raises(DeviceUnavailable):
            FileSource(tmp_path / "missing.wav").open(AudioFormat())
