"""Tests for songprint.cli: commands and exit codes."""

from __future__ import annotations

from unittest.mock import patch

import soundfile as sf

from songprint.cli import EXIT_FATAL, EXIT_NO_MATCH, EXIT_OK, build_parser, main
from songprint.errors import DeviceUnavailable
from songprint.matching import MatchResult
from songprint.recognizer import Recognizer

from conftest import tone_song


class TestCommands:
    def test_stats_on_empty_index(self, db_path: str) -> None:
        assert main(["--db-path", db_path, "stats"]) == EXIT_OK

    def test_missing_query_file(self, db_path: str, tmp_path) -> None:
        assert main(["--db-path", db_path, "recognize-file", str(tmp_path / "nope.wav")]) == EXIT_FATAL

    def test_index_folder_then_recognize(self, db_path: str, tmp_path) -> None:
        songs = tmp_path / "songs"
        songs.mkdir()
        sf.write(str(songs / "tune.wav"), tone_song(8), 44100, subtype="PCM_16")
        sf.write(str(tmp_path / "query.wav"), tone_song(8)[2 * 4096:], 44100, subtype="PCM_16")
        assert main(["--db-path", db_path, "index-folder", str(songs)]) == EXIT_OK
        assert main(["--db-path", db_path, "recognize-file", str(tmp_path / "query.wav")]) == EXIT_OK

    def test_unknown_audio_is_no_match(self, db_path: str, tmp_path) -> None:
        sf.write(str(tmp_path / "query.wav"), tone_song(4), 44100, subtype="PCM_16")
        assert main(["--db-path", db_path, "recognize-file", str(tmp_path / "query.wav")]) == EXIT_NO_MATCH

    def test_match_from_microphone(self, db_path: str, capsys) -> None:
        found = MatchResult(song_id="tune", offset=2, votes=6, confidence=1.0)
        with patch.object(Recognizer, "match", return_value=found):
            assert main(["--db-path", db_path, "match"]) == EXIT_OK
        out = capsys.readouterr().out
        assert "[Step 1]" in out and "[Step 2]" in out
        with patch.object(Recognizer, "match", return_value=None):
            assert main(["--db-path", db_path, "match"]) == EXIT_NO_MATCH

    def test_enroll_device_unavailable(self, db_path: str) -> None:
        with patch.object(Recognizer, "enroll", side_effect=DeviceUnavailable("no microphone")):
            assert main(["--db-path", db_path, "enroll", "tune"]) == EXIT_FATAL


class TestFailurePolicy:
    def test_ignore_corrupt_index_help_explains_default(self) -> None:
        assert "overwrite" in " ".join(build_parser().format_help().split())

    def test_corrupt_index_is_fatal(self, db_path: str) -> None:
        with open(db_path, "wb") as f:
            f.write(b"garbage")
        assert main(["--db-path", db_path, "stats"]) == EXIT_FATAL

    def test_corrupt_index_can_be_ignored(self, db_path: str) -> None:
        with open(db_path, "wb") as f:
            f.write(b"garbage")
        assert main(["--db-path", db_path, "--ignore-corrupt-index", "stats"]) == EXIT_OK

    def test_save_failure_exit_code(self, tmp_path) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        songs = tmp_path / "songs"
        songs.mkdir()
        sf.write(str(songs / "tune.wav"), tone_song(2), 44100, subtype="PCM_16")
        db_path = str(blocker / "fingerprints.db")
        assert main(["--db-path", db_path, "index-folder", str(songs)]) == EXIT_FATAL
        assert main(["--db-path", db_path, "--non-fatal-save", "index-folder", str(songs)]) == EXIT_OK

    def test_bad_config_file(self, db_path: str, tmp_path) -> None:
        config = tmp_path / "bad.yaml"
        config.write_text("bands: [10, 20]\n")
        assert main(["--db-path", db_path, "--config", str(config), "stats"]) == EXIT_FATAL
