"""
SongPrint command line.

Usage:
    songprint enroll "artist - title"        # record from the microphone, ENTER to stop
    songprint match                          # record a fragment and identify it
    songprint recognize-file query.wav
    songprint index-folder data/ --pattern "*.flac"
    songprint stats
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

import yaml

from .config import load_settings
from .db import load_db
from .errors import SongPrintError, IndexLoadFailure
from .index import FingerprintIndex
from .logs import LOGGER_NAME, log_detail, log_section, log_step, log_success, setup_logging
from .matching import MatchResult
from .recognizer import Recognizer

EXIT_OK = 0
EXIT_NO_MATCH = 1
EXIT_FATAL = 2

log = logging.getLogger(LOGGER_NAME)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="songprint", description="SongPrint - landmark audio fingerprinting")
    parser.add_argument("--db-path", type=str, default=None,
                        help="Fingerprint index file (default: fingerprints.db)")
    parser.add_argument("--config", type=str, default=None,
                        help="YAML file overriding the default settings")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    parser.add_argument("--non-fatal-save", action="store_true",
                        help="Log index save failures instead of exiting")
    parser.add_argument("--ignore-corrupt-index", action="store_true",
                        help="Start from an empty index if the stored one cannot be read. Off by default "
                             "because the next save would overwrite the unreadable file")

    sub = parser.add_subparsers(dest="command", required=True)
    enroll = sub.add_parser("enroll", help="Record a song from the microphone and add it")
    enroll.add_argument("song_id", help="Identifier to store the song under")
    sub.add_parser("match", help="Record a fragment from the microphone and identify it")
    recognize = sub.add_parser("recognize-file", help="Identify an audio file")
    recognize.add_argument("query", type=str, help="Path to query audio file")
    folder = sub.add_parser("index-folder", help="Enroll every audio file of a folder")
    folder.add_argument("folder", type=str)
    folder.add_argument("--pattern", type=str, default="*.wav", help='Glob pattern (default: "*.wav")')
    sub.add_parser("stats", help="Show what the index holds")
    return parser


def _report(result: Optional[MatchResult]) -> int:
    if result is None:
        log.warning("No match found")
        return EXIT_NO_MATCH
    log_success(f"Match found: {result.song_id}")
    log_detail("Offset (time-slices)", str(result.offset))
    log_detail("Votes", str(result.votes))
    log_detail("Confidence", f"{result.confidence:.2%}")
    log_detail("Matched hashes", str(result.metadata.get("num_matched_hashes", "N/A")))
    return EXIT_OK


def run(args: argparse.Namespace) -> int:
    overrides = {"db_path": args.db_path}
    if args.non_fatal_save:
        overrides["fatal_save_errors"] = False
    try:
        settings = load_settings(args.config, **overrides)
    except (OSError, ValueError, yaml.YAMLError) as e:
        log.error(f"Invalid configuration: {e}")
        return EXIT_FATAL

    try:
        index = load_db(settings.db_path)
    except IndexLoadFailure as e:
        if not args.ignore_corrupt_index:
            raise
        log.error(f"{e}; starting with an empty index")
        index = FingerprintIndex()

    recognizer = Recognizer(index=index, settings=settings)
    log_detail("Database", f"{settings.db_path} ({recognizer.num_indexed_songs} songs)")

    if args.command == "enroll":
        log_section("🎙️  Enrolling")
        log_step(1, f"Recording '{args.song_id}' from the microphone (ENTER to stop)")
        recognizer.enroll(args.song_id)
        log_step(2, "Fingerprints stored")
        log_success(f"Enrolled '{args.song_id}'")
        return EXIT_OK

    if args.command == "match":
        log_section("🎧 Matching")
        log_step(1, "Recording a fragment from the microphone (ENTER to stop)")
        result = recognizer.match()
        log_step(2, "Matched against the index")
        return _report(result)

    if args.command == "recognize-file":
        query_path = Path(args.query)
        if not query_path.exists():
            log.error(f"Query file not found: {query_path}")
            return EXIT_FATAL
        log.info(f"Recognizing: {query_path.name}")
        return _report(recognizer.recognize_file(query_path))

    if args.command == "index-folder":
        folder = Path(args.folder)
        if not folder.is_dir():
            log.error(f"Not a folder: {folder}")
            return EXIT_FATAL
        count = recognizer.index_folder(folder, pattern=args.pattern)
        log_success(f"Indexed {count} new songs")
        return EXIT_OK

    if args.command == "stats":
        log_detail("Songs", str(recognizer.num_indexed_songs))
        log_detail("Hashes", str(index.num_hashes))
        log_detail("Landmarks", str(len(index)))
        return EXIT_OK

    raise ValueError(f"Unknown command: {args.command}")


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)
    try:
        return run(args)
    except SongPrintError as e:
        log.error(str(e))
        return EXIT_FATAL


if __name__ == "__main__":
    sys.exit(main())
