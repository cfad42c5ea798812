import argparse
import os
import sys
from dataclasses import dataclass
from typing import Optional

from .audio_provider import AudioProvider
from .chapter_writers import open_writers
from .errors import ChapterizeError, ConfigurationError
from .matches_log import MatchesLog
from .metadata_extractor import probe_chapters, write_embedded_chapters
from .pipeline import run_pipeline
from .recognizer import create_recognizer
from .utils import format_duration, get_logger, setup_logging

logger = get_logger("Main")

DEFAULT_MODEL_DIR = "./model"
MODEL_DIR_ENV = "CHAPTERIZER_MODEL_DIR"


@dataclass
class ChapterizeOptions:
    audio_file_path: str                        # The audio file to chapterize
    model_dir_path: Optional[str] = None        # Vosk model directory
    engine: str = "vosk"                        # vosk or whisper
    whisper_model: str = "base"
    cue_file_path: Optional[str] = None
    ffmetadata_file_path: Optional[str] = None
    matches_file_path: Optional[str] = None     # JSON lines dump of potential matches
    use_embedded_chapters: bool = True
    verbose: bool = False


def verify_jsonl_ext(path: str) -> str:
    if os.path.splitext(path)[1] != ".jsonl":
        raise argparse.ArgumentTypeError("path must end in .jsonl")
    return path


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Audiobook Chapterizer")
    parser.add_argument("-i", "--input", dest="audio", required=True,
                        help="Path to the audio file to chapterize")
    parser.add_argument("--model", default=os.getenv(MODEL_DIR_ENV, DEFAULT_MODEL_DIR),
                        help=f"Path to the Vosk model directory (default: ${MODEL_DIR_ENV} or {DEFAULT_MODEL_DIR})")
    parser.add_argument("--engine", default="vosk", choices=["vosk", "whisper"],
                        help="Speech recognition engine (default: vosk)")
    parser.add_argument("--whisper-model", default="base",
                        choices=["tiny", "base", "small", "medium", "large"],
                        help="Whisper model size (default: base)")
    parser.add_argument("--output-cue", help="Path that the output .cue file will be written to")
    parser.add_argument("--output-ffmetadata", help="Path that the output ffmetadata file will be written to")
    parser.add_argument("--write-matches", type=verify_jsonl_ext,
                        help="Optionally, a .jsonl file to write potential chapter matches to")
    parser.add_argument("--ignore-embedded", action="store_true",
                        help="Run speech recognition even if the file already has chapters")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")

    args = parser.parse_args(argv)
    if not args.output_cue and not args.output_ffmetadata:
        parser.error("at least one of --output-cue or --output-ffmetadata is required")
    return args


def _check_output_dir(path: Optional[str]):
    if path is None:
        return
    directory = os.path.dirname(os.path.abspath(path))
    if not os.path.isdir(directory):
        raise ConfigurationError(f"Output directory does not exist: {directory}")


def build_options(args: argparse.Namespace) -> ChapterizeOptions:
    if not os.path.isfile(args.audio) or not os.access(args.audio, os.R_OK):
        raise ConfigurationError(f"Audio file not found or not readable: {args.audio}")

    if args.engine == "vosk" and not os.path.isdir(args.model):
        raise ConfigurationError(f"Vosk model directory not found: {args.model}")

    for path in (args.output_cue, args.output_ffmetadata, args.write_matches):
        _check_output_dir(path)

    return ChapterizeOptions(
        audio_file_path=args.audio,
        model_dir_path=args.model,
        engine=args.engine,
        whisper_model=args.whisper_model,
        cue_file_path=args.output_cue,
        ffmetadata_file_path=args.output_ffmetadata,
        matches_file_path=args.write_matches,
        use_embedded_chapters=not args.ignore_embedded,
        verbose=args.verbose,
    )


def extract_chapters(options: ChapterizeOptions) -> bool:
    """Writes the chapters embedded in the file, if any. Returns whether there were any."""
    chapters = probe_chapters(options.audio_file_path)
    if not chapters:
        logger.debug("Metadata contains no chapters")
        return False

    logger.info(f"Found {len(chapters)} embedded chapters, skipping speech recognition.")
    with open_writers(options.audio_file_path, options.cue_file_path,
                      options.ffmetadata_file_path) as writers:
        write_embedded_chapters(chapters, writers)
    return True


def chapterize(options: ChapterizeOptions):
    audio = AudioProvider(options.audio_file_path)
    total_duration = audio.total_duration()
    logger.info(f"Audio Duration: {format_duration(total_duration)}")

    recognizer = create_recognizer(
        options.engine,
        audio.sample_rate,
        model_dir=options.model_dir_path,
        whisper_model=options.whisper_model,
        verbose=options.verbose,
    )

    matches_log = MatchesLog(options.matches_file_path) if options.matches_file_path else None
    try:
        with open_writers(options.audio_file_path, options.cue_file_path,
                          options.ffmetadata_file_path) as writers:
            result = run_pipeline(
                audio=audio,
                recognizer=recognizer,
                on_chapter=lambda event: writers.on_chapter_start(event.start, event.title),
                matches_log=matches_log,
            )
            writers.on_end_of_file(total_duration or result.processed_seconds)
    finally:
        if matches_log is not None:
            matches_log.close()

    logger.info(f"Processing complete. Found {result.chapter_count} chapters.")


def main(argv=None):
    args = parse_args(argv)

    log_level = "DEBUG" if args.verbose else "INFO"
    setup_logging(log_level)

    try:
        options = build_options(args)

        if options.use_embedded_chapters:
            logger.info("Starting Phase 1: Embedded Chapter Extraction")
            if extract_chapters(options):
                return

        logger.info("Starting Phase 2: Speech Recognition")
        chapterize(options)
    except ChapterizeError as e:
        logger.error(str(e))
        sys.exit(1)
    except OSError as e:
        logger.error(f"I/O error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
