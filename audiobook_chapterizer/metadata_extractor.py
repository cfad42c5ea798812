import json
import subprocess
from dataclasses import dataclass
from fractions import Fraction
from typing import List, Optional

from .audio_provider import require_binary
from .chapter_writers import ChapterWriterGroup
from .errors import AudioDecodeError
from .utils import format_duration, get_logger

logger = get_logger("MetadataExtractor")

# ffprobe reports chapter times exactly 25 ms later than ffmpeg does
FFPROBE_CHAPTER_OFFSET = 0.025


@dataclass
class EmbeddedChapter:
    id: int
    start: float                        # Seconds, as reported by ffprobe
    end: float                          # Seconds, as reported by ffprobe
    title: Optional[str] = None


def ffprobe_duration_difference_workaround(seconds: float) -> float:
    return max(seconds - FFPROBE_CHAPTER_OFFSET, 0.0)


def probe_chapters(audio_path: str) -> List[EmbeddedChapter]:
    """Returns the chapter markers embedded in the audio container, if any."""
    cmd = [
        require_binary("ffprobe"),
        "-v", "quiet",
        "-show_chapters",
        "-print_format", "json",
        audio_path
    ]
    proc = subprocess.run(cmd, capture_output=True)
    if proc.returncode != 0:
        raise AudioDecodeError(
            f"ffprobe exited with status {proc.returncode} for {audio_path}: "
            f"{proc.stderr.decode(errors='replace').strip()}"
        )

    try:
        data = json.loads(proc.stdout or b"{}")
    except json.JSONDecodeError as e:
        raise AudioDecodeError(f"Could not parse ffprobe output for {audio_path}: {e}") from e

    chapters = []
    for raw in data.get("chapters", []):
        time_base = Fraction(raw["time_base"])
        chapters.append(EmbeddedChapter(
            id=raw["id"],
            start=float(raw["start"] * time_base),
            end=float(raw["end"] * time_base),
            title=(raw.get("tags") or {}).get("title"),
        ))
    return chapters


def write_embedded_chapters(chapters: List[EmbeddedChapter], writers: ChapterWriterGroup):
    for chapter in chapters:
        title = chapter.title or "Untitled"
        start = ffprobe_duration_difference_workaround(chapter.start)
        logger.debug(f"Extracted chapter {chapter.id} @ {format_duration(start)}: \"{title}\"")
        writers.on_chapter_start(start, title)

    writers.on_end_of_file(ffprobe_duration_difference_workaround(chapters[-1].end))
