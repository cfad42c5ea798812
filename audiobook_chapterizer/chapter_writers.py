"""
Chapter marker file writers.

Writers receive chapter starts in increasing time order, then exactly one
end of file call. Output goes to a hidden temporary file next to the target
and only replaces the target on commit(), so a failed run never leaves a
truncated cue sheet or ffmetadata file behind.
"""
import os
import re
import tempfile
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional, Tuple

from .utils import format_duration, get_logger

logger = get_logger(__name__)

# There are 75 frames in one second
CUE_FRAMES_PER_SECOND = 75

CUE_FILE_TYPES = {
    "mp3": "MP3",
    "wav": "WAVE",
    "wv": "WAVE",
    "flac": "WAVE",
    "m4a": "MP4",
    "m4b": "MP4",
}

FIRST_CHAPTER_TITLE = "Chapter 00"


def seconds_to_millis(seconds: float) -> int:
    return int(round(seconds * 1000))


def seconds_to_cue_index(seconds: float) -> str:
    whole, millis = divmod(seconds_to_millis(seconds), 1000)
    frames = millis * CUE_FRAMES_PER_SECOND // 1000
    minutes, secs = divmod(whole, 60)
    return f"{minutes:02d}:{secs:02d}:{frames:02d}"


class ChapterWriter(ABC):
    def __init__(self, output_path: str):
        self.output_path = output_path
        directory = os.path.dirname(os.path.abspath(output_path))
        self._file = tempfile.NamedTemporaryFile(
            mode="w", encoding="utf-8", dir=directory,
            prefix=f".{os.path.basename(output_path)}.", suffix=".tmp", delete=False,
        )

    @abstractmethod
    def on_chapter_start(self, start: float, title: str):
        """Called for every chapter, in increasing start time order."""

    @abstractmethod
    def on_end_of_file(self, total_duration: float):
        """Called once, after the last chapter start."""

    def write(self, text: str):
        self._file.write(text)

    def commit(self):
        self._file.close()
        os.replace(self._file.name, self.output_path)
        logger.info(f"Wrote {self.output_path}")

    def discard(self):
        self._file.close()
        if os.path.exists(self._file.name):
            os.remove(self._file.name)


class CueWriter(ChapterWriter):
    def __init__(self, output_path: str, audio_file_path: str):
        super().__init__(output_path)
        self.track_num = 1
        self.write_header(audio_file_path)

    @staticmethod
    def sanitize(s: str) -> str:
        return re.sub(r'[\r\n"\\]+', "", s).strip()

    def write_header(self, audio_file_path: str):
        file_name = os.path.basename(audio_file_path)
        extension = os.path.splitext(file_name)[1].lstrip(".").lower()
        file_type = CUE_FILE_TYPES.get(extension, "BINARY")
        self.write(f'FILE "{self.sanitize(file_name)}" {file_type}\n')

    def on_chapter_start(self, start: float, title: str):
        self.write(
            f"TRACK {self.track_num} AUDIO\n"
            f'    TITLE "{self.sanitize(title)}"\n'
            f"    INDEX 01 {seconds_to_cue_index(start)}\n"
        )
        self.track_num += 1

    def on_end_of_file(self, total_duration: float):
        # Cue tracks run until the next index, nothing to close
        pass


class FfmetadataWriter(ChapterWriter):
    def __init__(self, output_path: str):
        super().__init__(output_path)
        # (start, title) of the last chapter, written once its end is known
        self.partial_chapter: Optional[Tuple[float, str]] = None
        self.write(";FFMETADATA1\n")

    @staticmethod
    def sanitize(s: str) -> str:
        # ffmpeg docs: '=', ';', '#', '\' and a newline must be escaped with a backslash
        s = s.replace("\r", "")
        s = s.replace("\\", "\\\\")
        s = s.replace("=", "\\=")
        s = s.replace(";", "\\;")
        s = s.replace("#", "\\#")
        s = s.replace("\n", "\\\n")
        return s.strip()

    def write_chapter(self, start: float, end: float, title: str):
        self.write(
            "[CHAPTER]\n"
            "TIMEBASE=1/1000\n"
            f"START={seconds_to_millis(start)}\n"
            f"END={seconds_to_millis(end)}\n"
            f"title={self.sanitize(title)}\n"
        )

    def on_chapter_start(self, start: float, title: str):
        if self.partial_chapter is not None:
            prev_start, prev_title = self.partial_chapter
            self.write_chapter(prev_start, start, prev_title)
        self.partial_chapter = (start, title)

    def on_end_of_file(self, total_duration: float):
        if self.partial_chapter is not None:
            start, title = self.partial_chapter
            self.write_chapter(start, max(total_duration, start), title)
            self.partial_chapter = None


class ChapterWriterGroup:
    """
    Fans every chapter out to several writers.

    The output always opens with a chapter at 0:00. If the first chapter
    starts later, a "Chapter 00" is inserted in front of it.

    Used as a context manager: all files are committed if the block
    finishes after on_end_of_file(), and discarded otherwise.
    """

    def __init__(self, writers: Iterable[ChapterWriter]):
        self.writers: List[ChapterWriter] = list(writers)
        self.chapter_count = 0
        self.finished = False

    def _fan_out(self, start: float, title: str):
        for writer in self.writers:
            writer.on_chapter_start(start, title)
        self.chapter_count += 1

    def on_chapter_start(self, start: float, title: str):
        if self.chapter_count == 0 and start > 0:
            logger.debug(f"Adding 0th chapter @ {format_duration(0.0)}")
            self._fan_out(0.0, FIRST_CHAPTER_TITLE)
        logger.debug(f"Writing chapter '{title}' @ {format_duration(start)}")
        self._fan_out(start, title)

    def on_end_of_file(self, total_duration: float):
        if self.chapter_count == 0:
            self._fan_out(0.0, FIRST_CHAPTER_TITLE)
        for writer in self.writers:
            writer.on_end_of_file(total_duration)
        self.finished = True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc_type is None and self.finished:
            for writer in self.writers:
                writer.commit()
        else:
            if exc_type is None:
                logger.error("Chapter output was never finished, discarding it")
            for writer in self.writers:
                writer.discard()
        return False


def open_writers(audio_file_path: str, cue_file_path: Optional[str] = None,
                 ffmetadata_file_path: Optional[str] = None) -> ChapterWriterGroup:
    writers: List[ChapterWriter] = []
    try:
        if cue_file_path:
            writers.append(CueWriter(cue_file_path, audio_file_path))
        if ffmetadata_file_path:
            writers.append(FfmetadataWriter(ffmetadata_file_path))
    except OSError:
        for writer in writers:
            writer.discard()
        raise
    return ChapterWriterGroup(writers)
