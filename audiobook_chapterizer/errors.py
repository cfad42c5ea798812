class ChapterizeError(Exception):
    """Base class for errors that abort a chapterize run."""


class ConfigurationError(ChapterizeError):
    """Invalid input, model or output paths. Raised before any output is written."""


class AudioDecodeError(ChapterizeError):
    """ffmpeg/ffprobe could not decode or probe the audio file."""


class RecognizerError(ChapterizeError):
    """The speech recognition engine could not be set up."""


class MatcherInvariantError(ChapterizeError):
    """The chapter matcher reached a state its buffer sizing should make impossible."""
