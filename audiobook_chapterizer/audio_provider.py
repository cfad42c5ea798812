import shutil
import subprocess
import tempfile
from typing import Iterator, Optional

import numpy as np

from .errors import AudioDecodeError, ConfigurationError
from .utils import get_logger

logger = get_logger(__name__)

# Both Vosk and Whisper models are trained on 16 kHz mono audio
SAMPLE_RATE = 16000

SAMPLES_BUFFER_SIZE = 8 * 1024


def require_binary(name: str) -> str:
    path = shutil.which(name)
    if path is None:
        raise ConfigurationError(f"'{name}' not found in PATH. Please install ffmpeg.")
    return path


class AudioProvider:
    """
    Decodes an audio file into mono 16-bit PCM with ffmpeg.

    ffmpeg skips packets it cannot decode (-err_detect ignore_err); any
    failure that makes it exit with an error status is fatal.
    """

    def __init__(self, audio_path: str, sample_rate: int = SAMPLE_RATE):
        self.audio_path = audio_path
        self.sample_rate = sample_rate
        self._total_duration = None
        self._probed = False

    def total_duration(self) -> Optional[float]:
        """Returns total duration of the audio file in seconds using ffprobe, if known."""
        if self._probed:
            return self._total_duration

        cmd = [
            require_binary("ffprobe"), "-v", "error",
            "-show_entries", "format=duration",
            "-of", "default=noprint_wrappers=1:nokey=1",
            self.audio_path
        ]
        try:
            output = subprocess.check_output(cmd).decode().strip()
            self._total_duration = float(output)
        except subprocess.CalledProcessError as e:
            raise AudioDecodeError(f"ffprobe could not read {self.audio_path}: {e}") from e
        except ValueError:
            logger.warning(f"Unknown duration for {self.audio_path}, progress will be estimated without it")
            self._total_duration = None

        self._probed = True
        return self._total_duration

    def chunks(self, chunk_size: int = SAMPLES_BUFFER_SIZE) -> Iterator[np.ndarray]:
        """
        Yields int16 sample arrays of chunk_size samples (the last may be shorter).
        Every call decodes the file from the start.
        """
        cmd = [
            require_binary("ffmpeg"), "-nostdin",
            "-loglevel", "error",
            "-err_detect", "ignore_err",
            "-i", self.audio_path,
            "-vn",
            "-ac", "1",
            "-ar", str(self.sample_rate),
            "-f", "s16le",
            "-"
        ]
        bytes_per_chunk = chunk_size * 2

        with tempfile.TemporaryFile() as stderr:
            proc = subprocess.Popen(cmd, stdout=subprocess.PIPE, stderr=stderr)
            try:
                while True:
                    data = proc.stdout.read(bytes_per_chunk)
                    if not data:
                        break
                    # ffmpeg only writes whole samples, but guard against a torn read
                    data = data[:len(data) - len(data) % 2]
                    yield np.frombuffer(data, dtype=np.int16)

                returncode = proc.wait()
                if returncode != 0:
                    stderr.seek(0)
                    message = stderr.read().decode(errors="replace").strip()
                    raise AudioDecodeError(
                        f"ffmpeg exited with status {returncode} while decoding {self.audio_path}: {message}"
                    )
            finally:
                proc.stdout.close()
                if proc.poll() is None:
                    proc.kill()
                    proc.wait()
