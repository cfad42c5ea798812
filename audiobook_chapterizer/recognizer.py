import os
import re
import string
from abc import ABC, abstractmethod
from typing import List

import numpy as np
import vosk

from .errors import ConfigurationError, RecognizerError
from .models import Alternative, RecognitionResult, Word
from .utils import get_logger

logger = get_logger(__name__)

MAX_ALTERNATIVES = 3

WHISPER_SAMPLE_RATE = 16000
WHISPER_WINDOW_SECONDS = 30.0
WHISPER_OVERLAP_SECONDS = 3.0


class Recognizer(ABC):
    """
    A speech recognition engine fed with consecutive chunks of samples.

    Results are returned as self-contained JSON strings, so they can be handed
    to another thread while the engine keeps working.
    """

    @abstractmethod
    def accept(self, chunk: np.ndarray) -> bool:
        """Feeds samples. Returns True when an utterance was finalized."""

    @abstractmethod
    def current_result(self) -> str:
        """The result finalized by the last accept() that returned True."""

    @abstractmethod
    def final_result(self) -> str:
        """Flushes the engine at the end of the input."""


class VoskRecognizer(Recognizer):
    def __init__(self, model_dir: str, sample_rate: int, verbose: bool = False):
        if not verbose:
            vosk.SetLogLevel(-1)

        logger.info(f"Loading Vosk model from {model_dir}...")
        try:
            self.model = vosk.Model(str(model_dir))
        except Exception as e:
            raise RecognizerError(f"Failed to load the model from {model_dir}: {e}") from e

        self.recognizer = vosk.KaldiRecognizer(self.model, sample_rate)
        self.recognizer.SetMaxAlternatives(MAX_ALTERNATIVES)
        self.recognizer.SetWords(True)
        self.recognizer.SetPartialWords(False)

    def accept(self, chunk: np.ndarray) -> bool:
        return bool(self.recognizer.AcceptWaveform(chunk.tobytes()))

    def current_result(self) -> str:
        return self.recognizer.Result()

    def final_result(self) -> str:
        return self.recognizer.FinalResult()


def split_whisper_word(raw: str, start: float, end: float) -> List[Word]:
    """
    Whisper words carry spaces, punctuation and hyphenated numbers
    ("Twenty-one."). Splits them into plain lower case words, sharing the
    time span evenly.
    """
    parts = [p.strip(string.punctuation) for p in re.split(r"[-\s]+", raw.strip().lower())]
    parts = [p for p in parts if p]
    if not parts:
        return []

    step = (end - start) / len(parts)
    return [
        Word(word=part, start=start + i * step, end=start + (i + 1) * step)
        for i, part in enumerate(parts)
    ]


class WhisperRecognizer(Recognizer):
    """
    Runs Whisper on windows of audio. Whisper has no ranked alternatives, so
    every result holds a single Alternative whose confidence is the mean
    word probability.

    Consecutive windows overlap by overlap_seconds. Words starting in the
    overlap are left to the next window, which hears them with the speech
    that follows, so a heading spoken across a window edge is not cut.
    """

    def __init__(self, model_size: str = "base", sample_rate: int = WHISPER_SAMPLE_RATE,
                 window_seconds: float = WHISPER_WINDOW_SECONDS,
                 overlap_seconds: float = WHISPER_OVERLAP_SECONDS):
        if sample_rate != WHISPER_SAMPLE_RATE:
            raise ConfigurationError(f"Whisper needs {WHISPER_SAMPLE_RATE} Hz audio, got {sample_rate} Hz")
        if not 0 <= overlap_seconds < window_seconds:
            raise ConfigurationError(
                f"Whisper window overlap must be shorter than the window, got {overlap_seconds}s of {window_seconds}s"
            )

        self.model_size = model_size
        self.sample_rate = sample_rate
        self.window_samples = int(window_seconds * sample_rate)
        self.overlap_samples = int(overlap_seconds * sample_rate)
        self._model = None

        # Setup local models directory
        self.download_root = os.path.join(os.getcwd(), "models", "openai")
        os.makedirs(self.download_root, exist_ok=True)
        logger.info(f"Whisper model will be cached in {self.download_root}")

        self.pending: List[np.ndarray] = []
        self.pending_samples = 0
        self.offset_samples = 0         # Sample index of pending[0][0]
        self.emitted_until = 0.0        # Words starting before this were already returned
        self._result = RecognitionResult()

    @property
    def model(self):
        """Lazy load the Whisper model."""
        if self._model is None:
            import whisper

            logger.info(f"Loading Whisper model ('{self.model_size}')...")
            try:
                self._model = whisper.load_model(self.model_size, download_root=self.download_root)
            except Exception as e:
                raise RecognizerError(f"Failed to load Whisper model '{self.model_size}': {e}") from e
        return self._model

    def accept(self, chunk: np.ndarray) -> bool:
        self.pending.append(chunk)
        self.pending_samples += len(chunk)
        if self.pending_samples < self.window_samples:
            return False
        self._result = self._transcribe_pending(is_final=False)
        return True

    def current_result(self) -> str:
        return self._result.to_json()

    def final_result(self) -> str:
        return self._transcribe_pending(is_final=True).to_json()

    def _transcribe_pending(self, is_final: bool) -> RecognitionResult:
        if not self.pending:
            return RecognitionResult(alternatives=[Alternative(words=[])])

        samples = np.concatenate(self.pending)
        offset = self.offset_samples / self.sample_rate
        emit_from = self.emitted_until

        if is_final:
            kept = samples[:0]
            cut = float("inf")
        else:
            kept = samples[len(samples) - self.overlap_samples:]
            cut = offset + (len(samples) - len(kept)) / self.sample_rate

        self.pending = [kept] if len(kept) else []
        self.pending_samples = len(kept)
        self.offset_samples += len(samples) - len(kept)
        self.emitted_until = cut

        audio = samples.astype(np.float32) / 32768.0
        result = self.model.transcribe(
            audio, language="en", word_timestamps=True, no_speech_threshold=0.6
        )

        words: List[Word] = []
        probabilities = []
        for segment in result.get("segments", []):
            for w in segment.get("words", []):
                start = offset + w["start"]
                if not emit_from <= start < cut:
                    continue
                probabilities.append(w.get("probability", 0.0))
                words.extend(split_whisper_word(w["word"], start, offset + w["end"]))

        confidence = sum(probabilities) / len(probabilities) if probabilities else 0.0
        return RecognitionResult(alternatives=[Alternative(words=words, confidence=confidence)])


def create_recognizer(engine: str, sample_rate: int, model_dir: str = None,
                      whisper_model: str = "base", verbose: bool = False) -> Recognizer:
    if engine == "vosk":
        return VoskRecognizer(model_dir, sample_rate, verbose=verbose)
    elif engine == "whisper":
        return WhisperRecognizer(whisper_model, sample_rate)
    else:
        raise ConfigurationError(f"Unknown recognition engine: {engine}. Available engines: vosk, whisper")
