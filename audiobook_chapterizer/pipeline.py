import json
import queue
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from .audio_provider import SAMPLES_BUFFER_SIZE
from .chapter_matcher import ResultsParser
from .matches_log import MatchesLog
from .models import ChapterEvent, RecognitionResult
from .progress import PROGRESS_INTERVAL, ProgressEstimator, SampleCounter
from .recognizer import Recognizer
from .utils import get_logger

logger = get_logger("Pipeline")

_END = None


@dataclass
class PipelineRunResult:
    total_samples: int
    processed_seconds: float
    chapter_count: int
    elapsed: float


def run_pipeline(
    *,
    audio: Any,
    recognizer: Recognizer,
    on_chapter: Callable[[ChapterEvent], None],
    matches_log: Optional[MatchesLog] = None,
    results_parser: Optional[ResultsParser] = None,
    chunk_size: int = SAMPLES_BUFFER_SIZE,
    progress_interval: float = PROGRESS_INTERVAL,
) -> PipelineRunResult:
    """
    Runs speech recognition and chapter detection over the whole file.

    Three threads: the ASR producer, the results consumer and the progress
    reporter. on_chapter is called on the calling thread, in chronological
    order, and has been called for every chapter by the time this returns.
    An error in any thread aborts the run and is raised here.
    """
    sample_rate = audio.sample_rate
    counter = SampleCounter()
    parser = results_parser or ResultsParser()
    estimator = ProgressEstimator(sample_rate, audio.total_duration())

    results_queue: queue.Queue = queue.Queue()
    events_queue: queue.Queue = queue.Queue()
    worker_errors: queue.Queue = queue.Queue()
    abort = threading.Event()
    stop_progress = threading.Event()

    def fail(exc: BaseException) -> None:
        worker_errors.put(exc)
        abort.set()

    def asr_worker() -> None:
        try:
            for chunk in audio.chunks(chunk_size):
                if abort.is_set():
                    return
                counter.add(len(chunk))
                if recognizer.accept(chunk):
                    # Serialized here: engine results are only valid until the next call
                    results_queue.put(recognizer.current_result())
            results_queue.put(recognizer.final_result())
        except Exception as exc:
            fail(exc)
        finally:
            results_queue.put(_END)
            stop_progress.set()

    def results_worker() -> None:
        try:
            while True:
                payload = results_queue.get()
                if payload is _END:
                    break
                if abort.is_set():
                    continue
                data = json.loads(payload)
                result = RecognitionResult.from_dict(data)
                if matches_log is not None:
                    matches_log.record(data, result)
                for event in parser.ingest(result):
                    events_queue.put(event)

            if not abort.is_set():
                for event in parser.finish():
                    events_queue.put(event)
        except Exception as exc:
            fail(exc)
        finally:
            events_queue.put(_END)

    def progress_worker() -> None:
        try:
            estimator.run(counter, stop_progress, progress_interval)
        except Exception as exc:
            fail(exc)

    asr_thread = threading.Thread(target=asr_worker, name="asr-producer", daemon=True)
    results_thread = threading.Thread(target=results_worker, name="results-consumer", daemon=True)
    progress_thread = threading.Thread(target=progress_worker, name="progress-reporter", daemon=True)

    start = time.monotonic()
    asr_thread.start()
    results_thread.start()
    progress_thread.start()

    chapter_count = 0
    try:
        while True:
            event = events_queue.get()
            if event is _END:
                break
            if abort.is_set():
                continue
            try:
                on_chapter(event)
            except Exception as exc:
                fail(exc)
                continue
            chapter_count += 1
    except BaseException:
        abort.set()
        stop_progress.set()
        raise
    finally:
        asr_thread.join()
        results_thread.join()
        progress_thread.join()

    if not worker_errors.empty():
        raise worker_errors.get()

    elapsed = time.monotonic() - start
    processed = counter.value / sample_rate
    logger.info(
        f"Processed {processed:.2f} seconds of audio in {elapsed:.2f} seconds "
        f"({processed / elapsed if elapsed > 0 else 0.0:.2f}x RT)"
    )

    return PipelineRunResult(
        total_samples=counter.value,
        processed_seconds=processed,
        chapter_count=chapter_count,
        elapsed=elapsed,
    )
