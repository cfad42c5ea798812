import json
from collections import deque

from .alternative_selector import alternative_contains_keyword
from .models import RecognitionResult
from .utils import get_logger

logger = get_logger(__name__)

# The number of results before and after a potential match to include as context
WRITE_POT_MATCH_CONTEXT = 2


class MatchesLog:
    """
    Writes raw recognition results that mention a chapter keyword to a
    JSON lines file, with a few results of context on either side, for
    checking matches by hand.
    """

    def __init__(self, path: str, context: int = WRITE_POT_MATCH_CONTEXT):
        self.path = path
        self.context = context
        self._file = open(path, "w", encoding="utf-8")
        self.previous = deque(maxlen=context)
        self.result_index = 0
        self.last_match_index = None
        self.last_written_index = -1

    def _write(self, index: int, data: dict):
        if index <= self.last_written_index:
            return
        line = json.dumps(data)
        logger.debug(f"Writing {len(line)} bytes to matches file")
        self._file.write(line + "\n")
        self.last_written_index = index

    def record(self, data: dict, result: RecognitionResult):
        index = self.result_index
        if any(alternative_contains_keyword(alt) for alt in result.alternatives):
            for prev_index, prev_data in self.previous:
                self._write(prev_index, prev_data)
            self._write(index, data)
            self.last_match_index = index
        elif self.last_match_index is not None and index - self.last_match_index <= self.context:
            self._write(index, data)

        self.previous.append((index, data))
        self.result_index += 1

    def close(self):
        self._file.close()
