from typing import List, Optional

from .alternative_selector import select_best_alternative
from .errors import MatcherInvariantError
from .models import ChapterEvent, ParseOutcome, ParseResult, RecognitionResult, Token
from .number_normalizer import rewrite_numbers
from .utils import format_duration, get_logger

logger = get_logger(__name__)

# "chapter" in the middle of a sentence is rarely a chapter heading
MIN_VOCAL_PAUSE_BEFORE_CHAPTER = 0.25

# 30 tokens should be plenty to capture the chapter number followed by most chapter titles
POST_CHAPTER_CONTEXT = 30


class ChapterMatcher:
    """
    Online parser for "chapter <number>" headings, fed one Token at a time.

    The buffer is either empty or starts with a chapter keyword. The token
    spoken right before that keyword is remembered separately, for the
    pause check only.
    """

    def __init__(self, post_chapter_context: int = POST_CHAPTER_CONTEXT):
        self.capacity = 2 + post_chapter_context
        self.buffer: List[Token] = []
        self.prev_token: Optional[Token] = None
        self.preceding_token: Optional[Token] = None

    @property
    def is_empty(self) -> bool:
        return not self.buffer

    @property
    def is_full(self) -> bool:
        return len(self.buffer) >= self.capacity

    def push(self, token: Token) -> Optional[ParseResult]:
        """
        Feeds the next transcript token.
        Returns the Match or Failure it resolved, or None while undecided.
        """
        result = None
        if self.buffer or token.is_chapter_token():
            if not self.buffer:
                self.preceding_token = self.prev_token
            result = self._push_and_resolve(token)
        self.prev_token = token
        return result

    def flush(self) -> Optional[ParseResult]:
        """Resolves whatever is left in the buffer at the end of the transcript."""
        if not self.buffer:
            return None

        result = self.try_resolve(is_end=True)
        if result.outcome is ParseOutcome.INCOMPLETE:
            raise MatcherInvariantError(
                f"Chapter match still incomplete at end of stream: {self.buffer!r}"
            )
        self._reset()
        return result

    def _push_and_resolve(self, token: Token) -> Optional[ParseResult]:
        self.buffer.append(token)
        if len(self.buffer) > self.capacity:
            raise MatcherInvariantError(
                f"Match buffer grew past its capacity of {self.capacity}"
            )

        result = self.try_resolve(is_end=False)
        if result.outcome is ParseOutcome.INCOMPLETE:
            if self.is_full:
                logger.warning(
                    f"Chapter match still incomplete with a full buffer of {self.capacity} tokens, "
                    f"discarding: {self.buffer!r}"
                )
                self._reset()
                return ParseResult.failure()
            return None

        self._reset()
        return result

    def _reset(self):
        self.buffer.clear()
        self.preceding_token = None

    def try_resolve(self, is_end: bool) -> ParseResult:
        if not self.buffer or not self.buffer[0].is_chapter_token():
            logger.debug("No chapter token at the start of the match buffer")
            return ParseResult.failure() if is_end else ParseResult.incomplete()

        chapter_token = self.buffer[0]

        if self.preceding_token is not None:
            vocal_pause = chapter_token.start - self.preceding_token.end
            if vocal_pause < MIN_VOCAL_PAUSE_BEFORE_CHAPTER:
                logger.debug(
                    f"Failure: vocal pause before chapter token not long enough at {vocal_pause:.3f}s"
                )
                return ParseResult.failure()

        if len(self.buffer) == 1:
            if is_end:
                logger.debug("Failure: no token after chapter")
                return ParseResult.failure()
            return ParseResult.incomplete()

        tokens = rewrite_numbers(self.buffer)

        chapter_number_token = tokens[1]
        if not chapter_number_token.is_replacement:
            logger.debug(f"Failure: token after chapter is not a number: {chapter_number_token!r}")
            return ParseResult.failure()

        if len(tokens) == 2 and not is_end:
            # The number may still grow ("twenty" ... "one")
            return ParseResult.incomplete()

        # TODO: extract the chapter title, using the pause after the number as its boundary
        result = ParseResult(ParseOutcome.MATCH, tokens[:2])
        logger.debug(f"Match: {result.tokens!r}")
        return result


class ResultsParser:
    """Turns recognition results, in order, into ChapterEvents."""

    def __init__(self, matcher: Optional[ChapterMatcher] = None):
        self.matcher = matcher or ChapterMatcher()

    def ingest(self, result: RecognitionResult) -> List[ChapterEvent]:
        if not result.alternatives:
            return []

        best = select_best_alternative(result.alternatives)
        events = []
        for word in best.words:
            self._collect(self.matcher.push(word.to_token()), events)
        return events

    def finish(self) -> List[ChapterEvent]:
        events = []
        self._collect(self.matcher.flush(), events)
        return events

    def _collect(self, parse_result: Optional[ParseResult], events: List[ChapterEvent]):
        if parse_result is None or not parse_result.is_match:
            return
        event = parse_result.to_event()
        spoken = " ".join(t.word for t in parse_result.tokens)
        logger.info(f"Found chapter: {spoken} at {format_duration(parse_result.tokens[0].start)}")
        events.append(event)
