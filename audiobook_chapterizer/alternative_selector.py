from typing import Sequence

from .models import Alternative, is_chapter_keyword
from .number_normalizer import find_number_phrases
from .utils import get_logger

logger = get_logger(__name__)

# "chapters" is more often a false positive ("the next few chapters")
KEYWORD_BONUS = {"chapter": 1.0, "chapters": 0.9}


def alternative_contains_keyword(alternative: Alternative) -> bool:
    return any(is_chapter_keyword(w.word) for w in alternative.words)


def score_alternative(alternative: Alternative) -> float:
    """
    Scores an Alternative that contains a chapter keyword.
    Confidence, plus a bonus for the keyword itself, plus one point per word
    of a number spoken right after the keyword.
    """
    keyword_index = next(
        i for i, w in enumerate(alternative.words) if is_chapter_keyword(w.word)
    )
    keyword = alternative.words[keyword_index].word

    score = alternative.confidence + KEYWORD_BONUS[keyword]

    following = [w.to_token() for w in alternative.words[keyword_index + 1:]]
    phrase = next(find_number_phrases(following), None)
    if phrase is not None:
        if phrase.start == 0:
            score += phrase.word_count
        else:
            logger.debug(f"Number after '{keyword}' is not adjacent: {alternative.text!r}")

    logger.debug(f"Score {score:.2f} for {alternative.text!r}")
    return score


def select_best_alternative(alternatives: Sequence[Alternative]) -> Alternative:
    """
    Picks one Alternative out of a ranked list.

    Without a chapter keyword in any Alternative the recognizer's own top pick
    is kept. Otherwise the keyword Alternatives are re-ranked with
    score_alternative(). On equal scores the higher ranked Alternative wins.
    """
    if not alternatives:
        raise ValueError("expected at least 1 Alternative")

    candidates = [alt for alt in alternatives if alternative_contains_keyword(alt)]
    if not candidates:
        return alternatives[0]

    # max() keeps the first of equal scores
    return max(candidates, key=score_alternative)
