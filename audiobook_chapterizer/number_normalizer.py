"""
Rewrites spoken English number words into numeric tokens.

"twenty three" spoken without a pause becomes a single token "23" spanning
both words. Words separated by more than MAX_NUMBER_WORD_PAUSE never belong
to the same number, which keeps "chapter two ... three men" from becoming 23.

Number words are recognized by text2num, fed with timed tokens through
_NumberToken.
"""
from dataclasses import dataclass
from typing import Iterator, List, Sequence

from text_to_num import find_numbers

from .models import Token

# Longer pauses between number words split them into separate numbers
MAX_NUMBER_WORD_PAUSE = 0.2

LANGUAGE = "en"

# Convert every number, even isolated small ones like "one"
NUMBER_THRESHOLD = 0.0


@dataclass
class NumberPhrase:
    start: int      # Index of the first consumed token
    end: int        # Index one past the last consumed token
    value: float

    @property
    def word_count(self) -> int:
        return self.end - self.start

    @property
    def word(self) -> str:
        if float(self.value).is_integer():
            return str(int(self.value))
        return str(self.value)


class _NumberToken:
    """The token interface text2num expects, over one of our Tokens."""

    def __init__(self, token: Token):
        self.token = token

    def text(self) -> str:
        return self.token.word.lower()

    def nt_separated(self, previous: "_NumberToken") -> bool:
        return self.token.start - previous.token.end > MAX_NUMBER_WORD_PAUSE

    def not_a_number_part(self) -> bool:
        # Replacements are never merged again; digits are numbers already
        return self.token.is_replacement or _is_digits(self.token.word)


def _is_digits(word: str) -> bool:
    return word.isascii() and word.isdigit()


def find_number_phrases(tokens: Sequence[Token]) -> Iterator[NumberPhrase]:
    """Yields every number phrase in order. Does not modify the tokens."""
    phrases = [
        NumberPhrase(start=i, end=i + 1, value=int(t.word))
        for i, t in enumerate(tokens)
        if not t.is_replacement and _is_digits(t.word)
    ]
    for occurrence in find_numbers([_NumberToken(t) for t in tokens], LANGUAGE, NUMBER_THRESHOLD):
        phrases.append(NumberPhrase(
            start=occurrence.start, end=occurrence.end, value=occurrence.value,
        ))

    yield from sorted(phrases, key=lambda p: p.start)


def rewrite_numbers(tokens: Sequence[Token]) -> List[Token]:
    """
    Returns a new token list with each number phrase collapsed into one
    replacement token. Already replaced tokens are passed through untouched.
    """
    rewritten: List[Token] = []
    index = 0
    for phrase in find_number_phrases(tokens):
        rewritten.extend(tokens[index:phrase.start])
        consumed = tokens[phrase.start:phrase.end]
        rewritten.append(Token(
            start=consumed[0].start,
            end=consumed[-1].end,
            word=phrase.word,
            is_replacement=True,
        ))
        index = phrase.end
    rewritten.extend(tokens[index:])
    return rewritten
