import json
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

CHAPTER_KEYWORDS = ("chapter", "chapters")

# Subtracted from the keyword start time when a chapter is output
PRE_CHAPTER_START_MARGIN = 1.0


def is_chapter_keyword(word: str) -> bool:
    return word in CHAPTER_KEYWORDS


@dataclass
class Token:
    """
    A normalized unit of a transcript.
    Either a recognized word or a number synthesized from several words.
    """
    start: float                        # Seconds
    end: float                          # Seconds, >= start
    word: str                           # As emitted by the recognizer
    is_replacement: bool = False        # True if this token replaced number words

    def is_chapter_token(self) -> bool:
        return not self.is_replacement and is_chapter_keyword(self.word)

    def __repr__(self):
        flag = " (replacement)" if self.is_replacement else ""
        return f"<Token '{self.word}' {self.start:.2f}-{self.end:.2f}{flag}>"


@dataclass
class Word:
    word: str
    start: float
    end: float

    def to_token(self) -> Token:
        return Token(start=self.start, end=self.end, word=self.word)


@dataclass
class Alternative:
    """One recognizer hypothesis. Confidence is on the engine's own scale."""
    words: List[Word]
    confidence: float = 0.0

    @property
    def text(self) -> str:
        return " ".join(w.word for w in self.words)


@dataclass
class RecognitionResult:
    """
    The ranked alternatives for one utterance segment.
    Index 0 is the recognizer's top pick.
    """
    alternatives: List[Alternative] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "RecognitionResult":
        # Vosk drops "result" for empty alternatives
        alternatives = []
        for alt in data.get("alternatives", []):
            words = [
                Word(word=w["word"], start=float(w["start"]), end=float(w["end"]))
                for w in alt.get("result", [])
            ]
            alternatives.append(
                Alternative(words=words, confidence=float(alt.get("confidence", 0.0)))
            )
        return cls(alternatives=alternatives)

    @classmethod
    def from_json(cls, payload: str) -> "RecognitionResult":
        return cls.from_dict(json.loads(payload))

    def to_dict(self) -> dict:
        return {
            "alternatives": [
                {
                    "confidence": alt.confidence,
                    "result": [
                        {"word": w.word, "start": w.start, "end": w.end}
                        for w in alt.words
                    ],
                    "text": alt.text,
                }
                for alt in self.alternatives
            ]
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


@dataclass
class ChapterEvent:
    start: float                        # Seconds from the start of the file
    title: str

    def __repr__(self):
        return f"<ChapterEvent '{self.title}' at {self.start:.2f}s>"


class ParseOutcome(Enum):
    MATCH = "match"
    INCOMPLETE = "incomplete"
    FAILURE = "failure"


@dataclass
class ParseResult:
    outcome: ParseOutcome
    tokens: List[Token] = field(default_factory=list)   # [keyword, number] on MATCH

    @classmethod
    def failure(cls) -> "ParseResult":
        return cls(ParseOutcome.FAILURE)

    @classmethod
    def incomplete(cls) -> "ParseResult":
        return cls(ParseOutcome.INCOMPLETE)

    @property
    def is_match(self) -> bool:
        return self.outcome is ParseOutcome.MATCH

    def to_event(self) -> Optional[ChapterEvent]:
        if not self.is_match:
            return None
        keyword, number = self.tokens[0], self.tokens[1]
        start = max(keyword.start - PRE_CHAPTER_START_MARGIN, 0.0)
        value = float(number.word)
        title = f"Chapter {int(value):02d}" if value.is_integer() else f"Chapter {number.word}"
        return ChapterEvent(start=start, title=title)
