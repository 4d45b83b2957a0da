"""Word-level helpers shared by the mission planner and the placement bank."""
import random
import re
from typing import Protocol

from vocab_tutor.models import Option

BLANK = "_____"
LEMMA_SUFFIXES = ("ing", "ed", "es", "s")
MIN_STEM_LENGTH = 4


class PosTagger(Protocol):
    def infer_pos(self, word: str, definition: str) -> str:
        ...


class HeuristicPosTagger:
    """Guess a coarse part of speech from how the definition is phrased."""

    def infer_pos(self, word: str, definition: str) -> str:
        d = (definition or "").strip().lower()
        w = (word or "").strip().lower()
        if d.startswith("to "):
            return "verb"
        if d.startswith(("a ", "an ")) or "someone who" in d or "something that" in d:
            return "noun"
        if "able to" in d or "used to describe" in d or d.startswith("very "):
            return "adjective"
        if w.endswith("ly"):
            return "adverb"
        return "other"


DEFAULT_TAGGER = HeuristicPosTagger()


def lemma(word: str) -> str:
    w = (word or "").strip().lower()
    for suffix in LEMMA_SUFFIXES:
        if w.endswith(suffix) and len(w) - len(suffix) >= MIN_STEM_LENGTH:
            return w[: -len(suffix)]
    return w


def same_lemma(a: str, b: str) -> bool:
    return lemma(a) == lemma(b)


def count_words(text: str) -> int:
    return len((text or "").split())


def truncate(text: str, limit: int = 120) -> str:
    text = (text or "").strip()
    if len(text) <= limit:
        return text
    return text[: limit - 1].rstrip() + "…"


def word_pattern(word: str) -> re.Pattern:
    """Case-insensitive whole-word match for a (possibly multi-word) term."""
    return re.compile(rf"(?<!\w){re.escape(word.strip())}(?!\w)", re.IGNORECASE)


def pick_random(items, count: int, rng: random.Random) -> list:
    pool = list(items)
    rng.shuffle(pool)
    return pool[: max(count, 0)]


def shuffle_options(options: list[Option], rng: random.Random) -> tuple[list[str], int]:
    """Shuffle tagged options and return (texts, index of the correct one)."""
    shuffled = list(options)
    rng.shuffle(shuffled)
    for idx, opt in enumerate(shuffled):
        if opt.is_correct:
            return [o.text for o in shuffled], idx
    raise ValueError("option set has no correct answer")
