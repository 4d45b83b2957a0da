"""Adaptive placement test: item bank construction and ability estimation."""
import random
import uuid
from datetime import datetime

from vocab_tutor.catalog import default_catalog
from vocab_tutor.lexicon import DEFAULT_TAGGER, PosTagger, count_words, pick_random, same_lemma
from vocab_tutor.models import BANDS, PlacementAnswer, PlacementItem, PlacementSession

BAND_INDEX = {"A1": -2, "A2": -1, "B1": 0, "B2": 1, "C1": 2}
MIN_ABILITY = -1
MAX_ABILITY = 2
PLACEMENT_LENGTH = 30
MIN_ANSWERS_BEFORE_STOP = 10
FULL_CONFIDENCE_ANSWERS = 15
STOP_CONFIDENCE = 0.85
DISTRACTOR_SHORTLIST = 10
BLOCK_SIZE = 5
A1_SET_COUNT = 5

BAND_TO_LEVEL = {
    "A1": "beginner",
    "A2": "beginner",
    "B1": "intermediate",
    "B2": "upper-intermediate",
    "C1": "advanced",
}

ANTONYMS = {
    "wake up": "sleep", "sleep": "wake up",
    "hungry": "full", "full": "hungry",
    "hot": "cold", "cold": "hot",
    "happy": "sad", "sad": "happy",
    "friend": "enemy", "enemy": "friend",
    "buy": "sell", "sell": "buy",
    "open": "close", "close": "open",
    "start": "stop", "stop": "start",
    "begin": "end", "end": "begin",
    "teacher": "student", "student": "teacher",
    "help": "harm", "harm": "help",
    "easy": "hard", "hard": "easy",
    "fast": "slow", "slow": "fast",
    "big": "small", "small": "big",
    "tall": "short", "short": "tall",
    "young": "old", "old": "young",
    "rich": "poor", "poor": "rich",
    "strong": "weak", "weak": "strong",
    "light": "dark", "dark": "light",
    "love": "hate", "hate": "love",
    "win": "lose", "lose": "win",
    "push": "pull", "pull": "push",
    "arrive": "leave", "leave": "arrive",
    "remember": "forget", "forget": "remember",
    "increase": "decrease", "decrease": "increase",
    "accept": "reject", "reject": "accept",
    "succeed": "fail", "fail": "succeed",
    "improve": "worsen", "worsen": "improve",
}

PROMPTS = {
    "definition": "Which definition best matches the word?",
    "antonym": "Choose the opposite meaning",
    "synonym": "Choose the closest synonym",
}
ID_SUFFIX = {"definition": "def", "antonym": "ant", "synonym": "syn"}


def level_set_to_band(level_id: str, set_index: int) -> str:
    if level_id == "beginner":
        return "A1" if set_index < A1_SET_COUNT else "A2"
    if level_id in ("intermediate", "upper-intermediate"):
        return "B1"
    if level_id == "advanced":
        return "B2"
    return "C1"


def band_for_ability(ability: float) -> str:
    idx = max(-2, min(2, round(ability)))
    return BANDS[idx + 2]


def _sign(n: float) -> int:
    return (n > 0) - (n < 0)


class _BankBuilder:
    def __init__(self, entries, rng: random.Random, tagger: PosTagger):
        self.entries = list(entries)
        self.rng = rng
        self.pos = [tagger.infer_pos(e.word.text, e.word.definition) for e in self.entries]
        self.lengths = [count_words(e.word.definition) for e in self.entries]
        self.band_index = [
            BAND_INDEX[level_set_to_band(e.level_id, e.set_index)] for e in self.entries
        ]
        self.synonyms = [
            (i, s) for i, e in enumerate(self.entries) for s in e.synonyms
        ]

    def _related(self, idx: int, text: str) -> bool:
        target = self.entries[idx].word.text
        return text.lower() == target.lower() or same_lemma(text, target)

    def _assemble(self, idx: int, kind: str, correct: str, distractors: list[str]) -> PlacementItem:
        entry = self.entries[idx]
        options = [correct] + distractors
        self.rng.shuffle(options)
        correct_index = next(i for i, o in enumerate(options) if o.lower() == correct.lower())
        example = entry.word.example_sentence
        return PlacementItem(
            id=f"pl-{idx}-{entry.word.text}-{ID_SUFFIX[kind]}",
            word=entry.word.text,
            band=level_set_to_band(entry.level_id, entry.set_index),
            topic=entry.topic,
            kind=kind,
            prompt=PROMPTS[kind],
            options=tuple(options),
            correct_index=correct_index,
            meta={"example": example} if example else None,
        )

    @staticmethod
    def _distinct(texts, correct: str, count: int = 3) -> list[str]:
        picked = []
        taken = {correct.lower()}
        for text in texts:
            if text.lower() not in taken:
                taken.add(text.lower())
                picked.append(text)
                if len(picked) == count:
                    break
        return picked

    def definition_item(self, idx: int) -> PlacementItem | None:
        entry = self.entries[idx]
        definition = entry.word.definition
        candidates = [
            j for j, other in enumerate(self.entries)
            if j != idx
            and not self._related(idx, other.word.text)
            and other.word.definition.lower() != definition.lower()
        ]
        nearby = [j for j in candidates if abs(self.band_index[j] - self.band_index[idx]) <= 1]
        if len(nearby) >= 3:
            candidates = nearby
        same_pos = [j for j in candidates if self.pos[j] == self.pos[idx]]
        if len(same_pos) >= 3:
            ranked = sorted(
                same_pos,
                key=lambda j: abs(self.lengths[j] - self.lengths[idx]) + self.rng.random() * 0.5,
            )
            # Pick among the closest matches, not always the top three.
            shortlist = ranked[:DISTRACTOR_SHORTLIST]
            self.rng.shuffle(shortlist)
            ranked = shortlist + ranked[DISTRACTOR_SHORTLIST:]
        else:
            ranked = pick_random(candidates, len(candidates), self.rng)
        distractors = self._distinct((self.entries[j].word.definition for j in ranked), definition)
        if len(distractors) < 3:
            return None
        return self._assemble(idx, "definition", definition, distractors)

    def antonym_item(self, idx: int) -> PlacementItem | None:
        answer = ANTONYMS.get(self.entries[idx].word.text.lower())
        if not answer:
            return None
        sample = self.rng.sample(self.entries, min(len(self.entries), 12))
        words = [
            e.word.text for e in sample
            if not self._related(idx, e.word.text) and e.word.text.lower() != answer.lower()
        ]
        distractors = self._distinct(words, answer)
        if len(distractors) < 3:
            return None
        return self._assemble(idx, "antonym", answer, distractors)

    def synonym_item(self, idx: int) -> PlacementItem | None:
        own = self.entries[idx].synonyms
        if not own:
            return None
        correct = own[0]
        own_lower = {s.lower() for s in own}

        def usable(pairs):
            return [s for j, s in pairs if j != idx and s.lower() not in own_lower
                    and not self._related(idx, s)]

        sample = self.rng.sample(self.synonyms, min(len(self.synonyms), 15))
        distractors = self._distinct(usable(sample), correct)
        if len(distractors) < 3:
            pool = pick_random(self.synonyms, len(self.synonyms), self.rng)
            distractors = self._distinct(usable(pool), correct)
        if len(distractors) < 3:
            return None
        return self._assemble(idx, "synonym", correct, distractors)

    def build(self) -> list[PlacementItem]:
        items = []
        for idx, entry in enumerate(self.entries):
            kinds = ["definition"]
            if entry.word.text.lower() in ANTONYMS:
                kinds.append("antonym")
            if entry.synonyms:
                kinds.append("synonym")
            kind = self.rng.choice(kinds)
            item = getattr(self, f"{kind}_item")(idx)
            if item is None and kind != "definition":
                item = self.definition_item(idx)
            if item is not None:
                items.append(item)
        self.rng.shuffle(items)
        return items


def build_bank(entries=None, rng: random.Random | None = None,
               tagger: PosTagger = DEFAULT_TAGGER) -> list[PlacementItem]:
    """One multiple-choice item per catalog entry, tagged with its band."""
    if entries is None:
        entries = default_catalog()
    return _BankBuilder(entries, rng or random.Random(), tagger).build()


def start_session() -> PlacementSession:
    return PlacementSession(id=f"session_{uuid.uuid4().hex[:12]}")


def pick_next_item(
    bank: list[PlacementItem],
    session: PlacementSession,
    force_band: str | None = None,
    rng: random.Random | None = None,
) -> PlacementItem | None:
    """Choose the unasked item closest to the desired band.

    The desired band is force_band when given, else the band implied by the
    session's current ability.
    """
    rng = rng or random.Random()
    asked = set(session.asked)
    unasked = [item for item in bank if item.id not in asked]
    if not unasked:
        return None

    desired = BAND_INDEX[force_band or band_for_ability(session.ability)]
    candidates = [i for i in unasked if BAND_INDEX[i.band] == desired]
    if not candidates:
        candidates = [i for i in unasked if abs(BAND_INDEX[i.band] - desired) <= 1]
    if not candidates:
        candidates = unasked
    return min(
        candidates,
        key=lambda i: abs(BAND_INDEX[i.band] - desired) + rng.random() * 0.5,
    )


def update_ability(
    session: PlacementSession,
    item: PlacementItem,
    correct: bool,
    chosen: str | None = None,
) -> int:
    """Move the ability estimate one step and record the answer.

    A correct answer moves toward the item's band, and at parity still moves
    up by one. A wrong answer always moves down by one.
    """
    if correct:
        delta = _sign(BAND_INDEX[item.band] - session.ability) or 1
        session.consecutive_correct += 1
        session.consecutive_wrong = 0
    else:
        delta = -1
        session.consecutive_wrong += 1
        session.consecutive_correct = 0
    session.ability = max(MIN_ABILITY, min(MAX_ABILITY, session.ability + delta))
    session.confidence = estimate_confidence(session.answers)

    perf = session.band_performance[item.band]
    perf["total"] += 1
    if correct:
        perf["correct"] += 1
    if item.id not in session.asked:
        session.asked.append(item.id)
    session.answers.append(PlacementAnswer(
        item_id=item.id,
        correct=correct,
        chosen=chosen,
        answered_at=datetime.now().isoformat(),
    ))
    return session.ability


def estimate_confidence(previous_answers) -> float:
    """Confidence after one more answer: grows with the answer count and drops
    a little when the last five earlier answers were all right or all wrong."""
    base = min(1.0, (len(previous_answers) + 1) / FULL_CONFIDENCE_ANSWERS)
    recent_correct = sum(1 for a in previous_answers[-5:] if a.correct)
    penalty = 0.0 if abs(recent_correct - 2.5) < 1.5 else 0.1
    return max(0.0, min(1.0, base - penalty))


def can_stop_early(session: PlacementSession) -> bool:
    if len(session.answers) < MIN_ANSWERS_BEFORE_STOP:
        return False
    if session.confidence >= STOP_CONFIDENCE:
        return True
    if session.consecutive_wrong >= 3:
        return True
    return session.consecutive_correct >= 5 and session.ability >= MAX_ABILITY


def recommended_level_from_ability(ability: float) -> str:
    return BAND_TO_LEVEL[band_for_ability(ability)]


def target_band_for_index(index: int) -> str:
    """Band the test screen asks for at question `index` (blocks of five)."""
    group = index // BLOCK_SIZE
    return ("A1", "A2", "B1")[group] if group < 3 else "B2"


def assessment_summary(session: PlacementSession) -> dict:
    total = len(session.answers)
    correct = sum(1 for a in session.answers if a.correct)
    strengths, weaknesses = [], []
    for band in BANDS:
        perf = session.band_performance[band]
        if perf["total"] >= 2:
            rate = perf["correct"] / perf["total"]
            if rate >= 0.75:
                strengths.append(band)
            if rate <= 0.4:
                weaknesses.append(band)
    return {
        "band": band_for_ability(session.ability),
        "level": recommended_level_from_ability(session.ability),
        "ability": session.ability,
        "confidence": round(session.confidence, 2),
        "strengths": strengths,
        "weaknesses": weaknesses,
        "total_questions": total,
        "correct_rate": round(correct / total, 3) if total else 0.0,
    }
