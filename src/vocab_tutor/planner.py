"""Daily mission planning: word selection and question synthesis."""
import random
from dataclasses import dataclass, field
from datetime import datetime

from vocab_tutor.learning import to_date_key
from vocab_tutor.lexicon import (
    BLANK,
    DEFAULT_TAGGER,
    PosTagger,
    pick_random,
    same_lemma,
    shuffle_options,
    truncate,
    word_pattern,
)
from vocab_tutor.models import Mission, MissionQuestion, Option, Word

TARGET_QUESTIONS = 5
MISSION_XP_REWARD = 60
MAX_NEW_SLOTS = 2
USAGE_VALIDATION_PROBABILITY = 0.6
DEFINITION_LIMIT = 120

SENTENCE_TEMPLATES = {
    "verb": "I try to {word} whenever I get the chance.",
    "noun": "The {word} was exactly what we needed that day.",
    "adjective": "Everyone agreed the result was truly {word}.",
    "adverb": "She finished the whole task {word}.",
    "other": "Our teacher used the word \"{word}\" in class today.",
}

# Used only when the pool is too small to supply real distractors.
GENERIC_DEFINITIONS = (
    "A small tool used for cutting paper",
    "To move something slowly from one place to another",
    "Feeling tired after a long day of work",
    "A place where people keep old furniture",
    "In a careless or hurried way",
)
GENERIC_WORDS = ("table", "quickly", "borrow", "silent", "window", "gather")
GENERIC_MISUSES = (
    "Yesterday the {word} will drinking seven the mountain.",
    "She {word} the blue because of tomorrow very.",
    "My {word} is sleeping under the number of happily.",
)


@dataclass
class MissionPlan:
    mission: Mission
    questions: list
    weak_words_count: int
    new_words_count: int
    used_word_ids: list = field(default_factory=list)


def select_mission_words(
    weak_words: list[Word],
    new_words: list[Word],
    words_pool: list[Word],
    total_slots: int,
    rng: random.Random,
) -> list[tuple[Word, str]]:
    """Choose the mission's words and remember which bucket each came from.

    New words are reserved first and picked at random; weak words follow in
    the order given (weakest first); the pool fills whatever is left.
    """
    selected = []
    seen = set()

    def take(word: Word, bucket: str) -> None:
        if len(selected) < total_slots and word.id not in seen:
            seen.add(word.id)
            selected.append((word, bucket))

    shuffled_new = pick_random(new_words, len(new_words), rng)
    reserved = min(MAX_NEW_SLOTS, len(new_words), total_slots)
    for word in shuffled_new:
        if sum(1 for _, b in selected if b == "new") >= reserved:
            break
        take(word, "new")

    for word in weak_words:
        take(word, "weak")

    # Cold start: no weak words to review, keep introducing new ones.
    for word in shuffled_new:
        take(word, "new")

    for word in pick_random(words_pool, len(words_pool), rng):
        if len(selected) >= total_slots:
            break
        take(word, "pool")

    return selected


class QuestionBuilder:
    """Builds the individual question records of one mission."""

    def __init__(self, mission_id: str, words_pool: list[Word], rng: random.Random,
                 tagger: PosTagger = DEFAULT_TAGGER):
        self.mission_id = mission_id
        self.words_pool = list(words_pool)
        self.rng = rng
        self.tagger = tagger

    def pos(self, word: Word) -> str:
        return self.tagger.infer_pos(word.text, word.definition)

    def sentence_for(self, word: Word) -> str:
        if word.example_sentence:
            return word.example_sentence
        return SENTENCE_TEMPLATES[self.pos(word)].format(word=word.text)

    def _candidates(self, target: Word) -> list[Word]:
        return [
            w for w in self.words_pool
            if w.id != target.id
            and w.text.lower() != target.text.lower()
            and not same_lemma(w.text, target.text)
        ]

    def _pos_ranked(self, target: Word) -> list[Word]:
        """Same-POS candidates first (random order), the rest after."""
        target_pos = self.pos(target)
        candidates = pick_random(self._candidates(target), len(self.words_pool), self.rng)
        same = [w for w in candidates if self.pos(w) == target_pos]
        other = [w for w in candidates if self.pos(w) != target_pos]
        return same + other

    def _unique_texts(self, texts, exclude: str, count: int, fallbacks) -> list[str]:
        picked = []
        taken = {exclude.lower()}
        for text in texts:
            if len(picked) == count:
                return picked
            if text.lower() not in taken:
                taken.add(text.lower())
                picked.append(text)
        for text in fallbacks:
            if len(picked) == count:
                break
            if text.lower() not in taken:
                taken.add(text.lower())
                picked.append(text)
        return picked

    def definition_distractors(self, target: Word, count: int = 3) -> list[str]:
        defs = (truncate(w.definition, DEFINITION_LIMIT) for w in self._pos_ranked(target))
        return self._unique_texts(
            defs, truncate(target.definition, DEFINITION_LIMIT), count, GENERIC_DEFINITIONS
        )

    def word_distractors(self, target: Word, count: int = 3) -> list[str]:
        texts = (w.text for w in self._pos_ranked(target))
        return self._unique_texts(texts, target.text, count, GENERIC_WORDS)

    def misuse_sentences(self, target: Word, correct: str, count: int) -> list[str]:
        """Other words' sentences with the target dropped in where their word was."""
        sentences = []
        for other in pick_random(self._candidates(target), len(self.words_pool), self.rng):
            if not other.example_sentence:
                continue
            swapped, n = word_pattern(other.text).subn(lambda _: target.text, other.example_sentence)
            if n:
                sentences.append(swapped)
        fallbacks = [t.format(word=target.text) for t in GENERIC_MISUSES]
        return self._unique_texts(sentences, correct, count, fallbacks)

    def _question(self, word: Word, qtype: str, index: int, prompt: str,
                  options: list[Option], extra_word_ids=None, qid=None) -> MissionQuestion:
        texts, correct_index = shuffle_options(options, self.rng)
        return MissionQuestion(
            id=qid or f"{self.mission_id}:{word.id}:{index}",
            mission_id=self.mission_id,
            index=index,
            type=qtype,
            primary_word_id=word.id,
            extra_word_ids=list(extra_word_ids or []),
            prompt=prompt,
            options=texts,
            correct_index=correct_index,
        )

    def _definition_options(self, word: Word) -> list[Option]:
        correct = Option(truncate(word.definition, DEFINITION_LIMIT), True)
        return [correct] + [Option(d) for d in self.definition_distractors(word)]

    def definition_mcq(self, word: Word, index: int) -> MissionQuestion:
        prompt = f"Word: {word.text}\nChoose the best meaning."
        return self._question(word, "definition_mcq", index, prompt, self._definition_options(word))

    def synonym_antonym(self, word: Word, index: int) -> MissionQuestion:
        prompt = f"Closest meaning\nWhich option is closest in meaning to \"{word.text}\"?"
        return self._question(word, "synonym_antonym", index, prompt, self._definition_options(word))

    def context_fill_blank(self, word: Word, index: int) -> MissionQuestion:
        sentence = self.sentence_for(word)
        blanked, n = word_pattern(word.text).subn(lambda _: BLANK, sentence)
        if not n:
            blanked = f"{sentence} ({BLANK})"
        options = [Option(word.text, True)] + [Option(w) for w in self.word_distractors(word)]
        prompt = f"Fill in the blank\n{blanked}\nChoose the word that best completes the sentence."
        return self._question(word, "context_fill_blank", index, prompt, options)

    def usage_validation(self, word: Word, index: int) -> MissionQuestion:
        correct = self.sentence_for(word)
        options = [Option(correct, True)] + [
            Option(s) for s in self.misuse_sentences(word, correct, 2)
        ]
        prompt = f"Natural usage\nWhich sentence uses \"{word.text}\" naturally?"
        return self._question(word, "usage_validation", index, prompt, options)

    def rewrite_sentence(self, word: Word, index: int) -> MissionQuestion:
        correct = self.sentence_for(word)
        options = [Option(correct, True)] + [
            Option(s) for s in self.misuse_sentences(word, correct, 3)
        ]
        idea = truncate(word.definition, DEFINITION_LIMIT)
        prompt = (
            f"Rewrite the idea\nIdea: {idea}\n"
            f"Which sentence expresses this idea using \"{word.text}\"?"
        )
        return self._question(word, "rewrite_sentence", index, prompt, options)

    def story_context_mcq(self, target: Word, context: list[Word], index: int) -> MissionQuestion:
        names = " and ".join(f"\"{w.text}\"" for w in context)
        opening = f"Today's practice brought up {names}." if context else "Today's practice is nearly done."
        story = f"{opening} Later, someone said: \"{self.sentence_for(target)}\""
        prompt = (
            f"Mini story\n{story}\n"
            f"In this story, what does \"{target.text}\" most nearly mean?"
        )
        return self._question(
            target, "story_context_mcq", index, prompt, self._definition_options(target),
            extra_word_ids=[w.id for w in context],
            qid=f"{self.mission_id}:story:{index}",
        )

    def for_position(self, word: Word, index: int) -> MissionQuestion:
        if index == 1:
            return self.context_fill_blank(word, index)
        if index == 2:
            if self.rng.random() < USAGE_VALIDATION_PROBABILITY:
                return self.usage_validation(word, index)
            return self.synonym_antonym(word, index)
        if index == 3:
            return self.rewrite_sentence(word, index)
        return self.definition_mcq(word, index)


def plan_daily_mission(
    user_id: str,
    mission_id: str,
    weak_words: list[Word],
    new_words: list[Word],
    words_pool: list[Word],
    today=None,
    target_questions: int = TARGET_QUESTIONS,
    rng: random.Random | None = None,
    tagger: PosTagger = DEFAULT_TAGGER,
) -> MissionPlan:
    """Select today's words and build one question per word, story last."""
    if not words_pool:
        raise ValueError("Cannot plan a mission from an empty word pool")
    rng = rng or random.Random()
    today = today or datetime.now()

    selected = select_mission_words(weak_words, new_words, words_pool, target_questions, rng)
    builder = QuestionBuilder(mission_id, words_pool, rng, tagger)
    words = [w for w, _ in selected]

    questions = []
    if len(words) >= 2:
        for index, word in enumerate(words[:-1]):
            questions.append(builder.for_position(word, index))
        others = words[:-1]
        context = pick_random(others, min(2, len(others)), rng)
        questions.append(builder.story_context_mcq(words[-1], context, len(words) - 1))
    elif words:
        questions.append(builder.definition_mcq(words[0], 0))

    weak_count = sum(1 for _, bucket in selected if bucket == "weak")
    new_count = sum(1 for _, bucket in selected if bucket == "new")
    mission = Mission(
        id=mission_id,
        user_id=user_id,
        date=to_date_key(today),
        status="not_started",
        num_questions=len(questions),
        xp_reward=MISSION_XP_REWARD,
        weak_words_count=weak_count,
        new_words_count=new_count,
        created_at=datetime.now().isoformat(),
        completed_at=None,
        correct_count=0,
    )
    return MissionPlan(
        mission=mission,
        questions=questions,
        weak_words_count=weak_count,
        new_words_count=new_count,
        used_word_ids=[w.id for w in words],
    )
