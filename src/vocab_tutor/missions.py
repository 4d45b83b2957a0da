"""Day-keyed mission sessions: creation, answering, persistence and stats."""
import random
import sqlite3
import threading
import uuid
from dataclasses import dataclass, replace
from datetime import date, datetime

from loguru import logger

from vocab_tutor.catalog import all_words
from vocab_tutor.errors import MissionNotFoundError, QuestionNotFoundError
from vocab_tutor.learning import (
    as_datetime,
    is_weak_word,
    make_fresh_word_state,
    sort_weak_states,
    to_date_key,
    update_word_state_after_answer,
)
from vocab_tutor.models import (
    STORY_TYPES,
    Mission,
    MissionBundle,
    UserStats,
    UserWordState,
)
from vocab_tutor.planner import TARGET_QUESTIONS, plan_daily_mission

STORAGE_KEYS = {
    "missions": "daily_missions",
    "word_states": "user_word_states",
    "stats": "daily_mission_stats",
    "schema": "daily_missions.schema_version",
}
MISSION_SCHEMA_VERSION = 2
STORAGE_ERRORS = (sqlite3.Error, OSError)
DECODE_ERRORS = (ValueError, TypeError, KeyError)
PERSISTENCE_ERRORS = STORAGE_ERRORS + DECODE_ERRORS


@dataclass
class AnswerResult:
    was_correct: bool
    mission: Mission
    remaining: int


def is_stale(bundle: MissionBundle) -> bool:
    """Missions saved before the current question layout get rebuilt."""
    if not bundle.questions or len(bundle.questions) < TARGET_QUESTIONS:
        return True
    return not any(q.type in STORY_TYPES for q in bundle.questions)


class MissionService:
    """Owns the mission, word-state and stats caches for one process.

    Caches are hydrated from storage on first use and written back after
    every change. Storage problems are logged; memory stays authoritative.
    """

    def __init__(self, storage, words=None, progress=None, rng: random.Random | None = None):
        self.storage = storage
        self.words = list(words) if words is not None else all_words()
        self._words_by_id = {w.id: w for w in self.words}
        self.progress = progress
        self.rng = rng or random.Random()
        self._missions: dict[str, MissionBundle] = {}
        self._word_states: dict[str, dict[str, UserWordState]] = {}
        self._stats: dict[str, UserStats] = {}
        self._loaded = False
        self._lock = threading.RLock()

    # -- persistence -------------------------------------------------------

    def _clear_storage(self) -> None:
        for key in ("missions", "word_states", "stats"):
            self.storage.remove(STORAGE_KEYS[key])
        self.storage.save(STORAGE_KEYS["schema"], MISSION_SCHEMA_VERSION)

    def _load(self) -> bool:
        """Merge stored caches under the in-memory ones.

        Returns False when storage could not be read, so the next call retries
        instead of flushing partial caches over the stored ones.
        """
        try:
            version = self.storage.load(STORAGE_KEYS["schema"])
            if version != MISSION_SCHEMA_VERSION:
                logger.info(
                    "Mission schema {} != {}, clearing stored missions",
                    version, MISSION_SCHEMA_VERSION,
                )
                self._clear_storage()
            missions = self.storage.load(STORAGE_KEYS["missions"]) or {}
            states = self.storage.load(STORAGE_KEYS["word_states"]) or {}
            stats = self.storage.load(STORAGE_KEYS["stats"]) or {}
        except STORAGE_ERRORS as e:
            logger.warning("Failed to load mission caches, will retry: {}", e)
            return False
        except DECODE_ERRORS as e:
            logger.warning("Discarding unreadable mission caches: {}", e)
            return True

        try:
            loaded_missions = {}
            for entry in missions.values():
                bundle = MissionBundle.from_dict(entry)
                loaded_missions[bundle.mission.id] = bundle
            loaded_states = {
                user_id: {word_id: UserWordState.from_dict(s) for word_id, s in by_word.items()}
                for user_id, by_word in states.items()
            }
            loaded_stats = {user_id: UserStats.from_dict(s) for user_id, s in stats.items()}
        except DECODE_ERRORS as e:
            # Unreadable records are dropped; the next flush replaces them.
            logger.warning("Discarding unreadable mission caches: {}", e)
            return True

        self._missions = {**loaded_missions, **self._missions}
        for user_id, by_word in loaded_states.items():
            self._word_states[user_id] = {**by_word, **self._word_states.get(user_id, {})}
        self._stats = {**loaded_stats, **self._stats}
        return True

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self._loaded = self._load()

    def _persist(self) -> None:
        if not self._loaded:
            logger.debug("Storage not hydrated yet, keeping changes in memory")
            return
        items = {
            STORAGE_KEYS["missions"]: {mid: b.to_dict() for mid, b in self._missions.items()},
            STORAGE_KEYS["word_states"]: {
                user_id: {wid: s.to_dict() for wid, s in by_word.items()}
                for user_id, by_word in self._word_states.items()
            },
            STORAGE_KEYS["stats"]: {user_id: s.to_dict() for user_id, s in self._stats.items()},
            STORAGE_KEYS["schema"]: MISSION_SCHEMA_VERSION,
        }
        try:
            save_many = getattr(self.storage, "save_many", None)
            if save_many is not None:
                save_many(items)
            else:
                for key, value in items.items():
                    self.storage.save(key, value)
        except PERSISTENCE_ERRORS as e:
            logger.warning("Failed to persist mission caches: {}", e)

    def reset_caches(self) -> None:
        """Forget everything, in memory and in storage."""
        with self._lock:
            self._missions.clear()
            self._word_states.clear()
            self._stats.clear()
            self._loaded = False
            try:
                self._clear_storage()
            except PERSISTENCE_ERRORS as e:
                logger.warning("Failed to clear mission storage: {}", e)

    # -- lookups -----------------------------------------------------------

    def _find_mission(self, user_id: str, date_key: str) -> MissionBundle | None:
        for bundle in self._missions.values():
            if bundle.mission.user_id == user_id and bundle.mission.date == date_key:
                return bundle
        return None

    def _upsert_state(self, state: UserWordState) -> None:
        self._word_states.setdefault(state.user_id, {})[state.word_id] = state

    def get_word_state(self, user_id: str, word_id: str) -> UserWordState | None:
        with self._lock:
            self._ensure_loaded()
            return self._word_states.get(user_id, {}).get(word_id)

    def get_word_states(self, user_id: str) -> list[UserWordState]:
        with self._lock:
            self._ensure_loaded()
            return list(self._word_states.get(user_id, {}).values())

    def get_user_stats(self, user_id: str) -> UserStats:
        with self._lock:
            self._ensure_loaded()
            return self._stats.get(user_id) or UserStats(user_id=user_id)

    def get_mission(self, mission_id: str) -> MissionBundle | None:
        with self._lock:
            self._ensure_loaded()
            return self._missions.get(mission_id)

    def missions_for_user(self, user_id: str) -> list[MissionBundle]:
        with self._lock:
            self._ensure_loaded()
            bundles = [b for b in self._missions.values() if b.mission.user_id == user_id]
            return sorted(bundles, key=lambda b: b.mission.date)

    def weak_words(self, user_id: str, today) -> list:
        states = [
            s for s in self._word_states.get(user_id, {}).values() if is_weak_word(s, today)
        ]
        return [
            self._words_by_id[s.word_id]
            for s in sort_weak_states(states)
            if s.word_id in self._words_by_id
        ]

    def new_word_candidates(self, user_id: str) -> list:
        states = self._word_states.get(user_id, {})
        return [
            w for w in self.words
            if w.id not in states or states[w.id].status == "new"
        ]

    # -- operations --------------------------------------------------------

    def get_today_mission_for_user(self, user_id: str, today=None) -> MissionBundle:
        """Return today's mission, creating it on the first call of the day."""
        with self._lock:
            self._ensure_loaded()
            today = as_datetime(today or datetime.now())
            date_key = to_date_key(today)
            existing = self._find_mission(user_id, date_key)
            if existing and not is_stale(existing):
                logger.debug("Reusing mission {} for {} on {}", existing.mission.id, user_id, date_key)
                return existing
            if existing:
                answered = sum(1 for q in existing.questions if q.answered)
                if answered:
                    # TODO: carry answered questions over instead of discarding them.
                    logger.warning(
                        "Regenerating stale mission {} with {} answered question(s)",
                        existing.mission.id, answered,
                    )
                del self._missions[existing.mission.id]

            plan = plan_daily_mission(
                user_id=user_id,
                mission_id=uuid.uuid4().hex[:12],
                weak_words=self.weak_words(user_id, today),
                new_words=self.new_word_candidates(user_id),
                words_pool=self.words,
                today=today,
                rng=self.rng,
            )
            for word_id in plan.used_word_ids:
                if self._word_states.get(user_id, {}).get(word_id) is None:
                    self._upsert_state(make_fresh_word_state(user_id, word_id, today))

            bundle = MissionBundle(mission=plan.mission, questions=plan.questions)
            self._missions[plan.mission.id] = bundle
            self._persist()
            logger.debug(
                "Created mission {} for {} on {}: types={} weak={} new={}",
                plan.mission.id, user_id, date_key,
                ",".join(q.type for q in plan.questions),
                plan.weak_words_count, plan.new_words_count,
            )
            return bundle

    def submit_mission_answer(
        self,
        mission_id: str,
        question_id: str,
        chosen_index: int,
        user_id: str,
        answered_at=None,
    ) -> AnswerResult:
        with self._lock:
            self._ensure_loaded()
            answered_at = as_datetime(answered_at or datetime.now())
            bundle = self._missions.get(mission_id)
            if bundle is None:
                raise MissionNotFoundError(f"Mission not found: {mission_id}")
            question = next((q for q in bundle.questions if q.id == question_id), None)
            if question is None:
                raise QuestionNotFoundError(f"Question not found: {question_id}")

            was_correct = chosen_index == question.correct_index
            mission = bundle.mission
            if question.answered:
                # Re-submissions are graded but change nothing.
                logger.debug("Question {} already answered, ignoring resubmission", question_id)
                return AnswerResult(
                    was_correct=was_correct,
                    mission=replace(mission),
                    remaining=sum(1 for q in bundle.questions if not q.answered),
                )

            for word_id in question.word_ids:
                state = self._word_states.get(user_id, {}).get(word_id)
                if state is None:
                    state = make_fresh_word_state(user_id, word_id, answered_at)
                self._upsert_state(update_word_state_after_answer(state, was_correct, answered_at))

            question.answered = True
            if was_correct:
                mission.correct_count += 1

            answered = sum(1 for q in bundle.questions if q.answered)
            if answered >= len(bundle.questions):
                if mission.status != "completed":
                    mission.status = "completed"
                    mission.completed_at = answered_at.isoformat()
                    self.update_user_stats_after_mission(user_id, mission)
            elif mission.status == "not_started":
                mission.status = "in_progress"

            self._persist()
            return AnswerResult(
                was_correct=was_correct,
                mission=replace(mission),
                remaining=len(bundle.questions) - answered,
            )

    def update_user_stats_after_mission(self, user_id: str, mission: Mission) -> UserStats:
        with self._lock:
            self._ensure_loaded()
            current = self._stats.get(user_id) or UserStats(user_id=user_id)
            mission_day = date.fromisoformat(mission.date)
            streak = current.streak or 0
            if not current.last_mission_date:
                streak = 1
            else:
                gap = (mission_day - date.fromisoformat(current.last_mission_date)).days
                if gap == 0:
                    streak = max(1, streak)
                elif gap == 1:
                    streak += 1
                else:
                    streak = 1

            stats = UserStats(
                user_id=user_id,
                xp=current.xp + mission.xp_reward,
                streak=streak,
                last_mission_date=mission.date,
                missions_completed=current.missions_completed + 1,
            )
            self._stats[user_id] = stats

            if self.progress is not None:
                try:
                    self.progress.add_xp(mission.xp_reward, "daily_mission")
                    self.progress.update_streak()
                except Exception as e:
                    logger.warning("Progress update failed (non-fatal): {}", e)
            return stats
