# tests/test_missions.py
import random
import sqlite3
from datetime import datetime

import pytest

from vocab_tutor.db import SqliteStorage
from vocab_tutor.errors import MissionNotFoundError, QuestionNotFoundError
from vocab_tutor.missions import (
    MISSION_SCHEMA_VERSION, STORAGE_KEYS, MissionService, is_stale,
)
from vocab_tutor.models import Mission, UserWordState

TODAY = datetime(2024, 1, 1, 9, 0)


class RecordingProgress:
    def __init__(self, fail=False):
        self.fail = fail
        self.calls = []

    def add_xp(self, amount, source):
        if self.fail:
            raise RuntimeError("backend down")
        self.calls.append(("add_xp", amount, source))

    def update_streak(self):
        self.calls.append(("update_streak",))


class BrokenStorage:
    def load(self, key):
        raise OSError("disk unavailable")

    def save(self, key, value):
        raise OSError("disk unavailable")

    def remove(self, key):
        raise OSError("disk unavailable")


@pytest.fixture
def service(tmp_db, words_pool):
    return MissionService(SqliteStorage(tmp_db), words=words_pool, rng=random.Random(3))


def answer_all(service, bundle, user_id="u1", correct=True, when=TODAY):
    results = []
    for q in bundle.questions:
        chosen = q.correct_index if correct else (q.correct_index + 1) % len(q.options)
        results.append(service.submit_mission_answer(bundle.mission.id, q.id, chosen, user_id, when))
    return results


def test_first_mission_has_five_questions_ending_with_story(service):
    bundle = service.get_today_mission_for_user("u1", TODAY)
    assert len(bundle.questions) == 5
    assert bundle.questions[-1].type == "story_context_mcq"
    assert bundle.mission.date == "2024-01-01"
    assert bundle.mission.status == "not_started"


def test_first_mission_seeds_fresh_states(service):
    bundle = service.get_today_mission_for_user("u1", TODAY)
    states = service.get_word_states("u1")
    used = {q.primary_word_id for q in bundle.questions}
    assert used <= {s.word_id for s in states}
    assert all(s.status == "new" and s.total_correct == 0 for s in states)


def test_same_day_mission_is_reused(service):
    first = service.get_today_mission_for_user("u1", TODAY)
    second = service.get_today_mission_for_user("u1", TODAY.replace(hour=20))
    assert second.mission.id == first.mission.id
    assert [q.id for q in second.questions] == [q.id for q in first.questions]


def test_mission_reused_across_service_instances(tmp_db, words_pool):
    first = MissionService(SqliteStorage(tmp_db), words=words_pool).get_today_mission_for_user("u1", TODAY)
    again = MissionService(SqliteStorage(tmp_db), words=words_pool).get_today_mission_for_user("u1", TODAY)
    assert again.mission.id == first.mission.id
    assert [q.to_dict() for q in again.questions] == [q.to_dict() for q in first.questions]


def test_new_day_creates_new_mission(service):
    first = service.get_today_mission_for_user("u1", TODAY)
    second = service.get_today_mission_for_user("u1", datetime(2024, 1, 2))
    assert second.mission.id != first.mission.id
    assert second.mission.date == "2024-01-02"


def test_missions_are_per_user(service):
    a = service.get_today_mission_for_user("u1", TODAY)
    b = service.get_today_mission_for_user("u2", TODAY)
    assert a.mission.id != b.mission.id


def test_submit_answer_counts_down_to_completion(service):
    bundle = service.get_today_mission_for_user("u1", TODAY)
    results = answer_all(service, bundle)
    assert [r.remaining for r in results] == [4, 3, 2, 1, 0]
    assert [r.mission.status for r in results] == ["in_progress"] * 4 + ["completed"]
    assert results[-1].mission.correct_count == 5
    assert results[-1].mission.completed_at == TODAY.isoformat()
    assert all(r.was_correct for r in results)


def test_wrong_answer_is_not_counted(service):
    bundle = service.get_today_mission_for_user("u1", TODAY)
    q = bundle.questions[0]
    result = service.submit_mission_answer(
        bundle.mission.id, q.id, (q.correct_index + 1) % len(q.options), "u1", TODAY,
    )
    assert result.was_correct is False
    assert result.mission.correct_count == 0
    assert result.mission.status == "in_progress"
    state = service.get_word_state("u1", q.primary_word_id)
    assert state.total_incorrect == 1
    assert state.status == "learning"


def test_story_answer_updates_every_word(service):
    bundle = service.get_today_mission_for_user("u1", TODAY)
    story = bundle.questions[-1]
    service.submit_mission_answer(bundle.mission.id, story.id, story.correct_index, "u1", TODAY)
    for word_id in story.word_ids:
        state = service.get_word_state("u1", word_id)
        assert state.total_correct == 1
        assert state.stage == 1
        assert state.status == "learning"
    assert len(story.word_ids) == 3


def test_unknown_mission_raises(service):
    with pytest.raises(MissionNotFoundError):
        service.submit_mission_answer("nope", "q", 0, "u1")


def test_unknown_question_raises(service):
    bundle = service.get_today_mission_for_user("u1", TODAY)
    with pytest.raises(QuestionNotFoundError):
        service.submit_mission_answer(bundle.mission.id, "nope", 0, "u1")


def test_lookup_errors_are_key_errors():
    assert issubclass(MissionNotFoundError, KeyError)
    assert issubclass(QuestionNotFoundError, KeyError)


def test_completion_updates_stats(service):
    bundle = service.get_today_mission_for_user("u1", TODAY)
    answer_all(service, bundle)
    stats = service.get_user_stats("u1")
    assert stats.xp == 60
    assert stats.streak == 1
    assert stats.missions_completed == 1
    assert stats.last_mission_date == "2024-01-01"


def test_streak_grows_on_consecutive_days(service):
    for day in (1, 2, 3):
        when = datetime(2024, 1, day)
        answer_all(service, service.get_today_mission_for_user("u1", when), when=when)
    stats = service.get_user_stats("u1")
    assert stats.streak == 3
    assert stats.xp == 180


def test_streak_resets_after_gap(service):
    for day in (1, 2, 5):
        when = datetime(2024, 1, day)
        answer_all(service, service.get_today_mission_for_user("u1", when), when=when)
    assert service.get_user_stats("u1").streak == 1


def test_stats_same_day_does_not_double_streak(service):
    mission = Mission(id="m", user_id="u1", date="2024-01-01")
    service.update_user_stats_after_mission("u1", mission)
    stats = service.update_user_stats_after_mission("u1", mission)
    assert stats.streak == 1
    assert stats.xp == 120


def test_next_day_mission_reviews_missed_words(service):
    first = service.get_today_mission_for_user("u1", TODAY)
    answer_all(service, first, correct=False)
    missed = {wid for q in first.questions for wid in q.word_ids}
    second = service.get_today_mission_for_user("u1", datetime(2024, 1, 2))
    assert second.mission.weak_words_count >= 3
    reviewed = {q.primary_word_id for q in second.questions}
    assert len(reviewed & missed) >= 3


def test_stale_mission_is_regenerated(service):
    bundle = service.get_today_mission_for_user("u1", TODAY)
    for q in bundle.questions:
        if q.type == "story_context_mcq":
            q.type = "definition_mcq"
    assert is_stale(bundle)
    fresh = service.get_today_mission_for_user("u1", TODAY)
    assert fresh.mission.id != bundle.mission.id
    assert service.get_mission(bundle.mission.id) is None
    assert not is_stale(fresh)


def test_legacy_story_type_is_not_stale(service):
    bundle = service.get_today_mission_for_user("u1", TODAY)
    bundle.questions[-1].type = "story_mcq"
    assert not is_stale(bundle)


def test_short_mission_is_stale(service):
    bundle = service.get_today_mission_for_user("u1", TODAY)
    bundle.questions = bundle.questions[-3:]
    assert is_stale(bundle)


def test_schema_mismatch_wipes_storage(tmp_db, words_pool):
    storage = SqliteStorage(tmp_db)
    storage.save(STORAGE_KEYS["schema"], 1)
    storage.save(STORAGE_KEYS["stats"], {"u1": {"user_id": "u1", "xp": 999, "streak": 9,
                                                "last_mission_date": None, "missions_completed": 9}})
    service = MissionService(storage, words=words_pool)
    assert service.get_user_stats("u1").xp == 0
    assert storage.load(STORAGE_KEYS["stats"]) is None
    assert storage.load(STORAGE_KEYS["schema"]) == MISSION_SCHEMA_VERSION


def test_state_survives_restart(tmp_db, words_pool):
    service = MissionService(SqliteStorage(tmp_db), words=words_pool)
    answer_all(service, service.get_today_mission_for_user("u1", TODAY))
    reloaded = MissionService(SqliteStorage(tmp_db), words=words_pool)
    assert reloaded.get_user_stats("u1").xp == 60
    assert any(s.total_correct for s in reloaded.get_word_states("u1"))


def test_storage_failures_do_not_break_missions(words_pool):
    service = MissionService(BrokenStorage(), words=words_pool)
    bundle = service.get_today_mission_for_user("u1", TODAY)
    results = answer_all(service, bundle)
    assert results[-1].mission.status == "completed"
    assert service.get_user_stats("u1").xp == 60


def test_progress_collaborator_is_called(tmp_db, words_pool):
    progress = RecordingProgress()
    service = MissionService(SqliteStorage(tmp_db), words=words_pool, progress=progress)
    answer_all(service, service.get_today_mission_for_user("u1", TODAY))
    assert progress.calls == [("add_xp", 60, "daily_mission"), ("update_streak",)]


def test_progress_failure_keeps_completion(tmp_db, words_pool):
    service = MissionService(SqliteStorage(tmp_db), words=words_pool, progress=RecordingProgress(fail=True))
    results = answer_all(service, service.get_today_mission_for_user("u1", TODAY))
    assert results[-1].mission.status == "completed"
    assert service.get_user_stats("u1").missions_completed == 1


def test_new_word_candidates_exclude_seen_words(service, words_pool):
    service._upsert_state(UserWordState(user_id="u1", word_id="w1", status="learning"))
    service._upsert_state(UserWordState(user_id="u1", word_id="w2", status="new"))
    ids = {w.id for w in service.new_word_candidates("u1")}
    assert "w1" not in ids
    assert "w2" in ids


def test_reset_caches_clears_everything(tmp_db, words_pool):
    storage = SqliteStorage(tmp_db)
    service = MissionService(storage, words=words_pool)
    answer_all(service, service.get_today_mission_for_user("u1", TODAY))
    service.reset_caches()
    assert service.get_user_stats("u1").xp == 0
    assert service.get_word_states("u1") == []
    assert storage.load(STORAGE_KEYS["missions"]) is None


def test_default_catalog_mission():
    class MemoryStorage:
        def __init__(self):
            self.data = {}

        def load(self, key):
            return self.data.get(key)

        def save(self, key, value):
            self.data[key] = value

        def remove(self, key):
            self.data.pop(key, None)

    service = MissionService(MemoryStorage(), rng=random.Random(0))
    bundle = service.get_today_mission_for_user("u1", TODAY)
    assert len(bundle.questions) == 5
    assert bundle.mission.new_words_count == 5
    for q in bundle.questions:
        assert 0 <= q.correct_index < len(q.options)


def test_resubmitting_after_completion_changes_nothing(tmp_db, words_pool):
    progress = RecordingProgress()
    service = MissionService(SqliteStorage(tmp_db), words=words_pool, progress=progress)
    bundle = service.get_today_mission_for_user("u1", TODAY)
    answer_all(service, bundle)
    last = bundle.questions[-1]
    before = service.get_word_state("u1", last.primary_word_id)

    result = service.submit_mission_answer(bundle.mission.id, last.id, last.correct_index, "u1", TODAY)

    assert result.remaining == 0
    assert result.mission.correct_count == 5
    stats = service.get_user_stats("u1")
    assert (stats.xp, stats.missions_completed) == (60, 1)
    assert progress.calls == [("add_xp", 60, "daily_mission"), ("update_streak",)]
    assert service.get_word_state("u1", last.primary_word_id) == before


def test_resubmitting_answered_question_is_ignored(service):
    bundle = service.get_today_mission_for_user("u1", TODAY)
    q = bundle.questions[0]
    service.submit_mission_answer(bundle.mission.id, q.id, (q.correct_index + 1) % len(q.options), "u1", TODAY)
    result = service.submit_mission_answer(bundle.mission.id, q.id, q.correct_index, "u1", TODAY)
    assert result.was_correct is True
    assert result.remaining == 4
    assert bundle.mission.correct_count == 0
    state = service.get_word_state("u1", q.primary_word_id)
    assert (state.total_correct, state.total_incorrect) == (0, 1)


class FlakyStorage(SqliteStorage):
    """Fails the first `failures` reads, like a briefly locked database."""

    def __init__(self, db_path, failures=1):
        super().__init__(db_path)
        self.failures = failures

    def load(self, key):
        if self.failures:
            self.failures -= 1
            raise sqlite3.OperationalError("database is locked")
        return super().load(key)


def test_failed_load_does_not_overwrite_stored_progress(tmp_db, words_pool):
    first = MissionService(SqliteStorage(tmp_db), words=words_pool)
    answer_all(first, first.get_today_mission_for_user("u1", TODAY))

    flaky = MissionService(FlakyStorage(tmp_db), words=words_pool)
    other = flaky.get_today_mission_for_user("u2", TODAY)

    fresh = MissionService(SqliteStorage(tmp_db), words=words_pool)
    assert len(fresh.get_word_states("u1")) == 5
    assert fresh.get_user_stats("u1").xp == 60

    # The next call hydrates, keeps u2's mission and flushes both users.
    q = other.questions[0]
    flaky.submit_mission_answer(other.mission.id, q.id, q.correct_index, "u2", TODAY)
    reloaded = MissionService(SqliteStorage(tmp_db), words=words_pool)
    assert reloaded.get_user_stats("u1").xp == 60
    assert reloaded.get_mission(other.mission.id) is not None
    assert len(reloaded.get_word_states("u2")) == 5


class CountingStorage(SqliteStorage):
    def __init__(self, db_path):
        super().__init__(db_path)
        self.batches = []

    def save_many(self, items):
        self.batches.append(sorted(items))
        super().save_many(items)


def test_flush_writes_one_batch(tmp_db, words_pool):
    storage = CountingStorage(tmp_db)
    service = MissionService(storage, words=words_pool)
    bundle = service.get_today_mission_for_user("u1", TODAY)
    storage.batches.clear()
    q = bundle.questions[0]
    service.submit_mission_answer(bundle.mission.id, q.id, q.correct_index, "u1", TODAY)
    assert storage.batches == [sorted(STORAGE_KEYS.values())]
