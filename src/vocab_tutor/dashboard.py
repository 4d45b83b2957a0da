"""Progress dashboard scoring and statistics."""
from vocab_tutor.learning import is_weak_word, sort_weak_states
from vocab_tutor.models import WORD_STATUSES


def get_mastery_label(score: float) -> str:
    if score >= 80:
        return "FLUENT"
    elif score >= 60:
        return "CONFIDENT"
    elif score >= 40:
        return "GROWING"
    return "STARTING"


def get_mastery_color(score: float) -> str:
    if score >= 80:
        return "green"
    elif score >= 60:
        return "yellow"
    elif score >= 40:
        return "dark_orange"
    return "red"


def get_word_status_counts(service, user_id: str) -> dict:
    counts = {status: 0 for status in WORD_STATUSES}
    for state in service.get_word_states(user_id):
        counts[state.status] += 1
    return counts


def get_answer_accuracy(service, user_id: str) -> float:
    """Share of correct answers across every word the user has answered."""
    states = service.get_word_states(user_id)
    correct = sum(s.total_correct for s in states)
    total = correct + sum(s.total_incorrect for s in states)
    if total == 0:
        return 0.0
    return round(correct / total * 100, 1)


def calc_mastery_score(service, user_id: str) -> float:
    """Weighted: mastered words count fully, review words 60%, learning 20%."""
    counts = get_word_status_counts(service, user_id)
    seen = sum(counts.values()) - counts["new"]
    if seen == 0:
        return 0.0
    score = (counts["mastered"] + counts["review"] * 0.6 + counts["learning"] * 0.2) / seen * 100
    return round(score, 1)


def get_weakest_words(service, user_id: str, today, limit: int = 5) -> list[dict]:
    states = [s for s in service.get_word_states(user_id) if is_weak_word(s, today)]
    by_id = {w.id: w for w in service.words}
    results = []
    for s in sort_weak_states(states)[:limit]:
        word = by_id.get(s.word_id)
        results.append({
            "word_id": s.word_id,
            "text": word.text if word else s.word_id,
            "strength": round(s.strength, 2),
            "status": s.status,
            "errors": s.total_incorrect,
        })
    return results


def get_study_stats(service, user_id: str) -> dict:
    stats = service.get_user_stats(user_id)
    missions = service.missions_for_user(user_id)
    completed = [b for b in missions if b.mission.status == "completed"]
    answered = sum(b.mission.num_questions for b in completed)
    correct = sum(b.mission.correct_count for b in completed)
    return {
        "xp": stats.xp,
        "streak": stats.streak,
        "missions_completed": stats.missions_completed,
        "words_seen": sum(1 for s in service.get_word_states(user_id) if s.status != "new"),
        "avg_mission_score": round(correct / answered * 100, 1) if answered else 0.0,
    }
