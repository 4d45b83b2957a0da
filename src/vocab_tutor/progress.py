"""App-wide XP and streak bookkeeping kept in the settings table."""
from datetime import date

from vocab_tutor.db import get_connection


def get_setting(db_path: str, key: str, default: str = None) -> str | None:
    conn = get_connection(db_path)
    row = conn.execute("SELECT value FROM user_settings WHERE key = ?", (key,)).fetchone()
    conn.close()
    return row["value"] if row else default


def set_setting(db_path: str, key: str, value: str) -> None:
    conn = get_connection(db_path)
    conn.execute(
        "INSERT INTO user_settings (key, value) VALUES (?, ?) ON CONFLICT(key) DO UPDATE SET value=?",
        (key, value, value),
    )
    conn.commit()
    conn.close()


class ProgressTracker:
    """Global progress shared by every learning activity, not just missions."""

    def __init__(self, db_path: str):
        self.db_path = db_path

    def total_xp(self) -> int:
        return int(get_setting(self.db_path, "total_xp", "0"))

    def xp_from(self, source: str) -> int:
        return int(get_setting(self.db_path, f"xp:{source}", "0"))

    def add_xp(self, amount: int, source: str) -> int:
        total = self.total_xp() + amount
        set_setting(self.db_path, "total_xp", str(total))
        set_setting(self.db_path, f"xp:{source}", str(self.xp_from(source) + amount))
        return total

    def current_streak(self) -> int:
        return int(get_setting(self.db_path, "current_streak", "0"))

    def update_streak(self, today: date | None = None) -> int:
        today = today or date.today()
        last = get_setting(self.db_path, "last_active_date")
        streak = self.current_streak()
        if last is None:
            streak = 1
        else:
            gap = (today - date.fromisoformat(last)).days
            if gap == 1:
                streak += 1
            elif gap != 0:
                streak = 1
        streak = max(streak, 1)
        set_setting(self.db_path, "current_streak", str(streak))
        set_setting(self.db_path, "last_active_date", today.isoformat())
        return streak
