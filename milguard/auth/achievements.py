"""
Achievement system.
Awards: first_analysis, streak, module_complete (per module), curriculum_complete
Each awarded at most once per (user, type, subject).
"""
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, Optional

from milguard.core.config import STREAK_THRESHOLD
from milguard.schemas import Achievement, utcnow
from milguard.storage.base import Storage

# Achievement definitions for display
ACHIEVEMENTS = {
    "first_analysis":      {"icon": "🔍", "title": "First Analysis",      "desc": "Analyzed your first piece of content"},
    "streak":              {"icon": "🔥", "title": "{n}-Day Streak",      "desc": "Analyzed content {n} days in a row"},
    "module_complete":     {"icon": "🎓", "title": "Module Complete",     "desc": "Completed the '{module}' learning module"},
    "curriculum_complete": {"icon": "🏆", "title": "Curriculum Complete", "desc": "Completed every learning module"},
}


def current_streak(days: Iterable[date], today: Optional[date] = None) -> int:
    """
    Consecutive calendar days with activity, ending today.
    A run that ended yesterday still counts (today is not over yet).
    """
    active = set(days)
    today = today or utcnow().date()
    if today in active:
        day = today
    elif today - timedelta(days=1) in active:
        day = today - timedelta(days=1)
    else:
        return 0

    streak = 0
    while day in active:
        streak += 1
        day -= timedelta(days=1)
    return streak


def analysis_days(storage: Storage, user_id: str, since: Optional[date] = None) -> set[date]:
    """UTC calendar days with at least one analysis, optionally only from *since* on."""
    start = datetime.combine(since, time.min, tzinfo=timezone.utc) if since else None
    return {t.date() for t in storage.get_analysis_times(user_id, since=start)}


class AchievementEvaluator:

    def __init__(self, storage: Storage, streak_threshold: int = STREAK_THRESHOLD):
        self.storage = storage
        self.streak_threshold = streak_threshold

    def _award(self, user_id: str, key: str, subject_id: str = "", **fmt) -> Optional[Achievement]:
        """Try to award an achievement. Returns the new row, or None if already earned."""
        meta = ACHIEVEMENTS[key]
        achievement = self.storage.create_achievement_if_absent(
            user_id=user_id,
            type=key,
            subject_id=subject_id,
            title=meta["title"].format(**fmt),
            description=meta["desc"].format(**fmt),
        )
        if achievement:
            print(f"[ACHIEVEMENT] user={user_id} earned '{key}' subject='{subject_id}'", flush=True)
        return achievement

    def on_analysis_created(self, user_id: str, today: Optional[date] = None) -> list[Achievement]:
        """Call after an Analysis is persisted for this user."""
        earned = []
        if self.storage.count_analyses(user_id) >= 1:
            earned.append(self._award(user_id, "first_analysis"))

        # A streak of n days ending today or yesterday fits in the last n + 1 days
        today = today or utcnow().date()
        window_start = today - timedelta(days=self.streak_threshold)
        streak = current_streak(analysis_days(self.storage, user_id, since=window_start), today)
        if streak >= self.streak_threshold:
            n = self.streak_threshold
            earned.append(self._award(user_id, "streak", subject_id=str(n), n=n))
        return [a for a in earned if a]

    def on_module_completed(self, user_id: str, module_id: str) -> list[Achievement]:
        """Call when a UserProgress row transitions into completed."""
        module = self.storage.get_learning_module(module_id)
        if module is None:
            return []
        earned = [self._award(user_id, "module_complete", subject_id=module_id, module=module.title)]

        active_ids = {m.id for m in self.storage.get_learning_modules()}
        done_ids = {p.module_id for p in self.storage.get_user_progress(user_id) if p.completed}
        if active_ids and active_ids <= done_ids:
            earned.append(self._award(user_id, "curriculum_complete"))
        return [a for a in earned if a]


def achievement_catalog(storage: Storage, user_id: str, streak_threshold: int = STREAK_THRESHOLD) -> list[dict]:
    """Return every badge kind with earned flags, for display."""
    rows = storage.get_user_achievements(user_id)
    by_type: dict[str, list[Achievement]] = {}
    for row in rows:
        by_type.setdefault(row.type, []).append(row)

    result = []
    for key, meta in ACHIEVEMENTS.items():
        earned = by_type.get(key, [])
        if earned:
            for row in earned:
                result.append({
                    "key": key,
                    "icon": meta["icon"],
                    "title": row.title,
                    "description": row.description,
                    "subjectId": row.subject_id,
                    "earnedAt": row.earned_at.isoformat(),
                    "earned": True,
                })
        elif key != "module_complete":
            result.append({
                "key": key,
                "icon": meta["icon"],
                "title": meta["title"].format(n=streak_threshold),
                "description": meta["desc"].format(n=streak_threshold),
                "earned": False,
            })
    return result
