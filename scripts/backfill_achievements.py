"""
Backfill script: award achievements users already qualify for.

This script:
1. Finds every user with analyses or completed modules
2. Re-runs the achievement evaluator for each analysis history and each completed module
3. Relies on the evaluator's idempotency, so it is SAFE to run multiple times

Note: streaks are evaluated against today's date, so only running streaks are awarded.
"""
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root))

from sqlalchemy import distinct, select

from milguard.analysis.models import Analysis
from milguard.auth.achievements import AchievementEvaluator
from milguard.core.config import STREAK_THRESHOLD
from milguard.db.base import SessionLocal
from milguard.learning.models import UserProgress
from milguard.storage.sql import SqlStorage


def backfill_achievements():
    """Award missing achievements for every known user."""
    storage = SqlStorage(SessionLocal)
    evaluator = AchievementEvaluator(storage, streak_threshold=STREAK_THRESHOLD)

    db = SessionLocal()
    try:
        analysis_users = set(db.scalars(
            select(distinct(Analysis.user_id)).where(Analysis.user_id.isnot(None))
        ).all())
        completed = db.execute(
            select(UserProgress.user_id, UserProgress.module_id).where(UserProgress.completed.is_(True))
        ).all()
    finally:
        db.close()

    print(f"Found {len(analysis_users)} users with analyses, {len(completed)} completed modules", flush=True)

    awarded = 0
    for user_id in sorted(analysis_users):
        earned = evaluator.on_analysis_created(user_id)
        awarded += len(earned)
        for a in earned:
            print(f"  user={user_id} +{a.type}", flush=True)

    for user_id, module_id in completed:
        earned = evaluator.on_module_completed(user_id, module_id)
        awarded += len(earned)
        for a in earned:
            print(f"  user={user_id} +{a.type} ({a.subject_id})", flush=True)

    print(f"\n✅ Backfill complete! Awarded {awarded} achievements", flush=True)


if __name__ == "__main__":
    backfill_achievements()
