"""
One-time seeding script for learning_modules.

Purpose:
- Insert the default curriculum into a fresh database
- SAFE to run multiple times (does nothing when any module already exists)

Run after `alembic upgrade head`.
"""
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root))

from milguard.db.base import SessionLocal
from milguard.learning.content import seed_default_modules
from milguard.storage.sql import SqlStorage


def seed_learning_modules():
    storage = SqlStorage(SessionLocal)
    created = seed_default_modules(storage)

    if created:
        print("✅ Learning module seeding complete")
        for module in created:
            print(f"   {module.order}. {module.title} ({module.id})")
    else:
        existing = storage.get_learning_modules(include_inactive=True)
        print(f"✅ Nothing to do: {len(existing)} modules already present")


if __name__ == "__main__":
    seed_learning_modules()
