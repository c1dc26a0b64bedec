"""
Progress tracking across the ordered learning modules.
Core rules:
  - The first active module (lowest order) is always unlocked
  - Every later module unlocks once its predecessor is completed
  - Unlock state is derived on every read, never stored
  - Completion is terminal: a completed row never goes back to in-progress
  - Overall completion = completed active modules / active modules
"""
from typing import Optional

from milguard.auth.achievements import AchievementEvaluator
from milguard.core.config import ENFORCE_MODULE_LOCK
from milguard.core.errors import ModuleLockedError, NotFoundError, ValidationError
from milguard.schemas import Achievement, LearningModule, ProgressPatch, UserProgress
from milguard.storage.base import Storage

LOCKED = "locked"
NOT_STARTED = "not_started"
IN_PROGRESS = "in_progress"
COMPLETED = "completed"


# ---------------------------------------------------------------------------
# Derived state
# ---------------------------------------------------------------------------

def module_state(unlocked: bool, progress: Optional[UserProgress]) -> str:
    if progress is not None and progress.completed:
        return COMPLETED
    if not unlocked:
        return LOCKED
    if progress is None or progress.progress <= 0:
        return NOT_STARTED
    return IN_PROGRESS


def unlocked_module_ids(modules: list[LearningModule], progress_by_module: dict[str, UserProgress]) -> set[str]:
    """*modules* must be the active modules sorted by order."""
    unlocked = set()
    previous: Optional[LearningModule] = None
    for module in modules:
        if previous is None:
            unlocked.add(module.id)
        else:
            prev_progress = progress_by_module.get(previous.id)
            if prev_progress is not None and prev_progress.completed:
                unlocked.add(module.id)
        previous = module
    return unlocked


def is_module_unlocked(storage: Storage, user_id: str, module_id: str) -> bool:
    modules = storage.get_learning_modules()
    progress_by_module = {p.module_id: p for p in storage.get_user_progress(user_id)}
    return module_id in unlocked_module_ids(modules, progress_by_module)


def learning_path(storage: Storage, user_id: Optional[str]) -> list[dict]:
    """Ordered modules with the caller's progress, unlock flag and state."""
    modules = storage.get_learning_modules()
    progress_by_module = {p.module_id: p for p in storage.get_user_progress(user_id)} if user_id else {}
    unlocked = unlocked_module_ids(modules, progress_by_module)

    path = []
    for module in modules:
        progress = progress_by_module.get(module.id)
        is_unlocked = module.id in unlocked
        path.append({
            "module": module.to_json(),
            "progress": progress.to_json() if progress else None,
            "unlocked": is_unlocked,
            "state": module_state(is_unlocked, progress),
        })
    return path


def overall_completion(storage: Storage, user_id: str) -> dict:
    modules = storage.get_learning_modules()
    active_ids = {m.id for m in modules}
    completed = sum(
        1 for p in storage.get_user_progress(user_id)
        if p.completed and p.module_id in active_ids
    )
    total = len(active_ids)
    fraction = completed / total if total else 0.0
    return {
        "completedModules": completed,
        "totalModules": total,
        "fraction": fraction,
        "percentage": round(fraction * 100),
    }


# ---------------------------------------------------------------------------
# Updates
# ---------------------------------------------------------------------------

def _active_module(storage: Storage, module_id: str) -> LearningModule:
    module = storage.get_learning_module(module_id)
    if module is None or not module.is_active:
        raise NotFoundError("Learning module not found")
    return module


def update_progress(
    storage: Storage,
    evaluator: AchievementEvaluator,
    user_id: str,
    module_id: str,
    progress: Optional[float],
    completed: Optional[bool] = None,
    enforce_lock: bool = ENFORCE_MODULE_LOCK,
) -> tuple[UserProgress, list[Achievement]]:
    """
    Upsert the (user, module) progress row.
    Returns (row, newly earned achievements).
    """
    module = _active_module(storage, module_id)

    if completed:
        progress = 1.0
    elif progress is None:
        raise ValidationError("progress is required unless completed is true")
    elif not 0.0 <= progress <= 1.0:
        raise ValidationError("progress must be between 0 and 1")

    if enforce_lock and not is_module_unlocked(storage, user_id, module.id):
        raise ModuleLockedError(f"Module '{module.title}' is locked; complete the previous module first")

    row, was_completed = storage.upsert_progress(
        user_id, module.id, ProgressPatch(progress=progress, completed=completed)
    )
    print(f"[PROGRESS] user={user_id} module={module.order}:'{module.title}' "
          f"progress={row.progress:.2f} completed={row.completed}", flush=True)

    earned: list[Achievement] = []
    if row.completed and not was_completed:
        earned = evaluator.on_module_completed(user_id, module.id)
    return row, earned


def advance_section(
    storage: Storage,
    evaluator: AchievementEvaluator,
    user_id: str,
    module_id: str,
    section_index: int,
    enforce_lock: bool = ENFORCE_MODULE_LOCK,
) -> tuple[UserProgress, list[Achievement]]:
    """
    The user finished section *section_index* (0-based) and moves on.
    Moving past the last section completes the module.
    """
    module = _active_module(storage, module_id)
    sections = module.content.sections
    if section_index < 0 or (sections and section_index >= len(sections)):
        raise ValidationError("sectionIndex out of range")

    if not sections or section_index == len(sections) - 1:
        return update_progress(storage, evaluator, user_id, module.id, 1.0, completed=True,
                               enforce_lock=enforce_lock)
    fraction = (section_index + 1) / len(sections)
    return update_progress(storage, evaluator, user_id, module.id, fraction, enforce_lock=enforce_lock)
