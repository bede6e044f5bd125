from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session

from models import CampaignProject, HistoryAction
from projects import store

logger = logging.getLogger(__name__)


class ProgressError(ValueError):
    pass


@dataclass(frozen=True)
class AggregateProgress:
    total_goal_points: int
    total_current_points: int
    total_percentage: int


def progress_percentage(current_points: int, goal_points: int) -> int:
    if goal_points <= 0:
        return 0
    # Round half up without going through floats.
    return (200 * current_points + goal_points) // (2 * goal_points)


def validate_goal(goal_points: int, current_points: int = 0) -> None:
    if goal_points <= 0:
        raise ProgressError("Goal points must be a positive number")
    if goal_points < current_points:
        raise ProgressError(
            f"Goal ({goal_points}) cannot be less than current progress ({current_points})"
        )


def calculate_aggregate_progress(db: Session, project_id: int) -> AggregateProgress | None:
    project = store.find_by_id(db, project_id)
    if project is None:
        return None

    total_goal = project.goal_points
    total_current = project.current_points
    for descendant in store.get_descendants(db, project_id):
        total_goal += descendant.goal_points
        total_current += descendant.current_points

    return AggregateProgress(
        total_goal_points=total_goal,
        total_current_points=total_current,
        total_percentage=progress_percentage(total_current, total_goal),
    )


def update_progress(
    db: Session,
    project_id: int,
    user_id: int,
    new_points: int,
    is_increment: bool = False,
    notes: str | None = None,
) -> CampaignProject | None:
    project = store.find_by_id(db, project_id)
    if project is None:
        return None

    previous_points = project.current_points
    updated_points = previous_points + new_points if is_increment else new_points

    if updated_points > project.goal_points:
        raise ProgressError(
            f"Progress ({updated_points}) cannot exceed goal ({project.goal_points})"
        )
    if updated_points < 0:
        raise ProgressError(f"Progress ({updated_points}) cannot be negative")

    updated = store.update_progress(db, project_id, updated_points)
    store.create_history_entry(
        db,
        project_id=project_id,
        user_id=user_id,
        action=HistoryAction.UPDATED_PROGRESS,
        previous_points=previous_points,
        new_points=updated_points,
        notes=notes,
    )
    return updated


def check_auto_complete(db: Session, project_id: int) -> bool:
    project = store.find_by_id(db, project_id)
    if project is None or project.is_completed:
        return False

    if project.current_points >= project.goal_points:
        store.mark_completed(db, project_id)
        logger.info("Auto-completed project %r (id=%s)", project.name, project_id)
        return True
    return False


def complete_project(
    db: Session, project_id: int, user_id: int, notes: str | None = None
) -> CampaignProject | None:
    project = store.mark_completed(db, project_id)
    if project is None:
        return None
    store.create_history_entry(
        db,
        project_id=project_id,
        user_id=user_id,
        action=HistoryAction.COMPLETED,
        notes=notes or "Project marked as completed",
    )
    return project
