from __future__ import annotations

from datetime import datetime
from typing import Any

from models import CampaignProject, CampaignProjectHistory
from projects.progress import AggregateProgress, progress_percentage


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def serialize_project(project: CampaignProject) -> dict[str, Any]:
    creator = project.creator
    return {
        "id": project.id,
        "campaign_id": project.campaign_id,
        "parent_project_id": project.parent_project_id,
        "character_id": project.character_id,
        "character_name": project.character_name,
        "name": project.name,
        "description": project.description,
        "goal_points": project.goal_points,
        "current_points": project.current_points,
        "progress_percentage": progress_percentage(project.current_points, project.goal_points),
        "is_completed": bool(project.is_completed),
        "is_deleted": bool(project.is_deleted),
        "created_by": {
            "id": project.created_by_user_id,
            "email": creator.email if creator is not None else None,
            "display_name": creator.display_name if creator is not None else None,
        },
        "created_at": _iso(project.created_at),
        "updated_at": _iso(project.updated_at),
        "completed_at": _iso(project.completed_at),
    }


def serialize_history_entry(entry: CampaignProjectHistory) -> dict[str, Any]:
    user = entry.user
    return {
        "id": entry.id,
        "project_id": entry.project_id,
        "user_id": entry.user_id,
        "user_email": user.email if user is not None else None,
        "user_display_name": user.display_name if user is not None else None,
        "action": entry.action,
        "previous_points": entry.previous_points,
        "new_points": entry.new_points,
        "notes": entry.notes,
        "created_at": _iso(entry.created_at),
    }


def serialize_aggregate(aggregate: AggregateProgress | None) -> dict[str, int] | None:
    if aggregate is None:
        return None
    return {
        "total_goal_points": aggregate.total_goal_points,
        "total_current_points": aggregate.total_current_points,
        "total_percentage": aggregate.total_percentage,
    }
