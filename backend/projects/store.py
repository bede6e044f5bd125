from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from typing import Any

from sqlalchemy import func
from sqlalchemy.orm import Session

from models import CampaignProject, CampaignProjectHistory, HistoryAction

logger = logging.getLogger(__name__)

MAX_PROJECT_DEPTH = 5


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


@dataclass(frozen=True)
class NewProject:
    campaign_id: int
    character_id: int
    name: str
    goal_points: int
    created_by_user_id: int
    parent_project_id: int | None = None
    description: str | None = None
    current_points: int | None = None


@dataclass(frozen=True)
class ProjectPatch:
    # UNSET leaves a column alone; None clears a nullable one.
    name: str = UNSET
    description: str | None = UNSET
    goal_points: int = UNSET
    current_points: int = UNSET
    parent_project_id: int | None = UNSET

    def changes(self) -> dict[str, Any]:
        return {
            item.name: getattr(self, item.name)
            for item in fields(self)
            if getattr(self, item.name) is not UNSET
        }


def find_by_id(db: Session, project_id: int) -> CampaignProject | None:
    project = db.get(CampaignProject, project_id)
    if project is None:
        logger.debug("Project not found: id=%s", project_id)
    return project


def find_by_campaign(
    db: Session, campaign_id: int, include_deleted: bool = False
) -> list[CampaignProject]:
    query = db.query(CampaignProject).filter(CampaignProject.campaign_id == campaign_id)
    if not include_deleted:
        query = query.filter(CampaignProject.is_deleted.is_(False))
    records = query.order_by(
        CampaignProject.parent_project_id.is_not(None),
        CampaignProject.parent_project_id.asc(),
        CampaignProject.created_at.asc(),
        CampaignProject.id.asc(),
    ).all()
    logger.debug("Found %s projects for campaign %s", len(records), campaign_id)
    return records


def find_by_character(db: Session, character_id: int) -> list[CampaignProject]:
    return (
        db.query(CampaignProject)
        .filter(
            CampaignProject.character_id == character_id,
            CampaignProject.is_deleted.is_(False),
        )
        .order_by(CampaignProject.updated_at.desc(), CampaignProject.id.desc())
        .all()
    )


def create(db: Session, data: NewProject) -> CampaignProject:
    project = CampaignProject(
        campaign_id=data.campaign_id,
        parent_project_id=data.parent_project_id,
        character_id=data.character_id,
        name=data.name,
        description=data.description,
        goal_points=data.goal_points,
        current_points=data.current_points or 0,
        created_by_user_id=data.created_by_user_id,
    )
    db.add(project)
    db.commit()
    db.refresh(project)
    logger.info("Created project %r (id=%s)", project.name, project.id)
    return project


def update(db: Session, project_id: int, patch: ProjectPatch) -> CampaignProject | None:
    project = db.get(CampaignProject, project_id)
    if project is None:
        logger.info("Project not found for update: id=%s", project_id)
        return None
    for name, value in patch.changes().items():
        setattr(project, name, value)
    project.updated_at = func.now()
    db.commit()
    db.refresh(project)
    logger.info("Updated project id=%s", project_id)
    return project


def update_progress(db: Session, project_id: int, current_points: int) -> CampaignProject | None:
    return update(db, project_id, ProjectPatch(current_points=current_points))


def mark_completed(db: Session, project_id: int) -> CampaignProject | None:
    project = db.get(CampaignProject, project_id)
    if project is None:
        return None
    if not project.is_completed:
        project.is_completed = True
        project.completed_at = func.now()
        project.updated_at = func.now()
        db.commit()
        db.refresh(project)
        logger.info("Marked project id=%s completed", project_id)
    return project


def soft_delete(db: Session, project_id: int) -> bool:
    project = db.get(CampaignProject, project_id)
    if project is None:
        logger.info("Project not found for deletion: id=%s", project_id)
        return False
    project.is_deleted = True
    project.updated_at = func.now()
    db.commit()
    logger.info("Soft-deleted project id=%s", project_id)
    return True


def _parent_of(db: Session, project_id: int) -> int | None:
    row = (
        db.query(CampaignProject.parent_project_id)
        .filter(CampaignProject.id == project_id)
        .first()
    )
    return row[0] if row else None


def get_project_depth(db: Session, project_id: int) -> int:
    limit = MAX_PROJECT_DEPTH + 1
    visited = {project_id}
    depth = 0
    current = _parent_of(db, project_id)
    while current is not None:
        if current in visited:
            logger.error(
                "Project hierarchy loop detected above project id=%s at id=%s",
                project_id,
                current,
            )
            return limit
        visited.add(current)
        depth += 1
        if depth >= limit:
            return limit
        current = _parent_of(db, current)
    return depth


def get_ancestors(
    db: Session, project_id: int, include_deleted: bool = False
) -> list[CampaignProject]:
    # Nearest parent first. Deleted rows are walked through either way.
    ancestors: list[CampaignProject] = []
    visited = {project_id}
    start = db.get(CampaignProject, project_id)
    current_id = start.parent_project_id if start is not None else None
    while current_id is not None:
        if current_id in visited:
            logger.error(
                "Project hierarchy loop detected above project id=%s at id=%s",
                project_id,
                current_id,
            )
            break
        visited.add(current_id)
        ancestor = db.get(CampaignProject, current_id)
        if ancestor is None:
            break
        if include_deleted or not ancestor.is_deleted:
            ancestors.append(ancestor)
        current_id = ancestor.parent_project_id
    return ancestors


def get_descendants(db: Session, project_id: int) -> list[CampaignProject]:
    descendants: list[CampaignProject] = []
    visited = {project_id}
    frontier = [project_id]
    while frontier:
        children = (
            db.query(CampaignProject)
            .filter(
                CampaignProject.parent_project_id.in_(frontier),
                CampaignProject.is_deleted.is_(False),
            )
            .order_by(CampaignProject.created_at.asc(), CampaignProject.id.asc())
            .all()
        )
        frontier = []
        for child in children:
            if child.id in visited:
                logger.error(
                    "Project hierarchy loop detected below project id=%s at id=%s",
                    project_id,
                    child.id,
                )
                continue
            visited.add(child.id)
            descendants.append(child)
            frontier.append(child.id)
    return descendants


def get_subtree_height(db: Session, project_id: int) -> int:
    # Deleted rows count: their children still hang off them.
    limit = MAX_PROJECT_DEPTH + 1
    visited = {project_id}
    frontier = [project_id]
    height = 0
    while frontier and height < limit:
        rows = (
            db.query(CampaignProject.id)
            .filter(CampaignProject.parent_project_id.in_(frontier))
            .all()
        )
        frontier = [row[0] for row in rows if row[0] not in visited]
        if not frontier:
            break
        visited.update(frontier)
        height += 1
    return height


def create_history_entry(
    db: Session,
    *,
    project_id: int,
    user_id: int,
    action: HistoryAction | str,
    previous_points: int | None = None,
    new_points: int | None = None,
    notes: str | None = None,
) -> CampaignProjectHistory:
    entry = CampaignProjectHistory(
        project_id=project_id,
        user_id=user_id,
        action=HistoryAction(action).value,
        previous_points=previous_points,
        new_points=new_points,
        notes=notes,
    )
    db.add(entry)
    db.commit()
    db.refresh(entry)
    logger.info("History entry for project id=%s: %s", project_id, entry.action)
    return entry


def get_history(db: Session, project_id: int) -> list[CampaignProjectHistory]:
    return (
        db.query(CampaignProjectHistory)
        .filter(CampaignProjectHistory.project_id == project_id)
        .order_by(CampaignProjectHistory.created_at.desc(), CampaignProjectHistory.id.desc())
        .all()
    )
