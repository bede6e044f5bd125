from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.orm import Session

from projects import store
from projects.store import MAX_PROJECT_DEPTH


@dataclass(frozen=True)
class HierarchyCheck:
    valid: bool
    error: str | None = None


VALID = HierarchyCheck(valid=True)


def validate_hierarchy(
    db: Session,
    project_id: int | None,
    proposed_parent_id: int | None,
    campaign_id: int,
) -> HierarchyCheck:
    # project_id is None for a project that does not exist yet.
    if proposed_parent_id is None:
        return VALID

    parent = store.find_by_id(db, proposed_parent_id)
    if parent is None or parent.is_deleted:
        return HierarchyCheck(valid=False, error="Parent project not found")

    if parent.campaign_id != campaign_id:
        return HierarchyCheck(valid=False, error="Parent project must be in same campaign")

    if project_id is not None and project_id == proposed_parent_id:
        return HierarchyCheck(valid=False, error="Project cannot be its own parent")

    if project_id is not None:
        ancestors = store.get_ancestors(db, proposed_parent_id, include_deleted=True)
        if any(ancestor.id == project_id for ancestor in ancestors):
            return HierarchyCheck(
                valid=False,
                error="Circular reference detected: project cannot be parent of its ancestor",
            )

    depth = store.get_project_depth(db, proposed_parent_id)
    # A moved project brings its whole subtree along.
    height = store.get_subtree_height(db, project_id) if project_id is not None else 0
    if depth + 1 + height > MAX_PROJECT_DEPTH:
        return HierarchyCheck(
            valid=False,
            error=f"Maximum project depth exceeded ({MAX_PROJECT_DEPTH} levels)",
        )

    return VALID
