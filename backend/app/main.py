import logging
import os
from typing import Literal

from fastapi import Body, Depends, FastAPI, Header, HTTPException, Response
from pydantic import BaseModel

from app.log_config import configure_logging
from campaigns.characters import create_character, find_character_by_id
from campaigns.roles import CampaignRoles
from campaigns.service import add_member, create_campaign, find_campaign
from db import SessionLocal, check_db_connection
from identity.client import AuthenticationError
from identity.users import AuthenticatedUser, verify_and_upsert_user
from models import CampaignRole, HistoryAction, User
from projects import store
from projects.hierarchy import validate_hierarchy
from projects.permissions import (
    can_create_project,
    can_edit_project,
    can_view_campaign,
    can_view_character_projects,
    can_view_project,
)
from projects.progress import (
    ProgressError,
    calculate_aggregate_progress,
    check_auto_complete,
    complete_project,
    update_progress,
    validate_goal,
)
from projects.serializers import (
    serialize_aggregate,
    serialize_history_entry,
    serialize_project,
)
from projects.store import NewProject, ProjectPatch
from projects.tree import build_project_tree

configure_logging(os.getenv("LOG_LEVEL", "INFO"))
logger = logging.getLogger(__name__)

app = FastAPI(
    title="forgesteel-campaigns API",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)


def current_user(authorization: str | None = Header(default=None)) -> AuthenticatedUser:
    if not authorization:
        raise HTTPException(status_code=401, detail="No Authorization header provided")
    if not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=401,
            detail="Invalid Authorization header format. Expected: Bearer <token>",
        )
    token = authorization[len("Bearer "):].strip()
    if not token:
        raise HTTPException(status_code=401, detail="No token provided")
    with SessionLocal() as db:
        try:
            user = verify_and_upsert_user(db, token)
        except AuthenticationError as exc:
            logger.warning("Token verification failed: %s", exc)
            raise HTTPException(status_code=401, detail=str(exc)) from exc
    return user


@app.get("/api/hello")
def hello() -> dict:
    return {"message": "Hello from forgesteel-campaigns"}


@app.get("/health")
def health() -> dict:
    try:
        check_db_connection()
    except Exception as exc:
        raise HTTPException(status_code=503, detail="Database unavailable") from exc
    return {"status": "ok"}


class CampaignCreateRequest(BaseModel):
    name: str
    description: str | None = None


class CampaignMemberRequest(BaseModel):
    user_id: int
    role: Literal["gm", "player"] = "player"


class CharacterCreateRequest(BaseModel):
    name: str
    campaign_id: int | None = None
    character: dict | None = None


class ProjectCreateRequest(BaseModel):
    character_id: int
    name: str
    description: str | None = None
    goal_points: int
    current_points: int | None = None
    parent_project_id: int | None = None


class ProjectUpdateRequest(BaseModel):
    name: str | None = None
    description: str | None = None
    goal_points: int | None = None
    parent_project_id: int | None = None


class ProjectProgressRequest(BaseModel):
    current_points: int | None = None
    increment_by: int | None = None
    notes: str | None = None


class ProjectCompleteRequest(BaseModel):
    notes: str | None = None


@app.post("/campaigns", status_code=201)
def create_campaign_endpoint(
    payload: CampaignCreateRequest, user: AuthenticatedUser = Depends(current_user)
) -> dict:
    name = payload.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Campaign name is required")
    with SessionLocal() as db:
        campaign = create_campaign(
            db, user_id=user.id, name=name, description=payload.description
        )
        return {
            "id": campaign.id,
            "name": campaign.name,
            "description": campaign.description,
            "created_by_user_id": campaign.created_by_user_id,
        }


@app.post("/campaigns/{campaign_id}/members")
def add_campaign_member(
    campaign_id: int,
    payload: CampaignMemberRequest,
    user: AuthenticatedUser = Depends(current_user),
) -> dict:
    with SessionLocal() as db:
        if find_campaign(db, campaign_id) is None:
            raise HTTPException(status_code=404, detail="Campaign not found")
        roles = CampaignRoles(db, user.id)
        if not user.is_admin and not roles.is_gm(campaign_id):
            raise HTTPException(
                status_code=403, detail="Only a GM can manage campaign members"
            )
        if db.get(User, payload.user_id) is None:
            raise HTTPException(status_code=404, detail="User not found")
        member = add_member(
            db,
            campaign_id=campaign_id,
            user_id=payload.user_id,
            role=CampaignRole(payload.role),
        )
        return {
            "campaign_id": member.campaign_id,
            "user_id": member.user_id,
            "role": member.role,
        }


@app.post("/characters", status_code=201)
def create_character_endpoint(
    payload: CharacterCreateRequest, user: AuthenticatedUser = Depends(current_user)
) -> dict:
    name = payload.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Character name is required")
    with SessionLocal() as db:
        if payload.campaign_id is not None:
            if find_campaign(db, payload.campaign_id) is None:
                raise HTTPException(status_code=404, detail="Campaign not found")
            if not can_view_campaign(db, user.id, payload.campaign_id, user.is_admin):
                raise HTTPException(
                    status_code=403, detail="You are not a member of this campaign"
                )
        character = create_character(
            db,
            owner_user_id=user.id,
            name=name,
            campaign_id=payload.campaign_id,
            character_json=payload.character,
        )
        return {
            "id": character.id,
            "owner_user_id": character.owner_user_id,
            "campaign_id": character.campaign_id,
            "name": character.name,
        }


@app.get("/characters/{character_id}/projects")
def list_character_projects(
    character_id: int, user: AuthenticatedUser = Depends(current_user)
) -> dict:
    with SessionLocal() as db:
        if not can_view_character_projects(db, user.id, character_id, user.is_admin):
            raise HTTPException(status_code=404, detail="Character not found or access denied")
        records = store.find_by_character(db, character_id)
        return {
            "count": len(records),
            "projects": [serialize_project(record) for record in records],
        }


@app.get("/campaigns/{campaign_id}/projects")
def list_campaign_projects(
    campaign_id: int,
    include_deleted: bool = False,
    include_completed: bool = True,
    flat: bool = False,
    user: AuthenticatedUser = Depends(current_user),
) -> dict:
    with SessionLocal() as db:
        if not can_view_campaign(db, user.id, campaign_id, user.is_admin):
            logger.info(
                "User %s is not a member of campaign %s; returning no projects",
                user.id,
                campaign_id,
            )
            return {"count": 0, "projects": []}
        records = store.find_by_campaign(db, campaign_id, include_deleted=include_deleted)
        if not include_completed:
            records = [record for record in records if not record.is_completed]
        projects = [serialize_project(record) for record in records]
        if not flat:
            projects = build_project_tree(projects)
        return {"count": len(projects), "projects": projects}


@app.get("/campaigns/{campaign_id}/projects/{project_id}")
def get_project(
    campaign_id: int,
    project_id: int,
    include_history: bool = False,
    include_children: bool = False,
    user: AuthenticatedUser = Depends(current_user),
) -> dict:
    with SessionLocal() as db:
        if not can_view_project(db, user.id, project_id, user.is_admin):
            raise HTTPException(status_code=404, detail="Project not found or access denied")
        project = store.find_by_id(db, project_id)
        if project is None or project.campaign_id != campaign_id:
            raise HTTPException(status_code=404, detail="Project not found")

        response = serialize_project(project)
        if include_history:
            response["history"] = [
                serialize_history_entry(entry) for entry in store.get_history(db, project_id)
            ]
        if include_children:
            response["children"] = [
                serialize_project(child) for child in store.get_descendants(db, project_id)
            ]
        response["aggregate_progress"] = serialize_aggregate(
            calculate_aggregate_progress(db, project_id)
        )
        return response


@app.post("/campaigns/{campaign_id}/projects", status_code=201)
def create_project(
    campaign_id: int,
    payload: ProjectCreateRequest,
    user: AuthenticatedUser = Depends(current_user),
) -> dict:
    name = payload.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Project name is required")
    try:
        validate_goal(payload.goal_points)
    except ProgressError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if payload.current_points is not None:
        if payload.current_points < 0:
            raise HTTPException(
                status_code=400, detail="Current points must be a non-negative number"
            )
        if payload.current_points > payload.goal_points:
            raise HTTPException(
                status_code=400, detail="Current points cannot exceed goal points"
            )

    with SessionLocal() as db:
        if find_campaign(db, campaign_id) is None:
            raise HTTPException(status_code=404, detail="Campaign not found")
        if not can_create_project(db, user.id, payload.character_id, user.is_admin):
            raise HTTPException(
                status_code=403,
                detail="You do not have permission to create projects for this character",
            )
        character = find_character_by_id(db, payload.character_id)
        if character is None or character.campaign_id != campaign_id:
            raise HTTPException(
                status_code=400, detail="Character does not belong to this campaign"
            )
        check = validate_hierarchy(db, None, payload.parent_project_id, campaign_id)
        if not check.valid:
            raise HTTPException(status_code=400, detail=check.error or "Invalid project hierarchy")

        project = store.create(
            db,
            NewProject(
                campaign_id=campaign_id,
                parent_project_id=payload.parent_project_id,
                character_id=payload.character_id,
                name=name,
                description=payload.description,
                goal_points=payload.goal_points,
                current_points=payload.current_points,
                created_by_user_id=user.id,
            ),
        )
        # Not transactional with the insert above; a crash here leaves no "created" entry.
        store.create_history_entry(
            db,
            project_id=project.id,
            user_id=user.id,
            action=HistoryAction.CREATED,
            notes="Project created",
        )
        return serialize_project(project)


@app.put("/campaigns/{campaign_id}/projects/{project_id}")
def update_project(
    campaign_id: int,
    project_id: int,
    payload: ProjectUpdateRequest,
    user: AuthenticatedUser = Depends(current_user),
) -> dict:
    provided = payload.model_fields_set
    with SessionLocal() as db:
        if not can_edit_project(db, user.id, project_id, user.is_admin):
            raise HTTPException(
                status_code=403, detail="You do not have permission to edit this project"
            )
        project = store.find_by_id(db, project_id)
        if project is None or project.campaign_id != campaign_id:
            raise HTTPException(status_code=404, detail="Project not found")

        changes: dict = {}
        if "parent_project_id" in provided:
            check = validate_hierarchy(db, project_id, payload.parent_project_id, campaign_id)
            if not check.valid:
                raise HTTPException(
                    status_code=400, detail=check.error or "Invalid project hierarchy"
                )
            changes["parent_project_id"] = payload.parent_project_id
        if "name" in provided:
            name = (payload.name or "").strip()
            if not name:
                raise HTTPException(status_code=400, detail="Project name cannot be empty")
            changes["name"] = name
        if "description" in provided:
            changes["description"] = payload.description
        previous_goal = project.goal_points
        if "goal_points" in provided:
            if payload.goal_points is None:
                raise HTTPException(
                    status_code=400, detail="Goal points must be a positive number"
                )
            try:
                validate_goal(payload.goal_points, project.current_points)
            except ProgressError as exc:
                raise HTTPException(status_code=400, detail=str(exc)) from exc
            changes["goal_points"] = payload.goal_points

        updated = store.update(db, project_id, ProjectPatch(**changes))
        if updated is None:
            raise HTTPException(status_code=404, detail="Project not found")

        if changes.get("goal_points", previous_goal) != previous_goal:
            store.create_history_entry(
                db,
                project_id=project_id,
                user_id=user.id,
                action=HistoryAction.UPDATED_GOAL,
                notes=f"Goal points updated ({previous_goal} -> {changes['goal_points']})",
            )
        return serialize_project(updated)


@app.patch("/campaigns/{campaign_id}/projects/{project_id}/progress")
def update_project_progress(
    campaign_id: int,
    project_id: int,
    payload: ProjectProgressRequest,
    user: AuthenticatedUser = Depends(current_user),
) -> dict:
    if payload.current_points is not None:
        if payload.current_points < 0:
            raise HTTPException(
                status_code=400, detail="Current points must be a non-negative number"
            )
        new_points, is_increment = payload.current_points, False
    elif payload.increment_by is not None:
        new_points, is_increment = payload.increment_by, True
    else:
        raise HTTPException(
            status_code=400, detail="Either current_points or increment_by must be provided"
        )

    with SessionLocal() as db:
        if not can_edit_project(db, user.id, project_id, user.is_admin):
            raise HTTPException(
                status_code=403, detail="You do not have permission to update this project"
            )
        project = store.find_by_id(db, project_id)
        if project is None or project.campaign_id != campaign_id:
            raise HTTPException(status_code=404, detail="Project not found")

        try:
            updated = update_progress(
                db, project_id, user.id, new_points, is_increment, payload.notes
            )
        except ProgressError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        if updated is None:
            raise HTTPException(status_code=404, detail="Project not found")

        check_auto_complete(db, project_id)
        return serialize_project(store.find_by_id(db, project_id))


@app.post("/campaigns/{campaign_id}/projects/{project_id}/complete")
def complete_project_endpoint(
    campaign_id: int,
    project_id: int,
    payload: ProjectCompleteRequest | None = Body(default=None),
    user: AuthenticatedUser = Depends(current_user),
) -> dict:
    with SessionLocal() as db:
        if not can_edit_project(db, user.id, project_id, user.is_admin):
            raise HTTPException(
                status_code=403, detail="You do not have permission to complete this project"
            )
        project = store.find_by_id(db, project_id)
        if project is None or project.campaign_id != campaign_id:
            raise HTTPException(status_code=404, detail="Project not found")

        notes = payload.notes if payload is not None else None
        completed = complete_project(db, project_id, user.id, notes)
        if completed is None:
            raise HTTPException(status_code=404, detail="Project not found")
        return serialize_project(completed)


@app.delete("/campaigns/{campaign_id}/projects/{project_id}", status_code=204)
def delete_project(
    campaign_id: int,
    project_id: int,
    user: AuthenticatedUser = Depends(current_user),
) -> Response:
    with SessionLocal() as db:
        if not can_edit_project(db, user.id, project_id, user.is_admin):
            raise HTTPException(
                status_code=403, detail="You do not have permission to delete this project"
            )
        project = store.find_by_id(db, project_id)
        if project is None or project.campaign_id != campaign_id:
            raise HTTPException(status_code=404, detail="Project not found")

        if not store.soft_delete(db, project_id):
            raise HTTPException(status_code=404, detail="Project not found")
        store.create_history_entry(
            db,
            project_id=project_id,
            user_id=user.id,
            action=HistoryAction.DELETED,
            notes="Project deleted",
        )
    return Response(status_code=204)
