from __future__ import annotations

from sqlalchemy.orm import Session

from campaigns.characters import find_character_by_id
from campaigns.roles import CampaignRoles
from projects import store

# Admins pass every check. Character owners may create and edit projects for
# their own characters, GMs for any character or project in their campaigns,
# and any campaign member may view that campaign's projects.


def _roles(db: Session, user_id: int, roles: CampaignRoles | None) -> CampaignRoles:
    if roles is not None and roles.user_id == user_id:
        return roles
    return CampaignRoles(db, user_id)


def can_create_project(
    db: Session,
    user_id: int,
    character_id: int,
    is_admin: bool,
    roles: CampaignRoles | None = None,
) -> bool:
    if is_admin:
        return True
    character = find_character_by_id(db, character_id)
    if character is None:
        return False
    if character.owner_user_id == user_id:
        return True
    if character.campaign_id is not None:
        return _roles(db, user_id, roles).is_gm(character.campaign_id)
    return False


def can_edit_project(
    db: Session,
    user_id: int,
    project_id: int,
    is_admin: bool,
    roles: CampaignRoles | None = None,
) -> bool:
    if is_admin:
        return True
    project = store.find_by_id(db, project_id)
    if project is None:
        return False
    character = find_character_by_id(db, project.character_id)
    if character is None:
        return False
    if character.owner_user_id == user_id:
        return True
    return _roles(db, user_id, roles).is_gm(project.campaign_id)


def can_view_project(
    db: Session,
    user_id: int,
    project_id: int,
    is_admin: bool,
    roles: CampaignRoles | None = None,
) -> bool:
    if is_admin:
        return True
    project = store.find_by_id(db, project_id)
    if project is None:
        return False
    return _roles(db, user_id, roles).is_member(project.campaign_id)


def can_view_campaign(
    db: Session,
    user_id: int,
    campaign_id: int,
    is_admin: bool,
    roles: CampaignRoles | None = None,
) -> bool:
    if is_admin:
        return True
    return _roles(db, user_id, roles).is_member(campaign_id)


def can_view_character_projects(
    db: Session,
    user_id: int,
    character_id: int,
    is_admin: bool,
    roles: CampaignRoles | None = None,
) -> bool:
    if is_admin:
        return True
    character = find_character_by_id(db, character_id)
    if character is None:
        return False
    if character.owner_user_id == user_id:
        return True
    if character.campaign_id is not None:
        return _roles(db, user_id, roles).is_member(character.campaign_id)
    return False
