from types import SimpleNamespace

import pytest
from sqlalchemy.orm import sessionmaker

from campaigns.characters import create_character
from campaigns.service import add_member, create_campaign
from db import build_engine
from models import Base, CampaignRole, User
from projects import store
from projects.store import NewProject


@pytest.fixture()
def session_factory():
    engine = build_engine("sqlite://")
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    engine.dispose()


@pytest.fixture()
def db(session_factory):
    with session_factory() as session:
        yield session


def make_user(db, uid: str, email: str, display_name: str | None = None) -> User:
    user = User(firebase_uid=uid, email=email, display_name=display_name)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture()
def world(db):
    gm = make_user(db, "uid-gm", "gm@example.com", "Director")
    player = make_user(db, "uid-player", "player@example.com", "Hero")
    outsider = make_user(db, "uid-outsider", "outsider@example.com")

    campaign = create_campaign(db, user_id=gm.id, name="Ashes of Capital")
    add_member(db, campaign_id=campaign.id, user_id=player.id, role=CampaignRole.PLAYER)
    other_campaign = create_campaign(db, user_id=outsider.id, name="Elsewhere")

    gm_character = create_character(
        db, owner_user_id=gm.id, name="Ajax", campaign_id=campaign.id
    )
    player_character = create_character(
        db, owner_user_id=player.id, name="Vera", campaign_id=campaign.id
    )
    outsider_character = create_character(
        db, owner_user_id=outsider.id, name="Nix", campaign_id=other_campaign.id
    )

    return SimpleNamespace(
        gm_id=gm.id,
        player_id=player.id,
        outsider_id=outsider.id,
        campaign_id=campaign.id,
        other_campaign_id=other_campaign.id,
        gm_character_id=gm_character.id,
        player_character_id=player_character.id,
        outsider_character_id=outsider_character.id,
    )


def make_project(
    db,
    world,
    name: str,
    goal_points: int = 10,
    current_points: int | None = None,
    parent_project_id: int | None = None,
    campaign_id: int | None = None,
    character_id: int | None = None,
):
    return store.create(
        db,
        NewProject(
            campaign_id=campaign_id or world.campaign_id,
            character_id=character_id or world.player_character_id,
            name=name,
            goal_points=goal_points,
            current_points=current_points,
            parent_project_id=parent_project_id,
            created_by_user_id=world.player_id,
        ),
    )
