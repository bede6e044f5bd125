from __future__ import annotations

from sqlalchemy.orm import Session

from models import Character


def find_character_by_id(db: Session, character_id: int) -> Character | None:
    character = db.get(Character, character_id)
    if character is None or character.is_deleted:
        return None
    return character


def create_character(
    db: Session,
    *,
    owner_user_id: int,
    name: str,
    campaign_id: int | None = None,
    character_json: dict | None = None,
) -> Character:
    character = Character(
        owner_user_id=owner_user_id,
        campaign_id=campaign_id,
        name=name,
        character_json=character_json or {},
    )
    db.add(character)
    db.commit()
    db.refresh(character)
    return character
