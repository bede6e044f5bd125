from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from models import Campaign, CampaignMember, CampaignRole

logger = logging.getLogger(__name__)


def create_campaign(
    db: Session, *, user_id: int, name: str, description: str | None = None
) -> Campaign:
    campaign = Campaign(name=name, description=description, created_by_user_id=user_id)
    try:
        db.add(campaign)
        db.flush()
        db.add(
            CampaignMember(
                campaign_id=campaign.id,
                user_id=user_id,
                role=CampaignRole.GM.value,
            )
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(campaign)
    logger.info("Created campaign %r (id=%s) with GM user %s", campaign.name, campaign.id, user_id)
    return campaign


def add_member(
    db: Session, *, campaign_id: int, user_id: int, role: CampaignRole = CampaignRole.PLAYER
) -> CampaignMember:
    member = (
        db.query(CampaignMember)
        .filter(CampaignMember.campaign_id == campaign_id, CampaignMember.user_id == user_id)
        .first()
    )
    if member is None:
        member = CampaignMember(campaign_id=campaign_id, user_id=user_id, role=role.value)
        db.add(member)
    else:
        member.role = role.value
    db.commit()
    db.refresh(member)
    return member


def find_campaign(db: Session, campaign_id: int) -> Campaign | None:
    campaign = db.get(Campaign, campaign_id)
    if campaign is None or campaign.is_deleted:
        return None
    return campaign
