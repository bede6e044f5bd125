from __future__ import annotations

from sqlalchemy.orm import Session

from models import CampaignMember, CampaignRole


def get_user_role(db: Session, campaign_id: int, user_id: int) -> CampaignRole | None:
    row = (
        db.query(CampaignMember.role)
        .filter(CampaignMember.campaign_id == campaign_id, CampaignMember.user_id == user_id)
        .first()
    )
    if row is None:
        return None
    return CampaignRole(row[0])


def is_member(db: Session, campaign_id: int, user_id: int) -> bool:
    return get_user_role(db, campaign_id, user_id) is not None


def is_gm(db: Session, campaign_id: int, user_id: int) -> bool:
    return get_user_role(db, campaign_id, user_id) is CampaignRole.GM


# Memoized role lookups for one caller; build a fresh one per request.
class CampaignRoles:
    def __init__(self, db: Session, user_id: int) -> None:
        self.db = db
        self.user_id = user_id
        self._roles: dict[int, CampaignRole | None] = {}

    def role(self, campaign_id: int) -> CampaignRole | None:
        if campaign_id not in self._roles:
            self._roles[campaign_id] = get_user_role(self.db, campaign_id, self.user_id)
        return self._roles[campaign_id]

    def is_member(self, campaign_id: int) -> bool:
        return self.role(campaign_id) is not None

    def is_gm(self, campaign_id: int) -> bool:
        return self.role(campaign_id) is CampaignRole.GM
