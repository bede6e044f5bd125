from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from sqlalchemy.orm import Session

from identity.client import AuthenticationError, IdentityClient, VerifiedIdentity
from models import User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthenticatedUser:
    id: int
    firebase_uid: str
    email: str
    display_name: str | None
    is_admin: bool


def admin_emails() -> set[str]:
    raw = os.getenv("ADMIN_EMAILS", "")
    return {item.strip().lower() for item in raw.split(",") if item.strip()}


def is_admin_email(email: str | None) -> bool:
    if not email:
        return False
    return email.strip().lower() in admin_emails()


def _normalize_display_name(name: str | None) -> str | None:
    if not name:
        return None
    trimmed = name.strip()
    return trimmed or None


def get_or_create_user(db: Session, identity: VerifiedIdentity) -> AuthenticatedUser:
    if not identity.email:
        raise AuthenticationError("User email is required for authentication")

    display_name = _normalize_display_name(identity.display_name)
    user = db.query(User).filter(User.firebase_uid == identity.uid).first()

    if user is None:
        # Placeholder users (added by e-mail before first sign-in) get linked here.
        user = db.query(User).filter(User.email == identity.email).first()
        if user is not None:
            logger.info("Linking existing user %s to identity %s", identity.email, identity.uid)
            user.firebase_uid = identity.uid
            if display_name:
                user.display_name = display_name
            db.commit()
            db.refresh(user)

    if user is None:
        logger.info("First login, creating user %s", identity.email)
        user = User(firebase_uid=identity.uid, email=identity.email, display_name=display_name)
        db.add(user)
        db.commit()
        db.refresh(user)
    else:
        changed = False
        if user.email != identity.email:
            user.email = identity.email
            changed = True
        if display_name and user.display_name != display_name:
            user.display_name = display_name
            changed = True
        if changed:
            db.commit()
            db.refresh(user)
            logger.info("Updated profile for user %s", user.email)

    is_admin = is_admin_email(user.email)
    if is_admin:
        logger.info("Admin access granted: %s", user.email)

    return AuthenticatedUser(
        id=user.id,
        firebase_uid=user.firebase_uid,
        email=user.email,
        display_name=user.display_name,
        is_admin=is_admin,
    )


def verify_and_upsert_user(
    db: Session, raw_credential: str, client: IdentityClient | None = None
) -> AuthenticatedUser:
    identity = (client or IdentityClient()).verify_token(raw_credential)
    return get_or_create_user(db, identity)
