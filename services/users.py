"""User lookups shared by the auth, account and invite flows.

Emails are compared through ``lower(email)`` so rows stored before
canonicalization still match; every new write stores the lower-cased form.
"""
from __future__ import annotations
import re
from typing import Optional
from sqlalchemy import func
from sqlalchemy.orm import Session
from models.user import User


def canonical_email(email: str) -> str:
    return email.strip().lower()


def extract_name_from_email(email: str) -> str:
    """Derive a display name from the local part of an email address"""
    name_part = email.split('@')[0]
    name_part = re.sub(r'[._+-]', ' ', name_part)
    return ' '.join(word.capitalize() for word in name_part.split()) or email


def get_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(func.lower(User.email) == canonical_email(email)).first()


def get_user_by_id(db: Session, user_id: str) -> Optional[User]:
    return db.query(User).filter(User.id == user_id).first()


def create_user(db: Session, email: str, name: str | None = None, is_realtor: bool = False) -> User:
    email = canonical_email(email)
    user = User(
        email=email,
        name=(name or "").strip() or extract_name_from_email(email),
        is_realtor=is_realtor,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user
