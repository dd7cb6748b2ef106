from __future__ import annotations

import uuid

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.models.user import User


XP_PER_LEVEL = 100

BADGE_THRESHOLDS: tuple[tuple[int, str], ...] = (
    (10, "first_steps"),
    (50, "rising_star"),
    (100, "dedicated_learner"),
    (250, "quiz_master"),
    (500, "expert"),
    (1000, "legend"),
)


def level_for_xp(xp: int) -> int:
    if xp < 0:
        xp = 0
    return (xp // XP_PER_LEVEL) + 1


def xp_to_next_level(xp: int) -> int:
    xp = max(0, int(xp))
    return level_for_xp(xp) * XP_PER_LEVEL - xp


def badges_for_xp(xp: int) -> list[str]:
    return [name for threshold, name in BADGE_THRESHOLDS if xp >= threshold]


def award_xp(db: Session, *, user_id: uuid.UUID, xp: int) -> None:
    if xp <= 0:
        return
    # atomic increment; concurrent submits must not lose xp
    db.execute(update(User).where(User.id == user_id).values(xp=User.xp + int(xp)))


def profile_progress(user: User) -> dict:
    xp = int(user.xp or 0)
    return {
        "xp": xp,
        "level": level_for_xp(xp),
        "xp_to_next_level": xp_to_next_level(xp),
        "badges": badges_for_xp(xp),
    }
