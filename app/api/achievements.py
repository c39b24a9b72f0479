"""Achievement (badge definition) endpoints.

POST /api/achievements                             # define an achievement for an issuer
GET  /api/achievements/{id}                        # Open Badges Achievement JSON
"""

from __future__ import annotations

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from app.api.dependencies import Services, get_services
from app.models.achievement import Achievement, Alignment, Criteria, Skill
from app.services.credential_builder import achievement_object

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/achievements", tags=["achievements"])


class AlignmentIn(BaseModel):
    target_name: str
    target_url: str
    target_description: str | None = None
    target_framework: str | None = None
    target_code: str | None = None


class SkillIn(BaseModel):
    name: str
    description: str | None = None


class AchievementCreateIn(BaseModel):
    name: str = Field(min_length=1)
    description: str = ""
    creator_id: int
    criteria_narrative: str | None = None
    criteria_url: str | None = None
    alignments: list[AlignmentIn] = Field(default_factory=list)
    skills: list[SkillIn] = Field(default_factory=list)
    image_url: str | None = None
    published: bool = True


@router.post("", status_code=status.HTTP_201_CREATED)
def create_achievement(
    payload: AchievementCreateIn,
    services: Annotated[Services, Depends(get_services)],
) -> dict[str, Any]:
    if services.store.profiles.get_by_id(payload.creator_id) is None:
        logger.warning("Achievement rejected, creator %d not found", payload.creator_id)
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Issuer not found"
        )

    criteria = None
    if payload.criteria_narrative or payload.criteria_url:
        criteria = Criteria(narrative=payload.criteria_narrative, url=payload.criteria_url)

    achievement = Achievement.new(
        name=payload.name,
        description=payload.description,
        creator_id=payload.creator_id,
        criteria=criteria,
        alignments=tuple(Alignment(**a.model_dump()) for a in payload.alignments),
        skills=tuple(Skill(**s.model_dump()) for s in payload.skills),
        image_url=payload.image_url,
        published=payload.published,
    )
    achievement = services.store.achievements.add(achievement)
    logger.info("Created achievement id=%d creator=%d", achievement.id, payload.creator_id)
    return achievement_object(achievement, services.base_url)


@router.get("/{achievement_id}")
def get_achievement(
    achievement_id: int,
    services: Annotated[Services, Depends(get_services)],
) -> dict[str, Any]:
    achievement = services.store.achievements.get_by_id(achievement_id)
    if achievement is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Achievement not found"
        )
    return achievement_object(achievement, services.base_url)
