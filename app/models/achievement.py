from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Criteria:
    narrative: str | None = None
    url: str | None = None


@dataclass(frozen=True, slots=True)
class Alignment:
    target_name: str
    target_url: str
    target_description: str | None = None
    target_framework: str | None = None
    target_code: str | None = None


@dataclass(frozen=True, slots=True)
class Skill:
    name: str
    description: str | None = None


@dataclass(frozen=True, slots=True)
class Achievement:
    """Badge definition, the stored form of an Open Badges Achievement."""

    id: int
    name: str
    description: str
    creator_id: int | None = None
    criteria: Criteria | None = None
    alignments: tuple[Alignment, ...] = ()
    skills: tuple[Skill, ...] = ()
    image_url: str | None = None
    achievement_id: str | None = None  # external id, set for imported badges
    achievement_type: str = "Achievement"
    published: bool = True

    @staticmethod
    def new(
        *,
        name: str,
        description: str,
        creator_id: int | None = None,
        criteria: Criteria | None = None,
        alignments: tuple[Alignment, ...] = (),
        skills: tuple[Skill, ...] = (),
        image_url: str | None = None,
        achievement_id: str | None = None,
        published: bool = True,
    ) -> Achievement:
        return Achievement(
            id=0,
            name=name,
            description=description,
            creator_id=creator_id,
            criteria=criteria,
            alignments=alignments,
            skills=skills,
            image_url=image_url,
            achievement_id=achievement_id,
            published=published,
        )
