"""
내러티브 컨텍스트 조립
챕터 깊이 -> 스토리 아크 단계, 캐릭터 시트, 이전 챕터/요약을 하나의 번들로
"""

from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from models.story_models import Chapter, CharacterProfile, StoryDetails


@dataclass(frozen=True)
class ArcPhase:
    phase: str
    description: str
    ending_probability: float


@dataclass(frozen=True)
class CharacterSheet:
    """프롬프트용 캐릭터 정보 (name 외에는 모두 선택)"""
    name: str
    age: Optional[str] = None
    personality: Optional[str] = None
    background: Optional[str] = None


@dataclass
class ContextBundle:
    story: StoryDetails
    depth: int
    arc: ArcPhase
    characters: List[CharacterSheet] = field(default_factory=list)
    previous_title: Optional[str] = None
    previous_content: Optional[str] = None
    previous_summary: Optional[str] = None
    current_path: Optional[str] = None

    @property
    def is_first_chapter(self) -> bool:
        return self.previous_content is None


# (최대 깊이, 단계, 설명, 종료 확률)
ARC_PHASES = [
    (2, "beginning", "Einführung der Charaktere und der Grundsituation", 0.05),
    (5, "development", "Entwicklung der Handlung und Charakterentwicklung", 0.15),
    (8, "climax", "Höhepunkt der Geschichte, wichtige Entscheidungen und Wendungen", 0.35),
]
RESOLUTION_PHASE = ArcPhase(
    "resolution",
    "Auflösung der Geschichte, Zeit für ein befriedigendes Ende",
    0.60,
)


def chapter_depth(path: Optional[str]) -> int:
    """path 세그먼트 개수 ("1-2-3" = 3), 비어있으면 1"""
    if not path:
        return 1
    return len(path.split("-"))


def story_arc_phase(depth: int) -> ArcPhase:
    for max_depth, phase, description, probability in ARC_PHASES:
        if depth <= max_depth:
            return ArcPhase(phase, description, probability)
    return RESOLUTION_PHASE


def to_character_sheet(character) -> CharacterSheet:
    return CharacterSheet(
        name=character.name,
        age=getattr(character, "age", None) or None,
        personality=getattr(character, "personality", None) or None,
        background=getattr(character, "background", None) or None,
    )


def build_context(
    story: StoryDetails,
    chapter: Optional[Chapter],
    characters: Sequence[CharacterProfile],
) -> ContextBundle:
    """chapter 가 None 이면 첫 챕터 모드, 깊이는 이어갈 챕터의 path 기준"""
    depth = chapter_depth(chapter.path if chapter is not None else None)

    bundle = ContextBundle(
        story=story,
        depth=depth,
        arc=story_arc_phase(depth),
        characters=[to_character_sheet(c) for c in characters],
    )

    if chapter is not None:
        bundle.previous_title = chapter.title
        bundle.previous_content = chapter.content
        bundle.previous_summary = chapter.summary
        bundle.current_path = chapter.path

    return bundle
