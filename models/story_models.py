"""
스토리 트리 도메인 모델
JSON 직렬화는 camelCase (narrativeStyle, parentId, isRoot ...)
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

ChapterLength = Literal["100-200", "200-300", "300-400"]

DEFAULT_CHAPTER_LENGTH = "100-200"
DEFAULT_TEMPERATURE = 5
INITIAL_CHAPTER_PROMPT = "initial chapter"

STORY_ATTRIBUTE_FIELDS = (
    "title",
    "genre",
    "narrative_style",
    "setting",
    "target_audience",
    "main_character",
)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CharacterProfile(CamelModel):
    """캐릭터 입력/생성 결과 (age/personality/background 는 각각 선택)"""
    name: str = Field(..., min_length=1, description="캐릭터 이름")
    age: Optional[str] = Field(None, description="나이 (자유 텍스트)")
    personality: Optional[str] = Field(None, description="성격")
    background: Optional[str] = Field(None, description="배경")

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name must not be empty")
        return v

    @field_validator("age", mode="before")
    @classmethod
    def age_as_text(cls, v):
        # 생성 백엔드가 숫자로 돌려주는 경우가 있음
        if isinstance(v, (int, float)):
            return str(v)
        return v


class StoryDetails(CamelModel):
    title: Optional[str] = None
    genre: Optional[str] = None
    narrative_style: Optional[str] = None
    setting: Optional[str] = None
    target_audience: Optional[str] = None
    main_character: Optional[str] = None
    chapter_length: ChapterLength = DEFAULT_CHAPTER_LENGTH
    temperature: int = Field(DEFAULT_TEMPERATURE, ge=1, le=9, description="창의성 (1-9)")

    def missing_fields(self) -> List[str]:
        return [name for name in STORY_ATTRIBUTE_FIELDS if not getattr(self, name)]


class StoryDetailsWithCharacters(StoryDetails):
    characters: Optional[List[CharacterProfile]] = None


class Story(StoryDetails):
    id: int
    created_at: datetime


class Chapter(CamelModel):
    id: int
    story_id: int
    parent_id: Optional[int] = None
    title: str
    content: str
    summary: Optional[str] = None
    prompt: Optional[str] = None
    is_root: int = 0
    is_ending: int = 0
    path: Optional[str] = None
    created_at: datetime


class Character(CamelModel):
    id: int
    story_id: int
    name: str
    age: Optional[str] = None
    personality: Optional[str] = None
    background: Optional[str] = None
    created_at: datetime


class ContinuationOption(CamelModel):
    id: int
    chapter_id: int
    title: str
    preview: str
    prompt: str


class NewChapter(CamelModel):
    """create_chapter 입력 (id/path 는 저장소가 부여)"""
    story_id: int
    parent_id: Optional[int] = None
    title: str
    content: str
    summary: Optional[str] = None
    prompt: Optional[str] = None
    is_root: int = 0
    is_ending: int = 0


class NewCharacter(CamelModel):
    story_id: int
    name: str
    age: Optional[str] = None
    personality: Optional[str] = None
    background: Optional[str] = None


class NewContinuationOption(CamelModel):
    chapter_id: int
    title: str
    preview: str
    prompt: str
