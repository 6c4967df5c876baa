"""
스토리 트리 저장소
StoryStorage 인터페이스 + 메모리 구현 + 팩토리
"""

from abc import ABC, abstractmethod
from datetime import datetime
from itertools import count
from typing import Dict, List, Optional, Tuple
import logging

from models.story_models import (
    Chapter,
    Character,
    ContinuationOption,
    NewChapter,
    NewCharacter,
    NewContinuationOption,
    Story,
    StoryDetails,
)
from utils.exceptions import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


def build_path(parent_path: Optional[str], chapter_id: int) -> str:
    """부모 path 에 자신의 id 를 붙인다 (루트는 id 만)"""
    if parent_path:
        return f"{parent_path}-{chapter_id}"
    return str(chapter_id)


def path_sort_key(path: Optional[str]) -> Tuple[int, ...]:
    """숫자 세그먼트 기준 정렬 키 ("1-2" < "1-10")"""
    if not path:
        return ()
    return tuple(int(segment) for segment in path.split("-") if segment.isdigit())


class StoryStorage(ABC):
    """스토리/챕터/캐릭터/선택지 저장소 인터페이스"""

    async def initialize(self) -> None:
        pass

    async def close(self) -> None:
        pass

    @abstractmethod
    def get_backend_name(self) -> str:
        pass

    # Story
    @abstractmethod
    async def get_stories(self) -> List[Story]:
        pass

    @abstractmethod
    async def get_story(self, story_id: int) -> Optional[Story]:
        pass

    @abstractmethod
    async def create_story(self, attrs: StoryDetails) -> Story:
        pass

    # Chapter
    @abstractmethod
    async def get_chapter(self, chapter_id: int) -> Optional[Chapter]:
        pass

    @abstractmethod
    async def get_chapters_by_story_id(self, story_id: int) -> List[Chapter]:
        pass

    @abstractmethod
    async def get_root_chapter(self, story_id: int) -> Optional[Chapter]:
        pass

    @abstractmethod
    async def create_chapter(self, data: NewChapter) -> Chapter:
        pass

    @abstractmethod
    async def get_next_chapter_by_option(self, parent_chapter_id: int, option_id: int) -> Optional[Chapter]:
        pass

    async def get_chapter_path(self, chapter_id: int) -> List[Chapter]:
        """parentId 를 따라 루트까지 올라간 뒤 루트부터의 순서로 반환"""
        path: List[Chapter] = []
        visited = set()
        current = await self.get_chapter(chapter_id)
        while current is not None and current.id not in visited:
            visited.add(current.id)
            path.append(current)
            if current.parent_id is None:
                break
            current = await self.get_chapter(current.parent_id)
        path.reverse()
        return path

    async def get_all_chapters(self, story_id: int) -> List[Chapter]:
        chapters = await self.get_chapters_by_story_id(story_id)
        return sorted(chapters, key=lambda c: (path_sort_key(c.path), c.id))

    # Character
    @abstractmethod
    async def get_characters(self, story_id: int) -> List[Character]:
        pass

    @abstractmethod
    async def get_character(self, character_id: int) -> Optional[Character]:
        pass

    @abstractmethod
    async def create_character(self, data: NewCharacter) -> Character:
        pass

    # ContinuationOption
    @abstractmethod
    async def get_continuation_options(self, chapter_id: int) -> List[ContinuationOption]:
        pass

    @abstractmethod
    async def get_continuation_option(self, option_id: int) -> Optional[ContinuationOption]:
        pass

    @abstractmethod
    async def create_continuation_option(self, data: NewContinuationOption) -> ContinuationOption:
        pass

    @staticmethod
    def _check_chapter_shape(data: NewChapter) -> None:
        """루트 여부와 parent_id 가 일치해야 한다"""
        if bool(data.is_root) != (data.parent_id is None):
            raise ValidationError(
                "Root chapters must have no parent and non-root chapters must have one",
                errors=[{"field": "parentId", "message": "must be empty exactly when isRoot is set"}],
            )

    @staticmethod
    def _root_exists_error(story_id: int) -> ValidationError:
        return ValidationError(
            f"Story {story_id} already has a root chapter",
            errors=[{"field": "isRoot", "message": "only one root chapter per story"}],
        )

    @staticmethod
    def _check_character_name(data: NewCharacter) -> None:
        if not data.name or not data.name.strip():
            raise ValidationError(
                "Character name must not be empty",
                errors=[{"field": "name", "message": "must not be empty"}],
            )


class InMemoryStorage(StoryStorage):
    """프로세스 내 메모리 저장소 (테스트/개발용), id 카운터는 인스턴스 단위"""

    def __init__(self):
        self._stories: Dict[int, Story] = {}
        self._chapters: Dict[int, Chapter] = {}
        self._characters: Dict[int, Character] = {}
        self._options: Dict[int, ContinuationOption] = {}

        self._story_ids = count(1)
        self._chapter_ids = count(1)
        self._character_ids = count(1)
        self._option_ids = count(1)

    def get_backend_name(self) -> str:
        return "memory"

    async def get_stories(self) -> List[Story]:
        return sorted(self._stories.values(), key=lambda s: s.id, reverse=True)

    async def get_story(self, story_id: int) -> Optional[Story]:
        return self._stories.get(story_id)

    async def create_story(self, attrs: StoryDetails) -> Story:
        story = Story(
            id=next(self._story_ids),
            created_at=datetime.now(),
            **attrs.model_dump(include=set(StoryDetails.model_fields)),
        )
        self._stories[story.id] = story
        return story

    async def get_chapter(self, chapter_id: int) -> Optional[Chapter]:
        return self._chapters.get(chapter_id)

    async def get_chapters_by_story_id(self, story_id: int) -> List[Chapter]:
        return [c for c in self._chapters.values() if c.story_id == story_id]

    async def get_root_chapter(self, story_id: int) -> Optional[Chapter]:
        for chapter in self._chapters.values():
            if chapter.story_id == story_id and chapter.is_root:
                return chapter
        return None

    async def create_chapter(self, data: NewChapter) -> Chapter:
        self._check_chapter_shape(data)
        parent = None
        if data.parent_id is not None:
            parent = self._chapters.get(data.parent_id)
            if parent is None:
                raise NotFoundError("Chapter", data.parent_id)
            if parent.story_id != data.story_id:
                raise ValidationError(f"Parent chapter {parent.id} belongs to another story")
        elif await self.get_root_chapter(data.story_id) is not None:
            raise self._root_exists_error(data.story_id)

        chapter_id = next(self._chapter_ids)
        chapter = Chapter(
            id=chapter_id,
            path=build_path(parent.path if parent else None, chapter_id),
            created_at=datetime.now(),
            **data.model_dump(),
        )
        self._chapters[chapter_id] = chapter
        return chapter

    async def get_next_chapter_by_option(self, parent_chapter_id: int, option_id: int) -> Optional[Chapter]:
        option = self._options.get(option_id)
        if option is None or option.chapter_id != parent_chapter_id:
            return None
        for chapter in sorted(self._chapters.values(), key=lambda c: c.id):
            if chapter.parent_id == parent_chapter_id and chapter.prompt == option.prompt:
                return chapter
        return None

    async def get_characters(self, story_id: int) -> List[Character]:
        return [c for c in self._characters.values() if c.story_id == story_id]

    async def get_character(self, character_id: int) -> Optional[Character]:
        return self._characters.get(character_id)

    async def create_character(self, data: NewCharacter) -> Character:
        self._check_character_name(data)
        character = Character(
            id=next(self._character_ids),
            created_at=datetime.now(),
            **data.model_dump(),
        )
        self._characters[character.id] = character
        return character

    async def get_continuation_options(self, chapter_id: int) -> List[ContinuationOption]:
        return [o for o in self._options.values() if o.chapter_id == chapter_id]

    async def get_continuation_option(self, option_id: int) -> Optional[ContinuationOption]:
        return self._options.get(option_id)

    async def create_continuation_option(self, data: NewContinuationOption) -> ContinuationOption:
        option = ContinuationOption(id=next(self._option_ids), **data.model_dump())
        self._options[option.id] = option
        return option


class StorageFactory:
    """저장소 팩토리"""

    @staticmethod
    def create(settings) -> StoryStorage:
        backend = settings.STORAGE_BACKEND.lower()

        if backend == "sqlite":
            from storage.sqlite_storage import SQLiteStorage
            return SQLiteStorage(settings.DATABASE_PATH)

        if backend != "memory":
            logger.warning("Unknown STORAGE_BACKEND %s, using in-memory storage", backend)

        return InMemoryStorage()
