"""
스토리 생성 서비스
스토리 부트스트랩 (속성 채우기 -> 스토리/캐릭터 저장 -> 루트 챕터 생성) 및 조회
"""

from typing import List, Optional
import logging

from models.generation_models import ChapterGeneration
from models.request_models import CreateCharacterRequest, CreateStoryRequest
from models.response_models import ChapterWithOptions, StoryWithRootChapter
from models.story_models import (
    INITIAL_CHAPTER_PROMPT,
    Chapter,
    Character,
    NewChapter,
    NewCharacter,
    NewContinuationOption,
    Story,
    StoryDetails,
)
from services.context_service import build_context
from services.generation_service import ChapterGenerationService
from storage.story_storage import StoryStorage
from utils.exceptions import NotFoundError

logger = logging.getLogger(__name__)


async def persist_generated_chapter(
    storage: StoryStorage,
    generation: ChapterGeneration,
    story_id: int,
    parent_id: Optional[int],
    prompt: str,
) -> ChapterWithOptions:
    """생성 결과를 챕터 + 선택지로 저장 (종료 챕터는 선택지 없음)"""
    chapter = await storage.create_chapter(
        NewChapter(
            story_id=story_id,
            parent_id=parent_id,
            title=generation.title,
            content=generation.content,
            summary=generation.summary or None,
            prompt=prompt,
            is_root=1 if parent_id is None else 0,
            is_ending=1 if generation.is_ending else 0,
        )
    )

    options = []
    if not generation.is_ending:
        for option in generation.continuation_options:
            options.append(
                await storage.create_continuation_option(
                    NewContinuationOption(
                        chapter_id=chapter.id,
                        title=option.title,
                        preview=option.preview,
                        prompt=option.prompt,
                    )
                )
            )

    return with_options(chapter, options)


def with_options(chapter: Chapter, options) -> ChapterWithOptions:
    return ChapterWithOptions(**chapter.model_dump(), continuation_options=list(options))


def story_attributes(story: Story) -> StoryDetails:
    return StoryDetails(**story.model_dump(include=set(StoryDetails.model_fields)))


class StoryService:
    """스토리 부트스트랩 + 조회"""

    def __init__(self, storage: StoryStorage, generator: Optional[ChapterGenerationService] = None):
        self.storage = storage
        self.generator = generator or ChapterGenerationService()

    async def create_story(self, request: CreateStoryRequest) -> StoryWithRootChapter:
        details = await self.generator.generate_random_story_details(request)

        story = await self.storage.create_story(details)
        logger.info("Story %s created (genre=%s)", story.id, story.genre)

        characters: List[Character] = []
        for profile in details.characters or []:
            characters.append(
                await self.storage.create_character(
                    NewCharacter(story_id=story.id, **profile.model_dump())
                )
            )

        # 여기서 실패하면 루트 챕터 없는 스토리가 남는다 (롤백하지 않음)
        context = build_context(story_attributes(story), None, characters)
        generation = await self.generator.generate_chapter(context.story, context)
        root = await persist_generated_chapter(
            self.storage, generation, story_id=story.id, parent_id=None, prompt=INITIAL_CHAPTER_PROMPT
        )
        logger.info("Root chapter %s created for story %s", root.id, story.id)

        return StoryWithRootChapter(**story.model_dump(), root_chapter=root)

    async def list_stories(self) -> List[Story]:
        return await self.storage.get_stories()

    async def require_story(self, story_id: int) -> Story:
        story = await self.storage.get_story(story_id)
        if story is None:
            raise NotFoundError("Story", story_id)
        return story

    async def get_story_with_root(self, story_id: int) -> StoryWithRootChapter:
        story = await self.require_story(story_id)
        root = await self.storage.get_root_chapter(story_id)
        if root is None:
            return StoryWithRootChapter(**story.model_dump())
        options = await self.storage.get_continuation_options(root.id)
        return StoryWithRootChapter(**story.model_dump(), root_chapter=with_options(root, options))

    async def get_chapter_with_options(self, chapter_id: int) -> ChapterWithOptions:
        chapter = await self.storage.get_chapter(chapter_id)
        if chapter is None:
            raise NotFoundError("Chapter", chapter_id)
        options = await self.storage.get_continuation_options(chapter_id)
        return with_options(chapter, options)

    async def get_chapter_path(self, chapter_id: int) -> List[Chapter]:
        path = await self.storage.get_chapter_path(chapter_id)
        if not path:
            raise NotFoundError("Chapter", chapter_id)
        return path

    async def get_story_chapters(self, story_id: int) -> List[Chapter]:
        await self.require_story(story_id)
        return await self.storage.get_all_chapters(story_id)

    async def get_story_characters(self, story_id: int) -> List[Character]:
        await self.require_story(story_id)
        return await self.storage.get_characters(story_id)

    async def get_character(self, character_id: int) -> Character:
        character = await self.storage.get_character(character_id)
        if character is None:
            raise NotFoundError("Character", character_id)
        return character

    async def create_character(self, request: CreateCharacterRequest) -> Character:
        await self.require_story(request.story_id)
        return await self.storage.create_character(NewCharacter(**request.model_dump()))
