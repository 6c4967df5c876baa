"""
분기 이어쓰기 서비스
선택지 -> 기존 자식 챕터 재사용, 없으면 생성 후 저장
"""

from dataclasses import dataclass
from typing import Optional
import logging

from models.request_models import ContinueStoryRequest
from models.response_models import ChapterWithOptions
from services.context_service import build_context
from services.generation_service import ChapterGenerationService
from services.story_service import persist_generated_chapter, story_attributes, with_options
from storage.story_storage import StoryStorage
from utils.branch_lock import BranchLockRegistry
from utils.exceptions import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


@dataclass
class ContinuationResult:
    chapter: ChapterWithOptions
    created: bool


class ContinuationService:
    """챕터 하나만큼 스토리를 이어간다"""

    def __init__(
        self,
        storage: StoryStorage,
        generator: Optional[ChapterGenerationService] = None,
        locks: Optional[BranchLockRegistry] = None,
    ):
        self.storage = storage
        self.generator = generator or ChapterGenerationService()
        self.locks = locks or BranchLockRegistry()

    async def continue_story(self, request: ContinueStoryRequest) -> ContinuationResult:
        custom_prompt = (request.custom_prompt or "").strip()
        if request.selected_option_id is None and not custom_prompt:
            raise ValidationError(
                "Either selectedOptionId or customPrompt must be provided",
                errors=[
                    {"field": "selectedOptionId", "message": "required if customPrompt is empty"},
                    {"field": "customPrompt", "message": "required if selectedOptionId is empty"},
                ],
            )

        story = await self.storage.get_story(request.story_id)
        if story is None:
            raise NotFoundError("Story", request.story_id)

        chapter = await self.storage.get_chapter(request.chapter_id)
        if chapter is None or chapter.story_id != story.id:
            raise NotFoundError("Chapter", request.chapter_id)

        # selectedOptionId 가 우선
        if request.selected_option_id is not None:
            option = await self.storage.get_continuation_option(request.selected_option_id)
            if option is None or option.chapter_id != chapter.id:
                raise NotFoundError("ContinuationOption", request.selected_option_id)
            directive = option.prompt
        else:
            option = None
            directive = custom_prompt

        async with self.locks.lock_for(chapter.id):
            if option is not None:
                existing = await self.storage.get_next_chapter_by_option(chapter.id, option.id)
                if existing is not None:
                    logger.info("Reusing chapter %s for option %s of chapter %s", existing.id, option.id, chapter.id)
                    options = await self.storage.get_continuation_options(existing.id)
                    return ContinuationResult(chapter=with_options(existing, options), created=False)

            characters = await self.storage.get_characters(story.id)
            details = story_attributes(story)
            context = build_context(details, chapter, characters)

            generation = await self.generator.generate_chapter(details, context, directive)

            new_chapter = await persist_generated_chapter(
                self.storage, generation, story_id=story.id, parent_id=chapter.id, prompt=directive
            )

        logger.info(
            "Chapter %s created under chapter %s (ending=%s)", new_chapter.id, chapter.id, bool(new_chapter.is_ending)
        )
        return ContinuationResult(chapter=new_chapter, created=True)
