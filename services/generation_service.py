"""
챕터 생성 게이트웨이
생성 백엔드와의 유일한 연동 지점: 요청 조립 + 응답 검증
"""

from dataclasses import asdict
from typing import Any, Dict, List, Optional
import json
import logging

from pydantic import ValidationError as PydanticValidationError

from models.generation_models import ChapterGeneration
from models.story_models import (
    STORY_ATTRIBUTE_FIELDS,
    CharacterProfile,
    StoryDetails,
    StoryDetailsWithCharacters,
)
from prompt.prompt_manager import PromptManager, get_prompt_manager
from providers.llm_provider import (
    TASK_CHAPTER,
    TASK_STORY_DETAILS,
    GenerationHints,
    LLMProvider,
    LLMProviderError,
    LLMProviderFactory,
)
from services.context_service import ContextBundle, build_context
from utils.exceptions import GenerationFailure

logger = logging.getLogger(__name__)

TEMPERATURE_INPUT_RANGE = (1, 9)
TEMPERATURE_OUTPUT_RANGE = (0.8, 1.2)
DEFAULT_BACKEND_TEMPERATURE = 1.0


def normalize_temperature(
    value: Optional[int],
    lower: float = TEMPERATURE_OUTPUT_RANGE[0],
    upper: float = TEMPERATURE_OUTPUT_RANGE[1],
) -> float:
    """1-9 창의성 값을 백엔드 temperature 로 선형 변환 (1 -> 0.8, 9 -> 1.2, None -> 1.0)"""
    if value is None:
        return DEFAULT_BACKEND_TEMPERATURE
    in_min, in_max = TEMPERATURE_INPUT_RANGE
    normalized = (value - in_min) / (in_max - in_min)
    mapped = normalized * (upper - lower) + lower
    return max(lower, min(upper, mapped))


def parse_json_object(content: Optional[str]) -> Dict[str, Any]:
    if not content or not content.strip():
        raise GenerationFailure("Generation backend returned empty content")
    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        logger.error("Generation response is not valid JSON: %s", content[:200])
        raise GenerationFailure(f"Generation backend returned invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise GenerationFailure("Generation backend returned JSON that is not an object")
    return data


class ChapterGenerationService:
    """챕터 생성 / 스토리 속성 자동 채우기"""

    def __init__(self, provider: Optional[LLMProvider] = None, prompt_manager: Optional[PromptManager] = None):
        self.provider = provider or LLMProviderFactory.get_provider()
        self.prompt_manager = prompt_manager or get_prompt_manager()

    async def generate_chapter(
        self,
        story_details: StoryDetails,
        context: Optional[ContextBundle] = None,
        directive: Optional[str] = None,
    ) -> ChapterGeneration:
        if context is None:
            context = build_context(story_details, None, [])

        messages = self.prompt_manager.build_chapter_messages(context, directive)
        temperature = normalize_temperature(story_details.temperature)

        logger.info(
            "Generating chapter (depth=%s, phase=%s, temperature=%.2f, provider=%s)",
            context.depth, context.arc.phase, temperature, self.provider.get_provider_name(),
        )

        try:
            content = await self.provider.complete(
                messages,
                temperature,
                GenerationHints(
                    task=TASK_CHAPTER,
                    depth=context.depth,
                    directive=directive,
                    characters=[asdict(c) for c in context.characters],
                ),
            )
        except LLMProviderError as e:
            logger.error("Chapter generation failed: %s", str(e), exc_info=True)
            raise GenerationFailure(f"Chapter generation failed: {e}") from e

        return self.parse_chapter(content)

    def parse_chapter(self, content: Optional[str]) -> ChapterGeneration:
        data = parse_json_object(content)
        try:
            chapter = ChapterGeneration.model_validate(data)
        except PydanticValidationError as e:
            logger.error("Generation response has unexpected shape: %s", e)
            raise GenerationFailure(f"Generation backend returned unexpected shape: {e}") from e

        if chapter.is_ending and chapter.continuation_options:
            logger.info("Ending chapter returned %d options, dropping them", len(chapter.continuation_options))
            chapter.continuation_options = []
        elif not chapter.is_ending and not chapter.continuation_options:
            logger.warning("Non-ending chapter returned without continuation options")

        return chapter

    async def generate_random_story_details(
        self, partial: StoryDetailsWithCharacters
    ) -> StoryDetailsWithCharacters:
        """비어있는 속성과 캐릭터만 생성, 실패 시 입력 그대로 반환 (fail-open)"""
        if not partial.missing_fields() and partial.characters:
            return partial

        messages = self.prompt_manager.build_story_details_messages(partial.model_dump(exclude_none=True))
        temperature = normalize_temperature(partial.temperature)

        try:
            content = await self.provider.complete(
                messages,
                temperature,
                GenerationHints(
                    task=TASK_STORY_DETAILS,
                    partial=partial.model_dump(by_alias=True, exclude_none=True),
                ),
            )
            generated = parse_json_object(content)
        except Exception as e:
            logger.warning("Random story details generation failed, using input as-is: %s", str(e), exc_info=True)
            return partial

        return self._merge_details(partial, generated)

    def _merge_details(
        self, partial: StoryDetailsWithCharacters, generated: Dict[str, Any]
    ) -> StoryDetailsWithCharacters:
        merged = partial.model_dump()
        aliases = {name: field.alias for name, field in StoryDetails.model_fields.items()}

        for field_name in STORY_ATTRIBUTE_FIELDS:
            if merged.get(field_name):
                continue
            value = generated.get(aliases.get(field_name) or field_name, generated.get(field_name))
            if isinstance(value, str) and value.strip():
                merged[field_name] = value.strip()

        if not partial.characters:
            merged["characters"] = [c.model_dump() for c in self._parse_characters(generated.get("characters"))] or None

        return StoryDetailsWithCharacters.model_validate(merged)

    @staticmethod
    def _parse_characters(raw: Any) -> List[CharacterProfile]:
        characters = []
        if not isinstance(raw, list):
            return characters
        for item in raw:
            if not isinstance(item, dict):
                continue
            try:
                characters.append(CharacterProfile.model_validate(item))
            except PydanticValidationError:
                logger.warning("Skipping generated character without valid name: %s", item)
        return characters
