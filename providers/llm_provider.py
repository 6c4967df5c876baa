"""
LLM Provider (챗 형식 요청 -> JSON 텍스트 응답)
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import asyncio
import json
import logging
import time

import aiohttp

logger = logging.getLogger(__name__)


class LLMProviderError(Exception):
    """생성 백엔드 호출 실패"""


TASK_CHAPTER = "chapter"
TASK_STORY_DETAILS = "story_details"


@dataclass
class GenerationHints:
    """요청의 구조화된 메타데이터 (원격 백엔드는 무시, 오프라인 생성기는 이것으로 응답)"""
    task: str = TASK_CHAPTER
    depth: int = 1
    directive: Optional[str] = None
    characters: List[Dict[str, Any]] = field(default_factory=list)
    partial: Dict[str, Any] = field(default_factory=dict)


class LLMProvider(ABC):
    def __init__(self):
        pass

    @abstractmethod
    async def complete(
        self,
        messages: List[Dict[str, str]],
        temperature: float,
        hints: Optional[GenerationHints] = None,
    ) -> str:
        """messages 를 보내고 응답 본문(JSON 텍스트)을 반환"""
        pass

    @abstractmethod
    def get_provider_name(self) -> str:
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """프로바이더 사용 가능 여부"""
        pass


class OpenAIProvider(LLMProvider):
    """OpenAI Chat Completions Provider"""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        max_tokens: int = 2000,
        timeout: int = 60,
        base_url: str = "https://api.openai.com/v1/chat/completions",
    ):
        super().__init__()
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens
        self.timeout = timeout
        self.base_url = base_url

    def is_available(self) -> bool:
        return bool(self.api_key)

    def build_payload(self, messages: List[Dict[str, str]], temperature: float) -> Dict[str, Any]:
        return {
            "model": self.model,
            "messages": messages,
            "max_tokens": self.max_tokens,
            "temperature": temperature,
            "response_format": {"type": "json_object"}
        }

    async def complete(self, messages: List[Dict[str, str]], temperature: float, hints: Optional[GenerationHints] = None) -> str:
        if not self.is_available():
            logger.error("OpenAIProvider unavailable: API key missing")
            raise LLMProviderError("OpenAI API key is not configured")

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json"
        }
        payload = self.build_payload(messages, temperature)

        try:
            start_time = time.time()
            timeout = aiohttp.ClientTimeout(total=self.timeout)

            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(self.base_url, headers=headers, json=payload) as response:
                    response_time = time.time() - start_time

                    if response.status != 200:
                        error_text = await response.text()
                        logger.error("OpenAI API error %s: %s", response.status, error_text)
                        if response.status == 401:
                            logger.error("OpenAI authentication failed - check OPENAI_API_KEY")
                        raise LLMProviderError(f"OpenAI API error: {response.status}")

                    result = await response.json()

        except asyncio.TimeoutError:
            logger.error("OpenAI API timeout (%ss)", self.timeout)
            raise LLMProviderError("OpenAI API request timed out")
        except aiohttp.ClientError as e:
            logger.error("HTTP client error: %s: %s", type(e).__name__, str(e))
            raise LLMProviderError(f"HTTP client error: {str(e)}")

        choices = result.get("choices") or []
        if not choices:
            logger.error("OpenAI response has no choices: %s", result)
            raise LLMProviderError("OpenAI response has no choices")

        content = choices[0].get("message", {}).get("content")
        logger.info("OpenAI %s responded in %.2fs", self.model, response_time)
        return content or ""

    def get_provider_name(self) -> str:
        return f"OpenAI {self.model}"


class MockProvider(LLMProvider):
    """Mock 데이터 제공자 (API 키 없이 로컬 실행)"""

    def __init__(self, delay: float = 0.0):
        super().__init__()
        from templates.mock_templates import MockStoryGenerator
        self.generator = MockStoryGenerator()
        self.delay = delay

    def is_available(self) -> bool:
        return True

    async def complete(self, messages: List[Dict[str, str]], temperature: float, hints: Optional[GenerationHints] = None) -> str:
        if self.delay:
            await asyncio.sleep(self.delay)

        hints = hints or GenerationHints()
        if hints.task == TASK_STORY_DETAILS:
            result = self.generator.generate_story_details(hints.partial)
        else:
            result = self.generator.generate_chapter(
                depth=hints.depth,
                directive=hints.directive,
                characters=hints.characters,
            )

        return json.dumps(result, ensure_ascii=False)

    def get_provider_name(self) -> str:
        return "Mock Provider"


class LLMProviderFactory:
    """LLM Provider 팩토리"""

    @staticmethod
    def get_provider(settings=None) -> LLMProvider:
        if settings is None:
            from config.settings import get_settings
            settings = get_settings()

        provider_name = settings.AI_PROVIDER.lower()

        if provider_name == "openai" and settings.OPENAI_API_KEY:
            provider = OpenAIProvider(
                api_key=settings.OPENAI_API_KEY,
                model=settings.OPENAI_MODEL,
                max_tokens=settings.OPENAI_MAX_TOKENS,
                timeout=settings.OPENAI_TIMEOUT,
                base_url=settings.OPENAI_BASE_URL,
            )
            if provider.is_available():
                return provider
            logger.error("OpenAI provider created but unavailable")

        elif provider_name == "openai":
            logger.warning("AI_PROVIDER=openai without OPENAI_API_KEY, using mock provider")

        return MockProvider()

    @staticmethod
    def get_available_providers(settings=None) -> Dict[str, bool]:
        """사용 가능한 Provider 목록"""
        if settings is None:
            from config.settings import get_settings
            settings = get_settings()
        return settings.get_available_providers()
