"""
Pytest 설정 및 공통 Fixtures
"""
import json
from dataclasses import asdict

import pytest
from fastapi.testclient import TestClient
import sys
import os

# 경로 추가 - 최상위 패키지를 import할 수 있도록
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from config.settings import Settings
from main import create_app
from providers.llm_provider import TASK_CHAPTER, TASK_STORY_DETAILS, GenerationHints, LLMProvider, LLMProviderError
from services.generation_service import ChapterGenerationService
from storage.story_storage import InMemoryStorage
from templates.mock_templates import MockStoryGenerator


class ScriptedProvider(LLMProvider):
    """준비된 응답을 순서대로 반환, 비면 Mock 생성기로 응답. 호출 기록 보관"""

    def __init__(self, responses=None):
        super().__init__()
        self.responses = list(responses or [])
        self.calls = []
        self.generator = MockStoryGenerator()

    def queue(self, *responses):
        self.responses.extend(responses)

    async def complete(self, messages, temperature, hints=None):
        hints = hints or GenerationHints()
        self.calls.append({"messages": messages, "temperature": temperature, **asdict(hints)})

        if self.responses:
            response = self.responses.pop(0)
            if isinstance(response, Exception):
                raise response
            if isinstance(response, dict):
                return json.dumps(response, ensure_ascii=False)
            return response

        if hints.task == TASK_STORY_DETAILS:
            return json.dumps(self.generator.generate_story_details(hints.partial))
        return json.dumps(
            self.generator.generate_chapter(
                depth=hints.depth,
                directive=hints.directive,
                characters=hints.characters,
            )
        )

    def get_provider_name(self) -> str:
        return "Scripted Provider"

    def is_available(self) -> bool:
        return True

    @property
    def chapter_calls(self):
        return [c for c in self.calls if c["task"] == TASK_CHAPTER]

    @property
    def detail_calls(self):
        return [c for c in self.calls if c["task"] == TASK_STORY_DETAILS]


def chapter_payload(title="Kapitel", content="Es war einmal.", summary="Bisher.", is_ending=False, options=3):
    """생성 백엔드 챕터 응답 (camelCase)"""
    return {
        "title": title,
        "content": content,
        "summary": summary,
        "isEnding": is_ending,
        "continuationOptions": [
            {"title": f"Option {i}", "preview": f"Vorschau {i}", "prompt": f"Weiter mit Option {i}"}
            for i in range(1, options + 1)
        ],
    }


@pytest.fixture
def provider():
    return ScriptedProvider()


@pytest.fixture
def failing_provider():
    return ScriptedProvider(responses=[LLMProviderError("backend down")] * 5)


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def generator(provider):
    return ChapterGenerationService(provider=provider)


@pytest.fixture
def test_settings():
    return Settings(AI_PROVIDER="mock", OPENAI_API_KEY="", STORAGE_BACKEND="memory", CORS_ORIGINS="*")


@pytest.fixture
def app(test_settings, storage, provider):
    return create_app(settings=test_settings, storage=storage, provider=provider)


@pytest.fixture
def client(app):
    """FastAPI 테스트 클라이언트 (lifespan 포함)"""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def full_story_request():
    """모든 속성이 채워진 스토리 생성 요청"""
    return {
        "title": "Der Leuchtturm",
        "genre": "Krimi",
        "narrativeStyle": "Knapp",
        "setting": "Nordseeküste",
        "targetAudience": "Erwachsene",
        "mainCharacter": "Jonas Brandt",
        "chapterLength": "100-200",
        "temperature": 5,
        "characters": [
            {"name": "Jonas Brandt", "age": "48", "personality": "Ruhig", "background": "Ehemaliger Hafenarbeiter"}
        ],
    }
