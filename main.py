from contextlib import asynccontextmanager
from datetime import datetime
from typing import List, Optional
import logging

from fastapi import APIRouter, FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config.settings import Settings, get_settings
from models.request_models import ContinueStoryRequest, CreateCharacterRequest, CreateStoryRequest
from models.response_models import ChapterWithOptions, StoryWithRootChapter
from models.story_models import Chapter, Character, Story
from providers.llm_provider import LLMProvider, LLMProviderFactory
from services.continuation_service import ContinuationService
from services.generation_service import ChapterGenerationService
from services.story_service import StoryService
from storage.story_storage import StorageFactory, StoryStorage
from utils.branch_lock import BranchLockRegistry
from utils.exceptions import StoryEngineError

logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"

router = APIRouter()


def _story_service(request: Request) -> StoryService:
    return request.app.state.story_service


def _continuation_service(request: Request) -> ContinuationService:
    return request.app.state.continuation_service


@router.get("/")
async def root(request: Request):
    """서버 상태"""
    return {
        "message": "Branching Story Server",
        "status": "healthy",
        "provider": request.app.state.provider.get_provider_name(),
        "timestamp": datetime.now().isoformat(),
        "version": API_VERSION,
    }


@router.get("/health")
async def health_check(request: Request):
    """헬스 체크"""
    state = request.app.state
    return {
        "status": "healthy",
        "current_provider": state.provider.get_provider_name(),
        "available_providers": LLMProviderFactory.get_available_providers(state.settings),
        "storage_backend": state.storage.get_backend_name(),
        "branch_locks": state.continuation_service.locks.get_status(),
        "timestamp": datetime.now().isoformat(),
    }


@router.get("/providers")
async def get_providers_status(request: Request):
    """Provider 상태"""
    settings = request.app.state.settings
    return {
        "current": request.app.state.provider.get_provider_name(),
        "available": LLMProviderFactory.get_available_providers(settings),
        "settings": settings.get_current_provider_info(),
    }


@router.get("/api/stories", response_model=List[Story])
async def list_stories(request: Request):
    return await _story_service(request).list_stories()


@router.get("/api/stories/{story_id}", response_model=StoryWithRootChapter)
async def get_story(story_id: int, request: Request):
    """스토리 + 루트 챕터 (루트가 없으면 스토리만)"""
    return await _story_service(request).get_story_with_root(story_id)


@router.post("/api/stories", response_model=StoryWithRootChapter, status_code=201)
async def create_story(body: CreateStoryRequest, request: Request):
    return await _story_service(request).create_story(body)


@router.post("/api/stories/continue", response_model=ChapterWithOptions, status_code=201)
async def continue_story(body: ContinueStoryRequest, request: Request, response: Response):
    """새 챕터 201, 기존 분기 재사용 200"""
    result = await _continuation_service(request).continue_story(body)
    if not result.created:
        response.status_code = 200
    return result.chapter


@router.get("/api/stories/{story_id}/chapters", response_model=List[Chapter])
async def get_story_chapters(story_id: int, request: Request):
    return await _story_service(request).get_story_chapters(story_id)


@router.get("/api/stories/{story_id}/characters", response_model=List[Character])
async def get_story_characters(story_id: int, request: Request):
    return await _story_service(request).get_story_characters(story_id)


@router.get("/api/chapters/{chapter_id}", response_model=ChapterWithOptions)
async def get_chapter(chapter_id: int, request: Request):
    return await _story_service(request).get_chapter_with_options(chapter_id)


@router.get("/api/chapters/{chapter_id}/path", response_model=List[Chapter])
async def get_chapter_path(chapter_id: int, request: Request):
    return await _story_service(request).get_chapter_path(chapter_id)


@router.get("/api/characters/{character_id}", response_model=Character)
async def get_character(character_id: int, request: Request):
    return await _story_service(request).get_character(character_id)


@router.post("/api/characters", response_model=Character, status_code=201)
async def create_character(body: CreateCharacterRequest, request: Request):
    return await _story_service(request).create_character(body)


async def story_engine_exception_handler(request: Request, exc: StoryEngineError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    content = exc.to_dict()
    content.update({"status_code": exc.status_code, "timestamp": datetime.now().isoformat()})
    return JSONResponse(status_code=exc.status_code, content=content)


async def request_validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = [
        {
            "field": ".".join(str(part) for part in error.get("loc", ()) if part != "body"),
            "message": error.get("msg", ""),
        }
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={
            "message": "Invalid request data",
            "errors": errors,
            "status_code": 400,
            "timestamp": datetime.now().isoformat(),
        },
    )


async def general_exception_handler(request: Request, exc: Exception):
    logger.error("%s %s failed: %s", request.method, request.url.path, str(exc), exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={
            "message": "Internal server error",
            "status_code": 500,
            "timestamp": datetime.now().isoformat(),
        },
    )


def create_app(
    settings: Optional[Settings] = None,
    storage: Optional[StoryStorage] = None,
    provider: Optional[LLMProvider] = None,
) -> FastAPI:
    settings = settings or get_settings()
    storage = storage or StorageFactory.create(settings)
    provider = provider or LLMProviderFactory.get_provider(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        for warning in settings.validate_settings():
            logger.warning(warning)
        await storage.initialize()
        logger.info(
            "Story server started (provider=%s, storage=%s)",
            provider.get_provider_name(), storage.get_backend_name(),
        )
        yield
        await storage.close()

    app = FastAPI(
        title="Branching Story Server",
        description="AI 분기형 스토리 생성 서버",
        version=API_VERSION,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    generator = ChapterGenerationService(provider=provider)
    app.state.settings = settings
    app.state.storage = storage
    app.state.provider = provider
    app.state.story_service = StoryService(storage, generator)
    app.state.continuation_service = ContinuationService(storage, generator, BranchLockRegistry())

    app.include_router(router)
    app.add_exception_handler(StoryEngineError, story_engine_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    return app


logging.basicConfig(level=get_settings().LOG_LEVEL.upper())

app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
