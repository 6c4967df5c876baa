"""
환경 설정 관리 (생성 백엔드 + 스토리 저장소)
"""

import os
from functools import lru_cache
from pydantic_settings import BaseSettings

SUPPORTED_PROVIDERS = ["mock", "openai"]
SUPPORTED_STORAGE_BACKENDS = ["memory", "sqlite"]


class Settings(BaseSettings):
    # AI Provider 설정
    AI_PROVIDER: str = os.getenv("AI_PROVIDER", "mock")

    # OpenAI 설정
    OPENAI_API_KEY: str = os.getenv("OPENAI_API_KEY", "")
    OPENAI_MODEL: str = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
    OPENAI_MAX_TOKENS: int = int(os.getenv("OPENAI_MAX_TOKENS", "2000"))
    OPENAI_TIMEOUT: int = int(os.getenv("OPENAI_TIMEOUT", "60"))
    OPENAI_BASE_URL: str = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1/chat/completions")

    # 저장소 설정
    STORAGE_BACKEND: str = os.getenv("STORAGE_BACKEND", "sqlite")
    DATABASE_PATH: str = os.getenv("DATABASE_PATH", "./stories.db")

    # CORS
    CORS_ORIGINS: str = os.getenv("CORS_ORIGINS", "*")

    # 로깅 설정
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    class Config:
        env_file = ".env"
        extra = "ignore"  # 추가 환경 변수 무시

    @property
    def cors_origins_list(self) -> list:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    def get_available_providers(self) -> dict:
        """사용 가능한 Provider 목록"""
        return {
            "openai": bool(self.OPENAI_API_KEY),
            "mock": True
        }

    def get_current_provider_info(self) -> dict:
        """현재 Provider 정보"""
        if self.AI_PROVIDER == "openai" and self.OPENAI_API_KEY:
            return {
                "provider": "openai",
                "model": self.OPENAI_MODEL,
                "status": "configured"
            }
        else:
            return {
                "provider": "mock",
                "model": "mock_generator",
                "status": "fallback"
            }

    def validate_settings(self) -> list:
        """설정 검증 및 경고 반환"""
        warnings = []

        if self.AI_PROVIDER not in SUPPORTED_PROVIDERS:
            warnings.append(f"Unknown AI_PROVIDER: {self.AI_PROVIDER}")

        if self.AI_PROVIDER == "openai" and not self.OPENAI_API_KEY:
            warnings.append("AI_PROVIDER=openai but OPENAI_API_KEY is empty, falling back to mock")

        if self.STORAGE_BACKEND not in SUPPORTED_STORAGE_BACKENDS:
            warnings.append(f"Unknown STORAGE_BACKEND: {self.STORAGE_BACKEND}, using memory")

        if self.STORAGE_BACKEND == "memory":
            warnings.append("STORAGE_BACKEND=memory, stories are lost on restart")

        return warnings


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
