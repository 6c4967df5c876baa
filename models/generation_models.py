"""
생성 백엔드 응답 모델
"""

from typing import List

from pydantic import Field, field_validator

from models.story_models import CamelModel


class GeneratedOption(CamelModel):
    title: str = Field(..., description="선택지 제목")
    preview: str = Field(..., description="짧은 미리보기")
    prompt: str = Field(..., description="다음 챕터 생성 지시문")


class ChapterGeneration(CamelModel):
    title: str = Field(..., min_length=1, description="챕터 제목")
    content: str = Field(..., min_length=1, description="챕터 본문")
    summary: str = Field("", description="지금까지의 전체 요약")
    is_ending: bool = Field(False, description="스토리 종료 여부")
    continuation_options: List[GeneratedOption] = Field(default_factory=list, description="다음 챕터 선택지")

    @field_validator("summary", mode="before")
    @classmethod
    def summary_or_empty(cls, v):
        return "" if v is None else v

    @field_validator("continuation_options", mode="before")
    @classmethod
    def options_or_empty(cls, v):
        # 종료 챕터는 null 로 오는 경우가 있음
        return [] if v is None else v
