"""
요청 모델 정의
"""

from typing import Optional

from pydantic import Field

from models.story_models import CamelModel, CharacterProfile, StoryDetailsWithCharacters


class CreateStoryRequest(StoryDetailsWithCharacters):
    """스토리 생성 요청 (모든 속성 선택, 빈 값은 생성 백엔드가 채움)"""


class CreateCharacterRequest(CharacterProfile):
    story_id: int = Field(..., description="스토리 ID")


class ContinueStoryRequest(CamelModel):
    story_id: int = Field(..., description="스토리 ID")
    chapter_id: int = Field(..., description="이어갈 챕터 ID")
    selected_option_id: Optional[int] = Field(None, description="선택한 선택지 ID")
    custom_prompt: Optional[str] = Field(None, description="자유 입력 지시문")
