"""
응답 모델 정의
"""

from typing import List, Optional

from models.story_models import Chapter, ContinuationOption, Story


class ChapterWithOptions(Chapter):
    continuation_options: List[ContinuationOption] = []


class StoryWithRootChapter(Story):
    root_chapter: Optional[ChapterWithOptions] = None
