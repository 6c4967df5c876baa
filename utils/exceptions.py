"""
스토리 엔진 예외 정의
HTTP 경계(main.py)에서 status_code 로 매핑된다
"""

from typing import Any, Dict, List, Optional


class StoryEngineError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.message}


class ValidationError(StoryEngineError):
    """잘못된 입력 (범위 초과, 필수 필드 누락, 지시문 없음)"""
    status_code = 400

    def __init__(self, message: str, errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.errors = errors or []

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        if self.errors:
            data["errors"] = self.errors
        return data


class NotFoundError(StoryEngineError):
    """스토리/챕터/선택지/캐릭터 없음"""
    status_code = 404

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(f"{entity} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id


class GenerationFailure(StoryEngineError):
    """생성 백엔드가 비어있거나 파싱 불가능한 응답을 반환"""
    status_code = 500


class StorageFailure(StoryEngineError):
    """저장소 I/O 오류"""
    status_code = 500
