"""
챕터 단위 분기 잠금
같은 챕터에 대한 이어쓰기 요청을 프로세스 내에서 직렬화
"""

import asyncio
from typing import Dict


class BranchLockRegistry:
    def __init__(self):
        self._locks: Dict[int, asyncio.Lock] = {}
        self._waiters: Dict[int, int] = {}
        self._total_acquisitions = 0

    def lock_for(self, chapter_id: int) -> "_BranchLock":
        return _BranchLock(self, chapter_id)

    async def _acquire(self, chapter_id: int) -> None:
        lock = self._locks.setdefault(chapter_id, asyncio.Lock())
        self._waiters[chapter_id] = self._waiters.get(chapter_id, 0) + 1
        try:
            await lock.acquire()
        except asyncio.CancelledError:
            self._forget(chapter_id)
            raise
        self._total_acquisitions += 1

    def _release(self, chapter_id: int) -> None:
        self._locks[chapter_id].release()
        self._forget(chapter_id)

    def _forget(self, chapter_id: int) -> None:
        self._waiters[chapter_id] -= 1
        # 대기자가 없으면 정리
        if self._waiters[chapter_id] == 0:
            del self._waiters[chapter_id]
            del self._locks[chapter_id]

    def get_status(self) -> Dict:
        """잠금 상태 반환"""
        return {
            "active_chapters": len(self._locks),
            "total_acquisitions": self._total_acquisitions
        }


class _BranchLock:
    def __init__(self, registry: BranchLockRegistry, chapter_id: int):
        self._registry = registry
        self._chapter_id = chapter_id

    async def __aenter__(self):
        await self._registry._acquire(self._chapter_id)
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self._registry._release(self._chapter_id)
        return False
