"""
SQLite 스토리 저장소
aiosqlite 기반 비동기 구현 (INTEGER PRIMARY KEY AUTOINCREMENT 로 id 생성)
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import aiosqlite

from models.story_models import (
    Chapter,
    Character,
    ContinuationOption,
    NewChapter,
    NewCharacter,
    NewContinuationOption,
    Story,
    StoryDetails,
)
from storage.story_storage import StoryStorage, build_path
from utils.exceptions import NotFoundError, StorageFailure, ValidationError

logger = logging.getLogger(__name__)

SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS stories (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        title TEXT,
        genre TEXT,
        narrative_style TEXT,
        setting TEXT,
        target_audience TEXT,
        main_character TEXT,
        chapter_length TEXT NOT NULL DEFAULT '100-200',
        temperature INTEGER NOT NULL DEFAULT 5,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS chapters (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        story_id INTEGER NOT NULL REFERENCES stories(id),
        parent_id INTEGER REFERENCES chapters(id),
        title TEXT NOT NULL,
        content TEXT NOT NULL,
        summary TEXT,
        prompt TEXT,
        is_root INTEGER NOT NULL DEFAULT 0,
        is_ending INTEGER NOT NULL DEFAULT 0,
        path TEXT,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS characters (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        story_id INTEGER NOT NULL REFERENCES stories(id),
        name TEXT NOT NULL,
        age TEXT,
        personality TEXT,
        background TEXT,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS continuation_options (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        chapter_id INTEGER NOT NULL REFERENCES chapters(id),
        title TEXT NOT NULL,
        preview TEXT NOT NULL,
        prompt TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_chapters_story ON chapters(story_id, is_root)",
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_chapters_single_root ON chapters(story_id) WHERE is_root = 1",
    "CREATE INDEX IF NOT EXISTS idx_chapters_parent_prompt ON chapters(parent_id, prompt)",
    "CREATE INDEX IF NOT EXISTS idx_characters_story ON characters(story_id)",
    "CREATE INDEX IF NOT EXISTS idx_options_chapter ON continuation_options(chapter_id)",
]


def _row_to_dict(row: aiosqlite.Row) -> Dict[str, Any]:
    return {key: row[key] for key in row.keys()}


class SQLiteStorage(StoryStorage):
    """SQLite 영속 저장소"""

    def __init__(self, db_path: str = "stories.db"):
        self.db_path = db_path
        self._conn: Optional[aiosqlite.Connection] = None
        # 커넥션 하나를 공유: 읽기도 진행 중인 쓰기 트랜잭션이 끝난 뒤에 실행
        self._lock = asyncio.Lock()

    def get_backend_name(self) -> str:
        return "sqlite"

    async def initialize(self) -> None:
        """연결 및 테이블 생성"""
        if self._conn is not None:
            return

        if self.db_path != ":memory:":
            db_dir = Path(self.db_path).parent
            if str(db_dir) != "." and not db_dir.exists():
                db_dir.mkdir(parents=True, exist_ok=True)

        async with self._guard("initialize"):
            self._conn = await aiosqlite.connect(self.db_path)
            self._conn.row_factory = aiosqlite.Row
            for statement in SCHEMA:
                await self._conn.execute(statement)
            await self._conn.commit()

        logger.info("SQLite storage ready at %s", self.db_path)

    async def close(self) -> None:
        if self._conn is not None:
            await self._conn.close()
            self._conn = None

    @property
    def conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise StorageFailure("SQLite storage is not initialized")
        return self._conn

    @asynccontextmanager
    async def _guard(self, operation: str):
        try:
            yield
        except aiosqlite.Error as e:
            logger.error("SQLite %s failed: %s", operation, str(e), exc_info=True)
            raise StorageFailure(f"Storage error during {operation}: {e}") from e

    async def _fetch_one(self, query: str, params: tuple = ()) -> Optional[Dict[str, Any]]:
        async with self._lock:
            async with self._guard("select"):
                async with self.conn.execute(query, params) as cursor:
                    row = await cursor.fetchone()
        return _row_to_dict(row) if row else None

    async def _fetch_all(self, query: str, params: tuple = ()) -> List[Dict[str, Any]]:
        async with self._lock:
            async with self._guard("select"):
                async with self.conn.execute(query, params) as cursor:
                    rows = await cursor.fetchall()
        return [_row_to_dict(row) for row in rows]

    async def _insert(self, query: str, params: tuple) -> int:
        async with self._lock:
            async with self._guard("insert"):
                cursor = await self.conn.execute(query, params)
                await self.conn.commit()
                return cursor.lastrowid

    # Story
    async def get_stories(self) -> List[Story]:
        rows = await self._fetch_all("SELECT * FROM stories ORDER BY id DESC")
        return [Story(**row) for row in rows]

    async def get_story(self, story_id: int) -> Optional[Story]:
        row = await self._fetch_one("SELECT * FROM stories WHERE id = ?", (story_id,))
        return Story(**row) if row else None

    async def create_story(self, attrs: StoryDetails) -> Story:
        story_id = await self._insert(
            """
            INSERT INTO stories (title, genre, narrative_style, setting, target_audience,
                                 main_character, chapter_length, temperature, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                attrs.title or None,
                attrs.genre or None,
                attrs.narrative_style or None,
                attrs.setting or None,
                attrs.target_audience or None,
                attrs.main_character or None,
                attrs.chapter_length,
                attrs.temperature,
                datetime.now().isoformat(),
            ),
        )
        return await self.get_story(story_id)

    # Chapter
    async def get_chapter(self, chapter_id: int) -> Optional[Chapter]:
        row = await self._fetch_one("SELECT * FROM chapters WHERE id = ?", (chapter_id,))
        return Chapter(**row) if row else None

    async def get_chapters_by_story_id(self, story_id: int) -> List[Chapter]:
        rows = await self._fetch_all("SELECT * FROM chapters WHERE story_id = ?", (story_id,))
        return [Chapter(**row) for row in rows]

    async def get_root_chapter(self, story_id: int) -> Optional[Chapter]:
        row = await self._fetch_one(
            "SELECT * FROM chapters WHERE story_id = ? AND is_root = 1 ORDER BY id LIMIT 1",
            (story_id,),
        )
        return Chapter(**row) if row else None

    async def create_chapter(self, data: NewChapter) -> Chapter:
        self._check_chapter_shape(data)
        parent = None
        if data.parent_id is not None:
            parent = await self.get_chapter(data.parent_id)
            if parent is None:
                raise NotFoundError("Chapter", data.parent_id)
            if parent.story_id != data.story_id:
                raise ValidationError(f"Parent chapter {parent.id} belongs to another story")
        elif await self.get_root_chapter(data.story_id) is not None:
            raise self._root_exists_error(data.story_id)

        async with self._lock:
            try:
                cursor = await self.conn.execute(
                    """
                    INSERT INTO chapters (story_id, parent_id, title, content, summary, prompt,
                                          is_root, is_ending, path, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, '', ?)
                    """,
                    (
                        data.story_id,
                        data.parent_id,
                        data.title,
                        data.content,
                        data.summary or None,
                        data.prompt or None,
                        data.is_root,
                        data.is_ending,
                        datetime.now().isoformat(),
                    ),
                )
                chapter_id = cursor.lastrowid
                # id 부여 직후 path 백필, insert 와 같은 트랜잭션
                await self.conn.execute(
                    "UPDATE chapters SET path = ? WHERE id = ?",
                    (build_path(parent.path if parent else None, chapter_id), chapter_id),
                )
                await self.conn.commit()
            except aiosqlite.IntegrityError:
                # 동시에 들어온 두 번째 루트는 부분 유니크 인덱스가 막는다
                await self.conn.rollback()
                raise self._root_exists_error(data.story_id)
            except aiosqlite.Error as e:
                await self.conn.rollback()
                logger.error("SQLite create_chapter failed: %s", str(e), exc_info=True)
                raise StorageFailure(f"Storage error during create_chapter: {e}") from e

        return await self.get_chapter(chapter_id)

    async def get_next_chapter_by_option(self, parent_chapter_id: int, option_id: int) -> Optional[Chapter]:
        option = await self.get_continuation_option(option_id)
        if option is None or option.chapter_id != parent_chapter_id:
            return None
        row = await self._fetch_one(
            "SELECT * FROM chapters WHERE parent_id = ? AND prompt = ? ORDER BY id LIMIT 1",
            (parent_chapter_id, option.prompt),
        )
        return Chapter(**row) if row else None

    # Character
    async def get_characters(self, story_id: int) -> List[Character]:
        rows = await self._fetch_all("SELECT * FROM characters WHERE story_id = ? ORDER BY id", (story_id,))
        return [Character(**row) for row in rows]

    async def get_character(self, character_id: int) -> Optional[Character]:
        row = await self._fetch_one("SELECT * FROM characters WHERE id = ?", (character_id,))
        return Character(**row) if row else None

    async def create_character(self, data: NewCharacter) -> Character:
        self._check_character_name(data)
        character_id = await self._insert(
            """
            INSERT INTO characters (story_id, name, age, personality, background, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                data.story_id,
                data.name,
                data.age or None,
                data.personality or None,
                data.background or None,
                datetime.now().isoformat(),
            ),
        )
        return await self.get_character(character_id)

    # ContinuationOption
    async def get_continuation_options(self, chapter_id: int) -> List[ContinuationOption]:
        rows = await self._fetch_all(
            "SELECT * FROM continuation_options WHERE chapter_id = ? ORDER BY id",
            (chapter_id,),
        )
        return [ContinuationOption(**row) for row in rows]

    async def get_continuation_option(self, option_id: int) -> Optional[ContinuationOption]:
        row = await self._fetch_one("SELECT * FROM continuation_options WHERE id = ?", (option_id,))
        return ContinuationOption(**row) if row else None

    async def create_continuation_option(self, data: NewContinuationOption) -> ContinuationOption:
        option_id = await self._insert(
            """
            INSERT INTO continuation_options (chapter_id, title, preview, prompt)
            VALUES (?, ?, ?, ?)
            """,
            (data.chapter_id, data.title, data.preview, data.prompt),
        )
        return await self.get_continuation_option(option_id)
