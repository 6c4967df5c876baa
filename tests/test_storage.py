"""
스토리 저장소 테스트 (메모리 / SQLite)
"""
import asyncio

import pytest

from models.story_models import NewChapter, NewCharacter, NewContinuationOption, StoryDetails
from storage.sqlite_storage import SQLiteStorage
from storage.story_storage import InMemoryStorage, StorageFactory, build_path, path_sort_key
from config.settings import Settings
from utils.exceptions import NotFoundError, ValidationError


def chapter(story_id, parent_id=None, title="Kapitel", prompt="initial chapter"):
    return NewChapter(
        story_id=story_id,
        parent_id=parent_id,
        title=title,
        content=f"Inhalt von {title}",
        prompt=prompt,
        is_root=1 if parent_id is None else 0,
    )


@pytest.fixture(params=["memory", "sqlite"])
def make_storage(request, tmp_path):
    """저장소 팩토리 (테스트 코루틴 안에서 생성/초기화)"""

    async def factory():
        if request.param == "memory":
            storage = InMemoryStorage()
        else:
            storage = SQLiteStorage(str(tmp_path / "stories.db"))
        await storage.initialize()
        return storage

    return factory


def run(make_storage, scenario):
    async def runner():
        storage = await make_storage()
        try:
            return await scenario(storage)
        finally:
            await storage.close()

    return asyncio.run(runner())


@pytest.mark.unit
class TestPathHelpers:
    def test_build_path(self):
        assert build_path(None, 7) == "7"
        assert build_path("1-4", 9) == "1-4-9"

    def test_numeric_sort_key(self):
        paths = ["1-10", "1-2", "1", "1-2-11", "1-2-3"]
        assert sorted(paths, key=path_sort_key) == ["1", "1-2", "1-2-3", "1-2-11", "1-10"]


@pytest.mark.unit
class TestStoryStorage:
    def test_story_ids_and_listing_order(self, make_storage):
        async def scenario(storage):
            first = await storage.create_story(StoryDetails(title="Eins", temperature=3))
            second = await storage.create_story(StoryDetails(title="Zwei", chapter_length="300-400"))
            stories = await storage.get_stories()
            return first, second, stories

        first, second, stories = run(make_storage, scenario)

        assert (first.id, second.id) == (1, 2)
        assert first.temperature == 3
        assert second.chapter_length == "300-400"
        assert [s.id for s in stories] == [2, 1]

    def test_chapter_paths_and_tree_order(self, make_storage):
        async def scenario(storage):
            story = await storage.create_story(StoryDetails(title="Baum"))
            root = await storage.create_chapter(chapter(story.id))
            a = await storage.create_chapter(chapter(story.id, root.id, "A", "a"))
            b = await storage.create_chapter(chapter(story.id, root.id, "B", "b"))
            a1 = await storage.create_chapter(chapter(story.id, a.id, "A1", "a1"))
            return root, a, b, a1, await storage.get_all_chapters(story.id), await storage.get_root_chapter(story.id)

        root, a, b, a1, ordered, found_root = run(make_storage, scenario)

        assert root.path == str(root.id)
        assert a.path == f"{root.id}-{a.id}"
        assert a1.path == f"{root.id}-{a.id}-{a1.id}"
        assert [c.id for c in ordered] == [root.id, a.id, a1.id, b.id]
        assert found_root.id == root.id

    def test_tree_order_is_numeric_past_ten_siblings(self, make_storage):
        async def scenario(storage):
            story = await storage.create_story(StoryDetails())
            root = await storage.create_chapter(chapter(story.id))
            children = [
                await storage.create_chapter(chapter(story.id, root.id, f"K{i}", f"k{i}"))
                for i in range(11)
            ]
            grandchild = await storage.create_chapter(chapter(story.id, children[0].id, "E", "e"))
            return root, children, grandchild, await storage.get_all_chapters(story.id)

        root, children, grandchild, ordered = run(make_storage, scenario)

        assert children[-1].path == f"{root.id}-{children[-1].id}"
        assert children[-1].id >= 10
        expected = [root.id, children[0].id, grandchild.id] + [c.id for c in children[1:]]
        assert [c.id for c in ordered] == expected

    def test_single_root_per_story(self, make_storage):
        async def scenario(storage):
            story = await storage.create_story(StoryDetails())
            other = await storage.create_story(StoryDetails())
            root = await storage.create_chapter(chapter(story.id))

            with pytest.raises(ValidationError):
                await storage.create_chapter(chapter(story.id, title="Zweite Wurzel"))

            other_root = await storage.create_chapter(chapter(other.id))
            return root, other_root, await storage.get_chapters_by_story_id(story.id)

        root, other_root, chapters = run(make_storage, scenario)

        assert [c.id for c in chapters] == [root.id]
        assert other_root.is_root == 1

    @pytest.mark.parametrize("is_root, has_parent", [(0, False), (1, True)])
    def test_root_flag_must_match_parent(self, make_storage, is_root, has_parent):
        async def scenario(storage):
            story = await storage.create_story(StoryDetails())
            root = await storage.create_chapter(chapter(story.id))
            data = chapter(story.id, root.id if has_parent else None, "Falsch", "f")
            data.is_root = is_root

            with pytest.raises(ValidationError):
                await storage.create_chapter(data)

            return await storage.get_chapters_by_story_id(story.id)

        chapters = run(make_storage, scenario)

        assert len(chapters) == 1
        assert sum(1 for c in chapters if c.parent_id is None) == 1

    def test_chapter_path_from_root(self, make_storage):
        async def scenario(storage):
            story = await storage.create_story(StoryDetails())
            root = await storage.create_chapter(chapter(story.id))
            child = await storage.create_chapter(chapter(story.id, root.id, "Kind", "k"))
            grandchild = await storage.create_chapter(chapter(story.id, child.id, "Enkel", "e"))
            return (
                [c.id for c in await storage.get_chapter_path(grandchild.id)],
                [root.id, child.id, grandchild.id],
                await storage.get_chapter_path(999),
            )

        path, expected, missing = run(make_storage, scenario)

        assert path == expected
        assert missing == []

    def test_create_chapter_rejects_bad_parent(self, make_storage):
        async def scenario(storage):
            first = await storage.create_story(StoryDetails())
            second = await storage.create_story(StoryDetails())
            root = await storage.create_chapter(chapter(first.id))

            with pytest.raises(NotFoundError):
                await storage.create_chapter(chapter(first.id, 999, "Waise", "w"))
            with pytest.raises(ValidationError):
                await storage.create_chapter(chapter(second.id, root.id, "Fremd", "f"))

            return await storage.get_chapters_by_story_id(second.id)

        assert run(make_storage, scenario) == []

    def test_next_chapter_by_option(self, make_storage):
        async def scenario(storage):
            story = await storage.create_story(StoryDetails())
            root = await storage.create_chapter(chapter(story.id))
            option = await storage.create_continuation_option(
                NewContinuationOption(chapter_id=root.id, title="Links", preview="Nach links", prompt="links gehen")
            )
            other = await storage.create_continuation_option(
                NewContinuationOption(chapter_id=root.id, title="Rechts", preview="Nach rechts", prompt="rechts gehen")
            )

            before = await storage.get_next_chapter_by_option(root.id, option.id)
            child = await storage.create_chapter(chapter(story.id, root.id, "Links", "links gehen"))
            after = await storage.get_next_chapter_by_option(root.id, option.id)
            unrelated = await storage.get_next_chapter_by_option(root.id, other.id)
            missing = await storage.get_next_chapter_by_option(root.id, 999)
            options = await storage.get_continuation_options(root.id)
            return before, child, after, unrelated, missing, options

        before, child, after, unrelated, missing, options = run(make_storage, scenario)

        assert before is None
        assert after.id == child.id
        assert unrelated is None
        assert missing is None
        assert [o.title for o in options] == ["Links", "Rechts"]

    def test_characters(self, make_storage):
        async def scenario(storage):
            story = await storage.create_story(StoryDetails())
            ella = await storage.create_character(NewCharacter(story_id=story.id, name="Ella", age="30"))
            await storage.create_character(NewCharacter(story_id=story.id, name="Tom"))

            with pytest.raises(ValidationError):
                await storage.create_character(NewCharacter(story_id=story.id, name=" "))

            return ella, await storage.get_character(ella.id), await storage.get_characters(story.id)

        ella, fetched, characters = run(make_storage, scenario)

        assert fetched.name == "Ella"
        assert fetched.age == "30"
        assert [c.name for c in characters] == ["Ella", "Tom"]


@pytest.mark.unit
class TestSQLitePersistence:
    def test_readers_never_see_unfinished_path(self, tmp_path):
        async def scenario():
            storage = SQLiteStorage(str(tmp_path / "concurrent.db"))
            await storage.initialize()
            try:
                story = await storage.create_story(StoryDetails())
                root = await storage.create_chapter(chapter(story.id))
                writes = [
                    storage.create_chapter(chapter(story.id, root.id, f"K{i}", f"k{i}"))
                    for i in range(10)
                ]
                reads = [storage.get_all_chapters(story.id) for _ in range(10)]
                results = await asyncio.gather(*writes, *reads)
                return results[10:]
            finally:
                await storage.close()

        snapshots = asyncio.run(scenario())

        for snapshot in snapshots:
            assert all(c.path for c in snapshot)

    def test_data_survives_reconnect(self, tmp_path):
        db_path = str(tmp_path / "persist.db")

        async def scenario():
            storage = SQLiteStorage(db_path)
            await storage.initialize()
            story = await storage.create_story(StoryDetails(title="Bleibt"))
            await storage.create_chapter(chapter(story.id))
            await storage.close()

            reopened = SQLiteStorage(db_path)
            await reopened.initialize()
            try:
                return await reopened.get_story(story.id), await reopened.get_root_chapter(story.id)
            finally:
                await reopened.close()

        story, root = asyncio.run(scenario())

        assert story.title == "Bleibt"
        assert root.path == str(root.id)


@pytest.mark.unit
class TestStorageFactory:
    def test_backends(self, tmp_path):
        memory = StorageFactory.create(Settings(STORAGE_BACKEND="memory"))
        sqlite = StorageFactory.create(Settings(STORAGE_BACKEND="sqlite", DATABASE_PATH=str(tmp_path / "x.db")))
        unknown = StorageFactory.create(Settings(STORAGE_BACKEND="redis"))

        assert memory.get_backend_name() == "memory"
        assert sqlite.get_backend_name() == "sqlite"
        assert unknown.get_backend_name() == "memory"
