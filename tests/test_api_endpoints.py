"""
API 엔드포인트 테스트
"""
import pytest

from conftest import chapter_payload


def create_story(client, body=None):
    response = client.post("/api/stories", json=body or {})
    assert response.status_code == 201
    return response.json()


@pytest.mark.api
@pytest.mark.unit
class TestHealthEndpoint:
    """헬스체크 엔드포인트 테스트"""

    def test_health_check_returns_200(self, client):
        """헬스체크 성공"""
        response = client.get("/health")
        assert response.status_code == 200

        data = response.json()
        assert data["status"] == "healthy"
        assert data["storage_backend"] == "memory"
        assert data["current_provider"] == "Scripted Provider"

    def test_root_and_providers(self, client):
        assert client.get("/").json()["status"] == "healthy"

        data = client.get("/providers").json()
        assert data["available"]["mock"] is True
        assert data["settings"]["provider"] == "mock"

    def test_health_only_accepts_get(self, client):
        """헬스체크는 GET만 허용"""
        assert client.post("/health").status_code == 405


@pytest.mark.api
class TestCreateStory:
    """스토리 생성 API"""

    def test_create_story_with_empty_body(self, client, provider):
        """빈 요청이면 속성/캐릭터가 생성되고 루트 챕터가 붙는다"""
        data = create_story(client)

        assert data["id"] == 1
        assert data["title"]
        assert data["genre"] == "Fantasy"
        assert data["chapterLength"] == "100-200"
        assert data["temperature"] == 5

        root = data["rootChapter"]
        assert root["isRoot"] == 1
        assert root["parentId"] is None
        assert root["path"] == str(root["id"])
        assert root["prompt"] == "initial chapter"
        assert len(root["continuationOptions"]) == 3

        assert len(provider.detail_calls) == 1
        assert len(provider.chapter_calls) == 1

        characters = client.get(f"/api/stories/{data['id']}/characters").json()
        assert [c["name"] for c in characters] == ["Lina"]

    def test_create_story_with_all_fields_skips_detail_generation(self, client, provider, full_story_request):
        data = create_story(client, full_story_request)

        assert data["title"] == "Der Leuchtturm"
        assert data["narrativeStyle"] == "Knapp"
        assert provider.detail_calls == []

        prompt = provider.chapter_calls[0]["messages"][-1]["content"]
        assert "Jonas Brandt" in prompt
        assert "Das ist das erste Kapitel" in prompt

    def test_create_story_temperature_out_of_range(self, client):
        response = client.post("/api/stories", json={"temperature": 10})
        assert response.status_code == 400

        data = response.json()
        assert data["status_code"] == 400
        assert any(e["field"] == "temperature" for e in data["errors"])

    def test_create_story_invalid_chapter_length(self, client):
        response = client.post("/api/stories", json={"chapterLength": "50-100"})
        assert response.status_code == 400

    def test_create_story_generation_failure(self, client, provider, full_story_request):
        """챕터 생성 실패 시 500, 스토리는 루트 없이 남는다"""
        provider.queue("this is not json")

        response = client.post("/api/stories", json=full_story_request)
        assert response.status_code == 500
        assert "message" in response.json()

        stories = client.get("/api/stories").json()
        assert len(stories) == 1

        story = client.get(f"/api/stories/{stories[0]['id']}").json()
        assert story["rootChapter"] is None

    def test_list_stories_newest_first(self, client, full_story_request):
        create_story(client, full_story_request)
        create_story(client, full_story_request)

        ids = [s["id"] for s in client.get("/api/stories").json()]
        assert ids == [2, 1]


@pytest.mark.api
class TestContinueStory:
    """스토리 이어쓰기 API"""

    def test_continue_with_option_then_reuse(self, client, provider, full_story_request):
        story = create_story(client, full_story_request)
        root = story["rootChapter"]
        option = root["continuationOptions"][0]
        body = {"storyId": story["id"], "chapterId": root["id"], "selectedOptionId": option["id"]}

        first = client.post("/api/stories/continue", json=body)
        assert first.status_code == 201
        chapter = first.json()
        assert chapter["parentId"] == root["id"]
        assert chapter["prompt"] == option["prompt"]
        assert chapter["path"] == f"{root['path']}-{chapter['id']}"

        calls_before = len(provider.chapter_calls)
        second = client.post("/api/stories/continue", json=body)
        assert second.status_code == 200
        assert second.json()["id"] == chapter["id"]
        assert len(provider.chapter_calls) == calls_before

    def test_continue_with_custom_prompt(self, client, provider, full_story_request):
        story = create_story(client, full_story_request)
        root = story["rootChapter"]

        response = client.post(
            "/api/stories/continue",
            json={"storyId": story["id"], "chapterId": root["id"], "customPrompt": "Ein Fremder taucht auf"},
        )
        assert response.status_code == 201
        assert response.json()["prompt"] == "Ein Fremder taucht auf"

        prompt = provider.chapter_calls[-1]["messages"][-1]["content"]
        assert "SPEZIELLE ANWEISUNG: Ein Fremder taucht auf" in prompt
        assert root["content"] in prompt

    def test_continue_without_directive(self, client, full_story_request):
        story = create_story(client, full_story_request)
        response = client.post(
            "/api/stories/continue",
            json={"storyId": story["id"], "chapterId": story["rootChapter"]["id"], "customPrompt": "   "},
        )
        assert response.status_code == 400
        assert len(response.json()["errors"]) == 2

    def test_continue_unknown_story(self, client):
        response = client.post("/api/stories/continue", json={"storyId": 99, "chapterId": 1, "customPrompt": "x"})
        assert response.status_code == 404

    def test_continue_with_option_of_other_chapter(self, client, full_story_request):
        first = create_story(client, full_story_request)
        second = create_story(client, full_story_request)
        foreign_option = second["rootChapter"]["continuationOptions"][0]

        response = client.post(
            "/api/stories/continue",
            json={
                "storyId": first["id"],
                "chapterId": first["rootChapter"]["id"],
                "selectedOptionId": foreign_option["id"],
            },
        )
        assert response.status_code == 404

    def test_continue_ending_chapter_has_no_options(self, client, provider, full_story_request):
        story = create_story(client, full_story_request)
        provider.queue(chapter_payload(title="Ende", is_ending=True, options=3))

        response = client.post(
            "/api/stories/continue",
            json={"storyId": story["id"], "chapterId": story["rootChapter"]["id"], "customPrompt": "Schluss"},
        )
        assert response.status_code == 201
        data = response.json()
        assert data["isEnding"] == 1
        assert data["continuationOptions"] == []

    def test_continue_generation_failure_persists_nothing(self, client, provider, full_story_request):
        story = create_story(client, full_story_request)
        provider.queue('{"title": "", "content": ""}')

        response = client.post(
            "/api/stories/continue",
            json={"storyId": story["id"], "chapterId": story["rootChapter"]["id"], "customPrompt": "weiter"},
        )
        assert response.status_code == 500
        assert len(client.get(f"/api/stories/{story['id']}/chapters").json()) == 1


@pytest.mark.api
class TestReadEndpoints:
    """조회 API"""

    def test_chapter_path_and_story_chapters(self, client, full_story_request):
        story = create_story(client, full_story_request)
        root = story["rootChapter"]

        child = client.post(
            "/api/stories/continue",
            json={"storyId": story["id"], "chapterId": root["id"], "customPrompt": "A"},
        ).json()
        grandchild = client.post(
            "/api/stories/continue",
            json={"storyId": story["id"], "chapterId": child["id"], "customPrompt": "B"},
        ).json()

        path = client.get(f"/api/chapters/{grandchild['id']}/path").json()
        assert [c["id"] for c in path] == [root["id"], child["id"], grandchild["id"]]

        chapters = client.get(f"/api/stories/{story['id']}/chapters").json()
        assert [c["id"] for c in chapters] == [root["id"], child["id"], grandchild["id"]]

        chapter = client.get(f"/api/chapters/{child['id']}").json()
        assert len(chapter["continuationOptions"]) == 3

    def test_missing_resources_return_404(self, client):
        assert client.get("/api/stories/42").status_code == 404
        assert client.get("/api/stories/42/chapters").status_code == 404
        assert client.get("/api/stories/42/characters").status_code == 404
        assert client.get("/api/chapters/42").status_code == 404
        assert client.get("/api/chapters/42/path").status_code == 404
        assert client.get("/api/characters/42").status_code == 404

    def test_create_character(self, client, full_story_request):
        story = create_story(client, full_story_request)

        response = client.post(
            "/api/characters",
            json={"storyId": story["id"], "name": "Ella", "age": 30, "personality": "Klug"},
        )
        assert response.status_code == 201
        character = response.json()
        assert character["age"] == "30"

        assert client.get(f"/api/characters/{character['id']}").json()["name"] == "Ella"

    def test_create_character_validation(self, client, full_story_request):
        story = create_story(client, full_story_request)

        assert client.post("/api/characters", json={"storyId": story["id"], "name": "  "}).status_code == 400
        assert client.post("/api/characters", json={"storyId": 77, "name": "Ella"}).status_code == 404

    def test_invalid_endpoint_returns_404(self, client):
        """존재하지 않는 엔드포인트"""
        assert client.get("/invalid-endpoint-12345").status_code == 404
