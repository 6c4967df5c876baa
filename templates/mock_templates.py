"""
Mock 템플릿 시스템
API 키 없이 실행할 때 MockProvider 가 사용하는 결정적 스토리 생성기
생성 백엔드와 같은 JSON 형태(camelCase)를 반환
"""

import hashlib
from typing import Any, Dict, List, Optional

from services.context_service import story_arc_phase

# 장르별 기본 설정
GENRE_PRESETS = {
    "Fantasy": {
        "setting": "Ein nebliges Königreich am Rand eines verwunschenen Waldes",
        "narrativeStyle": "Bildhaft und märchenhaft",
        "targetAudience": "Jugendliche",
        "mainCharacter": "Lina, eine junge Kartenzeichnerin",
        "character": {
            "name": "Lina",
            "age": "17",
            "personality": "Neugierig, mutig und manchmal vorschnell, sie vertraut eher ihrem Kompass als anderen Menschen.",
            "background": "Tochter eines verschollenen Kartografen, die seine letzte unvollendete Karte geerbt hat.",
        },
    },
    "Krimi": {
        "setting": "Hamburg im Herbst, zwischen Hafen und Speicherstadt",
        "narrativeStyle": "Knapp und atmosphärisch",
        "targetAudience": "Erwachsene",
        "mainCharacter": "Kommissar Jonas Brandt",
        "character": {
            "name": "Jonas Brandt",
            "age": "48",
            "personality": "Ruhig, stur und gründlich, mit einem trockenen Humor, den nur wenige verstehen.",
            "background": "Ehemaliger Hafenarbeiter, der spät zur Polizei kam und die Stadt wie seine Westentasche kennt.",
        },
    },
    "Science-Fiction": {
        "setting": "Die Orbitalstation Helios im Jahr 2189",
        "narrativeStyle": "Sachlich mit Momenten des Staunens",
        "targetAudience": "Junge Erwachsene",
        "mainCharacter": "Ingenieurin Mara Vogt",
        "character": {
            "name": "Mara Vogt",
            "age": "29",
            "personality": "Pragmatisch, hilfsbereit und misstrauisch gegenüber Systemen, die sie nicht selbst gebaut hat.",
            "background": "Aufgewachsen in einer Bergbaukolonie, arbeitet sie nun als Technikerin für das Lebenserhaltungssystem.",
        },
    },
}

DEFAULT_GENRE = "Fantasy"

OPTION_TEMPLATES = [
    (
        "Dem Geheimnis folgen",
        "Eine Spur führt tiefer in das Unbekannte.",
        "{name} folgt der neuen Spur und entdeckt dabei etwas Unerwartetes.",
    ),
    (
        "Einen Verbündeten suchen",
        "Hilfe kommt von einer überraschenden Seite.",
        "{name} sucht Unterstützung und trifft auf eine Person mit eigenen Absichten.",
    ),
    (
        "Innehalten und nachdenken",
        "Ein ruhiger Moment bringt eine Erinnerung zurück.",
        "{name} hält inne, erinnert sich an ein altes Versprechen und trifft eine Entscheidung.",
    ),
]


class MockStoryGenerator:
    """결정적 Mock 스토리 생성기"""

    def generate_story_details(self, partial: Dict[str, Any]) -> Dict[str, Any]:
        """빈 속성과 캐릭터를 장르 프리셋으로 채운다"""
        genre = partial.get("genre") or DEFAULT_GENRE
        preset = GENRE_PRESETS.get(genre, GENRE_PRESETS[DEFAULT_GENRE])

        result = {
            "title": partial.get("title") or f"Die Chronik von {preset['character']['name']}",
            "genre": genre,
            "narrativeStyle": partial.get("narrativeStyle") or preset["narrativeStyle"],
            "setting": partial.get("setting") or preset["setting"],
            "targetAudience": partial.get("targetAudience") or preset["targetAudience"],
            "mainCharacter": partial.get("mainCharacter") or preset["mainCharacter"],
            "characters": partial.get("characters") or [dict(preset["character"])],
        }
        return result

    def generate_chapter(
        self,
        depth: int = 1,
        directive: Optional[str] = None,
        characters: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        arc = story_arc_phase(depth)
        name = characters[0]["name"] if characters else "Die Heldin"
        seed = self._seed(directive, depth)

        if directive:
            opening = f"{directive.rstrip('.')}. So beginnt für {name} ein neuer Abschnitt."
        else:
            opening = f"Der Morgen ist still, als {name} zum ersten Mal bemerkt, dass etwas nicht stimmt."

        content = (
            f"{opening}\n\n"
            f"Die Geschichte befindet sich in der Phase '{arc.phase}'. "
            f"{name} spürt, dass jede Entscheidung Gewicht hat. "
            f"Schritt für Schritt wird klar, welche Kräfte im Hintergrund wirken (Spur {seed})."
        )

        is_ending = arc.phase == "resolution"
        options = [] if is_ending else self._options(name)

        return {
            "title": self._title(arc.phase, seed),
            "content": content,
            "summary": f"{name} erlebt Kapitel {depth} der Geschichte ({arc.phase}).",
            "isEnding": is_ending,
            "continuationOptions": options,
        }

    def _options(self, name: str) -> List[Dict[str, str]]:
        return [
            {"title": title, "preview": preview, "prompt": prompt.format(name=name)}
            for title, preview, prompt in OPTION_TEMPLATES
        ]

    @staticmethod
    def _title(phase: str, seed: str) -> str:
        titles = {
            "beginning": "Ein stiller Anfang",
            "development": "Verschlungene Wege",
            "climax": "Am Wendepunkt",
            "resolution": "Das letzte Licht",
        }
        return f"{titles.get(phase, 'Ein neues Kapitel')} ({seed})"

    @staticmethod
    def _seed(directive: Optional[str], depth: int) -> str:
        raw = f"{directive or ''}:{depth}".encode("utf-8")
        return hashlib.sha1(raw).hexdigest()[:6]
