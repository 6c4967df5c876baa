"""
프롬프트 관리
챕터 생성 / 스토리 속성 자동 채우기 지시문 (독일어 스토리)
"""

from typing import Any, Dict, List, Optional
import json

from services.context_service import CharacterSheet, ContextBundle

CHAPTER_SYSTEM_PROMPT = "Du bist ein kreativer Geschichtenerzähler, der fesselnde deutsche Geschichten schreibt."
DETAILS_SYSTEM_PROMPT = "Du hilfst dabei, kreative und abwechslungsreiche Geschichtendetails und Charaktere zu generieren."

STORY_ATTRIBUTE_LABELS = [
    ("title", "Titel der Geschichte"),
    ("genre", "Genre"),
    ("narrative_style", "Erzählstil"),
    ("setting", "Setting"),
    ("target_audience", "Zielgruppe"),
    ("main_character", "Hauptcharakter"),
]

# 단계별 종료 판단 가이드
ENDING_GUIDANCE = {
    "beginning": "Da dies noch der Anfang der Geschichte ist, sollte das Kapitel NICHT enden. Entwickle die Handlung weiter.",
    "development": "Die Geschichte ist in der Entwicklungsphase. Ein Ende ist möglich, aber die Handlung sollte noch weiterentwickelt werden.",
    "climax": "Die Geschichte nähert sich dem Höhepunkt. Überlege, ob wichtige Konflikte gelöst werden können und ein befriedigendes Ende möglich ist.",
    "resolution": "Die Geschichte ist reif für ein Ende. Bringe die Handlungsstränge zu einem befriedigenden Abschluss, wenn es narrativ sinnvoll ist.",
}

STORYTELLING_GUIDELINES = [
    "Erzähle die Geschichte ansprechend und atmosphärisch",
    "Berücksichtige ALLE etablierten Charaktere und ihre Eigenschaften",
    "Baue auf der bisherigen Handlung auf - keine Widersprüche",
    "Entwickle die Charaktere weiter und zeige ihre Persönlichkeiten",
    "Wenn neue Charaktere eingeführt werden, stelle sie detailliert vor",
    "Schaffe eine kohärente Atmosphäre, die zum Genre und Setting passt",
]

DETAIL_FIELDS = [
    ("title", "title"),
    ("genre", "genre"),
    ("narrative_style", "narrativeStyle"),
    ("setting", "setting"),
    ("target_audience", "targetAudience"),
    ("main_character", "mainCharacter"),
]


class PromptManager:
    """프롬프트 생성기"""

    def build_chapter_messages(self, context: ContextBundle, directive: Optional[str] = None) -> List[Dict[str, str]]:
        return [
            {"role": "system", "content": CHAPTER_SYSTEM_PROMPT},
            {"role": "user", "content": self.build_chapter_prompt(context, directive)},
        ]

    def build_chapter_prompt(self, context: ContextBundle, directive: Optional[str] = None) -> str:
        story = context.story
        sections = ["Generiere ein Kapitel für eine deutsche Geschichte mit folgenden Details:"]

        for field_name, label in STORY_ATTRIBUTE_LABELS:
            value = getattr(story, field_name, None)
            if value:
                sections.append(f"{label}: {value}")

        sections.append(self._progression_section(context))

        if context.characters:
            sections.append(self._character_section(context.characters))

        if not context.is_first_chapter:
            sections.append(self._previous_chapter_section(context))

        if directive:
            sections.append(f"\nSPEZIELLE ANWEISUNG: {directive}")
        elif context.is_first_chapter:
            sections.append(
                "\nDas ist das erste Kapitel. Führe die Charaktere ein und etabliere die Grundsituation der Geschichte."
            )
        else:
            sections.append(
                "\nFühre die Geschichte organisch fort und entwickle die Handlung entsprechend der aktuellen Erzählphase."
            )

        sections.append(f"\nDas Kapitel sollte {story.chapter_length} Wörter umfassen.")
        sections.append(self._ending_section(context))
        sections.append(
            "\nERZÄHLRICHTLINIEN:\n" + "\n".join(f"• {line}" for line in STORYTELLING_GUIDELINES)
        )
        sections.append(self._format_section(story.chapter_length))

        return "\n".join(sections)

    def _progression_section(self, context: ContextBundle) -> str:
        arc = context.arc
        return (
            "\nSTORY PROGRESSION:\n"
            f"Aktuelles Kapitel: {context.depth}\n"
            f"Aktuelle Erzählphase: {arc.phase} ({arc.description})\n"
            f"Wahrscheinlichkeit für Geschichtsende: {round(arc.ending_probability * 100)}%"
        )

    def _character_section(self, characters: List[CharacterSheet]) -> str:
        lines = ["\nCHARAKTERE (Bitte konsistent verwenden!):"]
        for index, character in enumerate(characters, start=1):
            line = f"{index}. {character.name}"
            if character.age:
                line += f" ({character.age} Jahre)"
            if character.personality:
                line += f"\n   Persönlichkeit: {character.personality}"
            if character.background:
                line += f"\n   Hintergrund: {character.background}"
            lines.append(line)
        lines.append(
            "\nWICHTIG: Alle bereits eingeführten Charaktere sollen konsistent dargestellt werden. "
            "Vermeide Widersprüche zu ihren etablierten Eigenschaften."
        )
        return "\n".join(lines)

    def _previous_chapter_section(self, context: ContextBundle) -> str:
        section = (
            "\nVORHERIGES KAPITEL:\n"
            f"Titel: \"{context.previous_title}\"\n"
            f"Inhalt: {context.previous_content}"
        )
        if context.previous_summary:
            section += (
                f"\n\nBISHERIGE HANDLUNG:\n{context.previous_summary}\n"
                "\nKONTINUITÄT: Baue nahtlos auf der bisherigen Handlung auf. "
                "Berücksichtige alle etablierten Handlungsstränge und Charakterbeziehungen."
            )
        return section

    def _ending_section(self, context: ContextBundle) -> str:
        return (
            "\nGESCHICHTSENDE-ENTSCHEIDUNG:\n"
            f"{ENDING_GUIDANCE[context.arc.phase]}\n"
            "Wenn du dich für ein Ende entscheidest, setze \"isEnding\" auf true und generiere keine Fortsetzungsoptionen.\n"
            "Wenn es kein Ende ist, generiere 3 mögliche Fortsetzungsoptionen für das nächste Kapitel."
        )

    def _format_section(self, chapter_length: str) -> str:
        return f"""
Format: Antworte bitte mit einem JSON Objekt im folgenden Format:
{{
    "title": "Kapiteltitel (nur der Titel, keine Nummer)",
    "content": "Der Kapitelinhalt ({chapter_length} Wörter)",
    "summary": "Eine präzise Zusammenfassung der GESAMTEN Geschichte bis zu diesem Punkt, inklusive aller wichtigen Handlungen, Charakterentwicklungen und aktuellen Situationen.",
    "isEnding": false,
    "continuationOptions": [
        {{
            "title": "Titel der Option",
            "preview": "Kurze Vorschau (etwa 10-15 Wörter)",
            "prompt": "Detaillierter Prompt für diese Fortsetzung"
        }}
    ]
}}

Genau 3 continuationOptions, oder eine leere Liste wenn "isEnding" true ist."""

    def build_story_details_messages(self, partial: Dict[str, Any]) -> List[Dict[str, str]]:
        return [
            {"role": "system", "content": DETAILS_SYSTEM_PROMPT},
            {"role": "user", "content": self.build_story_details_prompt(partial)},
        ]

    def build_story_details_prompt(self, partial: Dict[str, Any]) -> str:
        """partial 은 snake_case 키 (StoryDetailsWithCharacters.model_dump())"""
        lines = ["Generiere zufällige Details für eine deutsche Geschichte. Fülle nur die fehlenden Felder aus:", ""]

        for field_name, key in DETAIL_FIELDS:
            value = partial.get(field_name)
            if value:
                lines.append(f"{key}: {value} (bereits angegeben)")
            else:
                lines.append(f"{key}: [FEHLT]")

        lines.append("")
        lines.append(
            "Außerdem generiere mindestens einen Hauptcharakter für die Geschichte mit folgendem Format:\n"
            "\"characters\": [\n"
            "  {\n"
            "    \"name\": \"Name des Charakters\",\n"
            "    \"age\": \"Alter des Charakters\",\n"
            "    \"personality\": \"Persönlichkeitsbeschreibung (ca. 20-30 Wörter)\",\n"
            "    \"background\": \"Hintergrundgeschichte des Charakters (ca. 20-30 Wörter)\"\n"
            "  }\n"
            "]"
        )
        lines.append("")

        characters = partial.get("characters")
        if characters:
            lines.append(
                f"characters: {json.dumps(characters, ensure_ascii=False, indent=2)} (bereits angegeben)"
            )
        else:
            lines.append("characters: [FEHLT]")

        lines.append("")
        lines.append(
            "Antworte mit einem JSON-Objekt, das ALLE Felder enthält "
            "(sowohl die bereits angegebenen als auch die generierten)."
        )
        return "\n".join(lines)


_prompt_manager = None


def get_prompt_manager() -> PromptManager:
    """프롬프트 매니저 싱글톤"""
    global _prompt_manager
    if _prompt_manager is None:
        _prompt_manager = PromptManager()
    return _prompt_manager
