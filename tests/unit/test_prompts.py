"""Tests for charstudio.core.prompts — model instructions."""

from __future__ import annotations

from datetime import datetime, timezone

from charstudio.core.models import CharacterProfile
from charstudio.core.prompts import ANALYSIS_INSTRUCTION, build_visualization_prompt


def _profile(**overrides) -> CharacterProfile:
    fields = {
        "id": "c1",
        "owner_id": "alice",
        "name": "Aria",
        "description": "A brave wanderer.",
        "keywords": ["brave", "calm"],
        "image_url": "http://testserver/blobs/user_uploads/alice/c1.png",
        "created_at": datetime(2024, 5, 1, tzinfo=timezone.utc),
    }
    fields.update(overrides)
    return CharacterProfile(**fields)


class TestAnalysisInstruction:
    def test_asks_for_name_description_keywords(self):
        assert "name" in ANALYSIS_INSTRUCTION
        assert "2-3 sentence description" in ANALYSIS_INSTRUCTION
        assert "5 keywords" in ANALYSIS_INSTRUCTION


class TestBuildVisualizationPrompt:
    def test_embeds_profile_and_scene(self):
        prompt = build_visualization_prompt(_profile(), "standing in rain")

        assert "Character: Aria" in prompt
        assert "Description: A brave wanderer." in prompt
        assert "Keywords: brave, calm" in prompt
        assert '"standing in rain"' in prompt

    def test_section_order(self):
        prompt = build_visualization_prompt(_profile(), "standing in rain")

        assert prompt.index("Character:") < prompt.index("Description:")
        assert prompt.index("Keywords:") < prompt.index("Scene:")
        assert prompt.index("Scene:") < prompt.index("standing in rain")

    def test_sections_separated_by_blank_lines(self):
        prompt = build_visualization_prompt(_profile(), "rain")
        assert "\n\nCharacter: Aria\n\n" in prompt

    def test_empty_fields_omitted(self):
        prompt = build_visualization_prompt(
            _profile(name="", description="  ", keywords=["", " "]), "rain"
        )

        assert "Character:" not in prompt
        assert "Description:" not in prompt
        assert "Keywords:" not in prompt
        assert '"rain"' in prompt

    def test_scene_is_stripped(self):
        prompt = build_visualization_prompt(_profile(), "  on a rooftop \n")
        assert '"on a rooftop"' in prompt
