"""
Tests for the tool catalog.

Costs and endpoints are table-driven; these tests pin the published prices.
"""

import pytest

from timeless.exceptions import UnknownToolError
from timeless.models.api import GenerationType, ToolFamily, ToolRequest
from timeless.services.tools.catalog import (
    CATALOG,
    DispatchMode,
    get_tool,
    required_credits,
    scene_count,
)


class TestCosts:
    """Published credit costs per tool."""

    @pytest.mark.parametrize(
        ("family", "tool", "cost"),
        [
            (ToolFamily.IMAGE, "upscale", 3),
            (ToolFamily.IMAGE, "background-remove", 2),
            (ToolFamily.IMAGE, "inpainting", 5),
            (ToolFamily.IMAGE, "object-erase", 4),
            (ToolFamily.IMAGE, "relight", 4),
            (ToolFamily.IMAGE, "shots", 2),
            (ToolFamily.IMAGE, "story-mode", 8),
            (ToolFamily.VIDEO, "video-upscale", 12),
            (ToolFamily.VIDEO, "lip-sync", 20),
            (ToolFamily.VIDEO, "sora-trends", 30),
            (ToolFamily.VIDEO, "story-animate", 15),
            (ToolFamily.VIDEO, "ai-upscale", 12),
            (ToolFamily.CINEMA, "camera-control", 20),
            (ToolFamily.CINEMA, "motion-path", 22),
            (ToolFamily.CINEMA, "stabilize", 10),
            (ToolFamily.MUSIC, "vocals", 15),
            (ToolFamily.MUSIC, "tempo-pitch", 3),
        ],
    )
    def test_tool_cost(self, family, tool, cost):
        assert get_tool(family, tool).cost == cost

    def test_every_family_has_a_table(self):
        assert set(CATALOG) == set(ToolFamily)

    def test_all_costs_positive(self):
        for tools in CATALOG.values():
            for spec in tools.values():
                assert spec.cost > 0, spec.name


class TestGetTool:
    """Tests for get_tool."""

    def test_unknown_tool_raises(self):
        with pytest.raises(UnknownToolError) as exc_info:
            get_tool(ToolFamily.IMAGE, "teleport")

        assert str(exc_info.value) == "Unknown tool: teleport"

    def test_tool_from_other_family_is_unknown(self):
        """Tools are scoped to their family."""
        with pytest.raises(UnknownToolError):
            get_tool(ToolFamily.MUSIC, "upscale")

    def test_dispatchable_tools_have_endpoints(self):
        """Fal and Kie tools name their upstream model."""
        for tools in CATALOG.values():
            for spec in tools.values():
                if spec.mode in (DispatchMode.SYNC, DispatchMode.QUEUE, DispatchMode.KIE):
                    assert spec.endpoint, spec.name


class TestToolSpec:
    """Tests for ToolSpec properties."""

    def test_generation_types(self):
        assert get_tool(ToolFamily.IMAGE, "upscale").generation_type == GenerationType.IMAGE
        assert get_tool(ToolFamily.VIDEO, "extend").generation_type == GenerationType.VIDEO
        assert get_tool(ToolFamily.CINEMA, "color-grade").generation_type == GenerationType.VIDEO
        assert get_tool(ToolFamily.MUSIC, "remix").generation_type == GenerationType.MUSIC

    def test_cinema_model_name_prefixed(self):
        assert get_tool(ToolFamily.CINEMA, "lens-effects").model_name == "cinema-lens-effects"
        assert get_tool(ToolFamily.VIDEO, "lip-sync").model_name == "lip-sync"


class TestRequiredCredits:
    """Tests for scene_count and required_credits."""

    def test_single_unit_tool(self):
        request = ToolRequest(tool="upscale", image_url="https://img.png")
        assert required_credits(get_tool(ToolFamily.IMAGE, "upscale"), request) == 3

    def test_story_mode_charges_per_scene(self):
        request = ToolRequest(tool="story-mode", scene_prompts=["a", "b", "c"])
        assert required_credits(get_tool(ToolFamily.IMAGE, "story-mode"), request) == 24

    def test_story_mode_with_only_prompt_is_one_scene(self):
        request = ToolRequest(tool="story-mode", prompt="a dragon")
        spec = get_tool(ToolFamily.IMAGE, "story-mode")
        assert scene_count(spec, request) == 1

    def test_story_animate_charges_per_image(self):
        request = ToolRequest(tool="story-animate", image_urls=["a", "b"])
        assert required_credits(get_tool(ToolFamily.VIDEO, "story-animate"), request) == 30

