import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from stampede_guard.config import GEMINI_MODEL
from stampede_guard.core.insights import (
    INSIGHTS_FAILED_TEXT,
    NO_INSIGHTS_TEXT,
    InsightPanel,
    build_prompt,
    fetch_safety_insights,
)
from stampede_guard.models.schemas import Location

LOCATION = Location(lat=12.97, lng=77.59, accuracy=8.0)


def make_response(text, chunks=()):
    metadata = SimpleNamespace(grounding_chunks=list(chunks))
    return SimpleNamespace(text=text, candidates=[SimpleNamespace(grounding_metadata=metadata)])


def maps_chunk(uri, title):
    return SimpleNamespace(maps=SimpleNamespace(uri=uri, title=title))


def make_client(response=None, error=None):
    client = MagicMock()
    client.aio.models.generate_content = AsyncMock(return_value=response, side_effect=error)
    return client


def test_prompt_embeds_coordinates():
    prompt = build_prompt(LOCATION)
    assert "12.97, 77.59" in prompt
    assert "hospitals" in prompt


def test_fetch_sends_grounded_request():
    client = make_client(make_response("Go to the park."))

    result = asyncio.run(fetch_safety_insights(LOCATION, client=client))

    assert result.text == "Go to the park."
    kwargs = client.aio.models.generate_content.call_args.kwargs
    assert kwargs["model"] == GEMINI_MODEL
    assert "12.97" in kwargs["contents"]
    config = kwargs["config"]
    assert config.tools[0].google_maps is not None
    lat_lng = config.tool_config.retrieval_config.lat_lng
    assert (lat_lng.latitude, lat_lng.longitude) == (12.97, 77.59)


def test_sources_keep_only_maps_chunks():
    chunks = [maps_chunk("https://maps.example/h", "City Hospital"), SimpleNamespace(maps=None)]
    client = make_client(make_response("text", chunks))

    result = asyncio.run(fetch_safety_insights(LOCATION, client=client))

    assert [(s.uri, s.title) for s in result.sources] == [("https://maps.example/h", "City Hospital")]


def test_empty_text_uses_placeholder():
    client = make_client(SimpleNamespace(text=None, candidates=None))
    result = asyncio.run(fetch_safety_insights(LOCATION, client=client))
    assert result.text == NO_INSIGHTS_TEXT
    assert result.sources == []


class TestInsightPanel:
    def test_success(self):
        client = make_client(make_response("Assemble at the stadium.", [maps_chunk("u", "Stadium")]))
        panel = InsightPanel(client_factory=lambda: client)

        result = asyncio.run(panel.analyze(LOCATION))

        assert result.text == "Assemble at the stadium."
        assert result.sources[0].title == "Stadium"
        assert panel.loading is False

    @pytest.mark.parametrize("error", [RuntimeError("network down"), ValueError("no api key")])
    def test_failure_shows_static_message(self, error):
        panel = InsightPanel(client_factory=lambda: make_client(error=error))

        result = asyncio.run(panel.analyze(LOCATION))

        assert result.text == INSIGHTS_FAILED_TEXT
        assert panel.loading is False

    def test_client_construction_failure_is_contained(self):
        def no_client():
            raise ValueError("Missing key inputs argument!")

        panel = InsightPanel(client_factory=no_client)
        assert asyncio.run(panel.analyze(LOCATION)).text == INSIGHTS_FAILED_TEXT

    def test_without_location_is_noop(self):
        factory = MagicMock()
        panel = InsightPanel(client_factory=factory)

        result = asyncio.run(panel.analyze(None))

        assert result.text == ""
        factory.assert_not_called()

    def test_late_response_after_close_is_discarded(self):
        panel = InsightPanel(client_factory=lambda: make_client(make_response("late")))
        panel.close()

        asyncio.run(panel.analyze(LOCATION))

        assert panel.insights == ""
        assert panel.loading is False
