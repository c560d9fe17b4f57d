import logging
import os
from typing import Optional

from google import genai
from google.genai import types

from stampede_guard.config import GEMINI_API_KEY_ENV_VARS, GEMINI_MODEL
from stampede_guard.models.schemas import InsightSource, Location, SafetyInsights

logger = logging.getLogger(__name__)

NO_INSIGHTS_TEXT = "No detailed insights found."
INSIGHTS_FAILED_TEXT = "Could not fetch safety insights. Please check API configuration."


def get_api_key() -> Optional[str]:
    for name in GEMINI_API_KEY_ENV_VARS:
        value = os.getenv(name)
        if value:
            return value
    return None


def create_client():
    return genai.Client(api_key=get_api_key())


def build_prompt(location: Location) -> str:
    return (
        "I am managing a potential crowd stampede emergency. "
        f"The user is at coordinates {location.lat}, {location.lng}. "
        "Find nearby emergency facilities like hospitals, police stations, and large open areas "
        "(parks, stadiums) that could serve as assembly points. "
        "Provide specific advice for crowd control in this exact area if possible."
    )


def build_config(location: Location) -> types.GenerateContentConfig:
    """Google Maps grounding, anchored on the user's coordinates."""
    return types.GenerateContentConfig(
        tools=[types.Tool(google_maps=types.GoogleMaps())],
        tool_config=types.ToolConfig(
            retrieval_config=types.RetrievalConfig(
                lat_lng=types.LatLng(latitude=location.lat, longitude=location.lng)
            )
        ),
    )


def extract_sources(response) -> list[InsightSource]:
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return []
    metadata = getattr(candidates[0], "grounding_metadata", None)
    chunks = getattr(metadata, "grounding_chunks", None) or []
    sources = []
    for chunk in chunks:
        maps = getattr(chunk, "maps", None)
        if maps:
            sources.append(InsightSource(uri=maps.uri, title=maps.title))
    return sources


async def fetch_safety_insights(location: Location, client=None) -> SafetyInsights:
    """
    Ask Gemini for emergency facilities and crowd-control advice near a location.

    Args:
        location: current user location.
        client: google-genai Client; built from the environment when omitted.

    Returns:
        SafetyInsights with the response text and any maps citations.
    """
    client = client or create_client()
    response = await client.aio.models.generate_content(
        model=GEMINI_MODEL,
        contents=build_prompt(location),
        config=build_config(location),
    )
    return SafetyInsights(text=response.text or NO_INSIGHTS_TEXT, sources=extract_sources(response))


class InsightPanel:
    """Admin insights widget: one request at a time, never raises."""

    def __init__(self, client_factory=create_client):
        self.client_factory = client_factory
        self.loading = False
        self.insights = ""
        self.sources: list[InsightSource] = []
        self.closed = False

    def result(self) -> SafetyInsights:
        return SafetyInsights(text=self.insights, sources=self.sources)

    async def analyze(self, location: Optional[Location]) -> SafetyInsights:
        if location is None:
            return self.result()

        self.loading = True
        self.insights = ""
        try:
            result = await fetch_safety_insights(location, client=self.client_factory())
            if self.closed:
                logger.debug("Insights arrived after the panel closed, discarding")
                return result
            self.insights = result.text
            self.sources = result.sources
            logger.info(f"[✓] Fetched safety insights with {len(result.sources)} sources")
        except Exception as e:
            logger.error(f"[✗] Gemini Error: {e}")
            if not self.closed:
                self.insights = INSIGHTS_FAILED_TEXT
        finally:
            self.loading = False
        return self.result()

    def close(self):
        self.closed = True
