"""Language-model client for intent analysis and search-strategy proposals.

Talks to a Gemini-style ``generateContent`` endpoint. The model's text is returned
raw; validation.py is responsible for turning it into trusted structures.
"""

import logging
from typing import Any

import httpx

from .config import (
    LLM_API_KEY,
    LLM_BASE_URL,
    LLM_MAX_OUTPUT_TOKENS,
    LLM_MODEL,
    LLM_TEMPERATURE,
    LLM_TIMEOUT,
)

logger = logging.getLogger(__name__)


class OracleError(Exception):
    """The language model could not be reached or returned an unusable response."""


# =============================================================================
# PROMPTS
# =============================================================================

_LANGUAGE_NAMES = {"en": "English", "zh": "Chinese"}

_INTENT_PROMPT = """You analyse requests about greenhouse-gas emissions.
Classify the user's intent and extract every activity they mention.

Respond with one JSON object only, no prose:
{{
  "intent": "carbon_calculation" | "information_query" | "general_chat",
  "entities": [
    {{
      "name": "activity description in English, keeping vehicle size bands such as 26-32t",
      "quantity": number or null,
      "unit": "unit of quantity" or null,
      "entityType": "transport" | "waste" | "liquid" | "food" | "energy" | "general",
      "confidence": number between 0 and 1,
      "scenarioDetails": {{
        "vehicleType": ..., "cargoType": ..., "fuelType": ..., "loadStatus": ...,
        "distance": ..., "distanceUnit": ..., "weight": ..., "weightUnit": ...,
        "wasteType": ..., "processingMethod": ..., "liquidType": ...,
        "deviceType": ..., "deviceCount": ..., "operationTime": ..., "timeUnit": ...,
        "energyConsumption": ..., "energyUnit": ...
      }}
    }}
  ],
  "missingInfo": ["what the user still needs to provide"],
  "confidence": number between 0 and 1
}}

Rules:
- quantity is only a value the user states about their own activity. A size band in a
  vehicle class ("26-32t truck") is part of the name, never the quantity.
- For transport, put cargo weight in quantity/unit and the trip length in
  scenarioDetails.distance/distanceUnit.
- Omit scenarioDetails keys you do not know.

The user writes in {language}.
User request: {query}
"""

_STRATEGY_PROMPT = """You help search an emission-factor catalog organised as sector > subsector > activity.
Propose how to find factors for the activity below.

Respond with one JSON object only, no prose:
{{"sectors": ["likely catalog sectors"], "keywords": ["title keywords"], "relatedTerms": ["synonyms and related activities"]}}

Use English catalog vocabulary. The user writes in {language}.
Activity: {entity_name}
"""


def build_intent_prompt(query: str, language: str) -> str:
    return _INTENT_PROMPT.format(query=query, language=_LANGUAGE_NAMES.get(language, language))


def build_strategy_prompt(entity_name: str, language: str) -> str:
    return _STRATEGY_PROMPT.format(entity_name=entity_name, language=_LANGUAGE_NAMES.get(language, language))


class IntentOracle:
    """Async client for the intent / search-strategy language model."""

    def __init__(
        self,
        api_key: str = LLM_API_KEY,
        model: str = LLM_MODEL,
        base_url: str = LLM_BASE_URL,
        timeout: float = LLM_TIMEOUT,
    ):
        self._api_key = api_key
        self._model = model
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._client: httpx.AsyncClient | None = None

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def _generate(self, prompt: str) -> str:
        """POST a prompt to generateContent and return the first candidate's text.

        Note: the API key travels as a query parameter, so httpx errors are never
        re-raised verbatim.
        """
        if not self._api_key:
            raise OracleError("Language model API key is not configured")

        url = f"{self._base_url}/models/{self._model}:generateContent?key={self._api_key}"
        body: dict[str, Any] = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": LLM_TEMPERATURE,
                "topK": 40,
                "topP": 0.95,
                "maxOutputTokens": LLM_MAX_OUTPUT_TOKENS,
            },
        }
        try:
            response = await self._get_client().post(url, json=body)
        except httpx.TimeoutException:
            raise OracleError("Language model request timed out")
        except httpx.HTTPError:
            # Sanitize: httpx exceptions may include the full URL with API key
            raise OracleError("Language model request failed (network/connection error)")
        if response.status_code >= 400:
            raise OracleError(f"Language model returned HTTP {response.status_code}")

        try:
            data = response.json()
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (ValueError, KeyError, IndexError, TypeError):
            raise OracleError("Language model returned an unexpected response shape")
        if not isinstance(text, str):
            raise OracleError("Language model returned an unexpected response shape")
        return text

    async def analyze(self, query: str, language: str = "en") -> str:
        """Raw model text describing intent and entities for a user query."""
        logger.info(f"Requesting intent analysis ({len(query)} chars, language={language})")
        return await self._generate(build_intent_prompt(query, language))

    async def propose_search_strategy(self, entity_name: str, language: str = "en") -> str:
        """Raw model text proposing {sectors, keywords, relatedTerms} for an entity."""
        logger.info(f"Requesting search strategy for '{entity_name}'")
        return await self._generate(build_strategy_prompt(entity_name, language))

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
