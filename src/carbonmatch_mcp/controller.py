"""Query pipeline: intent analysis -> search -> calculation -> response."""

import asyncio
import logging
import time
from typing import Any

from .calculation import CalculationEngine
from .config import DEFAULT_LANGUAGE, INFO_QUERY_RESULTS, SUPPORTED_LANGUAGES
from .models import CalculationResult, IntentResult, MatchResult, QueryEntity, SystemResponse
from .search import SearchEngine
from .validation import UNDERSTAND_FAILURE, IntentAnalyzer

logger = logging.getLogger(__name__)

STAGES = ("intent_analysis", "search", "calculation", "response")
MAX_ERROR_LOG = 50

GREETING = (
    "Hello! I can estimate carbon emissions for everyday and business activities. "
    "Describe an activity with its quantities, for example "
    "\"a 30-ton rigid diesel truck carrying a container 75km\" or \"2 kg of apples\"."
)
NO_RESULTS_MESSAGE = "Unable to calculate carbon emissions, please provide more detailed information."
FAILURE_MESSAGE = "System error occurred, please try again later or contact support"
BATCH_FAILURE_MESSAGE = "Query processing failed"
FOOD_TIP = "Consider choosing local and seasonal foods to reduce carbon emissions"
TRANSPORT_TIP = "Consider using public transport or cycling to reduce transportation emissions"

# Calculation order by entity type; unlisted types go last
_TYPE_ORDER = {"transport": 0, "waste": 1, "liquid": 2}


def order_entities(entities: list[QueryEntity]) -> list[QueryEntity]:
    """Transport first, then waste, liquid, everything else. Stable within a group."""
    return sorted(entities, key=lambda e: _TYPE_ORDER.get(e.entity_type or "general", 3))


def summarize(results: list[CalculationResult], total: float) -> str:
    if not results:
        return NO_RESULTS_MESSAGE
    lines = []
    for result in results:
        if result.is_factor_only:
            lines.append(f"{result.entity.name}: Emission factor {result.factor:g}{result.record.unit}")
        else:
            lines.append(f"{result.entity.name}: {result.total_emission:.3f}kg CO2")
    message = "\n".join(lines)
    if total > 0:
        message += f"\nTotal: {total:.3f}kg CO2"
    return message


def format_information(entity: QueryEntity, matches: list[MatchResult]) -> str:
    """Listing of catalog factors for an information query."""
    if not matches:
        return f"No emission factors found for \"{entity.name}\"."
    lines = [f"Carbon emission information for \"{entity.name}\":"]
    for i, match in enumerate(matches[:INFO_QUERY_RESULTS], start=1):
        record = match.record
        lines.append(f"{i}. {record.title}")
        lines.append(f"   Emission Factor: {record.factor:g} {record.unit}")
        lines.append(f"   Classification: {record.sector} > {record.subsector or 'N/A'} > {record.title}")
        lines.append(f"   Source: {record.source or 'N/A'}")
    return "\n".join(lines)


class CarbonController:
    """Coordinates intent analysis, search and calculation for user queries.

    Stage status (idle / processing / completed / error) and recent errors are
    tracked for health reporting.
    """

    def __init__(
        self,
        catalog,
        analyzer: IntentAnalyzer,
        search_engine: SearchEngine,
        calculator: CalculationEngine | None = None,
    ):
        self._catalog = catalog
        self._analyzer = analyzer
        self._search = search_engine
        self._calculator = calculator or CalculationEngine()
        self._status: dict[str, str] = {stage: "idle" for stage in STAGES}
        self._error_log: list[dict[str, Any]] = []

    def _set_status(self, stage: str, status: str) -> None:
        self._status[stage] = status

    def _log_error(self, stage: str, error: BaseException | str) -> None:
        self._error_log.append({"stage": stage, "error": str(error), "timestamp": time.time()})
        del self._error_log[:-MAX_ERROR_LOG]

    async def process_user_query(self, query: str, language: str = DEFAULT_LANGUAGE) -> SystemResponse:
        """Run the full pipeline for one query. Never raises.

        Args:
            query: Free-text user request
            language: Language tag; unsupported tags fall back to DEFAULT_LANGUAGE

        Returns:
            SystemResponse (success=False only for unexpected failures)
        """
        start = time.perf_counter()
        if language not in SUPPORTED_LANGUAGES:
            logger.warning(f"Unsupported language {language!r}, using {DEFAULT_LANGUAGE!r}")
            language = DEFAULT_LANGUAGE

        stage = "intent_analysis"
        try:
            self._set_status(stage, "processing")
            intent = await self._analyzer.analyze_user_input(query, language)
            self._set_status(stage, "completed")

            if intent.intent == "general_chat" or not intent.entities:
                response = self._greeting(intent, language)
            else:
                stage = "search"
                self._set_status(stage, "processing")
                matches, errors = await self._search.batch_search_with_errors(intent.entities, language)
                for name, error in errors.items():
                    self._log_error(stage, f"{name}: {error}")
                self._set_status(stage, "completed")

                if intent.intent == "information_query":
                    stage = "response"
                    response = self._information_response(intent, matches, language)
                else:
                    stage = "calculation"
                    self._set_status(stage, "processing")
                    response = self._calculation_response(intent, matches, language)
                    self._set_status(stage, "completed")
                response.errors = errors

            self._set_status("response", "completed")
        except Exception as e:
            logger.exception(f"Query processing failed during {stage}")
            self._set_status(stage, "error")
            self._log_error(stage, e)
            response = SystemResponse(
                success=False,
                message=FAILURE_MESSAGE,
                suggestions=["Please rephrase your question"],
                language=language,
            )

        response.processing_time_ms = (time.perf_counter() - start) * 1000
        return response

    def _greeting(self, intent: IntentResult, language: str) -> SystemResponse:
        suggestions = [f"Tip: {info}" for info in intent.missing_info if info != UNDERSTAND_FAILURE]
        return SystemResponse(success=True, message=GREETING, suggestions=suggestions, language=language)

    def _information_response(
        self,
        intent: IntentResult,
        matches: dict[str, list[MatchResult]],
        language: str,
    ) -> SystemResponse:
        sections = [format_information(e, matches.get(e.name, [])) for e in intent.entities]
        return SystemResponse(success=True, message="\n\n".join(sections), language=language)

    def _calculation_response(
        self,
        intent: IntentResult,
        matches: dict[str, list[MatchResult]],
        language: str,
    ) -> SystemResponse:
        results: list[CalculationResult] = []
        suggestions: list[str] = []
        for entity in order_entities(intent.entities):
            found = matches.get(entity.name) or []
            if not found:
                suggestions.append(f"Need more information about \"{entity.name}\": no matching emission factor found")
                continue
            results.append(self._calculator.calculate(entity, found[0], language))

        total = round(sum(r.total_emission for r in results), 6)
        suggestions += [f"Tip: {info}" for info in intent.missing_info]
        entity_types = {e.entity_type for e in intent.entities}
        if "food" in entity_types:
            suggestions.append(FOOD_TIP)
        if "transport" in entity_types:
            suggestions.append(TRANSPORT_TIP)

        logger.info(f"Calculated {len(results)} of {len(intent.entities)} entities, total {total:.3f}kg CO2")
        return SystemResponse(
            success=True,
            message=summarize(results, total),
            results=results,
            total_emission=total,
            suggestions=suggestions,
            language=language,
        )

    async def process_batch_queries(self, queries: list[str], language: str = DEFAULT_LANGUAGE) -> list[SystemResponse]:
        outcomes = await asyncio.gather(
            *(self.process_user_query(q, language) for q in queries),
            return_exceptions=True,
        )
        responses = []
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                logger.error(f"Batch query failed: {outcome}")
                responses.append(SystemResponse(success=False, message=BATCH_FAILURE_MESSAGE, language=language))
            else:
                responses.append(outcome)
        return responses

    def get_system_health(self) -> dict[str, Any]:
        healthy = self._catalog.is_healthy()
        return {
            "status": "healthy" if healthy else "degraded",
            "catalog": {
                "healthy": healthy,
                "stats": self._catalog.get_stats() if healthy else {},
            },
            "modules": self.get_module_status(),
            "cache": {"size": self._search.get_cache_stats()["size"]},
        }

    def get_available_categories(self) -> dict[str, Any]:
        """All sectors, with up to 3 sample subsectors for the first 5."""
        sectors = self._catalog.all_sectors()
        return {
            "sectors": sectors,
            "subsectors": {sector: self._catalog.subsectors_of(sector)[:3] for sector in sectors[:5]},
        }

    def clear_all_caches(self) -> None:
        self._search.clear_cache()

    def get_module_status(self) -> dict[str, Any]:
        return {"stages": dict(self._status), "errors": list(self._error_log)}

    async def shutdown(self) -> None:
        self.clear_all_caches()
        await self._analyzer.close()
        self._catalog.close()
        self._status = {stage: "idle" for stage in STAGES}
        logger.info("Controller shut down")
