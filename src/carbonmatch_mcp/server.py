"""CarbonMatch MCP Server - Emission-factor search and carbon calculation."""

import logging
import time
from contextlib import asynccontextmanager
from typing import Literal

from fastmcp import FastMCP
from mcp.types import ToolAnnotations
from starlette.middleware import Middleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse
from starlette.routing import Route

from . import __version__
from .cache import TTLCache
from .calculation import CalculationEngine
from .config import (
    DEFAULT_LANGUAGE, HTTP_PORT, RATE_LIMIT_REQUESTS, SEARCH_CACHE_MAX_SIZE, SEARCH_CACHE_TTL,
    TOP_RESULTS,
)
from .controller import CarbonController
from .db import CatalogError, close_catalog, get_catalog
from .models import ENTITY_TYPES, QueryEntity, TransportDetails, UsageDetails
from .oracle import IntentOracle
from .search import SearchEngine
from .validation import IntentAnalyzer, validate_quantity

logger = logging.getLogger(__name__)

# Global state
_oracle: IntentOracle | None = None
_search_engine: SearchEngine | None = None
_calculator: CalculationEngine | None = None
_controller: CarbonController | None = None

_NOT_READY = {"error": "Server is still starting, try again shortly"}


@asynccontextmanager
async def lifespan(app):
    """Open the catalog, build it if missing, and wire the pipeline on startup."""
    global _oracle, _search_engine, _calculator, _controller
    catalog = get_catalog()

    # Build/load catalog on startup (not on first request)
    try:
        catalog._ensure_db()
        stats = catalog.get_stats()
        logger.info(f"Catalog ready: {stats.get('total_activities', 0)} activities")
    except CatalogError as e:
        logger.error(f"Catalog unavailable: {e}")

    _oracle = IntentOracle()
    if not _oracle.is_configured:
        logger.warning("LLM_API_KEY not set: free-text queries will not be understood, direct search still works")

    _search_engine = SearchEngine(
        catalog,
        oracle=_oracle if _oracle.is_configured else None,
        cache=TTLCache(ttl=SEARCH_CACHE_TTL, max_size=SEARCH_CACHE_MAX_SIZE),
    )
    _calculator = CalculationEngine()
    _controller = CarbonController(catalog, IntentAnalyzer(_oracle), _search_engine, _calculator)

    yield

    if _oracle:
        await _oracle.close()
    close_catalog()


# Create MCP server
mcp = FastMCP(
    name="carbonmatch",
    instructions="Greenhouse-gas emission estimates from an emission-factor catalog. Use calculate_emissions for free-text requests (\"30-ton rigid diesel truck, 75km\"). Use search_emission_factors to browse factors for one activity and calculate_for_factor to compute with explicit quantities without language-model parsing.",
    lifespan=lifespan,
)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Per-IP requests/minute limit on the MCP endpoint.

    Free-text calculations can make several language-model calls each, so the limit
    bounds model spend per client. /health is exempt. Tracked IPs are capped and
    stale ones dropped every minute.
    """

    MAX_TRACKED_IPS = 10_000  # Prevent memory exhaustion from spoofed IPs

    def __init__(self, app, requests_per_minute: int = RATE_LIMIT_REQUESTS):
        super().__init__(app)
        self.requests_per_minute = requests_per_minute
        self.request_counts: dict[str, list[float]] = {}
        self._last_cleanup = time.time()

    def _get_client_ip(self, request) -> str:
        """Extract client IP, preferring rightmost X-Forwarded-For entry (set by our proxy)."""
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            ips = [ip.strip() for ip in forwarded.split(",")]
            return ips[-1] if ips else "unknown"
        return request.client.host if request.client else "unknown"

    def _cleanup_stale_ips(self, now: float) -> None:
        window_start = now - 60
        stale_ips = [
            ip for ip, timestamps in self.request_counts.items()
            if not timestamps or timestamps[-1] < window_start
        ]
        for ip in stale_ips:
            del self.request_counts[ip]

    def _check_rate_limit(self, client_ip: str) -> bool:
        """True if client_ip is over its limit for the current minute."""
        now = time.time()
        window_start = now - 60

        # Periodic cleanup every 60 seconds to remove stale IPs
        if now - self._last_cleanup > 60:
            self._cleanup_stale_ips(now)
            self._last_cleanup = now

        if len(self.request_counts) >= self.MAX_TRACKED_IPS:
            self._cleanup_stale_ips(now)
            if len(self.request_counts) >= self.MAX_TRACKED_IPS:
                return True

        if client_ip not in self.request_counts:
            self.request_counts[client_ip] = [now]
            return False

        self.request_counts[client_ip] = [
            t for t in self.request_counts[client_ip] if t > window_start
        ]
        if len(self.request_counts[client_ip]) >= self.requests_per_minute:
            return True

        self.request_counts[client_ip].append(now)
        return False

    async def dispatch(self, request, call_next):
        if request.url.path == "/health":
            return await call_next(request)

        client_ip = self._get_client_ip(request)
        if self._check_rate_limit(client_ip):
            logger.warning(f"Rate limit exceeded for {client_ip}")
            return JSONResponse(
                status_code=429,
                content={"error": "Rate limit exceeded", "retry_after": 60},
                headers={"Retry-After": "60"},
            )
        return await call_next(request)


@mcp.tool(
    annotations=ToolAnnotations(
        title="Calculate Emissions",
        readOnlyHint=True,
        destructiveHint=False,
        idempotentHint=False,
        openWorldHint=True,
    )
)
async def calculate_emissions(query: str, language: Literal["en", "zh"] = DEFAULT_LANGUAGE) -> dict:
    """Estimate carbon emissions for a free-text activity description.

    Args:
        query: Activities with quantities, e.g. "30-ton rigid diesel truck container transport, 75km"
            or "100g of apples and 5 tonnes of concrete waste sent to closed-loop recycling"
        language: "en" or "zh"

    Returns:
        success, message (summary), results (per entity: factor, formula, total, confidence, notes),
        total_emission (kg CO2e), suggestions
    """
    if _controller is None:
        return _NOT_READY
    if not query or not query.strip():
        return {"error": "query is required"}
    response = await _controller.process_user_query(query.strip(), language)
    return response.to_dict()


def _build_entity(
    name: str,
    entity_type: str | None,
    quantity: float | None,
    unit: str | None,
    distance: float | None = None,
    distance_unit: str | None = None,
    vehicle_count: int | None = None,
) -> QueryEntity:
    if entity_type is not None and entity_type not in ENTITY_TYPES:
        raise ValueError(f"Invalid entity_type: {entity_type!r}. Use one of: {', '.join(ENTITY_TYPES)}")
    name = name.strip()
    validated = validate_quantity(quantity, name)
    details = None
    if distance is not None and distance > 0:
        if entity_type == "transport" or vehicle_count:
            details = TransportDetails(distance=distance, distance_unit=distance_unit or "km",
                                       vehicle_count=vehicle_count)
        else:
            details = UsageDetails(distance=distance, distance_unit=distance_unit or "km")
    return QueryEntity(
        name=name,
        confidence=1.0,
        quantity=validated,
        unit=unit.strip() if unit and validated is not None else None,
        entity_type=entity_type,
        scenario_details=details,
    )


@mcp.tool(
    annotations=ToolAnnotations(
        title="Search Emission Factors",
        readOnlyHint=True,
        destructiveHint=False,
        idempotentHint=True,
        openWorldHint=False,
    )
)
async def search_emission_factors(
    name: str,
    entity_type: Literal["transport", "waste", "liquid", "food", "energy", "general"] | None = None,
    quantity: float | None = None,
    unit: str | None = None,
    language: Literal["en", "zh"] = DEFAULT_LANGUAGE,
    limit: int = TOP_RESULTS,
) -> dict:
    """Ranked emission factors for one activity.

    Args:
        name: Activity name, e.g. "rigid diesel truck 30 ton container", "apple", "concrete waste recycling"
        entity_type: Optional hint that enables scenario-specific search
        quantity: Optional quantity; used to prefer factors whose size band contains it (e.g. 26-32t)
        unit: Unit of quantity (e.g., "tonne", "kg", "km", "kWh")
        language: "en" or "zh"
        limit: Max results (1-10)

    Returns:
        results with record (id, title, sector, subsector, unit, factor, source),
        relevance_score, match_type ("exact", "fuzzy" or "semantic") and classification path
    """
    if _search_engine is None:
        return _NOT_READY
    if not name or not name.strip():
        return {"error": "name is required"}
    limit = min(max(1, limit), TOP_RESULTS)
    try:
        entity = _build_entity(name, entity_type, quantity, unit)
        matches = await _search_engine.search_activities(entity, language)
    except (ValueError, CatalogError) as e:
        return {"error": str(e)}
    return {
        "entity": entity.to_dict(),
        "results": [m.to_dict() for m in matches[:limit]],
        "total": len(matches),
    }


@mcp.tool(
    annotations=ToolAnnotations(
        title="Calculate With Explicit Quantities",
        readOnlyHint=True,
        destructiveHint=False,
        idempotentHint=True,
        openWorldHint=False,
    )
)
async def calculate_for_factor(
    name: str,
    quantity: float | None = None,
    unit: str | None = None,
    entity_type: Literal["transport", "waste", "liquid", "food", "energy", "general"] | None = None,
    distance: float | None = None,
    distance_unit: str = "km",
    vehicle_count: int | None = None,
    factor_id: str | None = None,
    language: Literal["en", "zh"] = DEFAULT_LANGUAGE,
) -> dict:
    """Calculate emissions for one activity with explicit quantities (no language model).

    Args:
        name: Activity name, e.g. "30-ton rigid diesel truck container transport"
        quantity: Activity quantity (for transport: cargo weight)
        unit: Unit of quantity (e.g., "tonne", "g", "kWh")
        entity_type: Optional hint ("transport", "waste", ...)
        distance: Distance travelled, for per-km and tonne-km factors
        distance_unit: Unit of distance (default "km")
        vehicle_count: Number of vehicles, multiplies per-km factors
        factor_id: Use this catalog record instead of the best match (id from search_emission_factors)
        language: "en" or "zh"

    Returns:
        calculation (total_emission in kg CO2e, formula, confidence, notes) and alternative factors
    """
    if _search_engine is None or _calculator is None:
        return _NOT_READY
    if not name or not name.strip():
        return {"error": "name is required"}
    try:
        entity = _build_entity(name, entity_type, quantity, unit, distance, distance_unit, vehicle_count)
        matches = await _search_engine.search_activities(entity, language)
    except (ValueError, CatalogError) as e:
        return {"error": str(e)}

    if factor_id:
        chosen = [m for m in matches if m.record.id == factor_id]
        if not chosen:
            return {"error": f"Factor {factor_id!r} is not among the matches for {name!r}"}
        best = chosen[0]
    elif matches:
        best = matches[0]
    else:
        return {"error": f"No emission factor found for {name!r}. Try a more specific or more generic name."}

    result = _calculator.calculate(entity, best, language)
    return {
        "calculation": result.to_dict(),
        "alternatives": [m.to_dict() for m in matches if m.record.id != best.record.id][:3],
    }


@mcp.tool(
    annotations=ToolAnnotations(
        title="List Categories",
        readOnlyHint=True,
        destructiveHint=False,
        idempotentHint=True,
        openWorldHint=False,
    )
)
async def list_categories() -> dict:
    """Catalog sectors with sample subsectors, plus catalog statistics."""
    if _controller is None:
        return _NOT_READY
    try:
        categories = _controller.get_available_categories()
        health = _controller.get_system_health()
    except CatalogError as e:
        return {"error": str(e)}
    return {**categories, "stats": health["catalog"]["stats"]}


@mcp.tool(
    annotations=ToolAnnotations(
        title="Clear Search Cache",
        readOnlyHint=False,
        destructiveHint=False,
        idempotentHint=True,
        openWorldHint=False,
    )
)
async def clear_search_cache() -> dict:
    """Drop cached search results (e.g. after the catalog was rebuilt)."""
    if _controller is None:
        return _NOT_READY
    _controller.clear_all_caches()
    return {"cleared": True}


async def health(request):
    return JSONResponse({
        "status": "healthy",
        "service": "carbonmatch-mcp",
        "version": __version__,
    })


# Create ASGI app
def create_app():
    """Create the ASGI application."""
    middleware = [
        Middleware(RateLimitMiddleware, requests_per_minute=RATE_LIMIT_REQUESTS),
    ]

    # Stateless: clients do not forward session cookies
    app = mcp.http_app(
        path="/mcp",
        middleware=middleware,
        transport="streamable-http",
        stateless_http=True,
    )

    app.routes.append(Route("/health", health))

    return app


app = create_app()


class _HealthFilterLog(logging.Filter):
    """Suppress noisy /health access logs from container healthchecks."""

    def filter(self, record: logging.LogRecord) -> bool:
        msg = record.getMessage()
        return "/health" not in msg


def main():
    """Run the server."""
    import uvicorn

    logging.getLogger("uvicorn.access").addFilter(_HealthFilterLog())

    uvicorn.run(
        "carbonmatch_mcp.server:app",
        host="0.0.0.0",
        port=HTTP_PORT,
        lifespan="on",
    )


if __name__ == "__main__":
    main()
