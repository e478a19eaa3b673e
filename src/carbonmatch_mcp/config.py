"""Configuration for CarbonMatch MCP server."""

import os
from pathlib import Path

# Server settings
HTTP_PORT = int(os.getenv("HTTP_PORT", "8080"))
RATE_LIMIT_REQUESTS = int(os.getenv("RATE_LIMIT_REQUESTS", "100"))

# Catalog settings (SQLite database built from a JSONL export of emission factors)
_PACKAGE_DATA_DIR = Path(__file__).parent.parent.parent / "data"
CATALOG_DATA_PATH = Path(os.getenv("CATALOG_DATA_PATH", str(_PACKAGE_DATA_DIR / "emission_factors.jsonl")))
CATALOG_DB_PATH = Path(os.getenv("CATALOG_DB_PATH", str(_PACKAGE_DATA_DIR / "catalog.db")))

# Language model (Gemini-style generateContent endpoint)
LLM_API_KEY = os.getenv("LLM_API_KEY", "")
LLM_MODEL = os.getenv("LLM_MODEL", "gemini-2.0-flash")
LLM_BASE_URL = os.getenv("LLM_BASE_URL", "https://generativelanguage.googleapis.com/v1beta")
LLM_TIMEOUT = float(os.getenv("LLM_TIMEOUT", "30.0"))
LLM_TEMPERATURE = float(os.getenv("LLM_TEMPERATURE", "0.3"))
LLM_MAX_OUTPUT_TOKENS = int(os.getenv("LLM_MAX_OUTPUT_TOKENS", "2048"))

# Search cache settings
SEARCH_CACHE_TTL = float(os.getenv("SEARCH_CACHE_TTL", "3600"))  # 1 hour
SEARCH_CACHE_MAX_SIZE = int(os.getenv("SEARCH_CACHE_MAX_SIZE", "5000"))

# Search limits
MAX_CANDIDATES = 50  # Upper bound on records handed to the scorer per entity
TOP_RESULTS = 10  # Ranked results kept per entity
SEMANTIC_SECTOR_LIMIT = 20
SEMANTIC_TERM_LIMIT = 15
INFO_QUERY_RESULTS = 5  # Factors listed per entity for information queries

DEFAULT_LANGUAGE = os.getenv("DEFAULT_LANGUAGE", "en")
SUPPORTED_LANGUAGES = ("en", "zh")
