"""CarbonMatch MCP - emission-factor retrieval and carbon calculation server."""

__version__ = "0.1.0"
