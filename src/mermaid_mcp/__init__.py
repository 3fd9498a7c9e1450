"""Mermaid MCP server — diagram generation, analysis and export tools."""

__version__ = "1.0.0"
