"""
Exception hierarchy for the Mermaid MCP server.

Handlers and the export pipeline raise these; the tool registry is the only
place that turns them into response text.
"""

from __future__ import annotations


class MermaidMCPError(Exception):
    """Base error for the Mermaid MCP server."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class UnknownTool(MermaidMCPError):
    """Raised when a tool name is not registered."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Unknown tool: {name}")


class InvalidArguments(MermaidMCPError):
    """Raised when tool arguments are missing or have the wrong type."""


class UnsupportedFormat(MermaidMCPError):
    """Raised when an export format is outside the supported set."""

    def __init__(self, fmt: object) -> None:
        self.format = fmt
        super().__init__(f"Unsupported format: {fmt}")


class RenderFailure(MermaidMCPError):
    """Raised when the export pipeline cannot produce or persist output."""


class RenderTimeout(RenderFailure):
    """Raised when a rendering backend exceeds its time budget."""


class AnalyzerFailure(MermaidMCPError):
    """Raised when the analysis capability fails."""
