"""
Mermaid MCP Server — Mermaid diagram generation, analysis and export via
the Model Context Protocol.

Exposes 6 tools that let an LLM agent work with Mermaid diagram source:

  1. generate_diagram_from_code   — diagrams from code analysis
  2. analyze_diagram_structure    — structure / complexity insights
  3. suggest_diagram_improvements — audience-aware optimization suggestions
  4. create_workflow_diagram      — workflow visualizations
  5. export_diagram_formats       — SVG, PNG, PDF, HTML export
  6. validate_diagram_syntax      — syntax validation with fixes

All logging goes to stderr; stdout carries the protocol.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import Any, Optional

import mcp.types as types
from mcp.server.lowlevel import Server
from mcp.server.lowlevel.helper_types import ReadResourceContents
from mcp.server.stdio import stdio_server
from pydantic import AnyUrl

from mermaid_mcp import __version__
from mermaid_mcp.config import Settings
from mermaid_mcp.models import ImageContent, TextContent, ToolResponse
from mermaid_mcp.renderer import create_renderer
from mermaid_mcp.themes import THEMES
from mermaid_mcp.tools import MermaidTools, ToolRegistry

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.getLogger("mcp.server").setLevel(logging.WARNING)
logger = logging.getLogger("mermaid-mcp")

LOG_FORMAT = "[%(levelname)s] [%(name)s] %(message)s"


def configure_logging(debug: bool = False) -> None:
    """Send ``mermaid-mcp`` logs to stderr; DEBUG lines only when *debug*."""
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.handlers[:] = [handler]
    logger.setLevel(logging.DEBUG if debug else logging.INFO)
    logger.propagate = False


INSTRUCTIONS = (
    "MCP server for creating, analyzing and exporting Mermaid diagrams.\n\n"
    "- generate_diagram_from_code: paste source code, get a diagram.\n"
    "- analyze_diagram_structure / validate_diagram_syntax: inspect existing diagrams.\n"
    "- suggest_diagram_improvements: audience-specific suggestions.\n"
    "- create_workflow_diagram: git/cicd/business/development/deployment workflows.\n"
    "- export_diagram_formats: svg/png/pdf/html; pass output_path to write a file,\n"
    "  omit it to get base64 data back.\n\n"
    "Read mermaid://guide/agent for details."
)

THEMES_URI = "mermaid://themes"
GUIDE_URI = "mermaid://guide/agent"


# ===================================================================
# RESOURCES
# ===================================================================

def theme_catalog() -> str:
    """Return all available export themes with their palette colors."""
    entries = [
        f"  {name}: node={p.node_color} stroke={p.stroke_color} "
        f"edge={p.edge_color} text={p.text_color}"
        for name, p in THEMES.items()
    ]
    return "Available themes:\n" + "\n".join(entries)


def agent_guide() -> str:
    """Usage guide for agents calling the Mermaid tools."""
    return """# Mermaid MCP — Agent Guide

## Quick Decision Tree

1. Have source code?  → generate_diagram_from_code(code=..., diagram_type='auto')
2. Have a diagram and want to know what's in it?  → analyze_diagram_structure
3. Not sure the diagram renders?  → validate_diagram_syntax(strict_mode=true)
4. Want it clearer for readers?  → suggest_diagram_improvements(audience=...)
5. Describing a process?  → create_workflow_diagram(workflow_type=..., format=...)
6. Need a file?  → export_diagram_formats(format='svg', output_path='out/diagram.svg')

## Export Notes

- Without output_path the payload is returned base64 encoded in the response.
- With output_path, parent directories are created and the absolute path is returned.
- theme: default, dark, forest, neutral. Unknown themes fall back to default.
- width/height only matter for PNG.
- SVG output is a fixed demonstration template; HTML output renders the real
  diagram in the browser with mermaid.js.
- PNG/PDF return placeholders unless the server runs with MERMAID_RENDERER=mmdc.

## Common Mistakes to Avoid

1. DON'T wrap diagram_code in ```mermaid fences — pass the raw source.
2. DON'T forget the header line (flowchart TD, sequenceDiagram, ...).
3. DON'T leave subgraph/alt/loop blocks without a closing 'end'.
"""


# ===================================================================
# PROTOCOL MAPPING
# ===================================================================

def list_tool_definitions(registry: ToolRegistry) -> list[types.Tool]:
    """Registry descriptors as MCP tool definitions."""
    return [
        types.Tool(name=d.name, description=d.description, inputSchema=d.input_schema())
        for d in registry.list_tools()
    ]


def to_mcp_content(response: ToolResponse) -> list[types.TextContent | types.ImageContent]:
    """Convert response blocks into MCP content blocks, preserving order."""
    content: list[types.TextContent | types.ImageContent] = []
    for block in response.content:
        if isinstance(block, TextContent):
            content.append(types.TextContent(type="text", text=block.text))
        elif isinstance(block, ImageContent):
            content.append(
                types.ImageContent(type="image", data=block.data, mimeType=block.mime_type)
            )
    return content


def create_registry(settings: Optional[Settings] = None) -> ToolRegistry:
    settings = settings or Settings()
    renderer = create_renderer(
        settings.renderer,
        timeout=settings.render_timeout,
        cli_path=settings.mermaid_cli_path,
    )
    return ToolRegistry(MermaidTools(renderer=renderer))


def create_server(registry: Optional[ToolRegistry] = None) -> Server:
    """Create the MCP server bound to *registry*."""
    registry = registry or create_registry()
    server: Server = Server("mermaid-mcp", version=__version__, instructions=INSTRUCTIONS)

    @server.list_tools()
    async def handle_list_tools() -> list[types.Tool]:
        return list_tool_definitions(registry)

    # Argument checking belongs to the registry so that failures come back
    # as response text rather than protocol errors.
    @server.call_tool(validate_input=False)
    async def handle_call_tool(
        name: str, arguments: dict[str, Any],
    ) -> list[types.TextContent | types.ImageContent]:
        return to_mcp_content(await registry.call_tool(name, arguments))

    @server.list_resources()
    async def handle_list_resources() -> list[types.Resource]:
        return [
            types.Resource(uri=AnyUrl(THEMES_URI), name="themes",
                           description="Export theme palettes", mimeType="text/plain"),
            types.Resource(uri=AnyUrl(GUIDE_URI), name="agent-guide",
                           description="How to use the Mermaid tools", mimeType="text/markdown"),
        ]

    @server.read_resource()
    async def handle_read_resource(uri: AnyUrl) -> list[ReadResourceContents]:
        if str(uri) == THEMES_URI:
            return [ReadResourceContents(content=theme_catalog(), mime_type="text/plain")]
        if str(uri) == GUIDE_URI:
            return [ReadResourceContents(content=agent_guide(), mime_type="text/markdown")]
        raise ValueError(f"Unknown resource: {uri}")

    return server


# ===================================================================
# Entry point
# ===================================================================

async def run_stdio(server: Server) -> None:
    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())


def main() -> None:
    """Run the MCP server over stdio."""
    settings = Settings.from_env()
    configure_logging(settings.debug)
    logger.debug("Starting with renderer=%s timeout=%s", settings.renderer, settings.render_timeout)
    server = create_server(create_registry(settings))
    asyncio.run(run_stdio(server))


if __name__ == "__main__":
    main()
