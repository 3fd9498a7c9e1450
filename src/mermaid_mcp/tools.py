"""
Tool catalog, handlers and dispatcher for the Mermaid MCP server.

Tools:
  1. generate_diagram_from_code   — build a diagram from program source
  2. analyze_diagram_structure    — node/edge counts, complexity, recommendations
  3. suggest_diagram_improvements — prioritized suggestions for an audience
  4. create_workflow_diagram      — workflow template (flowchart/sequence/state/gantt)
  5. export_diagram_formats       — SVG / PNG / PDF / HTML export
  6. validate_diagram_syntax      — line-numbered syntax report

:class:`ToolRegistry` is the only place where errors become response text:
internally dispatch produces :class:`Ok` or :class:`Err`, and
:meth:`ToolRegistry.call_tool` renders both into a normal
:class:`~mermaid_mcp.models.ToolResponse`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, TypeVar, Union

from mermaid_mcp.analyzer import Analyzer, MermaidAnalyzer
from mermaid_mcp.errors import AnalyzerFailure, MermaidMCPError, RenderFailure, UnknownTool
from mermaid_mcp.models import DEFAULT_HEIGHT, DEFAULT_WIDTH, ExportOptions, ToolResponse
from mermaid_mcp.renderer import MermaidRenderer
from mermaid_mcp.themes import normalize_theme
from mermaid_mcp.validation import (
    MAX_DIMENSION,
    MIN_DIMENSION,
    ValidationError,
    validate_arguments_object,
    validate_bool,
    validate_dimension,
    validate_string,
)

logger = logging.getLogger("mermaid-mcp.tools")

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Tool descriptors
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ToolParameter:
    """One named input of a tool."""
    name: str
    type: str
    description: str
    required: bool = False
    enum: Optional[tuple[str, ...]] = None
    default: Any = None

    def schema(self) -> dict[str, Any]:
        prop: dict[str, Any] = {"type": self.type, "description": self.description}
        if self.enum:
            prop["enum"] = list(self.enum)
        if self.default is not None:
            prop["default"] = self.default
        if self.type == "integer":
            prop["minimum"] = MIN_DIMENSION
            prop["maximum"] = MAX_DIMENSION
        return prop


@dataclass(frozen=True)
class ToolDescriptor:
    """Name, description and input contract of an invocable tool."""
    name: str
    description: str
    parameters: tuple[ToolParameter, ...] = field(default_factory=tuple)

    @property
    def required(self) -> list[str]:
        return [p.name for p in self.parameters if p.required]

    def input_schema(self) -> dict[str, Any]:
        """JSON schema for the tool arguments."""
        return {
            "type": "object",
            "properties": {p.name: p.schema() for p in self.parameters},
            "required": self.required,
        }


DIAGRAM_TYPES = ("flowchart", "sequence", "class", "state", "auto")
ANALYSIS_TYPES = ("structure", "complexity", "optimization", "full")
AUDIENCES = ("technical", "business", "general", "documentation")
WORKFLOW_TYPES = ("git", "cicd", "business", "development", "deployment")
WORKFLOW_FORMATS = ("flowchart", "sequence", "state", "gantt")
EXPORT_FORMATS = ("svg", "png", "pdf", "html")
THEME_NAMES = ("default", "dark", "forest", "neutral")

TOOL_CATALOG: tuple[ToolDescriptor, ...] = (
    ToolDescriptor(
        name="generate_diagram_from_code",
        description=(
            "Generate Mermaid diagrams from code analysis "
            "(flowcharts, sequence diagrams, class diagrams)"
        ),
        parameters=(
            ToolParameter("code", "string", "Source code to analyze and generate diagram from",
                          required=True),
            ToolParameter("diagram_type", "string",
                          "Type of diagram to generate (auto for intelligent detection)",
                          enum=DIAGRAM_TYPES, default="auto"),
            ToolParameter("language", "string", "Programming language of the source code"),
            ToolParameter("include_details", "boolean",
                          "Include detailed annotations and comments", default=False),
        ),
    ),
    ToolDescriptor(
        name="analyze_diagram_structure",
        description="Analyze existing Mermaid diagram structure and provide insights",
        parameters=(
            ToolParameter("diagram_code", "string", "Mermaid diagram code to analyze",
                          required=True),
            ToolParameter("analysis_type", "string", "Type of analysis to perform",
                          enum=ANALYSIS_TYPES, default="full"),
        ),
    ),
    ToolDescriptor(
        name="suggest_diagram_improvements",
        description="AI-powered suggestions for improving diagram clarity and effectiveness",
        parameters=(
            ToolParameter("diagram_code", "string", "Mermaid diagram code to improve",
                          required=True),
            ToolParameter("context", "string",
                          "Context or purpose of the diagram for targeted suggestions"),
            ToolParameter("audience", "string", "Target audience for optimization",
                          enum=AUDIENCES, default="general"),
        ),
    ),
    ToolDescriptor(
        name="create_workflow_diagram",
        description="Create workflow diagrams from process descriptions or Git history",
        parameters=(
            ToolParameter("workflow_description", "string",
                          "Description of the workflow or process", required=True),
            ToolParameter("workflow_type", "string", "Type of workflow to create",
                          required=True, enum=WORKFLOW_TYPES),
            ToolParameter("include_decision_points", "boolean",
                          "Include decision points and branching logic", default=True),
            ToolParameter("format", "string", "Diagram format for the workflow",
                          enum=WORKFLOW_FORMATS, default="flowchart"),
        ),
    ),
    ToolDescriptor(
        name="export_diagram_formats",
        description="Export Mermaid diagrams to various formats (SVG, PNG, PDF, HTML)",
        parameters=(
            ToolParameter("diagram_code", "string", "Mermaid diagram code to export",
                          required=True),
            ToolParameter("format", "string", "Export format",
                          required=True, enum=EXPORT_FORMATS),
            ToolParameter("output_path", "string", "Optional output file path"),
            ToolParameter("theme", "string", "Diagram theme",
                          enum=THEME_NAMES, default="default"),
            ToolParameter("width", "integer", "Width for raster formats (PNG)",
                          default=DEFAULT_WIDTH),
            ToolParameter("height", "integer", "Height for raster formats (PNG)",
                          default=DEFAULT_HEIGHT),
        ),
    ),
    ToolDescriptor(
        name="validate_diagram_syntax",
        description="Validate Mermaid diagram syntax and provide error details",
        parameters=(
            ToolParameter("diagram_code", "string", "Mermaid diagram code to validate",
                          required=True),
            ToolParameter("strict_mode", "boolean", "Enable strict validation mode",
                          default=False),
            ToolParameter("provide_suggestions", "boolean",
                          "Provide syntax correction suggestions", default=True),
        ),
    ),
)

_TYPE_CHECKERS: dict[str, Callable[[Any, str], Any]] = {
    "string": validate_string,
    "boolean": validate_bool,
    "integer": validate_dimension,
}


def bind_arguments(descriptor: ToolDescriptor, arguments: Any) -> dict[str, Any]:
    """Destructure raw *arguments* against *descriptor*.

    Missing required fields raise :class:`ValidationError`; absent optional
    fields get their declared default.  Unknown keys are ignored.
    """
    args = validate_arguments_object(arguments, descriptor.name)
    missing = [p.name for p in descriptor.parameters if p.required and args.get(p.name) is None]
    if missing:
        raise ValidationError(
            f"Missing required argument(s) for '{descriptor.name}': {', '.join(missing)}."
        )

    bound: dict[str, Any] = {}
    for param in descriptor.parameters:
        value = args.get(param.name)
        if value is None:
            bound[param.name] = param.default
        else:
            bound[param.name] = _TYPE_CHECKERS[param.type](value, param.name)

    extra = set(args) - set(bound)
    if extra:
        logger.debug("Ignoring unknown argument(s) for %s: %s", descriptor.name, sorted(extra))
    return bound


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------

def _preview(text: str, limit: int = 100) -> str:
    return text[:limit] + ("..." if len(text) > limit else "")


class MermaidTools:
    """Tool handlers.  Method names match tool names; parameters match the catalog."""

    def __init__(self, analyzer: Optional[Analyzer] = None,
                 renderer: Optional[MermaidRenderer] = None) -> None:
        self.analyzer: Analyzer = analyzer or MermaidAnalyzer()
        self.renderer = renderer or MermaidRenderer()

    async def _analyze(self, operation: str, call: Awaitable[T]) -> T:
        try:
            return await call
        except MermaidMCPError:
            raise
        except Exception as exc:
            raise AnalyzerFailure(f"{operation} failed: {exc}") from exc

    async def generate_diagram_from_code(
        self,
        code: str,
        diagram_type: str = "auto",
        language: Optional[str] = None,
        include_details: bool = False,
    ) -> ToolResponse:
        logger.info("Generating %s diagram from %s code", diagram_type, language or "unknown")

        analysis = await self._analyze(
            "Code analysis", self.analyzer.analyze_code_structure(code, language),
        )
        diagram_code = await self._analyze(
            "Diagram generation",
            self.analyzer.generate_source(analysis, diagram_type, include_details),
        )
        report = await self._analyze(
            "Syntax validation", self.analyzer.validate(diagram_code, False),
        )

        text = (
            f"# Generated {analysis.detected_kind} Diagram\n\n"
            f"```mermaid\n{diagram_code}\n```\n\n"
            f"## Analysis Summary\n"
            f"- **Detected Type**: {analysis.detected_kind}\n"
            f"- **Complexity**: {analysis.complexity}\n"
            f"- **Elements**: {', '.join(analysis.elements)}\n"
            f"- **Syntax Valid**: {'Yes' if report.is_valid else 'No'}"
        )
        return ToolResponse.text(text)

    async def analyze_diagram_structure(
        self, diagram_code: str, analysis_type: str = "full",
    ) -> ToolResponse:
        logger.info("Analyzing diagram structure: %s", analysis_type)

        inspection = await self._analyze(
            "Diagram analysis", self.analyzer.inspect(diagram_code, analysis_type),
        )
        recommendations = "\n".join(f"- {r}" for r in inspection.recommendations)
        text = (
            "# Diagram Structure Analysis\n\n"
            "## Overview\n"
            f"- **Type**: {inspection.kind}\n"
            f"- **Nodes**: {inspection.node_count}\n"
            f"- **Edges**: {inspection.edge_count}\n"
            f"- **Complexity Score**: {inspection.complexity_score}/10\n\n"
            f"## Structure Details\n{inspection.narrative}\n\n"
            f"## Recommendations\n{recommendations}"
        )
        return ToolResponse.text(text)

    async def suggest_diagram_improvements(
        self, diagram_code: str, context: Optional[str] = None, audience: str = "general",
    ) -> ToolResponse:
        logger.info("Suggesting improvements for %s audience", audience)

        suggestions = await self._analyze(
            "Improvement suggestion",
            self.analyzer.suggest_improvements(diagram_code, context, audience),
        )
        sections = [
            f"### {i}. {s.title}\n"
            f"**Priority**: {s.priority}\n"
            f"**Description**: {s.rationale}\n"
            f"**Implementation**: {s.how_to}\n"
            for i, s in enumerate(suggestions, start=1)
        ]
        optimized = next(
            (s.rewritten_source for s in suggestions if s.rewritten_source), None,
        ) or diagram_code
        text = (
            "# Diagram Improvement Suggestions\n\n"
            f"## For {audience} audience\n\n"
            + "\n".join(sections)
            + f"\n\n## Optimized Version\n```mermaid\n{optimized}\n```"
        )
        return ToolResponse.text(text)

    async def create_workflow_diagram(
        self,
        workflow_description: str,
        workflow_type: str,
        include_decision_points: bool = True,
        format: str = "flowchart",
    ) -> ToolResponse:
        logger.info("Creating %s workflow diagram in %s format", workflow_type, format)

        diagram = await self._analyze(
            "Workflow synthesis",
            self.analyzer.synthesize_workflow(
                workflow_description, workflow_type, include_decision_points, format,
            ),
        )
        text = (
            f"# {workflow_type.upper()} Workflow Diagram\n\n"
            f"```mermaid\n{diagram}\n```\n\n"
            "## Workflow Features\n"
            f"- **Type**: {workflow_type}\n"
            f"- **Format**: {format}\n"
            f"- **Decision Points**: {'Included' if include_decision_points else 'Not included'}\n"
            f"- **Generated from**: {_preview(workflow_description)}"
        )
        return ToolResponse.text(text)

    async def export_diagram_formats(
        self,
        diagram_code: str,
        format: str,
        output_path: Optional[str] = None,
        theme: str = "default",
        width: int = DEFAULT_WIDTH,
        height: int = DEFAULT_HEIGHT,
    ) -> ToolResponse:
        logger.info("Exporting diagram to %s format with %s theme", format, theme)

        options = ExportOptions(
            diagram_code=diagram_code,
            format=format,
            theme=theme,
            width=width,
            height=height,
            output_path=output_path or None,
        )
        try:
            result = await self.renderer.export(options)
        except MermaidMCPError:
            raise
        except Exception as exc:
            raise RenderFailure(f"Export failed: {exc}") from exc

        text = (
            "# Diagram Export Complete\n\n"
            f"- **Format**: {format.upper()}\n"
            f"- **Theme**: {normalize_theme(theme)}\n"
            f"- **Dimensions**: {width}x{height}\n"
            f"- **Output**: {result.output_path or 'Base64 encoded'}\n"
            f"- **Size**: {result.size}\n\n"
            f"## Export Details\n{result.details}"
        )
        if result.base64_data:
            text += f"\n\n## Base64 Data\n```\n{result.base64_data}\n```"
        return ToolResponse.text(text)

    async def validate_diagram_syntax(
        self, diagram_code: str, strict_mode: bool = False, provide_suggestions: bool = True,
    ) -> ToolResponse:
        logger.info("Validating diagram syntax (strict: %s)", strict_mode)

        report = await self._analyze(
            "Syntax validation", self.analyzer.validate(diagram_code, strict_mode),
        )
        text = "# Syntax Validation Results\n\n"
        if report.is_valid:
            text += "✅ **Valid Mermaid syntax**\n\n"
            text += "## Diagram Info\n"
            text += f"- **Type**: {report.kind}\n"
            text += f"- **Nodes**: {report.node_count}\n"
            text += f"- **Complexity**: {report.complexity}\n"
        else:
            text += "❌ **Invalid syntax found**\n\n"
            text += "## Errors\n"
            text += "\n".join(f"- **Line {e.line}**: {e.message}" for e in report.errors) + "\n\n"
            if provide_suggestions and report.suggestions:
                text += "## Suggested Fixes\n"
                text += "\n".join(f"- {s}" for s in report.suggestions) + "\n\n"
                if report.corrected_source:
                    text += f"## Corrected Code\n```mermaid\n{report.corrected_source}\n```"
        return ToolResponse.text(text)


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Ok:
    response: ToolResponse


@dataclass(frozen=True)
class Err:
    error: Exception


Result = Union[Ok, Err]

Handler = Callable[..., Awaitable[ToolResponse]]


class ToolRegistry:
    """Resolves tool names to handlers and normalizes their outcome."""

    def __init__(
        self,
        tools: Optional[MermaidTools] = None,
        catalog: tuple[ToolDescriptor, ...] = TOOL_CATALOG,
    ) -> None:
        tools = tools or MermaidTools()
        self._descriptors: dict[str, ToolDescriptor] = {d.name: d for d in catalog}
        self._handlers: dict[str, Handler] = {}
        for name in self._descriptors:
            handler = getattr(tools, name, None)
            if handler is None:
                raise ValueError(f"No handler registered for tool '{name}'.")
            self._handlers[name] = handler

    def list_tools(self) -> list[ToolDescriptor]:
        """All registered tool descriptors, in catalog order."""
        return list(self._descriptors.values())

    def resolve(self, name: str) -> ToolDescriptor:
        descriptor = self._descriptors.get(name)
        if descriptor is None:
            raise UnknownTool(name)
        return descriptor

    async def dispatch(self, name: str, arguments: Any) -> Result:
        """Run the named tool; every failure comes back as :class:`Err`."""
        try:
            descriptor = self.resolve(name)
            bound = bind_arguments(descriptor, arguments)
            logger.info("Calling tool %s (%s)", name, _describe(bound))
            return Ok(await self._handlers[name](**bound))
        except Exception as exc:
            return Err(exc)

    async def call_tool(self, name: str, arguments: Any = None) -> ToolResponse:
        """Protocol boundary: always returns a well-formed response."""
        result = await self.dispatch(name, arguments)
        if isinstance(result, Ok):
            return result.response

        error = result.error
        message = error.message if isinstance(error, MermaidMCPError) else str(error)
        if isinstance(error, MermaidMCPError):
            logger.error("Tool execution failed for %s: %s", name, message)
        else:
            logger.exception("Tool execution failed for %s", name, exc_info=error)
        return ToolResponse.text(f"Error executing {name}: {message or type(error).__name__}")


def _describe(bound: dict[str, Any]) -> str:
    """Key parameters for logging; long text is summarized by length."""
    parts: list[str] = []
    for key, value in bound.items():
        if isinstance(value, str) and len(value) > 40:
            parts.append(f"{key}=<{len(value)} chars>")
        elif value is not None:
            parts.append(f"{key}={value!r}")
    return ", ".join(parts)
