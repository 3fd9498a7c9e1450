"""Tests for the tool catalog, handlers and dispatcher."""

import asyncio
import base64
import inspect
import re
from pathlib import Path

import pytest

from mermaid_mcp.errors import AnalyzerFailure, InvalidArguments, UnknownTool
from mermaid_mcp.models import ToolResponse
from mermaid_mcp.tools import (
    TOOL_CATALOG,
    Err,
    MermaidTools,
    Ok,
    ToolRegistry,
    bind_arguments,
)

registry = ToolRegistry()


def call(name: str, arguments=None) -> str:
    response = asyncio.run(registry.call_tool(name, arguments))
    assert isinstance(response, ToolResponse)
    assert len(response.content) == 1
    assert response.content[0].type == "text"
    return response.first_text


def descriptor(name: str):
    return next(d for d in TOOL_CATALOG if d.name == name)


# ===================================================================
# Catalog
# ===================================================================


def test_catalog_lists_six_unique_tools() -> None:
    names = [d.name for d in registry.list_tools()]
    assert names == [
        "generate_diagram_from_code",
        "analyze_diagram_structure",
        "suggest_diagram_improvements",
        "create_workflow_diagram",
        "export_diagram_formats",
        "validate_diagram_syntax",
    ]


@pytest.mark.parametrize("tool", TOOL_CATALOG, ids=lambda d: d.name)
def test_schema_matches_handler_signature(tool) -> None:
    """Declared parameters, required flags and defaults mirror the handler."""
    handler = getattr(MermaidTools(), tool.name)
    params = {
        name: p for name, p in inspect.signature(handler).parameters.items()
    }
    assert list(params) == [p.name for p in tool.parameters]
    for p in tool.parameters:
        sig = params[p.name]
        if p.required:
            assert sig.default is inspect.Parameter.empty
        else:
            assert sig.default == p.default


@pytest.mark.parametrize("tool", TOOL_CATALOG, ids=lambda d: d.name)
def test_input_schema_shape(tool) -> None:
    schema = tool.input_schema()
    assert schema["type"] == "object"
    assert set(schema["required"]) <= set(schema["properties"])
    for p in tool.parameters:
        prop = schema["properties"][p.name]
        if p.enum:
            assert prop["enum"] == list(p.enum)
        if p.default is not None:
            assert prop["default"] == p.default


def test_export_schema_enums_and_defaults() -> None:
    schema = descriptor("export_diagram_formats").input_schema()
    assert schema["required"] == ["diagram_code", "format"]
    assert schema["properties"]["format"]["enum"] == ["svg", "png", "pdf", "html"]
    assert schema["properties"]["theme"]["default"] == "default"
    assert schema["properties"]["width"]["default"] == 1920
    assert schema["properties"]["height"]["default"] == 1080


def test_workflow_schema_requires_type() -> None:
    schema = descriptor("create_workflow_diagram").input_schema()
    assert schema["required"] == ["workflow_description", "workflow_type"]


# ===================================================================
# Argument binding
# ===================================================================


def test_bind_fills_defaults() -> None:
    bound = bind_arguments(descriptor("validate_diagram_syntax"), {"diagram_code": "x"})
    assert bound == {"diagram_code": "x", "strict_mode": False, "provide_suggestions": True}


def test_bind_missing_required() -> None:
    with pytest.raises(InvalidArguments, match="workflow_type"):
        bind_arguments(descriptor("create_workflow_diagram"), {"workflow_description": "x"})


def test_bind_wrong_type() -> None:
    with pytest.raises(InvalidArguments, match="strict_mode"):
        bind_arguments(descriptor("validate_diagram_syntax"),
                       {"diagram_code": "x", "strict_mode": "yes"})


def test_bind_accepts_integral_float_dimensions() -> None:
    bound = bind_arguments(descriptor("export_diagram_formats"),
                           {"diagram_code": "x", "format": "png", "width": 800.0})
    assert bound["width"] == 800


def test_bind_rejects_non_positive_dimensions() -> None:
    with pytest.raises(InvalidArguments, match="height"):
        bind_arguments(descriptor("export_diagram_formats"),
                       {"diagram_code": "x", "format": "png", "height": 0})


def test_bind_ignores_unknown_keys() -> None:
    bound = bind_arguments(descriptor("analyze_diagram_structure"),
                           {"diagram_code": "x", "verbose": True})
    assert "verbose" not in bound


# ===================================================================
# Dispatcher
# ===================================================================


def test_dispatch_returns_typed_result() -> None:
    ok = asyncio.run(registry.dispatch("validate_diagram_syntax", {"diagram_code": "flowchart TD\nA-->B"}))
    assert isinstance(ok, Ok)
    err = asyncio.run(registry.dispatch("nope", {}))
    assert isinstance(err, Err)
    assert isinstance(err.error, UnknownTool)


def test_unknown_tool_becomes_text() -> None:
    text = call("draw_unicorn", {})
    assert "draw_unicorn" in text
    assert "Unknown tool" in text


def test_missing_required_becomes_text() -> None:
    text = call("export_diagram_formats", {"diagram_code": "flowchart TD"})
    assert text.startswith("Error executing export_diagram_formats:")
    assert "format" in text


def test_non_object_arguments_become_text() -> None:
    text = call("validate_diagram_syntax", ["flowchart TD"])
    assert "must be an object" in text


def test_unsupported_format_becomes_text() -> None:
    text = call("export_diagram_formats", {"diagram_code": "flowchart TD", "format": "bmp"})
    assert text == "Error executing export_diagram_formats: Unsupported format: bmp"


class _BrokenAnalyzer:
    async def inspect(self, diagram_code, depth):
        raise RuntimeError("parser crashed")


def test_analyzer_failure_becomes_text() -> None:
    broken = ToolRegistry(MermaidTools(analyzer=_BrokenAnalyzer()))
    response = asyncio.run(broken.call_tool("analyze_diagram_structure", {"diagram_code": "x"}))
    assert response.first_text == (
        "Error executing analyze_diagram_structure: Diagram analysis failed: parser crashed"
    )
    result = asyncio.run(broken.dispatch("analyze_diagram_structure", {"diagram_code": "x"}))
    assert isinstance(result.error, AnalyzerFailure)


def test_registry_requires_handler_for_every_tool() -> None:
    class Partial:
        pass

    with pytest.raises(ValueError):
        ToolRegistry(Partial())  # type: ignore[arg-type]


# ===================================================================
# Handlers
# ===================================================================


def test_generate_from_code() -> None:
    text = call("generate_diagram_from_code", {
        "code": "def a():\n    b()\n\ndef b():\n    pass\n",
        "language": "python",
    })
    assert text.startswith("# Generated flowchart Diagram")
    assert "```mermaid\nflowchart TD" in text
    assert "a --> b" in text
    assert "- **Syntax Valid**: Yes" in text


def test_analyze_structure_report() -> None:
    text = call("analyze_diagram_structure", {"diagram_code": "flowchart TD\nA-->B\nB-->C"})
    assert "# Diagram Structure Analysis" in text
    assert "- **Nodes**: 3" in text
    assert "- **Edges**: 2" in text
    assert re.search(r"- \*\*Complexity Score\*\*: \d+/10", text)
    assert "## Recommendations\n- " in text


def test_suggest_improvements_report() -> None:
    text = call("suggest_diagram_improvements", {
        "diagram_code": "flowchart\nA-->B", "audience": "documentation",
    })
    assert "## For documentation audience" in text
    assert "### 1. Declare a Layout Direction" in text
    assert "**Priority**: High" in text
    assert "## Optimized Version\n```mermaid\nflowchart TD\nA-->B\n```" in text


def test_suggest_improvements_defaults_to_general() -> None:
    text = call("suggest_diagram_improvements", {"diagram_code": "flowchart TD\nA-->B"})
    assert "## For general audience" in text
    assert "```mermaid\nflowchart TD\nA-->B\n```" in text


def test_workflow_gantt_example() -> None:
    text = call("create_workflow_diagram", {
        "workflow_description": "x", "workflow_type": "cicd", "format": "gantt",
    })
    assert "gantt" in text
    assert "dateFormat" in text
    assert text.startswith("# CICD Workflow Diagram")
    assert "- **Decision Points**: Included" in text


def test_workflow_description_is_truncated() -> None:
    text = call("create_workflow_diagram", {
        "workflow_description": "y" * 150, "workflow_type": "git",
        "include_decision_points": False,
    })
    assert "- **Generated from**: " + "y" * 100 + "..." in text
    assert "- **Decision Points**: Not included" in text


def test_export_inline_includes_payload() -> None:
    text = call("export_diagram_formats", {
        "diagram_code": "flowchart TD\nA-->B", "format": "svg", "theme": "dark",
    })
    assert "- **Format**: SVG" in text
    assert "- **Output**: Base64 encoded" in text
    assert "- **Dimensions**: 1920x1080" in text
    payload = re.search(r"## Base64 Data\n```\n(.+)\n```", text).group(1)
    svg = base64.b64decode(payload).decode("utf-8")
    assert "<svg" in svg
    assert "#d4d4d4" in svg


def test_export_to_file(tmp_path: Path) -> None:
    target = tmp_path / "out" / "diagram.html"
    text = call("export_diagram_formats", {
        "diagram_code": "flowchart TD\nA-->B", "format": "html",
        "output_path": str(target),
    })
    assert f"- **Output**: {target.resolve()}" in text
    assert "Base64 Data" not in text
    assert target.read_text(encoding="utf-8").startswith("<!DOCTYPE html>")


@pytest.mark.parametrize("fmt", ["png", "pdf"])
def test_export_placeholder_with_empty_source(fmt: str) -> None:
    text = call("export_diagram_formats", {"diagram_code": "", "format": fmt})
    assert text.startswith("# Diagram Export Complete")


def test_validate_valid() -> None:
    text = call("validate_diagram_syntax", {"diagram_code": "flowchart TD\nA-->B"})
    assert "✅ **Valid Mermaid syntax**" in text
    assert "- **Type**: flowchart" in text
    assert "- **Nodes**: 2" in text


def test_validate_invalid_with_suggestions() -> None:
    text = call("validate_diagram_syntax", {"diagram_code": "flowchar TD\nA[x --> B"})
    assert "❌ **Invalid syntax found**" in text
    assert "- **Line 1**:" in text
    assert "- **Line 2**: Unbalanced brackets" in text
    assert "## Suggested Fixes" in text
    assert "## Corrected Code\n```mermaid\nflowchart TD" in text


def test_validate_invalid_without_suggestions() -> None:
    text = call("validate_diagram_syntax", {
        "diagram_code": "flowchar TD\nA-->B", "provide_suggestions": False,
    })
    assert "## Errors" in text
    assert "## Suggested Fixes" not in text
    assert "## Corrected Code" not in text


def test_generated_class_diagram_with_details_reports_valid() -> None:
    text = call("generate_diagram_from_code", {
        "code": "class Animal:\n    def speak(self):\n        pass\n\n"
                "class Dog(Animal):\n    def speak(self):\n        pass\n",
        "language": "python",
        "include_details": True,
    })
    assert "class Animal {" in text
    assert "- **Syntax Valid**: Yes" in text


def test_validate_composite_state() -> None:
    text = call("validate_diagram_syntax", {
        "diagram_code": "stateDiagram-v2\n    state Active {\n        [*] --> Idle\n    }",
    })
    assert "✅ **Valid Mermaid syntax**" in text


def test_export_report_shows_theme_used() -> None:
    text = call("export_diagram_formats", {
        "diagram_code": "flowchart TD\nA-->B", "format": "svg", "theme": "nonexistent",
    })
    assert "- **Theme**: default" in text
    assert "nonexistent" not in text


def test_dimension_schema_states_range() -> None:
    props = descriptor("export_diagram_formats").input_schema()["properties"]
    for name in ("width", "height"):
        assert props[name]["minimum"] == 1
        assert props[name]["maximum"] == 16384
    text = call("export_diagram_formats", {
        "diagram_code": "flowchart TD", "format": "png", "width": 16385,
    })
    assert "'width' must be <= 16384" in text
