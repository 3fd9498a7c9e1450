"""Tests for the bundled heuristic analyzer."""

import asyncio

import pytest

from mermaid_mcp.analyzer import (
    MermaidAnalyzer,
    complexity_class,
    complexity_score,
    detect_kind,
    scan_graph,
)

analyzer = MermaidAnalyzer()


def run(coro):
    return asyncio.run(coro)


PY_SOURCE = '''
class Animal:
    def speak(self):
        pass

class Dog(Animal):
    def speak(self):
        return bark()

def bark():
    return "woof"

def main():
    bark()
'''

JS_SOURCE = """
function load() {
  return parse();
}
function parse() {
  return 1;
}
"""


# ===================================================================
# Scanning
# ===================================================================


@pytest.mark.parametrize("source,kind", [
    ("flowchart TD\nA-->B", "flowchart"),
    ("graph LR\nA-->B", "flowchart"),
    ("%% comment\nsequenceDiagram\nA->>B: hi", "sequence"),
    ("classDiagram\nA <|-- B", "class"),
    ("stateDiagram-v2\n[*] --> A", "state"),
    ("gantt\ndateFormat YYYY-MM-DD", "gantt"),
    ("nonsense", "unknown"),
    ("", "unknown"),
])
def test_detect_kind(source: str, kind: str) -> None:
    assert detect_kind(source) == kind


def test_scan_flowchart() -> None:
    graph = scan_graph("flowchart TD\n    A[Start] --> B{Ok?}\n    B -->|Yes| C[Done]\n    B -->|No| A")
    assert graph.nodes == ["A", "B", "C"]
    assert graph.edges == [("A", "B"), ("B", "C"), ("B", "A")]
    assert graph.labelled_edges == 2
    assert graph.decisions == 1


def test_scan_chained_edges() -> None:
    graph = scan_graph("flowchart LR\nA --> B --> C")
    assert graph.edges == [("A", "B"), ("B", "C")]


def test_scan_sequence() -> None:
    graph = scan_graph("sequenceDiagram\nparticipant U\nU->>S: request\nS-->>U: response")
    assert graph.nodes == ["U", "S"]
    assert len(graph.edges) == 2


def test_scan_state_keeps_start_marker() -> None:
    graph = scan_graph("stateDiagram-v2\n[*] --> Idle\nIdle --> [*]")
    assert "[*]" in graph.nodes
    assert ("[*]", "Idle") in graph.edges


def test_complexity() -> None:
    assert complexity_score(0, 0) == 0
    assert complexity_score(2, 1) == 1
    assert complexity_score(100, 100) == 10
    assert complexity_class(3, 2) == "low"
    assert complexity_class(30, 40) == "high"


# ===================================================================
# Code analysis / generation
# ===================================================================


def test_python_code_analysis() -> None:
    analysis = run(analyzer.analyze_code_structure(PY_SOURCE, "python"))
    assert analysis.detected_kind == "class"
    assert analysis.classes == ["Animal", "Dog"]
    assert analysis.functions == ["bark", "main"]
    assert analysis.bases["Dog"] == ["Animal"]
    assert analysis.calls["main"] == ["bark"]
    assert "inheritance" in analysis.elements


def test_generic_code_analysis() -> None:
    analysis = run(analyzer.analyze_code_structure(JS_SOURCE, "javascript"))
    assert analysis.detected_kind == "flowchart"
    assert analysis.functions == ["load", "parse"]
    assert analysis.calls["load"] == ["parse"]


def test_invalid_python_falls_back_to_regex() -> None:
    analysis = run(analyzer.analyze_code_structure("def broken(:\n    pass", None))
    assert analysis.functions == ["broken"]


def test_generate_class_diagram() -> None:
    analysis = run(analyzer.analyze_code_structure(PY_SOURCE, "python"))
    source = run(analyzer.generate_source(analysis, "auto", True))
    assert source.startswith("classDiagram")
    assert "Animal <|-- Dog" in source
    assert "+speak()" in source
    assert "%% generated from python source" in source


def test_generate_flowchart_is_valid() -> None:
    analysis = run(analyzer.analyze_code_structure(JS_SOURCE, "javascript"))
    source = run(analyzer.generate_source(analysis, "flowchart", False))
    assert source.startswith("flowchart TD")
    assert "load --> parse" in source
    assert run(analyzer.validate(source, True)).is_valid


def test_generate_without_elements_uses_default_template() -> None:
    analysis = run(analyzer.analyze_code_structure("x = 1", "python"))
    source = run(analyzer.generate_source(analysis, "auto", False))
    assert source == "flowchart TD\n    A[Start] --> B[Process]\n    B --> C[End]"


# ===================================================================
# Inspection / suggestions
# ===================================================================


def test_inspect_counts_and_recommendations() -> None:
    result = run(analyzer.inspect("flowchart TD\nA-->B\nB-->C\nD", "full"))
    assert result.kind == "flowchart"
    assert result.node_count == 4
    assert result.edge_count == 2
    assert "Isolated nodes: D." in result.narrative
    assert "Connect or remove isolated nodes" in result.recommendations
    assert "Add decision points" in result.recommendations


def test_inspect_structure_only() -> None:
    result = run(analyzer.inspect("flowchart TD\nA-->B", "structure"))
    assert "Complexity is" not in result.narrative


def test_suggestions_are_ordered_by_priority() -> None:
    suggestions = run(analyzer.suggest_improvements("flowchart\nA-->B", None, "business"))
    priorities = [s.priority for s in suggestions]
    assert priorities == sorted(priorities, key=["High", "Medium", "Low"].index)
    assert suggestions[0].rewritten_source == "flowchart TD\nA-->B"
    assert any(s.title == "Use Business Language" for s in suggestions)


def test_suggestion_mentions_context() -> None:
    suggestions = run(analyzer.suggest_improvements("flowchart TD\nA-->B", "onboarding", "general"))
    assert "onboarding" in suggestions[-1].rationale


# ===================================================================
# Workflows
# ===================================================================


@pytest.mark.parametrize("fmt,header", [
    ("flowchart", "flowchart TD"),
    ("sequence", "sequenceDiagram"),
    ("state", "stateDiagram-v2"),
    ("gantt", "gantt"),
    ("unknown", "flowchart TD"),
])
def test_workflow_templates(fmt: str, header: str) -> None:
    source = run(analyzer.synthesize_workflow("ship it", "cicd", True, fmt))
    assert source.splitlines()[0] == header
    assert "%% ship it" in source


def test_gantt_workflow_has_date_format() -> None:
    source = run(analyzer.synthesize_workflow("x", "cicd", True, "gantt"))
    assert "dateFormat" in source


def test_unrecognized_format_uses_decision_flowchart() -> None:
    source = run(analyzer.synthesize_workflow("x", "git", False, "mindmap"))
    assert "{" in source and "-->|Yes|" in source


def test_flowchart_without_decisions_is_linear() -> None:
    source = run(analyzer.synthesize_workflow("x", "git", False, "flowchart"))
    assert "{" not in source


@pytest.mark.parametrize("fmt", ["flowchart", "sequence", "state"])
def test_workflow_templates_validate(fmt: str) -> None:
    source = run(analyzer.synthesize_workflow("deploy", "deployment", True, fmt))
    assert run(analyzer.validate(source, False)).is_valid


# ===================================================================
# Validation
# ===================================================================


def test_valid_flowchart() -> None:
    report = run(analyzer.validate("flowchart TD\n    A[Start] --> B[End]", False))
    assert report.is_valid
    assert report.kind == "flowchart"
    assert report.node_count == 2
    assert report.errors == []


def test_empty_diagram_is_invalid() -> None:
    report = run(analyzer.validate("   \n", False))
    assert not report.is_valid
    assert report.errors[0].line == 1


def test_misspelled_header_is_corrected() -> None:
    report = run(analyzer.validate("flowchar TD\nA-->B", False))
    assert not report.is_valid
    assert "did you mean 'flowchart'" in report.errors[0].message
    assert report.corrected_source == "flowchart TD\nA-->B"


def test_missing_header_is_prefixed() -> None:
    report = run(analyzer.validate("A-->B", False))
    assert not report.is_valid
    assert report.corrected_source == "flowchart TD\nA-->B"


def test_unbalanced_brackets_reported_with_line() -> None:
    report = run(analyzer.validate("flowchart TD\nA[Start --> B\nB --> C", False))
    assert [e.line for e in report.errors] == [2]
    assert report.errors[0].message == "Unbalanced brackets"


def test_dangling_arrow() -> None:
    report = run(analyzer.validate("flowchart TD\nA -->", False))
    assert any(e.message == "Arrow is missing a target node" for e in report.errors)


def test_unclosed_subgraph_is_closed_in_correction() -> None:
    report = run(analyzer.validate("flowchart TD\nsubgraph one\nA-->B", False))
    assert not report.is_valid
    assert report.corrected_source.endswith("\nend")


def test_strict_mode_requires_direction() -> None:
    source = "flowchart\nA-->B"
    assert run(analyzer.validate(source, False)).is_valid
    report = run(analyzer.validate(source, True))
    assert not report.is_valid
    assert report.corrected_source == "flowchart TD\nA-->B"


def test_invalid_direction() -> None:
    report = run(analyzer.validate("graph XY\nA-->B", False))
    assert report.errors[0].message == "Invalid direction 'XY'"


def test_class_block_spanning_lines_is_valid() -> None:
    source = "classDiagram\n    class Animal {\n        +speak()\n    }"
    report = run(analyzer.validate(source, True))
    assert report.is_valid, report.errors


def test_composite_state_is_valid() -> None:
    source = (
        "stateDiagram-v2\n"
        "    [*] --> Active\n"
        "    state Active {\n"
        "        [*] --> Running\n"
        "        Running --> Paused\n"
        "    }\n"
        "    Active --> [*]"
    )
    assert run(analyzer.validate(source, False)).is_valid


def test_generated_class_diagram_with_details_is_valid() -> None:
    analysis = run(analyzer.analyze_code_structure(PY_SOURCE, "python"))
    source = run(analyzer.generate_source(analysis, "class", True))
    assert "class Dog {" in source
    assert run(analyzer.validate(source, False)).is_valid


def test_unclosed_brace_block_is_closed_in_correction() -> None:
    report = run(analyzer.validate("classDiagram\nclass A {\n+run()", False))
    assert not report.is_valid
    assert report.errors[-1].message == "1 block(s) not closed with '}'"
    assert report.corrected_source.endswith("\n}")


def test_stray_closing_brace() -> None:
    report = run(analyzer.validate("classDiagram\nclass A\n}", False))
    assert report.errors[0].message == "'}' without matching block"
    assert report.errors[0].line == 3
