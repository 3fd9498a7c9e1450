"""
Diagram analysis capability.

:class:`Analyzer` is the contract the tool handlers consume.
:class:`MermaidAnalyzer` is the bundled implementation: a lightweight,
line-oriented heuristic pass over Mermaid source (header detection, arrow
counting, bracket balance) and over program source (Python ``ast`` with a
regex fallback for other languages).  It is not a Mermaid parser.
"""

from __future__ import annotations

import ast
import difflib
import re
from dataclasses import dataclass, field
from typing import Optional, Protocol


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass
class CodeAnalysis:
    """Structure extracted from program source."""
    detected_kind: str
    complexity: str
    elements: list[str]
    functions: list[str] = field(default_factory=list)
    classes: list[str] = field(default_factory=list)
    # function -> functions it calls
    calls: dict[str, list[str]] = field(default_factory=dict)
    # class -> base classes
    bases: dict[str, list[str]] = field(default_factory=dict)
    methods: dict[str, list[str]] = field(default_factory=dict)
    language: Optional[str] = None


@dataclass
class DiagramInspection:
    kind: str
    node_count: int
    edge_count: int
    complexity_score: int
    narrative: str
    recommendations: list[str]


@dataclass
class Suggestion:
    title: str
    priority: str
    rationale: str
    how_to: str
    rewritten_source: Optional[str] = None


@dataclass
class SyntaxIssue:
    line: int
    message: str


@dataclass
class ValidationReport:
    is_valid: bool
    kind: str
    node_count: int
    complexity: str
    errors: list[SyntaxIssue] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)
    corrected_source: Optional[str] = None


class Analyzer(Protocol):
    """Structural analysis, generation and validation over diagram source."""

    async def analyze_code_structure(self, code: str, language: Optional[str]) -> CodeAnalysis:
        ...

    async def generate_source(self, analysis: CodeAnalysis, kind: str, include_details: bool) -> str:
        ...

    async def inspect(self, diagram_code: str, depth: str) -> DiagramInspection:
        ...

    async def suggest_improvements(
        self, diagram_code: str, context: Optional[str], audience: str,
    ) -> list[Suggestion]:
        ...

    async def synthesize_workflow(
        self, description: str, workflow_type: str, include_decisions: bool, output_format: str,
    ) -> str:
        ...

    async def validate(self, diagram_code: str, strict: bool) -> ValidationReport:
        ...


# ---------------------------------------------------------------------------
# Mermaid source scanning
# ---------------------------------------------------------------------------

# Canonical header keyword -> diagram kind
_HEADER_KEYWORDS = {
    "flowchart": "flowchart",
    "graph": "flowchart",
    "sequenceDiagram": "sequence",
    "classDiagram": "class",
    "stateDiagram": "state",
    "stateDiagram-v2": "state",
    "erDiagram": "er",
    "gantt": "gantt",
    "pie": "pie",
    "journey": "journey",
    "gitGraph": "git",
    "mindmap": "mindmap",
    "timeline": "timeline",
}
DIAGRAM_KEYWORDS = {k.lower(): v for k, v in _HEADER_KEYWORDS.items()}

_FLOW_DIRECTIONS = {"TB", "TD", "BT", "RL", "LR"}

_GRAPH_ARROW = re.compile(
    r"<\|--|--\|>|\*--|(?<!\w)o--|\.\.\|>|\.\.>|-\.->|-\.-|==>|-->|---|--[ox](?!\w)"
)
_SEQUENCE_ARROW = re.compile(r"-->>|->>|--x|-x|--\)|-\)|-->|->")
_EDGE_LABEL = re.compile(r"^\|[^|]*\|")
_NODE_ID = re.compile(r"^\s*(\[\*\]|[A-Za-z_][\w-]*)")
_PARTICIPANT = re.compile(r"^\s*(?:participant|actor)\s+([\w-]+)")
_CLASS_DECL = re.compile(r"^\s*class\s+([\w-]+)")
_BRACKETS = {"[": "]", "(": ")", "{": "}"}
# keywords whose blocks are closed by a bare "end"
_BLOCK_OPENERS = {"subgraph", "alt", "loop", "opt", "par", "critical", "rect", "box", "break"}
_RESERVED = {"subgraph", "end", "style", "classdef", "class", "click", "linkstyle",
             "direction", "note", "state", "section", "title"}


def _content_lines(source: str) -> list[tuple[int, str]]:
    """Non-empty, non-comment lines with 1-based line numbers."""
    lines: list[tuple[int, str]] = []
    for idx, raw in enumerate(source.splitlines(), start=1):
        text = raw.strip()
        if not text or text.startswith("%%"):
            continue
        lines.append((idx, text))
    return lines


def detect_kind(source: str) -> str:
    """Diagram kind from the header keyword, or ``"unknown"``."""
    lines = _content_lines(source)
    if not lines:
        return "unknown"
    keyword = lines[0][1].split()[0].lower()
    return DIAGRAM_KEYWORDS.get(keyword, "unknown")


def _strip_labels(line: str) -> str:
    """Drop quoted text and bracketed labels so arrows inside labels are ignored."""
    line = re.sub(r'"[^"]*"', '""', line)
    # [*] is the state-diagram start/end marker, not a label
    line = re.sub(r"\[(?!\*\])[^\]]*\]|\([^)]*\)|\{[^}]*\}", "", line)
    return line


@dataclass
class _Graph:
    nodes: list[str]
    edges: list[tuple[str, str]]
    labelled_edges: int = 0
    decisions: int = 0
    subgraphs: int = 0
    long_labels: int = 0


def scan_graph(source: str, kind: Optional[str] = None) -> _Graph:
    """Collect node ids and edges from Mermaid source."""
    kind = kind or detect_kind(source)
    nodes: list[str] = []
    edges: list[tuple[str, str]] = []
    graph = _Graph(nodes=nodes, edges=edges)

    def add(node: str) -> None:
        if node and node not in nodes:
            nodes.append(node)

    for _, text in _content_lines(source)[1:]:
        lowered = text.lower()
        if lowered.startswith("subgraph"):
            graph.subgraphs += 1
            continue
        if "{" in text and kind == "flowchart":
            graph.decisions += 1
        for label in re.findall(r"\[([^\]]*)\]|\{([^}]*)\}", text):
            if max(len(part) for part in label) > 40:
                graph.long_labels += 1

        if kind == "sequence":
            m = _PARTICIPANT.match(text)
            if m:
                add(m.group(1))
                continue
            parts = _SEQUENCE_ARROW.split(text.split(":", 1)[0], maxsplit=1)
            if len(parts) == 2:
                src, dst = parts[0].strip(), parts[1].strip().lstrip("+-")
                add(src)
                add(dst)
                edges.append((src, dst))
                if ":" in text:
                    graph.labelled_edges += 1
            continue

        if kind == "class":
            m = _CLASS_DECL.match(text)
            if m:
                add(m.group(1))

        segments = _GRAPH_ARROW.split(_strip_labels(text))
        if len(segments) < 2:
            m = _NODE_ID.match(text)
            if m and m.group(1).lower() not in _RESERVED and kind == "flowchart":
                add(m.group(1))
            continue
        ids: list[str] = []
        for segment in segments:
            segment = segment.strip()
            if _EDGE_LABEL.match(segment):
                graph.labelled_edges += 1
                segment = _EDGE_LABEL.sub("", segment).strip()
            m = _NODE_ID.match(segment)
            if m and m.group(1).lower() not in _RESERVED:
                ids.append(m.group(1))
        for node in ids:
            add(node)
        edges.extend(zip(ids, ids[1:]))
        if kind in ("class", "state") and ":" in text:
            graph.labelled_edges += 1
    return graph


def complexity_score(node_count: int, edge_count: int) -> int:
    """0..10 score; empty diagrams score 0."""
    if node_count == 0:
        return 0
    return max(1, min(10, int((node_count + 2 * edge_count) / 4 + 0.5)))


def complexity_class(node_count: int, edge_count: int) -> str:
    score = complexity_score(node_count, edge_count)
    if score <= 3:
        return "low"
    if score <= 6:
        return "medium"
    return "high"


# ---------------------------------------------------------------------------
# Program source scanning
# ---------------------------------------------------------------------------

_FUNC_PATTERNS = (
    re.compile(r"^\s*(?:async\s+)?def\s+([A-Za-z_]\w*)"),
    re.compile(r"^\s*(?:export\s+)?(?:async\s+)?function\s+([A-Za-z_$][\w$]*)"),
    re.compile(r"^\s*func\s+(?:\([^)]*\)\s*)?([A-Za-z_]\w*)"),
    re.compile(r"^\s*(?:pub\s+)?fn\s+([A-Za-z_]\w*)"),
)
_CLASS_PATTERN = re.compile(
    r"^\s*(?:export\s+)?(?:public\s+|abstract\s+)*(?:class|struct|interface)\s+([A-Za-z_]\w*)"
    r"(?:\s*(?:\(|extends\s+|:\s*)([A-Za-z_][\w.]*))?"
)


def _analyze_python(code: str) -> Optional[CodeAnalysis]:
    try:
        tree = ast.parse(code)
    except SyntaxError:
        return None

    functions: list[str] = []
    classes: list[str] = []
    calls: dict[str, list[str]] = {}
    bases: dict[str, list[str]] = {}
    methods: dict[str, list[str]] = {}

    def called_names(node: ast.AST) -> list[str]:
        found: list[str] = []
        for sub in ast.walk(node):
            if isinstance(sub, ast.Call):
                target = sub.func
                name = target.id if isinstance(target, ast.Name) else (
                    target.attr if isinstance(target, ast.Attribute) else None
                )
                if name and name not in found:
                    found.append(name)
        return found

    for node in tree.body:
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
            functions.append(node.name)
            calls[node.name] = called_names(node)
        elif isinstance(node, ast.ClassDef):
            classes.append(node.name)
            bases[node.name] = [b.id for b in node.bases if isinstance(b, ast.Name)]
            methods[node.name] = [
                item.name for item in node.body
                if isinstance(item, (ast.FunctionDef, ast.AsyncFunctionDef))
            ]
    for name, called in calls.items():
        calls[name] = [c for c in called if c in functions and c != name]
    return _summarize(functions, classes, calls, bases, methods, "python")


def _analyze_generic(code: str, language: Optional[str]) -> CodeAnalysis:
    functions: list[str] = []
    classes: list[str] = []
    bases: dict[str, list[str]] = {}
    bodies: dict[str, list[str]] = {}
    current: Optional[str] = None

    for line in code.splitlines():
        m = _CLASS_PATTERN.match(line)
        if m:
            classes.append(m.group(1))
            bases[m.group(1)] = [m.group(2)] if m.group(2) else []
            current = None
            continue
        for pattern in _FUNC_PATTERNS:
            fm = pattern.match(line)
            if fm:
                current = fm.group(1)
                if current not in functions:
                    functions.append(current)
                bodies.setdefault(current, [])
                break
        else:
            if current:
                bodies[current].append(line)

    calls = {
        name: [
            other for other in functions
            if other != name and re.search(rf"\b{re.escape(other)}\s*\(", "\n".join(body))
        ]
        for name, body in bodies.items()
    }
    return _summarize(functions, classes, calls, bases, {}, language)


def _summarize(
    functions: list[str],
    classes: list[str],
    calls: dict[str, list[str]],
    bases: dict[str, list[str]],
    methods: dict[str, list[str]],
    language: Optional[str],
) -> CodeAnalysis:
    elements: list[str] = []
    if functions:
        elements.append("functions")
    if classes:
        elements.append("classes")
    if any(calls.values()):
        elements.append("calls")
    if any(bases.values()):
        elements.append("inheritance")

    edge_count = sum(len(v) for v in calls.values()) + sum(len(v) for v in bases.values())
    return CodeAnalysis(
        detected_kind="class" if classes else "flowchart",
        complexity=complexity_class(len(functions) + len(classes), edge_count),
        elements=elements or ["statements"],
        functions=functions,
        classes=classes,
        calls=calls,
        bases=bases,
        methods=methods,
        language=language,
    )


# ---------------------------------------------------------------------------
# Workflow templates
# ---------------------------------------------------------------------------

WORKFLOW_STEPS = {
    "git": ["Create Branch", "Commit Changes", "Open Pull Request", "Merge"],
    "cicd": ["Push", "Build", "Test", "Deploy"],
    "business": ["Request", "Review", "Approve", "Complete"],
    "development": ["Plan", "Implement", "Code Review", "Release"],
    "deployment": ["Package", "Stage", "Verify", "Promote"],
}
_GENERIC_STEPS = ["Start", "Process", "Review", "Finish"]


def _state_name(label: str) -> str:
    return "".join(word.capitalize() for word in re.findall(r"\w+", label))


def _flowchart_workflow(steps: list[str], include_decisions: bool) -> list[str]:
    first, second, third, last = steps
    if not include_decisions:
        return [
            "flowchart TD",
            f"    A[{first}] --> B[{second}]",
            f"    B --> C[{third}]",
            f"    C --> D[{last}]",
        ]
    return [
        "flowchart TD",
        f"    A[{first}] --> B[{second}]",
        f"    B --> C{{{third} OK?}}",
        f"    C -->|Yes| D[{last}]",
        "    C -->|No| E[Fix Issues]",
        "    E --> B",
        "    D --> F[End]",
    ]


def _sequence_workflow(steps: list[str], workflow_type: str, include_decisions: bool) -> list[str]:
    lines = [
        "sequenceDiagram",
        "    participant U as User",
        f"    participant S as {workflow_type.capitalize()} System",
    ]
    for step in steps[:-1]:
        lines.append(f"    U->>S: {step}")
    if include_decisions:
        lines += [
            "    alt success",
            f"        S-->>U: {steps[-1]}",
            "    else failure",
            "        S-->>U: Report Error",
            "    end",
        ]
    else:
        lines.append(f"    S-->>U: {steps[-1]}")
    return lines


def _state_workflow(steps: list[str], include_decisions: bool) -> list[str]:
    names = [_state_name(s) for s in steps]
    lines = ["stateDiagram-v2", f"    [*] --> {names[0]}"]
    for src, dst in zip(names, names[1:]):
        lines.append(f"    {src} --> {dst}")
    if include_decisions:
        lines.append(f"    {names[2]} --> {names[1]}: rejected")
    lines.append(f"    {names[-1]} --> [*]")
    return lines


def _gantt_workflow(steps: list[str], workflow_type: str) -> list[str]:
    lines = [
        "gantt",
        f"    title {workflow_type.upper()} Timeline",
        "    dateFormat YYYY-MM-DD",
        "    section Phase 1",
        f"    {steps[0]} :t1, 2024-01-01, 3d",
        f"    {steps[1]} :t2, after t1, 3d",
        "    section Phase 2",
        f"    {steps[2]} :t3, after t2, 2d",
        f"    {steps[3]} :t4, after t3, 1d",
    ]
    return lines


# ---------------------------------------------------------------------------
# Bundled analyzer
# ---------------------------------------------------------------------------

class MermaidAnalyzer:
    """Heuristic :class:`Analyzer` for Mermaid diagrams."""

    async def analyze_code_structure(self, code: str, language: Optional[str] = None) -> CodeAnalysis:
        lang = (language or "").strip().lower() or None
        if lang in (None, "python", "py"):
            result = _analyze_python(code)
            if result is not None:
                return result
        return _analyze_generic(code, lang)

    async def generate_source(self, analysis: CodeAnalysis, kind: str = "auto",
                              include_details: bool = False) -> str:
        if kind not in ("flowchart", "sequence", "class", "state"):
            kind = analysis.detected_kind
        lines: list[str]

        if kind == "class" and analysis.classes:
            lines = ["classDiagram"]
            for name in analysis.classes:
                members = analysis.methods.get(name, []) if include_details else []
                if members:
                    lines.append(f"    class {name} {{")
                    lines.extend(f"        +{m}()" for m in members)
                    lines.append("    }")
                else:
                    lines.append(f"    class {name}")
            for name, parents in analysis.bases.items():
                lines.extend(f"    {parent} <|-- {name}" for parent in parents)

        elif kind == "sequence" and analysis.functions:
            lines = ["sequenceDiagram"]
            lines.extend(f"    participant {f}" for f in analysis.functions)
            for caller, callees in analysis.calls.items():
                for callee in callees:
                    lines.append(f"    {caller}->>{callee}: call")
                    if include_details:
                        lines.append(f"    {callee}-->>{caller}: return")

        elif kind == "state" and analysis.functions:
            lines = ["stateDiagram-v2", f"    [*] --> {analysis.functions[0]}"]
            for src, dst in zip(analysis.functions, analysis.functions[1:]):
                lines.append(f"    {src} --> {dst}")
            lines.append(f"    {analysis.functions[-1]} --> [*]")

        elif analysis.functions:
            lines = ["flowchart TD", "    Start([Start])"]
            called = {c for callees in analysis.calls.values() for c in callees}
            for name in analysis.functions:
                lines.append(f'    {name}["{name}()"]')
            entry = [f for f in analysis.functions if f not in called] or analysis.functions[:1]
            lines.extend(f"    Start --> {f}" for f in entry)
            for caller, callees in analysis.calls.items():
                lines.extend(f"    {caller} --> {callee}" for callee in callees)

        else:
            lines = ["flowchart TD", "    A[Start] --> B[Process]", "    B --> C[End]"]

        if include_details and analysis.language:
            lines.insert(1, f"    %% generated from {analysis.language} source")
        return "\n".join(lines)

    async def inspect(self, diagram_code: str, depth: str = "full") -> DiagramInspection:
        kind = detect_kind(diagram_code)
        graph = scan_graph(diagram_code, kind)
        nodes, edges = len(graph.nodes), len(graph.edges)
        score = complexity_score(nodes, edges)

        connected = {n for edge in graph.edges for n in edge}
        isolated = [n for n in graph.nodes if n not in connected]

        parts: list[str] = []
        if depth in ("structure", "full"):
            parts.append(
                f"{kind.capitalize()} diagram with {nodes} node(s), {edges} edge(s) "
                f"and {graph.subgraphs} subgraph(s)."
            )
            if isolated:
                parts.append(f"Isolated nodes: {', '.join(isolated)}.")
        if depth in ("complexity", "full"):
            parts.append(
                f"Complexity is {complexity_class(nodes, edges)} "
                f"({edges / nodes:.2f} edges per node)." if nodes else "Diagram has no nodes."
            )
        if depth == "optimization":
            parts.append("Optimization review of layout, grouping and labelling.")

        recommendations: list[str] = []
        if kind == "unknown":
            recommendations.append("Start the diagram with a type declaration such as 'flowchart TD'")
        if kind == "flowchart" and graph.decisions == 0 and nodes > 2:
            recommendations.append("Add decision points")
        if isolated:
            recommendations.append("Connect or remove isolated nodes")
        if nodes > 8 and graph.subgraphs == 0:
            recommendations.append("Group related nodes with subgraphs")
        if edges > 3 and graph.labelled_edges == 0:
            recommendations.append("Label edges to explain transitions")
        if graph.long_labels:
            recommendations.append("Shorten node labels longer than 40 characters")
        if not recommendations:
            recommendations.append("Structure looks balanced; no changes needed")

        return DiagramInspection(
            kind=kind,
            node_count=nodes,
            edge_count=edges,
            complexity_score=score,
            narrative=" ".join(parts),
            recommendations=recommendations,
        )

    async def suggest_improvements(self, diagram_code: str, context: Optional[str] = None,
                                   audience: str = "general") -> list[Suggestion]:
        kind = detect_kind(diagram_code)
        graph = scan_graph(diagram_code, kind)
        suggestions: list[Suggestion] = []

        lines = _content_lines(diagram_code)
        header = lines[0][1] if lines else ""
        if kind == "flowchart" and len(header.split()) == 1:
            rewritten = diagram_code.replace(header, f"{header} TD", 1)
            suggestions.append(Suggestion(
                title="Declare a Layout Direction",
                priority="High",
                rationale="Without a direction the renderer picks one, which can change between versions",
                how_to="Add TD or LR after the flowchart keyword",
                rewritten_source=rewritten,
            ))
        if len(graph.nodes) > 8 and graph.subgraphs == 0:
            suggestions.append(Suggestion(
                title="Group Related Nodes",
                priority="High",
                rationale=f"{len(graph.nodes)} ungrouped nodes are hard to scan",
                how_to="Wrap related nodes in subgraph ... end blocks",
            ))
        if graph.long_labels:
            suggestions.append(Suggestion(
                title="Shorten Long Labels",
                priority="Medium",
                rationale=f"{graph.long_labels} label(s) exceed 40 characters",
                how_to="Keep labels short and move detail into notes or a legend",
            ))
        if len(graph.edges) > 3 and graph.labelled_edges == 0:
            suggestions.append(Suggestion(
                title="Label Key Transitions",
                priority="Medium",
                rationale="Unlabelled edges leave the reader guessing what each arrow means",
                how_to="Use -->|label| on the edges that carry decisions or data",
            ))

        audience_tips = {
            "technical": ("Expose Implementation Detail",
                          "Technical readers look for components and interfaces",
                          "Name nodes after real modules and annotate protocols on edges"),
            "business": ("Use Business Language",
                         "Business readers skip technical identifiers",
                         "Replace code names with outcome-oriented labels"),
            "documentation": ("Add Title and Legend",
                              "Documentation diagrams are read without the author present",
                              "Add a title comment and a legend explaining shapes and colors"),
        }
        title, rationale, how_to = audience_tips.get(audience, (
            "Improve Readability",
            "Clear labels and grouping help every audience",
            "Use subgraphs and consistent node labels",
        ))
        if context:
            rationale = f"{rationale} (context: {context})"
        suggestions.append(Suggestion(
            title=title, priority="Low" if suggestions else "High",
            rationale=rationale, how_to=how_to,
        ))

        order = {"High": 0, "Medium": 1, "Low": 2}
        suggestions.sort(key=lambda s: order.get(s.priority, 3))
        return suggestions

    async def synthesize_workflow(self, description: str, workflow_type: str,
                                  include_decisions: bool = True,
                                  output_format: str = "flowchart") -> str:
        steps = WORKFLOW_STEPS.get(workflow_type, _GENERIC_STEPS)
        if output_format == "sequence":
            lines = _sequence_workflow(steps, workflow_type, include_decisions)
        elif output_format == "state":
            lines = _state_workflow(steps, include_decisions)
        elif output_format == "gantt":
            lines = _gantt_workflow(steps, workflow_type)
        elif output_format == "flowchart":
            lines = _flowchart_workflow(steps, include_decisions)
        else:
            lines = _flowchart_workflow(steps, include_decisions=True)
        summary = " ".join(description.split())[:60]
        if summary:
            lines.insert(1, f"    %% {summary}")
        return "\n".join(lines)

    async def validate(self, diagram_code: str, strict: bool = False) -> ValidationReport:
        lines = _content_lines(diagram_code)
        if not lines:
            return ValidationReport(
                is_valid=False, kind="unknown", node_count=0, complexity="low",
                errors=[SyntaxIssue(line=1, message="Diagram is empty")],
                suggestions=["Start with a diagram type declaration such as 'flowchart TD'"],
            )

        kind = detect_kind(diagram_code)
        errors: list[SyntaxIssue] = []
        suggestions: list[str] = []
        corrected = diagram_code

        header_line, header = lines[0]
        if kind == "unknown":
            keyword = header.split()[0]
            close = difflib.get_close_matches(keyword, list(_HEADER_KEYWORDS), n=1, cutoff=0.7)
            if close:
                errors.append(SyntaxIssue(
                    line=header_line,
                    message=f"Unknown diagram type '{keyword}' (did you mean '{close[0]}'?)",
                ))
                suggestions.append(f"Replace '{keyword}' with '{close[0]}'")
                corrected = diagram_code.replace(keyword, close[0], 1)
                kind = _HEADER_KEYWORDS[close[0]]
            else:
                errors.append(SyntaxIssue(
                    line=header_line, message=f"Unknown diagram type '{keyword}'",
                ))
                suggestions.append("Start with a diagram type declaration such as 'flowchart TD'")
                if _GRAPH_ARROW.search(header):
                    corrected = "flowchart TD\n" + diagram_code
                    kind = "flowchart"
        elif kind == "flowchart":
            parts = header.rstrip(";").split()
            if len(parts) > 1 and parts[1].upper() not in _FLOW_DIRECTIONS:
                errors.append(SyntaxIssue(
                    line=header_line, message=f"Invalid direction '{parts[1]}'",
                ))
                suggestions.append("Use one of TB, TD, BT, RL, LR as the direction")
                corrected = corrected.replace(header, f"{parts[0]} TD", 1)
            elif len(parts) == 1 and strict:
                errors.append(SyntaxIssue(line=header_line, message="Missing flowchart direction"))
                suggestions.append("Add a direction, e.g. 'flowchart TD'")
                corrected = corrected.replace(header, f"{header} TD", 1)

        open_blocks = 0
        brace_blocks = 0
        for number, text in lines[1:]:
            body = re.sub(r'"[^"]*"', "", text)
            if body == "}":
                brace_blocks -= 1
                if brace_blocks < 0:
                    errors.append(SyntaxIssue(line=number, message="'}' without matching block"))
                    brace_blocks = 0
                continue
            # class/state/entity blocks span lines: "Name {" ... "}"
            if body.endswith("{"):
                body = body[:-1]
                brace_blocks += 1

            stack: list[str] = []
            balanced = True
            for ch in body:
                if ch in _BRACKETS:
                    stack.append(_BRACKETS[ch])
                elif ch in _BRACKETS.values():
                    if not stack or stack.pop() != ch:
                        balanced = False
                        break
            if not balanced or stack:
                errors.append(SyntaxIssue(line=number, message="Unbalanced brackets"))

            if kind in ("flowchart", "state", "class") and re.search(
                r"(?:-->|---|==>|-\.->)\s*(?:\|[^|]*\|)?\s*$", text
            ):
                errors.append(SyntaxIssue(line=number, message="Arrow is missing a target node"))

            lowered = text.lower()
            if lowered.split()[0] in _BLOCK_OPENERS:
                open_blocks += 1
            elif lowered == "end":
                open_blocks -= 1
                if open_blocks < 0:
                    errors.append(SyntaxIssue(line=number, message="'end' without matching block"))
                    open_blocks = 0

            if strict and kind == "sequence" and _SEQUENCE_ARROW.search(text) and ":" not in text:
                errors.append(SyntaxIssue(line=number, message="Message is missing a ':' label"))
            if strict and text.endswith(";"):
                errors.append(SyntaxIssue(line=number, message="Trailing semicolon"))

        if open_blocks > 0:
            errors.append(SyntaxIssue(
                line=lines[-1][0], message=f"{open_blocks} block(s) not closed with 'end'",
            ))
            suggestions.append("Close every subgraph/alt/loop block with 'end'")
            corrected = corrected.rstrip("\n") + "\n" + "\n".join(["end"] * open_blocks)
        if brace_blocks > 0:
            errors.append(SyntaxIssue(
                line=lines[-1][0], message=f"{brace_blocks} block(s) not closed with '}}'",
            ))
            suggestions.append("Close every '{' block with a '}' line")
            corrected = corrected.rstrip("\n") + "\n" + "\n".join(["}"] * brace_blocks)

        if any(e.message == "Unbalanced brackets" for e in errors):
            suggestions.append("Check that every [, ( and { has a matching closing bracket")
        if any(e.message == "Arrow is missing a target node" for e in errors):
            suggestions.append("Complete or remove arrows that have no target node")

        graph = scan_graph(corrected, kind)
        errors.sort(key=lambda e: e.line)
        return ValidationReport(
            is_valid=not errors,
            kind=kind,
            node_count=len(graph.nodes),
            complexity=complexity_class(len(graph.nodes), len(graph.edges)),
            errors=errors,
            suggestions=suggestions,
            corrected_source=corrected if errors and corrected != diagram_code else None,
        )
