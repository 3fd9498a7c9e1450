"""
Request-scoped value objects shared by the tool registry and the exporter.

Nothing here persists beyond a single tool call.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Optional, Union


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class ExportFormat(str, Enum):
    """Output representations supported by the export pipeline."""
    SVG = "svg"
    PNG = "png"
    PDF = "pdf"
    HTML = "html"


DEFAULT_WIDTH = 1920
DEFAULT_HEIGHT = 1080


# ---------------------------------------------------------------------------
# Export options / result
# ---------------------------------------------------------------------------

@dataclass
class ExportOptions:
    """Everything the export pipeline needs for one diagram."""
    diagram_code: str
    format: Union[ExportFormat, str]
    theme: str = "default"
    width: int = DEFAULT_WIDTH
    height: int = DEFAULT_HEIGHT
    output_path: Optional[str] = None


@dataclass
class ExportResult:
    """Outcome of an export.

    On success exactly one of ``output_path`` (file written) or
    ``base64_data`` (inline payload) is set.
    """
    success: bool
    size: str
    details: str
    output_path: Optional[str] = None
    base64_data: Optional[str] = None

    def __post_init__(self) -> None:
        if self.success and (self.output_path is None) == (self.base64_data is None):
            raise ValueError(
                "ExportResult requires exactly one of output_path or base64_data."
            )

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


# ---------------------------------------------------------------------------
# Tool response content
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TextContent:
    text: str
    type: str = "text"


@dataclass(frozen=True)
class ImageContent:
    data: str
    mime_type: str
    type: str = "image"


ContentBlock = Union[TextContent, ImageContent]


@dataclass
class ToolResponse:
    """Ordered, non-empty list of content blocks returned by a tool."""
    content: list[ContentBlock] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.content:
            raise ValueError("ToolResponse requires at least one content block.")

    @classmethod
    def text(cls, text: str) -> ToolResponse:
        return cls(content=[TextContent(text=text)])

    @property
    def first_text(self) -> str:
        """Text of the first text block, or an empty string."""
        for block in self.content:
            if isinstance(block, TextContent):
                return block.text
        return ""
