"""
Mermaid diagram export pipeline.

Turns diagram source plus export options into either a file on disk or an
inline base64 payload.  SVG and HTML are produced locally from string
templates.  PNG and PDF go through a :class:`RasterBackend`:

1. **placeholder** (default) — no renderer configured.  Writes a short text
   stand-in to the output path, or returns a constant pre-baked payload
   inline, together with an estimated size.
2. **mmdc** — the official Mermaid CLI (``@mermaid-js/mermaid-cli``), run as
   a subprocess.  Only used when explicitly selected.

Note: the SVG path is a template demo.  It draws two fixed nodes and embeds
only the first 50 characters of the source as a comment; it is not a real
layout of arbitrary diagram source.
"""

from __future__ import annotations

import asyncio
import base64
import logging
import os
import signal
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol

from mermaid_mcp.errors import RenderFailure, RenderTimeout, UnsupportedFormat
from mermaid_mcp.models import ExportFormat, ExportOptions, ExportResult
from mermaid_mcp.themes import ThemePalette, get_palette, normalize_theme

logger = logging.getLogger("mermaid-mcp.renderer")

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

MERMAID_CDN_URL = "https://cdn.jsdelivr.net/npm/mermaid@10.6.1/dist/mermaid.min.js"

SOURCE_PREVIEW_CHARS = 50

# 1x1 transparent PNG and an empty one-page-tree PDF
_PLACEHOLDER_PNG = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)
_PLACEHOLDER_PDF = base64.b64decode(
    "JVBERi0xLjQKJeL+LywKMSAwIG9iago8PAovVHlwZSAvQ2F0YWxvZwovUGFnZXMgMiAwIFIKPj4K"
    "ZW5kb2JqCjIgMCBvYmoKPDwKL1R5cGUgL1BhZ2VzCi9LaWRzIFsgXQovQ291bnQgMAo+PgplbmRv"
    "YmoKCnRyYWlsZXIKPDwKL1NpemUgMgovUm9vdCAxIDAgUgo+PgpzdGFydHhyZWYKMTU4CiUlRU9G"
)

_ESTIMATED_SIZES = {
    ExportFormat.PNG: "~150KB",
    ExportFormat.PDF: "~200KB",
}


def format_kb(num_bytes: int) -> str:
    """Size descriptor rounded half-up to whole kilobytes, e.g. ``"2KB"``."""
    return f"{int(num_bytes / 1024 + 0.5)}KB"


def _preview(diagram_code: str) -> str:
    return diagram_code[:SOURCE_PREVIEW_CHARS]


# ---------------------------------------------------------------------------
# Raster backends (PNG / PDF)
# ---------------------------------------------------------------------------

@dataclass
class RasterOutput:
    """Bytes produced by a raster backend plus its size/details strings."""
    payload: bytes
    size: str
    details: str


class RasterBackend(Protocol):
    """Capability that produces PNG or PDF bytes for a diagram."""

    name: str

    async def render(
        self,
        diagram_code: str,
        fmt: ExportFormat,
        theme: str,
        width: int,
        height: int,
        *,
        inline: bool,
    ) -> RasterOutput:
        ...


class PlaceholderBackend:
    """Stand-in used when no real renderer is configured.

    With a file target the payload is a short text description of the
    diagram; inline callers get a constant pre-baked PNG/PDF.
    """

    name = "placeholder"

    async def render(
        self,
        diagram_code: str,
        fmt: ExportFormat,
        theme: str,
        width: int,
        height: int,
        *,
        inline: bool,
    ) -> RasterOutput:
        if fmt is ExportFormat.PNG:
            details = f"PNG would be rendered at {width}x{height} with {theme} theme"
            blob = _PLACEHOLDER_PNG
        else:
            details = f"PDF would be generated with {theme} theme"
            blob = _PLACEHOLDER_PDF

        if inline:
            payload = blob
        else:
            text = (
                f"{fmt.value.upper()} export placeholder for diagram: "
                f"{_preview(diagram_code)}..."
            )
            payload = text.encode("utf-8")
        return RasterOutput(payload=payload, size=_ESTIMATED_SIZES[fmt], details=details)


def _kill_process_group(proc: asyncio.subprocess.Process) -> None:
    """Kill *proc* and every process in its group."""
    if proc.returncode is not None:
        return
    try:
        if hasattr(os, "killpg"):
            os.killpg(proc.pid, signal.SIGKILL)
        else:
            proc.kill()
    except ProcessLookupError:
        logger.debug("Process %s already exited", proc.pid)


class MermaidCliBackend:
    """Render through the ``mmdc`` executable from ``@mermaid-js/mermaid-cli``."""

    name = "mmdc"

    def __init__(self, executable: str = "mmdc") -> None:
        self.executable = executable

    async def render(
        self,
        diagram_code: str,
        fmt: ExportFormat,
        theme: str,
        width: int,
        height: int,
        *,
        inline: bool,
    ) -> RasterOutput:
        with tempfile.TemporaryDirectory(prefix="mermaid_mcp_") as tmp:
            src = Path(tmp) / "diagram.mmd"
            out = Path(tmp) / f"diagram.{fmt.value}"
            src.write_text(diagram_code, encoding="utf-8")

            cmd = [
                self.executable,
                "-i", str(src),
                "-o", str(out),
                "-t", theme,
                "-w", str(width),
                "-H", str(height),
                "-b", "transparent",
            ]
            logger.debug("Running %s", " ".join(cmd))
            try:
                proc = await asyncio.create_subprocess_exec(
                    *cmd,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                    start_new_session=True,
                )
            except FileNotFoundError as exc:
                raise RenderFailure(
                    f"Mermaid CLI '{self.executable}' not found."
                ) from exc
            try:
                _, stderr = await proc.communicate()
            except BaseException:
                _kill_process_group(proc)
                await proc.wait()
                raise

            if proc.returncode != 0 or not out.exists():
                message = stderr.decode("utf-8", errors="replace")[:500].strip()
                raise RenderFailure(f"mmdc exited with code {proc.returncode}: {message}")
            payload = out.read_bytes()

        return RasterOutput(
            payload=payload,
            size=format_kb(len(payload)),
            details=f"{fmt.value.upper()} rendered at {width}x{height} with {theme} theme via mermaid-cli",
        )


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------

def generate_svg_template(diagram_code: str, palette: ThemePalette) -> str:
    """Fixed 400x300 demo SVG styled from *palette*."""
    # "--" is not allowed inside an XML comment
    preview = _preview(diagram_code).replace("--", "- -")
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<svg width="400" height="300" xmlns="http://www.w3.org/2000/svg">
  <defs>
    <style>
      .node {{ fill: {palette.node_color}; stroke: {palette.stroke_color}; stroke-width: 2; }}
      .edge {{ stroke: {palette.edge_color}; stroke-width: 2; }}
      .label {{ fill: {palette.text_color}; font-family: Arial, sans-serif; font-size: 12px; }}
    </style>
  </defs>

  <!-- Generated from Mermaid code: {preview}... -->
  <rect class="node" x="50" y="50" width="100" height="40" rx="5"/>
  <text class="label" x="100" y="75" text-anchor="middle">Start</text>

  <line class="edge" x1="150" y1="70" x2="200" y2="70" marker-end="url(#arrow)"/>

  <rect class="node" x="200" y="50" width="100" height="40" rx="5"/>
  <text class="label" x="250" y="75" text-anchor="middle">Process</text>

  <defs>
    <marker id="arrow" markerWidth="10" markerHeight="10" refX="9" refY="3" orient="auto">
      <polygon points="0 0, 10 3, 0 6" fill="{palette.edge_color}"/>
    </marker>
  </defs>
</svg>"""


def generate_html_template(diagram_code: str, theme: str) -> str:
    """Standalone page that renders *diagram_code* in the browser with mermaid.js."""
    if theme == "dark":
        colors = "background: #1e1e1e; color: #d4d4d4;"
    else:
        colors = "background: white; color: black;"
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Mermaid Diagram</title>
    <script src="{MERMAID_CDN_URL}"></script>
    <style>
        body {{
            margin: 0;
            padding: 20px;
            font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
            {colors}
        }}
        .diagram-container {{
            text-align: center;
            padding: 20px;
        }}
    </style>
</head>
<body>
    <div class="diagram-container">
        <h1>Generated Diagram</h1>
        <div class="mermaid">
{diagram_code}
        </div>
    </div>

    <script>
        mermaid.initialize({{
            startOnLoad: true,
            theme: '{theme}',
            securityLevel: 'loose'
        }});
    </script>
</body>
</html>"""


# ---------------------------------------------------------------------------
# Export pipeline
# ---------------------------------------------------------------------------

class MermaidRenderer:
    """Export Mermaid diagrams to SVG, PNG, PDF or HTML.

    Parameters
    ----------
    backend
        Raster backend for PNG/PDF.  Defaults to :class:`PlaceholderBackend`.
    timeout
        Seconds allowed for one backend call; *None* disables the limit.
    """

    def __init__(
        self,
        backend: Optional[RasterBackend] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.backend: RasterBackend = backend or PlaceholderBackend()
        self.timeout = timeout

    async def export(self, options: ExportOptions) -> ExportResult:
        """Export *options.diagram_code*; raises :class:`UnsupportedFormat`
        for formats outside :class:`ExportFormat`."""
        fmt = self._resolve_format(options.format)
        theme = normalize_theme(options.theme)

        logger.info("Rendering diagram to %s with theme %s", fmt.value, theme)

        if fmt is ExportFormat.SVG:
            return await self._render_svg(options.diagram_code, theme, options.output_path)
        elif fmt is ExportFormat.PNG or fmt is ExportFormat.PDF:
            return await self._render_raster(
                options.diagram_code, fmt, theme,
                options.width, options.height, options.output_path,
            )
        elif fmt is ExportFormat.HTML:
            return await self._render_html(options.diagram_code, theme, options.output_path)
        raise UnsupportedFormat(options.format)

    # -- format branches --

    async def _render_svg(
        self, diagram_code: str, theme: str, output_path: Optional[str],
    ) -> ExportResult:
        payload = generate_svg_template(diagram_code, get_palette(theme)).encode("utf-8")
        size = format_kb(len(payload))
        if output_path:
            resolved = await self._write_output(output_path, payload)
            return ExportResult(
                success=True,
                output_path=resolved,
                size=size,
                details=f"SVG exported successfully with {theme} theme",
            )
        return ExportResult(
            success=True,
            base64_data=_b64(payload),
            size=size,
            details=f"SVG generated as base64 with {theme} theme",
        )

    async def _render_raster(
        self,
        diagram_code: str,
        fmt: ExportFormat,
        theme: str,
        width: int,
        height: int,
        output_path: Optional[str],
    ) -> ExportResult:
        inline = not output_path
        call = self.backend.render(diagram_code, fmt, theme, width, height, inline=inline)
        try:
            if self.timeout is not None:
                rendered = await asyncio.wait_for(call, timeout=self.timeout)
            else:
                rendered = await call
        except asyncio.TimeoutError as exc:
            raise RenderTimeout(
                f"{fmt.value.upper()} rendering exceeded {self.timeout}s "
                f"({self.backend.name} backend)"
            ) from exc

        if output_path:
            resolved = await self._write_output(output_path, rendered.payload)
            return ExportResult(
                success=True, output_path=resolved,
                size=rendered.size, details=rendered.details,
            )
        return ExportResult(
            success=True, base64_data=_b64(rendered.payload),
            size=rendered.size, details=rendered.details,
        )

    async def _render_html(
        self, diagram_code: str, theme: str, output_path: Optional[str],
    ) -> ExportResult:
        payload = generate_html_template(diagram_code, theme).encode("utf-8")
        size = format_kb(len(payload))
        if output_path:
            resolved = await self._write_output(output_path, payload)
            return ExportResult(
                success=True,
                output_path=resolved,
                size=size,
                details=f"Interactive HTML exported with {theme} theme",
            )
        return ExportResult(
            success=True,
            base64_data=_b64(payload),
            size=size,
            details=f"Interactive HTML generated with {theme} theme",
        )

    # -- helpers --

    @staticmethod
    def _resolve_format(value: object) -> ExportFormat:
        if isinstance(value, ExportFormat):
            return value
        if isinstance(value, str):
            try:
                return ExportFormat(value.strip().lower())
            except ValueError:
                pass
        raise UnsupportedFormat(value)

    async def _write_output(self, output_path: str, payload: bytes) -> str:
        """Write *payload* to *output_path*, creating parent directories."""
        path = Path(output_path)
        try:
            await asyncio.to_thread(_write_bytes, path, payload)
        except OSError as exc:
            logger.error("Export failed writing %s: %s", path, exc)
            raise RenderFailure(f"Could not write '{output_path}': {exc}") from exc
        logger.debug("Wrote %d bytes to %s", len(payload), path)
        return str(path.resolve())


def _write_bytes(path: Path, payload: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(payload)


def _b64(payload: bytes) -> str:
    return base64.b64encode(payload).decode("ascii")


def create_renderer(renderer: str = "placeholder", *, timeout: Optional[float] = None,
                    cli_path: str = "mmdc") -> MermaidRenderer:
    """Build a :class:`MermaidRenderer` for the configured backend name."""
    if renderer == MermaidCliBackend.name:
        return MermaidRenderer(MermaidCliBackend(cli_path), timeout=timeout)
    return MermaidRenderer(PlaceholderBackend(), timeout=timeout)
