"""
Environment-driven settings.

Values come from the process environment, optionally seeded from a ``.env``
file in the working directory.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import load_dotenv

RENDERER_PLACEHOLDER = "placeholder"
RENDERER_MMDC = "mmdc"
_RENDERERS = {RENDERER_PLACEHOLDER, RENDERER_MMDC}

DEFAULT_RENDER_TIMEOUT = 30.0


def _env_flag(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    """Process-wide configuration, read once at start-up."""
    debug: bool = False
    renderer: str = RENDERER_PLACEHOLDER
    render_timeout: Optional[float] = DEFAULT_RENDER_TIMEOUT
    mermaid_cli_path: str = "mmdc"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> Settings:
        """Build settings from *environ* (defaults to ``os.environ``)."""
        if environ is None:
            load_dotenv()
            environ = os.environ

        renderer = environ.get("MERMAID_RENDERER", RENDERER_PLACEHOLDER).strip().lower()
        if renderer not in _RENDERERS:
            choices = ", ".join(sorted(_RENDERERS))
            raise ValueError(
                f"MERMAID_RENDERER must be one of [{choices}], got '{renderer}'."
            )

        raw_timeout = environ.get("MERMAID_RENDER_TIMEOUT", "").strip()
        timeout: Optional[float] = DEFAULT_RENDER_TIMEOUT
        if raw_timeout:
            timeout = float(raw_timeout)
            # 0 disables the timeout
            if timeout <= 0:
                timeout = None

        return cls(
            debug=_env_flag(environ.get("DEBUG")),
            renderer=renderer,
            render_timeout=timeout,
            mermaid_cli_path=environ.get("MERMAID_CLI_PATH", "mmdc").strip() or "mmdc",
        )
