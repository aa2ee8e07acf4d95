"""Configuration schema using Pydantic."""

import os
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

APP_DIR_NAME = "linemark"


def default_data_dir() -> str:
    """Per-user data directory, always with a trailing separator."""
    base = os.environ.get("XDG_DATA_HOME") or str(Path.home() / ".local" / "share")
    return os.path.join(base, APP_DIR_NAME, "")


class LinemarkConfig(BaseSettings):
    """Display and storage options. Every field can be set via LINEMARK_<FIELD>."""

    model_config = SettingsConfigDict(env_prefix="LINEMARK_", extra="forbid")

    sign: str = "◆"  # gutter glyph
    sign_hl: str = "DiagnosticInfo"
    line_hl: Optional[str] = None
    virt_text_hl: str = "LinemarkAnnotation"
    annotation_prefix: str = "  » "
    virt_text_pos: Literal["eol", "eol_right_align", "overlay", "right_align", "inline"] = "eol"
    data_dir: Optional[str] = None
    autosave_delay: float = Field(default=0.5, ge=0.0, description="Debounce window for autosave, in seconds")

    def merged(self, **opts) -> "LinemarkConfig":
        """Return a copy with the given options applied on top of this config."""
        data = self.model_dump()
        data.update(opts)
        return LinemarkConfig.model_validate(data)
