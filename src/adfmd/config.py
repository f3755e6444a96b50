"""Application configuration: settings schema and config.yaml loader"""

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field


CONFIG_FILE = "config.yaml"


class Settings(BaseModel):
    app_name:          str  = "adfmd"
    strict:            bool = Field(default=False, description="Raise typed errors instead of falling back")
    preserve_unknown_nodes: bool = Field(default=True, description="Emit placeholders for unmapped nodes; False drops them")
    frontmatter:       bool = Field(default=True,  description="Recognise a leading YAML frontmatter block")
    parser_config:     str  = Field(default="gfm-like", description="MarkdownIt parser preset name")
    nesting_lookahead: int  = Field(default=3, ge=0, description="Max siblings absorbed into an unterminated panel/expand")
    indent:            int  = Field(default=2, ge=0, description="JSON indent for written documents; 0 = compact")
    output_dir:        str  = Field(default="dist", description="Directory for converted files")
    log_level:         str  = Field(default="WARNING", pattern="^(TRACE|DEBUG|INFO|SUCCESS|WARNING|ERROR|CRITICAL)$")


def load_config(overrides: dict[str, Any] = None) -> Settings:
    """Load Settings from config.yaml, then ADFMD_<FIELD> env vars, then non-None CLI overrides."""
    data: dict[str, Any] = {}
    if Path(CONFIG_FILE).exists():
        try:
            data = yaml.safe_load(Path(CONFIG_FILE).read_text()) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid {CONFIG_FILE}: {e}") from e

    for name in Settings.model_fields:
        if val := os.getenv(f"ADFMD_{name.upper()}"):
            data[name] = val

    if overrides:
        data.update({k: v for k, v in overrides.items() if v is not None})
    return Settings(**data)
