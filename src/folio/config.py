"""Application configuration: settings schema and config.yaml loader"""

import os
from datetime import time
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from folio.core.errors import UnknownTimezone
from folio.core.schedule import resolve_zone


CONFIG_FILE = "config.yaml"


class Settings(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    site_title:   str = Field(default="Blog", alias="siteTitle")
    content_dir:  str = Field(default="_posts",   alias="contentDir", description="Directory scanned for documents")
    layouts_dir:  str = Field(default="_layouts", alias="layoutsDir", description="Directory of <name>.html layouts")
    output_dir:   str = Field(default="_site",    alias="outputDir",  description="Directory for rendered pages")
    fail_fast:    bool = Field(default=True, alias="failFast", description="Abort on the first document error")
    default_timezone: str = Field(default="UTC", alias="defaultTimezone", description="Used when a document omits timezone")
    default_publish_time: str = Field(
        default="09:00", alias="defaultPublishTime", pattern=r"^\d{2}:\d{2}$",
        description="Local time applied to date-only documents",
    )
    max_layout_chain_depth: int = Field(default=10, ge=1, alias="maxLayoutChainDepth")
    highlight_unknown_language_as_plain: bool = Field(
        default=True, alias="highlightUnknownLanguageAsPlain",
        description="Render unknown code languages plain instead of failing the document",
    )
    related_posts: int = Field(default=3, ge=0, alias="relatedPosts", description="Related links per page; 0 disables")
    index_layout:  Optional[str] = Field(default=None, alias="indexLayout", description="Layout wrapping index.html")
    date_format:   str = Field(default="%B %d, %Y", alias="dateFormat", description="strftime format for page.date")
    markdown_preset: str = Field(default="gfm-like", alias="markdownPreset", description="MarkdownIt preset for .md bodies")
    workers:       int = Field(default=0, ge=0, description="Worker threads per stage; 0 = cpu count")

    @field_validator("default_timezone")
    @classmethod
    def _known_timezone(cls, v: str) -> str:
        try:
            resolve_zone(v)
        except UnknownTimezone as e:
            raise ValueError(str(e)) from e
        return v

    @field_validator("default_publish_time")
    @classmethod
    def _valid_publish_time(cls, v: str) -> str:
        time.fromisoformat(v)
        return v

    @property
    def publish_time(self) -> time:
        return time.fromisoformat(self.default_publish_time)


ALIASES = {f.alias: name for name, f in Settings.model_fields.items() if f.alias}


def load_config(overrides: dict[str, Any] = None) -> Settings:
    """Load Settings from config.yaml, then FOLIO_<FIELD> env vars, then non-None CLI overrides."""
    data: dict[str, Any] = {}
    if Path(CONFIG_FILE).exists():
        try:
            data = yaml.safe_load(Path(CONFIG_FILE).read_text()) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid {CONFIG_FILE}: {e}") from e
        if not isinstance(data, dict):
            raise ValueError(f"Invalid {CONFIG_FILE}: expected a mapping")
        data = {ALIASES.get(k, k): v for k, v in data.items()}

    for name in Settings.model_fields:
        if val := os.getenv(f"FOLIO_{name.upper()}"):
            data[name] = val

    if overrides:
        data.update({k: v for k, v in overrides.items() if v is not None})
    return Settings(**data)
