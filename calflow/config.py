"""Engine configuration loaded from config.yaml + environment variables."""

from __future__ import annotations

import yaml
from pathlib import Path
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings

_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config.yaml"


def _load_yaml() -> dict:
    if _CONFIG_PATH.exists():
        with open(_CONFIG_PATH) as f:
            return yaml.safe_load(f) or {}
    return {}


_yaml = _load_yaml()


class IdentifierConfig(BaseSettings):
    vin_false_positive_prefixes: list[str] = Field(default_factory=lambda: [
        "ALL", "AUD", "CCM", "CCC", "EST", "REF", "INV", "DAT", "DOC", "PDF", "IMG", "RPT",
    ])
    vin_region_chars: str = "12345JKLMNSTUVWXYZ"
    reference_placeholders: list[str] = Field(default_factory=lambda: [
        "LICY", "UNKNOWN", "N/A", "NA", "TBD", "NONE",
    ])
    synthetic_reference_markers: list[str] = Field(default_factory=lambda: ["synthetic", "auto-"])
    min_numeric_match: int = 4


class AssignmentConfig(BaseSettings):
    default_technician: str = "Felipe"


class NotesConfig(BaseSettings):
    short_notes_max_length: int = 500


class DocumentsConfig(BaseSettings):
    fetch_enabled: bool = True
    fetch_timeout_seconds: float = 10.0


class SeedShop(BaseModel):
    name: str
    region: str = ""
    email: str = ""


class SeedTechnician(BaseModel):
    name: str
    regions: str = ""
    email: str = ""
    active: bool = True


class SeedConfig(BaseSettings):
    shops: list[SeedShop] = Field(default_factory=list)
    technicians: list[SeedTechnician] = Field(default_factory=list)


class Settings(BaseSettings):
    database_url: str = "sqlite+aiosqlite:///data/calflow.db"
    timezone: str = "America/New_York"
    identifiers: IdentifierConfig = Field(default_factory=IdentifierConfig)
    assignment: AssignmentConfig = Field(default_factory=AssignmentConfig)
    notes: NotesConfig = Field(default_factory=NotesConfig)
    documents: DocumentsConfig = Field(default_factory=DocumentsConfig)
    seed: SeedConfig = Field(default_factory=SeedConfig)

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "env_prefix": "CALFLOW_"}


def get_settings() -> Settings:
    """Build Settings by merging YAML defaults with env overrides."""
    y = _yaml
    ids = IdentifierConfig(**y.get("identifiers", {}))
    assign = AssignmentConfig(**y.get("assignment", {}))
    notes = NotesConfig(**y.get("notes", {}))
    docs = DocumentsConfig(**y.get("documents", {}))
    seed = SeedConfig(**y.get("seed", {}))
    db_url = y.get("database", {}).get("url", "sqlite+aiosqlite:///data/calflow.db")
    return Settings(
        database_url=db_url,
        timezone=y.get("timezone", "America/New_York"),
        identifiers=ids,
        assignment=assign,
        notes=notes,
        documents=docs,
        seed=seed,
    )
