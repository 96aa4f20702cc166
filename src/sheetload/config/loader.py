from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

"""Import configuration loader.

Responsibilities:
- Load the YAML config (default config/import.yml)
- Validate it against the bundled config_schema.json
- Apply defaults (schema=public, header_row=2, update_pass=true, ...)
"""

__all__ = [
    "ConfigError",
    "DatabaseConfig",
    "SheetMapping",
    "ImportConfig",
    "load_config",
    "DEFAULT_CONFIG_PATH",
    "SCHEMA_PATH",
]

DEFAULT_CONFIG_PATH = Path("config/import.yml")
SCHEMA_PATH = Path(__file__).parent / "config_schema.json"


class ConfigError(Exception):
    pass


@dataclass(frozen=True)
class DatabaseConfig:
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None


@dataclass(frozen=True)
class SheetMapping:
    sheet_name: str
    table: str
    ignore_columns: frozenset[str] = frozenset()


@dataclass(frozen=True)
class ImportConfig:
    source_directory: str
    schema: str = "public"
    header_row: int = 2
    sheet_mappings: dict[str, SheetMapping] = field(default_factory=dict)  # empty: every sheet, same-named table
    null_sentinels: frozenset[str] = frozenset()  # upper-cased
    update_pass: bool = True
    on_row_error: str = "skip"
    page_size: int = 1000
    database: DatabaseConfig = DatabaseConfig()

    def table_for(self, sheet_name: str) -> str | None:
        """Destination table of ``sheet_name``, None if the sheet is not mapped."""
        if not self.sheet_mappings:
            return sheet_name
        mapping = self.sheet_mappings.get(sheet_name)
        return mapping.table if mapping else None

    def sheet_tables(self) -> dict[str, str] | None:
        if not self.sheet_mappings:
            return None
        return {name: m.table for name, m in self.sheet_mappings.items()}

    def ignore_columns(self) -> dict[str, set[str]]:
        return {name: set(m.ignore_columns) for name, m in self.sheet_mappings.items() if m.ignore_columns}


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against the bundled JSON schema.

    Raises:
        ConfigError: schema file missing or invalid, or data not matching it
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")
    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"config validation failed: {e.message}") from e


def _sheet_mappings(raw: dict[str, Any]) -> dict[str, SheetMapping]:
    mappings = {}
    for sheet_name, mapping in raw.items():
        mapping = mapping or {}
        mappings[sheet_name] = SheetMapping(
            sheet_name=sheet_name,
            table=mapping.get("table", sheet_name),
            ignore_columns=frozenset(mapping.get("ignore_columns", [])),
        )
    return mappings


def load_config(path: Path = DEFAULT_CONFIG_PATH) -> ImportConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"config root must be a mapping: {path}")

    _validate_config_schema(data)

    db_raw = data.get("database", {})
    db = DatabaseConfig(
        host=db_raw.get("host"),
        port=db_raw.get("port"),
        user=db_raw.get("user"),
        password=db_raw.get("password"),
        database=db_raw.get("database"),
        dsn=db_raw.get("dsn"),
    )
    return ImportConfig(
        source_directory=data["source_directory"],
        schema=data.get("schema", "public"),
        header_row=data.get("header_row", 2),
        sheet_mappings=_sheet_mappings(data.get("sheet_mappings") or {}),
        null_sentinels=frozenset(s.strip().upper() for s in data.get("null_sentinels", [])),
        update_pass=data.get("update_pass", True),
        on_row_error=data.get("on_row_error", "skip"),
        page_size=data.get("page_size", 1000),
        database=db,
    )
