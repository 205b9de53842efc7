"""Configuration for the expand service."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from .identity.extractor import DEFAULT_FORWARD_HEADERS


CONFIG_ENV_VAR = "EXPAND_CONFIG"
SAMPLE_SCHEMA_FILE = Path(__file__).parent / "sample_schema.yaml"


@dataclass
class ServerConfig:
    """HTTP server configuration."""
    host: str = "0.0.0.0"
    port: int = 8060
    reload: bool = False


@dataclass
class ExpandConfig:
    """Expansion behaviour."""
    enabled: bool = True

    # Longest accepted expand path; longer requests are ignored entirely
    max_depth: int = 4

    # In-flight internal calls per request
    max_concurrency: int = 10

    # Per internal call (0 = no timeout)
    resolve_timeout_seconds: float = 10.0

    marker_header: str = "X-Internal-Expand"
    id_field: str = "id"

    # Paginated envelope: {<envelope key>: [...], <pagination_key>: {...}}
    envelope_keys: list[str] = field(default_factory=lambda: ["data", "items"])
    pagination_key: str = "pagination"

    # Caller headers replayed on internal calls
    forward_headers: list[str] = field(default_factory=lambda: list(DEFAULT_FORWARD_HEADERS))

    @property
    def timeout(self) -> float | None:
        return self.resolve_timeout_seconds or None


@dataclass
class SchemaConfig:
    """Schema document configuration."""
    # Path to the OpenAPI document (YAML or JSON); packaged sample if unset
    definition_file: str | None = None

    @property
    def path(self) -> Path:
        return Path(self.definition_file) if self.definition_file else SAMPLE_SCHEMA_FILE


@dataclass
class Config:
    """Main configuration container."""
    server: ServerConfig = field(default_factory=ServerConfig)
    expand: ExpandConfig = field(default_factory=ExpandConfig)
    schema: SchemaConfig = field(default_factory=SchemaConfig)

    @classmethod
    def from_dict(cls, data: dict) -> Config:
        """Create config from dictionary."""
        return cls(
            server=ServerConfig(**data.get("server", {})),
            expand=ExpandConfig(**data.get("expand", {})),
            schema=SchemaConfig(**data.get("schema", {})),
        )

    @classmethod
    def from_yaml(cls, path: str) -> Config:
        """Load config from YAML file."""
        import yaml
        with open(path, "r") as f:
            data = yaml.safe_load(f)
        return cls.from_dict(data or {})

    @classmethod
    def from_json(cls, path: str) -> Config:
        """Load config from JSON file."""
        import json
        with open(path, "r") as f:
            data = json.load(f)
        return cls.from_dict(data)

    @classmethod
    def load(cls, path: str | None = None) -> Config:
        """Load from a file (or $EXPAND_CONFIG), falling back to defaults."""
        path = path or os.environ.get(CONFIG_ENV_VAR)
        if not path:
            return cls()
        if path.endswith((".yaml", ".yml")):
            return cls.from_yaml(path)
        return cls.from_json(path)
