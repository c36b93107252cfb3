"""Configuration for the parser, the route extractor and the generator.

Values come from defaults, then a TOML file, then ``PROTOC_REST_*``
environment variables.
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Dict, List, Optional

from protoc_rest.errors import ConfigError

DEFAULT_QUERY_PARAMS = ["page", "limit", "offset", "sort", "order", "filter", "search"]

CONFIG_FILE_NAMES = ("protoc-rest.toml", ".protoc-rest.toml", "config/protoc-rest.toml")

ENV_PREFIX = "PROTOC_REST_"

MAX_IMPORT_DEPTH_LIMIT = 100

_TRUE = ("true", "1", "yes", "on")
_FALSE = ("false", "0", "no", "off")


@dataclass
class ParserConfig:
    include_paths: List[str] = field(default_factory=lambda: ["."])
    preserve_comments: bool = True
    strict_validation: bool = True
    max_import_depth: int = 10
    resolve_imports: bool = True
    fail_on_import_errors: bool = False


@dataclass
class ExtractorConfig:
    infer_query_params: bool = True
    common_query_params: List[str] = field(default_factory=lambda: list(DEFAULT_QUERY_PARAMS))
    validate_http_methods: bool = True
    allow_custom_methods: bool = False
    strict_query_params: bool = False


@dataclass
class GeneratorConfig:
    generate_service_interfaces: bool = True
    generate_controllers: bool = True


@dataclass
class ProtoRestConfig:
    parser: ParserConfig = field(default_factory=ParserConfig)
    extractor: ExtractorConfig = field(default_factory=ExtractorConfig)
    generator: GeneratorConfig = field(default_factory=GeneratorConfig)

    @classmethod
    def from_file(cls, path) -> ProtoRestConfig:
        """Read a TOML file with optional [parser], [extractor] and [generator] tables."""
        config_path = Path(path)
        if not config_path.is_file():
            raise ConfigError(f"Config file not found: {config_path}")
        try:
            with open(config_path, "rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Invalid TOML in {config_path}: {e}") from e

        config = cls()
        sections = {
            "parser": config.parser,
            "extractor": config.extractor,
            "generator": config.generator,
        }
        for name, table in data.items():
            if name not in sections:
                raise ConfigError("unknown config section", key=name)
            if not isinstance(table, dict):
                raise ConfigError("expected a table", key=name)
            _apply_table(sections[name], table, name)
        return config

    def merge_from_env(self, environ: Optional[Dict[str, str]] = None) -> ProtoRestConfig:
        """Override values from PROTOC_REST_* environment variables."""
        env = os.environ if environ is None else environ
        for section_name in ("parser", "extractor", "generator"):
            section = getattr(self, section_name)
            for f in fields(section):
                key = f"{ENV_PREFIX}{f.name.upper()}"
                raw = env.get(key)
                if raw is None:
                    continue
                setattr(section, f.name, _coerce_env(key, raw, getattr(section, f.name), f.name))
        return self

    def validate(self) -> None:
        depth = self.parser.max_import_depth
        if not 1 <= depth <= MAX_IMPORT_DEPTH_LIMIT:
            raise ConfigError(
                f"must be between 1 and {MAX_IMPORT_DEPTH_LIMIT}, got {depth}",
                key="parser.max_import_depth",
            )
        for name in self.extractor.common_query_params:
            if not name.isidentifier():
                raise ConfigError(
                    f"{name!r} is not a valid parameter name",
                    key="extractor.common_query_params",
                )

    @classmethod
    def load(cls, path=None, environ: Optional[Dict[str, str]] = None) -> ProtoRestConfig:
        """Defaults, then a config file, then the environment, then validation."""
        config_path = Path(path) if path else find_config_file()
        config = cls.from_file(config_path) if config_path else cls()
        config.merge_from_env(environ)
        config.validate()
        return config


def find_config_file(base_dir=None) -> Optional[Path]:
    """Return the first default config file that exists under ``base_dir``."""
    base = Path(base_dir) if base_dir else Path.cwd()
    for name in CONFIG_FILE_NAMES:
        candidate = base / name
        if candidate.is_file():
            return candidate
    return None


def _apply_table(section, table: Dict[str, object], section_name: str) -> None:
    known = {f.name: f for f in fields(section)}
    for key, value in table.items():
        if key not in known:
            raise ConfigError("unknown config key", key=f"{section_name}.{key}")
        current = getattr(section, key)
        if isinstance(current, bool):
            ok = isinstance(value, bool)
        elif isinstance(current, int):
            ok = isinstance(value, int) and not isinstance(value, bool)
        else:
            ok = isinstance(value, list) and all(isinstance(v, str) for v in value)
        if not ok:
            raise ConfigError(
                f"expected {type(current).__name__}, got {type(value).__name__}",
                key=f"{section_name}.{key}",
            )
        setattr(section, key, list(value) if isinstance(value, list) else value)


def _coerce_env(key: str, raw: str, current, field_name: str):
    text = raw.strip()
    if isinstance(current, bool):
        lowered = text.lower()
        if lowered in _TRUE:
            return True
        if lowered in _FALSE:
            return False
        raise ConfigError(f"expected a boolean, got {raw!r}", key=key)
    if isinstance(current, int):
        try:
            return int(text)
        except ValueError:
            raise ConfigError(f"expected an integer, got {raw!r}", key=key) from None
    if field_name == "include_paths":
        return [p for p in text.split(os.pathsep) if p]
    return [p.strip() for p in text.split(",") if p.strip()]
