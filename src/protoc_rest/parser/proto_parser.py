from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional

from protoc_rest.config import ParserConfig
from protoc_rest.errors import (
    CircularImportError,
    ImportDepthExceededError,
    ImportNotFoundError,
    InvalidEncodingError,
    ParseError,
    ProtoFileNotFoundError,
)
from protoc_rest.models import ProtoFile

from .proto_ast_parser import ProtoAstParser
from .proto_tokenizer import tokenize_proto

logger = logging.getLogger(__name__)

# Annotation protos are consumed by the extractor, never resolved from disk.
SKIPPED_IMPORT_PREFIXES = ("google/api/",)


class ProtoParser:
    """Parses .proto sources and resolves their imports.

    The parse cache, the in-progress import chain and the collected warnings
    belong to this instance.
    """

    def __init__(self, config: Optional[ParserConfig] = None):
        self.config = config or ParserConfig()
        self._cache: Dict[Path, ProtoFile] = {}
        self._chain: List[Path] = []
        self.warnings: List[str] = []

    def parse_content(self, text: str) -> ProtoFile:
        """Parse proto source text, resolving its imports from the include paths."""
        proto = self._parse_text(text)
        if self.config.resolve_imports:
            self._resolve_imports(proto, None)
        return proto

    def parse_file(self, path) -> ProtoFile:
        """Parse a .proto file and, unless disabled, every file it imports."""
        file_path = Path(path)
        try:
            canonical = file_path.resolve(strict=True)
        except (FileNotFoundError, NotADirectoryError):
            raise ProtoFileNotFoundError(str(path)) from None

        if canonical in self._chain:
            cycle = [str(p) for p in self._chain]
            cycle.append(str(canonical))
            raise CircularImportError(cycle)

        cached = self._cache.get(canonical)
        if cached is not None:
            logger.debug("Cache hit for %s", canonical)
            return cached

        depth = len(self._chain) + 1
        if depth > self.config.max_import_depth:
            raise ImportDepthExceededError(str(canonical), depth, self.config.max_import_depth)

        text = self._read(file_path)
        self._chain.append(canonical)
        try:
            logger.debug("Parsing %s (depth %d)", canonical, depth)
            proto = self._parse_text(text)
            if self.config.resolve_imports:
                self._resolve_imports(proto, canonical)
        finally:
            self._chain.pop()

        self._cache[canonical] = proto
        return proto

    def parse_with_imports(self, path, extra_include_paths: Optional[List[str]] = None) -> ProtoFile:
        """Parse ``path`` with a fresh parser whose include paths are extended."""
        include_paths = list(self.config.include_paths) + list(extra_include_paths or [])
        config = ParserConfig(
            include_paths=include_paths,
            preserve_comments=self.config.preserve_comments,
            strict_validation=self.config.strict_validation,
            max_import_depth=self.config.max_import_depth,
            resolve_imports=True,
            fail_on_import_errors=self.config.fail_on_import_errors,
        )
        parser = ProtoParser(config)
        proto = parser.parse_file(path)
        self.warnings.extend(parser.warnings)
        return proto

    def clear_cache(self) -> None:
        self._cache.clear()
        self.warnings.clear()

    def cached_files(self) -> List[str]:
        return sorted(str(p) for p in self._cache)

    def _parse_text(self, text: str) -> ProtoFile:
        tokens = tokenize_proto(text)
        parser = ProtoAstParser(
            tokens,
            preserve_comments=self.config.preserve_comments,
            strict=self.config.strict_validation,
        )
        return parser.parse()

    # -- import resolution --

    def _resolve_imports(self, proto: ProtoFile, current: Optional[Path]) -> None:
        source = current.name if current is not None else "<content>"
        for imp in proto.imports:
            if imp.path.startswith(SKIPPED_IMPORT_PREFIXES):
                logger.debug("Skipping annotation import %s", imp.path)
                continue
            try:
                resolved = self._find_import(imp.path, current)
                self.parse_file(resolved)
            except (CircularImportError, ImportDepthExceededError):
                raise
            except ParseError as e:
                if self.config.fail_on_import_errors:
                    raise
                message = f"{source}: could not load import {imp.path!r}: {e}"
                logger.warning(message)
                self.warnings.append(message)

    def _find_import(self, import_path: str, current: Optional[Path]) -> Path:
        """Search the importing file's directory, then each include path in order.

        Source text parsed without a file only searches the include paths.
        """
        candidates = [current.parent / import_path] if current is not None else []
        candidates.extend(Path(p) / import_path for p in self.config.include_paths)
        for candidate in candidates:
            if candidate.is_file():
                return candidate
        raise ImportNotFoundError(import_path, [str(c) for c in candidates])

    @staticmethod
    def _read(path: Path) -> str:
        try:
            return path.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            raise InvalidEncodingError(str(path)) from None
        except (FileNotFoundError, IsADirectoryError):
            raise ProtoFileNotFoundError(str(path)) from None


def parse_proto_content(text: str) -> ProtoFile:
    """Parse proto source text with the default configuration."""
    return ProtoParser().parse_content(text)


def parse_proto_file(file_path) -> ProtoFile:
    """Parse a .proto file and its imports with the default configuration."""
    return ProtoParser().parse_file(file_path)
