"""Exception hierarchy for parsing, route extraction and configuration."""

from __future__ import annotations

from typing import List, Optional


class ProtoRestError(Exception):
    """Base class for every error raised by protoc_rest."""


# -- parse-time errors --


class ParseError(ProtoRestError):
    """Raised when a .proto source cannot be turned into a ProtoFile."""


class ProtoSyntaxError(ParseError):
    def __init__(self, line: int, column: int, message: str):
        super().__init__(f"Syntax error at line {line}, column {column}: {message}")
        self.line = line
        self.column = column
        self.message = message


class UnexpectedTokenError(ParseError):
    def __init__(self, token: str, line: int, expected: str, column: int = 0):
        super().__init__(
            f"Unexpected token {token!r} at line {line}, expected {expected}"
        )
        self.token = token
        self.line = line
        self.column = column
        self.expected = expected


class InvalidSyntaxError(ParseError):
    def __init__(self, message: str):
        super().__init__(f"Invalid Protocol Buffer syntax: {message}")
        self.message = message


class UnsupportedFeatureError(ParseError):
    def __init__(self, feature: str, line: int = 0):
        super().__init__(f"Unsupported feature at line {line}: {feature}")
        self.feature = feature
        self.line = line


class DuplicateDefinitionError(ParseError):
    def __init__(self, name: str, line: int = 0):
        super().__init__(f"Duplicate definition: {name} at line {line}")
        self.name = name
        self.line = line


class ProtoFileNotFoundError(ParseError):
    def __init__(self, path: str):
        super().__init__(f"File not found: {path}")
        self.path = path


class InvalidEncodingError(ParseError):
    def __init__(self, path: str):
        super().__init__(f"Invalid encoding in file: {path}")
        self.path = path


class ImportNotFoundError(ParseError):
    def __init__(self, import_path: str, searched: Optional[List[str]] = None):
        super().__init__(f"Import not found: {import_path}")
        self.import_path = import_path
        self.searched = list(searched or [])


class CircularImportError(ParseError):
    def __init__(self, cycle: List[str]):
        super().__init__("Circular import detected: " + " -> ".join(cycle))
        self.cycle = list(cycle)


class ImportDepthExceededError(ParseError):
    def __init__(self, path: str, depth: int, max_depth: int):
        super().__init__(
            f"Import depth {depth} exceeds the configured maximum of {max_depth} "
            f"while importing {path}"
        )
        self.path = path
        self.depth = depth
        self.max_depth = max_depth


# -- extraction-time errors --


class ValidationError(ProtoRestError):
    """Raised when HTTP annotations cannot be turned into valid routes."""


class InvalidHttpAnnotationError(ValidationError):
    def __init__(self, message: str, line: int = 0):
        super().__init__(f"Invalid HTTP annotation: {message}")
        self.message = message
        self.line = line


class InvalidPathParameterError(ValidationError):
    def __init__(self, param: str, path: str, message: str = ""):
        detail = message or f"invalid path parameter {param!r}"
        super().__init__(f"{detail} in path {path!r}")
        self.param = param
        self.path = path
        self.message = detail


class ConflictingRoutesError(ValidationError):
    def __init__(self, route1: str, route2: str):
        super().__init__(f"Conflicting HTTP routes: {route1} and {route2}")
        self.route1 = route1
        self.route2 = route2


# -- configuration --


class ConfigError(ProtoRestError):
    def __init__(self, message: str, key: Optional[str] = None):
        super().__init__(f"{key}: {message}" if key else message)
        self.message = message
        self.key = key


# -- generation --


class OutputConflictError(ProtoRestError):
    """Two services would be written to the same generated modules."""

    def __init__(self, stem: str, service1: str, service2: str):
        super().__init__(
            f"Services {service1} and {service2} both generate {stem}_service.py / {stem}_controller.py"
        )
        self.stem = stem
        self.service1 = service1
        self.service2 = service2
