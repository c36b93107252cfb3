"""Parse .proto files and turn google.api.http annotations into REST routes."""

from protoc_rest.config import ExtractorConfig, GeneratorConfig, ParserConfig, ProtoRestConfig
from protoc_rest.extractor import HttpRouteExtractor, extract_routes
from protoc_rest.parser.proto_parser import ProtoParser, parse_proto_content, parse_proto_file

__version__ = "0.1.0"

__all__ = [
    "ExtractorConfig",
    "GeneratorConfig",
    "HttpRouteExtractor",
    "ParserConfig",
    "ProtoParser",
    "ProtoRestConfig",
    "extract_routes",
    "parse_proto_content",
    "parse_proto_file",
]
