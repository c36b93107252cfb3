from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from protoc_rest.config import ProtoRestConfig
from protoc_rest.errors import ProtoRestError
from protoc_rest.extractor import HttpRouteExtractor
from protoc_rest.generator.scaffold_generator import claim_module_stems, generate_scaffolding
from protoc_rest.models import HttpRoute, ProtoFile
from protoc_rest.parser.proto_parser import ProtoParser


def _find_proto_files(root: str) -> List[str]:
    """Return ``root`` itself when it is a file, else every .proto file under it."""
    path = Path(root)
    if path.is_file():
        return [str(path)]
    return sorted(str(p) for p in path.rglob("*.proto"))


def run(
    proto_path: str,
    out_dir: str,
    include_paths: Optional[List[str]] = None,
    config_path: Optional[str] = None,
    infer_query_params: Optional[bool] = None,
    allow_custom_methods: Optional[bool] = None,
    validate_only: bool = False,
) -> List[str]:
    """Main pipeline: parse, extract, validate, generate.

    Returns list of generated file paths.
    """
    config = ProtoRestConfig.load(config_path)
    if include_paths:
        config.parser.include_paths.extend(include_paths)
    if infer_query_params is not None:
        config.extractor.infer_query_params = infer_query_params
    if allow_custom_methods is not None:
        config.extractor.allow_custom_methods = allow_custom_methods

    # 1. Find input files
    proto_files = _find_proto_files(proto_path)
    if not proto_files:
        raise ProtoRestError(f"No .proto files found under {proto_path}")
    print(f"Found {len(proto_files)} proto file(s)")

    # 2. Parse and extract
    parser = ProtoParser(config.parser)
    extractor = HttpRouteExtractor(config.extractor)
    parsed: List[Tuple[str, ProtoFile, List[HttpRoute]]] = []
    all_routes: List[HttpRoute] = []
    for pf in proto_files:
        proto = parser.parse_file(pf)
        routes = extractor.extract_routes(proto)
        parsed.append((pf, proto, routes))
        all_routes.extend(routes)
        print(f"  Parsed {pf}: {len(proto.services)} service(s), {len(routes)} route(s)")
    for warning in parser.warnings:
        print(f"  WARNING: {warning}")

    # 3. Validate across the whole run
    extractor.validate_annotations(all_routes)
    claimed: Dict[str, str] = {}
    for _, proto, routes in parsed:
        claim_module_stems(proto, routes, claimed)
    print(f"Validated {len(all_routes)} route(s)")
    if validate_only:
        return []

    # 4. Generate scaffolding
    generated: List[str] = []
    for pf, proto, routes in parsed:
        files = generate_scaffolding(
            proto, routes, out_dir, config.generator, source_name=Path(pf).name,
        )
        for f in files:
            print(f"  Generated: {f}")
        generated.extend(files)

    print("Done!")
    return generated


def main(argv: Optional[List[str]] = None):
    parser = argparse.ArgumentParser(
        description="Generate REST scaffolding from google.api.http annotated .proto files",
    )
    parser.add_argument("--proto", required=True, help="Path to a .proto file or a directory to scan")
    parser.add_argument("--out", required=True, help="Output directory for generated code")
    parser.add_argument(
        "-I", "--include",
        action="append",
        default=[],
        dest="include_paths",
        help="Additional import search path (repeatable)",
    )
    parser.add_argument("--config", help="Path to a protoc-rest.toml config file")
    parser.add_argument(
        "--no-query-inference",
        action="store_true",
        help="Do not attach the common query parameters to routes",
    )
    parser.add_argument(
        "--allow-custom-methods",
        action="store_true",
        help="Accept custom HTTP verbs declared with the custom pattern",
    )
    parser.add_argument("--validate-only", action="store_true", help="Parse and validate without generating")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        run(
            args.proto,
            args.out,
            include_paths=args.include_paths,
            config_path=args.config,
            infer_query_params=False if args.no_query_inference else None,
            allow_custom_methods=True if args.allow_custom_methods else None,
            validate_only=args.validate_only,
        )
    except ProtoRestError as e:
        print(f"FATAL: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
