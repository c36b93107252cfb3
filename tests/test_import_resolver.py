import logging

import pytest

from protoc_rest.config import ParserConfig
from protoc_rest.errors import (
    CircularImportError,
    ImportDepthExceededError,
    ImportNotFoundError,
    InvalidEncodingError,
    ProtoFileNotFoundError,
    ProtoSyntaxError,
)
from protoc_rest.parser.proto_parser import ProtoParser, parse_proto_file


def _write(path, content):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    return path


def _proto(*imports, body="message M {}"):
    lines = ['syntax = "proto3";']
    lines.extend(f'import "{i}";' for i in imports)
    lines.append(body)
    return "\n".join(lines) + "\n"


class TestParseFile:
    def test_parses_file(self, tmp_path):
        path = _write(tmp_path / "user.proto", _proto(body="message User { string id = 1; }"))
        proto = parse_proto_file(str(path))
        assert proto.messages[0].name == "User"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ProtoFileNotFoundError):
            ProtoParser().parse_file(tmp_path / "missing.proto")

    def test_invalid_encoding(self, tmp_path):
        path = tmp_path / "bad.proto"
        path.write_bytes(b"message \xff\xfe {}")
        with pytest.raises(InvalidEncodingError):
            ProtoParser().parse_file(path)

    def test_cache_returns_same_tree(self, tmp_path):
        path = _write(tmp_path / "a.proto", _proto())
        parser = ProtoParser()
        first = parser.parse_file(path)
        assert parser.parse_file(path) is first
        assert parser.cached_files() == [str(path.resolve())]

        parser.clear_cache()
        assert parser.cached_files() == []
        assert parser.parse_file(path) is not first


class TestImportResolution:
    def test_resolves_relative_to_importing_file(self, tmp_path):
        a = _write(tmp_path / "a.proto", _proto("b.proto"))
        _write(tmp_path / "b.proto", _proto())
        parser = ProtoParser()
        parser.parse_file(a)
        assert len(parser.cached_files()) == 2
        assert parser.warnings == []

    def test_resolves_from_include_path(self, tmp_path):
        a = _write(tmp_path / "src" / "a.proto", _proto("common/types.proto"))
        _write(tmp_path / "include" / "common" / "types.proto", _proto())
        parser = ProtoParser(ParserConfig(include_paths=[str(tmp_path / "include")]))
        parser.parse_file(a)
        assert str((tmp_path / "include" / "common" / "types.proto").resolve()) in parser.cached_files()

    def test_importing_directory_wins_over_include_paths(self, tmp_path):
        a = _write(tmp_path / "src" / "a.proto", _proto("dep.proto"))
        local = _write(tmp_path / "src" / "dep.proto", _proto())
        _write(tmp_path / "include" / "dep.proto", _proto())
        parser = ProtoParser(ParserConfig(include_paths=[str(tmp_path / "include")]))
        parser.parse_file(a)
        assert str(local.resolve()) in parser.cached_files()
        assert len(parser.cached_files()) == 2

    def test_include_paths_are_searched_in_order(self, tmp_path):
        a = _write(tmp_path / "src" / "a.proto", _proto("dep.proto"))
        first = _write(tmp_path / "first" / "dep.proto", _proto())
        _write(tmp_path / "second" / "dep.proto", _proto())
        parser = ProtoParser(ParserConfig(
            include_paths=[str(tmp_path / "first"), str(tmp_path / "second")],
        ))
        parser.parse_file(a)
        assert str(first.resolve()) in parser.cached_files()
        assert len(parser.cached_files()) == 2

    def test_parse_with_imports_extends_include_paths(self, tmp_path):
        a = _write(tmp_path / "src" / "a.proto", _proto("dep.proto"))
        _write(tmp_path / "vendor" / "dep.proto", _proto())
        parser = ProtoParser()
        proto = parser.parse_with_imports(a, [str(tmp_path / "vendor")])
        assert proto.messages[0].name == "M"
        assert parser.warnings == []

    def test_google_api_imports_are_skipped(self, tmp_path):
        a = _write(tmp_path / "a.proto", _proto("google/api/annotations.proto", "google/api/http.proto"))
        parser = ProtoParser()
        parser.parse_file(a)
        assert parser.warnings == []
        assert len(parser.cached_files()) == 1

    def test_no_resolve_mode(self, tmp_path):
        a = _write(tmp_path / "a.proto", _proto("missing.proto"))
        parser = ProtoParser(ParserConfig(resolve_imports=False))
        proto = parser.parse_file(a)
        assert proto.get_dependencies() == ["missing.proto"]
        assert parser.warnings == []

    def test_diamond_imports_parse_once(self, tmp_path):
        a = _write(tmp_path / "a.proto", _proto("b.proto", "c.proto"))
        _write(tmp_path / "b.proto", _proto("d.proto"))
        _write(tmp_path / "c.proto", _proto("d.proto"))
        _write(tmp_path / "d.proto", _proto())
        parser = ProtoParser()
        parser.parse_file(a)
        assert len(parser.cached_files()) == 4


class TestParseContentImports:
    def test_resolves_from_include_paths(self, tmp_path):
        dep = _write(tmp_path / "shared" / "dep.proto", _proto())
        parser = ProtoParser(ParserConfig(include_paths=[str(tmp_path)]))
        proto = parser.parse_content(_proto("shared/dep.proto"))
        assert proto.get_dependencies() == ["shared/dep.proto"]
        assert parser.cached_files() == [str(dep.resolve())]
        assert parser.warnings == []

    def test_missing_import_is_a_warning(self, tmp_path):
        parser = ProtoParser(ParserConfig(include_paths=[str(tmp_path)]))
        parser.parse_content(_proto("missing.proto"))
        assert len(parser.warnings) == 1
        assert "missing.proto" in parser.warnings[0]
        assert parser.cached_files() == []

    def test_no_resolve_mode(self, tmp_path):
        parser = ProtoParser(ParserConfig(include_paths=[str(tmp_path)], resolve_imports=False))
        parser.parse_content(_proto("missing.proto"))
        assert parser.warnings == []


class TestUnresolvedImports:
    def test_missing_import_is_a_warning(self, tmp_path, caplog):
        a = _write(tmp_path / "a.proto", _proto("nowhere.proto"))
        parser = ProtoParser()
        with caplog.at_level(logging.WARNING, logger="protoc_rest.parser.proto_parser"):
            proto = parser.parse_file(a)
        assert proto.messages[0].name == "M"
        assert len(parser.warnings) == 1
        assert "nowhere.proto" in parser.warnings[0]
        assert "nowhere.proto" in caplog.text

    def test_broken_import_is_a_warning(self, tmp_path):
        a = _write(tmp_path / "a.proto", _proto("broken.proto"))
        _write(tmp_path / "broken.proto", "message {")
        parser = ProtoParser()
        parser.parse_file(a)
        assert len(parser.warnings) == 1

    def test_fail_on_import_errors(self, tmp_path):
        a = _write(tmp_path / "a.proto", _proto("nowhere.proto"))
        parser = ProtoParser(ParserConfig(fail_on_import_errors=True))
        with pytest.raises(ImportNotFoundError) as exc:
            parser.parse_file(a)
        assert exc.value.import_path == "nowhere.proto"

    def test_fail_on_broken_import(self, tmp_path):
        a = _write(tmp_path / "a.proto", _proto("broken.proto"))
        _write(tmp_path / "broken.proto", '"unterminated')
        parser = ProtoParser(ParserConfig(fail_on_import_errors=True))
        with pytest.raises(ProtoSyntaxError):
            parser.parse_file(a)

    def test_clear_cache_resets_warnings(self, tmp_path):
        a = _write(tmp_path / "a.proto", _proto("nowhere.proto"))
        parser = ProtoParser()
        parser.parse_file(a)
        parser.clear_cache()
        assert parser.warnings == []


class TestCyclesAndDepth:
    def test_circular_import(self, tmp_path):
        a = _write(tmp_path / "a.proto", _proto("b.proto"))
        b = _write(tmp_path / "b.proto", _proto("a.proto"))
        with pytest.raises(CircularImportError) as exc:
            ProtoParser().parse_file(a)
        assert exc.value.cycle == [str(a.resolve()), str(b.resolve()), str(a.resolve())]

    def test_cycle_lists_the_whole_chain(self, tmp_path):
        a = _write(tmp_path / "a.proto", _proto("b.proto"))
        b = _write(tmp_path / "b.proto", _proto("c.proto"))
        c = _write(tmp_path / "c.proto", _proto("b.proto"))
        with pytest.raises(CircularImportError) as exc:
            ProtoParser().parse_file(a)
        assert exc.value.cycle == [str(p.resolve()) for p in (a, b, c, b)]

    def test_self_import(self, tmp_path):
        a = _write(tmp_path / "a.proto", _proto("a.proto"))
        with pytest.raises(CircularImportError):
            ProtoParser().parse_file(a)

    def test_chain_is_reset_after_error(self, tmp_path):
        a = _write(tmp_path / "a.proto", _proto("b.proto"))
        _write(tmp_path / "b.proto", _proto("a.proto"))
        c = _write(tmp_path / "c.proto", _proto())
        parser = ProtoParser()
        with pytest.raises(CircularImportError):
            parser.parse_file(a)
        assert parser.parse_file(c).messages[0].name == "M"

    def test_max_import_depth(self, tmp_path):
        a = _write(tmp_path / "a.proto", _proto("b.proto"))
        _write(tmp_path / "b.proto", _proto("c.proto"))
        _write(tmp_path / "c.proto", _proto())
        with pytest.raises(ImportDepthExceededError) as exc:
            ProtoParser(ParserConfig(max_import_depth=2)).parse_file(a)
        assert exc.value.depth == 3
        assert exc.value.max_depth == 2

    def test_depth_within_limit(self, tmp_path):
        a = _write(tmp_path / "a.proto", _proto("b.proto"))
        _write(tmp_path / "b.proto", _proto("c.proto"))
        _write(tmp_path / "c.proto", _proto())
        parser = ProtoParser(ParserConfig(max_import_depth=3))
        parser.parse_file(a)
        assert len(parser.cached_files()) == 3
