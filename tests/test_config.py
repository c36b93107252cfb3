import os

import pytest

from protoc_rest.config import (
    DEFAULT_QUERY_PARAMS,
    ExtractorConfig,
    ParserConfig,
    ProtoRestConfig,
    find_config_file,
)
from protoc_rest.errors import ConfigError


class TestDefaults:
    def test_parser_defaults(self):
        config = ParserConfig()
        assert config.include_paths == ["."]
        assert config.preserve_comments is True
        assert config.strict_validation is True
        assert config.max_import_depth == 10
        assert config.resolve_imports is True
        assert config.fail_on_import_errors is False

    def test_extractor_defaults(self):
        config = ExtractorConfig()
        assert config.infer_query_params is True
        assert config.common_query_params == [
            "page", "limit", "offset", "sort", "order", "filter", "search",
        ]
        assert config.validate_http_methods is True
        assert config.allow_custom_methods is False
        assert config.strict_query_params is False

    def test_defaults_are_not_shared(self):
        first = ExtractorConfig()
        first.common_query_params.append("cursor")
        assert ExtractorConfig().common_query_params == DEFAULT_QUERY_PARAMS
        assert "cursor" not in DEFAULT_QUERY_PARAMS


class TestFromFile:
    def test_reads_tables(self, tmp_path):
        path = tmp_path / "protoc-rest.toml"
        path.write_text("""\
[parser]
include_paths = ["protos", "third_party"]
max_import_depth = 4
preserve_comments = false

[extractor]
common_query_params = ["cursor"]
allow_custom_methods = true

[generator]
generate_controllers = false
""")
        config = ProtoRestConfig.from_file(path)
        assert config.parser.include_paths == ["protos", "third_party"]
        assert config.parser.max_import_depth == 4
        assert config.parser.preserve_comments is False
        assert config.parser.strict_validation is True
        assert config.extractor.common_query_params == ["cursor"]
        assert config.extractor.allow_custom_methods is True
        assert config.generator.generate_controllers is False
        assert config.generator.generate_service_interfaces is True

    def test_unknown_key(self, tmp_path):
        path = tmp_path / "protoc-rest.toml"
        path.write_text("[parser]\ninclude = []\n")
        with pytest.raises(ConfigError) as exc:
            ProtoRestConfig.from_file(path)
        assert exc.value.key == "parser.include"

    def test_unknown_section(self, tmp_path):
        path = tmp_path / "protoc-rest.toml"
        path.write_text("[server]\nport = 1\n")
        with pytest.raises(ConfigError):
            ProtoRestConfig.from_file(path)

    def test_wrong_type(self, tmp_path):
        path = tmp_path / "protoc-rest.toml"
        path.write_text('[parser]\nmax_import_depth = "deep"\n')
        with pytest.raises(ConfigError):
            ProtoRestConfig.from_file(path)

    def test_bool_is_not_an_int(self, tmp_path):
        path = tmp_path / "protoc-rest.toml"
        path.write_text("[parser]\nmax_import_depth = true\n")
        with pytest.raises(ConfigError):
            ProtoRestConfig.from_file(path)

    def test_invalid_toml(self, tmp_path):
        path = tmp_path / "protoc-rest.toml"
        path.write_text("[parser\n")
        with pytest.raises(ConfigError):
            ProtoRestConfig.from_file(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError):
            ProtoRestConfig.from_file(tmp_path / "nope.toml")


class TestEnvironment:
    def test_overrides(self):
        config = ProtoRestConfig().merge_from_env({
            "PROTOC_REST_MAX_IMPORT_DEPTH": "5",
            "PROTOC_REST_STRICT_QUERY_PARAMS": "yes",
            "PROTOC_REST_PRESERVE_COMMENTS": "0",
            "PROTOC_REST_COMMON_QUERY_PARAMS": "page, page_size",
            "PROTOC_REST_INCLUDE_PATHS": os.pathsep.join(["protos", "vendor"]),
            "UNRELATED": "x",
        })
        assert config.parser.max_import_depth == 5
        assert config.extractor.strict_query_params is True
        assert config.parser.preserve_comments is False
        assert config.extractor.common_query_params == ["page", "page_size"]
        assert config.parser.include_paths == ["protos", "vendor"]

    def test_bad_boolean(self):
        with pytest.raises(ConfigError) as exc:
            ProtoRestConfig().merge_from_env({"PROTOC_REST_RESOLVE_IMPORTS": "maybe"})
        assert exc.value.key == "PROTOC_REST_RESOLVE_IMPORTS"

    def test_bad_integer(self):
        with pytest.raises(ConfigError):
            ProtoRestConfig().merge_from_env({"PROTOC_REST_MAX_IMPORT_DEPTH": "ten"})


class TestValidate:
    @pytest.mark.parametrize("depth", [0, 101, -3])
    def test_import_depth_out_of_range(self, depth):
        config = ProtoRestConfig()
        config.parser.max_import_depth = depth
        with pytest.raises(ConfigError):
            config.validate()

    @pytest.mark.parametrize("depth", [1, 10, 100])
    def test_import_depth_in_range(self, depth):
        config = ProtoRestConfig()
        config.parser.max_import_depth = depth
        config.validate()

    def test_query_param_names_must_be_identifiers(self):
        config = ProtoRestConfig()
        config.extractor.common_query_params = ["page", "page-size"]
        with pytest.raises(ConfigError):
            config.validate()


class TestLoad:
    def test_defaults_without_file(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        config = ProtoRestConfig.load(environ={})
        assert config == ProtoRestConfig()

    def test_finds_hidden_config_file(self, tmp_path, monkeypatch):
        (tmp_path / ".protoc-rest.toml").write_text("[parser]\nmax_import_depth = 3\n")
        monkeypatch.chdir(tmp_path)
        assert find_config_file() == tmp_path / ".protoc-rest.toml"
        assert ProtoRestConfig.load(environ={}).parser.max_import_depth == 3

    def test_finds_config_directory_file(self, tmp_path):
        (tmp_path / "config").mkdir()
        (tmp_path / "config" / "protoc-rest.toml").write_text("")
        assert find_config_file(tmp_path) == tmp_path / "config" / "protoc-rest.toml"

    def test_environment_wins_over_file(self, tmp_path):
        path = tmp_path / "custom.toml"
        path.write_text("[parser]\nmax_import_depth = 3\n")
        config = ProtoRestConfig.load(path, environ={"PROTOC_REST_MAX_IMPORT_DEPTH": "7"})
        assert config.parser.max_import_depth == 7

    def test_load_validates(self, tmp_path):
        path = tmp_path / "custom.toml"
        path.write_text("[parser]\nmax_import_depth = 500\n")
        with pytest.raises(ConfigError):
            ProtoRestConfig.load(path, environ={})
