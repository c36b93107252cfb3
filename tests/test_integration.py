import os
import shutil
import tempfile

import pytest

from protoc_rest.errors import ConflictingRoutesError, OutputConflictError
from protoc_rest.main import main, run


ORDERS_PROTO = """\
syntax = "proto3";

package shop.orders.v1;

import "google/api/annotations.proto";
import "shop/common.proto";

// Order management.
service OrderService {
  rpc GetOrder(GetOrderRequest) returns (Order) {
    option (google.api.http) = { get: "/v1/orders/{order_id}" };
  }
  rpc CreateOrder(CreateOrderRequest) returns (Order) {
    option (google.api.http) = { post: "/v1/orders" body: "order" };
  }
  rpc CancelOrder(CancelOrderRequest) returns (Order) {
    option (google.api.http) = { delete: "/v1/orders/{order_id}" };
  }
}

message GetOrderRequest { string order_id = 1; }
message CreateOrderRequest { Order order = 1; }
message CancelOrderRequest { string order_id = 1; }
message Order {
  string id = 1;
  shop.common.Money total = 2;
}
"""

COMMON_PROTO = """\
syntax = "proto3";
package shop.common;
message Money { int64 units = 1; string currency = 2; }
"""

HEALTH_PROTO = """\
syntax = "proto3";
service HealthService {
  rpc Check(Empty) returns (Empty) {
    option (google.api.http) = { get: "/healthz" };
  }
}
message Empty {}
"""


class TestFullPipeline:
    def setup_method(self):
        self.work_dir = tempfile.mkdtemp()
        self.proto_dir = os.path.join(self.work_dir, "protos")
        self.include_dir = os.path.join(self.work_dir, "include")
        self.out_dir = os.path.join(self.work_dir, "generated")
        os.makedirs(os.path.join(self.proto_dir, "health"))
        os.makedirs(os.path.join(self.include_dir, "shop"))
        self._write(os.path.join(self.proto_dir, "orders.proto"), ORDERS_PROTO)
        self._write(os.path.join(self.proto_dir, "health", "health.proto"), HEALTH_PROTO)
        self._write(os.path.join(self.include_dir, "shop", "common.proto"), COMMON_PROTO)

    def teardown_method(self):
        shutil.rmtree(self.work_dir)

    @staticmethod
    def _write(path, content):
        with open(path, "w") as f:
            f.write(content)

    def test_generates_scaffolding(self, monkeypatch, capsys):
        monkeypatch.chdir(self.work_dir)
        generated = run(self.proto_dir, self.out_dir, include_paths=[self.include_dir])

        names = sorted(os.path.basename(f) for f in generated)
        assert names == [
            "health_controller.py",
            "health_service.py",
            "order_controller.py",
            "order_service.py",
        ]
        controller = open(os.path.join(self.out_dir, "order_controller.py")).read()
        assert '("DELETE", "/v1/orders/{order_id}", "handle_cancel_order"),' in controller

        out = capsys.readouterr().out
        assert "Found 2 proto file(s)" in out
        assert "Validated 4 route(s)" in out
        assert "WARNING" not in out

    def test_unresolved_import_is_reported(self, monkeypatch, capsys):
        monkeypatch.chdir(self.work_dir)
        run(self.proto_dir, self.out_dir)
        out = capsys.readouterr().out
        assert "WARNING" in out
        assert "shop/common.proto" in out

    def test_validate_only(self, monkeypatch):
        monkeypatch.chdir(self.work_dir)
        generated = run(
            self.proto_dir, self.out_dir, include_paths=[self.include_dir], validate_only=True
        )
        assert generated == []
        assert not os.path.exists(self.out_dir)

    def test_single_file(self, monkeypatch):
        monkeypatch.chdir(self.work_dir)
        health = os.path.join(self.proto_dir, "health", "health.proto")
        generated = run(health, self.out_dir)
        assert len(generated) == 2

    def test_conflicts_across_files(self, monkeypatch):
        monkeypatch.chdir(self.work_dir)
        self._write(os.path.join(self.proto_dir, "dup.proto"), HEALTH_PROTO.replace(
            "HealthService", "LegacyHealthService"
        ))
        with pytest.raises(ConflictingRoutesError):
            run(self.proto_dir, self.out_dir, include_paths=[self.include_dir])

    def test_module_name_clash_across_files(self, monkeypatch):
        monkeypatch.chdir(self.work_dir)
        self._write(os.path.join(self.proto_dir, "health_v2.proto"), HEALTH_PROTO.replace(
            "HealthService", "Health"
        ).replace("/healthz", "/v2/healthz"))
        with pytest.raises(OutputConflictError) as exc:
            run(self.proto_dir, self.out_dir, include_paths=[self.include_dir])
        assert exc.value.stem == "health"
        assert not os.path.exists(self.out_dir)

    def test_config_file_is_applied(self, monkeypatch):
        monkeypatch.chdir(self.work_dir)
        self._write(
            os.path.join(self.work_dir, "protoc-rest.toml"),
            "[generator]\ngenerate_controllers = false\n",
        )
        generated = run(self.proto_dir, self.out_dir, include_paths=[self.include_dir])
        assert sorted(os.path.basename(f) for f in generated) == [
            "health_service.py",
            "order_service.py",
        ]


class TestCommandLine:
    def setup_method(self):
        self.work_dir = tempfile.mkdtemp()
        self.out_dir = os.path.join(self.work_dir, "out")

    def teardown_method(self):
        shutil.rmtree(self.work_dir)

    def _proto(self, content):
        path = os.path.join(self.work_dir, "api.proto")
        with open(path, "w") as f:
            f.write(content)
        return path

    def test_success(self, monkeypatch, capsys):
        monkeypatch.chdir(self.work_dir)
        path = self._proto(HEALTH_PROTO)
        main(["--proto", path, "--out", self.out_dir])
        assert "Done!" in capsys.readouterr().out
        assert os.path.isfile(os.path.join(self.out_dir, "health_service.py"))

    def test_parse_error_is_fatal(self, monkeypatch, capsys):
        monkeypatch.chdir(self.work_dir)
        path = self._proto("message Broken {")
        with pytest.raises(SystemExit) as exc:
            main(["--proto", path, "--out", self.out_dir])
        assert exc.value.code == 1
        assert capsys.readouterr().err.startswith("FATAL: ")

    def test_custom_methods_flag(self, monkeypatch):
        monkeypatch.chdir(self.work_dir)
        path = self._proto("""\
service Probe {
  rpc Head(Empty) returns (Empty) {
    option (google.api.http) = { custom: { kind: "HEAD" path: "/probe" } };
  }
}
message Empty {}
""")
        with pytest.raises(SystemExit):
            main(["--proto", path, "--out", self.out_dir, "--validate-only"])
        main(["--proto", path, "--out", self.out_dir, "--validate-only", "--allow-custom-methods"])

    def test_no_query_inference_flag(self, monkeypatch):
        monkeypatch.chdir(self.work_dir)
        path = self._proto(HEALTH_PROTO)
        main(["--proto", path, "--out", self.out_dir, "--no-query-inference"])
        controller = open(os.path.join(self.out_dir, "health_controller.py")).read()
        assert "= None" not in controller

    def test_no_proto_files(self, monkeypatch, capsys):
        monkeypatch.chdir(self.work_dir)
        with pytest.raises(SystemExit):
            main(["--proto", self.work_dir, "--out", self.out_dir])
        assert "No .proto files found" in capsys.readouterr().err
