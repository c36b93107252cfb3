from __future__ import annotations

import keyword
import os
import re
from pathlib import Path
from typing import Dict, List, Optional, Set

from jinja2 import Environment, FileSystemLoader

from protoc_rest.config import GeneratorConfig
from protoc_rest.errors import OutputConflictError
from protoc_rest.models import HttpRoute, ParameterType, ProtoFile, Service

# Route parameter type -> Python annotation
PARAMETER_TYPE_MAP: Dict[str, str] = {
    "string": "str",
    "integer": "int",
    "float": "float",
    "boolean": "bool",
}

_PATH_VARIABLE_RE = re.compile(r"\{([^}=]+)(?:=[^}]*)?\}")


def to_snake(name: str) -> str:
    """Convert names to snake_case.

    - PascalCase/camelCase: GetUser -> get_user, GetHTTPInfo -> get_http_info
    - kebab-case: list-users -> list_users
    """
    if not name:
        return name
    s = name.replace("-", "_").replace(".", "_")
    s = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1_\2", s)
    s = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", s)
    s = re.sub(r"_{2,}", "_", s)
    return s.lower()


def _module_stem(service: Service) -> str:
    name = service.name
    if name.endswith("Service") and name != "Service":
        name = name[: -len("Service")]
    return to_snake(name)


def _py_name(name: str) -> str:
    return f"{name}_" if keyword.iskeyword(name) else name


def _arg_name(name: str, taken: Set[str]) -> str:
    """Pick a keyword-safe argument name not already in ``taken``."""
    arg = _py_name(name)
    while arg in taken:
        arg = f"{arg}_"
    taken.add(arg)
    return arg


def _py_type(param_type: ParameterType) -> str:
    return PARAMETER_TYPE_MAP.get(param_type.name, "str")


def _get_template_env() -> Environment:
    template_dir = Path(__file__).parent.parent / "templates"
    return Environment(
        loader=FileSystemLoader(str(template_dir)),
        keep_trailing_newline=True,
    )


def _service_routes(service: Service, routes: List[HttpRoute]) -> List[HttpRoute]:
    return [r for r in routes if r.service_name == service.name]


def _doc_text(service: Service) -> Optional[str]:
    if not service.comments:
        return None
    text = " ".join(c.text.replace('"""', "'''") for c in service.comments)
    return " ".join(text.split()) or None


def generate_service_interface(
    service: Service, routes: List[HttpRoute], source_name: str = "proto"
) -> str:
    """Generate an abstract service interface with one method per routed RPC."""
    env = _get_template_env()
    template = env.get_template("service.py.j2")

    methods = []
    seen = set()
    for route in _service_routes(service, routes):
        if route.method_name in seen:
            continue
        seen.add(route.method_name)
        methods.append({
            "handler": _py_name(to_snake(route.method_name)),
            "rpc_name": route.method_name,
            "input_type": route.input_type.fully_qualified_name(),
            "output_type": route.response_type.fully_qualified_name(),
        })

    return template.render(
        source_name=source_name,
        interface_name=f"{service.name}Interface",
        doc=_doc_text(service),
        methods=methods,
    )


def generate_controller(
    service: Service, routes: List[HttpRoute], source_name: str = "proto"
) -> str:
    """Generate a controller that maps HTTP routes onto the service interface."""
    env = _get_template_env()
    template = env.get_template("controller.py.j2")

    entries = []
    handler_counts: Dict[str, int] = {}
    for route in _service_routes(service, routes):
        service_method = _py_name(to_snake(route.method_name))
        count = handler_counts.get(service_method, 0) + 1
        handler_counts[service_method] = count
        handler = f"handle_{to_snake(route.method_name)}"
        if count > 1:
            handler = f"{handler}_{count}"

        variables = _PATH_VARIABLE_RE.findall(route.path_template)
        # handler locals that arguments must not shadow
        taken = {"self", "request"}
        path_params = []
        for param, variable in zip(route.path_parameters, variables):
            path_params.append({
                "name": _arg_name(param.name, taken),
                "field": variable.strip(),
                "py_type": _py_type(param.param_type),
            })

        body = None
        body_field = None
        body_arg = None
        if route.request_body is not None:
            body_arg = _arg_name("body", taken)
            if route.request_body.is_entire_message:
                body = "entire"
            else:
                body = "field"
                body_field = route.request_body.field

        bound = {p.name for p in route.path_parameters}
        query_params = [
            {
                "name": _arg_name(q.name, taken),
                "field": q.name,
                "py_type": _py_type(q.param_type),
            }
            for q in route.query_parameters
            if q.name not in bound
        ]

        entries.append({
            "http_method": route.http_method.as_str(),
            "path": route.path_template,
            "handler": handler,
            "service_method": service_method,
            "path_params": path_params,
            "query_params": query_params,
            "body": body,
            "body_arg": body_arg,
            "body_field": body_field,
            "body_type": "Dict[str, Any]" if body == "entire" else "Any",
        })

    return template.render(
        source_name=source_name,
        service_module=f"{_module_stem(service)}_service",
        interface_name=f"{service.name}Interface",
        controller_name=f"{service.name}Controller",
        routes=entries,
    )


def claim_module_stems(
    proto_file: ProtoFile,
    routes: List[HttpRoute],
    claimed: Optional[Dict[str, str]] = None,
) -> List[Service]:
    """Return the routed services, recording each module stem in ``claimed``.

    ``claimed`` maps module stems to the owning service name and may be shared
    across files written to one output directory.
    """
    claimed = {} if claimed is None else claimed
    services = [s for s in proto_file.services if _service_routes(s, routes)]
    stems: Dict[str, str] = {}
    for service in services:
        stem = _module_stem(service)
        owner = stems.get(stem) or claimed.get(stem)
        if owner is not None:
            raise OutputConflictError(stem, owner, service.name)
        stems[stem] = service.name
    claimed.update(stems)
    return services


def generate_scaffolding(
    proto_file: ProtoFile,
    routes: List[HttpRoute],
    output_dir: str,
    config: Optional[GeneratorConfig] = None,
    source_name: str = "proto",
) -> List[str]:
    """Write a service module and a controller module per routed service.

    Nothing is written when two services map to the same module names.

    Returns list of generated file paths.
    """
    config = config or GeneratorConfig()
    services = claim_module_stems(proto_file, routes)

    os.makedirs(output_dir, exist_ok=True)
    generated: List[str] = []
    for service in services:
        stem = _module_stem(service)
        if config.generate_service_interfaces:
            file_path = os.path.join(output_dir, f"{stem}_service.py")
            Path(file_path).write_text(generate_service_interface(service, routes, source_name))
            generated.append(file_path)
        if config.generate_controllers:
            file_path = os.path.join(output_dir, f"{stem}_controller.py")
            Path(file_path).write_text(generate_controller(service, routes, source_name))
            generated.append(file_path)

    return generated
