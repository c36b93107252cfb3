"""Turn google.api.http annotations on RPC methods into HttpRoute descriptors."""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional

from protoc_rest.annotations import decode_http_rule, is_http_option
from protoc_rest.config import ExtractorConfig
from protoc_rest.errors import (
    ConflictingRoutesError,
    InvalidHttpAnnotationError,
    InvalidPathParameterError,
)
from protoc_rest.models import (
    HttpAnnotation,
    HttpMethod,
    HttpRoute,
    Message,
    ParameterType,
    PathParameter,
    ProtoFile,
    QueryParameter,
    RequestBody,
    RpcMethod,
    Service,
)

logger = logging.getLogger(__name__)

_PATH_PARAM_RE = re.compile(r"\{([^}]*)\}")

ENTIRE_MESSAGE_BODY = "*"


class HttpRouteExtractor:
    def __init__(self, config: Optional[ExtractorConfig] = None):
        self.config = config or ExtractorConfig()

    def extract_routes(self, proto_file: ProtoFile) -> List[HttpRoute]:
        """One route per annotated method plus one per additional binding.

        Raises on the first method that fails; no partial list is returned.
        """
        routes: List[HttpRoute] = []
        for service in proto_file.services:
            for method in service.methods:
                annotation = self._extract_http_annotation(method)
                if annotation is None:
                    continue
                input_message = proto_file.find_message(method.input_type.fully_qualified_name())
                routes.append(self._build_route(
                    service, method, annotation.method, annotation.path, annotation.body,
                    input_message,
                ))
                for binding in annotation.additional_bindings:
                    routes.append(self._build_route(
                        service, method, binding.method, binding.path, binding.body,
                        input_message,
                    ))
        logger.debug("Extracted %d route(s)", len(routes))
        return routes

    def validate_annotations(self, routes: List[HttpRoute]) -> None:
        """Reject duplicate METHOD+path signatures and method/body mismatches."""
        seen: Dict[str, HttpRoute] = {}
        for route in routes:
            signature = route.signature()
            previous = seen.get(signature)
            if previous is not None:
                raise ConflictingRoutesError(
                    f"{previous.operation_id()} ({signature})",
                    f"{route.operation_id()} ({signature})",
                )
            seen[signature] = route

        for route in routes:
            if self.config.validate_http_methods:
                self._check_method(route.http_method, route.request_body is not None, route.operation_id())
            self.validate_path_template(route.path_template)

    def validate_path_template(self, path: str) -> None:
        if not path:
            raise InvalidPathParameterError("", path, "Path template cannot be empty")
        if not path.startswith("/"):
            raise InvalidPathParameterError("", path, "Path template must start with '/'")

        depth = 0
        in_param = False
        start = 0
        for i, ch in enumerate(path):
            if ch == "{":
                if in_param:
                    raise InvalidPathParameterError("", path, "Nested braces are not allowed")
                depth += 1
                in_param = True
                start = i + 1
            elif ch == "}":
                if depth == 0:
                    raise InvalidPathParameterError("", path, "Unmatched closing brace")
                if not path[start:i].split("=", 1)[0].strip():
                    raise InvalidPathParameterError(
                        path[start - 1:i + 1], path, "Path parameter name cannot be empty"
                    )
                depth -= 1
                in_param = False
        if depth != 0:
            raise InvalidPathParameterError("", path, "Unmatched opening brace")

    @staticmethod
    def infer_parameter_type(name: str) -> ParameterType:
        lowered = name.lower()
        if lowered == "id" or lowered.endswith("_id"):
            return ParameterType.STRING
        if any(word in lowered for word in ("count", "size", "limit")):
            return ParameterType.INTEGER
        if any(word in lowered for word in ("rate", "ratio")):
            return ParameterType.FLOAT
        if any(word in lowered for word in ("enabled", "active")):
            return ParameterType.BOOLEAN
        return ParameterType.STRING

    # -- helpers --

    def _extract_http_annotation(self, method: RpcMethod) -> Optional[HttpAnnotation]:
        if method.http_annotation is not None:
            return method.http_annotation
        for option in method.options:
            if is_http_option(option):
                return decode_http_rule(option.value)
        return None

    def _build_route(
        self,
        service: Service,
        method: RpcMethod,
        http_method: HttpMethod,
        path: str,
        body: Optional[str],
        input_message: Optional[Message],
    ) -> HttpRoute:
        if http_method.is_custom and not self.config.allow_custom_methods:
            raise InvalidHttpAnnotationError(
                f"Custom HTTP method {http_method.as_str()!r} on "
                f"{service.name}.{method.name} is not allowed"
            )
        self.validate_path_template(path)
        path_parameters = self._extract_path_parameters(path)

        return HttpRoute(
            service_name=service.name,
            method_name=method.name,
            http_method=http_method,
            path_template=path,
            path_parameters=path_parameters,
            query_parameters=self._infer_query_parameters(path_parameters, input_message),
            request_body=self._request_body(http_method, body),
            input_type=method.input_type,
            response_type=method.output_type,
        )

    def _extract_path_parameters(self, path: str) -> List[PathParameter]:
        params: List[PathParameter] = []
        for match in _PATH_PARAM_RE.finditer(path):
            # {name=segments/*} binds "name"
            variable = match.group(1).split("=", 1)[0].strip()
            name = variable.replace(".", "_")
            if not name:
                raise InvalidPathParameterError(
                    match.group(0), path, "Path parameter name cannot be empty"
                )
            params.append(PathParameter(name=name, param_type=self.infer_parameter_type(name)))
        return params

    def _infer_query_parameters(
        self,
        path_parameters: List[PathParameter],
        input_message: Optional[Message],
    ) -> List[QueryParameter]:
        if not self.config.infer_query_params:
            return []
        names = list(self.config.common_query_params)
        if self.config.strict_query_params:
            bound = {p.name for p in path_parameters}
            declared = set(input_message.field_names()) if input_message else set()
            names = [n for n in names if n in declared and n not in bound]
        return [
            QueryParameter(name=n, param_type=self.infer_parameter_type(n), required=False)
            for n in names
        ]

    @staticmethod
    def _request_body(http_method: HttpMethod, body: Optional[str]) -> Optional[RequestBody]:
        if http_method in (HttpMethod.GET, HttpMethod.DELETE):
            return None
        if http_method.is_custom and not body:
            return None
        if not body or body == ENTIRE_MESSAGE_BODY:
            return RequestBody.entire_message()
        return RequestBody.for_field(body)

    def _check_method(self, http_method: HttpMethod, has_body: bool, operation_id: str) -> None:
        if http_method in (HttpMethod.GET, HttpMethod.DELETE) and has_body:
            raise InvalidHttpAnnotationError(
                f"{http_method.as_str()} route {operation_id} cannot have a request body"
            )
        if http_method.is_custom and not self.config.allow_custom_methods:
            raise InvalidHttpAnnotationError(
                f"Custom HTTP method {http_method.as_str()!r} on {operation_id} is not allowed"
            )


def extract_routes(proto_file: ProtoFile, config: Optional[ExtractorConfig] = None) -> List[HttpRoute]:
    """Extract and validate the routes of one file."""
    extractor = HttpRouteExtractor(config)
    routes = extractor.extract_routes(proto_file)
    extractor.validate_annotations(routes)
    return routes
