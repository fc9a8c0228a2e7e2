"""Injection points of a raw HTTP request and the variants built from them.

Two modes per location:

* marker mode: if the literal ``FUZZ`` appears in the location (path/query,
  body, JSON values or header values), the only point is the marker itself and
  the payload replaces every occurrence;
* field mode: otherwise every query parameter / form field / top-level JSON
  field / header is a separate point.
"""

import json
from copy import deepcopy
from dataclasses import dataclass
from typing import Dict, List

from scriptscan.core.models import InjectionLocation, RequestVariant
from scriptscan.parsers.request import Request

MARKER = "FUZZ"
RAW_BODY = "(body)"

_STOP_HDRS = {"host", "content-length",
              "transfer-encoding", "content-encoding"}


@dataclass(frozen=True)
class InjectionPoint:
    location: InjectionLocation
    name: str

    @property
    def is_marker(self) -> bool:
        return self.name == MARKER

    def __str__(self):
        return f"{self.location.value}:{self.name}"


# ---------- marker helpers ----------

def _has_marker(value) -> bool:
    if isinstance(value, str):
        return MARKER in value
    if isinstance(value, list):
        return any(_has_marker(x) for x in value)
    if isinstance(value, dict):
        return any(_has_marker(x) for x in value.values())
    return False


def _apply_marker(value, payload: str):
    if isinstance(value, str):
        return value.replace(MARKER, payload)
    if isinstance(value, list):
        return [_apply_marker(x, payload) for x in value]
    if isinstance(value, dict):
        return {k: _apply_marker(v, payload) for k, v in value.items()}
    return value


def _mutate(value, payload: str, remove_existing: bool):
    if remove_existing:
        return payload
    if isinstance(value, list):
        return [f"{x}{payload}" for x in value] or [payload]
    if value is None:
        return payload
    if isinstance(value, bool):
        value = json.dumps(value)
    return f"{value}{payload}"


def _injectable_headers(headers: Dict[str, str]) -> Dict[str, str]:
    return {k: v for k, v in headers.items() if k.lower() not in _STOP_HDRS}
# -----------------------------------


def injection_points(request: Request, location: InjectionLocation) -> List[InjectionPoint]:
    """Every point of ``location`` a payload can be spliced into."""
    if location is InjectionLocation.URL:
        if MARKER in request.path or _has_marker(request.parameters):
            return [InjectionPoint(location, MARKER)]
        return [InjectionPoint(location, k) for k in request.parameters]

    if location is InjectionLocation.BODY:
        if request.body_type == "form":
            if _has_marker(request.body):
                return [InjectionPoint(location, MARKER)]
            return [InjectionPoint(location, k) for k in request.body]
        if request.body_type == "raw":
            name = MARKER if MARKER in request.body else RAW_BODY
            return [InjectionPoint(location, name)]
        return []

    if location is InjectionLocation.BODY_JSON:
        if request.body_type != "json":
            return []
        if _has_marker(request.body):
            return [InjectionPoint(location, MARKER)]
        if not isinstance(request.body, dict):
            return []
        return [InjectionPoint(location, k) for k, v in request.body.items()
                if not isinstance(v, (dict, list))]

    if location is InjectionLocation.HEADERS:
        headers = _injectable_headers(request.headers)
        if _has_marker(headers):
            return [InjectionPoint(location, MARKER)]
        return [InjectionPoint(location, k) for k in headers]

    return []


def build_variant(request: Request, point: InjectionPoint, payload: str,
                  remove_existing: bool = True, scheme: str = "https") -> RequestVariant:
    """Copy of ``request`` with ``payload`` injected at ``point``."""
    path = request.path
    params = deepcopy(request.parameters)
    body = deepcopy(request.body)
    # Host comes from the URL
    headers = {k: v for k, v in request.headers.items()
               if k.lower() not in ("content-length", "host")}
    loc = point.location

    if loc is InjectionLocation.URL:
        if point.is_marker:
            path = path.replace(MARKER, payload)
            params = _apply_marker(params, payload)
        else:
            params[point.name] = _mutate(params.get(point.name), payload, remove_existing)
            if isinstance(params[point.name], str):
                params[point.name] = [params[point.name]]

    elif loc is InjectionLocation.BODY:
        if request.body_type == "raw":
            if point.is_marker:
                body = body.replace(MARKER, payload)
            else:
                body = payload if remove_existing else f"{body}{payload}"
        elif point.is_marker:
            body = _apply_marker(body, payload)
        else:
            body[point.name] = _mutate(body.get(point.name), payload, remove_existing)
            if isinstance(body[point.name], str):
                body[point.name] = [body[point.name]]

    elif loc is InjectionLocation.BODY_JSON:
        if point.is_marker:
            body = _apply_marker(body, payload)
        else:
            body[point.name] = _mutate(body.get(point.name), payload, remove_existing)

    elif loc is InjectionLocation.HEADERS:
        if point.is_marker:
            headers = {k: _apply_marker(v, payload) if k.lower() not in _STOP_HDRS else v
                       for k, v in headers.items()}
        else:
            headers[point.name] = _mutate(headers.get(point.name, ""), payload, remove_existing)

    return RequestVariant(
        method=request.method,
        url=request.url(scheme, params, path),
        headers=headers,
        body=request.encode_body(body),
        location=loc,
        param=point.name,
        payload=payload,
    )
