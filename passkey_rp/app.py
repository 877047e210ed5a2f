"""Flask application routing HTTP requests to the ceremony operations."""

from __future__ import annotations

import json
import logging
import secrets
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

from flask import Flask, Response, request
from flask_cors import CORS
from werkzeug.exceptions import MethodNotAllowed

from .challenges import ChallengeLedger
from .config import ServiceSettings
from .engine import Fido2Engine, ProtocolEngine
from .errors import ErrorKind, RequestError
from .params import RequestParameters
from .services import (
    build_authentication_options,
    build_registration_options,
    verify_authentication,
    verify_registration,
)

LOGGER = logging.getLogger(__name__)

Operation = Callable[[RequestParameters, ProtocolEngine], Any]

HTTP_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE"]

STAGE_LABELS = {
    "register": "Register",
    "authn": "Authenticate",
    "router": "Router",
}

EVENT_LABELS = {
    ("register", "options"): "Issued Registration Options",
    ("register", "verify"): "Registration Verified",
    ("authn", "options"): "Issued Authentication Options",
    ("authn", "verify"): "Authentication Verified",
    ("router", "not_found"): "No Route",
    ("router", "rejected"): "Bad Request",
    ("router", "failed"): "Internal Server Error",
}


@dataclass(frozen=True)
class Route:
    stage: str
    event: str
    operation: Operation


ROUTES: Dict[Tuple[str, str], Route] = {
    ("/register", "GET"): Route("register", "options", build_registration_options),
    ("/register", "POST"): Route("register", "verify", verify_registration),
    ("/login", "GET"): Route("authn", "options", build_authentication_options),
    ("/login", "POST"): Route("authn", "verify", verify_authentication),
}


@dataclass(frozen=True)
class Outcome:
    status: int
    body: str
    mimetype: str = "text/plain"


def _truncate(value: str, limit: int = 64) -> str:
    if len(value) <= limit:
        return value
    half = limit // 2
    return f"{value[:half]}…{value[-half:]}"


def _build_payload(req: str, **fields: object) -> dict[str, object]:
    payload: dict[str, object] = {"request_id": req}
    for key, value in fields.items():
        if value is None:
            continue
        if isinstance(value, str):
            payload[key] = _truncate(value)
        else:
            payload[key] = value
    return payload


def _log(stage: str, event: str, req: str, level: int = logging.INFO, **fields: object) -> None:
    stage_label = STAGE_LABELS.get(stage, stage.title())
    event_label = EVENT_LABELS.get((stage, event), event)
    payload = json.dumps(_build_payload(req, **fields), indent=2, sort_keys=True)
    message = f"[Passkey RP: {stage_label}]: {event_label}\n{payload}"
    LOGGER.log(level, message, exc_info=level >= logging.ERROR)


def dispatch(path: str, method: str, params: RequestParameters, engine: ProtocolEngine) -> Outcome:
    """Run the operation registered for ``(path, method)`` and map its result."""
    req_id = secrets.token_hex(4)
    route = ROUTES.get((path, method.upper()))
    try:
        if route is None:
            raise RequestError.not_found()
        result = route.operation(params, engine)
    except RequestError as exc:
        if exc.kind is ErrorKind.NOT_FOUND:
            _log("router", "not_found", req_id, path=path, method=method)
        else:
            _log("router", "rejected", req_id, path=path, method=method, kind=exc.kind.value, message=exc.message)
        return Outcome(exc.status, exc.message)
    except Exception as exc:
        _log("router", "failed", req_id, level=logging.ERROR, path=path, method=method, message=str(exc))
        return Outcome(500, "Internal server error")

    _log(route.stage, route.event, req_id, rp_id=params.query.get("rpID"), user=params.query.get("userName"))
    if isinstance(result, str):
        return Outcome(200, result)
    return Outcome(200, json.dumps(result), "application/json")


def create_app(
    settings: ServiceSettings | None = None,
    engine: Optional[ProtocolEngine] = None,
) -> Flask:
    settings = settings or ServiceSettings()
    if engine is None:
        engine = Fido2Engine(
            ledger=ChallengeLedger(ttl=settings.challenge_ttl_seconds),
            timeout_ms=settings.ceremony_timeout_ms,
        )

    app = Flask(__name__)
    CORS(app, origins=settings.cors_origins)
    logging.basicConfig(level=settings.log_level, format="%(message)s")
    logging.getLogger("werkzeug").setLevel(logging.WARNING)
    app.extensions["passkey_rp.engine"] = engine

    def respond() -> Response:
        params = RequestParameters(request.args, request.get_data(cache=True))
        outcome = dispatch(request.path, request.method, params, engine)
        return Response(outcome.body, status=outcome.status, mimetype=outcome.mimetype)

    @app.route("/", defaults={"path": ""}, methods=HTTP_METHODS)
    @app.route("/<path:path>", methods=HTTP_METHODS)
    def ceremony(path: str):
        return respond()

    @app.errorhandler(MethodNotAllowed)
    def unrouted_method(error: MethodNotAllowed):
        return respond()

    return app
