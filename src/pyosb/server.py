"""aiohttp adapter exposing :class:`ServiceBroker` over the OSB v2 HTTP API.

Handlers only check request shape (required headers, path/query/body
fields) and delegate to one broker operation.  Validation failures are
returned as ``400`` with a list of ``{"location", "param", "msg"}`` errors.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator, Mapping
from typing import Any

from aiohttp import web

from pyosb.broker import ServiceBroker
from pyosb.exceptions import InstanceNotFoundError

_logger = logging.getLogger(__name__)

API_VERSION_HEADER = "X-Broker-Api-Version"

BROKER_KEY: web.AppKey[ServiceBroker] = web.AppKey("broker", ServiceBroker)


class _Validator:
    """Collects missing-field errors for one request."""

    def __init__(self) -> None:
        self.errors: list[dict[str, str]] = []

    def require(self, location: str, source: Mapping[str, Any], param: str) -> None:
        value = source.get(param)
        if value is None or (isinstance(value, str) and not value.strip()):
            self.errors.append({"location": location, "param": param, "msg": f"Missing {param}"})

    def require_api_version(self, request: web.Request) -> None:
        if not request.headers.get(API_VERSION_HEADER, "").strip():
            self.errors.append(
                {"location": "headers", "param": API_VERSION_HEADER, "msg": "Missing broker api version"}
            )

    def optional_object(self, body: Mapping[str, Any], param: str) -> None:
        value = body.get(param)
        if value is not None and not isinstance(value, dict):
            self.errors.append({"location": "body", "param": param, "msg": f"{param} must be an object"})

    def response(self) -> web.Response | None:
        if not self.errors:
            return None
        return web.json_response(self.errors, status=400)


async def _read_body(request: web.Request) -> dict[str, Any] | None:
    """Return the JSON object body, ``{}`` when empty, ``None`` when malformed."""
    if not request.can_read_body:
        return {}
    text = await request.text()
    if not text.strip():
        return {}
    try:
        body = json.loads(text)
    except json.JSONDecodeError:
        return None
    return body if isinstance(body, dict) else None


def _malformed_body() -> web.Response:
    return web.json_response(
        [{"location": "body", "param": "", "msg": "Request body must be a JSON object"}],
        status=400,
    )


def _query_flag(request: web.Request, name: str) -> bool:
    return request.query.get(name, "").strip().lower() in {"1", "true", "yes"}


def _not_found(broker: ServiceBroker, exc: InstanceNotFoundError) -> web.Response:
    payload = {"error": "NotFound", "description": str(exc)}
    broker.echo.record_response(payload)
    return web.json_response(payload, status=404)


async def handle_catalog(request: web.Request) -> web.Response:
    broker = request.app[BROKER_KEY]
    check = _Validator()
    check.require_api_version(request)
    if (error := check.response()) is not None:
        return error
    return web.json_response(broker.get_catalog())


async def handle_provision(request: web.Request) -> web.Response:
    broker = request.app[BROKER_KEY]
    body = await _read_body(request)
    if body is None:
        return _malformed_body()
    check = _Validator()
    check.require("params", request.match_info, "instance_id")
    for param in ("service_id", "plan_id", "organization_guid", "space_guid"):
        check.require("body", body, param)
    check.optional_object(body, "parameters")
    check.optional_object(body, "context")
    check.require_api_version(request)
    if (error := check.response()) is not None:
        return error

    payload = await broker.provision(
        request.match_info["instance_id"],
        service_id=body["service_id"],
        plan_id=body["plan_id"],
        organization_guid=body["organization_guid"],
        space_guid=body["space_guid"],
        api_version=request.headers[API_VERSION_HEADER],
        parameters=body.get("parameters"),
        context=body.get("context"),
        accepts_incomplete=_query_flag(request, "accepts_incomplete"),
    )
    return web.json_response(payload)


async def handle_update(request: web.Request) -> web.Response:
    broker = request.app[BROKER_KEY]
    body = await _read_body(request)
    if body is None:
        return _malformed_body()
    check = _Validator()
    check.require("params", request.match_info, "instance_id")
    check.require("body", body, "service_id")
    check.optional_object(body, "parameters")
    check.optional_object(body, "context")
    check.require_api_version(request)
    if (error := check.response()) is not None:
        return error

    try:
        payload = await broker.update(
            request.match_info["instance_id"],
            service_id=body["service_id"],
            api_version=request.headers[API_VERSION_HEADER],
            plan_id=body.get("plan_id"),
            parameters=body.get("parameters"),
            context=body.get("context"),
        )
    except InstanceNotFoundError as exc:
        return _not_found(broker, exc)
    return web.json_response(payload)


async def handle_deprovision(request: web.Request) -> web.Response:
    broker = request.app[BROKER_KEY]
    check = _Validator()
    check.require("params", request.match_info, "instance_id")
    check.require("query", request.query, "service_id")
    check.require("query", request.query, "plan_id")
    check.require_api_version(request)
    if (error := check.response()) is not None:
        return error

    payload = await broker.deprovision(request.match_info["instance_id"])
    return web.json_response(payload)


async def handle_bind(request: web.Request) -> web.Response:
    broker = request.app[BROKER_KEY]
    body = await _read_body(request)
    if body is None:
        return _malformed_body()
    check = _Validator()
    check.require("params", request.match_info, "instance_id")
    check.require("params", request.match_info, "binding_id")
    check.require("body", body, "service_id")
    check.require("body", body, "plan_id")
    check.optional_object(body, "bind_resource")
    check.optional_object(body, "parameters")
    check.require_api_version(request)
    if (error := check.response()) is not None:
        return error

    try:
        payload = await broker.bind(
            request.match_info["instance_id"],
            request.match_info["binding_id"],
            service_id=body["service_id"],
            plan_id=body["plan_id"],
            api_version=request.headers[API_VERSION_HEADER],
            app_guid=body.get("app_guid"),
            bind_resource=body.get("bind_resource"),
            parameters=body.get("parameters"),
        )
    except InstanceNotFoundError as exc:
        return _not_found(broker, exc)
    return web.json_response(payload)


async def handle_unbind(request: web.Request) -> web.Response:
    broker = request.app[BROKER_KEY]
    check = _Validator()
    check.require("params", request.match_info, "instance_id")
    check.require("params", request.match_info, "binding_id")
    check.require_api_version(request)
    if (error := check.response()) is not None:
        return error

    payload = await broker.unbind(request.match_info["instance_id"], request.match_info["binding_id"])
    return web.json_response(payload)


async def handle_dashboard(request: web.Request) -> web.Response:
    broker = request.app[BROKER_KEY]
    return web.json_response(broker.dashboard(request.headers.get(API_VERSION_HEADER)))


async def _broker_lifecycle(app: web.Application) -> AsyncIterator[None]:
    broker = app[BROKER_KEY]
    await broker.start()
    _logger.info("Service broker started (persistent=%s)", broker.persistence.persistent)
    yield
    await broker.close()


def create_app(broker: ServiceBroker) -> web.Application:
    """Build the aiohttp application; the broker is started and closed with it."""
    app = web.Application()
    app[BROKER_KEY] = broker
    app.cleanup_ctx.append(_broker_lifecycle)

    instance = "/v2/service_instances/{instance_id}"
    binding = instance + "/service_bindings/{binding_id}"
    app.router.add_get("/v2/catalog", handle_catalog)
    app.router.add_put(instance, handle_provision)
    app.router.add_patch(instance, handle_update)
    app.router.add_delete(instance, handle_deprovision)
    app.router.add_put(binding, handle_bind)
    app.router.add_delete(binding, handle_unbind)
    app.router.add_get("/", handle_dashboard)
    app.router.add_get("/dashboard", handle_dashboard)
    return app
