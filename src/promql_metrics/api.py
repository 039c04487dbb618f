from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from importlib.metadata import version

import aiohttp
import aiohttp.web
import uvloop
from aiohttp.web import (
    HTTPBadRequest,
    HTTPInternalServerError,
    HTTPNotFound,
    HTTPOk,
    HTTPUnprocessableEntity,
    Request,
    Response,
    StreamResponse,
    json_response,
    middleware,
)
from aiohttp.web_urldispatcher import AbstractRoute
from aiohttp_apispec import (
    docs,
    request_schema,
    response_schema,
    setup_aiohttp_apispec,
    validation_middleware,
)
from neuro_logging import init_logging, setup_sentry

from .config import ParserApiConfig
from .dashboard import DashboardPanelNotFound, get_dashboard_expressions
from .metric_names import extract_metric_names
from .schema import (
    ClientErrorSchema,
    ParseDashboardRequest,
    ParseDashboardRequestSchema,
    ParseExpressionsResponse,
    ParseExpressionsResponseSchema,
    load_expressions,
)


LOGGER = logging.getLogger(__name__)

CONFIG_APP_KEY = aiohttp.web.AppKey("config", ParserApiConfig)


class ProbesHandler:
    def __init__(self, app: aiohttp.web.Application) -> None:
        self._app = app

    def register(self) -> list[AbstractRoute]:
        return self._app.router.add_routes([aiohttp.web.get("/ping", self.handle_ping)])

    async def handle_ping(self, request: Request) -> Response:
        return Response(text="Pong")


class ExpressionsHandler:
    def __init__(self, app: aiohttp.web.Application) -> None:
        self._app = app

    def register(self) -> None:
        self._app.router.add_post("/parse", self.handle_post_parse)

    @property
    def _config(self) -> ParserApiConfig:
        return self._app[CONFIG_APP_KEY]

    @docs(
        tags=["Metrics"],
        summary="Extract metric names referenced by PromQL expressions.",
        description=(
            "Accepts a JSON array of expressions. Dashboard macros such as "
            "$__rate_interval are replaced before parsing. Parse errors are "
            "reported per expression and never fail the request."
        ),
        responses={
            HTTPOk.status_code: {},
            HTTPBadRequest.status_code: {
                "description": "Malformed request body",
                "schema": ClientErrorSchema(),
            },
        },
    )
    @response_schema(ParseExpressionsResponseSchema())
    async def handle_post_parse(self, request: Request) -> Response:
        try:
            payload = await request.json()
        except ValueError as ex:
            msg = "invalid JSON body"
            raise ValueError(msg) from ex
        exprs = load_expressions(payload)
        return self._parse(exprs)

    def _parse(self, exprs: list[str]) -> Response:
        if len(exprs) > self._config.max_expressions:
            msg = (
                f"too many expressions: {len(exprs)}, "
                f"at most {self._config.max_expressions} are allowed"
            )
            raise ValueError(msg)
        metrics, errors = extract_metric_names(
            exprs, placeholder=self._config.macro_placeholder
        )
        LOGGER.info(
            "Parsed %d expressions: %d metrics, %d errors",
            len(exprs),
            len(metrics),
            sum(1 for error in errors if error),
        )
        response = ParseExpressionsResponse(
            exprs=exprs, metrics=metrics, parse_errors_by_idx=errors
        )
        return json_response(
            ParseExpressionsResponseSchema().dump(response),
            status=HTTPOk.status_code,
        )


class DashboardsHandler(ExpressionsHandler):
    def register(self) -> None:
        self._app.router.add_post(
            "/dashboards/parse", self.handle_post_dashboards_parse
        )

    @docs(
        tags=["Metrics"],
        summary="Extract metric names referenced by a Grafana dashboard.",
        responses={
            HTTPOk.status_code: {},
            HTTPNotFound.status_code: {
                "description": "Panel not found",
                "schema": ClientErrorSchema(),
            },
            HTTPUnprocessableEntity.status_code: {
                "description": "Invalid request body",
            },
        },
    )
    @request_schema(ParseDashboardRequestSchema())
    @response_schema(ParseExpressionsResponseSchema())
    async def handle_post_dashboards_parse(self, request: Request) -> Response:
        request_data: ParseDashboardRequest = request["data"]
        try:
            exprs = get_dashboard_expressions(
                request_data.dashboard,
                panel_id=request_data.panel_id,
                include_variables=request_data.include_variables,
            )
        except DashboardPanelNotFound as ex:
            return json_response({"error": str(ex)}, status=HTTPNotFound.status_code)
        return self._parse(exprs)


@middleware
async def handle_exceptions(
    request: Request, handler: Callable[[Request], Awaitable[StreamResponse]]
) -> StreamResponse:
    try:
        return await handler(request)
    except ValueError as e:
        payload = {"error": str(e)}
        return json_response(payload, status=HTTPBadRequest.status_code)
    except aiohttp.web.HTTPException:
        raise
    except Exception as e:
        msg_str = (
            f"Unexpected exception: {str(e)}. " f"Path with query: {request.path_qs}."
        )
        LOGGER.exception(msg_str)
        payload = {"error": msg_str}
        return json_response(payload, status=HTTPInternalServerError.status_code)


package_version = version(__package__)


async def add_version_to_header(request: Request, response: StreamResponse) -> None:
    response.headers["X-Service-Version"] = f"promql-metrics/{package_version}"


def create_app(config: ParserApiConfig) -> aiohttp.web.Application:
    app = aiohttp.web.Application(
        middlewares=[handle_exceptions, validation_middleware]
    )
    app[CONFIG_APP_KEY] = config
    app.on_response_prepare.append(add_version_to_header)
    ProbesHandler(app).register()
    # Unversioned route kept for existing Grafana plugin clients
    ExpressionsHandler(app).register()

    api_v1_app = aiohttp.web.Application()
    api_v1_app[CONFIG_APP_KEY] = config
    ExpressionsHandler(api_v1_app).register()
    DashboardsHandler(api_v1_app).register()

    app.add_subapp("/api/v1", api_v1_app)

    prefix = "/api/v1/docs"
    setup_aiohttp_apispec(
        app=app,
        title="PromQL metrics API documentation",
        version=package_version,
        url=f"{prefix}/swagger.json",
        static_path=f"{prefix}/static",
        swagger_path=prefix,
    )

    return app


def run_api() -> None:  # pragma: no coverage
    init_logging(health_check_url_path="/ping")
    config = ParserApiConfig()
    logging.info("Loaded config: %r", config)
    setup_sentry(health_check_url_path="/ping")
    loop = uvloop.new_event_loop()
    aiohttp.web.run_app(
        create_app(config),
        host=config.server.host,
        port=config.server.port,
        handler_cancellation=True,
        loop=loop,
    )
