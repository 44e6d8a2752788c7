"""Plain-text HTTP API built on :mod:`aiohttp.web`.

Routes:

* ``GET /rates`` - all rates separated by a blank line
* ``GET /rates/{currency}`` - a single rate, 404 for unknown coins
* ``GET /metrics`` - request counters in Prometheus text format
* ``GET /swagger/`` - API documentation
"""

import time
from collections import defaultdict
from typing import Dict, Tuple

from aiohttp import hdrs, web

from . import api, config, rates
from .db import Store
from .errors import NotFoundError, StorageError

TEXT = "text/plain"
# label for requests that match no route, keeps the metric key set bounded
UNMATCHED_PATH = "unmatched"


class Metrics:
    """Request counters and latency sums labelled by method, path and status."""

    def __init__(self) -> None:
        self.requests: Dict[Tuple[str, str, int], int] = defaultdict(int)
        self.duration_sum: Dict[Tuple[str, str], float] = defaultdict(float)
        self.duration_count: Dict[Tuple[str, str], int] = defaultdict(int)

    def observe(self, method: str, path: str, status: int, seconds: float) -> None:
        self.requests[(method, path, status)] += 1
        self.duration_sum[(method, path)] += seconds
        self.duration_count[(method, path)] += 1

    def render(self) -> str:
        lines = [
            "# HELP http_requests_total Total number of HTTP requests.",
            "# TYPE http_requests_total counter",
        ]
        for (method, path, status), count in sorted(self.requests.items()):
            lines.append(
                f'http_requests_total{{method="{method}",path="{path}",'
                f'status="{status}"}} {count}'
            )
        lines += [
            "# HELP http_request_duration_seconds HTTP request latency.",
            "# TYPE http_request_duration_seconds summary",
        ]
        for (method, path), total in sorted(self.duration_sum.items()):
            labels = f'method="{method}",path="{path}"'
            lines.append(f"http_request_duration_seconds_sum{{{labels}}} {total:.6f}")
            lines.append(
                f"http_request_duration_seconds_count{{{labels}}} "
                f"{self.duration_count[(method, path)]}"
            )
        lines += [
            "# HELP coingecko_responses_total Recent CoinGecko responses by status.",
            "# TYPE coingecko_responses_total gauge",
        ]
        for status, count in sorted(api.status_counts().items()):
            lines.append(f'coingecko_responses_total{{status="{status}"}} {count}')
        return "\n".join(lines) + "\n"


STORE = web.AppKey("store", Store)
METRICS = web.AppKey("metrics", Metrics)

OPENAPI = {
    "openapi": "3.0.3",
    "info": {"title": f"{config.BOT_NAME} API", "version": "1.0"},
    "paths": {
        "/rates": {
            "get": {
                "summary": "Get all currency rates",
                "responses": {
                    "200": {"description": "Rates", "content": {TEXT: {}}},
                    "500": {"description": "Internal server error"},
                },
            }
        },
        "/rates/{currency}": {
            "get": {
                "summary": "Get the rate of one currency",
                "parameters": [
                    {
                        "name": "currency",
                        "in": "path",
                        "required": True,
                        "schema": {"type": "string"},
                    }
                ],
                "responses": {
                    "200": {"description": "Rate", "content": {TEXT: {}}},
                    "404": {"description": "Currency not found"},
                    "500": {"description": "Internal server error"},
                },
            }
        },
    },
}

SWAGGER_PAGE = """<!DOCTYPE html>
<html>
<head>
<title>API docs</title>
<link rel="stylesheet" href="https://unpkg.com/swagger-ui-dist@5/swagger-ui.css">
</head>
<body>
<div id="swagger-ui"></div>
<script src="https://unpkg.com/swagger-ui-dist@5/swagger-ui-bundle.js"></script>
<script>SwaggerUIBundle({url: "doc.json", dom_id: "#swagger-ui"});</script>
</body>
</html>
"""


def _route_path(request: web.Request) -> str:
    route = request.match_info.route
    resource = route.resource if route is not None else None
    if resource is not None:
        return resource.canonical
    return UNMATCHED_PATH


@web.middleware
async def metrics_middleware(request: web.Request, handler):
    """Record the status and latency of every request."""
    start = time.perf_counter()
    status = 500
    try:
        response = await handler(request)
        status = response.status
        return response
    except web.HTTPException as exc:
        status = exc.status
        raise
    finally:
        request.app[METRICS].observe(
            request.method if request.method in hdrs.METH_ALL else "OTHER",
            _route_path(request),
            status,
            time.perf_counter() - start,
        )


async def get_rates(request: web.Request) -> web.Response:
    try:
        latest = await rates.get_all_rates(request.app[STORE])
    except StorageError as exc:
        raise web.HTTPInternalServerError(text=str(exc))
    return web.Response(text=rates.format_rates(latest), content_type=TEXT)


async def get_currency_rate(request: web.Request) -> web.Response:
    currency = request.match_info["currency"]
    try:
        rate = await rates.get_rate(request.app[STORE], currency)
    except NotFoundError as exc:
        config.logger.info("rate not found: %s", exc)
        raise web.HTTPNotFound(text=str(exc))
    except StorageError as exc:
        raise web.HTTPInternalServerError(text=str(exc))
    return web.Response(text=rates.format_rate(rate), content_type=TEXT)


async def get_metrics(request: web.Request) -> web.Response:
    return web.Response(text=request.app[METRICS].render(), content_type=TEXT)


async def swagger(request: web.Request) -> web.Response:
    if request.match_info["tail"] == "doc.json":
        return web.json_response(OPENAPI)
    return web.Response(text=SWAGGER_PAGE, content_type="text/html")


def build_app(store: Store) -> web.Application:
    """Return the HTTP application serving rates from ``store``."""
    app = web.Application(middlewares=[metrics_middleware])
    app[STORE] = store
    app[METRICS] = Metrics()
    app.router.add_get("/rates", get_rates)
    app.router.add_get("/rates/{currency}", get_currency_rate)
    app.router.add_get("/metrics", get_metrics)
    app.router.add_get("/swagger/{tail:.*}", swagger)
    return app


async def start_server(store: Store, host: str, port: int) -> web.AppRunner:
    """Start serving ``build_app(store)`` and return the runner."""
    runner = web.AppRunner(build_app(store))
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    config.logger.info("HTTP server listening on %s:%s", host, port)
    return runner
