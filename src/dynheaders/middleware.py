"""aiohttp integration for the dynamic header engine.

Runs the rule set on every incoming request before it reaches the next
handler. The middleware only changes request headers; it never returns a
response of its own.

Example:
    config = DynamicHeadersConfig.from_file("rules.yaml")
    app = web.Application()
    setup_dynamic_headers(app, config)
"""

from __future__ import annotations

import structlog
from aiohttp import web
from aiohttp.typedefs import Handler, Middleware
from multidict import CIMultiDict

from dynheaders.config import DynamicHeadersConfig
from dynheaders.engine import DiagnosticSink, HeaderRuleEngine
from dynheaders.request import RequestView

logger = structlog.get_logger()


def request_view_from_aiohttp(request: web.BaseRequest) -> RequestView:
    """Build a RequestView from an aiohttp request.

    The headers are copied; the original request is not modified.
    """
    return RequestView(
        host=request.host,
        path=request.path,
        url=str(request.url),
        method=request.method,
        scheme=request.scheme,
        query=request.rel_url.raw_query_string,
        headers=CIMultiDict(request.headers),
    )


def header_rules_middleware(engine: HeaderRuleEngine) -> Middleware:
    """Create middleware that applies the engine's rules to each request."""

    @web.middleware
    async def dynamic_headers(request: web.Request, handler: Handler) -> web.StreamResponse:
        view = engine.process(request_view_from_aiohttp(request))
        if view.headers != request.headers:
            request = request.clone(headers=view.headers)
        return await handler(request)

    return dynamic_headers


def setup_dynamic_headers(
    app: web.Application,
    config: DynamicHeadersConfig,
    sink: DiagnosticSink | None = None,
) -> HeaderRuleEngine | None:
    """Validate the configured rules and install the middleware.

    Args:
        app: Application to install the middleware on.
        config: Dynamic headers configuration.
        sink: Optional diagnostic sink for render failures.

    Returns:
        The engine, or None when the configuration is disabled.

    Raises:
        RuleValidationError: If any rule is invalid. Nothing is installed.
    """
    if not config.enabled:
        logger.info("dynamic headers disabled", name=config.name)
        return None

    engine = config.to_engine(sink=sink)
    app.middlewares.append(header_rules_middleware(engine))
    logger.info("dynamic headers enabled", name=engine.name, rules=len(engine))
    return engine
