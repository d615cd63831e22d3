from __future__ import annotations

import contextlib
import os
import sys
from datetime import date

import httpx
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from auth.urls import build_callback_url
from hackatime.constants import APP_VERSION, LOGGER
from hackatime.context import AppContext, create_context
from hackatime.env import load_config, load_env, setup_logging, validate_env
from hackatime.errors import AuthFlowError, HackatimeError, RateLimited
from hackatime.statistics import collect_dashboard_stats, process_statistics

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8765


def error_response(code: str, description: str, status_code: int, headers: dict | None = None) -> Response:
    return JSONResponse(
        {"error": code, "error_description": description},
        status_code=status_code,
        headers=headers,
    )


async def handle_hackatime_error(request: Request, error: HackatimeError) -> Response:
    del request
    headers = None
    if isinstance(error, RateLimited) and error.wait_seconds is not None:
        headers = {"Retry-After": str(error.wait_seconds)}
    if isinstance(error, AuthFlowError):
        LOGGER.warning("Authentication flow failed: %s", error)
    elif error.status_code >= 500:
        LOGGER.error("Command failed: %s", error)
    return error_response(error.code, str(error), error.status_code, headers)


async def _json_field(request: Request, field: str) -> str | None:
    try:
        payload = await request.json()
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None
    value = payload.get(field)
    if not isinstance(value, str) or not value.strip():
        return None
    return value


def _date_param(request: Request, key: str) -> date | None:
    raw = request.query_params.get(key)
    if not raw:
        return None
    try:
        return date.fromisoformat(raw)
    except ValueError:
        return None


def create_app(context: AppContext) -> Starlette:
    async def health_route(request: Request) -> Response:
        del request
        return JSONResponse({"status": "ok", "version": APP_VERSION})

    # -- auth ------------------------------------------------------------------

    async def auth_state_route(request: Request) -> Response:
        del request
        state = await context.token_store.snapshot()
        return JSONResponse(state.to_dict())

    async def login_route(request: Request) -> Response:
        del request
        authorization = await context.oauth.begin_authorization(context.api_base_url)
        return JSONResponse(
            {"authorization_url": authorization.url, "opened": authorization.opened}
        )

    async def callback_route(request: Request) -> Response:
        params = {key: value for key, value in request.query_params.items()}
        url = build_callback_url(context.config.redirect_uri, params)
        state = await context.oauth.handle_deep_link(url, context.api_base_url)
        return JSONResponse(state.to_dict())

    async def deep_link_route(request: Request) -> Response:
        url = await _json_field(request, "url")
        if url is None:
            return error_response("invalid_request", "url is required.", 400)
        state = await context.oauth.handle_deep_link(url, context.api_base_url)
        return JSONResponse(state.to_dict())

    async def token_route(request: Request) -> Response:
        token = await _json_field(request, "token")
        if token is None:
            return error_response("invalid_request", "token is required.", 400)
        state = await context.oauth.validate_opaque_token(token, context.api_base_url)
        return JSONResponse(state.to_dict())

    async def logout_route(request: Request) -> Response:
        del request
        await context.logout()
        return JSONResponse({"status": "logged_out"})

    async def api_key_route(request: Request) -> Response:
        del request
        return JSONResponse({"token": await context.get_api_key()})

    # -- session ---------------------------------------------------------------

    async def poll_route(request: Request) -> Response:
        del request
        result = await context.sessions.poll()
        return JSONResponse(result.to_dict())

    async def session_route(request: Request) -> Response:
        del request
        session = await context.sessions.current()
        return JSONResponse(session.to_dict())

    async def status_route(request: Request) -> Response:
        del request
        return JSONResponse(await context.status())

    # -- statistics ------------------------------------------------------------

    async def hours_route(request: Request) -> Response:
        start_date = _date_param(request, "start_date")
        end_date = _date_param(request, "end_date")
        if start_date is None or end_date is None:
            return error_response(
                "invalid_request", "start_date and end_date must be YYYY-MM-DD dates.", 400
            )
        return JSONResponse(await context.stats.fetch_range(start_date, end_date))

    async def dashboard_route(request: Request) -> Response:
        del request
        return JSONResponse(await collect_dashboard_stats(context.stats))

    async def statistics_route(request: Request) -> Response:
        del request
        dashboard = await collect_dashboard_stats(context.stats)
        statistics = process_statistics(dashboard, context.programmer_classes())
        return JSONResponse(statistics.to_dict())

    async def projects_route(request: Request) -> Response:
        del request
        credential = await context.token_store.require_credential()
        return JSONResponse(await context.api.projects(credential.access_token))

    async def project_details_route(request: Request) -> Response:
        credential = await context.token_store.require_credential()
        name = request.path_params["name"]
        return JSONResponse(await context.api.project_details(credential.access_token, name))

    async def clear_cache_route(request: Request) -> Response:
        del request
        await context.stats.clear()
        return JSONResponse({"status": "cleared"})

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette):
        del app
        await context.startup()
        try:
            yield
        finally:
            await context.aclose()

    routes = [
        Route("/health", health_route, methods=["GET"]),
        Route("/auth/state", auth_state_route, methods=["GET"]),
        Route("/auth/login", login_route, methods=["POST"]),
        Route("/auth/callback", callback_route, methods=["GET"]),
        Route("/auth/deep-link", deep_link_route, methods=["POST"]),
        Route("/auth/token", token_route, methods=["POST"]),
        Route("/auth/logout", logout_route, methods=["POST"]),
        Route("/auth/api-key", api_key_route, methods=["GET"]),
        Route("/session/poll", poll_route, methods=["POST"]),
        Route("/session", session_route, methods=["GET"]),
        Route("/status", status_route, methods=["GET"]),
        Route("/stats/hours", hours_route, methods=["GET"]),
        Route("/stats/dashboard", dashboard_route, methods=["GET"]),
        Route("/stats", statistics_route, methods=["GET"]),
        Route("/projects", projects_route, methods=["GET"]),
        Route("/projects/{name:path}", project_details_route, methods=["GET"]),
        Route("/cache/clear", clear_cache_route, methods=["POST"]),
    ]
    app = Starlette(
        routes=routes,
        exception_handlers={HackatimeError: handle_hackatime_error},
        lifespan=lifespan,
    )
    app.state.context = context
    return app


def companion_address() -> tuple[str, int]:
    host = os.getenv("COMPANION_HOST", DEFAULT_HOST)
    port = int(os.getenv("COMPANION_PORT", str(DEFAULT_PORT)))
    return host, port


def forward_deep_link(url: str, *, host: str, port: int, client: httpx.Client | None = None) -> int:
    """Hand a deep link to the running companion. Returns a process exit code."""
    own_client = client is None
    http_client = client or httpx.Client(timeout=10.0)
    try:
        response = http_client.post(f"http://{host}:{port}/auth/deep-link", json={"url": url})
    except httpx.HTTPError as error:
        print(f"Could not reach the companion at {host}:{port}: {error}", file=sys.stderr)
        return 1
    finally:
        if own_client:
            http_client.close()

    if response.is_success:
        print("Authentication completed.")
        return 0

    try:
        detail = response.json().get("error_description", response.text)
    except ValueError:
        detail = response.text
    print(f"Authentication failed: {detail}", file=sys.stderr)
    return 1


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    load_env()
    host, port = companion_address()

    if args:
        return forward_deep_link(args[0], host=host, port=port)

    config = load_config()
    setup_logging(config)
    validate_env(config)

    import uvicorn

    app = create_app(create_context(config))
    LOGGER.info("Hackatime companion listening on %s:%s", host, port)
    uvicorn.run(app, host=host, port=port)
    return 0


if __name__ == "__main__":
    sys.exit(main())
