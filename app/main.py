"""Entry point for the FastAPI-powered preferences helper."""

from __future__ import annotations

import json
import logging
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any

import httpx
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import HTMLResponse, JSONResponse, Response
from pydantic import ValidationError

from .config import settings
from .models import LoginRequest
from .services.bluesky import BlueskyAPIError, BlueskyClient
from .services.preferences import PreferencesController
from .sessions import SessionStore
from .web import render_app_page

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app: FastAPI


def create_app(transport: httpx.AsyncBaseTransport | None = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(fastapi_app: FastAPI):
        exit_stack = AsyncExitStack()
        client_kwargs: dict[str, Any] = {
            "timeout": httpx.Timeout(settings.http_timeout_seconds, connect=10.0)
        }
        if transport is not None:
            client_kwargs["transport"] = transport
        http_client = await exit_stack.enter_async_context(
            httpx.AsyncClient(**client_kwargs)
        )
        fastapi_app.state.bluesky = BlueskyClient(settings, http_client)
        fastapi_app.state.sessions = SessionStore(settings.session_ttl_seconds)

        try:
            yield
        finally:  # pragma: no cover - teardown path exercised at runtime
            fastapi_app.state.sessions.clear()
            await exit_stack.aclose()

    fastapi_app = FastAPI(
        title=settings.app_name,
        description="Inspect, repair and export Bluesky account preferences",
        version="1.0.0",
        lifespan=lifespan,
    )

    register_routes(fastapi_app)
    return fastapi_app


def get_bluesky_client(fastapi_app: FastAPI) -> BlueskyClient:
    client = getattr(fastapi_app.state, "bluesky", None)
    if not isinstance(client, BlueskyClient):
        raise RuntimeError("Bluesky client not initialised")
    return client


def get_session_store(fastapi_app: FastAPI) -> SessionStore:
    store = getattr(fastapi_app.state, "sessions", None)
    if not isinstance(store, SessionStore):
        raise RuntimeError("Session store not initialised")
    return store


def register_routes(fastapi_app: FastAPI) -> None:
    def _session_token(request: Request) -> str | None:
        return request.cookies.get(settings.session_cookie_name)

    def _require_controller(request: Request) -> PreferencesController:
        store = get_session_store(fastapi_app)
        controller = store.get(_session_token(request))
        if controller is None:
            raise HTTPException(status_code=401, detail="Not signed in")
        return controller

    @fastapi_app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @fastapi_app.get("/", response_class=HTMLResponse)
    async def index() -> HTMLResponse:
        return HTMLResponse(render_app_page(settings))

    @fastapi_app.post("/api/session")
    async def sign_in(request: Request) -> JSONResponse:
        try:
            payload = await request.json()
        except json.JSONDecodeError:
            payload = {}
        if not isinstance(payload, dict):
            raise HTTPException(status_code=400, detail="Invalid payload")
        try:
            credentials = LoginRequest.model_validate(payload)
        except ValidationError as exc:
            errors = json.loads(exc.json(include_url=False, include_input=False))
            raise HTTPException(status_code=400, detail=errors) from exc

        client = get_bluesky_client(fastapi_app)
        try:
            session = await client.create_session(
                credentials.identifier, credentials.password
            )
        except BlueskyAPIError as exc:
            raise HTTPException(status_code=401, detail=str(exc)) from exc
        except httpx.HTTPError as exc:
            logger.warning("Unable to reach Bluesky during sign in: %s", exc)
            raise HTTPException(
                status_code=502,
                detail="Unable to reach Bluesky. Please try again shortly.",
            ) from exc

        controller = PreferencesController(
            client, session, export_filename=settings.export_filename
        )
        token = get_session_store(fastapi_app).add(controller)
        await controller.load()

        response = JSONResponse(controller.to_payload())
        response.set_cookie(
            settings.session_cookie_name,
            token,
            max_age=settings.session_ttl_seconds,
            httponly=True,
            samesite="lax",
            secure=settings.environment == "production",
        )
        return response

    @fastapi_app.delete("/api/session")
    async def sign_out(request: Request) -> JSONResponse:
        controller = get_session_store(fastapi_app).pop(_session_token(request))
        if controller is not None:
            try:
                await get_bluesky_client(fastapi_app).delete_session(controller.session)
            except (BlueskyAPIError, httpx.HTTPError, httpx.InvalidURL) as exc:
                logger.warning(
                    "Failed to revoke session for %s: %s", controller.session.handle, exc
                )
        response = JSONResponse({"status": "signed_out"})
        response.delete_cookie(settings.session_cookie_name)
        return response

    @fastapi_app.get("/api/preferences")
    async def preferences(request: Request, refresh: bool = False) -> JSONResponse:
        controller = _require_controller(request)
        if refresh or not controller.loaded:
            await controller.load()
        status_code = 502 if controller.error else 200
        return JSONResponse(controller.to_payload(), status_code=status_code)

    @fastapi_app.post("/api/preferences/repair")
    async def repair_preferences(request: Request) -> JSONResponse:
        controller = _require_controller(request)
        if controller.busy:
            raise HTTPException(status_code=409, detail="A repair is already running")
        if controller.document is None:
            raise HTTPException(status_code=409, detail="No preferences loaded")
        if controller.document.saved_feeds is None:
            raise HTTPException(status_code=409, detail="No saved feeds to repair")

        repaired = await controller.repair()
        if not repaired and controller.repair_error:
            return JSONResponse(controller.to_payload(), status_code=502)
        return JSONResponse(controller.to_payload())

    @fastapi_app.get("/api/preferences/export")
    async def export_preferences(request: Request) -> Response:
        controller = _require_controller(request)
        artifact = controller.export()
        if artifact is None:
            raise HTTPException(status_code=404, detail="No preferences loaded")
        return Response(
            content=artifact.data,
            media_type=artifact.media_type,
            headers={
                "Content-Disposition": f'attachment; filename="{artifact.filename}"'
            },
        )


app = create_app()


if __name__ == "__main__":  # pragma: no cover - manual execution
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.environment == "development",
    )
