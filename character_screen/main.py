"""FastAPI app, composition root, and HTTP routes for the character list screen.

``create_app()`` wires one httpx client, the fetch service and the screen
controller inside the application lifespan. The routes expose the screen as
view documents and accept the user's gestures as commands:

- GET  /                         -> redirect to Swagger UI (/docs)
- GET  /healthz                  -> liveness
- GET  /healthcheck              -> upstream probe + screen phase
- GET  /screen                   -> current view document
- POST /screen/search            -> submit a name search
- POST /screen/clear             -> clear the search
- POST /screen/refresh           -> pull-to-refresh / toolbar refresh
- POST /screen/retry             -> retry action of the error and empty views
- GET  /screen/characters/{id}   -> detail overlay for one listed character
"""

import asyncio
import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import APIRouter, FastAPI, HTTPException, Query, Depends, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import RedirectResponse, JSONResponse

from . import metrics
from .api import CharacterService
from .controller import CharacterListController
from .logging_config import configure_logging
from .schemas import DetailView, HealthcheckOut, ProblemDetail, ScreenOut, SearchIn
from .settings import Settings, settings
from .state import Loaded

configure_logging()
log = logging.getLogger(__name__)


_STATUS_TITLES = {
    400: "Bad Request",
    404: "Not Found",
    422: "Unprocessable Entity",
    500: "Internal Server Error",
}


def _problem(
    status: int,
    title: str | None = None,
    detail: str | None = None,
    instance: str | None = None,
) -> JSONResponse:
    """Return an RFC7807 problem+json response."""
    body = {
        "type": "about:blank",
        "title": title or _STATUS_TITLES.get(status, "Error"),
        "status": status,
        "detail": detail,
        "instance": instance,
    }
    return JSONResponse(
        status_code=status, content=body, media_type="application/problem+json"
    )


async def http_exception_handler(_req: Request, exc: HTTPException):
    detail = exc.detail if isinstance(exc.detail, str) else None
    return _problem(
        status=exc.status_code, title=_STATUS_TITLES.get(exc.status_code), detail=detail
    )


async def validation_exception_handler(_req: Request, exc: RequestValidationError):
    msg = exc.errors()[0]["msg"] if exc.errors() else "Validation error"
    return _problem(status=422, title=_STATUS_TITLES[422], detail=msg)


_problem_resp = {
    "application/problem+json": {"schema": ProblemDetail.model_json_schema()},
}

# ---------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------

router = APIRouter()


def get_controller(request: Request) -> CharacterListController:
    return request.app.state.controller


async def _settle(task: asyncio.Task | None) -> None:
    # a disconnecting client must not abort the fetch itself
    if task is not None:
        await asyncio.shield(task)


@router.get("/", include_in_schema=False)
async def root(request: Request):
    """Redirect the root path to the interactive API docs (/docs)."""
    return RedirectResponse(url=request.app.docs_url or "/docs", status_code=307)


@router.get("/healthz", include_in_schema=False)
async def healthz():
    """Lightweight, in-process health endpoint.

    Always returns 200 if the app can serve requests.
    """
    return {"status": "ok"}


@router.get("/healthcheck", response_model=HealthcheckOut)
async def healthcheck(request: Request):
    """Deep health check: upstream reachability plus the screen's current phase."""
    upstream_ok = await request.app.state.service.probe()
    state = request.app.state.controller.state
    phase = state.phase
    count = len(phase.characters) if isinstance(phase, Loaded) else 0
    status = "ok" if upstream_ok else "degraded"
    log.info(
        "route.healthcheck status=%s upstream_ok=%s phase=%s character_count=%d",
        status,
        upstream_ok,
        phase.kind,
        count,
    )
    return {
        "status": status,
        "upstream_ok": upstream_ok,
        "phase": phase.kind,
        "character_count": count,
    }


@router.get("/screen", response_model=ScreenOut)
async def screen(
    wait: bool = Query(False, description="Wait for in-flight fetches to settle"),
    controller: CharacterListController = Depends(get_controller),
):
    """Return the view document for the current screen state."""
    if wait:
        await controller.wait_idle()
    return controller.present()


@router.post("/screen/search", response_model=ScreenOut)
async def search(
    body: SearchIn,
    wait: bool = Query(False),
    controller: CharacterListController = Depends(get_controller),
):
    """Submit a name search; blank text behaves like an unfiltered load."""
    log.info("route.search query=%r wait=%s", body.query, wait)
    task = controller.search(body.query)
    if wait:
        await _settle(task)
    return controller.present()


@router.post("/screen/clear", response_model=ScreenOut)
async def clear_search(
    wait: bool = Query(False),
    controller: CharacterListController = Depends(get_controller),
):
    """Clear the search and reload the unfiltered list."""
    log.info("route.clear wait=%s", wait)
    task = controller.clear_search()
    if wait:
        await _settle(task)
    return controller.present()


@router.post("/screen/refresh", response_model=ScreenOut)
async def refresh(
    wait: bool = Query(True, description="Resolve only once the fetch settles"),
    controller: CharacterListController = Depends(get_controller),
):
    """Re-issue the fetch with the current query (pull-to-refresh)."""
    log.info("route.refresh query=%r wait=%s", controller.state.query, wait)
    task = controller.refresh()
    if wait:
        await _settle(task)
    return controller.present()


@router.post("/screen/retry", response_model=ScreenOut)
async def retry(
    wait: bool = Query(False),
    controller: CharacterListController = Depends(get_controller),
):
    """Retry action shown on the error and empty views."""
    log.info("route.retry query=%r wait=%s", controller.state.query, wait)
    task = controller.retry()
    if wait:
        await _settle(task)
    return controller.present()


@router.get(
    "/screen/characters/{character_id}",
    response_model=DetailView,
    responses={404: {"content": _problem_resp, "model": ProblemDetail}},
)
async def character_detail(
    character_id: int,
    controller: CharacterListController = Depends(get_controller),
):
    """Detail overlay (name, species, status) for a character in the current list."""
    detail = controller.detail(character_id)
    if detail is None:
        raise HTTPException(
            status_code=404, detail=f"Character {character_id} is not in the list"
        )
    return detail


# ---------------------------------------------------------------------
# Composition root
# ---------------------------------------------------------------------


def create_app(
    cfg: Settings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """Build the application.

    Args:
        cfg: Settings to use; defaults to the env-derived module settings.
        transport: Optional httpx transport (tests pass a fake upstream here).

    Returns:
        A FastAPI app whose lifespan owns the httpx client and the controller.
    """
    cfg = cfg or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Build client -> service -> controller, mount the screen, drain on exit."""
        client_kwargs = {"transport": transport} if transport is not None else {}
        async with httpx.AsyncClient(**client_kwargs) as client:
            service = CharacterService(client, cfg.API_BASE_URL, cfg.REQUEST_TIMEOUT)
            controller = CharacterListController(service, cfg.STALE_RESULT_POLICY)
            app.state.service = service
            app.state.controller = controller
            log.info(
                "startup base_url=%s policy=%s initial_fetch=%s",
                cfg.API_BASE_URL,
                cfg.STALE_RESULT_POLICY,
                cfg.INITIAL_FETCH_ON_STARTUP,
            )
            if cfg.INITIAL_FETCH_ON_STARTUP:
                controller.mount()
            try:
                yield
            finally:
                # no cancellation: let in-flight fetches settle before closing
                await controller.aclose()
                log.info("shutdown complete")

    app = FastAPI(title="Rick & Morty Characters", version="0.1.0", lifespan=lifespan)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    metrics.install(app)
    app.include_router(router)
    return app


app = create_app()
