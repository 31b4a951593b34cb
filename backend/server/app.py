from __future__ import annotations

import contextlib
import functools
import json
from http import HTTPStatus
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import ValidationError
from starlette.applications import Starlette
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse
from starlette.routing import Route

from records.admin import AdminService, parse_cache_payload
from records.errors import ImportStepError, InvalidPayloadError, RecordStepError
from records.identity import IdentityResolver
from records.recorder import GameRecorder, parse_snapshot
from records.stats import HistoryService
from scoring.calculator import score_round, standings_key
from scoring.exceptions import InvalidPrestigeOrderError
from scoring.prestige import bonus_color, validate_order
from scoring.winner import resolve_winner
from server.settings import ScorerServerSettings
from server.types import ResetRequest, ScoreRequest
from shared.dal import StoreError, StoreUnavailableError
from shared.db import Database, SqliteRowStore
from shared.logging import setup_logging

logger = structlog.get_logger()

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Awaitable, Callable

    from starlette.requests import Request

    from shared.dal import RowStore


def _error(message: str, status: int, **extra: Any) -> JSONResponse:  # noqa: ANN401
    return JSONResponse({"ok": False, "error": message, **extra}, status_code=status)


async def _read_json(request: Request) -> dict[str, Any]:
    """Parse the request body as a JSON object; an empty body reads as ``{}``."""
    raw_body = await request.body()
    if not raw_body or raw_body.strip() == b"":
        return {}
    try:
        body = json.loads(raw_body)
    except (ValueError, json.JSONDecodeError) as e:  # fmt: skip
        raise InvalidPayloadError("Invalid JSON body") from e
    if not isinstance(body, dict):
        raise InvalidPayloadError("JSON body must be an object")
    return body


def json_endpoint(handler: Callable[[Request], Awaitable[JSONResponse]]) -> Callable[[Request], Awaitable[JSONResponse]]:
    """Convert domain exceptions raised by a handler into ``{ok: false, error}`` responses."""

    @functools.wraps(handler)
    async def wrapper(request: Request) -> JSONResponse:
        try:
            return await handler(request)
        except InvalidPayloadError as e:
            return _error(str(e), HTTPStatus.BAD_REQUEST)
        except RecordStepError as e:
            return _error(
                str(e),
                HTTPStatus.INTERNAL_SERVER_ERROR,
                step=e.step.value,
                appliedSteps=[s.value for s in e.applied_steps],
            )
        except ImportStepError as e:
            return _error(str(e), HTTPStatus.INTERNAL_SERVER_ERROR, step=e.step.value)
        except StoreUnavailableError as e:
            logger.warning("store unavailable", path=request.url.path, error=str(e))
            return _error(f"Store unavailable: {e}", HTTPStatus.SERVICE_UNAVAILABLE)
        except StoreError as e:
            logger.warning("store error", path=request.url.path, error=str(e))
            return _error(f"Store error: {e}", HTTPStatus.INTERNAL_SERVER_ERROR)
        except Exception:
            logger.exception("unhandled error", path=request.url.path)
            return _error("Internal server error", HTTPStatus.INTERNAL_SERVER_ERROR)

    return wrapper


async def health(_request: Request) -> JSONResponse:
    return JSONResponse({"ok": True, "status": "ok"})


@json_endpoint
async def get_history(request: Request) -> JSONResponse:
    history: HistoryService = request.app.state.history_service
    view = await history.load()
    return JSONResponse({"ok": True, **view.model_dump(mode="json", by_alias=True)})


@json_endpoint
async def sync_game(request: Request) -> JSONResponse:
    recorder: GameRecorder = request.app.state.recorder
    body = await _read_json(request)
    snapshot = parse_snapshot(body.get("game"))
    receipt = await recorder.record_game(snapshot)
    return JSONResponse(
        {
            "ok": True,
            "gameId": receipt.game_id,
            "winner": receipt.winner,
            "playerIds": list(receipt.player_ids),
            "lineupId": receipt.lineup_id,
        },
    )


@json_endpoint
async def migrate_cache(request: Request) -> JSONResponse:
    admin: AdminService = request.app.state.admin_service
    payload = parse_cache_payload(await _read_json(request))
    counts = await admin.import_cache(payload)
    return JSONResponse({"ok": True, "counts": counts.model_dump()})


@json_endpoint
async def reset_store(request: Request) -> JSONResponse:
    settings: ScorerServerSettings = request.app.state.settings
    if not settings.allow_reset:
        return _error("Reset is disabled", HTTPStatus.FORBIDDEN)
    admin: AdminService = request.app.state.admin_service
    try:
        req = ResetRequest.model_validate(await _read_json(request))
    except ValidationError as e:
        raise InvalidPayloadError(f"Invalid reset payload: {e.errors()[0]['msg']}") from e
    deleted = await admin.reset(keep_players=req.keep_players)
    return JSONResponse({"ok": True, "deleted": deleted.model_dump()})


@json_endpoint
async def search_players(request: Request) -> JSONResponse:
    resolver: IdentityResolver = request.app.state.resolver
    result = await resolver.search(request.query_params.get("q", ""))
    data = result.model_dump(mode="json", by_alias=True)
    return JSONResponse({"ok": True, **data})


@json_endpoint
async def score_game(request: Request) -> JSONResponse:
    body = await _read_json(request)
    try:
        req = ScoreRequest.model_validate(body)
        order = validate_order(req.prestige_order)
    except ValidationError as e:
        raise InvalidPayloadError(f"Invalid score payload: {e.error_count()} error(s): {e.errors()[0]['msg']}") from e
    except InvalidPrestigeOrderError as e:
        raise InvalidPayloadError(str(e)) from e

    scored = score_round(order, req.players)
    # the manual override goes to the first flagged player in entry order
    winner = resolve_winner(scored)
    ranked = sorted(scored, key=standings_key)
    return JSONResponse(
        {
            "ok": True,
            "players": [p.model_dump(mode="json", by_alias=True) for p in ranked],
            "winner": winner,
            "bonusColor": bonus_color(order).value,
        },
    )


def create_app(
    settings: ScorerServerSettings | None = None,
    store: RowStore | None = None,  # built from settings.database_path when omitted
) -> Starlette:
    if settings is None:  # pragma: no cover
        settings = ScorerServerSettings()

    db: Database | None = None
    if store is None:
        db = Database(settings.database_path, unique_canonical=settings.unique_canonical)
        db.connect()
        store = SqliteRowStore(db)

    routes = [
        Route("/health", health, methods=["GET"], name="health"),
        Route("/api/history", get_history, methods=["GET"], name="history"),
        Route("/api/sync", sync_game, methods=["POST"], name="sync_game"),
        Route("/api/migrate", migrate_cache, methods=["POST"], name="migrate_cache"),
        Route("/api/reset", reset_store, methods=["POST"], name="reset_store"),
        Route("/api/players/search", search_players, methods=["GET"], name="search_players"),
        Route("/api/score", score_game, methods=["POST"], name="score_game"),
    ]

    @contextlib.asynccontextmanager
    async def lifespan(_app: Starlette) -> AsyncGenerator[None]:
        yield
        if db is not None:
            db.close()

    app = Starlette(routes=routes, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type"],
    )

    resolver = IdentityResolver(store)
    app.state.settings = settings
    app.state.db = db
    app.state.store = store
    app.state.resolver = resolver
    app.state.recorder = GameRecorder(store, resolver)
    app.state.history_service = HistoryService(store)
    app.state.admin_service = AdminService(store)

    logger.info("scorer server ready", database=settings.database_path if db is not None else None)
    return app


def get_app() -> Starlette:  # pragma: no cover
    """Factory function for uvicorn --factory server.app:get_app."""
    s = ScorerServerSettings()
    setup_logging(log_dir=s.log_dir, level=s.log_level, log_format=s.log_format)
    return create_app(settings=s)
