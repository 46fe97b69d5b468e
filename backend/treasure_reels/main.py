"""Treasure Reels FastAPI application.

The HTTP layer is a thin presentation adapter over the spin core: it maps
player ids to sessions, forwards each action to the session's orchestrator,
and returns the resulting state snapshot together with the events the
action produced.
"""
from fastapi import FastAPI, Request
from fastapi.responses import Response

from treasure_reels.config import settings
from treasure_reels.config_hash import get_config_hash
from treasure_reels.errors import GameError, raise_if_rejected
from treasure_reels.logic.history import export_history
from treasure_reels.logic.models import TriggerResult
from treasure_reels.middleware import ErrorHandlerMiddleware, PlayerIdMiddleware
from treasure_reels.protocol import (
    ActionResponse,
    AutoplayRequest,
    BetRequest,
    Configuration,
    InitResponse,
    StateResponse,
)
from treasure_reels.sessions import GameSession, session_registry
from treasure_reels.telemetry import SessionStartedEvent, telemetry_service
from treasure_reels.validators import (
    validate_autoplay_request,
    validate_bet_request,
    validate_bonus_buy,
)


app = FastAPI(
    debug=settings.debug,
    title="Treasure Reels",
    version="0.1.0",
    description="Spin and payout service for the Treasure Reels slot game",
)

app.add_middleware(ErrorHandlerMiddleware)
app.add_middleware(PlayerIdMiddleware)


@app.exception_handler(GameError)
async def game_error_handler(request: Request, exc: GameError):
    return exc.to_response()


def _session(request: Request) -> GameSession:
    player_id = request.state.player_id
    is_new = player_id not in session_registry
    session = session_registry.get(player_id)
    if is_new:
        telemetry_service.emit_session_started(
            SessionStartedEvent(
                player_id=player_id,
                balance=session.orchestrator.state.balance,
                config_hash=get_config_hash(session_registry.rules),
            )
        )
    return session


def _respond(session: GameSession, cursor: int, result: TriggerResult) -> dict:
    """Raise on rejection; otherwise report the action with its events.

    Spin telemetry is not sent here: the session's event sink reports every
    spin, including the ones the scheduler fires between requests.
    """
    orchestrator = session.orchestrator
    raise_if_rejected(result)
    return ActionResponse(
        message=result.message,
        spin=result.result,
        quote=orchestrator.pending_bonus_buy,
        state=orchestrator.snapshot(),
        events=[e.model_dump(mode="json") for e in session.events.since(cursor)],
        cursor=session.events.cursor,
    ).model_dump(mode="json")


@app.get("/health")
async def health() -> dict:
    """Health check endpoint."""
    return {"status": "ok"}


@app.get("/init")
async def init(request: Request) -> dict:
    """Configuration plus the player's current state."""
    session = _session(request)
    response = InitResponse(
        configuration=Configuration.from_rules(session.orchestrator.rules),
        state=session.orchestrator.snapshot(),
        cursor=session.events.cursor,
    )
    return response.model_dump(mode="json")


@app.get("/state")
async def state(request: Request, since: int = 0) -> dict:
    """Snapshot plus every event after `since`; drives the client's polling loop."""
    session = _session(request)
    return StateResponse(
        state=session.orchestrator.snapshot(),
        events=[e.model_dump(mode="json") for e in session.events.since(since)],
        cursor=session.events.cursor,
    ).model_dump(mode="json")


@app.post("/spin")
async def spin(request: Request) -> dict:
    session = _session(request)
    cursor = session.events.cursor
    return _respond(session, cursor, session.orchestrator.spin())


@app.post("/bet")
async def bet(request: Request, body: BetRequest) -> dict:
    session = _session(request)
    validate_bet_request(body, session.orchestrator.rules)
    cursor = session.events.cursor
    if body.amount is not None:
        result = session.orchestrator.set_bet(body.amount)
    else:
        result = session.orchestrator.change_bet(body.step)
    return _respond(session, cursor, result)


@app.post("/autoplay")
async def autoplay(request: Request, body: AutoplayRequest) -> dict:
    session = _session(request)
    validate_autoplay_request(body, session.orchestrator.rules)
    cursor = session.events.cursor
    return _respond(session, cursor, session.orchestrator.start_autoplay(body.count))


@app.post("/autoplay/stop")
async def autoplay_stop(request: Request) -> dict:
    session = _session(request)
    cursor = session.events.cursor
    return _respond(session, cursor, session.orchestrator.stop_autoplay())


@app.post("/bonus-buy")
async def bonus_buy(request: Request) -> dict:
    """Quote a bonus buy; the client must confirm before anything is debited."""
    session = _session(request)
    validate_bonus_buy(session.orchestrator.rules)
    cursor = session.events.cursor
    return _respond(session, cursor, session.orchestrator.request_bonus_buy())


@app.post("/bonus-buy/confirm")
async def bonus_buy_confirm(request: Request) -> dict:
    session = _session(request)
    cursor = session.events.cursor
    return _respond(session, cursor, session.orchestrator.confirm_bonus_buy())


@app.post("/bonus-buy/cancel")
async def bonus_buy_cancel(request: Request) -> dict:
    session = _session(request)
    cursor = session.events.cursor
    return _respond(session, cursor, session.orchestrator.cancel_bonus_buy())


@app.post("/bonus/acknowledge")
async def bonus_acknowledge(request: Request) -> dict:
    """Dismiss the bonus prompt and start the first free spin."""
    session = _session(request)
    cursor = session.events.cursor
    return _respond(session, cursor, session.orchestrator.acknowledge_bonus())


@app.get("/history/export")
async def history_export(request: Request) -> Response:
    session = _session(request)
    return Response(
        content=export_history(session.orchestrator.state),
        media_type="application/json",
        headers={
            "Content-Disposition": f'attachment; filename="{settings.history_filename}"'
        },
    )
