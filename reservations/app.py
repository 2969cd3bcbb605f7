"""FastAPI application — Twilio speech webhooks and the admin API.

Endpoints:

  POST /twilio/voice                  Call start: greeting TwiML with <Gather input="speech">
  POST /twilio/gather                 One caller turn: SpeechResult in, <Say> + <Gather>/<Hangup/> out
  POST /twilio/status                 Call status callback: drops the session when the call ends
  POST /api/turn                      JSON turn endpoint (same contract, other transports)
  GET  /health                        Health check

  GET  /api/sessions                  Admin: active calls
  GET  /api/sessions/{call_id}        Admin: one call in detail (PII redacted)
  GET  /api/config, POST /api/config  Admin: runtime time-policy overrides
  WS   /api/sessions/{call_id}/trace  Admin: live turn trace (?token=)

The Twilio flow:
  1. Incoming call hits POST /twilio/voice, we greet and <Gather> speech
  2. Twilio posts the recognized text to /twilio/gather
  3. The orchestrator runs the turn; we <Say> the reply and either
     <Gather> again or <Hangup/>
"""

from __future__ import annotations

from dotenv import load_dotenv
load_dotenv()

import logging
import re
import time
from typing import Optional

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(name)-20s %(levelname)-7s %(message)s",
)

from fastapi import Depends, FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse, Response

from reservations import twiml
from reservations.auth import AdminSurface, require_admin, require_trace_access
from reservations.booking import build_backend
from reservations.config import runtime_settings, settings
from reservations.errors import ConfigurationError
from reservations.models.slots import normalize_time
from reservations.nlu.clients import build_client
from reservations.notify import OwnerNotifier
from reservations.orchestrator import Orchestrator, TurnRequest
from reservations.session import SessionStore, redact_pii

log = logging.getLogger("reservations.app")

_START_TIME = time.time()

_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_-]{1,64}$")

# Twilio CallStatus values after which the call is gone
_ENDED_STATUSES = {"completed", "busy", "failed", "no-answer", "canceled"}

GREETINGS = {
    "it": "{restaurant}, sono {assistant}. Come posso aiutarla?",
    "en": "{restaurant}, this is {assistant}. How can I help you?",
}


def _validate_id(value: str) -> str:
    if not _ID_PATTERN.match(value):
        raise HTTPException(status_code=400, detail="Invalid call id")
    return value


def _xml(content: str) -> Response:
    return Response(content=content, media_type="application/xml")


def build_orchestrator() -> Orchestrator:
    """Wire the orchestrator from settings.

    Raises ConfigurationError when the completion service has no credential.
    """
    notifier = OwnerNotifier(
        account_sid=settings.twilio_account_sid,
        auth_token=settings.twilio_auth_token,
        from_number=settings.twilio_phone_number,
        owner_number=settings.owner_phone_number,
        restaurant_name=settings.restaurant_name,
    )
    return Orchestrator(
        nlu=build_client(settings),
        backend=build_backend(settings),
        notifier=notifier,
        store=SessionStore(settings.session_ttl_seconds),
        booking_timeout=settings.booking_timeout_seconds,
    )


def create_app(orchestrator: Optional[Orchestrator] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    ``orchestrator`` is built from settings on first use when not given;
    a configuration error then surfaces per call, as a spoken apology.
    """
    app = FastAPI(
        title="Restaurant Voice Reservations",
        description="Phone booking agent over Twilio speech recognition",
        version="0.1.0",
    )
    app.state.orchestrator = orchestrator

    def get_orchestrator() -> Orchestrator:
        if app.state.orchestrator is None:
            app.state.orchestrator = build_orchestrator()
        return app.state.orchestrator

    # ── Health check ───────────────────────────────────────────

    @app.get("/health")
    async def health() -> JSONResponse:
        """Lightweight health check — confirms the event loop is responsive."""
        uptime = round(time.time() - _START_TIME, 1)
        return JSONResponse({"status": "ok", "uptime": uptime})

    # ── Twilio webhooks ────────────────────────────────────────

    @app.post("/twilio/voice")
    async def twilio_voice(request: Request) -> Response:
        """Incoming call: greet and start listening."""
        form = await request.form()
        call_sid = str(form.get("CallSid", ""))
        caller = str(form.get("From", ""))
        language = settings.default_language

        try:
            get_orchestrator()
        except ConfigurationError as e:
            log.error("Cannot take call %s: %s", call_sid, e)
            return _xml(twiml.apology(language))
        except Exception:
            log.exception("Cannot take call %s", call_sid)
            return _xml(twiml.apology(language))

        log.info("Incoming call %s from %s", call_sid, redact_pii(caller))
        greeting = GREETINGS.get(language, GREETINGS["en"]).format(
            restaurant=settings.restaurant_name, assistant=settings.assistant_name,
        )
        return _xml(twiml.gather(greeting, language, action="/twilio/gather"))

    @app.post("/twilio/gather")
    async def twilio_gather(request: Request) -> Response:
        """One caller turn from <Gather input="speech">."""
        form = await request.form()
        call_sid = str(form.get("CallSid", ""))
        turn = TurnRequest(
            call_id=call_sid,
            recognized_text=str(form.get("SpeechResult", "")),
            caller_id=str(form.get("From", "")),
        )

        try:
            result = await get_orchestrator().handle_turn(turn)
        except ConfigurationError as e:
            log.error("Configuration error on call %s: %s", call_sid, e)
            return _xml(twiml.apology(settings.default_language))
        except Exception:
            log.exception("Turn failed on call %s", call_sid)
            return _xml(twiml.apology(settings.default_language))

        if result.should_end_call:
            log.info("Call %s: ending after reply", call_sid)
            return _xml(twiml.hangup(result.reply_text, result.language))
        return _xml(twiml.gather(result.reply_text, result.language, action="/twilio/gather"))

    @app.post("/twilio/status")
    async def twilio_status(request: Request) -> JSONResponse:
        """Twilio status callback — forget the call once it is over."""
        form = await request.form()
        call_sid = str(form.get("CallSid", ""))
        call_status = str(form.get("CallStatus", ""))

        removed = False
        if call_status in _ENDED_STATUSES and app.state.orchestrator is not None:
            removed = app.state.orchestrator.end_call(call_sid)
        log.info("Call %s status %s", call_sid, call_status or "?")
        return JSONResponse({"call_id": call_sid, "status": call_status, "removed": removed})

    # ── JSON turn endpoint ─────────────────────────────────────

    @app.post("/api/turn")
    async def api_turn(turn: TurnRequest) -> JSONResponse:
        _validate_id(turn.call_id)
        try:
            result = await get_orchestrator().handle_turn(turn)
        except ConfigurationError as e:
            log.error("Configuration error on call %s: %s", turn.call_id, e)
            return JSONResponse({"error": "Service not configured"}, status_code=503)
        return JSONResponse(result.model_dump(mode="json"))

    # ── Admin API ──────────────────────────────────────────────

    @app.get("/api/sessions", dependencies=[Depends(require_admin(AdminSurface.CALLS))])
    async def list_sessions() -> JSONResponse:
        """Return summary of all active calls."""
        if app.state.orchestrator is None:
            return JSONResponse({"sessions": [], "count": 0})
        sessions = app.state.orchestrator.store.all()
        return JSONResponse({
            "sessions": [s.to_dict() for s in sessions.values()],
            "count": len(sessions),
        })

    @app.get("/api/sessions/{call_id}", dependencies=[Depends(require_admin(AdminSurface.CALLS))])
    async def get_session_detail(call_id: str) -> JSONResponse:
        """Return detailed state of a single call."""
        _validate_id(call_id)
        session = None
        if app.state.orchestrator is not None:
            session = app.state.orchestrator.store.get(call_id)
        if not session:
            return JSONResponse({"error": "Session not found"}, status_code=404)
        return JSONResponse(session.to_dict(detail=True))

    @app.get("/api/config", dependencies=[Depends(require_admin(AdminSurface.TIME_POLICY))])
    async def get_config() -> JSONResponse:
        return JSONResponse(runtime_settings)

    @app.post("/api/config", dependencies=[Depends(require_admin(AdminSurface.TIME_POLICY))])
    async def update_config(request: Request) -> JSONResponse:
        """Override time-policy settings; applies to calls started afterwards."""
        body = await request.json()
        if not isinstance(body, dict):
            return JSONResponse({"error": "Expected a JSON object"}, status_code=400)

        updates = {}
        for key, value in body.items():
            if key not in runtime_settings:
                return JSONResponse({"error": f"Unknown setting: {key}"}, status_code=400)
            if key == "bare_hour_is_evening":
                if not isinstance(value, bool):
                    return JSONResponse({"error": f"{key} must be a boolean"}, status_code=400)
                updates[key] = value
            else:
                normalized = normalize_time(value)
                if normalized is None:
                    return JSONResponse({"error": f"{key} must be HH:MM[:SS]"}, status_code=400)
                updates[key] = normalized

        runtime_settings.update(updates)
        log.info("Config updated: %s", runtime_settings)
        return JSONResponse(runtime_settings)

    # ── Trace stream WebSocket ─────────────────────────────────

    @app.websocket("/api/sessions/{call_id}/trace")
    async def trace_stream(websocket: WebSocket, call_id: str, token: str = "") -> None:
        """Stream the call's trace events as they are recorded."""
        try:
            await require_trace_access(websocket, token)
        except HTTPException:
            return

        session = None
        if app.state.orchestrator is not None:
            session = app.state.orchestrator.store.get(call_id)
        if not session:
            await websocket.close(code=4004, reason="Session not found")
            return

        await websocket.accept()
        queue = session.trace.subscribe()
        try:
            for event in session.trace.events:
                await websocket.send_json(event)
            while True:
                event = await queue.get()
                await websocket.send_json(event)
        except WebSocketDisconnect:
            pass
        except Exception as e:
            log.warning("Trace stream error for %s: %s", call_id, e)
        finally:
            session.trace.unsubscribe(queue)

    return app


# ── Module-level app instance for uvicorn ──────────────────────

app = create_app()


if __name__ == "__main__":
    import uvicorn

    for warning in settings.validate_startup():
        log.warning(warning)
    uvicorn.run(app, host=settings.host, port=settings.port)
