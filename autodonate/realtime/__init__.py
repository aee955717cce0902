from decimal import Decimal
from typing import Optional

from flask import request
from flask_socketio import SocketIO, join_room, leave_room, emit

from autodonate import config
from autodonate.utils.logger import get_logger

logger = get_logger(__name__)

_raw = config.SOCKETIO_CORS_ORIGINS
CORS_ORIGINS = "*" if _raw == "*" else [o.strip() for o in _raw.split(",") if o.strip()]

socketio = SocketIO(
    cors_allowed_origins=CORS_ORIGINS,
    async_mode=config.SOCKETIO_ASYNC_MODE,
)


def _mask_email(e: Optional[str]) -> Optional[str]:
    if not e:
        return None
    local, _, domain = e.partition("@")
    if not domain:
        return e
    if len(local) <= 2:
        masked = local[0:1] + "***"
    else:
        masked = local[0] + "***" + local[-1]
    return masked + "@" + domain


def campaign_room(campaign_id: str) -> str:
    return f"campaign:{campaign_id}"


def donation_broadcaster(ledger):
    """Hook that pushes a committed donation to the campaign's room."""

    def _broadcast(campaign_id: str, amount: Decimal, donor_email: Optional[str]) -> None:
        progress = ledger.campaign_progress(campaign_id) or {}
        socketio.emit(
            "donation",
            {
                "campaign_id": campaign_id,
                "amount": str(amount),
                "donor": _mask_email(donor_email),
                "current_amount": str(progress.get("current_amount", "")),
                "donor_count": progress.get("donor_count"),
            },
            to=campaign_room(campaign_id),
        )

    return _broadcast


def init_socketio(app):
    socketio.init_app(app)

    @socketio.on("connect")
    def handle_connect():
        logger.debug(f"[socket] connect origin={request.headers.get('Origin')}")
        emit("connected", {"ok": True})

    @socketio.on("join_campaign")
    def on_join(data):
        cid = (data or {}).get("campaign_id")
        if not cid:
            emit("error", {"error": "campaign_id required"})
            return
        room = campaign_room(cid)
        join_room(room)
        emit("joined", {"room": room})

    @socketio.on("leave_campaign")
    def on_leave(data):
        cid = (data or {}).get("campaign_id")
        if not cid:
            return
        room = campaign_room(cid)
        leave_room(room)
        emit("left", {"room": room})
