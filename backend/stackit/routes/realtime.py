"""
StackIt Backend — WebSocket Endpoint
======================================

What:  /ws?token=<jwt>, the real-time channel.

Handshake:
    The token is the same bearer token the REST API uses. An invalid,
    expired or orphaned token closes the socket with code 4401 before it is
    accepted. On success the client is in room user:{id} and receives
    `connected`.

Client → server                       Server → client
    join_question {question_id}           joined_question {question_id}
    leave_question {question_id}          left_question {question_id}
    view_question {question_id}           question_viewed {question_id, view_count}
    vote_question {question_id,           vote_recorded {vote result}, and
                   vote_type}             vote_updated to the question room
    vote_answer {answer_id, vote_type}    (same)
    get_notification_count                notification_count {unread}
    mark_notification_read {id}           notification_count {unread}
    mark_all_notifications_read           notification_count {unread}
    ping                                  pong {timestamp}
    anything else / bad payload           error {message}

Pushed by the REST handlers: answer_added, vote_updated, notification.

Each message that needs the database opens its own short session, so an idle
socket never holds a pooled connection.
"""

import json
import logging
import time
import uuid
from typing import Any, Dict

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from stackit.constants import TargetType
from stackit.dependencies import user_from_token
from stackit.exceptions import AuthenticationError, StackItError
from stackit.models import User
from stackit.realtime import ConnectionManager, question_room
from stackit.routes.votes import broadcast_vote
from stackit.services.notification_service import notification_service
from stackit.services.question_service import question_service
from stackit.services.vote_service import vote_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Realtime"])

UNAUTHORIZED_CLOSE_CODE = 4401


def _positive_id(data: Any, key: str) -> int:
    try:
        value = int(data[key])
    except (KeyError, TypeError, ValueError):
        raise ValueError(f"{key} is required") from None
    if value <= 0:
        raise ValueError(f"{key} must be positive")
    return value


async def _unread(websocket: WebSocket, user_id: int) -> Dict[str, int]:
    async with websocket.app.state.database.session() as db:
        return {"unread": await notification_service.count_unread(db, user_id)}


async def _vote(
    websocket: WebSocket, manager: ConnectionManager, conn_id: str, user_id: int, target_type: str, data: Any
) -> None:
    target_id = _positive_id(data, f"{target_type}_id")
    vote_type = data.get("vote_type")
    if isinstance(vote_type, bool) or vote_type not in (1, -1, 0):
        raise ValueError("vote_type must be 1, -1 or 0")

    async with websocket.app.state.database.transaction() as db:
        voter = await db.get(User, user_id)
        if voter is None:
            raise AuthenticationError("User no longer exists")
        if vote_type == 0:
            outcome = await vote_service.remove_vote(db, voter, target_type, target_id)
        else:
            outcome = await vote_service.cast_vote(db, voter, target_type, target_id, vote_type)

    await manager.send(conn_id, "vote_recorded", outcome.result.model_dump(mode="json"))
    await broadcast_vote(manager, outcome)


async def _handle(
    websocket: WebSocket, manager: ConnectionManager, conn_id: str, user_id: int, message: Dict[str, Any]
) -> None:
    event = message.get("event")
    data = message.get("data") or {}
    if not isinstance(data, dict):
        raise ValueError("data must be a JSON object")

    if event == "join_question":
        question_id = _positive_id(data, "question_id")
        manager.join(conn_id, question_room(question_id))
        await manager.send(conn_id, "joined_question", {"question_id": question_id})
    elif event == "leave_question":
        question_id = _positive_id(data, "question_id")
        manager.leave(conn_id, question_room(question_id))
        await manager.send(conn_id, "left_question", {"question_id": question_id})
    elif event == "view_question":
        question_id = _positive_id(data, "question_id")
        async with websocket.app.state.database.transaction() as db:
            question = await question_service.get_question(db, question_id)
        await manager.send(
            conn_id, "question_viewed", {"question_id": question_id, "view_count": question.view_count}
        )
    elif event == "vote_question":
        await _vote(websocket, manager, conn_id, user_id, TargetType.QUESTION.value, data)
    elif event == "vote_answer":
        await _vote(websocket, manager, conn_id, user_id, TargetType.ANSWER.value, data)
    elif event == "get_notification_count":
        await manager.send(conn_id, "notification_count", await _unread(websocket, user_id))
    elif event == "mark_notification_read":
        notification_id = _positive_id(data, "notification_id")
        async with websocket.app.state.database.session() as db:
            await notification_service.mark_read(db, user_id, notification_id)
        await manager.send(conn_id, "notification_count", await _unread(websocket, user_id))
    elif event == "mark_all_notifications_read":
        async with websocket.app.state.database.session() as db:
            await notification_service.mark_all_read(db, user_id)
        await manager.send(conn_id, "notification_count", {"unread": 0})
    elif event == "ping":
        await manager.send(conn_id, "pong", {"timestamp": time.time()})
    else:
        raise ValueError(f"Unknown event '{event}'")


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, token: str = "") -> None:
    manager: ConnectionManager = websocket.app.state.realtime

    try:
        async with websocket.app.state.database.session() as db:
            user = await user_from_token(db, token)
            user_id, username = user.id, user.username
    except StackItError as e:
        logger.info("WebSocket handshake rejected: %s", e.message)
        await websocket.close(code=UNAUTHORIZED_CLOSE_CODE)
        return

    conn_id = uuid.uuid4().hex
    await manager.connect(websocket, conn_id, user_id, username)
    await manager.send(conn_id, "connected", {"user_id": user_id, "username": username})

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except json.JSONDecodeError:
                await manager.send(conn_id, "error", {"message": "Invalid JSON"})
                continue
            if not isinstance(message, dict):
                await manager.send(conn_id, "error", {"message": "Messages must be JSON objects"})
                continue
            try:
                await _handle(websocket, manager, conn_id, user_id, message)
            except ValueError as e:
                await manager.send(conn_id, "error", {"message": str(e)})
            except StackItError as e:
                await manager.send(conn_id, "error", {"message": e.message})
    except WebSocketDisconnect as e:
        logger.debug("WebSocket %s closed by client (code %s)", conn_id, e.code)
    finally:
        manager.disconnect(conn_id)
