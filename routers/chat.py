from fastapi import APIRouter, Depends, Header, HTTPException, Request
from typing import Optional
from urllib.parse import quote

from broker import Broker, now_ms
from connection import anonymous_user_id
from constants import BROKER_MODE, PUBLIC_WS_URL, WS_PATH
from logging_config import get_logger
from schemas.messages import ChatMessage
from schemas.rooms import ChatRequest, ChatResponse, NegotiateResponse

logger = get_logger(__name__)

chat_router = APIRouter(tags=["chat"])


def get_broker(request: Request) -> Broker:
    return request.app.state.broker


def ws_base_url(request: Request) -> str:
    if PUBLIC_WS_URL:
        return PUBLIC_WS_URL.rstrip('/')
    # Replace http/https with ws/wss
    base_url = str(request.base_url).rstrip('/')
    return base_url.replace("http://", "ws://").replace("https://", "wss://")


@chat_router.get("/negotiate", response_model=NegotiateResponse)
async def negotiate(request: Request, x_user_id: Optional[str] = Header(None)):
    """Tell a client where to open its WebSocket.

    The optional ``x-user-id`` header becomes the connection identity;
    without it an anonymous id is minted.
    """
    user_id = x_user_id or anonymous_user_id()
    ws_url = f"{ws_base_url(request)}{WS_PATH}?user={quote(user_id, safe='')}"
    logger.info(f"Negotiate request for user {user_id}, mode: {BROKER_MODE}")
    return NegotiateResponse(url=ws_url, mode=BROKER_MODE)


@chat_router.post("/chat", response_model=ChatResponse)
async def post_chat(chat: ChatRequest, broker: Broker = Depends(get_broker)):
    """Broadcast a message to a room over HTTP instead of a socket frame."""
    if not (isinstance(chat.room, str) and chat.room and isinstance(chat.text, str) and chat.text):
        logger.warning("Chat broadcast rejected: room/text missing or not a string")
        raise HTTPException(status_code=400, detail="room/text required")

    user = chat.user if isinstance(chat.user, str) and chat.user else "anonymous"
    message = ChatMessage(user=user, text=chat.text, ts=now_ms())
    delivered = await broker.broadcast(chat.room, message)
    logger.info(f"HTTP broadcast to room {chat.room} from {message.user}: delivered to {delivered}")
    return ChatResponse(ok=True, delivered=delivered)
