from fastapi import WebSocket
from typing import Any, Dict, List, Optional, Set
import json
import logging
from datetime import datetime

logger = logging.getLogger(__name__)

PRESENCE_CHANNEL = "user-presence-changes"


def chat_channel(room_id: int) -> str:
    return f"chat-messages-{room_id}"


def unread_channel(project_id: int) -> str:
    return f"unread-messages-{project_id}"


def documents_channel(project_id: int) -> str:
    return f"documents-{project_id}"


def change_event(event: str, table: str, new: Optional[dict] = None, old: Optional[dict] = None) -> dict:
    """Row-change payload pushed to channel subscribers"""
    return {
        "type": "postgres_changes",
        "event": event,
        "table": table,
        "new": new or {},
        "old": old or {},
    }


class WebSocketManager:
    def __init__(self):
        # Store active connections by user_id
        self.active_connections: Dict[int, Set[WebSocket]] = {}
        # Channel name -> subscribed sockets
        self.channels: Dict[str, Set[WebSocket]] = {}
        self.socket_users: Dict[WebSocket, int] = {}

    async def connect(self, websocket: WebSocket, user_id: int):
        """Register an accepted WebSocket for a user"""
        # Note: websocket.accept() is called in the main endpoint, not here

        if user_id not in self.active_connections:
            self.active_connections[user_id] = set()

        self.active_connections[user_id].add(websocket)
        self.socket_users[websocket] = user_id
        logger.info(f"User {user_id} connected. Total connections: {len(self.active_connections[user_id])}")

        await self.send_personal_message(
            {
                "type": "connection",
                "message": "Connected to realtime service",
                "timestamp": datetime.utcnow().isoformat()
            },
            websocket
        )

    def disconnect(self, websocket: WebSocket, user_id: int):
        """Disconnect a WebSocket and drop all of its subscriptions"""
        for channel in list(self.channels):
            self.unsubscribe(websocket, channel)
        self.socket_users.pop(websocket, None)

        if user_id in self.active_connections:
            self.active_connections[user_id].discard(websocket)

            # Remove user if no more connections
            if not self.active_connections[user_id]:
                del self.active_connections[user_id]

            logger.info(f"User {user_id} disconnected. Remaining connections: {len(self.active_connections.get(user_id, set()))}")

    def subscribe(self, websocket: WebSocket, channel: str):
        self.channels.setdefault(channel, set()).add(websocket)

    def unsubscribe(self, websocket: WebSocket, channel: str):
        subscribers = self.channels.get(channel)
        if not subscribers:
            return
        subscribers.discard(websocket)
        if not subscribers:
            del self.channels[channel]

    async def send_personal_message(self, message: dict, websocket: WebSocket):
        """Send a message to a specific WebSocket connection"""
        await websocket.send_text(json.dumps(message, default=str))

    async def _deliver(self, sockets: Set[WebSocket], message: dict) -> int:
        delivered = 0
        dead = set()
        for websocket in list(sockets):
            try:
                await self.send_personal_message(message, websocket)
                delivered += 1
            except Exception as e:
                logger.error(f"Error sending message to WebSocket: {e}")
                dead.add(websocket)

        # Clean up disconnected websockets
        for websocket in dead:
            user_id = self.socket_users.get(websocket)
            if user_id is not None:
                self.disconnect(websocket, user_id)
            else:
                for channel in list(self.channels):
                    self.unsubscribe(websocket, channel)
        return delivered

    async def publish(self, channel: str, payload: Dict[str, Any]) -> int:
        """Push a payload to every subscriber of a channel"""
        subscribers = self.channels.get(channel)
        if not subscribers:
            return 0
        message = dict(payload)
        message["channel"] = channel
        message.setdefault("timestamp", datetime.utcnow().isoformat())
        return await self._deliver(subscribers, message)

    async def send_notification_to_user(self, user_id: int, notification: dict):
        """Send a notification to all connections of a specific user"""
        if user_id not in self.active_connections:
            logger.info(f"User {user_id} not connected, notification will be stored in database")
            return

        message = {
            "type": "notification",
            "data": notification,
            "timestamp": datetime.utcnow().isoformat()
        }
        await self._deliver(self.active_connections[user_id], message)

    def get_connected_users(self) -> List[int]:
        """Get list of currently connected user IDs"""
        return list(self.active_connections.keys())

    def get_connection_count(self, user_id: int) -> int:
        """Get number of active connections for a user"""
        return len(self.active_connections.get(user_id, set()))

    def get_total_connections(self) -> int:
        """Get total number of active connections"""
        return sum(len(connections) for connections in self.active_connections.values())

    def get_subscriber_count(self, channel: str) -> int:
        return len(self.channels.get(channel, set()))

# Global instance
websocket_manager = WebSocketManager()
