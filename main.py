from fastapi import FastAPI, WebSocket, WebSocketDisconnect, Depends
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from typing import Optional
import json
import logging
from datetime import datetime

from app.config.security import SecurityConfig
from app.config.settings import settings
from app.database import SessionLocal
from app.models.user import User
from app.models.project import Project
from app.models.chat import ChatRoom
from app.models.external_user import ExternalUser
from app.models.presence import PresenceStatus
from app.routers import (
    auth,
    user,
    department,
    element,
    project,
    task,
    notification,
    chat,
    presence,
    documents,
    external_users,
    password_reset,
    reports,
    functions,
)
from app.services import presence_service
from app.services.file_storage import file_storage
from app.services.scheduler import task_scheduler
from app.services.websocket_manager import websocket_manager, PRESENCE_CHANNEL
from app.utils.auth import get_user_from_token, require_admin
from app.utils.permissions import can_access_room, has_project_access

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title="Project Planner API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials="*" not in settings.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Route registration
app.include_router(auth.router, prefix="/auth", tags=["Authentication"])
app.include_router(user.router, prefix="/users", tags=["Users"])
app.include_router(department.router, prefix="/departments", tags=["Departments"])
app.include_router(project.router, prefix="/projects", tags=["Projects"])
app.include_router(task.router, prefix="/tasks", tags=["Tasks"])
app.include_router(element.router, prefix="/elements", tags=["Elements"])
app.include_router(notification.router, tags=["Notifications"])
app.include_router(chat.router, prefix="/chat", tags=["Chat"])
app.include_router(presence.router)
app.include_router(presence.preferences_router)
app.include_router(documents.router, prefix="/documents", tags=["Documents"])
app.include_router(external_users.router, prefix="/external-users", tags=["External Users"])
app.include_router(password_reset.router, prefix="/password-reset-requests", tags=["Password Reset"])
app.include_router(reports.router, tags=["Reports"])
app.include_router(functions.router, prefix="/functions/v1", tags=["Functions"])

file_storage.ensure_upload_dir()
app.mount(SecurityConfig.STORAGE["public_prefix"], StaticFiles(directory=SecurityConfig.STORAGE["upload_dir"]), name="uploads")


# Startup and shutdown events
@app.on_event("startup")
async def startup_event():
    logger.info("Starting Project Planner API...")
    if settings.SCHEDULER_ENABLED:
        task_scheduler.start()
    else:
        logger.info("Scheduler disabled by configuration")


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Shutting down Project Planner API...")
    task_scheduler.stop()


# Root route
@app.get("/")
def read_root():
    return {"message": "Project Planner API"}


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/scheduler/status")
async def get_scheduler_status():
    """Get scheduler status and job information"""
    return await task_scheduler.get_scheduler_status()


@app.post("/scheduler/trigger/reports")
async def trigger_reports(current_user: User = Depends(require_admin)):
    return await task_scheduler.run_scheduled_reports()


@app.post("/scheduler/trigger/overdue")
async def trigger_overdue_check(current_user: User = Depends(require_admin)):
    """Manually trigger the overdue task check"""
    return await task_scheduler.check_overdue_tasks()


@app.post("/scheduler/trigger/cleanup")
async def trigger_cleanup(current_user: User = Depends(require_admin)):
    return await task_scheduler.cleanup_chat_messages()


@app.post("/scheduler/trigger/presence")
async def trigger_presence_sweep(current_user: User = Depends(require_admin)):
    return await task_scheduler.sweep_presence()


# ---------------------------------------------------------------------------
# Realtime channel
# ---------------------------------------------------------------------------

def can_subscribe(user: User, channel: str) -> bool:
    """Channel names carry the room or project id they belong to"""
    if channel == PRESENCE_CHANNEL:
        return True
    prefix, _, raw_id = channel.rpartition("-")
    if not raw_id.isdigit():
        return False
    item_id = int(raw_id)

    db = SessionLocal()
    try:
        db_user = db.query(User).filter(User.id == user.id).first()
        if db_user is None:
            return False
        if prefix == "chat-messages":
            room = db.query(ChatRoom).filter(ChatRoom.id == item_id).first()
            return room is not None and can_access_room(db, db_user, room)
        if prefix in ("unread-messages", "documents"):
            project = db.query(Project).filter(Project.id == item_id).first()
            if project is None:
                return False
            if db_user.is_external:
                return prefix == "documents" and any(
                    e.project_id == project.id and e.has_access
                    for e in db.query(ExternalUser).filter(ExternalUser.user_id == db_user.id).all()
                )
            return has_project_access(db, db_user, project)
        return False
    finally:
        db.close()


async def _set_presence(user_id: int, status: str):
    db = SessionLocal()
    try:
        row, old, event = presence_service.set_presence(db, user_id, status)
        new = presence_service.serialize_presence(row)
    except Exception as e:
        logger.error(f"Error updating presence of user {user_id}: {e}")
        db.rollback()
        return
    finally:
        db.close()
    if old is None or old.get("status") != new["status"]:
        await presence_service.publish_presence(event, new, old)


def _authenticate(token: Optional[str]) -> Optional[User]:
    if not token:
        return None
    db = SessionLocal()
    try:
        user = get_user_from_token(token, db)
        if user is not None:
            db.expunge(user)
        return user
    finally:
        db.close()


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, token: Optional[str] = None):
    await websocket.accept()

    user = _authenticate(token)
    if user is None:
        await websocket.send_text(json.dumps({"type": "error", "message": "Authentication required"}))
        await websocket.close(code=4401)
        return

    await websocket_manager.connect(websocket, user.id)
    await _set_presence(user.id, PresenceStatus.ONLINE.value)

    try:
        while True:
            data = await websocket.receive_text()
            try:
                received = json.loads(data)
            except json.JSONDecodeError:
                await websocket_manager.send_personal_message({"type": "error", "message": "Invalid JSON"}, websocket)
                continue

            message_type = received.get("type") if isinstance(received, dict) else None
            channel = received.get("channel") if isinstance(received, dict) else None

            if message_type == "subscribe":
                if not channel or not can_subscribe(user, channel):
                    await websocket_manager.send_personal_message(
                        {"type": "error", "channel": channel, "message": "Not allowed to subscribe to this channel"},
                        websocket
                    )
                    continue
                websocket_manager.subscribe(websocket, channel)
                await websocket_manager.send_personal_message({"type": "subscribed", "channel": channel}, websocket)

            elif message_type == "unsubscribe":
                if channel:
                    websocket_manager.unsubscribe(websocket, channel)
                await websocket_manager.send_personal_message({"type": "unsubscribed", "channel": channel}, websocket)

            elif message_type == "heartbeat":
                await _set_presence(user.id, PresenceStatus.ONLINE.value)
                await websocket_manager.send_personal_message(
                    {"type": "pong", "timestamp": datetime.utcnow().isoformat()}, websocket
                )

            elif message_type == "ping":
                await websocket_manager.send_personal_message(
                    {"type": "pong", "timestamp": datetime.utcnow().isoformat()}, websocket
                )

            else:
                await websocket_manager.send_personal_message(
                    {"type": "error", "message": f"Unknown message type: {message_type}"}, websocket
                )

    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected for user {user.id}")
    except Exception as e:
        logger.error(f"WebSocket error for user {user.id}: {e}")
    finally:
        websocket_manager.disconnect(websocket, user.id)
        if websocket_manager.get_connection_count(user.id) == 0:
            await _set_presence(user.id, PresenceStatus.OFFLINE.value)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
