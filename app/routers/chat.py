# app/routers/chat.py
from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException, status, BackgroundTasks, UploadFile, File, Query
from sqlalchemy.orm import Session
from typing import List
import logging

from app.database import get_db
from app.models.user import User
from app.models.chat import ChatRoom, ChatParticipant, ChatMessage, ChatSettings, ChatRoomType
from app.schemas.chat import (
    ChatRoomCreate,
    ChatRoomOut,
    ChatAttachment,
    ChatMessageCreate,
    ChatMessageUpdate,
    ChatMessageOut,
    ChatSettingsUpdate,
    ChatSettingsOut,
    UnreadCounts,
    GlobalUnreadCounts,
)
from app.services import chat_service
from app.services.file_storage import file_storage, file_type_allowed
from app.services.notification_service import NotificationService
from app.utils.auth import get_current_user
from app.utils.permissions import (
    has_project_access,
    require_project_access,
    require_project_manager,
    require_room_access,
)

router = APIRouter()
logger = logging.getLogger(__name__)


def _room_out(db: Session, room: ChatRoom) -> ChatRoomOut:
    room_out = ChatRoomOut.model_validate(room)
    room_out.participant_ids = chat_service.participant_ids(db, room.id)
    return room_out


def _get_message(db: Session, message_id: int) -> ChatMessage:
    message = db.query(ChatMessage).filter(
        ChatMessage.id == message_id,
        ChatMessage.deleted_at.is_(None)
    ).first()
    if not message:
        raise HTTPException(status_code=404, detail="Message not found")
    return message


def _require_room_open(db: Session, room: ChatRoom) -> ChatSettings:
    chat_settings = chat_service.get_chat_settings(db, room.project_id)
    if room.room_type == ChatRoomType.PUBLIC.value and not chat_settings.public_chat_enabled:
        raise HTTPException(status_code=403, detail="Public chat is disabled for this project")
    return chat_settings


# ---------------------------------------------------------------------------
# Rooms
# ---------------------------------------------------------------------------

@router.get("/rooms", response_model=List[ChatRoomOut])
def get_rooms(project_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    """The project's public room plus the caller's private rooms"""
    project = require_project_access(db, current_user, project_id)

    rooms = []
    public_room = chat_service.ensure_public_room(db, project)
    if public_room and chat_service.get_chat_settings(db, project_id).public_chat_enabled:
        chat_service.ensure_participant(db, public_room, current_user.id)
        rooms.append(public_room)

    my_rooms = db.query(ChatParticipant.room_id).filter(ChatParticipant.user_id == current_user.id)
    rooms.extend(db.query(ChatRoom).filter(
        ChatRoom.project_id == project_id,
        ChatRoom.room_type == ChatRoomType.PRIVATE.value,
        ChatRoom.id.in_(my_rooms)
    ).order_by(ChatRoom.updated_at.desc()).all())
    return [_room_out(db, room) for room in rooms]


@router.post("/rooms", response_model=ChatRoomOut)
def open_private_room(room_data: ChatRoomCreate, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    project = require_project_access(db, current_user, room_data.project_id)
    if room_data.participant_id == current_user.id:
        raise HTTPException(status_code=400, detail="Cannot start a private chat with yourself")
    other = db.query(User).filter(User.id == room_data.participant_id).first()
    if not other:
        raise HTTPException(status_code=404, detail="User not found")
    if not has_project_access(db, other, project):
        raise HTTPException(status_code=400, detail="User is not a member of this project")

    room = chat_service.get_or_create_private_room(db, project.id, current_user.id, other.id)
    return _room_out(db, room)


@router.post("/rooms/{room_id}/read")
def mark_room_read(room_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    room = require_room_access(db, current_user, room_id)
    participant = chat_service.mark_room_read(db, room, current_user)
    return {"room_id": room.id, "last_read_at": participant.last_read_at}


@router.put("/rooms/{room_id}/mute")
def mute_room(room_id: int, muted: bool = True, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    room = require_room_access(db, current_user, room_id)
    participant = chat_service.ensure_participant(db, room, current_user.id)
    participant.muted = muted
    db.commit()
    return {"room_id": room.id, "muted": participant.muted}


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------

@router.get("/rooms/{room_id}/messages", response_model=List[ChatMessageOut])
def get_messages(
    room_id: int,
    limit: int = Query(200, ge=1, le=1000),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    room = require_room_access(db, current_user, room_id)
    messages = db.query(ChatMessage).filter(
        ChatMessage.room_id == room.id,
        ChatMessage.deleted_at.is_(None)
    ).order_by(ChatMessage.created_at.desc(), ChatMessage.id.desc()).limit(limit).all()
    return [chat_service.serialize_message(m) for m in reversed(messages)]


@router.post("/rooms/{room_id}/messages", response_model=ChatMessageOut, status_code=status.HTTP_201_CREATED)
def send_message(
    room_id: int,
    message_data: ChatMessageCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    room = require_room_access(db, current_user, room_id)
    chat_settings = _require_room_open(db, room)

    content = message_data.content.strip()
    attachment = message_data.attachment
    if not content and not attachment:
        raise HTTPException(status_code=400, detail="Message cannot be empty")
    if attachment:
        chat_service.validate_attachment(chat_settings, attachment)
    if message_data.parent_message_id is not None:
        parent = db.query(ChatMessage).filter(ChatMessage.id == message_data.parent_message_id).first()
        if not parent or parent.room_id != room.id:
            raise HTTPException(status_code=400, detail="Reply target is not in this room")

    message = ChatMessage(
        room_id=room.id,
        user_id=current_user.id,
        content=content,
        parent_message_id=message_data.parent_message_id,
    )
    if attachment:
        message.attachment_url = attachment.url
        message.attachment_name = attachment.name
        message.attachment_type = attachment.type
        message.attachment_size = attachment.size
    room.updated_at = datetime.utcnow()
    db.add(message)
    db.commit()
    db.refresh(message)

    payload = chat_service.serialize_message(message)
    background_tasks.add_task(chat_service.publish_message_event, "INSERT", room.id, room.project_id, payload)
    background_tasks.add_task(NotificationService.notify_chat_message, message.id)
    background_tasks.add_task(chat_service.enrich_link_preview, message.id)
    return payload


@router.post("/rooms/{room_id}/attachments", response_model=ChatAttachment)
def upload_attachment(
    room_id: int,
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Store a file for a chat message; the returned attachment is sent with the message"""
    room = require_room_access(db, current_user, room_id)
    chat_settings = _require_room_open(db, room)
    if not file_type_allowed(file.filename, file.content_type, chat_settings.allowed_file_types or []):
        raise HTTPException(status_code=400, detail="File type is not allowed in this chat")

    url, _, size = file_storage.save_file(
        file, "chat", room.project_id, room.id,
        max_size=chat_settings.max_file_size_mb * 1024 * 1024,
    )
    return ChatAttachment(url=url, name=file.filename, type=file.content_type, size=size)


@router.put("/messages/{message_id}", response_model=ChatMessageOut)
def edit_message(
    message_id: int,
    message_update: ChatMessageUpdate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    message = _get_message(db, message_id)
    if message.user_id != current_user.id:
        raise HTTPException(status_code=403, detail="You can only edit your own messages")

    old = chat_service.serialize_message(message)
    message.content = message_update.content.strip()
    message.edited_at = datetime.utcnow()
    db.commit()
    db.refresh(message)

    payload = chat_service.serialize_message(message)
    background_tasks.add_task(chat_service.publish_message_event, "UPDATE", message.room_id, message.room.project_id, payload, old)
    return payload


@router.delete("/messages/{message_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_message(
    message_id: int,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Soft-delete a message; authors and admins only"""
    message = _get_message(db, message_id)
    if message.user_id != current_user.id and not current_user.is_admin:
        raise HTTPException(status_code=403, detail="You can only delete your own messages")

    old = chat_service.serialize_message(message)
    message.deleted_at = datetime.utcnow()
    db.commit()
    background_tasks.add_task(chat_service.publish_message_event, "DELETE", message.room_id, message.room.project_id, None, old)


# ---------------------------------------------------------------------------
# Unread counts
# ---------------------------------------------------------------------------

@router.get("/unread", response_model=UnreadCounts)
def get_unread_counts(project_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    require_project_access(db, current_user, project_id)
    return chat_service.unread_counts(db, current_user, project_id)


@router.get("/unread/global", response_model=GlobalUnreadCounts)
def get_global_unread_counts(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return chat_service.global_unread_counts(db, current_user)


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

@router.get("/settings/{project_id}", response_model=ChatSettingsOut)
def get_chat_settings(project_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    require_project_access(db, current_user, project_id)
    return chat_service.get_chat_settings(db, project_id)


@router.put("/settings/{project_id}", response_model=ChatSettingsOut)
def update_chat_settings(
    project_id: int,
    settings_update: ChatSettingsUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    require_project_manager(db, current_user, project_id)
    chat_settings = db.query(ChatSettings).filter(ChatSettings.project_id == project_id).first()
    if chat_settings is None:
        chat_settings = chat_service.get_chat_settings(db, project_id)
        db.add(chat_settings)

    for field, value in settings_update.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(chat_settings, field, value)
    db.commit()
    db.refresh(chat_settings)
    logger.info(f"Chat settings of project {project_id} updated by {current_user.id}")
    return chat_settings
