import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from fastapi import HTTPException
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from app.config.settings import settings
from app.database import SessionLocal
from app.models.user import User
from app.models.project import Project
from app.models.chat import ChatRoom, ChatParticipant, ChatMessage, ChatSettings, ChatRoomType, DEFAULT_ALLOWED_FILE_TYPES
from app.schemas.chat import ChatAttachment, ChatMessageOut
from app.services.file_storage import file_type_allowed
from app.services.link_preview import extract_first_url, fetch_link_preview
from app.services.websocket_manager import websocket_manager, chat_channel, unread_channel, change_event

logger = logging.getLogger(__name__)

MESSAGES_TABLE = "chat_messages"


def get_chat_settings(db: Session, project_id: int) -> ChatSettings:
    """Stored settings for the project, or unsaved defaults"""
    row = db.query(ChatSettings).filter(ChatSettings.project_id == project_id).first()
    if row:
        return row
    return ChatSettings(
        project_id=project_id,
        public_chat_enabled=True,
        notifications_enabled=True,
        message_retention_days=90,
        max_file_size_mb=10,
        allowed_file_types=list(DEFAULT_ALLOWED_FILE_TYPES),
    )


def ensure_participant(db: Session, room: ChatRoom, user_id: int) -> ChatParticipant:
    participant = db.query(ChatParticipant).filter(
        ChatParticipant.room_id == room.id,
        ChatParticipant.user_id == user_id
    ).first()
    if participant:
        return participant
    participant = ChatParticipant(room_id=room.id, user_id=user_id)
    db.add(participant)
    db.commit()
    db.refresh(participant)
    return participant


def ensure_public_room(db: Session, project: Project) -> Optional[ChatRoom]:
    """The project's public room, created on first use while public chat is enabled"""
    room = db.query(ChatRoom).filter(
        ChatRoom.project_id == project.id,
        ChatRoom.room_type == ChatRoomType.PUBLIC.value
    ).first()
    if room:
        return room
    if not get_chat_settings(db, project.id).public_chat_enabled:
        return None

    room = ChatRoom(
        project_id=project.id,
        name=f"{project.name} General",
        room_type=ChatRoomType.PUBLIC.value,
        created_by=project.owner_id,
    )
    db.add(room)
    db.commit()
    db.refresh(room)
    logger.info(f"Created public chat room {room.id} for project {project.id}")
    return room


def get_or_create_private_room(db: Session, project_id: int, user_id: int, other_user_id: int) -> ChatRoom:
    my_rooms = db.query(ChatParticipant.room_id).filter(ChatParticipant.user_id == user_id)
    room = db.query(ChatRoom).join(ChatParticipant, ChatParticipant.room_id == ChatRoom.id).filter(
        ChatRoom.project_id == project_id,
        ChatRoom.room_type == ChatRoomType.PRIVATE.value,
        ChatRoom.id.in_(my_rooms),
        ChatParticipant.user_id == other_user_id
    ).first()
    if room:
        return room

    room = ChatRoom(project_id=project_id, room_type=ChatRoomType.PRIVATE.value, created_by=user_id)
    db.add(room)
    db.flush()
    db.add_all([
        ChatParticipant(room_id=room.id, user_id=user_id),
        ChatParticipant(room_id=room.id, user_id=other_user_id),
    ])
    db.commit()
    db.refresh(room)
    return room


def participant_ids(db: Session, room_id: int) -> List[int]:
    return [p.user_id for p in db.query(ChatParticipant).filter(ChatParticipant.room_id == room_id).all()]


def serialize_message(message: ChatMessage) -> dict:
    data = ChatMessageOut.model_validate(message).model_dump(mode="json")
    if message.user is not None:
        data["sender_name"] = message.user.display_name
        data["sender_avatar_url"] = message.user.avatar_url
    return data


def validate_attachment(chat_settings: ChatSettings, attachment: ChatAttachment) -> None:
    max_bytes = chat_settings.max_file_size_mb * 1024 * 1024
    if attachment.size > max_bytes:
        raise HTTPException(status_code=400, detail=f"File exceeds the {chat_settings.max_file_size_mb}MB limit")
    if not file_type_allowed(attachment.name, attachment.type, chat_settings.allowed_file_types or []):
        raise HTTPException(status_code=400, detail="File type is not allowed in this chat")


# ---------------------------------------------------------------------------
# Unread counts
# ---------------------------------------------------------------------------

def _unread_for_participant(db: Session, participant: ChatParticipant, user_id: int) -> int:
    query = db.query(ChatMessage).filter(
        ChatMessage.room_id == participant.room_id,
        ChatMessage.user_id != user_id,
        ChatMessage.deleted_at.is_(None)
    )
    if participant.last_read_at is not None:
        query = query.filter(ChatMessage.created_at > participant.last_read_at)
    return query.count()


def unread_counts(db: Session, user: User, project_id: int) -> Dict:
    rows = db.query(ChatParticipant).join(ChatRoom, ChatRoom.id == ChatParticipant.room_id).filter(
        ChatParticipant.user_id == user.id,
        ChatRoom.project_id == project_id
    ).all()
    by_room = {p.room_id: _unread_for_participant(db, p, user.id) for p in rows}
    return {"total": sum(by_room.values()), "by_room": by_room}


def global_unread_counts(db: Session, user: User) -> Dict:
    rows = db.query(ChatParticipant, ChatRoom.project_id).join(ChatRoom, ChatRoom.id == ChatParticipant.room_id).filter(
        ChatParticipant.user_id == user.id
    ).all()
    by_project: Dict[int, int] = {}
    for participant, project_id in rows:
        count = _unread_for_participant(db, participant, user.id)
        by_project[project_id] = by_project.get(project_id, 0) + count
    return {"total": sum(by_project.values()), "by_project": by_project}


def mark_room_read(db: Session, room: ChatRoom, user: User) -> ChatParticipant:
    participant = ensure_participant(db, room, user.id)
    participant.last_read_at = datetime.utcnow()
    db.commit()
    db.refresh(participant)
    return participant


# ---------------------------------------------------------------------------
# Background work
# ---------------------------------------------------------------------------

async def publish_message_event(event: str, room_id: int, project_id: int, new: Optional[dict] = None, old: Optional[dict] = None):
    await websocket_manager.publish(chat_channel(room_id), change_event(event, MESSAGES_TABLE, new, old))
    await websocket_manager.publish(unread_channel(project_id), change_event(event, MESSAGES_TABLE, new, old))


async def enrich_link_preview(message_id: int) -> None:
    """Attach a preview of the first URL in the message, then publish the update"""
    if not settings.LINK_PREVIEW_ENABLED:
        return
    db = SessionLocal()
    try:
        message = db.query(ChatMessage).filter(ChatMessage.id == message_id).first()
        url = extract_first_url(message.content) if message else None
        if not url:
            return
        preview = await run_in_threadpool(fetch_link_preview, url)
        if not preview:
            return
        message.link_url = preview["url"]
        message.link_title = preview.get("title")
        message.link_description = preview.get("description")
        message.link_image = preview.get("image")
        db.commit()
        db.refresh(message)
        payload = serialize_message(message)
        project_id = message.room.project_id
    except Exception as e:
        logger.error(f"Error building link preview for message {message_id}: {e}")
        db.rollback()
        return
    finally:
        db.close()
    await publish_message_event("UPDATE", payload["room_id"], project_id, new=payload)


def cleanup_old_messages(db: Session, now: Optional[datetime] = None) -> Dict:
    """Delete messages past each project's retention window"""
    now = now or datetime.utcnow()
    total_deleted = 0
    for chat_settings in db.query(ChatSettings).all():
        try:
            cutoff = now - timedelta(days=chat_settings.message_retention_days)
            room_ids = db.query(ChatRoom.id).filter(ChatRoom.project_id == chat_settings.project_id)
            # Replies keep pointing at deleted parents otherwise
            db.query(ChatMessage).filter(
                ChatMessage.room_id.in_(room_ids),
                ChatMessage.parent_message_id.in_(
                    db.query(ChatMessage.id).filter(ChatMessage.room_id.in_(room_ids), ChatMessage.created_at < cutoff)
                )
            ).update({ChatMessage.parent_message_id: None}, synchronize_session=False)
            deleted = db.query(ChatMessage).filter(
                ChatMessage.room_id.in_(room_ids),
                ChatMessage.created_at < cutoff
            ).delete(synchronize_session=False)
            db.commit()
            if deleted:
                logger.info(f"Deleted {deleted} messages from project {chat_settings.project_id}")
            total_deleted += deleted
        except Exception as e:
            logger.error(f"Error cleaning messages for project {chat_settings.project_id}: {e}")
            db.rollback()

    logger.info(f"Total messages deleted: {total_deleted}")
    return {"success": True, "totalDeleted": total_deleted}
