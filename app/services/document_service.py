import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from app.models.user import User
from app.models.project import Project
from app.models.document import Document, DocumentFolder, DocumentLink, DocumentAccess, DocumentAuditLog, DocumentPermission
from app.models.external_user import ExternalAccessLevel
from app.schemas.document import DocumentOut, LinkOut, FolderOut
from app.services.websocket_manager import websocket_manager, documents_channel, change_event
from app.utils.permissions import external_department_access, folder_ancestor_ids, has_project_access

logger = logging.getLogger(__name__)


def audit(
    db: Session,
    user: Optional[User],
    action: str,
    document_id: Optional[int] = None,
    folder_id: Optional[int] = None,
    link_id: Optional[int] = None,
    details: Optional[Dict[str, Any]] = None,
) -> DocumentAuditLog:
    """Add an audit row; committed together with the change it describes"""
    entry = DocumentAuditLog(
        document_id=document_id,
        folder_id=folder_id,
        link_id=link_id,
        user_id=user.id if user else None,
        action=action,
        details=details or {},
    )
    db.add(entry)
    return entry


def serialize_folder(folder: DocumentFolder) -> dict:
    return FolderOut.model_validate(folder).model_dump(mode="json")


def document_out(document: Document) -> DocumentOut:
    out = DocumentOut.model_validate(document)
    if document.uploader:
        out.uploader_name = document.uploader.display_name
    return out


def link_out(link: DocumentLink) -> LinkOut:
    out = LinkOut.model_validate(link)
    if link.creator:
        out.creator_name = link.creator.display_name
    return out


def serialize_document(document: Document) -> dict:
    return document_out(document).model_dump(mode="json")


def serialize_link(link: DocumentLink) -> dict:
    return link_out(link).model_dump(mode="json")


async def publish_change(project_id: int, event: str, table: str, new: Optional[dict] = None, old: Optional[dict] = None) -> None:
    try:
        await websocket_manager.publish(documents_channel(project_id), change_event(event, table, new, old))
    except Exception as e:
        logger.error(f"Error publishing {table} {event} for project {project_id}: {e}")


def can_download(db: Session, user: User, document: Document) -> bool:
    """
    Project members download freely; external users need edit_download on
    the department; everyone else needs a download grant on the document
    or one of its folders.
    """
    if user.is_external:
        level = external_department_access(db, user).get(document.department_id)
        return level == ExternalAccessLevel.EDIT_DOWNLOAD.value
    if has_project_access(db, user, document_project(db, document)):
        return True

    grants = db.query(DocumentAccess).filter(
        DocumentAccess.user_id == user.id,
        DocumentAccess.permission == DocumentPermission.DOWNLOAD.value,
    )
    if grants.filter(DocumentAccess.document_id == document.id).first():
        return True
    folders = folder_ancestor_ids(db, document.folder_id)
    return bool(folders) and grants.filter(DocumentAccess.folder_id.in_(folders)).first() is not None


def document_project(db: Session, document: Document):
    return db.query(Project).filter(Project.id == document.project_id).first()


def is_descendant(db: Session, folder_id: int, candidate_parent_id: Optional[int]) -> bool:
    """True when candidate_parent_id is folder_id itself or one of its subfolders"""
    if candidate_parent_id is None:
        return False
    return folder_id in folder_ancestor_ids(db, candidate_parent_id)


def copy_name(name: str) -> str:
    return f"Copy of {name}"
