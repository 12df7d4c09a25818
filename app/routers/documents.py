# app/routers/documents.py
from fastapi import APIRouter, Depends, HTTPException, status, BackgroundTasks, UploadFile, File, Form, Request
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session
from typing import List, Optional
import logging

from app.database import get_db
from app.models.user import User
from app.models.project import Project
from app.models.department import Department
from app.models.document import Document, DocumentFolder, DocumentLink, DocumentAccess, DocumentAuditLog
from app.models.external_user import ExternalUser, UPLOAD_ACCESS_LEVELS
from app.schemas.document import (
    FolderCreate,
    FolderRename,
    FolderMove,
    FolderOut,
    DocumentRename,
    MoveToFolder,
    MoveToDepartment,
    BulkMoveToDepartment,
    DuplicateItem,
    DocumentOut,
    LinkCreate,
    LinkUpdate,
    LinkOut,
    FolderContents,
    Breadcrumb,
    AccessGrant,
    AccessUpdate,
    AccessOut,
)
from app.services import document_service
from app.services.external_user_service import log_activity
from app.services.file_storage import file_storage
from app.services.notification_service import NotificationService
from app.utils.auth import get_current_user
from app.utils.permissions import (
    get_project_or_404,
    has_project_access,
    can_view_document_item,
    can_manage_document_item,
    external_department_access,
    get_active_external_user,
)

router = APIRouter()
logger = logging.getLogger(__name__)


def _client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


def _check_department(db: Session, project_id: int, department_id: Optional[int]):
    if department_id is None:
        return
    department = db.query(Department).filter(Department.id == department_id).first()
    if not department or department.project_id != project_id:
        raise HTTPException(status_code=400, detail="Department does not belong to this project")


def _get_folder(db: Session, folder_id: int) -> DocumentFolder:
    folder = db.query(DocumentFolder).filter(DocumentFolder.id == folder_id).first()
    if not folder:
        raise HTTPException(status_code=404, detail="Folder not found")
    return folder


def _get_document(db: Session, document_id: int) -> Document:
    document = db.query(Document).filter(Document.id == document_id).first()
    if not document:
        raise HTTPException(status_code=404, detail="Document not found")
    return document


def _get_link(db: Session, link_id: int) -> DocumentLink:
    link = db.query(DocumentLink).filter(DocumentLink.id == link_id).first()
    if not link:
        raise HTTPException(status_code=404, detail="Link not found")
    return link


def _check_target_folder(db: Session, project_id: int, folder_id: Optional[int]) -> Optional[DocumentFolder]:
    if folder_id is None:
        return None
    folder = _get_folder(db, folder_id)
    if folder.project_id != project_id:
        raise HTTPException(status_code=400, detail="Folder does not belong to this project")
    return folder


def _require_contributor(db: Session, user: User, project: Project, department_id: Optional[int]) -> Optional[ExternalUser]:
    """
    Members may add content anywhere in the project; external users only in
    a department where they hold an upload level. Returns the external row
    for activity logging.
    """
    if user.is_external:
        level = external_department_access(db, user).get(department_id) if department_id is not None else None
        if level not in UPLOAD_ACCESS_LEVELS:
            raise HTTPException(status_code=403, detail="Your access level does not allow uploads to this department")
        return get_active_external_user(db, user, department_id)
    if not has_project_access(db, user, project):
        raise HTTPException(status_code=403, detail="You do not have access to this project")
    return None


def _require_editor(db: Session, user: User, project: Project, department_id: Optional[int], owner_id: Optional[int]):
    """Managers and department leads edit anything; contributors edit what they created"""
    if can_manage_document_item(db, user, project, department_id):
        return
    if owner_id == user.id:
        if user.is_external:
            _require_contributor(db, user, project, department_id)
        return
    raise HTTPException(status_code=403, detail="You do not have permission to modify this item")


def _require_manager(db: Session, user: User, project: Project, department_id: Optional[int]):
    if not can_manage_document_item(db, user, project, department_id):
        raise HTTPException(status_code=403, detail="Only project managers or department leads can manage access")


def _subtree_folder_ids(db: Session, folder_id: int) -> List[int]:
    ids = [folder_id]
    pending = [folder_id]
    while pending:
        children = db.query(DocumentFolder.id).filter(DocumentFolder.parent_folder_id.in_(pending)).all()
        pending = [child.id for child in children if child.id not in ids]
        ids.extend(pending)
    return ids


def _notify_external(background_tasks: BackgroundTasks, external: Optional[ExternalUser], action: str,
                     item_type: str, item_name: str, department_id: Optional[int]):
    if external and department_id is not None:
        background_tasks.add_task(
            NotificationService.notify_external_activity, external.id, action, item_type, item_name, department_id
        )


# ---------------------------------------------------------------------------
# Browsing
# ---------------------------------------------------------------------------

@router.get("/projects/{project_id}", response_model=FolderContents)
def get_folder_contents(
    project_id: int,
    folder_id: Optional[int] = None,
    department_id: Optional[int] = None,
    search: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """One folder level of a project (the root when no folder is given)"""
    project = get_project_or_404(db, project_id)
    if folder_id is not None:
        folder = _check_target_folder(db, project.id, folder_id)
        if not can_view_document_item(db, current_user, project, folder.department_id, folder_id=folder.id):
            raise HTTPException(status_code=403, detail="You do not have access to this folder")

    folders = db.query(DocumentFolder).filter(
        DocumentFolder.project_id == project.id,
        DocumentFolder.parent_folder_id == folder_id
    )
    documents = db.query(Document).filter(Document.project_id == project.id, Document.folder_id == folder_id)
    links = db.query(DocumentLink).filter(DocumentLink.project_id == project.id, DocumentLink.folder_id == folder_id)
    if department_id is not None:
        folders = folders.filter(DocumentFolder.department_id == department_id)
        documents = documents.filter(Document.department_id == department_id)
        links = links.filter(DocumentLink.department_id == department_id)
    if search:
        pattern = f"%{search.strip()}%"
        folders = folders.filter(DocumentFolder.name.ilike(pattern))
        documents = documents.filter(Document.name.ilike(pattern))
        links = links.filter(DocumentLink.title.ilike(pattern))

    visible_folders = [
        f for f in folders.order_by(DocumentFolder.name).all()
        if can_view_document_item(db, current_user, project, f.department_id, folder_id=f.id)
    ]
    visible_documents = [
        d for d in documents.order_by(Document.created_at.desc()).all()
        if can_view_document_item(db, current_user, project, d.department_id, document_id=d.id, parent_folder_id=d.folder_id)
    ]
    visible_links = [
        l for l in links.order_by(DocumentLink.created_at.desc()).all()
        if can_view_document_item(db, current_user, project, l.department_id, link_id=l.id, parent_folder_id=l.folder_id)
    ]
    return FolderContents(
        folders=[FolderOut.model_validate(f) for f in visible_folders],
        documents=[document_service.document_out(d) for d in visible_documents],
        links=[document_service.link_out(l) for l in visible_links],
    )


@router.get("/folders/{folder_id}/breadcrumbs", response_model=List[Breadcrumb])
def get_breadcrumbs(folder_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    folder = _get_folder(db, folder_id)
    project = get_project_or_404(db, folder.project_id)
    if not can_view_document_item(db, current_user, project, folder.department_id, folder_id=folder.id):
        raise HTTPException(status_code=403, detail="You do not have access to this folder")

    chain = []
    current = folder
    seen = set()
    while current is not None and current.id not in seen:
        seen.add(current.id)
        chain.append(Breadcrumb(id=current.id, name=current.name))
        current = _get_folder(db, current.parent_folder_id) if current.parent_folder_id else None
    return [Breadcrumb(id=None, name="Documents")] + list(reversed(chain))


# ---------------------------------------------------------------------------
# Folders
# ---------------------------------------------------------------------------

@router.post("/folders", response_model=FolderOut, status_code=status.HTTP_201_CREATED)
def create_folder(
    folder_data: FolderCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    project = get_project_or_404(db, folder_data.project_id)
    parent = _check_target_folder(db, project.id, folder_data.parent_folder_id)
    department_id = folder_data.department_id
    if department_id is None and parent is not None:
        department_id = parent.department_id
    _check_department(db, project.id, department_id)
    _require_contributor(db, current_user, project, department_id)

    folder = DocumentFolder(
        project_id=project.id,
        department_id=department_id,
        parent_folder_id=folder_data.parent_folder_id,
        name=folder_data.name,
        created_by=current_user.id,
    )
    db.add(folder)
    db.flush()
    document_service.audit(db, current_user, "folder_created", folder_id=folder.id, details={"name": folder.name})
    db.commit()
    db.refresh(folder)

    background_tasks.add_task(document_service.publish_change, project.id, "INSERT", "document_folders", document_service.serialize_folder(folder))
    return folder


@router.put("/folders/{folder_id}", response_model=FolderOut)
def rename_folder(
    folder_id: int,
    rename: FolderRename,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    folder = _get_folder(db, folder_id)
    project = get_project_or_404(db, folder.project_id)
    _require_editor(db, current_user, project, folder.department_id, folder.created_by)

    old = document_service.serialize_folder(folder)
    document_service.audit(db, current_user, "folder_renamed", folder_id=folder.id, details={"from": folder.name, "to": rename.name})
    folder.name = rename.name
    db.commit()
    db.refresh(folder)

    background_tasks.add_task(document_service.publish_change, project.id, "UPDATE", "document_folders", document_service.serialize_folder(folder), old)
    return folder


@router.put("/folders/{folder_id}/move", response_model=FolderOut)
def move_folder(
    folder_id: int,
    move: FolderMove,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    folder = _get_folder(db, folder_id)
    project = get_project_or_404(db, folder.project_id)
    _require_editor(db, current_user, project, folder.department_id, folder.created_by)
    _check_target_folder(db, project.id, move.parent_folder_id)
    if document_service.is_descendant(db, folder.id, move.parent_folder_id):
        raise HTTPException(status_code=400, detail="A folder cannot be moved into itself or one of its subfolders")

    old = document_service.serialize_folder(folder)
    document_service.audit(
        db, current_user, "folder_moved", folder_id=folder.id,
        details={"from": folder.parent_folder_id, "to": move.parent_folder_id}
    )
    folder.parent_folder_id = move.parent_folder_id
    db.commit()
    db.refresh(folder)

    background_tasks.add_task(document_service.publish_change, project.id, "UPDATE", "document_folders", document_service.serialize_folder(folder), old)
    return folder


@router.delete("/folders/{folder_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_folder(
    folder_id: int,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Delete a folder together with its subfolders, documents and links"""
    folder = _get_folder(db, folder_id)
    project = get_project_or_404(db, folder.project_id)
    _require_editor(db, current_user, project, folder.department_id, folder.created_by)

    subtree = _subtree_folder_ids(db, folder.id)
    file_urls = [d.file_url for d in db.query(Document).filter(Document.folder_id.in_(subtree)).all()]
    old = document_service.serialize_folder(folder)

    document_service.audit(db, current_user, "folder_deleted", folder_id=folder.id, details={"name": folder.name, "files": len(file_urls)})
    db.delete(folder)
    db.commit()

    for url in file_urls:
        file_storage.delete_file(url)
    logger.info(f"Folder {folder_id} deleted by {current_user.email} ({len(file_urls)} files)")
    background_tasks.add_task(document_service.publish_change, project.id, "DELETE", "document_folders", None, old)


# ---------------------------------------------------------------------------
# Access grants
# ---------------------------------------------------------------------------

def _access_target(db: Session, document_id: Optional[int], folder_id: Optional[int], link_id: Optional[int]):
    """(project, department_id) of the single item a grant points at"""
    if document_id is not None:
        item = _get_document(db, document_id)
    elif folder_id is not None:
        item = _get_folder(db, folder_id)
    elif link_id is not None:
        item = _get_link(db, link_id)
    else:
        raise HTTPException(status_code=400, detail="Exactly one of document_id, folder_id or link_id is required")
    return get_project_or_404(db, item.project_id), item.department_id


def _access_out(access: DocumentAccess) -> AccessOut:
    out = AccessOut.model_validate(access)
    if access.user:
        out.user_name = access.user.display_name
        out.user_email = access.user.email
    return out


@router.get("/access", response_model=List[AccessOut])
def get_access(
    document_id: Optional[int] = None,
    folder_id: Optional[int] = None,
    link_id: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    project, department_id = _access_target(db, document_id, folder_id, link_id)
    _require_manager(db, current_user, project, department_id)

    query = db.query(DocumentAccess)
    if document_id is not None:
        query = query.filter(DocumentAccess.document_id == document_id)
    elif folder_id is not None:
        query = query.filter(DocumentAccess.folder_id == folder_id)
    else:
        query = query.filter(DocumentAccess.link_id == link_id)
    return [_access_out(a) for a in query.order_by(DocumentAccess.created_at).all()]


@router.post("/access", response_model=AccessOut)
def grant_access(
    grant: AccessGrant,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Grant a user access to one item; granting again updates the permission"""
    project, department_id = _access_target(db, grant.document_id, grant.folder_id, grant.link_id)
    _require_manager(db, current_user, project, department_id)
    if not db.query(User).filter(User.id == grant.user_id).first():
        raise HTTPException(status_code=404, detail="User not found")

    access = db.query(DocumentAccess).filter(
        DocumentAccess.user_id == grant.user_id,
        DocumentAccess.document_id == grant.document_id,
        DocumentAccess.folder_id == grant.folder_id,
        DocumentAccess.link_id == grant.link_id,
    ).first()
    changed = access is None or access.permission != grant.permission
    if access is None:
        access = DocumentAccess(
            user_id=grant.user_id,
            document_id=grant.document_id,
            folder_id=grant.folder_id,
            link_id=grant.link_id,
            granted_by=current_user.id,
        )
        db.add(access)
    access.permission = grant.permission
    document_service.audit(
        db, current_user, "access_granted",
        document_id=grant.document_id, folder_id=grant.folder_id, link_id=grant.link_id,
        details={"user_id": grant.user_id, "permission": grant.permission}
    )
    db.commit()
    db.refresh(access)

    if changed:
        background_tasks.add_task(NotificationService.notify_document_access_granted, access.id, current_user.id)
    return _access_out(access)


@router.put("/access/{access_id}", response_model=AccessOut)
def update_access(
    access_id: int,
    access_update: AccessUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    access = db.query(DocumentAccess).filter(DocumentAccess.id == access_id).first()
    if not access:
        raise HTTPException(status_code=404, detail="Access grant not found")
    project, department_id = _access_target(db, access.document_id, access.folder_id, access.link_id)
    _require_manager(db, current_user, project, department_id)

    document_service.audit(
        db, current_user, "access_updated",
        document_id=access.document_id, folder_id=access.folder_id, link_id=access.link_id,
        details={"user_id": access.user_id, "from": access.permission, "to": access_update.permission}
    )
    access.permission = access_update.permission
    db.commit()
    db.refresh(access)
    return _access_out(access)


@router.delete("/access/{access_id}", status_code=status.HTTP_204_NO_CONTENT)
def revoke_access(access_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    access = db.query(DocumentAccess).filter(DocumentAccess.id == access_id).first()
    if not access:
        raise HTTPException(status_code=404, detail="Access grant not found")
    project, department_id = _access_target(db, access.document_id, access.folder_id, access.link_id)
    _require_manager(db, current_user, project, department_id)

    document_service.audit(
        db, current_user, "access_revoked",
        document_id=access.document_id, folder_id=access.folder_id, link_id=access.link_id,
        details={"user_id": access.user_id}
    )
    db.delete(access)
    db.commit()


@router.get("/audit-log")
def get_audit_log(
    document_id: Optional[int] = None,
    folder_id: Optional[int] = None,
    link_id: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    project, department_id = _access_target(db, document_id, folder_id, link_id)
    _require_manager(db, current_user, project, department_id)

    query = db.query(DocumentAuditLog)
    if document_id is not None:
        query = query.filter(DocumentAuditLog.document_id == document_id)
    elif folder_id is not None:
        query = query.filter(DocumentAuditLog.folder_id == folder_id)
    else:
        query = query.filter(DocumentAuditLog.link_id == link_id)
    return [
        {
            "id": entry.id,
            "action": entry.action,
            "user_id": entry.user_id,
            "details": entry.details,
            "created_at": entry.created_at,
        }
        for entry in query.order_by(DocumentAuditLog.created_at.desc(), DocumentAuditLog.id.desc()).all()
    ]


# ---------------------------------------------------------------------------
# Links
# ---------------------------------------------------------------------------

@router.post("/links", response_model=LinkOut, status_code=status.HTTP_201_CREATED)
def create_link(
    link_data: LinkCreate,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    project = get_project_or_404(db, link_data.project_id)
    folder = _check_target_folder(db, project.id, link_data.folder_id)
    department_id = link_data.department_id
    if department_id is None and folder is not None:
        department_id = folder.department_id
    _check_department(db, project.id, department_id)
    external = _require_contributor(db, current_user, project, department_id)

    link = DocumentLink(
        project_id=project.id,
        department_id=department_id,
        folder_id=link_data.folder_id,
        title=link_data.title,
        url=link_data.url,
        description=link_data.description,
        created_by=current_user.id,
    )
    db.add(link)
    db.flush()
    document_service.audit(db, current_user, "link_created", link_id=link.id, details={"title": link.title, "url": link.url})
    if external:
        log_activity(db, external, "link_created", folder_id=link.folder_id,
                     details={"link_id": link.id, "title": link.title}, ip_address=_client_ip(request), commit=False)
    db.commit()
    db.refresh(link)

    _notify_external(background_tasks, external, "link_created", "link", link.title, department_id)
    background_tasks.add_task(document_service.publish_change, project.id, "INSERT", "document_links", document_service.serialize_link(link))
    return document_service.link_out(link)


@router.get("/links/{link_id}/open", response_model=LinkOut)
def open_link(link_id: int, request: Request, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    """Resolve a link for opening; external access is logged"""
    link = _get_link(db, link_id)
    project = get_project_or_404(db, link.project_id)
    if not can_view_document_item(db, current_user, project, link.department_id, link_id=link.id, parent_folder_id=link.folder_id):
        raise HTTPException(status_code=403, detail="You do not have access to this link")

    if current_user.is_external:
        external = get_active_external_user(db, current_user, link.department_id)
        if external:
            log_activity(db, external, "link_access", folder_id=link.folder_id,
                         details={"link_id": link.id, "url": link.url}, ip_address=_client_ip(request))
    return document_service.link_out(link)


@router.put("/links/{link_id}", response_model=LinkOut)
def update_link(
    link_id: int,
    link_update: LinkUpdate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    link = _get_link(db, link_id)
    project = get_project_or_404(db, link.project_id)
    _require_editor(db, current_user, project, link.department_id, link.created_by)

    old = document_service.serialize_link(link)
    update_data = link_update.model_dump(exclude_unset=True)
    for field, value in update_data.items():
        if value is not None or field == "description":
            setattr(link, field, value)
    document_service.audit(db, current_user, "link_updated", link_id=link.id, details={"fields": sorted(update_data)})
    db.commit()
    db.refresh(link)

    background_tasks.add_task(document_service.publish_change, project.id, "UPDATE", "document_links", document_service.serialize_link(link), old)
    return document_service.link_out(link)


@router.put("/links/{link_id}/move", response_model=LinkOut)
def move_link(
    link_id: int,
    move: MoveToFolder,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    link = _get_link(db, link_id)
    project = get_project_or_404(db, link.project_id)
    _require_editor(db, current_user, project, link.department_id, link.created_by)
    _check_target_folder(db, project.id, move.folder_id)

    old = document_service.serialize_link(link)
    document_service.audit(db, current_user, "link_moved", link_id=link.id, details={"from": link.folder_id, "to": move.folder_id})
    link.folder_id = move.folder_id
    db.commit()
    db.refresh(link)

    background_tasks.add_task(document_service.publish_change, project.id, "UPDATE", "document_links", document_service.serialize_link(link), old)
    return document_service.link_out(link)


@router.delete("/links/{link_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_link(
    link_id: int,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    link = _get_link(db, link_id)
    project = get_project_or_404(db, link.project_id)
    _require_editor(db, current_user, project, link.department_id, link.created_by)

    old = document_service.serialize_link(link)
    document_service.audit(db, current_user, "link_deleted", link_id=link.id, details={"title": link.title})
    db.delete(link)
    db.commit()
    background_tasks.add_task(document_service.publish_change, project.id, "DELETE", "document_links", None, old)


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------

@router.post("/upload", response_model=DocumentOut, status_code=status.HTTP_201_CREATED)
def upload_document(
    request: Request,
    background_tasks: BackgroundTasks,
    project_id: int = Form(...),
    folder_id: Optional[int] = Form(None),
    department_id: Optional[int] = Form(None),
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    project = get_project_or_404(db, project_id)
    folder = _check_target_folder(db, project.id, folder_id)
    if department_id is None and folder is not None:
        department_id = folder.department_id
    _check_department(db, project.id, department_id)
    external = _require_contributor(db, current_user, project, department_id)

    file_url, _, file_size = file_storage.save_file(file, project.id, folder.id if folder else "root")
    document = Document(
        project_id=project.id,
        department_id=department_id,
        folder_id=folder_id,
        name=file.filename,
        file_url=file_url,
        file_type=file.content_type,
        file_size=file_size,
        uploaded_by=current_user.id,
    )
    db.add(document)
    db.flush()
    document_service.audit(db, current_user, "document_uploaded", document_id=document.id,
                           details={"name": document.name, "size": file_size})
    if external:
        log_activity(db, external, "document_upload", document_id=document.id, folder_id=folder_id,
                     details={"name": document.name}, ip_address=_client_ip(request), commit=False)
    db.commit()
    db.refresh(document)
    logger.info(f"Document {document.id} uploaded to project {project.id} by {current_user.email}")

    _notify_external(background_tasks, external, "document_upload", "document", document.name, department_id)
    background_tasks.add_task(document_service.publish_change, project.id, "INSERT", "documents", document_service.serialize_document(document))
    return document_service.document_out(document)


@router.put("/bulk/department")
def bulk_move_to_department(
    move: BulkMoveToDepartment,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Move several documents and links to one department"""
    moved_documents = 0
    moved_links = 0
    for document_id in move.document_ids:
        document = _get_document(db, document_id)
        project = get_project_or_404(db, document.project_id)
        _require_editor(db, current_user, project, document.department_id, document.uploaded_by)
        _check_department(db, project.id, move.department_id)
        old = document_service.serialize_document(document)
        document_service.audit(db, current_user, "document_department_changed", document_id=document.id,
                               details={"from": document.department_id, "to": move.department_id})
        document.department_id = move.department_id
        moved_documents += 1
        background_tasks.add_task(document_service.publish_change, project.id, "UPDATE", "documents", {**old, "department_id": move.department_id}, old)

    for link_id in move.link_ids:
        link = _get_link(db, link_id)
        project = get_project_or_404(db, link.project_id)
        _require_editor(db, current_user, project, link.department_id, link.created_by)
        _check_department(db, project.id, move.department_id)
        old = document_service.serialize_link(link)
        document_service.audit(db, current_user, "link_department_changed", link_id=link.id,
                               details={"from": link.department_id, "to": move.department_id})
        link.department_id = move.department_id
        moved_links += 1
        background_tasks.add_task(document_service.publish_change, project.id, "UPDATE", "document_links", {**old, "department_id": move.department_id}, old)

    db.commit()
    return {"moved_documents": moved_documents, "moved_links": moved_links}


@router.get("/{document_id}", response_model=DocumentOut)
def view_document(document_id: int, request: Request, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    document = _get_document(db, document_id)
    project = get_project_or_404(db, document.project_id)
    if not can_view_document_item(db, current_user, project, document.department_id,
                                  document_id=document.id, parent_folder_id=document.folder_id):
        raise HTTPException(status_code=403, detail="You do not have access to this document")

    if current_user.is_external:
        external = get_active_external_user(db, current_user, document.department_id)
        if external:
            log_activity(db, external, "document_view", document_id=document.id, folder_id=document.folder_id,
                         details={"name": document.name}, ip_address=_client_ip(request))
    return document_service.document_out(document)


@router.get("/{document_id}/download")
def download_document(document_id: int, request: Request, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    document = _get_document(db, document_id)
    project = get_project_or_404(db, document.project_id)
    if not can_view_document_item(db, current_user, project, document.department_id,
                                  document_id=document.id, parent_folder_id=document.folder_id):
        raise HTTPException(status_code=403, detail="You do not have access to this document")
    if not document_service.can_download(db, current_user, document):
        raise HTTPException(status_code=403, detail="Your access does not allow downloading this document")

    path = file_storage.path_for_url(document.file_url)
    if path is None or not path.exists():
        raise HTTPException(status_code=404, detail="File not found")

    if current_user.is_external:
        external = get_active_external_user(db, current_user, document.department_id)
        if external:
            log_activity(db, external, "document_download", document_id=document.id, folder_id=document.folder_id,
                         details={"name": document.name}, ip_address=_client_ip(request))
    return FileResponse(path, filename=document.name, media_type=document.file_type or "application/octet-stream")


@router.put("/{document_id}", response_model=DocumentOut)
def rename_document(
    document_id: int,
    rename: DocumentRename,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    document = _get_document(db, document_id)
    project = get_project_or_404(db, document.project_id)
    _require_editor(db, current_user, project, document.department_id, document.uploaded_by)

    old = document_service.serialize_document(document)
    document_service.audit(db, current_user, "document_renamed", document_id=document.id,
                           details={"from": document.name, "to": rename.name})
    external = get_active_external_user(db, current_user, document.department_id) if current_user.is_external else None
    if external:
        log_activity(db, external, "document_edit", document_id=document.id, folder_id=document.folder_id,
                     details={"from": document.name, "to": rename.name}, ip_address=_client_ip(request), commit=False)
    document.name = rename.name
    db.commit()
    db.refresh(document)

    _notify_external(background_tasks, external, "document_edit", "document", document.name, document.department_id)
    background_tasks.add_task(document_service.publish_change, project.id, "UPDATE", "documents", document_service.serialize_document(document), old)
    return document_service.document_out(document)


@router.put("/{document_id}/move", response_model=DocumentOut)
def move_document(
    document_id: int,
    move: MoveToFolder,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    document = _get_document(db, document_id)
    project = get_project_or_404(db, document.project_id)
    _require_editor(db, current_user, project, document.department_id, document.uploaded_by)
    _check_target_folder(db, project.id, move.folder_id)

    old = document_service.serialize_document(document)
    document_service.audit(db, current_user, "document_moved", document_id=document.id,
                           details={"from": document.folder_id, "to": move.folder_id})
    document.folder_id = move.folder_id
    db.commit()
    db.refresh(document)

    background_tasks.add_task(document_service.publish_change, project.id, "UPDATE", "documents", document_service.serialize_document(document), old)
    return document_service.document_out(document)


@router.put("/{document_id}/department", response_model=DocumentOut)
def move_document_to_department(
    document_id: int,
    move: MoveToDepartment,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    document = _get_document(db, document_id)
    project = get_project_or_404(db, document.project_id)
    _require_editor(db, current_user, project, document.department_id, document.uploaded_by)
    _check_department(db, project.id, move.department_id)

    old = document_service.serialize_document(document)
    document_service.audit(db, current_user, "document_department_changed", document_id=document.id,
                           details={"from": document.department_id, "to": move.department_id})
    document.department_id = move.department_id
    db.commit()
    db.refresh(document)

    background_tasks.add_task(document_service.publish_change, project.id, "UPDATE", "documents", document_service.serialize_document(document), old)
    return document_service.document_out(document)


@router.post("/{document_id}/duplicate", response_model=DocumentOut, status_code=status.HTTP_201_CREATED)
def duplicate_document(
    document_id: int,
    duplicate: DuplicateItem,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    document = _get_document(db, document_id)
    project = get_project_or_404(db, document.project_id)
    if not can_view_document_item(db, current_user, project, document.department_id,
                                  document_id=document.id, parent_folder_id=document.folder_id):
        raise HTTPException(status_code=403, detail="You do not have access to this document")
    folder_id = duplicate.folder_id if "folder_id" in duplicate.model_fields_set else document.folder_id
    _check_target_folder(db, project.id, folder_id)
    _require_contributor(db, current_user, project, document.department_id)

    file_url = file_storage.copy_file(document.file_url, project.id, folder_id or "root") or document.file_url
    copy = Document(
        project_id=project.id,
        department_id=document.department_id,
        folder_id=folder_id,
        name=(duplicate.name or "").strip() or document_service.copy_name(document.name),
        file_url=file_url,
        file_type=document.file_type,
        file_size=document.file_size,
        uploaded_by=current_user.id,
    )
    db.add(copy)
    db.flush()
    document_service.audit(db, current_user, "document_duplicated", document_id=copy.id, details={"source": document.id})
    db.commit()
    db.refresh(copy)

    background_tasks.add_task(document_service.publish_change, project.id, "INSERT", "documents", document_service.serialize_document(copy))
    return document_service.document_out(copy)


@router.delete("/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_document(
    document_id: int,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    document = _get_document(db, document_id)
    project = get_project_or_404(db, document.project_id)
    _require_editor(db, current_user, project, document.department_id, document.uploaded_by)

    old = document_service.serialize_document(document)
    file_url = document.file_url
    shared = db.query(Document).filter(Document.file_url == file_url, Document.id != document.id).count()
    document_service.audit(db, current_user, "document_deleted", document_id=document.id, details={"name": document.name})
    db.delete(document)
    db.commit()

    if not shared:
        file_storage.delete_file(file_url)
    background_tasks.add_task(document_service.publish_change, project.id, "DELETE", "documents", None, old)
