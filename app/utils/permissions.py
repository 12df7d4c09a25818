# app/utils/permissions.py
"""
Access rules shared by the routers.

Project access: admin, project owner or any project member.
Project management: admin, project owner or a member with the owner/manager role.
Department management: project management or a lead of that department.
"""

from datetime import datetime
from typing import Dict, Optional, Set

from fastapi import HTTPException
from sqlalchemy.orm import Session

from app.models.user import User
from app.models.project import Project, ProjectMember, ProjectRole
from app.models.department import Department, DepartmentLead
from app.models.chat import ChatRoom, ChatParticipant, ChatRoomType
from app.models.document import DocumentFolder, DocumentAccess
from app.models.external_user import ExternalUser, ExternalUserDepartment

MANAGER_ROLES = {ProjectRole.OWNER.value, ProjectRole.MANAGER.value}


def get_project_or_404(db: Session, project_id: int) -> Project:
    project = db.query(Project).filter(Project.id == project_id).first()
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")
    return project


def get_department_or_404(db: Session, department_id: int) -> Department:
    department = db.query(Department).filter(Department.id == department_id).first()
    if not department:
        raise HTTPException(status_code=404, detail="Department not found")
    return department


def get_membership(db: Session, project_id: int, user_id: int) -> Optional[ProjectMember]:
    return db.query(ProjectMember).filter(
        ProjectMember.project_id == project_id,
        ProjectMember.user_id == user_id
    ).first()


def has_project_access(db: Session, user: User, project: Project) -> bool:
    if user.is_admin or project.owner_id == user.id:
        return True
    return get_membership(db, project.id, user.id) is not None


def is_project_manager(db: Session, user: User, project: Project) -> bool:
    if user.is_admin or project.owner_id == user.id:
        return True
    membership = get_membership(db, project.id, user.id)
    return membership is not None and membership.role in MANAGER_ROLES


def require_project_access(db: Session, user: User, project_id: int) -> Project:
    project = get_project_or_404(db, project_id)
    if not has_project_access(db, user, project):
        raise HTTPException(status_code=403, detail="You do not have access to this project")
    return project


def require_project_manager(db: Session, user: User, project_id: int) -> Project:
    project = get_project_or_404(db, project_id)
    if not is_project_manager(db, user, project):
        raise HTTPException(status_code=403, detail="Only project managers can perform this action")
    return project


def project_manager_ids(db: Session, project: Project) -> Set[int]:
    """Owner plus members holding the owner or manager role"""
    ids = {
        m.user_id for m in db.query(ProjectMember).filter(
            ProjectMember.project_id == project.id,
            ProjectMember.role.in_(MANAGER_ROLES)
        ).all()
    }
    if project.owner_id:
        ids.add(project.owner_id)
    return ids


def project_member_ids(db: Session, project: Project) -> Set[int]:
    ids = {m.user_id for m in db.query(ProjectMember).filter(ProjectMember.project_id == project.id).all()}
    if project.owner_id:
        ids.add(project.owner_id)
    return ids


def is_department_lead(db: Session, user_id: int, department_id: Optional[int]) -> bool:
    if department_id is None:
        return False
    return db.query(DepartmentLead).filter(
        DepartmentLead.department_id == department_id,
        DepartmentLead.user_id == user_id
    ).first() is not None


def can_manage_department(db: Session, user: User, department: Department) -> bool:
    if user.is_admin:
        return True
    if department.project_id is not None:
        project = db.query(Project).filter(Project.id == department.project_id).first()
        if project and is_project_manager(db, user, project):
            return True
    return is_department_lead(db, user.id, department.id)


def require_department_manager(db: Session, user: User, department_id: int) -> Department:
    department = get_department_or_404(db, department_id)
    if not can_manage_department(db, user, department):
        raise HTTPException(status_code=403, detail="Only admins, project managers or department leads can perform this action")
    return department


# ---------------------------------------------------------------------------
# External users
# ---------------------------------------------------------------------------

def external_department_access(db: Session, user: User) -> Dict[int, str]:
    """
    Department id -> access level for every active, unexpired external
    membership of the user (owning department plus added departments).
    """
    access: Dict[int, str] = {}
    rows = db.query(ExternalUser).filter(ExternalUser.user_id == user.id).all()
    for external in rows:
        if not external.has_access:
            continue
        access[external.department_id] = external.access_level
        for extra in db.query(ExternalUserDepartment).filter(
            ExternalUserDepartment.external_user_id == external.id
        ).all():
            access.setdefault(extra.department_id, extra.access_level)
    return access


def get_active_external_user(db: Session, user: User, department_id: Optional[int] = None) -> Optional[ExternalUser]:
    """The active external row of the user, preferring the one that covers department_id"""
    rows = [e for e in db.query(ExternalUser).filter(ExternalUser.user_id == user.id).all() if e.has_access]
    if department_id is not None:
        for external in rows:
            if external.department_id == department_id:
                return external
            if any(extra.department_id == department_id for extra in external.extra_departments):
                return external
    return rows[0] if rows else None


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------

def folder_ancestor_ids(db: Session, folder_id: Optional[int]) -> list:
    """The folder itself followed by its parents up to the root"""
    ids = []
    seen = set()
    current = folder_id
    while current is not None and current not in seen:
        seen.add(current)
        folder = db.query(DocumentFolder).filter(DocumentFolder.id == current).first()
        if not folder:
            break
        ids.append(folder.id)
        current = folder.parent_folder_id
    return ids


def has_document_grant(
    db: Session,
    user_id: int,
    document_id: Optional[int] = None,
    folder_id: Optional[int] = None,
    link_id: Optional[int] = None,
    parent_folder_id: Optional[int] = None,
) -> bool:
    """Direct grant on the item, or a grant on any ancestor folder"""
    query = db.query(DocumentAccess).filter(DocumentAccess.user_id == user_id)
    if document_id is not None and query.filter(DocumentAccess.document_id == document_id).first():
        return True
    if link_id is not None and query.filter(DocumentAccess.link_id == link_id).first():
        return True

    folders = []
    if folder_id is not None:
        folders.extend(folder_ancestor_ids(db, folder_id))
    if parent_folder_id is not None:
        folders.extend(folder_ancestor_ids(db, parent_folder_id))
    if folders and query.filter(DocumentAccess.folder_id.in_(folders)).first():
        return True
    return False


def can_view_document_item(
    db: Session,
    user: User,
    project: Project,
    department_id: Optional[int],
    document_id: Optional[int] = None,
    folder_id: Optional[int] = None,
    link_id: Optional[int] = None,
    parent_folder_id: Optional[int] = None,
) -> bool:
    if user.is_external:
        return department_id is not None and department_id in external_department_access(db, user)
    if has_project_access(db, user, project):
        return True
    return has_document_grant(db, user.id, document_id, folder_id, link_id, parent_folder_id)


def can_manage_document_item(db: Session, user: User, project: Project, department_id: Optional[int]) -> bool:
    if is_project_manager(db, user, project):
        return True
    return is_department_lead(db, user.id, department_id)


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------

def can_access_room(db: Session, user: User, room: ChatRoom) -> bool:
    if room.room_type == ChatRoomType.PUBLIC.value:
        if user.is_admin:
            return True
        project = db.query(Project).filter(Project.id == room.project_id).first()
        return project is not None and has_project_access(db, user, project)
    return db.query(ChatParticipant).filter(
        ChatParticipant.room_id == room.id,
        ChatParticipant.user_id == user.id
    ).first() is not None


def require_room_access(db: Session, user: User, room_id: int) -> ChatRoom:
    room = db.query(ChatRoom).filter(ChatRoom.id == room_id).first()
    if not room:
        raise HTTPException(status_code=404, detail="Chat room not found")
    if not can_access_room(db, user, room):
        raise HTTPException(status_code=403, detail="You do not have access to this chat room")
    return room


def is_access_expired(expires_at: Optional[datetime]) -> bool:
    return expires_at is not None and expires_at < datetime.utcnow()
