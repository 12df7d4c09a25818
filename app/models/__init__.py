from app.models.user import User, AppRole
from app.models.project import Project, ProjectMember, ProjectRole
from app.models.department import Department, DepartmentLead
from app.models.task import Task, TaskStatus, TaskPriority
from app.models.element import Element
from app.models.chat import ChatRoom, ChatParticipant, ChatMessage, ChatSettings, ChatRoomType
from app.models.presence import UserPresence, UserViewPreference, PresenceStatus, ViewType
from app.models.document import (
    DocumentFolder,
    Document,
    DocumentLink,
    DocumentAccess,
    DocumentAuditLog,
    DocumentPermission,
)
from app.models.external_user import (
    ExternalUser,
    ExternalUserDepartment,
    ExternalUserActivityLog,
    ExternalAccessLevel,
)
from app.models.password_reset import PasswordResetRequest, ResetRequestStatus
from app.models.report import ProjectReportSettings, ProjectReportRecipient, ReportFrequency
from app.models.notification import Notification, NotificationType
