from .user import UserLogin, UserOut, UserBrief, UserUpdate, MeOut, ChangePasswordRequest
from .tokens import Token
from .project import ProjectCreate, ProjectUpdate, ProjectOut, ProjectLogoUpdate, ProjectMemberCreate, ProjectMemberUpdate, ProjectMemberOut
from .department import DepartmentCreate, DepartmentUpdate, DepartmentOut, DepartmentLeadCreate, DepartmentLeadOut, DepartmentAnalytics
from .task import TaskCreate, TaskUpdate, TaskOut, TaskImportResult
from .element import ElementCreate, ElementUpdate, ElementOut
from .notification import NotificationOut, NotificationCount
