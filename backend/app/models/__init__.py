from .user import User, UserRole
from .change_request import ChangeRequest, ChangeRequestStatus, ChangeType, Category, Priority, ImpactLevel
from .approval import ApprovalRecord, ApprovalAction
from .audit import AuditEntry
from .attachment import Attachment, AttachmentCategory
from .notification import Notification, NotificationType
from .sequence import ControlNumberCounter
