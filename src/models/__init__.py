from src.db.audit_log import AdminAuditLog
from src.db.verification_records import EmailVerification
from src.models.admin_user import AdminUser, AdminUserCreate
from src.models.school import School, SchoolCreate

__all__ = [
    "AdminUser",
    "AdminUserCreate",
    "School",
    "SchoolCreate",
    "EmailVerification",
    "AdminAuditLog",
]
