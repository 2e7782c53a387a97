from .audit import AuditLog
from .policy import Authorizer, RoleAuthorizer

__all__ = ["Authorizer", "RoleAuthorizer", "AuditLog"]
