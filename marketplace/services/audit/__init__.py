from marketplace.services.audit.audit_service import AuditService, AuditAction

__all__ = ["AuditService", "AuditAction"]
