from sqlalchemy import Column, JSON, String

from boxoffice.db.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class AuditLog(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "audit_logs"

    user_id = Column(String(36), nullable=True, index=True)
    action = Column(String(50), nullable=False, index=True)
    resource = Column(String(50), nullable=False)
    resource_id = Column(String(64), nullable=True)
    new_values = Column(JSON, nullable=True)

    def __repr__(self) -> str:
        return f"<AuditLog(action={self.action}, resource={self.resource}:{self.resource_id})>"
