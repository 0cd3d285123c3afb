"""
Directory models for partners, admins and employees.

These records are owned by the account lifecycle of the platform; the
feature access engine only reads them to validate scope.
"""
import enum
from sqlalchemy import String, Boolean, ForeignKey, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database.base import Base, TimestampMixin, generate_ulid


class UserRole(str, enum.Enum):
    """Roles carried by authenticated principals."""
    ADMIN = "ADMIN"
    PARTNER = "PARTNER"
    EMPLOYEE = "EMPLOYEE"


class User(Base, TimestampMixin):
    """
    Platform account. Partners are the organizations whose feature grant
    bounds their employees; admins manage partner grants.
    """
    __tablename__ = "users"
    
    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[UserRole] = mapped_column(
        SQLEnum(UserRole),
        default=UserRole.PARTNER,
        nullable=False,
        index=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    
    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email!r}, role={self.role})>"


class Employee(Base, TimestampMixin):
    """Staff member scoped to exactly one partner."""
    __tablename__ = "employees"
    
    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    partner_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    
    def __repr__(self) -> str:
        return f"<Employee(id={self.id}, partner_id={self.partner_id})>"
