"""
Feature access grant models.

One PartnerFeatureAccess row per partner and one EmployeeFeatureAccess row
per (partner, employee). Each capability in the catalog is a nullable
boolean column: NULL marks a capability that was added after the row was
written and is filled in by the backfill on the next read.
"""
from typing import Any, Dict
from sqlalchemy import String, ForeignKey, Boolean, JSON, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database.base import Base, TimestampMixin, generate_ulid
from app.features.feature_access.catalog import FEATURE_KEYS


class FeatureFlagsMixin:
    """One column per catalog key. Keep in sync with catalog.CATALOG."""
    dashboard: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    teamchat: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    kundensuche: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    neukundenerstellung: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    einlagenauftrage: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    massschuhauftrage: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    massschafte: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    produktverwaltung: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    sammelbestellungen: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    nachrichten: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    terminkalender: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    monatsstatistik: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    mitarbeitercontrolling: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    einlagencontrolling: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    fusubungen: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    musterzettel: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    einstellungen: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    news_and_aktuelles: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    produktkatalog: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    balance: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    automatisierte_nachrichten: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    kasse_and_abholungen: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    finanzen_and_kasse: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    einnahmen_and_rechnungen: Mapped[bool | None] = mapped_column(Boolean, nullable=True)


def flags_of(record: Any) -> Dict[str, bool | None]:
    """Extract the capability columns of a grant row as a plain dict."""
    return {key: getattr(record, key) for key in FEATURE_KEYS}


class PartnerFeatureAccess(Base, TimestampMixin, FeatureFlagsMixin):
    """
    Capabilities a partner holds. Ceiling for all of the partner's employees.
    """
    __tablename__ = "partner_feature_access"
    
    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    partner_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("users.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
        index=True
    )
    
    def __repr__(self) -> str:
        return f"<PartnerFeatureAccess(id={self.id}, partner_id={self.partner_id})>"


class EmployeeFeatureAccess(Base, TimestampMixin, FeatureFlagsMixin):
    """
    Capabilities an employee holds within its partner.
    """
    __tablename__ = "employee_feature_access"
    __table_args__ = (
        UniqueConstraint("partner_id", "employee_id", name="uq_employee_feature_access_scope"),
    )
    
    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    partner_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    employee_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    
    def __repr__(self) -> str:
        return f"<EmployeeFeatureAccess(id={self.id}, partner_id={self.partner_id}, employee_id={self.employee_id})>"


class FeatureAccessAuditLog(Base, TimestampMixin):
    """
    Audit trail of grant updates: who changed which grant, what was
    requested and what was stored after filtering.
    """
    __tablename__ = "feature_access_audit_logs"
    
    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    
    actor_id: Mapped[str] = mapped_column(String(26), nullable=False, index=True)
    actor_role: Mapped[str] = mapped_column(String(20), nullable=False)
    
    # "partner" or "employee"
    scope: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    partner_id: Mapped[str] = mapped_column(String(26), nullable=False, index=True)
    employee_id: Mapped[str | None] = mapped_column(String(26), nullable=True, index=True)
    
    requested: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)
    applied: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)
    cascaded_rows: Mapped[int] = mapped_column(default=0, nullable=False)
    
    def __repr__(self) -> str:
        return f"<FeatureAccessAuditLog(id={self.id}, scope={self.scope}, partner_id={self.partner_id})>"
