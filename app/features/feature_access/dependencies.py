"""
Directory checks and audit logging for feature access routes.

Scope is always checked before a grant is read or written, so a failed
lookup never creates a grant record as a side effect.
"""
from typing import Any, Dict, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundError, ForbiddenError
from app.features.users.models import User, UserRole, Employee
from app.features.users.schemas import Principal
from app.features.feature_access.models import FeatureAccessAuditLog
from app.utils import get_logger


log = get_logger(__name__)


async def ensure_partner_exists(db: AsyncSession, partner_id: str) -> User:
    """
    Get an active partner account or raise.

    Raises:
        NotFoundError: no active user with role PARTNER has this id
    """
    result = await db.execute(
        select(User).where(
            User.id == partner_id,
            User.role == UserRole.PARTNER,
            User.is_active.is_(True),
        )
    )
    partner = result.scalar_one_or_none()

    if partner is None:
        raise NotFoundError("Partner not found")

    return partner


async def get_employee(db: AsyncSession, employee_id: str) -> Employee:
    """
    Raises:
        NotFoundError: employee does not exist
    """
    result = await db.execute(select(Employee).where(Employee.id == employee_id))
    employee = result.scalar_one_or_none()

    if employee is None:
        raise NotFoundError("Employee not found")

    return employee


async def ensure_employee_of_partner(
    db: AsyncSession,
    employee_id: str,
    partner_id: str
) -> Employee:
    """
    Get an employee and verify it belongs to the partner.

    Raises:
        NotFoundError: employee does not exist
        ForbiddenError: employee belongs to another partner
    """
    employee = await get_employee(db, employee_id)

    if employee.partner_id != partner_id:
        log.warning("Partner %s attempted to access employee %s of partner %s",
                    partner_id, employee_id, employee.partner_id)
        raise ForbiddenError("Employee does not belong to this partner")

    return employee


def record_audit(
    db: AsyncSession,
    principal: Principal,
    scope: str,
    partner_id: str,
    requested: Dict[str, Any],
    applied: Dict[str, Any],
    employee_id: Optional[str] = None,
    cascaded_rows: int = 0,
) -> FeatureAccessAuditLog:
    """
    Add an audit entry to the current transaction.

    Written together with the grant change it describes; a rolled back
    update leaves no audit entry.
    """
    audit_log = FeatureAccessAuditLog(
        actor_id=principal.id,
        actor_role=principal.role.value,
        scope=scope,
        partner_id=partner_id,
        employee_id=employee_id,
        requested=requested,
        applied=applied,
        cascaded_rows=cascaded_rows,
    )
    db.add(audit_log)

    log.info(
        "Audit: actor=%s scope=%s partner=%s employee=%s cascaded=%s",
        principal.id, scope, partner_id, employee_id, cascaded_rows
    )

    return audit_log
