"""
Feature access API routes.

Partner grants live under /organization-grant, employee grants under
/employee-grant. Every response uses the FeatureAccessResponse envelope.
"""
from typing import Annotated
from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import config
from app.core.database.engine import get_db
from app.core.limiter import limiter
from app.features.users.dependencies import get_current_principal, require_role
from app.features.users.models import UserRole
from app.features.users.schemas import Principal
from app.features.feature_access.dependencies import (
    ensure_partner_exists,
    ensure_employee_of_partner,
    get_employee,
    record_audit,
)
from app.features.feature_access.models import flags_of
from app.features.feature_access.schemas import FeatureAccessResponse, FeatureFlagsUpdate
from app.features.feature_access.service import (
    effective_flags,
    get_partner_access,
    get_employee_access,
    update_partner_access,
    update_employee_access,
)
from app.features.feature_access.tree import render, catalog_tree
from app.utils import get_logger


log = get_logger(__name__)
organization_router = APIRouter()
employee_router = APIRouter()


async def _employee_tree(db: AsyncSession, partner_id: str, employee_id: str):
    employee = await get_employee_access(db, partner_id, employee_id)
    partner = await get_partner_access(db, partner_id)
    return render(effective_flags(flags_of(partner), flags_of(employee)))


# ============================================================================
# Partner grants
# ============================================================================

@organization_router.get("", response_model=FeatureAccessResponse, response_model_exclude_none=True)
async def get_own_partner_access(
    db: Annotated[AsyncSession, Depends(get_db)],
    principal: Annotated[Principal, Depends(require_role(UserRole.PARTNER))]
):
    """Feature tree of the calling partner."""
    await ensure_partner_exists(db, principal.id)

    record = await get_partner_access(db, principal.id)
    await db.commit()

    return FeatureAccessResponse(
        success=True,
        message="Feature access retrieved successfully",
        data=render(flags_of(record)),
    )


@organization_router.get("/capabilities", response_model=FeatureAccessResponse, response_model_exclude_none=True)
async def list_capabilities(
    principal: Annotated[Principal, Depends(get_current_principal)]
):
    """Every capability the platform offers, all enabled."""
    return FeatureAccessResponse(
        success=True,
        message="Features retrieved successfully",
        data=catalog_tree(),
    )


@organization_router.get("/{organization_id}", response_model=FeatureAccessResponse, response_model_exclude_none=True)
async def get_partner_access_by_id(
    organization_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    principal: Annotated[Principal, Depends(require_role(UserRole.ADMIN))]
):
    """Feature tree of any partner (admin only)."""
    await ensure_partner_exists(db, organization_id)

    record = await get_partner_access(db, organization_id)
    await db.commit()

    return FeatureAccessResponse(
        success=True,
        message="Feature access retrieved successfully",
        data=render(flags_of(record)),
    )


@organization_router.put("/{organization_id}", response_model=FeatureAccessResponse, response_model_exclude_none=True)
@limiter.limit(config.UPDATE_RATE_LIMIT)
async def update_partner_access_by_id(
    request: Request,
    organization_id: str,
    updates: FeatureFlagsUpdate,
    db: Annotated[AsyncSession, Depends(get_db)],
    principal: Annotated[Principal, Depends(require_role(UserRole.ADMIN))]
):
    """
    Update a partner's grant (admin only).

    Capabilities turned off here are turned off for all of the partner's
    employees. Capabilities turned on are not granted to employees; the
    partner re-grants them per employee.
    """
    flags = updates.model_dump(exclude_unset=True)
    await ensure_partner_exists(db, organization_id)

    record, cascaded = await update_partner_access(db, organization_id, flags)
    record_audit(
        db,
        principal,
        scope="partner",
        partner_id=organization_id,
        requested=flags,
        applied={key: getattr(record, key) for key in flags},
        cascaded_rows=cascaded,
    )
    await db.commit()

    return FeatureAccessResponse(
        success=True,
        message="Feature access updated successfully",
        data=render(flags_of(record)),
    )


# ============================================================================
# Employee grants
# ============================================================================

@employee_router.get("/self", response_model=FeatureAccessResponse, response_model_exclude_none=True)
async def get_own_employee_access(
    db: Annotated[AsyncSession, Depends(get_db)],
    principal: Annotated[Principal, Depends(require_role(UserRole.EMPLOYEE))]
):
    """Effective feature tree of the calling employee."""
    employee = await get_employee(db, principal.id)

    data = await _employee_tree(db, employee.partner_id, employee.id)
    await db.commit()

    return FeatureAccessResponse(
        success=True,
        message="Feature access retrieved successfully",
        data=data,
    )


@employee_router.get("/{employee_id}", response_model=FeatureAccessResponse, response_model_exclude_none=True)
async def get_employee_access_by_id(
    employee_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    principal: Annotated[Principal, Depends(require_role(UserRole.PARTNER))]
):
    """Effective feature tree of one of the calling partner's employees."""
    await ensure_partner_exists(db, principal.id)
    await ensure_employee_of_partner(db, employee_id, principal.id)

    data = await _employee_tree(db, principal.id, employee_id)
    await db.commit()

    return FeatureAccessResponse(
        success=True,
        message="Employee feature access retrieved successfully",
        data=data,
    )


@employee_router.put("/{employee_id}", response_model=FeatureAccessResponse, response_model_exclude_none=True)
@limiter.limit(config.UPDATE_RATE_LIMIT)
async def update_employee_access_by_id(
    request: Request,
    employee_id: str,
    updates: FeatureFlagsUpdate,
    db: Annotated[AsyncSession, Depends(get_db)],
    principal: Annotated[Principal, Depends(require_role(UserRole.PARTNER))]
):
    """
    Assign capabilities to one of the calling partner's employees.

    Capabilities the partner itself lacks are stored as disabled.
    """
    flags = updates.model_dump(exclude_unset=True)
    await ensure_partner_exists(db, principal.id)
    await ensure_employee_of_partner(db, employee_id, principal.id)

    record = await update_employee_access(db, principal.id, employee_id, flags)
    record_audit(
        db,
        principal,
        scope="employee",
        partner_id=principal.id,
        employee_id=employee_id,
        requested=flags,
        applied={key: getattr(record, key) for key in flags},
    )
    data = await _employee_tree(db, principal.id, employee_id)
    await db.commit()

    return FeatureAccessResponse(
        success=True,
        message="Employee feature access updated successfully",
        data=data,
    )
