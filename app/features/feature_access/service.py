"""
Two-tier feature grant engine.

Partner grants (parent tier) and employee grants (child tier) are stored
by the same GrantStore, parameterized by model and scope columns. The
rules that tie the tiers together live in the module-level functions:

- a partner grant is created on first read with every capability enabled
- an employee grant is seeded with default AND partner on first read
- an employee update is filtered through the partner grant
- a partner update that turns capabilities off revokes them from every
  employee of the partner in one UPDATE statement

Callers own the transaction; nothing here commits.
"""
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Type

from sqlalchemy import select, update, func, literal, Boolean
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.base import generate_ulid
from app.core.exceptions import StorageError, ValidationError
from app.features.feature_access.catalog import FEATURE_KEYS, default_flags, unknown_keys
from app.features.feature_access.models import (
    PartnerFeatureAccess,
    EmployeeFeatureAccess,
    flags_of,
)
from app.utils import get_logger


log = get_logger(__name__)


def _insert(db: AsyncSession, model: Type[Any]):
    """Dialect-specific INSERT supporting ON CONFLICT DO NOTHING."""
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(model)
    if dialect == "sqlite":
        return sqlite.insert(model)
    raise StorageError(f"Unsupported database dialect: {dialect}")


def is_enabled(value: Optional[bool]) -> bool:
    """A capability is enabled unless explicitly stored as False."""
    return value is not False


def effective_flags(
    ceiling: Mapping[str, Optional[bool]],
    flags: Mapping[str, Optional[bool]],
) -> Dict[str, bool]:
    """Capability-wise AND of a grant and the grant that bounds it."""
    return {
        key: is_enabled(ceiling.get(key)) and is_enabled(flags.get(key))
        for key in FEATURE_KEYS
    }


def validate_flags(flags: Any) -> Dict[str, bool]:
    """
    Check a partial flag map against the catalog.

    Raises:
        ValidationError: payload is not a mapping, contains keys outside the
            catalog, or contains non-boolean values. Nothing is written.
    """
    if not isinstance(flags, Mapping):
        raise ValidationError("Feature access payload must be an object")

    unknown = unknown_keys(flags.keys())
    if unknown:
        raise ValidationError(
            f"Unknown feature keys: {', '.join(unknown)}",
            error={"unknown_keys": unknown},
        )

    not_bool = sorted(key for key, value in flags.items() if not isinstance(value, bool))
    if not_bool:
        raise ValidationError(
            f"Feature flags must be true or false: {', '.join(not_bool)}",
            error={"invalid_values": not_bool},
        )

    return dict(flags)


class GrantStore:
    """
    Persistence for one tier of grants.

    ``scope_columns`` names the columns that identify a record within the
    tier and must be backed by a unique constraint; it is the conflict
    target of the insert-or-fetch in get_or_create.
    """

    def __init__(self, model: Type[Any], scope_columns: Sequence[str]):
        self.model = model
        self.scope_columns = tuple(scope_columns)

    def _where(self, scope: Mapping[str, str]):
        if set(scope) != set(self.scope_columns):
            raise TypeError(f"{self.model.__name__} is scoped by {self.scope_columns}, got {tuple(scope)}")
        return [getattr(self.model, column) == scope[column] for column in self.scope_columns]

    async def fetch(self, db: AsyncSession, for_update: bool = False, **scope: str):
        stmt = (
            select(self.model)
            .where(*self._where(scope))
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_or_create(self, db: AsyncSession, seed: Mapping[str, bool], **scope: str):
        """
        Return the record for ``scope``, creating it from ``seed`` if absent.

        Creation is a single INSERT ... ON CONFLICT DO NOTHING, so two
        concurrent first reads end up reading the same row.
        """
        record = await self.fetch(db, **scope)
        if record is not None:
            return record

        stmt = (
            _insert(db, self.model)
            .values(id=generate_ulid(), **scope, **seed)
            .on_conflict_do_nothing(index_elements=list(self.scope_columns))
        )
        result = await db.execute(stmt)
        if result.rowcount:
            log.info("Created %s for %s", self.model.__tablename__, scope)

        return await self.fetch(db, **scope)

    def missing(self, record) -> List[str]:
        """Capabilities stored as NULL on ``record``."""
        return [key for key in FEATURE_KEYS if getattr(record, key) is None]

    async def backfill(self, db: AsyncSession, record, defaults: Mapping[str, bool]):
        """
        Fill capabilities that are NULL on ``record`` with ``defaults``.

        Present values are never overwritten, including by a concurrent
        writer: each column is set to COALESCE(column, default).
        """
        missing = self.missing(record)
        if not missing:
            return record

        values = {
            getattr(self.model, key): func.coalesce(
                getattr(self.model, key), literal(defaults.get(key, True), Boolean)
            )
            for key in missing
        }
        await db.execute(
            update(self.model)
            .where(self.model.id == record.id)
            .values(values)
            .execution_options(synchronize_session=False)
        )
        await db.refresh(record)
        log.debug("Backfilled %s %s with %s", self.model.__tablename__, record.id, missing)
        return record

    async def apply(self, db: AsyncSession, record, flags: Mapping[str, bool]):
        """Write ``flags`` onto ``record`` and flush."""
        for key, value in flags.items():
            setattr(record, key, value)
        await db.flush()
        await db.refresh(record)
        return record


partner_store = GrantStore(PartnerFeatureAccess, ("partner_id",))
employee_store = GrantStore(EmployeeFeatureAccess, ("partner_id", "employee_id"))


# ============================================================================
# Partner tier
# ============================================================================

async def get_partner_access(
    db: AsyncSession,
    partner_id: str,
    for_update: bool = False,
) -> PartnerFeatureAccess:
    """
    Get or create a partner's grant, backfilling missing capabilities with True.

    With ``for_update`` the row is locked until the transaction ends; both
    update paths take this lock so a partner update and an employee update
    for the same partner are serialized.
    """
    record = await partner_store.get_or_create(db, default_flags(), partner_id=partner_id)
    if for_update:
        record = await partner_store.fetch(db, for_update=True, partner_id=partner_id)
    return await partner_store.backfill(db, record, default_flags())


async def cascade_revocations(
    db: AsyncSession,
    partner_id: str,
    flags: Mapping[str, bool],
) -> int:
    """
    Turn off, on every employee grant of the partner, each capability that
    ``flags`` turns off. Other capabilities are left untouched and nothing
    is ever turned on.

    Returns:
        Number of employee grant rows updated
    """
    revoked = {key: False for key, value in flags.items() if value is False}
    if not revoked:
        return 0

    result = await db.execute(
        update(EmployeeFeatureAccess)
        .where(EmployeeFeatureAccess.partner_id == partner_id)
        .values(**revoked)
        .execution_options(synchronize_session=False)
    )
    log.info(
        "Cascaded revocation of %s to %s employee grants of partner %s",
        sorted(revoked), result.rowcount, partner_id
    )
    return result.rowcount


async def update_partner_access(
    db: AsyncSession,
    partner_id: str,
    flags: Mapping[str, Any],
) -> Tuple[PartnerFeatureAccess, int]:
    """
    Apply a partial flag map to a partner's grant and cascade revocations.

    Returns:
        The updated grant and the number of employee grants the cascade touched

    Raises:
        ValidationError: unknown key or non-boolean value (before any write)
    """
    flags = validate_flags(flags)

    record = await get_partner_access(db, partner_id, for_update=True)
    record = await partner_store.apply(db, record, flags)
    cascaded = await cascade_revocations(db, partner_id, flags)

    log.info("Updated feature access of partner %s: %s", partner_id, flags)
    return record, cascaded


# ============================================================================
# Employee tier
# ============================================================================

async def get_employee_access(
    db: AsyncSession,
    partner_id: str,
    employee_id: str,
    partner: Optional[PartnerFeatureAccess] = None,
) -> EmployeeFeatureAccess:
    """
    Get or create an employee's grant.

    A new grant is seeded with default AND partner grant. Capabilities
    missing on an existing grant are backfilled the same way, so a
    backfill never gives an employee more than its partner has.

    Creating or backfilling the grant locks the partner grant first, so the
    seed cannot be computed from a partner grant that a concurrent update is
    about to revoke from. A caller passing ``partner`` must already hold
    that lock.

    Membership of the employee in the partner must be checked by the caller.
    """
    record = await employee_store.fetch(db, partner_id=partner_id, employee_id=employee_id)
    if record is not None and not employee_store.missing(record):
        return record

    if partner is None:
        partner = await get_partner_access(db, partner_id, for_update=True)
    seed = effective_flags(flags_of(partner), default_flags())

    record = await employee_store.get_or_create(
        db, seed, partner_id=partner_id, employee_id=employee_id
    )
    return await employee_store.backfill(db, record, seed)


async def update_employee_access(
    db: AsyncSession,
    partner_id: str,
    employee_id: str,
    flags: Mapping[str, Any],
) -> EmployeeFeatureAccess:
    """
    Apply a partial flag map to an employee's grant, filtered through the
    partner grant: a capability the partner lacks is stored as False no
    matter what was requested.

    Raises:
        ValidationError: unknown key or non-boolean value (before any write)
    """
    flags = validate_flags(flags)

    partner = await get_partner_access(db, partner_id, for_update=True)
    ceiling = flags_of(partner)
    record = await get_employee_access(db, partner_id, employee_id, partner=partner)

    applied = {key: value and is_enabled(ceiling[key]) for key, value in flags.items()}
    record = await employee_store.apply(db, record, applied)

    filtered = sorted(key for key in flags if flags[key] != applied[key])
    if filtered:
        log.info("Partner %s lacks %s; stored as disabled for employee %s", partner_id, filtered, employee_id)
    log.info("Updated feature access of employee %s (partner %s): %s", employee_id, partner_id, applied)
    return record
