"""
Backfill script for feature access grants.

Run after adding a capability to the catalog (and its column) to fill the
new capability on every existing grant instead of waiting for each record
to be read:
- partner grants get True
- employee grants get True AND the partner's flag

Safe to run repeatedly; records with nothing missing are not written.

Usage:
    uv run python -m scripts.backfill_feature_access
"""
import asyncio
from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db, init_db
from app.features.feature_access.catalog import FEATURE_KEYS, default_flags
from app.features.feature_access.models import PartnerFeatureAccess, EmployeeFeatureAccess, flags_of
from app.features.feature_access.service import partner_store, employee_store, effective_flags
from app.utils import get_logger


log = get_logger(__name__)


def _has_missing(model):
    return or_(*[getattr(model, key).is_(None) for key in FEATURE_KEYS])


async def backfill_partners(db: AsyncSession) -> int:
    """Backfill partner grants. Returns the number of records updated."""
    result = await db.execute(select(PartnerFeatureAccess).where(_has_missing(PartnerFeatureAccess)))
    records = result.scalars().all()
    
    for record in records:
        await partner_store.backfill(db, record, default_flags())
    
    await db.commit()
    log.info("Backfilled %s partner grants", len(records))
    return len(records)


async def backfill_employees(db: AsyncSession) -> int:
    """
    Backfill employee grants, bounded by their partner's grant.
    Partners must be backfilled first.
    """
    result = await db.execute(select(EmployeeFeatureAccess).where(_has_missing(EmployeeFeatureAccess)))
    records = result.scalars().all()
    
    ceilings = {}
    for record in records:
        if record.partner_id not in ceilings:
            partner = await partner_store.fetch(db, partner_id=record.partner_id)
            ceilings[record.partner_id] = flags_of(partner) if partner is not None else {}
        seed = effective_flags(ceilings[record.partner_id], default_flags())
        await employee_store.backfill(db, record, seed)
    
    await db.commit()
    log.info("Backfilled %s employee grants", len(records))
    return len(records)


async def main():
    """Backfill partner grants, then employee grants."""
    log.info("Starting feature access backfill...")
    
    await init_db()
    
    async for db in get_db():
        try:
            await backfill_partners(db)
            await backfill_employees(db)
            log.info("Feature access backfill completed successfully!")
        except Exception as e:
            log.error("Error backfilling feature access: %s", e, exc_info=True)
            await db.rollback()
            raise
        
        break  # Only use first session


if __name__ == "__main__":
    asyncio.run(main())
