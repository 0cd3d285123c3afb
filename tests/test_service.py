from types import SimpleNamespace

import pytest
from sqlalchemy import event, func, select, update

from app.core.exceptions import StorageError, ValidationError
from app.features.feature_access import service
from app.features.feature_access.catalog import FEATURE_KEYS
from app.features.feature_access.models import EmployeeFeatureAccess, PartnerFeatureAccess, flags_of
from app.features.feature_access.service import (
    GrantStore,
    cascade_revocations,
    effective_flags,
    get_employee_access,
    get_partner_access,
    update_employee_access,
    update_partner_access,
    validate_flags,
)
from tests.conftest import EMPLOYEE_IDS, OTHER_EMPLOYEE_ID, OTHER_PARTNER_ID, PARTNER_ID


E1, E2 = EMPLOYEE_IDS


async def _count(db, model):
    return (await db.execute(select(func.count()).select_from(model))).scalar_one()


def _assert_bounded(partner, employee):
    for key in FEATURE_KEYS:
        if getattr(employee, key):
            assert getattr(partner, key), f"{key} enabled for employee but not for partner"


async def test_partner_grant_created_once_with_everything_enabled(directory, db):
    first = await get_partner_access(db, PARTNER_ID)
    await db.commit()
    second = await get_partner_access(db, PARTNER_ID)

    assert first.id == second.id
    assert all(value is True for value in flags_of(second).values())
    assert await _count(db, PartnerFeatureAccess) == 1


async def test_concurrent_first_read_keeps_existing_row(directory, db, monkeypatch):
    await update_partner_access(db, PARTNER_ID, {"dashboard": False})
    await db.commit()

    # Second reader saw no row before the first one committed its insert
    real_fetch = GrantStore.fetch
    calls = []

    async def racing_fetch(self, session, for_update=False, **scope):
        calls.append(scope)
        if len(calls) == 1:
            return None
        return await real_fetch(self, session, for_update, **scope)

    monkeypatch.setattr(GrantStore, "fetch", racing_fetch)
    record = await get_partner_access(db, PARTNER_ID)

    assert record.dashboard is False
    assert await _count(db, PartnerFeatureAccess) == 1


async def test_partner_backfill_only_fills_missing(directory, db):
    await update_partner_access(db, PARTNER_ID, {"teamchat": False})
    await db.execute(update(PartnerFeatureAccess).values(balance=None, produktkatalog=None))
    await db.commit()

    record = await get_partner_access(db, PARTNER_ID)

    assert record.balance is True
    assert record.produktkatalog is True
    assert record.teamchat is False


async def test_backfill_is_noop_when_nothing_missing(directory, db, engine):
    await get_employee_access(db, PARTNER_ID, E1)
    await db.commit()

    statements = []

    def _capture(conn, cursor, statement, parameters, context, executemany):
        statements.append(statement)

    event.listen(engine.sync_engine, "before_cursor_execute", _capture)
    try:
        await get_employee_access(db, PARTNER_ID, E1)
    finally:
        event.remove(engine.sync_engine, "before_cursor_execute", _capture)

    assert statements
    assert not [s for s in statements if s.lstrip().upper().startswith(("UPDATE", "INSERT"))]


async def test_employee_seeded_from_partner_grant(directory, db):
    await update_partner_access(db, PARTNER_ID, {"teamchat": False, "balance": False})

    employee = await get_employee_access(db, PARTNER_ID, E1)

    assert employee.teamchat is False
    assert employee.balance is False
    assert employee.dashboard is True


async def test_employee_backfill_adds_new_capability(directory, db):
    await update_employee_access(db, PARTNER_ID, E1, {"dashboard": False})
    await db.execute(
        update(EmployeeFeatureAccess)
        .where(EmployeeFeatureAccess.employee_id == E1)
        .values(balance=None)
    )
    await db.commit()

    employee = await get_employee_access(db, PARTNER_ID, E1)

    assert employee.balance is True
    assert employee.dashboard is False
    assert all(value is not None for value in flags_of(employee).values())


async def test_employee_backfill_is_bounded_by_partner(directory, db):
    await get_employee_access(db, PARTNER_ID, E1)
    await update_partner_access(db, PARTNER_ID, {"balance": False})
    await db.execute(update(EmployeeFeatureAccess).values(balance=None))
    await db.commit()

    employee = await get_employee_access(db, PARTNER_ID, E1)

    assert employee.balance is False


async def test_employee_grant_written_under_partner_lock(directory, db, monkeypatch):
    await update_partner_access(db, PARTNER_ID, {"teamchat": False})
    await db.commit()

    locks = []
    real_get_partner_access = service.get_partner_access

    async def locking_spy(session, partner_id, for_update=False):
        locks.append(for_update)
        return await real_get_partner_access(session, partner_id, for_update=for_update)

    monkeypatch.setattr(service, "get_partner_access", locking_spy)

    created = await get_employee_access(db, PARTNER_ID, E1)
    await db.commit()
    assert created.teamchat is False
    assert locks == [True]

    # Complete grant: read without touching the partner row
    await get_employee_access(db, PARTNER_ID, E1)
    assert locks == [True]

    await db.execute(update(EmployeeFeatureAccess).values(balance=None))
    await db.commit()
    backfilled = await get_employee_access(db, PARTNER_ID, E1)

    assert backfilled.balance is True
    assert backfilled.teamchat is False
    assert locks == [True, True]


async def test_employee_update_filtered_by_partner(directory, db):
    await update_partner_access(db, PARTNER_ID, {"nachrichten": False})

    employee = await update_employee_access(
        db, PARTNER_ID, E1, {"nachrichten": True, "dashboard": False}
    )

    assert employee.nachrichten is False
    assert employee.dashboard is False
    assert employee.teamchat is True


async def test_employee_update_is_idempotent(directory, db):
    flags = {"dashboard": False, "teamchat": True, "balance": False}

    first = flags_of(await update_employee_access(db, PARTNER_ID, E1, flags))
    await db.commit()
    second = flags_of(await update_employee_access(db, PARTNER_ID, E1, flags))

    assert first == second
    assert await _count(db, EmployeeFeatureAccess) == 1


async def test_cascade_revokes_only_the_disabled_capability(directory, db):
    await update_employee_access(db, PARTNER_ID, E1, {"teamchat": True, "dashboard": False})
    await update_employee_access(db, PARTNER_ID, E2, {"teamchat": False})
    await get_employee_access(db, OTHER_PARTNER_ID, OTHER_EMPLOYEE_ID)
    await db.commit()
    before = {
        employee_id: flags_of(await get_employee_access(db, PARTNER_ID, employee_id))
        for employee_id in EMPLOYEE_IDS
    }

    _, cascaded = await update_partner_access(db, PARTNER_ID, {"teamchat": False})
    await db.commit()

    assert cascaded == 2
    for employee_id in EMPLOYEE_IDS:
        after = flags_of(await get_employee_access(db, PARTNER_ID, employee_id))
        assert after["teamchat"] is False
        assert {k: v for k, v in after.items() if k != "teamchat"} == \
            {k: v for k, v in before[employee_id].items() if k != "teamchat"}

    other = await get_employee_access(db, OTHER_PARTNER_ID, OTHER_EMPLOYEE_ID)
    assert other.teamchat is True


async def test_enabling_partner_capability_does_not_raise_employees(directory, db):
    await get_employee_access(db, PARTNER_ID, E1)
    await update_partner_access(db, PARTNER_ID, {"kundensuche": False})
    await update_partner_access(db, PARTNER_ID, {"kundensuche": True})
    await db.commit()

    partner = await get_partner_access(db, PARTNER_ID)
    employee = await get_employee_access(db, PARTNER_ID, E1)

    assert partner.kundensuche is True
    assert employee.kundensuche is False


async def test_cascade_without_revocations_writes_nothing(directory, db):
    await get_employee_access(db, PARTNER_ID, E1)

    assert await cascade_revocations(db, PARTNER_ID, {"dashboard": True}) == 0


async def test_invariant_holds_after_mixed_updates(directory, db):
    await update_employee_access(db, PARTNER_ID, E1, {"terminkalender": True})
    await update_partner_access(db, PARTNER_ID, {"terminkalender": False, "balance": False})
    await update_employee_access(db, PARTNER_ID, E1, {"terminkalender": True, "balance": True})
    await update_partner_access(db, PARTNER_ID, {"balance": True, "musterzettel": False})
    await update_employee_access(db, PARTNER_ID, E2, {key: True for key in FEATURE_KEYS})
    await db.commit()

    partner = await get_partner_access(db, PARTNER_ID)
    for employee_id in EMPLOYEE_IDS:
        _assert_bounded(partner, await get_employee_access(db, PARTNER_ID, employee_id))


async def test_unknown_keys_are_rejected_before_any_write(directory, db):
    with pytest.raises(ValidationError) as exc_info:
        await update_partner_access(db, PARTNER_ID, {"dashboard": False, "superpowers": True})

    assert exc_info.value.error == {"unknown_keys": ["superpowers"]}
    assert await _count(db, PartnerFeatureAccess) == 0


def test_validate_flags_rejects_non_boolean_values():
    with pytest.raises(ValidationError):
        validate_flags({"dashboard": "yes"})
    with pytest.raises(ValidationError):
        validate_flags(["dashboard"])
    assert validate_flags({}) == {}


def test_effective_flags_is_capability_wise_and():
    ceiling = {"dashboard": False, "teamchat": True}
    flags = {"dashboard": True, "teamchat": False}

    effective = effective_flags(ceiling, flags)

    assert effective["dashboard"] is False
    assert effective["teamchat"] is False
    assert effective["balance"] is True


def test_insert_rejects_unsupported_dialect():
    db = SimpleNamespace(get_bind=lambda: SimpleNamespace(dialect=SimpleNamespace(name="mysql")))

    with pytest.raises(StorageError, match="mysql"):
        service._insert(db, PartnerFeatureAccess)
