import uuid
from datetime import datetime

import pytest
from sqlalchemy.exc import SQLAlchemyError

from errors import InvalidIdentifier, NotFound, PersistenceError, ValidationError
from ledger import ExpenseLedger, is_valid_expense_id, strip_protected_fields
from models import ExpenseModel

COFFEE = {"title": "Coffee", "amount": 3.5, "category": "Food", "date": "2024-04-30"}


def test_expense_id_shape():
    assert is_valid_expense_id(str(uuid.uuid4()))
    assert not is_valid_expense_id("not-an-id")
    assert not is_valid_expense_id("")
    assert not is_valid_expense_id(None)


def test_protected_fields_are_stripped():
    cleaned = strip_protected_fields({"title": "x", "owner": "b", "owner_id": "b", "id": "1", "createdAt": "t"})

    assert cleaned == {"title": "x"}


@pytest.mark.asyncio
async def test_create_then_list_round_trip(session, owners):
    owner_a, _ = owners
    ledger = ExpenseLedger(session)

    created = await ledger.create(owner_a, {"title": "  Coffee ", "amount": "3.5", "category": " Food ", "date": "2024-04-30"})

    assert created.owner == owner_a
    assert is_valid_expense_id(created.id)
    assert created.created_at is not None and created.updated_at is not None

    listed = await ledger.list(owner_a)
    assert [item.id for item in listed] == [created.id]
    stored = listed[0]
    assert stored.title == "Coffee"
    assert stored.amount == 3.5
    assert stored.category == "Food"
    assert stored.date == datetime(2024, 4, 30)


@pytest.mark.asyncio
async def test_create_rejects_invalid_payload_without_writing(session, owners):
    owner_a, _ = owners
    ledger = ExpenseLedger(session)

    with pytest.raises(ValidationError) as excinfo:
        await ledger.create(owner_a, {"title": "Coffee", "amount": 0, "category": "Food"})

    assert excinfo.value.errors == ["Amount must be greater than 0"]
    assert await ledger.list(owner_a) == []


@pytest.mark.asyncio
async def test_create_ignores_owner_in_payload(session, owners):
    owner_a, owner_b = owners
    ledger = ExpenseLedger(session)

    created = await ledger.create(owner_a, dict(COFFEE, owner=owner_b, owner_id=owner_b))

    assert created.owner == owner_a
    assert await ledger.list(owner_b) == []


@pytest.mark.asyncio
async def test_list_is_newest_first_and_scoped(session, owners):
    owner_a, owner_b = owners
    ledger = ExpenseLedger(session)

    first = await ledger.create(owner_a, dict(COFFEE, title="First"))
    second = await ledger.create(owner_a, dict(COFFEE, title="Second"))
    await ledger.create(owner_b, dict(COFFEE, title="Not yours"))
    third = await ledger.create(owner_a, dict(COFFEE, title="Third"))

    listed = await ledger.list(owner_a)

    assert [item.id for item in listed] == [third.id, second.id, first.id]
    stamps = [item.created_at for item in listed]
    assert all(newer > older for newer, older in zip(stamps, stamps[1:]))


@pytest.mark.asyncio
async def test_update_replaces_fields(session, owners):
    owner_a, _ = owners
    ledger = ExpenseLedger(session)
    created = await ledger.create(owner_a, COFFEE)

    updated = await ledger.update(owner_a, created.id, {"title": "Latte", "amount": 4.25, "category": "Drinks", "date": "2024-05-01"})

    assert updated.id == created.id
    assert (updated.title, updated.amount, updated.category) == ("Latte", 4.25, "Drinks")
    assert updated.date == datetime(2024, 5, 1)
    assert updated.created_at == created.created_at
    assert updated.updated_at >= created.updated_at
    assert (await ledger.list(owner_a))[0].title == "Latte"


@pytest.mark.asyncio
async def test_update_cannot_move_record_to_another_owner(session, owners):
    owner_a, owner_b = owners
    ledger = ExpenseLedger(session)
    created = await ledger.create(owner_a, COFFEE)

    updated = await ledger.update(owner_a, created.id, dict(COFFEE, owner=owner_b, owner_id=owner_b, id="x"))

    assert updated.owner == owner_a
    assert updated.id == created.id
    assert await ledger.list(owner_b) == []


@pytest.mark.asyncio
async def test_invalid_update_leaves_record_unchanged(session, owners):
    owner_a, _ = owners
    ledger = ExpenseLedger(session)
    created = await ledger.create(owner_a, COFFEE)

    with pytest.raises(ValidationError) as excinfo:
        await ledger.update(owner_a, created.id, dict(COFFEE, amount=-1))

    assert excinfo.value.errors == ["Amount must be greater than 0"]
    assert (await ledger.list(owner_a))[0].amount == 3.5


@pytest.mark.asyncio
async def test_malformed_id_is_checked_before_payload(session, owners):
    owner_a, _ = owners
    ledger = ExpenseLedger(session)

    with pytest.raises(InvalidIdentifier):
        await ledger.update(owner_a, "123", {})
    with pytest.raises(InvalidIdentifier):
        await ledger.delete(owner_a, "123")


@pytest.mark.asyncio
async def test_foreign_and_missing_records_look_the_same(session, owners):
    owner_a, owner_b = owners
    ledger = ExpenseLedger(session)
    created = await ledger.create(owner_a, COFFEE)
    missing_id = str(uuid.uuid4())

    for expense_id in (created.id, missing_id):
        with pytest.raises(NotFound):
            await ledger.update(owner_b, expense_id, COFFEE)
        with pytest.raises(NotFound):
            await ledger.delete(owner_b, expense_id)

    assert [item.id for item in await ledger.list(owner_a)] == [created.id]


@pytest.mark.asyncio
async def test_delete_returns_prior_state_and_is_not_repeatable(session, owners):
    owner_a, _ = owners
    ledger = ExpenseLedger(session)
    created = await ledger.create(owner_a, COFFEE)
    kept = await ledger.create(owner_a, dict(COFFEE, title="Tea"))

    deleted = await ledger.delete(owner_a, created.id)

    assert deleted.id == created.id
    assert deleted.title == "Coffee"
    for _ in range(2):
        with pytest.raises(NotFound):
            await ledger.delete(owner_a, created.id)
    assert [item.id for item in await ledger.list(owner_a)] == [kept.id]


@pytest.mark.asyncio
async def test_store_failures_become_persistence_errors(session, owners, monkeypatch):
    owner_a, _ = owners
    ledger = ExpenseLedger(session)

    async def broken_commit():
        raise SQLAlchemyError("disk I/O error")

    monkeypatch.setattr(session, "commit", broken_commit)

    with pytest.raises(PersistenceError) as excinfo:
        await ledger.create(owner_a, COFFEE)

    assert excinfo.value.message == "Failed to create expense"
    assert "disk I/O error" in excinfo.value.details


@pytest.mark.asyncio
async def test_list_breaks_timestamp_ties_by_id(session, owners):
    owner_a, _ = owners
    stamp = datetime(2024, 5, 1, 12, 0, 0, 123456)
    ids = sorted(str(uuid.uuid4()) for _ in range(3))
    session.add_all(
        ExpenseModel(id=expense_id, owner_id=owner_a, title="Tie", amount=1.0, category="Food", created_at=stamp)
        for expense_id in ids
    )
    await session.commit()
    ledger = ExpenseLedger(session)

    first = [item.id for item in await ledger.list(owner_a)]
    second = [item.id for item in await ledger.list(owner_a)]

    assert first == second == list(reversed(ids))
