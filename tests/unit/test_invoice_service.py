"""
Unit tests for invoicehub/services/invoice_service.py

Uses AsyncMock sessions to isolate from the database.
Tests: list_invoices, get_invoice, create_invoice, update_invoice,
       delete_invoice, duplicate_invoice and the number-collision retry.
"""

import copy
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from invoicehub.config import settings
from invoicehub.models.invoice import Invoice
from invoicehub.schemas.invoice import InvoiceListQuery
from invoicehub.services.invoice_service import (
    ERROR_MESSAGES,
    NOT_FOUND,
    NUMBER_CONFLICT,
    PERSISTENCE_ERROR,
    PLAN_LIMIT_REACHED,
    UNEXPECTED_ERROR,
    VALIDATION_FAILED,
    create_invoice,
    delete_invoice,
    duplicate_invoice,
    get_invoice,
    list_invoices,
    update_invoice,
)

ORG_A = "org_alpha"
ORG_B = "org_beta"
USER_A = "user_a"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _mock_session() -> AsyncMock:
    session = AsyncMock()
    session.add = MagicMock()
    session.flush = AsyncMock()
    nested = MagicMock()
    nested.__aenter__ = AsyncMock(return_value=None)
    nested.__aexit__ = AsyncMock(return_value=False)
    session.begin_nested = MagicMock(return_value=nested)
    return session


def _make_invoice(org_id: str = ORG_A, **overrides) -> Invoice:
    now = datetime.now(timezone.utc)
    fields = dict(
        id=uuid.uuid4(),
        invoice_number="INV-100200300",
        organization_id=org_id,
        user_id="user_original",
        customer_name="Acme Corporation",
        customer_email="accounting@acme.com",
        amount=Decimal("5420.00"),
        status="paid",
        issue_date=date(2025, 1, 10),
        due_date=date(2025, 2, 10),
        items=[{"name": "Web Development", "quantity": 40, "price": 120.0}],
        payment_method="bank_transfer",
        notes="Payment received on time",
        created_at=now,
        updated_at=now,
    )
    fields.update(overrides)
    return Invoice(**fields)


def _one_result(value):
    result = MagicMock()
    result.scalar_one_or_none.return_value = value
    return result


def _scalars_result(values):
    result = MagicMock()
    result.scalars.return_value.all.return_value = values
    return result


def _count_result(value):
    result = MagicMock()
    result.scalar.return_value = value
    return result


def _rowcount_result(n):
    result = MagicMock()
    result.rowcount = n
    return result


def _collision():
    return IntegrityError(
        "INSERT INTO invoices ...",
        {},
        Exception('duplicate key value violates unique constraint "uq_invoice_org_number"'),
    )


def _this_month(n):
    return [datetime.now(timezone.utc)] * n


def _bound_params(session, call_index=0):
    stmt = session.execute.await_args_list[call_index].args[0]
    return list(stmt.compile().params.values())


@pytest.fixture
def revalidate():
    with patch(
        "invoicehub.services.invoice_service.revalidate_paths", new_callable=AsyncMock
    ) as mock:
        yield mock


# ---------------------------------------------------------------------------
# list_invoices
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_list_returns_org_rows():
    session = _mock_session()
    rows = [_make_invoice(), _make_invoice()]
    session.execute = AsyncMock(return_value=_scalars_result(rows))

    result = await list_invoices(session, ORG_A)

    assert result.success
    assert result.data.items == rows
    assert result.data.total == 2
    assert ORG_A in _bound_params(session)


@pytest.mark.asyncio
async def test_list_paginated_counts_separately():
    session = _mock_session()
    rows = [_make_invoice()]
    session.execute = AsyncMock(side_effect=[_count_result(25), _scalars_result(rows)])

    result = await list_invoices(session, ORG_A, InvoiceListQuery(page=3, limit=10, status="paid"))

    assert result.success
    assert result.data.total == 25
    assert result.data.items == rows
    assert session.execute.await_count == 2
    assert "paid" in _bound_params(session, 1)


@pytest.mark.asyncio
async def test_list_search_escapes_wildcards():
    session = _mock_session()
    session.execute = AsyncMock(return_value=_scalars_result([]))

    await list_invoices(session, ORG_A, InvoiceListQuery(search="50%_off"))

    assert "%50\\%\\_off%" in _bound_params(session)


@pytest.mark.asyncio
async def test_list_persistence_failure_returns_no_data():
    session = _mock_session()
    session.execute = AsyncMock(side_effect=OperationalError("SELECT", {}, Exception("connection reset")))

    result = await list_invoices(session, ORG_A)

    assert not result.success
    assert result.data is None
    assert result.error_code == PERSISTENCE_ERROR
    assert result.error == ERROR_MESSAGES[PERSISTENCE_ERROR]
    assert "connection reset" not in result.error
    session.rollback.assert_awaited_once()


# ---------------------------------------------------------------------------
# get_invoice
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_get_returns_row():
    session = _mock_session()
    inv = _make_invoice()
    session.execute = AsyncMock(return_value=_one_result(inv))

    result = await get_invoice(session, ORG_A, str(inv.id))

    assert result.success
    assert result.data is inv
    params = _bound_params(session)
    assert ORG_A in params
    assert inv.id in params


@pytest.mark.asyncio
async def test_get_other_org_row_is_not_found():
    """The query is scoped to org B, so org A's row never comes back."""
    session = _mock_session()
    session.execute = AsyncMock(return_value=_one_result(None))

    result = await get_invoice(session, ORG_B, str(uuid.uuid4()))

    assert result.success
    assert result.data is None
    assert ORG_B in _bound_params(session)


@pytest.mark.asyncio
async def test_get_malformed_id_is_not_found():
    session = _mock_session()

    result = await get_invoice(session, ORG_A, "not-a-uuid")

    assert result.success
    assert result.data is None
    session.execute.assert_not_awaited()


# ---------------------------------------------------------------------------
# create_invoice
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_create_inserts_with_org_and_user(valid_payload, revalidate):
    session = _mock_session()
    session.execute = AsyncMock(return_value=_scalars_result(_this_month(3)))

    result = await create_invoice(session, ORG_A, USER_A, valid_payload)

    assert result.success
    inv = result.data
    assert inv.organization_id == ORG_A
    assert inv.user_id == USER_A
    assert inv.invoice_number.startswith("INV-")
    assert inv.amount == Decimal("49.99")
    assert inv.status == "pending"
    assert inv.items == [{"name": "Consulting", "quantity": 2, "price": 25.0}]
    session.add.assert_called_once_with(inv)
    session.flush.assert_awaited_once()
    revalidate.assert_awaited_once_with(ORG_A, "/dashboard", "/billing")


@pytest.mark.asyncio
async def test_create_validation_failure_touches_nothing(valid_payload, revalidate):
    session = _mock_session()
    payload = dict(valid_payload, amount=0)

    result = await create_invoice(session, ORG_A, USER_A, payload)

    assert not result.success
    assert result.error_code == VALIDATION_FAILED
    assert result.error == ERROR_MESSAGES[VALIDATION_FAILED]
    assert "amount" in result.validation_errors
    session.execute.assert_not_awaited()
    session.add.assert_not_called()
    revalidate.assert_not_awaited()


@pytest.mark.asyncio
async def test_create_blocked_at_plan_limit(valid_payload, revalidate):
    session = _mock_session()
    session.execute = AsyncMock(return_value=_scalars_result(_this_month(10)))

    result = await create_invoice(session, ORG_A, USER_A, valid_payload)

    assert not result.success
    assert result.error_code == PLAN_LIMIT_REACHED
    assert "Free plan limit of 10 invoices per month" in result.error
    assert result.details == {"current_usage": 10, "limit": 10, "plan": "Free"}
    session.add.assert_not_called()
    revalidate.assert_not_awaited()


@pytest.mark.asyncio
async def test_create_retries_on_number_collision(valid_payload, revalidate):
    session = _mock_session()
    session.execute = AsyncMock(return_value=_scalars_result([]))
    session.flush = AsyncMock(side_effect=[_collision(), None])

    with patch(
        "invoicehub.services.invoice_service.generate_invoice_number",
        side_effect=["INV-111111001", "INV-111111002"],
    ):
        result = await create_invoice(session, ORG_A, USER_A, valid_payload)

    assert result.success
    assert result.data.invoice_number == "INV-111111002"
    assert session.begin_nested.call_count == 2
    revalidate.assert_awaited_once()


@pytest.mark.asyncio
async def test_create_gives_up_after_max_attempts(valid_payload, revalidate):
    session = _mock_session()
    session.execute = AsyncMock(return_value=_scalars_result([]))
    session.flush = AsyncMock(side_effect=_collision())

    result = await create_invoice(session, ORG_A, USER_A, valid_payload)

    assert not result.success
    assert result.error_code == NUMBER_CONFLICT
    assert session.begin_nested.call_count == settings.INVOICE_NUMBER_MAX_ATTEMPTS
    revalidate.assert_not_awaited()


@pytest.mark.asyncio
async def test_create_other_integrity_error_is_persistence_error(valid_payload, revalidate):
    session = _mock_session()
    session.execute = AsyncMock(return_value=_scalars_result([]))
    session.flush = AsyncMock(
        side_effect=IntegrityError("INSERT", {}, Exception('violates check constraint "chk_invoice_dates"'))
    )

    result = await create_invoice(session, ORG_A, USER_A, valid_payload)

    assert not result.success
    assert result.error_code == PERSISTENCE_ERROR
    assert "chk_invoice_dates" not in result.error
    assert session.begin_nested.call_count == 1
    session.rollback.assert_awaited_once()


@pytest.mark.asyncio
async def test_unexpected_exception_becomes_failure_result(valid_payload, revalidate):
    session = _mock_session()
    session.execute = AsyncMock(side_effect=RuntimeError("boom"))

    result = await create_invoice(session, ORG_A, USER_A, valid_payload)

    assert not result.success
    assert result.error_code == UNEXPECTED_ERROR
    assert result.error == ERROR_MESSAGES[UNEXPECTED_ERROR]


# ---------------------------------------------------------------------------
# update_invoice
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_update_applies_only_supplied_fields(revalidate):
    session = _mock_session()
    inv = _make_invoice()
    session.execute = AsyncMock(return_value=_one_result(inv))

    result = await update_invoice(session, ORG_A, {"id": str(inv.id), "status": "overdue", "notes": ""})

    assert result.success
    assert result.data is inv
    assert inv.status == "overdue"
    assert inv.notes is None
    assert inv.customer_name == "Acme Corporation"
    assert inv.organization_id == ORG_A
    session.flush.assert_awaited_once()
    revalidate.assert_awaited_once_with(ORG_A, "/dashboard")


@pytest.mark.asyncio
async def test_update_checks_due_date_against_stored_issue_date(revalidate):
    session = _mock_session()
    inv = _make_invoice(issue_date=date(2025, 1, 10), due_date=date(2025, 2, 10))
    session.execute = AsyncMock(return_value=_one_result(inv))

    result = await update_invoice(session, ORG_A, {"id": str(inv.id), "due_date": "2025-01-01"})

    assert not result.success
    assert result.error_code == VALIDATION_FAILED
    assert "due_date" in result.validation_errors
    assert inv.due_date == date(2025, 2, 10)
    session.flush.assert_not_awaited()


@pytest.mark.asyncio
async def test_update_missing_invoice_is_not_found(revalidate):
    session = _mock_session()
    session.execute = AsyncMock(return_value=_one_result(None))

    result = await update_invoice(session, ORG_B, {"id": str(uuid.uuid4()), "status": "paid"})

    assert not result.success
    assert result.error_code == NOT_FOUND
    assert result.error == "Invoice not found"
    assert ORG_B in _bound_params(session)
    revalidate.assert_not_awaited()


@pytest.mark.asyncio
async def test_update_invalid_payload(revalidate):
    session = _mock_session()

    result = await update_invoice(session, ORG_A, {"id": "abc", "amount": -1})

    assert not result.success
    assert result.error_code == VALIDATION_FAILED
    assert set(result.validation_errors) >= {"id", "amount"}
    session.execute.assert_not_awaited()


# ---------------------------------------------------------------------------
# delete_invoice
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_delete_scoped_by_org(revalidate):
    session = _mock_session()
    session.execute = AsyncMock(return_value=_rowcount_result(1))
    inv_id = uuid.uuid4()

    result = await delete_invoice(session, ORG_A, str(inv_id))

    assert result.success
    params = _bound_params(session)
    assert ORG_A in params
    assert inv_id in params
    revalidate.assert_awaited_once_with(ORG_A, "/dashboard", "/billing")


@pytest.mark.asyncio
async def test_delete_missing_or_foreign_is_failure(revalidate):
    session = _mock_session()
    session.execute = AsyncMock(return_value=_rowcount_result(0))

    result = await delete_invoice(session, ORG_B, str(uuid.uuid4()))

    assert not result.success
    assert result.error_code == NOT_FOUND
    revalidate.assert_not_awaited()


@pytest.mark.asyncio
async def test_delete_malformed_id_is_failure(revalidate):
    session = _mock_session()

    result = await delete_invoice(session, ORG_A, "42")

    assert not result.success
    assert result.error_code == NOT_FOUND
    session.execute.assert_not_awaited()


# ---------------------------------------------------------------------------
# Commit before view invalidation
# ---------------------------------------------------------------------------


def _record_order(session, revalidate):
    events = []
    session.commit = AsyncMock(side_effect=lambda: events.append("commit"))
    revalidate.side_effect = lambda *paths: events.append("revalidate")
    return events


@pytest.mark.asyncio
async def test_create_commits_before_revalidating(valid_payload, revalidate):
    session = _mock_session()
    session.execute = AsyncMock(return_value=_scalars_result(_this_month(0)))
    events = _record_order(session, revalidate)

    result = await create_invoice(session, ORG_A, USER_A, valid_payload)

    assert result.success
    assert events == ["commit", "revalidate"]


@pytest.mark.asyncio
async def test_update_commits_before_revalidating(revalidate):
    session = _mock_session()
    inv = _make_invoice()
    session.execute = AsyncMock(return_value=_one_result(inv))
    events = _record_order(session, revalidate)

    result = await update_invoice(session, ORG_A, {"id": str(inv.id), "status": "overdue"})

    assert result.success
    assert events == ["commit", "revalidate"]


@pytest.mark.asyncio
async def test_delete_commits_before_revalidating(revalidate):
    session = _mock_session()
    session.execute = AsyncMock(return_value=_rowcount_result(1))
    events = _record_order(session, revalidate)

    result = await delete_invoice(session, ORG_A, str(uuid.uuid4()))

    assert result.success
    assert events == ["commit", "revalidate"]


@pytest.mark.asyncio
async def test_failed_commit_skips_revalidation(valid_payload, revalidate):
    session = _mock_session()
    session.execute = AsyncMock(return_value=_scalars_result(_this_month(0)))
    session.commit = AsyncMock(side_effect=OperationalError("COMMIT", {}, Exception("connection reset")))

    result = await create_invoice(session, ORG_A, USER_A, valid_payload)

    assert not result.success
    assert result.error_code == PERSISTENCE_ERROR
    revalidate.assert_not_awaited()
    session.rollback.assert_awaited()


# ---------------------------------------------------------------------------
# duplicate_invoice
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_duplicate_copies_content_with_fresh_identity(revalidate):
    session = _mock_session()
    source = _make_invoice(status="paid")
    source_items = copy.deepcopy(source.items)
    session.execute = AsyncMock(side_effect=[_one_result(source), _scalars_result(_this_month(1))])

    result = await duplicate_invoice(session, ORG_A, USER_A, str(source.id))

    assert result.success
    dup = result.data
    assert dup.id != source.id
    assert dup.invoice_number != source.invoice_number
    assert dup.status == "pending"
    assert dup.organization_id == ORG_A
    assert dup.user_id == USER_A
    assert dup.content() == source.content()
    assert dup.items is not source.items
    assert source.items == source_items
    revalidate.assert_awaited_once_with(ORG_A, "/dashboard", "/billing")


@pytest.mark.asyncio
async def test_duplicate_missing_source_is_not_found(revalidate):
    session = _mock_session()
    session.execute = AsyncMock(return_value=_one_result(None))

    result = await duplicate_invoice(session, ORG_B, USER_A, str(uuid.uuid4()))

    assert not result.success
    assert result.error_code == NOT_FOUND
    session.add.assert_not_called()


@pytest.mark.asyncio
async def test_duplicate_counts_against_plan_limit(revalidate):
    session = _mock_session()
    source = _make_invoice()
    session.execute = AsyncMock(side_effect=[_one_result(source), _scalars_result(_this_month(10))])

    result = await duplicate_invoice(session, ORG_A, USER_A, str(source.id))

    assert not result.success
    assert result.error_code == PLAN_LIMIT_REACHED
    session.add.assert_not_called()
