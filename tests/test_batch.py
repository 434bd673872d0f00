from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

import batch
import crud
import matcher
from models import BorrowLine, BorrowRequest, ReturnLine, ReturnRequest


def _borrow(db, user_id, *lines, reason="Maintenance", expected=date(2030, 1, 1)):
    request = BorrowRequest(
        user_id=user_id,
        reason=reason,
        expected_return_at=expected,
        lines=[BorrowLine(item_id=i, quantity=q) for i, q in lines],
    )
    return batch.borrow_batch(db, request)


def _return(db, user_id, *item_ids, condition="Good", notes=""):
    request = ReturnRequest(
        user_id=user_id,
        lines=[ReturnLine(item_id=i, condition=condition, notes=notes) for i in item_ids],
    )
    return batch.return_batch(db, request)


def _available(db, item_id):
    db.expire_all()
    return crud.get_item(db, item_id).available_quantity


def test_borrow_then_over_borrow_then_return_scenario(db_session, make_item):
    make_item("A", 5)

    first = _borrow(db_session, "U1", ("A", 3))
    assert first.ok
    assert _available(db_session, "A") == 2

    second = _borrow(db_session, "U1", ("A", 3))
    assert not second.ok
    assert second.code == "insufficient_stock"
    assert second.item_id == "A"
    assert _available(db_session, "A") == 2
    assert len(crud.list_transactions(db_session)) == 1

    back = _return(db_session, "U1", "A")
    assert back.ok
    assert back.transaction_ids == first.transaction_ids
    assert _available(db_session, "A") == 5

    tx = crud.get_transaction(db_session, first.transaction_ids[0])
    assert tx.status == "Returned"
    assert tx.actual_return_at is not None
    assert tx.condition == "Good"


def test_unlimited_item_scenario(client, db_session, make_item):
    make_item("B", "Unlimited")

    result = _borrow(db_session, "U1", ("B", 100))
    assert result.ok

    r = client.get("/items")
    assert r.status_code == 200
    (item,) = r.json()
    assert item["availableQuantity"] == "Unlimited"
    assert item["status"] == "Available"


def test_batch_rejected_when_any_line_short(db_session, make_item):
    make_item("C", 4)
    make_item("D", 1)
    assert _borrow(db_session, "U2", ("D", 1)).ok
    assert _available(db_session, "D") == 0

    result = _borrow(db_session, "U1", ("C", 2), ("D", 1))
    assert not result.ok
    assert result.code == "insufficient_stock"
    assert result.item_id == "D"
    assert _available(db_session, "C") == 4
    assert crud.list_transactions(db_session, user_id="U1") == []


def test_same_item_twice_in_batch_counts_against_stock(db_session, make_item):
    make_item("A", 5)

    rejected = _borrow(db_session, "U1", ("A", 3), ("A", 3))
    assert not rejected.ok
    assert rejected.item_id == "A"
    assert _available(db_session, "A") == 5

    accepted = _borrow(db_session, "U1", ("A", 3), ("A", 2))
    assert accepted.ok
    assert len(accepted.transaction_ids) == 2
    assert _available(db_session, "A") == 0


def test_unknown_item_rejects_batch(db_session, make_item):
    make_item("A", 5)
    result = _borrow(db_session, "U1", ("A", 1), ("ZZZ", 1))
    assert not result.ok
    assert result.code == "item_not_found"
    assert result.item_id == "ZZZ"
    assert _available(db_session, "A") == 5


def test_blank_reason_rejected(db_session, make_item):
    make_item("A", 5)
    result = _borrow(db_session, "U1", ("A", 1), reason="   ")
    assert not result.ok
    assert result.code == "invalid_request"
    assert _available(db_session, "A") == 5


def test_return_restores_recorded_quantity(db_session, make_item):
    make_item("A", 10)
    assert _borrow(db_session, "U1", ("A", 4)).ok
    assert _available(db_session, "A") == 6

    assert _return(db_session, "U1", "A").ok
    assert _available(db_session, "A") == 10


def test_return_closes_most_recent_open_loan(db_session, make_item):
    make_item("A", 10)
    older = _borrow(db_session, "U1", ("A", 1))
    newer = _borrow(db_session, "U1", ("A", 3))

    result = _return(db_session, "U1", "A")
    assert result.transaction_ids == newer.transaction_ids
    assert _available(db_session, "A") == 10 - 1

    assert crud.get_transaction(db_session, older.transaction_ids[0]).status == "Borrowed"
    assert crud.get_transaction(db_session, newer.transaction_ids[0]).status == "Returned"


def test_returning_same_item_twice_in_batch_closes_two_loans(db_session, make_item):
    make_item("A", 10)
    first = _borrow(db_session, "U1", ("A", 1))
    second = _borrow(db_session, "U1", ("A", 2))

    result = _return(db_session, "U1", "A", "A")
    assert result.ok
    assert result.transaction_ids == second.transaction_ids + first.transaction_ids
    assert result.unmatched == []
    assert _available(db_session, "A") == 10


def test_overdue_loan_can_be_returned(db_session, make_item):
    make_item("A", 2)
    loan = _borrow(db_session, "U1", ("A", 2), expected=date(2020, 1, 1))
    assert batch.sweep_overdue(db_session, now=datetime(2021, 1, 1)) == 1

    result = _return(db_session, "U1", "A")
    assert result.transaction_ids == loan.transaction_ids
    assert result.unmatched == []
    assert _available(db_session, "A") == 2


def test_unmatched_return_is_recorded(db_session, make_item):
    make_item("A", 5)
    assert _borrow(db_session, "U2", ("A", 2)).ok

    result = _return(db_session, "U1", "A", notes="found in locker")
    assert result.ok
    assert result.unmatched == ["A"]

    tx = crud.get_transaction(db_session, result.transaction_ids[0])
    assert tx.action == "ReturnUnmatched"
    assert tx.quantity == matcher.UNMATCHED_DEFAULT_QUANTITY
    assert tx.status == "Returned"
    assert tx.reason == "found in locker"
    # default one unit goes back on the shelf
    assert _available(db_session, "A") == 4
    # U2's loan is untouched
    assert len(crud.list_active_borrows(db_session, "U2")) == 1


def test_unmatched_return_on_full_stock_is_clamped(db_session, make_item):
    make_item("A", 5)
    result = _return(db_session, "U1", "A")
    assert result.ok
    assert result.unmatched == ["A"]
    assert len(result.warnings) == 1
    assert _available(db_session, "A") == 5

    tx = crud.get_transaction(db_session, result.transaction_ids[0])
    assert tx.reason == matcher.UNMATCHED_DEFAULT_REASON


def test_return_after_item_deleted_closes_loan(db_session, make_item):
    row = make_item("A", 5)
    loan = _borrow(db_session, "U1", ("A", 1))
    crud.delete_row(db_session, "items", row.row_id)

    result = _return(db_session, "U1", "A")
    assert result.ok
    assert crud.get_transaction(db_session, loan.transaction_ids[0]).status == "Returned"
    assert crud.get_item(db_session, "A") is None


def test_over_return_after_admin_shrinks_total(db_session, make_item):
    make_item("A", 5)
    row = crud.get_item_row(db_session, "A")
    assert _borrow(db_session, "U1", ("A", 3)).ok
    crud.update_fields(db_session, "items", row.row_id, {"total_quantity": 3, "available_quantity": 2})

    result = _return(db_session, "U1", "A")
    assert result.ok
    assert result.warnings
    assert _available(db_session, "A") == 3


def test_single_line_wrappers_match_batch_effects(db_session, make_item):
    make_item("A", 3)
    borrowed = batch.borrow_one(db_session, user_id="U1", item_id="A", quantity=2, reason="Job 12")
    assert borrowed.ok
    assert _available(db_session, "A") == 1

    active = crud.list_active_borrows(db_session, "U1")
    assert [(b.item_id, b.quantity, b.status) for b in active] == [("A", 2, "Borrowed")]

    returned = batch.return_one(db_session, user_id="U1", item_id="A", condition="Worn")
    assert returned.ok
    assert returned.transaction_ids == borrowed.transaction_ids
    assert _available(db_session, "A") == 3
    assert crud.list_active_borrows(db_session, "U1") == []


def test_single_line_wrapper_rejects_bad_quantity(db_session, make_item):
    make_item("A", 3)
    result = batch.borrow_one(db_session, user_id="U1", item_id="A", quantity=0, reason="x")
    assert not result.ok
    assert result.code == "invalid_request"
    assert _available(db_session, "A") == 3


def test_borrow_records_shared_fields_and_proofs(db_session, make_item):
    make_item("A", 3)
    make_item("B", 3)
    request = BorrowRequest(
        user_id="U1",
        reason="Line 4 repair",
        expected_return_at=date(2030, 5, 1),
        lines=[
            BorrowLine(item_id="A", quantity=1, proof_ref="https://files.example/a.jpg"),
            BorrowLine(item_id="B", quantity=2),
        ],
    )
    result = batch.borrow_batch(db_session, request)
    assert result.ok

    txs = {t.item_id: t for t in crud.list_transactions(db_session)}
    assert txs["A"].borrow_proof_ref == "https://files.example/a.jpg"
    assert txs["B"].borrow_proof_ref == ""
    for t in txs.values():
        assert t.action == "Borrow"
        assert t.reason == "Line 4 repair"
        assert t.expected_return_at == date(2030, 5, 1)
        assert t.status == "Borrowed"


def test_sweep_marks_only_past_due_borrowed(db_session, make_item):
    make_item("A", 10)
    past = _borrow(db_session, "U1", ("A", 1), expected=date(2024, 1, 10))
    due_today = _borrow(db_session, "U1", ("A", 1), expected=date(2024, 1, 15))
    future = _borrow(db_session, "U1", ("A", 1), expected=date(2024, 2, 1))
    returned = _borrow(db_session, "U2", ("A", 1), expected=date(2024, 1, 1))
    assert _return(db_session, "U2", "A").ok

    updated = batch.sweep_overdue(db_session, now=datetime(2024, 1, 15, 9, 0))
    assert updated == 1

    def status(result):
        return crud.get_transaction(db_session, result.transaction_ids[0]).status

    assert status(past) == "Overdue"
    assert status(due_today) == "Borrowed"
    assert status(future) == "Borrowed"
    assert status(returned) == "Returned"

    # idempotent
    assert batch.sweep_overdue(db_session, now=datetime(2024, 1, 15, 9, 0)) == 0


def test_stock_invariant_holds_across_sequence(db_session, make_item):
    make_item("A", 4)
    steps = [
        ("borrow", "U1", 2),
        ("borrow", "U2", 2),
        ("borrow", "U3", 1),
        ("return", "U1", None),
        ("return", "U1", None),
        ("borrow", "U3", 3),
        ("return", "U2", None),
        ("return", "U3", None),
        ("return", "U9", None),
    ]
    for kind, user, qty in steps:
        if kind == "borrow":
            _borrow(db_session, user, ("A", qty))
        else:
            _return(db_session, user, "A")
        available = _available(db_session, "A")
        assert 0 <= available <= 4


def test_sweep_uses_crib_local_date(db_session, make_item, monkeypatch):
    monkeypatch.setattr(batch, "LOCAL_TZ", ZoneInfo("Asia/Bangkok"))
    make_item("A", 5)
    loan = _borrow(db_session, "U1", ("A", 1), expected=date(2024, 1, 14))

    # 20:00 UTC on the 14th is already the 15th in Bangkok
    evening_utc = datetime(2024, 1, 14, 20, 0, tzinfo=timezone.utc)
    assert batch.local_date(evening_utc) == date(2024, 1, 15)
    assert batch.sweep_overdue(db_session, now=evening_utc) == 1
    assert crud.get_transaction(db_session, loan.transaction_ids[0]).status == "Overdue"


def test_sweep_treats_naive_now_as_local(monkeypatch):
    monkeypatch.setattr(batch, "LOCAL_TZ", ZoneInfo("Asia/Bangkok"))
    assert batch.local_date(datetime(2024, 1, 14, 23, 30)) == date(2024, 1, 14)
