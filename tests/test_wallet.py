"""Tests for the wallet ledger."""
import pytest

from campaignwala import db
from campaignwala.errors import InsufficientBalance, ValidationFailed
from campaignwala.services import wallet as wallet_service


def assert_balanced(wallet):
    assert wallet["balance"] == pytest.approx(wallet["totalEarned"] - wallet["totalWithdrawn"])


def test_get_or_create_wallet_is_idempotent(user):
    first = wallet_service.get_or_create_wallet(user["_id"])
    second = wallet_service.get_or_create_wallet(str(user["_id"]))

    assert first["_id"] == second["_id"]
    assert second["balance"] == 0
    assert db.wallets_collection.count_documents({"userId": user["_id"]}) == 1


def test_credit_updates_totals_and_logs_transaction(user):
    wallet, applied = wallet_service.credit(user["_id"], 100, description="Bonus")

    assert applied is True
    assert wallet["balance"] == 100
    assert wallet["totalEarned"] == 100
    assert len(wallet["transactions"]) == 1
    txn = wallet["transactions"][0]
    assert txn["type"] == "credit"
    assert txn["amount"] == 100
    assert txn["description"] == "Bonus"
    assert_balanced(wallet)


def test_credit_with_reference_is_applied_once(user):
    wallet_service.credit(user["_id"], 100, reference="lead-1:commission1")
    wallet, applied = wallet_service.credit(user["_id"], 100, reference="lead-1:commission1")

    assert applied is False
    assert wallet["balance"] == 100
    assert len(wallet["transactions"]) == 1


def test_credit_rejects_non_positive_amount(user):
    with pytest.raises(ValidationFailed):
        wallet_service.credit(user["_id"], 0)
    with pytest.raises(ValidationFailed):
        wallet_service.debit(user["_id"], -5)


def test_debit_never_overdraws(user):
    wallet_service.credit(user["_id"], 50)

    with pytest.raises(InsufficientBalance) as exc:
        wallet_service.debit(user["_id"], 80)

    assert exc.value.data == {"requested": 80, "available": 50}
    wallet = db.wallets_collection.find_one({"userId": user["_id"]})
    assert wallet["balance"] == 50
    assert wallet["totalWithdrawn"] == 0
    assert len(wallet["transactions"]) == 1


def test_balance_invariant_holds_across_mixed_operations(user):
    wallet_service.credit(user["_id"], 100.10)
    wallet_service.credit(user["_id"], 49.90)
    wallet_service.debit(user["_id"], 30.25)
    wallet = wallet_service.debit(user["_id"], 19.75)

    assert wallet["balance"] == pytest.approx(100)
    assert wallet["totalEarned"] == pytest.approx(150)
    assert wallet["totalWithdrawn"] == pytest.approx(50)
    assert_balanced(wallet)
    assert [t["type"] for t in wallet["transactions"]] == ["credit", "credit", "debit", "debit"]


def test_amounts_are_rounded_to_paise(user):
    wallet, _ = wallet_service.credit(user["_id"], "10.005")
    assert wallet["balance"] == 10.01


def test_get_balance_defaults_to_zero(user):
    assert wallet_service.get_balance(user["_id"]) == 0.0


def test_debit_with_reference_is_applied_once(user):
    wallet_service.credit(user["_id"], 300)

    wallet_service.debit(user["_id"], 250, reference="withdrawal:WDR-1")
    # a repeat must not raise even though the balance no longer covers it
    wallet = wallet_service.debit(user["_id"], 250, reference="withdrawal:WDR-1")

    assert wallet["balance"] == 50
    assert wallet["totalWithdrawn"] == 250
    assert [t["type"] for t in wallet["transactions"]] == ["credit", "debit"]
    assert wallet_service.has_reference(user["_id"], "withdrawal:WDR-1")
    assert not wallet_service.has_reference(user["_id"], "withdrawal:WDR-2")

    with pytest.raises(InsufficientBalance):
        wallet_service.debit(user["_id"], 250, reference="withdrawal:WDR-2")
