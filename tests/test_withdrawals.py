"""Tests for withdrawal requests and their approval against the wallet."""
import pytest
from bson import ObjectId
from pymongo.errors import PyMongoError

from campaignwala import db
from campaignwala.errors import (
    InsufficientBalance,
    InvalidStateTransition,
    NotFound,
    ValidationFailed,
)
from campaignwala.services import wallet as wallet_service
from campaignwala.services import withdrawals as withdrawal_service


@pytest.fixture
def funded(user):
    wallet_service.credit(user["_id"], 300)
    return user


@pytest.fixture
def withdrawal(funded):
    return withdrawal_service.create_withdrawal(funded["_id"], 250)


def balance_of(user):
    return db.wallets_collection.find_one({"userId": user["_id"]})["balance"]


def status_of(withdrawal):
    return db.withdrawals_collection.find_one({"_id": withdrawal["_id"]})["status"]


def test_create_without_wallet_reports_zero_available(user):
    with pytest.raises(InsufficientBalance) as exc:
        withdrawal_service.create_withdrawal(user["_id"], 10)

    assert exc.value.data == {"requested": 10, "available": 0.0}
    assert db.withdrawals_collection.count_documents({}) == 0


def test_create_validates_amount_and_user(funded):
    with pytest.raises(ValidationFailed):
        withdrawal_service.create_withdrawal(funded["_id"], 0.5)
    with pytest.raises(NotFound):
        withdrawal_service.create_withdrawal(ObjectId(), 10)


def test_malformed_admin_id_leaves_withdrawal_untouched(funded, withdrawal):
    with pytest.raises(ValidationFailed):
        withdrawal_service.approve_withdrawal(withdrawal["_id"], admin_id="not-an-id")

    assert status_of(withdrawal) == "pending"
    assert balance_of(funded) == 300

    approved = withdrawal_service.approve_withdrawal(withdrawal["_id"])
    assert approved["status"] == "approved"
    assert balance_of(funded) == 50


def test_failed_debit_releases_the_claim(funded, withdrawal, monkeypatch):
    def broken_debit(*args, **kwargs):
        raise PyMongoError("connection reset")

    monkeypatch.setattr(wallet_service, "debit", broken_debit)

    with pytest.raises(PyMongoError):
        withdrawal_service.approve_withdrawal(withdrawal["_id"])

    assert status_of(withdrawal) == "pending"
    assert balance_of(funded) == 300


def test_error_after_debit_keeps_claim_and_retry_finishes(funded, withdrawal, monkeypatch):
    real_debit = wallet_service.debit

    def debit_then_fail(*args, **kwargs):
        real_debit(*args, **kwargs)
        raise PyMongoError("connection reset")

    monkeypatch.setattr(wallet_service, "debit", debit_then_fail)
    with pytest.raises(PyMongoError):
        withdrawal_service.approve_withdrawal(withdrawal["_id"])

    assert status_of(withdrawal) == "processing"
    assert balance_of(funded) == 50

    monkeypatch.setattr(wallet_service, "debit", real_debit)
    approved = withdrawal_service.approve_withdrawal(withdrawal["_id"])

    assert approved["status"] == "approved"
    wallet = db.wallets_collection.find_one({"userId": funded["_id"]})
    assert wallet["balance"] == 50
    assert wallet["totalWithdrawn"] == 250
    assert [t["type"] for t in wallet["transactions"]] == ["credit", "debit"]


def test_stranded_processing_without_debit_is_approved_once(funded, withdrawal):
    db.withdrawals_collection.update_one({"_id": withdrawal["_id"]}, {"$set": {"status": "processing"}})

    withdrawal_service.approve_withdrawal(withdrawal["_id"])

    assert status_of(withdrawal) == "approved"
    assert balance_of(funded) == 50


def test_processing_withdrawal_cannot_be_rejected(withdrawal):
    db.withdrawals_collection.update_one({"_id": withdrawal["_id"]}, {"$set": {"status": "processing"}})

    with pytest.raises(InvalidStateTransition):
        withdrawal_service.reject_withdrawal(withdrawal["_id"], rejection_reason="Duplicate")


def test_settled_withdrawal_cannot_change_again(funded, withdrawal):
    withdrawal_service.approve_withdrawal(withdrawal["_id"])

    with pytest.raises(InvalidStateTransition):
        withdrawal_service.approve_withdrawal(withdrawal["_id"])
    with pytest.raises(InvalidStateTransition):
        withdrawal_service.reject_withdrawal(withdrawal["_id"], rejection_reason="Too late")
    assert balance_of(funded) == 50


def test_unknown_or_malformed_withdrawal_id():
    with pytest.raises(NotFound):
        withdrawal_service.approve_withdrawal(ObjectId())
    with pytest.raises(NotFound):
        withdrawal_service.delete_withdrawal(ObjectId())
    with pytest.raises(ValidationFailed):
        withdrawal_service.get_withdrawal("WDR-123")


def test_list_rejects_unknown_status_filter():
    with pytest.raises(ValidationFailed):
        withdrawal_service.list_withdrawals(status="paid")
