"""Tests for API endpoints"""
from datetime import timedelta

from campaignwala import db
from campaignwala.errors import ERROR_LEAD_SETTLED, ERROR_TOKEN_EXPIRED, ERROR_TOKEN_REQUIRED
from campaignwala.routes import offers as offers_routes
from campaignwala.utils.security import create_access_token, verify_password

PASSWORD = "secret123"


def test_health_check(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["database"] == "connected"


def test_unknown_route_uses_error_envelope(client):
    response = client.get("/api/nope")
    assert response.status_code == 404
    assert response.json()["success"] is False


def test_register_and_login_flow(client, outbox):
    response = client.post("/api/users/send-otp", json={"phoneNumber": "9876543210"})
    assert response.status_code == 200

    response = client.post("/api/users/register", json={
        "phoneNumber": "9876543210",
        "otp": outbox.last_sms_code,
        "name": "Ravi",
        "email": "ravi@example.com",
        "password": PASSWORD,
    })
    assert response.status_code == 201
    data = response.json()["data"]
    assert data["token"]
    assert "password" not in data["user"]

    response = client.post("/api/users/login", json={"phoneNumber": "9876543210", "password": PASSWORD})
    body = response.json()
    assert response.status_code == 200
    assert body["requireOTP"] is True
    assert body["otpType"] == "email"
    assert body["data"]["email"] == "ra**@example.com"

    response = client.post("/api/users/login", json={
        "phoneNumber": "9876543210", "password": PASSWORD, "otp": outbox.last_email_code,
    })
    assert response.status_code == 200
    token = response.json()["data"]["token"]

    response = client.get("/api/users/profile", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 200
    assert response.json()["data"]["user"]["phoneNumber"] == "9876543210"


def test_login_with_wrong_password(client, user):
    response = client.post("/api/users/login", json={"phoneNumber": user["phoneNumber"], "password": "nope123"})
    assert response.status_code == 401
    assert response.json() == {"success": False, "message": "Invalid phone number or password"}


def test_user_email_delivery_failure_is_502(client, user, outbox):
    outbox.email_ok = False
    response = client.post("/api/users/login", json={"phoneNumber": user["phoneNumber"], "password": PASSWORD})
    assert response.status_code == 502


def test_otp_rate_limit_is_429(client, outbox):
    for _ in range(5):
        assert client.post("/api/users/send-otp", json={"phoneNumber": "9876500000"}).status_code == 200
    response = client.post("/api/users/send-otp", json={"phoneNumber": "9876500000"})
    assert response.status_code == 429


def test_change_password_endpoint(client, user, user_headers, outbox):
    body = {"currentPassword": PASSWORD, "newPassword": "another-pass"}
    response = client.put("/api/users/change-password", json=body, headers=user_headers)
    assert response.json()["requireOTP"] is True

    body["otp"] = outbox.last_email_code
    response = client.put("/api/users/change-password", json=body, headers=user_headers)
    assert response.status_code == 200
    assert response.json()["message"] == "Password changed successfully"


def test_profile_password_change_needs_current_password_and_otp(client, user, user_headers, outbox):
    response = client.put("/api/users/profile", json={"password": "taken-over"}, headers=user_headers)
    assert response.status_code == 400
    assert outbox.emails == []

    body = {"password": "taken-over", "currentPassword": "wrong-pass"}
    response = client.put("/api/users/profile", json=body, headers=user_headers)
    assert response.json()["message"] == "Current password is incorrect"

    body["currentPassword"] = PASSWORD
    response = client.put("/api/users/profile", json=body, headers=user_headers)
    assert response.status_code == 200
    assert response.json()["requireOTP"] is True
    assert outbox.emails[-1][2] == "password-change"
    assert verify_password(PASSWORD, db.users_collection.find_one({"_id": user["_id"]})["password"])

    body["otp"] = outbox.last_email_code
    response = client.put("/api/users/profile", json=body, headers=user_headers)
    assert response.json()["message"] == "Profile updated successfully"
    assert verify_password("taken-over", db.users_collection.find_one({"_id": user["_id"]})["password"])


# ---------------------------------------------------------------------------
# Auth middleware
# ---------------------------------------------------------------------------

def test_missing_token(client):
    response = client.get("/api/users/profile")
    assert response.status_code == 401
    assert response.json()["message"] == ERROR_TOKEN_REQUIRED


def test_expired_token(client, user):
    token = create_access_token(user, expires_delta=timedelta(minutes=-5))
    response = client.get("/api/users/profile", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401
    assert response.json()["message"] == ERROR_TOKEN_EXPIRED


def test_garbage_token(client):
    response = client.get("/api/users/profile", headers={"Authorization": "Bearer not.a.token"})
    assert response.status_code == 401


def test_token_of_deleted_user(client, user, user_headers):
    db.users_collection.delete_one({"_id": user["_id"]})
    response = client.get("/api/users/profile", headers=user_headers)
    assert response.status_code == 401


def test_deactivated_user_is_locked_out(client, user, user_headers):
    db.users_collection.update_one({"_id": user["_id"]}, {"$set": {"isActive": False}})
    response = client.get("/api/users/profile", headers=user_headers)
    assert response.status_code == 401


def test_admin_routes_reject_regular_users(client, user_headers):
    assert client.get("/api/users/admin/users", headers=user_headers).status_code == 403
    assert client.get("/api/wallet/all", headers=user_headers).status_code == 403
    assert client.get("/api/withdrawals", headers=user_headers).status_code == 403


def test_user_cannot_read_someone_elses_wallet(client, admin, user_headers):
    response = client.get(f"/api/wallet/user/{admin['_id']}", headers=user_headers)
    assert response.status_code == 403


# ---------------------------------------------------------------------------
# Offers and leads
# ---------------------------------------------------------------------------

def create_offer(client, admin_headers, **overrides):
    body = {"name": "Zero Balance Account", "category": "Banking", "commission1": 100, "commission2": 50}
    body.update(overrides)
    return client.post("/api/offers", json=body, headers=admin_headers)


def test_offer_crud(client, admin_headers):
    response = create_offer(client, admin_headers)
    assert response.status_code == 201
    offer = response.json()["data"]
    assert offer["offersId"].startswith("OFF-")
    assert offer["commission1"] == 100
    assert offer["isApproved"] is False

    assert create_offer(client, admin_headers, name="zero balance ACCOUNT").status_code == 409

    response = client.put(f"/api/offers/{offer['_id']}", json={"commission2": 75.5}, headers=admin_headers)
    assert response.json()["data"]["commission2"] == 75.5

    response = client.post(f"/api/offers/{offer['_id']}/approve", headers=admin_headers)
    assert response.json()["data"]["isApproved"] is True

    response = client.get("/api/offers", params={"isApproved": "true"})
    assert [o["_id"] for o in response.json()["data"]["offers"]] == [offer["_id"]]

    assert client.delete(f"/api/offers/{offer['_id']}", headers=admin_headers).status_code == 200
    assert client.get(f"/api/offers/{offer['_id']}").status_code == 404


def test_offer_name_index_catches_duplicates_the_lookup_missed(client, admin_headers, monkeypatch):
    # two concurrent writes can both pass the lookup before either is stored
    monkeypatch.setattr(offers_routes, "_ensure_unique_name", lambda name, exclude_id=None: None)
    assert create_offer(client, admin_headers).status_code == 201

    response = create_offer(client, admin_headers, name="  zero balance account ")
    assert response.status_code == 409
    assert response.json()["message"] == "Offer with this name already exists"
    assert db.offers_collection.count_documents({}) == 1

    other = create_offer(client, admin_headers, name="Gold Loan").json()["data"]
    response = client.put(f"/api/offers/{other['_id']}", json={"name": "ZERO BALANCE ACCOUNT"}, headers=admin_headers)
    assert response.status_code == 409
    assert db.offers_collection.find_one({"offersId": other["offersId"]})["name"] == "Gold Loan"


def test_offer_validation_errors(client, admin_headers):
    response = create_offer(client, admin_headers, commission1=-1)
    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["errors"][0]["field"] == "commission1"

    assert create_offer(client, admin_headers, commission1=10.555).status_code == 400


def test_offer_writes_need_admin(client, user_headers):
    assert create_offer(client, user_headers).status_code == 403


def test_invalid_object_id_is_400(client):
    assert client.get("/api/offers/not-an-id").status_code == 400


def test_lead_settlement_end_to_end(client, user, user_headers, admin_headers):
    offer = create_offer(client, admin_headers).json()["data"]

    response = client.post("/api/leads", json={
        "offerId": offer["_id"],
        "hrUserId": str(user["_id"]),
        "customerName": "Sunita",
        "customerContact": "9123400000",
    })
    assert response.status_code == 201
    lead = response.json()["data"]

    response = client.post(f"/api/leads/{lead['_id']}/approve", headers=admin_headers)
    body = response.json()
    assert response.status_code == 200
    assert body["message"] == "Commission 1 (₹100) credited. Approve again for Commission 2."
    assert body["data"]["newStatus"] == "approved"

    response = client.post(f"/api/leads/{lead['_id']}/approve", headers=admin_headers)
    assert response.json()["data"]["newStatus"] == "completed"

    response = client.post(f"/api/leads/{lead['_id']}/approve", headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["message"] == ERROR_LEAD_SETTLED

    wallet = client.get(f"/api/wallet/user/{user['_id']}", headers=user_headers).json()["data"]
    assert wallet["balance"] == 150
    assert wallet["totalEarned"] == 150
    assert len(wallet["transactions"]) == 2


def test_leads_are_scoped_to_their_referrer(client, user, user_headers, admin, admin_headers, offer, make_user, headers_for):
    other = make_user("9111111111", email="other@example.com")
    for hr in (user, other):
        client.post("/api/leads", json={
            "offerId": str(offer["_id"]), "hrUserId": str(hr["_id"]),
            "customerName": "C", "customerContact": "1",
        })

    mine = client.get("/api/leads", headers=user_headers).json()["data"]["leads"]
    assert len(mine) == 1
    assert mine[0]["hrUserId"] == str(user["_id"])

    # a non-admin cannot widen the filter
    mine = client.get("/api/leads", params={"hrUserId": str(other["_id"])}, headers=user_headers).json()["data"]
    assert mine["pagination"]["total"] == 1

    all_leads = client.get("/api/leads", headers=admin_headers).json()["data"]["leads"]
    assert len(all_leads) == 2

    others_lead = [lead for lead in all_leads if lead["hrUserId"] == str(other["_id"])][0]
    assert client.get(f"/api/leads/{others_lead['_id']}", headers=user_headers).status_code == 403
    assert client.get(f"/api/leads/{others_lead['_id']}", headers=headers_for(other)).status_code == 200

    stats = client.get("/api/leads/stats", headers=user_headers).json()["data"]
    assert stats["total"] == 1


def test_reject_lead_endpoint(client, user, admin_headers, offer):
    lead = client.post("/api/leads", json={
        "offerId": str(offer["_id"]), "hrUserId": str(user["_id"]),
        "customerName": "C", "customerContact": "1",
    }).json()["data"]

    response = client.post(f"/api/leads/{lead['_id']}/reject", json={"rejectionReason": "Fake"}, headers=admin_headers)
    assert response.json()["data"]["status"] == "rejected"

    response = client.post(f"/api/leads/{lead['_id']}/approve", headers=admin_headers)
    assert response.status_code == 400


# ---------------------------------------------------------------------------
# Wallet and withdrawals
# ---------------------------------------------------------------------------

def test_admin_credit_and_debit(client, user, admin_headers):
    response = client.post("/api/wallet/credit", json={"userId": str(user["_id"]), "amount": 500}, headers=admin_headers)
    assert response.json()["data"]["balance"] == 500

    response = client.post("/api/wallet/debit", json={"userId": str(user["_id"]), "amount": 800}, headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["data"] == {"requested": 800, "available": 500}

    response = client.post("/api/wallet/debit", json={"userId": str(user["_id"]), "amount": 200}, headers=admin_headers)
    wallet = response.json()["data"]
    assert wallet["balance"] == 300
    assert wallet["totalWithdrawn"] == 200


def test_withdrawal_lifecycle(client, user, user_headers, admin_headers):
    user_id = str(user["_id"])

    response = client.post("/api/withdrawals", json={"userId": user_id, "amount": 100}, headers=user_headers)
    assert response.status_code == 400

    client.post("/api/wallet/credit", json={"userId": user_id, "amount": 300}, headers=admin_headers)
    response = client.post("/api/withdrawals", json={
        "userId": user_id,
        "amount": 250,
        "bankDetails": {"accountNumber": "001122", "ifscCode": "HDFC0001"},
    }, headers=user_headers)
    assert response.status_code == 201
    withdrawal = response.json()["data"]
    assert withdrawal["withdrawalId"].startswith("WDR-")
    assert withdrawal["status"] == "pending"

    response = client.put(f"/api/withdrawals/{withdrawal['_id']}/approve",
                          json={"transactionId": "UTR123"}, headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "approved"

    response = client.put(f"/api/withdrawals/{withdrawal['_id']}/approve", json={}, headers=admin_headers)
    assert response.status_code == 400

    wallet = client.get(f"/api/wallet/user/{user_id}", headers=user_headers).json()["data"]
    assert wallet["balance"] == 50
    assert wallet["totalWithdrawn"] == 250

    mine = client.get(f"/api/withdrawals/user/{user_id}", headers=user_headers).json()["data"]
    assert mine["pagination"]["total"] == 1

    stats = client.get("/api/withdrawals/stats", headers=admin_headers).json()["data"]
    assert stats["approvedRequests"] == 1
    assert stats["totalApprovedAmount"] == 250


def test_approval_is_refused_when_balance_has_dropped(client, user, user_headers, admin_headers):
    user_id = str(user["_id"])
    client.post("/api/wallet/credit", json={"userId": user_id, "amount": 100}, headers=admin_headers)
    withdrawal = client.post("/api/withdrawals", json={"userId": user_id, "amount": 100},
                             headers=user_headers).json()["data"]
    client.post("/api/wallet/debit", json={"userId": user_id, "amount": 60}, headers=admin_headers)

    response = client.put(f"/api/withdrawals/{withdrawal['_id']}/approve", json={}, headers=admin_headers)
    assert response.status_code == 400

    stored = db.withdrawals_collection.find_one({"withdrawalId": withdrawal["withdrawalId"]})
    assert stored["status"] == "pending"
    assert db.wallets_collection.find_one({"userId": user["_id"]})["balance"] == 40


def test_bad_admin_id_on_approve_keeps_funds(client, user, user_headers, admin_headers):
    user_id = str(user["_id"])
    client.post("/api/wallet/credit", json={"userId": user_id, "amount": 300}, headers=admin_headers)
    withdrawal = client.post("/api/withdrawals", json={"userId": user_id, "amount": 250},
                             headers=user_headers).json()["data"]
    url = f"/api/withdrawals/{withdrawal['_id']}"

    response = client.put(f"{url}/approve", json={"adminId": "not-an-id"}, headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["message"] == "Invalid ID format"
    assert db.withdrawals_collection.find_one({"withdrawalId": withdrawal["withdrawalId"]})["status"] == "pending"
    assert db.wallets_collection.find_one({"userId": user["_id"]})["balance"] == 300

    response = client.put(f"{url}/reject", json={"rejectionReason": "Wrong account"}, headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "rejected"


def test_reject_withdrawal_requires_reason(client, user, user_headers, admin_headers):
    user_id = str(user["_id"])
    client.post("/api/wallet/credit", json={"userId": user_id, "amount": 100}, headers=admin_headers)
    withdrawal = client.post("/api/withdrawals", json={"userId": user_id, "amount": 100},
                             headers=user_headers).json()["data"]

    url = f"/api/withdrawals/{withdrawal['_id']}/reject"
    assert client.put(url, json={}, headers=admin_headers).status_code == 400

    response = client.put(url, json={"rejectionReason": "Bank details mismatch"}, headers=admin_headers)
    assert response.json()["data"]["status"] == "rejected"
    assert db.wallets_collection.find_one({"userId": user["_id"]})["balance"] == 100


def test_unverified_user_cannot_withdraw(client, make_user, headers_for):
    user = make_user("9444444444", email="new@example.com", is_verified=False)
    response = client.post("/api/withdrawals", json={"userId": str(user["_id"]), "amount": 10},
                           headers=headers_for(user))
    assert response.status_code == 403


# ---------------------------------------------------------------------------
# KYC and admin user management
# ---------------------------------------------------------------------------

def test_kyc_nested_values_win_and_submission_goes_pending(client, user, user_headers, admin_headers):
    response = client.put("/api/users/kyc", json={
        "firstName": "Flat",
        "lastName": "Kumar",
        "panNumber": "aaaaa1111a",
        "aadhaarNumber": "123412341234",
        "accountNumber": "0099",
        "personalDetails": {"firstName": "Nested"},
        "kycDocuments": {"panNumber": "bbbbb2222b"},
        "bankDetails": {"ifscCode": "sbin0001"},
    }, headers=user_headers)
    assert response.status_code == 200

    stored = db.users_collection.find_one({"_id": user["_id"]})
    assert stored["firstName"] == "Nested"
    assert stored["lastName"] == "Kumar"
    assert stored["kycDetails"]["panNumber"] == "BBBBB2222B"
    assert stored["bankDetails"]["ifscCode"] == "SBIN0001"
    assert stored["bankDetails"]["accountNumber"] == "0099"
    assert stored["kycDetails"]["kycStatus"] == "pending"

    pending = client.get("/api/users/admin/kyc/pending", headers=admin_headers).json()["data"]["users"]
    assert [u["_id"] for u in pending] == [str(user["_id"])]

    response = client.put(f"/api/users/admin/kyc/{user['_id']}/approve", json={}, headers=admin_headers)
    assert response.json()["data"]["kycDetails"]["kycStatus"] == "approved"

    response = client.put(f"/api/users/admin/kyc/{user['_id']}/reject", json={"reason": "Blurry"},
                          headers=admin_headers)
    assert response.status_code == 400


def test_partial_kyc_stays_not_submitted(client, user, user_headers):
    client.put("/api/users/kyc", json={"city": "Pune"}, headers=user_headers)

    kyc = client.get("/api/users/kyc", headers=user_headers).json()["data"]
    assert kyc["city"] == "Pune"
    assert kyc["kycDetails"]["kycStatus"] == "not_submitted"


def test_admin_user_management(client, user, admin_headers):
    url = f"/api/users/admin/users/{user['_id']}"

    response = client.put(f"{url}/role", json={"role": "admin"}, headers=admin_headers)
    assert response.json()["data"]["user"]["role"] == "admin"
    assert client.put(f"{url}/role", json={"role": "owner"}, headers=admin_headers).status_code == 400

    response = client.put(f"{url}/toggle-status", headers=admin_headers)
    assert response.json()["data"]["user"]["isActive"] is False

    response = client.put(f"{url}/mark-ex", headers=admin_headers)
    assert response.json()["data"]["user"]["isEx"] is True

    stats = client.get("/api/users/admin/dashboard-stats", headers=admin_headers).json()["data"]
    assert stats["totalUsers"] == 2
    assert stats["inactiveUsers"] == 1

    assert client.delete(url, headers=admin_headers).status_code == 200
    assert client.get(url, headers=admin_headers).status_code == 404
