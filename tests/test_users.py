from bson.objectid import ObjectId

from conftest import DEFAULT_PASSWORD


def signup(client, email, role="user", password="Abcdef1!", name="Someone"):
    return client.post("/api/users/signup", json={
        "name": name, "email": email, "password": password, "role": role,
    })


class TestSignup:

    def test_regular_user_is_approved_and_gets_token(self, client):
        resp = signup(client, "Alice@Example.com")
        assert resp.status_code == 201
        body = resp.json()
        assert body["success"] is True
        assert body["needs_approval"] is False
        assert body["user"]["email"] == "alice@example.com"
        assert body["user"]["role"] == "user"
        assert body["user"]["is_approved"] is True
        assert body["user"]["token"]

    def test_first_admin_becomes_super_admin(self, client, db):
        resp = signup(client, "root@example.com", role="admin")
        assert resp.status_code == 201
        body = resp.json()
        assert body["message"] == "Super Admin account created successfully"
        assert body["user"]["is_super_admin"] is True
        assert body["user"]["is_approved"] is True
        stored = db["user"].find_one({"email": "root@example.com"})
        assert stored["is_super_admin"] is True

    def test_later_admins_are_pending_without_token(self, client, db):
        signup(client, "root@example.com", role="admin")
        for i in range(3):
            resp = signup(client, f"admin{i}@example.com", role="admin")
            assert resp.status_code == 201
            body = resp.json()
            assert body["needs_approval"] is True
            assert body["user"]["is_approved"] is False
            assert "token" not in body["user"]
        assert db["user"].count_documents({"is_super_admin": True}) == 1

    def test_regular_signups_do_not_count_as_admins(self, client):
        signup(client, "a@example.com")
        resp = signup(client, "root@example.com", role="admin")
        assert resp.json()["user"]["is_super_admin"] is True

    def test_duplicate_email_rejected_case_insensitively(self, client):
        signup(client, "bob@example.com")
        resp = signup(client, "BOB@example.com")
        assert resp.status_code == 400
        assert resp.json()["message"] == "User with this email already exists"

    def test_weak_password_rejected(self, client, db):
        resp = signup(client, "weak@example.com", password="abcdef1")
        assert resp.status_code == 400
        assert resp.json()["message"] == "Password must contain at least one uppercase letter"
        assert db["user"].count_documents({}) == 0

    def test_invalid_role_rejected(self, client):
        resp = signup(client, "x@example.com", role="owner")
        assert resp.status_code == 400
        assert resp.json()["message"] == "Invalid role. Must be either user or admin"

    def test_missing_fields_rejected(self, client):
        resp = client.post("/api/users/signup", json={"email": "x@example.com"})
        assert resp.status_code == 400
        assert resp.json()["success"] is False

    def test_password_hash_never_returned(self, client):
        resp = signup(client, "c@example.com")
        assert "password_hash" not in resp.json()["user"]


class TestLogin:

    def test_login_success(self, client, user):
        resp = client.post("/api/users/login", json={"email": user["email"], "password": DEFAULT_PASSWORD})
        assert resp.status_code == 200
        body = resp.json()
        assert body["message"] == "Login successful"
        assert body["user"]["token"]
        assert body["user"]["is_super_admin"] is False

    def test_wrong_password(self, client, user):
        resp = client.post("/api/users/login", json={"email": user["email"], "password": "Wrong1!x"})
        assert resp.status_code == 401
        assert resp.json()["message"] == "Invalid email or password"

    def test_unknown_email(self, client):
        resp = client.post("/api/users/login", json={"email": "nobody@example.com", "password": "Abcdef1!"})
        assert resp.status_code == 401

    def test_pending_admin_cannot_log_in(self, client, make_user):
        pending = make_user(role="admin", is_approved=False)
        resp = client.post("/api/users/login", json={"email": pending["email"], "password": DEFAULT_PASSWORD})
        assert resp.status_code == 403
        assert "pending approval" in resp.json()["message"]
        assert "user" not in resp.json()

    def test_admin_with_missing_approval_field_cannot_log_in(self, client, db, make_user):
        legacy = make_user(role="admin")
        db["user"].update_one({"_id": ObjectId(legacy["id"])}, {"$unset": {"is_approved": ""}})
        resp = client.post("/api/users/login", json={"email": legacy["email"], "password": DEFAULT_PASSWORD})
        assert resp.status_code == 403


class TestProfile:

    def test_get_profile(self, client, user):
        resp = client.get("/api/users/profile", headers=user["headers"])
        assert resp.status_code == 200
        profile = resp.json()["user"]
        assert profile["email"] == user["email"]
        assert "password_hash" not in profile

    def test_update_name_and_email(self, client, user):
        resp = client.put("/api/users/profile", headers=user["headers"],
                          json={"name": "  New Name ", "email": "New@Example.com"})
        assert resp.status_code == 200
        body = resp.json()["user"]
        assert body["name"] == "New Name"
        assert body["email"] == "new@example.com"
        assert body["token"]

    def test_email_taken_by_someone_else(self, client, make_user):
        first = make_user()
        second = make_user()
        resp = client.put("/api/users/profile", headers=second["headers"], json={"email": first["email"]})
        assert resp.status_code == 400
        assert resp.json()["message"] == "Email already in use"

    def test_password_change_goes_through_policy(self, client, user):
        resp = client.put("/api/users/profile", headers=user["headers"], json={"password": "Abcdef1"})
        assert resp.status_code == 400
        assert resp.json()["message"] == "Password must contain at least one special character"

    def test_password_change_allows_login_with_new_password(self, client, user):
        client.put("/api/users/profile", headers=user["headers"], json={"password": "N3w-P@ss"})
        resp = client.post("/api/users/login", json={"email": user["email"], "password": "N3w-P@ss"})
        assert resp.status_code == 200


class TestAdminUserManagement:

    def test_list_users(self, client, admin, user):
        resp = client.get("/api/users", headers=admin["headers"])
        assert resp.status_code == 200
        body = resp.json()
        assert body["count"] == 2
        assert all("password_hash" not in u for u in body["users"])

    def test_get_user_by_id(self, client, admin, user):
        resp = client.get(f"/api/users/{user['id']}", headers=admin["headers"])
        assert resp.status_code == 200
        assert resp.json()["user"]["email"] == user["email"]

    def test_get_unknown_user(self, client, admin):
        resp = client.get(f"/api/users/{ObjectId()}", headers=admin["headers"])
        assert resp.status_code == 404
        assert resp.json()["message"] == "User not found"

    def test_malformed_id(self, client, admin):
        resp = client.get("/api/users/not-an-id", headers=admin["headers"])
        assert resp.status_code == 400
        assert resp.json()["message"] == "Invalid id"

    def test_demoting_admin_keeps_user_approved(self, client, db, admin, make_user):
        other = make_user(role="admin", is_approved=False)
        resp = client.put(f"/api/users/{other['id']}", headers=admin["headers"], json={"role": "user"})
        assert resp.status_code == 200
        stored = db["user"].find_one({"_id": ObjectId(other["id"])})
        assert stored["role"] == "user"
        assert stored["is_approved"] is True

    def test_super_admin_role_cannot_change(self, client, admin, super_admin):
        resp = client.put(f"/api/users/{super_admin['id']}", headers=admin["headers"], json={"role": "user"})
        assert resp.status_code == 400


class TestApprovalWorkflow:

    def test_pending_admins_listed_for_super_admin(self, client, db, super_admin, make_user):
        pending = make_user(role="admin", is_approved=False)
        legacy = make_user(role="admin")
        db["user"].update_one({"_id": ObjectId(legacy["id"])}, {"$unset": {"is_approved": ""}})
        make_user(role="admin")  # approved, not listed

        resp = client.get("/api/users/pending-admins", headers=super_admin["headers"])
        assert resp.status_code == 200
        ids = {u["id"] for u in resp.json()["pending_admins"]}
        assert ids == {pending["id"], legacy["id"]}

    def test_approve_then_login(self, client, super_admin, make_user):
        pending = make_user(role="admin", is_approved=False)
        resp = client.put(f"/api/users/{pending['id']}/approve", headers=super_admin["headers"])
        assert resp.status_code == 200
        assert resp.json()["user"]["is_approved"] is True
        login = client.post("/api/users/login", json={"email": pending["email"], "password": DEFAULT_PASSWORD})
        assert login.status_code == 200

    def test_approve_requires_admin_target(self, client, super_admin, user):
        resp = client.put(f"/api/users/{user['id']}/approve", headers=super_admin["headers"])
        assert resp.status_code == 400
        assert resp.json()["message"] == "User is not an admin"

    def test_approve_needs_super_admin(self, client, admin, make_user):
        pending = make_user(role="admin", is_approved=False)
        resp = client.put(f"/api/users/{pending['id']}/approve", headers=admin["headers"])
        assert resp.status_code == 403

    def test_revoke(self, client, db, super_admin, admin):
        resp = client.put(f"/api/users/{admin['id']}/revoke", headers=super_admin["headers"])
        assert resp.status_code == 200
        assert db["user"].find_one({"_id": ObjectId(admin["id"])})["is_approved"] is False
        # The revoked admin's existing token no longer passes the admin check
        assert client.get("/api/users", headers=admin["headers"]).status_code == 403

    def test_revoke_super_admin_fails(self, client, super_admin):
        resp = client.put(f"/api/users/{super_admin['id']}/revoke", headers=super_admin["headers"])
        assert resp.status_code == 400
        assert resp.json()["message"] == "Cannot revoke super admin privileges"

    def test_reject_turns_admin_into_regular_user(self, client, db, super_admin, make_user):
        pending = make_user(role="admin", is_approved=False)
        resp = client.put(f"/api/users/{pending['id']}/reject", headers=super_admin["headers"])
        assert resp.status_code == 200
        stored = db["user"].find_one({"_id": ObjectId(pending["id"])})
        assert stored["role"] == "user"
        assert stored["is_approved"] is True

    def test_reject_super_admin_fails(self, client, super_admin):
        resp = client.put(f"/api/users/{super_admin['id']}/reject", headers=super_admin["headers"])
        assert resp.status_code == 400


class TestDeleteUser:

    def test_super_admin_deletes_user(self, client, db, super_admin, user):
        resp = client.delete(f"/api/users/{user['id']}", headers=super_admin["headers"])
        assert resp.status_code == 200
        assert db["user"].find_one({"_id": ObjectId(user["id"])}) is None

    def test_cannot_delete_other_super_admin(self, client, db, super_admin, make_user):
        other = make_user(role="admin", is_super_admin=True)
        resp = client.delete(f"/api/users/{other['id']}", headers=super_admin["headers"])
        assert resp.status_code == 400
        assert resp.json()["message"] == "Cannot delete super admin user"
        assert db["user"].find_one({"_id": ObjectId(other["id"])}) is not None

    def test_super_admin_can_delete_self(self, client, db, super_admin):
        resp = client.delete(f"/api/users/{super_admin['id']}", headers=super_admin["headers"])
        assert resp.status_code == 200
        assert db["user"].find_one({"_id": ObjectId(super_admin["id"])}) is None

    def test_plain_admin_cannot_delete(self, client, admin, user):
        resp = client.delete(f"/api/users/{user['id']}", headers=admin["headers"])
        assert resp.status_code == 403

    def test_delete_unknown_user(self, client, super_admin):
        resp = client.delete(f"/api/users/{ObjectId()}", headers=super_admin["headers"])
        assert resp.status_code == 404
