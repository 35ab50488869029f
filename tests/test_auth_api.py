"""Registration, login and role checks."""
import pytest

import main
import passwords
from conftest import auth, create_member


class TestHealth:
    def test_root(self, client):
        assert client.get("/").json() == {"message": "Member Portal Backend Running"}

    def test_database_status(self, client):
        data = client.get("/test").json()
        assert data["connection_status"] == "Connected"

    def test_schema_models(self, client):
        assert "SavedSearch" in client.get("/schema").json()["models"]


class TestAdminRegistration:
    def test_first_admin_can_register(self, client):
        assert client.get("/auth/admin-exists").json() == {"exists": False}
        resp = client.post("/auth/register", json={
            "email": "root@example.com", "password": "secret1", "first_name": "Root", "last_name": "User",
        })
        assert resp.status_code == 200
        assert resp.json()["role"] == "admin"
        assert client.get("/auth/admin-exists").json() == {"exists": True}

    def test_registration_closes_after_first_admin(self, client, admin):
        resp = client.post("/auth/register", json={
            "email": "second@example.com", "password": "secret1", "first_name": "Second", "last_name": "Admin",
        })
        assert resp.status_code == 403
        assert "closed" in resp.json()["detail"]

    def test_failed_registration_reopens_setup(self, client, monkeypatch):
        def broken_hash(plain):
            raise RuntimeError("hashing unavailable")

        monkeypatch.setattr(main, "hash_password", broken_hash)
        with pytest.raises(RuntimeError):
            client.post("/auth/register", json={
                "email": "root@example.com", "password": "secret1", "first_name": "Root", "last_name": "User",
            })
        assert client.get("/auth/admin-exists").json() == {"exists": False}

        monkeypatch.setattr(main, "hash_password", passwords.hash_password)
        resp = client.post("/auth/register", json={
            "email": "root@example.com", "password": "secret1", "first_name": "Root", "last_name": "User",
        })
        assert resp.status_code == 200

    def test_short_password_rejected(self, client):
        resp = client.post("/auth/register", json={
            "email": "root@example.com", "password": "123", "first_name": "Root", "last_name": "User",
        })
        assert resp.status_code == 422
        assert client.get("/auth/admin-exists").json() == {"exists": False}

    def test_password_is_hashed(self, client, admin, db):
        stored = db.users.find_one({"email": "admin@example.com"})
        assert stored["password_hash"] != "admin-pass"
        assert stored["password_hash"].startswith("$2")


class TestLogin:
    def test_login_success(self, client, admin):
        resp = client.post("/auth/login", json={"email": "admin@example.com", "password": "admin-pass"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["role"] == "admin"
        assert data["token"] == data["user_id"]
        assert data["first_name"] == "Ada"

    def test_wrong_password(self, client, admin):
        resp = client.post("/auth/login", json={"email": "admin@example.com", "password": "nope"})
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Invalid email or password"

    def test_unknown_email(self, client):
        resp = client.post("/auth/login", json={"email": "ghost@example.com", "password": "nope"})
        assert resp.status_code == 401

    def test_member_logs_in_with_generated_password(self, client, member, company_id):
        resp = client.post("/auth/login", json={"email": "jane@example.com", "password": member["generated_password"]})
        assert resp.status_code == 200
        assert resp.json()["role"] == "member"
        assert resp.json()["company_id"] == company_id


class TestAccessControl:
    def test_missing_token(self, client):
        assert client.get("/companies").status_code == 401
        assert client.get("/me").status_code == 401

    def test_invalid_token(self, client):
        assert client.get("/me", headers=auth("not-a-user")).status_code == 401

    def test_member_cannot_use_admin_routes(self, client, member):
        headers = auth(member["user_id"])
        assert client.get("/members", headers=headers).status_code == 403
        assert client.post("/search", json={}, headers=headers).status_code == 403
        assert client.post("/companies", json={"name": "X"}, headers=headers).status_code == 403

    def test_member_profile(self, client, member):
        data = client.get("/me", headers=auth(member["user_id"])).json()
        assert "password_hash" not in data["user"]
        assert data["member"]["staff_id"] == member["staff_id"]
        assert data["member"]["company_name"] == "Acme Corp"

    def test_member_sees_only_own_profile(self, client, admin, company_id, member):
        other = create_member(client, admin, company_id, email="john@example.com", first_name="John")
        headers = auth(member["user_id"])
        assert client.get(f"/members/{member['member_id']}", headers=headers).status_code == 200
        assert client.get(f"/members/{other['member_id']}", headers=headers).status_code == 403


class TestAdminUsers:
    def test_create_admin_and_change_role(self, client, admin):
        resp = client.post("/admin/users", json={
            "email": "ops@example.com", "password": "secret1", "first_name": "Op", "last_name": "S",
        }, headers=admin)
        assert resp.status_code == 200
        user_id = resp.json()["user_id"]

        admins = client.get("/users", params={"role": "admin"}, headers=admin).json()
        assert {u["email"] for u in admins} == {"admin@example.com", "ops@example.com"}
        assert all("password_hash" not in u for u in admins)

        resp = client.put(f"/admin/users/{user_id}/role", json={"role": "member"}, headers=admin)
        assert resp.json() == {"message": "User role updated to member"}
        assert client.get("/admin/dashboard", headers=auth(user_id)).status_code == 403

    def test_duplicate_admin_email(self, client, admin):
        resp = client.post("/admin/users", json={
            "email": "admin@example.com", "password": "secret1", "first_name": "A", "last_name": "B",
        }, headers=admin)
        assert resp.status_code == 400

    def test_role_update_unknown_user(self, client, admin):
        resp = client.put("/admin/users/5f0000000000000000000000/role", json={"role": "admin"}, headers=admin)
        assert resp.status_code == 404
