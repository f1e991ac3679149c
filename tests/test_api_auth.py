from datetime import timedelta

from tamudastay import models
from tamudastay.security import create_access_token

def register_payload(**overrides):
    payload = {
        "username": "karim",
        "name": "Karim Bennani",
        "email": "karim@example.com",
        "password": "Str0ng#Pass",
    }
    payload.update(overrides)
    return payload


# --- Register / login / me ---

def test_register_returns_token(client, db_session):
    response = client.post("/api/auth/register", json=register_payload())

    assert response.status_code == 201
    data = response.json()
    assert data["user"]["username"] == "karim"
    assert data["user"]["role"] == "user"
    assert data["tokenType"] == "bearer"
    assert "password" not in data["user"]
    stored = db_session.query(models.User).filter(models.User.username == "karim").one()
    assert stored.hashed_password != "Str0ng#Pass"


def test_register_as_host(client):
    response = client.post("/api/auth/register", json=register_payload(role="owner"))

    assert response.json()["user"]["role"] == "owner"


def test_register_cannot_pick_admin(client):
    response = client.post("/api/auth/register", json=register_payload(role="admin"))

    assert response.status_code == 403


def test_register_duplicate_username(client, create_user):
    create_user("karim")

    response = client.post("/api/auth/register", json=register_payload(email="other@example.com"))

    assert response.status_code == 409
    assert response.json() == {"error": "Username already exists"}


def test_register_weak_password(client):
    response = client.post("/api/auth/register", json=register_payload(password="password"))

    assert response.status_code == 400
    assert response.json()["details"][0]["field"] == "password"


def test_login_with_username_or_email(client, create_user, password):
    user = create_user("leila")

    by_username = client.post("/api/auth/login", json={"username": "leila", "password": password})
    by_email = client.post("/api/auth/login", json={"username": "leila@example.com", "password": password})

    assert by_username.status_code == 200
    assert by_email.status_code == 200
    token = by_username.json()["accessToken"]
    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.json()["id"] == user.id


def test_login_wrong_password(client, db_session, create_user):
    create_user("leila")

    response = client.post("/api/auth/login", json={"username": "leila", "password": "nope"})

    assert response.status_code == 401
    assert response.json() == {"error": "Invalid credentials"}
    failed = db_session.query(models.AuditLog).filter(models.AuditLog.action == "login_failed").one()
    assert failed.severity == models.AuditSeverity.WARNING


def test_login_inactive_account(client, create_user, password):
    create_user("dormant", status=models.UserStatus.INACTIVE)

    response = client.post("/api/auth/login", json={"username": "dormant", "password": password})

    assert response.status_code == 403


def test_me_requires_token(client):
    assert client.get("/api/auth/me").status_code == 401


def test_expired_token(client, create_user):
    user = create_user("leila")
    token = create_access_token(user.id, user.role.value, user.username, expires_delta=timedelta(minutes=-1))

    response = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401


def test_token_does_not_carry_over_to_the_fallback_store(client, auth_headers, create_user, storage_switch):
    user = create_user("plainuser")
    headers = auth_headers(user)
    assert client.get("/api/admin/audit-logs", headers=headers).status_code == 403

    storage_switch.trip(Exception("Data transfer quota exceeded"))

    assert client.get("/api/auth/me", headers=headers).status_code == 401
    assert client.get("/api/admin/audit-logs", headers=headers).status_code == 401


def test_token_with_a_stale_role_is_refused(client, create_user):
    user = create_user("plainuser")
    token = create_access_token(user.id, models.UserRole.ADMIN.value, user.username)

    response = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401


def test_inactive_user_token_is_refused(client, auth_headers, create_user):
    user = create_user("dormant", status=models.UserStatus.INACTIVE)

    assert client.get("/api/auth/me", headers=auth_headers(user)).status_code == 403


# --- User administration ---

def test_list_users_needs_staff(client, auth_headers, create_user):
    user = create_user("plain")
    staff = create_user("desk", role=models.UserRole.STAFF)

    assert client.get("/api/users", headers=auth_headers(user)).status_code == 403
    assert client.get("/api/users", headers=auth_headers(staff)).status_code == 200


def test_user_reads_self_but_not_others(client, auth_headers, create_user):
    user = create_user("plain")
    other = create_user("other")

    assert client.get(f"/api/users/{user.id}", headers=auth_headers(user)).status_code == 200
    assert client.get(f"/api/users/{other.id}", headers=auth_headers(user)).status_code == 403


def test_admin_creates_staff_account(client, auth_headers, create_user):
    admin = create_user("root", role=models.UserRole.ADMIN)

    response = client.post("/api/users", json=register_payload(username="desk2", role="staff"),
                           headers=auth_headers(admin))

    assert response.status_code == 201
    assert response.json()["role"] == "staff"


def test_user_cannot_promote_self(client, auth_headers, create_user):
    user = create_user("plain")

    response = client.put(f"/api/users/{user.id}", json={"role": "admin"}, headers=auth_headers(user))

    assert response.status_code == 403


def test_user_updates_own_profile(client, auth_headers, create_user):
    user = create_user("plain")

    response = client.put(f"/api/users/{user.id}", json={"name": "Plain Jane", "phone": "+212611111111"},
                          headers=auth_headers(user))

    assert response.status_code == 200
    assert response.json()["name"] == "Plain Jane"
    assert response.json()["phone"] == "+212611111111"


def test_admin_cannot_delete_self(client, auth_headers, create_user):
    admin = create_user("root", role=models.UserRole.ADMIN)

    assert client.delete(f"/api/users/{admin.id}", headers=auth_headers(admin)).status_code == 400


def test_delete_user_with_bookings_is_refused(client, auth_headers, create_user, create_property, create_booking,
                                              future):
    admin = create_user("root", role=models.UserRole.ADMIN)
    guest = create_user("traveller")
    create_booking(create_property(), future(1), future(3), user=guest)

    assert client.delete(f"/api/users/{guest.id}", headers=auth_headers(admin)).status_code == 409


def test_delete_user(client, db_session, auth_headers, create_user):
    admin = create_user("root", role=models.UserRole.ADMIN)
    user = create_user("leaving")

    response = client.delete(f"/api/users/{user.id}", headers=auth_headers(admin))

    assert response.status_code == 204
    assert db_session.get(models.User, user.id) is None


def test_user_bookings_endpoint(client, auth_headers, create_user, create_property, create_booking, future):
    guest = create_user("traveller")
    booking = create_booking(create_property(), future(1), future(3), user=guest)

    response = client.get(f"/api/users/{guest.id}/bookings", headers=auth_headers(guest))

    assert [b["id"] for b in response.json()] == [booking.id]
