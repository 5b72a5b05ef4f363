from werkzeug.security import check_password_hash

from conftest import login_as, read_collection


def test_login_sets_session_and_hides_password(client):
    response = client.post(
        "/api/auth/login",
        json={"email": "ADMIN@example.com", "password": "pw"},
    )
    assert response.status_code == 200
    body = response.get_json()
    assert body["id"] == "USR-1"
    assert "password" not in body

    with client.session_transaction() as sess:
        assert sess["user_id"] == "USR-1"
        assert sess["role"] == "Admin"

    me = client.get("/api/auth/user").get_json()
    assert me == {
        "isLoggedIn": True,
        "id": "USR-1",
        "name": "Ana Admin",
        "email": "admin@example.com",
        "role": "Admin",
    }


def test_login_failures(client):
    assert client.post("/api/auth/login", json={"email": "x"}).status_code == 400
    assert (
        client.post(
            "/api/auth/login", json={"email": "nobody@example.com", "password": "pw"}
        ).status_code
        == 404
    )
    # Operators have no password and cannot log in.
    assert (
        client.post(
            "/api/auth/login", json={"email": "olga@example.com", "password": "pw"}
        ).status_code
        == 404
    )
    response = client.post(
        "/api/auth/login", json={"email": "admin@example.com", "password": "wrong"}
    )
    assert response.status_code == 401
    assert response.get_json() == {"message": "Invalid credentials"}


def test_session_user_when_logged_out(client):
    response = client.get("/api/auth/user")
    assert response.status_code == 401
    assert response.get_json() == {"isLoggedIn": False}


def test_logout_clears_session(client):
    login_as(client)
    client.post("/api/auth/logout")
    assert client.get("/api/auth/user").status_code == 401


def test_signup_creates_operator(client, data_dir):
    response = client.post(
        "/api/auth/signup",
        json={"name": "Nina", "email": "nina@example.com", "password": "secret"},
    )
    assert response.status_code == 201

    users = read_collection(data_dir, "users.json")
    nina = next(u for u in users if u["email"] == "nina@example.com")
    assert nina["role"] == "Operator"
    assert nina["id"].startswith("USR-")
    assert check_password_hash(nina["password"], "secret")

    duplicate = client.post(
        "/api/auth/signup",
        json={"name": "Nina", "email": "NINA@example.com", "password": "secret"},
    )
    assert duplicate.status_code == 409


def test_change_password(client, data_dir):
    payload = {"userId": "USR-2", "currentPassword": "pw", "newPassword": "next"}
    assert client.post("/api/users/change-password", json=payload).status_code == 200

    manager = next(u for u in read_collection(data_dir, "users.json") if u["id"] == "USR-2")
    assert check_password_hash(manager["password"], "next")

    retry = client.post("/api/users/change-password", json=payload)
    assert retry.status_code == 401

    no_password = client.post(
        "/api/users/change-password",
        json={"userId": "USR-3", "currentPassword": "x", "newPassword": "y"},
    )
    assert no_password.status_code == 400


def test_role_guards(client):
    assert client.get("/api/lagam").status_code == 401

    login_as(client, "USR-3", "Operator", "Olga Operator")
    assert client.get("/api/lagam").status_code == 403

    login_as(client, "USR-2", "manager", "Mario Manager")
    assert client.get("/api/lagam").status_code == 200
