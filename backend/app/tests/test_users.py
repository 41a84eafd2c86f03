import json
from io import BytesIO

import pytest
from fastapi import UploadFile
from starlette.datastructures import Headers

from app.core.errors import NotFound, UpstreamError, ValidationError
from app.models.assignment import Assignment
from app.models.deleted_identity import DeletedIdentity
from app.models.user import User
from app.routes import users as users_routes
from app.routes.users import create_user, delete_user, list_users, update_user
from app.schemas.user import UserCreate, UserUpdate
from app.services import directory, identity, invitations, storage, supabase
from app.services.usernames import generate_username, unique_username, username_from_email


class FakeIdentityProvider:
    """Substitui o Supabase Auth guardando as identidades em memória."""

    def __init__(self):
        self.identities: dict[str, str] = {}
        self.deleted: list[str] = []

    def invite_user_by_email(self, email, full_name):
        if email in self.identities.values():
            raise UpstreamError("A user with this email address has already been registered", status_code=422)
        identity_id = f"00000000-0000-0000-0000-{len(self.identities) + 1:012d}"
        self.identities[identity_id] = email
        return {"id": identity_id, "email": email}

    def delete_identity(self, identity_id):
        self.deleted.append(identity_id)
        self.identities.pop(identity_id, None)


@pytest.fixture
def provider(monkeypatch):
    fake = FakeIdentityProvider()
    monkeypatch.setattr(identity, "invite_user_by_email", fake.invite_user_by_email)
    monkeypatch.setattr(identity, "delete_identity", fake.delete_identity)
    return fake


def test_generate_username():
    assert generate_username("Maria da Silva Souza") == "maria.souza"
    assert generate_username("  JOÃO  ") == "joão"
    assert generate_username("") == ""
    assert username_from_email("Carla.Dias@Empresa.com") == "carla.dias"


def test_unique_username_appends_suffix(db_session, make_user):
    first = make_user(full_name="Ana Souza")
    first.username = "ana.souza"
    db_session.commit()
    assert unique_username(db_session, "ana.souza") == "ana.souza.2"
    assert unique_username(db_session, "ana.souza", exclude_user_id=first.id) == "ana.souza"
    assert unique_username(db_session, "bruno.lima") == "bruno.lima"


def test_create_user_inserts_profile_when_missing(db_session, admin_user, make_function, provider):
    team_function = make_function(label="Câmera")
    created = create_user(
        payload=UserCreate(
            email="Carla.Dias@empresa.com",
            full_name="Carla Dias",
            role="user",
            team_function_id=team_function.id,
        ),
        db=db_session,
        current_user=admin_user,
    )
    assert created.email == "carla.dias@empresa.com"
    assert created.username == "carla.dias"
    assert created.team_function.label == "Câmera"
    assert created.id in provider.identities


def test_invitation_reconciles_profile_created_out_of_band(db_session, make_function, provider):
    team_function = make_function(label="Áudio")
    identity_id = "00000000-0000-0000-0000-000000000001"
    db_session.add(User(id=identity_id, email="dora@empresa.com", full_name="Dora", username="dora", role="user"))
    db_session.commit()

    profile, invitation = invitations.invite_user(
        db_session,
        email="dora@empresa.com",
        full_name="Dora Reis",
        role="admin",
        team_function_id=team_function.id,
    )
    assert invitation.state == invitations.PROFILE_RECONCILED
    assert invitation.history == [
        invitations.REQUESTED,
        invitations.IDENTITY_CREATED,
        invitations.PROFILE_RECONCILED,
    ]
    assert profile.id == identity_id
    assert profile.role == "admin"
    assert profile.team_function_id == team_function.id
    assert db_session.query(User).filter(User.email == "dora@empresa.com").count() == 1


def test_create_user_twice_with_same_email_fails_without_duplicate(db_session, admin_user, provider):
    payload = UserCreate(email="eva@empresa.com", full_name="Eva Melo", role="user")
    create_user(payload=payload, db=db_session, current_user=admin_user)

    with pytest.raises(UpstreamError) as exc_info:
        create_user(payload=payload, db=db_session, current_user=admin_user)

    assert exc_info.value.status_code == 422
    assert "already been registered" in exc_info.value.message
    assert db_session.query(User).filter(User.email == "eva@empresa.com").count() == 1


def test_invitation_failure_on_profile_compensates_identity(db_session, provider, monkeypatch):
    def broken_reconcile(db, invitation):
        raise RuntimeError("banco indisponível")

    monkeypatch.setattr(invitations, "reconcile_profile", broken_reconcile)

    with pytest.raises(RuntimeError):
        invitations.invite_user(db_session, email="fabio@empresa.com", full_name="Fabio Reis")

    assert provider.deleted == ["00000000-0000-0000-0000-000000000001"]
    assert provider.identities == {}
    assert db_session.query(User).count() == 0


@pytest.mark.parametrize(
    "payload",
    [
        {"email": "sem-arroba", "full_name": "Nome"},
        {"email": "ok@empresa.com", "full_name": ""},
        {"email": "ok@empresa.com", "full_name": "Nome", "role": "superuser"},
        {"email": "ok@empresa.com", "full_name": "Nome", "team_function_id": "inexistente"},
    ],
)
def test_invitation_validates_request_before_calling_provider(db_session, admin_user, provider, payload):
    with pytest.raises(ValidationError):
        create_user(payload=UserCreate(**payload), db=db_session, current_user=admin_user)
    assert provider.identities == {}


def test_invite_user_by_email_passes_provider_error_through(monkeypatch):
    def fake_request(**kwargs):
        assert kwargs["path"].startswith("/auth/v1/invite?redirect_to=")
        return 422, {"msg": "A user with this email address has already been registered"}

    monkeypatch.setattr(identity, "supabase_json_request", fake_request)
    with pytest.raises(UpstreamError) as exc_info:
        identity.invite_user_by_email("eva@empresa.com", "Eva")
    assert exc_info.value.status_code == 422
    assert exc_info.value.message == "A user with this email address has already been registered"


def test_list_users_ordered_by_full_name(db_session, member_user, make_user):
    make_user(full_name="Zeca Alves")
    make_user(full_name="Bianca Reis")
    names = [row.full_name for row in list_users(db=db_session, current_user=member_user)]
    assert names == sorted(names)


def test_update_user_rederives_username(db_session, admin_user, make_user, make_function):
    make_user(full_name="Gabi Rocha").username = "gabi.rocha"
    db_session.commit()
    target = make_user(full_name="Gabriela")
    team_function = make_function(label="Produção")

    updated = update_user(
        user_id=target.id,
        payload=UserUpdate(full_name="Gabi Rocha", role="admin", team_function_id=team_function.id),
        db=db_session,
        current_user=admin_user,
    )
    assert updated.username == "gabi.rocha.2"
    assert updated.role == "admin"
    assert updated.team_function.label == "Produção"


def test_update_user_unknown_id(db_session, admin_user):
    with pytest.raises(NotFound):
        update_user(user_id="nao-existe", payload=UserUpdate(role="user"), db=db_session, current_user=admin_user)


def test_delete_user_keeps_assignments(db_session, admin_user, make_user):
    target = make_user(full_name="Hugo Prado")
    target_id = target.id
    db_session.add(Assignment(date="2025-03-10", user_id=target_id, created_by=admin_user.id))
    db_session.commit()

    assert delete_user(user_id=target_id, db=db_session, current_user=admin_user) == {"success": True}

    assert db_session.query(User).filter(User.id == target_id).first() is None
    assert db_session.query(Assignment).filter(Assignment.user_id == target_id).count() == 1


def test_admin_cannot_delete_self(db_session, admin_user):
    with pytest.raises(ValidationError):
        delete_user(user_id=admin_user.id, db=db_session, current_user=admin_user)


def test_deleted_user_token_does_not_recreate_profile(client, admin_user, member_user, auth_headers):
    member_id = member_user.id
    member_headers = auth_headers(member_user)
    admin_headers = auth_headers(admin_user)

    assert client.delete(f"/users/{member_id}", headers=admin_headers).status_code == 200

    response = client.get("/auth/me", headers=member_headers)
    assert response.status_code == 401
    assert response.json() == {"error": "Usuário removido"}
    listed = [row["id"] for row in client.get("/users", headers=admin_headers).json()]
    assert member_id not in listed


def test_delete_user_removes_identity_when_provider_configured(db_session, admin_user, make_user, monkeypatch):
    target_id = make_user(full_name="Iara Lopes").id
    deleted = []
    monkeypatch.setattr(supabase, "is_configured", lambda: True)
    monkeypatch.setattr(identity, "delete_identity", deleted.append)

    delete_user(user_id=target_id, db=db_session, current_user=admin_user)

    assert deleted == [target_id]
    assert db_session.query(DeletedIdentity).filter(DeletedIdentity.id == target_id).count() == 1


def test_delete_user_keeps_profile_removed_when_provider_fails(db_session, admin_user, make_user, monkeypatch):
    target_id = make_user(full_name="Jonas Reis").id

    def unavailable(identity_id):
        raise UpstreamError("Supabase fora do ar")

    monkeypatch.setattr(supabase, "is_configured", lambda: True)
    monkeypatch.setattr(identity, "delete_identity", unavailable)

    assert delete_user(user_id=target_id, db=db_session, current_user=admin_user) == {"success": True}
    assert db_session.query(User).filter(User.id == target_id).first() is None


def test_new_invitation_reactivates_deleted_identity(db_session, provider):
    identity_id = "00000000-0000-0000-0000-000000000001"
    db_session.add(DeletedIdentity(id=identity_id))
    db_session.commit()

    profile, _ = invitations.invite_user(db_session, email="lara@empresa.com", full_name="Lara Melo")

    assert profile.id == identity_id
    assert db_session.query(DeletedIdentity).count() == 0


@pytest.mark.parametrize(
    "password, confirmation",
    [("12345", "12345"), ("segredo1", "segredo2"), ("", "")],
)
def test_validate_new_password_rejects(password, confirmation):
    with pytest.raises(ValidationError):
        directory.validate_new_password(password, confirmation)


def test_validate_new_password_accepts_six_chars():
    assert directory.validate_new_password("123456", "123456") == "123456"


def test_avatar_upload_replaces_previous_extension(db_session, member_user, monkeypatch, tmp_path):
    monkeypatch.setenv("UPLOADS_DIR", str(tmp_path))
    avatars_dir = tmp_path / "avatars" / storage.sanitize_segment(member_user.id)

    user = directory.upload_avatar(db_session, member_user.id, "foto.png", "image/png", b"png-bytes")
    assert user.avatar_url.endswith("/avatar.png")
    assert (avatars_dir / "avatar.png").exists()

    user = directory.upload_avatar(db_session, member_user.id, "foto.JPG", "image/jpeg", b"jpg-bytes")
    assert user.avatar_url.endswith("/avatar.jpg")
    assert (avatars_dir / "avatar.jpg").read_bytes() == b"jpg-bytes"
    assert not (avatars_dir / "avatar.png").exists()

    user = directory.remove_avatar(db_session, member_user.id)
    assert user.avatar_url is None
    assert not (avatars_dir / "avatar.jpg").exists()


@pytest.mark.parametrize(
    "filename, content_type, content",
    [("doc.pdf", "application/pdf", b"x"), ("foto.png", "text/plain", b"x"), ("foto.png", "image/png", b"")],
)
def test_avatar_upload_rejects_invalid_files(db_session, member_user, filename, content_type, content):
    with pytest.raises(ValidationError):
        directory.upload_avatar(db_session, member_user.id, filename, content_type, content)


def test_avatar_upload_to_supabase_storage_removes_known_names_first(db_session, member_user, monkeypatch):
    calls = []

    def fake_request(**kwargs):
        calls.append(kwargs)
        return 200, "{}"

    monkeypatch.setattr(storage, "_storage_enabled", lambda: True)
    monkeypatch.setattr(storage.supabase, "supabase_request", fake_request)

    user = directory.upload_avatar(db_session, member_user.id, "foto.webp", "image/webp", b"webp")

    assert [call["method"] for call in calls] == ["DELETE", "POST"]
    removed = json.loads(calls[0]["body"])["prefixes"]
    folder = storage.sanitize_segment(member_user.id)
    assert f"{folder}/avatar.jpg" in removed
    assert f"{folder}/avatar.gif" in removed
    assert calls[1]["path"].endswith(f"{folder}/avatar.webp")
    assert user.avatar_url.endswith(f"/storage/v1/object/public/avatars/{folder}/avatar.webp")


def test_avatar_http_self_or_admin(client, member_user, make_user, auth_headers, monkeypatch, tmp_path):
    monkeypatch.setenv("UPLOADS_DIR", str(tmp_path))
    other = make_user(full_name="Outro Membro")
    files = {"file": ("foto.png", b"png-bytes", "image/png")}

    response = client.put(f"/users/{other.id}/avatar", files=files, headers=auth_headers(member_user))
    assert response.status_code == 403

    response = client.put(f"/users/{member_user.id}/avatar", files=files, headers=auth_headers(member_user))
    assert response.status_code == 200
    assert response.json()["avatar_url"].endswith("/avatar.png")


def test_avatar_upload_reads_at_most_limit_plus_one(db_session, member_user, monkeypatch):
    class RecordingFile(BytesIO):
        def __init__(self, content):
            super().__init__(content)
            self.sizes = []

        def read(self, size=-1):
            self.sizes.append(size)
            return super().read(size)

    monkeypatch.setattr(users_routes, "AVATAR_MAX_BYTES", 8)
    monkeypatch.setattr(storage, "AVATAR_MAX_BYTES", 8)
    raw = RecordingFile(b"x" * 100)
    upload = UploadFile(file=raw, filename="foto.png", headers=Headers({"content-type": "image/png"}))

    with pytest.raises(ValidationError):
        users_routes.upload_avatar(user_id=member_user.id, file=upload, db=db_session, current_user=member_user)

    assert raw.sizes == [9]
    db_session.expire_all()
    assert db_session.query(User).filter(User.id == member_user.id).one().avatar_url is None


def test_push_subscription_http(client, db_session, member_user, auth_headers):
    headers = auth_headers(member_user)
    subscription = {"endpoint": "https://push.example/abc", "keys": {"p256dh": "k", "auth": "a"}}

    response = client.put("/users/me/push-subscription", json={"subscription": subscription}, headers=headers)
    assert response.status_code == 200
    db_session.expire_all()
    stored = db_session.query(User).filter(User.id == member_user.id).one()
    assert json.loads(stored.push_subscription)["endpoint"] == "https://push.example/abc"
    assert client.get("/auth/me", headers=headers).json()["has_push_subscription"] is True

    response = client.delete("/users/me/push-subscription", headers=headers)
    assert response.status_code == 200
    db_session.expire_all()
    assert db_session.query(User).filter(User.id == member_user.id).one().push_subscription is None


def test_users_http_member_cannot_manage(client, member_user, make_user, auth_headers):
    headers = auth_headers(member_user)
    other = make_user(full_name="Outra Pessoa")

    assert client.get("/users", headers=headers).status_code == 200
    assert client.post("/users", json={"email": "a@b.com", "full_name": "A"}, headers=headers).status_code == 403
    assert client.put(f"/users/{other.id}", json={"role": "admin"}, headers=headers).status_code == 403
    assert client.delete(f"/users/{other.id}", headers=headers).status_code == 403


def test_users_http_create_user(client, admin_user, auth_headers, provider):
    response = client.post(
        "/users",
        json={"email": "ivo@empresa.com", "full_name": "Ivo Nunes", "role": "user", "team_function_id": None},
        headers=auth_headers(admin_user),
    )
    assert response.status_code == 200
    assert response.json()["username"] == "ivo"

    response = client.post(
        "/users",
        json={"email": "ivo@empresa.com", "full_name": "Ivo Nunes", "role": "user"},
        headers=auth_headers(admin_user),
    )
    assert response.status_code == 422
    assert response.json() == {"error": "A user with this email address has already been registered"}


def test_first_login_creates_user_profile(client, db_session, token_for):
    token = token_for("11111111-2222-3333-4444-555555555555", "Joana.Prado@empresa.com", "Joana Prado")

    response = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 200
    body = response.json()
    assert body["role"] == "user"
    assert body["username"] == "joana.prado"
    assert body["email"] == "joana.prado@empresa.com"
    assert db_session.query(User).count() == 1


def test_invalid_token_is_rejected(client):
    response = client.get("/auth/me", headers={"Authorization": "Bearer nao-e-um-jwt"})
    assert response.status_code == 401
