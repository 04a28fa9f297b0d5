import pytest
from fastapi import HTTPException

from app.core.errors import NotFoundError
from app.modules.users.schemas import AuthProvider, UserProfileSync, UserUpdate
from app.modules.users.service import UserService


@pytest.fixture
def service(supabase):
    return UserService(supabase)


class TestSyncUser:
    def test_creates_missing_user_with_lowercased_identity(self, service, fake_db):
        profile = UserProfileSync(email="Ada@Example.COM", first_name="Ada", last_name="Lovelace",
                                  email_verified=True, provider=AuthProvider.GITHUB)

        user = service.sync_user("user_ada", profile)

        assert user.email == "ada@example.com"
        assert user.username == "ada"
        assert user.name == "Ada Lovelace"
        assert user.provider == "github"
        assert fake_db.rows("users")[0]["email_verified"] is True

    def test_same_snapshot_twice_writes_once(self, service, fake_db):
        profile = UserProfileSync(email="ada@example.com", name="Ada", picture="https://img/ada.png")

        service.sync_user("user_ada", profile)
        service.sync_user("user_ada", profile)

        assert fake_db.writes() == [("users", "insert")]

    def test_changed_fields_are_updated(self, service, fake_db, seed_user):
        seed_user("user_ada", email="ada@example.com", name="Ada", username="ada")

        user = service.sync_user("user_ada", UserProfileSync(email="ada@example.com", name="Countess Ada"))

        assert user.name == "Countess Ada"
        assert user.username == "ada"
        assert fake_db.writes() == [("users", "update")]

    def test_username_collision_creates_user_without_username(self, service, fake_db, seed_user):
        seed_user("user_other", email="other@example.com", username="ada")

        user = service.sync_user("user_ada", UserProfileSync(email="ada@example.com"))

        assert user.username is None
        assert len(fake_db.rows("users")) == 2

    def test_username_change_to_taken_name_keeps_old_username(self, service, fake_db, seed_user):
        seed_user("user_ada", email="ada@example.com", username="ada")
        seed_user("user_other", email="other@example.com", username="countess")

        user = service.sync_user("user_ada", UserProfileSync(email="ada@example.com", username="Countess",
                                                             name="Countess Ada"))

        assert user.username == "ada"
        assert user.name == "Countess Ada"

    def test_missing_email_cannot_create(self, service):
        with pytest.raises(HTTPException) as exc_info:
            service.sync_user("user_ada", UserProfileSync(first_name="Ada"))
        assert exc_info.value.status_code == 400


class TestLookups:
    def test_lookup_by_email_and_username_is_case_insensitive(self, service, seed_user):
        seed_user("user_ada", email="ada@example.com", username="ada")

        assert service.get_user_by_email("ADA@example.com").id == "user_ada"
        assert service.get_user_by_username("Ada").id == "user_ada"

    def test_unknown_user_is_not_found(self, service):
        with pytest.raises(NotFoundError):
            service.get_user_profile("user_missing")

    def test_username_availability_ignores_the_caller(self, service, seed_user):
        seed_user("user_ada", username="ada")

        assert service.is_username_available("ada") is False
        assert service.is_username_available("ADA", exclude_user_id="user_ada") is True
        assert service.is_username_available("grace") is True

    def test_list_users_pages_newest_first(self, service, seed_user):
        for i in range(5):
            seed_user(f"user_{i}")

        first = service.list_users(page=1, limit=2)
        last = service.list_users(page=3, limit=2)

        assert [u.id for u in first.data] == ["user_4", "user_3"]
        assert first.total == 5
        assert first.has_more is True
        assert [u.id for u in last.data] == ["user_0"]
        assert last.has_more is False

    def test_list_users_filters_by_provider(self, service, seed_user):
        seed_user("user_gh", provider="github")
        seed_user("user_mail")

        result = service.list_users(provider="github")

        assert [u.id for u in result.data] == ["user_gh"]


class TestUserRoutes:
    def test_get_me(self, client, seed_user):
        seed_user("user_owner", name="Owner")

        response = client.get("/api/users/me")

        assert response.status_code == 200
        assert response.json()["name"] == "Owner"

    def test_get_me_without_row_is_404(self, client):
        assert client.get("/api/users/me").status_code == 404

    def test_update_me(self, client, seed_user):
        seed_user("user_owner")

        response = client.put("/api/users/me", json={"username": "NewName", "locale": "fr-FR"})

        assert response.status_code == 200
        assert response.json()["username"] == "newname"
        assert response.json()["locale"] == "fr-FR"

    def test_update_me_rejects_taken_username(self, client, seed_user):
        seed_user("user_owner")
        seed_user("user_other", username="taken")

        response = client.put("/api/users/me", json={"username": "Taken"})

        assert response.status_code == 400
        assert response.json()["detail"] == "Username is already taken"

    def test_update_me_rejects_blank_username(self, client, seed_user):
        seed_user("user_owner")

        assert client.put("/api/users/me", json={"username": "   "}).status_code == 400

    def test_delete_me_cascades_owned_workspaces(self, client, fake_db, seed_user, seed_workspace):
        seed_user("user_owner")
        seed_workspace("user_owner")

        response = client.delete("/api/users/me")

        assert response.status_code == 204
        assert fake_db.rows("users") == []
        assert fake_db.rows("workspaces") == []

    def test_sync_creates_user_and_default_workspace(self, client, fake_db):
        response = client.post("/api/users/sync", json={"first_name": "Owner", "last_name": "One"})

        assert response.status_code == 200
        assert response.json()["email"] == "user_owner@example.com"
        [workspace] = fake_db.rows("workspaces")
        assert workspace["name"] == "Owner One"

    def test_sync_survives_workspace_failure(self, client, fake_db):
        fake_db.fail_on("workspaces", "insert")

        response = client.post("/api/users/sync", json={"email": "owner@example.com"})

        assert response.status_code == 200
        assert len(fake_db.rows("users")) == 1
        assert fake_db.rows("workspaces") == []

    def test_check_username(self, client, seed_user):
        seed_user("user_other", username="grace")

        response = client.get("/api/users/check-username/Grace")

        assert response.json() == {"username": "grace", "available": False}

    def test_list_users_rejects_oversized_limit(self, client):
        assert client.get("/api/users", params={"limit": 101}).status_code == 422

    def test_update_profile_partial(self, service, seed_user):
        seed_user("user_ada", name="Ada", locale="en-US")

        user = service.update_user_profile("user_ada", UserUpdate(name="Ada L."))

        assert user.name == "Ada L."
        assert user.locale == "en-US"
