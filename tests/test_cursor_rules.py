import pytest
from pydantic import ValidationError

from app.core.errors import NotFoundError
from app.modules.cursor_rules.schemas import CursorRuleCreate, CursorRuleUpdate, RuleType
from app.modules.cursor_rules.service import CursorRuleService, build_rules_tree


@pytest.fixture
def repository(fake_db, seed_user, seed_workspace):
    seed_user("user_owner")
    seed_user("user_member")
    workspace = seed_workspace("user_owner", "Team", members={"user_member": "MEMBER"})
    return fake_db.seed("repositories", workspace_id=workspace["id"], name="engine", full_name="ada/engine",
                        url="https://github.com/ada/engine", provider="GITHUB", provider_repo_id="101",
                        default_branch="main")


@pytest.fixture
def service(supabase):
    return CursorRuleService(supabase)


def new_rule(**overrides):
    values = {"file_name": "python style", "content": "Use type hints.", "type": RuleType.PROJECT_RULE}
    values.update(overrides)
    return CursorRuleCreate(**values)


class TestValidation:
    @pytest.mark.parametrize("file_name", ["", "bad/name", "dots.not.allowed", "x" * 101])
    def test_rejects_bad_file_names(self, file_name):
        with pytest.raises(ValidationError):
            new_rule(file_name=file_name)

    def test_accepts_spaces_hyphens_underscores(self):
        assert new_rule(file_name="my-rule_v2 final").file_name == "my-rule_v2 final"

    def test_rejects_empty_and_oversized_content(self):
        with pytest.raises(ValidationError):
            new_rule(content="")
        with pytest.raises(ValidationError):
            new_rule(content="x" * 50001)

    def test_apply_mode_only_for_project_rules(self):
        assert new_rule(apply_mode="specific", glob_pattern="src/**/*.py").apply_mode.value == "specific"
        with pytest.raises(ValidationError, match="apply_mode"):
            new_rule(type=RuleType.COMMAND, apply_mode="always")

    def test_glob_pattern_length(self):
        with pytest.raises(ValidationError):
            new_rule(apply_mode="specific", glob_pattern="*" * 501)


class TestCursorRuleService:
    def test_create_starts_at_version_one(self, service, repository):
        rule = service.create_rule("user_owner", repository["id"], new_rule(is_active=True))

        assert rule.current_version == 1
        assert rule.is_active is True
        assert rule.user_id == "user_owner"

    def test_lists_newest_first_and_filters_active(self, service, repository):
        first = service.create_rule("user_owner", repository["id"], new_rule(file_name="one", is_active=True))
        second = service.create_rule("user_owner", repository["id"], new_rule(file_name="two"))

        assert [r.id for r in service.get_rules(repository["id"])] == [second.id, first.id]
        assert [r.id for r in service.get_active_rules(repository["id"])] == [first.id]

    def test_soft_delete_hides_rule_but_keeps_row(self, service, fake_db, repository):
        rule = service.create_rule("user_owner", repository["id"], new_rule())

        service.delete_rule(rule.id)

        assert service.get_rules(repository["id"]) == []
        with pytest.raises(NotFoundError):
            service.get_rule_by_id(rule.id)
        [row] = fake_db.rows("cursor_rules")
        assert row["deleted_at"] is not None

    def test_deleting_twice_is_not_found(self, service, repository):
        rule = service.create_rule("user_owner", repository["id"], new_rule())
        service.delete_rule(rule.id)

        with pytest.raises(NotFoundError):
            service.delete_rule(rule.id)

    def test_update_deleted_rule_is_not_found(self, service, repository):
        rule = service.create_rule("user_owner", repository["id"], new_rule())
        service.delete_rule(rule.id)

        with pytest.raises(NotFoundError):
            service.update_rule(rule.id, CursorRuleUpdate(content="New"))

    def test_update_changes_given_fields(self, service, repository):
        rule = service.create_rule("user_owner", repository["id"], new_rule())

        updated = service.update_rule(rule.id, CursorRuleUpdate(is_active=True))

        assert updated.is_active is True
        assert updated.content == "Use type hints."

    def test_rules_are_removed_with_their_repository(self, service, fake_db, repository):
        service.create_rule("user_owner", repository["id"], new_rule())

        fake_db.delete_rows("repositories", fake_db.rows("repositories"))

        assert fake_db.rows("cursor_rules") == []


class TestRulesTree:
    def test_tree_layout(self, service, repository):
        service.create_rule("user_owner", repository["id"], new_rule(file_name="style"))
        service.create_rule("user_owner", repository["id"], new_rule(file_name="deploy", type=RuleType.COMMAND))
        user_rule = service.create_rule("user_owner", repository["id"], new_rule(file_name="me", type=RuleType.USER_RULE))

        tree = service.get_rules_tree(repository["id"])

        assert (tree.name, tree.type, tree.path) == ("root", "directory", "/")
        cursor_dir, user_file = tree.children
        assert cursor_dir.path == ".cursor"
        assert [(d.name, d.path) for d in cursor_dir.children] == [
            ("rules", ".cursor/rules"), ("commands", ".cursor/commands"),
        ]
        rules_dir, commands_dir = cursor_dir.children
        assert [f.path for f in rules_dir.children] == [".cursor/rules/style.rules.mdc"]
        assert [f.path for f in commands_dir.children] == [".cursor/commands/deploy.md"]
        assert (user_file.name, user_file.rule_id) == (".cursorrules", user_rule.id)
        assert user_file.metadata.type == RuleType.USER_RULE

    def test_empty_tree(self):
        assert build_rules_tree([]).children == []

    def test_only_commands(self, service, repository):
        service.create_rule("user_owner", repository["id"], new_rule(file_name="deploy", type=RuleType.COMMAND))

        [cursor_dir] = service.get_rules_tree(repository["id"]).children
        assert [d.name for d in cursor_dir.children] == ["commands"]


class TestCursorRuleRoutes:
    def url(self, repository, suffix=""):
        return f"/api/repositories/{repository['id']}/rules{suffix}"

    def test_admin_creates_rule(self, client, repository):
        response = client.post(self.url(repository), json={
            "file_name": "style", "content": "Be concise.", "type": "PROJECT_RULE", "apply_mode": "always",
        })

        assert response.status_code == 201
        assert response.json()["apply_mode"] == "always"

    def test_invalid_rule_is_422(self, client, repository):
        response = client.post(self.url(repository), json={"file_name": "a/b", "content": "x", "type": "COMMAND"})

        assert response.status_code == 422

    def test_member_can_read_but_not_write(self, client, repository, service, current_user):
        rule = service.create_rule("user_owner", repository["id"], new_rule())
        current_user["id"] = "user_member"

        assert client.get(self.url(repository)).status_code == 200
        assert client.get(self.url(repository, "/tree")).status_code == 200
        assert client.get(self.url(repository, f"/{rule.id}")).status_code == 200
        assert client.post(self.url(repository), json={
            "file_name": "x", "content": "y", "type": "COMMAND",
        }).status_code == 403
        assert client.delete(self.url(repository, f"/{rule.id}")).status_code == 403

    def test_outsider_is_forbidden(self, client, repository, current_user):
        current_user["id"] = "user_outsider"

        assert client.get(self.url(repository)).status_code == 403

    def test_unknown_repository_is_404(self, client, repository):
        assert client.get("/api/repositories/00000000-0000-0000-0000-000000000000/rules").status_code == 404

    def test_rule_from_another_repository_is_404(self, client, fake_db, repository, service):
        other = fake_db.seed("repositories", workspace_id=repository["workspace_id"], name="notes",
                             full_name="ada/notes", url="https://github.com/ada/notes", provider="GITHUB",
                             provider_repo_id="102", default_branch="main")
        rule = service.create_rule("user_owner", other["id"], new_rule())

        assert client.get(self.url(repository, f"/{rule.id}")).status_code == 404

    def test_active_only_filter(self, client, repository, service):
        active = service.create_rule("user_owner", repository["id"], new_rule(file_name="on", is_active=True))
        service.create_rule("user_owner", repository["id"], new_rule(file_name="off"))

        response = client.get(self.url(repository), params={"active_only": True})

        assert [r["id"] for r in response.json()] == [active.id]

    def test_update_and_delete(self, client, fake_db, repository, service):
        rule = service.create_rule("user_owner", repository["id"], new_rule())

        updated = client.put(self.url(repository, f"/{rule.id}"), json={"content": "Updated"})
        deleted = client.delete(self.url(repository, f"/{rule.id}"))

        assert updated.json()["content"] == "Updated"
        assert deleted.status_code == 204
        assert client.get(self.url(repository, f"/{rule.id}")).status_code == 404
        assert len(fake_db.rows("cursor_rules")) == 1
