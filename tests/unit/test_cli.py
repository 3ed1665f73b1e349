import pytest
from typer.testing import CliRunner

from rolegate.cli import app


@pytest.fixture
def runner(tmp_path, monkeypatch):
    monkeypatch.setenv("ROLEGATE_DATABASE_URL", f"sqlite://{tmp_path / 'rbac.db'}")
    return CliRunner()


def _ok(result):
    assert (
        result.exit_code == 0
    ), f"Command failed with exit code {result.exit_code}. Output: {result.stdout}"
    return result.stdout


def test_role_and_permission_commands(runner):
    _ok(runner.invoke(app, ["role", "create", "writer", "--level", "5"]))
    output = _ok(runner.invoke(app, ["role", "create", "editor", "--level", "10", "--parent", "writer"]))
    assert "Role 'editor' created" in output

    output = _ok(runner.invoke(app, ["role", "list"]))
    assert output.index("editor") < output.index("writer"), output

    output = _ok(runner.invoke(app, ["permission", "crud", "posts"]))
    assert output.split() == ["posts.create", "posts.read", "posts.update", "posts.delete"]

    _ok(runner.invoke(app, ["permission", "create", "users.invite"]))
    output = _ok(runner.invoke(app, ["permission", "list", "--resource", "users"]))
    assert "users.invite" in output and "posts" not in output

    _ok(runner.invoke(app, ["permission", "delete", "users.invite"]))
    output = _ok(runner.invoke(app, ["permission", "list"]))
    assert "users.invite" not in output


def test_duplicate_and_missing_entities_exit_nonzero(runner):
    _ok(runner.invoke(app, ["role", "create", "admin"]))

    result = runner.invoke(app, ["role", "create", "admin"])
    assert result.exit_code == 1
    assert "already exists" in result.stdout

    result = runner.invoke(app, ["role", "delete", "ghost"])
    assert result.exit_code == 1
    assert "not found" in result.stdout

    _ok(runner.invoke(app, ["role", "create", "owner", "--system"]))
    result = runner.invoke(app, ["role", "delete", "owner"])
    assert result.exit_code == 1
    assert "Cannot delete system role" in result.stdout


def test_assign_show_and_revoke(runner):
    _ok(runner.invoke(app, ["role", "create", "admin"]))
    _ok(runner.invoke(app, ["permission", "create", "posts.read"]))

    output = _ok(runner.invoke(app, ["assign", "42", "admin", "--expires-at", "2999-01-01T00:00:00"]))
    assert "Assigned role 'admin' to 42 until 2999-01-01" in output

    output = _ok(runner.invoke(app, ["show", "--actor", "42", "--roles"]))
    assert "admin" in output
    assert "Permissions:" not in output

    output = _ok(runner.invoke(app, ["show"]))
    assert "Roles:" in output and "Permissions:" in output
    assert "posts.read" in output

    _ok(runner.invoke(app, ["revoke", "42", "admin"]))
    output = _ok(runner.invoke(app, ["show", "--actor", "42"]))
    assert "admin" not in output
    assert "(none)" in output


def test_expired_assignment_is_not_shown(runner):
    _ok(runner.invoke(app, ["role", "create", "temp"]))
    _ok(runner.invoke(app, ["assign", "7", "temp", "--expires-at", "2000-01-01T00:00:00"]))
    output = _ok(runner.invoke(app, ["show", "--actor", "7", "--roles"]))
    assert "temp" not in output


def test_cache_reset(runner):
    output = _ok(runner.invoke(app, ["cache", "reset"]))
    assert "flushed" in output
