import pytest
from typer.testing import CliRunner

import tokenauth.models as models
from tokenauth.cli import app

runner = CliRunner()


@pytest.fixture(autouse=True)
def _isolated_store(tmp_path, monkeypatch):
    monkeypatch.setenv("TOKENAUTH_CONFIG", str(tmp_path / "missing.yaml"))
    monkeypatch.setenv("TOKENAUTH_DB_PATH", str(tmp_path / "data" / "cli.db"))
    monkeypatch.delenv("TOKENAUTH_BACKEND", raising=False)


def _invoke(*args):
    return runner.invoke(app, list(args))


def _create_audience(name: str = "billing", *extra: str) -> str:
    result = _invoke("audience", "create", name, *extra)
    assert (
        result.exit_code == 0
    ), f"Command failed with exit code {result.exit_code}. Output: {result.stdout}"
    first_line = result.stdout.splitlines()[0]
    return first_line.split()[1].rstrip(":")


def _issue(audience_id: str, *extra: str) -> str:
    result = _invoke("token", "issue", audience_id, *extra)
    assert (
        result.exit_code == 0
    ), f"Command failed with exit code {result.exit_code}. Output: {result.stdout}"
    return result.stdout.splitlines()[0]


def test_audience_create_and_show():
    audience_id = _create_audience("billing", "--period", "60")

    result = _invoke("audience", "show", audience_id)
    assert result.exit_code == 0, result.stdout
    assert f"Audience {audience_id}: billing" in result.stdout
    assert "Token period: 60s" in result.stdout
    assert "Tokens: 0" in result.stdout


def test_audience_show_missing():
    result = _invoke("audience", "show", "missing-id")
    assert (
        result.exit_code == 1
    ), f"Expected exit code 1 for missing audience, got {result.exit_code}. Output: {result.stdout}"
    assert "Audience not found" in result.stdout


def test_issue_validate_and_revoke():
    audience_id = _create_audience()
    value = _issue(audience_id)

    result = _invoke("token", "validate", value)
    assert result.exit_code == 0, result.stdout
    assert f"Valid token for {audience_id}" in result.stdout

    listing = _invoke("audience", "tokens", audience_id)
    assert value in listing.stdout

    result = _invoke("token", "revoke", value)
    assert result.exit_code == 0, result.stdout
    assert "Token revoked" in result.stdout

    result = _invoke("token", "revoke", value)
    assert result.exit_code == 1
    assert "Token not found" in result.stdout

    result = _invoke("token", "validate", value)
    assert result.exit_code == 1
    assert "40001:Invalid token" in result.stdout


def test_issue_for_missing_audience():
    result = _invoke("token", "issue", "missing-id")
    assert result.exit_code == 1
    assert "Audience not found" in result.stdout


def test_single_token_replaces_previous():
    audience_id = _create_audience()
    first = _issue(audience_id, "--single-id", "device-42")
    second = _issue(audience_id, "--single-id", "device-42")
    assert first != second

    result = _invoke("token", "validate", first)
    assert result.exit_code == 1
    result = _invoke("token", "validate", second)
    assert result.exit_code == 0, result.stdout
    assert "single:device-42" in result.stdout


def test_validate_expired_token_reports_and_deletes(monkeypatch):
    audience_id = _create_audience("short", "--period", "5")
    value = _issue(audience_id)

    monkeypatch.setattr(models, "_now", lambda: 2**40)
    result = _invoke("token", "validate", value)
    assert result.exit_code == 1
    assert "42001:Token is expired" in result.stdout
    assert "Expired:" in result.stdout

    result = _invoke("audience", "tokens", audience_id)
    assert "No tokens found" in result.stdout


def test_zero_period_tokens_never_expire():
    audience_id = _create_audience("forever", "--period", "0")
    result = _invoke("token", "issue", audience_id)
    assert "Expires: never" in result.stdout


def test_rotate_revokes_tokens():
    audience_id = _create_audience()
    value = _issue(audience_id)

    result = _invoke("audience", "rotate", audience_id)
    assert result.exit_code == 0, result.stdout
    assert "Secret:" in result.stdout

    result = _invoke("token", "validate", value)
    assert result.exit_code == 1


def test_delete_audience_cascades():
    audience_id = _create_audience()
    value = _issue(audience_id)

    result = _invoke("audience", "delete", audience_id)
    assert result.exit_code == 0, result.stdout
    assert f"Deleted audience {audience_id}" in result.stdout

    result = _invoke("token", "validate", value)
    assert result.exit_code == 1
    result = _invoke("audience", "show", audience_id)
    assert result.exit_code == 1


def test_sweep_removes_expired(monkeypatch):
    audience_id = _create_audience("short", "--period", "5")
    _issue(audience_id)
    _issue(audience_id)

    result = _invoke("sweep")
    assert "Removed 0 expired tokens" in result.stdout

    monkeypatch.setattr(models, "_now", lambda: 2**40)
    result = _invoke("sweep")
    assert result.exit_code == 0, result.stdout
    assert "Removed 2 expired tokens" in result.stdout


def test_invalid_config_file_exits(tmp_path, monkeypatch):
    config_file = tmp_path / "bad.yaml"
    config_file.write_text("token_period: not-a-number\n")

    result = _invoke("--config", str(config_file), "sweep")
    assert result.exit_code == 1
    assert "invalid config file" in result.stdout


def test_unknown_backend_exits(monkeypatch):
    monkeypatch.setenv("TOKENAUTH_BACKEND", "nosuch")
    result = _invoke("sweep")
    assert result.exit_code == 1
    assert "unknown store name" in result.stdout


def test_unwritable_db_path_exits(tmp_path, monkeypatch):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    monkeypatch.setenv("TOKENAUTH_DB_PATH", str(blocker / "cli.db"))

    result = _invoke("sweep")
    assert result.exit_code == 1
    assert isinstance(result.exception, SystemExit)
