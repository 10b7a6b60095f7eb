"""
Tests for the slider-omni command line, run against in-memory services.
"""

import json

import pytest
from rich.console import Console
from typer.testing import CliRunner

from slider_omni.backend import cli
from slider_omni.backend.users import verify_password

runner = CliRunner()

SIMPLE_HTML = (
    '<!DOCTYPE html><html><body>'
    '<div id="slide1" class="slide"></div><div id="slide2" class="slide"></div>'
    '<div id="slide3" class="slide"></div></body></html>'
)


@pytest.fixture(autouse=True)
def cli_services(services, monkeypatch):
    # every command shares the fixture's storage; a wide console keeps table cells on one line
    monkeypatch.setattr(cli, "_services", lambda: services)
    monkeypatch.setattr(cli, "console", Console(width=240))
    return services


def test_templates_lists_catalog():
    result = runner.invoke(cli.app, ["templates"])
    assert result.exit_code == 0
    for template_id in ("dark-premium", "gradient-modern", "minimal-clean", "corporate-pro"):
        assert template_id in result.output


class TestUsers:
    def test_create_user(self, cli_services):
        result = runner.invoke(cli.app, ["create-user", "dave", "--email", "dave@example.com", "--password", "pw"])
        assert result.exit_code == 0
        assert "Created user dave" in result.output

        stored = cli_services.auth.users.get("dave")
        assert stored.omnitokens == 10
        assert not stored.permissions.sudo
        assert verify_password("pw", stored.password_hash)

    def test_create_admin(self, cli_services):
        result = runner.invoke(
            cli.app, ["create-user", "eve", "-e", "eve@example.com", "-p", "pw", "--admin"]
        )
        assert result.exit_code == 0
        assert cli_services.auth.users.get("eve").permissions.sudo

    def test_duplicate_user_fails(self, user_token):
        result = runner.invoke(cli.app, ["create-user", "alice", "-e", "a@example.com", "-p", "pw"])
        assert result.exit_code == 1
        assert "already exists" in result.output

    def test_users_table(self, user_token):
        result = runner.invoke(cli.app, ["users"])
        assert result.exit_code == 0
        assert "alice" in result.output

    def test_reset_credits(self, cli_services, user_token):
        cli_services.ledger.charge("alice", "tokens", 3)
        result = runner.invoke(cli.app, ["reset-credits", "alice"])
        assert result.exit_code == 0
        assert cli_services.ledger.balances("alice")["omnitokens"] == 10

    def test_reset_unknown_user(self):
        assert runner.invoke(cli.app, ["reset-credits", "ghost"]).exit_code == 1


class TestPresentations:
    @pytest.fixture
    def stored(self, cli_services, user_token):
        return cli_services.store.create("pres-1-abcdefg", "alice", "Remote Work", SIMPLE_HTML, 3)

    def test_show(self, stored):
        result = runner.invoke(cli.app, ["show", stored.id])
        assert result.exit_code == 0
        assert "Presentation: Remote Work" in result.output
        assert "Total slides: 3" in result.output

    def test_show_unknown(self):
        result = runner.invoke(cli.app, ["show", "pres-0-missing"])
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_export_html_and_json(self, stored, tmp_path):
        html_path = tmp_path / "deck.html"
        assert runner.invoke(cli.app, ["export", stored.id, "-o", str(html_path)]).exit_code == 0
        assert html_path.read_text(encoding="utf-8") == SIMPLE_HTML

        json_path = tmp_path / "deck.json"
        assert runner.invoke(cli.app, ["export", stored.id, "-o", str(json_path), "--json"]).exit_code == 0
        assert json.loads(json_path.read_text(encoding="utf-8"))["slideCount"] == 3


def test_providers_masks_keys():
    result = runner.invoke(cli.app, ["providers"])
    assert result.exit_code == 0
    assert "openrouter" in result.output
    assert "sk-or-test-key" not in result.output
