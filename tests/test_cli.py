"""Tests for the command-line interface."""

import csv
import json
from unittest.mock import MagicMock, patch

from typer.testing import CliRunner

from cli.commands.pressable import GRANT_ACCESS_ROLES
from cli.main import app
from team51.pyd_models.deployhq_models import DeployHQProject, DeployHQServer
from team51.pyd_models.misc_models import FrontExport
from team51.pyd_models.pressable_models import PressableCollaborator, PressableSFTPUser, PressableSite
from team51.pyd_models.wpcom_models import JetpackBlog, JetpackModule, WPCOMSite

runner = CliRunner()

ACME = PressableSite(id=1, name="acme-production", url="acme.com")
COLLABORATOR = PressableCollaborator(id=5, email="Someone@Example.com", site_id=9, site_name="acme")


def invoke(config_dir, *args, input=None):
    return runner.invoke(app, ["--config-dir", str(config_dir), *args], input=input)


def patch_client(target):
    """Replace an API client class in a command module with a mock."""
    client_cls = MagicMock()
    client_cls.__name__ = target.rsplit(".", 1)[-1]
    return patch(target, client_cls)


def test_version(config_dir):
    result = invoke(config_dir, "version")

    assert result.exit_code == 0
    assert "Team51 CLI" in result.output
    assert "0.1.0" in result.output


def test_unreadable_config_fails(tmp_path):
    (tmp_path / "config.json").write_text("{broken")

    result = invoke(tmp_path, "version")

    assert result.exit_code == 1
    assert "couldn't" in result.output


def test_missing_credentials_fail_cleanly(tmp_path):
    result = invoke(tmp_path, "wpcom", "get-stickers", "acme.com")

    assert result.exit_code == 1
    assert "WPCOM_API_ACCOUNT_TOKEN" in result.output


class TestPressableCommands:
    def test_call_api_rejects_invalid_json(self, config_dir):
        result = invoke(config_dir, "pressable", "call-api", "--query", "sites", "--data", "{nope")

        assert result.exit_code == 1
        assert "valid JSON" in result.output

    def test_call_api(self, config_dir):
        with patch_client("cli.commands.pressable.PressableClient") as client_cls:
            client_cls.return_value.call_api.return_value = {"message": "Success", "data": {"id": 1}}

            result = invoke(config_dir, "pressable", "call-api", "--query", "/sites/1/")

        assert result.exit_code == 0
        assert '"id": 1' in result.output
        client_cls.return_value.call_api.assert_called_once_with("GET", "sites/1", None)

    def test_unknown_site(self, config_dir):
        with patch_client("cli.commands.pressable.PressableClient") as client_cls:
            client_cls.return_value.get_site.return_value = None

            result = invoke(config_dir, "pressable", "sftp-user", "404")

        assert result.exit_code == 1
        assert "not found" in result.output

    def test_sftp_user_shows_owner(self, config_dir):
        with patch_client("cli.commands.pressable.PressableClient") as client_cls:
            client_cls.return_value.get_site.return_value = ACME
            client_cls.return_value.list_sftp_users.return_value = [
                PressableSFTPUser(id=2, username="acme-guest", email="guest@example.com"),
                PressableSFTPUser(id=3, username="acme-owner", email="owner@example.com", owner=True),
            ]

            result = invoke(config_dir, "pressable", "sftp-user", "1")
            missing = invoke(config_dir, "pressable", "sftp-user", "1", "--email", "nobody@example.com")

        assert result.exit_code == 0
        assert "SFTP username: acme-owner" in result.output
        assert missing.exit_code == 1

    def test_grant_access_validates_email(self, config_dir):
        result = invoke(config_dir, "pressable", "grant-access", "--email", "nope", "--site-id", "1")

        assert result.exit_code == 1
        assert "Invalid email" in result.output

    def test_grant_access(self, config_dir):
        with patch_client("cli.commands.pressable.PressableClient") as client_cls:
            client_cls.return_value.get_site.return_value = ACME

            result = invoke(config_dir, "pressable", "grant-access", "--email", "someone@example.com", "--site-id", "1")

        assert result.exit_code == 0
        assert "Collaborator added" in result.output
        client_cls.return_value.batch_create_collaborators.assert_called_once_with(
            "someone@example.com", [1], GRANT_ACCESS_ROLES
        )

    def test_manage_collaborators_abort(self, config_dir):
        with patch_client("cli.commands.pressable.PressableClient") as client_cls:
            client_cls.return_value.list_account_collaborators.return_value = [COLLABORATOR]

            result = invoke(
                config_dir, "pressable", "manage-collaborators", "--email", "someone@example.com", "--remove", input="n\n"
            )

        assert result.exit_code == 2
        assert "aborted" in result.output
        client_cls.return_value.delete_collaborator.assert_not_called()

    def test_manage_collaborators_remove(self, config_dir):
        with patch_client("cli.commands.pressable.PressableClient") as client_cls:
            client_cls.return_value.list_account_collaborators.return_value = [COLLABORATOR]

            result = invoke(
                config_dir, "pressable", "manage-collaborators", "--email", "someone@example.com", "--remove", "--yes"
            )

        assert result.exit_code == 0
        assert "acme.mystagingwebsite.com" in result.output
        client_cls.return_value.delete_collaborator.assert_called_once_with(9, 5)

    def test_run_wp_cli_command(self, config_dir):
        with patch_client("cli.commands.pressable.PressableClient") as client_cls, patch(
            "cli.commands.pressable.PressableConnection"
        ) as connection_cls:
            client_cls.return_value.get_site.return_value = ACME
            ssh = connection_cls.for_site.return_value.__enter__.return_value
            ssh.exec.return_value = (0, "")

            result = invoke(config_dir, "pressable", "run-site-wp-cli-command", "--yes", "1", "wp", "plugin", "list")

        assert result.exit_code == 0
        assert ssh.exec.call_args[0][0] == "wp plugin list"

    def test_run_wp_cli_command_failure(self, config_dir):
        with patch_client("cli.commands.pressable.PressableClient") as client_cls, patch(
            "cli.commands.pressable.PressableConnection"
        ) as connection_cls:
            client_cls.return_value.get_site.return_value = ACME
            connection_cls.for_site.return_value.__enter__.return_value.exec.return_value = (1, "Error")

            result = invoke(config_dir, "pressable", "run-site-wp-cli-command", "--yes", "1", "option", "get", "x")

        assert result.exit_code == 1

    def test_generate_token_prompts_for_account(self, config_dir):
        with patch("cli.commands.pressable.PressableClient.generate_refresh_token") as generate:
            generate.return_value = {"access_token": "a", "refresh_token": "r-123"}

            result = invoke(config_dir, "pressable", "generate-token", input="ops@example.com\npw\n")

        assert result.exit_code == 0
        assert "r-123" in result.output
        generate.assert_called_once_with("client-id", "client-secret", "ops@example.com", "pw")


class TestWPCOMAndJetpackCommands:
    def test_get_stickers_empty(self, config_dir):
        with patch_client("cli.commands.wpcom.WPCOMClient") as client_cls:
            client_cls.return_value.get_site.return_value = WPCOMSite(id=42, url="https://acme.com")
            client_cls.return_value.list_stickers.return_value = []

            result = invoke(config_dir, "wpcom", "get-stickers", "acme.com")

        assert result.exit_code == 0
        assert "no stickers" in result.output

    def test_get_stickers(self, config_dir):
        with patch_client("cli.commands.wpcom.WPCOMClient") as client_cls:
            client_cls.return_value.get_site.return_value = WPCOMSite(id=42, url="https://acme.com")
            client_cls.return_value.list_stickers.return_value = ["team-51-site"]

            result = invoke(config_dir, "wpcom", "get-stickers", "acme.com")

        assert result.exit_code == 0
        assert "team-51-site" in result.output

    def test_unknown_wpcom_site(self, config_dir):
        with patch_client("cli.commands.wpcom.WPCOMClient") as client_cls:
            client_cls.return_value.get_site.return_value = None

            result = invoke(config_dir, "wpcom", "add-sticker", "missing.com", "team-51-site")

        assert result.exit_code == 1
        assert "Could not find" in result.output

    def test_add_sticker_refused(self, config_dir):
        with patch_client("cli.commands.wpcom.WPCOMClient") as client_cls:
            client_cls.return_value.get_site.return_value = WPCOMSite(id=42, url="https://acme.com")
            client_cls.return_value.add_sticker.return_value = False

            result = invoke(config_dir, "wpcom", "add-sticker", "acme.com", "team-51-site")

        assert result.exit_code == 1

    def test_module_setting_is_validated(self, config_dir):
        result = invoke(config_dir, "jetpack", "module", "acme.com", "photon", "toggle")

        assert result.exit_code == 1
        assert "Invalid value" in result.output

    def test_sites_with_module(self, config_dir):
        with patch_client("cli.commands.jetpack.WPCOMClient") as client_cls:
            client_cls.return_value.list_jetpack_sites.return_value = [
                JetpackBlog(userblog_id=1, siteurl="https://a.com"),
                JetpackBlog(userblog_id=2, siteurl="https://b.com"),
            ]
            client_cls.return_value.list_jetpack_modules.side_effect = [
                [JetpackModule(module="stats", name="Stats", activated=True)],
                [JetpackModule(module="stats", name="Stats", activated=False)],
            ]

            result = invoke(config_dir, "jetpack", "sites-with", "stats", "on")

        assert result.exit_code == 0
        assert "https://a.com" in result.output
        assert "https://b.com" not in result.output

    def test_sites_with_unknown_module(self, config_dir):
        with patch_client("cli.commands.jetpack.WPCOMClient") as client_cls:
            client_cls.return_value.list_jetpack_sites.return_value = [JetpackBlog(userblog_id=1, siteurl="https://a.com")]
            client_cls.return_value.list_jetpack_modules.return_value = [
                JetpackModule(module="stats", name="Stats", activated=True)
            ]

            result = invoke(config_dir, "jetpack", "sites-with", "photon")

        assert result.exit_code == 1
        assert "unknown" in result.output


class TestFrontCommands:
    def test_bad_date_is_a_usage_error(self, config_dir):
        result = invoke(config_dir, "front", "create-export", "--start", "01/01/2020")

        assert result.exit_code == 2

    def test_create_export(self, config_dir):
        with patch_client("cli.commands.front.FrontClient") as client_cls:
            client_cls.return_value.create_export.return_value = FrontExport(id="exp_1", status="pending")

            result = invoke(config_dir, "front", "create-export", "--start", "2020-01-01", "--end", "2020-12-31")

        assert result.exit_code == 0
        assert "exp_1" in result.output
        start, end = client_cls.return_value.create_export.call_args[0]
        assert (start.year, end.month) == (2020, 12)

    def test_list_exports_empty(self, config_dir):
        with patch_client("cli.commands.front.FrontClient") as client_cls:
            client_cls.return_value.list_exports.return_value = []

            result = invoke(config_dir, "front", "list-exports")

        assert result.exit_code == 0
        assert "No exports found" in result.output


class TestGitHubCommands:
    def test_team_add_user_validates_team(self, config_dir):
        result = invoke(config_dir, "github", "team-add-user", "--user", "octocat", "--team", "owners")

        assert result.exit_code == 1

    def test_update_repository_secret(self, config_dir):
        with patch_client("cli.commands.github.GitHubClient") as client_cls:
            github = client_cls.return_value
            github.owner = "a8cteam51"

            result = invoke(
                config_dir, "github", "update-repository-secret", "acme", "site_url_trunk", "https://acme.com", "--yes"
            )

        assert result.exit_code == 0
        github.update_secret.assert_called_once_with("a8cteam51", "acme", "SITE_URL_TRUNK", "https://acme.com")

    def test_update_repository_secret_defaults_to_config_value(self, config_dir):
        with patch_client("cli.commands.github.GitHubClient") as client_cls:
            github = client_cls.return_value
            github.owner = "a8cteam51"

            result = invoke(config_dir, "github", "update-repository-secret", "acme", "GITHUB_API_TOKEN", "--yes")

        assert result.exit_code == 0
        github.update_secret.assert_called_once_with("a8cteam51", "acme", "GITHUB_API_TOKEN", "gh-token")

    def test_update_repository_secret_unknown_value(self, config_dir):
        result = invoke(config_dir, "github", "update-repository-secret", "acme", "NOT_A_SETTING", "--yes")

        assert result.exit_code == 1


class TestTopLevelCommands:
    def test_create_production_site_validates_name(self, config_dir):
        result = invoke(config_dir, "create-production-site", "--site-name", "My Site")

        assert result.exit_code == 1
        assert "Invalid site name" in result.output

    def test_create_production_site(self, config_dir):
        with patch_client("cli.commands.sites.PressableClient") as pressable_cls, patch_client(
            "cli.commands.sites.DeployHQClient"
        ) as deployhq_cls, patch_client("cli.commands.sites.GitHubClient") as github_cls, patch(
            "cli.commands.sites.rotate_wp_password", return_value=True
        ), patch("cli.commands.sites.log_to_slack") as slack:
            pressable = pressable_cls.return_value
            pressable.create_site.return_value = PressableSite(id=1, name="acme-production", state="deploying")
            pressable.wait_for_site.return_value = PressableSite(id=1, name="acme-production", url="acme.com", state="live")
            pressable.get_sftp_owner.return_value = PressableSFTPUser(id=3, username="acme-owner", owner=True)
            deployhq = deployhq_cls.return_value
            deployhq.create_project.return_value = DeployHQProject(name="acme", permalink="acme")
            deployhq.update_project.return_value = DeployHQProject(
                name="acme", permalink="acme", auto_deploy_url="https://deployhq.example/hook"
            )
            deployhq.create_server.return_value = DeployHQServer(identifier="srv-1", name="Production")
            github = github_cls.return_value
            github.owner = "a8cteam51"

            result = invoke(config_dir, "create-production-site", "--site-name", "acme", "--repo-slug", "acme", "--zone", "EU")

        assert result.exit_code == 0, result.output
        pressable.create_site.assert_called_once_with("acme-production", "AMS")
        deployhq.create_project.assert_called_once_with("acme", 3, None)
        deployhq.create_repository.assert_called_once_with("acme", "git@github.com:a8cteam51/acme.git", "trunk")
        server_params = deployhq.create_server.call_args[0][1]
        assert server_params["username"] == "acme-owner"
        assert server_params["use_ssh_keys"] is True
        deployhq.wait_for_host_key.assert_called_once_with("acme", "srv-1")
        github.create_push_webhook.assert_called_once_with("a8cteam51", "acme", "https://deployhq.example/hook")
        slack.assert_called_once()

    def test_site_list_export(self, config_dir, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        with patch_client("cli.commands.sites.WPCOMClient") as client_cls:
            client_cls.return_value.list_sites.return_value = [
                WPCOMSite(id=1, name="Acme", url="https://acme.com", jetpack=True),
                WPCOMSite(id=2, name="Acme staging", url="https://acme-staging.example.com"),
            ]

            result = invoke(config_dir, "site-list", "--export", "csv")

        assert result.exit_code == 0
        with (tmp_path / "site-list.csv").open(newline="", encoding="utf-8") as f:
            rows = list(csv.reader(f))
        assert rows == [
            ["Site Name", "Domain", "Site ID", "Host", "Coming Soon"],
            ["Acme", "acme.com", "1", "Pressable", ""],
        ]

    def test_site_list_json_export(self, config_dir, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        with patch_client("cli.commands.sites.WPCOMClient") as client_cls:
            client_cls.return_value.list_sites.return_value = [
                WPCOMSite(id=1, name="Acme", url="https://acme.com", is_wpcom_atomic=True, is_coming_soon=True),
            ]

            result = invoke(config_dir, "site-list", "--export", "json")

        assert result.exit_code == 0
        exported = json.loads((tmp_path / "site-list.json").read_text(encoding="utf-8"))
        assert exported == [
            {"Site Name": "Acme", "Domain": "acme.com", "Site ID": 1, "Host": "Atomic", "Coming Soon": "is_coming_soon"}
        ]

    def _remove_user_mocks(self, pressable_cls, wpcom_cls):
        pressable_cls.return_value.list_account_collaborators.return_value = [COLLABORATOR]
        wpcom_cls.return_value.list_sites.return_value = [
            WPCOMSite(id=42, url="https://acme.com"),
            WPCOMSite(id=43, url="https://woocommerce.com"),
        ]
        wpcom_cls.return_value.call_api_concurrent.return_value = {
            42: {"users": [{"ID": 7, "email": "someone@example.com"}]}
        }

    def test_remove_user_list_only(self, config_dir):
        with patch_client("cli.commands.sites.PressableClient") as pressable_cls, patch_client(
            "cli.commands.sites.WPCOMClient"
        ) as wpcom_cls:
            self._remove_user_mocks(pressable_cls, wpcom_cls)

            result = invoke(config_dir, "remove-user", "someone@example.com", "--list")

        assert result.exit_code == 0
        assert list(wpcom_cls.return_value.call_api_concurrent.call_args[0][0]) == [42]
        pressable_cls.return_value.delete_collaborator.assert_not_called()
        wpcom_cls.return_value.delete_site_user.assert_not_called()

    def test_remove_user(self, config_dir):
        with patch_client("cli.commands.sites.PressableClient") as pressable_cls, patch_client(
            "cli.commands.sites.WPCOMClient"
        ) as wpcom_cls:
            self._remove_user_mocks(pressable_cls, wpcom_cls)

            result = invoke(config_dir, "remove-user", "someone@example.com", "--yes")

        assert result.exit_code == 0
        pressable_cls.return_value.delete_collaborator.assert_called_once_with(9, 5)
        wpcom_cls.return_value.delete_site_user.assert_called_once_with(42, 7)
