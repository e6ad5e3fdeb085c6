"""Tests for the account-wide reports and the stats commands."""

import csv
from unittest.mock import MagicMock, patch

from typer.testing import CliRunner

from cli.main import app
from team51.clients.wpcom_client import WPCOMAPIError
from team51.pyd_models.pressable_models import PressableSite
from team51.pyd_models.wpcom_models import (
    JetpackBlog,
    PublicizeConnection,
    SitePlugin,
    StatsSummary,
    WooCommerceOrderStats,
    WPCOMSite,
)
from team51.site_reports import PLUGIN_SUMMARY_FILE, PUBLICIZE_CONNECTIONS_FILE

runner = CliRunner()

ACME = JetpackBlog(userblog_id=1, blogname="Acme", siteurl="https://acme.com")
BETA = JetpackBlog(userblog_id=2, blogname="Beta", siteurl="https://beta.com")
STAGING = JetpackBlog(userblog_id=3, blogname="Acme staging", siteurl="https://acme-staging.mystagingwebsite.com")
BLOGS = [ACME, BETA, STAGING]

WOOCOMMERCE = SitePlugin(slug="woocommerce", file="woocommerce/woocommerce.php", name="WooCommerce", version="9.1", active=True)
WP_MAIL_SMTP = SitePlugin(slug="wp-mail-smtp", file="wp-mail-smtp/wp_mail_smtp.php", name="WP Mail SMTP", active=False)

AUTOMATTIC_DNS = [{"type": "NS", "target": "ns1.wordpress.com"}]
EXTERNAL_DNS = [{"type": "A", "target": "1.2.3.4"}, {"type": "NS", "target": "ns1.cloudflare.com"}]

PHP_LOG = (
    "[18-Oct-2026 10:00:00 UTC] PHP Fatal error:  Uncaught Error: boom in /srv/htdocs/a.php:3\n"
    "[18-Oct-2026 11:00:00 UTC] PHP Warning:  Undefined variable $x in /srv/htdocs/b.php on line 2\n"
    "[18-Oct-2026 12:00:00 UTC] PHP Fatal error:  Uncaught Error: boom in /srv/htdocs/a.php:3\n"
)


def invoke(config_dir, *args, input=None):
    return runner.invoke(app, ["--config-dir", str(config_dir), *args], input=input)


def patch_client(target):
    client_cls = MagicMock()
    client_cls.__name__ = target.rsplit(".", 1)[-1]
    return patch(target, client_cls)


class TestVerifyEmailAuth:
    def test_all_sites(self, config_dir):
        with patch_client("cli.commands.reports.WPCOMClient") as client_cls, patch(
            "cli.commands.reports.time.sleep"
        ) as sleep:
            wpcom = client_cls.return_value
            wpcom.list_jetpack_sites.return_value = BLOGS
            wpcom.get_site_profile_dns.side_effect = lambda domain: AUTOMATTIC_DNS if domain == "acme.com" else EXTERNAL_DNS
            wpcom.list_site_plugins.side_effect = lambda site_id: [WOOCOMMERCE] if site_id == 1 else [WP_MAIL_SMTP]

            result = invoke(config_dir, "verify-email-auth")

        assert result.exit_code == 0, result.output
        checked = [c.args[0] for c in wpcom.get_site_profile_dns.call_args_list]
        assert checked == ["acme.com", "beta.com"]
        assert "Yes ✓" in result.output
        assert "ns1.cloudflare.com" in result.output
        assert "wp-mail-smtp" in result.output
        assert sleep.call_count == 2

    def test_lookup_failure_continues(self, config_dir):
        with patch_client("cli.commands.reports.WPCOMClient") as client_cls, patch("cli.commands.reports.time.sleep"):
            wpcom = client_cls.return_value
            wpcom.list_jetpack_sites.return_value = [ACME, BETA]
            wpcom.get_site_profile_dns.side_effect = [WPCOMAPIError(500, "Server error", "site-profiler"), None]

            result = invoke(config_dir, "verify-email-auth")

        assert result.exit_code == 0, result.output
        assert "Failed to check acme.com" in result.output
        assert "Failed to fetch DNS info for beta.com" in result.output
        wpcom.list_site_plugins.assert_not_called()

    def test_single_site(self, config_dir):
        with patch_client("cli.commands.reports.WPCOMClient") as client_cls, patch(
            "cli.commands.reports.time.sleep"
        ) as sleep:
            wpcom = client_cls.return_value
            wpcom.get_site.return_value = WPCOMSite(id=42, url="https://acme.com")
            wpcom.get_site_profile_dns.return_value = AUTOMATTIC_DNS
            wpcom.list_site_plugins.return_value = None

            result = invoke(config_dir, "verify-email-auth", "--site", "acme.com")

        assert result.exit_code == 0, result.output
        wpcom.get_site_profile_dns.assert_called_once_with("acme.com")
        wpcom.list_site_plugins.assert_called_once_with(42)
        assert "Failed to fetch plugins" in result.output
        wpcom.list_jetpack_sites.assert_not_called()
        sleep.assert_not_called()


class TestPHPErrors:
    def _run(self, config_dir, log_text, *args):
        with patch_client("cli.commands.reports.PressableClient") as client_cls, patch(
            "cli.commands.reports.PressableConnection"
        ), patch("cli.commands.reports.fetch_error_log", return_value=log_text) as fetch:
            client_cls.return_value.get_site.return_value = PressableSite(id=1, name="acme-production", url="acme.com")
            result = invoke(config_dir, "php-errors", "1", *args)
        return result, fetch

    def test_empty_log(self, config_dir):
        result, fetch = self._run(config_dir, "  \n")

        assert result.exit_code == 0, result.output
        assert "appears to be empty" in result.output
        assert fetch.call_args[0][1] == "/tmp/php-errors"

    def test_raw(self, config_dir):
        result, _ = self._run(config_dir, PHP_LOG, "--format", "raw")

        assert result.exit_code == 0, result.output
        assert "Undefined variable $x" in result.output

    def test_default_groups_fatal_errors(self, config_dir):
        result, _ = self._run(config_dir, PHP_LOG)

        assert result.exit_code == 0, result.output
        assert "Error Count: 2" in result.output
        assert "Timestamp: 2026-10-18T12:00:00+00:00" in result.output
        assert "Undefined variable" not in result.output

    def test_table(self, config_dir):
        result, _ = self._run(config_dir, PHP_LOG, "--format", "table", "--limit", "5")

        assert result.exit_code == 0, result.output
        assert "The 5 most recent PHP Fatal Errors" in result.output
        assert "Error Count:" not in result.output

    def test_no_fatal_errors(self, config_dir):
        result, _ = self._run(config_dir, "[18-Oct-2026 11:00:00 UTC] PHP Warning:  Undefined in /b.php on line 2\n")

        assert result.exit_code == 0, result.output
        assert "appears to be empty" in result.output

    def test_invalid_format(self, config_dir):
        result = invoke(config_dir, "php-errors", "1", "--format", "json")

        assert result.exit_code == 1
        assert "Invalid value" in result.output


class TestPluginReports:
    def test_plugin_list(self, config_dir):
        with patch_client("cli.commands.reports.WPCOMClient") as client_cls:
            wpcom = client_cls.return_value
            wpcom.get_site.return_value = WPCOMSite(id=42, url="https://acme.com")
            wpcom.list_site_plugins.return_value = [
                SitePlugin(slug="woocommerce", text_domain="woocommerce", version="9.1", active=True),
                SitePlugin(slug="hello", name="Hello Dolly"),
            ]

            result = invoke(config_dir, "plugin-list", "acme.com")

        assert result.exit_code == 0, result.output
        assert "woocommerce" in result.output
        assert "Hello Dolly - (No slug)" in result.output
        assert "Inactive" in result.output

    def test_plugin_list_broken_connection(self, config_dir):
        with patch_client("cli.commands.reports.WPCOMClient") as client_cls:
            client_cls.return_value.get_site.return_value = WPCOMSite(id=42, url="https://acme.com")
            client_cls.return_value.list_site_plugins.return_value = None

            result = invoke(config_dir, "plugin-list", "acme.com")

        assert result.exit_code == 1
        assert "Failed to fetch the plugins" in result.output

    def test_plugin_search(self, config_dir):
        with patch_client("cli.commands.reports.WPCOMClient") as client_cls:
            wpcom = client_cls.return_value
            wpcom.list_jetpack_sites.return_value = BLOGS
            wpcom.list_site_plugins.side_effect = [
                [WOOCOMMERCE],
                None,
                WPCOMAPIError(403, "Forbidden", "plugins"),
            ]

            result = invoke(config_dir, "plugin-search", "woocommerce")

        assert result.exit_code == 0, result.output
        assert "acme.com" in result.output
        assert "Sites not checked" in result.output
        assert "beta.com" in result.output
        assert "All done!" in result.output

    def test_plugin_search_partial(self, config_dir):
        with patch_client("cli.commands.reports.WPCOMClient") as client_cls:
            wpcom = client_cls.return_value
            wpcom.list_jetpack_sites.return_value = [ACME]
            wpcom.list_site_plugins.return_value = [WOOCOMMERCE, WP_MAIL_SMTP]

            exact = invoke(config_dir, "plugin-search", "smtp")
            partial = invoke(config_dir, "plugin-search", "smtp", "--partial")

        assert "WP Mail SMTP" not in exact.output
        assert "WP Mail SMTP" in partial.output

    def test_plugin_summary_csv(self, config_dir, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        with patch_client("cli.commands.reports.WPCOMClient") as client_cls:
            wpcom = client_cls.return_value
            wpcom.list_jetpack_sites.return_value = BLOGS
            wpcom.list_account_plugins.return_value = {1: [WOOCOMMERCE], 3: [WP_MAIL_SMTP]}

            result = invoke(config_dir, "plugin-summary")

        assert result.exit_code == 0, result.output
        with (tmp_path / PLUGIN_SUMMARY_FILE).open(newline="") as f:
            rows = list(csv.reader(f))
        assert rows == [
            ["Site URL", "Blog ID", "Plugin Slug", "Active"],
            ["https://acme.com", "1", "woocommerce", "True"],
        ]

    def test_plugin_summary_full_has_versions(self, config_dir, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        with patch_client("cli.commands.reports.WPCOMClient") as client_cls:
            wpcom = client_cls.return_value
            wpcom.list_jetpack_sites.return_value = [ACME]
            wpcom.list_account_plugins.return_value = {1: [WOOCOMMERCE]}

            result = invoke(config_dir, "plugin-summary", "--full")

        assert result.exit_code == 0, result.output
        written = list(tmp_path.glob("plugins-on-t51-sites-*.csv"))
        assert len(written) == 1
        with written[0].open(newline="") as f:
            rows = list(csv.reader(f))
        assert rows[0][-1] == "Version"
        assert rows[1][-1] == "9.1"

    def test_no_production_sites(self, config_dir):
        with patch_client("cli.commands.reports.WPCOMClient") as client_cls:
            client_cls.return_value.list_jetpack_sites.return_value = [STAGING]

            result = invoke(config_dir, "plugin-summary")

        assert result.exit_code == 1
        client_cls.return_value.list_account_plugins.assert_not_called()


class TestPublicizeConnections:
    def test_writes_csv(self, config_dir, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        connection = PublicizeConnection(
            service="twitter",
            external_name="acme",
            external_profile_url="https://twitter.com/acme",
            issued="2024-01-01",
            status="ok",
            expires="0000-00-00",
        )
        with patch_client("cli.commands.reports.WPCOMClient") as client_cls:
            wpcom = client_cls.return_value
            wpcom.list_jetpack_sites.return_value = BLOGS
            wpcom.list_publicize_connections.side_effect = [[connection], WPCOMAPIError(500, "Server error", "publicize")]

            result = invoke(config_dir, "get-publicize-connections")

        assert result.exit_code == 0, result.output
        assert wpcom.list_publicize_connections.call_args_list[0].args == (1, "twitter")
        with (tmp_path / PUBLICIZE_CONNECTIONS_FILE).open(newline="") as f:
            rows = list(csv.reader(f))
        assert len(rows) == 2
        assert rows[0][3] == "Account"
        assert rows[1] == [
            "https://acme.com", "1", "twitter", "acme", "https://twitter.com/acme", "2024-01-01", "ok", "0000-00-00"
        ]


class TestStats:
    def test_wpcom_traffic(self, config_dir):
        with patch_client("cli.commands.stats.WPCOMClient") as client_cls:
            wpcom = client_cls.return_value
            wpcom.list_jetpack_sites.return_value = BLOGS
            wpcom.get_site_stats_summary.side_effect = [
                StatsSummary(views=1000, visitors=400),
                StatsSummary(views=500, visitors=100),
            ]

            result = invoke(config_dir, "stats", "wpcom-traffic", "--period", "month", "--date", "2026-09-30", "--num", "3")

        assert result.exit_code == 0, result.output
        assert wpcom.get_site_stats_summary.call_args_list[0].args == (1, "month", "2026-09-30", 3)
        assert "Total views across team sites: 1,500" in result.output
        assert "Total visitors across team sites: 500" in result.output

    def test_wpcom_traffic_invalid_period(self, config_dir):
        result = invoke(config_dir, "stats", "wpcom-traffic", "--period", "decade", "--date", "2026-09-30")

        assert result.exit_code == 1
        assert "Invalid value" in result.output

    def test_woocommerce_orders_from_account_plugins(self, config_dir):
        with patch_client("cli.commands.stats.WPCOMClient") as client_cls:
            wpcom = client_cls.return_value
            wpcom.list_jetpack_sites.return_value = BLOGS
            wpcom.list_account_plugins.return_value = {1: [WOOCOMMERCE], 2: [WP_MAIL_SMTP]}
            wpcom.get_woocommerce_order_stats.return_value = WooCommerceOrderStats(
                total_gross_sales=1234.5, total_net_sales=1000, total_orders=10, total_products=4
            )

            result = invoke(config_dir, "stats", "woocommerce-orders", "--unit", "month", "--date", "2026-09")

        assert result.exit_code == 0, result.output
        wpcom.get_woocommerce_order_stats.assert_called_once_with(1, "month", "2026-09")
        wpcom.list_site_plugins.assert_not_called()
        assert "1 sites have WooCommerce" in result.output
        assert "$1,234.50" in result.output

    def test_woocommerce_orders_checking_each_site(self, config_dir):
        with patch_client("cli.commands.stats.WPCOMClient") as client_cls:
            wpcom = client_cls.return_value
            wpcom.list_jetpack_sites.return_value = BLOGS
            wpcom.list_site_plugins.side_effect = [[WOOCOMMERCE], [WOOCOMMERCE.model_copy(update={"active": False})]]
            wpcom.get_woocommerce_order_stats.return_value = WooCommerceOrderStats()

            result = invoke(
                config_dir, "stats", "woocommerce-orders", "--unit", "day", "--date", "2026-10-18", "--check-production-sites"
            )

        assert result.exit_code == 0, result.output
        wpcom.list_account_plugins.assert_not_called()
        wpcom.get_woocommerce_order_stats.assert_called_once_with(1, "day", "2026-10-18")
        assert "$0.00" in result.output
