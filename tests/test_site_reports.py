"""Tests for the report helpers: site filters, plugin matching, email auth and DevQueue due dates."""

from datetime import date, datetime

from team51.devqueue import (
    NO_DUE_DATE,
    TRIAGE_STATUS,
    how_long,
    item_has_status,
    parse_due_date,
    triage_issue_from_item,
    urgent_issues,
)
from team51.email_auth import NAMESERVER_NOT_FOUND, check_nameservers, find_smtp_plugin, is_ignored_domain
from team51.pyd_models.github_models import GitHubIssue, GitHubLabel
from team51.pyd_models.wpcom_models import JetpackBlog, SitePlugin, StatsSummary, WooCommerceOrderStats
from team51.site_reports import (
    FULL_DUMP_DENY_LIST,
    PLUGIN_SUMMARY_FILE,
    filter_production_sites,
    has_orders,
    order_rows,
    plugin_list_rows,
    plugin_matches,
    plugin_summary_file_name,
    traffic_rows,
)

TODAY = date(2026, 10, 19)


def blog(blog_id, url):
    return JetpackBlog(userblog_id=blog_id, siteurl=url)


def test_filter_production_sites():
    blogs = [
        blog(1, "https://acme.com"),
        blog(2, "https://acme.mystagingwebsite.com"),
        blog(3, "https://shop.woocommerce.com"),
    ]

    assert [b.userblog_id for b in filter_production_sites(blogs)] == [1, 3]
    assert [b.userblog_id for b in filter_production_sites(blogs, FULL_DUMP_DENY_LIST)] == [1]


def test_plugin_matches_exact_and_partial():
    plugin = SitePlugin(slug="akismet", file="akismet/akismet.php", name="Akismet Anti-spam", text_domain="akismet")
    renamed = SitePlugin(slug="custom-dir", file="custom-dir/wordpress-seo.php", name="Yoast SEO")

    assert plugin_matches(plugin, "Akismet")
    assert not plugin_matches(plugin, "akis")
    assert plugin_matches(plugin, "anti-spam", partial=True)
    assert plugin_matches(renamed, "wordpress-seo")


def test_plugin_list_rows_are_sorted():
    rows = plugin_list_rows(
        [
            SitePlugin(slug="z", text_domain="zeta", version="1.0", active=True),
            SitePlugin(slug="a", name="Alpha"),
        ]
    )

    assert rows == [("Alpha - (No slug)", "Inactive", ""), ("zeta", "Active", "1.0")]


def test_plugin_summary_file_name():
    assert plugin_summary_file_name(False) == PLUGIN_SUMMARY_FILE
    assert plugin_summary_file_name(True, datetime(2026, 10, 19, 8, 5, 0)) == "plugins-on-t51-sites-2026-10-19-08-05-00.csv"


def test_traffic_and_order_rows_are_ranked():
    small, big = blog(1, "https://small.com"), blog(2, "https://big.com")

    traffic = traffic_rows([(small, StatsSummary(views=10, visitors=5)), (big, StatsSummary(views=12000, visitors=3000))])
    assert traffic[0] == ("https://big.com", 2, "12,000", "3,000")

    orders = order_rows(
        [
            (small, WooCommerceOrderStats(total_gross_sales=10, total_net_sales=9, total_orders=1, total_products=1)),
            (big, WooCommerceOrderStats(total_gross_sales=2500.5, total_net_sales=2000, total_orders=7, total_products=3)),
        ]
    )
    assert orders[0] == ("https://big.com", 2, "$2,500.50", "$2,000.00", 7, 3)


def test_has_orders():
    assert has_orders(WooCommerceOrderStats(total_gross_sales=5, total_orders=1))
    assert not has_orders(WooCommerceOrderStats(total_gross_sales=5, total_orders=0))
    assert not has_orders(None)


def test_check_nameservers():
    assert check_nameservers([{"type": "NS", "target": "NS1.WordPress.com"}]) == (True, "NS1.WordPress.com")
    assert check_nameservers(
        [{"type": "NS", "target": "a.dns.example"}, {"type": "NS", "target": "b.dns.example"}]
    ) == (False, "b.dns.example")
    assert check_nameservers([{"type": "A", "target": "1.2.3.4"}]) == (False, NAMESERVER_NOT_FOUND)


def test_find_smtp_plugin():
    assert find_smtp_plugin([SitePlugin(slug="akismet"), SitePlugin(slug="mailpoet")]) == "mailpoet"
    assert find_smtp_plugin([SitePlugin(slug="my-smtp-relay")]) == "my-smtp-relay"
    assert find_smtp_plugin([SitePlugin(slug="akismet")]) is None


def test_is_ignored_domain():
    assert is_ignored_domain("acme-staging.mystagingwebsite.com")
    assert is_ignored_domain("acme.wordpress.com")
    assert not is_ignored_domain("acme.com")


def test_parse_due_date_formats():
    assert parse_due_date("2026-10-20") == date(2026, 10, 20)
    assert parse_due_date("10/20/2026") == date(2026, 10, 20)
    assert parse_due_date("October 20, 2026") == date(2026, 10, 20)
    assert parse_due_date("next week") is None


def test_how_long():
    assert how_long(NO_DUE_DATE) == "No Due Date Specified"
    assert how_long(-1) == "Due YESTERDAY!"
    assert how_long(-5) == "Overdue by 5 days"
    assert how_long(0) == "Due TODAY"
    assert how_long(1) == "Due Tomorrow"
    assert how_long(4) == "Due in 4 days"


def test_triage_issue_from_item():
    item = {
        "fieldValues": {"nodes": [{"name": TRIAGE_STATUS}, {"date": "2026-10-18"}, {}]},
        "content": {
            "number": 12,
            "title": "Fix checkout",
            "url": "https://github.com/a8cteam51/devqueue/issues/12",
            "labels": {"nodes": [{"name": "bug"}]},
        },
    }

    issue = triage_issue_from_item(item, TODAY)

    assert item_has_status(item, TRIAGE_STATUS)
    assert issue.due_in == -1
    assert issue.is_late
    assert issue.markdown(with_labels=True) == (
        "* 12: *bug* [Fix checkout](https://github.com/a8cteam51/devqueue/issues/12) (Due YESTERDAY!)"
    )
    assert triage_issue_from_item({"content": {"title": "Draft note"}}) is None


def test_urgent_issues_reads_due_date_labels():
    def issue(number, *labels):
        return GitHubIssue(
            number=number,
            title=f"Issue {number}",
            labels=[GitHubLabel(name=label, color="ffffff") for label in labels],
        )

    issues = [
        issue(1, "[DUE DATE] 2026-10-21"),
        issue(2, "[Due Date] 2026-10-19", "bug"),
        issue(3, "[DUE DATE] 2026-11-30"),
        issue(4, "bug"),
        issue(5, "[DUE DATE] someday"),
    ]

    assert [(i.number, i.due_in) for i in urgent_issues(issues, TODAY)] == [(2, 0), (1, 2)]
