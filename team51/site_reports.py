"""
Helpers for the reports run across every Jetpack site of the account:
plugin inventories, traffic and WooCommerce order stats.
"""

from datetime import datetime
from typing import Iterable, List, Optional, Sequence, Tuple

from team51.pyd_models.wpcom_models import JetpackBlog, SitePlugin, StatsSummary, WooCommerceOrderStats

PRODUCTION_DENY_LIST = ("mystagingwebsite.com", "go-vip.co", "wpcomstaging.com", "wpengine.com", "jurassic.ninja")
FULL_DUMP_DENY_LIST = PRODUCTION_DENY_LIST + ("woocommerce.com", "atomicsites.blog")

STATS_PERIODS = ("day", "week", "month", "year")

PLUGIN_SUMMARY_FILE = "plugins-on-t51-sites.csv"
PUBLICIZE_CONNECTIONS_FILE = "sites-with-twitter-connections.csv"


def filter_production_sites(blogs: Iterable[JetpackBlog], deny_list: Sequence[str] = PRODUCTION_DENY_LIST) -> List[JetpackBlog]:
    """Drop staging and third-party hosted sites."""
    return [blog for blog in blogs if not any(denied in blog.siteurl for denied in deny_list)]


def plugin_matches(plugin: SitePlugin, query: str, partial: bool = False) -> bool:
    """
    Match a plugin against a slug, ignoring case.

    An exact search compares the slug with the text domain, the plugin
    folder and the main file name (without .php). A partial search looks
    for the query inside those and the plugin name.
    """
    query = query.lower()
    file_name = plugin.file.rsplit("/", 1)[-1]
    if file_name.endswith(".php"):
        file_name = file_name[: -len(".php")]
    candidates = [(plugin.text_domain or "").lower(), plugin.slug.lower(), file_name.lower()]

    if partial:
        candidates.append((plugin.name or "").lower())
        return any(query in candidate for candidate in candidates if candidate)
    return query in candidates


def plugin_status(plugin: SitePlugin) -> str:
    return "Active" if plugin.active else "Inactive"


def plugin_list_rows(plugins: Iterable[SitePlugin]) -> List[Tuple[str, str, str]]:
    rows = [
        (plugin.text_domain or f"{plugin.name} - (No slug)", plugin_status(plugin), plugin.version or "")
        for plugin in plugins
    ]
    return sorted(rows)


def plugin_summary_file_name(full: bool, now: Optional[datetime] = None) -> str:
    if not full:
        return PLUGIN_SUMMARY_FILE
    now = now or datetime.now()
    return f"plugins-on-t51-sites-{now:%Y-%m-%d-%H-%M-%S}.csv"


def format_money(value: float) -> str:
    return f"${value:,.2f}"


def traffic_rows(stats: Iterable[Tuple[JetpackBlog, StatsSummary]]) -> List[Tuple[str, int, str, str]]:
    """Table rows for the traffic report, most viewed first."""
    ordered = sorted(stats, key=lambda item: item[1].views, reverse=True)
    return [(blog.siteurl, blog.userblog_id, f"{summary.views:,}", f"{summary.visitors:,}") for blog, summary in ordered]


def has_orders(stats: Optional[WooCommerceOrderStats]) -> bool:
    return stats is not None and stats.total_gross_sales > 0 and stats.total_orders > 0


def order_rows(stats: Iterable[Tuple[JetpackBlog, WooCommerceOrderStats]]) -> List[Tuple[str, int, str, str, int, int]]:
    """Table rows for the WooCommerce report, highest gross sales first."""
    ordered = sorted(stats, key=lambda item: item[1].total_gross_sales, reverse=True)
    return [
        (
            blog.siteurl,
            blog.userblog_id,
            format_money(order_stats.total_gross_sales),
            format_money(order_stats.total_net_sales),
            order_stats.total_orders,
            order_stats.total_products,
        )
        for blog, order_stats in ordered
    ]
