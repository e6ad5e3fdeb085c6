"""
Traffic and WooCommerce statistics across the team's production sites.
"""

import typer
from rich.progress import track

from cli.commands.reports import list_production_blogs
from cli.output import command_errors, connect, console, make_table, site_errors
from team51.clients.wpcom_client import WPCOMClient
from team51.site_reports import STATS_PERIODS, format_money, has_orders, order_rows, plugin_matches, traffic_rows
from team51.utils import validate_enum

app = typer.Typer(help="📈 Site statistics", add_completion=False)

WOOCOMMERCE_SLUG = "woocommerce"


@app.command("wpcom-traffic")
def wpcom_traffic(
    period: str = typer.Option(..., "--period", help="day, week, month or year"),
    date: str = typer.Option(..., "--date", help="Last day of the period, YYYY-MM-DD"),
    num: int = typer.Option(1, "--num", help="Number of periods to include"),
):
    """
    Views and visitors of every production site.

    Example:
        team51 stats wpcom-traffic --period month --date 2026-09-30 --num 3
    """
    with command_errors("Invalid input"):
        period = validate_enum(period, STATS_PERIODS, "period")

    wpcom = connect(WPCOMClient)
    console.print(f"Checking for stats for team sites during the {num} {period} period ending {date}")
    blogs = list_production_blogs(wpcom)

    stats = []
    for blog in track(blogs, description="Fetching site stats", console=console):
        with site_errors(f"Failed to fetch the stats of {blog.siteurl}"):
            summary = wpcom.get_site_stats_summary(blog.userblog_id, period, date, num)
            if summary is not None:
                stats.append((blog, summary))

    console.print(
        make_table(
            f"Site stats during the {num} {period} period ending {date}",
            ["Site URL", "Blog ID", "Total Views", "Total Visitors"],
            traffic_rows(stats),
        )
    )
    console.print(f"Total views across team sites: {sum(summary.views for _, summary in stats):,}")
    console.print(f"Total visitors across team sites: {sum(summary.visitors for _, summary in stats):,}")


@app.command("woocommerce-orders")
def woocommerce_orders(
    unit: str = typer.Option(..., "--unit", help="day, week, month or year"),
    date: str = typer.Option(..., "--date", help="YYYY-MM-DD, YYYY-W##, YYYY-MM or YYYY"),
    check_production_sites: bool = typer.Option(
        False,
        "--check-production-sites",
        help="Ask every site for its plugins instead of using the account's plugin list. Much slower.",
    ),
):
    """
    WooCommerce order totals of the production sites running WooCommerce.

    Examples:
        team51 stats woocommerce-orders --unit month --date 2026-09
        team51 stats woocommerce-orders --unit day --date 2026-10-18 --check-production-sites
    """
    with command_errors("Invalid input"):
        unit = validate_enum(unit, STATS_PERIODS, "unit")

    wpcom = connect(WPCOMClient)
    blogs = list_production_blogs(wpcom)

    console.print("Checking each site for WooCommerce...")
    shops = []
    if check_production_sites:
        for blog in track(blogs, description="Checking production sites", console=console):
            with site_errors(f"Failed to fetch the plugins of {blog.siteurl}"):
                plugins = wpcom.list_site_plugins(blog.userblog_id) or []
                if any(plugin.active and plugin_matches(plugin, WOOCOMMERCE_SLUG) for plugin in plugins):
                    shops.append(blog)
    else:
        with command_errors("Failed to fetch the plugins"):
            account_plugins = wpcom.list_account_plugins()
        shops = [
            blog
            for blog in blogs
            if any(
                plugin.slug == WOOCOMMERCE_SLUG and plugin.active
                for plugin in account_plugins.get(blog.userblog_id, [])
            )
        ]
    console.print(f"{len(shops)} sites have WooCommerce installed and active.")

    stats = []
    for blog in track(shops, description="Fetching WooCommerce stats", console=console):
        with site_errors(f"Failed to fetch the orders of {blog.siteurl}"):
            order_stats = wpcom.get_woocommerce_order_stats(blog.userblog_id, unit, date)
            if has_orders(order_stats):
                stats.append((blog, order_stats))

    console.print(
        make_table(
            f"Site stats for the selected time period: {unit} {date}",
            ["Site URL", "Blog ID", "Total Gross Sales", "Total Net Sales", "Total Orders", "Total Products"],
            order_rows(stats),
        )
    )
    total = sum(order_stats.total_gross_sales for _, order_stats in stats)
    console.print(f"Total Gross Sales across team sites in {unit} {date}: {format_money(total)}")
