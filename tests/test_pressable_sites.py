"""Tests for site lookups and the related-sites tree."""

from unittest.mock import MagicMock

from team51.pressable_sites import (
    build_related_sites_tree,
    default_collaborator_roles,
    deployhq_permalink_for_site,
    find_main_dev_node,
    find_production_site,
    flatten_tree,
    render_sites_tree,
    resolve_site,
)
from team51.pyd_models.pressable_models import PressableSite

PRODUCTION = PressableSite(id=1, name="acme-production", url="acme.com")
DEVELOPMENT = PressableSite(id=2, name="acme-development", url="acme-development.mystagingwebsite.com", cloned_from_id=1)
HOTFIX = PressableSite(id=3, name="acme-hotfix", url="acme-hotfix.mystagingwebsite.com", cloned_from_id=1)
NESTED = PressableSite(id=4, name="acme-development-1700000000", url="acme-nested.mystagingwebsite.com", cloned_from_id=2)
UNRELATED = PressableSite(id=5, name="other-production", url="other.com")

ALL_SITES = [PRODUCTION, DEVELOPMENT, HOTFIX, NESTED, UNRELATED]


def sites_client():
    client = MagicMock()
    by_id = {site.id: site for site in ALL_SITES}
    client.get_site.side_effect = by_id.get
    return client


def test_build_related_sites_tree():
    tree = build_related_sites_tree(PRODUCTION, ALL_SITES)

    assert {level: sorted(nodes) for level, nodes in tree.items()} == {0: [1], 1: [2, 3], 2: [4]}
    assert not tree[0][1].temporary
    assert not tree[1][2].temporary
    assert tree[1][3].temporary
    assert tree[2][4].temporary


def test_find_main_dev_node_and_flatten():
    tree = build_related_sites_tree(PRODUCTION, ALL_SITES)

    assert find_main_dev_node(tree).site.id == 2
    assert [site.id for site in flatten_tree(tree)] == [1, 2, 3, 4]


def test_tree_without_clones():
    tree = build_related_sites_tree(UNRELATED, ALL_SITES)

    assert list(tree) == [0]
    assert find_main_dev_node(tree) is None


def test_resolve_site_by_id():
    client = sites_client()

    assert resolve_site(client, "3") == HOTFIX
    client.get_site.assert_called_once_with(3)


def test_resolve_site_by_url_falls_back_to_suffix_match():
    client = MagicMock()
    client.get_site_by_url.side_effect = [None, PRODUCTION]

    assert resolve_site(client, "https://acme.com/wp-admin") == PRODUCTION
    client.get_site_by_url.assert_called_with("acme.com", exact=False)


def test_find_production_site_climbs_the_clone_chain():
    assert find_production_site(sites_client(), NESTED) == PRODUCTION


def test_find_production_site_stops_at_deleted_parent():
    orphan = PressableSite(id=9, name="orphan-development", cloned_from_id=99)

    assert find_production_site(sites_client(), orphan) == orphan


def test_deployhq_permalink_for_site():
    client = sites_client()

    assert deployhq_permalink_for_site(client, PRODUCTION) == "acme"
    assert deployhq_permalink_for_site(client, NESTED) == "acme"
    assert deployhq_permalink_for_site(client, HOTFIX) == "acme"
    assert deployhq_permalink_for_site(client, None) is None


def test_deployhq_permalink_from_display_name():
    site = PressableSite(id=10, name="acme-hotfix", display_name="acme-development-hotfix")

    assert deployhq_permalink_for_site(MagicMock(), site) == "acme"


def test_default_collaborator_roles():
    assert "wp_access" not in default_collaborator_roles(PRODUCTION)
    assert "wp_access" in default_collaborator_roles(DEVELOPMENT)
    assert "wp_access" in default_collaborator_roles(PressableSite(id=11, name="x", staging=True))


def test_render_sites_tree():
    tree = build_related_sites_tree(PRODUCTION, ALL_SITES)
    tree[0][1].new_password = "secret"

    table = render_sites_tree(tree, include_passwords=True)

    assert table.row_count == 4
    assert [column.header for column in table.columns][-1] == "New password"
