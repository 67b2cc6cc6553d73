"""Unit tests for the expired routes."""

import logging

import pytest
import yaml

from pagetree.core.expired import ExpiredRouteModel, MemoryExpiredRouteIO, YamlExpiredRouteIO
from pagetree.core.models import ExpiredRoute
from pagetree.core.node_type import create_default_node_type_manager
from pagetree.core.storage import MemoryNodeIO, YamlNodeIO


class CountingExpiredRouteIO(MemoryExpiredRouteIO):
    def __init__(self):
        super().__init__()
        self.reads = 0

    def get_expired_routes(self, site_id):
        self.reads += 1
        return super().get_expired_routes(site_id)


@pytest.fixture
def expired():
    return ExpiredRouteModel(MemoryExpiredRouteIO())


@pytest.fixture
def io(expired):
    return MemoryNodeIO(create_default_node_type_manager(), expired_route_model=expired)


def save(io, node_type, name, parent=None, route=None, revision="master"):
    node = io.node_type_manager.get_node_type(node_type).create_node()
    node.revision = revision
    if parent is not None:
        node.parent_node = parent
    node.set_name("en", name)
    if route:
        node.set_route("en", route)
    io.set_node(node)
    return node


def route(path, node="about", locale="en", base_url=None):
    return ExpiredRoute(node=node, locale=locale, path=path, base_url=base_url)


# ============================================================
# Model
# ============================================================


class TestExpiredRouteModel:
    def test_add_ignores_duplicates(self, expired):
        expired.add_expired_route("site", "about", "en", "/about")
        expired.add_expired_route("site", "about", "en", "/about")
        expired.add_expired_route("site", "about", "nl", "/over", "http://example.nl")

        assert expired.get_expired_routes("site") == [
            route("/about"),
            route("/over", locale="nl", base_url="http://example.nl"),
        ]
        assert expired.get_expired_routes("other") == []

    def test_remove_by_path(self, expired):
        expired.add_expired_route("site", "about", "en", "/about")
        expired.add_expired_route("site", "team", "en", "/about")
        expired.add_expired_route("site", "team", "en", "/team")

        expired.remove_expired_routes_by_path("site", "/about")
        assert expired.get_expired_routes("site") == [route("/team", node="team")]

    def test_remove_by_node(self, expired):
        expired.add_expired_route("site", "about", "en", "/about")
        expired.add_expired_route("site", "team", "en", "/team")
        expired.add_expired_route("site", "contact", "en", "/contact")

        expired.remove_expired_routes_by_node("site", "about")
        expired.remove_expired_routes_by_node("site", ["team", "ghost"])
        assert expired.get_expired_routes("site") == [route("/contact", node="contact")]

    def test_routes_are_read_once(self):
        io = CountingExpiredRouteIO()
        expired = ExpiredRouteModel(io)

        expired.get_expired_routes("site")
        expired.add_expired_route("site", "about", "en", "/about")
        assert expired.get_expired_routes("site") == [route("/about")]
        assert io.reads == 1
        assert io.routes["site"] == [route("/about")]


# ============================================================
# Storage
# ============================================================


class TestYamlExpiredRouteIO:
    def test_file_layout(self, tmp_path):
        io = YamlExpiredRouteIO(tmp_path)
        io.set_expired_routes("site", [route("/about"), route("/over", locale="nl", base_url="http://example.nl")])

        data = yaml.safe_load((tmp_path / "site" / "expired.yaml").read_text())
        assert data == [
            {"node": "about", "locale": "en", "path": "/about"},
            {"node": "about", "locale": "nl", "path": "/over", "base": "http://example.nl"},
        ]
        assert YamlExpiredRouteIO(tmp_path).get_expired_routes("site") == [
            route("/about"),
            route("/over", locale="nl", base_url="http://example.nl"),
        ]

    def test_missing_file(self, tmp_path):
        assert YamlExpiredRouteIO(tmp_path).get_expired_routes("site") == []

    def test_invalid_entries_are_skipped(self, tmp_path, caplog):
        (tmp_path / "site").mkdir()
        (tmp_path / "site" / "expired.yaml").write_text(
            "- node: about\n  locale: en\n  path: /about\n- node: team\n- plain\n", encoding="utf-8"
        )

        with caplog.at_level(logging.WARNING):
            routes = YamlExpiredRouteIO(tmp_path).get_expired_routes("site")
        assert routes == [route("/about")]
        assert "invalid expired route" in caplog.text

    def test_file_is_not_a_revision(self, tmp_path):
        manager = create_default_node_type_manager()
        io = YamlNodeIO(tmp_path, manager, expired_route_model=ExpiredRouteModel(YamlExpiredRouteIO(tmp_path)))
        site = save(io, "site", "Site")
        page = save(io, "page", "About", site, "/about")
        page.set_route("en", "/company")
        io.set_node(page)

        assert (tmp_path / "site" / "expired.yaml").exists()
        assert io.get_site("site", "master").revisions == ["master"]


# ============================================================
# Node storage
# ============================================================


class TestRouteChanges:
    def test_changed_route_expires(self, io, expired):
        site = save(io, "site", "Site")
        page = save(io, "page", "About", site, "/about")

        page.set_route("en", "/company")
        io.set_node(page)
        assert expired.get_expired_routes("site") == [route("/about")]

    def test_removed_route_expires(self, io, expired):
        site = save(io, "site", "Site")
        page = save(io, "page", "About", site, "/about")

        page.set_route("en", None)
        io.set_node(page)
        assert expired.get_expired_routes("site") == [route("/about")]

    def test_reused_route_is_live_again(self, io, expired):
        site = save(io, "site", "Site")
        page = save(io, "page", "About", site, "/about")
        page.set_route("en", "/company")
        io.set_node(page)

        page.set_route("en", "/about")
        io.set_node(page)
        assert expired.get_expired_routes("site") == [route("/company")]

    def test_base_url_of_site(self, io, expired):
        site = save(io, "site", "Site")
        site.set_base_url("en", "http://example.com")
        io.set_node(site)
        page = save(io, "page", "About", site, "/about")

        page.set_route("en", "/company")
        io.set_node(page)
        assert expired.get_expired_routes("site") == [route("/about", base_url="http://example.com")]

    def test_draft_changes_do_not_expire(self, io, expired):
        site = save(io, "site", "Site", revision="draft")
        page = save(io, "page", "About", site, "/about", revision="draft")

        page.set_route("en", "/company")
        io.set_node(page)
        assert expired.get_expired_routes("site") == []

    def test_without_expired_route_model(self):
        io = MemoryNodeIO(create_default_node_type_manager())
        site = save(io, "site", "Site")
        page = save(io, "page", "About", site, "/about")

        page.set_route("en", "/company")
        io.set_node(page)
        assert io.get_node("site", "master", "about").get_route("en") == "/company"


class TestPublish:
    @pytest.fixture
    def site(self, io):
        site = save(io, "site", "Site", revision="draft")
        save(io, "page", "About", site, "/about", revision="draft")
        io.publish(io.get_site("site", "draft"), "master")
        return site

    def test_publish_expires_old_route(self, io, expired, site):
        page = io.get_node("site", "draft", "about")
        page.set_route("en", "/company")
        io.set_node(page)
        assert expired.get_expired_routes("site") == []

        io.publish(io.get_node("site", "draft", "about"), "master")
        assert expired.get_expired_routes("site") == [route("/about")]
        assert io.get_node("site", "master", "about").get_route("en") == "/company"

    def test_publish_unchanged_route(self, io, expired, site):
        page = io.get_node("site", "draft", "about")
        page.set_name("en", "Company")
        io.set_node(page)

        io.publish(io.get_node("site", "draft", "about"), "master")
        assert expired.get_expired_routes("site") == []

    def test_publish_removes_routes_of_deleted_nodes(self, io, expired, site):
        page = io.get_node("site", "draft", "about")
        page.set_route("en", "/company")
        io.set_node(page)
        io.publish(io.get_node("site", "draft", "about"), "master")

        io.remove_node(io.get_node("site", "draft", "about"))
        deleted = io.publish(io.get_site("site", "draft"), "master")

        assert set(deleted) == {"about"}
        assert expired.get_expired_routes("site") == []
