"""Unit tests for the typed nodes."""

from datetime import datetime

import pytest

from pagetree.core.exceptions import CmsError, NodeNotFoundError
from pagetree.core.models import HomePage
from pagetree.core.nodes import HomeNode, PageNode, RedirectNode, ReferenceNode, SiteNode


class FakeNodeModel:
    """Minimal node lookup for home page resolution."""

    def __init__(self, nodes):
        self.nodes = nodes

    def get_node(self, site_id, revision, node_id):
        if node_id not in self.nodes:
            raise NodeNotFoundError(node_id)
        return self.nodes[node_id]


@pytest.fixture
def site():
    site = SiteNode()
    site.id = "site"
    return site


# ============================================================
# SiteNode
# ============================================================


class TestSiteNode:
    def test_defaults(self, site):
        assert site.get("publish") == "1"
        assert site.get("security") == "everybody"
        assert site.is_auto_publish() is False
        assert site.get_property("autopublish").inherit is True

    def test_route(self, site):
        assert site.get_route("en") == "/"
        assert site.is_homepage("en") is False

    def test_localization_method(self, site):
        assert site.is_localization_method_copy()
        site.set_localization_method(SiteNode.LOCALIZATION_METHOD_UNIQUE)
        assert site.is_localization_method_unique()
        with pytest.raises(CmsError):
            site.set_localization_method("invalid")

    def test_base_urls(self, site):
        site.set_base_url("en", "http://example.com")
        site.set_base_url("nl", "http://example.nl")
        assert site.get_locale_for_base_url("http://example.nl") == "nl"
        assert site.get_locale_for_base_url("http://other.org") is None
        assert site.has_localized_base_url()

    def test_shared_base_url_is_not_localized(self, site):
        site.set_base_url("en", "http://example.com")
        site.set_base_url("nl", "http://example.com")
        assert not site.has_localized_base_url()

    def test_route_prefix_proposal(self, site):
        assert site.get_route_prefix_proposal(["en"], "en") == ""
        assert site.get_route_prefix_proposal(["en", "nl"], "nl") == "/nl"
        site.set_base_url("en", "http://example.com")
        site.set_base_url("nl", "http://example.nl")
        assert site.get_route_prefix_proposal(["en", "nl"], "nl") == ""

    def test_auto_publish(self, site):
        site.set_auto_publish(True)
        assert site.is_auto_publish()

    def test_create_widget(self, site):
        assert site.create_widget("text") == "1"
        assert site.create_widget("image") == "2"
        assert site.get_available_widgets() == {"1": "text", "2": "image"}

    def test_create_widget_with_offset(self, site):
        site.widget_id_offset = 1000
        assert site.create_widget("text") == "1001"

    def test_widget_properties_not_listed_as_instances(self, site):
        widget_id = site.create_widget("text")
        site.set(f"widget.{widget_id}.title", "Hello")
        assert site.get_available_widgets() == {widget_id: "text"}

    def test_revisions(self, site):
        site.revisions = ["draft", "master"]
        assert site.has_revision("draft")
        assert not site.has_revision("archive")


# ============================================================
# PageNode and RedirectNode
# ============================================================


class TestPageNode:
    def test_layout(self):
        page = PageNode()
        page.set_layout("en", "two-columns")
        assert page.get_layout("en") == "two-columns"
        assert page.get_layout("nl") is None
        assert page.type == "page"

    def test_custom_type_name(self):
        assert PageNode("article").type == "article"


class TestRedirectNode:
    def test_redirects(self):
        redirect = RedirectNode()
        redirect.set_redirect_url("en", "https://example.com")
        redirect.set_redirect_node("nl", "contact")
        assert redirect.get_redirect_url("en") == "https://example.com"
        assert redirect.get_redirect_node("nl") == "contact"
        assert redirect.get_redirect_node("en") is None


# ============================================================
# ReferenceNode
# ============================================================


class TestReferenceNode:
    @pytest.fixture
    def reference(self, site):
        target = PageNode()
        target.id = "about"
        target.parent_node = site
        target.set_name("en", "About")
        target.set_route("en", "/about")
        target.set_description("en", "All about us")

        reference = ReferenceNode()
        reference.id = "ref"
        reference.parent_node = site
        reference.set_reference_node("about")
        reference.referenced_node = target
        return reference, target

    def test_delegates_name_and_route(self, reference):
        reference, _ = reference
        assert reference.get_reference_node() == "about"
        assert reference.get_name("en") == "About"
        assert reference.get_description("en") == "All about us"
        assert reference.get_route("en") == "/about"
        assert reference.get_routes() == {"en": "/about"}

    def test_local_name_wins(self, reference):
        reference, _ = reference
        reference.set_name("en", "Who we are")
        assert reference.get_name("en") == "Who we are"

    def test_same_name_is_not_stored(self, reference):
        reference, _ = reference
        reference.set_name("en", "About")
        assert "name.en" not in reference.properties

    def test_without_referenced_node(self):
        reference = ReferenceNode()
        reference.id = "ref"
        assert reference.get_route("en") == "/nodes/ref/en"
        assert reference.get_name("en") is None


# ============================================================
# HomeNode
# ============================================================


class TestHomeNode:
    @pytest.fixture
    def home(self, site):
        home = HomeNode()
        home.id = "home"
        home.parent_node = site
        return home

    def test_route_is_fixed(self, home):
        home.set_route("en", "/welcome")
        assert home.get_route("en") == "/"
        assert home.is_homepage("en")
        assert "route.en" not in home.properties

    def test_home_pages_round_trip(self, home):
        pages = [
            HomePage(node_id="summer", date_start=datetime(2024, 6, 1), date_stop=datetime(2024, 9, 1)),
            HomePage(node_id="winter", date_start=datetime(2024, 12, 1)),
        ]
        home.set_home_pages("en", pages)
        assert home.get("home.en.1.node") == "summer"
        assert home.get("home.en.1.start") == "2024-06-01 00:00:00"
        assert home.get_home_pages("en") == pages

    def test_set_home_pages_replaces_previous(self, home):
        home.set_default_home_page("en", "welcome")
        home.set_home_pages("en", [HomePage(node_id="a"), HomePage(node_id="b")])
        home.set_home_pages("en", [HomePage(node_id="c")])
        assert [page.node_id for page in home.get_home_pages("en")] == ["c"]
        assert home.get_default_home_page("en") == "welcome"

    def test_set_home_pages_requires_home_page_instances(self, home):
        with pytest.raises(CmsError):
            home.set_home_pages("en", ["summer"])

    def test_home_page_resolution(self, home):
        summer = PageNode()
        summer.id = "summer"
        welcome = PageNode()
        welcome.id = "welcome"
        model = FakeNodeModel({"summer": summer, "welcome": welcome})

        home.set_default_home_page("en", "welcome")
        home.set_home_pages(
            "en",
            [HomePage(node_id="summer", date_start=datetime(2024, 6, 1), date_stop=datetime(2024, 9, 1))],
        )

        assert home.get_home_page(model, "en", datetime(2024, 7, 1)) is summer
        assert home.get_home_page(model, "en", datetime(2024, 10, 1)) is welcome
        assert home.get_home_page(model, "nl", datetime(2024, 7, 1)) is None

    def test_missing_scheduled_page_is_skipped(self, home):
        welcome = PageNode()
        welcome.id = "welcome"
        model = FakeNodeModel({"welcome": welcome})

        home.set_home_pages(
            "en",
            [
                HomePage(node_id="gone", date_start=datetime(2024, 1, 1)),
                HomePage(node_id="welcome", date_start=datetime(2024, 1, 1)),
            ],
        )
        assert home.get_home_page(model, "en", datetime(2024, 2, 1)) is welcome


class TestHomePage:
    def test_without_dates_is_inactive(self):
        assert not HomePage(node_id="a").is_active(datetime(2024, 1, 1))

    def test_window(self):
        page = HomePage(node_id="a", date_start=datetime(2024, 1, 1), date_stop=datetime(2024, 2, 1))
        assert page.is_active(datetime(2024, 1, 15))
        assert not page.is_active(datetime(2024, 2, 1))
        assert not page.is_active(datetime(2023, 12, 31))
