"""Unit tests for node validation."""

import pytest

from pagetree.core.exceptions import ValidationFailedError
from pagetree.core.models import FieldError
from pagetree.core.node_model import NodeModel
from pagetree.core.node_type import create_default_node_type_manager
from pagetree.core.storage import MemoryNodeIO
from pagetree.core.validator import GenericNodeValidator, normalize_route


@pytest.fixture
def model():
    manager = create_default_node_type_manager()
    return NodeModel(manager, MemoryNodeIO(manager), GenericNodeValidator())


@pytest.fixture
def site(model):
    site = model.create_node("site")
    site.set_name("en", "Site")
    model.set_node(site)
    return site


def create_page(model, site, name, routes=None, node_type="page"):
    page = model.create_node(node_type, site)
    page.set_name("en", name)
    for locale, route in (routes or {}).items():
        page.set_route(locale, route)
    model.set_node(page)
    return page


# ============================================================
# Routes
# ============================================================


class TestRoutes:
    def test_normalize_route(self):
        assert normalize_route("About Us/") == "/about-us"
        assert normalize_route("/news//2024/") == "/news/2024"
        assert normalize_route("/") == "/"

    def test_route_normalized_on_save(self, model, site):
        page = create_page(model, site, "About", {"en": "About Us/"})
        assert page.get_route("en") == "/about-us"

    def test_route_used_by_other_node(self, model, site):
        create_page(model, site, "About", {"en": "/about"})
        with pytest.raises(ValidationFailedError) as exc_info:
            create_page(model, site, "Other", {"en": "/about"})
        errors = exc_info.value.get_errors("route")
        assert [error.code for error in errors] == ["error.route.used.node"]
        assert errors[0].parameters["node"] == "about"

    def test_saving_same_node_again(self, model, site):
        page = create_page(model, site, "About", {"en": "/about"})
        page.set_name("en", "About us")
        model.set_node(page)

    def test_same_route_other_locale_same_base_url(self, model, site):
        create_page(model, site, "About", {"en": "/about"})
        with pytest.raises(ValidationFailedError):
            create_page(model, site, "Over", {"nl": "/about"})

    def test_same_route_other_locale_own_base_url(self, model, site):
        site.set_base_url("en", "http://example.com")
        site.set_base_url("nl", "http://example.nl")
        model.set_node(site)

        create_page(model, site, "About", {"en": "/about"})
        create_page(model, site, "Over", {"nl": "/about"})


# ============================================================
# Home nodes
# ============================================================


class TestHomeNodes:
    def test_single_home_node(self, model, site):
        create_page(model, site, "Home", node_type="home")
        with pytest.raises(ValidationFailedError) as exc_info:
            create_page(model, site, "Home 2", node_type="home")
        assert exc_info.value.get_errors("type")[0].code == "error.home.used"

    def test_root_route_reserved_for_home(self, model, site):
        create_page(model, site, "Home", node_type="home")
        with pytest.raises(ValidationFailedError) as exc_info:
            create_page(model, site, "Landing", {"en": "/"})
        assert exc_info.value.get_errors("route")[0].code == "error.route.used.home"

    def test_root_route_without_home_node(self, model, site):
        create_page(model, site, "Landing", {"en": "/"})


# ============================================================
# Publication dates and aggregation
# ============================================================


class TestPublicationDates:
    def test_invalid_date(self, model, site):
        page = model.create_node("page", site)
        page.set("publish.start", "soon")
        with pytest.raises(ValidationFailedError) as exc_info:
            model.set_node(page)
        assert exc_info.value.get_errors("publish.start")[0].code == "error.value.invalid"

    def test_stop_before_start(self, model, site):
        page = model.create_node("page", site)
        page.set("publish.start", "2024-02-01 00:00:00")
        page.set("publish.stop", "2024-01-01 00:00:00")
        with pytest.raises(ValidationFailedError) as exc_info:
            model.set_node(page)
        assert exc_info.value.get_errors("publish.stop")[0].code == "error.date.publish.negative"

    def test_errors_of_node_type_are_aggregated(self, model, site):
        home = model.create_node("home", site)
        home.set("publish.start", "soon")
        home.set("home.en.1.node", "summer")
        home.set("home.en.1.stop", "later")
        with pytest.raises(ValidationFailedError) as exc_info:
            model.set_node(home)
        assert exc_info.value.has_errors()
        assert set(exc_info.value.errors) == {"publish.start", "home.en.1.stop"}

    def test_invalid_node_is_not_written(self, model, site):
        page = model.create_node("page", site)
        page.set("publish.start", "soon")
        with pytest.raises(ValidationFailedError):
            model.set_node(page)
        assert page.id is None
        assert set(model.get_nodes("site", "draft")) == {"site"}


class TestFieldError:
    def test_message_parameters(self):
        error = FieldError(code="x", message="Route '%route%' used by %node%", parameters={"route": "/a", "node": "b"})
        assert str(error) == "Route '/a' used by b"

    def test_validation_error_message(self):
        exception = ValidationFailedError()
        exception.add_errors("route", [FieldError(code="x", message="broken")])
        assert "route: broken" in str(exception)
