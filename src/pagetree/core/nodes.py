"""Typed nodes: sites, pages, redirects, references and home nodes."""

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from pagetree.core.exceptions import CmsError, NodeNotFoundError
from pagetree.core.models import HomePage, format_date, parse_date, to_bool
from pagetree.core.node import (
    PROPERTY_PUBLISH,
    PROPERTY_SECURITY,
    PROPERTY_WIDGET,
    Node,
)
from pagetree.core.security import SECURITY_EVERYBODY

if TYPE_CHECKING:
    from pagetree.core.node_model import NodeModel

logger = logging.getLogger(__name__)


class SiteNode(Node):
    """Root node of a site.

    Holds the site wide settings: revisions, localization method, base urls
    per locale, auto publishing and the registry of widget instances
    (``widget.<id>`` = widget type).
    """

    TYPE_NAME = "site"

    LOCALIZATION_METHOD_COPY = "copy"
    LOCALIZATION_METHOD_UNIQUE = "unique"

    PROPERTY_AUTO_PUBLISH = "autopublish"
    PROPERTY_BASE_URL = "url"
    PROPERTY_LOCALIZATION_METHOD = "l10n"

    def __init__(self):
        super().__init__(self.TYPE_NAME, default_inherit=True)
        self.revisions: list[str] = []
        self.widget_id_offset = 0

        self.set(self.PROPERTY_AUTO_PUBLISH, "0", True)
        self.set(PROPERTY_PUBLISH, "1", True)
        self.set(PROPERTY_SECURITY, SECURITY_EVERYBODY, True)

    def set_localization_method(self, method: str | None) -> None:
        if method not in (None, self.LOCALIZATION_METHOD_COPY, self.LOCALIZATION_METHOD_UNIQUE):
            raise CmsError(
                f"Could not set the localization method: {method} is not "
                f"{self.LOCALIZATION_METHOD_COPY} or {self.LOCALIZATION_METHOD_UNIQUE}"
            )
        self.set(self.PROPERTY_LOCALIZATION_METHOD, method)

    def get_localization_method(self) -> str:
        return self.get(self.PROPERTY_LOCALIZATION_METHOD, self.LOCALIZATION_METHOD_COPY)

    def is_localization_method_copy(self) -> bool:
        return self.get_localization_method() == self.LOCALIZATION_METHOD_COPY

    def is_localization_method_unique(self) -> bool:
        return self.get_localization_method() == self.LOCALIZATION_METHOD_UNIQUE

    def set_base_url(self, locale: str, url: str | None) -> None:
        self.set(f"{self.PROPERTY_BASE_URL}.{locale}", url)

    def get_base_url(self, locale: str) -> str | None:
        return self.get(f"{self.PROPERTY_BASE_URL}.{locale}")

    def _get_base_urls(self) -> dict[str, str]:
        prefix = self.PROPERTY_BASE_URL + "."
        return {
            key[len(prefix) :]: prop.value
            for key, prop in self.get_properties(prefix).items()
            if prop.value
        }

    def get_locale_for_base_url(self, base_url: str) -> str | None:
        """Get the locale whose base url matches. Returns None if not found."""
        for locale, url in self._get_base_urls().items():
            if url == base_url:
                return locale
        return None

    def has_localized_base_url(self) -> bool:
        """Check whether the locales of this site use different base urls."""
        return len(set(self._get_base_urls().values())) > 1

    def get_route_prefix_proposal(self, locales: list[str], locale: str) -> str:
        """Propose a route prefix for a locale.

        No prefix is needed for a single locale site or when the locale has a
        base url of its own.
        """
        if len(locales) == 1:
            return ""

        base_urls = self._get_base_urls()
        base_url = base_urls.get(locale)
        if base_url and list(base_urls.values()).count(base_url) == 1:
            return ""

        return "/" + locale

    def has_revision(self, revision: str) -> bool:
        return revision in self.revisions

    def set_auto_publish(self, auto_publish: bool) -> None:
        self.set(self.PROPERTY_AUTO_PUBLISH, bool(auto_publish))

    def is_auto_publish(self) -> bool:
        return to_bool(self.get(self.PROPERTY_AUTO_PUBLISH))

    def create_widget(self, widget_type: str) -> str:
        """Register a new widget instance and return its id."""
        instance_id = self.widget_id_offset
        while True:
            instance_id += 1
            if f"{PROPERTY_WIDGET}.{instance_id}" not in self.properties:
                break

        self.set(f"{PROPERTY_WIDGET}.{instance_id}", widget_type, True)
        logger.debug("Created widget %d (%s) on site %s", instance_id, widget_type, self.id)

        return str(instance_id)

    def get_available_widgets(self) -> dict[str, str]:
        """Get the registered widget instances: instance id to widget type."""
        prefix = PROPERTY_WIDGET + "."
        return {
            key[len(prefix) :]: prop.value
            for key, prop in self.properties.items()
            if key.startswith(prefix) and key.count(".") == 1 and prop.value
        }

    def get_route(self, locale: str, return_default: bool = True) -> str:
        return "/"

    def is_homepage(self, locale: str) -> bool:
        return False


class PageNode(Node):
    """Regular content page with a layout per locale."""

    TYPE_NAME = "page"

    PROPERTY_LAYOUT = "layout"

    def __init__(self, node_type: str | None = None):
        super().__init__(node_type or self.TYPE_NAME, default_inherit=False)

    def set_layout(self, locale: str, layout: str | None) -> None:
        self.set(f"{self.PROPERTY_LAYOUT}.{locale}", layout)

    def get_layout(self, locale: str) -> str | None:
        return self.get(f"{self.PROPERTY_LAYOUT}.{locale}")


class RedirectNode(Node):
    """Node redirecting to a url or another node, per locale."""

    TYPE_NAME = "redirect"

    PROPERTY_NODE = "redirect.node"
    PROPERTY_URL = "redirect.url"

    def __init__(self):
        super().__init__(self.TYPE_NAME, default_inherit=True)

    def set_redirect_url(self, locale: str, url: str | None) -> None:
        self.set(f"{self.PROPERTY_URL}.{locale}", url, False)

    def get_redirect_url(self, locale: str) -> str | None:
        return self.get(f"{self.PROPERTY_URL}.{locale}")

    def set_redirect_node(self, locale: str, node_id: str | None) -> None:
        self.set(f"{self.PROPERTY_NODE}.{locale}", node_id, False)

    def get_redirect_node(self, locale: str) -> str | None:
        return self.get(f"{self.PROPERTY_NODE}.{locale}")


class ReferenceNode(Node):
    """Node proxying another node of the site.

    Name, description, image and routes fall back to the referenced node
    when they are not set locally. The referenced node instance is resolved
    at runtime and never persisted.
    """

    TYPE_NAME = "reference"

    PROPERTY_NODE = "reference.node"

    def __init__(self):
        super().__init__(self.TYPE_NAME, default_inherit=True)
        self.referenced_node: Node | None = None

    def set_reference_node(self, node_id: str | None) -> None:
        self.set(self.PROPERTY_NODE, node_id)

    def get_reference_node(self) -> str | None:
        return self.get(self.PROPERTY_NODE)

    def get_name(self, locale: str | None = None, context: str | None = None) -> str | None:
        name = super().get_name(locale, context)
        if name or self.referenced_node is None:
            return name
        return self.referenced_node.get_name(locale, context)

    def set_name(self, locale: str, name: str | None, context: str | None = None) -> None:
        if self.get_name(locale, context) == name:
            return
        super().set_name(locale, name, context)

    def get_description(self, locale: str | None = None, context: str | None = None) -> str | None:
        description = super().get_description(locale, context)
        if description or self.referenced_node is None:
            return description
        return self.referenced_node.get_description(locale, context)

    def get_image(self, locale: str) -> str | None:
        image = super().get_image(locale)
        if image or self.referenced_node is None:
            return image
        return self.referenced_node.get_image(locale)

    def get_route(self, locale: str, return_default: bool = True) -> str | None:
        if self.referenced_node is None:
            return super().get_route(locale, return_default)
        return self.referenced_node.get_route(locale, return_default)

    def get_routes(self) -> dict[str, str]:
        if self.referenced_node is None:
            return super().get_routes()
        return self.referenced_node.get_routes()


class HomeNode(Node):
    """Home page of a site: a default page per locale and scheduled pages.

    Scheduled pages are stored as ``home.<locale>.<n>.node``,
    ``home.<locale>.<n>.start`` and ``home.<locale>.<n>.stop``.
    """

    TYPE_NAME = "home"

    PROPERTY_HOME = "home"
    PROPERTY_DEFAULT = "default"
    PROPERTY_HOME_NODE = "node"
    PROPERTY_HOME_START = "start"
    PROPERTY_HOME_STOP = "stop"

    def __init__(self):
        super().__init__(self.TYPE_NAME, default_inherit=True)

    def set_route(self, locale: str, route: str | None) -> None:
        # the route of a home node is always /
        return

    def get_route(self, locale: str, return_default: bool = True) -> str:
        return "/"

    def set_default_home_page(self, locale: str, node_id: str | None) -> None:
        self.set(f"{self.PROPERTY_HOME}.{locale}.{self.PROPERTY_DEFAULT}", node_id)

    def get_default_home_page(self, locale: str) -> str | None:
        return self.get(f"{self.PROPERTY_HOME}.{locale}.{self.PROPERTY_DEFAULT}")

    def set_home_pages(self, locale: str, home_pages: list[HomePage]) -> None:
        """Replace the scheduled home pages of a locale."""
        prefix = f"{self.PROPERTY_HOME}.{locale}."

        for index, home_page in enumerate(home_pages):
            if not isinstance(home_page, HomePage):
                raise CmsError(
                    f"Could not set the home pages: non HomePage instance found on index {index}"
                )

        for key in list(self.get_properties(prefix)):
            if key != prefix + self.PROPERTY_DEFAULT:
                self.set(key, None)

        for index, home_page in enumerate(home_pages, 1):
            home_page_prefix = f"{prefix}{index}."
            self.set(home_page_prefix + self.PROPERTY_HOME_NODE, home_page.node_id)
            if home_page.date_start:
                self.set(home_page_prefix + self.PROPERTY_HOME_START, format_date(home_page.date_start))
            if home_page.date_stop:
                self.set(home_page_prefix + self.PROPERTY_HOME_STOP, format_date(home_page.date_stop))

    def get_home_page_properties(self, locale: str) -> dict[str, dict[str, str]]:
        """Get the raw scheduled home page values, keyed by their index."""
        prefix = f"{self.PROPERTY_HOME}.{locale}."
        home_pages: dict[str, dict[str, str]] = {}

        for key, prop in self.get_properties(prefix).items():
            key = key[len(prefix) :]
            if key == self.PROPERTY_DEFAULT or "." not in key:
                continue
            index, home_property = key.split(".", 1)
            home_pages.setdefault(index, {})[home_property] = prop.value

        return home_pages

    def get_home_pages(self, locale: str) -> list[HomePage]:
        """Get the scheduled home pages of a locale in their stored order."""
        home_pages = []

        properties = self.get_home_page_properties(locale)
        for index in sorted(properties, key=lambda value: (not value.isdigit(), value.zfill(10))):
            values = properties[index]
            if not values.get(self.PROPERTY_HOME_NODE):
                continue
            home_pages.append(
                HomePage(
                    node_id=values[self.PROPERTY_HOME_NODE],
                    date_start=parse_date(values.get(self.PROPERTY_HOME_START)),
                    date_stop=parse_date(values.get(self.PROPERTY_HOME_STOP)),
                )
            )

        return home_pages

    def get_home_page(
        self,
        node_model: "NodeModel",
        locale: str,
        time: datetime | None = None,
    ) -> Node | None:
        """Resolve the home page to show at time.

        The first active scheduled page which exists wins, the default page
        of the locale is used when none is active.
        """
        node_ids = [
            home_page.node_id
            for home_page in self.get_home_pages(locale)
            if home_page.is_active(time)
        ]
        if not node_ids:
            default = self.get_default_home_page(locale)
            if not default:
                return None
            node_ids = [default]

        for node_id in node_ids:
            try:
                return node_model.get_node(self.get_root_node_id(), self.revision, node_id)
            except NodeNotFoundError:
                logger.warning("Home page %s of node %s not found", node_id, self.id)

        return None
