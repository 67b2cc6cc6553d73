"""Node entity: a vertex of the content tree with an inheritable property bag.

Hierarchical settings are stored as flat properties with dotted keys, for
example ``name.en``, ``route.en``, ``widgets.content`` or ``widget.4.title``.
A property flagged with ``inherit`` is visible to the descendants of the
node as long as every node in between passes it on.
"""

import weakref
from datetime import datetime
from typing import Any

from pagetree.core.exceptions import (
    InvalidKeyError,
    NewNodeHasNoRootError,
    OrderingMismatchError,
    WidgetNotFoundError,
)
from pagetree.core.models import (
    INHERIT_PREFIX,
    NodeProperty,
    is_publish_window_open,
    join_list,
    split_list,
    to_bool,
    to_value,
)
from pagetree.core.security import SECURITY_EVERYBODY, SecurityManager, is_security_allowed
from pagetree.core.widget import NodeWidgetProperties

# Separator of the node ids in a materialized path
PATH_SEPARATOR = "-"

# Value for the available locales when a node is available in all locales
LOCALES_ALL = "all"

PROPERTY_DESCRIPTION = "description"
PROPERTY_HIDE_ANONYMOUS = "hide.anonymous"
PROPERTY_HIDE_AUTHENTICATED = "hide.authenticated"
PROPERTY_HIDE_BREADCRUMBS = "hide.breadcrumbs"
PROPERTY_HIDE_MENU = "hide.menu"
PROPERTY_IMAGE = "image"
PROPERTY_LOCALES = "locales"
PROPERTY_META = "meta"
PROPERTY_NAME = "name"
PROPERTY_PUBLISH = "publish"
PROPERTY_PUBLISH_START = "publish.start"
PROPERTY_PUBLISH_STOP = "publish.stop"
PROPERTY_ROUTE = "route"
PROPERTY_SECURITY = "security"
PROPERTY_THEME = "theme"
PROPERTY_WIDGET = "widget"
PROPERTY_WIDGETS = "widgets"


class Node:
    """A node of the content tree.

    The parent link is a weak reference: a node never owns its parent. Nodes
    loaded by a storage adapter share a reference to the loaded tree so their
    ancestors stay available for inherited lookups.
    """

    def __init__(self, node_type: str, default_inherit: bool = False):
        self.type = node_type
        self.id: str | None = None
        self.parent_path = ""
        self.order_index: int | None = None
        self.revision: str | None = None
        self.date_modified: datetime | None = None
        self.default_inherit = default_inherit
        self.properties: dict[str, NodeProperty] = {}
        self.children: dict[str, "Node"] | None = None
        self.context: dict[str, Any] = {}
        self._parent_ref: weakref.ref | None = None
        self._tree: dict[str, "Node"] | None = None

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.type}:{self.get_path() or '(new)'}>"

    def __str__(self) -> str:
        return self.get_path() or ""

    # ------------------------------------------------------------------
    # Tree position
    # ------------------------------------------------------------------

    @property
    def parent_node(self) -> "Node | None":
        if self._parent_ref is None:
            return None
        return self._parent_ref()

    @parent_node.setter
    def parent_node(self, node: "Node | None") -> None:
        if node is None:
            self._parent_ref = None
            return

        self._parent_ref = weakref.ref(node)
        self.parent_path = node.get_path() or ""
        if node._tree is not None:
            self._tree = node._tree

    def attach_tree(self, tree: dict[str, "Node"]) -> None:
        """Keep the loaded tree alive as long as this node is referenced."""
        self._tree = tree

    def get_path(self) -> str | None:
        """Materialized path of this node: the parent path and the id."""
        if not self.parent_path:
            return self.id
        return f"{self.parent_path}{PATH_SEPARATOR}{self.id or ''}"

    def get_global_id(self) -> str:
        return f"{self.get_root_node_id()}{PATH_SEPARATOR}{self.id}"

    @staticmethod
    def parse_global_id(global_id: str) -> tuple[str, str]:
        """Split a global id into the site id and the node id."""
        site_id, _, node_id = global_id.partition(PATH_SEPARATOR)
        return site_id, node_id or site_id

    def get_root_node_id(self) -> str:
        if not self.id and not self.parent_path:
            raise NewNodeHasNoRootError(
                "Could not get root node id: this is a new node so it has no root node"
            )

        if not self.parent_path:
            return self.id

        return self.parent_path.split(PATH_SEPARATOR)[0]

    def get_parent_node_id(self) -> str | None:
        if not self.parent_path:
            if not self.id:
                raise NewNodeHasNoRootError(
                    "Could not get the parent node: this is a new node so it has no parent node"
                )
            return None

        return self.parent_path.split(PATH_SEPARATOR)[-1]

    def has_parent(self, node_id: str | None = None) -> bool:
        """Check if this node has a parent, or the provided node as an ancestor."""
        if not node_id:
            return bool(self.parent_path)
        if not self.parent_path:
            return False
        return node_id in self.parent_path.split(PATH_SEPARATOR)

    def get_level(self) -> int:
        if not self.parent_path:
            return 0
        return self.parent_path.count(PATH_SEPARATOR) + 1

    def get_root_node(self) -> "Node | None":
        if self.id and self.id == self.get_root_node_id():
            return self

        root = None
        parent = self.parent_node
        while parent is not None:
            root = parent
            parent = parent.parent_node

        return root

    def get_child_by_route(self, route: str, locales: list[str]) -> tuple["Node | None", str | None]:
        """Find the loaded descendant with the longest route matching route.

        Returns (node, locale) or (None, None).
        """
        found: tuple[Node | None, str | None, int] = (None, None, -1)

        for child in (self.children or {}).values():
            for locale in locales:
                child_route = child.get_route(locale)
                if not child_route or len(child_route) <= found[2]:
                    continue
                if route == child_route or route.startswith(child_route.rstrip("/") + "/"):
                    found = (child, locale, len(child_route))

            node, locale = child.get_child_by_route(route, locales)
            if node is not None:
                length = len(node.get_route(locale))
                if length > found[2]:
                    found = (node, locale, length)

        return found[0], found[1]

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @staticmethod
    def _check_key(key: Any) -> None:
        if not isinstance(key, str) or key == "":
            raise InvalidKeyError(key)

    def set_property(self, prop: NodeProperty) -> None:
        self.properties[prop.key] = prop

    def get_property(self, key: str) -> NodeProperty | None:
        self._check_key(key)
        return self.properties.get(key)

    def set_properties(self, properties: dict[str, NodeProperty]) -> None:
        self.properties = {}
        for prop in properties.values():
            self.set_property(prop)

    def get_properties(
        self,
        prefix: str | None = None,
        inherited: bool = False,
        require_inherit: bool = False,
    ) -> dict[str, NodeProperty]:
        """Get the properties, optionally filtered on a key prefix.

        With inherited, the inheritable properties of the ancestors are added
        for keys which are not set on this node.
        """
        properties = {}
        blocked = set()
        for key, prop in self.properties.items():
            if prefix and not key.startswith(prefix):
                continue
            if require_inherit and not prop.inherit:
                blocked.add(key)
                continue
            properties[key] = prop

        parent = self.parent_node
        if inherited and parent is not None:
            for key, prop in parent.get_properties(prefix, True, True).items():
                if key not in properties and key not in blocked:
                    properties[key] = prop

        return properties

    def set(self, key: str, value: Any, inherit: bool | None = None) -> None:
        """Set a property.

        Args:
            key: Key of the property. A key starting with the inherit prefix
                flags the property as inherited when inherit is not provided.
            value: Value of the property. An empty value removes the local
                property, or clears an inherited one by storing an empty
                override.
            inherit: Whether descendants inherit the property. None keeps the
                flag of an existing property and uses the default of the node
                for a new one.
        """
        self._check_key(key)

        if inherit is None and len(key) > len(INHERIT_PREFIX) and key.startswith(INHERIT_PREFIX):
            key = key[len(INHERIT_PREFIX) :]
            inherit = True

        value = to_value(value)
        prop = self.properties.get(key)

        if value == "":
            if prop is not None:
                del self.properties[key]
            else:
                parent = self.parent_node
                if parent is not None and parent.get(key, None, True, True) is not None:
                    self.properties[key] = NodeProperty(
                        key=key,
                        value="",
                        inherit=self.default_inherit if inherit is None else inherit,
                    )
            return

        if prop is not None:
            prop.value = value
            if inherit:
                prop.inherit = True
            return

        self.properties[key] = NodeProperty(
            key=key,
            value=value,
            inherit=self.default_inherit if inherit is None else inherit,
        )

    def get(
        self,
        key: str,
        default: Any = None,
        inherited: bool = True,
        require_inherit: bool = False,
    ) -> Any:
        """Get a property value.

        A local value wins. When require_inherit is set, which is the case for
        every ancestor lookup, a local value only counts when it is flagged to
        inherit; a local value without the flag ends the lookup with default.
        An empty override resolves to default as well.
        """
        self._check_key(key)

        prop = self.properties.get(key)
        if prop is not None:
            if require_inherit and not prop.inherit:
                return default
            return prop.value if prop.value != "" else default

        parent = self.parent_node
        if inherited and parent is not None:
            return parent.get(key, default, True, True)

        return default

    def get_localized(self, locale: str, key: str, default: Any = None) -> Any:
        """Get the locale specific value of key, falling back to key itself."""
        self._check_key(key)

        properties = self.get_properties(key, True)
        localized = properties.get(f"{key}.{locale}")
        if localized is not None and localized.value:
            return localized.value

        general = properties.get(key)
        if general is not None and general.value:
            return general.value

        return default

    def set_localized(self, locale: str, key: str, value: Any) -> None:
        properties = self.get_properties(key, True)

        localized = properties.get(f"{key}.{locale}")
        general = properties.get(key)
        if localized is not None:
            if localized.value == value:
                return
        elif general is not None and general.value == value:
            return

        if not properties:
            self.set(key, value)
        else:
            self.set(f"{key}.{locale}", value)

    def _get_contextualized(
        self,
        key: str,
        context: str | None = None,
        locale: str | None = None,
        default: Any = None,
    ) -> Any:
        suffix = f".{context}" if context else ""

        if locale:
            value = self.get(f"{key}.{locale}{suffix}")
            if value:
                return value

            if context:
                value = self.get(f"{key}.{locale}")
                if value:
                    return value

        for property_key, prop in self.properties.items():
            if not prop.value:
                continue
            if property_key == key + suffix or (
                property_key.startswith(key + ".") and (not context or suffix in property_key)
            ):
                return prop.value

        if context:
            return self._get_contextualized(key, default=default)

        return default

    # ------------------------------------------------------------------
    # Names, routes and urls
    # ------------------------------------------------------------------

    def set_name(self, locale: str, name: str | None, context: str | None = None) -> None:
        suffix = f".{context}" if context else ""
        self.set(f"{PROPERTY_NAME}.{locale}{suffix}", name, False)

    def get_name(self, locale: str | None = None, context: str | None = None) -> str | None:
        return self._get_contextualized(PROPERTY_NAME, context, locale)

    def set_description(self, locale: str, description: str | None, context: str | None = None) -> None:
        suffix = f".{context}" if context else ""
        self.set(f"{PROPERTY_DESCRIPTION}.{locale}{suffix}", description, False)

    def get_description(self, locale: str | None = None, context: str | None = None) -> str | None:
        return self._get_contextualized(PROPERTY_DESCRIPTION, context, locale)

    def set_image(self, locale: str, image: str | None) -> None:
        self.set_localized(locale, PROPERTY_IMAGE, image)

    def get_image(self, locale: str) -> str | None:
        return self.get_localized(locale, PROPERTY_IMAGE)

    def is_homepage(self, locale: str) -> bool:
        return self.get_route(locale) == "/"

    def set_route(self, locale: str, route: str | None) -> None:
        self.set(f"{PROPERTY_ROUTE}.{locale}", route, False)

    def get_route(self, locale: str, return_default: bool = True) -> str | None:
        """Get the route for a locale, or the generated /nodes/<id>/<locale>."""
        route = self.get(f"{PROPERTY_ROUTE}.{locale}")
        if not route and self.id and return_default:
            route = f"/nodes/{self.id}/{locale}"
        return route

    def get_routes(self) -> dict[str, str]:
        """Get the explicitly set routes of this node, keyed by locale."""
        prefix = PROPERTY_ROUTE + "."
        return {
            key[len(prefix) :]: prop.value
            for key, prop in self.properties.items()
            if key.startswith(prefix) and prop.value
        }

    def get_url(self, locale: str, base_url: str) -> str:
        """Get the absolute url, preferring the base url of the site."""
        url = None
        if self.id or self.parent_path:
            root = self.get_root_node()
            get_base_url = getattr(root, "get_base_url", None)
            if get_base_url is not None:
                url = get_base_url(locale)

        return (url or base_url or "") + (self.get_route(locale) or "")

    def get_urls(self, base_url: str) -> dict[str, str]:
        return {locale: self.get_url(locale, base_url) for locale in self.get_routes()}

    def resolve_url(self, locale: str, base_url: str, url: str) -> str:
        """Make a url in the content of this node absolute.

        Anchors, mailto links, absolute and protocol relative urls are
        returned as is. ./ and ../ are resolved against the url of this node,
        other urls against the base url.
        """
        if not url or url.startswith(("#", "mailto:", "http:", "https:", "//")):
            return url

        if url.startswith("./"):
            node_url = self.get_url(locale, base_url).rstrip("/")
            return node_url + url[1:]

        if url.startswith("../"):
            node_url = self.get_url(locale, base_url).rstrip("/")
            while url.startswith("../"):
                position = node_url.rfind("/")
                if position == -1:
                    break
                node_url = node_url[:position]
                url = url[3:]
            return f"{node_url}/{url}"

        return f"{base_url}/{url.lstrip('/')}"

    # ------------------------------------------------------------------
    # Presentation and publication
    # ------------------------------------------------------------------

    def set_theme(self, theme: str | None) -> None:
        self.set(PROPERTY_THEME, theme)

    def get_theme(self) -> str | None:
        return self.get(PROPERTY_THEME)

    def set_hide_in_breadcrumbs(self, flag: bool, inherit: bool | None = None) -> None:
        self.set(PROPERTY_HIDE_BREADCRUMBS, bool(flag), inherit)

    def hide_in_breadcrumbs(self) -> bool:
        return to_bool(self.get(PROPERTY_HIDE_BREADCRUMBS))

    def set_hide_in_menu(self, flag: bool, inherit: bool | None = None) -> None:
        self.set(PROPERTY_HIDE_MENU, bool(flag), inherit)

    def hide_in_menu(self) -> bool:
        return to_bool(self.get(PROPERTY_HIDE_MENU))

    def set_hide_for_anonymous_users(self, flag: bool, inherit: bool | None = None) -> None:
        self.set(PROPERTY_HIDE_ANONYMOUS, bool(flag), inherit)

    def hide_for_anonymous_users(self) -> bool:
        return to_bool(self.get(PROPERTY_HIDE_ANONYMOUS))

    def set_hide_for_authenticated_users(self, flag: bool, inherit: bool | None = None) -> None:
        self.set(PROPERTY_HIDE_AUTHENTICATED, bool(flag), inherit)

    def hide_for_authenticated_users(self) -> bool:
        return to_bool(self.get(PROPERTY_HIDE_AUTHENTICATED))

    def is_published(self, now: datetime | None = None) -> bool:
        """Check the publish flag and the publication window of this node."""
        return is_publish_window_open(
            self.get(PROPERTY_PUBLISH, False),
            self.get(PROPERTY_PUBLISH_START),
            self.get(PROPERTY_PUBLISH_STOP),
            now,
        )

    def set_available_locales(self, locales: str | list[str] | None) -> None:
        if isinstance(locales, (list, tuple, set)):
            if not locales or LOCALES_ALL in locales:
                locales = LOCALES_ALL
            else:
                locales = join_list(list(locales))
        self.set(PROPERTY_LOCALES, locales)

    def get_available_locales(self) -> str | list[str]:
        """Get the locales of this node, or "all"."""
        locales = self.get(PROPERTY_LOCALES)
        if not locales or locales == LOCALES_ALL:
            return LOCALES_ALL
        return split_list(locales)

    def is_available_in_locale(self, locale: str | None) -> bool:
        locales = self.get_available_locales()
        return locales == LOCALES_ALL or locale in locales

    def set_security(self, security: str | None, inherit: bool | None = None) -> None:
        self.set(PROPERTY_SECURITY, security, inherit)

    def get_security(self) -> str | None:
        """Get the security setting. Returns None when everybody has access."""
        security = self.get(PROPERTY_SECURITY, SECURITY_EVERYBODY)
        if not security or security == SECURITY_EVERYBODY:
            return None
        return security

    def is_allowed(self, security_manager: SecurityManager) -> bool:
        return is_security_allowed(self.get_security(), security_manager)

    # ------------------------------------------------------------------
    # Meta and runtime context
    # ------------------------------------------------------------------

    def set_meta(self, locale: str, name: str | dict[str, Any], value: Any = None) -> None:
        """Set a meta value, or replace all meta of the locale with a dict."""
        prefix = f"{PROPERTY_META}.{locale}."
        if isinstance(name, dict):
            for key in [key for key in self.properties if key.startswith(prefix)]:
                del self.properties[key]
            for meta_name, content in name.items():
                self.set(prefix + meta_name, content)
        else:
            self.set(prefix + name, value)

    def get_meta(self, locale: str, name: str | None = None, inherited: bool = False) -> Any:
        prefix = f"{PROPERTY_META}.{locale}."
        if name:
            return self.get(prefix + name, None, inherited)

        parent = self.parent_node
        meta = parent.get_meta(locale, None, True) if inherited and parent is not None else {}
        for key, prop in self.properties.items():
            if key.startswith(prefix):
                meta[key[len(prefix) :]] = prop.value

        return meta

    def set_context(self, name: str | dict[str, Any], value: Any = None) -> None:
        """Set a runtime value, never persisted. Dotted names create nested dicts."""
        if isinstance(name, dict):
            for key, context_value in name.items():
                self.set_context(key, context_value)
            return

        data = self.context
        *tokens, data_key = name.split(".")
        for token in tokens:
            if not isinstance(data.get(token), dict):
                data[token] = {}
            data = data[token]

        if value is None:
            data.pop(data_key, None)
        else:
            data[data_key] = value

    def get_context(self, name: str | None = None, default: Any = None) -> Any:
        if name is None:
            return self.context

        result: Any = self.context
        for token in name.split("."):
            if not isinstance(result, dict) or result.get(token) is None:
                return default
            result = result[token]

        return result

    # ------------------------------------------------------------------
    # Widgets
    # ------------------------------------------------------------------

    def get_widget_properties(self, widget_id: str | int) -> NodeWidgetProperties:
        return NodeWidgetProperties(self, widget_id)

    def get_widget(self, widget_id: str | int) -> str:
        """Get the widget type of a widget instance."""
        widget = self.get(f"{PROPERTY_WIDGET}.{widget_id}")
        if not widget:
            raise WidgetNotFoundError(
                str(widget_id), f"Could not get widget {widget_id}: widget not found"
            )
        return widget

    def get_widget_ids(self, region: str) -> list[str]:
        """Get the ordered widget instance ids of a region."""
        return split_list(self.get(f"{PROPERTY_WIDGETS}.{region}"))

    def get_widgets(self, region: str) -> dict[str, str | None]:
        """Get the widgets of a region: instance id to widget type."""
        return {
            widget_id: self.get(f"{PROPERTY_WIDGET}.{widget_id}")
            for widget_id in self.get_widget_ids(region)
        }

    def get_inherited_widgets(self, region: str) -> dict[str, str]:
        """Get the widget ids this node inherits for a region from its parent."""
        parent = self.parent_node
        if parent is None:
            return {}

        value = parent.get(f"{PROPERTY_WIDGETS}.{region}", None, True, True)
        return {widget_id: widget_id for widget_id in split_list(value)}

    def get_used_widgets(self) -> list[str]:
        """Get the widget instance ids placed in any region of this node."""
        widgets: list[str] = []
        prefix = PROPERTY_WIDGETS + "."
        for key, prop in self.properties.items():
            if not key.startswith(prefix):
                continue
            for widget_id in split_list(prop.value):
                if widget_id not in widgets:
                    widgets.append(widget_id)
        return widgets

    def add_widget(self, region: str, widget_id: str | int) -> None:
        """Append a widget instance to a region. Adding a present id does nothing."""
        widget_id = str(widget_id)
        widget_ids = self.get_widget_ids(region)
        if widget_id in widget_ids:
            return

        widget_ids.append(widget_id)
        self.set(f"{PROPERTY_WIDGETS}.{region}", join_list(widget_ids))

    def delete_widget(self, region: str, widget_id: str | int) -> None:
        """Remove a widget instance from a region and purge its properties."""
        widget_id = str(widget_id)
        widget_ids = self.get_widget_ids(region)
        if widget_id not in widget_ids:
            raise WidgetNotFoundError(
                widget_id,
                f"Could not delete widget with id {widget_id}: widget not found in region {region}",
            )

        widget_ids.remove(widget_id)
        self.get_widget_properties(widget_id).clear()
        self.set(f"{PROPERTY_WIDGETS}.{region}", join_list(widget_ids))

    def order_widgets(self, region: str, widgets: str | list[str | int]) -> None:
        """Store a new order for the widgets of a region.

        The new order must be a permutation of the current widgets.
        """
        if isinstance(widgets, str):
            new_order = split_list(widgets)
        else:
            new_order = [str(widget_id).strip() for widget_id in widgets]

        current = self.get_widget_ids(region)

        unknown = [widget_id for widget_id in new_order if widget_id not in current]
        duplicates = sorted(
            {widget_id for widget_id in new_order if new_order.count(widget_id) > 1}
        )
        missing = [widget_id for widget_id in current if widget_id not in new_order]

        if unknown or duplicates or missing:
            problems = []
            if unknown:
                problems.append(f"widget(s) {', '.join(unknown)} not set to region {region}")
            if duplicates:
                problems.append(f"widget(s) {', '.join(duplicates)} provided more than once")
            if missing:
                problems.append(
                    f"widget(s) {', '.join(missing)} not found in the new widget order"
                )
            raise OrderingMismatchError(
                "Could not order widgets: " + "; ".join(problems),
                unknown + duplicates + missing,
            )

        self.set(f"{PROPERTY_WIDGETS}.{region}", join_list(new_order))
