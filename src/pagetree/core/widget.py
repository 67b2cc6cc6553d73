"""Scoped access to the properties of a widget instance on a node."""

from datetime import datetime
from typing import TYPE_CHECKING, Any

from pagetree.core.models import is_publish_window_open
from pagetree.core.security import SECURITY_EVERYBODY, SecurityManager, is_security_allowed

if TYPE_CHECKING:
    from pagetree.core.node import Node

PROPERTY_PUBLISH = "publish"
PROPERTY_PUBLISH_START = "publish.start"
PROPERTY_PUBLISH_STOP = "publish.stop"
PROPERTY_SECURITY = "security"


class NodeWidgetProperties:
    """Properties of a widget instance, stored as ``widget.<id>.*`` on a node."""

    def __init__(self, node: "Node", widget_id: str | int):
        self.node = node
        self.widget_id = str(widget_id)
        self.prefix = f"widget.{self.widget_id}."

    def get(self, key: str, default: Any = None) -> Any:
        return self.node.get(self.prefix + key, default)

    def set(self, key: str, value: Any = None) -> None:
        self.node.set(self.prefix + key, value)

    def get_all(self, prefix: str = "") -> dict[str, str]:
        """Get all properties of the widget, keyed without the widget prefix."""
        properties = self.node.get_properties(self.prefix + prefix)
        return {
            key[len(self.prefix) :]: prop.value for key, prop in properties.items()
        }

    def clear(self, prefix: str = "") -> None:
        """Remove all local properties of the widget starting with prefix."""
        full_prefix = self.prefix + prefix
        for key in [key for key in self.node.properties if key.startswith(full_prefix)]:
            del self.node.properties[key]

    def get_localized(self, locale: str, key: str, default: Any = None) -> Any:
        return self.node.get_localized(locale, self.prefix + key, default)

    def set_localized(self, locale: str, key: str, value: Any) -> None:
        self.node.set_localized(locale, self.prefix + key, value)

    def is_published(self, now: datetime | None = None) -> bool:
        return is_publish_window_open(
            self.get(PROPERTY_PUBLISH, "1"),
            self.get(PROPERTY_PUBLISH_START),
            self.get(PROPERTY_PUBLISH_STOP),
            now,
        )

    def is_allowed(self, security_manager: SecurityManager) -> bool:
        security = self.get(PROPERTY_SECURITY, SECURITY_EVERYBODY)
        return is_security_allowed(security, security_manager)
