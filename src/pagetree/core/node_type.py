"""Node types and their registry.

A node type maps a stable type name to a factory for the matching node
class and declares its default inherit policy.
"""

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from pagetree.core.exceptions import CmsError, UnknownNodeTypeError, ValidationFailedError
from pagetree.core.node import Node
from pagetree.core.nodes import HomeNode, PageNode, RedirectNode, ReferenceNode, SiteNode
from pagetree.core.validator import NodeValidator, validate_date_range

if TYPE_CHECKING:
    from pagetree.core.node_model import NodeModel

logger = logging.getLogger(__name__)


class NodeType(ABC):
    """Abstract base class for a node type."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Machine name of the type, stored with every node."""
        ...

    @property
    def frontend_callback(self) -> str | None:
        """Name of the frontend handler. None when the type is not rendered."""
        return None

    @property
    def default_inherit(self) -> bool:
        return True

    @abstractmethod
    def create_node(self) -> Node:
        """Create a new node of this type."""
        ...


class GenericNodeType(NodeType):
    """Node type for plain nodes identified by name only."""

    def __init__(self, name: str, default_inherit: bool = True, frontend_callback: str | None = None):
        self._name = name
        self._default_inherit = default_inherit
        self._frontend_callback = frontend_callback

    @property
    def name(self) -> str:
        return self._name

    @property
    def frontend_callback(self) -> str | None:
        return self._frontend_callback

    @property
    def default_inherit(self) -> bool:
        return self._default_inherit

    def create_node(self) -> Node:
        return Node(self.name, self.default_inherit)


class SiteNodeType(NodeType):
    """Type of the root nodes. New sites get the default theme, if any."""

    def __init__(self, default_theme: str | None = None):
        self.default_theme = default_theme

    @property
    def default_theme(self) -> str | None:
        return self._default_theme

    @default_theme.setter
    def default_theme(self, default_theme: str | None) -> None:
        if default_theme is not None and (not isinstance(default_theme, str) or default_theme == ""):
            raise CmsError("Could not set the default theme: invalid argument provided")
        self._default_theme = default_theme

    @property
    def name(self) -> str:
        return SiteNode.TYPE_NAME

    def create_node(self) -> SiteNode:
        site = SiteNode()
        if self.default_theme:
            site.set_theme(self.default_theme)
        return site


class PageNodeType(NodeType):
    @property
    def name(self) -> str:
        return PageNode.TYPE_NAME

    @property
    def frontend_callback(self) -> str | None:
        return "page"

    @property
    def default_inherit(self) -> bool:
        return False

    def create_node(self) -> PageNode:
        return PageNode()


class RedirectNodeType(NodeType):
    @property
    def name(self) -> str:
        return RedirectNode.TYPE_NAME

    @property
    def frontend_callback(self) -> str | None:
        return "redirect"

    def create_node(self) -> RedirectNode:
        return RedirectNode()


class ReferenceNodeType(NodeType):
    @property
    def name(self) -> str:
        return ReferenceNode.TYPE_NAME

    @property
    def frontend_callback(self) -> str | None:
        return "reference"

    def create_node(self) -> ReferenceNode:
        return ReferenceNode()


class HomeNodeType(NodeType, NodeValidator):
    """Type of the home node, which also validates the home page schedule."""

    @property
    def name(self) -> str:
        return HomeNode.TYPE_NAME

    @property
    def frontend_callback(self) -> str | None:
        return "home"

    def create_node(self) -> HomeNode:
        return HomeNode()

    def validate_node(self, node: Node, node_model: "NodeModel") -> None:
        if not isinstance(node, HomeNode):
            return

        exception = ValidationFailedError()

        locales = {
            key.split(".")[1]
            for key in node.get_properties(HomeNode.PROPERTY_HOME + ".")
            if key.count(".") >= 2
        }
        for locale in sorted(locales):
            for index, values in node.get_home_page_properties(locale).items():
                prefix = f"{HomeNode.PROPERTY_HOME}.{locale}.{index}."
                validate_date_range(
                    values.get(HomeNode.PROPERTY_HOME_START),
                    values.get(HomeNode.PROPERTY_HOME_STOP),
                    prefix + HomeNode.PROPERTY_HOME_START,
                    prefix + HomeNode.PROPERTY_HOME_STOP,
                    exception,
                )

        if exception.has_errors():
            raise exception


class NodeTypeManager:
    """Registry of the available node types, keyed by name."""

    def __init__(self, node_types: list[NodeType] | None = None):
        self.node_types: dict[str, NodeType] = {}
        for node_type in node_types or []:
            self.add_node_type(node_type)

    def add_node_type(self, node_type: NodeType) -> None:
        self.node_types[node_type.name] = node_type
        logger.debug("Registered node type %s", node_type.name)

    def has_node_type(self, name: str) -> bool:
        return name in self.node_types

    def get_node_type(self, name: str) -> NodeType:
        """Get a node type by name. Raises UnknownNodeTypeError if not added."""
        if name not in self.node_types:
            raise UnknownNodeTypeError(name)
        return self.node_types[name]

    def get_node_types(self) -> dict[str, NodeType]:
        return dict(self.node_types)

    def remove_node_type(self, name: str) -> None:
        if name not in self.node_types:
            raise UnknownNodeTypeError(name)
        del self.node_types[name]


def create_default_node_type_manager(default_theme: str | None = None) -> NodeTypeManager:
    """Create a manager with the built in node types."""
    return NodeTypeManager(
        [
            SiteNodeType(default_theme),
            PageNodeType(),
            RedirectNodeType(),
            ReferenceNodeType(),
            HomeNodeType(),
        ]
    )
