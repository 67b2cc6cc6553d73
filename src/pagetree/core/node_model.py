"""Node model: the service creating, validating and restructuring node trees."""

import logging
from typing import Any

from pagetree.core.events import EVENT_POST_ACTION, EVENT_PRE_ACTION, EventManager
from pagetree.core.exceptions import CmsError, NodeNotFoundError, OrderingMismatchError, ValidationFailedError
from pagetree.core.models import NodeProperty, TrashNode, join_list, split_list
from pagetree.core.node import (
    PATH_SEPARATOR,
    PROPERTY_NAME,
    PROPERTY_ROUTE,
    PROPERTY_WIDGET,
    PROPERTY_WIDGETS,
    Node,
)
from pagetree.core.node_type import NodeTypeManager
from pagetree.core.nodes import SiteNode
from pagetree.core.storage import NodeIO
from pagetree.core.validator import NodeValidator

logger = logging.getLogger(__name__)

# Suffix of the properties holding the id of another node
NODE_REFERENCE_SUFFIX = ".node"


class _CloneContext:
    """State shared by the nodes of one clone operation."""

    def __init__(self, revision: str, site: SiteNode | None):
        self.revision = revision
        # site receiving the new widget instances, the clone itself for sites
        self.site = site
        # original node id to clone id
        self.clone_table: dict[str, str] = {}
        # original widget id to clone widget id
        self.widget_table: dict[str, str] = {}
        # inherited widget ids only resolve within the site of the node
        self.is_same_site = True


class NodeModel:
    """Entry point to work with the node trees of the sites.

    Writes to the default (published) revision are redirected to the draft
    revision. When a site has auto publish enabled, changes are published
    to the default revision right away.
    """

    def __init__(
        self,
        node_type_manager: NodeTypeManager,
        io: NodeIO,
        validator: NodeValidator,
        default_revision: str = "master",
        draft_revision: str = "draft",
        event_manager: EventManager | None = None,
    ):
        self.node_type_manager = node_type_manager
        self.io = io
        self.validator = validator
        self.default_revision = default_revision
        self.draft_revision = draft_revision
        self.event_manager = event_manager

    @property
    def default_revision(self) -> str:
        return self._default_revision

    @default_revision.setter
    def default_revision(self, revision: str) -> None:
        if not isinstance(revision, str) or not revision:
            raise CmsError("Could not set the default revision: no string or empty value provided")
        self._default_revision = revision

    @property
    def draft_revision(self) -> str:
        return self._draft_revision

    @draft_revision.setter
    def draft_revision(self, revision: str) -> None:
        if not isinstance(revision, str) or not revision:
            raise CmsError("Could not set the draft revision: no string or empty value provided")
        self._draft_revision = revision

    def _get_write_revision(self, revision: str | None) -> str:
        if not revision or revision == self.default_revision:
            return self.draft_revision
        return revision

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def get_sites(self) -> dict[str, SiteNode]:
        return self.io.get_sites()

    def get_site(
        self,
        site_id: str,
        revision: str | None = None,
        children: bool = False,
        depth: int | None = None,
    ) -> SiteNode:
        return self.io.get_site(site_id, revision, children, depth)

    def get_current_site(self, base_url: str) -> tuple[SiteNode, str | None]:
        """Resolve the site for a base url.

        Returns (site, locale). The locale is only set when the locales of
        the site have their own base url. When no base url matches, the
        only published site is used. Raises NodeNotFoundError otherwise.
        """
        sites = self.get_sites()
        published = {}
        for site_id, site in sites.items():
            locale = site.get_locale_for_base_url(base_url)
            if locale is not None:
                if not site.has_localized_base_url():
                    locale = None
                return site, locale

            if site.is_published():
                published[site_id] = site

        if len(published) == 1:
            return next(iter(published.values())), None

        raise NodeNotFoundError(None, f"No site found for base url {base_url}")

    def get_node(
        self,
        site_id: str,
        revision: str,
        node_id: str,
        node_type: str | None = None,
        children: bool = False,
        depth: int | None = None,
    ) -> Node:
        return self.io.get_node(site_id, revision, node_id, node_type, children, depth)

    def get_nodes(self, site_id: str, revision: str) -> dict[str, Node]:
        return self.io.get_nodes(site_id, revision)

    def get_nodes_by_type(self, site_id: str, revision: str, node_type: str) -> dict[str, Node]:
        return self.io.get_nodes_by_type(site_id, revision, node_type)

    def get_nodes_by_path(self, site_id: str, revision: str, path: str) -> dict[str, Node]:
        return self.io.get_nodes_by_path(site_id, revision, path)

    def get_nodes_for_widget(
        self,
        widget_type: str,
        site_id: str | None = None,
        revision: str | None = None,
        locale: str | None = None,
    ) -> list[tuple[Node, str]]:
        """Find the nodes with an instance of a widget type in a region.

        Returns a list of (node, widget id) tuples.
        """
        revision = revision or self.default_revision

        sites = self.get_sites()
        if site_id is not None:
            if site_id not in sites:
                raise NodeNotFoundError(site_id, f"Site {site_id} not found")
            sites = {site_id: sites[site_id]}

        result = []
        for current_site_id in sites:
            nodes = self.io.get_nodes(current_site_id, revision)
            site = nodes.get(current_site_id)
            if not isinstance(site, SiteNode):
                continue

            widget_ids = {
                widget_id
                for widget_id, available_type in site.get_available_widgets().items()
                if available_type == widget_type
            }
            if not widget_ids:
                continue

            for node in nodes.values():
                if locale and not node.is_available_in_locale(locale):
                    continue

                for key, prop in node.properties.items():
                    if not key.startswith(PROPERTY_WIDGETS + "."):
                        continue
                    for widget_id in split_list(prop.value):
                        if widget_id in widget_ids:
                            result.append((node, widget_id))

        return result

    def get_children_levels(self, node: Node) -> int:
        """Get the number of child levels below a node."""
        levels = 0
        for descendant in self.get_nodes_by_path(node.get_root_node_id(), node.revision, node.get_path()).values():
            levels = max(levels, descendant.get_level())

        return max(levels - node.get_level(), 0)

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    def create_node(
        self,
        node_type: str,
        parent: Node | str | None = None,
        site_id: str | None = None,
        revision: str | None = None,
    ) -> Node:
        """Create a new node of a type.

        Args:
            node_type: Name of the node type.
            parent: Parent node, or the id of the parent node. A parent id
                without a site id is taken as the id of a site.
            site_id: Id of the site of the parent id.
            revision: Revision to look up the parent id, the draft revision
                when not provided.
        """
        node = self.node_type_manager.get_node_type(node_type).create_node()

        if isinstance(parent, str):
            parent = self.io.get_node(site_id or parent, revision or self.draft_revision, parent)

        if parent is not None:
            node.parent_node = parent
            node.revision = parent.revision

        return node

    def validate_node(self, node: Node) -> None:
        """Validate a node with the validator and its node type.

        Raises ValidationFailedError with the errors of both.
        """
        validators = [self.validator]
        node_type = self.node_type_manager.get_node_type(node.type)
        if isinstance(node_type, NodeValidator):
            validators.append(node_type)

        exception = ValidationFailedError()
        for validator in validators:
            try:
                validator.validate_node(node, self)
            except ValidationFailedError as error:
                for field, errors in error.errors.items():
                    exception.add_errors(field, errors)

        if exception.has_errors():
            raise exception

    def _trigger_event(self, name: str, args: dict[str, Any]) -> None:
        if self.event_manager is not None:
            self.event_manager.trigger_event(name, args)

    def _is_auto_publish(self, node: Node) -> bool:
        site = node.get_root_node()
        return isinstance(site, SiteNode) and site.is_auto_publish()

    def set_node(self, node: Node, description: str | None = None, auto_publish: bool = True) -> None:
        """Validate and save a node.

        Raises ValidationFailedError when the node is invalid.
        """
        node.revision = self._get_write_revision(node.revision)

        self.validate_node(node)

        args = {
            "action": "save",
            "nodes": [node],
            "description": description or f"Saved node {node.get_name()}",
        }
        self._trigger_event(EVENT_PRE_ACTION, args)
        self.io.set_node(node)
        self._trigger_event(EVENT_POST_ACTION, args)

        logger.info("Saved node %s of site %s (%s)", node.id, node.get_root_node_id(), node.revision)

        if auto_publish and self._is_auto_publish(node):
            self.publish_node(node)

    def remove_node(
        self,
        node: Node,
        recursive: bool = True,
        description: str | None = None,
        auto_publish: bool = True,
    ) -> None:
        """Move a node to the trash.

        Without recursive, the children of the node move up to the parent of
        the node and take its place in the order.
        """
        if node.get_level() != 0:
            node.revision = self._get_write_revision(node.revision)

        site_id = node.get_root_node_id()
        parent_id = node.get_parent_node_id()
        is_auto_publish = auto_publish and parent_id is not None and self._is_auto_publish(node)

        args = {
            "action": "remove",
            "nodes": [node],
            "description": description or f"Removed node {node.get_name()}",
        }
        self._trigger_event(EVENT_PRE_ACTION, args)
        self.io.remove_node(node, recursive)
        self._trigger_event(EVENT_POST_ACTION, args)

        logger.info("Removed node %s of site %s (%s)", node.id, site_id, node.revision)

        if is_auto_publish:
            self.publish_node(self.io.get_node(site_id, node.revision, parent_id))

    def publish_node(self, node: Node, revision: str | None = None, recursive: bool = True) -> dict[str, Node]:
        """Publish a node to a revision, the default revision when not provided.

        Returns the nodes deleted from the target revision.
        """
        return self.io.publish(node, revision or self.default_revision, recursive)

    # ------------------------------------------------------------------
    # Cloning
    # ------------------------------------------------------------------

    def clone_node(
        self,
        node: Node,
        recursive: bool = True,
        reorder: bool = True,
        keep_original_name: bool = False,
        clone_routes: bool | None = None,
        new_parent: str | None = None,
        auto_publish: bool = True,
    ) -> Node:
        """Create a copy of a node.

        Widget instances of the node get new instances on the site, inherited
        widgets keep their id. Cloning a site repairs the node references of
        the new site afterwards. The operation is not atomic: a failing write
        leaves the nodes written before it in place.

        Args:
            node: Node to clone.
            recursive: Whether to clone the children as well.
            reorder: Whether to place the clone right after the node, moving
                the later siblings down. Otherwise, or when cloning to another
                parent, the clone goes after the last sibling.
            keep_original_name: Whether to keep the name instead of adding a
                clone suffix.
            clone_routes: Whether to copy the routes. Defaults to True for
                sites and False for other nodes.
            new_parent: Path of the parent for the clone, the parent of the
                node when not provided.
            auto_publish: Whether to publish when the site auto publishes.

        Returns:
            The clone.
        """
        site_id = node.get_root_node_id()
        is_site = node.id == site_id
        revision = self._get_write_revision(node.revision)
        if node.revision != revision:
            node = self.io.get_node(site_id, revision, node.id)

        if clone_routes is None:
            clone_routes = is_site

        if new_parent is not None and (
            new_parent == node.get_path() or new_parent.startswith(node.get_path() + PATH_SEPARATOR)
        ):
            raise CmsError(f"Could not clone node {node.id}: the new parent is part of the node itself")

        destination_site_id = new_parent.split(PATH_SEPARATOR)[0] if new_parent else site_id
        context = _CloneContext(revision, None if is_site else self.io.get_site(destination_site_id, revision))
        context.is_same_site = destination_site_id == site_id
        clone = self._clone_node(node, context, recursive, reorder, keep_original_name, clone_routes, new_parent)

        # commit the widget instances created for the clone
        self.set_node(context.site, f"Updated widgets for clone of {node.get_name()}", False)

        if is_site:
            self._repair_node_references(clone.id, context)

        logger.info("Cloned node %s of site %s to %s", node.id, site_id, clone.get_path())

        if auto_publish and self._is_auto_publish(clone):
            parent_id = clone.get_parent_node_id()
            clone_site_id = clone.get_root_node_id()
            self.publish_node(self.io.get_node(clone_site_id, revision, parent_id or clone_site_id))

        return clone

    def _clone_node(
        self,
        node: Node,
        context: _CloneContext,
        recursive: bool,
        reorder: bool,
        keep_original_name: bool,
        clone_routes: bool,
        parent_path: str | None,
    ) -> Node:
        clone = self.node_type_manager.get_node_type(node.type).create_node()
        clone.revision = context.revision

        if parent_path is None:
            parent_path = node.parent_path
        if parent_path:
            site_id = parent_path.split(PATH_SEPARATOR)[0]
            parent_id = parent_path.split(PATH_SEPARATOR)[-1]
            clone.parent_node = self.io.get_node(site_id, context.revision, parent_id)
            if reorder and parent_path == node.parent_path:
                clone.order_index = (node.order_index or 0) + 1
            else:
                # appended after the last sibling by the io
                reorder = False
                clone.order_index = None
        else:
            reorder = False
            context.site = clone

        self._clone_node_properties(node, clone, context, keep_original_name, clone_routes)

        self.set_node(clone, f"Cloned {node.get_name()}", False)
        context.clone_table[node.id] = clone.id

        if reorder:
            siblings = self.io.get_children(clone.get_root_node_id(), context.revision, clone.parent_path, 1)
            for sibling in siblings.values():
                if sibling.id == clone.id or (sibling.order_index or 0) < clone.order_index:
                    continue
                sibling.order_index += 1
                self.set_node(sibling, f"Reordered {sibling.get_name()} after clone of {node.get_name()}", False)

        if recursive:
            children = self.io.get_children(node.get_root_node_id(), node.revision, node.get_path(), 1)
            for child in children.values():
                self._clone_node(child, context, True, False, True, clone_routes, clone.get_path())

        return clone

    def _clone_node_properties(
        self,
        source: Node,
        destination: Node,
        context: _CloneContext,
        keep_original_name: bool,
        clone_routes: bool,
    ) -> None:
        parent = source.parent_node
        properties: dict[str, NodeProperty] = {}
        remaining: list[NodeProperty] = []

        # regions first, they allocate the widget ids for the widget properties
        for key, prop in source.properties.items():
            if not key.startswith(PROPERTY_WIDGETS + "."):
                remaining.append(prop)
                continue

            inherited_widget_ids = []
            if parent is not None and context.is_same_site:
                inherited_widget_ids = split_list(parent.get(key, None, True, True))

            clone_widget_ids = []
            for widget_id in split_list(prop.value):
                if widget_id in context.widget_table:
                    clone_widget_id = context.widget_table[widget_id]
                elif widget_id in inherited_widget_ids:
                    clone_widget_id = widget_id
                else:
                    clone_widget_id = context.site.create_widget(source.get_widget(widget_id))
                context.widget_table[widget_id] = clone_widget_id
                clone_widget_ids.append(clone_widget_id)

            properties[key] = NodeProperty(key=key, value=join_list(clone_widget_ids), inherit=prop.inherit)

        siblings: list[Node] | None = None
        for prop in remaining:
            key = prop.key
            value = prop.value

            if not keep_original_name and key.startswith(PROPERTY_NAME + "."):
                if siblings is None:
                    siblings = self._get_siblings(source)
                value = self._get_clone_name(siblings, key, value)
            elif not clone_routes and key.startswith(PROPERTY_ROUTE + "."):
                continue
            elif key.startswith(PROPERTY_WIDGET + "."):
                widget_id, separator, widget_key = key[len(PROPERTY_WIDGET) + 1 :].partition(".")
                # the widget registry of a site is rebuilt by the widget allocation
                if not separator or widget_id not in context.widget_table:
                    continue
                key = f"{PROPERTY_WIDGET}.{context.widget_table[widget_id]}.{widget_key}"

            properties[key] = NodeProperty(key=key, value=value, inherit=prop.inherit)

        destination.properties.update(properties)

    def _get_siblings(self, node: Node) -> list[Node]:
        if not node.parent_path:
            return list(self.get_sites().values())
        return list(self.io.get_children(node.get_root_node_id(), node.revision, node.parent_path, 1).values())

    @staticmethod
    def _get_clone_name(siblings: list[Node], key: str, name: str) -> str:
        names = {sibling.get(key, None, False) for sibling in siblings}

        clone_name = f"{name} (clone)"
        index = 2
        while clone_name in names:
            clone_name = f"{name} (clone {index})"
            index += 1

        return clone_name

    def _repair_node_references(self, site_id: str, context: _CloneContext) -> None:
        """Point the node references of a cloned site to the cloned nodes."""
        for node in self.io.get_nodes(site_id, context.revision).values():
            is_changed = False
            for key, prop in node.properties.items():
                if key.endswith(NODE_REFERENCE_SUFFIX) and prop.value in context.clone_table:
                    prop.value = context.clone_table[prop.value]
                    is_changed = True

            if is_changed:
                self.set_node(node, f"Updated node references for clone of {node.get_name()}", False)

    # ------------------------------------------------------------------
    # Ordering
    # ------------------------------------------------------------------

    def order_nodes(
        self,
        site_id: str,
        revision: str,
        parent_id: str,
        node_order: dict[str, int],
        locale: str | None = None,
        auto_publish: bool = True,
    ) -> None:
        """Reorder the subtree of a node in one call.

        node_order holds the node ids of the subtree in pre-order, each with
        the number of the following entries which are its children. With
        the unique localization method, the children hidden in the locale
        keep their place after the ordered ones. Nothing is written when the
        order does not match the subtree.

        Raises OrderingMismatchError with the offending ids.
        """
        revision = self._get_write_revision(revision)
        parent = self.io.get_node(site_id, revision, parent_id)
        site = self.io.get_site(site_id, revision)
        path = parent.get_path()

        nodes = self.io.get_nodes_by_path(site_id, revision, path)

        unknown = [node_id for node_id in node_order if node_id not in nodes]
        if unknown:
            raise OrderingMismatchError(
                f"Could not order the nodes: node(s) {', '.join(unknown)} not a descendant of node {parent.id}",
                unknown,
            )

        plan: list[tuple[Node, str, int]] = []
        stack: list[tuple[int, str, int | None]] = []
        order_index = 1
        current_path = path
        # entries left on the current level, unbounded on the top level
        remaining_children: int | None = None

        for node_id, num_children in node_order.items():
            plan.append((nodes[node_id], current_path, order_index))
            order_index += 1
            if remaining_children is not None:
                remaining_children -= 1

            num_children = int(num_children or 0)
            if num_children:
                stack.append((order_index, current_path, remaining_children))
                order_index = 1
                current_path = f"{current_path}{PATH_SEPARATOR}{node_id}"
                remaining_children = num_children
                continue

            while remaining_children == 0 and stack:
                order_index, current_path, remaining_children = stack.pop()

        remaining = {node_id: node for node_id, node in nodes.items() if node_id not in node_order}

        if remaining and site.is_localization_method_unique():
            hidden = sorted(
                (
                    node
                    for node in remaining.values()
                    if node.parent_path == path and not node.is_available_in_locale(locale)
                ),
                key=lambda node: node.order_index or 0,
            )
            for node in hidden:
                plan.append((node, path, order_index))
                order_index += 1

                for node_id in [
                    node_id
                    for node_id, other in remaining.items()
                    if node_id == node.id or other.has_parent(node.id)
                ]:
                    del remaining[node_id]

        if remaining:
            missing = list(remaining)
            raise OrderingMismatchError(
                "Could not order the nodes: not all nodes of the provided parent are provided "
                f"in the node order; missing nodes {', '.join(missing)}",
                missing,
            )

        changed_nodes = []
        for node, parent_path, node_order_index in plan:
            if node.parent_path == parent_path and node.order_index == node_order_index:
                continue
            node.parent_path = parent_path
            node.order_index = node_order_index
            changed_nodes.append(node)

        args = {"action": "order", "nodes": changed_nodes, "description": "Reordering nodes"}
        self._trigger_event(EVENT_PRE_ACTION, args)
        for node in changed_nodes:
            self.io.set_node(node)
        self._trigger_event(EVENT_POST_ACTION, args)

        logger.info("Ordered %d nodes under %s of site %s (%s)", len(changed_nodes), parent.id, site_id, revision)

        if auto_publish and site.is_auto_publish():
            self.publish_node(self.io.get_node(site_id, revision, parent_id))

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def get_breadcrumbs_for_node(self, node: Node, base_script: str, locale: str) -> dict[str, str | None]:
        """Get the breadcrumbs of a node: url to name, from the site down."""
        breadcrumbs = []
        if not node.hide_in_breadcrumbs():
            breadcrumbs.append((base_script + (node.get_route(locale) or ""), node.get_name(locale, "breadcrumb")))

        parent = node.parent_node
        while parent is not None:
            node_type = self.node_type_manager.get_node_type(parent.type)
            if (node_type.frontend_callback or parent.get_level() == 0) and not parent.hide_in_breadcrumbs():
                breadcrumbs.append((base_script + parent.get_route(locale), parent.get_name(locale, "breadcrumb")))
            parent = parent.parent_node

        return dict(reversed(breadcrumbs))

    def get_list_from_nodes(
        self,
        nodes: dict[str, Node] | list[Node],
        locale: str,
        only_frontend_nodes: bool = True,
        separator: str = "/",
        prefix: str = "",
    ) -> dict[str, str]:
        """Flatten loaded node trees into node id to a path of names."""
        if isinstance(nodes, dict):
            nodes = list(nodes.values())

        result = {}
        for node in nodes:
            new_prefix = f"{prefix}{separator}{node.get_name(locale)}"

            skip = False
            if only_frontend_nodes:
                skip = not self.node_type_manager.get_node_type(node.type).frontend_callback
            if not skip:
                result[node.id] = new_prefix

            if node.children:
                for node_id, label in self.get_list_from_nodes(
                    node.children, locale, only_frontend_nodes, separator, new_prefix
                ).items():
                    result.setdefault(node_id, label)

        return result

    # ------------------------------------------------------------------
    # Trash and maintenance
    # ------------------------------------------------------------------

    def get_trash_nodes(self, site_id: str) -> dict[str, TrashNode]:
        return self.io.get_trash_nodes(site_id)

    def get_trash_node(self, site_id: str, trash_id: str) -> TrashNode:
        return self.io.get_trash_node(site_id, trash_id)

    def restore_trash_nodes(
        self,
        site_id: str,
        revision: str,
        trash_nodes: "str | TrashNode | list[str | TrashNode]",
        new_parent: str | None = None,
    ) -> list[Node]:
        nodes = self.io.restore_trash_nodes(site_id, revision, trash_nodes, new_parent)
        logger.info("Restored %d nodes in site %s (%s)", len(nodes), site_id, revision)
        return nodes

    def clean_up(self) -> None:
        """Remove the widget instances which are not placed in any region."""
        for site_id, site in self.get_sites().items():
            for revision in list(site.revisions):
                revision_site = self.io.get_site(site_id, revision)
                nodes = self.io.get_nodes_by_path(site_id, revision, site_id)

                unused = set(revision_site.get_available_widgets())
                for node in [revision_site, *nodes.values()]:
                    for key, prop in node.properties.items():
                        if key.startswith(PROPERTY_WIDGETS + ".") and key.count(".") == 1:
                            unused.difference_update(split_list(prop.value))

                if not unused:
                    continue

                for node in [*nodes.values(), revision_site]:
                    if self._clear_widgets(node, unused):
                        self.io.set_node(node)

                logger.info(
                    "Cleaned up %d unused widgets of site %s (%s)", len(unused), site_id, revision
                )

    @staticmethod
    def _clear_widgets(node: Node, widget_ids: set[str]) -> bool:
        is_site = not node.parent_path

        keys = []
        for key in node.properties:
            for widget_id in widget_ids:
                prefix = f"{PROPERTY_WIDGET}.{widget_id}"
                if key.startswith(prefix + ".") or (is_site and key == prefix):
                    keys.append(key)
                    break

        for key in keys:
            del node.properties[key]

        return bool(keys)

    def invalidate_cache(self) -> None:
        self.io.invalidate_cache()
