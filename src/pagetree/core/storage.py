"""Storage adapters for node trees."""

import copy
import logging
import shutil
import time
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Any

import yaml

from pagetree.core.exceptions import CmsError, NewNodeHasNoRootError, NodeIOError, NodeNotFoundError
from pagetree.core.expired import ExpiredRouteModel
from pagetree.core.models import NodeProperty, TrashNode, format_date, parse_date
from pagetree.core.node import PATH_SEPARATOR, PROPERTY_WIDGET, Node
from pagetree.core.node_type import NodeTypeManager
from pagetree.core.nodes import ReferenceNode, SiteNode
from pagetree.core.strings import safe_string

logger = logging.getLogger(__name__)


class NodeCache:
    """Per process cache of the loaded sites, node trees and trash."""

    def __init__(self):
        self.sites: dict[str, SiteNode] | None = None
        self.nodes: dict[tuple[str, str], dict[str, Node]] = {}
        self.trash: dict[str, dict[str, TrashNode]] = {}

    def invalidate(self, site_id: str | None = None, revision: str | None = None) -> None:
        """Drop cached data, all of it or only what belongs to a site."""
        if site_id is None:
            self.sites = None
            self.nodes = {}
            self.trash = {}
            logger.debug("Invalidated node cache")
            return

        self.sites = None
        for key in [key for key in self.nodes if key[0] == site_id]:
            if revision is None or key[1] == revision:
                del self.nodes[key]
        if revision is None:
            self.trash.pop(site_id, None)

        logger.debug("Invalidated node cache of site %s (%s)", site_id, revision or "all revisions")


def insert_sibling(siblings: list[Node], order_index: int | None) -> tuple[int, list[Node]]:
    """Renumber siblings densely around a free slot at order_index.

    Returns the order index of the slot and the siblings which got a new
    order index.
    """
    position = min(max((order_index or 1) - 1, 0), len(siblings))

    changed = []
    for index, sibling in enumerate(siblings, 1):
        new_index = index if index <= position else index + 1
        if sibling.order_index != new_index:
            sibling.order_index = new_index
            changed.append(sibling)

    return position + 1, changed


class NodeIO(ABC):
    """Abstract base class for node storage."""

    @abstractmethod
    def get_sites(self) -> dict[str, SiteNode]:
        """Get all sites, keyed by id."""
        ...

    @abstractmethod
    def get_site(
        self,
        site_id: str,
        revision: str | None = None,
        children: bool = False,
        depth: int | None = None,
    ) -> SiteNode:
        """Get a site. Raises NodeNotFoundError if not found."""
        ...

    @abstractmethod
    def get_node(
        self,
        site_id: str,
        revision: str,
        node_id: str,
        node_type: str | None = None,
        children: bool = False,
        depth: int | None = None,
    ) -> Node:
        """Get a node. Raises NodeNotFoundError if not found or of another type.

        With children, the child levels up to depth are loaded in the
        children of the node. A depth of None loads all levels.
        """
        ...

    @abstractmethod
    def get_children(
        self,
        site_id: str,
        revision: str,
        path: str,
        depth: int | None = None,
    ) -> dict[str, Node]:
        """Get the children of a path, in order."""
        ...

    @abstractmethod
    def get_nodes(self, site_id: str, revision: str) -> dict[str, Node]:
        """Get all nodes of a site revision, keyed by id."""
        ...

    @abstractmethod
    def get_nodes_by_type(self, site_id: str, revision: str, node_type: str) -> dict[str, Node]:
        """Get the nodes of a type."""
        ...

    @abstractmethod
    def get_nodes_by_path(self, site_id: str, revision: str, path: str) -> dict[str, Node]:
        """Get all descendants of a path."""
        ...

    @abstractmethod
    def set_node(self, node: Node) -> None:
        """Save a node. A new node gets an id."""
        ...

    @abstractmethod
    def remove_node(self, node: Node, recursive: bool = True) -> None:
        """Move a node to the trash.

        Without recursive, the children of the node take its place.
        """
        ...

    @abstractmethod
    def get_trash_nodes(self, site_id: str) -> dict[str, TrashNode]:
        """Get the trash of a site, keyed by trash id."""
        ...

    @abstractmethod
    def get_trash_node(self, site_id: str, trash_id: str) -> TrashNode:
        """Get a trash node. Raises NodeNotFoundError if not found."""
        ...

    @abstractmethod
    def restore_trash_nodes(
        self,
        site_id: str,
        revision: str,
        trash_nodes: "str | TrashNode | list[str | TrashNode]",
        new_parent: str | None = None,
    ) -> list[Node]:
        """Restore nodes from the trash. Returns the restored nodes."""
        ...

    @abstractmethod
    def publish(self, node: Node, revision: str, recursive: bool = True) -> dict[str, Node]:
        """Copy a node into another revision.

        Returns the nodes deleted from the target revision, keyed by id.
        """
        ...

    @abstractmethod
    def invalidate_cache(self, site_id: str | None = None, revision: str | None = None) -> None:
        """Drop cached nodes."""
        ...


class AbstractNodeIO(NodeIO):
    """Node storage working on plain node records.

    A record is a dict with the keys id, type, parent, order, modified and
    properties. Inherited properties are stored with the inherit prefix on
    their key, other keys starting with a prefix get the escape prefix.
    Subclasses only read and write records.
    """

    def __init__(
        self,
        node_type_manager: NodeTypeManager,
        default_revision: str = "master",
        widget_id_offset: int = 0,
        cache: NodeCache | None = None,
        expired_route_model: ExpiredRouteModel | None = None,
    ):
        self.node_type_manager = node_type_manager
        self.default_revision = default_revision
        self.widget_id_offset = widget_id_offset
        self.cache = cache or NodeCache()
        # routes replaced in the default revision are kept here when set
        self.expired_route_model = expired_route_model

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    @abstractmethod
    def _read_site_ids(self) -> list[str]:
        ...

    @abstractmethod
    def _read_revisions(self, site_id: str) -> list[str]:
        ...

    @abstractmethod
    def _read_records(self, site_id: str, revision: str) -> list[dict[str, Any]]:
        ...

    def _read_record(self, site_id: str, revision: str, node_id: str) -> dict[str, Any] | None:
        for record in self._read_records(site_id, revision):
            if record.get("id") == node_id:
                return record
        return None

    @abstractmethod
    def _write_record(self, site_id: str, revision: str, record: dict[str, Any]) -> None:
        ...

    @abstractmethod
    def _delete_record(self, site_id: str, revision: str, node_id: str) -> None:
        ...

    @abstractmethod
    def _delete_site(self, site_id: str) -> None:
        ...

    @abstractmethod
    def _read_trash_records(self, site_id: str) -> dict[str, dict[str, Any]]:
        ...

    @abstractmethod
    def _write_trash_record(self, site_id: str, trash_id: str, record: dict[str, Any]) -> None:
        ...

    @abstractmethod
    def _delete_trash_record(self, site_id: str, trash_id: str) -> None:
        ...

    def _node_to_record(self, node: Node) -> dict[str, Any]:
        record: dict[str, Any] = {"id": node.id, "type": node.type}
        if node.parent_path:
            record["parent"] = node.parent_path
            record["order"] = node.order_index or 1
        if node.date_modified:
            record["modified"] = format_date(node.date_modified)
        record["properties"] = {
            prop.storage_key: prop.value for prop in node.properties.values()
        }
        return record

    def _node_from_record(self, record: dict[str, Any]) -> Node:
        try:
            node_id = record["id"]
            node_type = record["type"]
        except (KeyError, TypeError) as exc:
            raise NodeIOError(f"Invalid node record, missing {exc}") from exc

        node = self.node_type_manager.get_node_type(str(node_type)).create_node()
        node.id = str(node_id)

        parent = record.get("parent")
        if parent:
            node.parent_path = str(parent)
            node.order_index = int(record.get("order") or 1)

        node.date_modified = parse_date(record.get("modified"))

        properties = {}
        for key, value in (record.get("properties") or {}).items():
            prop = NodeProperty.from_storage(str(key), value)
            properties[prop.key] = prop
        node.properties = properties

        return node

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def _read_nodes(self, site_id: str, revision: str) -> dict[str, Node]:
        tree: dict[str, Node] = {}
        for record in self._read_records(site_id, revision):
            node = self._node_from_record(record)
            node.revision = revision
            tree[node.id] = node

        for node in tree.values():
            node.attach_tree(tree)

            if isinstance(node, SiteNode):
                node.revisions = self._read_revisions(site_id)
                node.widget_id_offset = self.widget_id_offset
            elif isinstance(node, ReferenceNode):
                reference_id = node.get_reference_node()
                if reference_id:
                    node.referenced_node = tree.get(reference_id)
                    if node.referenced_node is None:
                        logger.warning(
                            "Reference node %s points to missing node %s", node.id, reference_id
                        )

            parent_id = node.get_parent_node_id()
            if not parent_id:
                continue

            parent = tree.get(parent_id) or tree.get(node.get_root_node_id())
            if parent is None:
                logger.warning("Parent of node %s not found in %s/%s", node.id, site_id, revision)
                continue

            # keep the stored path when linked to the site as fallback
            parent_path = node.parent_path
            node.parent_node = parent
            node.parent_path = parent_path

        return tree

    def _load_nodes(self, site_id: str, revision: str) -> dict[str, Node]:
        key = (site_id, revision)
        if key not in self.cache.nodes:
            self.cache.nodes[key] = self._read_nodes(site_id, revision)
            logger.debug(
                "Loaded %d nodes of site %s (%s)", len(self.cache.nodes[key]), site_id, revision
            )
        return self.cache.nodes[key]

    def get_sites(self) -> dict[str, SiteNode]:
        if self.cache.sites is None:
            sites = {}
            for site_id in self._read_site_ids():
                revisions = self._read_revisions(site_id)
                if not revisions:
                    logger.warning("Skipping site %s: no revisions found", site_id)
                    continue

                revision = self.default_revision if self.default_revision in revisions else revisions[0]
                site = self._load_nodes(site_id, revision).get(site_id)
                if not isinstance(site, SiteNode):
                    logger.warning("Skipping site %s: no site node in revision %s", site_id, revision)
                    continue

                sites[site_id] = site
            self.cache.sites = sites

        return dict(self.cache.sites)

    def get_site(
        self,
        site_id: str,
        revision: str | None = None,
        children: bool = False,
        depth: int | None = None,
    ) -> SiteNode:
        if revision is None:
            sites = self.get_sites()
            if site_id not in sites:
                raise NodeNotFoundError(site_id, f"Site {site_id} not found")
            revision = sites[site_id].revision

        return self.get_node(site_id, revision, site_id, SiteNode.TYPE_NAME, children, depth)

    def get_node(
        self,
        site_id: str,
        revision: str,
        node_id: str,
        node_type: str | None = None,
        children: bool = False,
        depth: int | None = None,
    ) -> Node:
        node = self._load_nodes(site_id, revision).get(node_id)
        if node is None or (node_type is not None and node.type != node_type):
            raise NodeNotFoundError(node_id, f"Node {node_id} not found in site {site_id} ({revision})")

        if children:
            node.children = self.get_children(site_id, revision, node.get_path(), depth)

        return node

    def get_children(
        self,
        site_id: str,
        revision: str,
        path: str,
        depth: int | None = None,
    ) -> dict[str, Node]:
        nodes = self._load_nodes(site_id, revision)

        children = [node for node in nodes.values() if node.parent_path == path]
        children.sort(key=lambda node: (node.order_index is None, node.order_index or 0))

        if depth is not None:
            depth -= 1

        result = {}
        for child in children:
            if depth is None or depth > 0:
                child.children = self.get_children(site_id, revision, child.get_path(), depth)
            result[child.id] = child

        return result

    def get_nodes(self, site_id: str, revision: str) -> dict[str, Node]:
        return dict(self._load_nodes(site_id, revision))

    def get_nodes_by_type(self, site_id: str, revision: str, node_type: str) -> dict[str, Node]:
        return {
            node_id: node
            for node_id, node in self._load_nodes(site_id, revision).items()
            if node.type == node_type
        }

    def get_nodes_by_path(self, site_id: str, revision: str, path: str) -> dict[str, Node]:
        prefix = path + PATH_SEPARATOR
        return {
            node_id: node
            for node_id, node in self._load_nodes(site_id, revision).items()
            if node.parent_path == path or node.parent_path.startswith(prefix)
        }

    def invalidate_cache(self, site_id: str | None = None, revision: str | None = None) -> None:
        self.cache.invalidate(site_id, revision)

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    def _get_new_node_id(self, node: Node) -> str:
        """Generate an id from the name of the node, unique in its revision."""
        base_id = safe_string(node.get_name() or "")
        for character in (".", "-", " "):
            base_id = base_id.replace(character, "")
        if not base_id:
            base_id = node.type

        try:
            used = self._load_nodes(node.get_root_node_id(), node.revision)
        except NewNodeHasNoRootError:
            used = self.get_sites()

        node_id = base_id
        index = 1
        while node_id in used:
            node_id = f"{base_id}{index}"
            index += 1

        return node_id

    def set_node(self, node: Node) -> None:
        if node.revision is None:
            node.revision = self.default_revision
        if not node.id:
            if node.parent_path and node.order_index is None:
                # new nodes go after their last sibling
                siblings = self.get_children(node.get_root_node_id(), node.revision, node.parent_path, 1)
                node.order_index = max((sibling.order_index or 0 for sibling in siblings.values()), default=0) + 1
            node.id = self._get_new_node_id(node)

        site_id = node.get_root_node_id()
        node.date_modified = datetime.now().replace(microsecond=0)

        if self.expired_route_model is not None and node.revision == self.default_revision:
            old_record = self._read_record(site_id, node.revision, node.id)
            if old_record is not None:
                site = self._load_nodes(site_id, node.revision).get(site_id)
                self._expire_routes(site, self._node_from_record(old_record), node)

        self._write_record(site_id, node.revision, self._node_to_record(node))

        if isinstance(node, SiteNode) and node.revision not in node.revisions:
            node.revisions.append(node.revision)

        self.cache.invalidate(site_id)
        logger.debug("Wrote node %s to %s/%s", node.id, site_id, node.revision)

    def _get_new_trash_id(self, site_id: str, node: Node) -> str:
        """Generate a trash id: <timestamp>-<node id>, with a counter when taken."""
        base_id = f"{int(time.time())}{PATH_SEPARATOR}{node.id}"
        used = self._read_trash_records(site_id)

        trash_id = base_id
        index = 2
        while trash_id in used:
            trash_id = f"{base_id}{PATH_SEPARATOR}{index}"
            index += 1

        return trash_id

    def _trash_node(self, site_id: str, node: Node) -> str:
        trash_id = self._get_new_trash_id(site_id, node)
        self._write_trash_record(site_id, trash_id, self._node_to_record(node))
        self._delete_record(site_id, node.revision, node.id)
        return trash_id

    def remove_node(self, node: Node, recursive: bool = True) -> None:
        site_id = node.get_root_node_id()
        revision = node.revision

        if not node.parent_path:
            self._delete_site(site_id)
            self.cache.invalidate(site_id)
            logger.info("Removed site %s", site_id)
            return

        path = node.get_path()
        parent_path = node.parent_path
        order_index = node.order_index or 1

        siblings = [
            sibling
            for sibling in self.get_children(site_id, revision, parent_path, 1).values()
            if sibling.id != node.id
        ]
        descendants = self.get_nodes_by_path(site_id, revision, path)

        changed_nodes = []
        num_children = 0
        if recursive:
            for descendant in sorted(descendants.values(), key=Node.get_level, reverse=True):
                self._trash_node(site_id, descendant)
        else:
            for child in descendants.values():
                if child.parent_path == path:
                    child.order_index = order_index - 1 + (child.order_index or 1)
                    num_children += 1
                child.parent_path = parent_path + child.parent_path[len(path) :]
                changed_nodes.append(child)

        # close the gap, or make room for the promoted children
        shift = num_children - 1
        if shift:
            for sibling in siblings:
                if (sibling.order_index or 0) > order_index:
                    sibling.order_index += shift
                    changed_nodes.append(sibling)

        for changed_node in changed_nodes:
            self._write_record(site_id, revision, self._node_to_record(changed_node))

        trash_id = self._trash_node(site_id, node)
        self.cache.invalidate(site_id)

        logger.info(
            "Removed node %s from %s/%s to trash %s (%s)",
            node.id,
            site_id,
            revision,
            trash_id,
            "recursive" if recursive else f"{num_children} children promoted",
        )

    # ------------------------------------------------------------------
    # Trash
    # ------------------------------------------------------------------

    def get_trash_nodes(self, site_id: str) -> dict[str, TrashNode]:
        if site_id not in self.cache.trash:
            trash = {}
            for trash_id, record in self._read_trash_records(site_id).items():
                node = self._node_from_record(record)

                timestamp = trash_id.partition(PATH_SEPARATOR)[0]
                date = datetime.fromtimestamp(int(timestamp)) if timestamp.isdigit() else datetime.now()

                trash[trash_id] = TrashNode(id=trash_id, node=node, date=date)
            self.cache.trash[site_id] = trash

        return dict(self.cache.trash[site_id])

    def get_trash_node(self, site_id: str, trash_id: str) -> TrashNode:
        trash = self.get_trash_nodes(site_id)
        if trash_id not in trash:
            raise NodeNotFoundError(trash_id, f"Trash node {trash_id} not found in site {site_id}")
        return trash[trash_id]

    def restore_trash_nodes(
        self,
        site_id: str,
        revision: str,
        trash_nodes: "str | TrashNode | list[str | TrashNode]",
        new_parent: str | None = None,
    ) -> list[Node]:
        if isinstance(trash_nodes, (str, TrashNode)):
            trash_nodes = [trash_nodes]

        resolved = []
        for trash_node in trash_nodes:
            if isinstance(trash_node, str):
                trash_node = self.get_trash_node(site_id, trash_node)
            elif not isinstance(trash_node, TrashNode):
                raise CmsError("Could not restore node: provided value should be a TrashNode or a trash id")
            resolved.append(trash_node)

        # parents before children, siblings in their original order
        resolved.sort(
            key=lambda trash_node: (
                trash_node.node.get_level(),
                trash_node.node.parent_path,
                trash_node.node.order_index or 0,
            )
        )

        translation: dict[str, str] = {}
        return [
            self._restore_trash_node(site_id, revision, trash_node, new_parent, translation)
            for trash_node in resolved
        ]

    def _restore_trash_node(
        self,
        site_id: str,
        revision: str,
        trash_node: TrashNode,
        new_parent: str | None,
        translation: dict[str, str],
    ) -> Node:
        node = trash_node.node
        original_id = node.id
        parent_id = node.get_parent_node_id()

        is_new_parent = False
        if parent_id in translation:
            parent = self.get_node(site_id, revision, translation[parent_id])
        elif new_parent and new_parent != parent_id:
            parent = self.get_node(site_id, revision, new_parent)
            is_new_parent = True
        else:
            try:
                parent = self.get_node(site_id, revision, parent_id)
            except NodeNotFoundError:
                parent = self.get_site(site_id, revision)

        siblings = list(self.get_children(site_id, revision, parent.get_path(), 1).values())

        node.revision = revision
        node.parent_node = parent
        if node.id in self._load_nodes(site_id, revision):
            node.id = None

        changed_nodes: list[Node] = []
        if is_new_parent:
            node.order_index = max((sibling.order_index or 0 for sibling in siblings), default=0) + 1
        else:
            node.order_index, changed_nodes = insert_sibling(siblings, node.order_index)

        for changed_node in changed_nodes:
            self._write_record(site_id, revision, self._node_to_record(changed_node))
        self.set_node(node)

        self._delete_trash_record(site_id, trash_node.id)
        self.cache.invalidate(site_id)

        translation[original_id] = node.id
        logger.info("Restored trash node %s as %s in %s/%s", trash_node.id, node.get_path(), site_id, revision)

        return node

    # ------------------------------------------------------------------
    # Publishing
    # ------------------------------------------------------------------

    def _has_revision(self, site_id: str, revision: str) -> bool:
        return revision in self._read_revisions(site_id)

    def _expire_routes(self, site: SiteNode | None, old_node: Node, node: Node) -> None:
        """Keep the routes of the old version of a node which the node no longer uses."""
        if self.expired_route_model is None:
            return

        site_id = node.get_root_node_id()
        old_routes = old_node.get_routes()
        routes = node.get_routes()

        for locale, route in routes.items():
            if old_routes.get(locale) != route:
                # a reused route is live again
                self.expired_route_model.remove_expired_routes_by_path(site_id, route)

        for locale, route in old_routes.items():
            if routes.get(locale) == route:
                continue
            base_url = site.get_base_url(locale) if isinstance(site, SiteNode) else None
            self.expired_route_model.add_expired_route(site_id, node.id, locale, route, base_url)

    def publish(self, node: Node, revision: str, recursive: bool = True) -> dict[str, Node]:
        deleted: dict[str, Node] = {}
        if node.revision == revision:
            return deleted

        site_id = node.get_root_node_id()
        source_revision = node.revision

        if not self._has_revision(site_id, revision):
            # first publish of the site copies the whole revision
            for source_node in self.get_nodes(site_id, source_revision).values():
                self._write_record(site_id, revision, self._node_to_record(source_node))
            self.cache.invalidate(site_id)
            logger.info("Published site %s from %s to new revision %s", site_id, source_revision, revision)
            return deleted

        site = self.get_site(site_id, source_revision)

        deleted_node = self._publish_node(site, node, revision, True)
        if deleted_node is not None:
            deleted[deleted_node.id] = deleted_node

        if recursive:
            path = node.get_path()
            old_nodes = self.get_nodes_by_path(site_id, revision, path)
            for node_id, descendant in self.get_nodes_by_path(site_id, source_revision, path).items():
                self._publish_node(site, descendant, revision, False)
                old_nodes.pop(node_id, None)

            for node_id, old_node in old_nodes.items():
                self._delete_record(site_id, revision, node_id)
                deleted[node_id] = old_node

        if deleted and self.expired_route_model is not None and revision == self.default_revision:
            self.expired_route_model.remove_expired_routes_by_node(site_id, list(deleted))

        self.cache.invalidate(site_id)
        logger.info(
            "Published node %s of site %s from %s to %s, %d deleted",
            node.id,
            site_id,
            source_revision,
            revision,
            len(deleted),
        )

        return deleted

    def _publish_node(self, site: SiteNode, node: Node, revision: str, fix_order: bool) -> Node | None:
        """Copy a single node into revision. Returns the node when it got deleted."""
        site_id = site.id
        source_nodes = self._load_nodes(site_id, node.revision)
        target_nodes = self._load_nodes(site_id, revision)
        old_node = target_nodes.get(node.id)

        if node.id not in source_nodes:
            if old_node is None:
                return None
            self._delete_record(site_id, revision, node.id)
            self.cache.invalidate(site_id, revision)
            return old_node

        if old_node is not None and revision == self.default_revision:
            self._expire_routes(site, old_node, node)

        record = self._node_to_record(node)

        publish_site = target_nodes.get(site_id)
        if isinstance(publish_site, SiteNode) and node.id != site_id:
            available_widgets = site.get_available_widgets()
            published_widgets = publish_site.get_available_widgets()

            is_changed = False
            for widget_id in node.get_used_widgets():
                if widget_id in published_widgets or widget_id not in available_widgets:
                    continue
                publish_site.set(f"{PROPERTY_WIDGET}.{widget_id}", available_widgets[widget_id], True)
                is_changed = True

            if is_changed:
                self._write_record(site_id, revision, self._node_to_record(publish_site))

        if (
            fix_order
            and old_node is not None
            and node.parent_path
            and (old_node.order_index != node.order_index or old_node.parent_path != node.parent_path)
        ):
            siblings = [
                sibling
                for sibling in self.get_children(site_id, revision, node.parent_path, 1).values()
                if sibling.id != node.id
            ]
            record["order"], changed_nodes = insert_sibling(siblings, node.order_index)
            for changed_node in changed_nodes:
                self._write_record(site_id, revision, self._node_to_record(changed_node))

        self._write_record(site_id, revision, record)
        self.cache.invalidate(site_id, revision)

        return None


class MemoryNodeIO(AbstractNodeIO):
    """Node storage keeping the records in dictionaries."""

    def __init__(
        self,
        node_type_manager: NodeTypeManager,
        default_revision: str = "master",
        widget_id_offset: int = 0,
        cache: NodeCache | None = None,
        expired_route_model: ExpiredRouteModel | None = None,
    ):
        super().__init__(node_type_manager, default_revision, widget_id_offset, cache, expired_route_model)
        self.records: dict[str, dict[str, dict[str, dict[str, Any]]]] = {}
        self.trash_records: dict[str, dict[str, dict[str, Any]]] = {}

    def _read_site_ids(self) -> list[str]:
        return sorted(self.records)

    def _read_revisions(self, site_id: str) -> list[str]:
        return sorted(self.records.get(site_id, {}))

    def _read_records(self, site_id: str, revision: str) -> list[dict[str, Any]]:
        records = self.records.get(site_id, {}).get(revision, {})
        return [copy.deepcopy(record) for record in records.values()]

    def _read_record(self, site_id: str, revision: str, node_id: str) -> dict[str, Any] | None:
        record = self.records.get(site_id, {}).get(revision, {}).get(node_id)
        return copy.deepcopy(record) if record is not None else None

    def _write_record(self, site_id: str, revision: str, record: dict[str, Any]) -> None:
        revisions = self.records.setdefault(site_id, {})
        revisions.setdefault(revision, {})[record["id"]] = copy.deepcopy(record)

    def _delete_record(self, site_id: str, revision: str, node_id: str) -> None:
        self.records.get(site_id, {}).get(revision, {}).pop(node_id, None)

    def _delete_site(self, site_id: str) -> None:
        self.records.pop(site_id, None)
        self.trash_records.pop(site_id, None)

    def _read_trash_records(self, site_id: str) -> dict[str, dict[str, Any]]:
        return copy.deepcopy(self.trash_records.get(site_id, {}))

    def _write_trash_record(self, site_id: str, trash_id: str, record: dict[str, Any]) -> None:
        self.trash_records.setdefault(site_id, {})[trash_id] = copy.deepcopy(record)

    def _delete_trash_record(self, site_id: str, trash_id: str) -> None:
        self.trash_records.get(site_id, {}).pop(trash_id, None)


class YamlNodeIO(AbstractNodeIO):
    """File based node storage.

    Every node is a YAML file: <base>/<site>/<revision>/<node>.yaml.
    Removed nodes go to <base>/<site>/<trash name>/<trash id>.yaml.
    """

    EXTENSION = ".yaml"

    def __init__(
        self,
        base_path: Path,
        node_type_manager: NodeTypeManager,
        default_revision: str = "master",
        trash_name: str = "_trash",
        widget_id_offset: int = 0,
        cache: NodeCache | None = None,
        expired_route_model: ExpiredRouteModel | None = None,
    ):
        super().__init__(node_type_manager, default_revision, widget_id_offset, cache, expired_route_model)
        self.base_path = Path(base_path)
        self.trash_name = trash_name
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _get_path(self, site_id: str, revision: str, node_id: str) -> Path:
        return self.base_path / site_id / revision / (node_id + self.EXTENSION)

    def _read_file(self, path: Path) -> dict[str, Any] | None:
        """Read a record file. Returns None if the file is not a valid record."""
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
        except yaml.YAMLError as exc:
            logger.warning("Skipping unparseable node file %s: %s", path, exc)
            return None
        except OSError as exc:
            raise NodeIOError(f"Could not read {path}: {exc}") from exc

        if not isinstance(data, dict):
            logger.warning("Skipping node file %s: not a node record", path)
            return None

        return data

    def _write_file(self, path: Path, record: dict[str, Any]) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(
                yaml.safe_dump(record, default_flow_style=False, sort_keys=False, allow_unicode=True),
                encoding="utf-8",
            )
        except OSError as exc:
            raise NodeIOError(f"Could not write {path}: {exc}") from exc

    def _read_site_ids(self) -> list[str]:
        return sorted(
            path.name
            for path in self.base_path.iterdir()
            if path.is_dir() and not path.name.startswith(".")
        )

    def _read_revisions(self, site_id: str) -> list[str]:
        site_path = self.base_path / site_id
        if not site_path.is_dir():
            return []

        return sorted(
            path.name
            for path in site_path.iterdir()
            if path.is_dir() and not path.name.startswith(".") and path.name != self.trash_name
        )

    def _read_records(self, site_id: str, revision: str) -> list[dict[str, Any]]:
        directory = self.base_path / site_id / revision
        if not directory.is_dir():
            return []

        records = []
        for path in sorted(directory.glob("*" + self.EXTENSION)):
            record = self._read_file(path)
            if record is not None:
                records.append(record)

        return records

    def _read_record(self, site_id: str, revision: str, node_id: str) -> dict[str, Any] | None:
        path = self._get_path(site_id, revision, node_id)
        if not path.exists():
            return None
        return self._read_file(path)

    def _write_record(self, site_id: str, revision: str, record: dict[str, Any]) -> None:
        self._write_file(self._get_path(site_id, revision, record["id"]), record)

    def _delete_record(self, site_id: str, revision: str, node_id: str) -> None:
        path = self._get_path(site_id, revision, node_id)
        if path.exists():
            path.unlink()

    def _delete_site(self, site_id: str) -> None:
        site_path = self.base_path / site_id
        if site_path.exists():
            shutil.rmtree(site_path)

    def _read_trash_records(self, site_id: str) -> dict[str, dict[str, Any]]:
        directory = self.base_path / site_id / self.trash_name
        if not directory.is_dir():
            return {}

        records = {}
        for path in sorted(directory.glob("*" + self.EXTENSION)):
            record = self._read_file(path)
            if record is not None:
                records[path.name.removesuffix(self.EXTENSION)] = record

        return records

    def _write_trash_record(self, site_id: str, trash_id: str, record: dict[str, Any]) -> None:
        self._write_file(self._get_path(site_id, self.trash_name, trash_id), record)

    def _delete_trash_record(self, site_id: str, trash_id: str) -> None:
        path = self._get_path(site_id, self.trash_name, trash_id)
        if path.exists():
            path.unlink()
