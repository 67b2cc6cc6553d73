"""Plain text rendering of a site tree, editable as a whole.

One node per line as ``Name [route|type|id]``, children indented by four
spaces. Lines without an id create new nodes.
"""

import logging
from typing import TYPE_CHECKING

from pydantic import BaseModel

from pagetree.core.node import Node
from pagetree.core.nodes import PageNode

if TYPE_CHECKING:
    from pagetree.core.node_model import NodeModel

logger = logging.getLogger(__name__)

INDENT = "    "

# Layout of the pages created from a structure
DEFAULT_LAYOUT = "single"


class StructureLine(BaseModel):
    """A parsed line of a structure text."""

    name: str
    spaces: int = 0
    route: str | None = None
    type: str | None = None
    id: str | None = None


def parse_line(line: str) -> StructureLine:
    """Parse a single line of a structure.

    Examples:
        >>> parse_line("    About [/about|page|about]")
        StructureLine(name='About', spaces=4, route='/about', type='page', id='about')
    """
    line = line.rstrip()
    stripped = line.strip()
    spaces = len(line) - len(stripped)

    position = stripped.find("[")
    if position == -1:
        return StructureLine(name=stripped, spaces=spaces)

    name = stripped[:position].strip()
    tokens = stripped[position + 1 :].replace("]", "").strip().split("|", 2)

    return StructureLine(
        name=name,
        spaces=spaces,
        route=tokens[0].strip() or None,
        type=tokens[1].strip() or None if len(tokens) > 1 else None,
        id=tokens[2].strip() or None if len(tokens) > 2 else None,
    )


def parse_structure(structure: str) -> list[StructureLine]:
    return [parse_line(line) for line in structure.split("\n") if line.strip()]


class NodeStructureParser:
    """Converts the tree of a site from and to its text structure."""

    def __init__(self, default_type: str = PageNode.TYPE_NAME):
        self.default_type = default_type

    def get_structure(self, locale: str, site: Node) -> str:
        """Render the loaded children of a node as structure text."""
        structure = ""
        for child in (site.children or {}).values():
            structure += f"{child.get_name(locale) or ''} [{child.get_route(locale) or ''}|{child.type}|{child.id}]\n"

            child_structure = self.get_structure(locale, child)
            if child_structure:
                structure += (INDENT + child_structure.replace("\n", "\n" + INDENT)).rstrip() + "\n"

        return structure

    def set_structure(self, locale: str, site: Node, node_model: "NodeModel", structure: str) -> None:
        """Apply a structure text to a site.

        Nodes are saved in the order of the text, nodes of the site missing
        from the text are removed with their children moving up, and the
        nodes are reordered to the indentation of the text.
        """
        site_id = site.id
        revision = site.revision or node_model.draft_revision
        if revision == node_model.default_revision:
            revision = node_model.draft_revision
        site = node_model.get_site(site_id, revision)

        levels = {0: site_id}
        spaces: dict[int, int] = {}
        order: dict[str, int] = {site_id: 0}
        level = 0
        previous_id: str | None = None
        previous_spaces: int | None = None

        for line in parse_structure(structure):
            node = self._save_node(locale, site, node_model, line)

            if previous_spaces is None:
                spaces[level] = line.spaces
            elif line.spaces > previous_spaces:
                level += 1
                levels[level] = previous_id
                spaces[level] = line.spaces
            elif line.spaces < previous_spaces:
                for space_level in sorted(spaces, reverse=True):
                    if space_level <= level and line.spaces >= spaces[space_level]:
                        level = space_level
                        break

            order[levels[level]] += 1
            order[node.id] = 0
            previous_id = node.id
            previous_spaces = line.spaces

        for node_id in node_model.get_nodes_by_path(site_id, revision, site_id):
            if node_id in order:
                continue
            node_model.remove_node(node_model.get_node(site_id, revision, node_id), False)

        del order[site_id]
        node_model.order_nodes(site_id, revision, site_id, order)

        logger.info("Updated the structure of site %s (%s)", site_id, revision)

    def _save_node(self, locale: str, site: Node, node_model: "NodeModel", line: StructureLine) -> Node:
        if line.id:
            node = node_model.get_node(site.id, site.revision, line.id)
        else:
            node_type = line.type or self.default_type
            node = node_model.create_node(node_type, site)
            if isinstance(node, PageNode):
                node.set_layout(locale, DEFAULT_LAYOUT)

        node.set_name(locale, line.name)
        if line.route and line.route != f"/nodes/{node.id}/{locale}":
            node.set_route(locale, line.route)

        node_model.set_node(node, f"Updated structure of {site.get_name(locale)}")

        return node
