"""Exceptions raised by the node model."""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pagetree.core.models import FieldError


class CmsError(Exception):
    """Base class for all node model errors."""


class InvalidKeyError(CmsError, ValueError):
    """Raised when a property key is empty or not a string."""

    def __init__(self, key: object):
        self.key = key
        super().__init__(f"Provided key is empty or invalid: {key!r}")


class NodeNotFoundError(CmsError, LookupError):
    """Raised when a node, site or trash node could not be resolved."""

    def __init__(self, node_id: str | None = None, message: str | None = None):
        self.node_id = node_id
        if message is None:
            message = f"Node {node_id} not found" if node_id else "Node not found"
        super().__init__(message)


class WidgetNotFoundError(CmsError, LookupError):
    """Raised when a widget instance is not set to a node or region."""

    def __init__(self, widget_id: str, message: str | None = None):
        self.widget_id = widget_id
        super().__init__(message or f"Widget {widget_id} not found")


class UnknownNodeTypeError(CmsError, LookupError):
    """Raised when a node type is not registered with the manager."""

    def __init__(self, node_type: str):
        self.node_type = node_type
        super().__init__(f"Node type {node_type} is not added to this manager")


class MapperNotFoundError(CmsError, LookupError):
    """Raised when no content mapper is available for a content type."""

    def __init__(self, content_type: str):
        self.content_type = content_type
        super().__init__(
            f"Could not get content mapper for {content_type}: "
            "no content mapper set for this type"
        )


class OrderingMismatchError(CmsError):
    """Raised when a new order does not match the current set of items.

    ``node_ids`` holds the offending ids: items missing from the new order
    or items which are not part of the current set.
    """

    def __init__(self, message: str, node_ids: list[str] | None = None):
        self.node_ids = list(node_ids or [])
        super().__init__(message)


class NewNodeHasNoRootError(CmsError):
    """Raised when path queries are made on a node which was never placed."""

    def __init__(self, message: str = "This is a new node so it has no root node"):
        super().__init__(message)


class ValidationFailedError(CmsError):
    """Aggregate of field tagged validation errors.

    Errors are grouped by field name so callers can render all of them at
    once instead of stopping at the first problem.
    """

    def __init__(self, errors: dict[str, list["FieldError"]] | None = None):
        self.errors: dict[str, list["FieldError"]] = {}
        for field, field_errors in (errors or {}).items():
            self.add_errors(field, field_errors)
        super().__init__()

    def add_errors(self, field: str, errors: list["FieldError"]) -> None:
        """Attach errors to a field."""
        self.errors.setdefault(field, []).extend(errors)

    def has_errors(self) -> bool:
        return any(self.errors.values())

    def get_errors(self, field: str) -> list["FieldError"]:
        return self.errors.get(field, [])

    def __str__(self) -> str:
        lines = ["Validation failed"]
        for field, errors in self.errors.items():
            for error in errors:
                lines.append(f"- {field}: {error}")
        return "\n".join(lines)


class NodeIOError(CmsError):
    """Raised when a storage adapter cannot read or write node data."""
