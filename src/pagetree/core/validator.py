"""Validation of nodes before they are saved."""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from pagetree.core.exceptions import ValidationFailedError
from pagetree.core.models import FieldError, parse_date
from pagetree.core.node import (
    PROPERTY_PUBLISH_START,
    PROPERTY_PUBLISH_STOP,
    PROPERTY_ROUTE,
    Node,
)
from pagetree.core.nodes import HomeNode
from pagetree.core.strings import safe_string

if TYPE_CHECKING:
    from pagetree.core.node_model import NodeModel


def normalize_route(route: str) -> str:
    """Normalize a route into an absolute path of safe segments."""
    tokens = [safe_string(token) for token in route.strip("/").split("/") if token]
    return "/" + "/".join(token for token in tokens if token)


def validate_date(value: str, field: str, exception: ValidationFailedError) -> None:
    if parse_date(value) is None:
        exception.add_errors(
            field,
            [FieldError(code="error.value.invalid", message="%value% is invalid", parameters={"value": value})],
        )


def validate_date_range(
    start: str | None,
    stop: str | None,
    start_field: str,
    stop_field: str,
    exception: ValidationFailedError,
) -> None:
    """Validate two optional dates and check the start is before the stop."""
    if start:
        validate_date(start, start_field, exception)
    if stop:
        validate_date(stop, stop_field, exception)

    date_start = parse_date(start)
    date_stop = parse_date(stop)
    if date_start and date_stop and date_start >= date_stop:
        exception.add_errors(
            stop_field,
            [
                FieldError(
                    code="error.date.publish.negative",
                    message="Publish stop date cannot be before the publish start date",
                )
            ],
        )


class NodeValidator(ABC):
    """Abstract base class for node validators."""

    @abstractmethod
    def validate_node(self, node: Node, node_model: "NodeModel") -> None:
        """Validate a node. Raises ValidationFailedError with all field errors."""
        ...


class GenericNodeValidator(NodeValidator):
    """Checks routes, home pages and the publication window of a node.

    Routes are normalized in place while validating.
    """

    def validate_node(self, node: Node, node_model: "NodeModel") -> None:
        exception = ValidationFailedError()

        self.validate_route(node, node_model, exception)
        self.validate_home_page(node, node_model, exception)
        self.validate_publication_date(node, exception)

        if exception.has_errors():
            raise exception

    def validate_route(
        self,
        node: Node,
        node_model: "NodeModel",
        exception: ValidationFailedError,
    ) -> None:
        """Normalize the routes of node and check them against the site.

        A route collides with the route of another node of the same site for
        the same locale, or for a locale served from the same base url.
        """
        if not node.parent_path:
            return

        root_node_id = node.get_root_node_id()
        model_nodes = node_model.get_nodes(root_node_id, node.revision)
        site = model_nodes.get(root_node_id)
        prefix = PROPERTY_ROUTE + "."

        for key, prop in node.properties.items():
            if not key.startswith(prefix) or not prop.value:
                continue

            locale = key[len(prefix) :]
            route = normalize_route(prop.value)

            errors: dict[str, FieldError] = {}
            for model_node in model_nodes.values():
                if (
                    model_node.id == node.id
                    or not model_node.parent_path
                    or model_node.get_root_node_id() != root_node_id
                ):
                    continue

                for model_key, model_prop in model_node.properties.items():
                    if not model_key.startswith(prefix) or model_prop.value != route:
                        continue

                    model_locale = model_key[len(prefix) :]
                    if model_locale != locale and not self._share_base_url(site, locale, model_locale):
                        continue

                    errors[model_node.id] = FieldError(
                        code="error.route.used.node",
                        message="Route '%route%' is already used by node %node%",
                        parameters={"route": route, "node": model_node.id},
                    )

            if errors:
                exception.add_errors(PROPERTY_ROUTE, list(errors.values()))

            prop.value = route

    @staticmethod
    def _share_base_url(site: Node | None, locale: str, other_locale: str) -> bool:
        get_base_url = getattr(site, "get_base_url", None)
        if get_base_url is None:
            return True
        return get_base_url(locale) == get_base_url(other_locale)

    def validate_home_page(
        self,
        node: Node,
        node_model: "NodeModel",
        exception: ValidationFailedError,
    ) -> None:
        """Allow a single home node per site and keep / for the home node."""
        if not node.parent_path:
            return

        model_nodes = node_model.get_nodes(node.get_root_node_id(), node.revision)
        home_nodes = [
            model_node
            for model_node in model_nodes.values()
            if model_node.type == HomeNode.TYPE_NAME and model_node.id != node.id
        ]
        if not home_nodes:
            return

        home_node = home_nodes[0]
        if node.type == HomeNode.TYPE_NAME:
            exception.add_errors(
                "type",
                [
                    FieldError(
                        code="error.home.used",
                        message="Site already has a home node: %node%",
                        parameters={"node": home_node.id},
                    )
                ],
            )
            return

        for locale, route in node.get_routes().items():
            if normalize_route(route) != "/":
                continue
            exception.add_errors(
                PROPERTY_ROUTE,
                [
                    FieldError(
                        code="error.route.used.home",
                        message="Route '%route%' is already used by home node %node%",
                        parameters={"route": "/", "node": home_node.id, "locale": locale},
                    )
                ],
            )

    def validate_publication_date(self, node: Node, exception: ValidationFailedError) -> None:
        validate_date_range(
            node.get(PROPERTY_PUBLISH_START, None, False),
            node.get(PROPERTY_PUBLISH_STOP, None, False),
            PROPERTY_PUBLISH_START,
            PROPERTY_PUBLISH_STOP,
            exception,
        )
