"""Wiring of the node model services from the settings."""

import logging

from pagetree.config import Settings, settings as default_settings
from pagetree.core.content import ContentFacade, DictContentMapperIO, NodeContentMapper
from pagetree.core.events import EventManager
from pagetree.core.expired import ExpiredRouteModel, YamlExpiredRouteIO
from pagetree.core.node import Node
from pagetree.core.node_model import NodeModel
from pagetree.core.node_type import NodeTypeManager, create_default_node_type_manager
from pagetree.core.parser import (
    ChainTextParser,
    ContentVariableParser,
    ContextVariableParser,
    MarkdownTextParser,
    NodeVariableParser,
    UrlTextParser,
    VariablesTextParser,
)
from pagetree.core.storage import NodeIO, YamlNodeIO
from pagetree.core.validator import GenericNodeValidator

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(settings: Settings = default_settings) -> None:
    """Log to stderr, at DEBUG level in debug mode."""
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format=LOG_FORMAT,
    )


def create_node_type_manager(settings: Settings = default_settings) -> NodeTypeManager:
    return create_default_node_type_manager(settings.default_theme)


def create_node_io(
    settings: Settings = default_settings,
    node_type_manager: NodeTypeManager | None = None,
) -> NodeIO:
    """Create the YAML node store in the data directory.

    The expired routes are kept next to the nodes of each site unless
    disabled in the settings.
    """
    expired_route_model = None
    if settings.expired_routes:
        expired_route_model = ExpiredRouteModel(YamlExpiredRouteIO(settings.data_dir))

    return YamlNodeIO(
        settings.data_dir,
        node_type_manager or create_node_type_manager(settings),
        default_revision=settings.default_revision,
        trash_name=settings.trash_name,
        widget_id_offset=settings.widget_id_offset,
        expired_route_model=expired_route_model,
    )


def create_node_model(
    settings: Settings = default_settings,
    io: NodeIO | None = None,
    node_type_manager: NodeTypeManager | None = None,
    event_manager: EventManager | None = None,
) -> NodeModel:
    """Create the node model.

    Args:
        settings: Settings to read the revisions and the store from.
        io: Node store to use instead of the YAML store of the settings.
        node_type_manager: Node types, the built in types when not provided.
        event_manager: Receiver of the node action events.
    """
    node_type_manager = node_type_manager or create_node_type_manager(settings)
    if io is None:
        io = create_node_io(settings, node_type_manager)

    logger.debug("Creating node model (%s/%s)", settings.default_revision, settings.draft_revision)

    return NodeModel(
        node_type_manager,
        io,
        GenericNodeValidator(),
        default_revision=settings.default_revision,
        draft_revision=settings.draft_revision,
        event_manager=event_manager,
    )


def create_content_facade(node_model: NodeModel, base_url: str = "", base_script: str = "") -> ContentFacade:
    """Create a content facade providing the content of the nodes."""
    mapper = NodeContentMapper(node_model)
    mappers = {node_type.name + "Node": mapper for node_type in node_model.node_type_manager.get_node_types().values()}

    content_facade = ContentFacade(base_url, base_script)
    content_facade.add_content_mapper_io(DictContentMapperIO(mappers))

    return content_facade


def create_text_parser(
    node_model: NodeModel,
    content_facade: ContentFacade | None = None,
    settings: Settings = default_settings,
) -> ChainTextParser:
    """Create the parser chain for node text: variables first, then urls.

    With markdown enabled in the settings, the text is converted to HTML
    before the variables are resolved.
    """
    variables = VariablesTextParser([NodeVariableParser(node_model), ContextVariableParser()])
    if content_facade is not None:
        variables.add_variable_parser(ContentVariableParser(content_facade))

    text_parsers = [variables, UrlTextParser()]
    if settings.markdown:
        text_parsers.insert(0, MarkdownTextParser())

    return ChainTextParser(text_parsers)


def parse_node_text(
    text_parser: ChainTextParser,
    node: Node,
    text: str | None,
    base_url: str,
    locale: str | None = None,
    settings: Settings = default_settings,
) -> str | None:
    """Parse the text of a node, in the default locale when none is provided."""
    text_parser.prepare(node, locale or settings.default_locale, base_url)
    return text_parser.parse_text(text)
