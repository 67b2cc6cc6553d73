"""Text parsers rewriting the stored rich text of nodes for display.

Parsers run in a chain. Before parsing, every parser receives the node
being rendered, the locale and the base url of the request.
"""

import logging
import re
from abc import ABC, abstractmethod
from collections.abc import Mapping
from datetime import datetime
from typing import TYPE_CHECKING, Any

from bs4 import BeautifulSoup
from markdown import Markdown
from markdown.extensions import Extension
from markdown.inlinepatterns import SimpleTagInlineProcessor

from pagetree.core.exceptions import MapperNotFoundError, NodeNotFoundError
from pagetree.core.node import Node

if TYPE_CHECKING:
    from pagetree.core.content import ContentFacade
    from pagetree.core.node_model import NodeModel

logger = logging.getLogger(__name__)

# Pattern for variables: %node.about.url%
VARIABLE_PATTERN = re.compile(r"%([^%\s]+)%")

# Pattern for strikethrough: ~~text~~
# Group 2 must contain the text (SimpleTagInlineProcessor expectation)
STRIKETHROUGH_PATTERN = r"(~~)(.*?)~~"

VARIABLE_NAME = "name"
VARIABLE_TITLE = "title"
VARIABLE_URL = "url"
VARIABLE_LINK = "link"


class TextParser(ABC):
    """Abstract base class for a text parser."""

    @abstractmethod
    def prepare(
        self,
        node: Node,
        locale: str,
        base_url: str,
        site_url: str | None = None,
    ) -> None:
        """Set the context of the text to parse.

        Args:
            node: Node rendering the text.
            locale: Code of the current locale.
            base_url: Base url of the request, used to resolve relative urls.
            site_url: Base url for node links, the base url when not set.
        """
        ...

    @abstractmethod
    def parse_text(self, text: str | None) -> str | None:
        """Parse the provided text. Empty values are returned as is."""
        ...


class AbstractTextParser(TextParser):
    """Text parser keeping the context of the text."""

    def __init__(self) -> None:
        self.node: Node | None = None
        self.locale: str | None = None
        self.base_url: str = ""
        self.site_url: str | None = None

    def prepare(
        self,
        node: Node,
        locale: str,
        base_url: str,
        site_url: str | None = None,
    ) -> None:
        self.node = node
        self.locale = locale
        self.base_url = base_url
        self.site_url = site_url

    def get_site_url(self) -> str:
        return self.site_url if self.site_url is not None else self.base_url


class ChainTextParser(TextParser):
    """Runs a list of text parsers in order of addition."""

    def __init__(self, text_parsers: list[TextParser] | None = None):
        self.text_parsers: list[TextParser] = list(text_parsers or [])

    def add_text_parser(self, text_parser: TextParser) -> None:
        self.text_parsers.append(text_parser)

    def remove_text_parser(self, text_parser: TextParser) -> None:
        self.text_parsers = [parser for parser in self.text_parsers if parser is not text_parser]

    def prepare(
        self,
        node: Node,
        locale: str,
        base_url: str,
        site_url: str | None = None,
    ) -> None:
        for text_parser in self.text_parsers:
            text_parser.prepare(node, locale, base_url, site_url)

    def parse_text(self, text: str | None) -> str | None:
        for text_parser in self.text_parsers:
            text = text_parser.parse_text(text)
        return text


class VariableParser(ABC):
    """Abstract base class for the resolver of a text variable."""

    text_parser: "VariablesTextParser | None" = None

    @abstractmethod
    def parse_variable(self, variable: str) -> str | None:
        """Resolve a variable. Returns None if this parser can't resolve it."""
        ...


class VariablesTextParser(AbstractTextParser):
    """Replaces %variable% tokens through a chain of variable parsers.

    The first parser returning a value wins. Unresolved tokens are kept
    verbatim so a broken variable never breaks the rendering.
    """

    def __init__(self, variable_parsers: list[VariableParser] | None = None):
        super().__init__()
        self.variable_parsers: list[VariableParser] = []
        for variable_parser in variable_parsers or []:
            self.add_variable_parser(variable_parser)

    def add_variable_parser(self, variable_parser: VariableParser) -> None:
        variable_parser.text_parser = self
        self.variable_parsers.append(variable_parser)

    def remove_variable_parser(self, variable_parser: VariableParser) -> None:
        self.variable_parsers = [
            parser for parser in self.variable_parsers if parser is not variable_parser
        ]

    def parse_text(self, text: str | None) -> str | None:
        if not text or not isinstance(text, str):
            return text

        def replace_match(m: re.Match) -> str:
            value = self.get_parsed_variable(m.group(1))
            if value is None:
                return m.group(0)
            return str(value)

        return VARIABLE_PATTERN.sub(replace_match, text)

    def get_parsed_variable(self, variable: str) -> Any:
        for variable_parser in self.variable_parsers:
            value = variable_parser.parse_variable(variable)
            if value is not None:
                return value

        logger.debug("Unresolved text variable %s", variable)
        return None


class UrlTextParser(AbstractTextParser):
    """Makes the urls of anchors and images absolute."""

    ATTRIBUTES = (("a", "href"), ("img", "src"))

    def parse_text(self, text: str | None) -> str | None:
        if not text or not isinstance(text, str) or self.node is None:
            return text

        soup = BeautifulSoup(text, "html.parser")

        changed = False
        for tag_name, attribute in self.ATTRIBUTES:
            for element in soup.find_all(tag_name):
                url = element.get(attribute)
                if not url:
                    continue

                resolved = self.node.resolve_url(self.locale or "", self.base_url, url)
                if resolved != url:
                    element[attribute] = resolved
                    changed = True

        if not changed:
            return text

        return str(soup)


class StrikethroughExtension(Extension):
    """Markdown extension for ~~strikethrough~~ text."""

    def extendMarkdown(self, md: Markdown) -> None:
        md.inlinePatterns.register(
            SimpleTagInlineProcessor(STRIKETHROUGH_PATTERN, "del"),
            "strikethrough",
            50,
        )


def create_markdown() -> Markdown:
    """Create the Markdown converter used for node text."""
    return Markdown(
        extensions=[
            "extra",  # Includes: abbreviations, attr_list, def_list, fenced_code, footnotes, md_in_html, tables
            "sane_lists",
            "pymdownx.tasklist",  # Task lists with checkboxes
            StrikethroughExtension(),  # ~~strikethrough~~
        ]
    )


class MarkdownTextParser(AbstractTextParser):
    """Converts Markdown text into HTML."""

    def __init__(self) -> None:
        super().__init__()
        self.markdown = create_markdown()

    def parse_text(self, text: str | None) -> str | None:
        if not text or not isinstance(text, str):
            return text

        self.markdown.reset()
        return self.markdown.convert(text)


class AbstractVariableParser(VariableParser):
    """Variable parser with helpers to reach the text context."""

    def _get_node(self) -> Node | None:
        return self.text_parser.node if self.text_parser else None

    def _get_locale(self, tokens: list[str], index: int) -> str | None:
        if len(tokens) > index:
            return tokens[index]
        return self.text_parser.locale if self.text_parser else None

    def _get_site_url(self) -> str:
        return self.text_parser.get_site_url() if self.text_parser else ""


class NodeVariableParser(AbstractVariableParser):
    """Resolves variables of the node tree.

    Supported variables:
        year
        node.<id>.<name|url|link>[.<locale>]
        page.<site>.<id>.<name|url|link>[.<locale>]
        site.<name|url|link>[.<locale>]
    """

    def __init__(self, node_model: "NodeModel"):
        self.node_model = node_model

    def parse_variable(self, variable: str) -> str | None:
        tokens = variable.split(".")
        self_node = self._get_node()

        if tokens[0] == "year":
            if len(tokens) != 1:
                return None
            return str(datetime.now().year)

        if self_node is None:
            return None

        if tokens[0] == "node":
            if len(tokens) < 3:
                return None
            node = self._load_node(self_node.get_root_node_id(), self_node, tokens[1])
            locale = self._get_locale(tokens, 3)
            name = tokens[2]
        elif tokens[0] == "page":
            if len(tokens) < 4:
                return None
            node = self._load_node(tokens[1], self_node, tokens[2])
            locale = self._get_locale(tokens, 4)
            name = tokens[3]
        elif tokens[0] == "site":
            if len(tokens) < 2:
                return None
            node = self_node.get_root_node()
            locale = self._get_locale(tokens, 2)
            name = tokens[1]
        else:
            return None

        if node is None or locale is None:
            return None

        if name == VARIABLE_URL:
            return node.get_url(locale, self._get_site_url())
        if name == VARIABLE_NAME:
            return node.get_name(locale)
        if name == VARIABLE_LINK:
            return f'<a href="{node.get_url(locale, self._get_site_url())}">{node.get_name(locale)}</a>'

        return None

    def _load_node(self, site_id: str, self_node: Node, node_id: str) -> Node | None:
        revision = self_node.revision or self.node_model.default_revision
        try:
            return self.node_model.get_node(site_id, revision, node_id)
        except NodeNotFoundError:
            return None


class ContextVariableParser(AbstractVariableParser):
    """Resolves context.<key>[.<attribute>...] against the runtime context of the node."""

    def parse_variable(self, variable: str) -> Any:
        tokens = variable.split(".")
        if tokens[0] != "context" or len(tokens) < 2:
            return None

        node = self._get_node()
        if node is None:
            return None

        value = node.get_context(tokens[1])
        for token in tokens[2:]:
            if value is None:
                break
            if isinstance(value, Mapping):
                value = value.get(token)
            else:
                value = getattr(value, token, None)

        return value


class ContentVariableParser(AbstractVariableParser):
    """Resolves content.<type>.<id>.<title|url|link> through the content mappers."""

    def __init__(self, content_facade: "ContentFacade"):
        self.content_facade = content_facade

    def parse_variable(self, variable: str) -> str | None:
        tokens = variable.split(".")
        if len(tokens) != 4 or tokens[0] != "content":
            return None

        node = self._get_node()
        locale = self._get_locale(tokens, 4)
        if node is None or locale is None:
            return None

        try:
            content_mapper = self.content_facade.get_content_mapper(tokens[1])
            content = content_mapper.get_content(node.get_root_node_id(), locale, tokens[2])
        except (MapperNotFoundError, NodeNotFoundError):
            return None

        if content is None:
            return None

        if tokens[3] == VARIABLE_URL:
            return content.url
        if tokens[3] == VARIABLE_TITLE:
            return content.title
        if tokens[3] == VARIABLE_LINK:
            return f'<a href="{content.url}">{content.title}</a>'

        return None
