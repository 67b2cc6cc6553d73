"""Content mappers: generic descriptions of content items.

A content mapper turns a data item of its type into a Content record with a
title, url, teaser, image and date. The ContentFacade locates the mapper for
a type through the registered mapper providers.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING, Any

from pagetree.core.exceptions import CmsError, MapperNotFoundError
from pagetree.core.models import Content, ContentResult
from pagetree.core.node import Node

if TYPE_CHECKING:
    from pagetree.core.node_model import NodeModel

logger = logging.getLogger(__name__)


class ContentMapper(ABC):
    """Abstract base class for a content mapper."""

    base_url: str | None = None
    base_script: str | None = None

    @abstractmethod
    def get_content(self, site: str, locale: str, data: Any) -> Content | None:
        """Get the generic content of a data item. Returns None if not available."""
        ...

    def get_type(self, site: str, locale: str, data: Any) -> str | None:
        content = self.get_content(site, locale, data)
        return content.type if content else None

    def get_title(self, site: str, locale: str, data: Any) -> str | None:
        content = self.get_content(site, locale, data)
        return content.title if content else None

    def get_teaser(self, site: str, locale: str, data: Any) -> str | None:
        content = self.get_content(site, locale, data)
        return content.teaser if content else None

    def get_url(self, site: str, locale: str, data: Any) -> str | None:
        content = self.get_content(site, locale, data)
        return content.url if content else None

    def get_image(self, site: str, locale: str, data: Any) -> str | None:
        content = self.get_content(site, locale, data)
        return content.image if content else None

    def get_date(self, site: str, locale: str, data: Any) -> datetime | None:
        content = self.get_content(site, locale, data)
        return content.date if content else None


class SearchableContentMapper(ContentMapper):
    """Content mapper which can search its content."""

    @abstractmethod
    def search_content(
        self,
        site: str,
        locale: str,
        query: str,
        query_tokens: list[str],
        page: int | None = None,
        page_items: int | None = None,
    ) -> ContentResult:
        """Search the content of this mapper.

        Args:
            site: Id of the site.
            locale: Code of the locale.
            query: Full search query.
            query_tokens: Tokens of the query.
            page: Number of the result page, starting at 1.
            page_items: Number of items per page.
        """
        ...


class AbstractContentMapper(ContentMapper):
    """Content mapper with access to the node model."""

    def __init__(self, node_model: "NodeModel"):
        self.node_model = node_model


class NodeContentMapper(AbstractContentMapper):
    """Content of the nodes themselves, type ``<node type>Node``."""

    def get_content(self, site: str, locale: str, data: Node | str) -> Content | None:
        if not isinstance(data, Node):
            data = self.node_model.get_node(site, self.node_model.default_revision, data)

        if data.get_root_node_id() != site:
            return None

        return Content(
            type=data.type + "Node",
            title=data.get_name(locale) or data.id,
            url=data.get_url(locale, self.base_script or ""),
            teaser=data.get_description(locale),
            image=data.get_image(locale),
            date=data.date_modified,
            data=data,
        )


class ContentMapperIO(ABC):
    """Abstract base class for a provider of content mappers."""

    @abstractmethod
    def get_content_mapper(self, content_type: str) -> ContentMapper | None:
        """Get the mapper of a content type. Returns None if not available."""
        ...

    @abstractmethod
    def get_content_mappers(self) -> dict[str, ContentMapper]:
        """Get all mappers of this provider, keyed by content type."""
        ...


class DictContentMapperIO(ContentMapperIO):
    """Content mapper provider backed by a dictionary."""

    def __init__(self, mappers: dict[str, ContentMapper] | None = None):
        self.mappers: dict[str, ContentMapper] = dict(mappers or {})

    def set_content_mapper(self, content_type: str, mapper: ContentMapper) -> None:
        self.mappers[content_type] = mapper

    def get_content_mapper(self, content_type: str) -> ContentMapper | None:
        return self.mappers.get(content_type)

    def get_content_mappers(self) -> dict[str, ContentMapper]:
        return dict(self.mappers)


class ContentFacade:
    """Registry resolving content types to their mapper.

    Mappers are looked up through the providers on first use and kept by
    type afterwards.
    """

    def __init__(self, base_url: str, base_script: str):
        self.base_url = base_url
        self.base_script = base_script
        self.io: list[ContentMapperIO] = []
        self.mappers: dict[str, ContentMapper] = {}

    def _prepare(self, mapper: ContentMapper) -> ContentMapper:
        mapper.base_url = self.base_url
        mapper.base_script = self.base_script
        return mapper

    def add_content_mapper(self, content_type: str, mapper: ContentMapper) -> None:
        self.mappers[content_type] = self._prepare(mapper)

    def add_content_mapper_io(self, io: ContentMapperIO) -> None:
        self.io.append(io)

    def get_content_mapper(self, content_type: str) -> ContentMapper:
        """Get the mapper of a content type. Raises MapperNotFoundError if not found."""
        if not isinstance(content_type, str) or not content_type:
            raise CmsError("Could not get content mapper: provided type is empty or not a string")

        if content_type in self.mappers:
            return self.mappers[content_type]

        for io in self.io:
            mapper = io.get_content_mapper(content_type)
            if mapper is None:
                continue

            self.mappers[content_type] = self._prepare(mapper)
            logger.debug("Resolved content mapper for %s", content_type)
            return mapper

        raise MapperNotFoundError(content_type)

    def get_content_mappers(self) -> dict[str, ContentMapper]:
        """Get the mappers of all providers. The first provider of a type wins."""
        mappers = dict(self.mappers)
        for io in self.io:
            for content_type, mapper in io.get_content_mappers().items():
                if content_type not in mappers:
                    mappers[content_type] = self._prepare(mapper)

        self.mappers = mappers
        return dict(mappers)
