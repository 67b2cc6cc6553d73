"""Unit tests for the content mappers and the content facade."""

import pytest

from pagetree.core.content import (
    ContentFacade,
    ContentMapper,
    DictContentMapperIO,
    NodeContentMapper,
    SearchableContentMapper,
)
from pagetree.core.exceptions import CmsError, MapperNotFoundError, NodeNotFoundError
from pagetree.core.models import Content, ContentResult
from pagetree.core.node_model import NodeModel
from pagetree.core.node_type import create_default_node_type_manager
from pagetree.core.storage import MemoryNodeIO
from pagetree.core.validator import GenericNodeValidator
from pagetree.main import create_content_facade


class ArticleMapper(SearchableContentMapper):
    """Content mapper over a list of article titles."""

    def __init__(self, titles):
        self.titles = titles

    def get_content(self, site, locale, data):
        if data not in self.titles:
            return None
        return Content(type="article", title=data, url=f"{self.base_script or ''}/articles/{data.lower()}")

    def search_content(self, site, locale, query, query_tokens, page=None, page_items=None):
        matches = [
            self.get_content(site, locale, title)
            for title in self.titles
            if any(token.lower() in title.lower() for token in query_tokens)
        ]
        total = len(matches)
        if page and page_items:
            matches = matches[(page - 1) * page_items : page * page_items]
        return ContentResult(matches, total)


class CountingMapperIO(DictContentMapperIO):
    def __init__(self, mappers=None):
        super().__init__(mappers)
        self.lookups = 0

    def get_content_mapper(self, content_type):
        self.lookups += 1
        return super().get_content_mapper(content_type)


@pytest.fixture
def model():
    manager = create_default_node_type_manager()
    return NodeModel(manager, MemoryNodeIO(manager), GenericNodeValidator())


@pytest.fixture
def site(model):
    site = model.create_node("site")
    site.set_name("en", "Site")
    site.set_auto_publish(True)
    model.set_node(site)

    about = model.create_node("page", site)
    about.set_name("en", "About")
    about.set_route("en", "/about")
    about.set_description("en", "Who we are")
    model.set_node(about)

    return site


# ============================================================
# ContentFacade
# ============================================================


class TestContentFacade:
    def test_add_content_mapper_sets_base_url(self):
        facade = ContentFacade("http://example.com", "http://example.com/index.php")
        mapper = ArticleMapper(["News"])
        facade.add_content_mapper("article", mapper)

        assert facade.get_content_mapper("article") is mapper
        assert mapper.base_url == "http://example.com"
        assert mapper.base_script == "http://example.com/index.php"

    @pytest.mark.parametrize("content_type", ["", None, 5])
    def test_invalid_type(self, content_type):
        with pytest.raises(CmsError) as exc_info:
            ContentFacade("", "").get_content_mapper(content_type)
        assert exc_info.type is CmsError

    def test_unknown_type(self):
        with pytest.raises(MapperNotFoundError) as exc_info:
            ContentFacade("", "").get_content_mapper("article")
        assert exc_info.value.content_type == "article"

    def test_mapper_from_io_is_cached(self):
        io = CountingMapperIO({"article": ArticleMapper(["News"])})
        facade = ContentFacade("", "/web")
        facade.add_content_mapper_io(io)

        mapper = facade.get_content_mapper("article")
        assert facade.get_content_mapper("article") is mapper
        assert io.lookups == 1
        assert mapper.base_script == "/web"

    def test_first_provider_wins(self):
        first = ArticleMapper(["First"])
        second = ArticleMapper(["Second"])
        facade = ContentFacade("", "")
        facade.add_content_mapper_io(DictContentMapperIO({"article": first}))
        facade.add_content_mapper_io(DictContentMapperIO({"article": second, "news": second}))

        assert facade.get_content_mapper("article") is first
        assert facade.get_content_mappers() == {"article": first, "news": second}

    def test_added_mapper_wins_over_providers(self):
        added = ArticleMapper(["Added"])
        facade = ContentFacade("", "")
        facade.add_content_mapper_io(DictContentMapperIO({"article": ArticleMapper(["Io"])}))
        facade.add_content_mapper("article", added)

        assert facade.get_content_mappers()["article"] is added

    def test_set_content_mapper_on_io(self):
        io = DictContentMapperIO()
        mapper = ArticleMapper(["News"])
        io.set_content_mapper("article", mapper)
        assert io.get_content_mapper("article") is mapper
        assert io.get_content_mapper("news") is None


# ============================================================
# Mappers
# ============================================================


class TestContentMapper:
    def test_shortcuts(self):
        mapper = ArticleMapper(["News"])
        mapper.base_script = "/web"
        assert mapper.get_type("site", "en", "News") == "article"
        assert mapper.get_title("site", "en", "News") == "News"
        assert mapper.get_url("site", "en", "News") == "/web/articles/news"
        assert mapper.get_teaser("site", "en", "News") is None
        assert mapper.get_title("site", "en", "Sports") is None

    def test_is_abstract(self):
        with pytest.raises(TypeError):
            ContentMapper()

    def test_search(self):
        mapper = ArticleMapper(["News", "Old news", "Sports"])
        result = mapper.search_content("site", "en", "news", ["news"], page=2, page_items=1)
        assert result.num_results == 1
        assert result.total_num_results == 2
        assert [content.title for content in result] == ["Old news"]

    def test_result_without_total(self):
        result = ContentResult([Content(type="article", title="News")])
        assert result.total_num_results == 1


class TestNodeContentMapper:
    def test_content_of_node(self, model, site):
        mapper = NodeContentMapper(model)
        mapper.base_script = "/web"
        about = model.get_node("site", "master", "about")

        content = mapper.get_content("site", "en", about)
        assert content.type == "pageNode"
        assert content.title == "About"
        assert content.url == "/web/about"
        assert content.teaser == "Who we are"
        assert content.date == about.date_modified
        assert content.data is about

    def test_content_by_id_uses_default_revision(self, model, site):
        draft = model.get_node("site", "draft", "about")
        draft.set_name("en", "Draft name")
        model.set_node(draft, auto_publish=False)

        content = NodeContentMapper(model).get_content("site", "en", "about")
        assert content.title == "About"

    def test_site_base_url(self, model, site):
        site.set_base_url("en", "http://example.com")
        model.set_node(site)

        content = NodeContentMapper(model).get_content("site", "en", "about")
        assert content.url == "http://example.com/about"

    def test_title_falls_back_to_id(self, model, site):
        page = model.create_node("page", site)
        model.set_node(page)

        content = NodeContentMapper(model).get_content("site", "nl", page.id)
        assert content.title == page.id

    def test_node_of_other_site(self, model, site):
        about = model.get_node("site", "master", "about")
        assert NodeContentMapper(model).get_content("other", "en", about) is None

    def test_unknown_node(self, model, site):
        with pytest.raises(NodeNotFoundError):
            NodeContentMapper(model).get_content("site", "en", "ghost")

    def test_wired_facade(self, model, site):
        facade = create_content_facade(model, "http://example.com", "/web")
        mapper = facade.get_content_mapper("pageNode")
        assert isinstance(mapper, NodeContentMapper)
        assert facade.get_content_mapper("siteNode") is mapper
        assert mapper.get_url("site", "en", "about") == "/web/about"
