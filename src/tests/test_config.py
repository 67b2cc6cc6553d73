"""Unit tests for application configuration."""

import logging
from pathlib import Path
from unittest.mock import patch

from pagetree.config import Settings
from pagetree.core.expired import ExpiredRouteModel
from pagetree.core.nodes import SiteNode
from pagetree.core.storage import MemoryNodeIO, YamlNodeIO
from pagetree.main import configure_logging, create_node_io, create_node_model, create_node_type_manager


class TestSettings:
    def test_defaults(self):
        with patch.dict("os.environ", {}, clear=True):
            s = Settings(_env_file=None)
            assert s.data_dir == Path("data/nodes")
            assert s.debug is False
            assert s.default_revision == "master"
            assert s.draft_revision == "draft"
            assert s.default_locale == "en"
            assert s.default_theme is None
            assert s.widget_id_offset == 0
            assert s.trash_name == "_trash"
            assert s.expired_routes is True
            assert s.markdown is False

    def test_from_env(self):
        env = {
            "PAGETREE_DATA_DIR": "/tmp/nodes",
            "PAGETREE_DEBUG": "true",
            "PAGETREE_DEFAULT_REVISION": "live",
            "PAGETREE_DRAFT_REVISION": "work",
            "PAGETREE_DEFAULT_THEME": "bootstrap",
            "PAGETREE_WIDGET_ID_OFFSET": "1000",
            "PAGETREE_EXPIRED_ROUTES": "false",
            "PAGETREE_MARKDOWN": "true",
        }
        with patch.dict("os.environ", env, clear=True):
            s = Settings(_env_file=None)
            assert s.data_dir == Path("/tmp/nodes")
            assert s.debug is True
            assert s.default_revision == "live"
            assert s.draft_revision == "work"
            assert s.default_theme == "bootstrap"
            assert s.widget_id_offset == 1000
            assert s.expired_routes is False
            assert s.markdown is True

    def test_debug_false_values(self):
        with patch.dict("os.environ", {"PAGETREE_DEBUG": "false"}, clear=True):
            s = Settings(_env_file=None)
            assert s.debug is False


# ============================================================
# Wiring
# ============================================================


class TestWiring:
    def test_node_type_manager_uses_default_theme(self):
        with patch.dict("os.environ", {"PAGETREE_DEFAULT_THEME": "dark"}, clear=True):
            s = Settings(_env_file=None)
        site = create_node_type_manager(s).get_node_type(SiteNode.TYPE_NAME).create_node()
        assert site.get_theme() == "dark"

    def test_node_io_in_data_dir(self, tmp_path):
        with patch.dict("os.environ", {"PAGETREE_DATA_DIR": str(tmp_path / "nodes")}, clear=True):
            s = Settings(_env_file=None)
        io = create_node_io(s)
        assert isinstance(io, YamlNodeIO)
        assert io.base_path == tmp_path / "nodes"
        assert io.trash_name == "_trash"
        assert isinstance(io.expired_route_model, ExpiredRouteModel)
        assert io.expired_route_model.io.base_path == tmp_path / "nodes"

    def test_node_io_without_expired_routes(self, tmp_path):
        env = {"PAGETREE_DATA_DIR": str(tmp_path), "PAGETREE_EXPIRED_ROUTES": "0"}
        with patch.dict("os.environ", env, clear=True):
            s = Settings(_env_file=None)
        assert create_node_io(s).expired_route_model is None

    def test_node_model_revisions(self):
        with patch.dict("os.environ", {"PAGETREE_DRAFT_REVISION": "work"}, clear=True):
            s = Settings(_env_file=None)
        io = MemoryNodeIO(create_node_type_manager(s))
        model = create_node_model(s, io=io, node_type_manager=io.node_type_manager)
        assert model.io is io
        assert model.default_revision == "master"
        assert model.draft_revision == "work"

    def test_configure_logging_debug(self):
        with patch.dict("os.environ", {"PAGETREE_DEBUG": "true"}, clear=True):
            s = Settings(_env_file=None)
        with patch("logging.basicConfig") as basic_config:
            configure_logging(s)
        assert basic_config.call_args.kwargs["level"] == logging.DEBUG

    def test_configure_logging_info(self):
        with patch.dict("os.environ", {}, clear=True):
            s = Settings(_env_file=None)
        with patch("logging.basicConfig") as basic_config:
            configure_logging(s)
        assert basic_config.call_args.kwargs["level"] == logging.INFO
