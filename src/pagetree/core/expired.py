"""Expired routes: the old urls of nodes, kept to redirect visitors."""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

import yaml

from pagetree.core.exceptions import NodeIOError
from pagetree.core.models import ExpiredRoute

logger = logging.getLogger(__name__)


class ExpiredRouteIO(ABC):
    """Abstract base class for the storage of expired routes."""

    @abstractmethod
    def get_expired_routes(self, site_id: str) -> list[ExpiredRoute]:
        ...

    @abstractmethod
    def set_expired_routes(self, site_id: str, routes: list[ExpiredRoute]) -> None:
        """Replace the expired routes of a site."""
        ...


class MemoryExpiredRouteIO(ExpiredRouteIO):
    def __init__(self):
        self.routes: dict[str, list[ExpiredRoute]] = {}

    def get_expired_routes(self, site_id: str) -> list[ExpiredRoute]:
        return list(self.routes.get(site_id, []))

    def set_expired_routes(self, site_id: str, routes: list[ExpiredRoute]) -> None:
        self.routes[site_id] = list(routes)


class YamlExpiredRouteIO(ExpiredRouteIO):
    """Expired routes in one YAML file per site: <base>/<site>/expired.yaml."""

    FILE_NAME = "expired.yaml"

    def __init__(self, base_path: Path):
        self.base_path = Path(base_path)

    def _get_path(self, site_id: str) -> Path:
        return self.base_path / site_id / self.FILE_NAME

    def get_expired_routes(self, site_id: str) -> list[ExpiredRoute]:
        path = self._get_path(site_id)
        if not path.exists():
            return []

        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
        except yaml.YAMLError as exc:
            logger.warning("Skipping unparseable expired routes file %s: %s", path, exc)
            return []
        except OSError as exc:
            raise NodeIOError(f"Could not read {path}: {exc}") from exc

        routes = []
        for item in data or []:
            if not isinstance(item, dict) or not item.get("node") or not item.get("path"):
                logger.warning("Skipping invalid expired route in %s: %r", path, item)
                continue
            routes.append(
                ExpiredRoute(
                    node=str(item["node"]),
                    locale=str(item.get("locale") or ""),
                    path=str(item["path"]),
                    base_url=item.get("base") or None,
                )
            )

        return routes

    def set_expired_routes(self, site_id: str, routes: list[ExpiredRoute]) -> None:
        data: list[dict[str, Any]] = []
        for route in routes:
            item = {"node": route.node, "locale": route.locale, "path": route.path}
            if route.base_url:
                item["base"] = route.base_url
            data.append(item)

        path = self._get_path(site_id)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(
                yaml.safe_dump(data, default_flow_style=False, sort_keys=False, allow_unicode=True),
                encoding="utf-8",
            )
        except OSError as exc:
            raise NodeIOError(f"Could not write {path}: {exc}") from exc


class ExpiredRouteModel:
    """Keeps the expired routes of the sites, loading each site once."""

    def __init__(self, io: ExpiredRouteIO):
        self.io = io
        self.routes: dict[str, list[ExpiredRoute]] = {}

    def get_expired_routes(self, site_id: str) -> list[ExpiredRoute]:
        if site_id not in self.routes:
            self.routes[site_id] = self.io.get_expired_routes(site_id)
        return list(self.routes[site_id])

    def add_expired_route(
        self,
        site_id: str,
        node_id: str,
        locale: str,
        path: str,
        base_url: str | None = None,
    ) -> None:
        """Add an expired route, unless the same route is already there."""
        route = ExpiredRoute(node=node_id, locale=locale, path=path, base_url=base_url or None)

        routes = self.get_expired_routes(site_id)
        if route in routes:
            return

        routes.append(route)
        self._set_expired_routes(site_id, routes)
        logger.debug("Expired route %s of node %s (%s) in site %s", path, node_id, locale, site_id)

    def remove_expired_routes_by_path(self, site_id: str, path: str) -> None:
        routes = self.get_expired_routes(site_id)
        kept = [route for route in routes if route.path != path]
        if len(kept) != len(routes):
            self._set_expired_routes(site_id, kept)

    def remove_expired_routes_by_node(self, site_id: str, node_ids: str | list[str]) -> None:
        if isinstance(node_ids, str):
            node_ids = [node_ids]

        routes = self.get_expired_routes(site_id)
        kept = [route for route in routes if route.node not in node_ids]
        if len(kept) != len(routes):
            self._set_expired_routes(site_id, kept)

    def _set_expired_routes(self, site_id: str, routes: list[ExpiredRoute]) -> None:
        self.routes[site_id] = routes
        self.io.set_expired_routes(site_id, routes)
