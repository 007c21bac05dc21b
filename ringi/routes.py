"""Approval route lookup, resolution and administration."""

from __future__ import annotations

import logging
from typing import List, Optional

from .contracts import ApprovalRoute, RouteStep
from .errors import NoRoutesConfigured, RouteNotFound, ValidationError
from .persistence import WorkflowRepository

logger = logging.getLogger(__name__)


def _clean_approvers(approver_ids: List[str]) -> List[str]:
    cleaned = [a.strip() for a in approver_ids if a and a.strip()]
    if not cleaned:
        raise ValidationError("An approval route needs at least one approver")
    return cleaned


class RouteService:
    """Access to the approval route store."""

    def __init__(self, repository: WorkflowRepository) -> None:
        self._repository = repository

    async def list_routes(self) -> List[ApprovalRoute]:
        return await self._repository.list_routes()

    async def get_route(self, route_id: str) -> ApprovalRoute:
        route = await self._repository.get_route(route_id)
        if route is None:
            raise RouteNotFound(route_id=route_id)
        return route

    async def get_route_by_name(self, name: str) -> ApprovalRoute:
        route = await self._repository.get_route_by_name(name)
        if route is None:
            raise RouteNotFound(name=name)
        return route

    async def resolve_route(
        self, required_route_name: Optional[str] = None
    ) -> ApprovalRoute:
        """Pick the route a new application should use.

        A required name must exist; a missing named route is an admin
        misconfiguration and raises ``RouteNotFound``. Without a name the
        first route in store order is used. An empty catalog raises
        ``NoRoutesConfigured``.
        """
        if required_route_name:
            route = await self._repository.get_route_by_name(required_route_name)
            if route is None:
                logger.warning(f"Required approval route '{required_route_name}' is missing")
                raise RouteNotFound(name=required_route_name)
            return route

        routes = await self._repository.list_routes()
        if not routes:
            raise NoRoutesConfigured()
        return routes[0]

    # ------------------------------------------------------------------
    async def create_route(self, name: str, approver_ids: List[str]) -> ApprovalRoute:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Route name must not be empty")
        if await self._repository.get_route_by_name(name) is not None:
            raise ValidationError(f"An approval route named '{name}' already exists")
        route = ApprovalRoute.from_approvers(name, _clean_approvers(approver_ids))
        await self._repository.save_route(route)
        logger.info(f"Created approval route {route.id} '{name}' with {len(route.steps)} steps")
        return route

    async def update_route(
        self,
        route_id: str,
        name: Optional[str] = None,
        approver_ids: Optional[List[str]] = None,
    ) -> ApprovalRoute:
        """Rename a route or replace its steps.

        In-flight applications keep the approver list captured when they
        were submitted.
        """
        route = await self.get_route(route_id)
        if name is not None:
            name = name.strip()
            if not name:
                raise ValidationError("Route name must not be empty")
            other = await self._repository.get_route_by_name(name)
            if other is not None and other.id != route_id:
                raise ValidationError(f"An approval route named '{name}' already exists")
            route.name = name
        if approver_ids is not None:
            route.steps = [RouteStep(approver_id=a) for a in _clean_approvers(approver_ids)]
        await self._repository.save_route(route)
        logger.info(f"Updated approval route {route_id}")
        return route

    async def delete_route(self, route_id: str) -> None:
        if not await self._repository.delete_route(route_id):
            raise RouteNotFound(route_id=route_id)
        logger.info(f"Deleted approval route {route_id}")
