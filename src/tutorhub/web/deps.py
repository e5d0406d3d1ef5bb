"""Request-scoped dependencies shared by the route modules."""

from __future__ import annotations

from typing import Any, Callable

from fastapi import Depends, Header, Query, Request

from tutorhub.config.app_config import AppConfig
from tutorhub.core.auth import ADMIN, Principal, authenticate, authorize
from tutorhub.db.database import Database
from tutorhub.db.listing import Page
from tutorhub.db.query_builder import PageRequest, SortRequest


def get_database(request: Request) -> Database:
    return request.app.state.database


def get_config(request: Request) -> AppConfig:
    return request.app.state.config


def get_principal(
    authorization: str | None = Header(default=None),
    config: AppConfig = Depends(get_config),
) -> Principal:
    """Resolve the bearer token; raises UnauthorizedError (401) otherwise."""
    return authenticate(authorization, config.auth)


def require_roles(*roles: str) -> Callable[..., Principal]:
    """Dependency factory: the caller must hold one of `roles`."""

    def dependency(principal: Principal = Depends(get_principal)) -> Principal:
        authorize(principal, roles)
        return principal

    return dependency


require_admin = require_roles(ADMIN)


def get_page(
    page: str | None = Query(default=None),
    limit: str | None = Query(default=None),
    config: AppConfig = Depends(get_config),
) -> PageRequest:
    """Raw page/limit query values, validated by the builder's rules."""
    return PageRequest.parse(page, limit, max_limit=config.pagination.max_limit)


def get_sort(
    sort_by: str | None = Query(default=None, alias="sortBy"),
    order: str | None = Query(default=None),
) -> SortRequest:
    return SortRequest(field=sort_by, direction=order)


def listing(page: Page, key: str, **extra: Any) -> dict[str, Any]:
    """Shape a `Page` as `{key: rows, pagination, **extra}`."""
    data = {key: page.items, "pagination": page.pagination()}
    if page.summary:
        data["summary"] = page.summary
    data.update(extra)
    return data
