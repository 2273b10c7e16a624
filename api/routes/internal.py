"""
api/routes/internal.py -- Protected /internal/* pages and their route table.

The pages themselves hold no auth logic. Access control comes entirely from
the GatePolicy attached to each row of the route table, which is built once
at startup from Settings:

    path                   page         policy
    /internal/dashboard    dashboard    SESSION
    /internal/settings     settings     SESSION
    /internal/reports      reports      SESSION  (BYPASS when VULN_MODE names it)

Fault injection therefore changes a policy value in one row, never which
routes exist or how they are registered.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from fastapi import APIRouter, Depends

from api.models import PageResponse
from auth.dependencies import GatePolicy, session_gate
from auth.models import Session
from core.config import PROTECTED_ROUTES, Settings


@dataclass(frozen=True)
class ProtectedRoute:
    path: str
    page: str
    policy: GatePolicy


def build_route_table(settings: Settings) -> list[ProtectedRoute]:
    """Return one row per protected page with the gate policy it runs under."""
    table: list[ProtectedRoute] = []
    for path in PROTECTED_ROUTES:
        bypass = settings.vuln_mode and path == settings.vuln_route
        table.append(
            ProtectedRoute(
                path=path,
                page=path.rsplit("/", 1)[-1],
                policy=GatePolicy.BYPASS if bypass else GatePolicy.SESSION,
            )
        )
    return table


def _page_handler(route: ProtectedRoute) -> Callable[..., PageResponse]:
    gate = session_gate(route.policy)

    def page(session: Session | None = Depends(gate)) -> PageResponse:
        return PageResponse(
            page=route.page,
            user=session.username if session else None,
            user_id=session.user_id if session else None,
        )

    page.__name__ = f"internal_{route.page}"
    return page


def build_router(table: list[ProtectedRoute]) -> APIRouter:
    router = APIRouter()
    for route in table:
        router.add_api_route(
            route.path,
            _page_handler(route),
            methods=["GET"],
            response_model=PageResponse,
            name=f"internal_{route.page}",
        )
    return router
