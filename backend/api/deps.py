"""
Per-process services shared by the routers, and the helpers routes use to
reach them.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Optional

from fastapi import Request

from config import Settings
from db import CascadeEngine, SQLiteClient, TreeBuilder
from db.sqlite_client import is_valid_id
from errors import Internal, InvalidInput
from integrations import AIClient, PistonClient
from runtime_state import RuntimeState

from .auth import AuthGate


@dataclass
class Services:
    settings: Settings
    store: SQLiteClient
    cascade: CascadeEngine
    tree_builder: TreeBuilder
    runtime: RuntimeState
    piston: PistonClient
    ai: AIClient
    auth_gate: AuthGate

    @classmethod
    def build(cls, settings: Settings, store: SQLiteClient) -> "Services":
        runtime = RuntimeState(settings)
        return cls(
            settings=settings,
            store=store,
            cascade=CascadeEngine(
                store, repath_descendants=settings.repath_descendants_on_rename
            ),
            tree_builder=TreeBuilder(store),
            runtime=runtime,
            piston=PistonClient(settings.piston_api_url, settings.execution_timeout_sec),
            ai=AIClient(settings, runtime.limiters),
            auth_gate=AuthGate(settings.admin_token, settings.owner_id),
        )

    async def run_store(self, operation: Awaitable[Any], *, cascade: bool = False) -> Any:
        """
        Await a store operation under the configured timeout.

        Cascades are shielded: a timed-out request returns an error but the
        cascade already handed to the store runs to completion.
        """
        timeout = (
            self.settings.cascade_timeout_sec if cascade else self.settings.store_timeout_sec
        )
        task = asyncio.ensure_future(operation)
        try:
            return await asyncio.wait_for(
                asyncio.shield(task) if cascade else task, timeout=timeout
            )
        except asyncio.TimeoutError as exc:
            raise Internal(
                f"Store operation timed out after {timeout:g}s", code="STORE_TIMEOUT"
            ) from exc


def get_services(request: Request) -> Services:
    return request.app.state.services


def filter_id(value: Optional[str], field_name: str) -> Optional[str]:
    """Validate an optional ID used as a query filter."""
    if value is None or value == "":
        return None
    if not is_valid_id(value):
        raise InvalidInput(f"Invalid {field_name}")
    return value
