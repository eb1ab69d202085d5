"""
Connection context management for tenantry.

A :class:`ConnectionContext` describes which tenant a database session
currently resolves against and the full search path that follows from it.
Contexts are immutable values: switching produces a new context, and an
adapter only adopts it once the session has accepted it. A context that
was never pushed to a session has no effect.

Key Features:
    - Deterministic resolution order with persistent scopes
    - Guaranteed-restore scope for running work under a tenant
    - Decorator and helper forms of the same scope

Example:
    from tenantry.multitenancy.context import TenantScope

    async with TenantScope(adapter, "acme"):
        await session.execute("SELECT * FROM invoices")
    # the previous tenant is active again here, even after an exception
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Awaitable, Callable, TypeVar
import functools
import logging

from tenantry.multitenancy.errors import TenantNotFound
from tenantry.multitenancy.identifiers import render_search_path

if TYPE_CHECKING:
    from tenantry.multitenancy.adapters import TenantAdapter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConnectionContext:
    """The resolution context of one database session.

    Attributes:
        default_scope: Schema (or database) used when no tenant is active.
        persistent_scopes: Schemas that always follow the active tenant
            in the resolution order.
        current_tenant: The active tenant, or None for the default context.
    """

    default_scope: str
    persistent_scopes: tuple[str, ...] = field(default_factory=tuple)
    current_tenant: str | None = None

    @property
    def is_default(self) -> bool:
        """True when no tenant is active."""
        return self.current_tenant is None

    @property
    def head(self) -> str:
        """The first entry of the resolution order."""
        return self.current_tenant if self.current_tenant is not None else self.default_scope

    @property
    def resolution_order(self) -> tuple[str, ...]:
        """``[current_tenant or default_scope] ++ persistent_scopes``.

        Persistent entries equal to the head, and repeated persistent
        entries, are dropped so the head appears exactly once.
        """
        order = [self.head]
        for scope in self.persistent_scopes:
            if scope not in order:
                order.append(scope)
        return tuple(order)

    @property
    def search_path(self) -> str:
        """The resolution order rendered as quoted, comma-separated identifiers."""
        return render_search_path(self.resolution_order)

    def with_tenant(self, tenant: str | None) -> "ConnectionContext":
        """Return a copy of this context with ``tenant`` active."""
        return replace(self, current_tenant=tenant)

    def reset(self) -> "ConnectionContext":
        """Return a copy of this context with no tenant active."""
        return replace(self, current_tenant=None)


class TenantScope:
    """Async context manager that runs a block with a tenant active.

    On entry the adapter switches to the tenant; on exit the previous
    context is restored whether the block finished, raised, or was
    cancelled. If the previous tenant no longer exists by then, the
    adapter is reset to the default context instead.

    Example:
        async with TenantScope(adapter, "acme") as scope:
            assert adapter.current_tenant() == "acme"
    """

    def __init__(self, adapter: "TenantAdapter", tenant: str | None):
        self._adapter = adapter
        self._tenant = tenant
        self._previous: ConnectionContext | None = None

    @property
    def tenant(self) -> str | None:
        """The tenant this scope activates."""
        return self._tenant

    async def __aenter__(self) -> "TenantScope":
        self._previous = self._adapter.context
        await self._adapter.switch(self._tenant)
        logger.debug(f"Entered tenant scope: {self._tenant}")
        return self

    async def __aexit__(
        self,
        exc_type: type | None,
        exc_val: BaseException | None,
        exc_tb: Any | None,
    ) -> None:
        previous = self._previous
        self._previous = None
        if previous is None or previous.is_default:
            await self._adapter.reset()
        else:
            try:
                await self._adapter.switch(previous.current_tenant)
            except TenantNotFound:
                logger.warning(
                    f"Previous tenant {previous.current_tenant!r} is gone, "
                    "resetting to the default context"
                )
                await self._adapter.reset()
        logger.debug(f"Exited tenant scope: {self._tenant}")


T = TypeVar("T")
F = TypeVar("F", bound=Callable[..., Awaitable[Any]])


def with_tenant(adapter: "TenantAdapter", tenant: str) -> Callable[[F], F]:
    """Decorator that runs a coroutine function inside a :class:`TenantScope`.

    Example:
        @with_tenant(adapter, "acme")
        async def count_invoices():
            ...
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            async with TenantScope(adapter, tenant):
                return await func(*args, **kwargs)

        return wrapper  # type: ignore

    return decorator


async def run_with_tenant(
    adapter: "TenantAdapter",
    tenant: str,
    operation: Callable[[], Awaitable[T]],
) -> T:
    """Await ``operation()`` with ``tenant`` active, then restore the prior context."""
    async with TenantScope(adapter, tenant):
        return await operation()
