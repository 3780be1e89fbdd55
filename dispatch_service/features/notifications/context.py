"""Context generator registry.

A context generator turns a notification's ``context_parameters`` into the
mapping its templates are rendered with. Generators may be objects with a
``generate(params)`` method or plain callables, synchronous or async.

Example:
    ```python
    class WelcomeContext:
        async def generate(self, params):
            user = await users.get(params["user_id"])
            return {"first_name": user.first_name}

    registry = NotificationContextRegistry({"welcome": WelcomeContext()})
    context = await registry.resolve("welcome", {"user_id": "42"})
    ```
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, Protocol, runtime_checkable

from dispatch_service.features.notifications.exceptions import (
    ContextGeneratorNotFoundError,
    ContextRegistryAlreadyInitializedError,
    ContextRegistryNotInitializedError,
)
from dispatch_service.features.notifications.models import Context

logger = logging.getLogger(__name__)


@runtime_checkable
class ContextGenerator(Protocol):
    """Object producing a render context from parameters."""

    def generate(self, params: dict[str, Any]) -> Context | Awaitable[Context]: ...


GeneratorLike = ContextGenerator | Callable[[dict[str, Any]], Context | Awaitable[Context]]


class NotificationContextRegistry:
    """Maps context names to generators."""

    def __init__(self, generators: Mapping[str, GeneratorLike] | None = None) -> None:
        self._generators: dict[str, GeneratorLike] = dict(generators or {})

    def register(self, name: str, generator: GeneratorLike) -> None:
        """Register or replace the generator for ``name``."""
        self._generators[name] = generator

    def get_available_contexts(self) -> list[str]:
        """Return the registered context names."""
        return list(self._generators)

    def __contains__(self, name: object) -> bool:
        return name in self._generators

    async def resolve(self, name: str, params: dict[str, Any] | None = None) -> Context:
        """Generate the context registered under ``name``.

        Args:
            name: Context name stored on the notification.
            params: The notification's ``context_parameters``.

        Returns:
            The generated context.

        Raises:
            ContextGeneratorNotFoundError: Nothing is registered under ``name``.
        """
        generator = self._generators.get(name)
        if generator is None:
            raise ContextGeneratorNotFoundError(name)

        produce = generator.generate if isinstance(generator, ContextGenerator) else generator
        result = produce(dict(params or {}))
        if inspect.isawaitable(result):
            result = await result
        return result


_registry: NotificationContextRegistry | None = None


def initialize_context_registry(
    generators: Mapping[str, GeneratorLike],
) -> NotificationContextRegistry:
    """Create the process-wide registry.

    Raises:
        ContextRegistryAlreadyInitializedError: Called a second time without reset.
    """
    global _registry
    if _registry is not None:
        raise ContextRegistryAlreadyInitializedError
    _registry = NotificationContextRegistry(generators)
    logger.info("Context registry initialized", extra={"contexts": list(generators)})
    return _registry


def get_context_registry() -> NotificationContextRegistry:
    """Return the process-wide registry.

    Raises:
        ContextRegistryNotInitializedError: initialize_context_registry was not called.
    """
    if _registry is None:
        raise ContextRegistryNotInitializedError
    return _registry


def reset_context_registry() -> None:
    """Forget the process-wide registry (tests, reconfiguration)."""
    global _registry
    _registry = None
