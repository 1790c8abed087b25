from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass

from fastapi import FastAPI

from .asgi import ContainerContextMiddleware
from .container import Container

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ContainerSettings:
    strict: bool = True
    auto_add_middleware: bool = True
    check_circular_deps: bool = True


def _has_middleware(app: FastAPI, middleware_cls: type[object]) -> bool:
    for middleware in app.user_middleware:
        if getattr(middleware, "cls", None) is middleware_cls:
            return True
    return False


def install_container(
    app: FastAPI,
    container_factory: Callable[[], Container],
    *,
    strict: bool = True,
    auto_add_middleware: bool = True,
    check_circular_deps: bool = True,
) -> ContainerSettings:
    """
    Install a container into a FastAPI app.

    ``container_factory`` is called once at startup (on a worker thread); the
    container is then stored on ``app.state.swapdi_container`` and every
    request gets its own context bound to it. With ``check_circular_deps``
    startup fails when the container has a dependency cycle.

    This function wires startup/shutdown automatically and can be called once
    during app creation.
    """
    if isinstance(getattr(app.state, "swapdi_settings", None), ContainerSettings):
        raise RuntimeError("install_container() has already been called for this FastAPI app.")
    if not callable(container_factory):
        raise TypeError("install_container() expects a container factory (callable).")

    settings = ContainerSettings(
        strict=strict,
        auto_add_middleware=auto_add_middleware,
        check_circular_deps=check_circular_deps,
    )

    if settings.auto_add_middleware and not _has_middleware(app, ContainerContextMiddleware):
        # Register early so user middlewares wrap the full request chain.
        app.add_middleware(ContainerContextMiddleware)

    previous_lifespan = app.router.lifespan_context

    @asynccontextmanager
    async def _combined_lifespan(inner_app: FastAPI) -> AsyncIterator[None]:
        try:
            try:
                container = await asyncio.to_thread(container_factory)
                if not isinstance(container, Container):
                    raise TypeError(
                        f"container_factory must return a Container, got {type(container)!r}."
                    )
                if settings.check_circular_deps:
                    cycles = await asyncio.to_thread(container.circular_deps)
                    if cycles is not None:
                        raise cycles
                inner_app.state.swapdi_container = container
                logger.info("Container installed.")

            except Exception:
                if settings.strict:
                    raise

                logger.exception(
                    "Container startup failed; continuing without a container because strict=False"
                )
                inner_app.state.swapdi_container = None

            async with previous_lifespan(inner_app):
                yield

        finally:
            inner_app.state.swapdi_container = None

    app.router.lifespan_context = _combined_lifespan
    app.state.swapdi_settings = settings
    app.state.swapdi_container = None
    return settings
