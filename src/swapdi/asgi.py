from __future__ import annotations

import asyncio
import logging

from fastapi.params import Depends
from starlette.requests import HTTPConnection
from starlette.types import ASGIApp, Receive, Scope, Send

from .container import Container, context_with_container
from .context import CancellableContext, Context, background, with_cancel

logger = logging.getLogger(__name__)

CONTEXT_STATE_KEY = "_swapdi_context"
CONTAINER_STATE_KEY = "_swapdi_container"


def _app_container(scope: Scope) -> Container | None:
    container = getattr(getattr(scope.get("app"), "state", None), "swapdi_container", None)
    if isinstance(container, Container):
        return container
    return None


class ContainerContextMiddleware:
    """
    ASGI middleware that binds a fresh context to the container for each
    HTTP request or WebSocket connection.

    Contextual services resolved through ``Inject`` are shared within one
    connection and discarded when it ends. The context is cancelled after the
    response and its background tasks, which lets ``Container.hot_swap``
    proceed.

    Usage:

        app.add_middleware(ContainerContextMiddleware, container=container)

    Without ``container`` the one stored by ``install_container`` is used.
    """

    def __init__(self, app: ASGIApp, container: Container | None = None) -> None:
        self.app = app
        self.container = container

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] not in ("http", "websocket"):
            await self.app(scope, receive, send)
            return

        container = self.container if self.container is not None else _app_container(scope)
        if container is None:
            await self.app(scope, receive, send)
            return

        state = scope.get("state")
        if state is None:
            state = {}
            scope["state"] = state

        ctx = with_cancel(background())
        # blocks while a hot swap is running, keep it off the event loop
        bound = await asyncio.to_thread(context_with_container, ctx, container)
        state[CONTEXT_STATE_KEY] = bound
        state[CONTAINER_STATE_KEY] = container

        try:
            await self.app(scope, receive, send)
        finally:
            _cancel(ctx)
            state.pop(CONTEXT_STATE_KEY, None)
            state.pop(CONTAINER_STATE_KEY, None)


def _cancel(ctx: CancellableContext) -> None:
    try:
        ctx.cancel()
    except Exception:
        logger.exception("Error cancelling request context.")


def request_context(connection: HTTPConnection) -> Context:
    """Return the context bound to the container for this connection."""
    state = connection.scope.get("state") or {}
    ctx = state.get(CONTEXT_STATE_KEY)
    if not isinstance(ctx, Context):
        msg = (
            "Request is not bound to a container; "
            "add ContainerContextMiddleware or call install_container()."
        )
        logger.error(msg)
        raise RuntimeError(msg)
    return ctx


def _request_container(connection: HTTPConnection) -> Container:
    state = connection.scope.get("state") or {}
    container = state.get(CONTAINER_STATE_KEY)
    if not isinstance(container, Container):
        msg = "Container not initialized for the current request."
        logger.error(msg)
        raise RuntimeError(msg)
    return container


def Inject(service_id: str) -> Depends:
    """
    Create a FastAPI dependency resolving the service ``service_id`` in the
    context of the current request.

        @router.get("/items")
        async def endpoint(repo: ItemRepository = Inject("repo.items")):
            ...
    """
    if not isinstance(service_id, str):
        raise TypeError("Inject() expects a service id (str).")

    async def _dependency_callable(request: HTTPConnection) -> object:
        container = _request_container(request)
        ctx = request_context(request)
        # constructors may block
        return await asyncio.to_thread(container.get_in_context, ctx, service_id)

    _dependency_callable.__name__ = f"inject_service_{service_id}"
    _dependency_callable.__qualname__ = _dependency_callable.__name__
    return Depends(_dependency_callable)


def InjectTagged(tag: str) -> Depends:
    """Create a FastAPI dependency resolving every service tagged by ``tag``."""
    if not isinstance(tag, str):
        raise TypeError("InjectTagged() expects a tag (str).")

    async def _dependency_callable(request: HTTPConnection) -> list[object]:
        container = _request_container(request)
        ctx = request_context(request)
        return await asyncio.to_thread(container.get_tagged_by_in_context, ctx, tag)

    _dependency_callable.__name__ = f"inject_tagged_{tag}"
    _dependency_callable.__qualname__ = _dependency_callable.__name__
    return Depends(_dependency_callable)


def InjectParam(param_id: str) -> Depends:
    if not isinstance(param_id, str):
        raise TypeError("InjectParam() expects a param id (str).")

    async def _dependency_callable(request: HTTPConnection) -> object:
        container = _request_container(request)
        return await asyncio.to_thread(container.get_param, param_id)

    _dependency_callable.__name__ = f"inject_param_{param_id}"
    _dependency_callable.__qualname__ = _dependency_callable.__name__
    return Depends(_dependency_callable)
