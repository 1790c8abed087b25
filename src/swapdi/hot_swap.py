from __future__ import annotations

import threading
from collections.abc import Mapping
from typing import TYPE_CHECKING

from loguru import logger

from .dependency import Dependency
from .service import Service

if TYPE_CHECKING:
    from .container import Container


class MutableContainer:
    """
    View of a container passed to ``Container.hot_swap``.

    The container's global lock is already held while the view is alive,
    so the view only serializes its own callers. It must not escape the
    hot-swap callback.
    """

    def __init__(self, parent: Container) -> None:
        self._parent = parent
        self._lock = threading.Lock()

    def override_service(self, service_id: str, service: Service) -> None:
        with self._lock:
            self._parent._override_service(service_id, service)

    def override_services(self, services: Mapping[str, Service]) -> None:
        with self._lock:
            for service_id in sorted(services):
                self._parent._override_service(service_id, services[service_id])

    def override_param(self, param_id: str, dep: Dependency) -> None:
        with self._lock:
            self._parent._override_param(param_id, dep)

    def override_params(self, params: Mapping[str, Dependency]) -> None:
        with self._lock:
            for param_id in sorted(params):
                self._parent._override_param(param_id, params[param_id])

    def invalidate_services_cache(self, *service_ids: str) -> None:
        """Evict shared instances; the next ``get`` builds them again."""
        with self._lock:
            for service_id in service_ids:
                self._parent._cache_shared.delete(service_id)
        logger.debug(f"Services cache invalidated: {list(service_ids)}")

    def invalidate_all_services_cache(self) -> None:
        self.invalidate_services_cache(*self._parent._services)

    def invalidate_params_cache(self, *param_ids: str) -> None:
        """Evict cached params; providers are called again on the next access."""
        with self._lock:
            for param_id in param_ids:
                self._parent._cache_params.delete(param_id)
        logger.debug(f"Params cache invalidated: {list(param_ids)}")

    def invalidate_all_params_cache(self) -> None:
        self.invalidate_params_cache(*self._parent._params)
