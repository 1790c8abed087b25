from . import dependency
from .asgi import ContainerContextMiddleware, Inject, InjectParam, InjectTagged, request_context
from .container import Container, context_with_container
from .context import (
    CancellableContext,
    Canceled,
    Context,
    DeadlineExceeded,
    background,
    with_cancel,
    with_timeout,
)
from .dependency import Dependency, DependencyKind
from .errors import (
    CallError,
    CircularDependencyError,
    ContainerError,
    ContextDoneError,
    FieldError,
    GroupError,
    ParamNotFoundError,
    ProviderError,
    ServiceNotFoundError,
)
from .hot_swap import MutableContainer
from .install import ContainerSettings, install_container
from .scope import Scope
from .service import DecoratorPayload, Service

__all__ = [
    "CallError",
    "CancellableContext",
    "Canceled",
    "CircularDependencyError",
    "Container",
    "ContainerContextMiddleware",
    "ContainerError",
    "ContainerSettings",
    "Context",
    "ContextDoneError",
    "DeadlineExceeded",
    "DecoratorPayload",
    "Dependency",
    "DependencyKind",
    "FieldError",
    "GroupError",
    "Inject",
    "InjectParam",
    "InjectTagged",
    "MutableContainer",
    "ParamNotFoundError",
    "ProviderError",
    "Scope",
    "Service",
    "ServiceNotFoundError",
    "background",
    "context_with_container",
    "dependency",
    "install_container",
    "request_context",
    "with_cancel",
    "with_timeout",
]
