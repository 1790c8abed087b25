from __future__ import annotations

from enum import IntEnum


class Scope(IntEnum):
    """
    Lifetime of a registered service.

    DEFAULT:
        Resolved at graph warm-up: CONTEXTUAL when any transitive dependency
        is contextual, SHARED otherwise.
    SHARED:
        One instance per container.
    CONTEXTUAL:
        One instance per contextual bag (a top-level call or a bound context).
    NON_SHARED:
        A fresh instance for every resolution; never cached.
    """

    DEFAULT = 0
    SHARED = 1
    CONTEXTUAL = 2
    NON_SHARED = 3
