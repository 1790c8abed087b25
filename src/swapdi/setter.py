from __future__ import annotations

import dataclasses
from collections.abc import MutableMapping

from .errors import FieldError


def _declared(obj: object, name: str) -> bool:
    if hasattr(obj, name):
        return True
    for klass in type(obj).__mro__:
        slots = getattr(klass, "__slots__", ())
        if isinstance(slots, str):
            slots = (slots,)
        if name in slots or name in getattr(klass, "__annotations__", {}):
            return True
    return False


def set_field(obj: object, name: str, value: object) -> object:
    """
    Assign ``value`` to the field ``name`` of ``obj`` and return the result.

    Mutable mappings get an item assignment. Frozen dataclasses are copied
    with ``dataclasses.replace``, so the returned object may differ from
    ``obj``. Any other object must already declare the field, either as an
    attribute or as a class annotation.
    """
    type_name = type(obj).__name__
    if name == "_":
        raise FieldError(f'set ({type_name})."_": "_" is not supported')

    if isinstance(obj, MutableMapping):
        obj[name] = value
        return obj

    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        names = {f.name for f in dataclasses.fields(obj)}
        if name not in names:
            raise FieldError(f'set ({type_name})."{name}": field "{name}" does not exist')
        params = getattr(type(obj), "__dataclass_params__", None)
        if params is not None and params.frozen:
            try:
                return dataclasses.replace(obj, **{name: value})
            except (TypeError, ValueError) as exc:
                raise FieldError(f'set ({type_name})."{name}": {exc}') from exc

    if not _declared(obj, name):
        raise FieldError(f'set ({type_name})."{name}": field "{name}" does not exist')
    try:
        setattr(obj, name, value)
    except (AttributeError, TypeError) as exc:
        raise FieldError(f'set ({type_name})."{name}": {exc}') from exc
    return obj
