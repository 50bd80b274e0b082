"""Class introspection for injection points and lifecycle methods.

Walks a class's MRO and collects annotated attributes and methods declared at
every level, including private and name-mangled ones. Members redeclared in a
subclass are reported once, with the most-derived declaration.
"""

from __future__ import annotations

import inspect
import logging
import threading
import typing
import weakref
from dataclasses import dataclass
from typing import Annotated, Any

from ._markers import is_init, is_inject


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FieldInfo:
    name: str
    annotation: Any
    owner: type

    @property
    def declared_type(self) -> Any:
        """The annotation with any `Annotated` wrapper removed."""
        if typing.get_origin(self.annotation) is Annotated:
            return typing.get_args(self.annotation)[0]
        return self.annotation

    @property
    def injectable(self) -> bool:
        if typing.get_origin(self.annotation) is not Annotated:
            return False
        return any(is_inject(meta) for meta in self.annotation.__metadata__)


@dataclass(frozen=True)
class MethodInfo:
    name: str
    member: Any
    owner: type

    @property
    def lifecycle(self) -> bool:
        return is_init(self.member)


@dataclass(frozen=True)
class TypeDescriptor:
    cls: type
    inject_fields: tuple[FieldInfo, ...]
    init_methods: tuple[MethodInfo, ...]


def fields(cls: type) -> dict[str, FieldInfo]:
    """Return every annotated class attribute of `cls` and its bases, keyed by name."""
    found: dict[str, FieldInfo] = {}
    # Root first so that subclasses overwrite what they redeclare.
    for klass in reversed(cls.__mro__):
        for name, annotation in _class_annotations(klass).items():
            found[name] = FieldInfo(name=name, annotation=annotation, owner=klass)
    return found


def methods(cls: type) -> dict[str, MethodInfo]:
    """Return every function, staticmethod and classmethod of `cls` and its bases, keyed by name."""
    found: dict[str, MethodInfo] = {}
    for klass in reversed(cls.__mro__):
        for name, member in vars(klass).items():
            if inspect.isfunction(member) or isinstance(member, (staticmethod, classmethod)):
                found[name] = MethodInfo(name=name, member=member, owner=klass)
            elif name in found:
                # shadowed by a non-callable attribute
                del found[name]
    return found


_descriptors: weakref.WeakKeyDictionary[type, TypeDescriptor] = weakref.WeakKeyDictionary()
_descriptors_lock = threading.Lock()


def describe(cls: type) -> TypeDescriptor:
    """Return the cached injection/lifecycle descriptor of `cls`."""
    with _descriptors_lock:
        descriptor = _descriptors.get(cls)
    if descriptor is not None:
        return descriptor

    descriptor = TypeDescriptor(
        cls=cls,
        inject_fields=tuple(f for f in fields(cls).values() if f.injectable),
        init_methods=tuple(m for m in methods(cls).values() if m.lifecycle),
    )

    with _descriptors_lock:
        return _descriptors.setdefault(cls, descriptor)


def clear_cache() -> None:
    with _descriptors_lock:
        _descriptors.clear()


def _class_annotations(klass: type) -> dict[str, Any]:
    try:
        return dict(inspect.get_annotations(klass, eval_str=True))
    except NameError as exc:
        logger.warning(
            "'%s' name error evaluating %s (%s) annotations; string annotations on it are not injectable",
            exc.name,
            klass.__name__,
            klass.__qualname__,
        )
    except TypeError:
        return {}

    try:
        return dict(inspect.get_annotations(klass))
    except (NameError, TypeError):
        return {}
