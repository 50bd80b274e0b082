from __future__ import annotations

import abc
import contextlib
import inspect
import logging
import threading
import types
import typing
from typing import (
    TYPE_CHECKING,
    Annotated,
    Any,
    Protocol,
    TypeVar,
    cast,
    get_type_hints,
)

from . import _introspect
from ._markers import binding_of
from ._registry import BindingRegistry


logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from collections.abc import Callable, Hashable, Mapping

    from ._introspect import FieldInfo

    T = TypeVar("T")


class InjectorError(RuntimeError):
    pass


class ScopeNotAttachedError(InjectorError):
    pass


class ScopeAlreadyAttachedError(InjectorError):
    pass


class Scope(abc.ABC):
    """A unit of registrations attached to a container.

    Subclasses implement `setup()`, which runs once when the scope is passed to
    `Container.register_scope` and typically calls `register`, `create` and
    `register_submodule`:

      class DatabaseScope(Scope):
          def setup(self) -> None:
              self.create(Database)

    Each scope keeps its own bindings; the container looks them up across all
    scopes in the order they were attached.
    """

    def __init__(self) -> None:
        self._registry = BindingRegistry()
        self._container: Container | None = None
        self._lock = threading.RLock()

    @property
    def container(self) -> Container | None:
        """The container this scope is attached to, or None before `register_scope`."""
        return self._container

    @abc.abstractmethod
    def setup(self) -> None:
        """Register this scope's objects. Called once, when the scope is attached."""

    def register(self, obj: T, *bind_types: Hashable, register_base_class: bool | None = None) -> T:
        """Bind `obj` in this scope and return it.

        - `register(obj)`: use the class's `@bind` targets if it has any, otherwise
          bind under `type(obj)`.
        - `register(obj, A, B)`: additionally bind under `A` and `B`; `type(obj)` is
          bound only when `register_base_class=True`.

        A `@bind` binding is always applied, independently of the arguments.
        Later registrations for the same type replace earlier ones.
        """
        cls = type(obj)
        binding = binding_of(cls)
        if binding is None and not bind_types and register_base_class is None:
            register_base_class = True

        with self._lock:
            if binding is not None:
                if binding.register_base_class:
                    self._registry.put(cls, obj)
                for target in binding.types:
                    self._registry.put(target, obj)

            for target in bind_types:
                self._registry.put(target, obj)

            if register_base_class:
                self._registry.put(cls, obj)

        return obj

    def create(self, cls: type[T]) -> T | None:
        """Instantiate `cls` with constructor dependencies found in the container, then register it.

        Returns None (and logs the reason) when the class cannot be instantiated.
        """
        container = self._container
        # Lock order: container, then scope.
        outer = container._lock if container is not None else contextlib.nullcontext()  # noqa: SLF001
        with outer, self._lock:
            instance = Constructor(container).construct(cls)
            if instance is None:
                return None
            return self.register(instance)

    def register_submodule(self, scope: Scope) -> None:
        """Attach `scope` to this scope's container."""
        self._require_container().register_scope(scope)

    def instances(self) -> Mapping[Hashable, object]:
        """Immutable snapshot of this scope's bindings."""
        return self._registry.snapshot()

    def find(self, key: Hashable) -> Any:
        """Look up `key` in this scope only."""
        return self._registry.get(key)

    def _require_container(self) -> Container:
        container = self._container
        if container is None:
            msg = f"Scope {type(self).__qualname__} is not attached to a container."
            raise ScopeNotAttachedError(msg)
        return container

    def __repr__(self) -> str:
        return f"<{type(self).__qualname__} bindings={len(self._registry)}>"


class _DefaultScope(Scope):
    def setup(self) -> None:
        pass


class Container:
    """Object graph container.

    - register pre-built objects or create them with constructor injection
    - fill `Annotated[T, Inject()]` fields and call `@init` methods
    - group registrations in scopes, looked up in attachment order.

    The container registers itself in its default scope, so objects can depend
    on `Container`.
    """

    def __init__(self, *, check_types: bool = True) -> None:
        self._scopes: list[Scope] = []
        self._lock = threading.RLock()
        self._check_types = check_types
        self._default_scope: Scope = _DefaultScope()

        self.register_scope(self._default_scope)
        # Fully built at this point; only now expose the container to lookups.
        with self._lock:
            self._default_scope.register(self)

    @property
    def default_scope(self) -> Scope:
        return self._default_scope

    @property
    def scopes(self) -> tuple[Scope, ...]:
        with self._lock:
            return tuple(self._scopes)

    def register_scope(self, scope: Scope) -> None:
        """Attach `scope` and run its `setup()`.

        `setup()` runs after the container lock is released, so it may call back
        into the container or attach further scopes.
        """
        with self._lock:
            if scope.container is not None:
                msg = f"Scope {type(scope).__qualname__} is already attached to a container."
                raise ScopeAlreadyAttachedError(msg)
            self._scopes.append(scope)
            scope._container = self  # noqa: SLF001

        logger.debug("Attached scope %s", type(scope).__qualname__)
        scope.setup()

    def register(self, obj: T, *bind_types: Hashable, register_base_class: bool | None = None) -> T:
        """Register `obj` in the default scope. See `Scope.register`."""
        with self._lock:
            return self._default_scope.register(obj, *bind_types, register_base_class=register_base_class)

    def create(self, cls: type[T]) -> T | None:
        """Create and register an instance of `cls` in the default scope. See `Scope.create`."""
        with self._lock:
            return self._default_scope.create(cls)

    def find(self, cls: Hashable) -> Any:
        """Return the instance bound to `cls` in the earliest attached scope, or None."""
        with self._lock:
            for scope in self._scopes:
                instance = scope.find(cls)
                if instance is not None:
                    return instance
            return None

    def inject(self, obj: T) -> T | None:
        """Assign every `Annotated[T, Inject()]` field of `obj` from `find(T)`.

        Unresolved fields are set to None. A field that rejects its value is
        logged and skipped.
        """
        if obj is None:
            return None

        with self._lock:
            for field in _introspect.describe(type(obj)).inject_fields:
                self._inject_field(obj, field)
        return obj

    def init(self, obj: T) -> T | None:
        """Call every `@init` method of `obj`. A method that raises is logged and skipped."""
        if obj is None:
            return None

        with self._lock:
            for method in _introspect.describe(type(obj)).init_methods:
                try:
                    getattr(obj, method.name)()
                except Exception:
                    logger.exception("Failed to invoke method %s in class %s", method.name, type(obj).__qualname__)
        return obj

    def inject_all(self) -> None:
        """Inject every registered object; the default scope is handled last."""
        with self._lock:
            self._sweep(self.inject, "inject")

    def init_all(self) -> None:
        """Initialize every registered object; the default scope is handled last."""
        with self._lock:
            self._sweep(self.init, "init")

    def _sweep(self, action: Callable[[object], object], label: str) -> None:
        # Objects registered while the sweep runs are not guaranteed to be visited.
        scopes = [scope for scope in self._scopes if scope is not self._default_scope]
        scopes.append(self._default_scope)

        seen: set[int] = set()
        for scope in scopes:
            snapshot = scope.instances()
            logger.debug("%s sweep over %r", label, scope)
            for instance in snapshot.values():
                # Once per object, not once per binding: an aliased object is not re-run for each key.
                if id(instance) in seen:
                    continue
                seen.add(id(instance))
                try:
                    action(instance)
                except Exception:
                    logger.exception("Failed to %s object %s", label, type(instance).__qualname__)

    def _inject_field(self, obj: object, field: FieldInfo) -> None:
        declared = _lookup_key(field.declared_type)
        value = self.find(declared)

        if value is not None and self._check_types and not _conforms(value, declared):
            logger.error(
                "Failed to inject field %s in class %s: %s does not conform to %r",
                field.name,
                type(obj).__qualname__,
                type(value).__qualname__,
                declared,
            )
            return

        try:
            setattr(obj, field.name, value)
        except (AttributeError, TypeError) as e:
            logger.error("Failed to inject field %s in class %s (%s)", field.name, type(obj).__qualname__, e)


class Constructor:
    def __init__(self, resolver: Container | None) -> None:
        self._resolver = resolver

    def construct(self, cls: type[T]) -> T | None:
        if not inspect.isclass(cls):
            logger.error("Cannot create %r: not a class", cls)
            return None

        if inspect.isabstract(cls):
            logger.error("No constructors found for class %s: it is abstract", cls.__qualname__)
            return None

        try:
            sig = inspect.signature(cls)
        except (TypeError, ValueError):
            logger.error("No constructors found for class %s: signature unavailable", cls.__qualname__)
            return None

        params = [p for p in sig.parameters.values() if p.kind not in (p.VAR_POSITIONAL, p.VAR_KEYWORD)]

        args: list[Any] = []
        kwargs: dict[str, Any] = {}
        if params:
            if self._resolver is None:
                logger.error(
                    "Cannot resolve constructor parameters of %s: scope is not attached to a container",
                    cls.__qualname__,
                )
                return None

            hints = _get_init_type_hints(cls)
            for p in params:
                value = self._resolve_param(p, hints)
                if p.kind is p.POSITIONAL_ONLY:
                    args.append(value)
                else:
                    kwargs[p.name] = value

        try:
            return cls(*args, **kwargs)
        except Exception:
            logger.exception("Failed to instantiate class %s", cls.__qualname__)
            return None

    def _resolve_param(self, p: inspect.Parameter, hints: dict[str, Any]) -> Any:
        """Resolving param.

        Resolution precedence:
        1. type-based lookup in the container
        2. default
        3. None.
        """
        ann = hints.get(p.name, p.annotation)

        value = None
        if ann is not inspect.Parameter.empty and not isinstance(ann, str):
            value = cast("Container", self._resolver).find(_lookup_key(ann))

        if value is None and p.default is not inspect.Parameter.empty:
            return p.default

        return value


def _lookup_key(annotation: Any) -> Any:
    """Strip `Annotated` and `Optional` wrappers to get the type to look up."""
    if typing.get_origin(annotation) is Annotated:
        annotation = typing.get_args(annotation)[0]

    if typing.get_origin(annotation) in (typing.Union, types.UnionType):
        members = [arg for arg in typing.get_args(annotation) if arg is not type(None)]
        if len(members) == 1:
            return members[0]

    return annotation


def _conforms(value: object, declared: Any) -> bool:
    """Check that `value` may be assigned to a field declared as `declared`.

    - For normal classes/ABCs: isinstance.
    - For Protocols: nominal via MRO, isinstance when runtime-checkable,
      otherwise every public protocol method must be present and callable.
    - Anything that is not a class (unions, generics, Any) is accepted.
    """
    if not inspect.isclass(declared):
        return True

    if not _is_protocol(declared):
        try:
            return isinstance(value, declared)
        except TypeError:
            # Any, TypedDict and other classes that refuse isinstance
            return True

    if declared in type(value).__mro__:
        return True

    if _is_runtime_checkable_protocol(declared):
        return isinstance(value, declared)

    return not _missing_protocol_members(declared, value)


def _missing_protocol_members(proto_cls: type, value: object) -> list[str]:
    missing: list[str] = []
    for name, proto_attr in vars(proto_cls).items():
        if name.startswith("_") or not inspect.isfunction(proto_attr):
            continue
        if not callable(getattr(value, name, None)):
            missing.append(name)
    return missing


if hasattr(typing, "is_protocol"):
    # https://docs.python.org/3/library/typing.html#typing.is_protocol
    def _is_protocol(tp: Any) -> bool:
        return inspect.isclass(tp) and typing.is_protocol(tp)

else:

    def _is_protocol(tp: Any) -> bool:
        """Detect whether 'tp' is a typing.Protocol subclass (safe)."""
        return (
            inspect.isclass(tp)
            and issubclass(tp, cast("type", Protocol))
            and bool(getattr(tp, "_is_protocol", False))
        )


def _is_runtime_checkable_protocol(tp: type) -> bool:
    if not _is_protocol(tp):
        return False

    try:
        isinstance(None, tp)
    except TypeError:
        return False
    else:
        return True


def _get_init_type_hints(cls: type) -> dict[str, Any]:
    try:
        init = inspect.getattr_static(cls, "__init__")
        hints = get_type_hints(init)
    except TypeError:
        hints = {}
    except NameError as exc:
        logger.warning("'%s' name error retrieving %s (%s) type hints", exc.name, cls.__name__, cls.__qualname__)
        hints = {}

    return hints
