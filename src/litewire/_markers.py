from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, TypeVar


if TYPE_CHECKING:
    from collections.abc import Callable

    T = TypeVar("T")
    F = TypeVar("F", bound=Callable[..., Any])


BINDING_ATTR = "__litewire_binding__"
INIT_ATTR = "__litewire_init__"


class Inject:
    """Marks an annotated class attribute as an injection point.

    Example:
      class Client:
          service: Annotated[Service, Inject()]

    """

    def __repr__(self) -> str:
        return "Inject()"


@dataclass(frozen=True)
class Binding:
    types: tuple[type, ...]
    register_base_class: bool = True


def init(func: F) -> F:
    """Mark a no-argument method to be called by `Container.init`.

    Apply it below `staticmethod`/`classmethod` when combining them.
    """
    setattr(func, INIT_ATTR, True)
    return func


def bind(*types: type, register_base_class: bool = True) -> Callable[[type[T]], type[T]]:
    """Bind instances of the decorated class to `types` on registration.

    Example:
      @bind(MyService)
      class MyServiceImpl(MyService): ...

    The binding belongs to the decorated class only, subclasses do not inherit it.
    """
    if not types:
        msg = "bind() requires at least one target type."
        raise ValueError(msg)

    binding = Binding(types=tuple(types), register_base_class=register_base_class)

    def decorator(cls: type[T]) -> type[T]:
        setattr(cls, BINDING_ATTR, binding)
        return cls

    return decorator


def binding_of(cls: type) -> Binding | None:
    # Only the class's own namespace counts; a binding is not inherited.
    binding = vars(cls).get(BINDING_ATTR)
    return binding if isinstance(binding, Binding) else None


def is_init(member: object) -> bool:
    if isinstance(member, (staticmethod, classmethod)):
        member = member.__func__
    return getattr(member, INIT_ATTR, False) is True


def is_inject(metadata: object) -> bool:
    return metadata is Inject or isinstance(metadata, Inject)
