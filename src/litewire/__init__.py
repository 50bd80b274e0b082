"""Runtime object graph container.

This package creates objects, resolves their dependencies and drives a
two-phase lifecycle: field injection, then post-construction initialization.
Registrations are grouped in scopes attached to a single container.

Exports:
- `Container`: owns the scopes, looks up bindings in attachment order, injects
  fields and calls lifecycle methods on one object or on every registered one.
- `Scope`: base class for a group of registrations with one-time `setup()` logic.
- `Inject`: `Annotated` marker for fields to fill from the container.
- `init`: decorator for methods to call after injection.
- `bind`: class decorator binding instances to additional types on registration.
"""

from ._container import (
    Container,
    InjectorError,
    Scope,
    ScopeAlreadyAttachedError,
    ScopeNotAttachedError,
)
from ._markers import Binding, Inject, bind, init


__all__ = [
    "Binding",
    "Container",
    "Inject",
    "InjectorError",
    "Scope",
    "ScopeAlreadyAttachedError",
    "ScopeNotAttachedError",
    "bind",
    "init",
]
