import logging
import unittest
from dataclasses import dataclass
from typing import Annotated, Any, Protocol, runtime_checkable

import pytest

from litewire import Container, Inject


class TestRuntimeProtocolFieldConformance(unittest.TestCase):
    cont: Container

    @runtime_checkable
    class RepoProtocol(Protocol):
        def get(self) -> int: ...

    class GoodRepo:
        def get(self) -> int:
            return 42

    class BadRepo:
        # Missing `get`, does not conform to RepoProtocol
        def other(self) -> str:
            return "nope"

    def setUp(self):
        self.cont = Container()

        class Client:
            repo: Annotated[TestRuntimeProtocolFieldConformance.RepoProtocol, Inject()] = None

        self.client_cls = Client

    def test_inject_accepts_conforming_instance(self):
        repo = self.cont.register(self.GoodRepo(), self.RepoProtocol)

        client = self.cont.inject(self.client_cls())

        assert client.repo is repo
        assert client.repo.get() == 42

    def test_inject_skips_non_conforming_instance(self):
        self.cont.register(self.BadRepo(), self.RepoProtocol)

        with self.assertLogs("litewire", level=logging.ERROR) as logs:
            client = self.cont.inject(self.client_cls())

        assert client.repo is None
        assert "does not conform" in logs.output[0]


class TestStaticProtocolFieldConformance(unittest.TestCase):
    cont: Container

    class Fooer(Protocol):
        def foo(self) -> None: ...

    def setUp(self):
        self.cont = Container()

        class Client:
            fooer: Annotated[TestStaticProtocolFieldConformance.Fooer, Inject()] = None

        self.client_cls = Client

    def test_structurally_conforming_instance_is_injected(self):
        class FooerImpl:
            def foo(self) -> None:
                pass

        impl = self.cont.register(FooerImpl(), self.Fooer)
        assert self.cont.inject(self.client_cls()).fooer is impl

    def test_nominal_subclass_is_injected(self):
        class ExplicitFooer(self.Fooer):
            def foo(self) -> None:
                pass

        impl = self.cont.register(ExplicitFooer(), self.Fooer)
        assert self.cont.inject(self.client_cls()).fooer is impl

    def test_missing_member_is_rejected(self):
        class NotAFooer:
            def bar(self) -> None:
                pass

        self.cont.register(NotAFooer(), self.Fooer)
        assert self.cont.inject(self.client_cls()).fooer is None

    def test_non_callable_member_is_rejected(self):
        class FooIsNotCallable:
            foo = 123

        self.cont.register(FooIsNotCallable(), self.Fooer)
        assert self.cont.inject(self.client_cls()).fooer is None

    def test_any_instance_matches_empty_protocol(self):
        class EmptyProto(Protocol): ...

        class AnyClass: ...

        class Client:
            dep: Annotated[EmptyProto, Inject()]

        impl = self.cont.register(AnyClass(), EmptyProto)
        assert self.cont.inject(Client()).dep is impl


class TestClassFieldConformance(unittest.TestCase):
    cont: Container

    def setUp(self):
        self.cont = Container()

    def test_subclass_instance_is_injected_for_base_field(self):
        class Base: ...

        class Derived(Base): ...

        class Client:
            dep: Annotated[Base, Inject()]

        derived = self.cont.register(Derived(), Base)
        assert self.cont.inject(Client()).dep is derived

    def test_non_class_annotation_is_not_checked(self):
        class Client:
            dep: Annotated[Any, Inject()]

        value = self.cont.register(object(), Any)
        assert self.cont.inject(Client()).dep is value

    def test_one_rejected_field_does_not_stop_the_others(self):
        class Expected: ...

        class Other: ...

        class Fine: ...

        class Client:
            bad: Annotated[Expected, Inject()] = None
            good: Annotated[Fine, Inject()] = None

        self.cont.register(Other(), Expected)
        fine = self.cont.register(Fine())

        client = self.cont.inject(Client())
        assert client.bad is None
        assert client.good is fine


class TestRejectedAssignment(unittest.TestCase):
    cont: Container

    def setUp(self):
        self.cont = Container()

    def test_frozen_dataclass_field_is_skipped_and_logged(self):
        class Dep: ...

        @dataclass(frozen=True)
        class Frozen:
            dep: Annotated[Dep, Inject()] = None

        self.cont.register(Dep())
        frozen = Frozen()

        with self.assertLogs("litewire", level=logging.ERROR) as logs:
            assert self.cont.inject(frozen) is frozen

        assert frozen.dep is None
        assert "Failed to inject field dep" in logs.output[0]

    def test_read_only_property_is_skipped(self):
        class Dep: ...

        class ReadOnly:
            dep: Annotated[Dep, Inject()]

            @property
            def dep(self):
                return "fixed"

        self.cont.register(Dep())
        obj = self.cont.inject(ReadOnly())
        assert obj.dep == "fixed"

    def test_slots_without_field_slot_is_skipped(self):
        class Dep: ...

        class Slotted:
            __slots__ = ("other",)
            dep: Annotated[Dep, Inject()]

        self.cont.register(Dep())
        obj = self.cont.inject(Slotted())

        with pytest.raises(AttributeError):
            _ = obj.dep
