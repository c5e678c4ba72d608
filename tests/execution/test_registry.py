"""Tests for delay_spine.execution.registry: target resolution and invocation."""

from __future__ import annotations

import pytest
import structlog

from delay_spine.core.errors import UnknownMethodError, UnknownTargetError
from delay_spine.execution.registry import TargetRegistry


class User:
    def __init__(self, user_id: str):
        self.user_id = user_id
        self.welcomed = 0
        self.status = "active"

    def send_welcome(self) -> None:
        self.welcomed += 1

    def _purge(self) -> None:
        raise AssertionError("private methods must not be callable")


@pytest.fixture()
def users():
    return {"123": User("123")}


@pytest.fixture()
def registry(users):
    reg = TargetRegistry()
    reg.register("User", users.get)
    return reg


class TestRegistration:
    def test_register_decorator(self):
        reg = TargetRegistry()

        @reg.register("Order")
        def find_order(order_id: str):
            return None

        assert "Order" in reg
        assert find_order("1") is None

    def test_target_types_sorted(self, registry):
        registry.register("Account", lambda _id: None)
        assert registry.target_types() == ["Account", "User"]

    def test_unregister(self, registry):
        registry.unregister("User")
        assert "User" not in registry
        registry.unregister("User")


class TestInvoke:
    def test_calls_method(self, registry, users):
        assert registry.invoke("User", "send_welcome", "123") is True
        assert users["123"].welcomed == 1

    def test_missing_target_is_skipped(self, registry):
        with structlog.testing.capture_logs() as logs:
            assert registry.invoke("User", "send_welcome", "999") is False
        assert logs[0]["event"] == "target_not_found"

    def test_unknown_target_type(self, registry):
        with pytest.raises(UnknownTargetError) as info:
            registry.invoke("Ghost", "send_welcome", "1")
        assert info.value.context.target_type == "Ghost"

    def test_private_method_refused(self, registry):
        with pytest.raises(UnknownMethodError):
            registry.invoke("User", "_purge", "123")

    def test_missing_method(self, registry):
        with pytest.raises(UnknownMethodError):
            registry.invoke("User", "send_goodbye", "123")

    def test_non_callable_attribute(self, registry):
        with pytest.raises(UnknownMethodError):
            registry.invoke("User", "status", "123")

    def test_method_errors_propagate(self, registry, users):
        def send_welcome():
            raise ValueError("smtp down")

        users["123"].send_welcome = send_welcome
        with pytest.raises(ValueError):
            registry.invoke("User", "send_welcome", "123")
