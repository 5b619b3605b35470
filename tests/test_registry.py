from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from docket.registry import CycleError, ServiceRegistry, UnknownServiceError


class TestGet:
    def test_lazy_and_memoized(self) -> None:
        factory = MagicMock(return_value=object())
        registry = ServiceRegistry()
        registry.register("svc", factory)

        factory.assert_not_called()
        first = registry.get("svc")
        second = registry.get("svc")

        assert first is second
        factory.assert_called_once_with()

    def test_dependencies_passed_positionally(self) -> None:
        registry = ServiceRegistry()
        registry.register("config", lambda: {"name": "demo"})
        registry.register("db", lambda: "db-handle")
        registry.register("service", lambda cfg, db: (cfg["name"], db), ["config", "db"])
        assert registry.get("service") == ("demo", "db-handle")

    def test_shared_dependency_built_once(self) -> None:
        config_factory = MagicMock(return_value="cfg")
        registry = ServiceRegistry()
        registry.register("config", config_factory)
        registry.register("a", lambda cfg: cfg, ["config"])
        registry.register("b", lambda cfg: cfg, ["config"])
        registry.get("a")
        registry.get("b")
        config_factory.assert_called_once_with()

    def test_unknown_name(self) -> None:
        with pytest.raises(UnknownServiceError, match="missing"):
            ServiceRegistry().get("missing")

    def test_register_instance(self) -> None:
        sentinel = object()
        registry = ServiceRegistry()
        registry.register_instance("thing", sentinel)
        assert registry.get("thing") is sentinel
        assert "thing" in registry
        assert registry.names == ["thing"]


class TestValidate:
    def test_cycle_detected_before_any_factory_runs(self) -> None:
        a = MagicMock()
        b = MagicMock()
        registry = ServiceRegistry()
        registry.register("a", a, ["b"])
        registry.register("b", b, ["a"])

        with pytest.raises(CycleError):
            registry.get("a")

        a.assert_not_called()
        b.assert_not_called()

    def test_unknown_dependency(self) -> None:
        registry = ServiceRegistry()
        registry.register("service", lambda db: db, ["db"])
        with pytest.raises(UnknownServiceError) as excinfo:
            registry.validate()
        assert excinfo.value.name == "db"
        assert excinfo.value.required_by == "service"

    def test_returns_initialization_order(self) -> None:
        registry = ServiceRegistry()
        registry.register("dispatcher", lambda db: db, ["db"])
        registry.register("db", lambda cfg: cfg, ["config"])
        registry.register("config", lambda: 1)
        assert registry.validate() == ["config", "db", "dispatcher"]


class TestLifecycle:
    def test_initialize_all(self) -> None:
        registry = ServiceRegistry()
        registry.register("config", lambda: "cfg")
        registry.register("db", lambda cfg: f"db({cfg})", ["config"])
        assert registry.initialize_all() == {"config": "cfg", "db": "db(cfg)"}

    def test_register_after_initialization_rejected(self) -> None:
        registry = ServiceRegistry()
        registry.register("config", lambda: "cfg")
        registry.get("config")
        with pytest.raises(ValueError, match="already initialized"):
            registry.register("config", lambda: "other")

    def test_close_in_reverse_order(self) -> None:
        calls: list[str] = []
        first = MagicMock()
        first.close.side_effect = lambda: calls.append("first")
        second = MagicMock()
        second.close.side_effect = lambda: calls.append("second")

        registry = ServiceRegistry()
        registry.register("first", lambda: first)
        registry.register("second", lambda f: second, ["first"])
        registry.get("second")
        registry.close()

        assert calls == ["second", "first"]

    def test_close_skips_plain_objects_and_allows_rebuild(self) -> None:
        factory = MagicMock(side_effect=lambda: object())
        registry = ServiceRegistry()
        registry.register("plain", factory)
        first = registry.get("plain")
        registry.close()
        assert registry.get("plain") is not first
        assert factory.call_count == 2
