"""A small service locator: named, lazily built singletons with declared dependencies."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from typing import Any

from docket.dag import DAG, CycleError

logger = logging.getLogger(__name__)

__all__ = ["CycleError", "ServiceRegistry", "UnknownServiceError"]


class UnknownServiceError(LookupError):
    def __init__(self, name: str, required_by: str | None = None) -> None:
        self.name = name
        self.required_by = required_by
        where = f" (required by {required_by!r})" if required_by else ""
        super().__init__(f"Unknown service {name!r}{where}")


class ServiceRegistry:
    """Name -> factory mapping resolved on first use.

    A factory receives the instances of its declared dependencies as
    positional arguments, in declaration order. The dependency graph is
    checked for unknown names and cycles before anything is built.
    """

    def __init__(self) -> None:
        self._factories: dict[str, tuple[Callable[..., Any], tuple[str, ...]]] = {}
        self._instances: dict[str, Any] = {}
        self._validated = False
        self._lock = threading.RLock()

    def register(
        self,
        name: str,
        factory: Callable[..., Any],
        deps: Iterable[str] = (),
    ) -> None:
        with self._lock:
            if name in self._instances:
                msg = f"Service {name!r} is already initialized"
                raise ValueError(msg)
            self._factories[name] = (factory, tuple(deps))
            self._validated = False

    def register_instance(self, name: str, instance: Any) -> None:
        self.register(name, lambda: instance)

    def __contains__(self, name: object) -> bool:
        return name in self._factories

    @property
    def names(self) -> list[str]:
        return list(self._factories)

    def validate(self) -> list[str]:
        """Check the dependency graph; return a valid initialization order."""
        dag = DAG()
        for name, (_, deps) in self._factories.items():
            dag.add_node(name, list(deps))
        for name, unknown in dag.missing().items():
            raise UnknownServiceError(unknown[0], required_by=name)
        cycle = dag.find_cycle()
        if cycle:
            raise CycleError(cycle)
        order = dag.topological_sort()
        self._validated = True
        return order

    def get(self, name: str) -> Any:
        with self._lock:
            if name in self._instances:
                return self._instances[name]
            if name not in self._factories:
                raise UnknownServiceError(name)
            if not self._validated:
                self.validate()
            factory, deps = self._factories[name]
            args = [self.get(dep) for dep in deps]
            logger.debug("Initializing service %s", name)
            instance = factory(*args)
            self._instances[name] = instance
            return instance

    def initialize_all(self) -> dict[str, Any]:
        with self._lock:
            for name in self.validate():
                self.get(name)
            return dict(self._instances)

    def close(self) -> None:
        """Close initialized services that expose ``close()``, in reverse order."""
        with self._lock:
            for name in reversed(list(self._instances)):
                closer = getattr(self._instances[name], "close", None)
                if callable(closer):
                    closer()
            self._instances.clear()
