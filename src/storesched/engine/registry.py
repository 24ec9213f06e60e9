# src/storesched/engine/registry.py
from __future__ import annotations

import importlib
from typing import Any, Callable, Iterable, Optional

from storesched.logging import get_logger

_LOG = get_logger(__name__)

Handler = Callable[[Any], Any]


class HandlerRegistry:
    """
    Mapping of task name -> handler owned by one scheduler instance.

    Handlers take the task's params as their only argument. Coroutine
    functions are accepted too; the worker drives them to completion.

    Usage:
        registry = HandlerRegistry()

        @registry.handler("send_digest")
        def send_digest(params):
            ...
    """

    def __init__(self) -> None:
        self._handlers: dict[str, Handler] = {}

    def register(self, name: str, fn: Handler) -> None:
        if not name:
            raise ValueError("handler name must not be empty")
        if not callable(fn):
            raise TypeError(f"handler for {name!r} must be callable")
        if name in self._handlers:
            _LOG.warning("Handler %r re-registered; replacing %r", name, self._handlers[name])
        self._handlers[name] = fn
        _LOG.debug("Registered handler %r", name)

    def handler(self, name: str) -> Callable[[Handler], Handler]:
        """Decorator form of register()."""

        def _decorator(fn: Handler) -> Handler:
            self.register(name, fn)
            return fn

        return _decorator

    def get(self, name: str) -> Optional[Handler]:
        return self._handlers.get(name)

    def names(self) -> list[str]:
        return sorted(self._handlers)

    def __contains__(self, name: object) -> bool:
        return name in self._handlers

    def __len__(self) -> int:
        return len(self._handlers)


def load_handler_modules(registry: HandlerRegistry, modules: Iterable[str]) -> None:
    """
    Imports each dotted module path and calls its register_handlers(registry).
    """
    for module_path in modules:
        module = importlib.import_module(module_path)
        hook = getattr(module, "register_handlers", None)
        if hook is None:
            raise AttributeError(f"Handler module {module_path!r} has no register_handlers(registry)")
        hook(registry)
        _LOG.info("Loaded handlers from %s", module_path)
