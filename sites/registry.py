"""Lookup from site identifier to the handler that sends prompts there."""

from __future__ import annotations

from typing import Dict, List

from errors import HandlerNotFound


class HandlerRegistry:
    def __init__(self):
        self._handlers: Dict[str, object] = {}

    def bind(self, site: str, handler) -> None:
        self._handlers[site] = handler

    def unbind(self, site: str) -> None:
        self._handlers.pop(site, None)

    def lookup(self, site: str):
        handler = self._handlers.get(site)
        if handler is None:
            raise HandlerNotFound(site)
        return handler

    def sites(self) -> List[str]:
        return sorted(self._handlers)
