# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""
Resource hints (`H` rows).

Each request owns a HintEmitter that drops repeated hints by key. The module-level
functions look up the request doing work in the current context and are no-ops
outside of one, so producers can call them freely.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING, Any

from ..utils.context import get_current_request
from ..utils.keyset import KeySet

if TYPE_CHECKING:  # pragma: no cover
    from .request import Request

logger = logging.getLogger(__name__)


class HintCode(str, Enum):
    PREFETCH_DNS = "D"
    PRECONNECT = "C"
    PRELOAD = "L"
    PREINIT = "I"


class HintEmitter:
    def __init__(self, request: "Request"):
        self._request = request
        self._emitted = KeySet()

    @property
    def keys(self) -> list[str]:
        return self._emitted.to_list()

    def emit(self, code: HintCode | str, key: str, payload: Any) -> bool:
        """Write one hint row unless the key was already sent or the request is closed."""
        if self._request.closed:
            logger.debug("Dropping hint %s; request already closed", key)
            return False
        if not self._emitted.add(key):
            return False
        self._request.emit_hint(HintCode(code).value, payload)
        return True

    def prefetch_dns(self, href: str) -> bool:
        if not isinstance(href, str) or not href:
            return False
        return self.emit(HintCode.PREFETCH_DNS, f"D|{href}", href)

    def preconnect(self, href: str, cross_origin: str | None = None) -> bool:
        if not isinstance(href, str) or not href:
            return False
        key = f"C|{'null' if cross_origin is None else cross_origin}|{href}"
        payload: Any = href if cross_origin is None else [href, cross_origin]
        return self.emit(HintCode.PRECONNECT, key, payload)

    def preload(self, href: str, as_: str, **options: Any) -> bool:
        if not isinstance(href, str) or not href or not as_:
            return False
        return self.emit(HintCode.PRELOAD, f"L|{as_}|{href}", [href, {"as": as_, **options}])

    def preinit(self, href: str, as_: str, **options: Any) -> bool:
        if not isinstance(href, str) or not href or not as_:
            return False
        return self.emit(HintCode.PREINIT, f"I|{as_}|{href}", [href, {"as": as_, **options}])


def _current_emitter() -> HintEmitter | None:
    request = get_current_request()
    if request is None:
        return None
    return request.hints


def prefetch_dns(href: str) -> bool:
    emitter = _current_emitter()
    return emitter.prefetch_dns(href) if emitter else False


def preconnect(href: str, cross_origin: str | None = None) -> bool:
    emitter = _current_emitter()
    return emitter.preconnect(href, cross_origin) if emitter else False


def preload(href: str, as_: str, **options: Any) -> bool:
    emitter = _current_emitter()
    return emitter.preload(href, as_, **options) if emitter else False


def preinit(href: str, as_: str, **options: Any) -> bool:
    emitter = _current_emitter()
    return emitter.preinit(href, as_, **options) if emitter else False


__all__ = ["HintCode", "HintEmitter", "prefetch_dns", "preconnect", "preinit", "preload"]
