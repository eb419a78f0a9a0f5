from __future__ import annotations

from typing import Iterable

# Механизмы, доступные всегда, независимо от настроек сайта.
ALWAYS_ENABLED_AUTH_METHODS: tuple[str, ...] = ("manual", "nologin")


class StaticAuthRegistry:
    """
    Назначение/ответственность:
        Реестр механизмов аутентификации по списку из настроек.
    """

    def __init__(self, enabled_methods: Iterable[str] = ()) -> None:
        methods = {method.strip() for method in enabled_methods if method and method.strip()}
        methods.update(ALWAYS_ENABLED_AUTH_METHODS)
        self._methods = frozenset(methods)

    def is_recognized(self, method_name: str) -> bool:
        return method_name in self._methods

    def enabled_methods(self) -> list[str]:
        return sorted(self._methods)
