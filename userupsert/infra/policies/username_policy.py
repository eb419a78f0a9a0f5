from __future__ import annotations

USERNAME_CASE_MESSAGE = "The username must be in lower case"


def check_username(username: str) -> list[str]:
    """
    Назначение:
        Ограничения каталога на username при записи.
    """
    problems: list[str] = []
    if username != username.lower():
        problems.append(USERNAME_CASE_MESSAGE)
    return problems
