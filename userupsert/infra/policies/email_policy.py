from __future__ import annotations

import re
from typing import Iterable

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def validate_email(value: str) -> bool:
    return EMAIL_RE.match(value) is not None


def _normalize_domains(domains: Iterable[str]) -> tuple[str, ...]:
    result: list[str] = []
    for domain in domains:
        cleaned = (domain or "").strip().lower()
        if cleaned:
            result.append(cleaned)
    return tuple(result)


def _domain_matches(email_domain: str, rule: str) -> bool:
    """
    Правило '.example.com' покрывает только поддомены, 'example.com' только сам домен.
    """
    if rule.startswith("."):
        return email_domain.endswith(rule)
    return email_domain == rule


class DomainEmailPolicy:
    """
    Назначение/ответственность:
        Проверка email: синтаксис и списки разрешённых/запрещённых доменов.
    Контракт:
        - is_allowed_by_policy -> None, если адрес разрешён; иначе текст причины;
        - при непустом allow-списке deny-список не проверяется.
    """

    def __init__(self, allowed_domains: Iterable[str] = (), denied_domains: Iterable[str] = ()) -> None:
        self.allowed_domains = _normalize_domains(allowed_domains)
        self.denied_domains = _normalize_domains(denied_domains)

    def is_syntactically_valid(self, email: str) -> bool:
        return validate_email(email)

    def is_allowed_by_policy(self, email: str) -> str | None:
        domain = email.rsplit("@", 1)[-1].lower()
        if self.allowed_domains:
            if any(_domain_matches(domain, rule) for rule in self.allowed_domains):
                return None
            return f"This email is not one of those that are allowed ({' '.join(self.allowed_domains)})"
        if self.denied_domains:
            if any(_domain_matches(domain, rule) for rule in self.denied_domains):
                return f"This email address is not allowed ({' '.join(self.denied_domains)})"
        return None
