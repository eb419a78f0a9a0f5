from __future__ import annotations

import hashlib
import hmac
import secrets
import string
from dataclasses import dataclass

HASH_ALGORITHM = "pbkdf2_sha256"
HASH_ITERATIONS = 120_000


@dataclass(frozen=True)
class PasswordPolicy:
    """
    Назначение:
        Требования к стойкости пароля при записи учётных данных в каталог.
    """

    min_length: int = 8
    min_digits: int = 1
    min_lower: int = 1
    min_upper: int = 1
    min_special: int = 1

    def check(self, password: str) -> list[str]:
        """
        Контракт:
            Пустой список, если пароль удовлетворяет политике; иначе список нарушений.
        """
        problems: list[str] = []
        if len(password) < self.min_length:
            problems.append(f"Passwords must be at least {self.min_length} characters long.")
        if sum(ch.isdigit() for ch in password) < self.min_digits:
            problems.append(f"Passwords must have at least {self.min_digits} digit(s).")
        if sum(ch.islower() for ch in password) < self.min_lower:
            problems.append(f"Passwords must have at least {self.min_lower} lower case letter(s).")
        if sum(ch.isupper() for ch in password) < self.min_upper:
            problems.append(f"Passwords must have at least {self.min_upper} upper case letter(s).")
        if sum(ch in string.punctuation for ch in password) < self.min_special:
            problems.append(f"The password must have at least {self.min_special} special character(s) such as *, -, or #.")
        return problems


def hash_password(password: str, *, salt: str | None = None, iterations: int = HASH_ITERATIONS) -> str:
    salt = salt or secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("utf-8"), iterations)
    return f"{HASH_ALGORITHM}${iterations}${salt}${digest.hex()}"


def verify_password(password: str, stored: str) -> bool:
    try:
        algorithm, iterations, salt, _ = stored.split("$", 3)
    except ValueError:
        return False
    if algorithm != HASH_ALGORITHM:
        return False
    expected = hash_password(password, salt=salt, iterations=int(iterations))
    return hmac.compare_digest(expected, stored)
