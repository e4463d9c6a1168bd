"""Password hashing and generation helpers."""

from __future__ import annotations

import secrets

from passlib.context import CryptContext

_pwd = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

_CONSONANTS = "bcdfghjkmnpqrstvwxyz"
_VOWELS = "aeiou"
_DIGITS = "23456789"
_SEGMENT_LENGTH = 6
_SEGMENT_COUNT = 3


def hash_password(password: str) -> str:
    if not password:
        raise ValueError("password must not be blank")
    return _pwd.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    if not password or not password_hash:
        return False
    try:
        return _pwd.verify(password, password_hash)
    except (ValueError, TypeError):
        # unknown or malformed hash format
        return False


def _segment() -> str:
    chars: list[str] = []
    while len(chars) < _SEGMENT_LENGTH:
        chars.extend(
            (
                secrets.choice(_CONSONANTS),
                secrets.choice(_VOWELS),
                secrets.choice(_CONSONANTS),
            )
        )
    return "".join(chars[:_SEGMENT_LENGTH])


def _replace_at(segments: list[str], index: int, position: int, char: str) -> None:
    segment = segments[index]
    segments[index] = segment[:position] + char + segment[position + 1 :]


def generate_friendly_password() -> str:
    """Return an easy-to-type password such as ``fobzan-Merqon-kulso4``.

    Three consonant/vowel segments joined by hyphens, with exactly one
    uppercase letter and one digit placed at random positions.
    """
    segments = [_segment() for _ in range(_SEGMENT_COUNT)]

    upper_index = secrets.randbelow(_SEGMENT_COUNT)
    upper_pos = secrets.randbelow(_SEGMENT_LENGTH)
    _replace_at(
        segments,
        upper_index,
        upper_pos,
        segments[upper_index][upper_pos].upper(),
    )

    # the digit must not overwrite the uppercase letter
    while True:
        digit_index = secrets.randbelow(_SEGMENT_COUNT)
        digit_pos = secrets.randbelow(_SEGMENT_LENGTH)
        if (digit_index, digit_pos) != (upper_index, upper_pos):
            break
    _replace_at(segments, digit_index, digit_pos, secrets.choice(_DIGITS))

    return "-".join(segments)
