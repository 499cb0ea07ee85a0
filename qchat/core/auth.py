"""Interpretation of the `whoami`-style authentication probe.

A failed check is an expected outcome, so it is returned as data rather than
raised. The exit code is the primary signal; the diagnostic text match only
catches tool versions that print an error but still exit 0.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

from qchat.core.models import CapturedOutput


class AuthStatus(str, Enum):
    AUTHENTICATED = "authenticated"
    UNAUTHENTICATED = "unauthenticated"


@dataclass(frozen=True)
class AuthCheck:
    status: AuthStatus
    exit_code: int
    identity: Optional[str] = None
    detail: Optional[str] = None

    @property
    def authenticated(self) -> bool:
        return self.status is AuthStatus.AUTHENTICATED


def _first_line(*texts: str) -> Optional[str]:
    for text in texts:
        for line in text.splitlines():
            if line.strip():
                return line.strip()
    return None


def matches_unauthenticated(text: str, patterns: Iterable[str]) -> bool:
    lowered = text.lower()
    return any(pattern.lower() in lowered for pattern in patterns if pattern)


def classify_probe(result: CapturedOutput, patterns: Iterable[str]) -> AuthCheck:
    """Decide whether the probe result means the user is logged in."""
    detail = _first_line(result.stderr, result.stdout)
    if result.exit_code != 0:
        return AuthCheck(AuthStatus.UNAUTHENTICATED, result.exit_code, detail=detail)

    if matches_unauthenticated(result.stdout + "\n" + result.stderr, patterns):
        return AuthCheck(AuthStatus.UNAUTHENTICATED, result.exit_code, detail=detail)

    return AuthCheck(AuthStatus.AUTHENTICATED, result.exit_code, identity=_first_line(result.stdout))
