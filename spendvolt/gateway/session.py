"""Authenticated session context, passed explicitly to the gateway."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Session:
    token: str
    username: str = ""

    @property
    def authorization_header(self) -> str:
        return f"Bearer {self.token}"
