from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from ats_verify.dependencies.auth import Role


@dataclass(frozen=True, slots=True)
class AuthProfile:
    """Board session identity: who is acting and with which token."""

    label: str
    username: str
    token: str | None
    role: Role

    def has_role(self, *roles: Role) -> bool:
        return self.role in roles


_PRESET_PROFILES: tuple[AuthProfile, ...] = (
    AuthProfile("Administrator (admin-token)", "admin", "admin-token", Role.ADMIN),
    AuthProfile("ATS support (ats-token)", "ats", "ats-token", Role.ATS_STAFF),
    AuthProfile("Customs officer (customs-token)", "customs", "customs-token", Role.CUSTOMS_STAFF),
    AuthProfile("Marketplace (marketplace-token)", "marketplace", "marketplace-token", Role.MARKETPLACE_STAFF),
    AuthProfile("Paid user (paid-token)", "paid", "paid-token", Role.PAID_USER),
)

_TOKEN_MAP = {profile.token: profile for profile in _PRESET_PROFILES if profile.token}


def preset_profiles() -> Iterable[AuthProfile]:
    return _PRESET_PROFILES


def resolve_token(token: str | None) -> AuthProfile | None:
    """Return the preset profile for ``token``, or ``None`` when it is unknown."""

    if not token:
        return None
    return _TOKEN_MAP.get(token)
