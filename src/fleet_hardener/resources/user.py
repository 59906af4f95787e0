"""Privileged user account resource model."""

from __future__ import annotations

from typing import Annotated, ClassVar

from pydantic import Field

from fleet_hardener.resources.base import Resource
from fleet_hardener.resources.markers import Compare

_KEY_PATTERN = r"^(ssh-(rsa|ed25519|dss)|ecdsa-sha2-nistp(256|384|521)|sk-\S+) \S+( .*)?$"


class UserAccountResource(Resource):
    """A login account with group memberships and authorized SSH keys.

    Extra groups or keys already present on the host are left alone; only the
    declared ones are enforced.
    """

    resource_type: ClassVar[str] = "user"
    plan_priority: ClassVar[int] = 40

    username: str = Field(pattern=r"^[a-z_][a-z0-9_\-]{0,31}$")
    groups: Annotated[
        list[Annotated[str, Field(pattern=r"^[a-z_][a-z0-9_\-]*$")]], Compare("subset")
    ] = Field(default_factory=list)
    shell: str = Field(default="/bin/bash", pattern=r"^/\S+$")
    authorized_keys: Annotated[
        list[Annotated[str, Field(pattern=_KEY_PATTERN)]], Compare("subset")
    ] = Field(default_factory=list)

    def identity(self) -> tuple[str, ...]:
        return (self.resource_type, self.username)

    @property
    def has_key(self) -> bool:
        return bool(self.authorized_keys)
