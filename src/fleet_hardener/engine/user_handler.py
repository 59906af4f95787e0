"""User account handler implementing probe/converge via shadow-utils."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from fleet_hardener.engine.errors import ProbeError
from fleet_hardener.engine.handlers import ResourceHandler, quote

if TYPE_CHECKING:
    from fleet_hardener.engine.handlers import EngineContext
    from fleet_hardener.resources.user import UserAccountResource

logger = logging.getLogger(__name__)


def parse_authorized_keys(text: str) -> list[str]:
    return [
        line.strip() for line in text.splitlines() if line.strip() and not line.startswith("#")
    ]


def _install_keys_script(username: str, keys: list[str]) -> str:
    user = quote(username)
    lines = [
        "set -e",
        f"home=$(getent passwd {user} | cut -d: -f6)",
        f"group=$(id -gn {user})",
        f'install -d -m 700 -o {user} -g "$group" "$home/.ssh"',
        'keys="$home/.ssh/authorized_keys"',
        'touch "$keys"',
        f'chown {user}:"$group" "$keys"',
        'chmod 600 "$keys"',
    ]
    for key in keys:
        k = quote(key)
        lines.append(f'grep -qxF {k} "$keys" || printf \'%s\\n\' {k} >> "$keys"')
    return "\n".join(lines)


class UserAccountHandler(ResourceHandler["UserAccountResource"]):
    """Creates accounts, adds group memberships and authorized keys.

    Never removes groups or keys the host already has.
    """

    def read(self, ctx: EngineContext, desired: UserAccountResource) -> dict[str, Any] | None:
        user = quote(desired.username)
        passwd = ctx.run(f"getent passwd {user}", check=False)
        if passwd.exit_code == 2:
            return None
        fields = passwd.stdout.strip().split(":")
        if passwd.exit_code != 0 or len(fields) != 7:
            raise ProbeError(desired.address, f"unexpected getent output: {passwd.stdout!r}")
        home, shell = fields[5], fields[6]

        groups = ctx.run(f"id -nG {user}").stdout.split()
        keys = ctx.run(f"cat {quote(home + '/.ssh/authorized_keys')}", check=False)
        return {
            "username": desired.username,
            "groups": groups,
            "shell": shell,
            "authorized_keys": parse_authorized_keys(keys.stdout) if keys.exit_code == 0 else [],
        }

    def create(self, ctx: EngineContext, desired: UserAccountResource) -> bool:
        cmd = f"useradd --create-home --shell {quote(desired.shell)}"
        if desired.groups:
            cmd += f" --groups {quote(','.join(desired.groups))}"
        ctx.run(f"{cmd} {quote(desired.username)}")
        if desired.authorized_keys:
            ctx.run(_install_keys_script(desired.username, desired.authorized_keys))
        logger.info("%s: created user %s", ctx.host, desired.username)
        return True

    def update(
        self, ctx: EngineContext, desired: UserAccountResource, prior: dict[str, Any]
    ) -> bool:
        user = quote(desired.username)
        changed = False
        if prior.get("shell") != desired.shell:
            ctx.run(f"usermod --shell {quote(desired.shell)} {user}")
            changed = True
        missing_groups = [g for g in desired.groups if g not in prior.get("groups", [])]
        if missing_groups:
            ctx.run(f"usermod --append --groups {quote(','.join(missing_groups))} {user}")
            changed = True
        present_keys = prior.get("authorized_keys", [])
        missing_keys = [k for k in desired.authorized_keys if k not in present_keys]
        if missing_keys:
            ctx.run(_install_keys_script(desired.username, missing_keys))
            changed = True
        return changed
