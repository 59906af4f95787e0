"""sshd directive handler: probe via ``sshd -T``, edit ``sshd_config`` in place."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from fleet_hardener.engine.errors import ProbeError
from fleet_hardener.engine.handlers import ResourceHandler, quote
from fleet_hardener.resources.sshd import canonical_directive, normalize_value

if TYPE_CHECKING:
    from fleet_hardener.engine.handlers import EngineContext
    from fleet_hardener.resources.sshd import SSHDirectiveResource

logger = logging.getLogger(__name__)

SSHD_CONFIG = "/etc/ssh/sshd_config"


def parse_effective_config(text: str) -> dict[str, str]:
    """Parse ``sshd -T`` output into ``{canonical directive: normalized value}``.

    Multi-valued keywords (one line per value) are joined with spaces.
    Raises ``ValueError`` on a time or log level value sshd would not print.
    """
    values: dict[str, list[str]] = {}
    for line in text.splitlines():
        key, _, value = line.strip().partition(" ")
        directive = canonical_directive(key) if key else None
        if directive is None:
            continue
        values.setdefault(directive, []).append(value.strip())
    return {k: normalize_value(" ".join(v), k) for k, v in values.items()}


def set_directive_script(directive: str, value: str, path: str = SSHD_CONFIG) -> str:
    """Shell script that pins ``directive value`` at the top of the main config.

    sshd honours the first value it reads, so existing global occurrences
    (before any ``Match`` block) are removed and the new line is prepended.
    The edit is rolled back if ``sshd -t`` rejects the result.
    """
    f = quote(path)
    line = quote(f"{directive} {value}")
    return "\n".join(
        [
            "set -e",
            f"cp -p {f} {f}.fleet-hardener.bak",
            f"sed -i -E '1,/^[[:space:]]*Match[[:space:]]/{{/^[[:space:]]*{directive}"
            f"([[:space:]]|=)/Id}}' {f}",
            f"{{ printf '%s\\n' {line}; cat {f}; }} > {f}.fleet-hardener.tmp",
            f"cat {f}.fleet-hardener.tmp > {f}",
            f"rm -f {f}.fleet-hardener.tmp",
            f"if ! sshd -t; then cat {f}.fleet-hardener.bak > {f}; exit 1; fi",
        ]
    )


class SSHDirectiveHandler(ResourceHandler["SSHDirectiveResource"]):
    """Reads the daemon's effective configuration; writes ``sshd_config``.

    Changes take effect when the watching ``service`` resource restarts sshd.
    """

    def read(self, ctx: EngineContext, desired: SSHDirectiveResource) -> dict[str, Any] | None:
        result = ctx.run("sshd -T", check=False)
        if result.exit_code != 0:
            raise ProbeError(desired.address, f"sshd -T failed: {result.stderr.strip()}")
        try:
            effective = parse_effective_config(result.stdout)
        except ValueError as exc:
            raise ProbeError(desired.address, f"unexpected sshd -T output: {exc}") from exc
        if not effective:
            raise ProbeError(desired.address, "sshd -T produced no recognizable output")
        if desired.directive not in effective:
            return None
        return {"directive": desired.directive, "value": effective[desired.directive]}

    def create(self, ctx: EngineContext, desired: SSHDirectiveResource) -> bool:
        ctx.run(set_directive_script(desired.directive, desired.value))
        logger.info("%s: set %s %s", ctx.host, desired.directive, desired.value)
        return True
