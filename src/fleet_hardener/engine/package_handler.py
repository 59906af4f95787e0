"""Package handler implementing probe/install via dpkg and apt-get."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from fleet_hardener.engine.handlers import ResourceHandler, quote

if TYPE_CHECKING:
    from fleet_hardener.engine.handlers import EngineContext
    from fleet_hardener.resources.package import PackageResource

logger = logging.getLogger(__name__)

_INSTALLED = "install ok installed"


class PackageHandler(ResourceHandler["PackageResource"]):
    """Installs Debian packages non-interactively."""

    def read(self, ctx: EngineContext, desired: PackageResource) -> dict[str, Any] | None:
        result = ctx.run(f"dpkg-query -W -f='${{Status}}' {quote(desired.package)}", check=False)
        # dpkg-query exits 1 for packages it has never heard of.
        if result.exit_code != 0 or result.stdout.strip() != _INSTALLED:
            return None
        return {"package": desired.package}

    def create(self, ctx: EngineContext, desired: PackageResource) -> bool:
        result = ctx.run(
            "DEBIAN_FRONTEND=noninteractive apt-get install -y -q "
            f"--no-install-recommends {quote(desired.package)}"
        )
        changed = "is already the newest version" not in result.stdout
        logger.debug("%s: package %s installed (changed=%s)", ctx.host, desired.package, changed)
        return changed
