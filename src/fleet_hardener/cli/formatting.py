"""Plan, host and run output rendering (Terraform-style)."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, NamedTuple

import typer

from fleet_hardener.engine.types import Action, HostOutcome, Outcome

if TYPE_CHECKING:
    from collections.abc import Callable

    from fleet_hardener.engine.types import (
        ActionResult,
        HostReport,
        Plan,
        ResourceChange,
        RunReport,
    )


class _ActionStyle(NamedTuple):
    color: str
    symbol: str
    progress_verb: str
    done_verb: str


_ACTION_STYLES: dict[str, _ActionStyle] = {
    "create": _ActionStyle("green", "+", "Creating", "Creation complete"),
    "update": _ActionStyle("yellow", "~", "Updating", "Update complete"),
    "enable": _ActionStyle("cyan", ">", "Enabling", "Enable complete"),
    "restart": _ActionStyle("magenta", "↻", "Restarting", "Restart complete"),
    "no-op": _ActionStyle("bright_black", " ", "", ""),
}

_ACTION_DESC: dict[str, str] = {
    "create": "will be created",
    "update": "will be updated in-place",
    "enable": "will be enabled",
    "restart": "will be restarted",
    "no-op": "is up-to-date",
}

_OUTCOME_STYLES: dict[HostOutcome, tuple[str, str]] = {
    HostOutcome.FULLY_RECONCILED: ("green", "reconciled"),
    HostOutcome.PARTIALLY_APPLIED: ("yellow", "partially applied"),
    HostOutcome.SKIPPED: ("red", "skipped"),
    HostOutcome.UNREACHABLE: ("red", "unreachable"),
}


def styler(color: bool) -> Callable[..., str]:
    """Return ``typer.style`` when *color* is True, otherwise a passthrough."""
    if color:
        return typer.style
    return lambda text, **_kw: text


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def has_actionable_changes(report: RunReport) -> bool:
    """Return True if any host's plan contains a change to apply."""
    return any(h.plan is not None and not h.plan.is_empty for h in report.hosts)


def _align_values(items: dict[str, str]) -> list[tuple[str, str]]:
    """Right-pad keys so ``=`` signs align."""
    if not items:
        return []
    max_key = max(len(k) for k in items)
    return [(k.ljust(max_key), v) for k, v in items.items()]


def _format_value(value: Any) -> str:
    """Format a value for display in a plan diff block."""
    if isinstance(value, str):
        return f'"{value}"'
    if value is None:
        return "null"
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, list):
        return "[" + ", ".join(_format_value(v) for v in value) + "]"
    return str(value)


# ---------------------------------------------------------------------------
# Plan rendering
# ---------------------------------------------------------------------------


def _change_attrs(change: ResourceChange) -> dict[str, str]:
    """Extract displayable ``key → formatted value`` pairs from a change."""
    if change.action == Action.CREATE and change.planned:
        return {k: _format_value(v) for k, v in change.planned.items()}
    if change.action in (Action.UPDATE, Action.ENABLE) and change.diff:
        return {
            k: f"{_format_value(d['from'])} -> {_format_value(d['to'])}"
            for k, d in change.diff.items()
        }
    return {}


def format_change(change: ResourceChange, *, color: bool = True) -> str:
    """Render a single ResourceChange as a Terraform-style block."""
    style = styler(color)
    action_val = change.action.value
    sc = {"fg": _ACTION_STYLES[action_val].color}
    symbol = _ACTION_STYLES[action_val].symbol

    header = style(f"  # {change.address} {_ACTION_DESC[action_val]}", bold=True, **sc)
    attrs = _align_values(_change_attrs(change))
    if not attrs:
        return "\n".join([header, style(f"  {symbol} {change.address}", **sc)])

    name = change.address.split(".", 1)[1] if "." in change.address else change.address
    lines = [
        header,
        style(f'  {symbol} {change.resource_type} "{name}" {{', **sc),
        *[style(f"      {symbol} {k} = {v}", **sc) for k, v in attrs],
        style("    }", **sc),
    ]
    return "\n".join(lines)


def format_plan(plan: Plan, *, color: bool = True, show_noops: bool = False) -> str:
    """Render the full plan output with per-change diff blocks."""
    style = styler(color)
    blocks = [format_change(c, color=color) for c in plan.changes]
    if show_noops and plan.noops:
        blocks.append(
            "\n".join(
                style(f"    {c.address} {_ACTION_DESC['no-op']}", fg="bright_black")
                for c in plan.noops
            )
        )
    if plan.probe_failures:
        blocks.append(
            "\n".join(
                style(f"  ! {f.address} could not be probed: {f.error}", fg="red")
                for f in plan.probe_failures
            )
        )
    if not plan.changes and not plan.probe_failures:
        blocks.insert(0, "  No changes. Host is up-to-date.")
    return "\n\n".join(blocks)


# ---------------------------------------------------------------------------
# Host and run reports
# ---------------------------------------------------------------------------


def progress_label(change: ResourceChange) -> str:
    """Progress bar text for an action that just started, e.g. ``Creating package.ufw...``."""
    return f"{_ACTION_STYLES[change.action.value].progress_verb} {change.address}..."


def format_host_header(report: HostReport, *, color: bool = True) -> str:
    style = styler(color)
    fg, label = _OUTCOME_STYLES[report.outcome]
    return f"{style(report.host, bold=True)}: {style(label, fg=fg)}"


def format_result(result: ActionResult, *, color: bool = True) -> str:
    """Render one line per executed, failed or skipped action."""
    style = styler(color)
    address = result.change.key
    match result.outcome:
        case Outcome.APPLIED:
            verb = _ACTION_STYLES[result.change.action.value].done_verb
            suffix = "" if result.changed else " (already converged)"
            return style(f"  {address}: {verb}{suffix}", fg="green")
        case Outcome.FAILED:
            return style(f"  {address}: failed: {result.error}", fg="red")
        case _:
            reason = result.error or "not needed"
            return style(f"  {address}: skipped ({reason})", fg="bright_black")


def format_host_report(report: HostReport, *, color: bool = True, dry_run: bool = False) -> str:
    """Render a host's header, its plan (dry run) or its action results (live run)."""
    style = styler(color)
    lines = [format_host_header(report, color=color)]
    if report.reason:
        lines.append(style(f"  {report.reason}", fg="red"))
    if report.plan is not None and dry_run:
        lines.append(format_plan(report.plan, color=color, show_noops=True))
        lines.append("  " + format_plan_summary(report.plan.summary(), color=color))
    else:
        lines.extend(format_result(r, color=color) for r in report.results)
        lines.extend(style(f"  ! {e}", fg="red") for e in report.probe_errors)
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Summaries
# ---------------------------------------------------------------------------

_PLAN_VERBS: tuple[tuple[str, str, str], ...] = (
    ("create", "to create", "green"),
    ("update", "to update", "yellow"),
    ("enable", "to enable", "cyan"),
    ("restart", "to restart", "magenta"),
)


def format_plan_summary(summary: dict[str, int], *, color: bool = True) -> str:
    """Render ``Plan: 2 to create, 1 to update, 0 to enable, 1 to restart.``"""
    style = styler(color)
    parts = []
    for key, verb, fg in _PLAN_VERBS:
        n = summary.get(key, 0)
        parts.append(style(f"{n} {verb}", fg=fg) if n and color else f"{n} {verb}")
    return f"Plan: {', '.join(parts)}."


def format_run_summary(report: RunReport, *, color: bool = True) -> str:
    """Render ``Run complete! Hosts: 3 reconciled, 1 partially applied, ...``"""
    style = styler(color)
    counts = {o: 0 for o in HostOutcome}
    for h in report.hosts:
        counts[h.outcome] += 1
    parts = [
        style(f"{counts[o]} {label}", fg=fg) if counts[o] and color else f"{counts[o]} {label}"
        for o, (fg, label) in _OUTCOME_STYLES.items()
    ]
    title = "Dry run complete!" if report.dry_run else "Run complete!"
    header_fg = "green" if report.exit_code == 0 else "yellow"
    return f"{style(title, fg=header_fg, bold=True)} Hosts: {', '.join(parts)}."
