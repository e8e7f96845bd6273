"""Plan and apply output rendering (Terraform-style)."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, NamedTuple

import typer

from infragraph.engine.types import Action, Outcome

if TYPE_CHECKING:
    from collections.abc import Callable

    from infragraph.engine.graph import ResourceGraph
    from infragraph.engine.types import ApplyResult, Plan, ResourceChange


class _ActionStyle(NamedTuple):
    color: str
    symbol: str
    progress_verb: str
    done_verb: str


_ACTION_STYLES: dict[str, _ActionStyle] = {
    "create": _ActionStyle("green", "+", "Creating", "Creation complete"),
    "update": _ActionStyle("yellow", "~", "Modifying", "Modifications complete"),
    "delete": _ActionStyle("red", "-", "Destroying", "Destruction complete"),
    "no-op": _ActionStyle("bright_black", " ", "", ""),
}

_ACTION_DESC: dict[str, str] = {
    "create": "will be created",
    "update": "will be updated in-place",
    "delete": "will be destroyed",
    "no-op": "is up-to-date",
}


def styler(color: bool) -> Callable[..., str]:
    """Return ``typer.style`` when *color* is True, otherwise a passthrough."""
    if color:
        return typer.style
    return lambda text, **_kw: text


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def has_actionable_changes(plan: Plan) -> bool:
    """Return True if the plan contains any non-NOOP changes."""
    return any(c.action != Action.NOOP for c in plan.changes)


def _align_values(items: dict[str, str]) -> list[tuple[str, str]]:
    """Right-pad keys so ``=`` signs align."""
    if not items:
        return []
    max_key = max(len(k) for k in items)
    return [(k.ljust(max_key), v) for k, v in items.items()]


def _format_value(value: Any) -> str:
    """Format a value for display in a plan diff block."""
    from infragraph.resources.expressions import UNKNOWN

    if value == UNKNOWN:
        return UNKNOWN
    if isinstance(value, str):
        return f'"{value}"'
    if value is None:
        return "null"
    return str(value)


# ---------------------------------------------------------------------------
# Plan rendering
# ---------------------------------------------------------------------------


def _change_attrs(change: ResourceChange) -> dict[str, str]:
    """Extract displayable ``key → formatted value`` pairs from a change."""
    if change.action == Action.CREATE and change.planned:
        return {k: _format_value(v) for k, v in change.planned.items()}
    if change.action == Action.UPDATE and change.diff:
        return {
            k: f"{_format_value(d['from'])} -> {_format_value(d['to'])}"
            for k, d in change.diff.items()
        }
    if change.action == Action.DELETE and change.prior:
        return {k: _format_value(v) for k, v in change.prior.items()}
    return {}


def format_change(change: ResourceChange, *, color: bool = True) -> str:
    """Render a single ResourceChange as a Terraform-style block."""
    style = styler(color)
    action_val = change.action.value
    sc = {"fg": _ACTION_STYLES[action_val].color}
    symbol = _ACTION_STYLES[action_val].symbol

    name = change.address.split(".", 1)[1] if "." in change.address else change.address
    lines = [
        style(f"  # {change.address} {_ACTION_DESC[action_val]}", bold=True, **sc),
        style(f'  {symbol} resource "{change.resource_type}" "{name}" {{', **sc),
        *[
            style(f"      {symbol} {k} = {v}", **sc)
            for k, v in _align_values(_change_attrs(change))
        ],
        style("    }", **sc),
    ]
    return "\n".join(lines)


def format_changes(changes: list[ResourceChange], *, color: bool = True) -> str:
    """Render a list of changes as Terraform-style diff blocks."""
    blocks = [format_change(c, color=color) for c in changes if c.action != Action.NOOP]
    if not blocks:
        return "No changes. Resources are up-to-date."
    return "\n\n".join(blocks)


def format_plan(plan: Plan, *, color: bool = True) -> str:
    """Render the full plan output with per-change diff blocks."""
    return format_changes(plan.changes, color=color)


# ---------------------------------------------------------------------------
# Summaries
# ---------------------------------------------------------------------------

_PLAN_VERBS = ("to add", "to change", "to destroy")
_APPLY_VERBS = ("added", "changed", "destroyed")
_SUMMARY_COLORS = ("green", "yellow", "red")


def _format_summary(counts: tuple[int, int, int], verbs: tuple[str, ...], *, color: bool) -> str:
    """Build the ``N verb, N verb, N verb`` part of a summary line."""
    style = styler(color)
    parts = [
        style(f"{n} {verb}", fg=fg) if n and color else f"{n} {verb}"
        for n, verb, fg in zip(counts, verbs, _SUMMARY_COLORS, strict=True)
    ]
    return ", ".join(parts)


def changes_summary(changes: list[ResourceChange]) -> dict[str, int]:
    """Count changes by action type (create/update/delete)."""
    summary: dict[str, int] = {"create": 0, "update": 0, "delete": 0}
    for c in changes:
        if c.action != Action.NOOP:
            summary[c.action.value] += 1
    return summary


def format_plan_summary(
    summary: dict[str, int], *, color: bool = True, header: str = "Plan"
) -> str:
    """Render ``Plan: 2 to add, 1 to change, 0 to destroy.``"""
    counts = (summary.get("create", 0), summary.get("update", 0), summary.get("delete", 0))
    return f"{header}: {_format_summary(counts, _PLAN_VERBS, color=color)}."


def format_apply_summary(result: ApplyResult, *, color: bool = True) -> str:
    """Render ``Apply complete! Resources: 2 added, 0 changed, 0 destroyed.``

    When anything failed or was skipped the header turns into
    ``Apply finished with errors!`` and the counts of failed and skipped
    resources are appended.
    """
    style = styler(color)
    s = result.summary()
    counts = (s["created"], s["updated"], s["deleted"])
    body = _format_summary(counts, _APPLY_VERBS, color=color)
    if result.ok:
        header = style("Apply complete!", fg="green", bold=True)
        return f"{header} Resources: {body}."
    header = style("Apply finished with errors!", fg="red", bold=True)
    extra = f"{s['failed']} failed, {s['skipped']} skipped"
    if s["canceled"]:
        extra += f", {s['canceled']} canceled"
    return f"{header} Resources: {body}; {extra}."


def format_apply_report(result: ApplyResult, *, color: bool = True) -> str:
    """List every resource that failed, was skipped, or never started."""
    style = styler(color)
    lines: list[str] = []
    for item in result.by_outcome(Outcome.FAILED):
        lines.append(style(f"  ! {item.address}: {item.error}", fg="red"))
    for item in result.by_outcome(Outcome.SKIPPED):
        lines.append(
            style(f"  - {item.address}: skipped (depends on failed {item.blocked_by})", fg="yellow")
        )
    for item in result.by_outcome(Outcome.CANCELED):
        lines.append(style(f"  - {item.address}: canceled", fg="bright_black"))
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Graph rendering
# ---------------------------------------------------------------------------


def format_graph(graph: ResourceGraph, *, color: bool = True) -> str:
    """Render the dependency order followed by each resource's dependencies."""
    style = styler(color)
    order = graph.topological_order()
    if not order:
        return "No resources declared."
    lines = [style("Apply order:", bold=True)]
    lines += [f"  {i}. {address}" for i, address in enumerate(order, start=1)]
    lines += ["", style("Dependencies:", bold=True)]
    for address in order:
        deps = graph.dependencies_of(address)
        if deps:
            lines.append(f"  {address} -> {', '.join(deps)}")
        else:
            lines.append(f"  {address} (none)")
    return "\n".join(lines)
