"""Request status rendering."""

from __future__ import annotations

from typing import TYPE_CHECKING, NamedTuple

import typer

from pipeline_resolution.core.request import ConditionStatus

if TYPE_CHECKING:
    from collections.abc import Callable

    from pipeline_resolution.core.request import ResolutionRequest


class _StateStyle(NamedTuple):
    color: str
    label: str


_STATE_STYLES: dict[str, _StateStyle] = {
    "pending": _StateStyle("bright_black", "Pending"),
    ConditionStatus.UNKNOWN.value: _StateStyle("yellow", "Running"),
    ConditionStatus.TRUE.value: _StateStyle("green", "Succeeded"),
    ConditionStatus.FALSE.value: _StateStyle("red", "Failed"),
}


def styler(color: bool) -> Callable[..., str]:
    """Return ``typer.style`` when *color* is True, otherwise a passthrough."""
    if color:
        return typer.style
    return lambda text, **_kw: text


def state_style(request: ResolutionRequest) -> _StateStyle:
    cond = request.status.get_condition()
    return _STATE_STYLES["pending" if cond is None else cond.status.value]


def format_state(request: ResolutionRequest, *, color: bool = True) -> str:
    """One-word state, e.g. ``Failed``."""
    s = state_style(request)
    return styler(color)(s.label, fg=s.color)


def format_request(request: ResolutionRequest, *, color: bool = True) -> str:
    """Multi-line description of one request (without its content)."""
    style = styler(color)
    cond = request.status.get_condition()
    lines = [
        style(request.key, bold=True),
        f"  state    = {format_state(request, color=color)}",
        f"  resolver = {request.resolver_type or '<none>'}",
        f"  created  = {request.metadata.creation_timestamp.isoformat()}",
    ]
    if cond is not None and cond.reason:
        lines.append(f"  reason   = {cond.reason}")
    if cond is not None and cond.message:
        lines.append(f"  message  = {cond.message}")
    if request.spec.parameters:
        lines.append("  params:")
        width = max(len(k) for k in request.spec.parameters)
        lines.extend(
            f"    {k.ljust(width)} = {v}" for k, v in sorted(request.spec.parameters.items())
        )
    if request.status.annotations:
        lines.append("  annotations:")
        width = max(len(k) for k in request.status.annotations)
        lines.extend(
            f"    {k.ljust(width)} = {v}" for k, v in sorted(request.status.annotations.items())
        )
    if request.status.data:
        lines.append(f"  data     = <{len(request.decoded_data())} bytes>")
    return "\n".join(lines)


def summary_counts(requests: list[ResolutionRequest]) -> dict[str, int]:
    counts = {s.label: 0 for s in _STATE_STYLES.values()}
    for r in requests:
        counts[state_style(r).label] += 1
    return counts


def format_summary(counts: dict[str, int], *, color: bool = True) -> str:
    """``Requests: 0 pending, 1 running, 2 succeeded, 0 failed.``"""
    style = styler(color)
    parts = [
        style(f"{counts[s.label]} {s.label.lower()}", fg=s.color) for s in _STATE_STYLES.values()
    ]
    return f"Requests: {', '.join(parts)}."
