"""
formatter.py -- Renders a HazardReport to terminal output or JSON.
"""

import json
import os
import re
import sys
from dataclasses import asdict
from typing import Optional

from .models import ALERT_CONTENT, HazardReport

W = 68  # output width

# ---------------------------------------------------------------------------
# ANSI color control
# ---------------------------------------------------------------------------

_ANSI_RE = re.compile(r"\x1b\[[0-9;]*m")


def strip_ansi(text: str) -> str:
    """Remove ANSI escape sequences from a string."""
    return _ANSI_RE.sub("", text)


def _use_color() -> bool:
    """Return True if stdout is a TTY and color has not been disabled.

    Respects NO_COLOR env var (https://no-color.org) and checks sys.stdout.isatty().
    """
    if os.environ.get("NO_COLOR"):
        return False
    if os.environ.get("FORCE_COLOR"):
        return True
    return hasattr(sys.stdout, "isatty") and sys.stdout.isatty()


_color_enabled: Optional[bool] = None  # None = auto-detect


def disable_color() -> None:
    """Force-disable color output (called when --no-color flag is set)."""
    global _color_enabled
    _color_enabled = False


def _color_active() -> bool:
    if _color_enabled is not None:
        return _color_enabled
    return _use_color()


LEVEL_COLORS = {
    "critical": "\033[91m",  # red
    "warning": "\033[93m",  # yellow
    "neutral": "\033[92m",  # green
}


def _reset() -> str:
    return "\033[0m" if _color_active() else ""


def _bold() -> str:
    return "\033[1m" if _color_active() else ""


def _level_color(level: str) -> str:
    return LEVEL_COLORS.get(level, "") if _color_active() else ""


def _bar(char: str = "═") -> str:
    return char * W


def _section(title: str) -> str:
    return f"\n  {_bold()}{title}{_reset()}\n  {'─' * (W - 2)}"


def _badge(level: str) -> str:
    return f"{_level_color(level)}{_bold()}{level.upper()}{_reset()}"


# ---------------------------------------------------------------------------
# Terminal renderer
# ---------------------------------------------------------------------------


def print_terminal(report: HazardReport) -> None:
    bold = _bold()
    reset = _reset()
    c = report.coords

    print(f"\n{bold}{_bar()}{reset}")
    print(f"  {bold}Hazard report{reset}  │  {c.latitude:.4f}, {c.longitude:.4f}")
    print(f"  Generated {report.generated_at}")
    print(f"{bold}{_bar()}{reset}")

    print(_section("OVERALL"))
    print(f"    Top hazard     {report.top_hazard}  {_badge(report.top_level)}")
    if report.top_level != "neutral" and report.top_hazard in ALERT_CONTENT:
        alert = ALERT_CONTENT[report.top_hazard]
        print(f"    {bold}{alert.title}{reset}: {alert.message}")
        print(f"    -> {alert.action}")

    for name, status in report.statuses.items():
        print(_section(name.upper()))
        print(f"    Status         {_badge(status.status)}")
        for label, value in status.lines:
            print(f"    {label:<26} {value}")
        if status.note:
            print(f"    ({status.note})")

    print(_section("NATURAL EVENTS (EONET)"))
    ev = report.events
    if ev.level == "neutral":
        print("    No nearby events.")
    else:
        print(f"    {_badge(ev.level)}  {ev.type}  {ev.reason}")
        if ev.updated_at:
            print(f"    Last update    {ev.updated_at}")

    if report.errors:
        print(_section("UNAVAILABLE FEEDS"))
        for source, message in report.errors.items():
            print(f"    {source:<8} {message}")
    print()


def to_dict(report: HazardReport) -> dict:
    """Plain-dict form of a report; status lines become label/value objects."""
    data = asdict(report)
    for status in data["statuses"].values():
        status["lines"] = [{"label": label, "value": value} for label, value in status["lines"]]
    return data


def to_json(report: HazardReport) -> str:
    return json.dumps(to_dict(report), indent=2, ensure_ascii=False)
