"""
Module: cli_formatter
Purpose: Terminal rendering for MediaHub commands: headings, aligned
key/value rows, framed summaries and coverage bars, with plain-mode and
no-color fallbacks.
"""

from __future__ import annotations

import os
import re
import sys
import textwrap
from dataclasses import dataclass
from typing import Iterable, TextIO

from .utils import BOLD, COLOR_RESET, color_256, osc8_link

DEFAULT_LINE_WIDTH = 96
DEFAULT_KV_WIDTH = 28
INDENT = "  "
BULLET_PREFIX = f"{INDENT}- "
MIN_WRAP_WIDTH = 10
CONTROL_SEQUENCE = re.compile(r"\x1b\[[0-9;]*m|\x1b]8;;.*?\x07")
THEMES: dict[str, dict[str, int]] = {
    "light": {"heading": 74, "accent": 141, "success": 64, "warn": 221, "error": 160, "link": 33, "muted": 243},
    "dark": {"heading": 75, "accent": 105, "success": 71, "warn": 221, "error": 167, "link": 39, "muted": 245},
}
BOX_UNICODE = {"h": "─", "v": "│", "tl": "┌", "tr": "┐", "bl": "└", "br": "┘"}
BOX_ASCII = {"h": "-", "v": "|", "tl": "+", "tr": "+", "bl": "+", "br": "+"}


@dataclass
class FormatterConfig:
    """
    Output capabilities resolved once per run.
    """

    use_color: bool = True
    unicode_enabled: bool = True
    plain_mode: bool = False
    osc8_links: bool = True
    verbose: bool = False
    theme: str = "light"


class CLIFormatter:
    """
    Single place where MediaHub output is styled and written.
    """

    def __init__(self, config: FormatterConfig | None = None, stream: TextIO | None = None) -> None:
        self.config = config or FormatterConfig()
        self.stream = stream or sys.stdout
        self.line_width = DEFAULT_LINE_WIDTH
        self.colors = {role: color_256(code) for role, code in THEMES[_theme_name(self.config.theme)].items()}

    @property
    def fancy(self) -> bool:
        return self.config.unicode_enabled and not self.config.plain_mode

    # ------------------------------------------------------------ block output
    def line(self, text: str = "") -> None:
        self.stream.write(f"{text}\n")

    def blank(self) -> None:
        self.line()

    def section(self, title: str, icon: str | None = "◆") -> None:
        """Blank line followed by a bold heading."""
        marker = (icon if self.fancy else ">") if icon else None
        self.blank()
        self.line(self._paint(f"{marker} {title}" if marker else title, "heading", bold=True))

    def info(self, text: str) -> None:
        self.line(self._paint(text, "heading"))

    def success(self, text: str) -> None:
        self.line(self._paint(text, "success", bold=True))

    def warning(self, text: str) -> None:
        self.line(self._paint(text, "warn", bold=True))

    def error(self, text: str) -> None:
        self.line(self._paint(text, "error", bold=True))

    def muted(self, text: str) -> None:
        self.line(self._paint(text, "muted"))

    def verbose(self, text: str) -> None:
        if self.config.verbose:
            self.muted(f"[verbose] {text}")

    def kv(self, label: str, value: str, width: int = DEFAULT_KV_WIDTH, indent: int = 1) -> None:
        """Aligned `label : value` row; long values wrap under the value column."""
        self._wrapped(f"{INDENT * max(indent, 0)}{label:<{width}} : ", value)

    def bullet(self, text: str, indent: str | None = None) -> None:
        self._wrapped(BULLET_PREFIX if indent is None else indent, text)

    def frame(self, title: str, lines: Iterable[str]) -> None:
        """
        Boxed block with a title in the top border.
        """
        box = BOX_UNICODE if self.fancy else BOX_ASCII
        width = min(self.line_width, DEFAULT_LINE_WIDTH)
        inner = width - 4
        heading = f"{box['h']} {title} "
        self.line(f"{box['tl']}{heading}{box['h'] * max(0, width - 2 - len(heading))}{box['tr']}")
        for text in lines:
            for chunk in textwrap.wrap(text, width=inner) or [""]:
                self.line(f"{box['v']} {chunk.ljust(inner)} {box['v']}")
        self.line(f"{box['bl']}{box['h'] * (width - 2)}{box['br']}")

    def failure_summary(
        self,
        *,
        title: str,
        reason: str,
        files_changed: str = "None",
        log_hint: str | None = None,
        remediation: list[str] | None = None,
    ) -> None:
        """
        Framed summary for failed or blocked commands. The first remediation
        step is the required action; the rest are listed as next steps.
        """
        steps = list(remediation or [])
        if steps:
            required = steps.pop(0)
        elif log_hint:
            required = f"Review {log_hint} for details."
        else:
            required = "Review the error and rerun when ready."
        rows = [f"Reason: {reason}", f"Files changed: {files_changed}"]
        if log_hint:
            rows.append(f"Log file: {log_hint}")
        rows.append(f"Required: {required}")
        rows.extend(f"Next: {step}" for step in steps)
        self.blank()
        self.frame(title, rows)

    # ------------------------------------------------------------ inline parts
    def prompt(self, message: str) -> str:
        """Styled question text for input()."""
        return self._paint(message, "accent", bold=True)

    def link(self, path: str, label: str | None = None) -> str:
        text = label or path
        if not (self.config.osc8_links and self.config.use_color and not self.config.plain_mode):
            return text
        return self._paint(osc8_link(path, text), "link")

    def label(self, text: str, level: str = "info", *, bold: bool = True) -> str:
        role = {"info": "heading", "success": "success", "warn": "warn", "error": "error"}.get(level, level)
        return self._paint(text, role if role in self.colors else "heading", bold=bold)

    def coverage_bar(self, ratio: float, width: int = 24) -> str:
        """Fixed-width bar plus percentage, e.g. `[######----] 60.00%`."""
        ratio = min(max(ratio, 0.0), 1.0)
        filled = round(ratio * width)
        full, empty = ("█", "░") if self.fancy else ("#", "-")
        bar = self._paint(full * filled, "success") + empty * (width - filled)
        return f"[{bar}] {ratio * 100:.2f}%"

    # --------------------------------------------------------------- internals
    def _paint(self, text: str, role: str, bold: bool = False) -> str:
        if not self.config.use_color or not text:
            return text
        return f"{BOLD if bold else ''}{self.colors[role]}{text}{COLOR_RESET}"

    def _wrapped(self, prefix: str, text: str) -> None:
        available = self.line_width - len(prefix)
        if CONTROL_SEQUENCE.search(text) or available < MIN_WRAP_WIDTH or len(text) <= available:
            self.line(f"{prefix}{text}")
            return
        chunks = textwrap.wrap(text, width=available) or [text]
        self.line(f"{prefix}{chunks[0]}")
        for chunk in chunks[1:]:
            self.line(f"{' ' * len(prefix)}{chunk}")


def _theme_name(preference: str | None) -> str:
    name = (preference or os.environ.get("MEDIAHUB_THEME", "light")).strip().lower()
    return name if name in THEMES else "light"


def _unicode_output() -> bool:
    encoding = getattr(sys.stdout, "encoding", None)
    if not encoding:
        return False
    try:
        BOX_UNICODE["tl"].encode(encoding)
    except (UnicodeEncodeError, LookupError):
        return False
    return True


def detect_terminal_capabilities(
    *,
    color_preference: str | None = None,
    plain_mode: bool = False,
    no_color_flag: bool = False,
    stdout_isatty: bool | None = None,
    theme_preference: str | None = None,
) -> FormatterConfig:
    """
    Resolve output capabilities from flags, environment and the terminal.

    Plain mode (--plain or $MEDIAHUB_PLAIN) disables color, unicode and links.
    Color follows $MEDIAHUB_COLOR ("always", "never", "auto"); in auto mode it
    needs a TTY and no --no-color or $NO_COLOR.
    """
    theme = _theme_name(theme_preference)
    if plain_mode or os.environ.get("MEDIAHUB_PLAIN"):
        return FormatterConfig(use_color=False, unicode_enabled=False, plain_mode=True, osc8_links=False, theme=theme)

    tty = sys.stdout.isatty() if stdout_isatty is None else stdout_isatty
    dumb = os.environ.get("TERM", "").lower() == "dumb"
    preference = (color_preference or os.environ.get("MEDIAHUB_COLOR") or "auto").lower()
    if preference == "always":
        use_color = True
    elif preference == "never":
        use_color = False
    else:
        use_color = tty and not dumb and not no_color_flag and not bool(os.environ.get("NO_COLOR"))
    return FormatterConfig(
        use_color=use_color,
        unicode_enabled=not dumb and _unicode_output(),
        plain_mode=False,
        osc8_links=use_color and tty,
        theme=theme,
    )
