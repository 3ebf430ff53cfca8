"""Terminal output for flowctl.

Two streams, two audiences:

* **stdout** carries the result of a command and nothing else: the token
  printed by ``flowctl auth token``, the status fields of
  ``flowctl auth status``. Scripts capture it, so a progress line must
  never end up there.
* **stderr** carries every diagnostic: login progress, the authorization
  URL, success and failure notices, and the ``--verbose`` debug trace of
  the auth core.

Colour is dropped for ``--no-color``, ``NO_COLOR`` and ``TERM=dumb``, and
Rich formatting is only used when stdout is a terminal.

:class:`OutputManager` holds those choices. The root callback in
:mod:`flowctl.app` installs one with :func:`set_output`; library code calls
the module-level :func:`info`, :func:`debug`, ... helpers, which go through
whichever manager is installed (a default one is created lazily).
"""

from __future__ import annotations

import json
import os
import sys
from enum import Enum
from typing import Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table


class OutputFormat(str, Enum):
    """How command results are rendered on stdout.

    ``AUTO`` becomes ``RICH`` on an interactive, colour-capable terminal and
    ``PLAIN`` everywhere else.
    """

    AUTO = "auto"
    JSON = "json"
    PLAIN = "plain"
    RICH = "rich"


# Diagnostic kinds: (rich style, plain-text prefix)
_STYLES: dict[str, tuple[str, str]] = {
    "info": ("", ""),
    "progress": ("dim", ""),
    "success": ("green", ""),
    "suggest": ("dim", "→ "),
    "warning": ("yellow", "Warning: "),
    "error": ("bold red", "Error: "),
    "debug": ("dim", "[debug] "),
}

# Kinds still shown with --quiet
_ALWAYS_SHOWN = frozenset({"warning", "error"})


class OutputManager:
    """Routes results to stdout and diagnostics to stderr.

    Args:
        format: Result format; ``AUTO`` is resolved from the terminal.
        no_color: Disable colour and Rich markup.
        quiet: Hide everything on stderr except warnings and errors.
        verbose: Also show ``debug`` messages.
    """

    def __init__(
        self,
        format: OutputFormat = OutputFormat.AUTO,
        no_color: bool = False,
        quiet: bool = False,
        verbose: bool = False,
    ) -> None:
        self._no_color = no_color or _color_disabled_by_env()
        self._quiet = quiet
        self._verbose = verbose

        if format == OutputFormat.AUTO:
            rich = _stdout_is_tty() and not self._no_color
            format = OutputFormat.RICH if rich else OutputFormat.PLAIN
        self._format = format

        self._stdout = Console(
            file=sys.stdout,
            no_color=self._no_color,
            force_terminal=(format == OutputFormat.RICH),
        )
        self._stderr = Console(file=sys.stderr, no_color=self._no_color, stderr=True)

    @property
    def format(self) -> OutputFormat:
        return self._format

    @property
    def is_quiet(self) -> bool:
        return self._quiet

    @property
    def is_verbose(self) -> bool:
        return self._verbose

    # -- stdout ------------------------------------------------------------

    def print_data(self, text: str) -> None:
        """Write *text* to stdout unchanged."""
        print(text, file=sys.stdout, flush=True)

    def print_fields(self, fields: list[tuple[str, str]], title: Optional[str] = None) -> None:
        """Write named values to stdout in the active format.

        JSON mode emits one object, plain mode emits ``name<TAB>value``
        lines, and Rich mode renders a two-column table titled *title*.
        """
        if self._format == OutputFormat.JSON:
            self.print_data(json.dumps(dict(fields), indent=2, ensure_ascii=False))
        elif self._format == OutputFormat.PLAIN:
            for name, value in fields:
                self.print_data(f"{name}\t{value}")
        else:
            table = Table(title=title, show_header=False)
            table.add_column(style="bold cyan")
            table.add_column()
            for name, value in fields:
                table.add_row(escape(name), escape(value))
            self._stdout.print(table)

    # -- stderr ------------------------------------------------------------

    def emit(self, kind: str, message: str) -> None:
        """Write a diagnostic of *kind* (a key of the style table) to stderr."""
        if kind == "debug" and not self._verbose:
            return
        if self._quiet and kind not in _ALWAYS_SHOWN:
            return
        style, prefix = _STYLES[kind]
        if self._no_color:
            print(f"{prefix}{message}", file=sys.stderr, flush=True)
        elif style:
            self._stderr.print(f"[{style}]{escape(prefix + message)}[/{style}]")
        else:
            self._stderr.print(escape(prefix + message))

    def info(self, message: str) -> None:
        self.emit("info", message)

    def progress(self, message: str) -> None:
        """Login progress; shown even when stdout is piped, since the user must act."""
        self.emit("progress", message)

    def success(self, message: str) -> None:
        self.emit("success", message)

    def suggest(self, message: str) -> None:
        self.emit("suggest", message)

    def warning(self, message: str) -> None:
        self.emit("warning", message)

    def error(self, message: str) -> None:
        self.emit("error", message)

    def debug(self, message: str) -> None:
        self.emit("debug", message)


def _stdout_is_tty() -> bool:
    return hasattr(sys.stdout, "isatty") and sys.stdout.isatty()


def _color_disabled_by_env() -> bool:
    """``NO_COLOR`` (any value) or ``TERM=dumb`` turns colour off."""
    return os.environ.get("NO_COLOR") is not None or os.environ.get("TERM") == "dumb"


# -- Installed manager ------------------------------------------------------

_output: Optional[OutputManager] = None


def get_output() -> OutputManager:
    """Return the installed :class:`OutputManager`, creating a default one."""
    global _output
    if _output is None:
        _output = OutputManager()
    return _output


def set_output(output: OutputManager) -> None:
    global _output
    _output = output


def reset_output() -> None:
    """Forget the installed manager. Tests call this between cases."""
    global _output
    _output = None


# -- Shortcuts through the installed manager --------------------------------


def print_data(text: str) -> None:
    get_output().print_data(text)


def print_fields(fields: list[tuple[str, str]], title: Optional[str] = None) -> None:
    get_output().print_fields(fields, title)


def info(message: str) -> None:
    get_output().info(message)


def progress(message: str) -> None:
    get_output().progress(message)


def success(message: str) -> None:
    get_output().success(message)


def suggest(message: str) -> None:
    get_output().suggest(message)


def warning(message: str) -> None:
    get_output().warning(message)


def error(message: str) -> None:
    get_output().error(message)


def debug(message: str) -> None:
    get_output().debug(message)
