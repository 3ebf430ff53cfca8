"""``flowctl`` command-line entry point.

Builds the root Typer app, mounts the ``auth`` group and the ``version``
command, and defines :func:`main`, the function behind the ``flowctl``
console script.

Errors reach the user in one of three ways:

* a :class:`~flowctl.exceptions.FlowctlError` is printed as a one-line
  error and the process exits with the error's ``exit_code``;
* Ctrl-C prints ``Cancelled.`` and exits with
  :data:`~flowctl.exit_codes.EXIT_CANCELLED`;
* anything else is a bug: the traceback goes to a crash file under the data
  directory and only its path is printed.
"""

from __future__ import annotations

import signal
import sys
import traceback
from datetime import datetime
from pathlib import Path
from typing import Any

import typer

from flowctl import __version__
from flowctl.exit_codes import EXIT_CANCELLED, EXIT_GENERIC_FAILURE
from flowctl.output import OutputFormat, OutputManager, set_output


app = typer.Typer(
    name="flowctl",
    help="Command-line client for the Flows API.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)

from flowctl.commands.auth import auth_app  # noqa: E402

app.add_typer(auth_app, name="auth", help="Log in, log out, and inspect credentials.")


def _print_version(value: bool) -> None:
    if value:
        typer.echo(f"flowctl {__version__}")
        raise typer.Exit()


def _result_format(json_output: bool, plain_output: bool) -> OutputFormat:
    if json_output:
        return OutputFormat.JSON
    if plain_output:
        return OutputFormat.PLAIN
    return OutputFormat.AUTO


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False, "--version", callback=_print_version, is_eager=True,
        help="Print the flowctl version and exit.",
    ),
    json_output: bool = typer.Option(
        False, "--json", help="Print command results as JSON."
    ),
    plain_output: bool = typer.Option(
        False, "--plain", help="Print command results as tab-separated text."
    ),
    no_color: bool = typer.Option(
        False, "--no-color", help="Never colour the output."
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Only print results, warnings and errors."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Trace discovery, registration and refresh steps."
    ),
    force: bool = typer.Option(
        False, "--force", "-f", help="Log in again even when a credential is stored."
    ),
) -> None:
    """Install the output settings and share ``--force`` with sub-commands.

    Runs before every sub-command. The chosen :class:`OutputManager` is
    installed globally so that the auth core's ``debug`` and ``progress``
    lines honour ``--verbose`` and ``--quiet`` too.
    """
    set_output(
        OutputManager(
            format=_result_format(json_output, plain_output),
            no_color=no_color,
            quiet=quiet,
            verbose=verbose,
        )
    )
    ctx.obj = {"force": force, "verbose": verbose}


@app.command("version")
def version_command() -> None:
    """Print the flowctl version."""
    from flowctl.output import print_data

    print_data(f"flowctl {__version__}")


def _exit_on_sigint() -> None:
    # sys.exit unwinds through LoginFlow, so the callback listener's
    # context manager still releases its port.
    def _on_sigint(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(EXIT_CANCELLED)

    signal.signal(signal.SIGINT, _on_sigint)


def _save_crash_report() -> Path:
    """Write the current traceback to ``<data_dir>/crash-<timestamp>.log``."""
    from flowctl.config import get_data_dir

    stamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    report = get_data_dir() / f"crash-{stamp}.log"
    report.write_text(traceback.format_exc())
    return report


def main() -> None:
    """Run the CLI and turn uncaught exceptions into exit codes."""
    _exit_on_sigint()
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(EXIT_CANCELLED)
    except Exception as exc:
        from flowctl.exceptions import FlowctlError
        from flowctl.output import error

        if isinstance(exc, FlowctlError):
            error(str(exc))
            sys.exit(exc.exit_code)
        report = _save_crash_report()
        error(f"Unexpected error. Details were written to {report}")
        sys.exit(EXIT_GENERIC_FAILURE)
