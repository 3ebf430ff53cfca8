"""Built-in CLI sub-commands for flowctl.

* :mod:`~flowctl.commands.auth` -- log in, log out, inspect the stored
  credential, and print a valid access token.

Each module exports a :class:`typer.Typer` sub-application that
:mod:`flowctl.app` mounts on the root command.
"""
