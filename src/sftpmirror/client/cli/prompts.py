"""Interactive credential prompts for the terminal."""

from __future__ import annotations

from pathlib import Path

import click

from sftpmirror.client.credentials import AUTH_KEY, AUTH_PASSWORD
from sftpmirror.client.ssh_keys import SSHKeyInfo


class ClickPrompter:
    """Prompter asking on the terminal with click."""

    def choose_auth_method(self, server: str) -> str | None:
        click.echo(f"No stored credentials for {server}.")
        choice = click.prompt(
            "Authenticate with",
            type=click.Choice([AUTH_PASSWORD, AUTH_KEY, "cancel"]),
            default=AUTH_PASSWORD,
            show_default=True,
        )
        return None if choice == "cancel" else choice

    def ask_password(self, server: str) -> str | None:
        password = click.prompt(f"Password for {server}", hide_input=True, default="", show_default=False)
        return password or None

    def choose_key(self, candidates: list[SSHKeyInfo]) -> Path | None:
        if not candidates:
            path = click.prompt(
                "Path to private key file",
                type=click.Path(exists=True, dir_okay=False, path_type=Path),
            )
            return Path(path).expanduser()

        click.echo("Multiple SSH keys found:")
        for index, key in enumerate(candidates, start=1):
            click.echo(f"  {index}. {key.path} ({key.description})")
        click.echo("  0. Use a password instead")

        index = click.prompt(
            "Select SSH key",
            type=click.IntRange(0, len(candidates)),
            default=1,
        )
        if index == 0:
            return None
        return candidates[index - 1].path
