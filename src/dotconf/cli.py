import argparse
import logging
import os
import subprocess
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

from . import ops
from .constants import APP_NAME, CONFIG_CANDIDATES, LOG_FILE
from .errors import DotconfError, RollbackFailed
from .ledger import Category
from .sync import Direction, EntryStatus, SyncReport

logger = logging.getLogger(APP_NAME)
console = Console()
err_console = Console(stderr=True)

COMMAND_ALIASES = {"s": "sync", "a": "add", "r": "remove", "ls": "list"}

STATUS_STYLES = {
    EntryStatus.ALREADY_LINKED: "dim",
    EntryStatus.LINKED: "green",
    EntryStatus.WRITTEN: "green",
    EntryStatus.MISSING: "yellow",
    EntryStatus.FAILED: "bold red",
}


def setup_logging(
    verbose: bool, max_log_size: int, log_file: Path | None = None
) -> None:
    """Configures the logging subsystem.

    Warnings and errors always reach stderr (everything with `verbose`); the
    full history goes to a rotating log file.

    Args:
        verbose (bool): Log info messages to stderr as well.
        max_log_size (int): Rotation threshold of the log file in bytes.
        log_file (Path | None): Destination of the rotating log. Defaults
            to `LOG_FILE`.
    """
    log_file = log_file or LOG_FILE
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.INFO)

    formatter = logging.Formatter(
        "[%(asctime)s] %(levelname)s: %(message)s", "%Y-%m-%d %H:%M:%S"
    )

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setLevel(logging.INFO if verbose else logging.WARNING)
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file, maxBytes=max_log_size, backupCount=5
        )
    except OSError as e:
        logger.warning(f"File logging disabled, cannot open {log_file}: {e}")
        return
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)


def _display(path: Path, home: Path) -> str:
    if path.is_relative_to(home):
        return f"~/{path.relative_to(home)}"
    return str(path)


def _prompt_passphrase() -> str:
    return Prompt.ask("Passphrase for secret key", password=True, console=console)


def print_report(report: SyncReport, settings: ops.Settings) -> None:
    """Renders the outcomes of a sync pass as a table."""
    if not report.outcomes and report.secret_error is None:
        console.print("[yellow]Nothing is tracked yet.[/yellow]")
        return

    if report.outcomes:
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("File", style="cyan")
        table.add_column("Kind", style="dim")
        table.add_column("Result")
        table.add_column("Details", style="dim")

        for outcome in report.outcomes:
            style = STATUS_STYLES[outcome.status]
            details = ""
            if outcome.error is not None:
                details = str(outcome.error)
            elif outcome.backup is not None:
                details = f"backup: {_display(outcome.backup, settings.home)}"
            table.add_row(
                _display(outcome.path, settings.home),
                outcome.category.value,
                f"[{style}]{outcome.status.value}[/{style}]",
                details,
            )
        console.print(table)

    if report.secret_error is not None:
        console.print(
            f"[bold yellow]WARNING:[/bold yellow] "
            f"secrets skipped: {report.secret_error}"
        )


def sync_files(
    direction: Direction, settings: ops.Settings, ask_passphrase: bool
) -> bool:
    """Runs a sync pass and prints its report.

    Returns:
        bool: True if every entry succeeded.
    """
    passphrase = _prompt_passphrase if ask_passphrase else None
    with console.status(f"Syncing towards {direction.value}...", spinner="dots"):
        report = ops.run_sync(direction, settings, passphrase)

    print_report(report, settings)
    if report.ok:
        console.print("[bold green]✔ Sync complete.[/bold green]")
    else:
        console.print(
            f"[bold red]✘ Sync finished with "
            f"{len(report.failures)} failure(s).[/bold red]"
        )
    return report.ok


def add_file(path: str, category: Category, settings: ops.Settings) -> None:
    """Starts tracking `path`."""
    if ops.track(path, category, settings):
        console.print(
            f"✔ Added [cyan]{path}[/cyan] to {category.value}", style="green"
        )
    else:
        console.print(f"[cyan]{path}[/cyan] is already tracked", style="yellow")


def remove_file(
    path: str, category: Category, settings: ops.Settings, keep: bool
) -> None:
    """Stops tracking `path` and releases its repository copy."""
    removed, archived = ops.untrack(path, category, settings, keep=keep)
    if not removed:
        console.print(
            f"[cyan]{path}[/cyan] is not tracked in {category.value}", style="yellow"
        )
        return

    console.print(
        f"✔ Removed [cyan]{path}[/cyan] from {category.value}", style="green"
    )
    if archived is not None:
        console.print(
            f"[dim]Repository copy archived to "
            f"{_display(archived, settings.home)}[/dim]"
        )


def list_files(settings: ops.Settings, categories: list[Category]) -> None:
    """Lists tracked files with their repository location and state."""
    states = ops.describe(settings, categories)
    if not states:
        console.print("[yellow]Nothing is tracked yet.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("File", style="cyan")
    table.add_column("Kind", style="dim")
    table.add_column("Repository", style="dim")
    table.add_column("Status")

    for state in states:
        if state.entry.category is Category.PLAIN and state.linked:
            status = "[green]Linked[/green]"
        elif not state.in_repository:
            status = "[yellow]Not synced[/yellow]"
        elif not state.on_filesystem:
            status = "[yellow]Missing locally[/yellow]"
        elif state.entry.category is Category.SECRET:
            status = "[green]Encrypted[/green]"
        else:
            status = "[red]Diverged[/red]"

        table.add_row(
            state.entry.stored,
            state.entry.category.value,
            str(state.repository_path.relative_to(settings.repository_root)),
            status,
        )

    console.print(table)


def create_key(settings: ops.Settings, ask_passphrase: bool) -> None:
    """Generates the secret key at the configured location."""
    passphrase = None
    if ask_passphrase:
        passphrase = Prompt.ask("New key passphrase", password=True, console=console)
        confirm = Prompt.ask("Repeat passphrase", password=True, console=console)
        if passphrase != confirm:
            err_console.print("[bold red]ERROR:[/bold red] Passphrases do not match.")
            sys.exit(1)

    with console.status("Generating RSA-2048 key...", spinner="dots"):
        path = ops.create_key(settings, passphrase or None)
    console.print(f"[bold green]✔ Key written to[/bold green] [cyan]{path}[/cyan]")


def open_config(settings: ops.Settings) -> None:
    """Opens the configuration file in the user's editor, creating it if needed."""
    config_file = settings.config.source or settings.home / CONFIG_CANDIDATES[-1]

    if not config_file.exists():
        config_file.parent.mkdir(parents=True, exist_ok=True)
        with open(config_file, "w") as f:
            f.write(
                "# dotconf configuration\n\n"
                "[options]\n"
                'source_control_folder = "~/.dotfiles"\n'
                '# secret_key = "~/.dotfiles-key.asc"\n'
            )

    editor = os.environ.get("EDITOR")
    if not editor:
        editor = "open" if sys.platform == "darwin" else "nano"

    console.print(f"Opening [cyan]{config_file}[/cyan]...")

    try:
        subprocess.run([editor, str(config_file)])
    except OSError as e:
        console.print(f"[red]Could not open editor: {e}[/red]")


def show_config_reference() -> None:
    """Displays a formatted table of all available configuration options."""
    table = Table(title="dotconf Configuration Schema", show_lines=True)
    table.add_column("Section", style="cyan", justify="right")
    table.add_column("Key", style="green")
    table.add_column("Type", style="dim")
    table.add_column("Default", style="yellow")
    table.add_column("Description")

    table.add_row(
        "options",
        "source_control_folder",
        "str",
        '"~/.dotfiles"',
        "Repository root. Overridden by $DOTFILES_DIR and --dotfiles-dir.",
    )
    table.add_row(
        "",
        "secret_key",
        "str",
        "None",
        "Armored PGP secret key. Overridden by $DOTCONF_SECRET_KEY and --secret-key.",
    )
    table.add_row(
        "limits",
        "max_log_size",
        "int | str",
        '"5mb"',
        "Max size for the log file before rotation (e.g., '5mb', '1gb').",
    )

    console.print(table)
    console.print(
        "[dim]Searched in order: "
        + ", ".join(f"~/{c}" for c in CONFIG_CANDIDATES)
        + "[/dim]"
    )


def tail_log(lines: int = 200) -> None:
    """Follows dotconf's rotating log, starting from its last `lines` records.

    Uses ``tail -F`` so the view survives a rotation.
    """
    log_file = LOG_FILE
    if not log_file.is_file():
        console.print(
            f"[yellow]dotconf has not logged anything yet ({log_file}).[/yellow]"
        )
        return

    console.print(f"Following [cyan]{log_file}[/cyan], Ctrl+C to stop")
    try:
        subprocess.run(["tail", "-n", str(lines), "-F", str(log_file)])
    except KeyboardInterrupt:
        console.print("Stopped.", style="dim")


class DotconfHelpFormatter(argparse.HelpFormatter):
    """Groups the subcommands into categories in the help output."""

    def _format_action(self, action: argparse.Action) -> str:
        if isinstance(action, argparse._SubParsersAction):
            parts = []

            groups = {
                "Tracking": ["add", "remove", "list"],
                "Synchronization": ["sync"],
                "Secrets": ["create-key"],
                "General": ["config", "log", "help"],
            }

            subactions = list(self._iter_indented_subactions(action))

            for group_name, commands in groups.items():
                group_actions = [
                    a for a in subactions if a.dest.split(" ")[0] in commands
                ]
                if not group_actions:
                    continue

                parts.append(f"\n  {group_name}:\n")
                self._indent()
                for subaction in group_actions:
                    parts.append(self._format_action(subaction))
                self._dedent()

            return self._join_parts(parts)

        return super()._format_action(action)


def build_parser() -> argparse.ArgumentParser:
    """Builds the argument parser for every subcommand."""
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description="Keep dotfiles in a repository, symlinked into place.",
        formatter_class=DotconfHelpFormatter,
    )
    parser.add_argument(
        "--dotfiles-dir", help="Repository root (overrides config and $DOTFILES_DIR)"
    )
    parser.add_argument("--secret-key", help="Armored PGP secret key to use")
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Log every step to stderr"
    )

    subparsers = parser.add_subparsers(dest="command")

    sync_parser = subparsers.add_parser(
        "sync",
        aliases=["s"],
        help="Sync files between the filesystem and the repository",
    )
    sync_parser.add_argument(
        "direction",
        choices=["dotfiles", "d", "filesystem", "f"],
        help="Side receiving the files: 'dotfiles' (d) or 'filesystem' (f)",
    )
    sync_parser.add_argument(
        "--passphrase",
        action="store_true",
        help="Prompt for the passphrase of a protected key",
    )

    add_parser = subparsers.add_parser(
        "add", aliases=["a"], help="Track a file in the repository"
    )
    add_parser.add_argument("file", help="File to track")
    add_parser.add_argument(
        "--secret", action="store_true", help="Store the file encrypted"
    )

    remove_parser = subparsers.add_parser(
        "remove", aliases=["r"], help="Stop tracking a file"
    )
    remove_parser.add_argument("file", help="File to stop tracking")
    remove_parser.add_argument(
        "--secret", action="store_true", help="The file is tracked as a secret"
    )
    remove_parser.add_argument(
        "--keep",
        action="store_true",
        help="Leave the repository copy untouched",
    )

    list_parser = subparsers.add_parser(
        "list", aliases=["ls"], help="List tracked files"
    )
    list_group = list_parser.add_mutually_exclusive_group()
    list_group.add_argument("--secret", action="store_true", help="Only secrets")
    list_group.add_argument("--plain", action="store_true", help="Only plain files")

    key_parser = subparsers.add_parser("create-key", help="Generate a PGP secret key")
    key_parser.add_argument(
        "--passphrase", action="store_true", help="Protect the key with a passphrase"
    )

    config_parser = subparsers.add_parser(
        "config", help="Open the config file or view options"
    )
    config_parser.add_argument(
        "--list",
        "-l",
        action="store_true",
        help="List all available configuration options and their descriptions",
    )

    subparsers.add_parser("log", help="Tail the log file")
    subparsers.add_parser("help", help="Show this help message")

    return parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the dotconf CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)
    command = COMMAND_ALIASES.get(args.command, args.command)

    if command is None or command == "help":
        parser.print_help()
        return
    if command == "log":
        tail_log()
        return

    try:
        settings = ops.Settings.resolve(args.dotfiles_dir, args.secret_key)
        setup_logging(args.verbose, settings.config.limits.max_log_size)
        logger.debug(f"Repository root: {settings.repository_root}")

        if command == "config":
            if args.list:
                show_config_reference()
            else:
                open_config(settings)
        elif command == "sync":
            direction = Direction.parse(args.direction)
            if not sync_files(direction, settings, args.passphrase):
                sys.exit(1)
        elif command == "add":
            category = Category.SECRET if args.secret else Category.PLAIN
            add_file(args.file, category, settings)
        elif command == "remove":
            category = Category.SECRET if args.secret else Category.PLAIN
            remove_file(args.file, category, settings, args.keep)
        elif command == "list":
            if args.secret:
                categories = [Category.SECRET]
            elif args.plain:
                categories = [Category.PLAIN]
            else:
                categories = [Category.PLAIN, Category.SECRET]
            list_files(settings, categories)
        elif command == "create-key":
            create_key(settings, args.passphrase)

    except RollbackFailed as e:
        err_console.print(
            Panel(
                f"{e}\n\nThe filesystem may be inconsistent. "
                "Check the paths above before running dotconf again.",
                title="FATAL: rollback failed",
                border_style="bold red",
            )
        )
        sys.exit(1)
    except DotconfError as e:
        err_console.print(f"[bold red]ERROR:[/bold red] {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
