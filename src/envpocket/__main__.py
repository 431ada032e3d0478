# envpocket: Command Line Entry Point
#
#   envpocket save <key> <file>
#   envpocket get <key> [<output_file>] [--version N]
#   envpocket delete <key|pattern> [-f]
#   envpocket list
#   envpocket history <key>
#   envpocket export <key> <file> [--password PW]
#   envpocket import <key> <file> [--password PW]

import argparse
import getpass
import sys
from pathlib import Path
from typing import Callable, List, Optional

from . import __version__
from .core import EventSeverity, EventType, build_store, load_config
from .vault import (
    EnvPocketError,
    ExportCodec,
    has_wildcards,
    PendingDeletion,
    VersionedVault,
    is_confirmation,
)

STDOUT_SENTINEL = "-"


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


def build_vault() -> VersionedVault:
    config = load_config()
    return VersionedVault(
        build_store(config),
        entry_prefix=config.entry_prefix,
        history_prefix=config.history_prefix,
    )


def prompt_confirmation(
    pending: List[PendingDeletion],
    input_func: Optional[Callable[[str], str]] = None,
) -> bool:
    """Show the proposed deletions and ask for yes/no on stdin."""
    print("The following keys will be deleted:")
    for item in pending:
        if item.history_count:
            print(f"  • {item.key} (plus {_plural(item.history_count, 'history version')})")
        else:
            print(f"  • {item.key}")
    try:
        answer = (input_func or input)(
            f"\nAre you sure you want to delete {_plural(len(pending), 'key')}? (yes/no): "
        )
    except EOFError:
        answer = ""
    if not is_confirmation(answer):
        print("Deletion cancelled.")
        return False
    return True


def _read_password(args, confirm: bool) -> str:
    if args.password is not None:
        return args.password
    password = getpass.getpass("Password: ")
    if confirm and getpass.getpass("Confirm password: ") != password:
        raise EnvPocketError("Passwords do not match")
    return password


# ── Commands ─────────────────────────────────────────────────────────


def cmd_save(vault: VersionedVault, args) -> int:
    result = vault.save_file(args.key, args.file)
    print(f"File saved under key '{args.key}' from {Path(args.file).resolve()}")
    if result.history_backed_up:
        print("Previous version backed up to history")
    return 0


def cmd_get(vault: VersionedVault, args) -> int:
    entry = vault.get(args.key, version=args.version)

    if args.output == STDOUT_SENTINEL:
        sys.stdout.buffer.write(entry.data)
        sys.stdout.buffer.flush()
        if entry.is_historical:
            print("(Retrieved historical version)", file=sys.stderr)
        return 0

    if args.output:
        destination = Path(args.output)
    elif entry.original_path:
        destination = Path(Path(entry.original_path).name)
    else:
        print(
            f"Error: No original filename stored for key '{args.key}'. "
            "Please specify an output file.",
            file=sys.stderr,
        )
        return 1

    destination.write_bytes(entry.data)
    print(f"File retrieved and saved to {destination}")
    if entry.is_historical:
        print("(Retrieved historical version)")
    return 0


def cmd_delete(vault: VersionedVault, args) -> int:
    result = vault.delete(args.key, force=args.force, confirm=prompt_confirmation)
    if result.cancelled:
        return 1
    for key in result.deleted:
        print(f"Deleted key '{key}'")
    if result.history_deleted:
        noun = "history entry" if result.history_deleted == 1 else "history entries"
        print(f"Also deleted {result.history_deleted} {noun}")
    if has_wildcards(args.key):
        print(f"Deleted {_plural(result.count, 'key')}.")
    return 0 if result.success else 1


def cmd_list(vault: VersionedVault, args) -> int:
    entries = vault.list_entries()
    if not entries:
        print("No envpocket entries found.")
        return 0

    print("envpocket entries:")
    for entry in entries:
        line = f"  • {entry.key}"
        if entry.original_path:
            line += f" ({entry.original_path})"
        if entry.last_modified is not None:
            line += f" [modified: {entry.last_modified.astimezone():%Y-%m-%d %H:%M}]"
        if not entry.has_current:
            line += " [no current version]"
        if entry.history_count:
            line += f" [{_plural(entry.history_count, 'version')} in history]"
        print(line)
    print("\nUse 'envpocket history <key>' to see version history")
    return 0


def cmd_history(vault: VersionedVault, args) -> int:
    refs = vault.list_history(args.key)
    if not refs:
        print(f"No history found for key '{args.key}'")
        return 0

    print(f"History for '{args.key}':")
    for index, ref in enumerate(refs):
        print(f"  {index}: {ref.moment.astimezone():%Y-%m-%d %H:%M:%S}")
    print(
        f"\nUse 'envpocket get {args.key} --version <index> <output_file>' "
        "to retrieve a specific version"
    )
    return 0


def cmd_export(vault: VersionedVault, args) -> int:
    password = _read_password(args, confirm=True)
    size = ExportCodec(vault).export_to_file(args.key, args.file, password)
    print(f"Exported '{args.key}' to {args.file} ({size} bytes)")
    return 0


def cmd_import(vault: VersionedVault, args) -> int:
    password = _read_password(args, confirm=False)
    summary = ExportCodec(vault).import_from_file(args.key, args.file, password)
    print(f"Imported '{args.key}' from {args.file}")
    if summary.history_total:
        print(
            f"Restored {summary.history_restored} of "
            f"{_plural(summary.history_total, 'history version')}"
        )
    return 0 if summary.success else 1


COMMANDS = {
    "save": cmd_save,
    "get": cmd_get,
    "delete": cmd_delete,
    "list": cmd_list,
    "history": cmd_history,
    "export": cmd_export,
    "import": cmd_import,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="envpocket",
        description="Versioned, encrypted storage for environment files",
        epilog="Delete accepts wildcards (* and ?). Use '-' as output file to write to stdout.",
    )
    parser.add_argument("--version", action="version", version=f"envpocket {__version__}")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("save", help="Store a file under a key")
    p.add_argument("key")
    p.add_argument("file")

    p = sub.add_parser("get", help="Retrieve a file (current or historical version)")
    p.add_argument("key")
    p.add_argument("output", nargs="?", help="Output file, '-' for stdout (default: original filename)")
    p.add_argument("--version", type=int, default=None, metavar="INDEX",
                   help="History index (0 = most recent previous version)")

    p = sub.add_parser("delete", help="Delete a key or every key matching a pattern")
    p.add_argument("key")
    p.add_argument("-f", "--force", action="store_true", help="Skip confirmation")

    sub.add_parser("list", help="List all keys")

    p = sub.add_parser("history", help="Show version history of a key")
    p.add_argument("key")

    for name, help_text in (("export", "Export a key and its history to an encrypted file"),
                            ("import", "Import an encrypted export file under a key")):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("key")
        p.add_argument("file")
        p.add_argument("--password", default=None, help="Password (prompted when omitted)")

    return parser


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse the command line.

    ``get <key> --version N <output>`` leaves the output file after the
    option; argparse has already closed the optional positional by then,
    so a single leftover argument is taken as the output.
    """
    parser = build_parser()
    args, extras = parser.parse_known_args(argv)
    if extras:
        if args.command == "get" and args.output is None and len(extras) == 1:
            args.output = extras[0]
        else:
            parser.error(f"unrecognized arguments: {' '.join(extras)}")
    return args


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for envpocket."""
    args = parse_args(argv)

    try:
        vault = build_vault()
        vault.audit.log_event(
            event_type=EventType.SYSTEM_START,
            severity=EventSeverity.INFO,
            message="envpocket command started",
            details={"command": args.command, "version": __version__},
        )
        return COMMANDS[args.command](vault, args)
    except (EnvPocketError, OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
