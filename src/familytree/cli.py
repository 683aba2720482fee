"""Command-line interface for familytree.

This module provides the CLI commands for running the server, preparing the
database and working with GEDCOM files from a terminal.
"""

import sys
from pathlib import Path
from typing import Optional

from loguru import logger

from familytree.config import get_config
from familytree.database import get_database
from familytree.errors import FamilyTreeError
from familytree.models.duplicate import DuplicateScanRequest
from familytree.models.enums import SystemRole
from familytree.models.gedcom import GedcomImportOptions
from familytree.models.tree import UserCreate
from familytree.services.access import UserContext, load_user_context
from familytree.services.duplicate_detection import DuplicateDetectionService
from familytree.services.gedcom_export import GedcomExportService
from familytree.services.gedcom_import import GedcomImportService
from familytree.services.gedcom_preview import GedcomPreviewService
from familytree.services.tree_service import TreeService
from familytree.version import format_version_string

__all__ = ["cli_main"]


def print_version() -> None:
    """Print version information."""
    print(format_version_string())


def _option(flags: list[str], name: str) -> str | None:
    """Value following ``name`` in ``flags``, if present."""
    if name in flags:
        index = flags.index(name)
        if index + 1 < len(flags):
            return flags[index + 1]
    return None


def _positionals(flags: list[str]) -> list[str]:
    """Arguments that are neither options nor option values."""
    values = []
    skip = False
    for flag in flags:
        if skip:
            skip = False
        elif flag.startswith("--"):
            skip = True
        else:
            values.append(flag)
    return values


def _actor(flags: list[str]) -> UserContext | None:
    user_id = _option(flags, "--user")
    if user_id is None or not user_id.isdigit():
        print("✗ --user <id> is required")
        return None
    with get_database().connection() as conn:
        return load_user_context(conn, int(user_id))


def cmd_serve() -> int:
    """Start the API server.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    try:
        from familytree.main import main as run_app

        run_app()
        return 0
    except Exception as e:
        logger.exception("Server error")
        print(f"✗ Server error: {e}", file=sys.stderr)
        return 1


def cmd_init_db() -> int:
    db = get_database()
    print(f"✓ Database ready: {db.db_path} (schema v{db.schema_version()})")
    return 0


def cmd_create_user(flags: list[str]) -> int:
    """Create a user account; the first account is always a super admin."""
    positionals = _positionals(flags)
    if not positionals:
        print("✗ Usage: familytree create-user <username> [--role ROLE] [--display-name NAME]")
        return 1

    role_value = _option(flags, "--role") or SystemRole.USER.value
    try:
        role = SystemRole(role_value)
    except ValueError:
        roles = ", ".join(r.value for r in SystemRole)
        print(f"✗ Unknown role: {role_value} (choose from {roles})")
        return 1

    service = TreeService(get_database())
    if not service.has_users():
        role = SystemRole.SUPER_ADMIN
    user = service.create_user(
        UserCreate(username=positionals[0], display_name=_option(flags, "--display-name"), system_role=role)
    )
    print(f"✓ Created user {user.username} (id={user.id}, role={user.system_role.value})")
    return 0


def cmd_preview(flags: list[str]) -> int:
    positionals = _positionals(flags)
    if not positionals:
        print("✗ Usage: familytree preview <file.ged>")
        return 1
    path = Path(positionals[0])
    if not path.exists():
        print(f"✗ File not found: {path}")
        return 1

    preview = GedcomPreviewService(config=get_config()).preview_bytes(path.read_bytes(), path.name)
    stats = preview.statistics
    print(f"File: {path.name} ({preview.encoding}, {preview.total_lines} lines)")
    print(f"Individuals: {stats.total_individuals}")
    print(f"Families: {stats.total_families}")
    print(f"Linking method: {stats.linking_method} - {stats.linking_method_description}")
    print(f"Orphaned individuals: {stats.orphaned_count}")
    if preview.quality_issues:
        print()
        print("Data quality:")
        for issue in preview.quality_issues:
            print(f"  [{issue.severity}] {issue.message}")
    return 0


def cmd_import(flags: list[str]) -> int:
    positionals = _positionals(flags)
    if not positionals:
        print("✗ Usage: familytree import <file.ged> --user ID [--tree-name NAME] [--tree ID]")
        return 1
    path = Path(positionals[0])
    if not path.exists():
        print(f"✗ File not found: {path}")
        return 1
    actor = _actor(flags)
    if actor is None:
        return 1

    options = GedcomImportOptions(tree_id=_option(flags, "--tree"), tree_name=_option(flags, "--tree-name"))
    result = GedcomImportService(get_database()).import_bytes(actor, path.read_bytes(), options, path.name)
    if not result.success:
        print(f"✗ {result.message}")
        return 1

    print(f"✓ {result.message}")
    print(f"  Tree: {result.tree_id}")
    print(f"  Duration: {result.duration_seconds:.2f}s")
    for warning in result.warnings:
        print(f"  ! {warning}")
    for error in result.errors:
        print(f"  ✗ {error}")
    return 0


def cmd_export(flags: list[str]) -> int:
    positionals = _positionals(flags)
    if len(positionals) < 2:
        print("✗ Usage: familytree export <tree-id> <out.ged> --user ID")
        return 1
    actor = _actor(flags)
    if actor is None:
        return 1

    content = GedcomExportService(get_database()).export_tree(actor, positionals[0])
    out_path = Path(positionals[1])
    out_path.write_text(content, encoding="utf-8")
    print(f"✓ Exported tree {positionals[0]} to {out_path}")
    return 0


def cmd_duplicates(flags: list[str]) -> int:
    positionals = _positionals(flags)
    if not positionals:
        print("✗ Usage: familytree duplicates <tree-id> --user ID [--min-confidence N]")
        return 1
    actor = _actor(flags)
    if actor is None:
        return 1

    min_confidence = _option(flags, "--min-confidence")
    request = DuplicateScanRequest(
        tree_id=positionals[0],
        min_confidence=int(min_confidence) if min_confidence else None,
    )
    candidates = DuplicateDetectionService(get_database(), get_config()).find_candidates(actor, request)
    print(f"Found {len(candidates)} duplicate candidates")
    for candidate in candidates:
        print(
            f"  {candidate.confidence:>3}%  {candidate.match_type:<14} "
            f"{candidate.person_a_full_name or candidate.person_a_id}  <->  "
            f"{candidate.person_b_full_name or candidate.person_b_id}"
        )
    return 0


def print_help() -> None:
    """Print CLI help message."""
    print_version()
    print()
    print("Usage: familytree [COMMAND]")
    print()
    print("Commands:")
    print("  serve                          Start the REST API server")
    print("  init-db                        Create or migrate the database")
    print("  create-user <name> [--role R]  Create a user account")
    print("  preview <file.ged>             Analyse a GEDCOM file without importing")
    print("  import <file.ged> --user ID    Import a GEDCOM file (--tree-name N, --tree ID)")
    print("  export <tree> <out.ged> --user ID")
    print("                                 Export a tree as GEDCOM")
    print("  duplicates <tree> --user ID    List likely duplicate persons (--min-confidence N)")
    print("  version                        Show version information")
    print("  help                           Show this help message")
    print()
    print("Examples:")
    print("  familytree create-user admin             # First user becomes super admin")
    print("  familytree import family.ged --user 1    # Import into a new tree")
    print()


def cli_main(args: Optional[list[str]] = None) -> int:
    """Main CLI entry point.

    Args:
        args: Command-line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    if args is None:
        args = sys.argv[1:]

    # No command or help
    if not args or args[0] in ("help", "-h", "--help"):
        print_help()
        return 0

    command = args[0].lower()
    flags = args[1:]

    commands = {
        "init-db": lambda: cmd_init_db(),
        "create-user": lambda: cmd_create_user(flags),
        "preview": lambda: cmd_preview(flags),
        "import": lambda: cmd_import(flags),
        "export": lambda: cmd_export(flags),
        "duplicates": lambda: cmd_duplicates(flags),
    }

    if command == "version":
        print_version()
        return 0
    elif command == "serve":
        return cmd_serve()
    elif command in commands:
        try:
            return commands[command]()
        except FamilyTreeError as e:
            print(f"✗ {e.message}")
            return 1
    else:
        print(f"✗ Unknown command: {command}")
        print()
        print_help()
        return 1
