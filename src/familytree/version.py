"""Version information for familytree.

Reports the package version together with the database schema and GEDCOM
dialect this build speaks, for the health endpoint, the CLI and exported
file headers.
"""

import importlib.metadata

from familytree import __version__
from familytree.database import Database
from familytree.database.connection import MIGRATIONS_DIR

__all__ = ["VERSION", "GEDCOM_VERSION", "latest_schema_version", "get_version_info", "format_version_string"]

# Installed distribution wins over the source tree
try:
    VERSION = importlib.metadata.version("familytree")
except importlib.metadata.PackageNotFoundError:
    VERSION = f"{__version__}-dev"

GEDCOM_VERSION = "5.5.1"


def latest_schema_version() -> int:
    """Highest migration number shipped with this build."""
    numbers = [int(path.name.split("_")[0]) for path in MIGRATIONS_DIR.glob("*.sql")]
    return max(numbers, default=0)


def get_version_info(db: Database | None = None) -> dict[str, str | int]:
    """Get version information for this build.

    Args:
        db: When given, also report the schema version applied to it

    Returns:
        Dictionary with version, schema, GEDCOM and status information
    """
    info: dict[str, str | int] = {
        "version": VERSION,
        "schema_version": latest_schema_version(),
        "gedcom_version": GEDCOM_VERSION,
        "status": "development" if "dev" in VERSION else "release",
    }
    if db is not None:
        info["database_schema_version"] = db.schema_version()
    return info


def format_version_string(db: Database | None = None) -> str:
    """Format version information as a human-readable string."""
    info = get_version_info(db)
    version_str = f"familytree v{info['version']}"

    if info["status"] == "development":
        version_str += " (development)"

    version_str += f"\nSchema: v{info['schema_version']}, GEDCOM {info['gedcom_version']}"
    if "database_schema_version" in info:
        version_str += f"\nDatabase schema: v{info['database_schema_version']}"

    return version_str
