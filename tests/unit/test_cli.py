"""Tests for CLI module."""

from pathlib import Path
from unittest.mock import patch

import pytest

from familytree.cli import cli_main
from familytree.database import Database

GEDCOM = """0 HEAD
1 CHAR UTF-8
0 @I1@ INDI
1 NAME Ali /Hassan/
1 SEX M
1 FAMS @F1@
0 @I2@ INDI
1 NAME Amna /Osman/
1 SEX F
1 FAMS @F1@
0 @I3@ INDI
1 NAME Ahmed /Ali/
1 SEX M
1 FAMC @F1@
0 @F1@ FAM
1 HUSB @I1@
1 WIFE @I2@
1 CHIL @I3@
0 TRLR
"""


@pytest.fixture
def cli_db(tmp_path: Path):
    """Point the CLI at a temporary database."""
    db = Database(tmp_path / "cli.db")
    with patch("familytree.cli.get_database", return_value=db):
        yield db


@pytest.fixture
def gedcom_file(tmp_path: Path) -> Path:
    path = tmp_path / "hassan.ged"
    path.write_text(GEDCOM, encoding="utf-8")
    return path


class TestCLICommands:
    """Test CLI command parsing and execution."""

    def test_cli_help(self, capsys: pytest.CaptureFixture) -> None:
        """Test help command."""
        exit_code = cli_main(["help"])

        assert exit_code == 0

        captured = capsys.readouterr()
        assert "Usage: familytree" in captured.out
        assert "Commands:" in captured.out
        assert "import" in captured.out
        assert "export" in captured.out
        assert "duplicates" in captured.out

    def test_cli_no_args(self, capsys: pytest.CaptureFixture) -> None:
        """Test CLI with no arguments shows help."""
        exit_code = cli_main([])

        assert exit_code == 0

        captured = capsys.readouterr()
        assert "Usage: familytree" in captured.out

    def test_cli_version(self, capsys: pytest.CaptureFixture) -> None:
        """Test version command."""
        exit_code = cli_main(["version"])

        assert exit_code == 0

        captured = capsys.readouterr()
        assert "familytree" in captured.out
        assert "v0.1.0" in captured.out
        assert "GEDCOM 5.5.1" in captured.out

    def test_cli_unknown_command(self, capsys: pytest.CaptureFixture) -> None:
        """Test unknown command shows error."""
        exit_code = cli_main(["invalid_command"])

        assert exit_code == 1

        captured = capsys.readouterr()
        assert "Unknown command" in captured.out


class TestDatabaseCommands:
    """Test commands that set up the database."""

    def test_init_db(self, cli_db: Database, capsys: pytest.CaptureFixture) -> None:
        exit_code = cli_main(["init-db"])

        assert exit_code == 0
        assert "Database ready" in capsys.readouterr().out

    def test_first_user_is_super_admin(self, cli_db: Database, capsys: pytest.CaptureFixture) -> None:
        """The first account is promoted whatever role was asked for."""
        exit_code = cli_main(["create-user", "root", "--role", "user"])

        assert exit_code == 0
        assert "role=super_admin" in capsys.readouterr().out

    def test_later_users_keep_role(self, cli_db: Database, capsys: pytest.CaptureFixture) -> None:
        cli_main(["create-user", "root"])
        exit_code = cli_main(["create-user", "sara", "--role", "admin", "--display-name", "Sara"])

        assert exit_code == 0
        assert "role=admin" in capsys.readouterr().out

    def test_unknown_role(self, cli_db: Database, capsys: pytest.CaptureFixture) -> None:
        exit_code = cli_main(["create-user", "sara", "--role", "emperor"])

        assert exit_code == 1
        assert "Unknown role" in capsys.readouterr().out

    def test_create_user_requires_name(self, cli_db: Database, capsys: pytest.CaptureFixture) -> None:
        assert cli_main(["create-user"]) == 1
        assert "Usage" in capsys.readouterr().out


class TestGedcomCommands:
    """Test preview, import and export from the command line."""

    def test_preview(self, gedcom_file: Path, capsys: pytest.CaptureFixture) -> None:
        exit_code = cli_main(["preview", str(gedcom_file)])

        assert exit_code == 0
        out = capsys.readouterr().out
        assert "Individuals: 3" in out
        assert "Families: 1" in out

    def test_preview_missing_file(self, tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
        exit_code = cli_main(["preview", str(tmp_path / "missing.ged")])

        assert exit_code == 1
        assert "File not found" in capsys.readouterr().out

    def test_import_requires_user(self, cli_db: Database, gedcom_file: Path, capsys: pytest.CaptureFixture) -> None:
        exit_code = cli_main(["import", str(gedcom_file)])

        assert exit_code == 1
        assert "--user" in capsys.readouterr().out

    def test_import_and_export(
        self, cli_db: Database, gedcom_file: Path, tmp_path: Path, capsys: pytest.CaptureFixture
    ) -> None:
        cli_main(["create-user", "root"])
        exit_code = cli_main(["import", str(gedcom_file), "--user", "1", "--tree-name", "Hassan"])

        assert exit_code == 0
        out = capsys.readouterr().out
        tree_id = next(line.split(":", 1)[1].strip() for line in out.splitlines() if "Tree:" in line)

        out_path = tmp_path / "out.ged"
        exit_code = cli_main(["export", tree_id, str(out_path), "--user", "1"])

        assert exit_code == 0
        content = out_path.read_text(encoding="utf-8")
        assert "1 NAME Ali /Hassan/" in content
        assert content.rstrip().endswith("0 TRLR")

    def test_unknown_user_is_reported(
        self, cli_db: Database, gedcom_file: Path, capsys: pytest.CaptureFixture
    ) -> None:
        exit_code = cli_main(["import", str(gedcom_file), "--user", "42"])

        assert exit_code == 1
        assert "Unknown user" in capsys.readouterr().out

    def test_duplicates(self, cli_db: Database, gedcom_file: Path, capsys: pytest.CaptureFixture) -> None:
        cli_main(["create-user", "root"])
        cli_main(["import", str(gedcom_file), "--user", "1"])
        out = capsys.readouterr().out
        tree_id = next(line.split(":", 1)[1].strip() for line in out.splitlines() if "Tree:" in line)

        exit_code = cli_main(["duplicates", tree_id, "--user", "1"])

        assert exit_code == 0
        assert "duplicate candidates" in capsys.readouterr().out
