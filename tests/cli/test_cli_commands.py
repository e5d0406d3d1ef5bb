"""Tests for the tutorhub CLI."""

import csv
import io

import pytest
from typer.testing import CliRunner

from tutorhub.cli.commands import app
from tutorhub.config.app_config import clear_config_cache
from tutorhub.db.database import Database

runner = CliRunner()


@pytest.fixture(autouse=True)
def workdir(tmp_path, monkeypatch):
    """Run from a temp directory whose config uses cheap password hashing."""
    config_dir = tmp_path / "data" / "config"
    config_dir.mkdir(parents=True)
    (config_dir / "app_config_v1.yaml").write_text(
        "auth:\n  bcrypt_rounds: 4\n", encoding="utf-8"
    )
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("TUTORHUB_DB_PATH", raising=False)
    monkeypatch.setenv("LOG_LEVEL", "WARNING")
    clear_config_cache()
    yield tmp_path
    clear_config_cache()


@pytest.fixture
def db_path(workdir):
    return str(workdir / "cli.db")


class TestInitAndSeed:
    """Tests for init-db and seed."""

    def test_init_db(self, db_path):
        """init-db creates the schema."""
        result = runner.invoke(app, ["init-db", "--db", db_path])
        assert result.exit_code == 0
        assert "Database ready" in result.stdout

        db = Database(db_path)
        db.open()
        try:
            with db.transaction() as tx:
                assert tx.fetch_value("SELECT COUNT(*) FROM users") == 0
        finally:
            db.close()

    def test_seed_is_idempotent(self, db_path):
        """Seeding twice adds nothing the second time."""
        first = runner.invoke(app, ["seed", "--db", db_path])
        assert first.exit_code == 0
        assert "12 subjects, 5 achievements, 6 users" in first.stdout
        assert "tutor@email.com" in first.stdout

        second = runner.invoke(app, ["seed", "--db", db_path])
        assert second.exit_code == 0
        assert "0 subjects, 0 achievements, 0 users" in second.stdout


class TestExport:
    """Tests for the export command."""

    def test_export_to_stdout(self, db_path):
        """Without --output the CSV goes to stdout."""
        runner.invoke(app, ["seed", "--db", db_path])
        result = runner.invoke(app, ["export", "users", "--db", db_path])
        assert result.exit_code == 0
        rows = list(csv.DictReader(io.StringIO(result.stdout)))
        assert len(rows) == 6
        assert "admin@email.com" in {r["email"] for r in rows}

    def test_export_to_file(self, db_path, workdir):
        """--output writes the file and reports the row count."""
        runner.invoke(app, ["init-db", "--db", db_path])
        target = workdir / "sessions.csv"
        result = runner.invoke(
            app, ["export", "sessions", "--db", db_path, "--output", str(target)]
        )
        assert result.exit_code == 0
        assert "Exported 0 sessions" in result.stdout
        assert target.read_text(encoding="utf-8").startswith("id,title,scheduled_at")

    def test_invalid_type(self, db_path):
        """Unknown export types exit with code 1."""
        result = runner.invoke(app, ["export", "grades", "--db", db_path])
        assert result.exit_code == 1
        assert "Invalid export type" in result.stdout

    def test_bad_date(self, db_path):
        """Unparseable dates exit with code 1."""
        result = runner.invoke(
            app, ["export", "users", "--db", db_path, "--start-date", "soon"]
        )
        assert result.exit_code == 1
