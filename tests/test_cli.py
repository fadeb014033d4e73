"""Tests for the agentstore migrate command."""

import json

import pytest

from agentstore.cli import build_parser, main


@pytest.fixture(autouse=True)
def _clean_logger(clean_agentstore_logger):
    yield


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "cli" / "agentstore.db")


class TestParser:
    def test_migrate_down_target(self):
        args = build_parser().parse_args(["migrate", "down", "-t", "001"])
        assert args.command == "migrate"
        assert args.migrate_action == "down"
        assert args.target == "001"

    def test_migrate_action_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["migrate"])


class TestMigrateCommand:
    def test_up_applies_packaged_schema(self, db_path, capsys):
        assert main(["--db", db_path, "migrate", "up"]) == 0
        assert "Applied 1 migration(s): 001" in capsys.readouterr().out

        assert main(["--db", db_path, "migrate", "up"]) == 0
        assert "Database is up to date" in capsys.readouterr().out

    def test_status_json(self, db_path, capsys):
        main(["--db", db_path, "migrate", "status", "--json"])
        before = json.loads(capsys.readouterr().out)
        assert before["applied"] == []
        assert [u["id"] for u in before["pending"]] == ["001"]

        main(["--db", db_path, "migrate", "up"])
        capsys.readouterr()
        main(["--db", db_path, "migrate", "status", "-j"])
        after = json.loads(capsys.readouterr().out)
        assert [r["filename"] for r in after["applied"]] == ["001_initial_schema.py"]
        assert after["pending"] == []

    def test_status_text(self, db_path, capsys):
        assert main(["--db", db_path, "migrate", "status"]) == 0
        out = capsys.readouterr().out
        assert "Applied (0):" in out
        assert "Pending (1):" in out

    def test_down_rolls_back_last(self, db_path, capsys):
        main(["--db", db_path, "migrate", "up"])
        capsys.readouterr()

        assert main(["--db", db_path, "migrate", "down"]) == 0
        assert "Rolled back 1 migration(s): 001" in capsys.readouterr().out

        assert main(["--db", db_path, "migrate", "down"]) == 0
        assert "Nothing to roll back" in capsys.readouterr().out

    def test_unknown_target_fails(self, db_path, capsys):
        main(["--db", db_path, "migrate", "up"])
        capsys.readouterr()

        assert main(["--db", db_path, "migrate", "down", "--target", "999"]) == 1
        assert "999" in capsys.readouterr().err

    def test_writes_storage_event_log(self, db_path, tmp_path):
        main(["--db", db_path, "migrate", "up"])
        events = list((tmp_path / "data" / "logs").glob("storage-events-*.log"))
        assert len(events) == 1
        assert "migrate_up" in events[0].read_text()
