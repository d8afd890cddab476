"""Tests for the db-backup CLI."""

import json
import os
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from db_backup.backup.serializer import parse_backup_json
from db_backup.cli import _build_config, build_parser, main
from db_backup.factory import ProfileNotFoundError


@pytest.fixture
def no_config(tmp_path: Path) -> list[str]:
    """Global args pointing at a db.toml that does not exist."""
    return ["--config", str(tmp_path / "missing.toml")]


@pytest.fixture
def bad_backup_config(tmp_path: Path) -> Path:
    """A db.toml whose [backup] section fails validation."""
    path = tmp_path / "db.toml"
    path.write_text('[profiles.x]\nurl = "postgresql://h/db"\n\n[backup]\nmax_concurrency = 0\n')
    return path


class TestParser:
    """Argument parsing into BackupConfig."""

    def test_defaults(self):
        args = build_parser().parse_args(["generate"])
        config = _build_config(args)
        assert config.scope == "full"
        assert config.format == "json"
        assert config.options.include_structure is True
        assert config.options.include_data is True
        assert config.options.include_rls is False

    def test_selective_flags(self):
        args = build_parser().parse_args(
            [
                "generate",
                "--scope", "selective",
                "--tables", "posts, users,",
                "--format", "sql",
                "--from", "2024-01-01",
                "--to", "2024-01-31",
                "--no-structure",
                "--rls",
                "--triggers",
                "--indexes",
                "--extensions",
            ]
        )
        config = _build_config(args)
        assert config.tables == ["posts", "users"]
        assert config.date_from == "2024-01-01"
        assert config.date_to == "2024-01-31"
        assert config.options.include_structure is False
        assert config.options.include_rls is True
        assert config.options.include_extensions is True

    def test_env_prefix(self):
        args = build_parser().parse_args(["--env-prefix", "APP_", "tables"])
        assert args.env_prefix == "APP_"

    def test_invalid_format_rejected(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["generate", "--format", "xml"])


class TestGenerateCommand:
    """db-backup generate."""

    def test_writes_json(self, client, tmp_path, no_config):
        output = tmp_path / "out.json"
        with patch("db_backup.cli.get_adapter", AsyncMock(return_value=client)):
            code = main(
                no_config
                + ["generate", "--no-data", "--requested-by", "ops", "--output", str(output)]
            )

        assert code == 0
        data = parse_backup_json(output.read_bytes())
        assert list(data.tables) == ["comments", "posts", "users"]
        assert data.metadata.generated_by == "ops"
        assert client.closed is True

    def test_writes_sql_to_output_dir(self, client, tmp_path):
        config = tmp_path / "db.toml"
        out_dir = tmp_path / "dumps"
        config.write_text(
            '[profiles.x]\nurl = "postgresql://h/db"\n\n'
            f'[backup]\noutput_dir = "{out_dir.as_posix()}"\nfile_prefix = "blog"\n'
        )
        with patch("db_backup.cli.get_adapter", AsyncMock(return_value=client)):
            code = main(
                ["--config", str(config), "generate", "--scope", "selective",
                 "--tables", "posts", "--format", "sql"]
            )

        assert code == 0
        files = list(out_dir.glob("blog_backup_*.sql"))
        assert len(files) == 1
        assert files[0].read_text().rstrip().endswith("COMMIT;")

    def test_invalid_config_exits_1(self, client, tmp_path, no_config):
        with patch("db_backup.cli.get_adapter", AsyncMock(return_value=client)):
            code = main(no_config + ["generate", "--no-structure", "--no-data"])

        assert code == 1
        assert client.total_calls == 0
        assert client.closed is True

    def test_no_profile_exits_1(self, no_config):
        with patch(
            "db_backup.cli.get_adapter",
            AsyncMock(side_effect=ProfileNotFoundError("No database profile configured.")),
        ):
            assert main(no_config + ["generate"]) == 1

    @pytest.mark.parametrize(
        "error",
        [
            FileNotFoundError("Database config not found: db.toml"),
            ImportError("Supabase support is not installed"),
        ],
    )
    def test_adapter_setup_errors_exit_1(self, no_config, error, capsys):
        with patch("db_backup.cli.get_adapter", AsyncMock(side_effect=error)):
            assert main(no_config + ["generate"]) == 1
        assert "Error:" in capsys.readouterr().out

    def test_profile_without_db_toml_exits_1(self, no_config, tmp_path):
        """A profile named in the environment with no db.toml is an error, not a crash."""
        with patch.dict(os.environ, {"DB_PROFILE": "prod"}), \
             patch("db_backup.factory._PROFILE_LOCK_FILE", tmp_path / ".db-profile"):
            assert main(no_config + ["generate"]) == 1

    def test_malformed_backup_section_exits_1(self, client, bad_backup_config):
        adapter = AsyncMock(return_value=client)
        with patch("db_backup.cli.get_adapter", adapter):
            assert main(["--config", str(bad_backup_config), "generate"]) == 1
        adapter.assert_not_awaited()

    def test_skipped_tables_still_succeed(self, client, tmp_path, no_config):
        client.failing_tables.add("posts")
        output = tmp_path / "out.json"
        with patch("db_backup.cli.get_adapter", AsyncMock(return_value=client)):
            code = main(no_config + ["generate", "--output", str(output)])

        assert code == 0
        assert "posts" not in json.loads(output.read_text())["tables"]


class TestTablesCommand:
    """db-backup tables."""

    def test_lists_tables(self, client_with_tags, no_config, capsys):
        with patch("db_backup.cli.get_adapter", AsyncMock(return_value=client_with_tags)):
            code = main(no_config + ["tables"])

        assert code == 0
        out = capsys.readouterr().out
        assert "tags" in out
        assert "schema_migrations" not in out
        assert "4 table(s) available for backup" in out

    def test_malformed_backup_section_exits_1(self, client, bad_backup_config):
        adapter = AsyncMock(return_value=client)
        with patch("db_backup.cli.get_adapter", adapter):
            assert main(["--config", str(bad_backup_config), "tables"]) == 1
        adapter.assert_not_awaited()

    def test_missing_supabase_extra_exits_1(self, no_config):
        with patch(
            "db_backup.cli.get_adapter",
            AsyncMock(side_effect=ImportError("Supabase support is not installed")),
        ):
            assert main(no_config + ["tables"]) == 1


class TestProfilesCommand:
    """db-backup profiles."""

    def test_lists_profiles(self, tmp_path, capsys):
        config = tmp_path / "db.toml"
        config.write_text('[profiles.local]\nurl = "postgresql://h/db"\ndescription = "Dev box"\n')
        assert main(["--config", str(config), "profiles"]) == 0
        out = capsys.readouterr().out
        assert "local" in out
        assert "Dev box" in out

    def test_missing_config(self, no_config):
        assert main(no_config + ["profiles"]) == 1

    def test_malformed_backup_section(self, bad_backup_config):
        assert main(["--config", str(bad_backup_config), "profiles"]) == 1

    def test_invalid_toml(self, tmp_path):
        config = tmp_path / "db.toml"
        config.write_text("[profiles.x\nurl = ")
        assert main(["--config", str(config), "profiles"]) == 1
