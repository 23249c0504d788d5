"""Unit tests for the main entry point.

Tests the main() function including:
- Configuration loading with log level priority (CLI > env > config)
- Each sub-command's JSON output
- Exit code handling
- Error handling
"""

import json
from unittest.mock import patch

import pytest

from nudge_engine.main import build_parser, load_runtime_config, main
from nudge_engine.persistence import close_database, init_database

from tests.helpers import make_job, make_profile, seed_job, seed_profile


@pytest.fixture(autouse=True)
def cli_env(tmp_path, monkeypatch):
    """Point the CLI at a temporary database with enrichment disabled."""
    db_url = f"sqlite:///{tmp_path / 'cli.db'}"
    monkeypatch.setenv("DATABASE_URL", db_url)
    for name in ("ENRICHMENT_API_KEY", "ENRICHMENT_BASE_URL", "LOG_LEVEL", "ENVIRONMENT"):
        monkeypatch.delenv(name, raising=False)
    with patch("nudge_engine.main.configure_logging"):
        yield db_url
    close_database()


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("logging:\n  level: WARNING\n")
    return path


@pytest.fixture
def seeded(cli_env):
    init_database(cli_env)
    seed_job(make_job())
    seed_profile(make_profile())
    close_database()


def run(capsys, config_file, *argv):
    code = main(["--config", str(config_file), *argv])
    captured = capsys.readouterr()
    output = json.loads(captured.out) if captured.out.strip() else None
    return code, output, captured.err


class TestLoadRuntimeConfig:
    """Test suite for load_runtime_config helper."""

    def test_log_level_from_config(self, config_file):
        """Test the config file level applies when nothing overrides it."""
        _, env_config = load_runtime_config(config_file, None)

        assert env_config.log_level == "WARNING"

    def test_log_level_priority(self, config_file, monkeypatch):
        """Test log level priority: CLI > env > config."""
        monkeypatch.setenv("LOG_LEVEL", "error")

        _, env_config = load_runtime_config(config_file, None)
        assert env_config.log_level == "ERROR"

        _, env_config = load_runtime_config(config_file, "DEBUG")
        assert env_config.log_level == "DEBUG"


class TestParser:
    """Tests for argument parsing."""

    def test_command_required(self):
        """Test a sub-command must be given."""
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_score_arguments(self):
        """Test score takes a job, members and a tier."""
        args = build_parser().parse_args(["score", "job-1", "m-1", "m-2", "--min-tier", "HIGH"])

        assert args.member_ids == ["m-1", "m-2"]
        assert args.min_tier == "HIGH"


class TestCommands:
    """Tests for each sub-command."""

    def test_nudges(self, capsys, config_file, seeded):
        """Test nudges prints ranked candidates."""
        code, output, _ = run(capsys, config_file, "nudges", "member-1", "job-1")

        assert code == 0
        assert [item["rule_id"] for item in output] == ["skills_overlap"]
        assert output[0]["source"] == "static"

    def test_nudges_missing_job(self, capsys, config_file):
        """Test an unknown job exits non-zero with a message."""
        code, output, err = run(capsys, config_file, "nudges", "member-1", "job-404")

        assert code == 1
        assert output is None
        assert "Job not found: job-404" in err

    def test_interact_then_stats(self, capsys, config_file):
        """Test a recorded interaction is visible in stats."""
        code, output, _ = run(
            capsys,
            config_file,
            "interact",
            "--member", "member-1",
            "--job", "job-1",
            "--nudge", "n-1",
            "--action", "clicked",
            "--meta", "channel=web",
        )
        assert code == 0
        assert output["interaction_id"]

        code, output, _ = run(capsys, config_file, "stats", "--job", "job-1")

        assert code == 0
        assert output["total_shown"] == 1
        assert output["clicked"] == 1
        assert output["action_counts"]["CLICKED"] == 1

    def test_interact_invalid_action(self, capsys, config_file):
        """Test an invalid interaction is reported, not stored."""
        code, _, err = run(
            capsys, config_file, "interact", "--member", "m", "--job", "j", "--action", "LIKED"
        )

        assert code == 1
        assert "Invalid interaction" in err

    def test_interact_bad_metadata(self, capsys, config_file):
        """Test metadata must be key=value."""
        code, _, err = run(
            capsys, config_file, "interact", "--member", "m", "--job", "j", "--action", "VIEWED", "--meta", "oops"
        )

        assert code == 2
        assert "key=value" in err

    def test_funnel(self, capsys, config_file):
        """Test funnel prints every stage for the requested window."""
        code, output, _ = run(capsys, config_file, "funnel", "--job", "job-1", "--days", "7")

        assert code == 0
        assert output["window_days"] == 7
        assert [stage["stage"] for stage in output["stages"]] == [
            "VIEWED",
            "NUDGE_SHOWN",
            "ENGAGED",
            "REFERRED",
            "HIRED",
        ]

    def test_budget(self, capsys, config_file):
        """Test budget prints the cache and budget status."""
        code, output, _ = run(capsys, config_file, "budget")

        assert code == 0
        assert output["within_budget"] is True
        assert output["entries"] == 0

    def test_summarize(self, capsys, config_file, seeded):
        """Test summaries need --fallback when enrichment is disabled."""
        code, _, err = run(capsys, config_file, "summarize", "job-1")
        assert code == 1
        assert "not configured" in err

        code, output, _ = run(capsys, config_file, "summarize", "job-1", "--fallback")
        assert code == 0
        assert output["source"] == "static"
        assert len(output["bullets"]) == 3

    def test_score(self, capsys, config_file, seeded):
        """Test score ranks members with a profile."""
        code, output, _ = run(capsys, config_file, "score", "job-1", "member-1", "nobody")

        assert code == 0
        assert output == [
            {
                "member_id": "member-1",
                "tier": "MEDIUM",
                "score": 0.5,
                "matched_skills": ["Python"],
                "matched_companies": [],
                "matched_domains": [],
            }
        ]

    def test_purge(self, capsys, config_file):
        """Test purge reports deleted counts."""
        code, output, _ = run(capsys, config_file, "purge", "--days", "30")

        assert code == 0
        assert output == {
            "retention_days": 30,
            "events_deleted": 0,
            "interactions_deleted": 0,
            "failed": False,
        }

    def test_purge_below_minimum(self, capsys, config_file):
        """Test purge refuses a retention shorter than 30 days."""
        code, output, err = run(capsys, config_file, "purge", "--days", "10")

        assert code == 1
        assert output is None
        assert "at least 30 days" in err

    def test_purge_zero_days_rejected(self, capsys, config_file):
        """Test an explicit --days 0 is refused rather than replaced by the default."""
        code, output, err = run(capsys, config_file, "purge", "--days", "0")

        assert code == 1
        assert output is None
        assert "got 0" in err

    def test_serve_with_retention_disabled(self, capsys, tmp_path):
        """Test serve returns immediately when the purge is disabled."""
        config = tmp_path / "disabled.yaml"
        config.write_text("retention:\n  enabled: false\n")

        with patch("nudge_engine.main.SchedulerService") as scheduler_cls:
            code = main(["--config", str(config), "serve"])

        assert code == 0
        scheduler_cls.assert_not_called()


class TestErrorHandling:
    """Tests for exit codes on failure."""

    def test_configuration_error(self, capsys, tmp_path):
        """Test an invalid config file exits with code 1."""
        config = tmp_path / "bad.yaml"
        config.write_text("budget:\n  daily_limit_usd: -1\n")

        code = main(["--config", str(config), "budget"])

        assert code == 1
        assert "Configuration Error" in capsys.readouterr().err

    def test_missing_config_file(self, capsys, tmp_path):
        """Test a missing config file exits with code 1."""
        code = main(["--config", str(tmp_path / "missing.yaml"), "budget"])

        assert code == 1
        assert "not found" in capsys.readouterr().err

    def test_invalid_environment(self, capsys, config_file, monkeypatch):
        """Test invalid environment variables are configuration errors."""
        monkeypatch.setenv("ENRICHMENT_BASE_URL", "ftp://example.com")

        assert main(["--config", str(config_file), "budget"]) == 1

    def test_keyboard_interrupt(self, capsys, config_file):
        """Test Ctrl+C exits cleanly."""
        with patch("nudge_engine.main.create_service", side_effect=KeyboardInterrupt):
            code = main(["--config", str(config_file), "budget"])

        assert code == 0
        assert "Shutdown requested" in capsys.readouterr().err
