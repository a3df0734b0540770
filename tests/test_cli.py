"""Tests for the Uplift CLI."""

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from uplift import __version__
from uplift.cli import app

runner = CliRunner()


def invoke(config: Path, *args: str):
    return runner.invoke(app, ["--config", str(config), "--log-level", "ERROR", *args])


def invoke_json(config: Path, *args: str) -> dict:
    result = invoke(config, *args, "--json")
    assert result.exit_code == 0, result.output
    return json.loads(result.stdout)


def write_metrics(path: Path, rows: list[tuple[str, int, int]], day: str = "2025-06-01") -> None:
    with open(path, "a", encoding="utf-8") as f:
        for arm_id, views, conversions in rows:
            f.write(
                json.dumps(
                    {"arm_id": arm_id, "date": day, "views": views, "conversions": conversions}
                )
                + "\n"
            )


class TestVersion:
    def test_version(self) -> None:
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert f"uplift v{__version__}" in result.stdout


class TestEvaluate:
    """Tests for the ad-hoc evaluate command."""

    def test_significant_result_json(self) -> None:
        result = runner.invoke(
            app,
            [
                "evaluate",
                "--control-views", "1000",
                "--control-conversions", "55",
                "--variant-views", "1000",
                "--variant-conversions", "92",
                "--json",
            ],
        )

        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["significant"] is True
        assert data["confidence_percent"] == 99.0
        assert data["lift"] == pytest.approx((0.092 / 0.055 - 1) * 100)

    def test_panel_output(self) -> None:
        result = runner.invoke(
            app,
            [
                "evaluate",
                "--control-views", "1000",
                "--control-conversions", "55",
                "--variant-views", "1000",
                "--variant-conversions", "92",
            ],
        )
        assert result.exit_code == 0
        assert "Significance" in result.stdout

    def test_conversions_above_views(self) -> None:
        result = runner.invoke(
            app,
            [
                "evaluate",
                "--control-views", "10",
                "--control-conversions", "20",
                "--variant-views", "10",
                "--variant-conversions", "1",
            ],
        )
        assert result.exit_code == 1
        assert "Invalid input" in result.stdout

    def test_unsupported_level(self) -> None:
        result = runner.invoke(
            app,
            [
                "evaluate",
                "--control-views", "100",
                "--control-conversions", "5",
                "--variant-views", "100",
                "--variant-conversions", "6",
                "--level", "0.9",
            ],
        )
        assert result.exit_code == 1


class TestConfigErrors:
    def test_invalid_config_file(self, tmp_path: Path) -> None:
        bad = tmp_path / "bad.yaml"
        bad.write_text("retry:\n  max_retries: -1\n")

        result = invoke(bad, "patterns")

        assert result.exit_code == 1
        assert "Error loading config" in result.stdout

    def test_corrupt_state_file(self, sample_yaml_config: Path, sample_config_dict: dict) -> None:
        Path(sample_config_dict["state_path"]).write_text("{broken")

        result = invoke(sample_yaml_config, "patterns")

        assert result.exit_code == 1
        assert "Error loading state" in result.stdout

    def test_run_needs_metrics_path(self, tmp_path: Path) -> None:
        config = tmp_path / "uplift.yaml"
        config.write_text(f"state_path: {tmp_path / 'state.json'}\n")

        result = invoke(config, "run")

        assert result.exit_code == 1
        assert "metrics_path" in result.stdout


class TestRegistryCommands:
    """Tests for patterns, propose, promote, retire, targets and candidates."""

    def test_propose_and_list(self, sample_yaml_config: Path) -> None:
        result = invoke(sample_yaml_config, "propose", "Hero CTA", "--id", "hero-cta", "-c", "cta")
        assert result.exit_code == 0, result.output
        assert "hero-cta" in result.stdout

        data = invoke_json(sample_yaml_config, "patterns")
        assert [p["id"] for p in data["patterns"]] == ["hero-cta"]
        assert data["patterns"][0]["status"] == "exploratory"
        assert data["unreadable"] == []

    def test_duplicate_propose_fails(self, sample_yaml_config: Path) -> None:
        invoke(sample_yaml_config, "propose", "Hero CTA", "--id", "hero-cta")
        result = invoke(sample_yaml_config, "propose", "Again", "--id", "hero-cta")
        assert result.exit_code == 1

    def test_status_filter(self, sample_yaml_config: Path) -> None:
        invoke(sample_yaml_config, "propose", "Hero CTA", "--id", "hero-cta")

        data = invoke_json(sample_yaml_config, "patterns", "--status", "pilot")
        assert data["patterns"] == []

    def test_illegal_promotion(self, sample_yaml_config: Path) -> None:
        invoke(sample_yaml_config, "propose", "Hero CTA", "--id", "hero-cta")

        result = invoke(sample_yaml_config, "promote", "hero-cta", "production")

        assert result.exit_code == 1
        assert "illegal transition" in result.stdout

    def test_retire_requires_production(self, sample_yaml_config: Path) -> None:
        invoke(sample_yaml_config, "propose", "Hero CTA", "--id", "hero-cta")
        result = invoke(sample_yaml_config, "retire", "hero-cta", "--reason", "regressed")
        assert result.exit_code == 1

    def test_targets(self, sample_yaml_config: Path) -> None:
        invoke(sample_yaml_config, "targets", "--add", "home", "--add", "pricing")
        data = invoke_json(sample_yaml_config, "targets", "--add", "home")
        assert data["targets"] == ["home", "pricing"]

    def test_candidates_skip_registered(self, sample_yaml_config: Path) -> None:
        invoke(sample_yaml_config, "propose", "Scarcity & Urgency")

        data = invoke_json(sample_yaml_config, "candidates", "--limit", "2")

        assert [c["name"] for c in data["candidates"]] == ["Value Proposition", "Risk Reversal"]


class TestCycleCommands:
    """End-to-end pilot, run and history through the CLI."""

    def test_empty_run(self, sample_yaml_config: Path) -> None:
        data = invoke_json(sample_yaml_config, "run")

        assert data["status"] == "completed"
        assert data["iteration_number"] == 1
        history = invoke_json(sample_yaml_config, "history")
        assert len(history["history"]) == 1

    def test_second_run_is_gated(self, sample_yaml_config: Path) -> None:
        invoke_json(sample_yaml_config, "run")

        data = invoke_json(sample_yaml_config, "run")
        assert data["status"] == "skipped"

        forced = invoke_json(sample_yaml_config, "run", "--force")
        assert forced["iteration_number"] == 2

    def test_pilot_to_production(
        self, sample_yaml_config: Path, sample_config_dict: dict
    ) -> None:
        invoke(sample_yaml_config, "targets", "-a", "home", "-a", "pricing", "-a", "signup")
        invoke(sample_yaml_config, "propose", "Hero CTA", "--id", "hero-cta")
        pilot = invoke_json(
            sample_yaml_config,
            "pilot", "hero-cta",
            "-t", "home",
            "-e", "exp-hero",
            "--control", "hero-control",
            "--variant", "hero-variant",
            "--min-days", "0",
        )
        assert pilot["applied"] == ["home"]

        write_metrics(
            Path(sample_config_dict["metrics_path"]),
            [("hero-control", 1000, 55), ("hero-variant", 1000, 92)],
        )
        report = invoke_json(sample_yaml_config, "run")

        assert report["promoted"] == ["hero-cta"]
        assert report["records_ingested"] == 2
        assert report["applied"][0]["applied"] == ["pricing", "signup"]

        patterns = invoke_json(sample_yaml_config, "patterns")
        assert patterns["patterns"][0]["status"] == "production"

    def test_strategy_needs_history(self, sample_yaml_config: Path) -> None:
        data = invoke_json(sample_yaml_config, "strategy")
        assert data["status"] == "insufficient_data"

    def test_strategy_after_runs(self, sample_yaml_config: Path) -> None:
        invoke_json(sample_yaml_config, "run")
        invoke_json(sample_yaml_config, "run", "--force")

        data = invoke_json(sample_yaml_config, "strategy", "--window", "2")

        assert data["status"] == "ok"
        assert data["iterations_analyzed"] == 2


    def test_pilot_without_mutator_changes_nothing(
        self, tmp_path: Path, sample_config_dict: dict
    ) -> None:
        import yaml

        sample_config_dict.pop("mutator")
        config_path = tmp_path / "no-mutator.yaml"
        config_path.write_text(yaml.dump(sample_config_dict))
        invoke(config_path, "targets", "-a", "home")
        invoke(config_path, "propose", "Hero CTA", "--id", "hero-cta")

        result = invoke(
            config_path,
            "pilot", "hero-cta",
            "-t", "home",
            "-e", "exp-hero",
            "--control", "hero-control",
            "--variant", "hero-variant",
        )

        assert result.exit_code == 1
        assert "No content mutator configured" in result.stdout
        pattern = invoke_json(config_path, "patterns")["patterns"][0]
        assert pattern["status"] == "exploratory"
        assert pattern["applied_targets"] == []

class TestRichOutput:
    """Human-readable rendering of the same commands."""

    def test_patterns_table(self, sample_yaml_config: Path) -> None:
        invoke(sample_yaml_config, "propose", "Hero CTA", "--id", "hero-cta")

        result = invoke(sample_yaml_config, "patterns")

        assert result.exit_code == 0
        assert "Patterns" in result.stdout
        assert "hero-cta" in result.stdout

    def test_run_history_and_strategy(self, sample_yaml_config: Path) -> None:
        assert invoke(sample_yaml_config, "run").exit_code == 0
        assert invoke(sample_yaml_config, "run", "--force").exit_code == 0

        history = invoke(sample_yaml_config, "history")
        strategy = invoke(sample_yaml_config, "strategy", "--window", "2")

        assert history.exit_code == 0
        assert "Iteration history" in history.stdout
        assert strategy.exit_code == 0
        assert "Strategy" in strategy.stdout

    def test_candidates_listing(self, sample_yaml_config: Path) -> None:
        result = invoke(sample_yaml_config, "candidates")

        assert result.exit_code == 0
        assert "Scarcity & Urgency" in result.stdout
