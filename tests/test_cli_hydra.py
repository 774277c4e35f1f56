"""Tests for the Hydra-based CLI (cli.py)."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest
from hydra import compose, initialize_config_dir
from omegaconf import OmegaConf

import article_publisher
from article_publisher import cli
from article_publisher._hydra_conf import CLI_ONLY_KEYS, ApubConf, register_configs
from article_publisher.cli import _MODE_DISPATCH, _to_project_config, _to_topic_brief
from article_publisher.models import IssueCategory, Phase, PipelineResult, ProjectConfig

CONF_DIR = str(Path(article_publisher.__file__).resolve().parent / "conf")


class TestDefaultConfig:
    """Verify the package's conf/config.yaml loads correctly."""

    def test_default_config_loads(self):
        register_configs()
        with initialize_config_dir(config_dir=CONF_DIR, version_base=None):
            cfg = compose(config_name="config")
            assert cfg.mode == "run"
            assert cfg.no_approve is False
            assert cfg.topic is None
            assert cfg.approval.before_publish is True

    def test_default_config_converts_to_project_config(self, monkeypatch):
        monkeypatch.setenv("AZURE_OPENAI_API_KEY", "test")
        monkeypatch.setenv("AZURE_OPENAI_API_VERSION", "2024-01-01")
        monkeypatch.setenv("AZURE_OPENAI_ENDPOINT", "https://test.openai.azure.com")

        register_configs()
        with initialize_config_dir(config_dir=CONF_DIR, version_base=None):
            cfg = compose(config_name="config")
            pc = _to_project_config(cfg)
            assert isinstance(pc, ProjectConfig)
            assert pc.project_name == "article-publisher"
            assert pc.revision.routes[IssueCategory.SYNTAX] is Phase.EDITING

    def test_overrides(self, monkeypatch):
        register_configs()
        with initialize_config_dir(config_dir=CONF_DIR, version_base=None):
            cfg = compose(
                config_name="config",
                overrides=["topic=Kafka", "approval.after_draft=true", "max_revision_cycles=1"],
            )
            pc = _to_project_config(cfg)
            assert cfg.topic == "Kafka"
            assert pc.approval.after_draft is True
            assert pc.max_revision_cycles == 1


class TestModeDispatch:
    """Verify mode dispatch table."""

    def test_all_modes_present(self):
        assert set(_MODE_DISPATCH.keys()) == {"run", "transitions"}

    def test_all_modes_are_callable(self):
        for name, handler in _MODE_DISPATCH.items():
            assert callable(handler), f"Handler for mode {name!r} is not callable"

    def test_transitions_mode_prints_table(self):
        with patch.object(cli.console, "print") as mock_print:
            cli._transitions_mode(OmegaConf.create({"mode": "transitions"}))
        mock_print.assert_called_once()


class TestCliOnlyKeys:
    """CLI_ONLY_KEYS should match the extra fields in ApubConf."""

    def test_cli_keys_not_in_project_config(self):
        pc_fields = set(ProjectConfig.model_fields.keys())
        for key in CLI_ONLY_KEYS:
            assert key not in pc_fields, f"CLI-only key {key!r} found in ProjectConfig"

    def test_cli_keys_in_apub_conf(self):
        conf_fields = set(ApubConf.__dataclass_fields__)
        assert CLI_ONLY_KEYS <= conf_fields

    def test_remaining_fields_match_project_config(self):
        conf_fields = set(ApubConf.__dataclass_fields__) - CLI_ONLY_KEYS
        assert conf_fields == set(ProjectConfig.model_fields.keys())


class TestRunMode:
    def _cfg(self, **extra):
        base = OmegaConf.structured(ApubConf)
        return OmegaConf.merge(base, extra)

    def test_topic_brief_from_cli(self):
        brief = _to_topic_brief(self._cfg(
            topic="Raft consensus", audience="students", word_count=500, sections=["Overview"],
        ))
        assert brief.topic == "Raft consensus"
        assert brief.target_audience == "students"
        assert brief.target_word_count == 500
        assert brief.required_sections == ["Overview"]

    def test_missing_topic_exits(self):
        with patch.object(cli.console, "print"), pytest.raises(SystemExit) as exc_info:
            cli._run_mode(self._cfg())
        assert exc_info.value.code == 1

    def test_failed_run_exits_nonzero(self, monkeypatch):
        monkeypatch.setenv("AZURE_OPENAI_API_KEY", "k")
        failed = PipelineResult(success=False, failed_at=Phase.DRAFTING, error="[Writer Agent] boom")
        with patch("article_publisher.pipeline.Pipeline") as mock_pipeline, \
                patch.object(cli.console, "print"), \
                pytest.raises(SystemExit) as exc_info:
            mock_pipeline.return_value.run.return_value = failed
            cli._run_mode(self._cfg(topic="Kafka", no_approve=True))
        assert exc_info.value.code == 1
        mock_pipeline.return_value.run.assert_called_once()
