"""Tests for the YAML configuration layer."""

from pathlib import Path

import pytest

from las_retile.utils.config import AppConfig, load_config

CONFIG_DIR = Path(__file__).parent.parent / "config"


def test_model_defaults():
    cfg = AppConfig()

    assert cfg.input.extensions == ["las", "laz"]
    assert cfg.streaming.batch_memory_mb == 200.0
    assert cfg.streaming.batch_points is None
    assert cfg.output.extension == "laz"
    assert cfg.output.delete_incomplete_on_failure is False
    assert cfg.parallel.enabled is False
    assert cfg.logging.level == "INFO"


def test_default_yaml_matches_model():
    """config/default.yaml mirrors the model defaults."""
    cfg = load_config(None)

    assert cfg == AppConfig()


def test_large_scale_profile():
    cfg = load_config(CONFIG_DIR / "profiles" / "large_scale.yaml")

    assert cfg.streaming.batch_memory_mb == 512
    assert cfg.output.delete_incomplete_on_failure is True
    assert cfg.parallel.enabled is True
    assert cfg.parallel.n_workers == 4
    assert cfg.parallel.queue_batches == 8
    assert cfg.logging.file == "logs/retile.log"
    # Sections the profile leaves out keep their defaults
    assert cfg.input.extensions == ["las", "laz"]


def test_missing_file(tmp_path):
    assert load_config(tmp_path / "nope.yaml") == AppConfig()
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yaml", allow_missing=False)


def test_empty_file_gives_defaults(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("")

    assert load_config(path) == AppConfig()


@pytest.mark.parametrize(
    "yaml_text",
    [
        "streaming:\n  batch_memory_mb: 0\n",
        "streaming:\n  batch_points: -5\n",
        "output:\n  extension: ply\n",
        "parallel:\n  queue_batches: 0\n",
        "logging:\n  level: LOUD\n",
        "input:\n  extensions: []\n",
    ],
)
def test_invalid_values_rejected(tmp_path, yaml_text):
    path = tmp_path / "bad.yaml"
    path.write_text(yaml_text)

    with pytest.raises(ValueError, match="Invalid configuration"):
        load_config(path)


def test_extensions_normalized():
    cfg = AppConfig.model_validate({"input": {"extensions": [".LAS", "Laz"]}})

    assert cfg.input.extensions == ["las", "laz"]
