"""Tests for the las-retile command line."""

import numpy as np
import pytest

from las_retile.cli import build_parser, main


@pytest.fixture
def input_dir(tmp_path, make_cloud):
    src = tmp_path / "in"
    x = np.linspace(0, 19, 40)
    make_cloud(src / "a.las", np.column_stack([x, np.full(40, 3.0), np.zeros(40)]))
    return src


@pytest.fixture
def las_config(tmp_path):
    path = tmp_path / "cfg.yaml"
    path.write_text("output:\n  extension: las\nlogging:\n  level: WARNING\n")
    return path


@pytest.mark.parametrize(
    "argv",
    [
        [],
        ["in"],
        ["in", "out"],
        ["in", "out", "10", "extra"],
    ],
)
def test_wrong_argument_count(argv, capsys):
    assert main(argv) == 2
    assert "usage:" in capsys.readouterr().err


@pytest.mark.parametrize("tile_size", ["0", "-5", "abc", "nan", "inf"])
def test_bad_tile_size(tmp_path, tile_size, capsys):
    assert main([str(tmp_path), str(tmp_path / "out"), tile_size]) == 2
    assert "tile size" in capsys.readouterr().err


def test_bad_overrides(input_dir, tmp_path):
    out = tmp_path / "out"
    assert main([str(input_dir), str(out), "10", "--workers", "0"]) == 2
    assert main([str(input_dir), str(out), "10", "--batch-memory-mb", "-1"]) == 2
    assert not out.exists()


def test_missing_config(input_dir, tmp_path):
    assert main([str(input_dir), str(tmp_path / "out"), "10", "--config", str(tmp_path / "missing.yaml")]) == 2


def test_invalid_config(input_dir, tmp_path):
    bad = tmp_path / "bad.yaml"
    bad.write_text("streaming:\n  batch_memory_mb: -3\n")

    assert main([str(input_dir), str(tmp_path / "out"), "10", "--config", str(bad)]) == 2


def test_successful_run(input_dir, tmp_path, las_config):
    out = tmp_path / "out"

    code = main([str(input_dir), str(out), "10", "--config", str(las_config), "--batch-memory-mb", "0.001"])

    assert code == 0
    assert sorted(p.name for p in out.iterdir()) == ["tile_0_0.las", "tile_1_0.las"]


def test_parallel_run(tmp_path, make_cloud, las_config):
    src = tmp_path / "in"
    for k in range(3):
        x = np.linspace(k * 10 + 1, k * 10 + 8, 20)
        make_cloud(src / f"part_{k}.las", np.column_stack([x, x, np.zeros(20)]))
    out = tmp_path / "out"

    assert main([str(src), str(out), "10", "--config", str(las_config), "--workers", "2"]) == 0
    assert sorted(p.name for p in out.iterdir()) == ["tile_0_0.las", "tile_1_1.las", "tile_2_2.las"]


def test_output_dir_is_existing_file(input_dir, tmp_path, las_config):
    out = tmp_path / "out"
    out.write_text("occupied")

    assert main([str(input_dir), str(out), "10", "--config", str(las_config)]) == 1
    assert out.read_text() == "occupied"


def test_missing_input_dir(tmp_path, las_config):
    out = tmp_path / "out"

    assert main([str(tmp_path / "nowhere"), str(out), "10", "--config", str(las_config)]) == 1
    assert not out.exists()


def test_overlapping_inputs(tmp_path, make_cloud, las_config):
    src = tmp_path / "in"
    xyz = np.column_stack([np.linspace(0, 10, 5), np.linspace(0, 10, 5), np.zeros(5)])
    make_cloud(src / "a.las", xyz)
    make_cloud(src / "b.las", xyz + [5.0, 5.0, 0.0])
    out = tmp_path / "out"

    assert main([str(src), str(out), "10", "--config", str(las_config)]) == 1
    assert not out.exists()


def test_parser_options():
    args = build_parser().parse_args(["in", "out", "2.5", "--workers", "3", "--delete-incomplete"])

    assert args.tile_size == 2.5
    assert args.workers == 3
    assert args.delete_incomplete is True
