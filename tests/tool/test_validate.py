"""Tests for the bundle-engine validate command."""

from pathlib import Path

import pytest

from bundle_engine.tool.bundle_engine import main


@pytest.fixture(name="chart_dir")
def chart_dir_fixture(tmp_path: Path) -> Path:
    chart_dir = tmp_path / "podinfo"
    (chart_dir / "templates").mkdir(parents=True)
    (chart_dir / "Chart.yaml").write_text("apiVersion: v2\nname: podinfo\nversion: 6.5.4\n")
    (chart_dir / "values.yaml").write_text("replicaCount: 1\n")
    (chart_dir / "templates" / "deployment.yaml").write_text("kind: Deployment\n")
    return chart_dir


def test_validate_plain(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    """Test the files of a plain bundle are listed."""
    (tmp_path / "manifests").mkdir()
    (tmp_path / "manifests" / "a.yaml").write_text("kind: A\n")
    (tmp_path / "manifests" / "b.yaml").write_text("kind: B\n")
    main(["validate", str(tmp_path)])
    assert capsys.readouterr().out.splitlines() == [
        "manifests/a.yaml",
        "manifests/b.yaml",
    ]


def test_validate_chart(chart_dir: Path, capsys: pytest.CaptureFixture[str]) -> None:
    """Test a loose chart is listed under its base directory."""
    main(["validate", str(chart_dir), "--provisioner", "core-rukpak-io-helm"])
    assert capsys.readouterr().out.splitlines() == [
        "chart/Chart.yaml",
        "chart/templates/deployment.yaml",
        "chart/values.yaml",
    ]


def test_validate_invalid_chart(
    chart_dir: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    """Test an invalid chart fails the command."""
    (chart_dir / "Chart.yaml").write_text("apiVersion: v2\nname: podinfo\n")
    with pytest.raises(SystemExit) as exc_info:
        main(["validate", str(chart_dir), "--provisioner", "core-rukpak-io-helm"])
    assert exc_info.value.code == 1
    assert "chart.metadata.version is required" in capsys.readouterr().err


def test_validate_unknown_provisioner(tmp_path: Path) -> None:
    """Test the provisioner must be a known identifier."""
    with pytest.raises(SystemExit) as exc_info:
        main(["validate", str(tmp_path), "--provisioner", "core-rukpak-io-other"])
    assert exc_info.value.code == 2
