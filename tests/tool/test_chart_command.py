"""Tests for the bundle-engine chart command."""

from pathlib import Path

import pytest
import yaml

from bundle_engine.tool.bundle_engine import main


@pytest.fixture(name="chart_dir")
def chart_dir_fixture(tmp_path: Path) -> Path:
    chart_dir = tmp_path / "podinfo"
    (chart_dir / "templates").mkdir(parents=True)
    (chart_dir / "Chart.yaml").write_text("apiVersion: v2\nname: podinfo\nversion: 6.5.4\n")
    (chart_dir / "values.yaml").write_text("replicaCount: 1\n")
    (chart_dir / "templates" / "deployment.yaml").write_text("kind: Deployment\n")
    return chart_dir


def test_chart(chart_dir: Path, capsys: pytest.CaptureFixture[str]) -> None:
    """Test the chart is loaded with the deployment config."""
    main(
        [
            "chart",
            str(chart_dir),
            "--config",
            '{"namespace": "podinfo", "values": "replicaCount: 3\\n"}',
        ]
    )
    doc = yaml.safe_load(capsys.readouterr().out)
    assert doc == {
        "chart": {"apiVersion": "v2", "name": "podinfo", "version": "6.5.4"},
        "namespace": "podinfo",
        "values": {"replicaCount": 3},
    }


def test_chart_config_file(
    chart_dir: Path, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    """Test the config is read from a file."""
    config_file = tmp_path / "config.json"
    config_file.write_text('{"namespace": "podinfo"}')
    main(["chart", str(chart_dir), "--config", f"@{config_file}"])
    doc = yaml.safe_load(capsys.readouterr().out)
    assert doc["namespace"] == "podinfo"
    assert doc["values"] == {}


@pytest.mark.parametrize(
    ("config", "match"),
    [
        ("{}", "install namespace not defined"),
        ("not json", "parse config"),
        ("[]", "expected a JSON object"),
        ("@/does/not/exist.json", "read config"),
    ],
)
def test_chart_invalid_config(
    chart_dir: Path, config: str, match: str, capsys: pytest.CaptureFixture[str]
) -> None:
    """Test invalid deployment configs fail the command."""
    with pytest.raises(SystemExit) as exc_info:
        main(["chart", str(chart_dir), "--config", config])
    assert exc_info.value.code == 1
    assert match in capsys.readouterr().err
