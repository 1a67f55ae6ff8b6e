from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml
from typer.testing import CliRunner

from strata.cli.__main__ import app

runner = CliRunner()


@pytest.fixture
def config(tmp_path: Path) -> Path:
    props = tmp_path / "app.properties"
    props.write_text("port=8080\nname=svc\nhosts=a,b\n")
    config_file = tmp_path / "strata.yaml"
    config_file.write_text(yaml.dump({
        "environments": {
            "development": {
                "sources": [
                    {"path": str(props), "ordinal": 100},
                    {"type": "map", "name": "defaults", "data": {"name": "default", "debug": "on"}},
                ]
            }
        }
    }))
    return config_file


def test_sources(config: Path):
    result = runner.invoke(app, ["sources", "--config", str(config)])
    assert result.exit_code == 0
    listed = json.loads(result.stdout)
    assert [s["name"] for s in listed] == ["properties:app.properties", "defaults"]
    assert listed[0]["writable"] is True


def test_get(config: Path):
    result = runner.invoke(app, ["get", "name", "--config", str(config)])
    assert result.exit_code == 0
    assert json.loads(result.stdout) == {
        "key": "name",
        "value": "svc",
        "source": "properties:app.properties",
    }


def test_get_typed(config: Path):
    result = runner.invoke(app, ["get", "port", "--type", "int", "--config", str(config)])
    assert json.loads(result.stdout)["value"] == 8080
    result = runner.invoke(app, ["get", "hosts", "--type", "list", "--config", str(config)])
    assert json.loads(result.stdout)["value"] == ["a", "b"]


def test_get_conversion_error(config: Path):
    result = runner.invoke(app, ["get", "name", "--type", "int", "--config", str(config)])
    assert result.exit_code == 1


def test_get_unknown_type(config: Path):
    result = runner.invoke(app, ["get", "name", "--type", "complex", "--config", str(config)])
    assert result.exit_code == 2


def test_dump(config: Path):
    result = runner.invoke(app, ["dump", "--config", str(config)])
    assert json.loads(result.stdout) == {
        "debug": "on",
        "hosts": "a,b",
        "name": "svc",
        "port": "8080",
    }


def test_describe(config: Path):
    result = runner.invoke(app, ["describe", "--config", str(config)])
    assert result.exit_code == 0
    assert "defaults" in result.stdout


def test_set_and_remove_with_save(config: Path, tmp_path: Path):
    result = runner.invoke(app, ["set", "port", "9090", "--save", "--config", str(config)])
    assert result.exit_code == 0
    assert json.loads(result.stdout)["applied"] == ["properties:app.properties"]
    assert "port=9090" in (tmp_path / "app.properties").read_text()

    result = runner.invoke(app, ["remove", "hosts", "--save", "--config", str(config)])
    assert result.exit_code == 0
    assert "hosts" not in (tmp_path / "app.properties").read_text()


def test_set_without_save(config: Path, tmp_path: Path):
    result = runner.invoke(app, ["set", "port", "9090", "--config", str(config)])
    assert result.exit_code == 0
    assert "Staged" in result.stdout
    assert "port=8080" in (tmp_path / "app.properties").read_text()


def test_invalid_config(tmp_path: Path):
    config_file = tmp_path / "strata.yaml"
    config_file.write_text("environments: [")
    result = runner.invoke(app, ["dump", "--config", str(config_file)])
    assert result.exit_code == 1
