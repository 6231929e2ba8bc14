"""Artifact files and the deployment directory layout."""

import os
import stat
from pathlib import Path

import pytest

from eth_localnet.artifacts import ArtifactStore, DeploymentLayout
from eth_localnet.errors import ArtifactError


def test_layout(tmp_path: Path):
    layout = DeploymentLayout(tmp_path / ".localnet")
    assert layout.state_file == tmp_path / ".localnet" / "state" / "state.json"
    assert layout.intent_file.name == "intent.toml"
    paths = layout.chain("rollup-a")
    assert paths.genesis == tmp_path / ".localnet" / "networks" / "rollup-a" / "genesis.json"
    assert paths.runtime_env.name == "runtime.env"


def test_json_round_trip_creates_parents(tmp_path: Path, store: ArtifactStore):
    path = tmp_path / "a" / "b" / "doc.json"
    store.write_json(path, {"x": 1})
    assert path.read_text().endswith("}\n")
    assert store.read_json(path) == {"x": 1}


def test_missing_artifact(tmp_path: Path, store: ArtifactStore):
    with pytest.raises(ArtifactError) as exc_info:
        store.read_json(tmp_path / "state.json")
    assert exc_info.value.path == tmp_path / "state.json"


def test_malformed_artifact(tmp_path: Path, store: ArtifactStore):
    path = tmp_path / "state.json"
    path.write_text("{not json")
    with pytest.raises(ArtifactError, match="not valid JSON"):
        store.read_json(path)


def test_artifact_not_utf8(tmp_path: Path, store: ArtifactStore):
    path = tmp_path / "state.json"
    path.write_bytes(b"\xff\xfe{}")
    with pytest.raises(ArtifactError):
        store.read_json(path)
    with pytest.raises(ArtifactError, match="not UTF-8"):
        store.read_text(path)


def test_read_json_as_maps_parser_errors(tmp_path: Path, store: ArtifactStore):
    path = tmp_path / "doc.json"
    store.write_json(path, {"a": 1})
    assert store.read_json_as(path, lambda d: d["a"]) == 1
    with pytest.raises(ArtifactError, match="unexpected content"):
        store.read_json_as(path, lambda d: d["b"])


def test_env_file(tmp_path: Path, store: ArtifactStore):
    path = tmp_path / ".env"
    store.write_env(path, {"KEY": "value", "OTHER": "a=b"}, mode=0o600)
    assert path.read_text() == "KEY=value\nOTHER=a=b\n"
    assert stat.S_IMODE(os.stat(path).st_mode) == 0o600

    path.write_text("# comment\n\nKEY=value\nOTHER=a=b\n")
    assert store.read_env(path) == {"KEY": "value", "OTHER": "a=b"}


def test_bad_env_line(tmp_path: Path, store: ArtifactStore):
    path = tmp_path / "runtime.env"
    path.write_text("JUSTAWORD\n")
    with pytest.raises(ArtifactError):
        store.read_env(path)
