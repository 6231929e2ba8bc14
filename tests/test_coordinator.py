"""Pipeline sequencing and the command line front end."""

from pathlib import Path

import pytest
import yaml
from typer.testing import CliRunner

from eth_localnet.cli import REDEPLOY_SERVICES, RedeployTarget, app
from eth_localnet.config import LocalnetConfig
from eth_localnet.coordinator import Coordinator
from eth_localnet.errors import ArtifactError, ExternalToolError, PhaseFailed, ProcessFailed
from eth_localnet.runtime.contracts import HELPER_CONTRACTS
from eth_localnet.settlement.dispute import save_dispute_game_factory


def test_phase_failure_is_wrapped(config: LocalnetConfig, fake_runner):
    """The first failing phase stops the pipeline and is named in the error."""

    def _fail(kind, what, kwargs):
        raise ProcessFailed(str(what), 1, "Cannot connect to the Docker daemon")

    runner = fake_runner(_fail)
    with pytest.raises(PhaseFailed) as exc_info:
        Coordinator(config, runner=runner).deploy()

    e = exc_info.value
    assert e.phase == "Phase 1 (settlement contracts)"
    assert isinstance(e.__cause__, ExternalToolError)
    # Nothing after the deployer image check was attempted
    assert len(runner.commands) == 1
    assert runner.containers == []


def test_redeploy_needs_settlement(config: LocalnetConfig, fake_runner):
    runner = fake_runner()
    with pytest.raises(PhaseFailed) as exc_info:
        Coordinator(config, runner=runner).redeploy(["publisher"])
    assert isinstance(exc_info.value.__cause__, ArtifactError)
    assert runner.commands == []


def test_redeploy(config: LocalnetConfig, store, layout, fake_runner):
    """Services are rebuilt and recreated with the stored factory and mailbox addresses."""
    factory = "0x" + "ab" * 20
    mailbox = "0x" + "11" * 20
    save_dispute_game_factory(store, layout.dispute_file, factory)
    for chain in config.sorted_chains():
        store.write_json(layout.chain(chain.name).contracts, {"addresses": {"Mailbox": mailbox}})

    envs = []

    def _record(kind, cmd, kwargs):
        envs.append(kwargs["env"])
        return ""

    runner = fake_runner(_record)
    Coordinator(config, runner=runner).redeploy(REDEPLOY_SERVICES[RedeployTarget.op_geth])

    assert runner.commands[0][-4:] == ["build", "--parallel", "op-geth-a", "op-geth-b"]
    assert runner.commands[1][-4:] == ["--force-recreate", "op-geth-a", "op-geth-b"]
    assert envs[1]["SP_L1_DISPUTE_GAME_FACTORY"] == factory
    assert envs[1]["MAILBOX_A"] == mailbox
    assert envs[1]["MAILBOX_B"] == mailbox


def test_cli_rejects_bad_config(tmp_path: Path):
    path = tmp_path / "localnet.yaml"
    path.write_text(yaml.safe_dump({"l1-chain-id": 900}))

    result = CliRunner().invoke(app, ["deploy", "--config", str(path)])

    assert result.exit_code == 1
    assert "l1-el-url is required" in result.output


def test_cli_redeploy_without_deployment(tmp_path: Path, config_dict: dict):
    path = tmp_path / "localnet.yaml"
    path.write_text(yaml.safe_dump(config_dict))

    result = CliRunner().invoke(app, ["redeploy", "publisher", "--config", str(path)])

    assert result.exit_code == 1
    assert "Redeploy failed" in result.output


def test_write_summary(config: LocalnetConfig, store, layout):
    store.write_json(config.compiled_contracts_path, {name: {"abi": [], "bytecode": "0x00"} for name in HELPER_CONTRACTS})
    addresses = {name: f"0x{i + 1:040x}" for i, name in enumerate(HELPER_CONTRACTS)}

    Coordinator(config).write_summary({"rollup-a": addresses, "rollup-b": addresses})

    summary = yaml.safe_load(layout.output_file.read_text())
    assert summary["l2"]["contracts"]["bridge"]["address"] == addresses["Bridge"]


def test_output_failure_is_wrapped(config: LocalnetConfig, store, layout):
    """A summary that cannot be written fails the Output phase like any other phase."""
    store.write_json(config.compiled_contracts_path, {name: {"abi": [], "bytecode": "0x00"} for name in HELPER_CONTRACTS})
    layout.output_file.mkdir(parents=True)

    coordinator = Coordinator(config)
    with pytest.raises(PhaseFailed) as exc_info:
        coordinator._run_phase("Output", lambda: coordinator.write_summary({}))

    assert exc_info.value.phase == "Output"
    assert isinstance(exc_info.value.__cause__, ArtifactError)
    assert exc_info.value.__cause__.path == layout.output_file
