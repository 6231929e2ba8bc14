"""Shared fixtures.

Nothing here talks to docker or a real settlement chain. External processes
are replaced by :py:class:`FakeRunner`, which records what would have been run.
"""

from pathlib import Path
from typing import Callable, Optional

import pytest

from eth_localnet.artifacts import ArtifactStore, DeploymentLayout
from eth_localnet.config import LocalnetConfig
from eth_localnet.process import ContainerRunOptions

#: Well known development keys, never use on a live network
OPERATOR_PRIVATE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
OPERATOR_ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
SEQUENCER_PRIVATE_KEY = "0x59c6995e998f97a5a0044966f0945389dc9e86dae88c7a8412f4603b6b78690d"
SEQUENCER_ADDRESS = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"


class FakeRunner:
    """Stand-in for :py:class:`eth_localnet.process.ProcessRunner`.

    :param handler:
        Called with ``("command", cmd, kwargs)`` or ``("container", options, kwargs)``,
        returns the stdout. Defaults to empty output.
    """

    docker_binary = "docker"

    def __init__(self, handler: Optional[Callable] = None):
        self.handler = handler
        self.commands: list[list[str]] = []
        self.containers: list[ContainerRunOptions] = []

    def run_command(self, cmd: list[str], **kwargs) -> str:
        self.commands.append(cmd)
        if self.handler:
            return self.handler("command", cmd, kwargs) or ""
        return ""

    def run_container(self, options: ContainerRunOptions, **kwargs) -> str:
        self.containers.append(options)
        if self.handler:
            return self.handler("container", options, kwargs) or ""
        return ""


def make_config_dict() -> dict:
    return {
        "l1-chain-id": 900,
        "l1-el-url": "http://localhost:8545",
        "l1-cl-url": "http://localhost:5052",
        "compose-network-name": "localnet",
        "coordinator-private-key": SEQUENCER_PRIVATE_KEY,
        "wallet": {
            "private-key": OPERATOR_PRIVATE_KEY,
            "address": OPERATOR_ADDRESS,
        },
        "repositories": {
            "op-geth": {"local-path": "src/op-geth"},
            "publisher": {"local-path": "src/publisher"},
            "compose-contracts": {"local-path": "src/compose-contracts"},
        },
        "dispute": {
            "network-name": "localnet",
            "explorer-url": "http://localhost:4000",
            "explorer-api-url": "http://localhost:4000/api",
            "verifier-address": "0x1111111111111111111111111111111111111111",
            "owner-address": OPERATOR_ADDRESS,
            "proposer-address": OPERATOR_ADDRESS,
            "aggregation-vkey": "0x" + "ab" * 32,
            "guardian-address": OPERATOR_ADDRESS,
        },
    }


@pytest.fixture()
def config_dict() -> dict:
    return make_config_dict()


@pytest.fixture()
def config(tmp_path: Path, config_dict) -> LocalnetConfig:
    """Valid configuration rooted in a temporary directory."""
    config = LocalnetConfig.from_dict(config_dict, tmp_path)
    config.validate()
    return config


@pytest.fixture()
def layout(config) -> DeploymentLayout:
    return DeploymentLayout(config.localnet_dir)


@pytest.fixture()
def store() -> ArtifactStore:
    return ArtifactStore()


def make_state_document(chain_ids: list[int]) -> dict:
    """Minimal settlement deployer ``state.json`` for the given rollups."""
    deployments = []
    for i, chain_id in enumerate(chain_ids):
        deployments.append(
            {
                "id": "0x" + format(chain_id, "064x"),
                "systemConfigProxyAddress": f"0x{i + 1:040x}",
                "l1StandardBridgeProxyAddress": f"0x{i + 0x10:040x}",
                "optimismPortalProxyAddress": f"0x{i + 0x20:040x}",
                "disputeGameFactoryProxyAddress": f"0x{i + 0x30:040x}",
                "startBlock": {
                    "hash": "0x" + "cd" * 32,
                    "number": "0x2a",
                },
            }
        )
    return {
        "implementationsDeployment": {"disputeGameFactoryImplAddress": "0x" + "99" * 20},
        "opChainDeployments": deployments,
    }


@pytest.fixture()
def fake_runner() -> type[FakeRunner]:
    """The fake runner class, instantiate with an optional handler."""
    return FakeRunner


@pytest.fixture()
def state_document() -> Callable[[list[int]], dict]:
    return make_state_document
