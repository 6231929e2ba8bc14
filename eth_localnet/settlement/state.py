"""Typed view over the settlement deployer ``state.json``.

Only the fields the pipeline uses are parsed. The file has a lot more.
"""

from dataclasses import dataclass
from pathlib import Path

from eth_localnet.artifacts import ArtifactStore
from eth_localnet.errors import PreconditionError
from eth_localnet.utils import chain_id_to_hex, parse_chain_id_hex, parse_hex_int


@dataclass(frozen=True)
class StartBlock:
    """Settlement chain block where a rollup is anchored."""

    hash: str

    #: Hex quantity, as written by the deployer
    number: str

    @property
    def number_int(self) -> int:
        return parse_hex_int(self.number)


@dataclass(frozen=True)
class OpChainDeployment:
    """Settlement contracts of one rollup."""

    #: ``0x`` + 64 hex digits
    id: str

    system_config_proxy_address: str

    l1_standard_bridge_proxy_address: str

    optimism_portal_proxy_address: str

    dispute_game_factory_proxy_address: str

    start_block: StartBlock

    @property
    def chain_id(self) -> int:
        return parse_chain_id_hex(self.id)

    @classmethod
    def from_dict(cls, data: dict) -> "OpChainDeployment":
        start_block = data.get("startBlock") or {}
        return cls(
            id=data["id"],
            system_config_proxy_address=data.get("systemConfigProxyAddress", ""),
            l1_standard_bridge_proxy_address=data.get("l1StandardBridgeProxyAddress", ""),
            optimism_portal_proxy_address=data.get("optimismPortalProxyAddress", ""),
            dispute_game_factory_proxy_address=data.get("disputeGameFactoryProxyAddress", ""),
            start_block=StartBlock(hash=start_block["hash"], number=start_block["number"]),
        )


@dataclass(frozen=True)
class DeploymentState:
    """The settlement deployer output record."""

    dispute_game_factory_impl_address: str

    op_chain_deployments: list[OpChainDeployment]

    def get_chain(self, chain_id: int) -> OpChainDeployment:
        """Find the deployment of a rollup.

        :raise PreconditionError:
            The chain is not in the record
        """
        key = chain_id_to_hex(chain_id)
        for deployment in self.op_chain_deployments:
            if deployment.id.lower() == key:
                return deployment
        raise PreconditionError(f"Chain {chain_id} ({key}) not found in opChainDeployments")

    @classmethod
    def from_dict(cls, data: dict) -> "DeploymentState":
        implementations = data.get("implementationsDeployment") or {}
        return cls(
            dispute_game_factory_impl_address=implementations.get("disputeGameFactoryImplAddress", ""),
            op_chain_deployments=[OpChainDeployment.from_dict(d) for d in data["opChainDeployments"]],
        )


def load_deployment_state(store: ArtifactStore, path: Path) -> DeploymentState:
    """Read ``state.json``.

    :raise ArtifactError:
        Missing file, bad JSON or missing required fields
    """
    return store.read_json_as(path, DeploymentState.from_dict)
