"""Deploy the dispute game contracts on the settlement chain.

The contracts live in the ``compose-contracts`` repository under ``L1-settlement``
and are deployed with its ``just`` recipes. We render the network description
and the deployer key file, run the recipes and read back the factory proxy address.
"""

import logging
import threading
from pathlib import Path
from typing import Optional

from eth_localnet.artifacts import ArtifactStore
from eth_localnet.config import DisputeConfig
from eth_localnet.errors import ExternalToolError, InvariantViolation, PreconditionError
from eth_localnet.process import ProcessRunner
from eth_localnet.utils import is_zero_address

logger = logging.getLogger(__name__)

#: Sub-directory of the contracts repository with the settlement recipes
SETTLEMENT_SUBDIR = "L1-settlement"

_NETWORKS_TOML = """[{network_name}]
rpc_url = "{rpc_url}"
chain_id = {chain_id}
explorer_url = "{explorer_url}"
explorer_api_url = "{explorer_api_url}"
sp1_verifier = "{verifier_address}"
authorized_proposer = "{proposer_address}"
aggregation_vkey = "{aggregation_vkey}"
guardian = "{guardian_address}"
proxy_admin_owner = "{owner_address}"
proof_maturity_delay_seconds = {proof_maturity_delay_seconds}
dispute_game_finality_delay_seconds = {dispute_game_finality_delay_seconds}
dispute_game_init_bond = "{dispute_game_init_bond}"
"""


def render_networks_toml(dispute: DisputeConfig, rpc_url: str, chain_id: int) -> str:
    return _NETWORKS_TOML.format(
        network_name=dispute.network_name,
        rpc_url=rpc_url,
        chain_id=chain_id,
        explorer_url=dispute.explorer_url,
        explorer_api_url=dispute.explorer_api_url,
        verifier_address=dispute.verifier_address,
        proposer_address=dispute.proposer_address,
        aggregation_vkey=dispute.aggregation_vkey,
        guardian_address=dispute.guardian_address,
        owner_address=dispute.owner_address,
        proof_maturity_delay_seconds=dispute.proof_maturity_delay_seconds,
        dispute_game_finality_delay_seconds=dispute.dispute_game_finality_delay_seconds,
        dispute_game_init_bond=dispute.dispute_game_init_bond,
    )


def parse_dispute_game_factory(deployments: dict, network_name: str) -> str:
    """Read the factory proxy address from ``deployments.json`` content.

    :raise PreconditionError:
        The network has no deployment record

    :raise InvariantViolation:
        The proxy address is empty
    """
    network = deployments.get(network_name)
    if network is None:
        raise PreconditionError(f"{network_name} deployment not found in deployments.json")
    address = (network.get("DisputeGameFactory") or {}).get("proxy", "")
    if is_zero_address(address):
        raise InvariantViolation(f"DisputeGameFactory proxy address is empty for network {network_name}")
    return address


class DisputeDeployer:
    """Deploy dispute contracts with ``just``.

    :param contracts_repo:
        Checkout of the ``compose-contracts`` repository
    """

    def __init__(
        self,
        contracts_repo: Path,
        dispute: DisputeConfig,
        l1_rpc_url: str,
        l1_chain_id: int,
        deployer_private_key: str,
        runner: ProcessRunner,
        store: ArtifactStore,
        just_binary: str = "just",
        cancel: Optional[threading.Event] = None,
    ):
        self.contracts_dir = Path(contracts_repo) / SETTLEMENT_SUBDIR
        self.dispute = dispute
        self.l1_rpc_url = l1_rpc_url
        self.l1_chain_id = l1_chain_id
        self.deployer_private_key = deployer_private_key
        self.runner = runner
        self.store = store
        self.just_binary = just_binary
        self.cancel = cancel

    def deploy(self) -> str:
        """Run the full dispute deployment.

        :return:
            DisputeGameFactory proxy address
        """
        if not self.contracts_dir.is_dir():
            raise PreconditionError(f"{SETTLEMENT_SUBDIR} directory not found at {self.contracts_dir}, is the compose-contracts repository fetched?")

        logger.info("Writing networks.toml and .env to %s", self.contracts_dir)
        self.store.write_text(self.contracts_dir / "networks.toml", render_networks_toml(self.dispute, self.l1_rpc_url, self.l1_chain_id))
        self.store.write_env(self.contracts_dir / ".env", {"DEPLOYER_PRIVATE_KEY": self.deployer_private_key}, mode=0o600)

        self._just("setup")
        self._just("build")
        self._just("deploy-network", self.dispute.network_name)

        deployments = self.store.read_json(self.contracts_dir / "deployments.json")
        address = parse_dispute_game_factory(deployments, self.dispute.network_name)
        logger.info("Dispute contracts deployed, DisputeGameFactory is %s", address)
        return address

    def _just(self, *args: str):
        cmd = [self.just_binary, *args]
        logger.info("Running %s in %s", " ".join(cmd), self.contracts_dir)
        try:
            self.runner.run_command(cmd, cwd=str(self.contracts_dir), cancel=self.cancel)
        except ExternalToolError as e:
            raise ExternalToolError(f"Command '{' '.join(cmd)}' failed in directory {self.contracts_dir}") from e


def save_dispute_game_factory(store: ArtifactStore, path: Path, address: str):
    """Remember the factory address for later runs that skip phase 1."""
    store.write_json(path, {"DisputeGameFactory": address})


def load_dispute_game_factory(store: ArtifactStore, path: Path) -> str:
    """
    :raise ArtifactError:
        Phase 1 has not completed
    """
    return store.read_json_as(path, lambda data: data["DisputeGameFactory"])
