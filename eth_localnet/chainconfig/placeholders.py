"""Per-chain files that are filled in later or only describe settlement addresses.

- ``contracts.json``: helper contract addresses, zero until phase 3 deploys them
- ``runtime.env``: dispute game factory for the proposer
- ``addresses.json``: settlement proxy addresses, empty ones omitted
- ``l1-genesis.json``: fork schedule of the settlement chain
"""

import logging

from eth_localnet.artifacts import ArtifactStore, ChainPaths
from eth_localnet.errors import InvariantViolation
from eth_localnet.settlement.state import OpChainDeployment
from eth_localnet.utils import ZERO_ADDRESS, is_zero_address

logger = logging.getLogger(__name__)

#: Helper contracts listed in ``contracts.json`` before they are deployed
PLACEHOLDER_CONTRACTS = ("Mailbox", "PingPong", "Bridge", "MyToken")


def build_contracts_document(chain_id: int, addresses: dict[str, str]) -> dict:
    return {
        "chainInfo": {"chainId": chain_id},
        "addresses": dict(addresses),
    }


def build_addresses_document(deployment: OpChainDeployment) -> dict:
    candidates = {
        "OPTIMISM_PORTAL": deployment.optimism_portal_proxy_address,
        "L1_STANDARD_BRIDGE": deployment.l1_standard_bridge_proxy_address,
        "SYSTEM_CONFIG": deployment.system_config_proxy_address,
        "DISPUTE_GAME_FACTORY": deployment.dispute_game_factory_proxy_address,
    }
    return {k: v for k, v in candidates.items() if v}


def build_l1_genesis_document(l1_chain_id: int) -> dict:
    """Settlement chain config as the rollup node expects it.

    All forks up to Cancun are active from genesis.
    """
    return {
        "config": {
            "chainId": l1_chain_id,
            "homesteadBlock": 0,
            "eip150Block": 0,
            "eip155Block": 0,
            "eip158Block": 0,
            "byzantiumBlock": 0,
            "constantinopleBlock": 0,
            "petersburgBlock": 0,
            "istanbulBlock": 0,
            "berlinBlock": 0,
            "londonBlock": 0,
            "mergeNetsplitBlock": 0,
            "terminalTotalDifficulty": 0,
            "shanghaiTime": 0,
            "cancunTime": 0,
            "depositContractAddress": "0x00000000219ab540356cBB839Cbe05303d7705Fa",
            "blobSchedule": {
                "cancun": {
                    "target": 3,
                    "max": 6,
                    "baseFeeUpdateFraction": 3338477,
                },
            },
        },
    }


class PlaceholderGenerator:
    def __init__(self, store: ArtifactStore):
        self.store = store

    def write_contracts_placeholder(self, paths: ChainPaths, chain_id: int):
        addresses = {name: ZERO_ADDRESS for name in PLACEHOLDER_CONTRACTS}
        self.store.write_json(paths.contracts, build_contracts_document(chain_id, addresses))

    def write_runtime_env(self, paths: ChainPaths, dispute_game_factory: str):
        """
        :raise InvariantViolation:
            The factory address is empty
        """
        if is_zero_address(dispute_game_factory):
            raise InvariantViolation(f"Cannot write {paths.runtime_env}, dispute game factory address is empty")
        self.store.write_env(
            paths.runtime_env,
            {
                "DISPUTE_GAME_FACTORY_ADDRESS": dispute_game_factory,
                "OP_PROPOSER_GAME_FACTORY_ADDRESS": dispute_game_factory,
            },
        )

    def write_addresses(self, paths: ChainPaths, deployment: OpChainDeployment):
        self.store.write_json(paths.addresses, build_addresses_document(deployment))

    def write_l1_genesis(self, paths: ChainPaths, l1_chain_id: int):
        self.store.write_json(paths.l1_genesis, build_l1_genesis_document(l1_chain_id))
