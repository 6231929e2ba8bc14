"""Rollup genesis documents.

The base document comes from the settlement deployer. We fund the operator
and the sequencer, and activate the Prague and Isthmus forks at genesis.

.. note::

    Forcing the fork times to zero is what the chain clients need to treat
    the forks as active from block 0. It is a localnet convenience and not a
    correct default for every deployment.
"""

import json
import logging
from typing import Protocol

from eth_localnet.artifacts import ArtifactStore, ChainPaths
from eth_localnet.errors import ArtifactError, PreconditionError
from eth_localnet.settlement.deployer import OpDeployer
from eth_localnet.utils import wei_to_hex

logger = logging.getLogger(__name__)

#: Fork activation times forced to zero in the genesis config
GENESIS_FORK_OVERRIDES = ("pragueTime", "isthmusTime")


class GenesisHashSource(Protocol):
    def compute(self, chain_id: int, genesis: dict) -> str:
        ...


def normalise_alloc_address(address: str) -> str:
    """Allocation keys are ``0x`` prefixed. Case is kept as given."""
    if address.startswith("0x"):
        address = address[2:]
    return "0x" + address


def patch_genesis(genesis: dict, funded_addresses: list[str], balance_wei: str) -> dict:
    """Fund accounts and force fork times in a genesis document.

    Modifies ``genesis`` in place.

    :raise ValueError:
        Empty address or a bad balance
    """
    balance = wei_to_hex(balance_wei)

    alloc = genesis.get("alloc")
    if not isinstance(alloc, dict):
        alloc = genesis["alloc"] = {}

    for address in funded_addresses:
        if not address:
            raise ValueError("wallet or sequencer address cannot be empty")
        account = alloc.setdefault(normalise_alloc_address(address), {})
        account["balance"] = balance

    config = genesis.get("config")
    if not isinstance(config, dict):
        config = genesis["config"] = {}
    for key in GENESIS_FORK_OVERRIDES:
        config[key] = 0

    return genesis


class GenesisGenerator:
    """Produce ``genesis.json`` and its canonical hash for one chain."""

    def __init__(self, deployer: OpDeployer, hash_source: GenesisHashSource, store: ArtifactStore):
        self.deployer = deployer
        self.hash_source = hash_source
        self.store = store

    def generate(self, chain_id: int, paths: ChainPaths, wallet_address: str, sequencer_address: str, balance_wei: str) -> str:
        """Write the patched genesis.

        :return:
            Canonical genesis block hash
        """
        logger.info("Inspecting genesis of chain %d", chain_id)
        output = self.deployer.inspect_genesis(chain_id)

        try:
            genesis = json.loads(output)
        except json.JSONDecodeError as e:
            raise ArtifactError(f"inspect genesis {chain_id}", f"Genesis output is not JSON ({e})") from e

        if not isinstance(genesis, dict):
            raise ArtifactError(f"inspect genesis {chain_id}", "Genesis output is not a JSON object")

        try:
            patch_genesis(genesis, [wallet_address, sequencer_address], balance_wei)
        except ValueError as e:
            raise PreconditionError(f"Cannot patch genesis of chain {chain_id}") from e

        logger.info("Computing genesis hash of chain %d", chain_id)
        genesis_hash = self.hash_source.compute(chain_id, genesis)

        logger.info("Genesis of chain %d has hash %s, writing %s", chain_id, genesis_hash, paths.genesis)
        self.store.write_json(paths.genesis, genesis)
        return genesis_hash
