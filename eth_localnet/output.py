"""Deployment summary ``output.yaml`` for external tooling.

Lists how to reach each chain and where the user facing helper contracts are.
The helper contracts have the same address on every chain, so they are listed once.
"""

import json
import logging
from pathlib import Path

import yaml

from eth_localnet.config import LocalnetConfig
from eth_localnet.errors import ArtifactError
from eth_localnet.runtime.contracts import BRIDGE, BRIDGEABLE_TOKEN, PING_PONG, CompiledContract

logger = logging.getLogger(__name__)

#: Contracts listed in the summary
SUMMARY_CONTRACTS = (BRIDGE, PING_PONG, BRIDGEABLE_TOKEN)


def build_output_model(
    config: LocalnetConfig,
    deployments: dict[str, dict[str, str]],
    compiled: dict[str, CompiledContract],
) -> dict:
    chain_configs = {}
    for chain in config.sorted_chains():
        chain_configs[chain.name] = {
            "id": chain.id,
            "rpc-url": chain.rpc_url,
            "pk": config.wallet.private_key,
        }

    contracts = {}
    if deployments:
        first_chain = sorted(deployments)[0]
        addresses = deployments[first_chain]
        for name in SUMMARY_CONTRACTS:
            contracts[name.lower()] = {
                "address": addresses[name],
                "abi": json.dumps(compiled[name].abi, separators=(",", ":")),
            }

    return {"l2": {"chain-configs": chain_configs, "contracts": contracts}}


def write_output(path: Path, model: dict):
    """Write the summary.

    :raise ArtifactError:
        The file could not be written
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "wt", encoding="utf-8") as f:
            yaml.safe_dump(model, f, sort_keys=False, width=2**20)
    except OSError as e:
        raise ArtifactError(path, f"Could not write deployment summary ({e})") from e
    logger.info("Wrote deployment summary %s", path)
