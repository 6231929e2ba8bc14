"""Environment variables handed to docker compose.

The compose file refers to paths, keys and image tags through these variables.
Paths are translated to docker host paths with :py:func:`eth_localnet.utils.get_host_path`.
"""

import logging
from typing import Optional

from eth_localnet.artifacts import ArtifactStore, DeploymentLayout
from eth_localnet.config import (
    CHAIN_ROLLUP_A,
    CHAIN_ROLLUP_B,
    IMAGE_OP_BATCHER,
    IMAGE_OP_NODE,
    IMAGE_OP_PROPOSER,
    REPOSITORY_OP_GETH,
    REPOSITORY_PUBLISHER,
    LocalnetConfig,
)
from eth_localnet.errors import ArtifactError
from eth_localnet.utils import ZERO_ADDRESS, get_host_path

logger = logging.getLogger(__name__)

#: Chain name -> env var with its cross-chain mailbox address
MAILBOX_ENV = {
    CHAIN_ROLLUP_A: "MAILBOX_A",
    CHAIN_ROLLUP_B: "MAILBOX_B",
}


def build_image_env(config: LocalnetConfig) -> dict[str, str]:
    """Minimal environment to build the execution client image."""
    return {
        "ROOT_DIR": get_host_path(config.root_dir),
        "OP_GETH_PATH": get_host_path(config.resolve_repository_path(REPOSITORY_OP_GETH)),
    }


def build_compose_env(
    config: LocalnetConfig,
    layout: DeploymentLayout,
    dispute_game_factory: str = ZERO_ADDRESS,
    mailboxes: Optional[dict[str, str]] = None,
) -> dict[str, str]:
    """Full environment for the rollup services.

    :param mailboxes:
        Chain name -> deployed Mailbox address, once known
    """
    env = build_image_env(config)
    env.update(
        {
            "WALLET_PRIVATE_KEY": config.wallet.private_key,
            "WALLET_ADDRESS": config.wallet.address,
            "L1_EL_URL": config.l1_el_url,
            "L1_CL_URL": config.l1_cl_url,
            "L1_CHAIN_ID": str(config.l1_chain_id),
            "COMPOSE_NETWORK_NAME": config.compose_network_name,
            "COORDINATOR_PRIVATE_KEY": config.coordinator_private_key,
            "SEQUENCER_PRIVATE_KEY": config.coordinator_private_key,
            "PUBLISHER_PATH": get_host_path(config.resolve_repository_path(REPOSITORY_PUBLISHER)),
            "SP_L1_DISPUTE_GAME_FACTORY": dispute_game_factory,
            "OP_BATCHER_IMAGE_TAG": config.get_image_tag(IMAGE_OP_BATCHER),
            "OP_NODE_IMAGE_TAG": config.get_image_tag(IMAGE_OP_NODE),
            "OP_PROPOSER_IMAGE_TAG": config.get_image_tag(IMAGE_OP_PROPOSER),
        }
    )

    for chain in config.sorted_chains():
        prefix = f"ROLLUP_{chain.suffix.upper()}"
        chain_dir = layout.chain(chain.name).directory
        env[f"{prefix}_CHAIN_ID"] = str(chain.id)
        env[f"{prefix}_RPC_PORT"] = str(chain.rpc_port)
        env[f"{prefix}_CONFIG_PATH"] = get_host_path(chain_dir)
        env[f"{prefix}_CONFIG_PATH_CONTAINER"] = str(chain_dir)

    for chain_name, address in (mailboxes or {}).items():
        env[MAILBOX_ENV[chain_name]] = address

    return env


def read_mailboxes(config: LocalnetConfig, layout: DeploymentLayout, store: ArtifactStore) -> dict[str, str]:
    """Mailbox addresses from already written ``contracts.json`` files.

    Used when restarting services without redeploying. Chains whose file is missing
    or still has the zero placeholder are left out.
    """
    result = {}
    for chain in config.sorted_chains():
        try:
            document = store.read_json(layout.chain(chain.name).contracts)
        except ArtifactError as e:
            logger.info("No mailbox address for %s: %s", chain.name, e)
            continue
        address = (document.get("addresses") or {}).get("Mailbox", "")
        if address and int(address, 16) != 0:
            result[chain.name] = address
    return result
