"""Chain registry descriptors for the runtime services.

The services resolve chains from ``registry/networks/<network>/``. Writing our own
descriptors there makes them see only the chains of this deployment, not the
bundled defaults.
"""

import logging
from pathlib import Path

from eth_localnet.artifacts import ArtifactStore
from eth_localnet.config import ChainConfig, LocalnetConfig
from eth_localnet.utils import ZERO_ADDRESS

logger = logging.getLogger(__name__)

_NETWORK_TOML = """name = "{network_name}"

[l1]
rpc_url = "{l1_el_url}"
chain_id = {l1_chain_id}
explorer_url = "{explorer_url}"

[contracts]
dispute_game_factory = "{dispute_game_factory}"
"""

_CHAIN_TOML = """name = "{chain_name}"
chain_id = {chain_id}
rpc_port = {rpc_port}
sequencer_host = "{sequencer_host}"
mailbox_address = "{mailbox_address}"
l2_genesis_time = {l2_genesis_time}
"""


def render_network_toml(config: LocalnetConfig, dispute_game_factory: str) -> str:
    return _NETWORK_TOML.format(
        network_name=config.compose_network_name,
        l1_el_url=config.l1_el_url,
        l1_chain_id=config.l1_chain_id,
        explorer_url=config.dispute.explorer_url,
        dispute_game_factory=dispute_game_factory,
    )


def render_chain_toml(chain: ChainConfig) -> str:
    return _CHAIN_TOML.format(
        chain_name=chain.name,
        chain_id=chain.id,
        rpc_port=chain.rpc_port,
        sequencer_host=f"op-geth-{chain.suffix}",
        # Helper contracts are not deployed yet
        mailbox_address=ZERO_ADDRESS,
        l2_genesis_time=0,
    )


class RegistryConfigurator:
    def __init__(self, store: ArtifactStore, registry_dir: Path):
        self.store = store
        self.registry_dir = Path(registry_dir)

    def network_dir(self, network_name: str) -> Path:
        return self.registry_dir / "networks" / network_name

    def setup(self, config: LocalnetConfig, dispute_game_factory: str) -> Path:
        """Write the network descriptor and one descriptor per chain.

        :return:
            Network registry directory
        """
        network_dir = self.network_dir(config.compose_network_name)
        self.store.write_text(network_dir / "compose.toml", render_network_toml(config, dispute_game_factory))
        logger.info("Wrote network registry %s", network_dir / "compose.toml")

        for chain in config.sorted_chains():
            path = network_dir / f"{chain.name}.toml"
            self.store.write_text(path, render_chain_toml(chain))
            logger.info("Wrote chain registry for %s, chain id %d, RPC port %d: %s", chain.name, chain.id, chain.rpc_port, path)

        return network_dir
