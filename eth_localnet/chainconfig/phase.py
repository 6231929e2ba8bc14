"""Phase 2: per-chain configuration."""

import logging

from eth_localnet.artifacts import ArtifactStore, DeploymentLayout
from eth_localnet.chainconfig.credentials import SecretsGenerator
from eth_localnet.chainconfig.genesis import GenesisGenerator, GenesisHashSource
from eth_localnet.chainconfig.placeholders import PlaceholderGenerator
from eth_localnet.chainconfig.rollup import RollupConfigGenerator
from eth_localnet.config import LocalnetConfig
from eth_localnet.errors import ChainStepFailed, LocalnetError
from eth_localnet.settlement.deployer import OpDeployer
from eth_localnet.settlement.state import load_deployment_state
from eth_localnet.utils import address_from_private_key

logger = logging.getLogger(__name__)


class ChainConfigPhase:
    """Generate the configuration bundle of every chain, one chain at a time.

    Any failure aborts the whole phase. There is no partial per-chain continuation.
    """

    def __init__(
        self,
        config: LocalnetConfig,
        layout: DeploymentLayout,
        store: ArtifactStore,
        deployer: OpDeployer,
        hash_source: GenesisHashSource,
    ):
        self.config = config
        self.layout = layout
        self.store = store
        self.genesis = GenesisGenerator(deployer, hash_source, store)
        self.rollup = RollupConfigGenerator(deployer, store, layout.tmp_dir)
        self.secrets = SecretsGenerator(store)
        self.placeholders = PlaceholderGenerator(store)

    def execute(self) -> dict[str, str]:
        """Run the phase.

        :return:
            Chain name -> genesis hash

        :raise ArtifactError:
            ``state.json`` from phase 1 is missing or broken
        """
        config = self.config
        state = load_deployment_state(self.store, self.layout.state_file)
        sequencer_address = address_from_private_key(config.coordinator_private_key)

        logger.info("Phase 2: generating chain configuration")

        hashes = {}
        for chain in config.sorted_chains():
            paths = self.layout.chain(chain.name)
            deployment = state.get_chain(chain.id)

            logger.info("Generating configuration of %s, chain id %d", chain.name, chain.id)
            step = "genesis generation"
            try:
                genesis_hash = self.genesis.generate(chain.id, paths, config.wallet.address, sequencer_address, config.genesis_balance_wei)
                step = "rollup config generation"
                self.rollup.generate(chain.id, paths, genesis_hash, deployment.start_block)
                step = "secrets generation"
                self.secrets.write_jwt(paths)
                self.secrets.write_password(paths)
                step = "placeholder generation"
                self.placeholders.write_contracts_placeholder(paths, chain.id)
                self.placeholders.write_runtime_env(paths, deployment.dispute_game_factory_proxy_address)
                self.placeholders.write_addresses(paths, deployment)
                self.placeholders.write_l1_genesis(paths, config.l1_chain_id)
            except LocalnetError as e:
                raise ChainStepFailed(step, chain.name, chain.id, e) from e
            hashes[chain.name] = genesis_hash

        logger.info("Phase 2 completed")
        return hashes
