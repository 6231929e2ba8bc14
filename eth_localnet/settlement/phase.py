"""Phase 1: settlement layer contracts."""

import logging
import threading
from dataclasses import dataclass
from typing import Optional

from eth_localnet.artifacts import ArtifactStore, DeploymentLayout
from eth_localnet.config import IMAGE_OP_DEPLOYER, REPOSITORY_COMPOSE_CONTRACTS, LocalnetConfig
from eth_localnet.docker import DockerClient
from eth_localnet.process import ProcessRunner
from eth_localnet.settlement.deployer import OpDeployer
from eth_localnet.settlement.dispute import DisputeDeployer, save_dispute_game_factory
from eth_localnet.settlement.intent import IntentWriter
from eth_localnet.settlement.state import DeploymentState, load_deployment_state
from eth_localnet.utils import address_from_private_key

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SettlementDeployment:
    """What phase 1 hands over to the later phases."""

    state: DeploymentState

    #: Proxy address of the dispute game factory
    dispute_game_factory: str


class SettlementPhase:
    """Deploy the settlement contracts and the dispute contracts."""

    def __init__(
        self,
        config: LocalnetConfig,
        layout: DeploymentLayout,
        store: ArtifactStore,
        runner: ProcessRunner,
        docker: DockerClient,
        cancel: Optional[threading.Event] = None,
    ):
        self.config = config
        self.layout = layout
        self.store = store
        self.runner = runner
        self.cancel = cancel
        self.deployer = OpDeployer(layout.state_dir, config.get_image_tag(IMAGE_OP_DEPLOYER), runner, docker, cancel=cancel)

    def execute(self) -> SettlementDeployment:
        config = self.config
        chains = config.sorted_chains()
        sequencer_address = address_from_private_key(config.coordinator_private_key)

        logger.info("Phase 1: deploying settlement contracts to chain %d", config.l1_chain_id)

        self.deployer.ensure_image()
        self.deployer.ensure_state_dir()
        self.deployer.init(config.l1_chain_id, [c.id for c in chains])

        IntentWriter(self.store, self.layout.intent_file).write(
            config.l1_chain_id,
            config.wallet.address,
            sequencer_address,
            chains,
        )

        self.deployer.apply(config.l1_el_url, config.wallet.private_key, config.deployment_target)

        state = load_deployment_state(self.store, self.layout.state_file)
        for chain in chains:
            # Fails early if the deployer did not produce a record for the chain
            deployment = state.get_chain(chain.id)
            logger.info("Chain %s portal %s", chain.name, deployment.optimism_portal_proxy_address)

        dispute = DisputeDeployer(
            config.resolve_repository_path(REPOSITORY_COMPOSE_CONTRACTS),
            config.dispute,
            config.l1_el_url,
            config.l1_chain_id,
            config.wallet.private_key,
            self.runner,
            self.store,
            cancel=self.cancel,
        )
        dispute_game_factory = dispute.deploy()
        save_dispute_game_factory(self.store, self.layout.dispute_file, dispute_game_factory)

        logger.info("Phase 1 completed")
        return SettlementDeployment(state=state, dispute_game_factory=dispute_game_factory)
