"""Phase 3: start the rollups and deploy the helper contracts."""

import logging
import threading
from typing import Callable, Optional

from web3 import HTTPProvider, Web3

from eth_localnet.artifacts import ArtifactStore, DeploymentLayout
from eth_localnet.config import LocalnetConfig
from eth_localnet.docker import ComposeProject
from eth_localnet.environment import build_compose_env
from eth_localnet.hotwallet import HotWallet
from eth_localnet.runtime.contracts import ChainTarget, HelperContractDeployer, load_compiled_contracts
from eth_localnet.runtime.registry import RegistryConfigurator
from eth_localnet.runtime.rpc import wait_for_rpc
from eth_localnet.runtime.services import ServiceManager

logger = logging.getLogger(__name__)


def create_web3(url: str) -> Web3:
    return Web3(HTTPProvider(url, request_kwargs={"timeout": 30}))


class RuntimePhase:
    """Bring up the rollup services and reconcile them with the helper contracts.

    :param web3_factory:
        RPC URL -> Web3 connection

    :param rpc_waiter:
        Blocks until a chain RPC answers, see :py:func:`wait_for_rpc`
    """

    def __init__(
        self,
        config: LocalnetConfig,
        layout: DeploymentLayout,
        store: ArtifactStore,
        compose: ComposeProject,
        web3_factory: Callable[[str], Web3] = create_web3,
        rpc_waiter: Callable[..., int] = wait_for_rpc,
        cancel: Optional[threading.Event] = None,
    ):
        self.config = config
        self.layout = layout
        self.store = store
        self.services = ServiceManager(compose)
        self.registry = RegistryConfigurator(store, layout.registry_dir)
        self.web3_factory = web3_factory
        self.rpc_waiter = rpc_waiter
        self.cancel = cancel

    def check_preconditions(self):
        """Phase 2 output must be there and parse.

        :raise ArtifactError:
            ``genesis.json`` or ``rollup.json`` of a chain is missing or broken
        """
        for chain in self.config.sorted_chains():
            paths = self.layout.chain(chain.name)
            self.store.read_json(paths.genesis)
            self.store.read_json(paths.rollup)

    def execute(self, dispute_game_factory: str) -> dict[str, dict[str, str]]:
        """Run the phase.

        :return:
            Chain name -> helper contract name -> address
        """
        config = self.config
        self.check_preconditions()

        # Fail before starting anything if the bundle is not usable
        contracts = load_compiled_contracts(self.store, config.compiled_contracts_path)

        logger.info("Phase 3: starting rollup services")
        self.registry.setup(config, dispute_game_factory)

        env = build_compose_env(config, self.layout, dispute_game_factory)
        self.services.build(env)
        self.services.start_first_wave(env)

        targets = []
        for chain in config.sorted_chains():
            logger.info("Waiting for %s RPC at %s", chain.name, chain.rpc_url)
            self.rpc_waiter(chain.rpc_url, config.rpc_wait_attempts, config.rpc_wait_interval, cancel=self.cancel)
            targets.append(ChainTarget(chain.name, chain.id, self.web3_factory(chain.rpc_url), self.layout.chain(chain.name)))

        deployer = HelperContractDeployer(
            contracts,
            lambda: HotWallet.from_private_key(config.coordinator_private_key),
            self.store,
            cancel=self.cancel,
        )
        deployments = deployer.deploy_all(targets)

        mailboxes = {chain_name: addresses["Mailbox"] for chain_name, addresses in deployments.items()}
        env = build_compose_env(config, self.layout, dispute_game_factory, mailboxes=mailboxes)
        self.services.restart_execution_clients(env)
        self.services.start_second_wave(env)

        logger.info("Phase 3 completed")
        return deployments
