"""Sequence the deployment pipeline.

.. code-block:: text

    fetch repositories (parallel)
        -> phase 1: settlement contracts       writes .localnet/state
        -> phase 2: chain configuration        writes .localnet/networks/<chain>
        -> phase 3: services, helper contracts writes contracts.json, starts services
        -> output.yaml

Phases never overlap. The first failure stops the pipeline and is raised as
:py:class:`PhaseFailed`. Whatever was done before stays on disk and on chain,
so the next run resumes from the idempotent steps.

Only one pipeline may run against a deployment directory at a time.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from eth_localnet.artifacts import ArtifactStore, DeploymentLayout
from eth_localnet.chainconfig.chaindb import GenesisHashComputer
from eth_localnet.chainconfig.phase import ChainConfigPhase
from eth_localnet.config import IMAGE_OP_DEPLOYER, LocalnetConfig
from eth_localnet.docker import ComposeProject, DockerClient
from eth_localnet.environment import build_compose_env, build_image_env, read_mailboxes
from eth_localnet.errors import LocalnetError, PhaseFailed
from eth_localnet.output import build_output_model, write_output
from eth_localnet.process import ProcessRunner
from eth_localnet.repository import FetchTarget, RepositoryFetcher
from eth_localnet.runtime.contracts import load_compiled_contracts
from eth_localnet.runtime.phase import RuntimePhase
from eth_localnet.runtime.services import ServiceManager
from eth_localnet.settlement.deployer import OpDeployer
from eth_localnet.settlement.dispute import load_dispute_game_factory
from eth_localnet.settlement.phase import SettlementPhase

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class DeploymentResult:
    dispute_game_factory: str

    #: Chain name -> genesis hash
    genesis_hashes: dict[str, str]

    #: Chain name -> contract name -> address
    contracts: dict[str, dict[str, str]]


class Coordinator:
    """Run the pipeline against one deployment directory.

    :param cancel:
        Set to abort the external process currently running.
        Nothing already applied is rolled back.
    """

    def __init__(
        self,
        config: LocalnetConfig,
        runner: Optional[ProcessRunner] = None,
        store: Optional[ArtifactStore] = None,
        cancel: Optional[threading.Event] = None,
    ):
        self.config = config
        self.cancel = cancel or threading.Event()
        self.runner = runner or ProcessRunner()
        self.store = store or ArtifactStore()
        self.layout = DeploymentLayout(config.localnet_dir)
        self.docker = DockerClient(self.runner, cancel=self.cancel)
        self.compose = ComposeProject(self.runner, config.compose_file, cancel=self.cancel)

    def fetch_repositories(self):
        targets = [
            FetchTarget(name=repo.name, url=repo.url, ref=repo.branch, destination=self.config.resolve_repository_path(repo.name))
            for name, repo in sorted(self.config.repositories.items())
            if repo.is_remote
        ]
        for name, repo in sorted(self.config.repositories.items()):
            if not repo.is_remote:
                logger.info("Using local checkout of %s at %s", name, self.config.resolve_repository_path(name))
        RepositoryFetcher(self.runner, cancel=self.cancel).fetch_all(targets)

    def deploy(self) -> DeploymentResult:
        """Run every phase.

        :raise PhaseFailed:
            Wrapping the first failure
        """
        config = self.config
        self.layout.localnet_dir.mkdir(parents=True, exist_ok=True)

        self._run_phase("Repository fetch", self.fetch_repositories)

        settlement = self._run_phase(
            "Phase 1 (settlement contracts)",
            lambda: SettlementPhase(config, self.layout, self.store, self.runner, self.docker, cancel=self.cancel).execute(),
        )

        deployer = OpDeployer(self.layout.state_dir, config.get_image_tag(IMAGE_OP_DEPLOYER), self.runner, self.docker, cancel=self.cancel)
        hash_computer = GenesisHashComputer(
            self.runner,
            self.docker,
            self.compose,
            self.layout.tmp_dir,
            config.coordinator_private_key,
            build_env=build_image_env(config),
            cancel=self.cancel,
        )
        genesis_hashes = self._run_phase(
            "Phase 2 (chain configuration)",
            lambda: ChainConfigPhase(config, self.layout, self.store, deployer, hash_computer).execute(),
        )

        contracts = self._run_phase(
            "Phase 3 (runtime services)",
            lambda: RuntimePhase(config, self.layout, self.store, self.compose, cancel=self.cancel).execute(settlement.dispute_game_factory),
        )

        self._run_phase("Output", lambda: self.write_summary(contracts))

        logger.info("Localnet deployed")
        return DeploymentResult(
            dispute_game_factory=settlement.dispute_game_factory,
            genesis_hashes=genesis_hashes,
            contracts=contracts,
        )

    def write_summary(self, contracts: dict[str, dict[str, str]]):
        """Write ``output.yaml``.

        :raise ArtifactError:
            Compiled contracts could not be read or the summary could not be written
        """
        compiled = load_compiled_contracts(self.store, self.config.compiled_contracts_path)
        write_output(self.layout.output_file, build_output_model(self.config, contracts, compiled))

    def redeploy(self, services: list[str]):
        """Rebuild and recreate services of a running localnet.

        Mailbox addresses are taken from the existing ``contracts.json`` files.
        """

        def _redeploy():
            dispute_game_factory = load_dispute_game_factory(self.store, self.layout.dispute_file)
            mailboxes = read_mailboxes(self.config, self.layout, self.store)
            env = build_compose_env(self.config, self.layout, dispute_game_factory, mailboxes=mailboxes)
            ServiceManager(self.compose).redeploy(env, services)

        self._run_phase("Redeploy", _redeploy)

    @staticmethod
    def _run_phase(name: str, func: Callable[[], T]) -> T:
        logger.info("Starting %s", name)
        try:
            return func()
        except LocalnetError as e:
            logger.error("%s failed: %s", name, e)
            raise PhaseFailed(name, e) from e
