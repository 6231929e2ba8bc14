"""Localnet configuration.

The configuration is loaded once from a YAML file, patched with command line overrides
and then passed explicitly to every pipeline phase. There is no process-wide config object.

Example ``localnet.yaml``:

.. code-block:: yaml

    l1-chain-id: 900
    l1-el-url: http://localhost:8545
    l1-cl-url: http://localhost:5052
    compose-network-name: localnet
    coordinator-private-key: "0x..."
    wallet:
      private-key: "0x..."
      address: "0x..."
    repositories:
      op-geth:
        url: https://github.com/example/op-geth.git
        branch: main
      publisher:
        local-path: ~/code/publisher
      compose-contracts:
        url: https://github.com/example/compose-contracts.git
        branch: main
    chain-configs:
      rollup-a:
        id: 77777
        rpc-port: 18545
      rollup-b:
        id: 88888
        rpc-port: 28545
    dispute:
      network-name: localnet
      verifier-address: "0x..."
      ...
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

from eth_localnet.errors import ConfigurationError

logger = logging.getLogger(__name__)

#: Funding given to the operator and sequencer accounts in every rollup genesis, in wei
DEFAULT_GENESIS_BALANCE_WEI = "100000000000000000000000"

#: How many times we poll a rollup RPC before giving up
DEFAULT_RPC_WAIT_ATTEMPTS = 120

#: Seconds between RPC polls
DEFAULT_RPC_WAIT_INTERVAL = 1.0

REPOSITORY_OP_GETH = "op-geth"
REPOSITORY_PUBLISHER = "publisher"
REPOSITORY_COMPOSE_CONTRACTS = "compose-contracts"

#: Repositories the pipeline cannot run without
REQUIRED_REPOSITORIES = (REPOSITORY_OP_GETH, REPOSITORY_PUBLISHER, REPOSITORY_COMPOSE_CONTRACTS)

IMAGE_OP_DEPLOYER = "op-deployer"
IMAGE_OP_NODE = "op-node"
IMAGE_OP_PROPOSER = "op-proposer"
IMAGE_OP_BATCHER = "op-batcher"

#: Image name -> default tag
DEFAULT_IMAGE_TAGS = {
    IMAGE_OP_DEPLOYER: "v0.4.5",
    IMAGE_OP_NODE: "v1.16.2",
    IMAGE_OP_PROPOSER: "v1.10.0",
    IMAGE_OP_BATCHER: "v1.16.2",
}

CHAIN_ROLLUP_A = "rollup-a"
CHAIN_ROLLUP_B = "rollup-b"

#: Chain name -> (chain id, RPC port)
DEFAULT_CHAINS = {
    CHAIN_ROLLUP_A: (77777, 18545),
    CHAIN_ROLLUP_B: (88888, 28545),
}

DEPLOYMENT_TARGETS = ("live", "calldata")


@dataclass
class Wallet:
    """A funded account, given as a private key and its address."""

    private_key: str = ""

    address: str = ""


@dataclass
class Repository:
    """Source repository of a locally built service.

    Either a remote ``url`` + ``branch`` that gets cloned,
    or a ``local_path`` of an existing checkout used as is.
    """

    name: str

    url: str = ""

    branch: str = ""

    local_path: str = ""

    @property
    def is_remote(self) -> bool:
        return bool(self.url)


@dataclass
class ChainConfig:
    """One managed rollup chain."""

    #: ``rollup-a`` or ``rollup-b``
    name: str

    #: EIP-155 chain id
    id: int = 0

    #: Host port where the execution client JSON-RPC is published
    rpc_port: int = 0

    #: Optional separate batcher/proposer account on the settlement chain.
    #: Defaults to the operator wallet.
    l1_sender: Wallet = field(default_factory=Wallet)

    @property
    def suffix(self) -> str:
        """Service name suffix used in compose, ``a`` for ``rollup-a``."""
        if self.name.startswith("rollup-"):
            return self.name[len("rollup-"):]
        return self.name

    @property
    def rpc_url(self) -> str:
        return f"http://localhost:{self.rpc_port}"


@dataclass
class DisputeConfig:
    """Inputs for the dispute game contract deployment on the settlement chain."""

    network_name: str = ""

    explorer_url: str = ""

    explorer_api_url: str = ""

    verifier_address: str = ""

    owner_address: str = ""

    proposer_address: str = ""

    aggregation_vkey: str = ""

    guardian_address: str = ""

    proof_maturity_delay_seconds: int = 604800

    dispute_game_finality_delay_seconds: int = 302400

    #: Wei, as a decimal string
    dispute_game_init_bond: str = "80000000000000000"


@dataclass
class LocalnetConfig:
    """Everything a deployment needs."""

    #: Project root. Generated files go to ``<root_dir>/.localnet``.
    root_dir: Path

    l1_chain_id: int = 0

    #: Settlement chain execution layer JSON-RPC
    l1_el_url: str = ""

    #: Settlement chain consensus layer API
    l1_cl_url: str = ""

    compose_network_name: str = ""

    #: Operator wallet. Deploys settlement contracts and owns all roles.
    wallet: Wallet = field(default_factory=Wallet)

    #: Also used as the rollup sequencer key
    coordinator_private_key: str = ""

    repositories: dict[str, Repository] = field(default_factory=dict)

    chains: dict[str, ChainConfig] = field(default_factory=dict)

    #: Image name -> tag
    images: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_IMAGE_TAGS))

    #: ``live`` or ``calldata``
    deployment_target: str = "live"

    genesis_balance_wei: str = DEFAULT_GENESIS_BALANCE_WEI

    dispute: DisputeConfig = field(default_factory=DisputeConfig)

    #: Compose file describing the rollup services
    compose_file: Optional[Path] = None

    #: JSON file with ``{name: {abi, bytecode}}`` entries for the helper contracts
    compiled_contracts_path: Optional[Path] = None

    rpc_wait_attempts: int = DEFAULT_RPC_WAIT_ATTEMPTS

    rpc_wait_interval: float = DEFAULT_RPC_WAIT_INTERVAL

    def __post_init__(self):
        self.root_dir = Path(self.root_dir)
        if self.compose_file is None:
            self.compose_file = self.root_dir / "docker-compose.yml"
        if self.compiled_contracts_path is None:
            self.compiled_contracts_path = self.root_dir / "contracts" / "compiled" / "contracts.json"

    @property
    def localnet_dir(self) -> Path:
        return self.root_dir / ".localnet"

    def sorted_chains(self) -> list[ChainConfig]:
        """Managed chains ordered by name, so generated files and logs are stable."""
        return [self.chains[name] for name in sorted(self.chains)]

    def get_image_tag(self, image: str) -> str:
        return self.images[image]

    def resolve_repository_path(self, name: str) -> Path:
        """Where the checkout of a repository lives.

        Cloned repositories go under ``.localnet/services/<name>``.
        A local path is expanded and resolved against the project root.
        """
        repo = self.repositories[name]
        if repo.is_remote:
            return self.localnet_dir / "services" / name
        path = Path(os.path.expanduser(repo.local_path))
        if not path.is_absolute():
            path = (self.root_dir / path).resolve()
        return path

    def validate(self):
        """Check required values.

        :raise ConfigurationError:
            Listing every problem found
        """
        problems = []

        if not self.l1_chain_id:
            problems.append("l1-chain-id is required")
        if not self.l1_el_url:
            problems.append("l1-el-url is required")
        if not self.l1_cl_url:
            problems.append("l1-cl-url is required")
        if not self.coordinator_private_key:
            problems.append("coordinator-private-key is required")
        if not self.wallet.private_key:
            problems.append("wallet.private-key is required")
        if not self.wallet.address:
            problems.append("wallet.address is required")
        if not self.compose_network_name:
            problems.append("compose-network-name is required")

        for name in REQUIRED_REPOSITORIES:
            repo = self.repositories.get(name)
            if repo is None:
                problems.append(f"repositories.{name} is required")
                continue
            has_local = bool(repo.local_path)
            has_remote = bool(repo.url and repo.branch)
            if not has_local and not has_remote:
                problems.append(f"repositories.{name} must set either local-path or url+branch")
            if has_local and repo.url:
                problems.append(f"repositories.{name} cannot set both local-path and url+branch (choose one)")

        for name in DEFAULT_IMAGE_TAGS:
            if not self.images.get(name):
                problems.append(f"images.{name}.tag is required")

        for name in DEFAULT_CHAINS:
            chain = self.chains.get(name)
            if chain is None:
                problems.append(f"chain-configs.{name} is required")
                continue
            if not chain.id:
                problems.append(f"chain-configs.{name}.id is required")
            if not chain.rpc_port:
                problems.append(f"chain-configs.{name}.rpc-port is required")
            if chain.l1_sender.private_key and not chain.l1_sender.address:
                problems.append(f"chain-configs.{name}.l1-sender.address is required when private-key is set")
            if chain.l1_sender.address and not chain.l1_sender.private_key:
                problems.append(f"chain-configs.{name}.l1-sender.private-key is required when address is set")

        for name in sorted(set(self.chains) - set(DEFAULT_CHAINS)):
            problems.append(f"chain-configs.{name} is not a known chain, expected one of {sorted(DEFAULT_CHAINS)}")

        chain_ids = [c.id for c in self.chains.values() if c.id]
        if len(set(chain_ids)) != len(chain_ids):
            problems.append("chain-configs ids must be unique")

        if self.deployment_target not in DEPLOYMENT_TARGETS:
            problems.append("deployment-target must be either 'live' or 'calldata'")

        if not str(self.genesis_balance_wei).isdigit():
            problems.append("genesis-balance-wei must be a decimal integer")

        if self.rpc_wait_attempts <= 0:
            problems.append("rpc-wait-attempts must be positive")

        dispute = self.dispute
        for attr in ("network_name", "verifier_address", "owner_address", "proposer_address", "aggregation_vkey", "guardian_address", "dispute_game_init_bond"):
            if not getattr(dispute, attr):
                problems.append(f"dispute.{attr.replace('_', '-')} is required")
        if dispute.proof_maturity_delay_seconds <= 0:
            problems.append("dispute.proof-maturity-delay-seconds must be positive")
        if dispute.dispute_game_finality_delay_seconds <= 0:
            problems.append("dispute.dispute-game-finality-delay-seconds must be positive")

        if problems:
            raise ConfigurationError(problems)

    @classmethod
    def from_dict(cls, data: dict, root_dir: Path) -> "LocalnetConfig":
        """Build the config from kebab-case keys as found in the YAML file.

        Missing chains and images get their defaults.
        """
        # Accept the whole file or its l2 section
        data = data.get("l2", data)

        wallet = _read_wallet(data.get("wallet"))

        repositories = {}
        for name, repo in (data.get("repositories") or {}).items():
            repo = repo or {}
            repositories[name] = Repository(
                name=name,
                url=repo.get("url", ""),
                branch=repo.get("branch", ""),
                local_path=repo.get("local-path", ""),
            )

        chains = {}
        raw_chains = dict(data.get("chain-configs") or {})
        for name, (default_id, default_port) in DEFAULT_CHAINS.items():
            raw_chains.setdefault(name, {"id": default_id, "rpc-port": default_port})
        for name, chain in raw_chains.items():
            chain = chain or {}
            chains[name] = ChainConfig(
                name=name,
                id=int(chain.get("id", 0)),
                rpc_port=int(chain.get("rpc-port", 0)),
                l1_sender=_read_wallet(chain.get("l1-sender")),
            )

        images = dict(DEFAULT_IMAGE_TAGS)
        for name, image in (data.get("images") or {}).items():
            images[name] = image["tag"] if isinstance(image, dict) else str(image)

        raw_dispute = data.get("dispute") or {}
        dispute = DisputeConfig()
        for key, value in raw_dispute.items():
            attr = key.replace("-", "_")
            if not hasattr(dispute, attr):
                logger.warning("Ignoring unknown dispute setting %s", key)
                continue
            setattr(dispute, attr, value)
        dispute.dispute_game_init_bond = str(dispute.dispute_game_init_bond)

        def _path(key) -> Optional[Path]:
            value = data.get(key)
            if not value:
                return None
            path = Path(os.path.expanduser(value))
            return path if path.is_absolute() else root_dir / path

        return cls(
            root_dir=root_dir,
            l1_chain_id=int(data.get("l1-chain-id", 0)),
            l1_el_url=data.get("l1-el-url", ""),
            l1_cl_url=data.get("l1-cl-url", ""),
            compose_network_name=data.get("compose-network-name", ""),
            wallet=wallet,
            coordinator_private_key=data.get("coordinator-private-key", ""),
            repositories=repositories,
            chains=chains,
            images=images,
            deployment_target=data.get("deployment-target", "live"),
            genesis_balance_wei=str(data.get("genesis-balance-wei", DEFAULT_GENESIS_BALANCE_WEI)),
            dispute=dispute,
            compose_file=_path("compose-file"),
            compiled_contracts_path=_path("compiled-contracts-path"),
            rpc_wait_attempts=int(data.get("rpc-wait-attempts", DEFAULT_RPC_WAIT_ATTEMPTS)),
            rpc_wait_interval=float(data.get("rpc-wait-interval", DEFAULT_RPC_WAIT_INTERVAL)),
        )


def _read_wallet(raw: Optional[dict]) -> Wallet:
    raw = raw or {}
    return Wallet(private_key=raw.get("private-key", ""), address=raw.get("address", ""))


def load_config(path: Path, root_dir: Optional[Path] = None) -> LocalnetConfig:
    """Read a YAML configuration file.

    :param root_dir:
        Project root. Defaults to the directory of the config file.

    :raise ConfigurationError:
        The file is missing or is not a YAML mapping
    """
    if root_dir is None:
        root_dir = path.resolve().parent

    try:
        with open(path, "rt", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError as e:
        raise ConfigurationError([f"config file not found: {path}"]) from e
    except yaml.YAMLError as e:
        raise ConfigurationError([f"config file {path} is not valid YAML: {e}"]) from e

    if not isinstance(data, dict):
        raise ConfigurationError([f"config file {path} must contain a mapping"])

    logger.info("Loaded configuration from %s", path)
    return LocalnetConfig.from_dict(data, root_dir)
