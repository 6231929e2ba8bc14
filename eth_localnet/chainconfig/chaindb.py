"""Canonical genesis hash by replaying genesis in the execution client.

Hashing the genesis document ourselves would need a faithful reimplementation
of the client's state trie and header rules. Instead we let the client build
its chain database from the document in a throwaway container, then read back
the canonical hash of block 0.

The on-disk storage engine differs between client versions, so reading is done
through an ordered list of :py:class:`ChainDatabaseReader` candidates. The first
one that succeeds wins. When all fail the errors of every candidate are reported.
"""

import json
import logging
import re
import shutil
import tempfile
import threading
from pathlib import Path
from typing import Optional, Protocol

from eth_localnet.docker import ComposeProject, DockerClient
from eth_localnet.errors import ExternalToolError, InvariantViolation
from eth_localnet.process import ContainerRunOptions, ProcessRunner, current_user
from eth_localnet.utils import get_host_path

logger = logging.getLogger(__name__)

#: Execution client image built from the fetched source
EXECUTION_CLIENT_IMAGE = "local/op-geth:dev"

#: Compose service whose build produces :py:data:`EXECUTION_CLIENT_IMAGE`
EXECUTION_CLIENT_BUILD_SERVICE = "op-geth-a"

#: Storage engines tried, in order
STORAGE_ENGINES = ("pebble", "leveldb")

_HASH_RE = re.compile(r"0x([0-9a-fA-F]{64})\b")


def canonical_hash_key(number: int) -> bytes:
    """Database key of the canonical block hash at a height.

    ``"h" + uint64 big endian number + "n"``
    """
    return b"h" + number.to_bytes(8, "big") + b"n"


class GenesisHashError(ExternalToolError):
    """None of the database readers could read the genesis hash."""

    def __init__(self, failures: list[tuple[str, Exception]]):
        self.failures = failures
        details = "\n".join(f"  {name}: {error}" for name, error in failures)
        super().__init__(f"Could not read the genesis hash with any storage engine:\n{details}")


class ChainDatabaseReader(Protocol):
    """Reads a canonical block hash from an initialised data directory."""

    name: str

    def read_canonical_hash(self, datadir: Path, number: int) -> str:
        ...


class ExecutionClientDatabaseReader:
    """Read a key with the client's own ``db get`` command, for one storage engine."""

    def __init__(self, runner: ProcessRunner, image: str, engine: str, env: Optional[dict[str, str]] = None, cancel: Optional[threading.Event] = None):
        self.runner = runner
        self.image = image
        self.engine = engine
        self.env = env or {}
        self.cancel = cancel
        self.name = f"{engine} via {image}"

    def read_canonical_hash(self, datadir: Path, number: int) -> str:
        key = "0x" + canonical_hash_key(number).hex()
        output = self.runner.run_container(
            ContainerRunOptions(
                image=self.image,
                command=["db", "get", "--datadir=/datadir", f"--db.engine={self.engine}", key],
                env=self.env,
                volumes={get_host_path(datadir): "/datadir"},
                user=current_user(),
                auto_remove=True,
            ),
            cancel=self.cancel,
        )
        return parse_db_get_output(output, key)


def parse_db_get_output(output: str, key: str) -> str:
    """Pick the 32 byte value out of ``db get`` output.

    The value is printed after the key, e.g. ``key 0x68...6e: 0xd4e5...``.

    :raise ValueError:
        No hash found
    """
    tail = output
    if key in output:
        tail = output[output.rindex(key) + len(key):]
    match = _HASH_RE.search(tail)
    if not match:
        raise ValueError(f"No 32 byte value in db get output: {output.strip()[-300:]}")
    return "0x" + match.group(1).lower()


def read_canonical_hash(readers: list[ChainDatabaseReader], datadir: Path, number: int = 0) -> str:
    """Try ``readers`` in order and return the first hash read.

    :raise GenesisHashError:
        Every reader failed

    :raise InvariantViolation:
        The database answered with an all-zero hash
    """
    failures = []
    for reader in readers:
        try:
            block_hash = reader.read_canonical_hash(datadir, number)
        except (ExternalToolError, ValueError, OSError) as e:
            logger.info("Reading canonical hash with %s failed: %s", reader.name, e)
            failures.append((reader.name, e))
            continue

        if int(block_hash, 16) == 0:
            raise InvariantViolation(f"Genesis hash not found in the chain database, {reader.name} returned zero hash")

        logger.info("Read canonical hash %s with %s", block_hash, reader.name)
        return block_hash

    raise GenesisHashError(failures)


class GenesisHashComputer:
    """Initialise a chain database from genesis in a container and read its block 0 hash.

    :param tmp_dir:
        Scratch space, ``.localnet/.tmp``. Needs to be under the project
        so the host path translation works when we run inside a container.

    :param compose:
        Used to build the execution client image when it is missing

    :param build_env:
        Environment for the compose build
    """

    def __init__(
        self,
        runner: ProcessRunner,
        docker: DockerClient,
        compose: ComposeProject,
        tmp_dir: Path,
        coordinator_private_key: str,
        build_env: dict[str, str],
        image: str = EXECUTION_CLIENT_IMAGE,
        readers: Optional[list[ChainDatabaseReader]] = None,
        cancel: Optional[threading.Event] = None,
    ):
        self.runner = runner
        self.docker = docker
        self.compose = compose
        self.tmp_dir = Path(tmp_dir)
        self.image = image
        self.cancel = cancel
        self.client_env = {"GETH_COORDINATOR_KEY": coordinator_private_key}
        self.build_env = build_env
        if readers is None:
            readers = [ExecutionClientDatabaseReader(runner, image, engine, env=self.client_env, cancel=cancel) for engine in STORAGE_ENGINES]
        self.readers = readers

    def ensure_image(self):
        if self.docker.image_exists(self.image):
            logger.info("Execution client image %s already exists", self.image)
            return
        logger.info("Execution client image %s not found, building it", self.image)
        self.compose.build(self.build_env, [EXECUTION_CLIENT_BUILD_SERVICE])

    def compute(self, chain_id: int, genesis: dict) -> str:
        self.tmp_dir.mkdir(parents=True, exist_ok=True)
        genesis_dir = Path(tempfile.mkdtemp(prefix="genesis-", dir=self.tmp_dir))
        data_dir = Path(tempfile.mkdtemp(prefix="geth-init-", dir=self.tmp_dir))
        try:
            with open(genesis_dir / "genesis.json", "wt", encoding="utf-8") as f:
                json.dump(genesis, f)

            self.ensure_image()

            logger.info("Running execution client init for chain %d", chain_id)
            self.runner.run_container(
                ContainerRunOptions(
                    image=self.image,
                    command=[
                        f"--networkid={chain_id}",
                        "init",
                        "--state.scheme=hash",
                        "--datadir=/datadir",
                        "/genesis/genesis.json",
                    ],
                    env=self.client_env,
                    volumes={
                        get_host_path(genesis_dir): "/genesis",
                        get_host_path(data_dir): "/datadir",
                    },
                    user=current_user(),
                    auto_remove=True,
                ),
                cancel=self.cancel,
            )

            if not (data_dir / "geth" / "chaindata").exists():
                raise ExternalToolError(f"Execution client init did not create a chain database in {data_dir}")

            return read_canonical_hash(self.readers, data_dir, 0)
        finally:
            shutil.rmtree(genesis_dir, ignore_errors=True)
            shutil.rmtree(data_dir, ignore_errors=True)
