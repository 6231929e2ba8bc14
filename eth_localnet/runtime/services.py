"""Rollup service lifecycle over docker compose.

Services come up in two waves. The first wave is enough to serve RPC
so the helper contracts can be deployed. The execution clients are then
recreated with the mailbox addresses and the second wave is started.
"""

import logging

from eth_localnet.docker import ComposeProject

logger = logging.getLogger(__name__)

#: Built from source
LOCALLY_BUILT_SERVICES = ["publisher", "op-geth-a", "op-geth-b"]

#: Enough to accept RPC traffic
FIRST_WAVE_SERVICES = ["publisher", "op-geth-a", "op-geth-b"]

#: Recreated once the mailbox addresses are known
EXECUTION_CLIENT_SERVICES = ["op-geth-a", "op-geth-b"]

#: Rollup node, batcher and proposer of both chains
SECOND_WAVE_SERVICES = [
    "op-node-a",
    "op-node-b",
    "op-batcher-a",
    "op-batcher-b",
    "op-proposer-a",
    "op-proposer-b",
]


class ServiceManager:
    def __init__(self, compose: ComposeProject):
        self.compose = compose

    def build(self, env: dict[str, str], services: list[str] = None):
        services = services or LOCALLY_BUILT_SERVICES
        logger.info("Building %s", ", ".join(services))
        self.compose.build(env, services)

    def start_first_wave(self, env: dict[str, str]):
        logger.info("Starting %s", ", ".join(FIRST_WAVE_SERVICES))
        self.compose.up(env, FIRST_WAVE_SERVICES)

    def restart_execution_clients(self, env: dict[str, str]):
        logger.info("Recreating %s", ", ".join(EXECUTION_CLIENT_SERVICES))
        self.compose.recreate(env, EXECUTION_CLIENT_SERVICES)

    def start_second_wave(self, env: dict[str, str]):
        logger.info("Starting %s", ", ".join(SECOND_WAVE_SERVICES))
        self.compose.up(env, SECOND_WAVE_SERVICES)

    def redeploy(self, env: dict[str, str], services: list[str]):
        """Rebuild and recreate services after a source change."""
        built = [s for s in services if s in LOCALLY_BUILT_SERVICES]
        if built:
            self.build(env, built)
        logger.info("Recreating %s", ", ".join(services))
        self.compose.recreate(env, services)
