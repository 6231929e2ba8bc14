"""Engine API JWT secret and keystore password."""

import logging
import secrets

from eth_localnet.artifacts import ArtifactStore, ChainPaths

logger = logging.getLogger(__name__)


def generate_jwt_secret() -> str:
    """32 random bytes as 64 hex digits, no ``0x``."""
    return secrets.token_hex(32)


class SecretsGenerator:
    def __init__(self, store: ArtifactStore):
        self.store = store

    def write_jwt(self, paths: ChainPaths):
        self.store.write_text(paths.jwt, generate_jwt_secret())
        logger.info("Wrote %s", paths.jwt)

    def write_password(self, paths: ChainPaths):
        # Empty password, the file is a single newline
        self.store.write_text(paths.password, "\n")
        logger.info("Wrote %s", paths.password)
