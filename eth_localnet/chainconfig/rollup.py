"""Rollup node configuration, ``rollup.json``."""

import logging
import shutil
import tempfile
from pathlib import Path

from eth_localnet.artifacts import ArtifactStore, ChainPaths
from eth_localnet.settlement.deployer import OpDeployer
from eth_localnet.settlement.state import StartBlock

logger = logging.getLogger(__name__)


def patch_rollup_config(rollup: dict, genesis_hash: str, start_block: StartBlock) -> dict:
    """Anchor the rollup to its settlement start block and computed genesis.

    Modifies ``rollup`` in place.

    :raise ValueError:
        The start block number is not a number
    """
    genesis = rollup.get("genesis")
    if not isinstance(genesis, dict):
        genesis = rollup["genesis"] = {}

    genesis["l1"] = {"hash": start_block.hash, "number": start_block.number_int}
    genesis["l2"] = {"hash": genesis_hash, "number": 0}

    # Matches the forced fork time in genesis.json
    rollup["isthmus_time"] = 0
    return rollup


class RollupConfigGenerator:
    """Export and patch the rollup configuration of one chain."""

    def __init__(self, deployer: OpDeployer, store: ArtifactStore, tmp_dir: Path):
        self.deployer = deployer
        self.store = store
        self.tmp_dir = Path(tmp_dir)

    def generate(self, chain_id: int, paths: ChainPaths, genesis_hash: str, start_block: StartBlock):
        self.tmp_dir.mkdir(parents=True, exist_ok=True)
        scratch = Path(tempfile.mkdtemp(prefix="rollup-", dir=self.tmp_dir))
        try:
            exported = scratch / "rollup.json"
            logger.info("Inspecting rollup config of chain %d", chain_id)
            self.deployer.inspect_rollup(chain_id, exported)
            rollup = self.store.read_json_as(exported, lambda data: patch_rollup_config(data, genesis_hash, start_block))
        finally:
            shutil.rmtree(scratch, ignore_errors=True)

        self.store.write_json(paths.rollup, rollup)
        logger.info("Wrote %s", paths.rollup)
