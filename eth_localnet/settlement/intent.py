"""Render the settlement deployer ``intent.toml``.

The intent is regenerated on every run from the configuration.
All roles are held by the operator wallet, except the batcher and proposer
which can be a separate per-chain settlement sender account.
"""

import logging
from pathlib import Path

from eth_localnet.artifacts import ArtifactStore
from eth_localnet.config import ChainConfig
from eth_localnet.utils import chain_id_to_hex

logger = logging.getLogger(__name__)

#: Settlement contract release the deployer installs
CONTRACTS_LOCATOR = "tag://op-contracts/v3.0.0"

_HEADER = """configType = "custom"
l1ChainID = {l1_chain_id}
fundDevAccounts = false
l1ContractsLocator = "{locator}"
l2ContractsLocator = "{locator}"

[superchainRoles]
  proxyAdminOwner = "{wallet}"
  protocolVersionsOwner = "{wallet}"
  guardian = "{wallet}"
"""

_CHAIN = """
[[chains]]
  id = "{chain_id}"
  baseFeeVaultRecipient = "{wallet}"
  l1FeeVaultRecipient = "{wallet}"
  sequencerFeeVaultRecipient = "{sequencer}"
  eip1559DenominatorCanyon = 250
  eip1559Denominator = 50
  eip1559Elasticity = 6
  gasLimit = 60000000
  operatorFeeScalar = 0
  operatorFeeConstant = 0
  minBaseFee = 0
  [chains.roles]
    l1ProxyAdminOwner = "{wallet}"
    l2ProxyAdminOwner = "{wallet}"
    systemConfigOwner = "{wallet}"
    unsafeBlockSigner = "{wallet}"
    batcher = "{l1_sender}"
    proposer = "{l1_sender}"
    challenger = "{wallet}"
"""


def render_intent(l1_chain_id: int, wallet_address: str, sequencer_address: str, chains: list[ChainConfig]) -> str:
    """Produce the intent TOML text.

    :param chains:
        Rollups in the order they should appear
    """
    wallet = wallet_address.lower()
    sequencer = sequencer_address.lower()
    text = _HEADER.format(l1_chain_id=l1_chain_id, locator=CONTRACTS_LOCATOR, wallet=wallet)
    for chain in chains:
        l1_sender = (chain.l1_sender.address or wallet_address).lower()
        text += _CHAIN.format(
            chain_id=chain_id_to_hex(chain.id),
            wallet=wallet,
            sequencer=sequencer,
            l1_sender=l1_sender,
        )
    return text


class IntentWriter:
    """Write ``intent.toml`` into the deployer state directory."""

    def __init__(self, store: ArtifactStore, intent_path: Path):
        self.store = store
        self.intent_path = intent_path

    def write(self, l1_chain_id: int, wallet_address: str, sequencer_address: str, chains: list[ChainConfig]) -> Path:
        logger.info("Writing deployer intent %s", self.intent_path)
        self.store.write_text(self.intent_path, render_intent(l1_chain_id, wallet_address, sequencer_address, chains))
        return self.intent_path
