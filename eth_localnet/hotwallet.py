"""Sign transactions locally with manual nonce management.

The helper contract deployment depends on every chain seeing the very same
nonce sequence from the operator account, as contract addresses are derived from
``(deployer, nonce)``. We therefore read the nonce once and count it ourselves.
"""

import logging
from typing import NamedTuple, Optional

from eth_account import Account
from eth_account.signers.local import LocalAccount
from eth_typing import HexAddress
from hexbytes import HexBytes
from web3 import Web3

logger = logging.getLogger(__name__)


class SignedTransactionWithNonce(NamedTuple):
    """A signed transaction and the nonce it used."""

    raw_transaction: HexBytes

    hash: HexBytes

    #: What was the source nonce for this transaction
    nonce: int

    #: Whose private key signed this
    address: HexAddress

    def __repr__(self):
        return f"<SignedTransactionWithNonce hash:{self.hash.hex()} nonce:{self.nonce}>"


class HotWallet:
    """Private key account with a local nonce counter.

    .. code-block:: python

        wallet = HotWallet.from_private_key("0x...")
        wallet.sync_nonce(web3)
        signed = wallet.sign_transaction_with_new_nonce(tx)
        tx_hash = web3.eth.send_raw_transaction(signed.raw_transaction)

    Not thread safe. Use one instance per chain.
    """

    def __init__(self, account: LocalAccount):
        self.account = account
        self.current_nonce: Optional[int] = None

    def __repr__(self):
        return f"<Hot wallet {self.account.address}>"

    @property
    def address(self) -> HexAddress:
        return self.account.address

    def sync_nonce(self, web3: Web3):
        """Initialise the current nonce from the on-chain data."""
        self.current_nonce = web3.eth.get_transaction_count(self.account.address)
        logger.info("Synced nonce for %s to %d", self.account.address, self.current_nonce)

    def allocate_nonce(self) -> int:
        """Get the next free nonce and increase the counter."""
        assert self.current_nonce is not None, f"Nonce is not yet synced from the blockchain: {self}"
        nonce = self.current_nonce
        self.current_nonce += 1
        return nonce

    def sign_transaction_with_new_nonce(self, tx: dict) -> SignedTransactionWithNonce:
        """Signs a transaction and allocates a nonce for it.

        :param tx:
            Ethereum transaction data as a dict.
            This is modified in-place to include nonce.
        """
        assert type(tx) == dict
        assert "nonce" not in tx
        tx["nonce"] = self.allocate_nonce()
        signed = self.account.sign_transaction(tx)
        return SignedTransactionWithNonce(
            raw_transaction=HexBytes(signed.raw_transaction),
            hash=HexBytes(signed.hash),
            nonce=tx["nonce"],
            address=self.address,
        )

    @staticmethod
    def from_private_key(key: str) -> "HotWallet":
        """Create a hot wallet from a 0x prefixed hex private key."""
        assert type(key) == str, f"Expected private key as string, got {type(key)}"
        if not key.startswith("0x"):
            key = "0x" + key
        return HotWallet(Account.from_key(key))
