"""Deploy the chain-local helper contracts.

The contracts are deployed in a fixed order where later constructors take the
addresses of earlier ones:

1. ``Mailbox(operator)``
2. ``PingPong(Mailbox)``
3. ``Bridge(Mailbox)``
4. ``BridgeableToken(Bridge)``
5. ``StagedMailbox(operator)``

Every chain sees the same operator account and the same nonce sequence, so
every contract must land on the same address on every chain. Cross-chain
messaging relies on this. We check it after all chains are done and before
any ``contracts.json`` is written.

Contracts are not compiled here. We load ABI and bytecode from a JSON bundle
of ``{name: {abi, bytecode}}`` entries.
"""

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

import requests
from eth_typing import HexAddress
from hexbytes import HexBytes
from web3 import Web3
from web3.exceptions import Web3Exception

from eth_localnet.artifacts import ArtifactStore, ChainPaths
from eth_localnet.chainconfig.placeholders import build_contracts_document
from eth_localnet.errors import AddressMismatch, ArtifactError, ExternalToolError, ProcessCancelled
from eth_localnet.hotwallet import HotWallet

logger = logging.getLogger(__name__)

MAILBOX = "Mailbox"
PING_PONG = "PingPong"
BRIDGE = "Bridge"
BRIDGEABLE_TOKEN = "BridgeableToken"
STAGED_MAILBOX = "StagedMailbox"

#: Deployment order. Constructor arguments refer back to earlier entries.
HELPER_CONTRACTS = (MAILBOX, PING_PONG, BRIDGE, BRIDGEABLE_TOKEN, STAGED_MAILBOX)

#: Gas limit of every deployment transaction.
#: Fixed, so gas estimation cannot make chains diverge.
DEPLOYMENT_GAS_LIMIT = 10_000_000

#: How long we wait for a deployment receipt, seconds
RECEIPT_TIMEOUT = 60


@dataclass(frozen=True)
class CompiledContract:
    name: str

    #: Contract ABI as a list of entries
    abi: list

    #: Creation bytecode, 0x prefixed
    bytecode: str


class ContractDeploymentFailed(ExternalToolError):
    """Did not get successful tx receipt from a deployment."""

    def __init__(self, tx_hash: HexBytes, msg: str):
        super().__init__(msg)
        self.tx_hash = tx_hash


def load_compiled_contracts(store: ArtifactStore, path: Path) -> dict[str, CompiledContract]:
    """Read the helper contracts from a compiled bundle.

    Entries that are not helper contracts are ignored.

    :raise ArtifactError:
        The bundle is missing, broken or lacks a helper contract
    """

    def _parse(data: dict) -> dict[str, CompiledContract]:
        result = {}
        for name in HELPER_CONTRACTS:
            entry = data[name]
            bytecode = entry["bytecode"]
            if isinstance(bytecode, dict):
                # Foundry artifact layout
                bytecode = bytecode["object"]
            if not bytecode.startswith("0x"):
                bytecode = "0x" + bytecode
            result[name] = CompiledContract(name=name, abi=entry["abi"], bytecode=bytecode)
        return result

    contracts = store.read_json_as(path, _parse)
    logger.info("Loaded %d compiled contracts from %s", len(contracts), path)
    return contracts


def get_constructor_args(name: str, operator: HexAddress, deployed: dict[str, HexAddress]) -> list:
    """Constructor arguments of a helper contract given what is already deployed."""
    if name in (MAILBOX, STAGED_MAILBOX):
        return [operator]
    if name in (PING_PONG, BRIDGE):
        return [deployed[MAILBOX]]
    if name == BRIDGEABLE_TOKEN:
        return [deployed[BRIDGE]]
    raise KeyError(f"Unknown helper contract {name}")


def deploy_contract(web3: Web3, wallet: HotWallet, contract: CompiledContract, *constructor_args) -> HexAddress:
    """Deploy a contract, signing with the wallet nonce counter.

    :raise ContractDeploymentFailed:
        The transaction reverted

    :return:
        Address of the new contract
    """
    Contract = web3.eth.contract(abi=contract.abi, bytecode=contract.bytecode)
    tx_params = {
        "from": wallet.address,
        "chainId": web3.eth.chain_id,
        "gas": DEPLOYMENT_GAS_LIMIT,
        "gasPrice": web3.eth.gas_price,
    }
    tx_data = Contract.constructor(*constructor_args).build_transaction(tx_params)
    signed = wallet.sign_transaction_with_new_nonce(tx_data)
    tx_hash = web3.eth.send_raw_transaction(signed.raw_transaction)
    logger.info("Deploying %s, tx %s, nonce %d", contract.name, tx_hash.hex(), signed.nonce)

    receipt = web3.eth.wait_for_transaction_receipt(tx_hash, timeout=RECEIPT_TIMEOUT)
    if receipt["status"] != 1:
        raise ContractDeploymentFailed(tx_hash, f"Contract {contract.name} deployment failed with args {constructor_args}, tx hash is {tx_hash.hex()}")

    return receipt["contractAddress"]


def verify_address_parity(deployments: dict[str, dict[str, HexAddress]]):
    """Check every contract has the same address on every chain.

    :param deployments:
        Chain name -> contract name -> address

    :raise AddressMismatch:
        Listing each contract whose address differs, or is missing on some chain
    """
    names = set()
    for per_chain in deployments.values():
        names.update(per_chain)

    mismatches = {}
    for name in sorted(names):
        addresses = {chain: per_chain.get(name, "<missing>") for chain, per_chain in deployments.items()}
        if len({a.lower() for a in addresses.values()}) > 1:
            mismatches[name] = addresses

    if mismatches:
        raise AddressMismatch(mismatches)


@dataclass
class ChainTarget:
    """Where to deploy the helper contracts."""

    name: str

    chain_id: int

    web3: Web3

    paths: ChainPaths


class HelperContractDeployer:
    """Deploy the helper contracts to all chains and record their addresses.

    :param wallet_factory:
        Creates a fresh :py:class:`HotWallet` per chain, as nonces are per chain

    :param cancel:
        Checked before every deployment transaction
    """

    def __init__(
        self,
        contracts: dict[str, CompiledContract],
        wallet_factory: Callable[[], HotWallet],
        store: ArtifactStore,
        cancel: Optional[threading.Event] = None,
    ):
        missing = [n for n in HELPER_CONTRACTS if n not in contracts]
        if missing:
            raise ArtifactError("compiled contracts", f"Missing helper contracts {missing}")
        self.contracts = contracts
        self.wallet_factory = wallet_factory
        self.store = store
        self.cancel = cancel

    def deploy_to_chain(self, target: ChainTarget) -> dict[str, HexAddress]:
        wallet = self.wallet_factory()
        wallet.sync_nonce(target.web3)

        deployed = {}
        for name in HELPER_CONTRACTS:
            if self.cancel is not None and self.cancel.is_set():
                raise ProcessCancelled(f"Helper contract deployment to {target.name} cancelled before {name}")
            args = get_constructor_args(name, wallet.address, deployed)
            try:
                deployed[name] = deploy_contract(target.web3, wallet, self.contracts[name], *args)
            except (Web3Exception, ValueError, requests.exceptions.RequestException) as e:
                raise ExternalToolError(f"Failed to deploy {name} to {target.name}: {e}") from e
            logger.info("Deployed %s on %s at %s", name, target.name, deployed[name])
        return deployed

    def deploy_all(self, targets: list[ChainTarget]) -> dict[str, dict[str, HexAddress]]:
        """Deploy to every chain, check parity, then write ``contracts.json`` files.

        :return:
            Chain name -> contract name -> address

        :raise AddressMismatch:
            Addresses differ between chains. No file is written in this case.
        """
        deployments = {}
        for target in targets:
            logger.info("Deploying helper contracts to %s", target.name)
            deployments[target.name] = self.deploy_to_chain(target)

        verify_address_parity(deployments)

        for target in targets:
            self.store.write_json(target.paths.contracts, build_contracts_document(target.chain_id, deployments[target.name]))
            logger.info("Wrote %s", target.paths.contracts)

        return deployments
