"""Helper contract deployment and cross-chain address parity on two test chains."""

import threading
from pathlib import Path

import pytest
from web3 import EthereumTesterProvider, Web3

from eth_localnet.artifacts import ArtifactStore, ChainPaths, DeploymentLayout
from eth_localnet.config import LocalnetConfig
from eth_localnet.docker import ComposeProject
from eth_localnet.errors import AddressMismatch, ArtifactError, ProcessCancelled
from eth_localnet.hotwallet import HotWallet
from eth_localnet.output import build_output_model, write_output
from eth_localnet.runtime.contracts import (
    BRIDGE,
    HELPER_CONTRACTS,
    MAILBOX,
    ChainTarget,
    CompiledContract,
    HelperContractDeployer,
    get_constructor_args,
    load_compiled_contracts,
    verify_address_parity,
)
from eth_localnet.runtime.phase import RuntimePhase
from eth_localnet.runtime.services import EXECUTION_CLIENT_SERVICES, FIRST_WAVE_SERVICES, LOCALLY_BUILT_SERVICES, SECOND_WAVE_SERVICES

OPERATOR_PRIVATE_KEY = "0x59c6995e998f97a5a0044966f0945389dc9e86dae88c7a8412f4603b6b78690d"

#: Init code that ignores its constructor arguments and deploys a 10 byte contract returning 42
BYTECODE = "0x600a600c600039600a6000f3602a60005260206000f3"

ABI = [
    {
        "type": "constructor",
        "inputs": [{"name": "owner", "type": "address"}],
        "stateMutability": "nonpayable",
    }
]


@pytest.fixture()
def compiled() -> dict[str, CompiledContract]:
    return {name: CompiledContract(name=name, abi=ABI, bytecode=BYTECODE) for name in HELPER_CONTRACTS}


def _create_chain() -> Web3:
    """Fresh test chain with the operator funded."""
    web3 = Web3(EthereumTesterProvider())
    operator = HotWallet.from_private_key(OPERATOR_PRIVATE_KEY)
    web3.eth.send_transaction({"from": web3.eth.accounts[0], "to": operator.address, "value": 100 * 10**18})
    return web3


@pytest.fixture()
def targets(tmp_path: Path) -> list[ChainTarget]:
    return [
        ChainTarget("rollup-a", 77777, _create_chain(), ChainPaths(tmp_path / "rollup-a")),
        ChainTarget("rollup-b", 88888, _create_chain(), ChainPaths(tmp_path / "rollup-b")),
    ]


def _deployer(compiled, store) -> HelperContractDeployer:
    return HelperContractDeployer(compiled, lambda: HotWallet.from_private_key(OPERATOR_PRIVATE_KEY), store)


def test_deploy_same_addresses(compiled, targets: list[ChainTarget], store: ArtifactStore):
    """Same operator and same nonce sequence give the same addresses on both chains."""
    deployments = _deployer(compiled, store).deploy_all(targets)

    assert list(deployments["rollup-a"]) == list(HELPER_CONTRACTS)
    assert deployments["rollup-a"] == deployments["rollup-b"]
    assert len(set(deployments["rollup-a"].values())) == len(HELPER_CONTRACTS)

    for target in targets:
        document = store.read_json(target.paths.contracts)
        assert document["chainInfo"] == {"chainId": target.chain_id}
        assert document["addresses"][MAILBOX] == deployments["rollup-a"][MAILBOX]
        assert target.web3.eth.get_code(deployments[target.name][MAILBOX]) != b""


def test_deploy_nonce_drift_detected(compiled, targets: list[ChainTarget], store: ArtifactStore):
    """A stray operator transaction on one chain shifts its addresses and nothing is written."""
    chain_b = targets[1].web3
    operator = HotWallet.from_private_key(OPERATOR_PRIVATE_KEY)
    operator.sync_nonce(chain_b)
    signed = operator.sign_transaction_with_new_nonce(
        {
            "to": operator.address,
            "value": 1,
            "gas": 21_000,
            "gasPrice": chain_b.eth.gas_price,
            "chainId": chain_b.eth.chain_id,
        }
    )
    chain_b.eth.send_raw_transaction(signed.raw_transaction)

    with pytest.raises(AddressMismatch) as exc_info:
        _deployer(compiled, store).deploy_all(targets)

    assert set(exc_info.value.mismatches) == set(HELPER_CONTRACTS)
    assert set(exc_info.value.mismatches[MAILBOX]) == {"rollup-a", "rollup-b"}
    for target in targets:
        assert not target.paths.contracts.exists()


def test_verify_address_parity_missing_contract():
    with pytest.raises(AddressMismatch) as exc_info:
        verify_address_parity({"rollup-a": {MAILBOX: "0x01"}, "rollup-b": {}})
    assert exc_info.value.mismatches == {MAILBOX: {"rollup-a": "0x01", "rollup-b": "<missing>"}}


def test_verify_address_parity_ignores_case():
    verify_address_parity({"rollup-a": {MAILBOX: "0xABCD"}, "rollup-b": {MAILBOX: "0xabcd"}})


def test_constructor_args():
    deployed = {MAILBOX: "0xMailbox", BRIDGE: "0xBridge"}
    assert get_constructor_args("Mailbox", "0xOperator", {}) == ["0xOperator"]
    assert get_constructor_args("PingPong", "0xOperator", deployed) == ["0xMailbox"]
    assert get_constructor_args("BridgeableToken", "0xOperator", deployed) == ["0xBridge"]
    assert get_constructor_args("StagedMailbox", "0xOperator", deployed) == ["0xOperator"]


def test_missing_helper_contract(compiled, store: ArtifactStore):
    del compiled["StagedMailbox"]
    with pytest.raises(ArtifactError):
        _deployer(compiled, store)


def test_load_compiled_contracts(tmp_path: Path, store: ArtifactStore):
    bundle = {name: {"abi": ABI, "bytecode": {"object": BYTECODE[2:]}} for name in HELPER_CONTRACTS}
    bundle["Unrelated"] = {"abi": [], "bytecode": "0x00"}
    store.write_json(tmp_path / "contracts.json", bundle)

    contracts = load_compiled_contracts(store, tmp_path / "contracts.json")
    assert set(contracts) == set(HELPER_CONTRACTS)
    assert contracts[MAILBOX].bytecode == BYTECODE

    del bundle[BRIDGE]
    store.write_json(tmp_path / "contracts.json", bundle)
    with pytest.raises(ArtifactError):
        load_compiled_contracts(store, tmp_path / "contracts.json")


def test_output_summary(tmp_path: Path, config, compiled):
    deployments = {
        "rollup-a": {name: f"0x{i:040x}" for i, name in enumerate(HELPER_CONTRACTS)},
        "rollup-b": {name: f"0x{i:040x}" for i, name in enumerate(HELPER_CONTRACTS)},
    }
    model = build_output_model(config, deployments, compiled)

    chain_configs = model["l2"]["chain-configs"]
    assert chain_configs["rollup-a"] == {"id": 77777, "rpc-url": "http://localhost:18545", "pk": config.wallet.private_key}
    contracts = model["l2"]["contracts"]
    assert set(contracts) == {"bridge", "pingpong", "bridgeabletoken"}
    assert contracts["bridge"]["address"] == deployments["rollup-a"][BRIDGE]
    assert contracts["bridge"]["abi"].startswith('[{"type":"constructor"')

    path = tmp_path / "output.yaml"
    write_output(path, model)
    assert "chain-configs:" in path.read_text()


def test_deploy_cancelled(compiled, targets: list[ChainTarget], store: ArtifactStore):
    cancel = threading.Event()
    cancel.set()
    deployer = HelperContractDeployer(compiled, lambda: HotWallet.from_private_key(OPERATOR_PRIVATE_KEY), store, cancel=cancel)
    with pytest.raises(ProcessCancelled):
        deployer.deploy_all(targets)
    for target in targets:
        assert target.web3.eth.get_transaction_count(HotWallet.from_private_key(OPERATOR_PRIVATE_KEY).address) == 0
        assert not target.paths.contracts.exists()


def test_runtime_phase(config: LocalnetConfig, layout: DeploymentLayout, store: ArtifactStore, fake_runner, monkeypatch):
    """Services come up, the helper contracts land and the execution clients restart with the mailboxes."""
    monkeypatch.delenv("HOST_PROJECT_PATH", raising=False)
    for chain in config.sorted_chains():
        store.write_json(layout.chain(chain.name).genesis, {"config": {"chainId": chain.id}})
        store.write_json(layout.chain(chain.name).rollup, {"l2_chain_id": chain.id})
    store.write_json(config.compiled_contracts_path, {name: {"abi": ABI, "bytecode": BYTECODE} for name in HELPER_CONTRACTS})

    chains = {chain.rpc_url: _create_chain() for chain in config.sorted_chains()}
    events = []

    def _compose(kind, cmd, kwargs):
        env = kwargs["env"]
        written = all(layout.chain(c.name).contracts.exists() for c in config.sorted_chains())
        events.append((cmd[4:], written, env.get("MAILBOX_A"), env.get("MAILBOX_B")))
        return ""

    def _wait(url, attempts, interval, cancel=None):
        events.append(("wait", url))
        return 0

    phase = RuntimePhase(
        config,
        layout,
        store,
        ComposeProject(fake_runner(_compose), config.compose_file),
        web3_factory=chains.__getitem__,
        rpc_waiter=_wait,
    )
    deployments = phase.execute("0x" + "ab" * 20)

    mailbox = deployments["rollup-a"][MAILBOX]
    assert deployments["rollup-b"][MAILBOX] == mailbox
    assert events == [
        (["build", "--parallel", *LOCALLY_BUILT_SERVICES], False, None, None),
        (["up", "-d", *FIRST_WAVE_SERVICES], False, None, None),
        ("wait", "http://localhost:18545"),
        ("wait", "http://localhost:28545"),
        (["up", "-d", "--force-recreate", *EXECUTION_CLIENT_SERVICES], True, mailbox, mailbox),
        (["up", "-d", *SECOND_WAVE_SERVICES], True, mailbox, mailbox),
    ]
    for chain in config.sorted_chains():
        assert store.read_json(layout.chain(chain.name).contracts)["addresses"][MAILBOX] == mailbox
