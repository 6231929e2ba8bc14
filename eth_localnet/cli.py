"""Command line entry point.

Deploy a fresh localnet against a running settlement chain:

.. code-block:: shell

    export LOCALNET_CONFIG=localnet.yaml
    eth-localnet deploy

Rebuild and restart the execution clients after a source change:

.. code-block:: shell

    eth-localnet redeploy op-geth
"""

import logging
import signal
import threading
from contextlib import contextmanager
from enum import Enum
from pathlib import Path
from typing import Iterator, Optional

import typer
from rich.console import Console
from rich.table import Table

from eth_localnet.config import LocalnetConfig, load_config
from eth_localnet.coordinator import Coordinator, DeploymentResult
from eth_localnet.errors import LocalnetError, format_error_chain
from eth_localnet.utils import setup_console_logging

logger = logging.getLogger(__name__)

console = Console()

app = typer.Typer(help="Deploy a two-rollup localnet on top of a settlement chain")


class RedeployTarget(str, Enum):
    op_geth = "op-geth"
    publisher = "publisher"
    all = "all"


#: Compose services touched by each redeploy target
REDEPLOY_SERVICES = {
    RedeployTarget.op_geth: ["op-geth-a", "op-geth-b"],
    RedeployTarget.publisher: ["publisher"],
    RedeployTarget.all: ["publisher", "op-geth-a", "op-geth-b"],
}


@contextmanager
def cancel_on_interrupt() -> Iterator[threading.Event]:
    """Turn the first Ctrl+C into a cancellation of the running external process.

    A second Ctrl+C interrupts immediately. The previous handler is restored on exit.
    """
    cancel = threading.Event()

    def _handler(signum, frame):
        if cancel.is_set():
            raise KeyboardInterrupt()
        logger.warning("Interrupted, cancelling the running step")
        cancel.set()

    previous = signal.signal(signal.SIGINT, _handler)
    try:
        yield cancel
    finally:
        signal.signal(signal.SIGINT, previous)


def prepare_config(
    config_file: Path,
    root_dir: Optional[Path],
    l1_el_url: Optional[str],
    deployment_target: Optional[str],
) -> LocalnetConfig:
    """Load the config file and apply command line overrides."""
    config = load_config(config_file, root_dir=root_dir)
    if l1_el_url:
        config.l1_el_url = l1_el_url
    if deployment_target:
        config.deployment_target = deployment_target
    config.validate()
    return config


def print_summary(config: LocalnetConfig, result: DeploymentResult):
    table = Table(title="Localnet")
    table.add_column("Chain")
    table.add_column("Chain id", justify="right")
    table.add_column("RPC")
    table.add_column("Genesis hash")
    for chain in config.sorted_chains():
        table.add_row(chain.name, str(chain.id), chain.rpc_url, result.genesis_hashes.get(chain.name, ""))
    console.print(table)

    contracts = Table(title="Helper contracts")
    contracts.add_column("Contract")
    contracts.add_column("Address")
    if result.contracts:
        first_chain = sorted(result.contracts)[0]
        for name, address in result.contracts[first_chain].items():
            contracts.add_row(name, address)
    console.print(contracts)
    console.print(f"DisputeGameFactory: {result.dispute_game_factory}")
    console.print(f"Summary written to {config.localnet_dir / 'output.yaml'}")


@app.command()
def deploy(
    config_file: Path = typer.Option("localnet.yaml", "--config", envvar="LOCALNET_CONFIG", help="YAML configuration file"),
    root_dir: Optional[Path] = typer.Option(None, envvar="LOCALNET_ROOT", help="Project root, defaults to the config file directory"),
    l1_el_url: Optional[str] = typer.Option(None, envvar="L1_EL_URL", help="Override the settlement chain JSON-RPC URL"),
    deployment_target: Optional[str] = typer.Option(None, help="Override the deployment target, live or calldata"),
    log_level: str = typer.Option("info", envvar="LOG_LEVEL", help="Console log level"),
    log_file: Optional[Path] = typer.Option(None, help="Also write the log to this file"),
):
    """Deploy the settlement contracts, configure both rollups and start their services."""
    setup_console_logging(default_log_level=log_level, log_file=log_file)

    try:
        config = prepare_config(config_file, root_dir, l1_el_url, deployment_target)
        with cancel_on_interrupt() as cancel:
            result = Coordinator(config, cancel=cancel).deploy()
    except LocalnetError as e:
        console.print("[red]Deployment failed[/red]")
        console.print(format_error_chain(e), markup=False)
        raise typer.Exit(code=1) from e

    print_summary(config, result)


@app.command()
def redeploy(
    target: RedeployTarget = typer.Argument(RedeployTarget.all, help="Which services to rebuild"),
    config_file: Path = typer.Option("localnet.yaml", "--config", envvar="LOCALNET_CONFIG", help="YAML configuration file"),
    root_dir: Optional[Path] = typer.Option(None, envvar="LOCALNET_ROOT", help="Project root, defaults to the config file directory"),
    log_level: str = typer.Option("info", envvar="LOG_LEVEL", help="Console log level"),
):
    """Rebuild and recreate services of a running localnet."""
    setup_console_logging(default_log_level=log_level)

    try:
        config = prepare_config(config_file, root_dir, None, None)
        with cancel_on_interrupt() as cancel:
            Coordinator(config, cancel=cancel).redeploy(REDEPLOY_SERVICES[target])
    except LocalnetError as e:
        console.print("[red]Redeploy failed[/red]")
        console.print(format_error_chain(e), markup=False)
        raise typer.Exit(code=1) from e

    console.print(f"Recreated {', '.join(REDEPLOY_SERVICES[target])}")


def main():
    app()


if __name__ == "__main__":
    main()
