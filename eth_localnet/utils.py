"""Logging setup and small value conversion helpers."""

import logging
import os
from pathlib import Path
from typing import Optional

import coloredlogs
from eth_account import Account
from eth_typing import HexAddress

logger = logging.getLogger(__name__)

#: Ethereum 0x0000000000000000000000000000000000000000 address
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

#: Environment variable telling us the project directory is bind mounted
#: into a container, and where it lives on the docker host.
HOST_PROJECT_PATH_ENV = "HOST_PROJECT_PATH"

#: Where the project is mounted inside the container when :py:data:`HOST_PROJECT_PATH_ENV` is set
CONTAINER_WORKSPACE = "/workspace"


def setup_console_logging(
    default_log_level="info",
    log_file: Optional[Path] = None,
    clear_log_file=True,
) -> logging.Logger:
    """Set up coloured log output.

    - The level is read from ``LOG_LEVEL`` environment variable
    - Tune down some noisy dependency library logging

    :param log_file:
        Output both console and this log file.

    :return:
        Root logger
    """

    level = os.environ.get("LOG_LEVEL", default_log_level).upper()
    numeric_level = getattr(logging, level, None)
    assert numeric_level, f"No level: {level}"

    fmt = "%(asctime)s %(name)-44s %(message)s"
    date_fmt = "%H:%M:%S"

    coloredlogs.install(level=numeric_level, fmt=fmt, date_fmt=date_fmt)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)

        # The file always gets at least INFO, env var controls only the terminal output
        min_level = min(logging.INFO, numeric_level)
        file_handler = logging.FileHandler(log_file, mode="w" if clear_log_file else "a", encoding="utf-8")
        file_handler.setLevel(min_level)
        file_handler.setFormatter(logging.Formatter(fmt, date_fmt))

        root = logging.getLogger()
        root.setLevel(min_level)
        root.addHandler(file_handler)

    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("web3.providers.HTTPProvider").setLevel(logging.WARNING)
    logging.getLogger("web3.RequestManager").setLevel(logging.WARNING)

    return logging.getLogger()


def chain_id_to_hex(chain_id: int) -> str:
    """Render a chain id the way the settlement deployer keys its records.

    .. code-block:: python

        assert chain_id_to_hex(88888) == "0x" + "0" * 59 + "15b38"

    :return:
        ``0x`` followed by 64 big-endian hex digits
    """
    assert type(chain_id) == int and chain_id >= 0, f"Bad chain id: {chain_id}"
    return f"0x{chain_id:064x}"


def parse_chain_id_hex(value: str) -> int:
    """Reverse of :py:func:`chain_id_to_hex`."""
    assert value.startswith("0x"), f"Chain id not 0x prefixed: {value}"
    return int(value, 16)


def wei_to_hex(wei: str | int) -> str:
    """Convert a decimal wei amount to a genesis allocation balance.

    .. code-block:: python

        assert wei_to_hex("100000000000000000000000") == "0x152d02c7e14af6800000"

    :raise ValueError:
        If the string is not a decimal integer
    """
    if isinstance(wei, str):
        if not wei.strip().isdigit():
            raise ValueError(f"Invalid wei amount: {wei!r}")
        wei = int(wei.strip(), 10)
    return hex(wei)


def parse_hex_int(value: str | int) -> int:
    """Read a JSON-RPC style quantity.

    Strings are always base 16, with or without the ``0x`` prefix.
    """
    if isinstance(value, int):
        return value
    if value.startswith(("0x", "0X")):
        value = value[2:]
    return int(value, 16)


def address_from_private_key(private_key: str) -> HexAddress:
    """Derive the checksummed address of a hex private key."""
    return Account.from_key(private_key).address


def is_zero_address(address: Optional[str]) -> bool:
    return not address or int(address, 16) == 0


def get_host_path(path: str | Path) -> str:
    """Translate a path for docker bind mounts.

    When this process itself runs in a container with the project mounted at ``/workspace``,
    the docker daemon needs the host side path instead. Otherwise the absolute path is returned.
    """
    absolute = os.path.abspath(path)
    host_project_path = os.environ.get(HOST_PROJECT_PATH_ENV)
    if not host_project_path:
        return absolute

    if absolute == CONTAINER_WORKSPACE or absolute.startswith(CONTAINER_WORKSPACE + "/"):
        return host_project_path + absolute[len(CONTAINER_WORKSPACE):]

    return absolute
