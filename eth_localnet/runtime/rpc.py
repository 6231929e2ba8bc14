"""Wait for a chain JSON-RPC endpoint to come up."""

import logging
import threading
import time
from typing import Callable, Optional

import requests
from web3 import HTTPProvider, Web3
from web3.exceptions import Web3Exception

from eth_localnet.errors import ProcessCancelled, RPCTimeout

logger = logging.getLogger(__name__)

#: Per request timeout while polling, seconds
POLL_TIMEOUT = 5.0


def wait_for_rpc(
    url: str,
    attempts: int,
    interval: float,
    sleep: Optional[Callable[[float], None]] = None,
    cancel: Optional[threading.Event] = None,
) -> int:
    """Poll ``eth_blockNumber`` until the endpoint answers.

    Fixed interval, no backoff. We sleep ``interval`` after every failed poll,
    so a dead endpoint is given up after exactly ``attempts`` polls and
    ``attempts * interval`` seconds of waiting.

    :param sleep:
        Replaceable for tests. By default we wait on ``cancel``, so a cancel
        request wakes us up immediately.

    :param cancel:
        Checked before every poll

    :return:
        Current block number

    :raise RPCTimeout:
        All attempts failed

    :raise ProcessCancelled:
        ``cancel`` was set while waiting
    """
    assert attempts > 0
    if sleep is None:
        sleep = cancel.wait if cancel is not None else time.sleep

    # No provider level retries, this loop is the only retry policy
    web3 = Web3(HTTPProvider(url, request_kwargs={"timeout": POLL_TIMEOUT}, exception_retry_configuration=None))
    for attempt in range(1, attempts + 1):
        if cancel is not None and cancel.is_set():
            raise ProcessCancelled(f"Waiting for RPC {url} cancelled after {attempt - 1} attempts")
        try:
            block_number = web3.eth.block_number
            logger.info("RPC %s is up at block %d", url, block_number)
            return block_number
        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout, Web3Exception, ValueError) as e:
            logger.debug("RPC %s not ready, attempt %d/%d: %s", url, attempt, attempts, e)
        sleep(interval)

    raise RPCTimeout(url, attempts, interval)
