"""Provision a disposable two-rollup test network on top of a settlement chain.

The pipeline runs in three phases, each persisting its results under
``.localnet/`` so a failed run can be resumed:

1. :py:mod:`eth_localnet.settlement`: settlement layer contracts
2. :py:mod:`eth_localnet.chainconfig`: per-chain genesis and rollup configuration
3. :py:mod:`eth_localnet.runtime`: chain services and helper contracts

See :py:class:`eth_localnet.coordinator.Coordinator` for the entry point.
"""
