"""Exceptions raised by the localnet provisioning pipeline.

The hierarchy follows the failure classes the pipeline distinguishes:

- :py:class:`PreconditionError`: an upstream artifact or configuration value is missing
  or cannot be parsed. Never retried.

- :py:class:`ExternalToolError`: an external process, container or fetch failed.
  Carries the captured output when there is some.

- :py:class:`InvariantViolation`: a post-condition did not hold, e.g. helper contract
  addresses differ between chains.

- :py:class:`RPCTimeout`: a JSON-RPC endpoint did not come up within the polling bound.

Each layer raises its own exception ``from`` the one it caught, so the full
chain is visible in the traceback and in :py:func:`format_error_chain`.
"""


class LocalnetError(Exception):
    """Base class for all pipeline failures."""


class PreconditionError(LocalnetError):
    """Missing or unparsable input that a step requires."""


class ConfigurationError(PreconditionError):
    """Configuration did not validate.

    All problems are collected and reported at once.
    """

    def __init__(self, problems: list[str]):
        self.problems = problems
        super().__init__("Configuration validation failed:\n" + "\n".join(f"  - {p}" for p in problems))


class ArtifactError(PreconditionError):
    """Artifact file is missing or malformed."""

    def __init__(self, path, msg: str):
        super().__init__(f"{msg}: {path}")
        self.path = path


class ExternalToolError(LocalnetError):
    """An external tool returned a failure."""


class ProcessFailed(ExternalToolError):
    """Child process or container exited with a non-zero code."""

    def __init__(self, command: str, exit_code: int, output: str):
        super().__init__(f"{command} exited with code {exit_code}\nOutput is:\n{output}")
        self.command = command
        self.exit_code = exit_code
        self.output = output


class ProcessCancelled(ExternalToolError):
    """Process was torn down because of a timeout or a cancel request."""


class RepositoryFetchError(ExternalToolError):
    """Cloning or checking out a repository failed."""

    def __init__(self, name: str, msg: str):
        super().__init__(f"failed to clone {name}: {msg}")
        self.name = name


class InvariantViolation(LocalnetError):
    """A deployment post-condition did not hold."""


class AddressMismatch(InvariantViolation):
    """Helper contracts landed on different addresses on different chains."""

    def __init__(self, mismatches: dict[str, dict[str, str]]):
        self.mismatches = mismatches
        lines = []
        for contract_name, per_chain in mismatches.items():
            addresses = ", ".join(f"{chain}={address}" for chain, address in per_chain.items())
            lines.append(f"{contract_name}: {addresses}")
        super().__init__("Contract addresses differ between chains:\n" + "\n".join(lines))


class RPCTimeout(LocalnetError):
    """JSON-RPC endpoint did not answer in time."""

    def __init__(self, url: str, attempts: int, interval: float):
        super().__init__(f"Timed out waiting for RPC at {url} after {attempts} attempts, {interval}s apart")
        self.url = url
        self.attempts = attempts
        self.interval = interval


class ChainStepFailed(LocalnetError):
    """Wraps a failure with the chain and the step it happened in."""

    def __init__(self, step: str, chain_name: str, chain_id: int, cause: Exception):
        super().__init__(f"{step} failed for {chain_name} (chain {chain_id}): {cause}")
        self.step = step
        self.chain_name = chain_name
        self.chain_id = chain_id


class PhaseFailed(LocalnetError):
    """Wraps a failure with the name of the pipeline phase it happened in."""

    def __init__(self, phase: str, cause: Exception):
        super().__init__(f"{phase} failed: {cause}")
        self.phase = phase


def format_error_chain(e: BaseException) -> str:
    """Render an exception and its ``__cause__`` chain, outermost first."""
    parts = []
    seen = set()
    current = e
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        parts.append(f"{type(current).__name__}: {current}")
        current = current.__cause__
    return "\ncaused by ".join(parts)
