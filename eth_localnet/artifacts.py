"""Files shared between pipeline phases.

Every phase reads what the previous one wrote under ``.localnet/``.
Writes go straight to the target file without a temporary file and rename,
so a crash can leave a truncated artifact behind. Remove it by hand and re-run.
"""

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, TypeVar

from eth_localnet.errors import ArtifactError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class ChainPaths:
    """Generated files of one rollup chain."""

    directory: Path

    @property
    def genesis(self) -> Path:
        return self.directory / "genesis.json"

    @property
    def rollup(self) -> Path:
        return self.directory / "rollup.json"

    @property
    def jwt(self) -> Path:
        return self.directory / "jwt.txt"

    @property
    def password(self) -> Path:
        return self.directory / "password.txt"

    @property
    def contracts(self) -> Path:
        return self.directory / "contracts.json"

    @property
    def runtime_env(self) -> Path:
        return self.directory / "runtime.env"

    @property
    def addresses(self) -> Path:
        return self.directory / "addresses.json"

    @property
    def l1_genesis(self) -> Path:
        return self.directory / "l1-genesis.json"


@dataclass(frozen=True)
class DeploymentLayout:
    """Directory tree of one deployment.

    .. code-block:: text

        .localnet/
            state/            settlement deployer state, intent.toml, state.json, dispute.json
            networks/<chain>/ per chain genesis, rollup config, secrets
            services/         cloned source repositories
            registry/         chain registry descriptors for the runtime services
            .tmp/             scratch space, bind mounted into containers
            output.yaml       summary for external tooling
    """

    localnet_dir: Path

    @property
    def state_dir(self) -> Path:
        return self.localnet_dir / "state"

    @property
    def state_file(self) -> Path:
        return self.state_dir / "state.json"

    @property
    def intent_file(self) -> Path:
        return self.state_dir / "intent.toml"

    @property
    def dispute_file(self) -> Path:
        return self.state_dir / "dispute.json"

    @property
    def networks_dir(self) -> Path:
        return self.localnet_dir / "networks"

    @property
    def services_dir(self) -> Path:
        return self.localnet_dir / "services"

    @property
    def registry_dir(self) -> Path:
        return self.localnet_dir / "registry"

    @property
    def tmp_dir(self) -> Path:
        return self.localnet_dir / ".tmp"

    @property
    def output_file(self) -> Path:
        return self.localnet_dir / "output.yaml"

    def chain(self, chain_name: str) -> ChainPaths:
        return ChainPaths(self.networks_dir / chain_name)


class ArtifactStore:
    """Read and write artifact files.

    Parent directories are created on write.
    Reads raise :py:class:`ArtifactError` for missing or malformed files.
    """

    def read_json(self, path: Path) -> Any:
        try:
            with open(path, "rt", encoding="utf-8") as f:
                return json.load(f)
        except FileNotFoundError as e:
            raise ArtifactError(path, "Artifact not found") from e
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ArtifactError(path, f"Artifact is not valid JSON ({e})") from e

    def read_json_as(self, path: Path, parser: Callable[[Any], T]) -> T:
        """Read JSON and convert it with ``parser``.

        :param parser:
            Callable raising ``KeyError``, ``TypeError``, ``ValueError`` or ``AttributeError`` on bad data
        """
        data = self.read_json(path)
        try:
            return parser(data)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise ArtifactError(path, f"Artifact has unexpected content ({e!r})") from e

    def read_text(self, path: Path) -> str:
        try:
            return Path(path).read_text(encoding="utf-8")
        except FileNotFoundError as e:
            raise ArtifactError(path, "Artifact not found") from e
        except UnicodeDecodeError as e:
            raise ArtifactError(path, f"Artifact is not UTF-8 text ({e})") from e

    def read_env(self, path: Path) -> dict[str, str]:
        """Read ``KEY=VALUE`` lines. Blank lines and ``#`` comments are skipped."""
        result = {}
        for line in self.read_text(path).splitlines():
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            if "=" not in line:
                raise ArtifactError(path, f"Bad env line {line!r}")
            key, value = line.split("=", 1)
            result[key.strip()] = value.strip()
        return result

    def write_json(self, path: Path, data: Any):
        self._prepare(path)
        with open(path, "wt", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
            f.write("\n")
        logger.debug("Wrote %s", path)

    def write_text(self, path: Path, text: str, mode: int | None = None):
        self._prepare(path)
        with open(path, "wt", encoding="utf-8") as f:
            f.write(text)
        if mode is not None:
            os.chmod(path, mode)
        logger.debug("Wrote %s", path)

    def write_env(self, path: Path, env: dict[str, str], mode: int | None = None):
        self.write_text(path, "".join(f"{k}={v}\n" for k, v in env.items()), mode=mode)

    @staticmethod
    def _prepare(path: Path):
        Path(path).parent.mkdir(parents=True, exist_ok=True)
