"""Deterministic random number generator package."""

from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
import re

from .core import (
    BlockContext,
    ChainEntropySource,
    GeneratorState,
    MemoryStateStore,
    RandomNumberGenerator,
    RedisStateStore,
    Result,
    RngError,
    derive_random_number,
    lambda_handler,
    principal_to_uint256,
)
from .cli import main as cli
from .testing_source import FixtureEntropySource

_pyproject = Path(__file__).resolve().parent.parent.parent / "pyproject.toml"


def _read_version(path: Path) -> str:
    text = path.read_text(encoding="utf-8")
    match = re.search(r'^version\s*=\s*"([^"]+)"', text, flags=re.MULTILINE)
    if not match:
        raise RuntimeError("version not found in pyproject.toml")
    return match.group(1)


try:
    __version__ = version("quantum-rng")
except PackageNotFoundError:
    __version__ = _read_version(_pyproject)

__all__ = [
    "lambda_handler",
    "cli",
    "FixtureEntropySource",
    "RandomNumberGenerator",
    "GeneratorState",
    "MemoryStateStore",
    "RedisStateStore",
    "ChainEntropySource",
    "BlockContext",
    "Result",
    "RngError",
    "derive_random_number",
    "principal_to_uint256",
    "__version__",
]
