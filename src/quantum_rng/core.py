"""Deterministic random number generation and entropy interfaces.

This module derives bounded pseudo-random integers from values every
replicated executor can see: the current block's header hash and timestamp,
and the caller's principal. A nonce kept in :class:`GeneratorState` keeps
repeated calls within one block from producing the same seed. Entropy is
supplied through the :class:`EntropySource` protocol, with
:class:`ChainEntropySource` reading the host's block history, and state lives
in a :class:`StateStore` held either in memory or in Redis.

The generator is reproducible, not secure: anyone who can see or influence
the block data can predict its output.
"""

import contextlib
import enum
import hashlib
import logging
import os
import ssl
import threading
from dataclasses import dataclass, field, replace
from typing import Any, ContextManager, Iterator, Mapping, Protocol, Sequence

import redis

from .constants import (
    CONTRACT_OWNER,
    HEADER_HASH_FIELD,
    QUANTUM_MODULUS,
    STATE_KEY,
    TIME_FIELD,
    UINT256_MAX,
)


class RngError(enum.Enum):
    INVALID_BOUND = "Invalid input"
    NOT_AUTHORIZED = "Not authorized"


@dataclass(frozen=True)
class Result:
    """Outcome of a state-changing call."""

    success: bool
    result: int | None = None
    error: RngError | None = None

    def to_dict(self) -> dict:
        out: dict[str, Any] = {"success": self.success}
        if self.result is not None:
            out["result"] = self.result
        if self.error is not None:
            out["error"] = self.error.value
        return out


class EntropySource(Protocol):
    def block_info(self, field: str, offset: int) -> bytes | int:
        """Return ``field`` of the block ``offset`` steps back."""

    def identity_to_integer(self, identity: str) -> int:
        """Return a 256-bit unsigned integer for ``identity``."""


def principal_to_uint256(principal: str) -> int:
    """Return the SHA-256 digest of ``principal`` as an integer.

    Args:
        principal: Caller identity.

    Returns:
        int: Value in ``[0, 2**256)``.
    """

    digest = hashlib.sha256(principal.encode()).digest()
    return int.from_bytes(digest, "big") & UINT256_MAX


@dataclass(frozen=True)
class BlockContext:
    header_hash: bytes
    time: int


@dataclass
class ChainEntropySource:
    """Entropy read from the host runtime's recent blocks.

    ``blocks`` is ordered most recent first, so offset ``0`` is the block
    containing the current execution.
    """

    blocks: Sequence[BlockContext] = ()

    def block_info(self, field: str, offset: int) -> bytes | int:
        """Return header hash or time of a recent block.

        Args:
            field: ``"id-header-hash"`` or ``"time"``.
            offset: Number of blocks back from the current one.

        Returns:
            bytes | int: Header hash bytes or block timestamp.

        Raises:
            ValueError: If ``field`` is unknown.
            LookupError: If no block exists at ``offset``.
        """

        if field not in (HEADER_HASH_FIELD, TIME_FIELD):
            raise ValueError(f"unknown block info field: {field}")
        if not 0 <= offset < len(self.blocks):
            raise LookupError(f"no block at offset {offset}")
        block = self.blocks[offset]
        if field == HEADER_HASH_FIELD:
            return block.header_hash
        return block.time

    def identity_to_integer(self, identity: str) -> int:
        return principal_to_uint256(identity)


@dataclass(frozen=True)
class GeneratorState:
    last_random_number: int = 0
    nonce: int = 0


class StateStore(Protocol):
    def load(self) -> GeneratorState:
        """Return the current state."""

    def commit(self, state: GeneratorState) -> None:
        """Write both state fields in one step."""

    def transaction(self) -> ContextManager[None]:
        """Hold exclusive access for one read-modify-write cycle."""


@dataclass
class MemoryStateStore:
    state: GeneratorState = field(default_factory=GeneratorState)
    _lock: threading.Lock = field(init=False, default_factory=threading.Lock)

    def load(self) -> GeneratorState:
        return self.state

    def commit(self, state: GeneratorState) -> None:
        self.state = state

    def transaction(self) -> ContextManager[None]:
        return self._lock


class RedisStateStore:
    def __init__(self, client, key: str = STATE_KEY, lock_timeout: int = 5):
        """Initialize store over a Redis hash.

        Args:
            client: Redis client instance.
            key: Hash key holding ``last_random_number`` and ``nonce``.
            lock_timeout: Seconds before a held lock expires.

        Returns:
            None
        """

        if not isinstance(lock_timeout, int) or lock_timeout <= 0:
            raise ValueError("lock_timeout must be a positive integer")
        self.client = client
        self.key = key
        self.lock_timeout = lock_timeout

    def load(self) -> GeneratorState:
        last, nonce = self.client.hmget(self.key, "last_random_number", "nonce")
        return GeneratorState(
            last_random_number=int(last or 0),
            nonce=int(nonce or 0),
        )

    def commit(self, state: GeneratorState) -> None:
        self.client.hset(
            self.key,
            mapping={
                "last_random_number": state.last_random_number,
                "nonce": state.nonce,
            },
        )

    @contextlib.contextmanager
    def transaction(self) -> Iterator[None]:
        name = f"{self.key}:lock"
        lock = self.client.lock(
            name,
            timeout=self.lock_timeout,
            blocking_timeout=self.lock_timeout,
        )
        if not lock.acquire():
            logging.getLogger(__name__).error("could not acquire %s", name)
            raise RuntimeError("generator state is locked")
        try:
            yield
        finally:
            lock.release()


def quantum_effect(header_hash: bytes, nonce: int) -> int:
    """Return ``(len(header_hash) + nonce) % 256``.

    Only the hash length contributes, not its content.
    """

    return (len(header_hash) + nonce) % QUANTUM_MODULUS


def derive_random_number(
    header_hash: bytes,
    block_time: int,
    sender: int,
    nonce: int,
    max_value: int,
) -> int:
    """Return the bounded value for one set of entropy inputs.

    Args:
        header_hash: Header hash of the current block.
        block_time: Timestamp of the current block.
        sender: Caller identity as an unsigned integer.
        nonce: Nonce before the generation it belongs to.
        max_value: Exclusive upper bound, must be positive.

    Returns:
        int: Value in ``[0, max_value)``.
    """

    seed = quantum_effect(header_hash, nonce) ^ block_time ^ sender
    return seed % max_value


class RandomNumberGenerator:
    """Bounded pseudo-random integers with a nonce and owner-only reset."""

    def __init__(
        self,
        entropy: EntropySource,
        store: StateStore | None = None,
        owner: str | None = None,
    ) -> None:
        self.entropy = entropy
        self.store = store if store is not None else MemoryStateStore()
        self.owner = owner if owner is not None else CONTRACT_OWNER

    def generate(self, caller: str, max_value: int) -> Result:
        """Return a value in ``[0, max_value)`` and advance the nonce.

        Args:
            caller: Principal requesting the number.
            max_value: Exclusive upper bound.

        Returns:
            Result: ``result`` holds the number, or ``error`` is
            ``RngError.INVALID_BOUND`` when ``max_value <= 0``.
        """

        if max_value <= 0:
            logging.getLogger(__name__).warning("rejected bound %s", max_value)
            return Result(success=False, error=RngError.INVALID_BOUND)

        with self.store.transaction():
            state = self.store.load()
            header_hash = self.entropy.block_info(HEADER_HASH_FIELD, 0)
            block_time = self.entropy.block_info(TIME_FIELD, 0)
            sender = self.entropy.identity_to_integer(caller)
            number = derive_random_number(
                header_hash, block_time, sender, state.nonce, max_value
            )
            self.store.commit(
                GeneratorState(last_random_number=number, nonce=state.nonce + 1)
            )
        logging.getLogger(__name__).debug(
            "generated %d for %s (nonce %d)", number, caller, state.nonce + 1
        )
        return Result(success=True, result=number)

    def get_last_random_number(self) -> int:
        return self.store.load().last_random_number

    def get_nonce(self) -> int:
        return self.store.load().nonce

    def reset_nonce(self, caller: str) -> Result:
        """Set the nonce back to zero when ``caller`` is the owner.

        The last generated number is kept.
        """

        if caller != self.owner:
            logging.getLogger(__name__).warning("unauthorized reset by %s", caller)
            return Result(success=False, error=RngError.NOT_AUTHORIZED)
        with self.store.transaction():
            self.store.commit(replace(self.store.load(), nonce=0))
        logging.getLogger(__name__).info("nonce reset by owner")
        return Result(success=True)


def redis_from_env():
    """Return a Redis client configured from ``REDIS_*`` variables.

    Raises:
        RuntimeError: If ``REDIS_HOST`` is absent or a value is invalid.
    """

    if "REDIS_HOST" not in os.environ:
        raise RuntimeError("missing environment variables: REDIS_HOST")

    redis_opts: dict[str, Any] = {"host": os.environ["REDIS_HOST"]}
    port_str = os.environ.get("REDIS_PORT", "6379")
    try:
        redis_opts["port"] = int(port_str)
    except ValueError as exc:
        raise RuntimeError("REDIS_PORT must be an integer") from exc
    if not 1 <= redis_opts["port"] <= 65535:
        raise RuntimeError("REDIS_PORT must be between 1 and 65535")

    if os.environ.get("REDIS_PASSWORD"):
        redis_opts["password"] = os.environ["REDIS_PASSWORD"]

    tls_env = os.environ.get("REDIS_TLS", "1").lower()
    if tls_env not in {"0", "false", "no"}:
        redis_opts["ssl"] = True
        cert_env = os.environ.get("REDIS_CERT_REQS", "required").lower()
        cert_map = {
            "optional": ssl.CERT_OPTIONAL,
            "required": ssl.CERT_REQUIRED,
        }
        if cert_env not in cert_map:
            raise RuntimeError("REDIS_CERT_REQS must be 'required' or 'optional'")
        redis_opts["ssl_cert_reqs"] = cert_map[cert_env]

    return redis.Redis(**redis_opts)


ACTIONS = ("generate", "reset-nonce", "get-nonce", "get-last-random-number")


@dataclass
class RngEvent:
    """Invocation payload for :func:`lambda_handler`."""

    action: str
    caller: str | None = None
    max_value: int | None = None
    block_hash: bytes = b""
    block_time: int = 0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RngEvent":
        """Return ``RngEvent`` built from ``data``.

        Args:
            data: Mapping with key ``"action"``. ``generate`` also needs
                ``"caller"``, ``"max_value"``, ``"block_hash"`` (hex) and
                ``"block_time"``; ``reset-nonce`` needs ``"caller"``.

        Returns:
            RngEvent: Parsed event object.

        Raises:
            KeyError: If a required field is missing.
            TypeError: If ``data`` is not a mapping or a value has the
                wrong type.
            ValueError: If the action is unknown or the hash is not hex.
        """
        if not isinstance(data, Mapping):
            raise TypeError("event must be a mapping")
        try:
            action = data["action"]
            if action in ("generate", "reset-nonce"):
                caller = data["caller"]
            else:
                caller = data.get("caller")
            if action == "generate":
                max_value = data["max_value"]
                block_hash = data["block_hash"]
                block_time = data["block_time"]
            else:
                max_value, block_hash, block_time = None, "", 0
        except KeyError as exc:
            raise KeyError(f"missing field: {exc.args[0]}") from exc
        if action not in ACTIONS:
            raise ValueError(f"unknown action: {action}")
        if caller is not None and not isinstance(caller, str):
            raise TypeError("caller must be a string")
        if max_value is not None and (
            isinstance(max_value, bool) or not isinstance(max_value, int)
        ):
            raise TypeError("max_value must be an integer")
        if isinstance(block_time, bool) or not isinstance(block_time, int):
            raise TypeError("block_time must be an integer")
        if not isinstance(block_hash, str):
            raise TypeError("block_hash must be a hex string")
        try:
            hash_bytes = bytes.fromhex(block_hash)
        except ValueError as exc:
            raise ValueError(f"invalid hex value for block_hash: {block_hash}") from exc
        return cls(
            action=action,
            caller=caller,
            max_value=max_value,
            block_hash=hash_bytes,
            block_time=block_time,
        )


def lambda_handler(event: Mapping[str, Any] | RngEvent, _ctx) -> dict:
    """Handle a generator invocation with state kept in Redis.

    Args:
        event: Invocation payload, see :meth:`RngEvent.from_dict`.
        _ctx: Lambda context object (unused).

    Returns:
        dict: ``Result.to_dict()`` for state-changing actions,
        ``{"success": True, "result": n}`` for queries.

    Raises:
        KeyError: If ``event`` is missing required fields.
        RuntimeError: If Redis settings are absent or invalid.
        TypeError: If ``event`` is not a valid mapping.
    """
    evt = event if isinstance(event, RngEvent) else RngEvent.from_dict(event)
    store = RedisStateStore(redis_from_env())
    entropy = ChainEntropySource(
        [BlockContext(header_hash=evt.block_hash, time=evt.block_time)]
    )
    rng = RandomNumberGenerator(entropy, store=store)

    if evt.action == "generate":
        return rng.generate(evt.caller, evt.max_value).to_dict()
    if evt.action == "reset-nonce":
        return rng.reset_nonce(evt.caller).to_dict()
    if evt.action == "get-nonce":
        return Result(success=True, result=rng.get_nonce()).to_dict()
    return Result(success=True, result=rng.get_last_random_number()).to_dict()
