"""Command-line interface for generating numbers and managing the nonce."""

import argparse
import os

import quantum_rng

from .core import (
    BlockContext,
    ChainEntropySource,
    MemoryStateStore,
    RandomNumberGenerator,
    RedisStateStore,
    redis_from_env,
)


def main(argv: list[str] | None = None) -> int:
    """Parse arguments and run one generator operation.

    Args:
        argv: Optional list of command-line arguments.

    Returns:
        int: ``0`` on success, ``1`` when the generator rejects the call.
    """

    parser = argparse.ArgumentParser(prog="qrng")
    parser.add_argument("--version", action="version", version=quantum_rng.__version__)
    sub = parser.add_subparsers(dest="cmd", required=True)
    g = sub.add_parser("generate")
    g.add_argument("caller")
    g.add_argument("max_value", type=int)
    g.add_argument("--block-hash", required=True, help="Hex-encoded header hash")
    g.add_argument("--block-time", type=int, required=True)

    r = sub.add_parser("reset-nonce")
    r.add_argument("caller")

    n = sub.add_parser("nonce")
    last = sub.add_parser("last")

    for p in (g, r, n, last):
        p.add_argument(
            "--redis",
            action="store_true",
            help="keep state in Redis configured by REDIS_* variables",
        )

    args = parser.parse_args(argv)
    if args.redis:
        if "REDIS_HOST" not in os.environ:
            parser.error("--redis requires environment variables: REDIS_HOST")
        store = RedisStateStore(redis_from_env())
    else:
        store = MemoryStateStore()

    blocks = []
    if args.cmd == "generate":
        try:
            header_hash = bytes.fromhex(args.block_hash)
        except ValueError as exc:
            raise argparse.ArgumentTypeError(
                f"invalid hex value for --block-hash: {args.block_hash}"
            ) from exc
        blocks.append(BlockContext(header_hash=header_hash, time=args.block_time))
    rng = RandomNumberGenerator(ChainEntropySource(blocks), store=store)

    if args.cmd == "nonce":
        print(rng.get_nonce())
        return 0
    if args.cmd == "last":
        print(rng.get_last_random_number())
        return 0

    if args.cmd == "generate":
        result = rng.generate(args.caller, args.max_value)
    else:
        result = rng.reset_nonce(args.caller)
    if not result.success:
        print(result.error.value)
        return 1
    print(result.result if result.result is not None else "OK")
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
