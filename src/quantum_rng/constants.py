"""Constant values used across the quantum random number generator."""

import os
import re

DEFAULT_CONTRACT_OWNER = "ST1PQHQKV0RJXZFY1DGX8MNSNYVE3VGZJSRTPGZGM"

# c32 alphabet excludes I, L, O and U
_PRINCIPAL_RE = re.compile(r"^S[0-9A-HJKMNP-TV-Z]{27,40}$")


def _load_contract_owner() -> str:
    """Return owner principal from ``QRNG_CONTRACT_OWNER``.

    Raises:
        RuntimeError: When the value is not a Stacks principal.

    Returns:
        str: Owner principal, ``DEFAULT_CONTRACT_OWNER`` when unset.
    """

    value = os.getenv("QRNG_CONTRACT_OWNER", DEFAULT_CONTRACT_OWNER)
    if not _PRINCIPAL_RE.match(value):
        raise RuntimeError("QRNG_CONTRACT_OWNER must be a Stacks principal")
    return value


CONTRACT_OWNER = _load_contract_owner()

STATE_KEY = os.getenv("QRNG_STATE_KEY", "qrng:state")

# Block info fields understood by entropy sources
HEADER_HASH_FIELD = "id-header-hash"
TIME_FIELD = "time"

QUANTUM_MODULUS = 256
UINT256_MAX = (1 << 256) - 1
