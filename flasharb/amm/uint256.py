"""
Checked 256-bit integer arithmetic.

Python ints never overflow, the EVM does. Every helper here bounds its result
to the on-chain type so a computation that would revert on-chain fails here too.
No floats anywhere: token amounts stay exact.
"""
from ..errors import DivideByZero, Uint256Overflow

UINT256_MAX = 2 ** 256 - 1
INT256_MAX = 2 ** 255 - 1
INT256_MIN = -(2 ** 255)
UINT64_MAX = 2 ** 64 - 1

BPS_DENOMINATOR = 10_000


def uint256(value: int) -> int:
    """Validate that value fits uint256 and return it."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"uint256 expects int, got {type(value).__name__}")
    if value < 0 or value > UINT256_MAX:
        raise Uint256Overflow(f"{value} outside uint256 range")
    return value


def int256(value: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"int256 expects int, got {type(value).__name__}")
    if value < INT256_MIN or value > INT256_MAX:
        raise Uint256Overflow(f"{value} outside int256 range")
    return value


def add(a: int, b: int) -> int:
    return uint256(uint256(a) + uint256(b))


def sub(a: int, b: int) -> int:
    # underflow is an error, not a wrap
    return uint256(uint256(a) - uint256(b))


def mul(a: int, b: int) -> int:
    return uint256(uint256(a) * uint256(b))


def div(a: int, b: int) -> int:
    """Floor division, Solidity semantics."""
    if uint256(b) == 0:
        raise DivideByZero(f"division of {a} by zero")
    return uint256(a) // b


def mul_div(a: int, b: int, denominator: int) -> int:
    """(a * b) // denominator with the product itself checked."""
    return div(mul(a, b), denominator)


def signed_sub(a: int, b: int) -> int:
    return int256(int256(a) - int256(b))


def apply_bps(amount: int, bps: int) -> int:
    """amount * (10000 - bps) / 10000 — haircut by basis points."""
    if bps < 0 or bps > BPS_DENOMINATOR:
        raise ValueError(f"bps must be in [0, {BPS_DENOMINATOR}], got {bps}")
    return mul_div(amount, BPS_DENOMINATOR - bps, BPS_DENOMINATOR)
