"""
Wei amount helpers.

Wei amounts are stored as decimal strings and handled as Python ints; they
are only converted to decimal ETH for display.
"""

import re
from decimal import Decimal, ROUND_DOWN, ROUND_HALF_UP, InvalidOperation, localcontext
from typing import Union

WEI_PER_ETH = 10 ** 18
WEI_PER_METH = 10 ** 15

_WEI_PATTERN = re.compile(r"[0-9]+")


def is_valid_wei(wei_amount: Union[str, int]) -> bool:
    """Check that an amount is a non-negative integer (int or digit string)."""
    if isinstance(wei_amount, bool):
        return False
    if isinstance(wei_amount, int):
        return wei_amount >= 0
    return isinstance(wei_amount, str) and bool(_WEI_PATTERN.fullmatch(wei_amount))


def to_wei_int(wei_amount: Union[str, int]) -> int:
    """Parse a wei amount, raising ValueError for anything but a non-negative integer."""
    if not is_valid_wei(wei_amount):
        raise ValueError(f"Invalid wei amount: {wei_amount!r}")
    return int(wei_amount)


def wei_to_eth(wei_amount: Union[str, int]) -> Decimal:
    return Decimal(to_wei_int(wei_amount)) / Decimal(WEI_PER_ETH)


def _trim(number: str, keep_decimal: bool) -> str:
    if "." not in number:
        return f"{number}.0" if keep_decimal else number
    number = number.rstrip("0")
    if number.endswith("."):
        return f"{number}0" if keep_decimal else number[:-1]
    return number


def wei_to_eth_string(wei_amount: Union[str, int], decimals: int = 6, keep_decimal: bool = False) -> str:
    """
    Convert wei to an ETH string rounded to ``decimals`` places with trailing zeros removed.

    Args:
        wei_amount: Amount in wei
        decimals: Number of decimal places to keep before trimming
        keep_decimal: Keep one decimal place for whole numbers ("2.0" instead of "2")

    Returns:
        ETH amount as a string
    """
    with localcontext() as ctx:
        ctx.prec = 100
        quantum = Decimal(1).scaleb(-decimals)
        eth = wei_to_eth(wei_amount).quantize(quantum, rounding=ROUND_HALF_UP)
    return _trim(format(eth, "f"), keep_decimal)


def eth_to_wei(eth_amount: Union[str, int, float, Decimal]) -> str:
    """Convert an ETH amount to a wei string, truncating below one wei."""
    try:
        eth = Decimal(str(eth_amount))
    except InvalidOperation as e:
        raise ValueError(f"Invalid ETH amount: {eth_amount!r}") from e
    if not eth.is_finite() or eth < 0:
        raise ValueError(f"ETH amount must be a finite non-negative number: {eth_amount!r}")
    with localcontext() as ctx:
        ctx.prec = 100
        wei = (eth * WEI_PER_ETH).to_integral_value(rounding=ROUND_DOWN)
    return str(int(wei))


def format_wei(wei_amount: Union[str, int]) -> str:
    """
    Format a wei amount for display with a unit.

    Examples:
        "2000000000000000000" -> "2.0 ETH"
        "1000000000000000" -> "1.000 mETH"
        "500" -> "500 wei"
    """
    wei = to_wei_int(wei_amount)
    if wei >= WEI_PER_ETH:
        return f"{wei_to_eth_string(wei, keep_decimal=True)} ETH"
    if wei >= WEI_PER_METH:
        meth = (Decimal(wei) / Decimal(WEI_PER_METH)).quantize(Decimal("0.001"), rounding=ROUND_HALF_UP)
        return f"{meth} mETH"
    return f"{wei} wei"
