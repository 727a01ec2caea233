"""
The ERC20 token HealthPolicy settles payments in.

Amounts cross this module in whole token units as decimal strings; the
token's own ``decimals()`` decides the conversion to base units.
"""

import logging
import os
from decimal import Decimal, InvalidOperation, localcontext

from healthchain.models import TokenBalance, WriteResult
from healthchain.service import _write_result

logger = logging.getLogger(__name__)

# Digits of the largest uint256
UINT256_DIGITS = 78

ERC20_ABI_PATH = os.path.join(os.path.dirname(__file__), "abi", "ERC20.json")


def format_units(value, decimals: int) -> str:
    """Base units to a plain decimal string"""
    with localcontext() as ctx:
        ctx.prec = UINT256_DIGITS
        return format(Decimal(int(value or 0)).scaleb(-int(decimals)).normalize(), "f")


def parse_units(amount, decimals: int) -> int:
    """
    Decimal amount to base units.

    Raises:
        ValueError: The amount is not a non-negative number or has more
            fractional digits than the token supports
    """
    try:
        value = Decimal(str(amount))
    except InvalidOperation:
        raise ValueError(f"Invalid amount: {amount!r}")
    if not value.is_finite() or value < 0:
        raise ValueError(f"Amount must be a non-negative number: {amount!r}")
    with localcontext() as ctx:
        ctx.prec = UINT256_DIGITS
        scaled = value.scaleb(int(decimals))
    if scaled != scaled.to_integral_value():
        raise ValueError(f"Amount {amount!r} has more than {decimals} decimals")
    return int(scaled)


class PaymentToken:
    """Balance, allowance and approval against the policy contract."""

    def __init__(self, accessor, spender: str):
        # accessor is bound to the token contract, spender is the policy contract
        self.accessor = accessor
        self.spender = spender

    @property
    def address(self) -> str:
        return self.accessor.contract_address

    def decimals(self) -> int:
        return int(self.accessor.call_read("decimals"))

    def balance(self, user: str) -> TokenBalance:
        decimals = self.decimals()
        balance = self.accessor.call_read("balanceOf", user)
        allowance = self.accessor.call_read("allowance", user, self.spender)
        return TokenBalance(
            token=self.address,
            balance=format_units(balance, decimals),
            allowance=format_units(allowance, decimals),
            decimals=decimals,
        )

    def approve(self, amount) -> WriteResult:
        """Allow the policy contract to spend ``amount`` tokens of the wallet."""
        decimals = self.decimals()
        tx_hash, receipt = self.accessor.call_write("approve", self.spender, parse_units(amount, decimals))
        logger.info(f"Approved {amount} tokens for {self.spender}: tx={tx_hash}")
        return _write_result(tx_hash, receipt)
