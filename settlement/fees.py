"""Platform fee arithmetic."""

from typing import NamedTuple

class FeeSplit(NamedTuple):
    """Division of a sale price between platform and seller."""
    fee: int
    seller_amount: int

def split_fee(price: int, fee_percent: int) -> FeeSplit:
    """Split a price into the platform fee and the seller amount.

    The fee is truncated toward zero, so any remainder goes to the seller
    and fee + seller_amount always equals the price.

    Args:
        price: Price in the smallest currency unit
        fee_percent: Platform fee percentage, 0 to 100

    Returns:
        FeeSplit

    Raises:
        ValueError: If the price is negative or the percentage out of range
    """
    if price < 0:
        raise ValueError(f"Price must not be negative: {price}")
    if not 0 <= fee_percent <= 100:
        raise ValueError(f"Fee percent must be between 0 and 100: {fee_percent}")
    fee = price * fee_percent // 100
    return FeeSplit(fee=fee, seller_amount=price - fee)

def transfer_group_for(item_id) -> str:
    """Correlation token linking a payment intent and its transfer."""
    return f"item_{item_id}"
