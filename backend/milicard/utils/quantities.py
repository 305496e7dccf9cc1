"""Box / pack / piece arithmetic shared by purchasing, stock and sales.

Quantities are always reduced to pieces for comparisons; prices are integer cents.
"""
from __future__ import annotations
from decimal import Decimal, ROUND_HALF_UP
from typing import Tuple


def total_pieces(box: int, pack: int, piece: int, pack_per_box: int, piece_per_pack: int) -> int:
    return box * pack_per_box * piece_per_pack + pack * piece_per_pack + piece


def split_pieces(pieces: int, pack_per_box: int, piece_per_pack: int) -> Tuple[int, int, int]:
    """Largest-unit-first breakdown of a piece count into (boxes, packs, pieces)."""
    per_box = pack_per_box * piece_per_pack
    sign = -1 if pieces < 0 else 1
    remaining = abs(pieces)
    boxes, remaining = divmod(remaining, per_box)
    packs, loose = divmod(remaining, piece_per_pack)
    return sign * boxes, sign * packs, sign * loose


def round_cents(amount: Decimal) -> int:
    return int(amount.quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def box_priced_amount(box: int, pack: int, piece: int, box_price_cents: int, pack_per_box: int, piece_per_pack: int) -> int:
    """Line amount when the unit price is per box: pack and piece prices are derived from it."""
    box_price = Decimal(box_price_cents)
    pack_price = box_price / Decimal(pack_per_box)
    piece_price = pack_price / Decimal(piece_per_pack)
    return round_cents(box * box_price + pack * pack_price + piece * piece_price)


def pack_priced_amount(box: int, pack: int, pack_price_cents: int, pack_per_box: int) -> int:
    """Line amount when the unit price is per pack (point orders)."""
    return (box * pack_per_box + pack) * pack_price_cents


def default_pack_price(box_price_cents: int, pack_per_box: int) -> int:
    return round_cents(Decimal(box_price_cents) / Decimal(pack_per_box))
