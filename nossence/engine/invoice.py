"""
nossence.engine.invoice — bolt11 Amount Decoding
=================================================

Zap receipts carry the paid Lightning invoice in their ``bolt11`` tag.
The only thing the graph needs from it is the amount, in whole sats.
"""

from __future__ import annotations

from collections.abc import Callable

from nossence.constants import MSAT_PER_SAT

# Takes a bolt11 string, returns the amount in millisatoshi.
MsatDecoder = Callable[[str], int]


class InvoiceDecodeError(ValueError):
    """The invoice is missing, malformed, or carries no amount."""


def decode_msat(invoice: str) -> int:
    """Decode *invoice* with the ``bolt11`` library and return its msat amount."""
    import bolt11

    try:
        decoded = bolt11.decode(invoice)
    except Exception as exc:
        raise InvoiceDecodeError(f"cannot decode bolt11 invoice: {exc}") from exc
    if decoded.amount_msat is None:
        raise InvoiceDecodeError("bolt11 invoice has no amount")
    return int(decoded.amount_msat)


def zap_amount_sats(invoice: str | None, decoder: MsatDecoder = decode_msat) -> int:
    """Return the paid amount in sats (msat integer-divided by 1000).

    Raises
    ------
    InvoiceDecodeError
        If *invoice* is missing or *decoder* rejects it.
    """
    if not invoice:
        raise InvoiceDecodeError("zap receipt has no bolt11 tag")
    msat = decoder(invoice)
    if msat < 0:
        raise InvoiceDecodeError(f"negative invoice amount: {msat}")
    return msat // MSAT_PER_SAT
