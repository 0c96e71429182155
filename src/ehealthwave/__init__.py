"""eHealthWave emergency access core.

Time-boxed emergency PINs and sharing tokens that grant scoped, revocable
access to a patient's records, with every lifecycle event written to an
append-only, hash-chained audit ledger.
"""

__version__ = "0.1.0"
