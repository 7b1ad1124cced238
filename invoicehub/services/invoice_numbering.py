"""Display-friendly invoice numbers, e.g. INV-482913027."""

import random
import time

INVOICE_NUMBER_PREFIX = "INV"


def generate_invoice_number() -> str:
    """
    Prefix + low 6 digits of the millisecond clock + 3-digit random suffix.

    Not unique on its own: the (organization_id, invoice_number) constraint
    is the source of truth and callers retry on collision.
    """
    timestamp = str(int(time.time() * 1000))[-6:]
    suffix = f"{random.randint(0, 999):03d}"
    return f"{INVOICE_NUMBER_PREFIX}-{timestamp}{suffix}"
