import secrets
import time
import uuid


def generate_id() -> str:
    """Unique document identifier"""
    return str(uuid.uuid4())


def generate_order_number() -> str:
    """
    Human-readable order number: ORD + last 8 digits of the millisecond clock
    + 2 random digits. Unique with high probability, not guaranteed.
    """
    clock_digits = str(int(time.time() * 1000))[-8:]
    return f"ORD{clock_digits}{secrets.randbelow(100):02d}"
