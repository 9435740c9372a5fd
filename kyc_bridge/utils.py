import random
import string
import time
from datetime import datetime, timezone

BASE36 = string.digits + string.ascii_lowercase


def generate_transaction_id(prefix: str = "demo", length: int = 9) -> str:
    """
    Correlation id for one verification attempt:
    <prefix>_<epoch millis>_<random base36 suffix>
    """
    suffix = "".join(random.choices(BASE36, k=length))
    return f"{prefix}_{int(time.time() * 1000)}_{suffix}"


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def presence(value, present: str = "Set", absent: str = "Missing") -> str:
    return present if value else absent
