import random
import time

from core.config import settings
from models.order import Order


def assign_tracking_number(order: Order) -> str:
    """Return a new tracking token for ``order``: prefix, 8 clock digits, 4 random digits."""
    timestamp = str(int(time.time() * 1000))[-8:]
    suffix = f"{random.randint(0, 9999):04d}"
    return f"{settings.TRACKING_NUMBER_PREFIX}{timestamp}{suffix}"
