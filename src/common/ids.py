import time
import uuid


def generate_id() -> str:
    return uuid.uuid4().hex[:12]


def now_millis() -> int:
    return int(time.time() * 1000)
