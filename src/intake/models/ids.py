import secrets
import string

_ALPHABET = string.ascii_letters + string.digits


def generate_short_id(prefix: str, length: int = 10) -> str:
    random_str = "".join(secrets.choice(_ALPHABET) for _ in range(length))
    return f"{prefix}_{random_str}"


def new_photo_id() -> str:
    return generate_short_id("pho")


def new_incident_id() -> str:
    return generate_short_id("inc")
