import secrets
import string

TRACKING_PREFIX = "PCL"
TRACKING_ALPHABET = string.ascii_uppercase + string.digits
TRACKING_LENGTH = 10


def generate_tracking_id() -> str:
    """Short shareable id, e.g. ``PCL-7K2QX9M4TA``. 36**10 possible suffixes."""
    suffix = "".join(secrets.choice(TRACKING_ALPHABET) for _ in range(TRACKING_LENGTH))
    return f"{TRACKING_PREFIX}-{suffix}"
