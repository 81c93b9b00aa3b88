"""
Identifier generation

Two families of ids live here:
- UUIDv7-like ids for events, users and log entries (time-ordered, opaque)
- business ids for requirements, offers and commitments, shaped like
  ``M1-REQ-20250115-7KX2QZ9A`` so that people can read them over the phone
  and so a foreign reference can be checked by its prefix alone

Fun fact: UUIDv7 packs a millisecond timestamp into its first 48 bits, which
is why sorting the event table by id is (almost) sorting it by time!
"""

import secrets
import string
import time
from datetime import datetime

from supply_deals.kernel.errors import InvalidEntityReference

REQUIREMENT_KIND = "REQ"
OFFER_KIND = "OFF"
COMMITMENT_KIND = "COM"

_SUFFIX_ALPHABET = string.digits + string.ascii_uppercase
_SUFFIX_LENGTH = 8


def generate_id() -> str:
    """
    Generate a UUIDv7-like identifier (time-ordered UUID)

    Returns:
        Sortable UUID string (e.g., "01908e9a-3b87-7000-8000-123456789abc")
    """
    timestamp_48 = int(time.time() * 1000) & 0xFFFFFFFFFFFF
    rand_12 = secrets.randbits(12)
    rand_62 = secrets.randbits(62)

    # version 7 nibble, then RFC 4122 variant bits
    time_high = (timestamp_48 >> 32) & 0xFFFF
    time_mid = (timestamp_48 >> 16) & 0xFFFF
    time_low = timestamp_48 & 0xFFFF
    version_and_rand = 0x7000 | rand_12
    variant_and_rand = 0x8000 | ((rand_62 >> 48) & 0x3FFF)
    node = rand_62 & 0xFFFFFFFFFFFF

    return (
        f"{time_high:04x}{time_mid:04x}-{time_low:04x}-"
        f"{version_and_rand:04x}-{variant_and_rand:04x}-{node:012x}"
    )


def generate_entity_id(kind: str, now: datetime, module: str = "M1") -> str:
    """
    Generate a business identifier: ``<module>-<kind>-<YYYYMMDD>-<suffix>``

    Args:
        kind: Entity kind (REQ, OFF, COM)
        now: Creation time, supplies the date segment
        module: Module prefix (from MarketplacePolicy.id_module)

    Returns:
        Identifier such as "M1-OFF-20250115-0C4ZK81T"
    """
    suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(_SUFFIX_LENGTH))
    return f"{module}-{kind}-{now:%Y%m%d}-{suffix}"


def validate_id(entity_id: str, module: str, kind: str) -> bool:
    """True if the id carries the ``<module>-<kind>-`` prefix"""
    if not isinstance(entity_id, str):
        return False
    return entity_id.startswith(f"{module}-{kind}-")


def require_valid_id(entity_id: str, module: str, kind: str) -> None:
    """
    Raise if the id does not carry the expected prefix

    Raises:
        InvalidEntityReference: If the prefix doesn't match
    """
    if not validate_id(entity_id, module, kind):
        raise InvalidEntityReference(entity_id, module, kind)
