"""
Room identity derivation.

A room identity groups one vendor/supplier pair's chat history regardless of
how many purchase requests they open and close between them. It is a pure
function of the two party ids, so clients can compute it locally and pre-join
before their order round-trip completes.
"""
import re

ROOM_ID_SEPARATOR = "_"

# Older orders stored "<a>_<b>_<epoch millis>" which broke reopen-as-same-room.
_LEGACY_SUFFIX = re.compile(r"_\d{13}$")


def derive_room_identity(party_a_id: str, party_b_id: str) -> str:
    """
    Derive the stable room identity for two parties.

    Commutative in its inputs: ids are sorted before joining.

    Raises:
        ValueError: If either id is empty
    """
    a = str(party_a_id or "").strip()
    b = str(party_b_id or "").strip()
    if not a or not b:
        raise ValueError("Both party ids are required to derive a room identity")
    first, second = sorted((a, b))
    return f"{first}{ROOM_ID_SEPARATOR}{second}"


def is_legacy_room_identity(room_id: str) -> bool:
    """True if room_id carries a creation-timestamp suffix."""
    return bool(_LEGACY_SUFFIX.search(room_id or ""))


def normalize_room_identity(room_id: str) -> str:
    """Strip a legacy timestamp suffix; already-normal ids are returned unchanged."""
    return _LEGACY_SUFFIX.sub("", room_id)
