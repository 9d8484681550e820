import base64
import binascii
import re
from typing import Set

PRESET_AVATARS: Set[str] = {"avatar-user", "avatar-elmer", "avatar-sandra"}

# Uploaded pictures arrive as data URLs from the profile editor
_DATA_URL_RE = re.compile(r"^data:image/(png|jpeg|jpg|gif|webp);base64,(?P<payload>[A-Za-z0-9+/=\s]+)$")

MAX_AVATAR_BYTES = 512 * 1024


def is_preset(ref: str) -> bool:
    return ref in PRESET_AVATARS


def decode_data_url(ref: str) -> bytes:
    """Decode an image data URL to raw bytes. Raises ValueError if malformed."""
    match = _DATA_URL_RE.match(ref)
    if not match:
        raise ValueError("avatar must be a preset id or an image data URL")
    try:
        return base64.b64decode(match.group("payload"), validate=False)
    except (binascii.Error, ValueError) as exc:
        raise ValueError(f"avatar data URL is not valid base64: {exc}") from exc


def validate_avatar_ref(ref: str) -> str:
    """
    Return the avatar reference unchanged if it is usable.

    Accepts one of the preset ids or a base64 image data URL no larger than
    MAX_AVATAR_BYTES once decoded.
    """
    ref = ref.strip()
    if is_preset(ref):
        return ref
    raw = decode_data_url(ref)
    if not raw:
        raise ValueError("avatar image is empty")
    if len(raw) > MAX_AVATAR_BYTES:
        raise ValueError(
            f"avatar image is {len(raw)} bytes (maximum is {MAX_AVATAR_BYTES})"
        )
    return ref
