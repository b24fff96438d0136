import hashlib
from typing import Optional, Union

UPLOAD_ID_PREFIX = "upld"


def _text(value) -> str:
    return "" if value is None else str(value)


def resolve_upload_id(
    user_id: str,
    file_id: Optional[str],
    file_name: Optional[str],
    file_size: Optional[Union[int, str]],
) -> str:
    """Derive the upload's primary key from the fields that define it.

    Two uploads with the same user, client file id, name and size always
    collapse onto one record; that is the whole dedup mechanism. Missing
    values render as empty strings and the size in decimal, so a resumed
    session from a different client arrives at the same id.
    """
    fingerprint = "-".join((_text(file_id), _text(file_name), _text(file_size)))
    digest = hashlib.sha256(fingerprint.encode("utf-8")).hexdigest()
    return f"{UPLOAD_ID_PREFIX}-{_text(user_id)}-{digest}"
