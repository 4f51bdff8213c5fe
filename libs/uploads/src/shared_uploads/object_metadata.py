"""
User metadata signed into every presigned PUT and read back with HEAD at
confirmation. S3 only carries ASCII in metadata values, so both values are
percent-encoded.
"""
from typing import Mapping, Optional
from urllib.parse import parse_qsl, quote, unquote, urlsplit

OWNER_ID = "owner-id"
ORIGINAL_FILE_NAME = "original-file-name"
HEADER_PREFIX = "x-amz-meta-"


def storage_metadata(owner_id: str, file_name: str) -> dict[str, str]:
    return {
        OWNER_ID: quote(str(owner_id), safe=""),
        ORIGINAL_FILE_NAME: quote(file_name, safe=""),
    }


def metadata_owner(metadata: Mapping[str, str]) -> Optional[str]:
    value = _lowered(metadata).get(OWNER_ID)
    return unquote(value) if value else None


def metadata_file_name(metadata: Mapping[str, str]) -> Optional[str]:
    value = _lowered(metadata).get(ORIGINAL_FILE_NAME)
    if not value:
        return None
    return unquote(value).strip() or None


def required_headers(signed_url: str, metadata: Mapping[str, str]) -> dict[str, str]:
    """Metadata headers the PUT has to carry, unless the signer already hoisted them into the query."""
    in_query = {name.lower() for name, _ in parse_qsl(urlsplit(signed_url).query)}
    headers = {}
    for name, value in metadata.items():
        header = f"{HEADER_PREFIX}{name}"
        if header not in in_query:
            headers[header] = value
    return headers


def _lowered(metadata: Mapping[str, str]) -> dict[str, str]:
    return {name.lower(): value for name, value in (metadata or {}).items()}
