"""
Storage Module: filesystem-backed content store.

Provides:
- ContentStore, one implementation over pluggable key resolvers
- File-signature detection for id-addressed content
- Chunked, cancellable transfer and hashing helpers

Example:
    >>> store = ContentStore.for_ids(StorageConfig(root_dir=Path("./data")))
    >>> result = await store.store(ContentId.generate(), ContentPayload(stream))
    >>> result.value.file_name
    '3f0c...e1.pdf'
"""

from fileshare.storage.content_store import ContentStore
from fileshare.storage.protocols import ContentProvider
from fileshare.storage.resolvers import (
    IdKeyResolver,
    KeyResolver,
    NameKeyResolver,
    temp_path_for,
)
from fileshare.storage.signatures import (
    SIGNATURE_RULES,
    SignatureRule,
    detect_extension,
    is_plain_text,
    sniff_stream,
)

__all__ = [
    "ContentStore",
    "ContentProvider",
    "KeyResolver",
    "NameKeyResolver",
    "IdKeyResolver",
    "temp_path_for",
    "SIGNATURE_RULES",
    "SignatureRule",
    "detect_extension",
    "is_plain_text",
    "sniff_stream",
]
