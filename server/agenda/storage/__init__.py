from agenda.storage.backends import BackendError, GistBackend, SqlBlobBackend, StorageBackend
from agenda.storage.coerce import WireShape, classify, coerce_records
from agenda.storage.document_store import DocumentStore, ReadResult, WriteResult, build_backends, build_document_store

__all__ = [
    "BackendError",
    "DocumentStore",
    "GistBackend",
    "ReadResult",
    "SqlBlobBackend",
    "StorageBackend",
    "WireShape",
    "WriteResult",
    "build_backends",
    "build_document_store",
    "classify",
    "coerce_records",
]
