"""Exceptions raised at the engine boundary.

The core resolvers never raise for missing data; absence becomes a flag.
These are reserved for inputs the engine cannot interpret at all.
"""


class KycEngineError(Exception):
    """Base class for all engine errors."""


class PayloadValidationError(KycEngineError):
    """An extraction payload does not satisfy its declared schema."""

    def __init__(self, doc_type: str, detail: str, source_name: str | None = None):
        self.doc_type = doc_type
        self.detail = detail
        self.source_name = source_name
        where = f" [{source_name}]" if source_name else ""
        super().__init__(f"Invalid {doc_type} payload{where}: {detail}")


class MergeInputError(KycEngineError):
    """The modification merger received nothing to merge."""
