"""
Error taxonomy for the ingestion pipeline.
Every request-level failure carries the HTTP status the endpoint answers with.
"""


class IngestError(Exception):
    code = "ingest_error"
    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code


class MalformedPayload(IngestError):
    code = "malformed_payload"
    status_code = 400


class UnroutablePayload(IngestError):
    code = "unroutable_payload"
    status_code = 400


class MissingSubobject(IngestError):
    """Routed envelope without its det/health block; acknowledged and dropped."""

    code = "missing_subobject"
    status_code = 200


class Unauthorized(IngestError):
    code = "unauthorized"
    status_code = 401


class PersistenceFailure(IngestError):
    code = "persistence_failure"
    status_code = 500


class BroadcastFailure(Exception):
    """Non-fatal: a subscriber could not be reached."""
