"""
Error taxonomy for the KPI weights pipeline.

Normalization and deduplication never raise. These are raised by the weight
source (and recovered there) and by the application engine (and surfaced by
the HTTP layer with `status_code`).
"""


class KpiWeightsError(Exception):
    status_code = 500

    def __init__(self, message: str = "", **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        body = {"error": self.message or self.__class__.__name__}
        if self.details:
            body["details"] = self.details
        return body


class InvalidInput(KpiWeightsError):
    """Malformed request or unparseable weight source output."""
    status_code = 400


class NotFound(KpiWeightsError):
    status_code = 404


class PreconditionFailed(KpiWeightsError):
    """Missing default KPI template or missing project weight profile."""
    status_code = 400


class Forbidden(KpiWeightsError):
    status_code = 403


class UpstreamUnavailable(KpiWeightsError):
    """Generative weight source unreachable, timed out or not configured."""
    status_code = 502


class ConcurrentUpdate(KpiWeightsError):
    """Another request currently holds the employee's KPI lock."""
    status_code = 409


class PersistenceError(KpiWeightsError):
    status_code = 500
