# ============================================================================
# SCOPE: APPLICATION LAYER (Visits)
# Description: Response envelope of the clinic REST backend.
# ============================================================================
"""Backend Response Envelope.

Every backend endpoint wraps its payload as ``{"data": ..., "message": ...}``.
Adapters parse responses into ``ApiEnvelope[T]`` exactly once, at the
boundary, so nothing past the adapter guesses the payload shape.
"""

from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict

from clinicflow.core.domain.exceptions import IntegrationException

T = TypeVar("T")


class ApiEnvelope(BaseModel, Generic[T]):
    """Structured response from the clinic backend."""

    model_config = ConfigDict(extra="ignore")

    data: T | None = None
    message: str | None = None
    code: int | str | None = None

    def unwrap(self, service: str) -> T:
        """Return ``data`` or fail when the backend sent an empty envelope.

        Raises:
            IntegrationException: If ``data`` is missing.
        """
        if self.data is None:
            raise IntegrationException(service, self.message or "Response envelope carried no data")
        return self.data
