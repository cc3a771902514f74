"""Value objects — self-validating domain primitives."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping

from completion_gateway.domain.entities import ProviderId

CREDENTIAL_HEADER_PREFIX = "credential-"
LEGACY_CREDENTIAL_HEADER_PREFIX = "x-api-key-"


@dataclass(frozen=True, slots=True)
class Credential:
    """Caller-supplied bearer secret for exactly one provider and one request.

    The raw value is excluded from ``repr`` so it never lands in a log line;
    use :attr:`masked` when a hint is needed.
    """

    value: str = field(repr=False)

    @classmethod
    def from_headers(
        cls, headers: Mapping[str, str], provider_id: ProviderId
    ) -> Credential | None:
        """Read ``credential-<provider>`` (or the legacy ``x-api-key-<provider>``)."""
        for prefix in (CREDENTIAL_HEADER_PREFIX, LEGACY_CREDENTIAL_HEADER_PREFIX):
            raw = headers.get(f"{prefix}{provider_id.value}")
            if raw and raw.strip():
                return cls(raw.strip())
        return None

    @property
    def masked(self) -> str:
        if len(self.value) <= 8:
            return "****"
        return f"{self.value[:4]}…{self.value[-4:]}"

    def __str__(self) -> str:
        return self.masked
