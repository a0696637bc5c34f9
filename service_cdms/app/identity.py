"""
Caller identity for ledger invocations.

The caller's organization (its MSP identifier) is resolved once per
invocation by the execution environment and trusted verbatim. The
caller's role is a separate request argument and is not part of the
identity: the role is whatever the caller reports.
"""

from dataclasses import dataclass
from typing import Mapping, Optional

from shared.errors import IdentityResolutionError

DEFAULT_IDENTITY_HEADER = "X-MSP-ID"


@dataclass(frozen=True)
class CallerContext:
    """Explicit per-invocation caller context."""
    msp_id: Optional[str] = None

    def require_msp_id(self) -> str:
        if not self.msp_id:
            raise IdentityResolutionError("failed to get client MSP ID")
        return self.msp_id


def resolve_caller(headers: Mapping[str, str], header_name: str = DEFAULT_IDENTITY_HEADER) -> CallerContext:
    """Build a CallerContext from transport headers."""
    value = headers.get(header_name)
    if value is None:
        # Starlette headers are case-insensitive; plain dicts are not
        value = headers.get(header_name.lower())
    if value is None or not value.strip():
        raise IdentityResolutionError(
            f"missing caller identity header {header_name}",
            details={"header": header_name}
        )
    return CallerContext(msp_id=value.strip())
