"""Maps engine and provider errors to HTTP responses."""

from fastapi import HTTPException

from app.services.pricing.errors import InvalidInput, NotFound, PricingError
from app.services.tbo_client import ProviderError, ProviderErrorKind

# How a client should react to a failed provider call
PROVIDER_ERROR_HTTP = {
    ProviderErrorKind.RATE_CHANGED: (409, "refresh_and_retry"),
    ProviderErrorKind.NO_AVAILABILITY: (409, "choose_another_hotel"),
    ProviderErrorKind.TIMEOUT: (504, "retry_later"),
    ProviderErrorKind.INVALID_RESPONSE: (502, "retry_later"),
    ProviderErrorKind.UNAVAILABLE: (503, "retry_later"),
}


def http_error(e: PricingError | ProviderError) -> HTTPException:
    if isinstance(e, InvalidInput):
        return HTTPException(status_code=400, detail={"message": str(e), "violations": e.violations})
    if isinstance(e, NotFound):
        return HTTPException(status_code=404, detail={"message": str(e)})
    if isinstance(e, ProviderError):
        status, action = PROVIDER_ERROR_HTTP[e.kind]
        return HTTPException(
            status_code=status,
            detail={"message": e.message, "kind": e.kind.value, "action": action, **e.details},
        )
    return HTTPException(status_code=400, detail={"message": str(e)})
