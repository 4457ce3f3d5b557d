# Overview: Maps domain errors raised by the services onto JSON error responses.

from flask import jsonify

from .permissions import PermissionDenied
from .services.auth_service import NotAuthenticated
from .services.billing_service import BillingError
from .services.discount_service import DiscountError
from .services.entity_store import EntityNotFound, ImmutableDocumentError
from .services.lifecycle_service import InvalidTransition, LifecycleError
from .services.payment_service import PaymentError
from .validation import ValidationError


# Everything a route should answer with a 4xx instead of logging as a 500
DOMAIN_ERRORS = (
    ValidationError,
    LifecycleError,
    BillingError,
    DiscountError,
    PaymentError,
    EntityNotFound,
    ImmutableDocumentError,
    PermissionDenied,
    NotAuthenticated,
)


def status_for(exc: Exception) -> int:
    if isinstance(exc, NotAuthenticated):
        return 401
    if isinstance(exc, PermissionDenied):
        return 403
    if isinstance(exc, EntityNotFound):
        return 404
    if isinstance(exc, InvalidTransition):
        return 409
    return 400


def domain_error_response(exc: Exception):
    body = {"error": str(exc), "type": type(exc).__name__}
    if isinstance(exc, InvalidTransition):
        body["operation"] = exc.operation
        body["current_status"] = exc.current.value
        if exc.requested is not None:
            body["requested_status"] = exc.requested.value
    return jsonify(body), status_for(exc)
