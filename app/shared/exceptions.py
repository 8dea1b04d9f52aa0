"""Application error taxonomy, mapped to HTTP status codes by main.py"""

from typing import Optional


class PetCareError(Exception):
    """Base class for errors surfaced to API callers as {"error": message}"""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(PetCareError):
    """Missing or malformed input"""

    status_code = 400


class AuthError(PetCareError):
    """Missing or invalid credentials"""

    status_code = 401


class ForbiddenError(PetCareError):
    status_code = 403


class NotFoundError(PetCareError):
    """Referenced entity absent or not visible to the caller"""

    status_code = 404


class ConflictError(PetCareError):
    """Slot full or a competing write won"""

    status_code = 409


class GatewayError(PetCareError):
    """External payment provider failure - network, timeout or rejected request"""

    status_code = 500

    def __init__(self, message: str, gateway_response: Optional[dict] = None):
        super().__init__(message)
        self.gateway_response = gateway_response


class StoreError(PetCareError):
    """Persistence failure"""

    status_code = 500
