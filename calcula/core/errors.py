"""
Error taxonomy shared by services and routes.

Services raise these; the handlers registered in calcula.main turn them into
the `{"error": "..."}` envelope with the matching status code.
"""
from fastapi import status


class CalculaError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    public_message = None

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message

    def to_public(self) -> str:
        """Message safe to show to the caller."""
        return self.public_message or self.message


class AuthenticationError(CalculaError):
    status_code = status.HTTP_401_UNAUTHORIZED


class AuthorizationError(CalculaError):
    status_code = status.HTTP_403_FORBIDDEN


class ValidationError(CalculaError):
    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(CalculaError):
    status_code = status.HTTP_404_NOT_FOUND


class PlanLimitExceededError(CalculaError):
    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, message: str, resource: str, used: int, maximum: int):
        super().__init__(message)
        self.resource = resource
        self.used = used
        self.maximum = maximum


class RemoteServiceError(CalculaError):
    """Payments processor or database call failed. Original error stays server-side."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    public_message = "Serviço temporariamente indisponível. Tente novamente em instantes."


class UsageUnavailableError(RemoteServiceError):
    public_message = "Não foi possível carregar o uso do plano. Tente novamente."
