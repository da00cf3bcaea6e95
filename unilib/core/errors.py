from fastapi import status


class LibraryError(Exception):
    """Error base de reglas de negocio de la biblioteca."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(LibraryError):
    """El recurso pedido no existe (o está borrado lógicamente)."""

    status_code = status.HTTP_404_NOT_FOUND


class BusinessRuleError(LibraryError):
    """La operación viola una regla de circulación."""


class ConflictError(LibraryError):
    """Duplicados: email, ISBN, student_id, nombre de editorial..."""

    status_code = status.HTTP_409_CONFLICT


class PermissionDeniedError(LibraryError):
    status_code = status.HTTP_403_FORBIDDEN
