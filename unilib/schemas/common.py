from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Cuerpo de los errores de negocio (LibraryError)."""

    success: bool = False
    error: str
