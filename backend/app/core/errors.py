from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


class ServiceError(Exception):
    status_code = 500
    default_message = "Erro interno"

    def __init__(self, message: Optional[str] = None, status_code: Optional[int] = None):
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class Unauthorized(ServiceError):
    status_code = 401
    default_message = "Não autorizado"


class Forbidden(ServiceError):
    status_code = 403
    default_message = "Acesso negado"


class ValidationError(ServiceError):
    status_code = 400
    default_message = "Dados inválidos"


class Conflict(ServiceError):
    # Mesmo status que o restante dos erros de requisição da API.
    status_code = 400
    default_message = "Registro em uso"


class NotFound(ServiceError):
    status_code = 404
    default_message = "Registro não encontrado"


class UpstreamError(ServiceError):
    status_code = 502
    default_message = "Falha no serviço externo"


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ServiceError)
    async def handle_service_error(request: Request, exc: ServiceError):
        headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.message},
            headers=headers,
        )
