"""
Erros de domínio das cobranças.

Cada erro carrega o status HTTP com que deve ser respondido; o handler
registrado em main.py converte para {"error": mensagem}.
"""


class CobrancaError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.message}


class GatewayConfigError(CobrancaError):
    """Gateway ausente, provedor errado ou sem API key."""
    status_code = 400


class ValidationError(CobrancaError):
    status_code = 400


class NotFoundError(CobrancaError):
    status_code = 404


class InvalidStateError(CobrancaError):
    """Transição não permitida a partir do status atual."""
    status_code = 409


class GatewayError(CobrancaError):
    """O gateway recusou ou falhou a chamada."""
    status_code = 502


class ConfirmationRequired(CobrancaError):
    """A operação precisa de confirmação explícita do usuário (confirmed=true)."""
    status_code = 409

    def __init__(self, title: str, message: str, confirm_text: str = "Confirmar"):
        super().__init__(message)
        self.title = title
        self.confirm_text = confirm_text

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "confirmation_required": True,
            "title": self.title,
            "confirm_text": self.confirm_text,
        }
