"""
Hierarquia de erros do fluxo compra -> acesso -> geração.

Cada erro carrega o status HTTP que as rotas devolvem ao chamador.
"""


class ComboError(Exception):
    """Base de todos os erros de negócio."""

    status_code = 500

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ValidationError(ComboError):
    """Campos obrigatórios ausentes ou inválidos."""

    status_code = 400


class AuthenticationError(ComboError):
    """Assinatura do webhook não confere."""

    status_code = 401


class Unauthorized(ComboError):
    """E-mail sem direito de acesso."""

    status_code = 401


class NotFound(Unauthorized):
    """Nenhuma compra aprovada para o e-mail."""

    def __init__(self, email: str) -> None:
        self.email = email
        super().__init__("Acesso não autorizado. Nenhuma compra aprovada encontrada para este e-mail.")


class AlreadyConsumed(ComboError):
    """A geração única já foi utilizada."""

    status_code = 403

    def __init__(self, email: str) -> None:
        self.email = email
        super().__init__("Seu mapa espiritual já foi gerado. Cada compra permite uma única geração.")


class UpstreamError(ComboError):
    """Falha (ou resposta vazia) do serviço de geração de texto."""

    status_code = 500


class StoreError(ComboError):
    """Falha de operação no banco de compras."""

    status_code = 500

    def __init__(self, operation: str, cause: Exception) -> None:
        self.operation = operation
        self.cause = cause
        super().__init__(f"Erro no banco ({operation}): {cause}")
