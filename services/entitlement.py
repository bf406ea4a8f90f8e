import logging
from typing import Optional, Tuple

from db.models import PurchaseRecord, PurchaseStore, normalize_email
from services.errors import AlreadyConsumed, NotFound

log = logging.getLogger(__name__)


class EntitlementGate:
    """
    Pré-checagem da geração única:
      - sem compra ou approved=false -> NotFound
      - approved=true e combo_generated=true -> AlreadyConsumed
      - caso contrário devolve o registro
    """

    def __init__(self, store: PurchaseStore):
        self.store = store

    def check_access(self, email: str) -> PurchaseRecord:
        email = normalize_email(email)
        record = self.store.get(email)
        if record is None or not record.approved:
            log.info("[ACESSO] %s sem compra aprovada.", email)
            raise NotFound(email)
        if record.combo_generated:
            log.info("[ACESSO] %s já utilizou a geração.", email)
            raise AlreadyConsumed(email)
        return record

    def access_status(self, email: str) -> Tuple[bool, Optional[str], Optional[PurchaseRecord]]:
        """
        (acesso, motivo, registro) para a rota de validação.
        acesso segue só approved; a geração única é cobrada no gerar-combo.
        """
        email = normalize_email(email)
        record = self.store.get(email)
        if record is None or not record.approved:
            return False, "compra_nao_encontrada", None
        if record.combo_generated:
            return True, "combo_ja_gerado", record
        return True, None, record
