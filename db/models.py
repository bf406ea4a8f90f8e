from dataclasses import dataclass
from typing import Any, Optional

from . import DATABASE_URL, db_cursor, init_db, qp
from services.errors import StoreError


# Campos copiados do webhook sem transformação (além de email/approved/combo_generated)
PASSTHROUGH_FIELDS = (
    "order_id",
    "customer_name",
    "customer_first_name",
    "customer_mobile",
    "customer_cpf",
    "customer_city",
    "customer_state",
    "product_id",
    "product_name",
    "payment_method",
    "subscription_id",
    "subscription_status",
)


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


@dataclass
class PurchaseRecord:
    email: str
    order_id: Optional[str] = None
    customer_name: Optional[str] = None
    approved: bool = False
    combo_generated: bool = False
    product_id: Optional[str] = None
    combo_generated_at: Optional[Any] = None

    @classmethod
    def from_row(cls, row) -> "PurchaseRecord":
        return cls(
            email=row["email"],
            order_id=row["order_id"],
            customer_name=row["customer_name"],
            approved=bool(row["approved"]),
            combo_generated=bool(row["combo_generated"]),
            product_id=row["product_id"],
            combo_generated_at=row["combo_generated_at"],
        )


class PurchaseStore:
    """
    Acesso à tabela `purchases`, uma linha por e-mail normalizado.
    Toda falha do driver sobe como StoreError.
    """

    def __init__(self, database_url: Optional[str] = None):
        self.database_url = database_url or DATABASE_URL

    def _sql(self, q: str) -> str:
        return qp(q, self.database_url)

    def ensure_schema(self) -> None:
        try:
            init_db(self.database_url)
        except Exception as e:
            raise StoreError("init_db", e) from e

    def ping(self) -> None:
        try:
            with db_cursor(self.database_url) as cur:
                cur.execute("SELECT 1")
                cur.fetchone()
        except Exception as e:
            raise StoreError("ping", e) from e

    def get(self, email: str) -> Optional[PurchaseRecord]:
        email = normalize_email(email)
        try:
            with db_cursor(self.database_url) as cur:
                cur.execute(
                    self._sql(
                        "SELECT email, order_id, customer_name, approved, combo_generated, "
                        "product_id, combo_generated_at FROM purchases WHERE email = ?"
                    ),
                    (email,),
                )
                row = cur.fetchone()
        except Exception as e:
            raise StoreError("get", e) from e
        return PurchaseRecord.from_row(row) if row else None

    def upsert(self, email: str, fields: dict) -> None:
        """
        Insere ou atualiza a compra aprovada. Reentregas do mesmo evento
        sobrescrevem os campos; combo_generated de linha existente fica intacto.
        """
        email = normalize_email(email)
        values = [fields.get(name) or "" for name in PASSTHROUGH_FIELDS]
        cols = ", ".join(PASSTHROUGH_FIELDS)
        marks = ", ".join("?" for _ in PASSTHROUGH_FIELDS)
        updates = ", ".join(f"{name} = excluded.{name}" for name in PASSTHROUGH_FIELDS)
        sql = (
            f"INSERT INTO purchases (email, {cols}, approved, combo_generated) "
            f"VALUES (?, {marks}, ?, ?) "
            f"ON CONFLICT (email) DO UPDATE SET {updates}, "
            "approved = excluded.approved, updated_at = CURRENT_TIMESTAMP"
        )
        try:
            with db_cursor(self.database_url) as cur:
                cur.execute(self._sql(sql), (email, *values, True, False))
        except Exception as e:
            raise StoreError("upsert", e) from e

    def delete(self, email: str) -> int:
        email = normalize_email(email)
        try:
            with db_cursor(self.database_url) as cur:
                cur.execute(self._sql("DELETE FROM purchases WHERE email = ?"), (email,))
                return cur.rowcount
        except Exception as e:
            raise StoreError("delete", e) from e

    def set_combo_generated(self, email: str, value: bool) -> None:
        email = normalize_email(email)
        try:
            with db_cursor(self.database_url) as cur:
                cur.execute(
                    self._sql(
                        "UPDATE purchases SET combo_generated = ?, updated_at = CURRENT_TIMESTAMP WHERE email = ?"
                    ),
                    (value, email),
                )
        except Exception as e:
            raise StoreError("set_combo_generated", e) from e

    # --- Reserva atômica da geração única ---
    def reserve_combo(self, email: str) -> bool:
        """
        Vira combo_generated de false para true num único UPDATE condicional.
        Retorna False se outra requisição já reservou (ou se a compra sumiu).
        """
        email = normalize_email(email)
        try:
            with db_cursor(self.database_url) as cur:
                cur.execute(
                    self._sql(
                        "UPDATE purchases SET combo_generated = ?, updated_at = CURRENT_TIMESTAMP "
                        "WHERE email = ? AND approved = ? AND combo_generated = ?"
                    ),
                    (True, email, True, False),
                )
                return cur.rowcount == 1
        except Exception as e:
            raise StoreError("reserve_combo", e) from e

    def release_combo(self, email: str) -> None:
        """Desfaz a reserva quando a geração falha."""
        self.set_combo_generated(email, False)

    def stamp_combo_generated(self, email: str) -> None:
        email = normalize_email(email)
        try:
            with db_cursor(self.database_url) as cur:
                cur.execute(
                    self._sql(
                        "UPDATE purchases SET combo_generated_at = CURRENT_TIMESTAMP, "
                        "updated_at = CURRENT_TIMESTAMP WHERE email = ?"
                    ),
                    (email,),
                )
        except Exception as e:
            raise StoreError("stamp_combo_generated", e) from e
