# db/__init__.py
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

# Detecta Postgres x SQLite
DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///atb.db").strip()

def is_postgres(url: Optional[str] = None) -> bool:
    return (url or DATABASE_URL).startswith(("postgres://", "postgresql://"))

# ---------------------------
# Conexões (psycopg | sqlite)
# ---------------------------
def _ensure_sqlite_path(url: str) -> str:
    # Aceita: sqlite:///arquivo.db | sqlite:////abs/arquivo.db | atb.db
    if url.startswith("sqlite:////"):
        return url.replace("sqlite:////", "/", 1)
    if url.startswith("sqlite:///"):
        return url.replace("sqlite:///", "", 1)
    return url

def get_connection(url: Optional[str] = None):
    """
    Retorna uma conexão aberta (psycopg ou sqlite3).
    Para Postgres: autocommit desabilitado; commit/rollback feito em db_cursor().
    """
    url = url or DATABASE_URL
    if is_postgres(url):
        import psycopg
        from psycopg.rows import dict_row

        # Supabase/Neon exigem sslmode=require; já vem na URL
        return psycopg.connect(url, row_factory=dict_row)

    import sqlite3

    path = _ensure_sqlite_path(url)
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path, timeout=30, isolation_level=None)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL;")
    return conn

@contextmanager
def db_cursor(url: Optional[str] = None):
    """
    Context manager que abre conexão + cursor e faz commit/rollback seguro.
    Usa transação explícita em ambos os bancos.
    """
    url = url or DATABASE_URL
    conn = get_connection(url)
    cur = None
    try:
        cur = conn.cursor()
        if not is_postgres(url):
            # psycopg já inicia transação na primeira operação
            conn.execute("BEGIN")
        yield cur
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        if cur is not None:
            cur.close()
        conn.close()

# ---------------------------
# Helpers SQL (placeholders)
# ---------------------------
def qp(sql: str, url: Optional[str] = None) -> str:
    """
    Converte placeholders estilo SQLite ('?') para Postgres ('%s') quando necessário.
    """
    if is_postgres(url):
        return sql.replace("?", "%s")
    return sql

# ---------------------------
# DDL
# ---------------------------
# Uma linha por e-mail normalizado; o upsert depende do UNIQUE em email.
DDL_STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS purchases (
        id                   SERIAL PRIMARY KEY,
        email                TEXT UNIQUE NOT NULL,
        order_id             TEXT,
        customer_name        TEXT,
        customer_first_name  TEXT,
        customer_mobile      TEXT,
        customer_cpf         TEXT,
        customer_city        TEXT,
        customer_state       TEXT,
        product_id           TEXT,
        product_name         TEXT,
        payment_method       TEXT,
        subscription_id      TEXT,
        subscription_status  TEXT,
        approved             BOOLEAN NOT NULL DEFAULT FALSE,
        combo_generated      BOOLEAN NOT NULL DEFAULT FALSE,
        combo_generated_at   TIMESTAMP,
        created_at           TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at           TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
]

def _adapt_ddl_for_sqlite(sql: str, url: Optional[str] = None) -> str:
    if is_postgres(url):
        return sql
    # Ajustes de compatibilidade mínimos para SQLite
    sql = sql.replace("SERIAL PRIMARY KEY", "INTEGER PRIMARY KEY AUTOINCREMENT")
    sql = sql.replace("BOOLEAN NOT NULL DEFAULT FALSE", "INTEGER NOT NULL DEFAULT 0")
    sql = sql.replace("TIMESTAMP DEFAULT CURRENT_TIMESTAMP", "DATETIME DEFAULT CURRENT_TIMESTAMP")
    return sql

def init_db(url: Optional[str] = None):
    """
    Cria as tabelas se não existirem. Idempotente.
    """
    with db_cursor(url) as cur:
        for stmt in DDL_STATEMENTS:
            cur.execute(_adapt_ddl_for_sqlite(stmt, url))
