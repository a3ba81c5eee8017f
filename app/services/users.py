from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from app.models.users import User

_UPSERT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def ensure_user(db: Session, wallet_address: str) -> str:
    """
    Upsert a wallet into the users table and return the normalized address.

    Idempotent (INSERT ... ON CONFLICT DO NOTHING), so it is safe before any
    write that references users.wallet_address. The caller owns the commit.
    """
    address = (wallet_address or "").strip().lower()
    if not address:
        raise ValueError("wallet_address is required")

    insert = _UPSERT_INSERTS.get(db.get_bind().dialect.name)
    if insert is None:
        if db.get(User, address) is None:
            db.add(User(wallet_address=address))
            db.flush()
        return address

    stmt = insert(User).values(wallet_address=address).on_conflict_do_nothing(
        index_elements=[User.wallet_address]
    )
    db.execute(stmt)
    return address
