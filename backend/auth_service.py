from __future__ import annotations

import logging

from sqlalchemy import select

from backend.auth_models import RuoloUtente, Utente
from backend.auth_security import hash_password, verifica_password
from backend.db import db_session
from backend.errori import ErroreValidazione

logger = logging.getLogger(__name__)


def _normalizza_username(username: str | None) -> str:
    return (username or "").strip().lower()


def crea_utente(
    username: str,
    password: str,
    full_name: str = "",
    role: RuoloUtente | str = RuoloUtente.RECEPTION,
    email: str | None = None,
) -> str:
    """Nuovo membro dello staff. Ritorna l'id."""
    username = _normalizza_username(username)
    if not username or not password:
        raise ErroreValidazione("Username e password sono obbligatori.")
    try:
        ruolo = RuoloUtente(role)
    except ValueError:
        raise ErroreValidazione(f"Ruolo non valido: {role!r}") from None

    with db_session() as s:
        if s.scalar(select(Utente.id).where(Utente.username == username)) is not None:
            raise ErroreValidazione("Username già registrato.")

        u = Utente(
            username=username,
            password_hash=hash_password(password),
            full_name=(full_name or username).strip(),
            email=email,
            role=ruolo,
            is_active=True,
        )
        s.add(u)
        s.flush()
        logger.info("Creato utente %s (%s)", username, ruolo.value)
        return u.id


def autentica(username: str, password: str) -> Utente | None:
    """Utente attivo con queste credenziali, altrimenti None."""
    username = _normalizza_username(username)
    with db_session() as s:
        u = s.scalar(select(Utente).where(Utente.username == username))
    if u is None or not u.is_active or not verifica_password(password, u.password_hash):
        logger.info("Login fallito per %r", username)
        return None
    return u


def utente_attivo(user_id: str | None) -> Utente | None:
    """L'utente dietro un token: None se non esiste più o è stato disattivato."""
    if not user_id:
        return None
    with db_session() as s:
        u = s.get(Utente, user_id)
    return u if u is not None and u.is_active else None
