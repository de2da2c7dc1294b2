"""
Password e token di accesso dello staff.

Il token porta solo l'id utente in `sub` (più claim informativi come il ruolo):
ruolo e stato attivo si rileggono sempre dal DB a ogni richiesta.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt
from passlib.context import CryptContext

from backend.config import ACCESS_TOKEN_EXPIRE_MINUTES, JWT_ALG, JWT_SECRET

_pwd = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return _pwd.hash(password)


def verifica_password(password: str, password_hash: str) -> bool:
    return _pwd.verify(password, password_hash)


def crea_token(user_id: str, durata: timedelta | None = None, **claims: Any) -> str:
    adesso = datetime.now(timezone.utc)
    scadenza = adesso + (durata if durata is not None else timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    payload: dict[str, Any] = {
        **claims,
        "sub": user_id,
        "iat": int(adesso.timestamp()),
        "exp": int(scadenza.timestamp()),
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALG)


def _normalizza(token: str | None) -> str:
    # token incollati a mano (query string del WebSocket): spazi e virgolette di troppo
    return (token or "").strip().strip('"').strip("'")


def utente_da_token(token: str | None) -> str | None:
    """Id utente del token; None se manca, è scaduto o la firma non torna."""
    token = _normalizza(token)
    if not token:
        return None
    try:
        claims = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALG])
    except JWTError:
        return None
    return claims.get("sub")
