"""
Centro notifiche per utente: lista, lettura, cancellazione, iscrizione live.
Le notifiche le crea il job dei promemoria (o altri produttori) via `crea_notifica`.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any

from sqlalchemy import and_, func, select
from sqlalchemy.orm import Session

from .config import LIMITE_NOTIFICHE
from .db import db_session
from .errori import ErroreValidazione, NonTrovato
from .models import Notifica, TipoNotifica
from .realtime import Iscrizione, canale

logger = logging.getLogger(__name__)


def crea_notifica(
    s: Session,
    user_id: str,
    tipo: TipoNotifica,
    titolo: str,
    messaggio: str,
    dati: dict[str, Any] | None = None,
) -> Notifica:
    """Aggiunge la notifica alla sessione del chiamante (il commit lo decide lui)."""
    if not user_id or not titolo or not messaggio:
        raise ErroreValidazione("Destinatario, titolo e messaggio sono obbligatori.")
    n = Notifica(user_id=user_id, type=tipo, title=titolo, message=messaggio, data=dati, is_read=False)
    s.add(n)
    s.flush()
    return n


def _notifica_utente(s: Session, user_id: str, notifica_id: str) -> Notifica:
    # una notifica altrui è indistinguibile da una inesistente
    n = s.get(Notifica, notifica_id)
    if n is None or n.user_id != user_id:
        raise NonTrovato("Notifica", notifica_id)
    return n


def lista_notifiche(user_id: str, limit: int = LIMITE_NOTIFICHE) -> list[dict]:
    """Ultime notifiche dell'utente, dalla più recente."""
    with db_session() as s:
        q = (
            select(Notifica)
            .where(Notifica.user_id == user_id)
            .order_by(Notifica.created_at.desc(), Notifica.id.desc())
            .limit(max(1, min(limit, LIMITE_NOTIFICHE)))
        )
        return [n.to_dict() for n in s.scalars(q)]


def conta_non_lette(user_id: str) -> int:
    with db_session() as s:
        q = select(func.count(Notifica.id)).where(and_(Notifica.user_id == user_id, Notifica.is_read.is_(False)))
        return int(s.execute(q).scalar_one())


def segna_letta(user_id: str, notifica_id: str) -> dict:
    with db_session() as s:
        n = _notifica_utente(s, user_id, notifica_id)
        if not n.is_read:
            n.is_read = True
            s.flush()
        return n.to_dict()


def segna_tutte_lette(user_id: str) -> int:
    """
    Segna come lette solo le righe non lette dell'utente.
    Passa dall'ORM riga per riga così ogni cambio genera il suo evento UPDATE.
    """
    with db_session() as s:
        q = select(Notifica).where(and_(Notifica.user_id == user_id, Notifica.is_read.is_(False)))
        righe = list(s.scalars(q))
        for n in righe:
            n.is_read = True
        s.flush()

    if righe:
        logger.info("Utente %s: %d notifiche segnate come lette", user_id, len(righe))
    return len(righe)


def elimina_notifica(user_id: str, notifica_id: str) -> None:
    with db_session() as s:
        s.delete(_notifica_utente(s, user_id, notifica_id))


def iscrivi_notifiche(user_id: str, loop: asyncio.AbstractEventLoop | None = None) -> Iscrizione:
    """Eventi INSERT/UPDATE su notifications con user_id = utente."""
    return canale.iscrivi(Notifica.__tablename__, user_id, loop)
