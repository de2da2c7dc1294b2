"""
Posta interna tra membri dello staff.
Stesso canale realtime delle notifiche, ma chiave = to_user_id e tabella separata:
i messaggi non entrano nel contatore delle notifiche non lette.
"""
from __future__ import annotations

import asyncio
import logging

from sqlalchemy import and_, func, or_, select

from .auth_models import Utente
from .db import db_session
from .errori import ErroreValidazione, NonTrovato
from .models import Appuntamento, MessaggioInterno, Paziente
from .realtime import Iscrizione, canale

logger = logging.getLogger(__name__)


def invia_messaggio(
    from_user_id: str,
    to_user_id: str,
    oggetto: str,
    contenuto: str,
    paziente_id: str | None = None,
    appuntamento_id: str | None = None,
) -> dict:
    oggetto = (oggetto or "").strip()
    contenuto = (contenuto or "").strip()
    if not to_user_id or not oggetto or not contenuto:
        raise ErroreValidazione("Destinatario, oggetto e contenuto sono obbligatori.")
    if to_user_id == from_user_id:
        raise ErroreValidazione("Non puoi inviare un messaggio a te stesso.")

    with db_session() as s:
        dest = s.get(Utente, to_user_id)
        if dest is None or not dest.is_active:
            raise NonTrovato("Utente", to_user_id)
        if paziente_id and s.get(Paziente, paziente_id) is None:
            raise NonTrovato("Paziente", paziente_id)
        if appuntamento_id and s.get(Appuntamento, appuntamento_id) is None:
            raise NonTrovato("Appuntamento", appuntamento_id)

        m = MessaggioInterno(
            from_user_id=from_user_id,
            to_user_id=to_user_id,
            subject=oggetto,
            content=contenuto,
            patient_id=paziente_id or None,
            appointment_id=appuntamento_id or None,
        )
        s.add(m)
        s.flush()
        logger.info("Messaggio %s da %s a %s", m.id, from_user_id, to_user_id)
        return m.to_dict()


def lista_messaggi(user_id: str) -> list[dict]:
    """Inviati e ricevuti, dal più recente."""
    with db_session() as s:
        q = (
            select(MessaggioInterno)
            .where(or_(MessaggioInterno.from_user_id == user_id, MessaggioInterno.to_user_id == user_id))
            .order_by(MessaggioInterno.created_at.desc(), MessaggioInterno.id.desc())
        )
        return [m.to_dict() for m in s.scalars(q)]


def conta_messaggi_non_letti(user_id: str) -> int:
    with db_session() as s:
        q = select(func.count(MessaggioInterno.id)).where(
            and_(MessaggioInterno.to_user_id == user_id, MessaggioInterno.is_read.is_(False))
        )
        return int(s.execute(q).scalar_one())


def segna_messaggio_letto(user_id: str, messaggio_id: str) -> dict:
    # solo il destinatario può segnarlo come letto
    with db_session() as s:
        m = s.get(MessaggioInterno, messaggio_id)
        if m is None or m.to_user_id != user_id:
            raise NonTrovato("Messaggio", messaggio_id)
        if not m.is_read:
            m.is_read = True
            s.flush()
        return m.to_dict()


def iscrivi_messaggi(user_id: str, loop: asyncio.AbstractEventLoop | None = None) -> Iscrizione:
    return canale.iscrivi(MessaggioInterno.__tablename__, user_id, loop)
