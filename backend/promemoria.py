"""
Job periodico dei promemoria (lanciato da fuori, es. cron giornaliero).

Passo A: per ogni appuntamento 'scheduled' di domani, una notifica 'appointment'
al medico dell'appuntamento.

Passo B: follow-up a 30/60/90 giorni esatti dall'ultimo trattamento registrato
(tra quelli con data <= oggi - 30), una notifica 'reminder' a *tutti* i medici
attivi. Il fan-out a tutti i medici è il comportamento attuale del prodotto e
resta così finché non viene deciso diversamente.

Ogni emissione passa dal watermark (reminder_watermarks): rilanciare il job
nello stesso giorno non duplica le notifiche.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, time, timedelta
from typing import Any, Callable

from sqlalchemy import and_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from .auth_models import RuoloUtente, Utente
from .config import MILESTONE_FOLLOWUP
from .db import db_session
from .errori import ErroreBatchFatale, ErroreBatchParziale
from .models import Appuntamento, Paziente, PromemoriaInviato, RegistroTrattamento, StatoAppuntamento, TipoNotifica
from .notifiche import crea_notifica

logger = logging.getLogger(__name__)

KIND_APPUNTAMENTO = "appointment_next_day"
KIND_FOLLOWUP = "followup"


@dataclass(frozen=True)
class _Emissione:
    kind: str
    chiave: str
    user_id: str
    tipo: TipoNotifica
    titolo: str
    messaggio: str
    dati: dict[str, Any]


def _emetti(e: _Emissione) -> bool:
    """
    Scrive watermark + notifica nella stessa transazione.
    False se il promemoria era già stato emesso (anche da un giro concorrente).
    """
    try:
        with db_session() as s:
            gia_inviato = s.execute(
                select(PromemoriaInviato.id).where(
                    and_(
                        PromemoriaInviato.kind == e.kind,
                        PromemoriaInviato.reminder_key == e.chiave,
                        PromemoriaInviato.user_id == e.user_id,
                    )
                )
            ).first()
            if gia_inviato is not None:
                return False

            s.add(PromemoriaInviato(kind=e.kind, reminder_key=e.chiave, user_id=e.user_id))
            s.flush()
            crea_notifica(s, e.user_id, e.tipo, e.titolo, e.messaggio, e.dati)
    except IntegrityError as err:
        if "reminder_watermarks" in str(err.orig) or "uq_watermark" in str(err.orig):
            return False
        raise
    return True


def _emetti_tutte(emissioni: list[_Emissione]) -> int:
    inviati = 0
    for e in emissioni:
        try:
            if _emetti(e):
                inviati += 1
            else:
                logger.debug("Promemoria %s/%s per %s già emesso", e.kind, e.chiave, e.user_id)
        except SQLAlchemyError as err:
            # un promemoria perso non ferma gli altri
            logger.error("%s", ErroreBatchParziale(f"{e.kind} {e.chiave} -> {e.user_id}: {err}"))
    return inviati


def _fmt_ora(ora: time) -> str:
    return ora.strftime("%H:%M")


# =========================
# Passo A: appuntamenti di domani
# =========================
def promemoria_appuntamenti(oggi: date) -> int:
    domani = oggi + timedelta(days=1)

    try:
        with db_session() as s:
            rows = s.execute(
                select(
                    Appuntamento.id,
                    Appuntamento.doctor_id,
                    Appuntamento.patient_id,
                    Appuntamento.appointment_date,
                    Appuntamento.appointment_time,
                    Paziente.name.label("patient_name"),
                )
                .join(Paziente, Paziente.id == Appuntamento.patient_id, isouter=True)
                .where(
                    and_(
                        Appuntamento.appointment_date == domani,
                        Appuntamento.status == StatoAppuntamento.PROGRAMMATO,
                    )
                )
                .order_by(Appuntamento.appointment_time.asc())
            ).all()
    except SQLAlchemyError as err:
        raise ErroreBatchFatale(f"Lettura appuntamenti di domani fallita: {err}") from err

    logger.info("Trovati %d appuntamenti per domani (%s)", len(rows), domani)

    emissioni = [
        _Emissione(
            kind=KIND_APPUNTAMENTO,
            chiave=f"{r.id}@{r.appointment_date.isoformat()}",
            user_id=r.doctor_id,
            tipo=TipoNotifica.APPUNTAMENTO,
            titolo="Promemoria appuntamento",
            messaggio=(
                f"Domani {r.appointment_date.strftime('%d/%m/%Y')} alle {_fmt_ora(r.appointment_time)}: "
                f"appuntamento con {r.patient_name or 'paziente sconosciuto'}."
            ),
            dati={
                "appointment_id": r.id,
                "patient_id": r.patient_id,
                "patient_name": r.patient_name,
                "appointment_date": r.appointment_date.isoformat(),
                "appointment_time": _fmt_ora(r.appointment_time),
            },
        )
        for r in rows
    ]
    return _emetti_tutte(emissioni)


# =========================
# Passo B: follow-up a 30/60/90 giorni
# =========================
def _ultimi_trattamenti(s, cutoff: date) -> dict[str, Any]:
    """Per paziente, il trattamento più recente tra quelli con data <= cutoff."""
    rows = s.execute(
        select(
            RegistroTrattamento.patient_id,
            RegistroTrattamento.data_trattamento,
            Paziente.name.label("patient_name"),
        )
        .join(Paziente, Paziente.id == RegistroTrattamento.patient_id, isouter=True)
        .where(RegistroTrattamento.data_trattamento <= cutoff)
        .order_by(RegistroTrattamento.data_trattamento.desc())
    ).all()

    ultimi: dict[str, Any] = {}
    for r in rows:
        # ordinati dal più recente: vince la prima occorrenza
        ultimi.setdefault(r.patient_id, r)
    return ultimi


def promemoria_followup(oggi: date) -> int:
    cutoff = oggi - timedelta(days=min(MILESTONE_FOLLOWUP))

    try:
        with db_session() as s:
            ultimi = _ultimi_trattamenti(s, cutoff)
            medici = s.execute(
                select(Utente.id, Utente.full_name).where(
                    and_(Utente.role == RuoloUtente.MEDICO, Utente.is_active.is_(True))
                )
            ).all()
    except SQLAlchemyError as err:
        raise ErroreBatchFatale(f"Lettura registro trattamenti fallita: {err}") from err

    emissioni: list[_Emissione] = []
    for patient_id, r in ultimi.items():
        giorni = (oggi - r.data_trattamento).days
        if giorni not in MILESTONE_FOLLOWUP:
            continue

        nome = r.patient_name or "paziente sconosciuto"
        logger.info("Follow-up a %d giorni per %s (%s)", giorni, nome, patient_id)
        for medico in medici:
            emissioni.append(
                _Emissione(
                    kind=KIND_FOLLOWUP,
                    chiave=f"{patient_id}:{giorni}:{r.data_trattamento.isoformat()}",
                    user_id=medico.id,
                    tipo=TipoNotifica.PROMEMORIA,
                    titolo="Promemoria follow-up",
                    messaggio=(
                        f"Sono passati {giorni} giorni dall'ultimo trattamento di {nome} "
                        f"({r.data_trattamento.strftime('%d/%m/%Y')}): valutare un controllo."
                    ),
                    dati={
                        "patient_id": patient_id,
                        "patient_name": r.patient_name,
                        "last_treatment_date": r.data_trattamento.isoformat(),
                        "days_since_treatment": giorni,
                    },
                )
            )

    return _emetti_tutte(emissioni)


# =========================
# Trigger del batch
# =========================
def esegui_promemoria(clock: Callable[[], date] = date.today) -> dict[str, Any]:
    """
    Entry point senza parametri per il cron: passo A poi passo B.
    Gli errori restano nei log; al chiamante solo l'esito.
    """
    oggi = clock()
    logger.info("Avvio promemoria per %s", oggi)
    try:
        inviati = promemoria_appuntamenti(oggi)
        inviati += promemoria_followup(oggi)
    except ErroreBatchFatale as err:
        logger.exception("Giro promemoria interrotto")
        return {"success": False, "error": str(err)}

    logger.info("Promemoria inviati: %d", inviati)
    return {"success": True, "reminders_sent": inviati}
