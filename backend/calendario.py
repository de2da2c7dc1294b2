"""
Griglia degli slot prenotabili e occupazione.

La griglia è la stessa per tutti i medici (09:00-17:00, passo 30 minuti);
l'occupazione invece è sempre per medico e si ricava dagli appuntamenti
non annullati, senza tabelle di slot.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Iterable

from sqlalchemy import and_, select
from sqlalchemy.orm import Session

from .config import ORA_APERTURA, ORA_CHIUSURA, PASSO_SLOT_MINUTI
from .db import db_session
from .errori import ErroreValidazione
from .models import Appuntamento, StatoAppuntamento


@dataclass(frozen=True, order=True)
class Slot:
    data: date
    ora: time

    @property
    def inizio(self) -> datetime:
        return datetime.combine(self.data, self.ora)


def genera_slot(
    ora_apertura: int = ORA_APERTURA,
    ora_chiusura: int = ORA_CHIUSURA,
    passo_minuti: int = PASSO_SLOT_MINUTI,
) -> list[time]:
    """
    Orari di inizio degli slot, crescenti e senza duplicati.
    L'ultimo slot inizia prima della chiusura: con i default 09:00 ... 16:30.
    """
    if passo_minuti <= 0:
        raise ErroreValidazione("Il passo degli slot deve essere positivo.")
    if not (0 <= ora_apertura < ora_chiusura <= 24):
        raise ErroreValidazione(f"Orario non valido: {ora_apertura}-{ora_chiusura}.")

    inizio = ora_apertura * 60
    fine = ora_chiusura * 60
    return [time(m // 60, m % 60) for m in range(inizio, fine, passo_minuti)]


def slot_giornata(giorno: date, **griglia: int) -> list[Slot]:
    return [Slot(giorno, ora) for ora in genera_slot(**griglia)]


def is_slot_valido(ora: time) -> bool:
    # confronto su ore/minuti: secondi e microsecondi non fanno parte della griglia
    if ora.second or ora.microsecond:
        return False
    return ora.replace(tzinfo=None) in genera_slot()


def slot_occupato(
    giorno: date,
    medico_id: str,
    ora: time,
    appuntamenti: Iterable[Appuntamento],
    escludi_id: str | None = None,
) -> bool:
    """
    True se esiste un appuntamento non annullato per lo stesso (giorno, medico, ora).
    Funzione pura: lavora su qualunque iterabile di righe appuntamento.
    """
    for a in appuntamenti:
        if escludi_id is not None and a.id == escludi_id:
            continue
        if (
            a.doctor_id == medico_id
            and a.appointment_date == giorno
            and a.appointment_time == ora
            and a.status != StatoAppuntamento.ANNULLATO
        ):
            return True
    return False


# =========================
# Occupazione su DB (query live)
# =========================
def _appuntamenti_attivi(s: Session, giorno: date, medico_id: str) -> list[Appuntamento]:
    q = select(Appuntamento).where(
        and_(
            Appuntamento.doctor_id == medico_id,
            Appuntamento.appointment_date == giorno,
            Appuntamento.status != StatoAppuntamento.ANNULLATO,
        )
    )
    return list(s.scalars(q))


def slot_occupato_db(
    s: Session, giorno: date, medico_id: str, ora: time, escludi_id: str | None = None
) -> bool:
    return slot_occupato(giorno, medico_id, ora, _appuntamenti_attivi(s, giorno, medico_id), escludi_id)


def occupazione(s: Session, giorno: date, medico_id: str) -> set[time]:
    return {a.appointment_time for a in _appuntamenti_attivi(s, giorno, medico_id)}


def slot_disponibili(giorno: date, medico_id: str) -> list[dict]:
    """Griglia del giorno con flag di disponibilità per il medico (safe per API)."""
    with db_session() as s:
        occupati = occupazione(s, giorno, medico_id)

    return [
        {
            "date": slot.data.isoformat(),
            "time": slot.ora.strftime("%H:%M"),
            "is_available": slot.ora not in occupati,
        }
        for slot in slot_giornata(giorno)
    ]

