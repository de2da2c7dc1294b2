"""
Canale realtime per notifiche e messaggi interni.

Ogni INSERT/UPDATE su una tabella "tracciata" (modelli con __realtime_chiave__)
viene raccolto al flush e pubblicato solo dopo il commit, agli iscritti la
cui chiave coincide (es. notifications.user_id = X).

Consegna at-most-once: chi non è connesso al momento del commit perde
l'evento e deve rileggere la lista alla riconnessione.
"""
from __future__ import annotations

import asyncio
import enum
import logging
import threading
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from sqlalchemy import event, inspect
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

_CHIAVE_SESSIONE = "eventi_realtime"


@dataclass(frozen=True)
class EventoModifica:
    evento: str                      # "INSERT" | "UPDATE"
    tabella: str
    new: dict[str, Any]
    old: dict[str, Any] | None = None

    def as_dict(self) -> dict[str, Any]:
        return {"event": self.evento, "table": self.tabella, "new": self.new, "old": self.old}


class Iscrizione:
    """Coda di un singolo iscritto. Si consuma con `async for` o `await prossimo()`."""

    def __init__(self, canale: "CanaleRealtime", tabella: str, chiave: str, loop: asyncio.AbstractEventLoop) -> None:
        self.tabella = tabella
        self.chiave = chiave
        self._canale = canale
        self._loop = loop
        self._coda: asyncio.Queue[EventoModifica | None] = asyncio.Queue()
        self.chiusa = False

    def _consegna(self, evento: EventoModifica | None) -> None:
        # chiamato da qualunque thread: la coda vive nel loop dell'iscritto
        try:
            self._loop.call_soon_threadsafe(self._coda.put_nowait, evento)
        except RuntimeError:
            # loop già chiuso: il client se n'è andato
            self.chiusa = True

    async def prossimo(self, timeout: float | None = None) -> EventoModifica | None:
        if self.chiusa and self._coda.empty():
            return None
        if timeout is None:
            return await self._coda.get()
        return await asyncio.wait_for(self._coda.get(), timeout)

    def __aiter__(self) -> "Iscrizione":
        return self

    async def __anext__(self) -> EventoModifica:
        evento = await self.prossimo()
        if evento is None:
            raise StopAsyncIteration
        return evento

    def chiudi(self) -> None:
        if self.chiusa:
            return
        self._canale._rimuovi(self)
        self.chiusa = True
        self._consegna(None)


class CanaleRealtime:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._iscritti: dict[tuple[str, str], set[Iscrizione]] = defaultdict(set)

    def iscrivi(self, tabella: str, chiave: str, loop: asyncio.AbstractEventLoop | None = None) -> Iscrizione:
        """Da chiamare dentro un event loop (o passando il loop esplicitamente)."""
        iscr = Iscrizione(self, tabella, chiave, loop or asyncio.get_running_loop())
        with self._lock:
            self._iscritti[(tabella, chiave)].add(iscr)
        logger.debug("Iscrizione %s=%s aperta", tabella, chiave)
        return iscr

    def _rimuovi(self, iscr: Iscrizione) -> None:
        with self._lock:
            gruppo = self._iscritti.get((iscr.tabella, iscr.chiave))
            if gruppo is not None:
                gruppo.discard(iscr)
                if not gruppo:
                    del self._iscritti[(iscr.tabella, iscr.chiave)]

    def pubblica(self, chiave: str, evento: EventoModifica) -> int:
        """Consegna l'evento agli iscritti connessi; ritorna quanti lo hanno ricevuto."""
        with self._lock:
            destinatari = list(self._iscritti.get((evento.tabella, chiave), ()))
        for iscr in destinatari:
            iscr._consegna(evento)
        return len(destinatari)

    def numero_iscritti(self, tabella: str, chiave: str) -> int:
        with self._lock:
            return len(self._iscritti.get((tabella, chiave), ()))

    def reset(self) -> None:
        with self._lock:
            gruppi = list(self._iscritti.values())
            self._iscritti.clear()
        for gruppo in gruppi:
            for iscr in gruppo:
                iscr.chiusa = True
                iscr._consegna(None)


canale = CanaleRealtime()


# =========================
# Change feed dalle sessioni ORM
# =========================
def _tracciato(obj: Any) -> bool:
    return getattr(type(obj), "__realtime_chiave__", None) is not None


def _valore_wire(valore: Any) -> Any:
    # stessa forma di to_dict(): enum come valore, date e datetime in ISO
    if isinstance(valore, enum.Enum):
        return valore.value
    if isinstance(valore, date):
        return valore.isoformat()
    return valore


@event.listens_for(Session, "after_flush")
def _raccogli_modifiche(session: Session, _flush_context) -> None:
    pendenti = session.info.setdefault(_CHIAVE_SESSIONE, [])

    for obj in session.new:
        if _tracciato(obj):
            pendenti.append(("INSERT", obj, obj.to_dict(), None))

    for obj in session.dirty:
        if not _tracciato(obj) or not session.is_modified(obj):
            continue
        nuovo = obj.to_dict()
        vecchio = dict(nuovo)
        for attr in inspect(obj).attrs:
            storia = attr.history
            if storia.deleted and attr.key in vecchio:
                vecchio[attr.key] = _valore_wire(storia.deleted[0])
        pendenti.append(("UPDATE", obj, nuovo, vecchio))


@event.listens_for(Session, "after_commit")
def _pubblica_dopo_commit(session: Session) -> None:
    pendenti = session.info.pop(_CHIAVE_SESSIONE, [])
    for tipo, obj, nuovo, vecchio in pendenti:
        tabella = type(obj).__tablename__
        chiave = nuovo[type(obj).__realtime_chiave__]
        consegnati = canale.pubblica(chiave, EventoModifica(tipo, tabella, nuovo, vecchio))
        logger.debug("%s %s -> %s (%d iscritti)", tipo, tabella, chiave, consegnati)


@event.listens_for(Session, "after_rollback")
def _scarta_dopo_rollback(session: Session) -> None:
    session.info.pop(_CHIAVE_SESSIONE, None)


# =========================
# Proiezione lato client
# =========================
@dataclass
class ContatoreNonLette:
    """
    Contatore delle notifiche non lette mantenuto dal client:
    - si inizializza dalla lista
    - +1 su INSERT di una notifica non letta
    - -1 su UPDATE is_read false -> true
    Gli eventi dei messaggi interni non lo toccano.
    """
    valore: int = 0
    tabella: str = field(default="notifications")

    @classmethod
    def da_lista(cls, notifiche: list[dict[str, Any]]) -> "ContatoreNonLette":
        return cls(valore=sum(1 for n in notifiche if not n["is_read"]))

    def applica(self, evento: EventoModifica) -> int:
        if evento.tabella != self.tabella:
            return self.valore
        if evento.evento == "INSERT" and not evento.new["is_read"]:
            self.valore += 1
        elif evento.evento == "UPDATE" and evento.new["is_read"] and evento.old and not evento.old["is_read"]:
            self.valore = max(0, self.valore - 1)
        return self.valore
