"""
Errori di dominio.

- ErroreValidazione / ConflittoSlot / TransizioneNonValida / NonTrovato
  risalgono al chiamante (API o CLI) e vanno mostrati subito all'utente.
- ErroreBatchParziale / ErroreBatchFatale riguardano solo il job dei
  promemoria e finiscono nei log, mai all'utente finale.
"""
from __future__ import annotations


class ErroreStudio(Exception):
    """Base per tutti gli errori applicativi."""


class ErroreValidazione(ErroreStudio, ValueError):
    """Input mancante o malformato."""


class ConflittoSlot(ErroreStudio):
    """Lo slot (medico, giorno, ora) è già occupato."""

    def __init__(self, medico_id: str, giorno, ora) -> None:
        self.medico_id = medico_id
        self.giorno = giorno
        self.ora = ora
        super().__init__(f"Slot {giorno} {ora:%H:%M} già occupato per il medico {medico_id}.")


class TransizioneNonValida(ErroreStudio):
    def __init__(self, attuale, richiesto) -> None:
        self.attuale = attuale
        self.richiesto = richiesto
        super().__init__(f"Transizione non consentita: {attuale.value} -> {richiesto.value}.")


class NonTrovato(ErroreStudio, LookupError):
    def __init__(self, entita: str, ident) -> None:
        self.entita = entita
        self.ident = ident
        super().__init__(f"{entita} non trovato: {ident}")


class ErroreBatchParziale(ErroreStudio):
    """Un singolo promemoria non è stato scritto: il batch prosegue."""


class ErroreBatchFatale(ErroreStudio):
    """Lettura a monte fallita: l'intero giro di promemoria si interrompe."""
