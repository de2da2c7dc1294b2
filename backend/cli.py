from __future__ import annotations

import argparse
from datetime import date, time

from backend.calendario import slot_disponibili
from backend.config import configura_logging
from backend.errori import ErroreStudio
from backend.notifiche import lista_notifiche, segna_tutte_lette
from backend.promemoria import esegui_promemoria
from backend.seed import seed_base
from backend.services import (
    annulla_appuntamento,
    crea_paziente,
    imposta_stato,
    init_db,
    lista_medici_flat,
    lista_pazienti_flat,
    prenota_appuntamento,
    sposta_appuntamento,
)


def _giorno(valore: str) -> date:
    return date.fromisoformat(valore)  # formato: 2026-01-14


def _ora(valore: str) -> time:
    return time.fromisoformat(valore)  # formato: 10:30


def cmd_init(args: argparse.Namespace) -> None:
    init_db()
    seed_base()
    print("DB inizializzato e seed completato.")


def cmd_list(args: argparse.Namespace) -> None:
    if args.entity == "medici":
        for m in lista_medici_flat():
            print(f"{m['id']} | {m['full_name']} | {m['email'] or '-'}")
    elif args.entity == "pazienti":
        for p in lista_pazienti_flat():
            print(f"{p['id']} | {p['name']} | {p['telephone'] or '-'}")


def cmd_add_patient(args: argparse.Namespace) -> None:
    pid = crea_paziente(args.nome, args.telefono, args.eta)
    print(f"Paziente creato: {pid}")


def cmd_slots(args: argparse.Namespace) -> None:
    for slot in slot_disponibili(args.giorno, args.medico_id):
        print(f"{slot['time']}  {'libero' if slot['is_available'] else 'occupato'}")


def cmd_book(args: argparse.Namespace) -> None:
    app = prenota_appuntamento(
        paziente_id=args.paziente_id,
        medico_id=args.medico_id,
        giorno=args.giorno,
        ora=args.ora,
        trattamento=args.trattamento,
        dente=args.dente,
        note=args.note,
    )
    print("Appuntamento confermato.")
    print(f"Appuntamento ID: {app.id}")


def cmd_status(args: argparse.Namespace) -> None:
    app = imposta_stato(args.appuntamento_id, args.stato)
    print(f"Stato aggiornato: {app.status.value}")


def cmd_cancel(args: argparse.Namespace) -> None:
    annulla_appuntamento(args.appuntamento_id)
    print("Annullato.")


def cmd_reschedule(args: argparse.Namespace) -> None:
    app = sposta_appuntamento(args.appuntamento_id, args.giorno, args.ora)
    print(f"Spostato a {app.appointment_date} {app.appointment_time:%H:%M}.")


def cmd_reminders(args: argparse.Namespace) -> None:
    """Simula il cron giornaliero; --oggi permette di rigiocare una data."""
    oggi = args.oggi or date.today()
    esito = esegui_promemoria(clock=lambda: oggi)
    if esito["success"]:
        print(f"Promemoria inviati: {esito['reminders_sent']}")
    else:
        print(f"ERRORE: {esito['error']}")
        raise SystemExit(1)


def cmd_notifications(args: argparse.Namespace) -> None:
    notifiche = lista_notifiche(args.user_id, limit=args.limit)
    if not notifiche:
        print("Nessuna notifica.")
        return

    for n in notifiche:
        flag = " " if n["is_read"] else "*"
        print(f"{flag} [{n['type']}] {n['created_at']} | {n['title']} | {n['message']}")

    if args.mark_read:
        print(f"Segnate come lette: {segna_tutte_lette(args.user_id)}")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="studio_dentistico_cli", description="CLI Studio Dentistico (agenda e promemoria)")
    sub = p.add_subparsers(required=True)

    p_init = sub.add_parser("init", help="Crea DB e carica seed")
    p_init.set_defaults(func=cmd_init)

    p_list = sub.add_parser("list", help="Lista entità")
    p_list.add_argument("entity", choices=["medici", "pazienti"])
    p_list.set_defaults(func=cmd_list)

    p_addp = sub.add_parser("add-patient", help="Crea paziente")
    p_addp.add_argument("--nome", required=True)
    p_addp.add_argument("--telefono", default="")
    p_addp.add_argument("--eta", type=int, default=None)
    p_addp.set_defaults(func=cmd_add_patient)

    p_slots = sub.add_parser("slots", help="Slot del giorno per un medico")
    p_slots.add_argument("--medico-id", required=True)
    p_slots.add_argument("--giorno", type=_giorno, required=True, help="es: 2026-01-14")
    p_slots.set_defaults(func=cmd_slots)

    p_book = sub.add_parser("book", help="Prenota appuntamento")
    p_book.add_argument("--paziente-id", required=True)
    p_book.add_argument("--medico-id", required=True)
    p_book.add_argument("--giorno", type=_giorno, required=True, help="es: 2026-01-14")
    p_book.add_argument("--ora", type=_ora, required=True, help="es: 10:30")
    p_book.add_argument("--trattamento", required=True)
    p_book.add_argument("--dente", default=None)
    p_book.add_argument("--note", default=None)
    p_book.set_defaults(func=cmd_book)

    p_status = sub.add_parser("status", help="Cambia stato appuntamento")
    p_status.add_argument("--appuntamento-id", required=True)
    p_status.add_argument("--stato", required=True, choices=["completed", "cancelled"])
    p_status.set_defaults(func=cmd_status)

    p_cancel = sub.add_parser("cancel", help="Annulla appuntamento")
    p_cancel.add_argument("--appuntamento-id", required=True)
    p_cancel.set_defaults(func=cmd_cancel)

    p_move = sub.add_parser("reschedule", help="Sposta appuntamento")
    p_move.add_argument("--appuntamento-id", required=True)
    p_move.add_argument("--giorno", type=_giorno, required=True)
    p_move.add_argument("--ora", type=_ora, required=True)
    p_move.set_defaults(func=cmd_reschedule)

    p_rem = sub.add_parser("reminders", help="Esegue il giro promemoria (simulazione cron)")
    p_rem.add_argument("--oggi", type=_giorno, default=None, help="Data di riferimento, default oggi")
    p_rem.set_defaults(func=cmd_reminders)

    p_not = sub.add_parser("notifications", help="Mostra le notifiche di un utente")
    p_not.add_argument("--user-id", required=True)
    p_not.add_argument("--limit", type=int, default=20)
    p_not.add_argument("--mark-read", action="store_true", help="Segna tutte come lette dopo averle stampate")
    p_not.set_defaults(func=cmd_notifications)

    return p


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    configura_logging()
    init_db()  # garantisce tabelle
    try:
        args.func(args)
    except ErroreStudio as e:
        print(f"ERRORE: {e}")
        raise SystemExit(1)


if __name__ == "__main__":
    main()
