"""
Backend Studio Dentistico: agenda, prenotazioni e promemoria.

Struttura:
- config.py     : impostazioni da env (.env) e logging
- db.py         : engine e sessioni SQLAlchemy
- models.py     : modelli ORM e enum (appuntamenti, registro trattamenti, notifiche, messaggi)
- calendario.py : griglia degli slot e occupazione per medico
- services.py   : prenotazione, stati, spostamento
- promemoria.py : job dei promemoria (domani + follow-up 30/60/90)
- notifiche.py  : centro notifiche per utente
- messaggi.py   : posta interna tra staff
- realtime.py   : change feed e canale push per utente
- seed.py       : dati iniziali (staff, pazienti)
- cli.py        : simulazione cron e front-desk via CLI
"""
