from __future__ import annotations

import logging.config
import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# DB SQLite su file nella root del progetto, sovrascrivibile da env
DB_PATH = Path(__file__).resolve().parents[1] / "studio_dentistico.sqlite"
DATABASE_URL = os.getenv("STUDIO_DATABASE_URL", f"sqlite:///{DB_PATH}")
DB_ECHO = os.getenv("STUDIO_DB_ECHO", "0") == "1"

# In produzione: mettila in variabile d'ambiente
JWT_SECRET = os.getenv("JWT_SECRET", "CHANGE_ME_DEV_SECRET")
JWT_ALG = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("JWT_EXPIRE_MINUTES", "60"))

# Se valorizzato, il trigger dei promemoria richiede l'header X-Cron-Secret
CRON_SECRET = os.getenv("CRON_SECRET") or None

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Griglia fissa dello studio (non configurabile per medico)
ORA_APERTURA = 9
ORA_CHIUSURA = 17
PASSO_SLOT_MINUTI = 30

# Giorni dall'ultimo trattamento che fanno scattare il follow-up (match esatto)
MILESTONE_FOLLOWUP = (30, 60, 90)

# Pagina massima restituita dal centro notifiche
LIMITE_NOTIFICHE = 20


LOGGING_CONFIG: dict = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {
            "format": "%(asctime)s %(levelname)-8s %(name)s: %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "standard",
        },
    },
    "loggers": {
        "backend": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
    },
    "root": {"handlers": ["console"], "level": "WARNING"},
}


def configura_logging() -> None:
    logging.config.dictConfig(LOGGING_CONFIG)
