import os
from dotenv import load_dotenv
from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from backend.core import config


load_dotenv()
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./clinic.db")

engine = create_engine(DATABASE_URL, echo=config.DATABASE_ECHO)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_scheduling_schema_checked = False

SCHEDULING_INDEXES = {
    'provider_schedules': [
        'CREATE INDEX IF NOT EXISTS idx_provider_schedules_effective '
        'ON provider_schedules(provider_id, effective_from, effective_to)',
    ],
    'provider_time_off': [
        'CREATE INDEX IF NOT EXISTS idx_provider_time_off_range ON provider_time_off(provider_id, start_time, end_time)',
        'CREATE INDEX IF NOT EXISTS idx_provider_time_off_kind ON provider_time_off(provider_id, kind)',
    ],
    'appointments': [
        'CREATE INDEX IF NOT EXISTS idx_appointments_provider_range ON appointments(provider_id, start_time, end_time)',
    ],
}


def ensure_scheduling_schema(bind=None) -> None:
    global _scheduling_schema_checked

    if _scheduling_schema_checked:
        return

    with _schema_lock:
        if _scheduling_schema_checked:
            return

        target = bind if bind is not None else engine
        existing_tables = set(inspect(target).get_table_names())

        with target.begin() as connection:
            for table_name, statements in SCHEDULING_INDEXES.items():
                if table_name not in existing_tables:
                    continue
                for statement in statements:
                    connection.execute(text(statement))

        _scheduling_schema_checked = True
