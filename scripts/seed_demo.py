# scripts/seed_demo.py
# Seed demo provider / schedule / event type into DATABASE_URL (from .env)

import logging

from salon_booking.config import settings
from salon_booking.database import create_db_engine, init_db, make_session_factory
from salon_booking.seed import seed_demo


# ======================================================
# ENTRYPOINT
# ======================================================

def main():
    logging.basicConfig(level=settings.log_level)

    engine = create_db_engine(settings.resolved_database_url)
    init_db(engine)
    session_factory = make_session_factory(engine)

    db = session_factory()
    try:
        result = seed_demo(db)
    finally:
        db.close()

    print(f"[SEED] provider_id={result['provider_id']} event_type_id={result['event_type_id']}")


if __name__ == "__main__":
    main()
