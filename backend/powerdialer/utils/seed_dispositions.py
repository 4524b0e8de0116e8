import argparse
from sqlalchemy.orm import Session

from powerdialer.core.db import SessionLocal, Base, engine
from powerdialer.services.disposition_service import DEFAULT_DISPOSITIONS, seed_default_dispositions
import powerdialer.models  # noqa: F401


def main():
    parser = argparse.ArgumentParser(description="Create or refresh the default call dispositions")
    parser.add_argument("--list", action="store_true", help="print the default dispositions and exit")
    args = parser.parse_args()

    if args.list:
        for entry in DEFAULT_DISPOSITIONS:
            actions = ", ".join(a["action_type"] for a in entry["actions"])
            print(f"{entry['name']}: {actions}")
        return

    Base.metadata.create_all(bind=engine)
    db: Session = SessionLocal()
    try:
        created, updated = seed_default_dispositions(db)
        print(f"Created {len(created)} dispositions, refreshed {len(updated)}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
