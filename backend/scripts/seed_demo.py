"""CLI script to create the demo learner and its default reminders.
Usage: python scripts/seed_demo.py [--password PASSWORD]
"""
import sys
import argparse
import pathlib
# Ensure `backend/` is on sys.path so `studybuddy` package imports work when running this script directly
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
from sqlmodel import Session
from studybuddy.database import engine, create_db_and_tables
from studybuddy.repositories import SQLStorage
from studybuddy import services


def main(password: str = "password"):
    """Seed the configured database; running it twice is harmless.

    Results are printed to stdout for a quick CLI feedback loop.
    """
    create_db_and_tables()
    with Session(engine) as session:
        storage = SQLStorage(session)
        user = services.seed_demo_data(storage, password=password)
        reminders = storage.list_reminders(user.id)
        print(f'Demo user {user.username} (id {user.id}): {user.total_xp} XP, streak {user.streak}')
        for r in reminders:
            state = 'on' if r.is_active else 'off'
            print(f'  reminder {r.id}: {r.title} [{r.frequency}] {state}')


if __name__ == '__main__':
    parser = argparse.ArgumentParser()
    parser.add_argument('--password', default='password', help='Password for the demo user')
    args = parser.parse_args()
    main(password=args.password)
