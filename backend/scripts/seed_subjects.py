"""CLI script to load the subject catalog from a JSON file.
Usage: python scripts/seed_subjects.py subjects.json

The file holds a list of `{"name", "stream", "chapters": [...]}` objects.
"""
import sys
import argparse
import json
import pathlib
# Ensure `backend/` is on sys.path so `studybot` imports work when running this script directly
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
from sqlmodel import Session
from studybot.database import engine, create_db_and_tables
from studybot import services


def main(path: pathlib.Path):
    """Create any subjects from `path` that are not in the database yet."""
    if not path.exists():
        print(f'Subjects file not found at {path}')
        return
    entries = json.loads(path.read_text(encoding='utf-8'))
    if not isinstance(entries, list):
        print('Subjects file must contain a JSON list')
        return
    create_db_and_tables()
    with Session(engine) as session:
        result = services.CatalogService(session).import_subjects(entries)
    for err in result['errors']:
        print(f"Entry {err['index']}: {err['error']}")
    print(f"Created subjects: {result['created']}, skipped {result['skipped']}")


if __name__ == '__main__':
    parser = argparse.ArgumentParser()
    parser.add_argument('path', type=pathlib.Path, help='JSON file with the subject list')
    args = parser.parse_args()
    main(args.path)
