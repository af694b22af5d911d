"""
Seed the document type catalog with the common admissions documents.

Usage:
    python scripts/seed_document_types.py              # Uses development DB
    python scripts/seed_document_types.py --env prod   # Uses production DB

This script is idempotent — types whose name already exists are skipped.
Optionally creates a demo program whose initial-document checklist is the
common types (``--demo-program``).
"""

import argparse
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app import create_app
from app.models.document import DocumentType
from app.models.program import Program
from app.services.document_type_service import seed_defaults
from app.services.program_service import create_program

DEMO_PROGRAM = {
    "university_name": "Demo University",
    "program_name": "MSc Data Science",
    "city": "London",
    "level": "postgraduate",
}


def seed_demo_program():
    existing = Program.query.filter_by(
        university_name=DEMO_PROGRAM["university_name"],
        program_name=DEMO_PROGRAM["program_name"],
    ).first()
    if existing:
        print(f"  Demo program: already exists (id={existing.id})")
        return existing
    common_ids = [dt.id for dt in DocumentType.query.filter_by(is_common=True).order_by(DocumentType.id)]
    program = create_program({**DEMO_PROGRAM, "document_type_ids": common_ids[:3]}, actor="seed")
    print(f"  Demo program: created (id={program.id}, {len(common_ids[:3])} required documents)")
    return program


def main():
    parser = argparse.ArgumentParser(description="Seed the document type catalog")
    parser.add_argument("--env", default="development", help="App environment")
    parser.add_argument("--demo-program", action="store_true",
                        help="Also create a demo program using the common types")
    args = parser.parse_args()

    os.environ.setdefault("APP_ENV", args.env)
    app = create_app(args.env)

    with app.app_context():
        print("=" * 60)
        print("  SEED: Document Types")
        print("=" * 60)

        result = seed_defaults(actor="seed")
        print(f"  Document types: {len(result['created'])} created, "
              f"{len(result['skipped'])} already existed")

        if args.demo_program:
            seed_demo_program()

        print(f"\n  Catalog size: {DocumentType.query.count()}")
        print("\n✅ Seed complete!")


if __name__ == "__main__":
    main()
