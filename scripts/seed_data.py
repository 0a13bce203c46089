# scripts/seed_data.py
import sys
from pathlib import Path

# Add the parent directory to sys.path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy.orm import Session

from technique_calendar.db.base import Base, SessionLocal, engine
from technique_calendar import models


def seed_resources(db: Session):
    """Seed a few published resources for local development."""
    resources = [
        {
            "id": "acl-reconstruction",
            "title": "ACL Reconstruction",
            "url": "https://example.org/resources/acl-reconstruction",
            "description": "Anatomic single-bundle ACL reconstruction with hamstring autograft",
        },
        {
            "id": "rotator-cuff-repair",
            "title": "Arthroscopic Rotator Cuff Repair",
            "url": "https://example.org/resources/rotator-cuff-repair",
            "description": "Double-row suture bridge technique",
        },
        {
            "id": "total-knee-arthroplasty",
            "title": "Total Knee Arthroplasty",
            "url": "https://example.org/resources/total-knee-arthroplasty",
            "description": None,
        },
    ]

    for data in resources:
        if db.get(models.Resource, data["id"]):
            print(f"Resource {data['id']} already exists, skipping")
            continue
        db.add(models.Resource(**data))
        print(f"Added resource {data['id']}")

    db.commit()


if __name__ == "__main__":
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        seed_resources(db)
    finally:
        db.close()
