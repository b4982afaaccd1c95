#!/usr/bin/env python3
"""Seed the database with sample salons, owners, services and offers."""
from __future__ import annotations

import argparse
import sys
from datetime import datetime, timezone
from pathlib import Path

from werkzeug.security import generate_password_hash

# Ensure the project root is on sys.path so ``salonqueue`` can be imported when run directly.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from salonqueue import create_app
from salonqueue.extensions import db
from salonqueue.models import Offer, Salon, Service, User

SAMPLE_SALONS = [
    {
        "owner_email": "owner1@example.com",
        "name": "Elegance Beauty Salon",
        "description": "Located in the heart of downtown, our experienced stylists are "
                       "passionate about making you look and feel your best.",
        "location": "Downtown, 0.8 mi",
        "phone": "(555) 123-4567",
        "rating": 48,  # 4.8 stars
        "review_count": 234,
        "operating_hours": "9 AM - 7 PM",
        "services": [
            ("Haircut & Style", "Professional cut with styling", 6500, 60),
            ("Hair Color", "Full color or touch-up", 12000, 120),
            ("Manicure", "Classic manicure with polish", 3500, 45),
        ],
        "offers": [("20% Off First Visit", "Valid for new customers only", 20)],
    },
    {
        "owner_email": "owner2@example.com",
        "name": "Glamour Studio",
        "description": "Modern salon specializing in hair color and cutting-edge styling techniques.",
        "location": "Midtown, 1.2 mi",
        "phone": "(555) 234-5678",
        "rating": 49,
        "review_count": 156,
        "operating_hours": "10 AM - 8 PM",
        "services": [
            ("Color & Highlights", "Professional coloring service", 15000, 150),
            ("Hair Treatment", "Deep conditioning treatment", 8000, 90),
        ],
        "offers": [("Free Consultation", "Complimentary hair consultation", None)],
    },
    {
        "owner_email": "owner3@example.com",
        "name": "Pure Beauty Lounge",
        "description": "Full-service beauty lounge offering premium treatments in a relaxing atmosphere.",
        "location": "Uptown, 2.1 mi",
        "phone": "(555) 345-6789",
        "rating": 47,
        "review_count": 189,
        "operating_hours": "9 AM - 6 PM",
        "services": [
            ("Facial Treatment", "Relaxing facial with premium products", 9500, 75),
            ("Pedicure", "Complete pedicure service", 4500, 60),
        ],
        "offers": [],
    },
]


def seed_salons(password: str) -> None:
    app = create_app()

    with app.app_context():
        db.create_all()
        valid_until = datetime(datetime.now(timezone.utc).year, 12, 31, tzinfo=timezone.utc)

        for data in SAMPLE_SALONS:
            if Salon.query.filter_by(name=data["name"]).first():
                print(f"⏭️  {data['name']} already exists. Skipping...")
                continue

            owner = User.query.filter_by(email=data["owner_email"]).first()
            if owner is None:
                owner = User(
                    email=data["owner_email"],
                    first_name="Salon",
                    last_name="Owner",
                    password_hash=generate_password_hash(password),
                )
                db.session.add(owner)
                db.session.flush()
                print(f"👤 Created owner {owner.email}")

            salon = Salon(
                owner_id=owner.user_id,
                name=data["name"],
                description=data["description"],
                location=data["location"],
                phone=data["phone"],
                rating=data["rating"],
                review_count=data["review_count"],
                operating_hours=data["operating_hours"],
            )
            db.session.add(salon)
            db.session.flush()

            for name, description, price_cents, duration in data["services"]:
                db.session.add(Service(
                    salon_id=salon.salon_id,
                    name=name,
                    description=description,
                    price_cents=price_cents,
                    duration_minutes=duration,
                ))

            for title, description, discount in data["offers"]:
                db.session.add(Offer(
                    salon_id=salon.salon_id,
                    title=title,
                    description=description,
                    discount=discount,
                    valid_until=valid_until,
                    is_active=True,
                    click_count=0,
                ))

            print(f"💇 Added {salon.name} with {len(data['services'])} services")

        db.session.commit()
        print("✅ Sample salons seeded")


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed sample salons for local development.")
    parser.add_argument("--password", default="password123", help="Password for the sample owners")
    args = parser.parse_args()
    seed_salons(args.password)


if __name__ == "__main__":
    main()
