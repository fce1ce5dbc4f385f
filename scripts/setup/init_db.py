# scripts/setup/init_db.py
"""
Initialize database — creates all tables.
Run once before first launch, or after adding new models.
Usage: python scripts/setup/init_db.py [--seed-demo PLATE]
"""

import sys
import os
import argparse
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))

from sqlalchemy import inspect, text
from parkingmate.database import SessionLocal, create_tables, engine
from parkingmate.config import settings
from parkingmate.models.car import Car
from parkingmate.models.customer import Customer
from parkingmate.services.plate_normalizer import normalize_plate
from parkingmate.utils.clock import system_clock


def seed_demo_customer(raw_plate: str, registered: bool):
    """Registered car for trying the customer branch with simulate_event.py."""
    plate = normalize_plate(raw_plate)
    db = SessionLocal()
    try:
        if db.query(Car).filter(Car.org_id == settings.DEFAULT_ORG_ID, Car.license_plate == plate).first():
            print(f"ℹ️  Demo car {plate} already exists")
            return
        customer = Customer(
            org_id=settings.DEFAULT_ORG_ID,
            name="Demo Customer",
            email="demo.customer@example.com",
            registered=registered,
            created_at=system_clock.now(),
        )
        db.add(customer)
        db.flush()
        db.add(Car(org_id=settings.DEFAULT_ORG_ID, owner_id=customer.id, license_plate=plate,
                   label="Demo Car", created_at=system_clock.now()))
        db.commit()
        print(f"✅ Demo customer {customer.id} with car {plate} (registered={registered})")
    finally:
        db.close()


def main():
    parser = argparse.ArgumentParser(description="Create ParkingMate tables")
    parser.add_argument("--seed-demo", metavar="PLATE", help="Also create a demo customer owning PLATE")
    parser.add_argument("--unregistered", action="store_true",
                        help="Seed the demo customer as unregistered (triggers the registration e-mail)")
    args = parser.parse_args()

    print("🗄️  ParkingMate DB Initialization")
    print("=" * 40)
    print(f"📡 Database: {engine.url.render_as_string(hide_password=True)}")

    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        print("✅ Database connection OK")
    except Exception as e:
        print(f"❌ Cannot connect to database: {e}")
        print("\nMake sure PostgreSQL is running and DATABASE_URL is set in .env")
        sys.exit(1)

    print("\n📋 Creating tables...")
    create_tables()
    tables = sorted(inspect(engine).get_table_names())
    print(f"✅ {len(tables)} tables ready: {', '.join(tables)}")

    if args.seed_demo:
        seed_demo_customer(args.seed_demo, registered=not args.unregistered)

    print("\n🎉 Database ready! Start the backend with:")
    print(f"   uvicorn parkingmate.main:app --host {settings.HOST} --port {settings.PORT} --reload")


if __name__ == "__main__":
    main()
