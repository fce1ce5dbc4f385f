# scripts/maintenance/expire_guests.py
"""
Persist Expired for guests whose window has lapsed.
Lookups already treat lapsed guests as expired; this keeps stored status in step.
Usage: python scripts/maintenance/expire_guests.py [--org ORG_ID]
Cron:  */5 * * * * cd /opt/parkingmate && python scripts/maintenance/expire_guests.py
"""

import sys
import os
import argparse
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))

from parkingmate.database import SessionLocal
from parkingmate.errors import StorageUnavailableError
from parkingmate.services.guest_service import sweep_expired_guests
from parkingmate.utils.clock import system_clock


def main():
    parser = argparse.ArgumentParser(description="Mark lapsed guests as Expired")
    parser.add_argument("--org", default=None, help="Limit the sweep to one organization")
    args = parser.parse_args()

    db = SessionLocal()
    try:
        count = sweep_expired_guests(db, system_clock.now(), org_id=args.org)
    except StorageUnavailableError as e:
        print(f"❌ Sweep failed: {e}")
        sys.exit(1)
    finally:
        db.close()
    print(f"✅ {count} guest(s) marked Expired")


if __name__ == "__main__":
    main()
