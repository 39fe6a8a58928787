"""
Seed the customers table with synthetic data.

Spend comes from simulated order histories, so tiers and totals look
realistic enough to exercise segmentation.

Usage:
    python scripts/seed_customers.py [count] [--reset]
"""
import random
import sys
from datetime import datetime, timedelta
from pathlib import Path
from typing import List, Optional

# Project root on the path
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

load_dotenv()

from app.core.timezone import TZ_UTC, utc_now  # noqa: E402

CITIES = ["Mumbai", "Delhi", "Bangalore", "Chennai", "Kolkata", "Hyderabad", "Pune", "Ahmedabad"]
STATES = ["Maharashtra", "Delhi", "Karnataka", "Tamil Nadu", "West Bengal", "Telangana", "Gujarat"]
FIRST_NAMES = ["Amit", "Priya", "Rahul", "Sneha", "Vikram", "Pooja", "Arjun", "Kavya", "Rohit", "Meera"]
LAST_NAMES = ["Sharma", "Patel", "Singh", "Kumar", "Gupta", "Agarwal", "Jain", "Shah", "Reddy", "Iyer"]
TAGS = ["VIP", "Frequent", "New", "Loyal"]

DEFAULT_COUNT = 500
BATCH_SIZE = 100


def _random_date(rng: random.Random, start: datetime, end: datetime) -> datetime:
    return start + timedelta(seconds=rng.uniform(0, (end - start).total_seconds()))


def _order_history_total(rng: random.Random, max_orders: int = 6) -> int:
    """Sum of a random number of orders, each 1-5 items of 500-5000 x 1-3."""
    total = 0
    for _ in range(rng.randint(0, max_orders)):
        for _ in range(rng.randint(1, 5)):
            total += rng.randint(500, 5000) * rng.randint(1, 3)
    return total


def generate_customers(
    count: int, rng: Optional[random.Random] = None, now: Optional[datetime] = None
) -> List[dict]:
    """
    Build `count` customer rows ready for insert.

    Args:
        count: Number of customers
        rng: Random source (seed it for reproducible data)
        now: Upper bound for generated dates
    """
    rng = rng or random.Random()
    now = now or utc_now()
    first_signup = datetime(2023, 1, 1, tzinfo=TZ_UTC)

    customers = []
    for i in range(count):
        first_name = rng.choice(FIRST_NAMES)
        last_name = rng.choice(LAST_NAMES)
        created_at = _random_date(rng, first_signup, now)
        customers.append({
            "name": f"{first_name} {last_name}",
            "email": f"{first_name.lower()}.{last_name.lower()}{i}@example.com",
            "phone": f"+91{rng.randint(7000000000, 9999999999)}",
            "total_spent": _order_history_total(rng),
            "visit_count": rng.randint(1, 20),
            "last_visit": _random_date(rng, created_at, now).isoformat(),
            "created_at": created_at.isoformat(),
            "location": {
                "city": rng.choice(CITIES),
                "state": rng.choice(STATES),
                "country": "India",
            },
            "tags": [rng.choice(TAGS)] if rng.random() > 0.7 else [],
        })
    return customers


def seed(count: int = DEFAULT_COUNT, reset: bool = False) -> int:
    """Insert generated customers in batches. Returns rows inserted."""
    from app.services.supabase import get_supabase_client

    client = get_supabase_client()

    if reset:
        print("Clearing existing customers...")
        client.table("customers").delete().neq(
            "id", "00000000-0000-0000-0000-000000000000"
        ).execute()

    customers = generate_customers(count)
    inserted = 0
    for start in range(0, len(customers), BATCH_SIZE):
        batch = customers[start:start + BATCH_SIZE]
        response = client.table("customers").insert(batch).execute()
        inserted += len(response.data or [])
        print(f"  {inserted}/{count}")

    print(f"Created {inserted} customers")
    return inserted


if __name__ == "__main__":
    args = [a for a in sys.argv[1:] if not a.startswith("--")]
    total = int(args[0]) if args else DEFAULT_COUNT
    seed(total, reset="--reset" in sys.argv)
