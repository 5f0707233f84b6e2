"""
Synthetic Data Generator for Lifeline AI

Generates a blood bank network for demonstration:
- Partner hospitals
- Inventory lots (central blood bank and hospitals) with expiration dates
- Blood requests from hospitals

Usage:
    python data/synthetic/generate_data.py

    # Or with custom parameters:
    python data/synthetic/generate_data.py --hospitals 12 --lots 400 --seed 7
"""

import pandas as pd
import numpy as np
from datetime import date, timedelta
from pathlib import Path
import argparse
import random

# Project paths
PROJECT_ROOT = Path(__file__).parent.parent.parent
DATA_DIR = PROJECT_ROOT / "data"


# =============================================================================
# REFERENCE DATA
# =============================================================================

# Approximate ABO/Rh population frequencies
BLOOD_TYPE_WEIGHTS = {
    "O+": 0.37,
    "A+": 0.34,
    "B+": 0.09,
    "O-": 0.06,
    "A-": 0.06,
    "AB+": 0.04,
    "B-": 0.02,
    "AB-": 0.02,
}

COMPONENTS = {
    "whole_blood": {"shelf_life_days": 42, "weight": 0.6, "lot_units": (5, 45)},
    "platelets": {"shelf_life_days": 5, "weight": 0.2, "lot_units": (2, 15)},
    "plasma": {"shelf_life_days": 365, "weight": 0.2, "lot_units": (5, 30)},
}

HOSPITAL_NAMES = [
    "St. Mary General", "Riverside Medical Center", "Northside Children's",
    "Lakeview Regional", "Mercy Trauma Center", "Hillcrest Community",
    "Eastgate University Hospital", "Harbor County Medical", "Pinecrest Clinic",
    "Westfield Memorial", "Summit Heart Institute", "Valley Oncology Center",
]


def _weighted_choice(weights: dict) -> str:
    keys = list(weights)
    return random.choices(keys, weights=[weights[k] for k in keys])[0]


def generate_hospitals(num_hospitals: int) -> pd.DataFrame:
    """
    Partner hospitals.

    Args:
        num_hospitals: Number of hospitals (at most the number of names)

    Returns:
        DataFrame with hospital_id, name, is_active
    """
    names = HOSPITAL_NAMES[:num_hospitals]
    return pd.DataFrame({
        "hospital_id": [f"H{i:03d}" for i in range(1, len(names) + 1)],
        "name": names,
        "is_active": [True] * (len(names) - 1) + [False] if len(names) > 2 else [True] * len(names),
    })


def generate_inventory(hospitals: pd.DataFrame, num_lots: int, today: date) -> pd.DataFrame:
    """
    Inventory lots spread over the central bank and hospitals.

    Roughly a third of lots belong to the central blood bank (no hospital).
    A few records are deliberately malformed so normalization diagnostics
    have something to report.
    """
    hospital_ids = hospitals["hospital_id"].tolist()
    records = []

    for i in range(1, num_lots + 1):
        component = _weighted_choice({c: info["weight"] for c, info in COMPONENTS.items()})
        info = COMPONENTS[component]

        # Days left are uniform over the shelf life, with some already expired
        days_left = random.randint(-3, info["shelf_life_days"])
        units = random.randint(*info["lot_units"])

        status = "available"
        if days_left <= 0:
            status = "expired"
        elif random.random() < 0.05:
            status = "reserved"

        records.append({
            "lot_id": f"LOT{i:05d}",
            "hospital_id": None if random.random() < 0.33 else random.choice(hospital_ids),
            "blood_type": _weighted_choice(BLOOD_TYPE_WEIGHTS),
            "component_type": component,
            "available_units": units,
            "expiration_date": (today + timedelta(days=days_left)).isoformat(),
            "status": status,
        })

    # Malformed records
    records.append({
        "lot_id": f"LOT{num_lots + 1:05d}", "hospital_id": None, "blood_type": "C+",
        "component_type": "whole_blood", "available_units": 10,
        "expiration_date": (today + timedelta(days=5)).isoformat(), "status": "available",
    })
    records.append({
        "lot_id": f"LOT{num_lots + 2:05d}", "hospital_id": None, "blood_type": "O-",
        "component_type": "platelets", "available_units": 4,
        "expiration_date": None, "status": "available",
    })

    return pd.DataFrame(records)


def generate_requests(hospitals: pd.DataFrame, today: date, max_per_hospital: int = 4) -> pd.DataFrame:
    """
    Recent blood requests per hospital over the last two weeks.
    """
    statuses = {"pending": 0.45, "approved": 0.25, "partially_fulfilled": 0.1, "fulfilled": 0.15, "rejected": 0.05}
    records = []
    counter = 1

    for hospital_id in hospitals["hospital_id"]:
        for _ in range(random.randint(0, max_per_hospital)):
            component = _weighted_choice({c: info["weight"] for c, info in COMPONENTS.items()})
            records.append({
                "request_id": f"REQ{counter:05d}",
                "hospital_id": hospital_id,
                "blood_type": _weighted_choice(BLOOD_TYPE_WEIGHTS),
                "component_type": component,
                "units_requested": int(np.clip(np.random.poisson(8), 1, 30)),
                "request_date": (today - timedelta(days=random.randint(0, 14))).isoformat(),
                "status": _weighted_choice(statuses),
            })
            counter += 1

    return pd.DataFrame(records)


def generate_all_data(num_hospitals: int = 8, num_lots: int = 250, seed: int = 42):
    """
    Generate all synthetic data and save to CSV files.

    Args:
        num_hospitals: Number of partner hospitals
        num_lots: Number of inventory lots
        seed: Random seed for reproducibility
    """
    random.seed(seed)
    np.random.seed(seed)
    today = date.today()

    print("=" * 60)
    print("LIFELINE AI - SYNTHETIC DATA GENERATOR")
    print("=" * 60)

    raw_dir = DATA_DIR / "raw"
    for sub in ("hospitals", "inventory", "requests"):
        (raw_dir / sub).mkdir(parents=True, exist_ok=True)

    print("\n[1/3] Generating hospitals...")
    hospitals_df = generate_hospitals(num_hospitals)
    hospitals_path = raw_dir / "hospitals" / "hospitals.csv"
    hospitals_df.to_csv(hospitals_path, index=False)
    print(f"  ✓ Created {len(hospitals_df)} hospitals")
    print(f"  ✓ Saved to: {hospitals_path}")

    print(f"\n[2/3] Generating inventory ({num_lots} lots)...")
    inventory_df = generate_inventory(hospitals_df, num_lots, today)
    inventory_path = raw_dir / "inventory" / "blood_inventory.csv"
    inventory_df.to_csv(inventory_path, index=False)
    print(f"  ✓ Created {len(inventory_df)} inventory records")
    print(f"  ✓ Total units: {inventory_df['available_units'].sum():,}")
    print(f"  ✓ Saved to: {inventory_path}")

    print("\n[3/3] Generating blood requests...")
    requests_df = generate_requests(hospitals_df, today)
    requests_path = raw_dir / "requests" / "blood_requests.csv"
    requests_df.to_csv(requests_path, index=False)
    print(f"  ✓ Created {len(requests_df)} requests")
    print(f"  ✓ Saved to: {requests_path}")

    print("\n" + "=" * 60)
    print("GENERATION COMPLETE - SUMMARY")
    print("=" * 60)

    print("\nUnits by Component:")
    for component, units in inventory_df.groupby("component_type")["available_units"].sum().items():
        print(f"  • {component}: {units:,} units")

    print("\nRequests by Status:")
    if len(requests_df) > 0:
        for status, count in requests_df["status"].value_counts().items():
            print(f"  • {status}: {count}")

    print("\n✓ All data files generated successfully!")
    print(f"\nData location: {raw_dir}")


# =============================================================================
# MAIN
# =============================================================================

if __name__ == "__main__":
    parser = argparse.ArgumentParser(
        description="Generate synthetic blood bank data for Lifeline AI"
    )
    parser.add_argument(
        "--hospitals",
        type=int,
        default=8,
        help="Number of partner hospitals (default: 8)"
    )
    parser.add_argument(
        "--lots",
        type=int,
        default=250,
        help="Number of inventory lots (default: 250)"
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=42,
        help="Random seed (default: 42)"
    )

    args = parser.parse_args()

    generate_all_data(num_hospitals=args.hospitals, num_lots=args.lots, seed=args.seed)
