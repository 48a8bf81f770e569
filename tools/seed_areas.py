"""
Seed Script for the Area Hierarchy
==================================
Populates the relational `areas` table with a small plant layout.
Existing ids are left alone, so the script can be re-run.
"""

import os
import sys

sys.path.append(os.getcwd())
from common_core.db import SafetySessionLocal
from apps.safety_backend import services

# (area_id, name, machines, parent_id) - parents listed before children
SEED_AREAS = [
    ("AREA01", "Assembly Line 1", ["Conveyor Belt A", "Press Machine 3"], None),
    ("AREA02", "Warehouse", ["Forklift 1", "Forklift 2", "Pallet Wrapper"], None),
    ("AREA03", "Welding Station", ["Welder A", "Welder B"], None),
    ("AREA04", "Packaging", ["Box Sealer 1", "Label Printer 2"], None),
    ("AREA05", "Heat Treatment", [], None),
    ("AREA05_L1", "Line 1", ["Furnace 1"], "AREA05"),
    ("AREA05_L1_OPX", "Operation X", ["Quench Tank"], "AREA05_L1"),
]


def seed_areas(db) -> int:
    created = 0
    for area_id, name, machines, parent_id in SEED_AREAS:
        if services.area_get(db, area_id) is not None:
            continue
        services.area_create(
            db,
            {"area_id": area_id, "name": name, "machines": machines, "parentId": parent_id},
            request_id="seed_areas",
        )
        created += 1
    db.commit()
    return created


if __name__ == "__main__":
    db = SafetySessionLocal()
    try:
        print(">> Seeding areas...")
        n = seed_areas(db)
        print(f"   Created {n} area(s), {len(SEED_AREAS) - n} already present.")
    finally:
        db.close()
