"""
Seed script -- populates the database with sample data for reviewers.

Run after migrations:
    python seed.py

Creates:
  - 6 users (3 cargo owners, 3 drivers) with subscriptions
  - 4 vehicles owned by the drivers
  - 5 loads between Zimbabwean cities (mix of DRAFT and OPEN)
  - 3 pending bids and 1 saved search
"""

import asyncio
from datetime import datetime, timedelta, timezone

from sqlalchemy import text

from src.config import settings
from src.domain.enums import (
    BidStatus,
    LoadStatus,
    PlanType,
    SubscriptionStatus,
    VehicleType,
)
from src.domain.matching import SearchFilters, pickup_cell
from src.infrastructure.database import async_session_factory, engine
from src.infrastructure.models import (
    BidModel,
    LoadModel,
    SavedSearchModel,
    SubscriptionModel,
    UserModel,
    VehicleModel,
)

CITIES = {
    "Harare": (-17.8292, 31.0522, "Harare"),
    "Bulawayo": (-20.1325, 28.6265, "Bulawayo"),
    "Mutare": (-18.9707, 32.6709, "Manicaland"),
    "Gweru": (-19.4500, 29.8167, "Midlands"),
    "Masvingo": (-20.0744, 30.8328, "Masvingo"),
}

USERS = [
    {"name": "Tendai Moyo", "email": "tendai@example.com", "plan": PlanType.FREE},
    {"name": "Rudo Chikore", "email": "rudo@example.com", "plan": PlanType.BUSINESS},
    {"name": "Farai Ncube", "email": "farai@example.com", "plan": PlanType.STARTER},
    {"name": "Tafadzwa Dube", "email": "tafadzwa@example.com", "plan": PlanType.FREE},
    {"name": "Kudzai Sibanda", "email": "kudzai@example.com", "plan": PlanType.PROFESSIONAL},
    {"name": "Nyasha Mlambo", "email": "nyasha@example.com", "plan": PlanType.FREE},
]

VEHICLES = [
    # (driver index, type, plate)
    (3, VehicleType.MEDIUM_TRUCK, "AEX 1234"),
    (4, VehicleType.FLATBED, "ACB 5521"),
    (4, VehicleType.REFRIGERATED, "ADF 7780"),
    (5, VehicleType.PICKUP, "AFG 0912"),
]

LOADS = [
    # (owner index, title, cargo, kg, from, to, price, vehicle types, status)
    (0, "Maize bags to Bulawayo", "Grain", 8000, "Harare", "Bulawayo", 650.0,
     [VehicleType.MEDIUM_TRUCK, VehicleType.LARGE_TRUCK], LoadStatus.OPEN),
    (1, "Steel beams", "Construction", 12000, "Gweru", "Harare", 900.0,
     [VehicleType.FLATBED], LoadStatus.OPEN),
    (1, "Fresh produce", "Perishables", 3000, "Mutare", "Harare", 420.0,
     [VehicleType.REFRIGERATED], LoadStatus.OPEN),
    (2, "Household furniture", "Furniture", 1500, "Masvingo", "Gweru", 280.0,
     [VehicleType.SMALL_TRUCK, VehicleType.PICKUP], LoadStatus.OPEN),
    (2, "Fertiliser", "Agricultural", 10000, "Harare", "Mutare", None,
     [VehicleType.LARGE_TRUCK], LoadStatus.DRAFT),
]


async def seed():
    now = datetime.now(timezone.utc)
    async with async_session_factory() as session:
        # Check if already seeded
        result = await session.execute(text("SELECT count(*) FROM users"))
        if result.scalar() > 0:
            print("Database already seeded. Skipping.")
            return

        # ── Users + subscriptions ─────────────────────────────────────
        users = []
        for u in USERS:
            m = UserModel(name=u["name"], email=u["email"])
            session.add(m)
            users.append(m)
        await session.flush()
        subs: dict[int, SubscriptionModel] = {}
        for user, u in zip(users, USERS):
            subs[user.id] = SubscriptionModel(
                user_id=user.id,
                plan=u["plan"],
                status=SubscriptionStatus.ACTIVE,
                started_at=now,
                last_reset_date=now,
                loads_posted_this_period=0,
                bids_placed_this_period=0,
            )
            session.add(subs[user.id])
        print(f"  Created {len(users)} users with subscriptions")

        # ── Vehicles ──────────────────────────────────────────────────
        vehicles = []
        for driver_idx, vtype, plate in VEHICLES:
            m = VehicleModel(
                owner_id=users[driver_idx].id, vehicle_type=vtype, plate_number=plate
            )
            session.add(m)
            vehicles.append(m)
        await session.flush()
        print(f"  Created {len(vehicles)} vehicles")

        # ── Loads ─────────────────────────────────────────────────────
        loads = []
        posted: dict[int, int] = {}
        for owner_idx, title, cargo, kg, origin, dest, price, vtypes, status in LOADS:
            p_lat, p_lng, p_prov = CITIES[origin]
            d_lat, d_lng, d_prov = CITIES[dest]
            m = LoadModel(
                owner_id=users[owner_idx].id,
                title=title,
                cargo_type=cargo,
                weight=kg,
                pickup_address=f"Depot, {origin}",
                pickup_city=origin,
                pickup_province=p_prov,
                pickup_lat=p_lat,
                pickup_lng=p_lng,
                pickup_cell=pickup_cell(p_lat, p_lng, settings.search_h3_resolution),
                delivery_address=f"Warehouse, {dest}",
                delivery_city=dest,
                delivery_province=d_prov,
                delivery_lat=d_lat,
                delivery_lng=d_lng,
                pickup_date=now + timedelta(days=2),
                delivery_date=now + timedelta(days=3),
                suggested_price=price,
                vehicle_types=sorted(v.value for v in vtypes),
                status=status,
                published_at=now if status == LoadStatus.OPEN else None,
            )
            session.add(m)
            loads.append(m)
            if status == LoadStatus.OPEN:
                posted[owner_idx] = posted.get(owner_idx, 0) + 1
        await session.flush()
        print(f"  Created {len(loads)} loads")

        # ── Bids ──────────────────────────────────────────────────────
        bids = [
            BidModel(load_id=loads[0].id, driver_id=users[3].id,
                     vehicle_id=vehicles[0].id, proposed_price=600.0,
                     message="Can collect tomorrow morning"),
            BidModel(load_id=loads[1].id, driver_id=users[4].id,
                     vehicle_id=vehicles[1].id, proposed_price=850.0),
            BidModel(load_id=loads[2].id, driver_id=users[4].id,
                     vehicle_id=vehicles[2].id, proposed_price=400.0,
                     estimated_duration_hours=4),
        ]
        for b in bids:
            b.status = BidStatus.PENDING
        session.add_all(bids)
        print(f"  Created {len(bids)} bids")

        # ── Saved search ──────────────────────────────────────────────
        session.add(
            SavedSearchModel(
                user_id=users[5].id,
                name="Pickup jobs near Harare",
                filters=SearchFilters(
                    vehicle_types=frozenset({VehicleType.PICKUP}),
                    near_lat=CITIES["Harare"][0],
                    near_lng=CITIES["Harare"][1],
                    radius_km=50,
                ).to_dict(),
            )
        )

        # Keep quota counters consistent with what was seeded
        for owner_idx, count in posted.items():
            subs[users[owner_idx].id].loads_posted_this_period = count
        for b in bids:
            subs[b.driver_id].bids_placed_this_period += 1

        await session.commit()
        print("\nSeed complete!")


async def main():
    print("Seeding database...")
    await seed()
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
