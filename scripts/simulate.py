"""
Order Flow Simulation Script

Fires many concurrent orders at a running server, then walks each one
through bank transfer and admin confirmation, and checks that:
    - every order number is unique
    - each confirmed order ends up "confirmed" with 3 timeline entries
    - customers cannot see each other's orders

Run from project root (server started with the same JWT_SECRET_KEY and
the database seeded with scripts/seed.py):
    python scripts/simulate.py --orders 50
"""

import asyncio
import sys
import os
import random
import time
import argparse
from datetime import datetime
from typing import Any

import httpx

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from food_ordering.core.security import Role, create_access_token

# Configuration
API_BASE_URL = "http://localhost:8001"
TOTAL_ORDERS = 50

FIRST_NAMES = ["Ada", "Chidi", "Tunde", "Ngozi", "Emeka", "Funmi", "Bola", "Kemi"]
STREETS = ["Allen Avenue", "Awolowo Road", "Adeola Odeku", "Admiralty Way", "Bode Thomas"]


def auth_headers(user_id: str, role: Role = Role.CUSTOMER, name: str = None) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user_id, role=role, name=name)}"}


def generate_order_payload(restaurant: dict[str, Any]) -> dict[str, Any]:
    """Random order against ``restaurant``'s menu, with consistent pricing."""
    menu = [m for m in restaurant["menu"] if m.get("isAvailable", True)]
    items = []
    for entry in random.sample(menu, k=random.randint(1, min(3, len(menu)))):
        items.append({
            "menuItemId": entry["id"],
            "name": entry["name"],
            "price": entry["price"],
            "quantity": random.randint(1, 3),
            "customizations": random.choice([{}, {"spicy": True}, {"size": "large"}]),
        })

    subtotal = sum(i["price"] * i["quantity"] for i in items)
    delivery_fee, service_fee = 500, 200
    tax = round(subtotal * 0.075, 2)

    return {
        "restaurantId": restaurant["id"],
        "items": items,
        "deliveryAddress": {
            "name": random.choice(FIRST_NAMES),
            "street": f"{random.randint(1, 200)} {random.choice(STREETS)}",
            "city": "Lagos",
            "state": "Lagos",
        },
        "pricing": {
            "subtotal": subtotal,
            "deliveryFee": delivery_fee,
            "serviceFee": service_fee,
            "tax": tax,
            "total": round(subtotal + delivery_fee + service_fee + tax, 2),
        },
        "specialInstructions": random.choice([None, "Extra pepper", "Call on arrival"]),
    }


async def place_and_pay(
    client: httpx.AsyncClient,
    restaurant: dict[str, Any],
    order_num: int,
    admin_headers: dict[str, str],
) -> dict[str, Any]:
    """Place one order, record a bank transfer for it and confirm it."""
    customer = f"sim-customer-{order_num}"
    headers = auth_headers(customer)
    start_time = time.time()

    try:
        response = await client.post(
            f"{API_BASE_URL}/api/orders",
            json=generate_order_payload(restaurant),
            headers=headers,
        )
        if response.status_code != 201:
            raise RuntimeError(f"create failed: {response.text[:100]}")
        order = response.json()["data"]["order"]

        response = await client.post(
            f"{API_BASE_URL}/api/payments/bank-transfer",
            json={
                "orderNumber": order["orderNumber"],
                "amount": order["pricing"]["total"],
                "reference": f"TRF{random.randint(100000, 999999)}",
                "bankAccount": "0123456789",
            },
            headers=headers,
        )
        if response.status_code != 200:
            raise RuntimeError(f"bank transfer failed: {response.text[:100]}")

        response = await client.post(
            f"{API_BASE_URL}/api/payments/confirm",
            json={"orderId": order["id"]},
            headers=admin_headers,
        )
        if response.status_code != 200:
            raise RuntimeError(f"confirm failed: {response.text[:100]}")
        confirmed = response.json()["data"]["order"]

        return {
            "order_num": order_num,
            "success": True,
            "customer": customer,
            "order_id": confirmed["id"],
            "order_number": confirmed["orderNumber"],
            "status": confirmed["status"],
            "timeline": len(confirmed["timeline"]),
            "total": confirmed["pricing"]["total"],
            "time": round(time.time() - start_time, 3),
        }
    except Exception as e:
        return {
            "order_num": order_num,
            "success": False,
            "error": str(e)[:100],
            "time": round(time.time() - start_time, 3),
        }


async def check_isolation(client: httpx.AsyncClient, results: list[dict[str, Any]]) -> int:
    """Each customer's listing must contain only their own orders."""
    leaks = 0
    for r in results[:10]:
        response = await client.get(
            f"{API_BASE_URL}/api/orders",
            params={"limit": 50},
            headers=auth_headers(r["customer"]),
        )
        orders = response.json()["data"]["orders"]
        leaks += sum(1 for o in orders if o["customerId"] != r["customer"])
    return leaks


async def run_simulation(num_orders: int = TOTAL_ORDERS) -> dict[str, Any]:
    """Run the concurrent simulation and print a report."""
    print("=" * 70)
    print("🔥 ORDER FLOW SIMULATION")
    print("=" * 70)
    print(f"📋 Total Orders: {num_orders}")
    print(f"🎯 Target: {API_BASE_URL}")
    print(f"⏰ Started: {datetime.now().strftime('%H:%M:%S')}")
    print("=" * 70)

    admin_headers = auth_headers("sim-admin", role=Role.ADMIN, name="Simulation Admin")
    start_time = time.time()

    async with httpx.AsyncClient(timeout=30.0) as client:
        response = await client.get(f"{API_BASE_URL}/api/restaurants")
        listed = response.json()["data"]["restaurants"]
        if not listed:
            print("\n❌ No restaurants found. Run: python scripts/seed.py")
            return {"total": num_orders, "successful": 0, "failed": num_orders}

        # The list view carries no menus
        restaurants = []
        for summary in listed:
            response = await client.get(f"{API_BASE_URL}/api/restaurants/{summary['slug']}")
            restaurants.append(response.json()["data"]["restaurant"])

        tasks = [
            place_and_pay(client, random.choice(restaurants), i + 1, admin_headers)
            for i in range(num_orders)
        ]
        results = await asyncio.gather(*tasks)

        successful = [r for r in results if r["success"]]
        leaks = await check_isolation(client, successful)

    total_time = round(time.time() - start_time, 2)
    failed = [r for r in results if not r["success"]]
    numbers = [r["order_number"] for r in successful]
    bad_state = [r for r in successful if r["status"] != "confirmed" or r["timeline"] != 3]

    print("\n" + "=" * 70)
    print("📊 SIMULATION RESULTS")
    print("=" * 70)
    print(f"\n✅ Successful Orders: {len(successful)}/{num_orders}")
    print(f"❌ Failed Orders: {len(failed)}/{num_orders}")
    print(f"⏱️  Total Time: {total_time}s")
    print(f"🔢 Duplicate order numbers: {len(numbers) - len(set(numbers))}")
    print(f"🧾 Orders with unexpected status/timeline: {len(bad_state)}")
    print(f"🔒 Foreign orders visible to customers: {leaks}")

    if successful:
        avg_time = round(sum(r["time"] for r in successful) / len(successful), 3)
        print(f"\n📈 Average flow time: {avg_time}s")
        print(f"   💰 Confirmed revenue: {sum(r['total'] for r in successful):.2f}")

    if failed:
        print("\n⚠️  Failed Order Details (showing first 5):")
        for f in failed[:5]:
            print(f"   Order #{f['order_num']}: {f.get('error', 'Unknown error')}")

    print("=" * 70)

    return {
        "total": num_orders,
        "successful": len(successful),
        "failed": len(failed),
        "total_time": total_time,
        "results": results,
    }


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Order Flow Simulation Script")
    parser.add_argument("--orders", type=int, default=TOTAL_ORDERS, help="Number of orders")
    parser.add_argument("--url", default=API_BASE_URL, help="API base URL")
    args = parser.parse_args()

    API_BASE_URL = args.url
    summary = asyncio.run(run_simulation(args.orders))
    sys.exit(0 if summary["failed"] == 0 else 1)
