#!/usr/bin/env python3
"""
Seed script: creates students, their study materials and a batch of barter proposals via the API.
Run: API must be running. Notifications are queued; run a Celery worker to persist them.
  python scripts/seed_data.py
  python scripts/seed_data.py --users 20 --items-per-user 5 --proposals 40
"""

import argparse
import random

import httpx

API_BASE = "http://localhost:8000/api/v1"

TITLES = [
    "Calculus: Early Transcendentals", "Organic Chemistry", "Physics for Scientists",
    "Principles of Marketing", "Financial Accounting", "Microeconomics Notes",
    "Data Structures Lecture Notes", "Lab Coat (M)", "Scientific Calculator",
    "Engineering Drawing Set", "Statistics Past Papers", "Business Law Handbook",
    "Biology Lab Reports", "Graph Paper Pack", "Intro to Psychology",
]

CATEGORIES = ["books", "notes", "electronics", "stationery", "labreports", "other"]
CONDITIONS = ["new", "like-new", "good", "fair", "poor"]


def random_item() -> dict:
    return {
        "title": random.choice(TITLES),
        "description": "Used for one semester.",
        "category": random.choice(CATEGORIES),
        "condition": random.choice(CONDITIONS),
        "price_cents": random.choice([0, 500, 1000, 2500, 4000]),
    }


def main():
    ap = argparse.ArgumentParser(description="Seed users, items and barter proposals via API")
    ap.add_argument("--users", type=int, default=10, help="Number of users to create")
    ap.add_argument("--items-per-user", type=int, default=4, help="Items per user")
    ap.add_argument("--proposals", type=int, default=20, help="Barter proposals to attempt")
    ap.add_argument("--base-url", default=API_BASE, help="API base URL")
    args = ap.parse_args()

    sessions = []  # (headers, [item ids])
    errors = []

    with httpx.Client(base_url=args.base_url, timeout=30.0) as client:
        print(f"Creating {args.users} users with {args.items_per_user} items each...")
        for i in range(args.users):
            email, password = f"student{i+1}@example.com", "password123"
            r = client.post("/users/register", json={"email": email, "password": password, "name": f"Student {i+1}"})
            if r.status_code not in (201, 409):
                errors.append(f"Register {email}: {r.status_code} {r.text[:80]}")
                continue
            r = client.post("/users/login", json={"email": email, "password": password})
            if r.status_code != 200:
                errors.append(f"Login {email}: {r.status_code}")
                continue
            headers = {"Authorization": f"Bearer {r.json()['access_token']}"}
            item_ids = []
            for _ in range(args.items_per_user):
                r = client.post("/items", headers=headers, json=random_item())
                if r.status_code == 201:
                    item_ids.append(r.json()["id"])
                else:
                    errors.append(f"Item {email}: {r.status_code}")
            sessions.append((headers, item_ids))

        print(f"Attempting {args.proposals} barter proposals...")
        outcomes: dict[int, int] = {}
        for _ in range(args.proposals):
            (headers, mine), (_, theirs) = random.sample(sessions, 2)
            if not mine or not theirs:
                continue
            r = client.post(
                "/barters",
                headers=headers,
                json={"itemId": random.choice(theirs), "offerItemId": random.choice(mine)},
            )
            outcomes[r.status_code] = outcomes.get(r.status_code, 0) + 1

    print(f"\nDone. Users: {len(sessions)}, proposal outcomes by status: {outcomes}")
    if errors:
        print(f"Errors ({len(errors)}):")
        for e in errors[:15]:
            print("  ", e)


if __name__ == "__main__":
    main()
