import asyncio
import os
import sys
from datetime import datetime, timedelta
from motor.motor_asyncio import AsyncIOMotorClient
from dotenv import load_dotenv

from app.database import create_indexes
from app.models.auth.user import UserRole
from app.services.auth.auth_service import AuthService
from app.services.auth.security import security_service

# Load environment variables
load_dotenv()

# MongoDB connection
MONGODB_URL = os.getenv("MONGODB_URL", "mongodb://localhost:27017")
DATABASE_NAME = os.getenv("DATABASE_NAME", "codearena")

ADMIN_EMAIL = os.getenv("SEED_ADMIN_EMAIL", "admin@codearena.dev")


# Problems data
PROBLEMS_DATA = [
    {"title": "Two Sum", "slug": "two-sum", "difficulty": "easy"},
    {"title": "Valid Parentheses", "slug": "valid-parentheses", "difficulty": "easy"},
    {"title": "Merge Intervals", "slug": "merge-intervals", "difficulty": "medium"},
    {"title": "Longest Palindromic Substring", "slug": "longest-palindromic-substring", "difficulty": "medium"},
    {"title": "Course Schedule", "slug": "course-schedule", "difficulty": "medium"},
    {"title": "Median of Two Sorted Arrays", "slug": "median-of-two-sorted-arrays", "difficulty": "hard"},
    {"title": "Trapping Rain Water", "slug": "trapping-rain-water", "difficulty": "hard"},
]


async def seed_problems(db):
    """Insert sample problems into the problem catalog"""
    print("[*] Seeding problems...")
    problem_ids = []

    for problem in PROBLEMS_DATA:
        existing = await db.problems.find_one({"slug": problem["slug"]})
        if existing:
            print(f"  [SKIP] Problem '{problem['title']}' already exists")
            problem_ids.append(str(existing["_id"]))
            continue

        result = await db.problems.insert_one({
            **problem,
            "created_at": datetime.utcnow()
        })
        problem_ids.append(str(result.inserted_id))
        print(f"  [OK] Created problem: {problem['title']} ({problem['difficulty']})")

    print(f"\n[SUCCESS] Problems seeded! Total: {len(problem_ids)}")
    return problem_ids


async def seed_admin(db):
    """Create the admin account contests are created with"""
    print("\n[*] Seeding admin user...")
    auth_service = AuthService(db)

    admin = await auth_service.get_user_by_email(ADMIN_EMAIL)
    if admin:
        print(f"  [SKIP] Admin '{ADMIN_EMAIL}' already exists")
        if admin.get("role") != UserRole.ADMIN.value:
            await db.users.update_one({"_id": admin["_id"]}, {"$set": {"role": UserRole.ADMIN.value}})
            print(f"  [OK] Promoted {ADMIN_EMAIL} to admin")
    else:
        admin = await auth_service.create_user(
            email=ADMIN_EMAIL,
            username="admin",
            full_name="Contest Admin",
            role=UserRole.ADMIN
        )
        print(f"  [OK] Created admin: {ADMIN_EMAIL}")

    token = security_service.create_access_token(
        {"sub": admin["email"], "user_id": str(admin["_id"])},
        expires_delta=timedelta(days=7)
    )
    return token


async def main():
    """Main seed function"""
    print("=" * 60)
    print("Starting contest data seed...")
    print("=" * 60)
    print()

    # Connect to MongoDB
    client = AsyncIOMotorClient(MONGODB_URL)
    db = client[DATABASE_NAME]

    try:
        await create_indexes(db)
        problem_ids = await seed_problems(db)
        token = await seed_admin(db)

        print()
        print("=" * 60)
        print("Contest data seeding completed successfully!")
        print("=" * 60)
        print(f"Problem IDs: {', '.join(problem_ids)}")
        print(f"Admin access token (7 days):\n{token}")

    except Exception as e:
        print()
        print("=" * 60)
        print(f"ERROR during seeding: {e}")
        print("=" * 60)
        sys.exit(1)
    finally:
        client.close()


if __name__ == "__main__":
    asyncio.run(main())
