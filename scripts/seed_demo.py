#!/usr/bin/env python
"""
Seed script that onboards demo HOAs with a few reported violations.

Usage:
    python scripts/seed_demo.py --hoas 2 --violations 3
"""

import argparse
from typing import List

from hoa_tracker.config import Base, SessionLocal, engine
from hoa_tracker.core.errors import ErrorCategory, OnboardingError
from hoa_tracker.schemas.schemas import OnboardingRequest
from hoa_tracker.services.documents import SqlDocumentStore
from hoa_tracker.services.identity import LocalAuthService
from hoa_tracker.services.onboarding import provision_tenant
from hoa_tracker.services.violations import submit_violation

DEMO_NAMES = ["Sunset Gardens", "Maple Ridge Estates", "Lakeside Commons", "Cedar Hollow"]


def demo_form(index: int) -> OnboardingRequest:
    name = DEMO_NAMES[index % len(DEMO_NAMES)]
    return OnboardingRequest(
        hoa_name=name,
        hoa_address=f"{100 + index} Main Street",
        hoa_city="Springfield",
        hoa_state="IL",
        hoa_zip="62701",
        hoa_phone="555-0100",
        admin_first_name="Demo",
        admin_last_name=f"Admin {index + 1}",
        admin_email=f"admin{index + 1}@example.com",
        admin_password="changeme",
    )


def seed_database(hoa_count: int, violations_per_hoa: int) -> List[str]:
    Base.metadata.create_all(bind=engine)
    slugs: List[str] = []
    with SessionLocal() as session:
        store = SqlDocumentStore(session)
        auth = LocalAuthService(session)
        for index in range(hoa_count):
            form = demo_form(index)
            try:
                result = provision_tenant(store, auth, form)
            except OnboardingError as exc:
                if exc.category != ErrorCategory.EMAIL_ALREADY_IN_USE:
                    raise
                print(f"Skipping {form.hoa_name}: {form.admin_email} is already registered.")
                continue
            tenant = store.get("hoas", result.tenant_slug)
            for number in range(violations_per_hoa):
                violation_type = tenant.get("violation_types")[number % len(tenant.get("violation_types"))]
                submit_violation(
                    store,
                    result.tenant_slug,
                    violation_type=violation_type,
                    address=f"{200 + number} Oak Lane",
                    description=f"Demo report #{number + 1}",
                    reporter_email="neighbor@example.com",
                )
            slugs.append(result.tenant_slug)
            print(f"Seeded {result.tenant_slug} (admin {form.admin_email} / changeme)")
    return slugs


def main():
    parser = argparse.ArgumentParser(description="Seed the database with demo HOAs.")
    parser.add_argument("--hoas", type=int, default=2, help="Number of HOAs to onboard")
    parser.add_argument("--violations", type=int, default=3, help="Violations to report per HOA")
    args = parser.parse_args()
    seed_database(args.hoas, args.violations)


if __name__ == "__main__":
    main()
