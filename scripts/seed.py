"""
Seed script: demo invoices for two organizations, plus a bearer token per
demo user for trying the API locally.
Run from the project root: python -m scripts.seed
"""
import asyncio
import sys
import os
from datetime import date
from decimal import Decimal

# Ensure the project root is on sys.path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import select, func
from invoicehub.database import AsyncSessionLocal, set_tenant_context
from invoicehub.exceptions import ConfigurationError
from invoicehub.models.invoice import Invoice
from invoicehub.services.auth_service import create_access_token

ORG_ONE = "demo_org_1"
ORG_TWO = "demo_org_2"
USER_ONE = "user_1"
USER_TWO = "user_2"


def _item(name, quantity, price):
    return {"name": name, "quantity": quantity, "price": price}


# (number, customer, email, amount, status, issue, due, items, payment method, notes)
DEMO_INVOICES = {
    (ORG_ONE, USER_ONE): [
        ("INV-001", "Acme Corporation", "accounting@acme.com", "5420.00", "paid", "2024-12-15", "2025-01-15",
         [_item("Web Development", 40, 120.00), _item("Design Services", 10, 150.00)],
         "bank_transfer", "Payment received on time"),
        ("INV-002", "TechStart Inc", "finance@techstart.io", "3200.00", "pending", "2025-01-15", "2025-02-01",
         [_item("Monthly Retainer", 1, 3200.00)], "credit_card", "Recurring monthly invoice"),
        ("INV-003", "Global Solutions Ltd", "billing@globalsolutions.com", "8750.50", "overdue", "2024-11-20", "2024-12-20",
         [_item("Consulting Services", 50, 175.00)], "bank_transfer", "Follow up required"),
        ("INV-004", "Startup Ventures", "ap@startupventures.com", "1850.00", "pending", "2025-01-20", "2025-02-15",
         [_item("Logo Design", 1, 850.00), _item("Brand Guidelines", 1, 1000.00)], "paypal", "New client"),
        ("INV-005", "Enterprise Systems Co", "payments@enterprise.com", "12000.00", "paid", "2024-12-10", "2025-01-10",
         [_item("Custom Software Development", 80, 150.00)], "bank_transfer", "Large project milestone 1"),
        ("INV-006", "Digital Marketing Pro", "accounts@digitalmp.com", "2500.00", "pending", "2025-01-22", "2025-02-05",
         [_item("SEO Services", 1, 1500.00), _item("Content Creation", 1, 1000.00)], "credit_card", "Monthly services"),
        ("INV-007", "Cloud Services Inc", "billing@cloudservices.io", "950.00", "paid", "2024-12-08", "2025-01-08",
         [_item("Server Maintenance", 1, 950.00)], "credit_card", "Auto-renewed"),
        ("INV-008", "Innovation Hub", "finance@innovationhub.com", "4200.00", "overdue", "2024-11-25", "2024-12-25",
         [_item("Workshop Series", 3, 1400.00)], "bank_transfer", "Sent reminder on Jan 5"),
        ("INV-009", "Future Tech Partners", "ap@futuretech.com", "6800.00", "pending", "2025-01-25", "2025-02-10",
         [_item("Mobile App Development", 40, 170.00)], "bank_transfer", "Phase 1 of 3"),
        ("INV-010", "Creative Studios", "accounts@creativestudios.com", "3150.00", "paid", "2024-12-18", "2025-01-18",
         [_item("Video Production", 1, 2500.00), _item("Editing Services", 1, 650.00)], "paypal", "Excellent collaboration"),
    ],
    (ORG_TWO, USER_TWO): [
        ("INV-B001", "Beta Client Inc", "billing@betaclient.com", "2500.00", "paid", "2024-12-12", "2025-01-12",
         [_item("Consulting", 20, 125.00)], "credit_card", "Second org invoice"),
        ("INV-B002", "Gamma Solutions", "ap@gamma.com", "1800.00", "pending", "2025-01-20", "2025-02-08",
         [_item("Support Services", 1, 1800.00)], "bank_transfer", "Second org invoice"),
    ],
}


async def seed_org(org_id: str, user_id: str, rows: list) -> int:
    async with AsyncSessionLocal() as db:
        # invoices has FORCE ROW LEVEL SECURITY; inserts must carry the org context.
        await set_tenant_context(db, org_id)

        result = await db.execute(
            select(func.count(Invoice.id)).where(Invoice.organization_id == org_id)
        )
        if result.scalar():
            print(f"  {org_id}: already seeded, skipping")
            return 0

        db.add_all([
            Invoice(
                invoice_number=number,
                organization_id=org_id,
                user_id=user_id,
                customer_name=customer,
                customer_email=email,
                amount=Decimal(amount),
                status=inv_status,
                issue_date=date.fromisoformat(issue),
                due_date=date.fromisoformat(due),
                items=items,
                payment_method=method,
                notes=notes,
            )
            for number, customer, email, amount, inv_status, issue, due, items, method, notes in rows
        ])
        await db.commit()
        return len(rows)


async def seed():
    for (org_id, user_id), rows in DEMO_INVOICES.items():
        inserted = await seed_org(org_id, user_id, rows)
        print(f"  {org_id}: {inserted} invoices inserted")

    print("Demo tokens:")
    for org_id, user_id in DEMO_INVOICES:
        try:
            token = create_access_token(user_id, org_id, email=f"{user_id}@example.com")
        except ConfigurationError as e:
            print(f"  (no token: {e})")
            break
        print(f"  {user_id} @ {org_id}: {token}")


if __name__ == "__main__":
    asyncio.run(seed())
