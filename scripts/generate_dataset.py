"""
Sample Superstore Dataset Generator
Writes a raw, deliberately messy sales export for trying the pipeline.

- cp1252 encoded, "Title Case" headers like the public Superstore export
- currency and percentage formatted measures
- a handful of malformed rows that the cleaning stage must quarantine
"""

import argparse
from datetime import date, timedelta
from pathlib import Path

import numpy as np
import polars as pl
from faker import Faker

fake = Faker()
np.random.seed(42)
Faker.seed(42)

OUTPUT_DIR = Path(__file__).parent.parent / "data" / "raw"

SEGMENTS = ["Consumer", "Corporate", "Home Office"]
SHIP_MODES = ["Standard Class", "Second Class", "First Class", "Same Day"]
REGIONS = ["West", "East", "Central", "South"]
CATEGORIES = {
    "Furniture": ["Bookcases", "Chairs", "Furnishings", "Tables"],
    "Office Supplies": ["Appliances", "Art", "Binders", "Paper", "Storage"],
    "Technology": ["Accessories", "Copiers", "Machines", "Phones"],
}


def generate_customers(n: int) -> list:
    return [
        {
            "customer_id": f"{fake.random_uppercase_letter()}{fake.random_uppercase_letter()}-{10000 + i}",
            "customer_name": fake.name(),
            "segment": np.random.choice(SEGMENTS),
        }
        for i in range(n)
    ]


def generate_products(n: int) -> list:
    products = []
    for i in range(n):
        category = str(np.random.choice(list(CATEGORIES)))
        sub_category = str(np.random.choice(CATEGORIES[category]))
        products.append({
            "product_id": f"{category[:3].upper()}-{sub_category[:2].upper()}-{10000000 + i}",
            "category": category,
            "sub_category": sub_category,
            "product_name": f"{fake.company()} {sub_category[:-1]} {fake.word().title()}",
            "unit_price": round(float(np.random.lognormal(4, 1)), 2),
        })
    return products


def generate_rows(n_orders: int = 2000, n_customers: int = 400, n_products: int = 300) -> pl.DataFrame:
    print(f"📊 Generating {n_orders:,} orders...")
    customers = generate_customers(n_customers)
    products = generate_products(n_products)
    start = date(2014, 1, 1)

    rows = []
    row_id = 1
    for o in range(n_orders):
        customer = customers[np.random.randint(n_customers)]
        order_date = start + timedelta(days=int(np.random.randint(0, 4 * 365)))
        ship_date = order_date + timedelta(days=int(np.random.randint(0, 8)))
        city = fake.city()
        state = fake.state()
        postal = fake.postcode()
        region = str(np.random.choice(REGIONS))
        ship_mode = str(np.random.choice(SHIP_MODES))

        for _ in range(np.random.randint(1, 5)):
            product = products[np.random.randint(n_products)]
            quantity = int(np.random.randint(1, 10))
            discount = float(np.random.choice([0, 0.1, 0.2, 0.3, 0.5, 0.8], p=[0.5, 0.15, 0.2, 0.05, 0.05, 0.05]))
            sales = round(product["unit_price"] * quantity * (1 - discount), 2)
            profit = round(sales * float(np.random.normal(0.12, 0.25)), 2)

            rows.append({
                "Row ID": str(row_id),
                "Order ID": f"US-{order_date.year}-{100000 + o}",
                "Order Date": f"{order_date.month}/{order_date.day}/{order_date.year}",
                "Ship Date": f"{ship_date.month}/{ship_date.day}/{ship_date.year}",
                "Ship Mode": ship_mode,
                "Customer ID": customer["customer_id"],
                "Customer Name": customer["customer_name"],
                "Segment": customer["segment"],
                "Country": "United States",
                "City": city,
                "State": state,
                "Postal Code": postal,
                "Region": region,
                "Product ID": product["product_id"],
                "Category": product["category"],
                "Sub-Category": product["sub_category"],
                "Product Name": product["product_name"],
                "Sales": f"${sales:,.2f}" if sales >= 0 else f"(${-sales:,.2f})",
                "Quantity": str(quantity),
                "Discount": f"{discount:.0%}",
                "Profit": f"${profit:,.2f}" if profit >= 0 else f"-${-profit:,.2f}",
            })
            row_id += 1

    # Messy rows the cleaner has to deal with
    if len(rows) > 10:
        rows[3]["Product Name"] = "Café Table – Deluxe"
        rows[5]["Order Date"] = "not a date"
        rows[7]["Sales"] = "N/A"
        rows[9]["Ship Date"] = "1/1/2013"

    return pl.DataFrame(rows)


def main() -> None:
    parser = argparse.ArgumentParser(description="Generate a raw Superstore-style CSV")
    parser.add_argument("--orders", type=int, default=2000, help="Number of orders")
    parser.add_argument("--output", type=Path, default=OUTPUT_DIR / "superstore.csv")
    args = parser.parse_args()

    df = generate_rows(args.orders)
    args.output.parent.mkdir(parents=True, exist_ok=True)
    args.output.write_bytes(df.write_csv().encode("cp1252", errors="replace"))
    print(f"   ✅ {args.output}: {len(df):,} rows")


if __name__ == "__main__":
    main()
