"""Schemas and sample data for both engines.

the ddl here is the shape the packaged source definitions expect. tests build
their fixtures on it, and `drill init-sample` fills it with seeded random
traffic so the cli has something to drill into.
"""

import logging
import random
from datetime import date, datetime, timedelta
from typing import Any

import duckdb

logger = logging.getLogger(__name__)

ANALYTICS_DDL = {
    "page_views": """
        CREATE TABLE IF NOT EXISTS page_views (
            page_view_id INTEGER,
            session_id VARCHAR,
            ff_visitor_id VARCHAR,
            created_at TIMESTAMP,
            url_path VARCHAR,
            page_type VARCHAR,
            utm_source VARCHAR,
            utm_campaign VARCHAR,
            utm_content VARCHAR,
            utm_medium VARCHAR,
            utm_term VARCHAR,
            keyword VARCHAR,
            placement VARCHAR,
            referrer VARCHAR,
            ff_funnel_id VARCHAR,
            country_code VARCHAR,
            device_type VARCHAR,
            os_name VARCHAR,
            browser_name VARCHAR,
            active_time_s DOUBLE,
            hero_scroll_passed BOOLEAN,
            form_view BOOLEAN,
            form_started BOOLEAN
        )
    """,
    "session_entries": """
        CREATE TABLE IF NOT EXISTS session_entries (
            session_id VARCHAR,
            ff_visitor_id VARCHAR,
            session_start TIMESTAMP,
            entry_url_path VARCHAR,
            entry_page_type VARCHAR,
            entry_utm_source VARCHAR,
            entry_utm_campaign VARCHAR,
            entry_utm_content VARCHAR,
            entry_utm_medium VARCHAR,
            entry_keyword VARCHAR,
            entry_placement VARCHAR,
            entry_referrer VARCHAR,
            ff_funnel_id VARCHAR,
            entry_country_code VARCHAR,
            entry_device_type VARCHAR,
            entry_os_name VARCHAR,
            entry_browser_name VARCHAR,
            visit_number INTEGER,
            entry_active_time_s DOUBLE,
            entry_hero_scroll_passed BOOLEAN,
            entry_form_view BOOLEAN,
            entry_form_started BOOLEAN
        )
    """,
    "merged_ads_spending": """
        CREATE TABLE IF NOT EXISTS merged_ads_spending (
            date DATE,
            network VARCHAR,
            campaign_id VARCHAR,
            campaign_name VARCHAR,
            adset_id VARCHAR,
            adset_name VARCHAR,
            ad_id VARCHAR,
            ad_name VARCHAR,
            cost DECIMAL(12, 2)
        )
    """,
    "app_url_classifications": """
        CREATE TABLE IF NOT EXISTS app_url_classifications (
            url_path VARCHAR,
            product_id INTEGER,
            country_code VARCHAR,
            is_ignored BOOLEAN
        )
    """,
    "app_products": """
        CREATE TABLE IF NOT EXISTS app_products (
            id INTEGER,
            name VARCHAR
        )
    """,
}

CRM_DDL = {
    "source": """
        CREATE TABLE IF NOT EXISTS source (
            id INTEGER,
            source VARCHAR
        )
    """,
    "subscription": """
        CREATE TABLE IF NOT EXISTS subscription (
            id INTEGER,
            source_id INTEGER,
            date_create TIMESTAMP,
            deleted INTEGER,
            tracking_id VARCHAR,
            tracking_id_2 VARCHAR,
            tracking_id_4 VARCHAR,
            ff_vid VARCHAR
        )
    """,
    "invoice": """
        CREATE TABLE IF NOT EXISTS invoice (
            id INTEGER,
            subscription_id INTEGER,
            type INTEGER,
            is_marked INTEGER,
            deleted INTEGER,
            tag VARCHAR
        )
    """,
}


def create_analytics_schema(conn: duckdb.DuckDBPyConnection) -> None:
    for ddl in ANALYTICS_DDL.values():
        conn.execute(ddl)


def create_crm_schema(conn: duckdb.DuckDBPyConnection) -> None:
    for ddl in CRM_DDL.values():
        conn.execute(ddl)


def insert_rows(conn: duckdb.DuckDBPyConnection, table: str, rows: list[dict[str, Any]]) -> None:
    """Insert dict rows; columns missing from a row are NULL.

    column names come from the rows themselves, so only pass trusted data.
    """
    if not rows:
        return
    columns = list(dict.fromkeys(column for row in rows for column in row))
    placeholders = ", ".join(["?"] * len(columns))
    conn.executemany(
        f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})",
        [[row.get(column) for column in columns] for row in rows],
    )


# --- random sample traffic ---

CAMPAIGNS = {
    # campaign id -> (name, network, {adset id: (name, [ad ids])})
    "1001": ("Summer Sale", "google", {"2001": ("Broad", ["3001", "3002"])}),
    "1002": (
        "Retargeting",
        "facebook",
        {"2002": ("Lookalike", ["3003"]), "2003": ("Interest", ["3004"])},
    ),
    "1003": ("Brand", "google", {"2004": ("Exact", ["3005"])}),
}
SOURCE_SPELLINGS = {"google": ["google", "adwords"], "facebook": ["facebook", "meta"]}
CRM_SOURCES = ["google", "adwords", "facebook", "meta"]  # ids 1..4
URLS = [
    "https://shop.example.com/",
    "https://shop.example.com/product/sleep",
    "https://shop.example.com/product/joints",
    "https://shop.example.com/checkout",
]
COUNTRIES = ["DK", "DK", "SE", "NO", "DE", None]
DEVICES = ["mobile", "mobile", "desktop", "tablet"]
PRODUCTS = [(1, "SleepWell"), (2, "JointCare")]


def generate_sample_data(
    analytics_path: str,
    crm_path: str,
    sessions: int = 500,
    start: date = date(2024, 1, 1),
    days: int = 30,
    seed: int = 42,
) -> dict[str, int]:
    """Write seeded random traffic + crm data to two DuckDB files.

    Returns:
        Row counts per table.
    """
    rng = random.Random(seed)  # reproducible data

    page_views, entries, subscriptions, invoices = [], [], [], []
    page_view_id = 0
    for i in range(sessions):
        session_id = f"s{i}"
        visitor_id = f"v{rng.randint(0, sessions // 2)}"
        started = datetime.combine(start + timedelta(days=rng.randrange(days)), datetime.min.time())
        started += timedelta(minutes=rng.randrange(24 * 60))

        tracked = rng.random() < 0.8
        campaign_id = rng.choice(list(CAMPAIGNS)) if tracked else None
        adset_id = ad_id = source = None
        if campaign_id:
            _, network, adsets = CAMPAIGNS[campaign_id]
            adset_id = rng.choice(list(adsets))
            ad_id = rng.choice(adsets[adset_id][1])
            source = rng.choice(SOURCE_SPELLINGS[network])

        country = rng.choice(COUNTRIES)
        device = rng.choice(DEVICES)
        path = [URLS[0]] + rng.sample(URLS[1:], rng.randint(0, 3))

        for step, url in enumerate(path):
            page_view_id += 1
            active = round(rng.uniform(1, 90), 1)
            page_views.append(
                {
                    "page_view_id": page_view_id,
                    "session_id": session_id,
                    "ff_visitor_id": visitor_id,
                    "created_at": started + timedelta(minutes=step),
                    "url_path": url,
                    "page_type": "landing" if step == 0 else "content",
                    "utm_source": source,
                    "utm_campaign": campaign_id,
                    "utm_content": adset_id,
                    "utm_medium": ad_id,
                    "country_code": country,
                    "device_type": device,
                    "active_time_s": active,
                    "hero_scroll_passed": active > 10,
                    "form_view": url.endswith("checkout"),
                    "form_started": url.endswith("checkout") and active > 20,
                }
            )
            if step == 0:
                entries.append(
                    {
                        "session_id": session_id,
                        "ff_visitor_id": visitor_id,
                        "session_start": started,
                        "entry_url_path": url,
                        "entry_page_type": "landing",
                        "entry_utm_source": source,
                        "entry_utm_campaign": campaign_id,
                        "entry_utm_content": adset_id,
                        "entry_utm_medium": ad_id,
                        "entry_country_code": country,
                        "entry_device_type": device,
                        "visit_number": 1,
                        "entry_active_time_s": active,
                        "entry_hero_scroll_passed": active > 10,
                        "entry_form_view": False,
                        "entry_form_started": False,
                    }
                )

        if URLS[3] in path and rng.random() < 0.5:
            sub_id = len(subscriptions) + 1
            subscriptions.append(
                {
                    "id": sub_id,
                    "source_id": CRM_SOURCES.index(source) + 1 if source else None,
                    "date_create": started + timedelta(minutes=len(path)),
                    "deleted": 0,
                    "tracking_id": ad_id,
                    "tracking_id_2": adset_id,
                    "tracking_id_4": campaign_id,
                    "ff_vid": visitor_id if rng.random() < 0.6 else None,
                }
            )
            invoices.append(
                {
                    "id": sub_id,
                    "subscription_id": sub_id,
                    "type": 1,
                    "is_marked": 1 if rng.random() < 0.7 else 0,
                    "deleted": 0,
                    "tag": None,
                }
            )

    spend = []
    for day in range(days):
        for campaign_id, (campaign_name, network, adsets) in CAMPAIGNS.items():
            for adset_id, (adset_name, ads) in adsets.items():
                for ad_id in ads:
                    spend.append(
                        {
                            "date": start + timedelta(days=day),
                            "network": network,
                            "campaign_id": campaign_id,
                            "campaign_name": campaign_name,
                            "adset_id": adset_id,
                            "adset_name": adset_name,
                            "ad_id": ad_id,
                            "ad_name": f"Ad {ad_id}",
                            "cost": round(rng.uniform(5, 50), 2),
                        }
                    )

    classifications = [
        {"url_path": URLS[1], "product_id": 1, "country_code": "DK", "is_ignored": False},
        {"url_path": URLS[2], "product_id": 2, "country_code": "SE", "is_ignored": False},
    ]

    counts = {}
    with duckdb.connect(analytics_path) as conn:
        create_analytics_schema(conn)
        for table, rows in (
            ("page_views", page_views),
            ("session_entries", entries),
            ("merged_ads_spending", spend),
            ("app_url_classifications", classifications),
            ("app_products", [{"id": pid, "name": name} for pid, name in PRODUCTS]),
        ):
            insert_rows(conn, table, rows)
            counts[table] = len(rows)

    with duckdb.connect(crm_path) as conn:
        create_crm_schema(conn)
        sources = [{"id": i, "source": s} for i, s in enumerate(CRM_SOURCES, 1)]
        for table, rows in (
            ("source", sources),
            ("subscription", subscriptions),
            ("invoice", invoices),
        ):
            insert_rows(conn, table, rows)
            counts[table] = len(rows)

    logger.info("sample data written: %s", counts)
    return counts
