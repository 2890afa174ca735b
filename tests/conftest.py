"""Pytest fixtures for drilldown tests."""

from collections.abc import Callable, Generator
from datetime import date, datetime
from typing import Any

import pytest

from drilldown.models.dimension import AnalyticsSource
from drilldown.models.request import QueryRequest
from drilldown.parser.loader import DimensionRegistry
from drilldown.sample_data import create_analytics_schema, create_crm_schema, insert_rows
from drilldown.store import ReportStore

SHOP = "https://shop.example.com"


def _view(
    session: str,
    visitor: str,
    created_at: datetime,
    url: str,
    tracking: tuple[str | None, str | None, str | None, str | None],
    country: str | None,
    device: str,
    active: float,
) -> dict[str, Any]:
    source, campaign, adset, ad = tracking
    return {
        "session_id": session,
        "ff_visitor_id": visitor,
        "created_at": created_at,
        "url_path": f"{SHOP}{url}",
        "utm_source": source,
        "utm_campaign": campaign,
        "utm_content": adset,
        "utm_medium": ad,
        "country_code": country,
        "device_type": device,
        "active_time_s": active,
        "hero_scroll_passed": active > 10,
    }


SUMMER_A = ("google", "1001", "2001", "3001")
SUMMER_B = ("adwords", "1001", "2001", "3002")
RETARGET = ("facebook", "1002", "2002", "3003")
UNTRACKED = (None, None, None, None)
NO_SPEND = ("google", "1009", None, None)


@pytest.fixture
def sample_page_views() -> list[dict[str, Any]]:
    """Seven views inside 2024-01-15..17, one outside."""
    return [
        _view("s1", "v1", datetime(2024, 1, 15, 10, 0), "/", SUMMER_A, "DK", "mobile", 30),
        _view("s1", "v1", datetime(2024, 1, 15, 10, 1), "/checkout", SUMMER_A, "DK", "mobile", 40),
        _view("s2", "v2", datetime(2024, 1, 16, 9, 0), "/", SUMMER_B, "SE", "desktop", 3),
        _view(
            "s3", "v3", datetime(2024, 1, 16, 12, 0), "/product/sleep", RETARGET, "DK", "mobile", 20
        ),
        _view("s3", "v3", datetime(2024, 1, 16, 12, 2), "/checkout", RETARGET, "DK", "mobile", 25),
        _view("s4", "v4", datetime(2024, 1, 17, 8, 0), "/", UNTRACKED, None, "mobile", 2),
        _view("s5", "v5", datetime(2024, 1, 17, 18, 0), "/", NO_SPEND, "DK", "tablet", 12),
        _view("s6", "v1", datetime(2024, 2, 5, 10, 0), "/", SUMMER_A, "DK", "mobile", 15),
    ]


@pytest.fixture
def sample_sessions(sample_page_views: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """One entry row per session, taken from its first page view."""
    entries: dict[str, dict[str, Any]] = {}
    for view in sample_page_views:
        if view["session_id"] in entries:
            continue
        entries[view["session_id"]] = {
            "session_id": view["session_id"],
            "ff_visitor_id": view["ff_visitor_id"],
            "session_start": view["created_at"],
            "entry_url_path": view["url_path"],
            "entry_utm_source": view["utm_source"],
            "entry_utm_campaign": view["utm_campaign"],
            "entry_utm_content": view["utm_content"],
            "entry_utm_medium": view["utm_medium"],
            "entry_country_code": view["country_code"],
            "entry_device_type": view["device_type"],
            "visit_number": 1,
            "entry_active_time_s": view["active_time_s"],
        }
    return list(entries.values())


@pytest.fixture
def sample_spend() -> list[dict[str, Any]]:
    """Spend rows; 1001 appears on two days, 1002 has a stale name outside the range."""
    summer = {"campaign_id": "1001", "campaign_name": "Summer Sale"}
    broad = {"adset_id": "2001", "adset_name": "Broad"}
    return [
        {"date": date(2024, 1, 15), **summer, **broad, "ad_id": "3001", "ad_name": "Ad A"},
        {"date": date(2024, 1, 16), **summer, **broad, "ad_id": "3001", "ad_name": "Ad A"},
        {"date": date(2024, 1, 15), **summer, **broad, "ad_id": "3002", "ad_name": "Ad B"},
        {
            "date": date(2024, 1, 16),
            "campaign_id": "1002",
            "campaign_name": "Retargeting",
            "adset_id": "2002",
            "adset_name": "Lookalike",
            "ad_id": "3003",
            "ad_name": "Ad C",
        },
        {
            "date": date(2024, 2, 1),
            "campaign_id": "1002",
            "campaign_name": "Zeta Retargeting",
            "adset_id": "2002",
            "adset_name": "Zeta Lookalike",
            "ad_id": "3003",
            "ad_name": "Zeta Ad",
        },
    ]


def _subscription(
    sub_id: int,
    source_id: int,
    created: datetime,
    tracking: tuple[str, str, str],
    visitor: str | None,
    deleted: int = 0,
) -> dict[str, Any]:
    campaign, adset, ad = tracking
    return {
        "id": sub_id,
        "source_id": source_id,
        "date_create": created,
        "deleted": deleted,
        "tracking_id": ad,
        "tracking_id_2": adset,
        "tracking_id_4": campaign,
        "ff_vid": visitor,
    }


@pytest.fixture
def sample_crm() -> dict[str, list[dict[str, Any]]]:
    """Three counted subscriptions plus one deleted, one upsell and one out of range."""
    subscriptions = [
        _subscription(1, 1, datetime(2024, 1, 15, 11), ("1001", "2001", "3001"), "v1"),
        _subscription(2, 2, datetime(2024, 1, 16, 10), ("1001", "2001", "3002"), None),
        _subscription(3, 3, datetime(2024, 1, 16, 13), ("1002", "2002", "3003"), "v3"),
        _subscription(4, 1, datetime(2024, 1, 15, 12), ("1001", "2001", "3001"), "v1", deleted=1),
        _subscription(5, 1, datetime(2024, 1, 15, 13), ("1001", "2001", "3001"), "v1"),
        _subscription(6, 1, datetime(2024, 2, 5, 11), ("1001", "2001", "3001"), "v1"),
    ]
    invoices = [
        {"id": i, "subscription_id": i, "type": 1, "is_marked": marked, "deleted": 0, "tag": None}
        for i, marked in ((1, 1), (2, 0), (3, 1), (4, 1), (6, 1))
    ]
    upsell = {"id": 5, "subscription_id": 5, "type": 1, "is_marked": 1, "deleted": 0}
    invoices.append({**upsell, "tag": "parent-sub-id=1"})
    return {
        "source": [
            {"id": 1, "source": "google"},
            {"id": 2, "source": "adwords"},
            {"id": 3, "source": "facebook"},
            {"id": 4, "source": "meta"},
        ],
        "subscription": subscriptions,
        "invoice": invoices,
    }


@pytest.fixture
def registry() -> DimensionRegistry:
    """The packaged sources."""
    return DimensionRegistry.builtin()


@pytest.fixture
def page_views(registry: DimensionRegistry) -> AnalyticsSource:
    return registry.get_source("page_views")


@pytest.fixture
def sessions(registry: DimensionRegistry) -> AnalyticsSource:
    return registry.get_source("sessions")


@pytest.fixture
def make_request() -> Callable[..., QueryRequest]:
    """Build a QueryRequest over 2024-01-15..17 with overridable fields."""

    def _make(dimensions: list[str], **kwargs: Any) -> QueryRequest:
        kwargs.setdefault("date_range", {"start": "2024-01-15", "end": "2024-01-17"})
        return QueryRequest(dimensions=dimensions, **kwargs)

    return _make


@pytest.fixture
def analytics_store(
    registry: DimensionRegistry,
    sample_page_views: list[dict[str, Any]],
    sample_sessions: list[dict[str, Any]],
    sample_spend: list[dict[str, Any]],
) -> Generator[ReportStore, None, None]:
    """In-memory store with analytics data and an empty crm database."""
    store = ReportStore(registry=registry)
    conn = store.analytics.conn
    create_analytics_schema(conn)
    insert_rows(conn, "page_views", sample_page_views)
    insert_rows(conn, "session_entries", sample_sessions)
    insert_rows(conn, "merged_ads_spending", sample_spend)
    # checkout is classified but ignored, so it must never match
    classifications = [
        (f"{SHOP}/product/sleep", 1, "DK", False),
        (f"{SHOP}/checkout", 2, "SE", True),
    ]
    insert_rows(
        conn,
        "app_url_classifications",
        [
            {"url_path": url, "product_id": pid, "country_code": cc, "is_ignored": ignored}
            for url, pid, cc, ignored in classifications
        ],
    )
    products = [{"id": 1, "name": "SleepWell"}, {"id": 2, "name": "JointCare"}]
    insert_rows(conn, "app_products", products)

    yield store
    store.close()


@pytest.fixture
def store_with_data(
    analytics_store: ReportStore, sample_crm: dict[str, list[dict[str, Any]]]
) -> ReportStore:
    """In-memory store with both engines populated."""
    conn = analytics_store.crm.conn
    create_crm_schema(conn)
    for table, rows in sample_crm.items():
        insert_rows(conn, table, rows)
    return analytics_store
