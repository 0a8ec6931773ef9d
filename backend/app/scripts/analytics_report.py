"""Pull the city's tables from the REST export and write a Markdown report.

Usage: gitcity-analytics-report [--output docs/analytics-report.md]
"""
import argparse
import logging
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from app.core.config import settings

logger = logging.getLogger(__name__)

PAGE_SIZE = 1000
DEFAULT_OUTPUT = Path("docs/analytics-report.md")

Row = dict[str, Any]


class RestExport:
    """Minimal PostgREST reader: paginated selects and exact counts."""

    def __init__(self, base_url: str, key: str, client: httpx.Client):
        self.base_url = base_url.rstrip("/")
        self.client = client
        self.headers = {
            "apikey": key,
            "Authorization": f"Bearer {key}",
            "Prefer": "count=exact",
        }

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        reraise=True,
    )
    def _get(self, table: str, params: dict[str, str]) -> httpx.Response:
        response = self.client.get(
            f"{self.base_url}/rest/v1/{table}", params=params, headers=self.headers
        )
        response.raise_for_status()
        return response

    def fetch_all(self, table: str, params: dict[str, str]) -> list[Row]:
        rows: list[Row] = []
        offset = 0
        while True:
            page = self._get(
                table, {**params, "limit": str(PAGE_SIZE), "offset": str(offset)}
            ).json()
            rows.extend(page)
            if len(page) < PAGE_SIZE:
                return rows
            offset += PAGE_SIZE

    def count(self, table: str, params: dict[str, str]) -> int:
        response = self._get(table, {**params, "select": "id", "limit": "1"})
        content_range = response.headers.get("content-range", "")
        total = content_range.rpartition("/")[2]
        return int(total) if total.isdigit() else len(response.json())


@dataclass
class ReportData:
    developers: list[Row] = field(default_factory=list)
    purchases: list[Row] = field(default_factory=list)
    ads: list[Row] = field(default_factory=list)
    kudos: list[Row] = field(default_factory=list)
    visits: list[Row] = field(default_factory=list)
    achievements: list[Row] = field(default_factory=list)
    impressions: int = 0
    clicks: int = 0
    cta_clicks: int = 0


def load(export: RestExport) -> ReportData:
    logger.info("Fetching developers")
    developers = export.fetch_all(
        "developers",
        {
            "select": "id,github_login,contributions,contributions_total,public_repos,"
            "total_stars,kudos_count,visit_count,referral_count,created_at,claimed,"
            "claimed_at,primary_language,followers",
            "order": "created_at.asc",
        },
    )
    logger.info("Fetching purchases")
    purchases = export.fetch_all(
        "purchases",
        {
            "select": "id,developer_id,item_id,amount_cents,currency,status,provider,"
            "created_at,gifted_to",
            "status": "eq.completed",
            "order": "created_at.asc",
        },
    )
    logger.info("Fetching sky ads")
    ads = export.fetch_all(
        "sky_ads",
        {
            "select": "id,brand,vehicle,plan_id,purchaser_email,active,starts_at,ends_at,created_at",
            "plan_id": "not.is.null",
            "order": "created_at.asc",
        },
    )
    logger.info("Counting ad events")
    counts = {
        event: export.count("sky_ad_events", {"event_type": f"eq.{event}"})
        for event in ("impression", "click", "cta_click")
    }
    logger.info("Fetching kudos, visits and achievements")
    kudos = export.fetch_all(
        "developer_kudos",
        {"select": "giver_id,receiver_id,given_date,created_at", "order": "created_at.asc"},
    )
    visits = export.fetch_all(
        "building_visits",
        {"select": "visitor_id,building_id,visit_date,created_at", "order": "created_at.asc"},
    )
    achievements = export.fetch_all(
        "developer_achievements",
        {"select": "developer_id,achievement_id,unlocked_at", "order": "unlocked_at.asc"},
    )
    return ReportData(
        developers=developers,
        purchases=purchases,
        ads=ads,
        kudos=kudos,
        visits=visits,
        achievements=achievements,
        impressions=counts["impression"],
        clicks=counts["click"],
        cta_clicks=counts["cta_click"],
    )


def by_day(rows: Iterable[Row], date_field: str) -> dict[str, int]:
    counts: Counter[str] = Counter()
    for row in rows:
        value = row.get(date_field)
        if value:
            counts[str(value)[:10]] += 1
    return dict(sorted(counts.items()))


def fmt(n: int | float) -> str:
    return f"{n:,}"


def _pct(part: float, whole: float, digits: int = 1) -> str:
    return f"{(part / whole * 100):.{digits}f}" if whole else "0"


def _table(headers: list[str], rows: Iterable[Iterable[Any]]) -> list[str]:
    lines = [
        "| " + " | ".join(headers) + " |",
        "|" + "|".join("-" * (len(h) + 2) for h in headers) + "|",
    ]
    lines += ["| " + " | ".join(str(cell) for cell in row) + " |" for row in rows]
    return lines


def _top(developers: list[Row], key: str, n: int = 10) -> list[Row]:
    return sorted(developers, key=lambda d: d.get(key) or 0, reverse=True)[:n]


def build_report(data: ReportData, now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    devs = data.developers
    purchases = data.purchases
    paid_ads = [a for a in data.ads if a.get("purchaser_email")]
    abandoned_ads = len(data.ads) - len(paid_ads)

    claimed = [d for d in devs if d.get("claimed")]
    paid_purchases = [p for p in purchases if (p.get("amount_cents") or 0) > 0]
    gifts = [p for p in purchases if p.get("gifted_to")]
    revenue = Counter()
    for p in purchases:
        revenue[p.get("currency")] += p.get("amount_cents") or 0

    ad_customers: dict[str, list[str]] = {}
    for ad in paid_ads:
        ad_customers.setdefault(ad["purchaser_email"], []).append(str(ad.get("plan_id")))
    repeat_customers = sorted(
        ((email, plans) for email, plans in ad_customers.items() if len(plans) > 1),
        key=lambda item: len(item[1]),
        reverse=True,
    )

    devs_by_day = by_day(devs, "created_at")
    daily = {
        "devs": devs_by_day,
        "purchases": by_day(purchases, "created_at"),
        "ads": by_day(paid_ads, "created_at"),
        "kudos": by_day(data.kudos, "created_at"),
        "visits": by_day(data.visits, "created_at"),
        "achievements": by_day(data.achievements, "unlocked_at"),
    }
    days = sorted(set().union(*daily.values()))
    total_contributions = sum(d.get("contributions_total") or d.get("contributions") or 0 for d in devs)
    total_stars = sum(d.get("total_stars") or 0 for d in devs)
    total_repos = sum(d.get("public_repos") or 0 for d in devs)
    total_followers = sum(d.get("followers") or 0 for d in devs)

    lines = [
        "# Git City Analytics Report",
        "",
        f"Generated: {now:%Y-%m-%d %H:%M:%S} UTC",
        "",
        "---",
        "",
        "## Summary",
        "",
    ]
    lines += _table(
        ["Metric", "Value"],
        [
            ("Developers", fmt(len(devs))),
            ("Claimed buildings", f"{fmt(len(claimed))} ({_pct(len(claimed), len(devs))}%)"),
            ("Unclaimed buildings", fmt(len(devs) - len(claimed))),
            ("Total contributions", fmt(total_contributions)),
            ("Public repos", fmt(total_repos)),
            ("Stars (all developers)", fmt(total_stars)),
            ("Followers (all developers)", fmt(total_followers)),
            ("Shop purchases", fmt(len(purchases))),
            ("Paid purchases", fmt(len(paid_purchases))),
            ("Free items (achievements, claims)", fmt(len(purchases) - len(paid_purchases))),
            ("Shop revenue (USD)", f"${revenue['usd'] / 100:.2f}"),
            ("Shop revenue (BRL)", f"R${revenue['brl'] / 100:.2f}"),
            ("Paid ads", fmt(len(paid_ads))),
            ("Abandoned ad checkouts", fmt(abandoned_ads)),
            ("Unique ad customers", fmt(len(ad_customers))),
            ("Ad impressions", fmt(data.impressions)),
            ("Ad clicks", fmt(data.clicks)),
            ("Ad CTA clicks", fmt(data.cta_clicks)),
            ("Ad CTR", f"{_pct(data.clicks, data.impressions, 2)}%"),
            ("Kudos", fmt(len(data.kudos))),
            ("Unique kudos givers", fmt(len({k.get("giver_id") for k in data.kudos}))),
            ("Building visits", fmt(len(data.visits))),
            ("Unique visitors", fmt(len({v.get("visitor_id") for v in data.visits}))),
            ("Achievements unlocked", fmt(len(data.achievements))),
            ("Gifts sent", fmt(len(gifts))),
        ],
    )

    lines += ["", "---", "", "## Daily metrics", ""]
    daily_rows = []
    cumulative = 0
    for day in days:
        new_devs = daily["devs"].get(day, 0)
        cumulative += new_devs
        daily_rows.append(
            (
                day,
                new_devs,
                fmt(cumulative),
                daily["purchases"].get(day, 0),
                daily["ads"].get(day, 0),
                daily["kudos"].get(day, 0),
                daily["visits"].get(day, 0),
                daily["achievements"].get(day, 0),
            )
        )
    lines += _table(
        ["Day", "New devs", "Cumulative", "Purchases", "Paid ads", "Kudos", "Visits", "Achievements"],
        daily_rows,
    )

    lines += ["", "---", "", "## Shop: sales by item", ""]
    lines += _table(
        ["Item", "Sales"], Counter(p.get("item_id") for p in purchases).most_common()
    )

    lines += ["", "## Ads: sales by plan", ""]
    lines += _table(["Plan", "Sales"], Counter(a.get("plan_id") for a in paid_ads).most_common())
    lines += ["", "## Ads: sales by vehicle", ""]
    lines += _table(
        ["Vehicle", "Sales"], Counter(a.get("vehicle") for a in paid_ads).most_common()
    )
    lines += ["", "## Ads: customers", ""]
    lines += _table(
        ["Brand", "Vehicle", "Plan", "Email", "Start", "End"],
        [
            (
                a.get("brand") or "(unnamed)",
                a.get("vehicle"),
                a.get("plan_id"),
                a.get("purchaser_email"),
                str(a.get("starts_at") or "-")[:10],
                str(a.get("ends_at") or "-")[:10],
            )
            for a in paid_ads
        ],
    )
    lines += ["", "## Ads: repeat customers", ""]
    lines += _table(
        ["Email", "Ads bought", "Plans"],
        [(email, len(plans), ", ".join(plans)) for email, plans in repeat_customers],
    )

    for title, key in (
        ("Top 10 by kudos", "kudos_count"),
        ("Top 10 by visits", "visit_count"),
        ("Top 10 by contributions", "contributions"),
    ):
        lines += ["", "---", "", f"## {title}", ""]
        lines += _table(
            ["#", "Developer", key.replace("_", " ").capitalize()],
            [
                (i, f"@{d['github_login']}", fmt(d.get(key) or 0))
                for i, d in enumerate(_top(devs, key), start=1)
            ],
        )

    referrers = [d for d in devs if (d.get("referral_count") or 0) > 0]
    lines += ["", "## Top referrers", ""]
    lines += _table(
        ["#", "Developer", "Referrals"],
        [
            (i, f"@{d['github_login']}", fmt(d["referral_count"]))
            for i, d in enumerate(_top(referrers, "referral_count"), start=1)
        ],
    )

    lines += ["", "---", "", "## Claims per day", ""]
    claim_rows = []
    cumulative = 0
    for day, count in by_day(claimed, "claimed_at").items():
        cumulative += count
        claim_rows.append((day, count, fmt(cumulative)))
    lines += _table(["Day", "New claims", "Cumulative"], claim_rows)

    languages = Counter(d.get("primary_language") or "Unknown" for d in devs).most_common(15)
    lines += ["", "---", "", "## Languages", ""]
    lines += _table(
        ["#", "Language", "Developers"],
        [(i, lang, fmt(count)) for i, (lang, count) in enumerate(languages, start=1)],
    )

    lines += ["", "---", "", "## Day-over-day growth", ""]
    growth_rows = []
    previous = 0
    for day, count in devs_by_day.items():
        if previous > 0:
            growth_rows.append((day, f"+{_pct(count, previous)}%"))
        previous += count
    lines += _table(["Day", "Growth vs previous total"], growth_rows)

    lines.append("")
    return "\n".join(lines)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--output", type=Path, default=DEFAULT_OUTPUT)
    args = parser.parse_args(argv)

    logging.basicConfig(level=settings.LOG_LEVEL)
    if not settings.REST_EXPORT_URL or not settings.REST_EXPORT_KEY:
        raise SystemExit("Set REST_EXPORT_URL and REST_EXPORT_KEY")

    with httpx.Client(timeout=60.0) as client:
        export = RestExport(settings.REST_EXPORT_URL, settings.REST_EXPORT_KEY, client)
        report = build_report(load(export))
    args.output.parent.mkdir(parents=True, exist_ok=True)
    args.output.write_text(report, encoding="utf-8")
    logger.info("Report written to %s", args.output)


if __name__ == "__main__":
    main()
