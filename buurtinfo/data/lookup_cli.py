"""CLI for looking up neighbourhood information by postcode.

Usage:
    python -m buurtinfo.data.lookup_cli 1011AB
    python -m buurtinfo.data.lookup_cli "1011 AB" --address "Damrak 1"
    python -m buurtinfo.data.lookup_cli 1011AB --debug --all
"""

import argparse
import asyncio
import logging
import sys

from buurtinfo.config import settings
from buurtinfo.data.pipeline import NeighbourhoodPipeline
from buurtinfo.models.lookup import LateUpdate, NeighbourhoodRequest
from buurtinfo.models.neighbourhood import CrimeChartData


def print_properties(title: str, properties) -> None:
    print(f"\n{'=' * 60}")
    print(f"  {title}")
    print(f"{'=' * 60}")
    for p in properties:
        year = f"  ({p.year})" if p.year else ""
        print(f"  {p.label:<45} {p.value}{year}")
    print()


def print_crime_charts(charts: CrimeChartData) -> None:
    print(f"  Registered crimes per month ({charts.year}):")
    for m in charts.monthly:
        print(f"    {m.period}  {m.total:>8,.0f}")
    print()
    print("  By type:")
    for t in charts.by_type:
        print(f"    {t.label[:48]:<48} {t.total:>8,.0f}")
    print()


async def main() -> None:
    parser = argparse.ArgumentParser(description="Neighbourhood information lookup")
    parser.add_argument("zip_code", help="Dutch postcode, e.g. 1011AB")
    parser.add_argument("--address", help="Street and house number, e.g. 'Damrak 1'")
    parser.add_argument("--select", nargs="*", help="Property names to show as cards")
    parser.add_argument("--all", action="store_true", help="Print the full property table")
    parser.add_argument("--debug", action="store_true", help="Print diagnostics")

    args = parser.parse_args()
    logging.basicConfig(level=logging.DEBUG if args.debug else settings.log_level)

    request = NeighbourhoodRequest(
        zip_code=args.zip_code,
        address_query=args.address,
        debug=args.debug,
        selected_properties=args.select,
    )
    late: list[LateUpdate] = []

    async def collect(update: LateUpdate) -> None:
        late.append(update)

    pipeline = NeighbourhoodPipeline()
    try:
        result = await pipeline.lookup(request, on_late_update=collect)
    finally:
        # Waits for slow branches so the late update (if any) is in ``late``
        await pipeline.aclose()

    if result.error:
        print(f"Error: {result.error}", file=sys.stderr)
        sys.exit(1)

    cards = late[-1].card_properties if late else result.card_properties
    table = late[-1].table_properties if late else result.table_properties
    charts = late[-1].crime_data if late and late[-1].crime_data else result.crime_data
    debug_info = late[-1].debug_info if late and late[-1].debug_info else result.debug_info

    print_properties("Selected properties", cards)
    if args.all:
        print_properties("All properties", table)
    if charts:
        print_crime_charts(charts)
    if debug_info:
        print("  Diagnostics:")
        for line in debug_info:
            print(f"    {line}")


if __name__ == "__main__":
    asyncio.run(main())
