"""Command line interface for the flight booking storefront."""
from __future__ import annotations

import argparse
import dataclasses
import sys
from typing import Iterable, List

from tabulate import tabulate

from . import catalog, database, search
from .config import configure_logging, load_settings
from .errors import FlightBookingError
from .models import Flight


def _render_table(flights: Iterable[Flight]) -> str:
    rows: List[list] = [
        [
            flight.id,
            flight.flight_number,
            f"{flight.source}-{flight.destination}",
            f"{flight.departure_date} {flight.departure_time:%H:%M}",
            f"{flight.arrival_date} {flight.arrival_time:%H:%M}",
            flight.duration,
            f"{flight.price:,.2f}",
            f"{flight.available_seats}/{flight.total_seats}",
            flight.aircraft,
        ]
        for flight in flights
    ]
    headers = ["ID", "Flight", "Route", "Departs", "Arrives", "Duration", "Price", "Seats", "Aircraft"]
    return tabulate(rows, headers=headers, tablefmt="github")


def parse_args(argv: Iterable[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Search and manage the flight inventory.")
    parser.add_argument(
        "--database-url",
        help="SQLAlchemy URL of the row store (default: FLIGHT_BOOKING_DATABASE_URL).",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    init = commands.add_parser("init-db", help="Create tables and load the seed catalog.")
    init.add_argument("--no-seed", action="store_true", help="Do not load the seed flights.")
    init.add_argument(
        "--sample-flights",
        type=int,
        default=0,
        help="Also generate this many pseudo-random flights for demos.",
    )

    find = commands.add_parser("search", help="Search flights by route and date.")
    find.add_argument("--source", default="", help="Origin city code, e.g. JFK.")
    find.add_argument("--destination", default="", help="Destination city code, e.g. LAX.")
    find.add_argument("--date", default="", help="Departure date as YYYY-MM-DD.")

    serve = commands.add_parser("serve", help="Run the web storefront.")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)

    return parser.parse_args(list(argv))


def main(argv: Iterable[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    settings = load_settings()
    configure_logging(settings.log_level)
    db_url = args.database_url or settings.database_url

    if args.command == "serve":  # pragma: no cover - blocks until interrupted
        import uvicorn

        from .web import create_app

        app = create_app(dataclasses.replace(settings, database_url=db_url))
        uvicorn.run(app, host=args.host, port=args.port)
        return 0

    try:
        session_factory = database.init_db(db_url)
        if args.command == "init-db":
            seeded = 0 if args.no_seed else catalog.seed_catalog(session_factory)
            generated = []
            if args.sample_flights > 0:
                generated = catalog.generate_sample_flights(session_factory, flights=args.sample_flights)
            print(f"Seeded {seeded} catalog flights, generated {len(generated)} sample flights.")
            return 0

        with session_factory() as session:
            flights = search.search_flights(
                session,
                source=args.source,
                destination=args.destination,
                departure_date=args.date,
            )
            table = _render_table(flights)
    except FlightBookingError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    if not flights:
        print("No flights found.")
        return 0
    print(f"{len(flights)} flight(s) found")
    print(table)
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
