"""Example usage of ArrivalsSession."""

import logging
import sys
from pathlib import Path

# Add src to path so we can import bartarrivals
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from bartarrivals import ArrivalsSession, LocationSample, StatusKind

# Set up logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


def print_arrivals(session: ArrivalsSession):
    """Print the session's current station, status and grouped arrivals."""
    state = session.state
    station = state.station

    print(f"\n{'='*70}")
    print(f"Station: {station.display_name if station else 'Finding Nearest Station...'}")
    print(f"{'='*70}\n")

    if state.status.kind is StatusKind.ERROR:
        print(f"  {state.status.message}")
        return

    rows = session.describe_groups()
    if not rows:
        print(f"  {state.status.message or 'No arrivals found for this station.'}")
        return
    for row in rows:
        print(f"  {row}")
    print()


def run(args):
    session = ArrivalsSession()
    try:
        if len(args) == 2:
            # Command line mode: latitude longitude
            sample = LocationSample(latitude=float(args[0]), longitude=float(args[1]))
            future = session.scheduler.on_location_sample(sample)
        else:
            name = " ".join(args)
            matches = session.directory.find_by_name(name)
            if not matches:
                print(f"No station found matching '{name}'")
                sys.exit(1)
            future = session.scheduler.select_station(matches[0])

        if future is not None:
            future.result()
        print_arrivals(session)
    except ValueError as e:
        print(f"Error: {e}")
        print("Usage: example.py LATITUDE LONGITUDE  |  example.py STATION NAME")
        sys.exit(1)
    finally:
        session.close()


def interactive_mode():
    """Let the user pick stations by name until they quit."""
    print("BART Arrivals - Interactive Mode")
    print("Enter a station name to see upcoming departures")
    print("(Type 'quit' to exit)\n")

    session = ArrivalsSession()
    try:
        while True:
            try:
                user_input = input("Enter station (or 'quit'): ").strip()
            except (KeyboardInterrupt, EOFError):
                print("\n\nGoodbye!")
                break

            if user_input.lower() in ["quit", "q", "exit"]:
                print("Goodbye!")
                break
            if not user_input:
                continue

            matches = session.directory.find_by_name(user_input)
            if not matches:
                print(f"Station not found: {user_input}")
                continue
            if len(matches) > 1:
                print("\nDid you mean:")
                for station in matches[:5]:
                    print(f"  - {station.display_name} ({station.code})")

            future = session.scheduler.select_station(matches[0])
            if future is not None:
                future.result()
            print_arrivals(session)
    finally:
        session.close()


if __name__ == "__main__":
    if len(sys.argv) > 1:
        run(sys.argv[1:])
    else:
        interactive_mode()
