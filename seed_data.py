# seed_data.py
"""
Bootstrap the database outside the API process.

    python seed_data.py                      # create counters if missing
    python seed_data.py --samples            # ... and load the sample catalogue into empty collections
    python seed_data.py --set productId 120  # next product id will be 121
"""
import argparse
import asyncio
import sys

from pymongo.errors import PyMongoError

try:
    from shop_api.core.config import DB_NAME
    from shop_api.core.sequence import SequenceAllocator
    from shop_api.db.database import DOCUMENT_MODELS, close_db, init_db
    from shop_api.db.seed import seed_sample_data
except (ImportError, ValueError) as e:
    print(f"Error loading application modules: {e}")
    print("Run this script from the project root with the virtualenv active and API_KEY set.")
    sys.exit(1)

KNOWN_SEQUENCES = [model.Settings.sequence_key for model in DOCUMENT_MODELS]


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Initialise counters and sample data.")
    parser.add_argument("--samples", action="store_true", help="load sample products and items into empty collections")
    parser.add_argument(
        "--set",
        nargs=2,
        metavar=("SEQUENCE", "VALUE"),
        help=f"force a counter to VALUE; sequences: {', '.join(KNOWN_SEQUENCES)}",
    )
    return parser.parse_args(argv)


async def run(args: argparse.Namespace) -> int:
    print(f"--- Bootstrapping database '{DB_NAME}' ---")
    try:
        store = await init_db()
    except PyMongoError as e:
        print(f"Error connecting to database: {e}")
        return 1

    sequences = SequenceAllocator(store.counters, store.sequence_collections())
    try:
        for key in KNOWN_SEQUENCES:
            await sequences.ensure(key, 1)
            print(f"Counter '{key}' ready (current value: {await sequences.current(key)}).")

        if args.samples:
            await seed_sample_data(store, sequences)
            print("Sample data step finished.")

        if args.set:
            key, raw_value = args.set
            if key not in KNOWN_SEQUENCES:
                print(f"Error: unknown sequence '{key}'. Expected one of: {', '.join(KNOWN_SEQUENCES)}")
                return 2
            try:
                value = int(raw_value)
            except ValueError:
                print(f"Error: VALUE must be an integer, got '{raw_value}'.")
                return 2
            if value < 0:
                print("Error: VALUE cannot be negative.")
                return 2
            await sequences.set_sequence(key, value)
            print(f"Counter '{key}' set to {value}; next id will be {value + 1}.")
    except PyMongoError as e:
        print(f"Database error: {e}")
        return 1
    finally:
        await close_db(store)
        print("Database connection closed.")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(run(parse_args())))
