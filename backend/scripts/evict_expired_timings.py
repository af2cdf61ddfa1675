#!/usr/bin/env python
# scripts/evict_expired_timings.py

import os
import sys

# This script is intended to be run from the command line, e.g. from cron.
# It needs the Flask application context to build the prayer time engine.
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from prayer_engine import create_app


def evict_expired_timings():
    """
    Removes expired prayer time entries from the durable store.

    Entries are only ever evicted lazily (on read, or when a write hits the
    store's capacity), so a store that is written to but rarely read keeps
    growing. Running this daily keeps it bounded.
    """
    app = create_app(os.getenv('FLASK_CONFIG') or 'default')
    with app.app_context():
        print("--- Starting the Expired Prayer Timings Eviction Script ---")

        engine = app.extensions['prayer_engine']
        try:
            removed = engine.evict_expired()
            if removed > 0:
                print(f"SUCCESS: Removed {removed} expired prayer time entries.")
            else:
                print("INFO: No expired prayer time entries found.")
        finally:
            engine.shutdown()

        print("--- Eviction script finished. ---")


if __name__ == '__main__':
    evict_expired_timings()
