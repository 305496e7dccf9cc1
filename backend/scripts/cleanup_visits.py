#!/usr/bin/env python
"""Delete point visits (and their uploaded images) older than the retention window.

Usage:
    python backend/scripts/cleanup_visits.py            # uses VISIT_RETENTION_DAYS
    python backend/scripts/cleanup_visits.py --days 30

Meant to run once a day from cron or a scheduler.
"""
from __future__ import annotations
import os, sys, argparse

# Allow running from repo root
sys.path.append(os.path.abspath('backend'))

from milicard import create_app  # type: ignore
from milicard.services.visits import cleanup_expired_visits


def parse_args(argv=None):
    p = argparse.ArgumentParser(description='Remove expired point visits and their images')
    p.add_argument('--days', type=int, default=None, help='Retention in days (defaults to VISIT_RETENTION_DAYS)')
    return p.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    app = create_app()
    with app.app_context():
        days = args.days if args.days is not None else app.config['VISIT_RETENTION_DAYS']
        if days < 1:
            print('[ERROR] --days must be at least 1')
            return 2
        removed = cleanup_expired_visits(days)
        print(f"[DONE] Removed {removed} visits older than {days} days")
    return 0


if __name__ == '__main__':
    sys.exit(main())
