#!/usr/bin/env python3
#USE VENV: source venv/bin/activate
"""
Run script for the maintenance lifecycle engine
"""

import argparse
import sys
from dotenv import load_dotenv
from tabulate import tabulate

# Load environment variables from .env file
load_dotenv()

from mms import create_app
from mms.build import build_database
from mms.logger import get_logger
from mms.services.maintenance.maintenance_poller import MaintenancePoller

logger = get_logger("mms.run")


def parse_arguments():
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(description='Maintenance Lifecycle Engine')
    parser.add_argument('--build-only', action='store_true',
                        help='Build database tables and sequences, insert critical data, then exit')
    parser.add_argument('--evaluate-rules', action='store_true',
                        help='Evaluate every active auto work order rule once and print a summary')
    parser.add_argument('--refresh-pm', action='store_true',
                        help='Mark overdue PM schedules once and print a summary')
    parser.add_argument('--poll', action='store_true',
                        help='Run the maintenance poller in the foreground')
    parser.add_argument('--interval', type=float, default=None,
                        help='Poll interval in seconds (default: MMS_POLL_INTERVAL_SECONDS)')
    return parser.parse_args()


def print_cycle_summary(cycle):
    rows = []
    for name, result in cycle.items():
        rows.append([
            name,
            result['operation'],
            result['success_count'],
            result['failure_count'],
            len(result['skipped']),
            ', '.join(str(code) for code in result['succeeded']) or '-',
        ])
    print(tabulate(rows, headers=['Pass', 'Operation', 'Succeeded', 'Failed', 'Skipped', 'Created/Updated'], tablefmt="grid"))

    failures = [
        [name, failure['reference'], failure['error_type'], failure['error']]
        for name, result in cycle.items()
        for failure in result['failed']
    ]
    if failures:
        print(tabulate(failures, headers=['Pass', 'Reference', 'Error', 'Message'], tablefmt="grid"))


if __name__ == '__main__':
    args = parse_arguments()

    app = create_app()
    build_database(app)

    if args.build_only:
        logger.info("Build completed. Exiting.")
        sys.exit(0)

    poller = MaintenancePoller(app, interval=args.interval)

    if args.evaluate_rules or args.refresh_pm:
        print_cycle_summary(poller.run_once(evaluate_rules=args.evaluate_rules, refresh_pm=args.refresh_pm))
        sys.exit(0)

    if args.poll:
        poller.run_forever()
        sys.exit(0)

    print("Nothing to do. Use --build-only, --evaluate-rules, --refresh-pm or --poll.")
