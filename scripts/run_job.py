#!/usr/bin/env python3
"""
Run one match job in the foreground, without RQ.

Usage:
    python scripts/run_job.py <job_id>                 # resolver from env
    python scripts/run_job.py <job_id> --mock          # deterministic fake resolver
    python scripts/run_job.py <job_id> --page-size 10 --concurrency 4

Prints the job result as JSON. Exit code 0 for succeeded/partial/cancelled,
1 for failed, 2 when the job cannot be run (unknown id, held by another driver).

Requires: DATABASE_URL set (or defaults to sqlite:///local.db).
"""
import sys
import os
import json
import argparse

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from skumatch.errors import MatchJobError
from skumatch.logging_config import configure_logging
from skumatch.pipeline.driver import run_job, get_resolver


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description='Run a SKU match job to completion.')
    parser.add_argument('job_id')
    parser.add_argument('--mock', action='store_true', help='use the mock resolver')
    parser.add_argument('--page-size', type=int, default=None)
    parser.add_argument('--concurrency', type=int, default=None)
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    configure_logging()

    if args.mock:
        from skumatch.pipeline.mock_resolver import MockResolver
        resolver = MockResolver()
    else:
        resolver = get_resolver()

    try:
        result = run_job(args.job_id, resolver=resolver,
                         page_size=args.page_size, concurrency=args.concurrency)
    except MatchJobError as e:
        print(json.dumps({'job_id': args.job_id, 'ok': False, 'error': str(e)}))
        return 2

    print(json.dumps(result.to_dict()))
    return 1 if not result.ok or result.status == 'failed' else 0


if __name__ == '__main__':
    sys.exit(main())
