#!/usr/bin/env python3
import argparse
import json
from pathlib import Path
from typing import Dict, List

from match_statistics.config.logging import setup_logging
from match_statistics.config.settings import AggregatorConfig, STORE_BACKENDS
from match_statistics.infra.repo.aggregate_store.factory import build_store
from match_statistics.infra.repo.aggregate_store.local import LocalAggregateStore
from match_statistics.services.consumer import ChangeFeedConsumer
from match_statistics.streamer.sqs import SQSChangeFeed


def load_stream_records(path: Path) -> List[Dict]:
    """Accept either a stream invocation event ({"Records": [...]}) or a bare list of records."""
    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)
    if isinstance(data, dict):
        return data.get('Records', [])
    return data


def replay(args, config: AggregatorConfig) -> None:
    """Push recorded stream records through the aggregator, one batch per file."""
    if config.store_backend == 'memory':
        store = LocalAggregateStore(filename=args.state_file)
    else:
        store = build_store(config, create_tables=True)
    consumer = ChangeFeedConsumer(store, config)

    touched = set()
    for path in args.files:
        records = load_stream_records(Path(path))
        print(f"\nReplaying {len(records)} records from {path}...")
        report = consumer.process_stream_event({'Records': records})
        print(f"  {report.summary()}")
        touched.update(r.match_id for r in report.results if r.match_id)

    print("\nStatistics:")
    for match_id in sorted(touched):
        statistics = store.get(match_id)
        if statistics is not None:
            print(f"  {json.dumps(statistics.to_dict(include_applied_ids=False))}")


def consume(args, config: AggregatorConfig) -> None:
    """Long-poll the SQS relay of the change feed."""
    consumer = ChangeFeedConsumer(build_store(config), config)
    feed = SQSChangeFeed.from_config(consumer, config)
    try:
        feed.run(max_batches=args.max_batches)
    except KeyboardInterrupt:
        feed.stop()


def main():
    parser = argparse.ArgumentParser(description='Aggregate match statistics from the event change feed')
    parser.add_argument('--store', choices=STORE_BACKENDS, help='Override STORE_BACKEND')
    parser.add_argument('--database-url', help='Override DATABASE_URL (sql store)')
    parser.add_argument('--log-dir', help='Also write logs to this directory')
    subparsers = parser.add_subparsers(dest='command', required=True)

    replay_parser = subparsers.add_parser('replay', help='Replay stream records from JSON files')
    replay_parser.add_argument('files', nargs='+', help='JSON files with stream records')
    replay_parser.add_argument(
        '--state-file',
        help='JSON file the memory store loads from and saves to'
    )

    consume_parser = subparsers.add_parser('consume', help='Consume the SQS relay of the change feed')
    consume_parser.add_argument('--max-batches', type=int, help='Stop after this many batches')

    args = parser.parse_args()

    overrides = {}
    if args.store:
        overrides['store_backend'] = args.store
    if args.database_url:
        overrides['database_url'] = args.database_url
    config = AggregatorConfig.from_env().with_overrides(**overrides)
    setup_logging(config.log_level, log_dir=args.log_dir)

    if args.command == 'replay':
        replay(args, config)
    else:
        consume(args, config)


if __name__ == "__main__":
    main()
