"""
Records CLI tool for TableDB.

This tool drives the record engine from the command line:
- provision: Create physical tables for the metadata file
- create: Insert a batch of records from a JSON file
- list: Print one page of records in a view's order
- snapshot: Print sync snapshots for record ids

Usage:
    tabledb-records provision
    tabledb-records create --table tblTasks --file batch.json --actor user:42
    tabledb-records list --table tblTasks --view viwGrid --skip 0 --take 20
    tabledb-records snapshot --table tblTasks --ids recA,recB --fields fldTitle

Metadata comes from TABLEDB_METADATA_FILE (or --metadata); storage settings
come from the environment, see config.py.

Invariants:
    - Output is deterministic, sorted JSON
    - Engine errors and rejected requests produce a non-zero exit code and
      a JSON error body
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
import sys
from typing import Any

from pydantic import ValidationError

from ..config import EngineConfig
from ..errors import TableDbError
from ..main import Engine, setup_logging

logger = logging.getLogger(__name__)


class RecordsCLI:
    """CLI commands over an Engine.

    Example:
        >>> cli = RecordsCLI(engine)
        >>> print(await cli.list_page("tblTasks", take=5))
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    async def provision(self) -> str:
        count = await self.engine.provision()
        return _dump({"provisioned": count, "fingerprint": self.engine.registry.fingerprint})

    async def create(self, table_id: str, batch_path: str, actor: str | None = None) -> str:
        """Insert the batch stored in a JSON file.

        The file holds ``{"records": [{"fields": {...}}, ...]}``.
        """
        with open(batch_path) as f:
            batch = json.load(f)

        outcome = await self.engine.service.create_records(table_id, batch, actor=actor)
        return _dump(dataclasses.asdict(outcome))

    async def list_page(
        self,
        table_id: str,
        view_id: str | None = None,
        skip: int = 0,
        take: int | None = None,
    ) -> str:
        page = await self.engine.service.list_records(
            table_id, {"viewId": view_id, "skip": skip, "take": take}
        )
        return _dump(page.to_dict())

    async def snapshot(
        self,
        table_id: str,
        record_ids: list[str],
        field_ids: list[str] | None = None,
    ) -> str:
        projection = {fid: True for fid in field_ids} if field_ids else None
        snapshots = await self.engine.service.get_snapshots(table_id, record_ids, projection)
        return _dump([s.to_dict() for s in snapshots])


def _dump(data: Any) -> str:
    return json.dumps(data, indent=2, sort_keys=True)


def _split(value: str | None) -> list[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def main() -> None:
    """CLI entry point for the records tool."""
    parser = argparse.ArgumentParser(description="TableDB records tool")
    parser.add_argument("--metadata", help="Metadata JSON file (overrides TABLEDB_METADATA_FILE)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("provision", help="Create physical tables for the metadata")

    create_parser = subparsers.add_parser("create", help="Insert a batch of records")
    create_parser.add_argument("--table", required=True, help="Table id")
    create_parser.add_argument("--file", required=True, help="Batch JSON file")
    create_parser.add_argument("--actor", help="Created-by identity")

    list_parser = subparsers.add_parser("list", help="List records in view order")
    list_parser.add_argument("--table", required=True, help="Table id")
    list_parser.add_argument("--view", help="View id (default: first view)")
    list_parser.add_argument("--skip", type=int, default=0)
    list_parser.add_argument("--take", type=int)

    snapshot_parser = subparsers.add_parser("snapshot", help="Print record snapshots")
    snapshot_parser.add_argument("--table", required=True, help="Table id")
    snapshot_parser.add_argument("--ids", required=True, help="Comma-separated record ids")
    snapshot_parser.add_argument("--fields", help="Comma-separated field ids to project")

    args = parser.parse_args()

    try:
        config = EngineConfig.from_env()
        if args.metadata:
            config.metadata_file = args.metadata
            config.validate()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config)
    cli = RecordsCLI(Engine.from_config(config))

    if args.command == "provision":
        command = cli.provision()
    elif args.command == "create":
        command = cli.create(args.table, args.file, args.actor)
    elif args.command == "list":
        command = cli.list_page(args.table, args.view, args.skip, args.take)
    else:
        command = cli.snapshot(args.table, _split(args.ids), _split(args.fields) or None)

    try:
        print(asyncio.run(command))
    except TableDbError as e:
        print(_dump({"error": e.code, "message": e.message, "details": e.details}))
        sys.exit(1)
    except ValidationError as e:
        errors = [{"loc": list(err["loc"]), "msg": err["msg"]} for err in e.errors()]
        print(_dump({"error": "INVALID_REQUEST", "message": str(e), "details": {"errors": errors}}))
        sys.exit(1)


if __name__ == "__main__":
    main()
