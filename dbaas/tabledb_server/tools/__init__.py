"""
Operator tools for TableDB.

- records_cli: provision tables, create/list records, print snapshots
"""
