"""Example 01: Basic Usage - Tables, Records and Queries.

This example demonstrates the fundamental operations:
- Declaring tables with TableSpec (attributes, range key)
- Opening a store from a storage URI and wrapping it in a Gateway
- Saving, finding and destroying records through RecordTable
- Range-bounded queries on a ranged table
"""

import logging

from dynashard import DynashardConfig, Gateway, RecordTable, TableSpec, open_store

# Step 1: Declare Tables
# Every table gets implicit id, created_at and updated_at attributes.
USERS = TableSpec(name="users", attributes={"name": "string", "city": "string"})
READINGS = TableSpec(
    name="readings",
    attributes={"sensor": "string", "ts": "number", "value": "number"},
    range_key="ts",
)


def main():
    """Run the basic usage example."""
    logging.basicConfig(level=logging.INFO, format="%(name)s %(message)s")
    print("=" * 80)
    print("DYNASHARD BASIC USAGE EXAMPLE")
    print("=" * 80)

    # Step 2: Open a Store
    # sqlite:///:memory: keeps everything in-process; use dynamodb://<region> in production.
    config = DynashardConfig(warn_on_scan=False)
    gateway = Gateway(open_store("sqlite:///:memory:", config=config), config)

    users = RecordTable(gateway, USERS)
    readings = RecordTable(gateway, READINGS)
    users.create_table()
    readings.create_table()
    print(f"\n✓ Tables: {gateway.list_tables()}")

    # Step 3: Save Records
    ann = users.save(users.new(id="u1", name="Ann", city="Oslo"))
    users.save(users.new(id="u2", name="Bob", city="Rome"))
    for ts, value in [(1, 0.5), (2, 0.7), (3, 0.9)]:
        readings.save(readings.new(id="s1", ts=ts, value=value))
    print(f"\n✓ Saved {ann!r}")

    # Step 4: Read Them Back
    print(f"\nfind('u2') -> {users.find('u2')}")
    print(f"find_all(['u1', 'u2']) -> {[r['name'] for r in users.find_all(['u1', 'u2'])]}")
    later = gateway.query(readings.table_name, "s1", range_greater_than=1)
    print(f"readings after ts=1 -> {[(r['ts'], r['value']) for r in later]}")

    # Step 5: Update and Destroy
    ann["city"] = "Bergen"
    print(f"\nPending changes: {sorted(ann.changes())}")
    users.save(ann)
    users.destroy(users.find("u2"))
    print(f"Remaining users: {[r['id'] for r in gateway.scan(users.table_name)]}")

    gateway.close()


if __name__ == "__main__":
    main()
