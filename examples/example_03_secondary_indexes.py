"""Example 03: Secondary Indexes - Atomic Id Sets.

This example demonstrates secondary indexes:
- Declaring indexes in a YAML-style schema (IndexSpec)
- Index rows holding the set of matching ids, maintained with atomic ADD/DELETE
- Moving a record between index rows when an indexed attribute changes
- Ranged indexes and removal of empty index rows
"""

from dynashard import (
    DynashardConfig,
    Gateway,
    IndexSpec,
    InvalidField,
    RecordTable,
    TableSpec,
    open_store,
)

PEOPLE = TableSpec(
    name="people",
    attributes={"email": "string", "city": "string", "age": "number"},
    indexes=[
        IndexSpec(keys=["email"]),
        IndexSpec(keys=["city"], range_key="age"),
    ],
)


def main():
    """Run the secondary index example."""
    print("=" * 80)
    print("EXAMPLE 03: SECONDARY INDEXES")
    print("=" * 80)

    config = DynashardConfig(remove_empty_index=True)
    gateway = Gateway(open_store("sqlite:///:memory:", config=config), config)
    people = RecordTable(gateway, PEOPLE)
    people.create_table()
    for descriptor in people.indexes:
        print(f"  index {list(descriptor.name)} -> {descriptor.table_name}")

    # Section 1: Lookups by index
    people.save(people.new(id="p1", email="ann@example.com", city="Oslo", age=31))
    people.save(people.new(id="p2", email="bob@example.com", city="Oslo", age=31))
    people.save(people.new(id="p3", email="cid@example.com", city="Oslo", age=45))
    oslo_31 = people.find_by_index(["city", "age"], "Oslo", 31)
    print(f"\nPeople in Oslo aged 31: {[p.hash_key for p in oslo_31]}")

    # Section 2: Changing an indexed attribute
    ann = people.find("p1")
    ann["email"] = "ann@work.example"
    people.save(ann)
    print(f"Old email row: {people.indexes.lookup('email', 'ann@example.com')}")
    print(f"New email row: {people.indexes.lookup('email', 'ann@work.example')}")

    # Section 3: Undeclared keys are rejected
    try:
        people.indexes.index("nickname")
    except InvalidField as e:
        print(f"\n✓ Rejected: {e}")

    gateway.close()


if __name__ == "__main__":
    main()
