"""
The `person` table used by the integration tests.

100 rows. Exactly one person is named Brown (age 32) and exactly one is
named Smith (age 47); every other name is drawn from SURNAMES.
"""

from __future__ import annotations

from typing import List, Tuple

PERSON_COUNT = 100
BROWN_AGE = 32
SMITH_AGE = 47

SURNAMES = (
    "Adams",
    "Baker",
    "Clark",
    "Davis",
    "Evans",
    "Foster",
    "Garcia",
    "Harris",
    "Irving",
    "Jones",
)

CREATE_PERSON_TABLE = """
CREATE TABLE IF NOT EXISTS person (
    id SERIAL PRIMARY KEY,
    name TEXT NOT NULL,
    age INTEGER NOT NULL
)
"""


def person_rows() -> List[Tuple[str, int]]:
    """Deterministic (name, age) pairs, Brown first and Smith last."""
    rows = [("Brown", BROWN_AGE)]
    for index in range(PERSON_COUNT - 2):
        rows.append((f"{SURNAMES[index % len(SURNAMES)]}", 18 + (index * 7) % 60))
    rows.append(("Smith", SMITH_AGE))
    return rows
