import pytest

from labboot.database.models import SeedSpec
from labboot.database.seed import apply_seed
from labboot.database.verify import SeedVerificationError, verify_seed


def seed(policy="skip"):
    return SeedSpec.model_validate(
        {
            "conflict_policy": policy,
            "databases": [{"name": "hr"}],
            "roles": [{"name": "etl", "password": "x"}],
            "tables": [
                {
                    "database": "hr",
                    "name": "staff",
                    "columns": [{"name": "id", "type": "INT"}, {"name": "name", "type": "VARCHAR(64)"}],
                    "primary_key": ["id"],
                    "rows": [{"id": 1, "name": "Ada"}, {"id": 2, "name": "Linus"}],
                }
            ],
        }
    )


def test_verify_counts_seeded_rows(mysql):
    apply_seed(mysql.connect(), seed())
    assert verify_seed(mysql.connect(), seed()) == 2


def test_verify_reports_every_missing_object(mysql):
    with pytest.raises(SeedVerificationError) as ei:
        verify_seed(mysql.connect(), seed())

    assert ei.value.problems == [
        "database hr missing",
        "role etl@% missing",
        "table hr.staff missing",
    ]


def test_verify_missing_row(mysql):
    apply_seed(mysql.connect(), seed())
    del mysql.rows("hr", "staff")[(2,)]

    with pytest.raises(SeedVerificationError, match=r"hr.staff row \(2,\) missing"):
        verify_seed(mysql.connect(), seed())


def test_changed_values_only_matter_outside_skip_policy(mysql):
    apply_seed(mysql.connect(), seed())
    mysql.rows("hr", "staff")[(1,)]["name"] = "Augusta"

    assert verify_seed(mysql.connect(), seed("skip")) == 2
    with pytest.raises(SeedVerificationError, match="differs in"):
        verify_seed(mysql.connect(), seed("overwrite"))
