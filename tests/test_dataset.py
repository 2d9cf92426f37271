"""Tests for variant table validation and derived columns."""

import math

import polars as pl
import pytest
from pydantic import ValidationError

from penetrance_engine.dataset import (
    VariantRecord,
    add_derived_columns,
    build_variant_table,
    prepare_variant_table,
    read_variant_table,
    validate_variant_table,
)
from penetrance_engine.errors import InvalidInputError


def _table(**overrides) -> pl.DataFrame:
    data = {
        "variant_id": ["A561V", "G628S", "R534C"],
        "position": [561, 628, 534],
        "category": ["missense", "missense", "missense"],
        "affected": [3, 5, 0],
        "unaffected": [7, 1, 0],
        "total": [10, 6, 0],
    }
    data.update(overrides)
    return pl.DataFrame(data)


def test_prepare_adds_penetrance_and_weight():
    df = prepare_variant_table(_table())

    row = df.row(0, named=True)
    assert row["penetrance"] == pytest.approx(0.3)
    assert row["weight"] == pytest.approx(1.0 - 1.0 / 10.01)

    zero = df.row(2, named=True)
    assert zero["penetrance"] is None
    assert zero["weight"] == 0.0


def test_weight_floored_at_zero_for_single_carrier_region():
    """1 - 1/(0.01 + 1) is positive but tiny; total 0 is floored to exactly 0."""
    df = add_derived_columns(
        pl.DataFrame({"affected": [0, 1], "total": [0, 1]}),
        weight_epsilon=0.01,
    )
    assert df["weight"].to_list()[0] == 0.0
    assert df["weight"].to_list()[1] == pytest.approx(1.0 - 1.0 / 1.01)
    assert (df["weight"] >= 0).all()


def test_total_derived_from_split():
    df = validate_variant_table(_table().drop("total"))
    assert df["total"].to_list() == [10, 6, 0]
    assert df["total"].dtype == pl.Int64


def test_missing_side_derived_from_total():
    df = validate_variant_table(_table().drop("unaffected"))
    assert df["unaffected"].to_list() == [7, 1, 0]


def test_zero_total_without_split():
    df = validate_variant_table(
        _table(affected=[3, 5, None], unaffected=[7, 1, None], total=[10, 6, 0])
    )
    assert df.row(2, named=True)["affected"] == 0
    assert df.row(2, named=True)["unaffected"] == 0


def test_category_normalised():
    df = validate_variant_table(_table(category=["Missense ", "NONSENSE", "synonymous"]))
    assert df["category"].to_list() == ["missense", "nonsense", "synonymous"]


def test_missing_required_column():
    with pytest.raises(InvalidInputError, match="position"):
        validate_variant_table(_table().drop("position"))


def test_missing_covariate_column():
    with pytest.raises(InvalidInputError, match="revel_score"):
        validate_variant_table(_table(), covariates=["revel_score"])


def test_duplicate_variant_rejected():
    with pytest.raises(InvalidInputError) as exc_info:
        validate_variant_table(_table(variant_id=["A561V", "A561V", "R534C"]))
    assert exc_info.value.variant_id == "A561V"


def test_unknown_category_rejected():
    with pytest.raises(InvalidInputError) as exc_info:
        validate_variant_table(_table(category=["missense", "frameshift", "missense"]))
    assert exc_info.value.variant_id == "G628S"


def test_negative_count_rejected():
    with pytest.raises(InvalidInputError, match="non-negative") as exc_info:
        validate_variant_table(_table(affected=[3, -1, 0], unaffected=[7, 7, 0]))
    assert exc_info.value.variant_id == "G628S"
    assert "G628S" in str(exc_info.value)


def test_non_integer_count_rejected():
    with pytest.raises(InvalidInputError, match="integers") as exc_info:
        validate_variant_table(_table(affected=[2.5, 5.0, 0.0], unaffected=[7.5, 1.0, 0.0]))
    assert exc_info.value.variant_id == "A561V"


def test_non_numeric_count_rejected_not_rebuilt():
    df = _table(
        affected=["3", "three", "0"],
        unaffected=["7", "3", "0"],
        total=["10", "6", "0"],
    )
    with pytest.raises(InvalidInputError, match="numeric") as exc_info:
        validate_variant_table(df)
    assert exc_info.value.variant_id == "G628S"


def test_read_variant_table_rejects_unparseable_total(tmp_path):
    path = tmp_path / "variants.tsv"
    path.write_text(
        "variant_id\tposition\tcategory\taffected\tunaffected\ttotal\n"
        "A1V\t1\tmissense\t1\t2\t3\n"
        "G2S\t2\tmissense\t2\t3\tabc\n"
        "R3C\t3\tmissense\t0\t0\tNA\n"
    )
    with pytest.raises(InvalidInputError, match="numeric") as exc_info:
        read_variant_table(path)
    assert exc_info.value.variant_id == "G2S"


def test_null_count_still_derived():
    df = validate_variant_table(_table(total=[None, None, None]))
    assert df["total"].to_list() == [10, 6, 0]


def test_fractional_position_rejected():
    with pytest.raises(InvalidInputError, match="position") as exc_info:
        validate_variant_table(_table(position=[561.0, 628.5, 534.0]))
    assert exc_info.value.variant_id == "G628S"


def test_whole_float_position_accepted():
    df = validate_variant_table(_table(position=[561.0, 628.0, 534.0]))
    assert df["position"].dtype == pl.Int64
    assert df["position"].to_list() == [561, 628, 534]


def test_affected_exceeds_total_rejected():
    with pytest.raises(InvalidInputError) as exc_info:
        validate_variant_table(_table(affected=[3, 5, 2], unaffected=[7, 1, 0], total=[10, 6, 1]))
    assert exc_info.value.variant_id == "R534C"


def test_inconsistent_total_rejected():
    with pytest.raises(InvalidInputError, match="affected \\+ unaffected") as exc_info:
        validate_variant_table(_table(total=[10, 7, 0]))
    assert exc_info.value.variant_id == "G628S"


def test_split_missing_for_nonzero_total():
    with pytest.raises(InvalidInputError, match="breakdown missing"):
        validate_variant_table(_table(affected=[3, None, 0], unaffected=[7, None, 0]))


def test_nan_covariate_becomes_null():
    df = validate_variant_table(
        _table(revel_score=[0.5, math.nan, None]),
        covariates=["revel_score"],
    )
    assert df["revel_score"].to_list() == [0.5, None, None]


def test_variant_record_rejects_unknown_category():
    with pytest.raises(ValidationError):
        VariantRecord(variant_id="A561V", position=561, category="frameshift")


def test_build_variant_table_from_records():
    records = [
        VariantRecord(
            variant_id="A561V", position=561, category="missense",
            affected=3, unaffected=7, covariates={"revel_score": 0.8},
        ),
        VariantRecord(variant_id="R534C", position=534, category="missense"),
    ]
    df = build_variant_table(records, covariates=["revel_score", "blast_pssm"])

    assert df.height == 2
    assert df["total"].to_list() == [10, 0]
    assert df["revel_score"].to_list() == [0.8, None]
    assert df["blast_pssm"].null_count() == 2
    assert df["weight"].to_list()[1] == 0.0


def test_build_variant_table_rejects_bad_counts():
    records = [
        VariantRecord(variant_id="A561V", position=561, category="missense", affected=4, total=3),
    ]
    with pytest.raises(InvalidInputError) as exc_info:
        build_variant_table(records)
    assert exc_info.value.variant_id == "A561V"


def test_read_variant_table_tsv(variant_tsv, raw_variants):
    df = read_variant_table(variant_tsv, covariates=["smoothed_penetrance", "revel_score"])

    assert df.height == raw_variants.height
    assert df["revel_score"].null_count() == raw_variants["revel_score"].null_count()
    assert {"penetrance", "weight"} <= set(df.columns)


def test_read_variant_table_parquet(tmp_path, raw_variants):
    path = tmp_path / "variants.parquet"
    raw_variants.write_parquet(path)

    df = read_variant_table(path, covariates=["revel_score"])
    assert df.height == raw_variants.height


def test_read_variant_table_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        read_variant_table(tmp_path / "absent.tsv")
