from __future__ import annotations

from questbag.flatten import first_or_none, related_field


def test_first_or_none_collapses_one_or_many() -> None:
    row = {"name": "Shattered Isles"}
    assert first_or_none(row) is row
    assert first_or_none([row, {"name": "other"}]) is row
    assert first_or_none([]) is None
    assert first_or_none(None) is None


def test_related_field_reads_through_either_shape() -> None:
    assert related_field({"role": [{"role_name": "Ranger"}]}, "role", "role_name") == "Ranger"
    assert related_field({"role": {"role_name": "Ranger"}}, "role", "role_name") == "Ranger"
    assert related_field({"role": []}, "role", "role_name") is None
    assert related_field({}, "role", "role_name") is None
