"""
Unit tests for hashing.py.
"""

import pytest

from app.services.engine.fee_schedule import FeeStep
from app.services.engine.hashing import calc_hash, canonical_json


def test_hash_ignores_key_order():
    first = {"a": 1, "b": {"c": 2, "d": [1, {"x": 1, "y": 2}]}}
    second = {"b": {"d": [1, {"y": 2, "x": 1}], "c": 2}, "a": 1}
    assert calc_hash(first) == calc_hash(second)


def test_hash_changes_with_values():
    assert calc_hash({"a": 1}) != calc_hash({"a": 2})


def test_hash_is_lowercase_sha256_hex():
    digest = calc_hash({"a": 1})
    assert len(digest) == 64
    assert digest == digest.lower()


def test_dataclasses_hash_like_their_fields():
    assert calc_hash({"step": FeeStep(2024, 15.0)}) == calc_hash({"step": {"percent": 15.0, "year": 2024}})


def test_canonical_json_is_compact_and_keeps_unicode():
    assert canonical_json({"nome": "À vista", "b": [1, 2]}) == '{"b":[1,2],"nome":"À vista"}'


def test_non_finite_values_are_refused():
    with pytest.raises(ValueError):
        calc_hash({"a": float("nan")})
