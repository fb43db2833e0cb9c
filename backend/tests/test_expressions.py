"""
Unit tests for expressions.py (custom-variable formulas).
"""

import pytest

from app.services.engine.expressions import (
    MAX_NESTING_DEPTH,
    build_context,
    evaluate_custom_variables,
    evaluate_expression,
    substitute_tokens,
)


@pytest.mark.parametrize(
    "expression, context, expected",
    [
        ("[a] + [b] * 2", {"a": 1, "b": 2}, 5.0),
        ("([a] + [b]) * 2", {"a": 1, "b": 2}, 6.0),
        ("-[a] + 3", {"a": 1}, 2.0),
        ("2 * [x]", {"x": -1.5}, -3.0),
        ("[missing] + 1", {}, 1.0),
        ("1 / 3", {}, 0.3333),
        ("[valor_total] / [potencia_kwp]", {"valor_total": 25300, "potencia_kwp": 5}, 5060.0),
        ("\t[a]\t-\t.5", {"a": 2}, 1.5),
    ],
)
def test_arithmetic(expression, context, expected):
    assert evaluate_expression(expression, context) == expected


@pytest.mark.parametrize(
    "expression",
    [
        "[a] / [b]; DROP TABLE x",
        "__import__('os').system('ls')",
        "[a] ** 2",
        "1 +",
        "(1 + 2",
        "1 2",
        "",
        "   ",
    ],
)
def test_rejected_expressions_return_none(expression):
    assert evaluate_expression(expression, {"a": 4, "b": 2}) is None


def test_division_by_zero_returns_none():
    assert evaluate_expression("[a] / [b]", {"a": 1, "b": 0}) is None


def test_substitution_renders_plain_decimals():
    assert substitute_tokens("[tiny] + [big]", {"tiny": 1e-7, "big": 1e20}) == "0.0000001 + 100000000000000000000"


def test_batch_isolates_failures():
    results = evaluate_custom_variables(
        [
            {"nome": "vc_dobro", "expressao": "[economia_mensal] * 2"},
            {"nome": "vc_quebrada", "expressao": "[economia_mensal] / 0"},
            {"nome": "", "expressao": "1 + 1"},
            {"nome": "vc_vazia", "expressao": None},
        ],
        {"economia_mensal": 420.0},
    )

    assert [(r.name, r.value) for r in results] == [
        ("vc_dobro", 840.0),
        ("vc_quebrada", None),
        ("vc_vazia", None),
    ]


def test_build_context_drops_none():
    assert build_context({"a": 1, "b": None}) == {"a": 1.0}


def test_nesting_within_limit_evaluates():
    depth = MAX_NESTING_DEPTH
    assert evaluate_expression("(" * depth + "[a]" + ")" * depth, {"a": 2}) == 2.0


def test_nesting_beyond_limit_returns_none():
    depth = 3000
    assert evaluate_expression("(" * depth + "1" + ")" * depth, {}) is None


@pytest.mark.parametrize("signs, expected", [("-" * 5000, 1.0), ("-" * 5001, -1.0), ("+-" * 2000, 1.0)])
def test_long_sign_chains(signs, expected):
    assert evaluate_expression(signs + "1", {}) == expected


def test_batch_survives_pathological_formula():
    results = evaluate_custom_variables(
        [
            {"nome": "vc_funda", "expressao": "(" * 3000 + "1" + ")" * 3000},
            {"nome": "vc_ok", "expressao": "1 + 1"},
        ],
        {},
    )

    assert [r.value for r in results] == [None, 2.0]
