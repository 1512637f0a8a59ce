import pytest
from xpr.xpr_datatypes import Literal, Apply, Ref, Let, MISSING
from xpr.xpr_functions import (
    builtin_registry, default_registry,
    undef, xlist, zip_with, count_of, map_with, add, mul, div, ref, let, call, native, sequence,
)
from xpr.xpr_optimizer import Optimizer, optimize


SAMPLE_TREES = [
    ("zip_with", zip_with('Add', [1, 2, 3], [10, 20, 30])),
    ("count_of_zip", count_of(zip_with('Add', [1, 2], [3, 4]))),
    ("nested_arith", add(1, mul(2, 3))),
    ("single_sequence", sequence(add(1, 2))),
    ("constant_list", xlist(1, add(1, 1))),
    ("mismatch", zip_with('Add', [1, 2], [1])),
    ("let", let('x', add(1, 2), mul(ref('x'), 2))),
    ("holes", map_with(mul(undef(), 10), undef())),
    ("native", native("store", "retrieve", add(1, 1), step=2)),
]


@pytest.mark.parametrize("name, tree", SAMPLE_TREES, ids=[t[0] for t in SAMPLE_TREES])
def test_optimize_is_idempotent(name, tree):
    once = optimize(tree)
    assert optimize(once) is once


@pytest.mark.parametrize("tree, expected", [
    (add(1, mul(2, 3)), Literal(7)),
    (sequence(add(1, 2)), Literal(3)),
    (xlist(1, add(1, 1)), Literal((1, 2))),
    (count_of([1, 2, 3]), Literal(3)),
    (count_of(zip_with('Add', [1, 2], [3, 4])), count_of(zip_with('Add', [1, 2], [3, 4]))),
    (let('x', add(1, 2), mul(ref('x'), 2)), Let('x', 3, mul(ref('x'), 2))),
    (div(1, 0), Literal(MISSING)),
])
def test_optimize_rewrites(tree, expected):
    assert optimize(tree) == expected

def test_optimize_without_rewrites_returns_same_tree():
    tree = zip_with('Add', ref('a'), ref('b'))
    assert optimize(tree) is tree
    tree = sequence(ref('a'), ref('b'))
    assert optimize(tree) is tree

def test_optimize_shares_untouched_subtrees():
    tree = add(mul(2, 3), ref('x'))
    optimized = optimize(tree)
    assert optimized is not tree
    assert optimized.args[0] == Literal(6)
    assert optimized.args[1] is tree.args[1]
    # The input is left alone.
    assert tree.args[0] == mul(2, 3)

def test_failing_constant_application_is_left_in_place():
    for tree in (zip_with('Add', [1, 2], [1]), Apply('Add', [1]), add(1, 'a')):
        assert optimize(tree) == tree

def test_unknown_and_user_calls_are_not_folded():
    assert optimize(Apply('Nope', [1, 2])) == Apply('Nope', [1, 2])
    assert optimize(call('Add', 1, 2)) == call('Add', 1, 2)

def test_impure_functions_are_not_folded():
    registry = builtin_registry()
    calls = []

    @registry.function("Tick", 1, pure=False)
    def _tick(node, ctx):
        calls.append(1)
        return len(calls)

    tree = Apply("Tick", [0])
    assert Optimizer(registry).optimize(tree) is tree
    assert not calls

def test_folded_literal_keeps_location():
    tree = add(1, 2)
    tree.loc = {'line': 2, 'col': 7}
    assert optimize(tree).loc == {'line': 2, 'col': 7}

def test_optimized_tree_evaluates_the_same():
    for _, tree in SAMPLE_TREES[:5]:
        assert optimize(tree).eval() == tree.eval()

def test_optimizer_uses_given_registry():
    assert Optimizer(default_registry()).registry is default_registry()
    assert optimize(Ref('x')) == Ref('x')
