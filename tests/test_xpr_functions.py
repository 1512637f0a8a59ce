import datetime
import pathlib

import pytest
from xpr.xpr_datatypes import (
    Apply, Literal, Undef, MISSING,
    UnknownFunction, ArityMismatch, ZipLengthMismatch, NotImplementedByNode,
    InvariantViolation, RegistryFrozen, UnboundPlaceholder,
)
from xpr.xpr_functions import (
    FunctionRegistry, FunctionDescriptor, builtin_registry, default_registry,
    countable, count, clone, clone_with_args, function_ref,
    undef, xlist, zip_with, count_of, map_with, filter_with, reduce_with, take,
    add, sub, mul, div, neg, greater, less, equal, timestamp,
    ref, let, define, call, sequence,
)
from xpr.xpr_interpreter import Interpreter


@pytest.fixture
def registry():
    return default_registry()

# --- ZipWith ---

def test_zip_with_adds_elementwise():
    assert zip_with('Add', [1, 2, 3], [10, 20, 30]).eval() == (11, 22, 33)

def test_zip_with_accepts_template_expression():
    tree = zip_with(mul(undef(), undef()), [1, 2, 3], [4, 5, 6])
    assert tree.eval() == (4, 10, 18)

def test_zip_with_empty_lists():
    assert zip_with('Add', [], []).eval() == ()

def test_zip_with_over_placeholders():
    tree = zip_with('Sub', undef(), undef())
    assert tree.eval([5, 6], [1, 1]) == (4, 5)

def test_zip_with_user_function_template():
    tree = sequence(
        define('plus', ['a', 'b'], add(ref('a'), ref('b'))),
        zip_with(call('plus', undef(), undef()), [1, 2], [3, 4]),
    )
    assert tree.eval() == (4, 6)

def test_zip_with_mismatched_countable_lists_fails():
    with pytest.raises(ZipLengthMismatch):
        zip_with('Add', [1, 2, 3], [1, 2]).eval()

def test_zip_with_mismatch_detected_before_any_element():
    # neg() takes one hole, so computing any element would fail differently.
    with pytest.raises(ZipLengthMismatch):
        zip_with(neg(undef()), [1, 2], [1]).eval()
    with pytest.raises(InvariantViolation):
        zip_with(neg(undef()), [1], [1]).eval()

def test_zip_with_mismatch_after_evaluation():
    tree = let('a', [1, 2], zip_with('Add', ref('a'), [1]))
    with pytest.raises(ZipLengthMismatch):
        tree.eval()

def test_zip_with_rejects_scalar_operand():
    with pytest.raises(TypeError):
        zip_with('Add', 1, [1]).eval()

def test_zip_with_count_without_evaluating(registry):
    tree = zip_with('Add', [1, 2], [3, 4])
    assert countable(tree, registry)
    assert count(tree, registry) == 2
    assert Interpreter().count(tree) == 2

def test_zip_with_count_of_mismatched_lists_fails(registry):
    with pytest.raises(ZipLengthMismatch):
        count(zip_with('Add', [1, 2], [3]), registry)

def test_zip_with_over_names_is_not_countable(registry):
    tree = zip_with('Add', ref('a'), [1])
    assert not countable(tree, registry)
    with pytest.raises(NotImplementedByNode):
        count(tree, registry)

# --- Count ---

def test_count_of_zip_with():
    assert count_of(zip_with('Add', [1, 2], [3, 4])).eval() == 2

@pytest.mark.parametrize("value, expected", [
    ((1, 2, 3), 3),
    ((), 0),
    (5, 1),
    ("abc", 1),
    (True, 1),
    (datetime.date(2015, 2, 1), 1),
    (pathlib.PurePosixPath("/var/tmp"), 1),
])
def test_count_of_values(value, expected):
    assert count_of(value).eval() == expected

def test_count_of_placeholder():
    assert count_of(undef()).eval([1, 2, 3]) == 3
    assert count_of(undef()).eval(xlist(1, 2)) == 2

def test_count_of_unfilled_placeholder_fails():
    with pytest.raises(UnboundPlaceholder):
        count_of(undef()).eval()

@pytest.mark.parametrize("args", [
    [],
    [1],
    [xlist(1, 2), 3],
    [undef()],
])
def test_count_refuses_clone_with_new_args(registry, args):
    with pytest.raises(NotImplementedByNode):
        clone_with_args(count_of([1, 2]), args, registry)

def test_count_refuses_clone(registry):
    with pytest.raises(NotImplementedError):
        clone(count_of([1, 2]), registry)
    with pytest.raises(NotImplementedByNode):
        clone(zip_with('Add', count_of(undef()), [1]), registry)

# --- clone ---

def test_clone_is_independent_copy(registry):
    tree = zip_with('Add', [1, 2], let('x', 3, ref('x')))
    copy = clone(tree, registry)
    assert copy == tree
    assert copy is not tree
    assert copy.args[1] is not tree.args[1]
    assert copy.args[1].value == (1, 2)
    assert copy.args[2] is not tree.args[2]

def test_clone_with_args_rebuilds_apply(registry):
    node = add(1, 2)
    assert clone_with_args(node, [3, 4], registry) == add(3, 4)

# --- Map, Filter, Reduce, Take ---

@pytest.mark.parametrize("tree, expected", [
    (map_with('Neg', [1, 2]), (-1, -2)),
    (map_with(mul(undef(), 10), [1, 2, 3]), (10, 20, 30)),
    (filter_with(greater(undef(), 1), [0, 1, 2, 3]), (2, 3)),
    (filter_with(equal(undef(), 'a'), ['a', 'b', 'a']), ('a', 'a')),
    (reduce_with('Add', [1, 2, 3, 4]), 10),
    (reduce_with('Mul', [5]), 5),
    (take(1, [10, 20, 30]), 20),
    (take(-1, xlist(1, add(1, 1))), 2),
])
def test_list_functions(tree, expected):
    assert tree.eval() == expected

def test_reduce_empty_list_fails():
    with pytest.raises(ArityMismatch):
        reduce_with('Add', []).eval()

def test_map_count_follows_operand(registry):
    assert count(map_with('Neg', [1, 2, 3]), registry) == 3

# --- Numeric leaves ---

@pytest.mark.parametrize("tree, expected", [
    (add(1, 2), 3),
    (sub(10, 4), 6),
    (mul(2.5, 2), 5.0),
    (div(6, 3), 2.0),
    (neg(7), -7),
    (greater(2, 1), True),
    (less(2, 1), False),
    (equal('a', 'a'), True),
    (timestamp(20150201, 123000), 20150201123000),
])
def test_numeric_functions(tree, expected):
    assert tree.eval() == expected

def test_out_of_domain_results_are_missing():
    assert div(1, 0).eval() is MISSING
    assert timestamp(20150201, 250000).eval() is MISSING
    assert timestamp(-1, 0).eval() is MISSING

def test_missing_propagates_through_arithmetic():
    assert add(div(1, 0), 1).eval() is MISSING
    assert zip_with('Div', [1, 2], [0, 2]).eval() == (MISSING, 1.0)

def test_scalar_leaves_count_as_one(registry):
    assert count(add(1, 2), registry) == 1

# --- Registry ---

def test_default_registry_is_frozen():
    registry = default_registry()
    assert registry.frozen
    assert registry is default_registry()
    with pytest.raises(RegistryFrozen):
        registry.register(FunctionDescriptor("Nope", 0, lambda node, ctx: None))

def test_builtin_registry_contents():
    registry = builtin_registry()
    assert not registry.frozen
    for name in ("List", "ZipWith", "Count", "Map", "Filter", "Reduce", "Take",
                 "Add", "Sub", "Mul", "Div", "Neg", "Greater", "Less", "Equal", "Timestamp"):
        assert name in registry
    assert registry.lookup("Count").clone_with is None
    assert registry.lookup("List").arity is None
    assert repr(registry.lookup("ZipWith")) == "<FunctionDescriptor ZipWith/3>"

def test_register_custom_function():
    registry = builtin_registry()

    @registry.function("Square", 1, as_code="square")
    def _square(node, ctx):
        v = node.param(0, ctx).evaluate(ctx)
        return v * v

    interp = Interpreter(registry)
    assert registry.frozen
    assert interp.eval(Apply("Square", [add(1, 2)])) == 9
    assert interp.eval(map_with(function_ref("Square", registry), [1, 2])) == (1, 4)

    with pytest.raises(RegistryFrozen):
        registry.function("Cube", 1)(_square)

def test_copy_of_frozen_registry_can_be_extended():
    registry = default_registry().copy()
    assert not registry.frozen
    registry.register(FunctionDescriptor("One", 0, lambda node, ctx: 1))
    assert "One" in registry
    assert "One" not in default_registry()
    assert len(registry) == len(default_registry()) + 1

def test_lookup_unknown_function():
    with pytest.raises(UnknownFunction) as exc:
        FunctionRegistry().lookup("Nope")
    assert exc.value.name == "Nope"
    with pytest.raises(KeyError):
        Apply("Nope", [1]).eval()

def test_apply_with_wrong_arity_fails():
    with pytest.raises(ArityMismatch):
        Apply("Add", [1]).eval()

# --- function_ref ---

def test_function_ref_builds_template():
    assert function_ref("Add") == Apply("Add", [Undef(), Undef()])
    assert function_ref("Neg") == Apply("Neg", [Undef()])

def test_function_ref_errors():
    with pytest.raises(UnknownFunction):
        function_ref("Nope")
    with pytest.raises(ArityMismatch):
        function_ref("List")

def test_template_evaluated_directly():
    assert function_ref("Add").eval(2, 3) == 5
    assert Literal(4).eval() == 4

def test_unknown_function_on_every_lookup_path(registry):
    with pytest.raises(UnknownFunction):
        default_registry().lookup("Nope")
    with pytest.raises(UnknownFunction):
        countable(Apply("Nope", [1]), registry)
    with pytest.raises(UnknownFunction) as exc:
        Apply("Nope", [1]).eval()
    assert exc.value.name == "Nope"

# --- Scalar operands ---

@pytest.mark.parametrize("tree", [
    add([1], [2]),
    mul([1, 2], 3),
    neg([1]),
    let('a', [1], add(ref('a'), 1)),
])
def test_numeric_functions_reject_list_operands(tree):
    with pytest.raises(TypeError):
        tree.eval()

def test_list_operand_is_not_counted_as_scalar(registry):
    tree = let('a', [1], zip_with('Add', add(ref('a'), [2]), [5, 6]))
    with pytest.raises(TypeError):
        tree.eval()
    assert not countable(add(ref('a'), 1), registry)
    assert not countable(add([1, 2], 1), registry)
    assert countable(add(1, neg(2)), registry)
