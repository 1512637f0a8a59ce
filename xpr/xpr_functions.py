"""
The function registry and the built-in functions of the xpr engine.

Every built-in is a FunctionDescriptor keyed by name. An Apply node names its
function; the Interpreter looks the descriptor up in the registry it was
constructed with and calls its `evaluate` with the node and the context.
"""
import functools
import operator
from typing import Any, Callable, Dict, Iterator, List, Optional

from xpr.xpr_datatypes import (
    Expr, Literal, Undef, Apply, Ref, Sequence, Let, Define, Call, Native,
    Context, MISSING, arity, as_expr,
    UnknownFunction, ArityMismatch, ZipLengthMismatch, NotImplementedByNode,
    InvariantViolation, RegistryFrozen,
)


def _rebuild_apply(node: Apply, args) -> Apply:
    return Apply(node.name, args)


class FunctionDescriptor:
    """Describes one named function: its arity and its operations.

    `clone_with`, `countable` and `count` are optional capabilities. A
    descriptor without `clone_with` refuses clone-with-new-args; one without
    `countable` never reports an element count.
    """
    def __init__(self, name: str, arity: Optional[int], evaluate: Callable[[Apply, Context], Any], *,
                 clone_with: Optional[Callable] = _rebuild_apply,
                 countable: Optional[Callable] = None,
                 count: Optional[Callable] = None,
                 as_code: Optional[str] = None,
                 pure: bool = True):
        self.name = name
        self.arity = arity
        self.evaluate = evaluate
        self.clone_with = clone_with
        self.countable = countable
        self.count = count
        self.as_code = as_code or name
        self.pure = pure

    def check_arity(self, node: Apply):
        if self.arity is not None and len(node.args) != self.arity:
            raise ArityMismatch(
                f"{self.name} expects {self.arity} argument(s), got {len(node.args)}", node)

    def clone_with_args(self, node: Apply, args) -> Expr:
        if self.clone_with is None:
            raise NotImplementedByNode(f"{self.name} does not support clone-with-new-args", node)
        return self.clone_with(node, tuple(as_expr(a) for a in args))

    def __repr__(self) -> str:
        return f"<FunctionDescriptor {self.name}/{'*' if self.arity is None else self.arity}>"


class FunctionRegistry:
    """Name to FunctionDescriptor table.

    The registry is filled once and then frozen; an Interpreter freezes the
    registry it is given, so registration after first use fails.
    """
    def __init__(self):
        self._functions: Dict[str, FunctionDescriptor] = {}
        self._frozen = False

    def register(self, descriptor: FunctionDescriptor) -> FunctionDescriptor:
        if self._frozen:
            raise RegistryFrozen(f"Cannot register {descriptor.name!r}: registry is frozen")
        self._functions[descriptor.name] = descriptor
        return descriptor

    def function(self, name: str, arity: Optional[int], **options):
        """Decorator registering `evaluate(node, ctx)` under `name`."""
        def decorator(evaluate):
            self.register(FunctionDescriptor(name, arity, evaluate, **options))
            return evaluate
        return decorator

    def lookup(self, name: str, node: Any = None) -> FunctionDescriptor:
        try:
            return self._functions[name]
        except KeyError:
            raise UnknownFunction(name, node) from None

    def freeze(self) -> 'FunctionRegistry':
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def copy(self) -> 'FunctionRegistry':
        """An unfrozen registry holding the same descriptors, for extension."""
        other = FunctionRegistry()
        other._functions = dict(self._functions)
        return other

    def __contains__(self, name: Any) -> bool:
        return name in self._functions

    def __iter__(self) -> Iterator[str]:
        return iter(self._functions)

    def __len__(self) -> int:
        return len(self._functions)

    def __repr__(self) -> str:
        state = " frozen" if self._frozen else ""
        return f"<FunctionRegistry functions={len(self._functions)}{state}>"


# =================================================================
# Capabilities shared by the builtins
# =================================================================

def countable(expr: Expr, registry: FunctionRegistry) -> bool:
    """True when the element count of `expr` is known without evaluating it."""
    match expr:
        case Literal():
            return True
        case Apply():
            desc = registry.lookup(expr.name, expr)
            return desc.countable is not None and desc.countable(expr, registry)
        case _:
            return False


def count(expr: Expr, registry: FunctionRegistry) -> int:
    if not countable(expr, registry):
        raise NotImplementedByNode(f"Cannot count elements of {expr!r} without evaluating it", expr)
    if isinstance(expr, Literal):
        return arity(expr.value)
    return registry.lookup(expr.name, expr).count(expr, registry)


def clone_with_args(node: Apply, args, registry: FunctionRegistry) -> Expr:
    return registry.lookup(node.name, node).clone_with_args(node, args)


def clone(expr: Expr, registry: Optional[FunctionRegistry] = None) -> Expr:
    """An independent copy of `expr`. Values are shared, they are immutable."""
    registry = registry or default_registry()
    match expr:
        case Literal():
            return Literal(expr.value)
        case Undef():
            return expr.clone()
        case Ref():
            return Ref(expr.name)
        case Apply():
            return clone_with_args(expr, [clone(a, registry) for a in expr.args], registry)
        case _:
            return expr._rebuild(tuple(clone(a, registry) for a in expr.args))


def apply_function(f: Expr, ctx: Context, *values: Any) -> Any:
    """Evaluates the template `f` with `values` filling its holes in order."""
    call_ctx = ctx.detached(*values)
    result = f.evaluate(call_ctx)
    if not call_ctx.empty:
        raise InvariantViolation(
            f"Function template left {len(call_ctx.queue)} argument(s) unconsumed", f)
    return result


def _list_operand(value: Any, node: Apply) -> tuple:
    if not isinstance(value, tuple):
        raise TypeError(f"{node.name} expects a list operand, got {type(value).__name__}")
    return value


def _check_lengths(n0: int, n1: int, node: Apply):
    if n0 != n1:
        raise ZipLengthMismatch(f"ZipWith operands differ in length: {n0} != {n1}", node)


def _always_countable(node, registry):
    return True


def _scalar_count(node, registry):
    return 1


def _scalar_leaf_countable(node, registry):
    # Only operands already known to be scalars guarantee a scalar result.
    return all(countable(a, registry) and count(a, registry) == 1 for a in node.args)


# =================================================================
# Built-in functions
# =================================================================

def _eval_list(node: Apply, ctx: Context) -> tuple:
    return ctx.interpreter.eval_list(node, ctx)


def _zip_with(node: Apply, ctx: Context) -> tuple:
    f = node.param(0, ctx)
    l0 = node.param(1, ctx)
    l1 = node.param(2, ctx)
    registry = ctx.registry
    # Reject mismatched operands before any element is computed when possible.
    if countable(l0, registry) and countable(l1, registry):
        _check_lengths(count(l0, registry), count(l1, registry), node)
    v0 = _list_operand(l0.evaluate(ctx), node)
    v1 = _list_operand(l1.evaluate(ctx), node)
    _check_lengths(len(v0), len(v1), node)
    return tuple(apply_function(f, ctx, a, b) for a, b in zip(v0, v1))


def _zip_with_countable(node: Apply, registry: FunctionRegistry) -> bool:
    return countable(node.args[1], registry) and countable(node.args[2], registry)


def _zip_with_count(node: Apply, registry: FunctionRegistry) -> int:
    n0 = count(node.args[1], registry)
    _check_lengths(n0, count(node.args[2], registry), node)
    return n0


def _count(node: Apply, ctx: Context) -> int:
    return arity(node.param(0, ctx).evaluate(ctx))


def _map(node: Apply, ctx: Context) -> tuple:
    f = node.param(0, ctx)
    values = _list_operand(node.param(1, ctx).evaluate(ctx), node)
    return tuple(apply_function(f, ctx, v) for v in values)


def _filter(node: Apply, ctx: Context) -> tuple:
    pred = node.param(0, ctx)
    values = _list_operand(node.param(1, ctx).evaluate(ctx), node)
    return tuple(v for v in values if apply_function(pred, ctx, v))


def _reduce(node: Apply, ctx: Context) -> Any:
    f = node.param(0, ctx)
    values = _list_operand(node.param(1, ctx).evaluate(ctx), node)
    if not values:
        raise ArityMismatch("Reduce requires a non-empty list", node)
    return functools.reduce(lambda acc, v: apply_function(f, ctx, acc, v), values)


def _take(node: Apply, ctx: Context) -> Any:
    i = node.param(0, ctx).evaluate(ctx)
    values = _list_operand(node.param(1, ctx).evaluate(ctx), node)
    return values[i]


def _numeric(op: Callable, n: int) -> Callable[[Apply, Context], Any]:
    """Builds an evaluate function for an n-ary leaf numeric operation.

    A MISSING operand makes the result MISSING; a list operand is rejected.
    """
    def evaluate(node: Apply, ctx: Context) -> Any:
        operands = [node.param(i, ctx).evaluate(ctx) for i in range(n)]
        if any(isinstance(v, tuple) for v in operands):
            raise TypeError(f"{node.name} expects scalar operands, got a list")
        if any(v is MISSING for v in operands):
            return MISSING
        return op(*operands)
    return evaluate


def _safe_div(a, b):
    if b == 0:
        return MISSING
    return a / b


def _timestamp(date, time):
    # YYYYMMDD and HHMMSS merged into YYYYMMDDHHMMSS
    if not (0 <= date <= 2**31 - 1 and 0 <= time <= 240000):
        return MISSING
    return int(date) * 1000000 + int(time)


def builtin_registry() -> FunctionRegistry:
    """A fresh, unfrozen registry holding every built-in function."""
    registry = FunctionRegistry()
    fn = registry.function

    fn("List", None, countable=_always_countable,
       count=lambda node, registry: len(node.args), as_code="xlist")(_eval_list)
    fn("ZipWith", 3, countable=_zip_with_countable, count=_zip_with_count, as_code="zip_with")(_zip_with)
    # Count is not rebuilt with substituted arguments.
    fn("Count", 1, clone_with=None, countable=_always_countable, count=_scalar_count,
       as_code="count_of")(_count)
    fn("Map", 2, countable=lambda node, registry: countable(node.args[1], registry),
       count=lambda node, registry: count(node.args[1], registry), as_code="map_with")(_map)
    fn("Filter", 2, as_code="filter_with")(_filter)
    fn("Reduce", 2, as_code="reduce_with")(_reduce)
    fn("Take", 2, as_code="take")(_take)

    for name, code, op, n in (
        ("Add", "add", operator.add, 2),
        ("Sub", "sub", operator.sub, 2),
        ("Mul", "mul", operator.mul, 2),
        ("Div", "div", _safe_div, 2),
        ("Neg", "neg", operator.neg, 1),
        ("Greater", "greater", operator.gt, 2),
        ("Less", "less", operator.lt, 2),
        ("Equal", "equal", operator.eq, 2),
        ("Timestamp", "timestamp", _timestamp, 2),
    ):
        fn(name, n, countable=_scalar_leaf_countable, count=_scalar_count, as_code=code)(_numeric(op, n))

    return registry


_DEFAULT_REGISTRY: Optional[FunctionRegistry] = None


def default_registry() -> FunctionRegistry:
    """The process-wide frozen registry of built-ins."""
    global _DEFAULT_REGISTRY
    if _DEFAULT_REGISTRY is None:
        _DEFAULT_REGISTRY = builtin_registry().freeze()
    return _DEFAULT_REGISTRY


# =================================================================
# Combinators
# =================================================================

def literal(value: Any) -> Literal:
    return Literal(value)


def undef() -> Undef:
    return Undef()


def function_ref(name: str, registry: Optional[FunctionRegistry] = None) -> Apply:
    """The template `name(undef(), ...)` with one hole per declared argument."""
    desc = (registry or default_registry()).lookup(name)
    if desc.arity is None:
        raise ArityMismatch(f"Cannot build a template for variadic function {name!r}")
    return Apply(name, [Undef() for _ in range(desc.arity)])


def _fn(f):
    return function_ref(f) if isinstance(f, str) else f


def xlist(*items: Any) -> Apply:
    return Apply("List", items)


def zip_with(f, l0, l1) -> Apply:
    return Apply("ZipWith", (_fn(f), l0, l1))


def count_of(e) -> Apply:
    return Apply("Count", (e,))


def map_with(f, l) -> Apply:
    return Apply("Map", (_fn(f), l))


def filter_with(pred, l) -> Apply:
    return Apply("Filter", (_fn(pred), l))


def reduce_with(f, l) -> Apply:
    return Apply("Reduce", (_fn(f), l))


def take(i, l) -> Apply:
    return Apply("Take", (i, l))


def add(a, b) -> Apply:
    return Apply("Add", (a, b))


def sub(a, b) -> Apply:
    return Apply("Sub", (a, b))


def mul(a, b) -> Apply:
    return Apply("Mul", (a, b))


def div(a, b) -> Apply:
    return Apply("Div", (a, b))


def neg(a) -> Apply:
    return Apply("Neg", (a,))


def greater(a, b) -> Apply:
    return Apply("Greater", (a, b))


def less(a, b) -> Apply:
    return Apply("Less", (a, b))


def equal(a, b) -> Apply:
    return Apply("Equal", (a, b))


def timestamp(date, time) -> Apply:
    return Apply("Timestamp", (date, time))


def ref(name: str) -> Ref:
    return Ref(name)


def let(name: str, value, body) -> Let:
    return Let(name, value, body)


def define(name: str, params: List[str], body) -> Define:
    return Define(name, params, body)


def call(name: str, *args) -> Call:
    return Call(name, args)


def native(receiver: Optional[str], name: str, *args, **attributes) -> Native:
    return Native(receiver, name, args, attributes)


def sequence(*requests) -> Sequence:
    return Sequence(requests)
