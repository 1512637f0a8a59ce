"""
The xpr interpreter: the dispatcher that evaluates Request trees.
"""
import inspect
import os
import sys
from typing import Any, Callable, Dict, Optional, Tuple

from xpr.xpr_datatypes import (
    Expr, Literal, Undef, Apply, Ref, Sequence, Let, Define, Call, Native, Lambda,
    Context, as_value, _copy_loc,
    UnknownFunction, UnboundName, ArityMismatch, InvariantViolation, RegistryFrozen,
)
from xpr.xpr_functions import FunctionRegistry, default_registry, count as _count
from xpr.xpr_optimizer import Optimizer


def xpr_native(func):
    """A decorator to explicitly mark host methods as callable from a Native request."""
    func._is_xpr_native = True
    return func


def _accepts_ctx(func: Callable) -> bool:
    try:
        sig = inspect.signature(func)
    except (TypeError, ValueError):
        return False
    return 'ctx' in sig.parameters


class NativeTable:
    """Host-supplied functions keyed by (receiver, name).

    This is the only path by which a request reaches side-effecting host
    code, e.g. data retrieval. Like the function registry, it is frozen once
    handed to an Interpreter.
    """
    def __init__(self):
        self._natives: Dict[Tuple[Optional[str], str], Tuple[Callable, bool]] = {}
        self._frozen = False

    def register(self, receiver: Optional[str], name: str, func: Callable) -> Callable:
        if self._frozen:
            raise RegistryFrozen(f"Cannot register native {receiver}.{name}: table is frozen")
        self._natives[(receiver, name)] = (func, _accepts_ctx(func))
        return func

    def native(self, receiver: Optional[str], name: Optional[str] = None):
        """Decorator registering a function under (receiver, name)."""
        def decorator(func):
            self.register(receiver, name or func.__name__.replace('_', '-'), func)
            return func
        return decorator

    def bind_host(self, receiver: str, host: Any):
        """Registers every @xpr_native method of `host` under its kebab-case name."""
        for name, member in inspect.getmembers(host):
            if callable(member) and getattr(member, '_is_xpr_native', False):
                self.register(receiver, name.strip('_').replace('_', '-'), member)

    def lookup(self, receiver: Optional[str], name: str, node: Any = None) -> Tuple[Callable, bool]:
        try:
            return self._natives[(receiver, name)]
        except KeyError:
            label = name if receiver is None else f"{receiver}.{name}"
            raise UnknownFunction(label, node) from None

    def freeze(self) -> 'NativeTable':
        self._frozen = True
        return self

    def __contains__(self, key: Any) -> bool:
        return key in self._natives

    def __len__(self) -> int:
        return len(self._natives)

    def __repr__(self) -> str:
        return f"<NativeTable natives={len(self._natives)}>"


class Interpreter:
    """The xpr execution engine.

    Built once with a function registry and a native table, both frozen on
    construction; after that an Interpreter holds no mutable state and may be
    shared by evaluations running on different threads, each with its own
    Context.
    """
    def __init__(self, registry: Optional[FunctionRegistry] = None, natives: Optional[NativeTable] = None):
        self.registry = (registry if registry is not None else default_registry()).freeze()
        self.natives = (natives if natives is not None else NativeTable()).freeze()
        self.optimizer = Optimizer(self.registry)

    def _dbg(self, *parts):
        if os.environ.get("XPR_DEBUG"):
            print("[DBG]", *parts, file=sys.stderr)

    def eval(self, request: Expr, ctx: Optional[Context] = None) -> Any:
        """Public entry point for evaluation.

        Optimizes `request`, evaluates it in `ctx` and checks that every
        pending placeholder argument in the context was consumed.
        """
        if ctx is None:
            ctx = Context(interpreter=self)
        elif ctx._interpreter is None:
            ctx._interpreter = self
        elif ctx._interpreter is not self:
            ctx = Context(parent=ctx, interpreter=self)
        tree = self.optimizer.optimize(request)
        result = self.evaluate(tree, ctx)
        if not ctx.empty:
            raise InvariantViolation(
                f"{len(ctx.queue)} argument(s) left unconsumed after evaluation", request)
        return result

    def count(self, request: Expr) -> int:
        """Element count of `request`'s result, computed without evaluating it."""
        return _count(self.optimizer.optimize(request), self.registry)

    def evaluate(self, node: Expr, ctx: Context) -> Any:
        match node:
            case Literal():
                return node.value
            case Undef():
                return node
            case Ref():
                return self._eval_ref(node, ctx)
            case Apply():
                return self._eval_apply(node, ctx)
            case Sequence():
                return self._eval_requests(node, ctx)
            case Let():
                return self._eval_let(node, ctx)
            case Define():
                return self._define_function(node, ctx)
            case Call():
                return self._eval_function(node, ctx)
            case Native():
                return self._eval_native(node, ctx)
            case _:
                raise TypeError(f"Cannot evaluate object of type {type(node).__name__}")

    def _arg(self, node: Expr, i: int, ctx: Context) -> Any:
        return node.param(i, ctx).evaluate(ctx)

    def _eval_ref(self, node: Ref, ctx: Context) -> Any:
        owner = ctx.find_owner(node.name)
        if owner is None:
            raise UnboundName(node.name, node)
        return owner.bindings[node.name]

    def _eval_apply(self, node: Apply, ctx: Context) -> Any:
        desc = self.registry.lookup(node.name, node)
        desc.check_arity(node)
        return desc.evaluate(node, ctx)

    def eval_list(self, node: Expr, ctx: Context) -> tuple:
        return tuple(self._arg(node, i, ctx) for i in range(len(node.args)))

    def _eval_requests(self, node: Sequence, ctx: Context) -> Any:
        result: Any = ()
        for i in range(len(node.args)):
            result = self._arg(node, i, ctx)
        return result

    def _eval_let(self, node: Let, ctx: Context) -> Any:
        value = self._arg(node, 0, ctx)
        self._dbg("let", node.name, "value_type", type(value).__name__)
        let_ctx = ctx.child()
        let_ctx[node.name] = value
        return self._arg(node, 1, let_ctx)

    def _define_function(self, node: Define, ctx: Context) -> Lambda:
        fn = Lambda(node.name, node.params, node.body)
        ctx[node.name] = fn
        self._dbg("define", node.name, "params", list(node.params))
        return fn

    def _eval_function(self, node: Call, ctx: Context) -> Any:
        fn = ctx.get(node.name)
        if not isinstance(fn, Lambda):
            if node.name in self.registry:
                # A call naming a builtin behaves like its application.
                apply = Apply(node.name, node.args)
                _copy_loc(node, apply)
                return self._eval_apply(apply, ctx)
            raise UnknownFunction(node.name, node)
        if len(fn.params) != len(node.args):
            raise ArityMismatch(
                f"{fn.name} expects {len(fn.params)} argument(s), got {len(node.args)}", node)

        args = [self._arg(node, i, ctx) for i in range(len(node.args))]
        self._dbg("call", fn.name, "argc", len(args))
        call_ctx = ctx.child()
        for param_name, arg_val in zip(fn.params, args):
            call_ctx[param_name] = arg_val
        return fn.body.evaluate(call_ctx)

    def _eval_attributes(self, node: Native, ctx: Context) -> Dict[str, Any]:
        out = {}
        for key, expr in node.attributes:
            if isinstance(expr, Undef):
                expr = ctx.substitute(expr)
            out[key] = expr.evaluate(ctx)
        return out

    def _eval_native(self, node: Native, ctx: Context) -> Any:
        func, wants_ctx = self.natives.lookup(node.receiver, node.name, node)
        kwargs = self._eval_attributes(node, ctx)
        args = [self._arg(node, i, ctx) for i in range(len(node.args))]
        self._dbg("native", node.receiver, node.name, "argc", len(args), "attributes", list(kwargs))
        if wants_ctx:
            kwargs['ctx'] = ctx
        return as_value(func(*args, **kwargs))


_DEFAULT_INTERPRETER: Optional[Interpreter] = None


def default_interpreter() -> Interpreter:
    """Interpreter over the built-in registry with no natives, used by Expr.eval()."""
    global _DEFAULT_INTERPRETER
    if _DEFAULT_INTERPRETER is None:
        _DEFAULT_INTERPRETER = Interpreter()
    return _DEFAULT_INTERPRETER
