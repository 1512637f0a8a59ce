"""
Defines the core data types for the xpr expression engine.

This module provides the error taxonomy, the value helpers, the expression
node classes that make up a Request tree, and the execution Context that
carries pending placeholder arguments and name bindings during evaluation.
"""

import datetime
import pathlib
from abc import ABC
from collections import deque
from typing import Any, Dict, Optional, Tuple
import collections.abc


# =================================================================
# Errors
# =================================================================

class XprError(Exception):
    """Base class for every failure raised by the engine."""
    def __init__(self, message: str, xpr_obj: Any = None):
        super().__init__(message)
        # Offending node, rendered by the runner when reporting.
        self.xpr_obj = xpr_obj


class UnknownFunction(XprError, KeyError):
    def __init__(self, name: str, xpr_obj: Any = None):
        super().__init__(f"Unknown function: {name!r}", xpr_obj)
        self.name = name

    def __str__(self) -> str:
        return self.args[0]


class UnboundName(XprError, KeyError):
    def __init__(self, name: str, xpr_obj: Any = None):
        super().__init__(f"Unbound name: {name!r}", xpr_obj)
        self.name = name

    def __str__(self) -> str:
        return self.args[0]


class ArityMismatch(XprError, TypeError):
    pass


class UnboundPlaceholder(XprError, LookupError):
    pass


class ZipLengthMismatch(XprError, ValueError):
    pass


class NotImplementedByNode(XprError, NotImplementedError):
    pass


class InvariantViolation(XprError, AssertionError):
    pass


class RegistryFrozen(XprError, RuntimeError):
    pass


# =================================================================
# Values
# =================================================================

class _Missing:
    """In-band marker for an out-of-domain numeric result."""
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False

MISSING = _Missing()

SCALAR_TYPES = (bool, int, float, str, datetime.date, pathlib.PurePath)


def as_value(obj: Any) -> Any:
    """Normalise host data into an immutable Value (lists become tuples)."""
    if isinstance(obj, (list, tuple)):
        return tuple(as_value(x) for x in obj)
    return obj


def is_value(obj: Any) -> bool:
    if isinstance(obj, tuple):
        return all(is_value(x) for x in obj)
    return isinstance(obj, SCALAR_TYPES) or obj is MISSING or isinstance(obj, Undef)


def arity(value: Any) -> int:
    """Element count of a List value, 1 for any scalar."""
    if isinstance(value, tuple):
        return len(value)
    return 1


# =================================================================
# Expression nodes
# =================================================================

class Expr(ABC):
    """Abstract base class for every node of a Request tree.

    Nodes are immutable: `args` is a tuple and `with_param` returns a new node
    that shares the untouched arguments with the original.
    """
    args: Tuple['Expr', ...] = ()

    def param(self, i: int, ctx: Optional['Context'] = None) -> 'Expr':
        """Returns argument `i`, substituting a placeholder from `ctx`'s queue.

        When argument `i` is an Undef and a context is supplied, the front
        item of the context queue is consumed in its place. This is how a
        template with holes receives positional arguments at evaluation time.
        """
        arg = self.args[i]
        if ctx is not None and isinstance(arg, Undef):
            return ctx.substitute(arg)
        return arg

    def with_param(self, i: int, expr: 'Expr') -> 'Expr':
        """Returns this node with argument `i` replaced by `expr`.

        The node itself is returned when `expr` already sits in that slot.
        """
        if self.args[i] is expr:
            return self
        args = list(self.args)
        args[i] = expr
        return self._rebuild(tuple(args))

    def _rebuild(self, args: Tuple['Expr', ...]) -> 'Expr':
        raise NotImplementedByNode(f"{type(self).__name__} has no arguments to replace", self)

    def evaluate(self, ctx: 'Context') -> Any:
        return ctx.interpreter.evaluate(self, ctx)

    def eval(self, *args: Any) -> Any:
        """Evaluates this tree with `args` filling its placeholders in order.

        The tree is optimized first; the call fails with InvariantViolation
        unless every supplied argument was consumed.
        """
        ctx = Context()
        for a in args:
            ctx.push(a)
        return ctx.interpreter.eval(self, ctx)

    def as_code(self) -> str:
        from xpr.xpr_printer import Printer
        return Printer().pformat(self)


class Literal(Expr):
    """A constant Value in expression position."""
    def __init__(self, value: Any):
        self.value = as_value(value)

    def __repr__(self) -> str:
        return f"Literal({self.value!r})"

    def __eq__(self, other):
        return isinstance(other, Literal) and type(self.value) is type(other.value) and self.value == other.value

    def __hash__(self):
        return hash(("Literal", self.value))


class Undef(Expr):
    """A positional hole, filled from the context queue by `param`.

    Evaluated on its own it surfaces as itself, a symbolic unresolved value.
    """
    def clone(self) -> 'Undef':
        return Undef()

    def __repr__(self) -> str:
        return "Undef()"

    def __eq__(self, other):
        return isinstance(other, Undef)

    def __hash__(self):
        return hash("Undef")


class Apply(Expr):
    """Application of a registered function to an ordered argument list."""
    def __init__(self, name: str, args: collections.abc.Iterable = ()):
        self.name = name
        self.args = tuple(as_expr(a) for a in args)

    def _rebuild(self, args):
        node = Apply(self.name, args)
        _copy_loc(self, node)
        return node

    def __repr__(self) -> str:
        return f"Apply({self.name!r}, {list(self.args)!r})"

    def __eq__(self, other):
        return isinstance(other, Apply) and self.name == other.name and self.args == other.args

    def __hash__(self):
        return hash(("Apply", self.name, self.args))


class Ref(Expr):
    """A reference to a name bound by let or by a user-function call."""
    def __init__(self, name: str):
        self.name = name

    def __repr__(self) -> str:
        return f"Ref({self.name!r})"

    def __eq__(self, other):
        return isinstance(other, Ref) and self.name == other.name

    def __hash__(self):
        return hash(("Ref", self.name))


class Sequence(Expr):
    """A list of requests evaluated in order in the same context."""
    def __init__(self, requests: collections.abc.Iterable):
        self.args = tuple(as_expr(r) for r in requests)

    def _rebuild(self, args):
        node = Sequence(args)
        _copy_loc(self, node)
        return node

    def __repr__(self) -> str:
        return f"Sequence({list(self.args)!r})"

    def __eq__(self, other):
        return isinstance(other, Sequence) and self.args == other.args

    def __hash__(self):
        return hash(("Sequence", self.args))


class Let(Expr):
    """Binds `name` to the value of args[0] while evaluating args[1]."""
    def __init__(self, name: str, value: Any, body: Any):
        self.name = name
        self.args = (as_expr(value), as_expr(body))

    @property
    def value(self) -> Expr:
        return self.args[0]

    @property
    def body(self) -> Expr:
        return self.args[1]

    def _rebuild(self, args):
        node = Let(self.name, args[0], args[1])
        _copy_loc(self, node)
        return node

    def __repr__(self) -> str:
        return f"Let({self.name!r}, {self.value!r}, {self.body!r})"

    def __eq__(self, other):
        return isinstance(other, Let) and self.name == other.name and self.args == other.args

    def __hash__(self):
        return hash(("Let", self.name, self.args))


class Define(Expr):
    """Defines a named user function with formal parameters and a body."""
    def __init__(self, name: str, params: collections.abc.Iterable, body: Any):
        self.name = name
        self.params = tuple(params)
        self.args = (as_expr(body),)

    @property
    def body(self) -> Expr:
        return self.args[0]

    def _rebuild(self, args):
        node = Define(self.name, self.params, args[0])
        _copy_loc(self, node)
        return node

    def __repr__(self) -> str:
        return f"Define({self.name!r}, {list(self.params)!r}, {self.body!r})"

    def __eq__(self, other):
        return (isinstance(other, Define) and self.name == other.name
                and self.params == other.params and self.args == other.args)

    def __hash__(self):
        return hash(("Define", self.name, self.params, self.args))


class Call(Expr):
    """A call to a user function defined with Define."""
    def __init__(self, name: str, args: collections.abc.Iterable = ()):
        self.name = name
        self.args = tuple(as_expr(a) for a in args)

    def _rebuild(self, args):
        node = Call(self.name, args)
        _copy_loc(self, node)
        return node

    def __repr__(self) -> str:
        return f"Call({self.name!r}, {list(self.args)!r})"

    def __eq__(self, other):
        return isinstance(other, Call) and self.name == other.name and self.args == other.args

    def __hash__(self):
        return hash(("Call", self.name, self.args))


class Native(Expr):
    """A call into a host-supplied function, keyed by (receiver, name).

    `attributes` is an ordered key/value list resolved against the current
    context and passed to the host callable as keyword arguments.
    """
    def __init__(self, receiver: Optional[str], name: str, args: collections.abc.Iterable = (),
                 attributes: Optional[collections.abc.Mapping] = None):
        self.receiver = receiver
        self.name = name
        self.args = tuple(as_expr(a) for a in args)
        self.attributes: Tuple[Tuple[str, Expr], ...] = tuple(
            (k, as_expr(v)) for k, v in (attributes or {}).items()
        )

    def _rebuild(self, args):
        node = Native(self.receiver, self.name, args, dict(self.attributes))
        _copy_loc(self, node)
        return node

    def __repr__(self) -> str:
        return f"Native({self.receiver!r}, {self.name!r}, {list(self.args)!r}, {dict(self.attributes)!r})"

    def __eq__(self, other):
        return (isinstance(other, Native) and self.receiver == other.receiver and self.name == other.name
                and self.args == other.args and self.attributes == other.attributes)

    def __hash__(self):
        return hash(("Native", self.receiver, self.name, self.args, self.attributes))


class Lambda:
    """A user function registered by Define: formal parameters plus a body."""
    def __init__(self, name: str, params: Tuple[str, ...], body: Expr):
        self.name = name
        self.params = tuple(params)
        self.body = body

    def __repr__(self) -> str:
        return f"<Lambda {self.name}({', '.join(self.params)})>"

    def __eq__(self, other):
        if not isinstance(other, Lambda):
            return NotImplemented
        return self.name == other.name and self.params == other.params and self.body == other.body

    def __hash__(self):
        return hash((self.name, self.params))


def as_expr(obj: Any) -> Expr:
    """Wraps a Value (or host list) in a Literal; Expressions pass through."""
    if isinstance(obj, Expr):
        return obj
    return Literal(obj)


def _copy_loc(src, dst):
    loc = getattr(src, 'loc', None)
    if loc is not None:
        dst.loc = loc


# =================================================================
# Execution context
# =================================================================

class Context:
    """The scope an evaluation runs in.

    Holds the FIFO queue of pending placeholder arguments and a chain of name
    bindings. A child sees its parent's bindings; writes land in the child.
    Children made with `child()` share their parent's queue, while
    `detached()` gives the child a queue of its own.
    """
    def __init__(self, parent: Optional['Context'] = None, interpreter: Any = None,
                 queue: Optional[deque] = None):
        self.bindings: Dict[str, Any] = {}
        self.parent = parent
        if queue is None:
            queue = parent.queue if parent is not None else deque()
        self.queue = queue
        if interpreter is None and parent is not None:
            interpreter = parent._interpreter
        self._interpreter = interpreter

    @property
    def interpreter(self):
        if self._interpreter is None:
            from xpr.xpr_interpreter import default_interpreter
            self._interpreter = default_interpreter()
        return self._interpreter

    @property
    def registry(self):
        return self.interpreter.registry

    # --- Placeholder queue ---

    def push(self, item: Any):
        """Appends an argument (a Value or an Expression) to the queue tail."""
        self.queue.append(as_value(item) if not isinstance(item, Expr) else item)

    def pop_front(self) -> Any:
        if not self.queue:
            raise UnboundPlaceholder("Placeholder resolved against an empty argument queue")
        return self.queue.popleft()

    @property
    def empty(self) -> bool:
        return not self.queue

    def substitute(self, hole: 'Undef') -> Expr:
        """Consumes the front queue item in place of `hole`."""
        try:
            item = self.pop_front()
        except UnboundPlaceholder as e:
            e.xpr_obj = hole
            raise
        return as_expr(item)

    # --- Scoping ---

    def child(self) -> 'Context':
        return Context(parent=self)

    def detached(self, *items: Any) -> 'Context':
        """A child context whose queue is seeded with `items` only."""
        ctx = Context(parent=self, queue=deque())
        for item in items:
            ctx.push(item)
        return ctx

    # --- Bindings ---

    def __setitem__(self, key: str, value: Any):
        if not isinstance(key, str):
            raise TypeError(f"Context key must be a str, not {type(key)}")
        self.bindings[key] = value

    def __getitem__(self, key: str) -> Any:
        owner = self.find_owner(key)
        if owner is not None:
            return owner.bindings[key]
        raise UnboundName(key)

    def __contains__(self, key: Any) -> bool:
        return isinstance(key, str) and self.find_owner(key) is not None

    def find_owner(self, key: str) -> Optional['Context']:
        """Finds the Context in the parent chain that binds `key`."""
        ctx = self
        while ctx is not None:
            if key in ctx.bindings:
                return ctx
            ctx = ctx.parent
        return None

    def get(self, key: str, default: Any = None) -> Any:
        owner = self.find_owner(key)
        if owner is not None:
            return owner.bindings[key]
        return default

    def keys(self) -> collections.abc.KeysView:
        """Returns a view of keys in this context only."""
        return self.bindings.keys()

    def __repr__(self) -> str:
        keys = ', '.join(self.bindings.keys())
        parent_id = f", parent=#{id(self.parent)}" if self.parent else ""
        return f"<Context bindings=[{keys}] pending={len(self.queue)}{parent_id}>"


ExecutionContext = Context
