"""
The pre-evaluation rewrite pass.

`optimize` walks a Request tree bottom-up and returns a tree that evaluates
to the same value under any context. Unchanged subtrees are returned as the
very same objects, so a tree with nothing to rewrite costs no allocation and a
second pass over an optimized tree finds nothing left to do.
"""
from typing import Optional

from xpr.xpr_datatypes import Expr, Literal, Apply, Sequence, Context, XprError


class Optimizer:
    """Applies the rewrite rules for one function registry."""
    def __init__(self, registry):
        self.registry = registry
        self._ctx: Optional[Context] = None

    def optimize(self, expr: Expr) -> Expr:
        node = expr
        for i, arg in enumerate(expr.args):
            node = node.with_param(i, self.optimize(arg))

        match node:
            case Sequence() if len(node.args) == 1:
                return node.args[0]
            case Apply():
                return self._fold(node)
        return node

    def _fold(self, node: Apply) -> Expr:
        """Replaces an application of a pure function to constants by its value."""
        if not all(isinstance(a, Literal) for a in node.args):
            return node
        if node.name not in self.registry:
            return node
        desc = self.registry.lookup(node.name, node)
        if not desc.pure:
            return node
        try:
            desc.check_arity(node)
            value = node.evaluate(self._fold_context())
        except (XprError, ArithmeticError, LookupError, TypeError, ValueError):
            # Left in place; evaluation raises the same failure.
            return node
        folded = Literal(value)
        loc = getattr(node, 'loc', None)
        if loc is not None:
            folded.loc = loc
        return folded

    def _fold_context(self) -> Context:
        if self._ctx is None:
            from xpr.xpr_interpreter import Interpreter
            self._ctx = Context(interpreter=Interpreter(self.registry))
        return self._ctx


def optimize(expr: Expr, registry: Optional[object] = None) -> Expr:
    if registry is None:
        from xpr.xpr_functions import default_registry
        registry = default_registry()
    return Optimizer(registry).optimize(expr)
