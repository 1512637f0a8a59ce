"""
A printer that regenerates combinator source text ("as code") from xpr trees.
"""
import datetime
import pathlib

from xpr.xpr_datatypes import (
    Literal, Undef, Apply, Ref, Sequence, Let, Define, Call, Native, Lambda, MISSING,
)


class Printer:
    """Formats xpr expressions and values as combinator calls.

    The output reads back through the combinators of `xpr.xpr_functions`,
    e.g. `count_of(zip_with(add(undef(), undef()), [1, 2], [3, 4]))`.
    """

    def __init__(self, indent_width=2, registry=None):
        self._indent_char = " " * indent_width
        self._registry = registry
        self._handlers = self._create_handlers()

    @property
    def registry(self):
        if self._registry is None:
            from xpr.xpr_functions import default_registry
            self._registry = default_registry()
        return self._registry

    def pformat(self, obj, level=0):
        """Public entry point to format an object."""
        handler = self._get_handler(obj)
        return handler(obj, level)

    def _get_handler(self, obj):
        """Dispatcher to find the correct formatting method."""
        if obj is MISSING: return lambda o, l: "MISSING"

        obj_type = type(obj)
        if obj_type in self._handlers:
            return self._handlers[obj_type]
        if isinstance(obj, (datetime.date, pathlib.PurePath)): return self._pformat_repr
        if isinstance(obj, (list, tuple)): return self._pformat_list
        # Default to Python's repr for unknown types
        return self._pformat_repr

    def _create_handlers(self):
        return {
            str: self._pformat_repr,
            int: self._pformat_primitive,
            float: self._pformat_primitive,
            bool: self._pformat_primitive,
            type(None): self._pformat_primitive,
            Literal: self._pformat_literal,
            Undef: self._pformat_undef,
            Apply: self._pformat_apply,
            Ref: self._pformat_ref,
            Sequence: self._pformat_sequence,
            Let: self._pformat_let,
            Define: self._pformat_define,
            Call: self._pformat_call,
            Native: self._pformat_native,
            Lambda: self._pformat_lambda,
        }

    def _pformat_primitive(self, obj, level):
        return str(obj)

    def _pformat_repr(self, obj, level):
        return repr(obj)

    def _pformat_list(self, obj, level):
        return "[" + ", ".join(self.pformat(item, level) for item in obj) + "]"

    def _pformat_literal(self, obj, level):
        return self.pformat(obj.value, level)

    def _pformat_undef(self, obj, level):
        return "undef()"

    def _pformat_call_form(self, name, parts):
        return f"{name}({', '.join(parts)})"

    def _pformat_args(self, args, level):
        return [self.pformat(a, level) for a in args]

    def _pformat_apply(self, obj, level):
        if obj.name in self.registry:
            code_name = self.registry.lookup(obj.name).as_code
        else:
            code_name = obj.name
        return self._pformat_call_form(code_name, self._pformat_args(obj.args, level))

    def _pformat_ref(self, obj, level):
        return f"ref({obj.name!r})"

    def _pformat_let(self, obj, level):
        parts = [repr(obj.name)] + self._pformat_args(obj.args, level)
        return self._pformat_call_form("let", parts)

    def _pformat_define(self, obj, level):
        parts = [repr(obj.name), repr(list(obj.params)), self.pformat(obj.body, level)]
        return self._pformat_call_form("define", parts)

    def _pformat_lambda(self, obj, level):
        parts = [repr(obj.name), repr(list(obj.params)), self.pformat(obj.body, level)]
        return self._pformat_call_form("define", parts)

    def _pformat_call(self, obj, level):
        parts = [repr(obj.name)] + self._pformat_args(obj.args, level)
        return self._pformat_call_form("call", parts)

    def _pformat_native(self, obj, level):
        parts = [repr(obj.receiver), repr(obj.name)] + self._pformat_args(obj.args, level)
        parts += [f"{key}={self.pformat(value, level)}" for key, value in obj.attributes]
        return self._pformat_call_form("native", parts)

    def _pformat_sequence(self, obj, level):
        if not obj.args:
            return "sequence()"

        outer_indent = self._indent_char * level
        inner_level = level + 1
        inner_indent = self._indent_char * inner_level

        lines = []
        for node in obj.args:
            # Nested sequences indent their own contents one level deeper.
            lines.append(inner_indent + self.pformat(node, inner_level))

        return "sequence(\n" + ",\n".join(lines) + f"\n{outer_indent})"
