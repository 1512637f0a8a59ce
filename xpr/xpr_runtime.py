import os
import sys
from dataclasses import dataclass
from typing import Any, Dict, Literal as TLiteral, Optional

import yaml

from xpr.xpr_datatypes import (
    Expr, Context, XprError, UnknownFunction, UnboundName, ArityMismatch, UnboundPlaceholder,
    ZipLengthMismatch, NotImplementedByNode, InvariantViolation,
)
from xpr.xpr_interpreter import Interpreter, NativeTable
from xpr.xpr_transformer import RequestTransformer

Token = Dict[str, Any]


@dataclass
class ExecutionResult:
    """The structured result of evaluating one request."""
    status: TLiteral['success', 'error']
    value: Any = None
    error_message: Optional[str] = None
    error_token: Optional[Token] = None

    def format_error(self) -> str:
        """Formats an error message with line and column if available."""
        if self.status != 'error':
            return ""
        msg = str(self.error_message or "Unknown error")

        # Add a location prefix when we have a token; avoid duplicating the same prefix
        if self.error_token and 'line' in self.error_token:
            line = self.error_token.get('line')
            col = self.error_token.get('col')
            if not msg.startswith("Error on line "):
                col_info = f", col {col}" if col is not None else ""
                return f"Error on line {line}{col_info}: {msg}"
        return msg


class RequestRunner:
    """Loads, transforms and evaluates requests, reporting failures as results."""

    def __init__(self, interpreter: Optional[Interpreter] = None, natives: Optional[NativeTable] = None):
        if interpreter is None:
            interpreter = Interpreter(natives=natives)
        elif natives is not None:
            raise ValueError("Pass natives to the Interpreter, not to a runner that already has one")
        self.interpreter = interpreter
        self.transformer = RequestTransformer(interpreter.registry)

    def _dbg(self, *parts):
        if os.environ.get("XPR_DEBUG"):
            print("[DBG]", *parts, file=sys.stderr)

    def _format_runtime_error(self, e) -> str:
        match e:
            case UnknownFunction() | UnboundName():
                msg = f"{type(e).__name__}: {e.name}"
            case ArityMismatch() | UnboundPlaceholder() | ZipLengthMismatch() \
                    | NotImplementedByNode() | InvariantViolation():
                msg = f"{type(e).__name__}: {e}"
            case XprError():
                msg = f"Error: {e}"
            case TypeError() | ValueError() | ArithmeticError() | IndexError():
                msg = f"{type(e).__name__}: {e}"
            case _:
                msg = f"InternalError: {e}"

        # Render the offending node back as code
        xpr_obj = getattr(e, 'xpr_obj', None)
        if xpr_obj is not None:
            from xpr.xpr_printer import Printer
            msg = f"{msg}\n{Printer(registry=self.interpreter.registry).pformat(xpr_obj)}"
        return msg

    def _error_token(self, e) -> Optional[Token]:
        loc = getattr(getattr(e, 'xpr_obj', None), 'loc', None)
        if loc and isinstance(loc, dict):
            return {'line': loc.get('line'), 'col': loc.get('col'), 'tag': loc.get('tag'), 'text': loc.get('text')}
        return None

    def handle_request(self, source: Any, *args: Any, ctx: Optional[Context] = None) -> ExecutionResult:
        """Evaluates `source` with `args` filling its placeholders.

        `source` is YAML/JSON text, an already-loaded tagged dictionary, or a
        Request tree.
        """
        try:
            if isinstance(source, str):
                source = yaml.safe_load(source)
            request = source if isinstance(source, Expr) else self.transformer.transform(source)
        except (yaml.YAMLError, XprError, ValueError, KeyError, NotImplementedError) as e:
            return ExecutionResult(status='error', error_message=f"ParseError: {e}")

        if ctx is None:
            ctx = Context(interpreter=self.interpreter)
        for a in args:
            ctx.push(a)

        self._dbg("handle_request", type(request).__name__, "argc", len(args))
        try:
            value = self.interpreter.eval(request, ctx)
        except Exception as e:
            return ExecutionResult(status='error', error_message=self._format_runtime_error(e),
                                   error_token=self._error_token(e))
        return ExecutionResult(status='success', value=value)
