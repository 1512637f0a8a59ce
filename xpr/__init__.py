from xpr.xpr_datatypes import (
    Expr, Literal, Undef, Apply, Ref, Sequence, Let, Define, Call, Native, Lambda,
    Context, ExecutionContext, MISSING, arity, as_value, as_expr, is_value,
    XprError, UnknownFunction, UnboundName, ArityMismatch, UnboundPlaceholder,
    ZipLengthMismatch, NotImplementedByNode, InvariantViolation, RegistryFrozen,
)
from xpr.xpr_functions import (
    FunctionDescriptor, FunctionRegistry, builtin_registry, default_registry,
    countable, count, clone, clone_with_args, apply_function, function_ref,
    literal, undef, xlist, zip_with, count_of, map_with, filter_with, reduce_with, take,
    add, sub, mul, div, neg, greater, less, equal, timestamp,
    ref, let, define, call, native, sequence,
)
from xpr.xpr_optimizer import Optimizer, optimize
from xpr.xpr_interpreter import Interpreter, NativeTable, xpr_native, default_interpreter
from xpr.xpr_printer import Printer
from xpr.xpr_transformer import RequestTransformer, load_request
from xpr.xpr_runtime import ExecutionResult, RequestRunner
