# Core type aliases for kiln's data model.
# Runtime values are plain Python objects: int, str, bool, tuple (the List
# variant, immutable so aliases can never observe mutation), Function, Builtin
# and the Unit singleton. Code read from source is nested Python lists of
# Symbols and literals.
#
# Naming guidance:
# - SExpression: use in reader/planner code to denote syntactic forms.
# - Value: use in evaluator/runtime code to denote evaluated values.

from typing import Any, Callable

# Runtime value alias
Value = Any
# Forms as produced by the reader
SExpression = Any

# Evaluator function type passed into special forms
EvaluatorFn = Callable[..., Value]
