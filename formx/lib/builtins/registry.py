"""
Functions callable by name from form expressions and scripts.

Each group maps a name to `(callable, (min_args, max_args))`; a max of
None means variadic. The compiler checks call arity against
DSL_FUNCTION_SIG before any script runs.
"""

from .collection_funcs import DSL_COLLECTION_FUNCS
from .core_funcs import CORE_FUNCS
from .math_funcs import DSL_MATH_FUNCS
from .string_funcs import STRING_FUNCS


def _merge(*groups):
    merged = {}
    for group in groups:
        clash = merged.keys() & group.keys()
        if clash:
            raise ValueError(f"Builtin function defined twice: {', '.join(sorted(clash))}")
        merged.update(group)
    return merged


DSL_FUNCTIONS = _merge(CORE_FUNCS, STRING_FUNCS, DSL_MATH_FUNCS, DSL_COLLECTION_FUNCS)

DSL_FUNCTION_REGISTRY = {name: entry[0] for name, entry in DSL_FUNCTIONS.items()}
DSL_FUNCTION_SIG = {name: entry[1] for name, entry in DSL_FUNCTIONS.items()}
