"""
Whole-form checks for the persisted format.

validate_round_trip exports a tree, imports it back and reports every
difference. Differences inside computed-property records (their `fnSource`
or `computeType`) are expected representation changes and are reported as
warnings; everything else is an error.
"""
from typing import Any, Iterable, List, Mapping, Sequence

from formx.core.errors import FormxError
from formx.core.logging import get_logger
from formx.lib.schemas import RoundTripReport
from formx.serialization.conversion import ExportOptions, FormConverter, component_dict

logger = get_logger(__name__)

_COMPUTED_MARKERS = ("fnSource", "computeType")


def _deep_diff(a: Any, b: Any, path: str = "") -> List[str]:
    if a is b:
        return []
    if a is None or b is None:
        return [] if a == b else [f"{path}: null mismatch ({a!r} vs {b!r})"]
    if isinstance(a, Mapping) and isinstance(b, Mapping):
        diffs = []
        for key in list(a) + [k for k in b if k not in a]:
            if key not in a:
                diffs.append(f"{path}.{key}: missing in original")
            elif key not in b:
                diffs.append(f"{path}.{key}: missing after conversion")
            else:
                diffs.extend(_deep_diff(a[key], b[key], f"{path}.{key}"))
        return diffs
    if isinstance(a, list) and isinstance(b, list):
        diffs = []
        if len(a) != len(b):
            diffs.append(f"{path}: array length mismatch ({len(a)} vs {len(b)})")
        for i, (x, y) in enumerate(zip(a, b)):
            diffs.extend(_deep_diff(x, y, f"{path}[{i}]"))
        return diffs
    numbers = all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in (a, b))
    if type(a) is not type(b) and not numbers:
        return [f"{path}: type mismatch ({type(a).__name__} vs {type(b).__name__})"]
    return [] if a == b else [f"{path}: value mismatch ({a!r} vs {b!r})"]


def count_components(components: Iterable[Any]) -> int:
    total = 0
    for c in components:
        c = component_dict(c)
        total += 1 + count_components(c.get("children") or [])
    return total


def _compare(original: Mapping[str, Any], restored: Mapping[str, Any], path: str, errors: List[str], warnings: List[str]):
    for key in ("id", "type"):
        if original.get(key) != restored.get(key):
            errors.append(f"{path}.{key}: mismatch ({original.get(key)!r} vs {restored.get(key)!r})")

    for diff in _deep_diff(original.get("props") or {}, restored.get("props") or {}, f"{path}.props"):
        if any(marker in diff for marker in _COMPUTED_MARKERS):
            warnings.append(f"{diff} (computed property format difference is expected)")
        else:
            errors.append(diff)

    left = original.get("children") or []
    right = restored.get("children") or []
    if left and not right:
        errors.append(f"{path}.children: missing after conversion")
    elif right and not left:
        errors.append(f"{path}.children: unexpected children after conversion")
    elif len(left) != len(right):
        errors.append(f"{path}.children: count mismatch ({len(left)} vs {len(right)})")
    else:
        for i, (a, b) in enumerate(zip(left, right)):
            _compare(component_dict(a), b, f"{path}.children[{i}]", errors, warnings)


def validate_round_trip(components: Sequence[Any]) -> RoundTripReport:
    """Export `components`, import them back and compare the two trees."""
    original_count = count_components(components)
    errors: List[str] = []
    warnings: List[str] = []
    converter = FormConverter()
    try:
        persisted = converter.to_persisted_form(components, ExportOptions())
        restored = converter.from_persisted_form(persisted)
    except FormxError as e:
        logger.warning(f"[CONVERT] Round trip failed: {e}")
        return RoundTripReport(
            success=False,
            errors=[f"Validation failed: {e}"],
            component_count={"original": original_count, "afterConversion": 0},
        )

    restored_count = count_components(restored)
    if original_count != restored_count:
        errors.append(
            f"Component count mismatch: original has {original_count} components, restored has {restored_count}"
        )
    if len(components) != len(restored):
        errors.append(f"Root component count mismatch: {len(components)} vs {len(restored)}")
    else:
        for i, (a, b) in enumerate(zip(components, restored)):
            _compare(component_dict(a), b, f"component[{i}]", errors, warnings)

    return RoundTripReport(
        success=not errors,
        errors=errors,
        warnings=warnings,
        component_count={"original": original_count, "afterConversion": restored_count},
    )


def validate_persisted_form(persisted: Mapping[str, Any]) -> RoundTripReport:
    """Structural check of a persisted form envelope."""
    errors: List[str] = []
    warnings: List[str] = []
    if not persisted.get("version"):
        errors.append("Missing version field")

    form = persisted.get("form")
    if not isinstance(form, Mapping):
        errors.append("Missing form field")
        form = {}
    else:
        if not form.get("key"):
            errors.append("Missing form.key")
        if not form.get("type"):
            errors.append("Missing form.type")

    if not persisted.get("defaultLanguage"):
        warnings.append("Missing defaultLanguage (will use en-US)")
    if not persisted.get("languages"):
        warnings.append("Missing languages array (will use default)")

    return RoundTripReport(
        success=not errors,
        errors=errors,
        warnings=warnings,
        component_count={"original": 0, "afterConversion": len(form.get("children") or [])},
    )


def quick_validate(components: Any) -> bool:
    """Every root component has an id and a type, and children are lists."""
    if not isinstance(components, list):
        return False
    for c in components:
        if not isinstance(c, Mapping) or not c.get("id") or not c.get("type"):
            return False
        if "children" in c and c["children"] is not None and not isinstance(c["children"], list):
            return False
    return True
