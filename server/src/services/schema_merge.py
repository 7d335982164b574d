"""
Non-destructive reconciliation of stored documents against a template.

The capability template grows over time; characters stored before a field
existed get that field filled in from the template when a session loads.
Existing values are never overwritten and fields that only exist on the
document are never touched.

Field kinds are decided by an explicit tag derived from the template value's
type, so an empty object and an empty array are never confused:

    OBJECT  mapping        -> ensure a mapping exists, recurse into it
    ARRAY   list / tuple   -> ensure a list exists, never merged element-wise
    SCALAR  anything else  -> copy the template value if the field is absent
"""

from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, MutableMapping, Optional

from server.src.core.constants import PROTOTYPE_STORE_KEYS
from server.src.core.logging_config import get_logger

logger = get_logger(__name__)


class FieldKind(str, Enum):
    OBJECT = "object"
    ARRAY = "array"
    SCALAR = "scalar"


def field_kind(value: Any) -> FieldKind:
    """Tag a template value with the kind of field it describes."""
    if isinstance(value, Mapping):
        return FieldKind.OBJECT
    if isinstance(value, (list, tuple)):
        return FieldKind.ARRAY
    return FieldKind.SCALAR


def _is_present(document: Mapping[str, Any], field: str) -> bool:
    # None counts as absent; 0, False and "" are real values
    return document.get(field) is not None


def reconcile(
    template: Mapping[str, Any], document: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """
    Fill every field of ``template`` that ``document`` lacks.

    Mutates ``document`` in place and returns it. Running it twice is the
    same as running it once.
    """
    for field, template_value in template.items():
        kind = field_kind(template_value)

        if kind is FieldKind.OBJECT:
            if not _is_present(document, field):
                document[field] = {}
            nested = document[field]
            if isinstance(nested, MutableMapping):
                reconcile(template_value, nested)
            else:
                logger.debug(
                    "Keeping non-object value where template expects an object",
                    extra={"field": field, "value_type": type(nested).__name__},
                )

        elif kind is FieldKind.ARRAY:
            if not _is_present(document, field):
                document[field] = []

        elif not _is_present(document, field):
            document[field] = template_value

    return document


def strip_store_keys(prototype: Mapping[str, Any]) -> Dict[str, Any]:
    """Drop the keys the store manages on a prototype document."""
    return {
        key: value for key, value in prototype.items() if key not in PROTOTYPE_STORE_KEYS
    }


def reconcile_characters(
    prototype: Optional[Mapping[str, Any]], characters: Iterable[MutableMapping[str, Any]]
) -> List[MutableMapping[str, Any]]:
    """
    Reconcile each character document against the character prototype.

    Without a prototype the characters are returned untouched.
    """
    characters = list(characters)
    if not prototype:
        return characters

    template = strip_store_keys(prototype)
    for character in characters:
        reconcile(template, character)
    return characters
