"""Validation and coercion of raw input before it reaches persistence.

Raw values are run through a ``ModelForm`` built for the collection,
so field types, lengths, choices and validators declared on the model
all apply. Only editable model fields are accepted.
"""

from collections.abc import Mapping
from typing import Any, Final, Literal

from django.core.exceptions import ValidationError
from django.forms import modelform_factory

from server.apps.files.logic.item_operations import get_collection_model

Operation = Literal['create', 'update']

_OPERATIONS: Final = ('create', 'update')


def get_editable_fields(collection: str) -> list[str]:
    """Names of fields callers may set.

    Args:
        collection: Model label.

    Returns:
        Editable concrete field names, in model order.
    """
    model = get_collection_model(collection)
    return [
        model_field.name
        for model_field in model._meta.concrete_fields  # noqa: WPS437
        if model_field.editable and not model_field.primary_key
    ]


def process_values(
    operation: Operation,
    collection: str,
    data: Mapping[str, Any],
    *,
    readonly: tuple[str, ...] = (),
) -> dict[str, Any]:
    """Validate and coerce raw field values.

    On ``create`` every editable field is validated (missing required
    fields are errors). On ``update`` only the supplied fields are.

    Args:
        operation: 'create' or 'update'.
        collection: Model label.
        data: Raw input values.
        readonly: Editable fields that may not be supplied for this
            operation.

    Returns:
        Cleaned values: all editable fields for create, the supplied
        ones for update.

    Raises:
        ValidationError: If a value is invalid or a field may not be set.
    """
    if operation not in _OPERATIONS:
        raise ValueError(f'Unknown operation: {operation}')

    editable = [name for name in get_editable_fields(collection) if name not in readonly]
    rejected = sorted(set(data) - set(editable))
    if rejected:
        raise ValidationError(
            {
                name: ValidationError(
                    'This field cannot be set.',
                    code='readonly',
                )
                for name in rejected
            },
        )

    fields = editable if operation == 'create' else [name for name in editable if name in data]
    form_class = modelform_factory(
        get_collection_model(collection),
        fields=fields,
    )
    form = form_class(data=dict(data))
    if not form.is_valid():
        raise ValidationError(form.errors.as_data())
    return {name: form.cleaned_data[name] for name in fields}
