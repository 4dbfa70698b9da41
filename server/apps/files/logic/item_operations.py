"""Generic record persistence keyed by collection label.

A collection is a Django model label such as ``'files.File'``.
Records go in and come out as plain dictionaries, shaped by a
``Query`` (field selection, filters, ordering and paging).
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, final

from django.apps import apps
from django.core.exceptions import FieldDoesNotExist, FieldError, ValidationError
from django.db import models, transaction

from server.apps.files.exceptions import NotFoundError

logger = logging.getLogger(__name__)

Record = dict[str, Any]


@final
@dataclass(frozen=True, slots=True)
class Query:
    """Read parameters for a collection.

    Attributes:
        fields: Field names to return; empty means all fields.
        filters: Django lookups, e.g. ``{'mime_type__startswith': 'image/'}``.
        sort: Ordering, e.g. ``('-uploaded_on',)``.
        limit: Maximum number of records.
        offset: Records to skip.
    """

    fields: tuple[str, ...] = ()
    filters: Mapping[str, Any] = field(default_factory=dict)
    sort: tuple[str, ...] = ()
    limit: int | None = None
    offset: int = 0


def get_collection_model(collection: str) -> type[models.Model]:
    """Resolve a collection label to its model.

    Args:
        collection: Model label, e.g. 'files.File'.

    Returns:
        Model class.
    """
    return apps.get_model(collection)


def create_item(
    collection: str,
    payload: Mapping[str, Any],
    query: Query | None = None,
) -> Record:
    """Insert a record.

    Args:
        collection: Model label.
        payload: Field values, already validated.
        query: Shape of the returned record.

    Returns:
        The stored record.
    """
    model = get_collection_model(collection)
    with transaction.atomic():
        instance = model(**payload)
        instance.save(force_insert=True)
    logger.info('Created %s record: %s', collection, instance.pk)
    return read_item(collection, instance.pk, query)


def read_items(collection: str, query: Query | None = None) -> list[Record]:
    """List records.

    Args:
        collection: Model label.
        query: Filters, ordering, paging and field selection.

    Returns:
        List of records.

    Raises:
        ValidationError: If the query names unknown fields.
    """
    query = query or Query()
    model = get_collection_model(collection)
    try:
        queryset = model.objects.filter(**query.filters)
        if query.sort:
            queryset = queryset.order_by(*query.sort)
        if query.offset or query.limit is not None:
            stop = None if query.limit is None else query.offset + query.limit
            queryset = queryset[query.offset:stop]
        return list(queryset.values(*query.fields))
    except (FieldError, FieldDoesNotExist) as error:
        raise ValidationError(str(error), code='invalid_query') from error


def read_item(
    collection: str,
    pk: object,
    query: Query | None = None,
) -> Record:
    """Fetch one record by primary key.

    Args:
        collection: Model label.
        pk: Primary key.
        query: Field selection; filters narrow the lookup.

    Returns:
        The record.

    Raises:
        NotFoundError: If no record matches.
        ValidationError: If the query names unknown fields.
    """
    query = query or Query()
    model = get_collection_model(collection)
    try:
        records = list(
            model.objects.filter(pk=pk, **query.filters).values(*query.fields),
        )
    except (FieldError, FieldDoesNotExist) as error:
        raise ValidationError(str(error), code='invalid_query') from error
    if not records:
        raise NotFoundError(collection, pk)
    return records[0]


def update_item(
    collection: str,
    pk: object,
    payload: Mapping[str, Any],
    query: Query | None = None,
) -> Record:
    """Update fields of one record.

    Args:
        collection: Model label.
        pk: Primary key.
        payload: Field values to change, already validated.
        query: Shape of the returned record.

    Returns:
        The updated record.

    Raises:
        NotFoundError: If the record does not exist.
    """
    model = get_collection_model(collection)
    with transaction.atomic():
        instance = model.objects.select_for_update().filter(pk=pk).first()
        if instance is None:
            raise NotFoundError(collection, pk)
        if payload:
            for field_name, field_value in payload.items():
                setattr(instance, field_name, field_value)
            instance.save(
                update_fields=[*payload, *_auto_now_fields(model)],
            )
            logger.info(
                'Updated %s record %s: %s',
                collection,
                pk,
                ', '.join(payload),
            )
    return read_item(collection, pk, query)


def delete_item(collection: str, pk: object) -> None:
    """Delete one record.

    Args:
        collection: Model label.
        pk: Primary key.

    Raises:
        NotFoundError: If the record does not exist.
    """
    model = get_collection_model(collection)
    with transaction.atomic():
        deleted, _ = model.objects.filter(pk=pk).delete()
    if not deleted:
        raise NotFoundError(collection, pk)
    logger.info('Deleted %s record: %s', collection, pk)


def _auto_now_fields(model: type[models.Model]) -> list[str]:
    return [
        model_field.name
        for model_field in model._meta.concrete_fields  # noqa: WPS437
        if getattr(model_field, 'auto_now', False)
    ]
