"""Reconcile a form's fields of one kind against submitted descriptors."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping

from django.db import transaction

from .models import Form, FormField, field_class_for

logger = logging.getLogger(__name__)

FIELD_ATTRIBUTES = frozenset(
    {
        "label",
        "name",
        "required",
        "number",
        "max_length",
        "min_length",
        "position",
        "options_string",
    }
)
NULLABLE_ATTRIBUTES = frozenset({"max_length", "min_length"})


def _field_attributes(descriptor: Mapping[str, Any]) -> Dict[str, Any]:
    attributes = {key: value for key, value in descriptor.items() if key != "id"}
    unknown = sorted(set(attributes) - FIELD_ATTRIBUTES)
    if unknown:
        raise ValueError(f"Unknown field attributes: {', '.join(unknown)}")
    for key in NULLABLE_ATTRIBUTES & set(attributes):
        if attributes[key] == "":
            attributes[key] = None
    return attributes


def _field_id(descriptor: Mapping[str, Any]) -> int | None:
    value = descriptor.get("id")
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid field id: {value!r}") from None


def _build_field(form: Form, kind: str, attributes: Dict[str, Any]) -> FormField:
    field_class = field_class_for(kind)
    attributes.setdefault("position", form.next_position())
    field = field_class(**attributes)
    if form.pk is None:
        form.stage_field(field)
    else:
        field.form = form
        field.save()
        logger.info("Created %s field %s on form %s", kind, field.name, form.pk)
    return field


def sync_fields(form: Form, kind: str, descriptors: Mapping[Any, Mapping[str, Any]]) -> List[FormField]:
    """Create, update and delete ``form``'s fields of ``kind`` to match ``descriptors``.

    ``descriptors`` maps an opaque key to the attributes of one field. A
    descriptor whose ``id`` names an existing field updates that field;
    one without an ``id`` creates a field. Existing fields of the kind that
    no descriptor names are deleted afterwards. Fields of other kinds are
    left untouched.

    While the form is unsaved every descriptor becomes a new, staged field
    that is written by ``form.save()``.
    """

    field_class = field_class_for(kind)
    if form.pk is None:
        return [
            _build_field(form, kind, _field_attributes(descriptor))
            for descriptor in descriptors.values()
        ]

    fields: List[FormField] = []
    with transaction.atomic():
        removed = {field.pk: field for field in field_class.objects.filter(form=form)}
        for descriptor in descriptors.values():
            attributes = _field_attributes(descriptor)
            field_id = _field_id(descriptor)
            if field_id is None:
                fields.append(_build_field(form, kind, attributes))
                continue

            field = field_class.objects.get(form=form, pk=field_id)
            removed.pop(field.pk, None)
            for attr, value in attributes.items():
                setattr(field, attr, value)
            field.save()
            fields.append(field)

        if removed:
            field_class.objects.filter(pk__in=list(removed)).delete()
            logger.info(
                "Deleted %s %s field(s) from form %s", len(removed), kind, form.pk
            )
    return fields
