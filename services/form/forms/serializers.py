"""Serializers for the form service."""
from __future__ import annotations

from typing import Any, Dict

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from rest_framework import serializers

from .models import Form, FormField, FormFieldOption, FormSubmission
from .validation import FIELD_KINDS


class FormFieldOptionSerializer(serializers.ModelSerializer):
    class Meta:
        model = FormFieldOption
        fields = ["id", "label", "value", "position"]


class FormFieldSerializer(serializers.ModelSerializer):
    is_selector = serializers.BooleanField(read_only=True)
    has_many_responses = serializers.BooleanField(read_only=True)
    options_string = serializers.CharField(read_only=True)
    options = FormFieldOptionSerializer(many=True, read_only=True)

    class Meta:
        model = FormField
        fields = [
            "id",
            "kind",
            "label",
            "name",
            "required",
            "number",
            "max_length",
            "min_length",
            "position",
            "is_selector",
            "has_many_responses",
            "options_string",
            "options",
        ]
        read_only_fields = fields


def _raise_as_api_error(exc: Exception) -> None:
    if isinstance(exc, DjangoValidationError):
        detail = exc.message_dict if hasattr(exc, "error_dict") else {"field_data": exc.messages}
        raise serializers.ValidationError(detail) from exc
    raise serializers.ValidationError({"field_data": [str(exc)]}) from exc


class FormSerializer(serializers.ModelSerializer):
    form_fields = FormFieldSerializer(source="fields", many=True, read_only=True)
    field_keys = serializers.ListField(child=serializers.CharField(), read_only=True)
    field_data = serializers.DictField(
        child=serializers.DictField(child=serializers.DictField()),
        write_only=True,
        required=False,
    )

    class Meta:
        model = Form
        fields = [
            "id",
            "name",
            "description",
            "is_active",
            "created_at",
            "updated_at",
            "form_fields",
            "field_keys",
            "field_data",
        ]

    def validate_field_data(self, value: Dict[str, Any]) -> Dict[str, Any]:
        unknown = sorted(set(value) - set(FIELD_KINDS))
        if unknown:
            raise serializers.ValidationError(f"Unknown field kinds: {', '.join(unknown)}")
        return value

    def create(self, validated_data):  # type: ignore[override]
        field_data = validated_data.pop("field_data", {})
        form = Form(**validated_data)
        try:
            with transaction.atomic():
                form.assign_fields(field_data)
                form.save()
        except (DjangoValidationError, ValueError) as exc:
            _raise_as_api_error(exc)
        return form

    def update(self, instance, validated_data):  # type: ignore[override]
        field_data = validated_data.pop("field_data", None)
        for attr, value in validated_data.items():
            setattr(instance, attr, value)
        try:
            with transaction.atomic():
                instance.save()
                if field_data is not None:
                    instance.assign_fields(field_data)
        except (DjangoValidationError, ValueError, FormField.DoesNotExist) as exc:
            _raise_as_api_error(exc)
        return instance


class FormSubmissionSerializer(serializers.ModelSerializer):
    class Meta:
        model = FormSubmission
        fields = ["id", "form", "data", "created_at"]
        read_only_fields = fields
