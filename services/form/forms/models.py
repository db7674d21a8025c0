"""Database models for the form service."""
from __future__ import annotations

import hashlib
import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple, Type

from django.contrib.contenttypes.fields import GenericForeignKey
from django.contrib.contenttypes.models import ContentType
from django.core.exceptions import ValidationError
from django.db import models, transaction
from django.utils import timezone

from . import validation
from .exceptions import SubmissionInvalid, UnknownFieldError
from .validation import SubmissionErrors

logger = logging.getLogger(__name__)


class FormQuerySet(models.QuerySet):
    def active(self) -> "FormQuerySet":
        return self.filter(is_active=True)


class Form(models.Model):
    """A dynamic form definition owned by an arbitrary record."""

    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)
    formable_type = models.ForeignKey(
        ContentType,
        null=True,
        blank=True,
        on_delete=models.CASCADE,
        related_name="+",
    )
    formable_id = models.PositiveBigIntegerField(null=True, blank=True)
    formable = GenericForeignKey("formable_type", "formable_id")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = FormQuerySet.as_manager()

    class Meta:
        ordering = ["name", "id"]
        indexes = [models.Index(fields=["formable_type", "formable_id"], name="forms_form_formable_idx")]

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        # Fields built before the form has a primary key, keyed by kind.
        self._staged_fields: Dict[str, List[FormField]] = {}
        super().__init__(*args, **kwargs)

    def __str__(self) -> str:
        return self.name

    def clean(self) -> None:
        if self.name and not self.name.strip():
            raise ValidationError({"name": "This field cannot be blank."})

    def save(self, *args: Any, **kwargs: Any) -> None:
        self.full_clean()
        staged = [
            field
            for kind in validation.FIELD_KINDS
            for field in self._staged_fields.get(kind, [])
        ]
        for field in staged:
            field.full_clean(exclude=["form"])

        adding = self._state.adding
        try:
            with transaction.atomic():
                super().save(*args, **kwargs)
                self._save_staged_fields(staged)
        except Exception:
            # The transaction rolled back: the form and its staged fields stay unsaved.
            if adding:
                self.pk = None
                self._state.adding = True
            for field in staged:
                field.pk = None
                field._state.adding = True
                field._persisted_kind = None
            raise
        self._staged_fields = {}

    def _save_staged_fields(self, staged: List["FormField"]) -> None:
        for field in staged:
            field.form = self
            field.save()
            logger.debug("Saved staged %s field %s on form %s", field.kind, field.name, self.pk)

    def stage_field(self, field: "FormField") -> None:
        """Hold a new field until the form itself is saved."""

        field.form = self
        self._staged_fields.setdefault(field.kind, []).append(field)

    def fields_of_kind(self, kind: str) -> List["FormField"]:
        field_class = field_class_for(kind)
        persisted: List[FormField] = []
        if self.pk is not None:
            persisted = list(field_class.objects.filter(form=self))
        return persisted + list(self._staged_fields.get(kind, []))

    @property
    def fields(self) -> List["FormField"]:
        """The form's fields in display order.

        Falls back to merging the per-kind collections when the primary
        collection is empty, which is the case for an unsaved form whose
        fields are only staged.
        """

        if self.pk is not None:
            fields = list(self.form_fields.all())
            if fields:
                return fields
        combined: List[FormField] = []
        for kind in validation.FIELD_KINDS:
            combined.extend(self.fields_of_kind(kind))
        return sorted(combined, key=lambda field: field.position)

    def field_keys(self) -> List[str]:
        return [field.ensure_name() for field in self.fields]

    def next_position(self) -> int:
        positions = [field.position for fields in self._staged_fields.values() for field in fields]
        if self.pk is not None:
            # Aggregate rather than self.fields, which may be a stale prefetch.
            top = self.form_fields.aggregate(top=models.Max("position"))["top"]
            if top is not None:
                positions.append(top)
        return max(positions) + 1 if positions else 0

    def assign_fields(self, data: Mapping[str, Mapping[Any, Mapping[str, Any]]]) -> None:
        """Reconcile nested field descriptors keyed by field kind."""

        from .sync import sync_fields

        for kind, descriptors in data.items():
            sync_fields(self, kind, descriptors)


class FieldKindManager(models.Manager):
    """Restricts a field proxy's queries to its own kind."""

    def get_queryset(self) -> models.QuerySet:
        return super().get_queryset().filter(kind=self.model.KIND)


class FormField(models.Model):
    """A typed, validated input definition within a form."""

    KIND: Optional[str] = None
    HAS_MANY_RESPONSES = False
    IS_SELECTOR = False
    ALLOWED_VALIDATIONS: Tuple[str, ...] = ()

    KIND_CHOICES = [
        (validation.TEXT_FIELD, "Text field"),
        (validation.TEXT_AREA, "Text area"),
        (validation.SELECT, "Select"),
        (validation.CHECK_BOX, "Check box"),
        (validation.CHECK_BOX_GROUP, "Check box group"),
    ]

    form = models.ForeignKey(Form, related_name="form_fields", on_delete=models.CASCADE)
    kind = models.CharField(max_length=32, choices=KIND_CHOICES)
    label = models.CharField(max_length=255, blank=True)
    name = models.CharField(max_length=255, blank=True)
    required = models.BooleanField(default=False)
    number = models.BooleanField(default=False)
    max_length = models.PositiveIntegerField(null=True, blank=True)
    min_length = models.PositiveIntegerField(null=True, blank=True)
    position = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["position", "id"]

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        self._staged_options: Optional[List[FormFieldOption]] = None
        self._persisted_kind: Optional[str] = None
        super().__init__(*args, **kwargs)
        if self.KIND is not None and not self.__dict__.get("kind"):
            self.kind = self.KIND

    @classmethod
    def from_db(cls, db, field_names, values):  # type: ignore[override]
        instance = super().from_db(db, field_names, values)
        kind = instance.__dict__.get("kind")
        field_class = FIELD_TYPES.get(kind)
        if field_class is not None and not isinstance(instance, field_class):
            instance.__class__ = field_class
        instance._persisted_kind = kind
        return instance

    def __str__(self) -> str:
        return f"{self.label} ({self.kind})"

    @property
    def kind_class(self) -> Type["FormField"]:
        return FIELD_TYPES.get(self.kind, FormField)

    @property
    def has_many_responses(self) -> bool:
        """Whether the submitted value is a list of responses."""

        return self.kind_class.HAS_MANY_RESPONSES

    @property
    def is_selector(self) -> bool:
        """Whether the value is drawn from this field's option list."""

        return self.kind_class.IS_SELECTOR

    def allow_validation_of(self, validation_name: str) -> bool:
        return validation_name in self.kind_class.ALLOWED_VALIDATIONS

    @property
    def display_name(self) -> str:
        return self.label or self.ensure_name()

    def assign_name(self) -> None:
        seed = f"{self.label}{timezone.now().isoformat()}"
        self.name = "field_" + hashlib.sha1(seed.encode("utf-8")).hexdigest()[:20]

    def ensure_name(self) -> str:
        if validation.is_blank(self.name):
            self.assign_name()
        return self.name

    def full_clean(self, *args: Any, **kwargs: Any) -> None:
        self.ensure_name()
        super().full_clean(*args, **kwargs)

    def clean(self) -> None:
        if self.KIND is not None and self.kind != self.KIND:
            raise ValidationError({"kind": f"A {self.KIND} field cannot have kind {self.kind}."})
        if self._persisted_kind is not None and self.kind != self._persisted_kind:
            raise ValidationError({"kind": "The kind of a field cannot be changed."})

    def save(self, *args: Any, **kwargs: Any) -> None:
        self.full_clean()
        with transaction.atomic():
            super().save(*args, **kwargs)
            self._save_staged_options()
        self._staged_options = None
        self._persisted_kind = self.kind

    def _save_staged_options(self) -> None:
        if self._staged_options is None:
            return
        self.form_field_options.all().delete()
        for option in self._staged_options:
            option.pk = None
            option.form_field = self
            option.save()

    @property
    def options(self) -> List["FormFieldOption"]:
        if self._staged_options is not None:
            return list(self._staged_options)
        if self.pk is None:
            return []
        return list(self.form_field_options.all())

    @property
    def options_string(self) -> str:
        """Option labels joined for single-line editing."""

        return ", ".join(option.label for option in self.options)

    @options_string.setter
    def options_string(self, text: Optional[str]) -> None:
        # Labels and values are the same for now; position is the split index.
        labels = [piece.strip() for piece in (text or "").split(",")]
        self._staged_options = [
            FormFieldOption(label=label, value=label, position=index)
            for index, label in enumerate(labels)
            if label
        ]

    def validate_submission(self, submission: "FormSubmission") -> None:
        """Add a message to ``submission.errors`` for every violated rule."""

        name = self.ensure_name()
        value = submission[name]
        settings = validation.rule_settings(self)
        for rule in validation.VALIDATION_TYPES:
            if not self.allow_validation_of(rule):
                continue
            suffix = validation.error_for_value(value, rule, **settings)
            if suffix is not None:
                logger.debug("Adding error %r on %s", suffix, name)
                submission.errors.add(name, f"{self.display_name}{suffix}")


class TextField(FormField):
    KIND = validation.TEXT_FIELD
    ALLOWED_VALIDATIONS = (
        validation.REQUIRED,
        validation.NUMBER,
        validation.MAX_LENGTH,
        validation.MIN_LENGTH,
    )

    objects = FieldKindManager()

    class Meta:
        proxy = True


class TextArea(FormField):
    KIND = validation.TEXT_AREA
    ALLOWED_VALIDATIONS = (validation.REQUIRED, validation.MAX_LENGTH, validation.MIN_LENGTH)

    objects = FieldKindManager()

    class Meta:
        proxy = True


class Select(FormField):
    KIND = validation.SELECT
    IS_SELECTOR = True
    ALLOWED_VALIDATIONS = (validation.REQUIRED,)

    objects = FieldKindManager()

    class Meta:
        proxy = True


class CheckBox(FormField):
    KIND = validation.CHECK_BOX
    ALLOWED_VALIDATIONS = (validation.REQUIRED,)

    objects = FieldKindManager()

    class Meta:
        proxy = True


class CheckBoxGroup(FormField):
    KIND = validation.CHECK_BOX_GROUP
    HAS_MANY_RESPONSES = True
    IS_SELECTOR = True
    ALLOWED_VALIDATIONS = (validation.REQUIRED,)

    objects = FieldKindManager()

    class Meta:
        proxy = True


FIELD_TYPES: Dict[str, Type[FormField]] = {
    field_class.KIND: field_class
    for field_class in (TextField, TextArea, Select, CheckBox, CheckBoxGroup)
}


def field_class_for(kind: str) -> Type[FormField]:
    try:
        return FIELD_TYPES[kind]
    except KeyError:
        raise ValueError(f"Unknown field kind: {kind}") from None


class FormFieldOption(models.Model):
    """A selectable label/value pair for selector fields."""

    form_field = models.ForeignKey(
        FormField, related_name="form_field_options", on_delete=models.CASCADE
    )
    label = models.CharField(max_length=255)
    value = models.CharField(max_length=255)
    position = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ["position", "label"]

    def __str__(self) -> str:
        return self.label


class FormSubmissionManager(models.Manager):
    """Builds submissions through ``form.form_submissions``."""

    def submit(self, attributes: Mapping[str, Any], raise_on_error: bool = False) -> "FormSubmission":
        """Build, validate and save a submission for the related form.

        The submission is returned whether or not it saved; inspect
        ``submission.errors`` (or ``submission.pk``) to tell.
        """

        form = getattr(self, "instance", None)
        if not isinstance(form, Form):
            raise TypeError("submit() must be called through form.form_submissions")

        submission = self.model(form=form)
        for name, value in attributes.items():
            submission.assign(name, value)
        try:
            with transaction.atomic():
                submission.save()
        except ValidationError:
            logger.info(
                "Submission to form %s rejected: %s", form.pk, submission.errors.full_messages()
            )
            if raise_on_error:
                raise SubmissionInvalid(submission) from None
        return submission

    def submit_or_raise(self, attributes: Mapping[str, Any]) -> "FormSubmission":
        return self.submit(attributes, raise_on_error=True)


class FormSubmission(models.Model):
    """One set of answers recorded against a form."""

    form = models.ForeignKey(Form, related_name="form_submissions", on_delete=models.CASCADE)
    data = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    objects = FormSubmissionManager()

    class Meta:
        ordering = ["-created_at", "-id"]

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.errors = SubmissionErrors()
        self._field_keys: Optional[List[str]] = None

    def __str__(self) -> str:
        return f"Submission {self.pk} to form {self.form_id}"

    def __getitem__(self, name: str) -> Any:
        return self.data.get(name)

    def assign(self, name: str, value: Any) -> None:
        if self._field_keys is None:
            self._field_keys = self.form.field_keys()
        if name not in self._field_keys:
            raise UnknownFieldError(name)
        self.data[name] = value

    def clean(self) -> None:
        if self.form_id is None:
            return
        for field in self.form.fields:
            field.validate_submission(self)

    def full_clean(self, *args: Any, **kwargs: Any) -> None:
        self.errors = SubmissionErrors()
        try:
            super().full_clean(*args, **kwargs)
        except ValidationError as exc:
            for name, messages in exc.message_dict.items():
                self.errors.extend(name, messages)
        if self.errors:
            raise ValidationError(self.errors.as_dict())

    def save(self, *args: Any, **kwargs: Any) -> None:
        if not self._state.adding:
            raise ValueError("Form submissions cannot be changed once recorded.")
        self.full_clean()
        super().save(*args, **kwargs)
