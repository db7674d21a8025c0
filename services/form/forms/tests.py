"""Tests for form definitions, field reconciliation and submissions."""
from __future__ import annotations

from unittest import mock

from django.contrib.contenttypes.models import ContentType
from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.test import SimpleTestCase, TestCase
from django.urls import reverse
from rest_framework.test import APIClient

from .exceptions import SubmissionInvalid, UnknownFieldError
from .models import (
    CheckBox,
    CheckBoxGroup,
    Form,
    FormField,
    FormFieldOption,
    FormSubmission,
    Select,
    TextArea,
    TextField,
)
from .sync import sync_fields
from .validation import SubmissionErrors, error_for_value, is_blank, is_number


class ValueRuleTests(SimpleTestCase):
    def test_blank_values(self) -> None:
        for value in (None, False, "", "   ", [], {}):
            self.assertTrue(is_blank(value), value)
        for value in ("a", 0, ["Red"], True):
            self.assertFalse(is_blank(value), value)

    def test_number_pattern(self) -> None:
        for value in ("123", "-1,000.50", "+3.", "7"):
            self.assertTrue(is_number(value), value)
        for value in ("12a", "1.2.3", "", "abc", ".5"):
            self.assertFalse(is_number(value), value)

    def test_required_rule(self) -> None:
        self.assertEqual(error_for_value("", "required", required=True), " cannot be blank.")
        self.assertIsNone(error_for_value("x", "required", required=True))
        self.assertIsNone(error_for_value("", "required", required=False))

    def test_number_rule_ignores_blank_values(self) -> None:
        self.assertEqual(error_for_value("12a", "number", number=True), " must be a number.")
        self.assertIsNone(error_for_value("", "number", number=True))
        self.assertIsNone(error_for_value("12a", "number", number=False))

    def test_length_rules(self) -> None:
        self.assertEqual(
            error_for_value("abc", "max_length", max_length=2),
            " must be less than 2 characters long.",
        )
        self.assertIsNone(error_for_value("ab", "max_length", max_length=2))
        self.assertIsNone(error_for_value("", "max_length", max_length=0))
        self.assertEqual(
            error_for_value("abc", "min_length", min_length=5),
            " must be greater than 5 characters long.",
        )
        self.assertEqual(
            error_for_value(None, "min_length", min_length=1),
            " must be greater than 1 characters long.",
        )
        self.assertIsNone(error_for_value("abcde", "min_length", min_length=5))

    def test_unknown_rule(self) -> None:
        with self.assertRaises(ValueError):
            error_for_value("x", "email")

    def test_submission_errors_skip_duplicates(self) -> None:
        errors = SubmissionErrors()
        errors.add("age", "Age must be a number.")
        errors.extend("age", ["Age must be a number.", "Age cannot be blank."])
        self.assertEqual(errors.as_dict(), {"age": ["Age must be a number.", "Age cannot be blank."]})
        self.assertEqual(len(errors.full_messages()), 2)


class FormModelTests(TestCase):
    def test_blank_name_blocks_save(self) -> None:
        with self.assertRaises(ValidationError):
            Form.objects.create(name="")
        with self.assertRaises(ValidationError):
            Form(name="   ").save()
        self.assertEqual(Form.objects.count(), 0)

    def test_active_scope(self) -> None:
        Form.objects.create(name="Open", is_active=True)
        Form.objects.create(name="Closed", is_active=False)
        self.assertEqual([form.name for form in Form.objects.active()], ["Open"])

    def test_formable_owner(self) -> None:
        owner = ContentType.objects.get_for_model(Form)
        form = Form.objects.create(name="Owned", formable=owner)
        form.refresh_from_db()
        self.assertEqual(form.formable, owner)

    def test_delete_cascades(self) -> None:
        form = Form.objects.create(name="Survey")
        field = Select(form=form, label="Colour", name="colour")
        field.options_string = "Red, Blue"
        field.save()
        form.form_submissions.submit({"colour": "Red"})

        form.delete()
        self.assertEqual(FormField.objects.count(), 0)
        self.assertEqual(FormFieldOption.objects.count(), 0)
        self.assertEqual(FormSubmission.objects.count(), 0)

    def test_fields_and_keys_follow_position(self) -> None:
        form = Form.objects.create(name="Order")
        TextArea.objects.create(form=form, label="Notes", name="notes", position=2)
        TextField.objects.create(form=form, label="Name", name="name", position=0)
        CheckBox.objects.create(form=form, label="Agree", name="agree", position=1)

        self.assertEqual(form.field_keys(), ["name", "agree", "notes"])
        self.assertIsInstance(form.fields[1], CheckBox)


class FormFieldTests(TestCase):
    def setUp(self) -> None:
        self.form = Form.objects.create(name="Profile")

    def test_name_assigned_on_validation_and_stable(self) -> None:
        field = TextField(form=self.form, label="Email")
        field.full_clean()
        name = field.name
        self.assertTrue(name.startswith("field_"))
        self.assertEqual(len(name), len("field_") + 20)

        field.full_clean()
        field.save()
        field.refresh_from_db()
        self.assertEqual(field.name, name)

    def test_given_name_is_kept(self) -> None:
        field = TextField.objects.create(form=self.form, label="Email", name="email")
        self.assertEqual(field.name, "email")

    def test_kind_follows_field_class(self) -> None:
        self.assertEqual(TextField().kind, "text_field")
        self.assertEqual(TextArea().kind, "text_area")
        self.assertEqual(Select().kind, "select")
        self.assertEqual(CheckBox().kind, "check_box")
        self.assertEqual(CheckBoxGroup().kind, "check_box_group")

    def test_capabilities(self) -> None:
        self.assertTrue(CheckBoxGroup().has_many_responses)
        self.assertFalse(Select().has_many_responses)
        self.assertTrue(Select().is_selector)
        self.assertTrue(CheckBoxGroup().is_selector)
        self.assertFalse(TextField().is_selector)
        self.assertTrue(TextField().allow_validation_of("number"))
        self.assertFalse(TextArea().allow_validation_of("number"))
        self.assertTrue(CheckBox().allow_validation_of("required"))
        self.assertFalse(CheckBox().allow_validation_of("max_length"))

    def test_loaded_as_concrete_kind(self) -> None:
        select = Select.objects.create(form=self.form, label="Size", name="size")
        TextField.objects.create(form=self.form, label="Name", name="name")

        loaded = FormField.objects.get(pk=select.pk)
        self.assertIsInstance(loaded, Select)
        self.assertEqual(Select.objects.filter(form=self.form).count(), 1)
        self.assertEqual(FormField.objects.filter(form=self.form).count(), 2)

    def test_kind_cannot_change(self) -> None:
        field = TextField.objects.create(form=self.form, label="Name", name="name")
        loaded = FormField.objects.get(pk=field.pk)
        loaded.kind = "text_area"
        with self.assertRaises(ValidationError):
            loaded.save()
        self.assertEqual(FormField.objects.get(pk=field.pk).kind, "text_field")

    def test_kind_must_match_field_class(self) -> None:
        with self.assertRaises(ValidationError):
            Select(form=self.form, label="Size", kind="text_field").save()

    def test_options_string_round_trip(self) -> None:
        field = Select(form=self.form, label="Colour", name="colour")
        field.options_string = "Red, Green , Blue"
        field.save()

        field = FormField.objects.get(pk=field.pk)
        options = field.options
        self.assertEqual([option.label for option in options], ["Red", "Green", "Blue"])
        self.assertEqual([option.position for option in options], [0, 1, 2])
        self.assertTrue(all(option.value == option.label for option in options))
        self.assertEqual(field.options_string, "Red, Green, Blue")

    def test_options_string_replaces_options(self) -> None:
        field = Select(form=self.form, label="Colour", name="colour", options_string="Red, Blue")
        field.save()
        field.options_string = "Cyan,, Magenta,"
        self.assertEqual(field.options_string, "Cyan, Magenta")
        field.save()
        self.assertEqual(FormFieldOption.objects.filter(form_field=field).count(), 2)
        self.assertEqual(
            list(field.form_field_options.values_list("label", flat=True)), ["Cyan", "Magenta"]
        )
        self.assertEqual(
            list(field.form_field_options.values_list("position", flat=True)), [0, 2]
        )

    def test_options_order_by_position_then_label(self) -> None:
        field = Select.objects.create(form=self.form, label="Pick", name="pick")
        FormFieldOption.objects.create(form_field=field, label="b", value="b", position=1)
        FormFieldOption.objects.create(form_field=field, label="z", value="z", position=0)
        FormFieldOption.objects.create(form_field=field, label="a", value="a", position=1)
        self.assertEqual(field.options_string, "z, a, b")


class FieldSyncTests(TestCase):
    def test_unsaved_form_creates_every_descriptor(self) -> None:
        form = Form(name="Intake")
        form.assign_fields(
            {
                "text_field": {
                    "0": {"id": "99", "label": "First"},
                    "1": {"label": "Last"},
                },
                "select": {"0": {"label": "Colour", "options_string": "Red, Blue"}},
            }
        )
        self.assertEqual(FormField.objects.count(), 0)
        self.assertEqual([field.label for field in form.fields], ["First", "Last", "Colour"])
        self.assertEqual(len(form.fields_of_kind("text_field")), 2)

        form.save()
        self.assertEqual(FormField.objects.filter(form=form).count(), 3)
        self.assertEqual([field.label for field in form.fields], ["First", "Last", "Colour"])
        self.assertEqual(form.fields_of_kind("select")[0].options_string, "Red, Blue")
        self.assertTrue(all(key.startswith("field_") for key in form.field_keys()))

    def test_updates_creates_and_deletes(self) -> None:
        form = Form.objects.create(name="Contact")
        keep = TextField.objects.create(form=form, label="A", name="a", position=0)
        drop = TextField.objects.create(form=form, label="B", name="b", position=1)
        other = Select.objects.create(form=form, label="S", name="s", position=2)

        sync_fields(
            form,
            "text_field",
            {
                "0": {"id": str(keep.pk), "label": "A2", "required": "1", "max_length": "3"},
                "1": {"label": "C"},
            },
        )

        keep.refresh_from_db()
        self.assertEqual(keep.label, "A2")
        self.assertTrue(keep.required)
        self.assertEqual(keep.max_length, 3)
        self.assertFalse(FormField.objects.filter(pk=drop.pk).exists())
        self.assertTrue(FormField.objects.filter(pk=other.pk).exists())
        created = TextField.objects.get(form=form, label="C")
        self.assertEqual(created.position, 3)

    def test_reapplying_batch_only_updates(self) -> None:
        form = Form.objects.create(name="Repeat")
        first = TextField.objects.create(form=form, label="A", name="a")
        second = TextField.objects.create(form=form, label="B", name="b", position=1)
        batch = {
            "x": {"id": first.pk, "label": "A", "min_length": ""},
            "y": {"id": second.pk, "label": "B"},
        }

        sync_fields(form, "text_field", batch)
        sync_fields(form, "text_field", batch)

        self.assertEqual(
            set(FormField.objects.filter(form=form).values_list("pk", flat=True)),
            {first.pk, second.pk},
        )

    def test_empty_batch_clears_only_that_kind(self) -> None:
        form = Form.objects.create(name="Clear")
        TextField.objects.create(form=form, label="A", name="a")
        Select.objects.create(form=form, label="S", name="s")

        form.assign_fields({"select": {}})
        self.assertEqual([field.kind for field in form.fields], ["text_field"])

    def test_id_of_another_kind_is_not_found(self) -> None:
        form = Form.objects.create(name="Mixed")
        select = Select.objects.create(form=form, label="S", name="s")
        with self.assertRaises(FormField.DoesNotExist):
            sync_fields(form, "text_field", {"0": {"id": select.pk, "label": "T"}})
        self.assertTrue(Select.objects.filter(pk=select.pk).exists())

    def test_failed_save_keeps_form_unsaved_with_staged_fields(self) -> None:
        form = Form(name="Intake")
        form.assign_fields(
            {"text_field": {"0": {"label": "A", "max_length": "abc"}, "1": {"label": "B"}}}
        )
        with self.assertRaises(ValidationError):
            form.save()

        self.assertIsNone(form.pk)
        self.assertTrue(form._state.adding)
        self.assertEqual(Form.objects.count(), 0)
        self.assertEqual([field.label for field in form.fields], ["A", "B"])

        form.fields_of_kind("text_field")[0].max_length = 5
        form.save()
        self.assertEqual(Form.objects.count(), 1)
        self.assertEqual(
            list(FormField.objects.filter(form=form).values_list("label", flat=True)), ["A", "B"]
        )

    def test_rolled_back_save_resets_form_and_staged_fields(self) -> None:
        form = Form(name="Intake")
        form.assign_fields({"text_field": {"0": {"label": "A"}, "1": {"label": "B"}}})
        original_save = FormField.save

        def failing_save(field, *args, **kwargs):
            if field.label == "B":
                raise IntegrityError("simulated write failure")
            return original_save(field, *args, **kwargs)

        with mock.patch.object(FormField, "save", failing_save):
            with self.assertRaises(IntegrityError):
                form.save()

        self.assertIsNone(form.pk)
        self.assertEqual(Form.objects.count(), 0)
        self.assertTrue(all(field.pk is None for field in form.fields))

        form.save()
        self.assertEqual(FormField.objects.filter(form=form).count(), 2)

    def test_rejects_unknown_kind_and_attributes(self) -> None:
        form = Form.objects.create(name="Strict")
        with self.assertRaises(ValueError):
            form.assign_fields({"radio": {}})
        with self.assertRaises(ValueError):
            sync_fields(form, "text_field", {"0": {"label": "A", "colour": "red"}})
        with self.assertRaises(ValueError):
            sync_fields(form, "text_field", {"0": {"id": "abc", "label": "A"}})


class SubmissionTests(TestCase):
    def setUp(self) -> None:
        self.form = Form.objects.create(name="Signup")
        TextField.objects.create(form=self.form, label="Name", name="name", required=True, position=0)

    def add_field(self, field_class, **attrs) -> FormField:
        attrs.setdefault("position", self.form.next_position())
        return field_class.objects.create(form=self.form, **attrs)

    def test_submit_stores_values(self) -> None:
        submission = self.form.form_submissions.submit({"name": "Jane"})
        self.assertIsNotNone(submission.pk)
        self.assertEqual(submission["name"], "Jane")
        self.assertEqual(submission.errors, {})
        self.assertEqual(FormSubmission.objects.get(pk=submission.pk).data, {"name": "Jane"})

    def test_submit_saves_inside_a_transaction(self) -> None:
        with mock.patch("forms.models.transaction.atomic", wraps=transaction.atomic) as atomic:
            submission = self.form.form_submissions.submit({"name": "Jane"})
        atomic.assert_called_once_with()
        self.assertIsNotNone(submission.pk)

    def test_required_blank_value(self) -> None:
        for attributes in ({"name": ""}, {}):
            submission = self.form.form_submissions.submit(attributes)
            self.assertIsNone(submission.pk)
            self.assertEqual(submission.errors.as_dict(), {"name": ["Name cannot be blank."]})
        self.assertEqual(FormSubmission.objects.count(), 0)

    def test_number_rule(self) -> None:
        self.add_field(TextField, label="Age", name="age", number=True)
        submission = self.form.form_submissions.submit({"name": "Jane", "age": "12a"})
        self.assertEqual(submission.errors["age"], ["Age must be a number."])

        submission = self.form.form_submissions.submit({"name": "Jane", "age": "123"})
        self.assertNotIn("age", submission.errors)
        self.assertIsNotNone(submission.pk)

    def test_length_rules(self) -> None:
        self.add_field(TextField, label="Code", name="code", max_length=2)
        self.add_field(TextArea, label="Bio", name="bio", min_length=5)

        submission = self.form.form_submissions.submit({"name": "Jane", "code": "abc", "bio": "abc"})
        self.assertEqual(submission.errors["code"], ["Code must be less than 2 characters long."])
        self.assertEqual(submission.errors["bio"], ["Bio must be greater than 5 characters long."])

        submission = self.form.form_submissions.submit({"name": "Jane", "code": "ab", "bio": "abcde"})
        self.assertEqual(submission.errors, {})

    def test_min_length_applies_to_blank_values(self) -> None:
        self.add_field(TextArea, label="Bio", name="bio", min_length=3)
        submission = self.form.form_submissions.submit({"name": "Jane"})
        self.assertEqual(submission.errors["bio"], ["Bio must be greater than 3 characters long."])

    def test_violations_accumulate_in_rule_order(self) -> None:
        self.add_field(TextField, label="Zip", name="zip", number=True, min_length=5)
        submission = self.form.form_submissions.submit({"name": "", "zip": "ab"})
        self.assertEqual(
            submission.errors.as_dict(),
            {
                "name": ["Name cannot be blank."],
                "zip": ["Zip must be a number.", "Zip must be greater than 5 characters long."],
            },
        )

    def test_selectors_skip_length_rules(self) -> None:
        self.add_field(Select, label="Colour", name="colour", max_length=1, number=True)
        submission = self.form.form_submissions.submit({"name": "Jane", "colour": "Green"})
        self.assertEqual(submission.errors, {})

    def test_check_box_group_collects_many_responses(self) -> None:
        self.add_field(CheckBoxGroup, label="Pets", name="pets", required=True)
        submission = self.form.form_submissions.submit({"name": "Jane", "pets": []})
        self.assertEqual(submission.errors["pets"], ["Pets cannot be blank."])

        submission = self.form.form_submissions.submit({"name": "Jane", "pets": ["Cat", "Dog"]})
        submission.refresh_from_db()
        self.assertEqual(submission["pets"], ["Cat", "Dog"])

    def test_unchecked_required_check_box(self) -> None:
        self.add_field(CheckBox, label="Terms", name="terms", required=True)
        submission = self.form.form_submissions.submit({"name": "Jane", "terms": False})
        self.assertEqual(submission.errors["terms"], ["Terms cannot be blank."])

    def test_message_uses_name_without_label(self) -> None:
        field = self.add_field(TextField, label="", name="nickname", required=True)
        submission = FormSubmission(form=self.form, data={})
        field.validate_submission(submission)
        self.assertEqual(submission.errors["nickname"], ["nickname cannot be blank."])

    def test_submit_or_raise(self) -> None:
        with self.assertRaises(SubmissionInvalid) as ctx:
            self.form.form_submissions.submit_or_raise({"name": ""})
        self.assertIsInstance(ctx.exception, ValidationError)
        self.assertEqual(ctx.exception.message_dict, {"name": ["Name cannot be blank."]})
        self.assertIsNone(ctx.exception.submission.pk)

        with self.assertRaises(SubmissionInvalid):
            self.form.form_submissions.submit({"name": ""}, raise_on_error=True)
        self.assertEqual(FormSubmission.objects.count(), 0)

        submission = self.form.form_submissions.submit_or_raise({"name": "Jane"})
        self.assertIsNotNone(submission.pk)

    def test_unknown_field_is_rejected(self) -> None:
        with self.assertRaises(UnknownFieldError):
            self.form.form_submissions.submit({"name": "Jane", "email": "jane@example.com"})

    def test_submit_requires_a_form(self) -> None:
        with self.assertRaises(TypeError):
            FormSubmission.objects.submit({"name": "Jane"})

    def test_submissions_newest_first_and_immutable(self) -> None:
        first = self.form.form_submissions.submit({"name": "Ada"})
        second = self.form.form_submissions.submit({"name": "Grace"})
        self.assertEqual(list(self.form.form_submissions.all()), [second, first])

        with self.assertRaises(ValueError):
            first.save()


class FormApiTests(TestCase):
    def setUp(self) -> None:
        self.client = APIClient()

    def create_form(self) -> dict:
        payload = {
            "name": "Employee Onboarding",
            "description": "Collects basic employee data.",
            "field_data": {
                "text_field": {
                    "0": {"label": "First Name", "name": "first_name", "required": True},
                },
                "select": {
                    "0": {"label": "Department", "name": "department", "options_string": "HR, IT"},
                },
            },
        }
        response = self.client.post(reverse("form-list"), payload, format="json")
        self.assertEqual(response.status_code, 201, response.data)
        return response.data

    def test_create_and_list_forms(self) -> None:
        data = self.create_form()
        self.assertEqual(data["field_keys"], ["first_name", "department"])
        self.assertEqual([field["kind"] for field in data["form_fields"]], ["text_field", "select"])
        self.assertEqual(data["form_fields"][1]["options_string"], "HR, IT")
        self.assertTrue(data["form_fields"][1]["is_selector"])

        response = self.client.get(reverse("form-list"))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.data), 1)
        self.assertEqual(FormField.objects.count(), 2)

    def test_update_reconciles_one_kind(self) -> None:
        data = self.create_form()
        text_field = data["form_fields"][0]
        payload = {
            "field_data": {
                "text_field": {"0": {"id": text_field["id"], "label": "Given Name"}},
            }
        }
        response = self.client.patch(
            reverse("form-detail", args=[data["id"]]), payload, format="json"
        )
        self.assertEqual(response.status_code, 200, response.data)
        self.assertEqual(
            [field["label"] for field in response.data["form_fields"]], ["Given Name", "Department"]
        )

    def test_unknown_kind_rejected(self) -> None:
        payload = {"name": "Bad", "field_data": {"radio": {}}}
        response = self.client.post(reverse("form-list"), payload, format="json")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(Form.objects.count(), 0)

    def test_active_filter(self) -> None:
        Form.objects.create(name="Open")
        Form.objects.create(name="Closed", is_active=False)
        response = self.client.get(reverse("form-list"), {"active": "true"})
        self.assertEqual([form["name"] for form in response.data], ["Open"])

    def test_submit_and_list_submissions(self) -> None:
        data = self.create_form()
        url = reverse("form-submit", args=[data["id"]])

        response = self.client.post(url, {"first_name": "Ada", "department": "IT"}, format="json")
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["data"], {"first_name": "Ada", "department": "IT"})

        response = self.client.post(url, {"first_name": ""}, format="json")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data, {"first_name": ["First Name cannot be blank."]})

        response = self.client.post(url, {"nickname": "Ada"}, format="json")
        self.assertEqual(response.status_code, 400)

        response = self.client.get(reverse("form-submissions", args=[data["id"]]))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.data), 1)

    def test_health(self) -> None:
        response = self.client.get(reverse("form-health"))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["status"], "ok")

    def test_asgi_application(self) -> None:
        from form_service.asgi import application

        self.assertTrue(callable(application))
