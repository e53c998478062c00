"""Tests for template variable substitution."""

from datetime import datetime

import pytest

from assetgate.core.substitution import contains_hebrew, default_variables, substitute
from assetgate.services.render_context import build_render_context


# ─── Token resolution ─────────────────────────────────────────────────────────

class TestSubstitute:
    def test_simple_token(self):
        assert substitute("File: {{filename}}", {"filename": "a.pdf"}) == "File: a.pdf"

    def test_dotted_path_on_context(self):
        ctx = {"course": {"title": "Algebra"}}
        assert substitute("{{course.title}}", ctx) == "Algebra"

    def test_dotted_path_falls_back_to_user_obj(self):
        ctx = {"userObj": {"email": "dana@example.com"}}
        assert substitute("for {{user.email}}", ctx) == "for dana@example.com"

    def test_user_obj_wins_over_user_string(self):
        ctx = {"user": "other@example.com", "userObj": {"email": "dana@example.com"}}
        assert substitute("{{user.email}}", ctx) == "dana@example.com"

    def test_user_string_email_derives_name(self):
        ctx = {"user": "dana@example.com"}
        assert substitute("{{user.name}} <{{user.email}}>", ctx) == "dana <dana@example.com>"

    def test_dollar_syntax(self):
        assert substitute("${FRONTEND_URL}/x", {"FRONTEND_URL": "https://a.b"}) == "https://a.b/x"

    def test_whitespace_inside_braces(self):
        assert substitute("{{ filename }}", {"filename": "a.pdf"}) == "a.pdf"

    def test_numbers_and_booleans(self):
        ctx = {"page": 3, "flag": True}
        assert substitute("{{page}}/{{flag}}", ctx) == "3/true"


# ─── Non-throwing behavior ────────────────────────────────────────────────────

class TestUnresolved:
    def test_missing_token_left_verbatim(self):
        assert substitute("Hello {{nobody}}", {}) == "Hello {{nobody}}"

    def test_missing_intermediate_left_verbatim(self):
        ctx = {"course": None}
        assert substitute("{{course.title}}", ctx) == "{{course.title}}"

    def test_container_value_left_verbatim(self):
        ctx = {"course": {"title": "x"}}
        assert substitute("{{course}}", ctx) == "{{course}}"

    @pytest.mark.parametrize(
        "template,context",
        [
            ("{{", None),
            ("{{}}", {}),
            ("${", {"a": 1}),
            ("{{a.b.c.d}}", {"a": "string"}),
            ("{{__class__}}", {}),
            ("{{user.email}}", {"user": 42}),
            ("{{x}}", "not a mapping"),
        ],
    )
    def test_never_raises(self, template, context):
        result = substitute(template, context)
        assert isinstance(result, str)

    def test_non_string_template_returned_unchanged(self):
        assert substitute(None, {}) is None
        assert substitute(5, {}) == 5

    def test_no_expression_evaluation(self):
        assert substitute("{{1+1}}", {}) == "{{1+1}}"


# ─── Context helpers ──────────────────────────────────────────────────────────

class TestContext:
    def test_default_variables(self):
        now = datetime(2026, 3, 4, 5, 6, 7)
        variables = default_variables("http://localhost:3000", now)
        assert variables["year"] == "2026"
        assert variables["date"] == "04/03/2026"
        assert variables["time"] == "05:06:07"
        assert variables["FRONTEND_URL"] == "http://localhost:3000"

    def test_anonymous_context(self):
        ctx = build_render_context("a.pdf", None, "https://x", "Anonymous")
        assert ctx["user"] == "Anonymous"
        assert "userObj" not in ctx
        assert substitute("{{user.email}}", ctx) == "Anonymous"

    def test_email_override_without_user(self):
        ctx = build_render_context("a.pdf", None, "https://x", "Anonymous", user_email="t@x.io")
        assert substitute("{{user.email}} {{user.name}}", ctx) == "t@x.io t"

    def test_contains_hebrew(self):
        assert contains_hebrew("קובץ זה")
        assert not contains_hebrew("plain text")
        assert not contains_hebrew(None)
