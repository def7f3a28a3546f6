from __future__ import annotations

import pytest

from sqlcmd_pg.binder import bind_parameters, placeholder_names
from sqlcmd_pg.exceptions import BindingError, MissingParameterError

PERSON_AGE = 32


class TestBindParameters:
    """Rewriting `$name` placeholders into positional markers."""

    def test_placeholders_become_ordered_markers(self):
        statement = bind_parameters(
            "SELECT * FROM person WHERE name = $name AND age = $age",
            {"age": PERSON_AGE, "name": "Brown"},
        )
        assert statement.text == "SELECT * FROM person WHERE name = $1 AND age = $2"
        assert statement.args == ("Brown", PERSON_AGE)

    def test_repeated_names_are_not_deduplicated(self):
        statement = bind_parameters("SELECT $a, $b, $a", {"a": 1, "b": 2})
        assert statement.text == "SELECT $1, $2, $3"
        assert statement.args == (1, 2, 1)

    def test_text_without_placeholders_is_unchanged(self):
        statement = bind_parameters("SELECT 1", {"unused": True})
        assert statement.text == "SELECT 1"
        assert statement.args == ()

    def test_binding_bound_text_is_a_no_op(self):
        first = bind_parameters("SELECT $x + $y", {"x": 1, "y": 2})
        second = bind_parameters(first.text, {})
        assert second.text == first.text
        assert second.args == ()

    def test_none_binds_null(self):
        statement = bind_parameters("UPDATE person SET age = $age", {"age": None})
        assert statement.text == "UPDATE person SET age = $1"
        assert statement.args == (None,)

    def test_dollar_quoting_is_left_alone(self):
        template = "SELECT $$literal$$, $body$text$body$, $value"
        statement = bind_parameters(template, {"value": 7})
        assert statement.text == "SELECT $$literal$$, $body$text$body$, $1"
        assert statement.args == (7,)

    def test_identifiers_are_letters_digits_and_underscores(self):
        statement = bind_parameters("SELECT $_a1, $B_2::int", {"_a1": "x", "B_2": 2})
        assert statement.text == "SELECT $1, $2::int"


class TestMissingParameter:
    """An unbound placeholder fails before anything is sent."""

    def test_missing_name_raises(self):
        template = "SELECT * FROM person WHERE age = $age"
        with pytest.raises(MissingParameterError) as excinfo:
            bind_parameters(template, {"name": "Smith"})

        error = excinfo.value
        assert error.name == "age"
        assert error.template == template
        assert error.parameters == {"name": "Smith"}

    def test_message_names_the_parameter_and_the_sql(self):
        with pytest.raises(MissingParameterError) as excinfo:
            bind_parameters("SELECT $missing", {})

        message = str(excinfo.value)
        assert message.startswith('Cannot execute command with incomplete parameters. "missing" is missing.')
        assert 'sql = "SELECT $missing"' in message

    def test_missing_parameter_is_a_key_error_and_a_binding_error(self):
        with pytest.raises(KeyError):
            bind_parameters("SELECT $a", {})
        with pytest.raises(BindingError):
            bind_parameters("SELECT $a", {})


def test_placeholder_names_keeps_order_and_duplicates():
    assert placeholder_names("SELECT $b, $a, $b, $1, $$x") == ["b", "a", "b"]
