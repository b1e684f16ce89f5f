"""Tests for the text rewrite stages."""

import pytest

from fileflow.errors import ShapeMismatchError, StageInitError
from fileflow.stages.text import Envsub, Substitute, envsub, substitute
from fileflow.streaming.channel import Channel, Item, ItemKind


def make_stage(cls, **options):
    return cls(inputs=[Channel("in")], outputs=[Channel("out")], **options)


class TestSubstituteFunction:
    """Test the substitution helper."""

    def test_literal_token(self):
        """Test plain token replacement."""
        assert substitute("value is {X}", "{X}", "42") == "value is 42"

    def test_literal_replaces_every_occurrence(self):
        """Test that all occurrences are replaced."""
        assert substitute("a.b.c", ".", "-") == "a-b-c"

    def test_literal_is_not_a_pattern(self):
        """Test that regex metacharacters are literal without regexp."""
        assert substitute("1+1=2", "1+1", "two") == "two=2"

    def test_regexp_with_groups(self):
        """Test regular expression replacement with back-references."""
        assert substitute("2024-01-31", r"(\d+)-(\d+)-(\d+)", r"\3/\2/\1", regexp=True) == "31/01/2024"

    def test_no_match(self):
        """Test unchanged text."""
        assert substitute("nothing here", "{X}", "42") == "nothing here"


class TestEnvsubFunction:
    """Test environment interpolation."""

    def test_known_variable(self):
        """Test a set variable is interpolated."""
        assert envsub("host=${HOST}", {"HOST": "db"}) == "host=db"

    def test_unset_variable_left_untouched(self):
        """Test that unset placeholders survive."""
        assert envsub("x=${MISSING}", {}) == "x=${MISSING}"

    def test_empty_variable_left_untouched(self):
        """Test that empty values do not erase placeholders."""
        assert envsub("x=${EMPTY}", {"EMPTY": ""}) == "x=${EMPTY}"

    def test_multiple_placeholders(self):
        """Test several placeholders in one text."""
        env = {"A": "1", "B": "2"}
        assert envsub("${A}+${A}=${B} ${C}", env) == "1+1=2 ${C}"

    def test_bare_dollar_ignored(self):
        """Test that $NAME without braces is not a placeholder."""
        assert envsub("$HOME", {"HOME": "/root"}) == "$HOME"

    def test_process_environment_default(self, monkeypatch):
        """Test that os.environ is used by default."""
        monkeypatch.setenv("FILEFLOW_TEST_VAR", "from-env")
        assert envsub("${FILEFLOW_TEST_VAR}") == "from-env"


class TestSubstituteStage:
    """Test the Substitute stage."""

    def test_one_text_per_input(self, drive):
        """Test rewrite of every item in order."""
        stage = make_stage(Substitute, source="{X}", replace="42")

        items = drive(
            stage,
            [
                Item(ItemKind.TEXT, "value is {X}", "one"),
                Item(ItemKind.TEXT, "{X}{X}", "two"),
            ],
        )

        assert items == [
            (ItemKind.TEXT, "one", "value is 42"),
            (ItemKind.TEXT, "two", "4242"),
        ]
        assert stage.outputs[0].close_count == 1

    def test_buffer_input_is_decoded(self, drive):
        """Test that buffers are decoded with the configured encoding."""
        stage = make_stage(Substitute, source="é", replace="e", encoding="latin-1")

        items = drive(stage, [Item(ItemKind.BUFFER, "café".encode("latin-1"))])

        assert items == [(ItemKind.TEXT, None, "cafe")]

    def test_stream_input_rejected(self, drive):
        """Test that streams are a shape error."""

        async def chunks():
            yield b"x"

        stage = make_stage(Substitute, source="x", replace="y")

        with pytest.raises(ShapeMismatchError):
            drive(stage, [Item(ItemKind.STREAM, chunks())])

    def test_invalid_regexp_fails_init(self, drive):
        """Test that a bad pattern is caught during Init."""
        stage = make_stage(Substitute, source="(unclosed", replace="", regexp=True)

        with pytest.raises(StageInitError):
            drive(stage)

    def test_missing_source_fails_init(self, drive):
        """Test that the token is required."""
        stage = make_stage(Substitute, replace="y")

        with pytest.raises(StageInitError):
            drive(stage)


class TestEnvsubStage:
    """Test the Envsub stage."""

    def test_interpolates_each_item(self, drive):
        """Test rewrite with an injected environment."""
        stage = make_stage(Envsub, environ={"VAR": "value"})

        items = drive(
            stage,
            [Item(ItemKind.TEXT, "${VAR}"), Item(ItemKind.TEXT, "${OTHER}")],
        )

        assert [payload for _, _, payload in items] == ["value", "${OTHER}"]
