import pytest
from pydantic import ValidationError

from app.parse.commands import parse_command, DEFAULT_ROAST_TARGET, DEFAULT_SCENARIO
from app.types import CommandType


def test_no_trigger_word_is_no_match():
    r = parse_command("roast bob")
    assert r.type is None
    assert not r.matched


@pytest.mark.parametrize("text", [None, "", "   "])
def test_empty_input_is_no_match(text):
    assert parse_command(text).type is None


def test_roast_with_target():
    r = parse_command("Buddi roast Bob please")
    assert r.type == CommandType.ROAST
    assert r.target == "bob"
    assert r.confidence == 0.9


def test_roast_strips_punctuation():
    assert parse_command("@buddi roast jake!").target == "jake"


def test_roast_defaults_target():
    assert parse_command("buddi roast").target == DEFAULT_ROAST_TARGET


def test_truth_or_dare():
    r = parse_command("buddi truth or dare")
    assert r.type == CommandType.TRUTH_OR_DARE
    assert r.target is None


def test_advice_with_topic():
    r = parse_command("buddi I need advice about my situationship")
    assert r.type == CommandType.ADVICE
    assert r.target == "my situationship"


def test_advice_on_topic():
    assert parse_command("buddi advice on money").target == "money"


def test_help_is_advice_without_topic():
    r = parse_command("buddi help")
    assert r.type == CommandType.ADVICE
    assert r.target is None


@pytest.mark.parametrize("text", ["buddi summarize", "buddi what did i miss", "Buddi catch me up"])
def test_summarize_variants(text):
    assert parse_command(text).type == CommandType.SUMMARIZE


def test_most_likely_to_with_scenario():
    r = parse_command("buddi who is most likely to forget their keys?")
    assert r.type == CommandType.MOST_LIKELY_TO
    assert r.target == "forget their keys"


def test_most_likely_default_scenario():
    assert parse_command("buddi most likely").target == DEFAULT_SCENARIO


def test_unknown_command_with_trigger():
    assert parse_command("hey buddi how are you").type is None


def test_no_match_result_is_immutable():
    r = parse_command("hello there")
    with pytest.raises(ValidationError):
        r.type = CommandType.ROAST
    assert parse_command("hello again").type is None
