import pytest

from demokit.weather.parser import (
    CommandParseError,
    SubscribeArgs,
    parse_frequency,
    parse_go_duration,
    parse_subscribe_command,
)


def test_duration_second_in_nanoseconds():
    assert parse_go_duration("1s") == 1_000_000_000


def test_duration_equivalent_spellings():
    assert parse_go_duration("1h30m") == parse_go_duration("90m") == parse_go_duration("5400s")
    assert parse_go_duration("1.5h") == parse_go_duration("90m")
    assert parse_go_duration("500ms") == parse_go_duration("0.5s")
    assert parse_go_duration("1000us") == parse_go_duration("1ms") == parse_go_duration("1µs") * 1000


def test_duration_sign_and_zero():
    assert parse_go_duration("0") == 0
    assert parse_go_duration("-2m") == -parse_go_duration("2m")
    assert parse_go_duration("+2m") == parse_go_duration("2m")


@pytest.mark.parametrize("text", ["", "1", "abc", "1x", ".s", "-", "1h2"])
def test_duration_invalid(text):
    with pytest.raises(ValueError):
        parse_go_duration(text)


def test_duration_overflow():
    with pytest.raises(ValueError):
        parse_go_duration("9999999999h")


def test_frequency_plain_milliseconds():
    assert parse_frequency("60000") == 60000


def test_frequency_duration_matches_milliseconds():
    assert parse_frequency("1m") == parse_frequency("60000")
    assert parse_frequency("30s") == parse_frequency("30000")


def test_frequency_invalid_message():
    with pytest.raises(CommandParseError, match=r"^invalid frequency: soon\."):
        parse_frequency("soon")


def test_subscribe_simple_syntax():
    args = parse_subscribe_command(["/weather", "subscribe", "Tokyo", "1h"])
    assert args == SubscribeArgs(
        location="Tokyo", frequency_str="1h", update_frequency=parse_frequency("1h")
    )


def test_subscribe_flag_syntax_multiword_location():
    fields = "/weather subscribe --location New York --frequency 30m".split()
    args = parse_subscribe_command(fields)
    assert args.location == "New York"
    assert args.frequency_str == "30m"
    assert args.update_frequency == parse_frequency("30m")


def test_subscribe_flag_syntax_keeps_quotes():
    fields = '/weather subscribe --location "New York" --frequency 1h'.split()
    assert parse_subscribe_command(fields).location == '"New York"'


def test_subscribe_flag_order_does_not_matter():
    fields = "/weather subscribe --frequency 1h --location Paris".split()
    args = parse_subscribe_command(fields)
    assert (args.location, args.frequency_str) == ("Paris", "1h")


def test_subscribe_insufficient_arguments():
    with pytest.raises(CommandParseError, match="insufficient arguments"):
        parse_subscribe_command(["/weather", "subscribe", "Tokyo"])


def test_subscribe_missing_location():
    with pytest.raises(CommandParseError, match="missing required parameters"):
        parse_subscribe_command(["/weather", "subscribe", "--frequency", "1h"])


def test_subscribe_frequency_too_small():
    with pytest.raises(CommandParseError, match="at least 30000 milliseconds"):
        parse_subscribe_command(["/weather", "subscribe", "Tokyo", "10s"])


def test_subscribe_minimum_frequency_accepted():
    args = parse_subscribe_command(["/weather", "subscribe", "Tokyo", "30000"])
    assert args.update_frequency == 30000