import pytest

from roots_api.errors import ReplyParseError
from roots_api.reply_parser import extract_json, parse_reply, repair_json_text, slice_json_span, strip_code_fence


def test_fenced_reply_is_unwrapped():
    raw = '```json\n{"intro": "Hi", "recipes": []}\n```'
    assert extract_json(raw) == {"intro": "Hi", "recipes": []}


def test_commentary_around_object_is_sliced_away():
    raw = 'Sure! Here is your plan: {"a": 1, "b": [1, 2]} Enjoy the trip.'
    assert extract_json(raw, "object") == {"a": 1, "b": [1, 2]}


def test_trailing_commas_and_raw_newlines_are_repaired():
    raw = '{"name": "Stew",\n "steps": ["Chop",\t"Simmer",],\n}'
    assert extract_json(raw) == {"name": "Stew", "steps": ["Chop", "Simmer"]}


def test_array_reply():
    assert extract_json("Questions: [1, 2, 3]", "array") == [1, 2, 3]


def test_text_without_brackets_raises():
    with pytest.raises(ReplyParseError) as info:
        extract_json("I cannot help with that.")
    assert info.value.status_code == 502


def test_empty_reply_raises():
    with pytest.raises(ReplyParseError):
        extract_json("   ")


def test_wrong_shape_raises():
    with pytest.raises(ReplyParseError):
        extract_json('{"a": 1}', "array")


def test_unrepairable_json_raises():
    with pytest.raises(ReplyParseError):
        extract_json('{"a": unquoted}')


def test_parse_reply_reports_failure_without_raising():
    result = parse_reply("no json here")
    assert result.ok is False
    assert result.value is None
    assert "JSON" in result.error


def test_parse_reply_success():
    result = parse_reply('{"ok": true}')
    assert result.ok is True
    assert result.value == {"ok": True}


def test_unterminated_fence():
    assert strip_code_fence('```json\n{"a": 1}') == '{"a": 1}'


def test_slice_respects_expected_shape():
    assert slice_json_span('[{"a": 1}]', "object") == '{"a": 1}'


def test_repair_drops_carriage_returns():
    assert repair_json_text('{"a":\r\n1,}') == '{"a": 1}'
