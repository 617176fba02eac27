from papergen.utils.json_extract import (
    coerce_float,
    coerce_int,
    first_success,
    iter_balanced_objects,
    parse_first_object,
    parse_loose,
    parse_strict,
    strip_code_fences,
)


def test_strip_code_fences():
    assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'


def test_strict_accepts_only_a_whole_object():
    assert parse_strict('{"a": 1}').value == {"a": 1}
    assert not parse_strict('Here you go: {"a": 1}').ok
    assert not parse_strict("[1, 2]").ok
    assert not parse_strict("").ok


def test_balanced_spans_ignore_braces_in_strings():
    text = 'x {"a": "}{"} y {"b": {"c": 2}}'
    spans = list(iter_balanced_objects(text))
    assert [text[s:e] for s, e in spans] == ['{"a": "}{"}', '{"b": {"c": 2}}']


def test_first_object_takes_the_first_span():
    assert parse_first_object('noise {"a": 1} more {"b": 2}').value == {"a": 1}


def test_loose_recovers_from_surrounding_prose():
    result = parse_loose('Sure! {"sections": [{"name": "A"}]} Let me know.')
    assert result.ok
    assert result.value == {"sections": [{"name": "A"}]}


def test_loose_falls_back_to_largest_balanced_object():
    text = '{"small": 1} trailing } brace {"bigger": {"x": [1, 2, 3]}}'
    assert parse_loose(text).value == {"bigger": {"x": [1, 2, 3]}}


def test_first_success_returns_last_error_when_all_fail():
    result = first_success("no json", parse_strict, parse_loose)
    assert not result.ok
    assert result.parser == "loose"


def test_first_success_stops_at_first_ok():
    result = first_success('{"a": 1}', parse_strict, parse_loose)
    assert result.parser == "strict"


def test_coercion():
    assert coerce_int("30%") == 30
    assert coerce_int("12.7") == 12
    assert coerce_int(None, default=5) == 5
    assert coerce_int(True) == 0
    assert coerce_float("2.5 marks") == 2.5
    assert coerce_float("n/a") is None
