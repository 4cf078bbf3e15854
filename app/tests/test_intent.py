import json

from app.server.intent import clean_payload, parse


def test_fenced_json_without_actions():
    parsed = parse('```json\n{"response":"hi"}\n```')
    assert parsed.reply_text == "hi"
    assert parsed.action is None


def test_prose_around_json_is_ignored():
    parsed = parse('Here you go: {"response":"ok","actions":{"category":"pizzas"}} Enjoy!')
    assert parsed.reply_text == "ok"
    assert parsed.action.category == "pizzas"


def test_unbalanced_braces_fall_back_to_raw_text():
    raw = '{"response": "oops'
    parsed = parse(raw)
    assert parsed.reply_text == raw
    assert parsed.action is None


def test_bare_json_prefix():
    parsed = parse('json {"response": "Voici les pâtes", "actions": {"category": "pates", "filters": {}}}')
    assert parsed.reply_text == "Voici les pâtes"
    assert parsed.action.category == "pates"
    assert parsed.action.filters is not None
    assert parsed.action.filters.present() == {}


def test_nested_objects_survive_brace_span():
    raw = json.dumps({
        "response": "Parfait",
        "actions": {"filters": {"vegetarian": True}, "customFilters": {"withMeat": False}},
    })
    parsed = parse("Réponse : " + raw + " -- fin")
    assert parsed.action.filters.present() == {"vegetarian": True}
    assert parsed.action.custom_filters.with_meat is False


def test_unset_filter_keys_stay_unset():
    parsed = parse('{"response": "ok", "actions": {"filters": {"popular": true, "noCheese": false}}}')
    assert parsed.action.filters.present() == {"popular": True, "no_cheese": False}


def test_missing_response_field_is_text_only():
    raw = '{"actions": {"category": "pizzas"}}'
    parsed = parse(raw)
    assert parsed.reply_text == raw
    assert parsed.action is None


def test_non_string_response_is_text_only():
    raw = '{"response": 42}'
    assert parse(raw).reply_text == raw


def test_plain_text_reply():
    raw = "Bonjour ! Que puis-je vous servir ?"
    parsed = parse(raw)
    assert parsed.reply_text == raw
    assert parsed.action is None


def test_malformed_actions_keep_reply():
    parsed = parse('{"response": "ok", "actions": ["pizzas"]}')
    assert parsed.reply_text == "ok"
    assert parsed.action is None

    parsed = parse('{"response": "ok", "actions": {"recommendedItems": "beaucoup"}}')
    assert parsed.reply_text == "ok"
    assert parsed.action is None


def test_reasoning_only_is_not_an_action():
    parsed = parse('{"response": "ok", "actions": {"reasoning": "rien à changer"}}')
    assert parsed.action is None


def test_recommended_and_shown_items():
    parsed = parse('{"response": "ok", "actions": {"recommendedItems": [10, 22], "showItems": [10]}}')
    assert parsed.action.recommended_items == [10, 22]
    assert parsed.action.show_items == [10]


def test_clean_payload_strips_fences_and_prefix():
    assert clean_payload('```\n{"a": 1}\n```') == '{"a": 1}'
    assert clean_payload('"json {"a": {"b": 2}}') == '{"a": {"b": 2}}'
    assert clean_payload("  pas de json  ") == "pas de json"


def test_blank_category_means_no_category_change():
    parsed = parse('{"response": "Voici", "actions": {"category": "", "filters": {"vegetarian": true}}}')
    assert parsed.action.category is None
    assert parsed.action.filters.present() == {"vegetarian": True}

    parsed = parse('{"response": "Voici", "actions": {"category": "   "}}')
    assert parsed.action is None
