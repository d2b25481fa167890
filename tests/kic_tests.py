import sys
import json
import textwrap
from datetime import date
from pathlib import Path
src_dp = Path(__file__).resolve().parent.parent / "src"
if str(src_dp) not in sys.path:
    sys.path.insert(0, str(src_dp))

import pytest

import kic
from kic import ItemRecord


EXPANDED_ITEMS = textwrap.dedent("""
    local x = { ignored = true }
    ['outside'] = { label = 'Outside' },
    QBShared = QBShared or {}
    QBShared.Items = {
        -- Food
        ['water'] = {
            name = 'water',
            label = 'Water Bottle',
            weight = 500,
            type = 'item',
            image = 'water_bottle.png',
            unique = false,
            useable = true,
            shouldClose = true,
            description = 'For all the thirsty out there',
        },
        ['sandwich'] = {['name'] = 'sandwich', ['label'] = 'Sandwich', ['weight'] = 200, ['type'] = 'item', ['image'] = 'sandwich.png', ['unique'] = false, ['useable'] = true, ['description'] = 'Nice bread for your stomach'},
        ['radio'] = {
            label = "Radio",
            weight = 2000,
            unique = true,
            client = {
                image = 'radio_client.png',
            },
        },
    }
    ['after'] = { label = 'After' },
""")

COMPACT_ITEMS = textwrap.dedent("""
    add_item('water', 'Water Bottle', 10, 'food', 'water.png', false, true, 'Stay hydrated')
    add_item('broken', 'Broken', 'heavy', 'item', 'b.png', false, true, 'never matched')
    add_item('phone', '', 5, 'item', '', true, false, '')
""")

WATER = ItemRecord("water", "Water", 10, "food", "water.png", False, True, "Stay hydrated")
KNIFE = ItemRecord("knife", "Knife", 0, "weapon", "knife.png", True, True, "Knife")


@pytest.fixture
def app():
    return kic.App()


@pytest.fixture
def single(app):
    return app.converter.single


# === Fields ===

def test_extract_string_matches_bare_and_bracketed_keys():
    fields = kic._Fields()
    assert fields.extract_string("label = 'Water'", ["label"], "x") == "Water"
    assert fields.extract_string('["label"] = "Water"', ["label", '["label"]'], "x") == "Water"
    assert fields.extract_string("['label'] = 'Water'", ["label", "['label']"], "x") == "Water"
    assert fields.extract_string("LABEL = 'Water'", "label", "x") == "Water"
    assert fields.extract_string("name = 'water'", ["label"], "fallback") == "fallback"


def test_extract_string_ignores_longer_identifiers():
    fields = kic._Fields()
    text = "ammotype = 'AMMO_PISTOL', type = 'weapon'"
    assert fields.extract_string(text, ["type"], "item") == "weapon"


def test_extract_number_and_boolean_fall_back():
    fields = kic._Fields()
    assert fields.extract_number("weight = 250", "weight", 0) == 250
    assert fields.extract_number("weight = heavy", "weight", 7) == 7
    assert fields.extract_number("weight = -5", "weight", 0) == 0
    assert fields.extract_boolean("unique = TRUE", "unique", False) is True
    assert fields.extract_boolean("unique = nil", "unique", True) is True
    assert fields.extract_boolean("useable = false", ["useable"], True) is False


def test_collect_defaults_for_key_only_block():
    record = kic._Fields().collect("bandage", "['bandage'] = {},")
    assert record == ItemRecord(
        key="bandage",
        label="bandage",
        weight=0,
        type="item",
        image="bandage.png",
        unique=False,
        useable=True,
        description="bandage",
    )


def test_collect_description_defaults_to_label():
    record = kic._Fields().collect("id", "label = 'ID Card'")
    assert record.description == "ID Card"


def test_collect_rejects_blank_key():
    with pytest.raises(ValueError):
        kic._Fields().collect("   ", "label = 'Ghost'")


# === Scanner ===

def test_scanner_recovers_table_records_in_order(single):
    records = single.parse_and_convert(EXPANDED_ITEMS, "json").records
    assert [r.key for r in records] == ["water", "sandwich", "radio"]
    assert records[0] == ItemRecord(
        "water", "Water Bottle", 500, "item", "water_bottle.png", False, True,
        "For all the thirsty out there",
    )
    assert records[1] == ItemRecord(
        "sandwich", "Sandwich", 200, "item", "sandwich.png", False, True,
        "Nice bread for your stomach",
    )
    assert records[2].label == "Radio"
    assert records[2].weight == 2000
    assert records[2].unique is True
    assert records[2].useable is True
    assert records[2].description == "Radio"


def test_scanner_iter_spans_is_lazy():
    scanner = kic._Scanner(kic._Fields())
    spans = scanner.iter_spans(EXPANDED_ITEMS.split("\n"), "QBShared.Items")
    key, span, nth = next(spans)
    assert key == "water"
    assert span.startswith("['water'] = {")
    assert "description = 'For all the thirsty out there'," in span
    assert nth == 7


def test_scanner_keeps_duplicate_keys(single):
    text = "QBShared.Items = {\n['a'] = { label = 'One' },\n['a'] = { label = 'Two' },\n}"
    records = single.parse_and_convert(text, "pipe").records
    assert [(r.key, r.label) for r in records] == [("a", "One"), ("a", "Two")]


def test_scanner_absorbs_nested_keyed_blocks(single):
    text = textwrap.dedent("""
        QBShared.Items = {
            ['kit'] = {
                label = 'Kit',
                ['inner'] = {
                    label = 'Inner',
                },
            },
            ['next'] = { label = 'Next' },
        }
    """)
    records = single.parse_and_convert(text, "pipe").records
    assert [(r.key, r.label) for r in records] == [("kit", "Kit"), ("next", "Next")]


def test_scanner_skips_blank_keys_with_warning(single, capsys):
    text = "QBShared.Items = {\n['   '] = { label = 'Ghost' },\n['lockpick'] = {},\n}"
    records = single.parse_and_convert(text, "pipe").records
    assert [r.key for r in records] == ["lockpick"]
    assert "**SKIPPED ITEM**" in capsys.readouterr().out


def test_scanner_drops_unterminated_record(single, capsys):
    text = "QBShared.Items = {\n['open'] = {\nlabel = 'Open',\n"
    conversion = single.parse_and_convert(text, "ox")
    assert conversion.records == ()
    assert conversion.text == "-- No items found in the provided content"
    assert "'open' is never closed" in capsys.readouterr().out


def test_original_output_reads_back(single):
    records = (WATER, KNIFE)
    text = kic._Emitters.original(records)
    assert single.detect_encoding(text) == "expanded"
    assert single.parse_and_convert(text, "json").records == records


# === Compact ===

def test_compact_recovers_calls_and_defaults(single):
    records = single.parse_and_convert(COMPACT_ITEMS, "json").records
    assert [r.key for r in records] == ["water", "phone"]
    assert records[1] == ItemRecord("phone", "phone", 5, "item", "phone.png", True, False, "phone")


def test_compact_takes_precedence_over_table(single):
    text = EXPANDED_ITEMS + "\nadd_item('knife', 'Knife', 0, 'weapon', 'knife.png', true, true, 'Knife')\n"
    assert single.detect_encoding(text) == "compact"
    assert single.parse_and_convert(text, "json").records == (KNIFE,)


def test_optimized_output_round_trips(single):
    records = (WATER, KNIFE, WATER)
    text = kic._Emitters.optimized(records)
    assert single.parse_and_convert(text, "pipe").records == records


# === Emitters ===

def test_pipe_output(single):
    text = "add_item('water', 'Water Bottle', 10, 'food', 'water.png', false, true, 'Stay hydrated')"
    assert single.parse_and_convert(text, "pipe").text == (
        "water|Water Bottle|10|food|water.png|false|true|Stay hydrated"
    )


def test_json_output_parses_back():
    records = [WATER, KNIFE]
    text = kic._Emitters.json(records)
    assert text.startswith('[\n  {\n    "key": "water",')
    assert json.loads(text) == [r._asdict() for r in records]


def test_optimized_output_shape():
    text = kic._Emitters.optimized([WATER])
    assert text.startswith("-- Optimized items format - ultra compact\nQBShared = QBShared or {}\n")
    assert "local function add_item(k, l, w, t, i, u, us, d)\n  QBShared.Items[k] = {\n" in text
    assert text.endswith(
        "-- Items:\n"
        "add_item('water', 'Water', 10, 'food', 'water.png', false, true, 'Stay hydrated')\n"
    )


def test_original_output_shape():
    text = kic._Emitters.original([KNIFE])
    assert text == (
        "QBShared = QBShared or {}\n"
        "QBShared.Items = QBShared.Items or {}\n\n"
        "QBShared.Items['knife'] = {\n"
        "  name = 'knife',\n"
        "  label = 'Knife',\n"
        "  weight = 0,\n"
        "  type = 'weapon',\n"
        "  image = 'knife.png',\n"
        "  unique = true,\n"
        "  useable = true,\n"
        "  shouldClose = true,\n"
        "  description = 'Knife'\n"
        "}\n\n"
    )


def test_ox_output_shape():
    text = kic._Emitters.ox([KNIFE, WATER._replace(weight=50)])
    assert text == (
        "return {\n"
        "\t['knife'] = {\n"
        "\t\tlabel = 'Knife',\n"
        "\t\tconsume = 0.3,\n"
        "\t\tstack = false,\n"
        "\t\tclient = {\n"
        "\t\t\timage = 'knife.png',\n"
        "\t\t\tusetime = 2500,\n"
        "\t\t\tnotification = 'You used Knife',\n"
        "\t\t},\n"
        "\t\tserver = {\n"
        "\t\t\texport = 'your_resource.knife'\n"
        "\t\t},\n"
        "\t},\n"
        "\t['water'] = {\n"
        "\t\tlabel = 'Water',\n"
        "\t\tweight = 50,\n"
        "\t\tconsume = 0.3,\n"
        "\t\tstack = true,\n"
        "\t\tclient = {\n"
        "\t\t\timage = 'water.png',\n"
        "\t\t\tusetime = 2500,\n"
        "\t\t\tnotification = 'You used Water',\n"
        "\t\t},\n"
        "\t\tserver = {\n"
        "\t\t\texport = 'your_resource.water'\n"
        "\t\t},\n"
        "\t\t-- Stay hydrated\n"
        "\t}\n"
        "}\n"
    )


# === Orchestration ===

@pytest.mark.parametrize("output_format", ["optimized", "original", "pipe", "json", "ox", "yaml"])
def test_no_records_yields_placeholder(single, output_format):
    conversion = single.parse_and_convert("print('hello')", output_format)
    assert conversion.records == ()
    assert conversion.text == "-- No items found in the provided content"


def test_unknown_format_falls_back_to_optimized(single, capsys):
    conversion = single.parse_and_convert(COMPACT_ITEMS, "yaml")
    assert conversion.text == kic._Emitters.optimized(conversion.records)
    assert "Falling back to the default format (optimized)" in capsys.readouterr().out


def test_load_text_and_convert_are_chainable(single):
    assert single.load_text(COMPACT_ITEMS).convert("pipe").text.startswith("water|")


# === Settings ===

def test_default_settings_round_trip(app, tmp_path):
    settings_fp = app.settings.write_default_settings(tmp_path)
    assert settings_fp == tmp_path / "kic.settings"
    assert app.settings.load_settings(settings_fp) == {
        "table": "QBShared.Items",
        "format": "optimized",
        "resource": "your_resource",
    }


def test_settings_drive_conversion(app, tmp_path):
    settings_fp = tmp_path / "custom.settings"
    settings_fp.write_text(
        '### custom table ###\n'
        'converter.table("Config.Items").format("ox")  # ox by default\n'
        'ox.resource("my_items")\n',
        encoding="utf-8",
    )
    app.settings.load_settings(settings_fp)
    conversion = app.converter.single.parse_and_convert("Config.Items = {\n['a'] = { label = 'A' },\n}")
    assert [r.key for r in conversion.records] == ["a"]
    assert "\t\t\texport = 'my_items.a'\n" in conversion.text


def test_settings_reject_unknown_format(app, tmp_path, capsys):
    settings_fp = tmp_path / "bad.settings"
    settings_fp.write_text('converter.format("yaml")\n', encoding="utf-8")
    assert app.settings.load_settings(settings_fp)["format"] == "optimized"
    assert "not a recognized output format" in capsys.readouterr().out


# === Paths & batch ===

def test_file_names(app):
    tools = app.converter.tools
    assert tools.is_lua_file("items.lua", arg_skip_exist=True)
    assert not tools.is_lua_file("items.json", arg_skip_exist=True)
    assert tools.get_output_name(Path("in/items.lua"), "ox") == "items.ox.lua"
    assert tools.get_output_name(Path("in/items.lua"), "json") == "items.json.json"
    assert tools.get_output_name(Path("in/items.lua"), "pipe") == "items.pipe.txt"
    assert tools.get_download_name("ox", date(2024, 5, 1)) == "items_ox_2024-05-01.lua"


def test_batch_converts_nested_lua_files(app, tmp_path):
    input_dp = tmp_path / "input"
    output_dp = tmp_path / "output"
    (input_dp / "server").mkdir(parents=True)
    output_dp.mkdir()
    (input_dp / "server" / "items.lua").write_text(COMPACT_ITEMS, encoding="utf-8")
    (input_dp / "notes.txt").write_text("add_item('x', 'X', 1, 'item', 'x.png', false, true, 'X')")
    written = app.converter.batch.convert_lua_files(input_dp, output_dp, "pipe")
    assert written == [output_dp / "server" / "items.pipe.txt"]
    assert written[0].read_text(encoding="utf-8") == (
        "water|Water Bottle|10|food|water.png|false|true|Stay hydrated\n"
        "phone|phone|5|item|phone.png|true|false|phone"
    )


def test_write_skips_unloaded_input(single, tmp_path):
    output_fp = tmp_path / "out.lua"
    single.load_lua(tmp_path / "missing.lua").write(output_fp)
    assert not output_fp.exists()


# === Builder ===

def test_builder_suggests_weapon_fields(app):
    fields = app.builder.suggest_fields("combat pistol")
    assert fields.key == "combat_pistol"
    assert fields.label == "Combat pistol"
    assert fields.type == "weapon"
    assert (fields.unique, fields.useable, fields.combinable) == (True, True, False)
    assert fields.image == "combat_pistol.png"
    assert fields.weight == 100


def test_builder_type_hints(app):
    assert app.builder.to_key("Bob's Burger!") == ("bob_s_burger_", "Bob's Burger!")
    food = app.builder.suggest_fields("Bob's Burger!")
    assert (food.type, food.unique, food.useable, food.combinable) == ("food", False, True, True)
    ammo = app.builder.suggest_fields("9mm bullet box", 5)
    assert (ammo.type, ammo.useable, ammo.combinable, ammo.weight) == ("ammo", False, True, 5)
    assert app.builder.suggest_fields("lockpick").type == "item"


def test_builder_qb_block(app):
    fields = app.builder.suggest_fields("combat pistol")
    assert app.builder.build_item(fields) == (
        "['combat_pistol'] = { \n"
        "  name = 'combat_pistol', \n"
        "  label = 'Combat pistol', \n"
        "  weight = 100, \n"
        "  type = 'weapon', \n"
        "  image = 'combat_pistol.png', \n"
        "  unique = true, \n"
        "  useable = true, \n"
        "  combinable = nil,\n"
        "  shouldClose = true, \n"
        "  description = 'Combat pistol' \n"
        "}"
    )


def test_builder_optimized_and_ox(app):
    fields = app.builder.suggest_fields("water")
    fields.description = "Don't panic"
    fields.weight = "heavy"
    assert app.builder.build_item(fields, "optimized") == (
        "add_item('water', 'Water', 0, 'drink', 'water.png', false, true, 'Don\\'t panic')"
    )
    assert app.builder.build_item(WATER, "ox") == (
        "['water'] = {\n"
        "  label = 'Water',\n"
        "  weight = 10,\n"
        "  stack = true,\n"
        "  close = true,\n"
        "  description = 'Stay hydrated'\n"
        "}"
    )


def test_builder_unknown_format_falls_back(app, capsys):
    fields = app.builder.suggest_fields("water")
    assert app.builder.build_item(fields, "xml") == app.builder.build_item(fields, "qb_block")
    assert "not a recognized builder format" in capsys.readouterr().out
