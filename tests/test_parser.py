import pytest

from humrt.parser import DoesField, HumParseError, ThingDef, ThingType, parse_hum


def test_parse_valid_thing_with_at_and_like():
    piece = parse_hum('space-crackle:\n  at: "0s"\n  like: warm pad')
    thing = piece["space-crackle"]
    assert thing.at == "0s"
    assert thing.like == "warm pad"


def test_reject_unknown_field():
    with pytest.raises(HumParseError) as info:
        parse_hum("space-crackle:\n  unknown_field: val")
    assert "unknown field" in str(info.value).lower()


def test_does_single_string():
    piece = parse_hum("bass:\n  does: builds from silence")
    does = piece["bass"].does
    assert not does.is_multi
    assert does.value == "builds from silence"


def test_does_multi_list():
    piece = parse_hum("bass:\n  does:\n    - builds from silence\n    - fades out")
    does = piece["bass"].does
    assert does.is_multi
    assert does.as_vec() == ["builds from silence", "fades out"]


def test_ref_keyword_rename():
    piece = parse_hum("bass:\n  ref: some-ref")
    assert piece["bass"].reference == "some-ref"


def test_where_keyword_rename():
    piece = parse_hum("bass:\n  where: center")
    assert piece["bass"].location == "center"


def test_all_fields_present():
    text = """
guitar:
  at: "10s"
  until: "30s"
  does:
    - volume from low to high
    - wah starts slow
  where: left
  within: main-mix
  every: "2s"
  like: wah-wah guitar
  ref: hendrix
  mood: psychedelic
  has:
    sparkle:
      like: bright sparkle
      where: center
"""
    thing = parse_hum(text)["guitar"]
    assert thing.at == "10s"
    assert thing.until == "30s"
    assert thing.location == "left"
    assert thing.within == "main-mix"
    assert thing.every == "2s"
    assert thing.like == "wah-wah guitar"
    assert thing.reference == "hendrix"
    assert thing.mood == "psychedelic"
    assert len(thing.does.as_vec()) == 2
    sparkle = thing.has["sparkle"]
    assert sparkle.like == "bright sparkle"
    assert sparkle.location == "center"


def test_does_as_vec_helper():
    assert DoesField("test").as_vec() == ["test"]
    assert DoesField(["a", "b"]).as_vec() == ["a", "b"]


def test_empty_thing_is_valid():
    thing = parse_hum("silence:\n  {}")["silence"]
    assert thing.at is None
    assert thing.like is None


def test_style_field_parses():
    piece = parse_hum("glass:\n  style: laser\n  synth:\n    osc: sine\n")
    assert piece["glass"].style == "laser"


def test_style_field_absent_is_none():
    piece = parse_hum("glass:\n  synth:\n    osc: sine\n")
    assert piece["glass"].style is None
    assert piece["glass"].synth == {"osc": "sine"}


def test_unknown_field_still_rejected_with_style():
    with pytest.raises(HumParseError) as info:
        parse_hum("glass:\n  style: laser\n  bogus: nope\n")
    assert "unknown field" in str(info.value).lower()


def test_stage_fields():
    text = "verb:\n  type: stage\n  applies-to: [ghost, glass]\n  fx: reverb\n"
    thing = parse_hum(text)["verb"]
    assert thing.thing_type is ThingType.STAGE
    assert thing.applies_to == ["ghost", "glass"]
    assert thing.fx == "reverb"


def test_invalid_type_variant_rejected():
    with pytest.raises(HumParseError):
        parse_hum("x:\n  type: orchestra\n")


def test_order_preserved_and_pipe_kept():
    text = 'b:\n  at: "0s"\na:\n  pipe: "b |> replicate(2)"\n'
    piece = parse_hum(text)
    assert list(piece) == ["b", "a"]
    assert piece["a"].pipe == "b |> replicate(2)"


def test_non_string_field_rejected():
    with pytest.raises(HumParseError):
        parse_hum("x:\n  like: [a, b]\n")


def test_malformed_yaml_raises():
    with pytest.raises(HumParseError):
        parse_hum("x:\n  at: [unclosed\n")


def test_top_level_must_be_mapping():
    with pytest.raises(HumParseError):
        parse_hum("- a\n- b\n")


def test_from_mapping_direct():
    thing = ThingDef.from_mapping({"where": "wide", "type": "instrument"})
    assert thing.location == "wide"
    assert thing.thing_type is ThingType.INSTRUMENT