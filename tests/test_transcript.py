from __future__ import annotations

import pytest

from dubbing_agent.errors import ParseError
from dubbing_agent.transcript import (
    format_timestamp,
    load_transcript,
    match_timing,
    parse_cues,
    parse_transcript,
    parse_tsv,
    render_cues,
    repair_cue_text,
    write_cues,
)
from dubbing_agent.types import Segment, TranslatedSegment


def test_comma_and_dot_separators_parse_identically():
    comma = "WEBVTT\n\n1\n00:01:02,345 --> 00:01:05,000\nHello there\n"
    dot = "WEBVTT\n\n1\n00:01:02.345 --> 00:01:05.000\nHello there\n"

    assert parse_cues(comma) == parse_cues(dot) == [Segment(62345, 65000, "Hello there")]


def test_srt_style_input_without_header():
    text = "1\n00:00:01,000 --> 00:00:02,500\nFirst line\nsecond line\n\n2\n00:00:03,000 --> 00:00:04,000\nNext\n"

    segments = parse_transcript(text)

    assert segments == [Segment(1000, 2500, "First line second line"), Segment(3000, 4000, "Next")]


def test_minutes_seconds_dialect():
    assert match_timing("01:02.345 --> 01:05.000") == (62345, 65000)


def test_short_fraction_is_decimal():
    assert match_timing("00:00:01.5 --> 00:00:02.25") == (1500, 2250)
    assert match_timing("00:00:01:5 => 00:00:02:05") == (1500, 2050)


def test_cue_settings_and_notes_are_ignored():
    text = (
        "WEBVTT\n\nNOTE produced by a tool\nwith two lines\n\n"
        "00:00:00.000 --> 00:00:01.000 align:start position:10%\nHi\n"
    )

    assert parse_cues(text) == [Segment(0, 1000, "Hi")]


def test_numeric_text_inside_cue_is_kept():
    text = "WEBVTT\n\n1\n00:00:00.000 --> 00:00:01.000\n42\n"

    assert parse_cues(text)[0].text == "42"


def test_repair_pass_recovers_missing_fractions():
    text = "00:00:01 --> 00:00:02\nHello\n\n0:0:3.5 -> 0:0:4.25\nWorld\n"

    segments = parse_cues(text)

    assert segments == [Segment(1000, 2000, "Hello"), Segment(3500, 4250, "World")]


def test_repair_strips_control_characters_and_adds_header():
    repaired = repair_cue_text("00:00:01,5 --> 00:00:02,0\x07\nHi\x00\n")

    assert repaired.startswith("WEBVTT\n")
    assert "00:00:01.500 --> 00:00:02.000" in repaired
    assert "\x07" not in repaired and "\x00" not in repaired


def test_unparsable_cue_file_raises():
    with pytest.raises(ParseError):
        parse_cues("WEBVTT\n\nnothing to see here\n")


def test_invalid_cue_range_raises():
    with pytest.raises(ParseError):
        parse_cues("WEBVTT\n\n00:00:02.000 --> 00:00:01.000\nBackwards\n")


def test_tsv_skips_header_bad_rows_and_empty_text():
    text = "start\tend\ttext\n0\t1500\tHello\nabc\t2000\tBroken\n1500\t3000\t   \n3000\t4200\tWorld\tagain\n"

    segments = parse_tsv(text)

    assert segments == [Segment(0, 1500, "Hello"), Segment(3000, 4200, "World again")]


def test_tsv_text_matches_its_checkpointed_form(tmp_path):
    segments = parse_tsv("0\t1000\t  Hello   there \t friend \n")

    reloaded = parse_cues(write_cues(segments, tmp_path / "out.vtt").read_text(encoding="utf-8"))

    assert segments == [Segment(0, 1000, "Hello there friend")]
    assert reloaded == segments


def test_tsv_without_header_keeps_first_row():
    assert parse_tsv("0\t1000\tOne\n1000\t2000\tTwo\n")[0] == Segment(0, 1000, "One")


def test_tsv_invalid_range_raises():
    with pytest.raises(ParseError):
        parse_tsv("start\tend\ttext\n2000\t1000\tBackwards\n")


def test_format_timestamp():
    assert format_timestamp(0) == "00:00:00.000"
    assert format_timestamp(3_723_004) == "01:02:03.004"


def test_render_and_parse_round_trip(tmp_path):
    segments = [Segment(0, 1234, "One"), Segment(1500, 62_001, "Two  words"), Segment(3_600_000, 3_600_999, "Three")]
    path = write_cues(segments, tmp_path / "out.vtt")

    parsed = load_transcript(path)

    assert [(s.start_ms, s.end_ms) for s in parsed] == [(s.start_ms, s.end_ms) for s in segments]
    assert parsed[1].text == "Two words"
    assert not (tmp_path / "out.vtt.tmp").exists()


def test_render_uses_translated_text():
    cue = TranslatedSegment.from_segment(Segment(0, 1000, "Hello"), "Olá")

    assert render_cues([cue]) == "WEBVTT\n\n1\n00:00:00.000 --> 00:00:01.000\nOlá\n"


def test_load_transcript_picks_tsv_by_suffix(tmp_path):
    path = tmp_path / "talk.tsv"
    path.write_text("start\tend\ttext\n0\t900\tHi\n", encoding="utf-8")

    assert load_transcript(path) == [Segment(0, 900, "Hi")]


def test_load_missing_transcript_raises(tmp_path):
    with pytest.raises(ParseError):
        load_transcript(tmp_path / "missing.vtt")
