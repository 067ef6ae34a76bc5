"""
Tests for loading and normalizing message exports (message_records.py).
"""
import pytest

from attachment_errors import FatalSetupError, ParseError
from message_records import (
    Record,
    load_messages,
    parse_messages,
    quote_numeric_ids,
    split_attachments,
)


class TestQuoteNumericIds:
    def test_unquoted_id_becomes_string(self):
        assert quote_numeric_ids('{"ID": 123}') == '{"ID": "123"}'

    def test_quoted_id_left_alone(self):
        raw = '[{"ID": "123", "Attachments": ""}]'
        assert quote_numeric_ids(raw) == raw

    def test_other_numeric_fields_untouched(self):
        raw = '{"ChannelID": 5, "ID": 7, "Count": 9}'
        assert quote_numeric_ids(raw) == '{"ChannelID": 5, "ID": "7", "Count": 9}'

    def test_float_literal_not_split(self):
        raw = '{"ID": 12.5}'
        assert quote_numeric_ids(raw) == raw

    def test_custom_field_name(self):
        assert quote_numeric_ids('{"id":42}', id_field="id") == '{"id":"42"}'


class TestSplitAttachments:
    @pytest.mark.parametrize("field", [None, "", "   ", "\n\t", ",, ,"])
    def test_empty_fields_give_no_urls(self, field):
        assert split_attachments(field) == ()

    def test_whitespace_and_commas(self):
        field = "http://x/a.jpg  http://x/b.png,http://x/c.gif ,\nhttp://x/d"
        assert split_attachments(field) == (
            "http://x/a.jpg",
            "http://x/b.png",
            "http://x/c.gif",
            "http://x/d",
        )

    def test_list_field(self):
        assert split_attachments(["http://x/a.jpg", " ", "http://x/b http://x/c"]) == (
            "http://x/a.jpg",
            "http://x/b",
            "http://x/c",
        )

    def test_unsupported_type(self):
        with pytest.raises(ParseError):
            split_attachments(42)


class TestParseMessages:
    def test_large_numeric_id_is_lossless(self):
        records = parse_messages('[{"ID": 123456789012345678, "Attachments": ""}]')
        assert records[0].identifier == "123456789012345678"

    def test_example_export(self):
        raw = '[{"ID": 100000000000000001, "Attachments": "http://x/a.jpg http://x/b.png"}]'
        assert parse_messages(raw) == [
            Record("100000000000000001", ("http://x/a.jpg", "http://x/b.png")),
        ]

    def test_missing_attachments_field(self):
        records = parse_messages('[{"ID": 1}, {"ID": 2, "Attachments": null}]')
        assert [r.attachments for r in records] == [(), ()]

    def test_order_preserved(self):
        raw = '[{"ID": 3, "Attachments": ""}, {"ID": 1, "Attachments": ""}, {"ID": 2}]'
        assert [r.identifier for r in parse_messages(raw)] == ["3", "1", "2"]

    @pytest.mark.parametrize("raw", [
        "not json",
        '{"ID": 1, "Attachments": ""}',
        "[1, 2, 3]",
        '[{"Attachments": "http://x/a"}]',
        '[{"ID": "", "Attachments": ""}]',
    ])
    def test_invalid_structure(self, raw):
        with pytest.raises(ParseError):
            parse_messages(raw)


class TestLoadMessages:
    def test_json_file(self, write_messages):
        path = write_messages('[{"ID": 987654321987654321, "Attachments": "https://cdn/x.mp4"}]')
        records = load_messages(str(path))
        assert records == [Record("987654321987654321", ("https://cdn/x.mp4",))]

    def test_json_with_bom(self, workspace):
        path = workspace / "data" / "messages.json"
        path.write_bytes(b'\xef\xbb\xbf[{"ID": 5, "Attachments": ""}]')
        assert load_messages(str(path)) == [Record("5")]

    def test_csv_file_keeps_ids_as_strings(self, workspace):
        path = workspace / "data" / "messages.csv"
        path.write_text(
            "ID,Timestamp,Contents,Attachments\n"
            "123456789012345678,2021-01-01 00:00:00,hi,https://cdn/a.png https://cdn/b.jpg\n"
            "000123,2021-01-02 00:00:00,no files,\n",
            encoding="utf-8",
        )
        records = load_messages(str(path))
        assert records == [
            Record("123456789012345678", ("https://cdn/a.png", "https://cdn/b.jpg")),
            Record("000123", ()),
        ]

    def test_csv_missing_column(self, workspace):
        path = workspace / "data" / "messages.csv"
        path.write_text("ID,Contents\n1,hello\n", encoding="utf-8")
        with pytest.raises(ParseError):
            load_messages(str(path))

    def test_format_hint_overrides_extension(self, workspace):
        path = workspace / "data" / "export.txt"
        path.write_text('[{"ID": 1, "Attachments": "http://x/a"}]', encoding="utf-8")
        assert load_messages(str(path), "json") == [Record("1", ("http://x/a",))]

    def test_unknown_extension(self, workspace):
        path = workspace / "data" / "export.txt"
        path.write_text("[]", encoding="utf-8")
        with pytest.raises(ParseError):
            load_messages(str(path))

    def test_missing_file(self, workspace):
        with pytest.raises(FatalSetupError):
            load_messages(str(workspace / "data" / "nope.json"))
