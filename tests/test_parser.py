import io
import logging

import pytest

from csvbind import BadDataError, ConfigurationError, Configuration, CsvParser, TrimOptions


def parse(text, **kwargs):
    parser = CsvParser(io.StringIO(text), Configuration(**kwargs))
    return [list(record.fields) for record in parser]


def quote_all(fields, delimiter, quote='"'):
    return delimiter.join(quote + f.replace(quote, quote * 2) + quote for f in fields)


def test_simple_records_with_and_without_trailing_newline():
    assert parse("a,b,c\r\n1,2,3\r\n") == [["a", "b", "c"], ["1", "2", "3"]]
    assert parse("a,b,c\r\n1,2,3") == [["a", "b", "c"], ["1", "2", "3"]]


def test_mixed_line_endings():
    assert parse("a\rb\nc\r\nd") == [["a"], ["b"], ["c"], ["d"]]


def test_empty_fields_are_kept():
    assert parse(",,\n") == [["", "", ""]]


def test_quoted_fields_with_delimiter_escaped_quote_and_newline():
    rows = parse('"a,b","x""y","l1\r\nl2"\n')
    assert rows == [["a,b", 'x"y', "l1\r\nl2"]]


FIELDS = ["one", 'two "q"', "three", "line\nbreak", "", "  padded  "]


@pytest.mark.parametrize("delimiter", [",", ";;", "|~|"])
@pytest.mark.parametrize("buffer_size", [1, 2, 3, 4, 7, 2048])
def test_delimiters_across_buffer_sizes(delimiter, buffer_size):
    fields = [f.replace(",", delimiter) for f in FIELDS] + ["x" + delimiter + "y"]
    text = (
        quote_all(fields, delimiter) + "\r\n"
        + delimiter.join(["a", "b", "c"]) + "\n"
        + quote_all(["last"], delimiter)
    )
    rows = parse(text, delimiter=delimiter, buffer_size=buffer_size)
    assert rows == [fields, ["a", "b", "c"], ["last"]]


@pytest.mark.parametrize("delimiter", [",", ";;", "|~|"])
@pytest.mark.parametrize("buffer_size", [1, 2, 3, 5])
def test_delimiter_straddling_buffer_boundary(delimiter, buffer_size):
    text = delimiter.join("123") + "\r\n" + delimiter.join("456") + "\r\n"
    assert parse(text, delimiter=delimiter, buffer_size=buffer_size) == [["1", "2", "3"], ["4", "5", "6"]]


def test_escaped_quote():
    assert parse('1,"two "" 2",3') == [["1", 'two " 2', "3"]]


def test_bad_data_callback_receives_raw_field():
    found = []
    rows = parse(' a"bc",d\n', bad_data_found=found.append)
    assert rows == [[' a"bc"', "d"]]
    assert [ctx.field for ctx in found] == [' a"bc"']


def test_bad_data_throw_keeps_prior_records():
    parser = CsvParser(io.StringIO('x,y\n a"bc",d\n'), Configuration(throw_on_bad_data=True))
    good = parser.read()
    assert good.fields == ("x", "y")
    with pytest.raises(BadDataError) as exc:
        parser.read()
    assert exc.value.row == 2
    assert good.fields == ("x", "y")


def test_partial_delimiter_is_field_text():
    assert parse("a|b|~|c\n", delimiter="|~|") == [["a|b", "c"]]


def test_text_after_closing_quote_is_kept_and_reported():
    found = []
    rows = parse('1,"two" ,3\n', bad_data_found=found.append)
    assert rows == [["1", "two ", "3"]]
    assert len(found) == 1
    assert found[0].field == '"two" '
    assert found[0].col == 1
    assert found[0].row == 1


def test_leading_space_before_quote_is_literal():
    rows = parse('a, "two",c\n', bad_data_found=lambda ctx: None)
    assert rows == [["a", ' "two"', "c"]]


def test_quote_after_closing_quote_is_literal():
    rows = parse('"two" "2,3\n', bad_data_found=lambda ctx: None)
    assert rows == [['two "2', "3"]]


def test_bad_data_raises_when_configured():
    with pytest.raises(BadDataError) as exc:
        parse('a,b"c\n', throw_on_bad_data=True)
    assert exc.value.row == 1
    assert exc.value.col == 1
    assert exc.value.value == 'b"c'
    assert exc.value.raw_record == 'a,b"c\n'


def test_unterminated_quote_at_eof_is_bad_data():
    found = []
    rows = parse('a,"abc', bad_data_found=found.append)
    assert rows == [["a", "abc"]]
    assert [ctx.col for ctx in found] == [1]


def test_bad_data_without_handler_logs_warning(caplog):
    with caplog.at_level(logging.WARNING, logger="csvbind.parser"):
        rows = parse('a"b\n')
    assert rows == [['a"b']]
    assert "Bad data found" in caplog.text


def test_comments_are_skipped_only_when_allowed():
    text = "#c\na,b\n#x\nc,d\n"
    assert parse(text, allow_comments=True) == [["a", "b"], ["c", "d"]]
    assert parse(text) == [["#c"], ["a", "b"], ["#x"], ["c", "d"]]


def test_custom_comment_character():
    assert parse(";note\na\n", allow_comments=True, comment=";", delimiter="|") == [["a"]]


def test_blank_lines():
    assert parse("a\n\nb\n") == [["a"], ["b"]]
    assert parse("a\n\nb\n", ignore_blank_lines=False) == [["a"], [""], ["b"]]


def test_excel_separator_line_sets_delimiter():
    config = Configuration(has_excel_separator=True)
    parser = CsvParser(io.StringIO("sep=;\na;b\n"), config)
    assert [list(r) for r in parser] == [["a", "b"]]
    assert config.delimiter == ";"


def test_excel_separator_line_absent():
    assert parse("a,b\n", has_excel_separator=True) == [["a", "b"]]


def test_column_count_change_detection():
    assert parse("a,b\n1,2\n", detect_column_count_changes=True) == [["a", "b"], ["1", "2"]]
    with pytest.raises(BadDataError) as exc:
        parse("a,b\n1\n", detect_column_count_changes=True)
    assert exc.value.row == 2


def test_raw_record_and_row_numbers():
    parser = CsvParser(io.StringIO('a,"b\r\nc"\r\nd,e'))
    first = parser.read()
    assert first.fields == ("a", "b\r\nc")
    assert first.raw == 'a,"b\r\nc"\r\n'
    assert (first.row, first.raw_row) == (1, 2)
    second = parser.read()
    assert second.raw == "d,e"
    assert (second.row, second.raw_row) == (2, 3)
    assert parser.raw_record == "d,e"
    assert parser.read() is None


def test_char_and_byte_positions():
    parser = CsvParser(io.StringIO("é,b\nc\n"), Configuration(count_bytes=True))
    record = parser.read()
    assert record.char_position == 4
    assert record.byte_position == 5
    assert parser.read().byte_position == 7


def test_byte_position_is_none_unless_counted():
    parser = CsvParser(io.StringIO("a\n"))
    assert parser.read().byte_position is None


@pytest.mark.parametrize(
    "kwargs",
    [
        {"quote": ""},
        {"quote": "ab"},
        {"delimiter": ""},
        {"delimiter": '"'},
        {"delimiter": "\n"},
        {"buffer_size": 0},
        {"quote_all_fields": True, "quote_no_fields": True},
        {"culture": "xx-XX"},
        {"escape": "ab"},
        {"escape": ","},
        {"trim_options": "both"},
    ],
)
def test_invalid_configuration_is_rejected_before_reading(kwargs):
    with pytest.raises(ConfigurationError):
        CsvParser(io.StringIO("a\n"), Configuration(**kwargs))


def test_trim_outside_quotes():
    found = []
    rows = parse(' a b ,  c\t, "d e" \n', trim_options=TrimOptions.TRIM, bad_data_found=found.append)
    assert rows == [["a b", "c", "d e"]]
    assert found == []


def test_trim_inside_quotes():
    rows = parse('" a b c ","  d  e "," a ""b"" c "\n', trim_options=TrimOptions.INSIDE_QUOTES)
    assert rows == [["a b c", "d  e", 'a "b" c']]


def test_trim_inside_quotes_leaves_unquoted_fields():
    assert parse(" a ,b\n", trim_options=TrimOptions.INSIDE_QUOTES) == [[" a ", "b"]]


def test_trim_both():
    options = TrimOptions.TRIM | TrimOptions.INSIDE_QUOTES
    assert parse(' " a b c " , " d e f " \n', trim_options=options) == [["a b c", "d e f"]]


def test_trim_keeps_tab_delimiter():
    assert parse("a \t b\t\n", delimiter="\t", trim_options=TrimOptions.TRIM) == [["a", "b", ""]]


def test_text_after_closing_quote_is_still_bad_when_trimming():
    found = []
    rows = parse('"a" b,c\n', trim_options=TrimOptions.TRIM, bad_data_found=found.append)
    assert rows == [["a b", "c"]]
    assert [ctx.col for ctx in found] == [0]


def test_escape_character():
    assert parse('"|"a|"",b\n', escape="|") == [['"a"', "b"]]
    assert parse('"a||b","a|b",c|d\n', escape="|") == [["a|b", "a|b", "c|d"]]


@pytest.mark.parametrize(
    "text, options",
    [
        (' "|"a|"" \r\n', TrimOptions.TRIM),
        ('" |"a|" "\r\n', TrimOptions.INSIDE_QUOTES),
        (' " |"a|" " \r\n', TrimOptions.TRIM | TrimOptions.INSIDE_QUOTES),
    ],
)
def test_escape_character_with_trimming(text, options):
    assert parse(text, escape="|", trim_options=options) == [['"a"']]


def test_doubled_quote_closes_field_when_escape_differs():
    found = []
    rows = parse('"a""b"\n', escape="\\", bad_data_found=found.append)
    assert rows == [['a"b"']]
    assert len(found) == 1


@pytest.mark.parametrize("buffer_size", [1, 2, 3])
def test_escape_across_buffer_boundary(buffer_size):
    assert parse('"x\\"y",z\n', escape="\\", buffer_size=buffer_size) == [['x"y', "z"]]
