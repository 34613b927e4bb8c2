"""Unit tests for the CSV and raw lines backends."""

import pytest

from src.ledgerio.backends.base import Backend, ParsedRow
from src.ledgerio.backends.csv_backend import CSVBackend, sanitize_csv_field
from src.ledgerio.backends.raw_backend import RawLinesBackend
from src.ledgerio.models.stream_format import FormatKind, Mode, StreamFormat
from src.ledgerio.utils.exceptions import ResourceError

IMPORT = StreamFormat(mode=Mode.IMPORT)
EXPORT = StreamFormat(mode=Mode.EXPORT, with_headers=True)


class TestContentTypes:
    """Test content type matching."""

    def test_csv_accepts_parameters_and_case(self):
        backend = CSVBackend()

        assert backend.accepts_content_type("text/csv") is True
        assert backend.accepts_content_type("Text/CSV; charset=utf-8") is True
        assert backend.accepts_content_type("text/plain") is True
        assert backend.accepts_content_type("application/pdf") is False
        assert backend.accepts_content_type(None) is False

    def test_raw_only_takes_plain_text(self):
        backend = RawLinesBackend()

        assert backend.accepts_content_type("text/plain") is True
        assert backend.accepts_content_type("text/csv") is False

    def test_directions(self):
        class ReadOnly(Backend):
            display_name = "ReadOnly"

            def parse(self, source, fmt):
                return iter(())

        assert CSVBackend().can_parse and CSVBackend().can_write
        assert ReadOnly().can_parse is True
        assert ReadOnly().can_write is False
        assert ReadOnly().supports(Mode.EXPORT) is False


class TestCSVParse:
    """Test CSVBackend.parse."""

    def test_rows_keep_physical_line_numbers(self, write_file):
        path = write_file("a.csv", "code;label\n\n512;Bank\n411;\"Cust;omers\"\n")

        with CSVBackend().parse(path, IMPORT) as stream:
            rows = list(stream)

        assert rows == [
            ParsedRow(1, ["code", "label"]),
            ParsedRow(3, ["512", "Bank"]),
            ParsedRow(4, ["411", "Cust;omers"]),
        ]

    def test_multiline_field_reports_start_line(self, write_file):
        path = write_file("a.csv", 'a;b\n1;"two\nlines"\n3;c\n')

        rows = list(CSVBackend().parse(path, IMPORT))

        assert [r.line_number for r in rows] == [1, 2, 4]
        assert rows[1].fields == ["1", "two\nlines"]

    def test_progress_fraction(self, write_file):
        path = write_file("a.csv", "a\nb\nc\nd\n")
        stream = CSVBackend().parse(path, IMPORT)

        assert stream.total == 4
        assert stream.fraction == 0
        next(stream)
        next(stream)
        assert stream.fraction == 0.5

    def test_field_separator_and_no_delimiter(self, write_file):
        fmt = StreamFormat(mode=Mode.IMPORT, field_sep="\t", string_delim=None)
        path = write_file("a.tsv", 'x\t"y"\n')

        rows = list(CSVBackend().parse(path, fmt))

        assert rows[0].fields == ["x", '"y"']

    def test_bom_is_dropped(self, write_file):
        path = write_file("a.csv", "\ufeffcode;label\n", encoding="utf-8")

        rows = list(CSVBackend().parse(path, IMPORT))

        assert rows[0].fields == ["code", "label"]

    def test_charset(self, write_file):
        path = write_file("a.csv", "401;Fournisseurs étrangers\n", encoding="latin-1")
        fmt = StreamFormat(mode=Mode.IMPORT, charset="ISO-8859-1")

        rows = list(CSVBackend().parse(path, fmt))

        assert rows[0].fields[1] == "Fournisseurs étrangers"

    def test_undecodable_source(self, write_file):
        path = write_file("a.csv", "401;Fournisseurs étrangers\n", encoding="latin-1")

        with pytest.raises(ResourceError, match="Unable to decode"):
            CSVBackend().parse(path, IMPORT)

    def test_missing_source(self, tmp_path):
        with pytest.raises(ResourceError, match="Unable to read"):
            CSVBackend().parse(tmp_path / "missing.csv", IMPORT)

    def test_unknown_charset(self, write_file):
        path = write_file("a.csv", "a\n")
        with pytest.raises(ResourceError, match="Unknown character set"):
            CSVBackend().parse(path, StreamFormat(mode=Mode.IMPORT, charset="KLINGON-8"))


class TestCSVWrite:
    """Test CSVBackend writing."""

    def test_write_with_headers(self, tmp_path):
        path = tmp_path / "out.csv"

        count = CSVBackend().write([["512", "Bank; main"], ["411", ""]], path, EXPORT, headers=["code", "label"])

        assert count == 2
        assert path.read_text() == 'code;label\n512;"Bank; main"\n411;\n'

    def test_write_without_headers(self, tmp_path):
        path = tmp_path / "out.csv"
        fmt = StreamFormat(mode=Mode.EXPORT, with_headers=False)

        CSVBackend().write([["512", "Bank"]], path, fmt, headers=["code", "label"])

        assert path.read_text() == "512;Bank\n"

    def test_dashes_replaced_for_non_unicode_charsets(self, tmp_path):
        path = tmp_path / "out.csv"
        fmt = StreamFormat(mode=Mode.EXPORT, charset="ISO-8859-1")

        CSVBackend().write([["Pay — fees – €5"]], path, fmt)

        assert path.read_bytes().decode("latin-1") == "Pay - fees - ?5\n"

    def test_dashes_kept_for_utf8(self, tmp_path):
        path = tmp_path / "out.csv"

        CSVBackend().write([["Pay — fees"]], path, StreamFormat(mode=Mode.EXPORT))

        assert path.read_text(encoding="utf-8") == "Pay — fees\n"

    def test_formula_guard(self, tmp_path):
        path = tmp_path / "out.csv"

        CSVBackend(allow_formulas=False).write([["=SUM(A1)", "-12.00", "ok"]], path, EXPORT)

        assert path.read_text() == "'=SUM(A1);'-12.00;ok\n"

    def test_formulas_allowed_by_default(self, tmp_path):
        path = tmp_path / "out.csv"

        CSVBackend().write([["-12.00"]], path, EXPORT)

        assert path.read_text() == "-12.00\n"

    def test_sanitize_csv_field(self):
        assert sanitize_csv_field("@cmd") == "'@cmd"
        assert sanitize_csv_field("plain") == "plain"

    def test_destination_is_directory(self, tmp_path):
        with pytest.raises(ResourceError, match="directory"):
            CSVBackend().open_writer(tmp_path, EXPORT)


class TestRawLines:
    """Test RawLinesBackend."""

    def test_default_format_is_opaque_and_read_only(self):
        fmt = RawLinesBackend().default_format(Mode.IMPORT)

        assert fmt.kind == FormatKind.OTHER
        assert fmt.updatable is False
        assert fmt.name == "Raw"

    def test_each_line_is_one_field(self, write_file):
        path = write_file("notes.txt", "a;b;\"c\"\n\n  second line\n")

        rows = list(RawLinesBackend().parse(path, IMPORT))

        assert rows == [ParsedRow(1, ['a;b;"c"']), ParsedRow(3, ["  second line"])]

    def test_write_joins_fields(self, tmp_path):
        path = tmp_path / "out.txt"
        backend = RawLinesBackend()

        backend.write([["a", "b"]], path, backend.default_format(Mode.EXPORT), headers=["x", "y"])

        assert path.read_text() == "a\tb\n"
