"""Tests for CSV export and import."""

import logging
import random

import pytest

from payout_split.colors import PALETTE
from payout_split.config import Settings
from payout_split.csv_codec import (
    deserialize,
    load_csv_file,
    parse_line,
    serialize,
    write_csv_file,
)
from payout_split.exceptions import (
    ImportFormatError,
    ImportIOError,
    MalformedInputError,
)
from payout_split.models import Group, Recipient, RecipientKind

HEADER = "Name,Type,Value,Payout ($),Percentage (%),Color,GroupID"


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def recipients():
    return [
        Recipient(
            id="1",
            name='Al "Big" Smith',
            kind=RecipientKind.FIXED_AMOUNT,
            value=200,
            payout=200,
            color="#000000",
        ),
        Recipient(id="2", name="Bo", kind=RecipientKind.SHARE, value=1, payout=200, group_id="1"),
        Recipient(id="3", name="Cy", kind=RecipientKind.PERCENTAGE, value=3, payout=600),
    ]


@pytest.fixture
def groups():
    return [
        Group(id="1", name="Band", color="#3B82F6", expanded=True),
        Group(id="2", name="Crew, Night", color="#F97316", expanded=False),
    ]


def parse(text: str, settings: Settings, **kwargs):
    return deserialize(
        text, batch_prefix="imp", settings=settings, rng=random.Random(1), **kwargs
    )


class TestSerialize:
    """Export layout."""

    def test_full_layout(self, recipients, groups):
        text = serialize(recipients, groups, 1000)

        assert text.splitlines() == [
            HEADER,
            '"Al ""Big"" Smith",$,200,200.00,20.00,#000000,',
            '"Bo",shares,1,200.00,20.00,#0D9488,1',
            '"Cy",%,3,600.00,60.00,#A21CAF,',
            '"Total",,,"1000.00","100.00",',
            '"__TOTAL_PAYOUT__",,"1000.00",,',
            "",
            "__GROUP_DATA__,ID,Name,Color,Expanded",
            '"__GROUP_DATA__","1","Band","#3B82F6",true',
            '"__GROUP_DATA__","2","Crew, Night","#F97316",false',
        ]
        assert text.endswith("\n")

    def test_no_group_section_without_groups(self, recipients):
        text = serialize(recipients, [], 1000)

        assert "__GROUP_DATA__" not in text
        assert text.splitlines()[-1] == '"__TOTAL_PAYOUT__",,"1000.00",,'

    def test_zero_total_percentage(self, recipients):
        lines = serialize(recipients, [], 0).splitlines()

        assert lines[1].split(",")[4] == "0"
        assert lines[-1] == '"__TOTAL_PAYOUT__",,"0.00",,'

    def test_fractional_values(self):
        recipient = Recipient(id="1", name="A", value=2.5, payout=1 / 3)

        row = serialize([recipient], [], 1).splitlines()[1]

        assert row.startswith('"A",shares,2.5,0.33,33.33,')

    def test_newlines_in_names_stay_on_one_line(self):
        recipient = Recipient(id="1", name="two\nlines")

        row = serialize([recipient], [], 0).splitlines()[1]

        assert row.startswith('"two lines",')


class TestDeserializeStructure:
    """Structural validation raises ImportFormatError."""

    def test_header_only(self, settings):
        with pytest.raises(ImportFormatError, match="at least one data row"):
            parse(HEADER + "\n", settings)

    def test_empty(self, settings):
        with pytest.raises(ImportFormatError):
            parse("", settings)

    def test_too_few_header_cells(self, settings):
        with pytest.raises(ImportFormatError, match="at least 3 columns"):
            parse("name,value\nA,1\n", settings)

    def test_missing_name_column(self, settings):
        with pytest.raises(ImportFormatError, match="'name' column"):
            parse("Person,Type,Value\nA,shares,1\n", settings)

    def test_oversized_content(self):
        small = Settings(max_import_bytes=40)

        with pytest.raises(ImportFormatError, match="exceeds 40 bytes"):
            parse(HEADER + "\n" + '"A",shares,1\n', small)

    def test_non_text_is_malformed(self, settings):
        with pytest.raises(MalformedInputError):
            parse(b"Name,Type,Value\nA,shares,1", settings)


class TestDeserializeRecipients:
    """Recipient row parsing, sanitization and clamping."""

    def test_basic_rows(self, settings):
        result = parse(
            "Name,Type,Value\n"
            '"Smith, John",shares,2\n'
            '"Say ""hi""",$,15.5\n',
            settings,
        )

        assert [r.name for r in result.recipients] == ["Smith, John", "Say &quot;hi&quot;"]
        assert [r.id for r in result.recipients] == ["imp-0", "imp-1"]
        assert result.recipients[1].kind == RecipientKind.FIXED_AMOUNT
        assert result.recipients[1].value == 15.5
        assert result.total_amount is None
        assert result.groups == []

    def test_names_are_escaped_not_stripped(self, settings):
        result = parse("Name,Type,Value\n<b>Al</b>,shares,1\n", settings)
        assert result.recipients[0].name == "&lt;b&gt;Al&lt;/b&gt;"

    @pytest.mark.parametrize(
        ("row", "kind", "value"),
        [
            ("A,$,2000000000", RecipientKind.FIXED_AMOUNT, 1_000_000_000),
            ("A,%,150", RecipientKind.PERCENTAGE, 100),
            ("A,shares,5000000", RecipientKind.SHARE, 1_000_000),
            ("A,shares,-3", RecipientKind.SHARE, 0),
            ("A,shares,abc", RecipientKind.SHARE, 1),
            ("A,shares,", RecipientKind.SHARE, 1),
            ("A,shares,nan", RecipientKind.SHARE, 1),
            ("A,$,1e999", RecipientKind.FIXED_AMOUNT, 1_000_000_000),
            ("A,%,Infinity", RecipientKind.PERCENTAGE, 100),
            ("A,shares,-Infinity", RecipientKind.SHARE, 0),
            ("A,shares,12abc", RecipientKind.SHARE, 12),
            ("A,shares, 2.5 units", RecipientKind.SHARE, 2.5),
            ("A,euros,7", RecipientKind.SHARE, 7),
            ("A,,7", RecipientKind.SHARE, 7),
        ],
    )
    def test_values_clamped_by_kind(self, settings, row, kind, value):
        result = parse(f"Name,Type,Value\n{row}\n", settings)

        assert result.recipients[0].kind == kind
        assert result.recipients[0].value == value

    def test_payout_column_is_ignored(self, settings):
        result = parse(HEADER + "\n" + '"A",shares,1,999.00,50.00,,\n', settings)
        assert result.recipients[0].payout == 0

    def test_colors(self, settings):
        result = parse(
            HEADER
            + "\n"
            + '"A",shares,1,0,0,#abcdef,\n'
            + f'"B",shares,1,0,0,{PALETTE[3]},\n'
            + '"C",shares,1,0,0,javascript:alert(1),\n',
            settings,
        )

        assert [r.color for r in result.recipients] == ["#abcdef", PALETTE[3], None]

    def test_case_insensitive_and_reordered_columns(self, settings):
        result = parse("VALUE,NAME,TYPE,GROUPID\n3,Al,%,\n", settings)

        recipient = result.recipients[0]
        assert (recipient.name, recipient.kind, recipient.value) == (
            "Al",
            RecipientKind.PERCENTAGE,
            3,
        )

    def test_only_name_column_required(self, settings):
        result = parse("Name,Notes,Other\nAl,x,y\n", settings)

        recipient = result.recipients[0]
        assert (recipient.kind, recipient.value, recipient.color) == (
            RecipientKind.SHARE,
            1,
            None,
        )

    def test_total_rows_skipped(self, settings):
        result = parse(
            "Name,Type,Value\nA,shares,1\n"
            '"Total",,,"10.00","100.00",\n'
            "TOTAL,shares,1\n",
            settings,
        )

        assert [r.name for r in result.recipients] == ["A"]

    def test_byte_order_mark(self, settings):
        result = parse("\ufeffName,Type,Value\nA,shares,1\n", settings)
        assert result.recipients[0].name == "A"

    def test_row_cap(self, caplog):
        small = Settings(max_import_rows=3)
        rows = "".join(f"R{i},shares,1\n" for i in range(5))

        with caplog.at_level(logging.WARNING):
            result = parse(
                "Name,Type,Value\n" + rows + '"__TOTAL_PAYOUT__",,"50.00",,\n', small
            )

        assert [r.name for r in result.recipients] == ["R0", "R1", "R2"]
        assert result.skipped_rows == 2
        assert result.total_amount == 50
        assert "2 row(s) ignored" in caplog.text


class TestDeserializeTotalsAndGroups:
    @pytest.mark.parametrize(
        ("cell", "expected"),
        [
            ("1234.50", 1234.5),
            ("5000000000", 1_000_000_000),
            ("-4", 0),
            ("1e999", 1_000_000_000),
            ("Infinity", 1_000_000_000),
            ("250.00 USD", 250),
        ],
    )
    def test_total_marker(self, settings, cell, expected):
        result = parse(f'Name,Type,Value\nA,shares,1\n"__TOTAL_PAYOUT__",,"{cell}",,\n', settings)
        assert result.total_amount == expected

    def test_unparseable_total_is_ignored(self, settings):
        result = parse('Name,Type,Value\nA,shares,1\n"__TOTAL_PAYOUT__",,"lots",,\n', settings)
        assert result.total_amount is None

    def test_group_section(self, settings):
        result = parse(
            HEADER
            + "\n"
            + '"A",shares,1,0,0,,1\n'
            + '"B",shares,1,0,0,,2\n'
            + '"C",shares,1,0,0,,9\n'
            + "\n__GROUP_DATA__,ID,Name,Color,Expanded\n"
            + '"__GROUP_DATA__","1","Band","#3B82F6",true\n'
            + '"__GROUP_DATA__","2","<i>Crew</i>","bogus",false\n'
            + '"__GROUP_DATA__","","Nameless","#3B82F6",true\n',
            settings,
        )

        band, crew = result.groups
        assert (band.id, band.name, band.color, band.expanded) == (
            "1",
            "Band",
            "#3B82F6",
            True,
        )
        assert (crew.id, crew.name, crew.expanded) == ("2", "Crew", False)
        assert crew.color in PALETTE
        # "9" has no group row, so C is left ungrouped
        assert [r.group_id for r in result.recipients] == ["1", "2", None]

    def test_rows_after_group_marker_are_never_recipients(self, settings):
        result = parse(
            "Name,Type,Value\nA,shares,1\n"
            "__GROUP_DATA__,ID,Name,Color,Expanded\n"
            '"Late",shares,5\n',
            settings,
        )

        assert [r.name for r in result.recipients] == ["A"]
        assert [g.id for g in result.groups] == ["shares"]


class TestRoundTrip:
    """Export followed by import keeps the distribution inputs."""

    def test_round_trip(self, settings, recipients, groups):
        text = serialize(recipients, groups, 1000)

        result = parse(text, settings)

        assert len(result.recipients) == len(recipients)
        assert [r.kind for r in result.recipients] == [r.kind for r in recipients]
        assert [r.value for r in result.recipients] == [r.value for r in recipients]
        assert [r.group_id for r in result.recipients] == [r.group_id for r in recipients]
        assert result.recipients[0].color == "#000000"
        assert result.total_amount == 1000
        assert result.groups == groups
        assert all(r.id.startswith("imp-") for r in result.recipients)


class TestFiles:
    def test_write_then_load(self, tmp_path, settings, recipients):
        path = tmp_path / "payouts.csv"
        write_csv_file(path, serialize(recipients, [], 1000))

        text = load_csv_file(path, settings=settings)

        assert text.startswith(HEADER)
        assert len(parse(text, settings).recipients) == 3

    def test_missing_file(self, tmp_path, settings):
        with pytest.raises(ImportIOError, match="Could not read"):
            load_csv_file(tmp_path / "missing.csv", settings=settings)

    def test_not_utf8(self, tmp_path, settings):
        path = tmp_path / "latin1.csv"
        path.write_bytes("Name,Type,Value\nJos\xe9,shares,1\n".encode("latin-1"))

        with pytest.raises(ImportIOError, match="not valid UTF-8"):
            load_csv_file(path, settings=settings)

    def test_file_size_limit(self, tmp_path):
        path = tmp_path / "big.csv"
        path.write_text("Name,Type,Value\n" + "A,shares,1\n" * 10, encoding="utf-8")

        with pytest.raises(ImportFormatError, match="the limit is 20"):
            load_csv_file(path, settings=Settings(max_file_bytes=20))


def test_parse_line_quotes():
    assert parse_line('"a, b","say ""x""",c') == ["a, b", 'say "x"', "c"]
