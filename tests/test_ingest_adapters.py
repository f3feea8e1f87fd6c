from __future__ import annotations

import pytest

from ledger_import.errors import ParseError
from ledger_import.ingest import decode_source, detect_format, parse_source
from ledger_import.ingest.adapters.csv_rows import parse_csv, sniff_delimiter
from ledger_import.ingest.adapters.ofx_sgml import parse_ofx
from ledger_import.ingest.adapters.qif import parse_qif, strip_category_brackets
from ledger_import.models import SourceFormat
from tests.helpers.samples import OFX_SGML, QIF_BANK, dedent


# ---------------------------------------------------------------------------
# CSV
# ---------------------------------------------------------------------------


def test_csv_quoted_fields_and_line_numbers():
    text = dedent(
        """
        Date,Description,Amount
        15/01/2024,"Coffee, large",-3.50
        16/01/2024,"Multi
        line memo",-12.00
        17/01/2024,Salary,2000.00
        """
    )
    stmt = parse_csv(text)
    assert stmt.headers == ("Date", "Description", "Amount")
    assert [r.line for r in stmt.records] == [2, 3, 5]
    assert stmt.records[0].get("Description") == "Coffee, large"
    assert stmt.records[1].get("Description") == "Multi\nline memo"
    assert stmt.records[2].get(2) == "2000.00"


def test_csv_skips_preamble_before_header():
    text = dedent(
        """
        Account Number: 12345678
        Statement period: January 2024

        Date;Details;Amount;Balance
        15/01/2024;Rent;-900,00;100,00
        """
    )
    stmt = parse_csv(text)
    assert stmt.headers == ("Date", "Details", "Amount", "Balance")
    assert len(stmt.records) == 1
    assert stmt.records[0].line == 5
    assert stmt.records[0].get("Amount") == "-900,00"


def test_csv_profile_columns_locate_header():
    text = "Posted,Narration,Sum,Kind\n16/01/2024,Direct debit council tax,120.00,Debit\n"
    columns = [["Posted"], ["Narration"], ["Sum"], ["Kind"]]

    stmt = parse_csv(text, header_columns=columns)
    assert stmt.headers == ("Posted", "Narration", "Sum", "Kind")
    assert stmt.records[0].line == 2

    # Without the profile columns the data row reads like a header.
    assert parse_csv(text).headers[1] == "Direct debit council tax"


def test_csv_profile_columns_skip_preamble():
    text = "Statement for 12345678\nPosted,Narration,Sum\n16/01/2024,Rent,-900\n"
    stmt = parse_csv(text, header_columns=[["Posted", "Date"], ["Sum"]])
    assert stmt.headers == ("Posted", "Narration", "Sum")
    assert stmt.records[0].get("Sum") == "-900"


def test_csv_profile_columns_missing_falls_back_to_first_row():
    text = "Posted,Narration,Sum\n16/01/2024,Direct debit,120.00\n"
    stmt = parse_csv(text, header_columns=[["Date"], ["Amount"]])
    assert stmt.headers == ("Posted", "Narration", "Sum")
    assert len(stmt.records) == 1


def test_csv_headerless_rows_are_positional():
    stmt = parse_csv("15/01/2024,Rent,-900\n16/01/2024,Food,-20\n", has_header=False)
    assert stmt.headers == ()
    assert [r.line for r in stmt.records] == [1, 2]
    assert stmt.records[1].get(1) == "Food"
    assert stmt.records[1].get(5) is None


def test_csv_skip_rows_keeps_physical_line_numbers():
    stmt = parse_csv("junk\nmore junk\nDate,Amount\n2024-01-01,5\n", skip_rows=2)
    assert stmt.headers == ("Date", "Amount")
    assert stmt.records[0].line == 4


def test_csv_duplicate_headers_are_made_unique():
    stmt = parse_csv("Date,Amount,Amount\n2024-01-01,1,2\n")
    assert stmt.headers == ("Date", "Amount", "Amount (2)")


def test_csv_unterminated_quote_is_parse_error():
    with pytest.raises(ParseError):
        parse_csv('Date,Description,Amount\n2024-01-01,"broken,5\n')


def test_csv_empty_is_parse_error():
    with pytest.raises(ParseError):
        parse_csv("   \n\n")


def test_sniff_delimiter():
    assert sniff_delimiter("a;b;c\n1;2;3") == ";"
    assert sniff_delimiter("a\tb\tc") == "\t"
    assert sniff_delimiter("single") == ","


# ---------------------------------------------------------------------------
# OFX
# ---------------------------------------------------------------------------


def test_ofx_sgml_transactions_and_statement_info():
    stmt = parse_ofx(OFX_SGML)
    assert stmt.source_format is SourceFormat.OFX
    assert len(stmt.records) == 2

    first, second = stmt.records
    assert first.get("TRNAMT") == "2500.00"
    assert first.get("NAME") == "ACME PAYROLL"
    assert first.get("CHECKNUM") == ""
    assert first.get("ACCTID") == "998877"
    assert second.get("NAME") == "CITY POWER & LIGHT"
    assert second.get("CHECKNUM") == "1042"

    info = stmt.statement_info
    assert info["CURDEF"] == "USD"
    assert info["ACCTID"] == "998877"
    assert info["DTSTART"] == "20240101"
    assert info["LEDGERBAL"] == "3350.00"


def test_ofx_xml_dialect_with_closed_tags():
    text = dedent(
        """
        <?xml version="1.0" encoding="UTF-8"?>
        <?OFX OFXHEADER="200" VERSION="220"?>
        <OFX><BANKMSGSRSV1><STMTTRNRS><STMTRS>
        <BANKTRANLIST>
        <STMTTRN><TRNTYPE>DEBIT</TRNTYPE><DTPOSTED>20240301</DTPOSTED>
        <TRNAMT>-20.00</TRNAMT><FITID>A1</FITID><NAME>Books</NAME></STMTTRN>
        </BANKTRANLIST>
        </STMTRS></STMTTRNRS></BANKMSGSRSV1></OFX>
        """
    )
    stmt = parse_ofx(text)
    assert len(stmt.records) == 1
    assert stmt.records[0].get("TRNAMT") == "-20.00"
    assert stmt.records[0].get("FITID") == "A1"


def test_ofx_without_root_is_parse_error():
    with pytest.raises(ParseError):
        parse_ofx("OFXHEADER:100\n<STMTTRN><TRNAMT>1")


def test_ofx_without_transactions_is_empty():
    stmt = parse_ofx("<OFX><BANKTRANLIST></BANKTRANLIST></OFX>")
    assert stmt.records == ()


# ---------------------------------------------------------------------------
# QIF
# ---------------------------------------------------------------------------


def test_qif_records_fields_and_account():
    stmt = parse_qif(QIF_BANK)
    assert stmt.source_format is SourceFormat.QIF
    assert len(stmt.records) == 3
    assert stmt.statement_info["account"] == "Everyday Checking"
    assert stmt.statement_info["type"] == "Bank"

    grocery, gift, streaming = stmt.records
    assert grocery.get("payee") == "Corner Grocery"
    assert grocery.get("memo") == "Weekly shop"
    assert grocery.get("category") == "Food:Groceries"
    assert grocery.get("number") == "301"
    assert grocery.get("cleared") == "X"
    assert grocery.get("account") == "Everyday Checking"
    assert grocery.line == 6

    # U is the fallback amount; transfer brackets are dropped.
    assert gift.get("amount") == "1,000.00"
    assert gift.get("category") == "Savings"

    # The trailing record has no terminating caret.
    assert streaming.get("payee") == "Streaming Co"


def test_qif_investment_register_is_rejected():
    with pytest.raises(ParseError):
        parse_qif("!Type:Invst\nD1/1/2024\nNBuy\n^\n")


def test_strip_category_brackets():
    assert strip_category_brackets("[Housing]/Rent") == "Housing/Rent"


# ---------------------------------------------------------------------------
# Decoding and dispatch
# ---------------------------------------------------------------------------


def test_decode_source_handles_bom_and_cp1252():
    assert decode_source("\ufeffDate".encode()) == "Date"
    assert decode_source("Caf\xe9".encode("cp1252")) == "Caf\xe9"


def test_detect_format():
    assert detect_format(OFX_SGML) is SourceFormat.OFX
    assert detect_format(QIF_BANK) is SourceFormat.QIF
    assert detect_format("Date,Amount\n") is SourceFormat.CSV


def test_parse_source_dispatches_on_content_and_override():
    assert parse_source(OFX_SGML.encode("cp1252")).source_format is SourceFormat.OFX
    stmt = parse_source("Date,Amount\n2024-01-01,5\n", source_format="csv")
    assert stmt.source_format is SourceFormat.CSV


def test_parse_source_empty_is_parse_error():
    with pytest.raises(ParseError):
        parse_source(b"")
