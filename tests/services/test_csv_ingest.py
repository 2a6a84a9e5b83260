import pytest

from bulk_importer.services.csv_ingest import CsvIngestor, normalize_header, parse_csv
from bulk_importer.services.errors import FetchError


def test_header_keys_are_lowercased_without_whitespace():
    assert normalize_header("Price Each") == "priceeach"
    assert normalize_header('  "Short\tDescription" ') == "shortdescription"


def test_parse_csv_simple():
    rows = parse_csv("Name,Price\nWidget,9.99\nGadget,4.50\n")
    assert rows == [
        {"name": "Widget", "price": "9.99"},
        {"name": "Gadget", "price": "4.50"},
    ]


def test_lines_with_wrong_field_count_are_dropped():
    text = "name,price\nWidget,9.99\nBroken\nToo,many,fields\n\nGadget,1\n"
    rows = parse_csv(text)
    assert [row["name"] for row in rows] == ["Widget", "Gadget"]


def test_quotes_are_stripped_and_quoted_delimiters_kept():
    rows = parse_csv('name,description,price\n"Widget","Small, blue",9.99\n')
    assert rows == [{"name": "Widget", "description": "Small, blue", "price": "9.99"}]


def test_empty_and_header_only_files_yield_no_rows():
    assert parse_csv("") == []
    assert parse_csv("name,price\n") == []


def test_windows_line_endings():
    rows = parse_csv("name,price\r\nWidget,9.99\r\n")
    assert rows == [{"name": "Widget", "price": "9.99"}]


def test_user_header_aliases():
    text = "Full Name,Email Address,Buyer NTN or CNIC,Province\nAli,ali@example.com,12345,Punjab\n"
    rows = parse_csv(text, "users")
    assert rows == [
        {
            "name": "Ali",
            "email": "ali@example.com",
            "buyer_ntn_cnic": "12345",
            "buyer_province": "Punjab",
        }
    ]


def test_ingest_downloads_and_parses(ingestor, blob_files):
    blob_files["https://blobs.test/a.csv"] = "name,price\nWidget,9.99\n"
    assert ingestor.ingest("https://blobs.test/a.csv") == [{"name": "Widget", "price": "9.99"}]


def test_fetch_non_success_response_raises(ingestor):
    with pytest.raises(FetchError, match="Failed to download file"):
        ingestor.fetch("https://blobs.test/missing.csv")


def test_fetch_local_file(tmp_path):
    path = tmp_path / "upload.csv"
    path.write_text("\ufeffname,price\nWidget,9.99\n", encoding="utf-8")
    assert CsvIngestor().fetch(path.as_uri()) == "name,price\nWidget,9.99\n"


def test_fetch_missing_local_file_raises(tmp_path):
    with pytest.raises(FetchError, match="not found"):
        CsvIngestor().fetch((tmp_path / "nope.csv").as_uri())


def test_fetch_rejects_unknown_scheme():
    with pytest.raises(FetchError, match="Unsupported"):
        CsvIngestor().fetch("ftp://example.com/file.csv")


def test_stray_quote_only_affects_its_own_line():
    rows = parse_csv('name,price\n"Widget,9.99\nGadget,1\nGizmo,2\n')
    assert rows == [
        {"name": "Widget", "price": "9.99"},
        {"name": "Gadget", "price": "1"},
        {"name": "Gizmo", "price": "2"},
    ]


def test_unbalanced_quote_line_with_wrong_width_is_dropped_alone():
    rows = parse_csv('name,price\nA,1\n"B\nC,3\n')
    assert [row["name"] for row in rows] == ["A", "C"]


def test_very_large_cells_are_kept():
    big = "x" * 200_000
    rows = parse_csv(f"name,price\n{big},1\nB,2\n")
    assert [len(row["name"]) for row in rows] == [200_000, 1]


def test_product_header_aliases():
    text = (
        "Title,Selling Price,Product Code,Summary,MRP,Cost Price,Product Weight,Stock Qty\n"
        "Widget,9.99,W-1,Small,12,5,0.25,7\n"
    )
    assert parse_csv(text, "products") == [
        {
            "name": "Widget",
            "price": "9.99",
            "sku": "W-1",
            "short_description": "Small",
            "compare_price": "12",
            "cost_price": "5",
            "weight": "0.25",
            "stock_quantity": "7",
        }
    ]
