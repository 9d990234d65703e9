from pathlib import Path
import sys
import pytest

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

import ingest
import store
from codec import Record, decode
from errors import MalformedInputError
from store import FileResource, MemoryResource

FIXTURE_DIR = Path(__file__).parent / "fixtures"
HEADER = "SKU;EAN-1;EAN-2;SHELF-1;SHELF-2\n"

with open(FIXTURE_DIR / "master_sample.csv", "r", encoding="utf-8") as f:
    MASTER_TEXT = f.read()


def _fixture_bytes(name: str) -> bytes:
    return (FIXTURE_DIR / name).read_bytes()


def test_deduplicate_records_first_occurrence_wins():
    records = [
        Record(sku="a", ean1="1"),
        Record(sku="A", ean1="2"),
        Record(sku="b", ean1="1"),
    ]
    assert ingest.deduplicate_records(records) == [Record(sku="a", ean1="1")]


def test_deduplicate_records_checks_ean2_values():
    records = [
        Record(sku="a", ean1="100", ean2=["200", "300"], shelf1="first"),
        Record(sku="b", ean1="300", shelf1="second"),
        Record(sku="c", ean2=["100"]),
        Record(sku="d", ean1="400"),
    ]
    kept = ingest.deduplicate_records(records)
    assert [r.sku for r in kept] == ["a", "d"]


def test_deduplicate_records_ignores_empty_values():
    records = [Record(ean1="111"), Record(ean1="222"), Record(sku="x"), Record(sku="y")]
    assert ingest.deduplicate_records(records) == records


def test_deduplicate_rewrites_store():
    master = MemoryResource(HEADER + "a;1;;S1;\nA;2;;S2;\nb;1;;S3;\n")
    result = ingest.deduplicate(master)
    assert (result.kept, result.removed) == (1, 2)
    assert master.text == HEADER + "a;1;;S1;\n"


def test_positional_ingest_ignores_header_names():
    master = MemoryResource(HEADER)
    result = ingest.ingest(master, "FOO;BAR\nX1;Y1\n")
    assert result.records_appended == 1
    assert store.load(master) == [Record(sku="X1", ean1="Y1")]


def test_positional_ingest_fixture_appends_to_existing_master():
    master = MemoryResource(MASTER_TEXT)
    result = ingest.ingest(master, _fixture_bytes("upload_positional.csv"))
    assert result.records_appended == 2
    assert result.duplicates_removed == 0
    assert result.total == 5
    records = store.load(master)
    assert records[3] == Record(sku="X1", ean1="Y1")
    # the extra third value has no header and is dropped
    assert records[4] == Record(sku="X2", ean1="Y2")


def test_positional_ingest_scrambles_reordered_columns():
    # Legacy behaviour: a file whose columns are in another order lands in the wrong fields.
    master = MemoryResource()
    ingest.ingest(master, _fixture_bytes("upload_named.csv"))
    first = store.load(master)[0]
    assert first.sku == "R7"
    assert first.ean1 == "NEW1"
    assert first.ean2 == ["5901234123457"]


def test_name_alignment_maps_headers():
    master = MemoryResource(MASTER_TEXT)
    result = ingest.ingest(master, _fixture_bytes("upload_named.csv"), align=ingest.ALIGN_NAME)
    assert result.records_appended == 2
    # xyz9 duplicates XYZ9 already in the master
    assert result.duplicates_removed == 1
    records = store.load(master)
    assert records[-1] == Record(sku="NEW1", ean1="5901234123457", shelf1="R7")
    assert [r.sku for r in records].count("XYZ9") == 1
    assert store.find_by_code(master, "xyz9")[0].shelf1 == "C3"


def test_ingest_rows_from_upload_layer():
    master = MemoryResource()
    rows = [{"code": "S1", "barcode": "4006381333931"}, {"code": "S2"}]
    result = ingest.ingest_rows(master, rows, ["code", "barcode"])
    assert result.records_appended == 2
    assert store.load(master) == [
        Record(sku="S1", ean1="4006381333931"),
        Record(sku="S2"),
    ]


def test_ingest_creates_missing_master_with_header():
    master = MemoryResource()
    ingest.ingest(master, "A;B;C;D;E\nS1;1;2|3;L1;L2\n")
    assert master.text == HEADER + "S1;1;2,3;L1;L2\n"


def test_ingest_handles_missing_trailing_newline():
    master = MemoryResource(HEADER + "S1;1;;;")
    ingest.ingest(master, "X\nS2\n")
    assert [r.sku for r in store.load(master)] == ["S1", "S2"]


def test_ingest_removes_duplicates_of_existing_rows():
    master = MemoryResource(MASTER_TEXT)
    result = ingest.ingest(master, "SKU;EAN-1\nabc1;9999999999999\nNEW;4006381333931\nNEW2;\n")
    assert result.records_appended == 3
    assert result.duplicates_removed == 2
    assert [r.sku for r in store.load(master)] == ["ABC1", "XYZ9", "abc2", "NEW2"]


def test_ingest_header_only_upload():
    master = MemoryResource()
    result = ingest.ingest(master, "SKU;EAN-1\n")
    assert result.records_appended == 0
    assert master.text == HEADER


def test_ingest_rejects_binary_upload():
    master = MemoryResource(MASTER_TEXT)
    with pytest.raises(MalformedInputError):
        ingest.ingest(master, b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR\xff\xd8")
    assert master.text == MASTER_TEXT


def test_ingest_into_reordered_master_keeps_fields():
    master = MemoryResource("SHELF-1;SKU;EAN-1;EAN-2;SHELF-2\nA1;S1;4006381333931;;B1\n")
    result = ingest.ingest(master, "FOO;BAR\nX1;Y1\n")
    assert result.total == 2
    assert store.load(master) == [
        Record(sku="S1", ean1="4006381333931", shelf1="A1", shelf2="B1"),
        Record(sku="X1", ean1="Y1"),
    ]
    assert [r.sku for r in store.find_by_code(master, "X1")] == ["X1"]
    assert master.text.splitlines()[0] == "SKU;EAN-1;EAN-2;SHELF-1;SHELF-2"


def test_positional_ingest_with_repeated_header_names():
    master = MemoryResource()
    ingest.ingest(master, "C;C\nS1;E1\n")
    assert store.load(master) == [Record(sku="S1", ean1="E1")]


def test_name_alignment_first_repeated_header_wins():
    master = MemoryResource()
    ingest.ingest(master, "SKU;SKU;EAN-1\nS1;S2;4006381333931\n", align=ingest.ALIGN_NAME)
    assert store.load(master) == [Record(sku="S1", ean1="4006381333931")]


def test_ingest_unknown_alignment():
    with pytest.raises(ValueError):
        ingest.ingest(MemoryResource(), "A\nB\n", align="magic")


def test_ingest_into_file(tmp_path):
    path = tmp_path / "master.csv"
    path.write_text(MASTER_TEXT, encoding="utf-8")
    master = FileResource(str(path))
    result = ingest.ingest(master, _fixture_bytes("upload_positional.csv"))
    assert result.total == 5
    assert decode(path.read_text(encoding="utf-8"))[-1].sku == "X2"
