import json

from sensorlogs.cli import build_parser, main


def test_query_prints_envelope(store, capsys):
    code = main(["query", "--device", "dev1", "--jenis", "suhu", "--tanggal", "2024-11-20"], store=store)
    assert code == 0
    body = json.loads(capsys.readouterr().out)
    assert body["filter"] == "date"
    assert [d["id"] for d in body["data"]] == [10, 3, 1]
    assert "message" not in body


def test_query_rejects_bad_zone(store):
    assert main(["query", "--device", "dev1", "--zona", "xyz"], store=store) == 2
    assert store.fetched == []


def test_query_requires_parameter_for_week(store):
    assert main(["query", "--device", "dev1", "--periode", "minggu_ini"], store=store) == 2


def test_export_writes_file(store, tmp_path):
    code = main([
        "export", "--device", "dev1", "--bulan", "11", "--tahun", "2024",
        "--sensors", "suhu,kelembapan", "--out", "csv", "--dir", str(tmp_path),
    ], store=store)
    assert code == 0
    path = tmp_path / "Report_AllSensors_11_2024_WIB.csv"
    lines = path.read_bytes().decode("utf-8-sig").splitlines()
    assert lines[0] == "No,SUHU,KELEMBAPAN,Waktu (WIB)"
    assert len(lines) == 7


def test_export_rejects_bad_format(store, tmp_path):
    code = main([
        "export", "--device", "dev1", "--bulan", "11", "--tahun", "2024",
        "--sensors", "suhu", "--out", "pdf", "--dir", str(tmp_path),
    ], store=store)
    assert code == 2
    assert list(tmp_path.iterdir()) == []


def test_parser_defaults():
    args = build_parser().parse_args(["export", "--device", "d", "--bulan", "1", "--tahun", "2024",
                                      "--sensors", "a"])
    assert (args.zona, args.out, args.dir) == ("wib", "excel", ".")
