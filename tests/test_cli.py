from distlab.cli import run_sequential, sequential_main, worker_main
from distlab.mrapps import wc_map, wc_reduce
from distlab.mrprotocol import KeyValue


def test_run_sequential_word_count(tmp_path):
    first = tmp_path / "a.txt"
    second = tmp_path / "b.txt"
    first.write_text("b a")
    second.write_text("a")
    out = tmp_path / "out.txt"
    returned = run_sequential(wc_map, wc_reduce, [str(first), str(second)], str(out))
    assert returned == str(out)
    assert out.read_text() == "a 2\nb 1\n"


def test_run_sequential_groups_values_across_files(tmp_path):
    x = tmp_path / "x.txt"
    y = tmp_path / "y.txt"
    x.write_text("k")
    y.write_text("k")

    def mapf(name, text):
        return [KeyValue(text, name)]

    def reducef(key, values):
        return "+".join(sorted(values))

    out = tmp_path / "out.txt"
    run_sequential(mapf, reducef, [str(x), str(y)], str(out))
    lines = out.read_text().splitlines()
    assert lines == ["k " + "+".join(sorted([str(x), str(y)]))]


def test_run_sequential_output_keys_sorted_and_unique(tmp_path):
    src = tmp_path / "in.txt"
    src.write_text("zeta alpha mid alpha zeta zeta")
    out = tmp_path / "out.txt"
    run_sequential(wc_map, wc_reduce, [str(src)], str(out))
    keys = [line.split(" ")[0] for line in out.read_text().splitlines()]
    assert keys == sorted(set(keys))
    assert set(keys) == {"zeta", "alpha", "mid"}


def test_sequential_main_writes_mr_out_0(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "in.txt").write_text("one two one")
    assert sequential_main(["../mrapps/wc.so", "in.txt"]) == 0
    run_sequential(wc_map, wc_reduce, ["in.txt"], "check.txt")
    assert (tmp_path / "mr-out-0").read_text() == (tmp_path / "check.txt").read_text()


def test_sequential_main_usage(capsys):
    assert sequential_main(["wc"]) == 1
    assert "Usage" in capsys.readouterr().err


def test_sequential_main_unknown_app(tmp_path, capsys):
    assert sequential_main(["nope.so", str(tmp_path / "in.txt")]) == 1
    assert "cannot load plugin" in capsys.readouterr().err


def test_sequential_main_missing_input(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    assert sequential_main(["wc", "missing.txt"]) == 1
    assert "cannot open missing.txt" in capsys.readouterr().err
    assert not (tmp_path / "mr-out-0").exists()


def test_worker_main_usage(capsys):
    assert worker_main([]) == 1
    assert "Usage" in capsys.readouterr().err


def test_worker_main_unknown_app(capsys):
    assert worker_main(["nope.so"]) == 1
    assert "cannot load plugin" in capsys.readouterr().err