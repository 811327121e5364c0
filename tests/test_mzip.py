import os
import random
import pytest
import mzip
from huffman import ContainerError, EmptyInputError, FrequencyTable, build_tree, encoded_bit_length, find_codes
from mzip import IOFailure, compress_file, decompress_file, main


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    return tmp_path


def roundtrip(workdir, data, name="source.bin"):
    (workdir / name).write_bytes(data)
    compress_file(name, "packed.mzip")
    decompress_file("packed.mzip", "restored.bin")
    return (workdir / "restored.bin").read_bytes()


def test_aaab_container(workdir):
    (workdir / "aaab.txt").write_bytes(b"aaab")
    header = compress_file("aaab.txt", "out.mzip")
    assert (header.filename, header.tree, header.padding) == (b"aaab.txt", "(b a)", 4)
    assert (workdir / "out.mzip").read_bytes() == b"aaab.txt\n(b a)\n4\n\xe0"


def test_single_symbol_container(workdir):
    (workdir / "zzzz.txt").write_bytes(b"zzzz")
    compress_file("zzzz.txt", "out.mzip")
    assert (workdir / "out.mzip").read_bytes() == b"zzzz.txt\n(z)\n4\n\x00"

    decompress_file("out.mzip", "back.txt")
    assert (workdir / "back.txt").read_bytes() == b"zzzz"


def test_trailing_zero_byte_is_written(workdir):
    (workdir / "tail").write_bytes(b"aaaaaaaab")
    compress_file("tail", "out.mzip")
    assert (workdir / "out.mzip").read_bytes() == b"tail\n(b a)\n7\n\xff\x00"
    assert roundtrip(workdir, b"aaaaaaaab") == b"aaaaaaaab"


def test_default_output_name(workdir):
    (workdir / "notes.txt").write_bytes(b"hello huffman")
    compress_file("notes.txt")
    assert (workdir / mzip.DEFAULT_OUTPUT).exists()


@pytest.mark.parametrize("size", [1, 2, 3, 100, mzip.CHUNK_SIZE, mzip.CHUNK_SIZE * 3 + 17])
def test_roundtrip_random(workdir, size):
    data = random.Random(size).randbytes(size)
    assert roundtrip(workdir, data) == data


def test_roundtrip_text(workdir):
    data = b"This is a test (with parens)\r\n\\ and spaces\n" * 300
    assert roundtrip(workdir, data) == data


def test_roundtrip_all_bytes(workdir):
    data = bytes(range(256)) * 3
    assert roundtrip(workdir, data) == data


def test_roundtrip_single_symbol_large(workdir):
    data = b"A" * (mzip.CHUNK_SIZE * 10 + 3)
    assert roundtrip(workdir, data) == data


def test_padding_matches_payload(workdir):
    data = random.Random(5).choices(b"abcdefg", weights=[40, 20, 10, 5, 3, 2, 1], k=777)
    (workdir / "src").write_bytes(bytes(data))
    header = compress_file("src", "out.mzip")
    payload = (workdir / "out.mzip").read_bytes().split(b"\n", 3)[3]
    freqs = FrequencyTable.from_chunks([bytes(data)])
    total_bits = encoded_bit_length(freqs, find_codes(build_tree(freqs)))
    assert 0 <= header.padding <= 7
    assert (total_bits + header.padding) % 8 == 0
    assert len(payload) * 8 == total_bits + header.padding


def test_decompress_uses_stored_name(workdir):
    (workdir / "original.dat").write_bytes(b"restore me by name")
    compress_file("original.dat", "out.mzip")
    (workdir / "original.dat").unlink()
    decompress_file("out.mzip")
    assert (workdir / "original.dat").read_bytes() == b"restore me by name"


def test_empty_input_writes_nothing(workdir):
    (workdir / "empty").write_bytes(b"")
    with pytest.raises(EmptyInputError):
        compress_file("empty", "out.mzip")
    assert os.listdir(workdir) == ["empty"]


def test_missing_source(workdir):
    with pytest.raises(IOFailure) as info:
        compress_file("missing", "out.mzip")
    assert isinstance(info.value.__cause__, FileNotFoundError)
    assert os.listdir(workdir) == []


def test_unwritable_output(workdir):
    (workdir / "src").write_bytes(b"abc")
    with pytest.raises(IOFailure):
        compress_file("src", str(workdir / "no_such_dir" / "out.mzip"))


def test_source_changed_between_passes(workdir, monkeypatch):
    (workdir / "src").write_bytes(b"aab")
    monkeypatch.setattr(mzip, "count_frequencies", lambda source, progress=False: FrequencyTable.from_chunks([b"ab"]))
    with pytest.raises(IOFailure):
        compress_file("src", "out.mzip")
    assert not (workdir / "out.mzip").exists()


def test_new_symbol_between_passes(workdir, monkeypatch):
    (workdir / "src").write_bytes(b"abc")
    monkeypatch.setattr(mzip, "count_frequencies", lambda source, progress=False: FrequencyTable.from_chunks([b"ab"]))
    with pytest.raises(IOFailure):
        compress_file("src", "out.mzip")
    assert not (workdir / "out.mzip").exists()


def test_truncated_payload(workdir):
    # a=0 b=10 c=11, the last code is cut after its first bit
    (workdir / "bad.mzip").write_bytes(b"x\n(a (b c))\n1\n\xff")
    with pytest.raises(ContainerError):
        decompress_file("bad.mzip", "out")
    assert not (workdir / "out").exists()


def test_header_without_payload(workdir):
    (workdir / "ok.mzip").write_bytes(b"x\n(a b)\n0\n")
    decompress_file("ok.mzip", "out")
    assert (workdir / "out").read_bytes() == b""

    (workdir / "bad.mzip").write_bytes(b"x\n(a b)\n3\n")
    with pytest.raises(ContainerError):
        decompress_file("bad.mzip", "out2")


@pytest.mark.parametrize("container", [
    b"",
    b"x\n(a b)\n",
    b"x\n(a b)\n8\n\x00",
    b"x\n(a b)\n12\n\x00",
    b"x\n(a b)\n-1\n\x00",
    b"x\n(a b\n0\n\x00",
    b"\n(a b)\n0\n\x00",
])
def test_corrupted_header(workdir, container):
    (workdir / "bad.mzip").write_bytes(container)
    with pytest.raises(ContainerError):
        decompress_file("bad.mzip")


def test_cli_roundtrip(workdir, capsys):
    data = b"the quick brown fox jumps over the lazy dog " * 50
    (workdir / "fox.txt").write_bytes(data)
    assert main(["compress", "fox.txt", "-o", "fox.mzip"]) == 0
    assert "ratio" in capsys.readouterr().out
    assert main(["decompress", "fox.mzip", "-o", "fox.out", "-q"]) == 0
    assert (workdir / "fox.out").read_bytes() == data


def test_cli_reports_errors(workdir, capsys):
    (workdir / "empty").write_bytes(b"")
    assert main(["compress", "empty", "-q"]) == 1
    assert "empty" in capsys.readouterr().err
    assert main(["decompress", "missing.mzip", "-q"]) == 1
    assert "missing.mzip" in capsys.readouterr().err


def test_cli_codes(workdir, capsys):
    (workdir / "aaab").write_bytes(b"aaab")
    assert main(["codes", "aaab"]) == 0
    lines = capsys.readouterr().out.splitlines()
    assert [line.split()[-1] for line in lines] == ["0", "1"]
    assert lines[0].split()[:3] == ["98", "b", "1"]
