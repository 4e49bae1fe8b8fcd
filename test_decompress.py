import lz4.block
import pytest

import decompress
from decompress import decode_file, decode_files, main, verify_with_lz4

DATA = b"".join(b"registro %05d;" % (i % 97) for i in range(2000))


@pytest.fixture
def block_file(tmp_path):
    path = tmp_path / "bloco.lz4"
    path.write_bytes(lz4.block.compress(DATA, store_size=False))
    return path


@pytest.fixture
def prefixed_file(tmp_path):
    path = tmp_path / "prefixado.lz4"
    path.write_bytes(lz4.block.compress(DATA))
    return path


def test_decode_file(block_file):
    result = decode_file(block_file)
    assert result.ok
    assert result.output == DATA
    assert result.compressed_size == block_file.stat().st_size


def test_decode_file_size_prefixed_and_verify(prefixed_file):
    result = decode_file(prefixed_file, size_prefixed=True, verify=True)
    assert result.ok
    assert result.verified is True
    assert result.output == DATA


def test_decode_file_prefix_conflicts_with_size(prefixed_file):
    result = decode_file(prefixed_file, size_prefixed=True, uncompressed_size=10)
    assert not result.ok
    assert "size-mismatch" in result.error


def test_decode_file_corrupt(tmp_path):
    path = tmp_path / "ruim.lz4"
    path.write_bytes(b"\x10a\x02\x00")
    result = decode_file(path)
    assert not result.ok
    assert result.output is None
    assert result.error.startswith("corrupt input")


def test_decode_files_keeps_order(tmp_path):
    paths = []
    for i in range(6):
        path = tmp_path / f"b{i}.lz4"
        path.write_bytes(lz4.block.compress(DATA[: 1000 * (i + 1)], store_size=False))
        paths.append(path)
    results = decode_files(paths, workers=3)
    assert [r.path for r in results] == paths
    assert [r.output for r in results] == [DATA[: 1000 * (i + 1)] for i in range(6)]


def test_verify_with_lz4_detects_difference():
    src = lz4.block.compress(DATA, store_size=False)
    assert verify_with_lz4(src, DATA)
    assert not verify_with_lz4(src, b"x" * len(DATA))


def test_verify_with_lz4_rejected_block(capsys):
    assert not verify_with_lz4(b"\x10a\x05\x00", b"aaaaaa")
    assert "[Verify]" in capsys.readouterr().err


def test_verify_empty_block():
    assert verify_with_lz4(b"\x00", b"")
    assert verify_with_lz4(lz4.block.compress(b""), b"", size_prefixed=True)


def test_main_single_file(block_file, tmp_path):
    out = tmp_path / "saida.bin"
    assert main([str(block_file), "-o", str(out), "--verify", "-v"]) == 0
    assert out.read_bytes() == DATA


def test_main_default_output_name(block_file):
    assert main([str(block_file)]) == 0
    assert (block_file.parent / "bloco.lz4.out").read_bytes() == DATA


def test_main_multiple_files_to_directory(block_file, prefixed_file, tmp_path):
    plain = tmp_path / "simples.lz4"
    plain.write_bytes(lz4.block.compress(b"abc" * 50, store_size=False))
    dest = tmp_path / "restaurado"
    assert main([str(block_file), str(plain), "-o", str(dest), "--workers", "2"]) == 0
    assert (dest / "bloco.lz4.out").read_bytes() == DATA
    assert (dest / "simples.lz4.out").read_bytes() == b"abc" * 50


def test_main_stdout(block_file, capsysbinary):
    assert main([str(block_file), "-o", "-"]) == 0
    captured = capsysbinary.readouterr()
    assert captured.out == DATA
    assert b"[Stats]" in captured.err


def test_main_size_prefixed(prefixed_file, tmp_path):
    out = tmp_path / "saida.bin"
    assert main([str(prefixed_file), "--size-prefixed", "-o", str(out)]) == 0
    assert out.read_bytes() == DATA


def test_main_expected_size_mismatch(block_file, tmp_path, capsys):
    out = tmp_path / "saida.bin"
    assert main([str(block_file), "--size", str(len(DATA) + 5), "-o", str(out)]) == 1
    assert not out.exists()
    assert "size-mismatch" in capsys.readouterr().err


def test_main_max_size(block_file, tmp_path):
    out = tmp_path / "saida.bin"
    assert main([str(block_file), "--max-size", "100", "-o", str(out)]) == 1
    assert not out.exists()


def test_main_partial_failure(block_file, tmp_path):
    bad = tmp_path / "ruim.lz4"
    bad.write_bytes(b"\xf0\xff")
    dest = tmp_path / "restaurado"
    assert main([str(block_file), str(bad), "-o", str(dest)]) == 1
    assert (dest / "bloco.lz4.out").read_bytes() == DATA
    assert not (dest / "ruim.lz4.out").exists()


def test_main_missing_input(tmp_path, capsys):
    assert main([str(tmp_path / "nao_existe.lz4")]) == 1
    assert "não encontrado" in capsys.readouterr().err


def test_main_rejects_size_with_multiple_inputs(block_file, prefixed_file):
    assert main([str(block_file), str(prefixed_file), "--size", "10"]) == 1


def test_main_uses_config_defaults(block_file, tmp_path, monkeypatch):
    monkeypatch.setattr(decompress.config_loader, "is_verify_enabled", lambda: True)
    calls = []
    original = decompress.verify_with_lz4

    def spy(*args, **kwargs):
        calls.append(args)
        return original(*args, **kwargs)

    monkeypatch.setattr(decompress, "verify_with_lz4", spy)
    assert main([str(block_file), "-o", str(tmp_path / "saida.bin")]) == 0
    assert len(calls) == 1


def test_decode_file_bogus_size_prefix(tmp_path):
    path = tmp_path / "prefixo_falso.lz4"
    path.write_bytes(b"\xf0\xff\xff\xff\x00")
    result = decode_file(path, size_prefixed=True)
    assert not result.ok
    assert "size-mismatch" in result.error


def test_main_bogus_size_prefix(tmp_path, capsys):
    path = tmp_path / "prefixo_falso.lz4"
    path.write_bytes(b"\xf0\xff\xff\xff\x00")
    assert main([str(path), "--size-prefixed", "-o", str(tmp_path / "saida.bin")]) == 1
    assert "ERRO" in capsys.readouterr().err


@pytest.mark.parametrize("flag", ["--size", "--max-size", "--workers"])
def test_main_rejects_negative_values(block_file, tmp_path, capsys, flag):
    out = tmp_path / "saida.bin"
    assert main([str(block_file), flag, "-1", "-o", str(out)]) == 1
    assert "não pode ser negativo" in capsys.readouterr().err
    assert not out.exists()
