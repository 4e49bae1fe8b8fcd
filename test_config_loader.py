import pytest

import config_loader


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    path = tmp_path / "config.txt"
    monkeypatch.setattr(config_loader, "_get_config_path", lambda: path)
    monkeypatch.setattr(config_loader, "_config_cache", None)
    return path


def test_parse_value_types():
    assert config_loader._parse_value("None") is None
    assert config_loader._parse_value("TRUE") is True
    assert config_loader._parse_value("false") is False
    assert config_loader._parse_value(" 42 ") == 42
    assert config_loader._parse_value("1.5") == 1.5
    assert config_loader._parse_value("texto") == "texto"


def test_load_config_parses_file(config_file):
    config_file.write_text(
        "╔════════╗\n"
        "# comentário\n"
        "\n"
        "MAX_WORKER_THREADS = 8   # inline\n"
        "MAX_DECODED_SIZE = 1048576\n"
        "VERIFY_WITH_LZ4 = True\n",
        encoding="utf-8",
    )
    config = config_loader.load_config()
    assert config["MAX_WORKER_THREADS"] == 8
    assert config_loader.get_max_decoded_size() == 1048576
    assert config_loader.is_verify_enabled() is True
    # defaults preenchem o resto
    assert config["SIZE_PREFIXED"] is False
    assert config_loader.get_output_growth_factor() == 2.0


def test_missing_file_uses_defaults(config_file, capsys):
    config = config_loader.load_config()
    assert config == config_loader._get_defaults()
    assert "[Config]" in capsys.readouterr().out


def test_cache_and_force_reload(config_file):
    config_file.write_text("MAX_WORKER_THREADS = 3\n", encoding="utf-8")
    assert config_loader.get_max_worker_threads() == 3
    config_file.write_text("MAX_WORKER_THREADS = 5\n", encoding="utf-8")
    assert config_loader.get_max_worker_threads() == 3
    config_loader.load_config(force_reload=True)
    assert config_loader.get_max_worker_threads() == 5


@pytest.mark.parametrize("raw,expected", [
    ("1", 2.0),
    ("0.5", 2.0),
    ("abc", 2.0),
    ("1.5", 1.5),
    ("4", 4.0),
])
def test_growth_factor_sanitized(config_file, raw, expected):
    config_file.write_text(f"OUTPUT_GROWTH_FACTOR = {raw}\n", encoding="utf-8")
    assert config_loader.get_output_growth_factor() == expected


def test_worker_threads_at_least_one(config_file):
    config_file.write_text("MAX_WORKER_THREADS = 0\n", encoding="utf-8")
    assert config_loader.get_max_worker_threads() == 1


@pytest.mark.parametrize("raw", ["abc", "-5", "1.5", "True"])
def test_max_decoded_size_invalid_means_unbounded(config_file, raw):
    config_file.write_text(f"MAX_DECODED_SIZE = {raw}\n", encoding="utf-8")
    assert config_loader.get_max_decoded_size() is None


def test_max_decoded_size_invalid_does_not_break_decode(config_file):
    from block_decoder import decode

    config_file.write_text("MAX_DECODED_SIZE = abc\n", encoding="utf-8")
    assert decode(None, b"\x40abcd") == (b"abcd", None)
