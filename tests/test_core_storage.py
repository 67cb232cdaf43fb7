from core.storage import directory_size, format_size


def test_format_size_matches_du_style():
    assert format_size(0) == "0B"
    assert format_size(512) == "512B"
    assert format_size(1024) == "1.0K"
    assert format_size(1536) == "1.5K"
    assert format_size(20 * 1024 * 1024) == "20M"
    assert format_size(int(2.25 * 1024 ** 3)) == "2.3G"


def test_directory_size_sums_nested_files(tmp_path):
    (tmp_path / "a").mkdir()
    (tmp_path / "a" / "one").write_bytes(b"x" * 10)
    (tmp_path / "two").write_bytes(b"y" * 5)

    assert directory_size(tmp_path) == 15
    assert directory_size(tmp_path / "two") == 5
    assert directory_size(tmp_path / "missing") == 0
