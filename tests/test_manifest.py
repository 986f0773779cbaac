"""Tests for the manifest parser."""

import logging

import pytest

from conftest import build_manifest
from depot_toolkit.errors import FormatError
from depot_toolkit.formats.manifest import (
    FILE_TYPE_FLAG,
    HEADER_SIZE,
    NO_PARENT,
    Manifest,
    sanitize_name,
)

DIR = 0
FILE = FILE_TYPE_FLAG


class TestManifestParsing:
    def test_root_with_children(self):
        data = build_manifest(
            [
                ("data", 0, DIR, NO_PARENT),
                ("a.txt", 5, FILE, 0),
                ("sub", 0, DIR, 0),
            ]
        )
        manifest = Manifest.from_bytes(data)

        assert [item.path for item in manifest.items] == ["data", "data/a.txt", "data/sub"]
        assert [item.name for item in manifest.items] == ["data", "a.txt", "sub"]

    def test_header_fields(self):
        data = build_manifest([("data", 0, DIR, NO_PARENT)], depot_id=42, depot_version=9, info_count=11)
        manifest = Manifest.from_bytes(data)

        assert manifest.depot_id == 42
        assert manifest.depot_version == 9
        assert manifest.header.num_items == 1
        assert manifest.header.info_count == 11
        assert manifest.header.block_size == 0x2000

    def test_item_fields_round_trip(self):
        manifest = Manifest.from_bytes(build_manifest([("data", 0, DIR, NO_PARENT), ("f", 99, FILE, 0)]))
        item = manifest.items[1]

        assert item.id == 99
        assert item.type == FILE
        assert item.parent_index == 0
        assert item.next_index == NO_PARENT
        assert item.first_index == NO_PARENT

    def test_is_directory_uses_type_flag(self):
        data = build_manifest(
            [
                ("d", 0, 0x0000, NO_PARENT),
                ("f", 1, 0x4000, NO_PARENT),
                ("odd_dir", 0, 0x8001, NO_PARENT),
                ("odd_file", 2, 0xC000, NO_PARENT),
            ]
        )
        manifest = Manifest.from_bytes(data)

        assert [item.is_directory for item in manifest.items] == [True, False, True, False]
        assert [i.name for i in manifest.files()] == ["f", "odd_file"]
        assert [i.name for i in manifest.directories()] == ["d", "odd_dir"]

    def test_path_is_parent_path_plus_name(self):
        items = [("root", 0, DIR, NO_PARENT)]
        for depth in range(1, 6):
            items.append((f"level{depth}", 0, DIR, depth - 1))
        items.append(("leaf.bin", 1, FILE, 5))
        items.append(("other_root", 0, DIR, NO_PARENT))
        manifest = Manifest.from_bytes(build_manifest(items))

        for item in manifest.items:
            if item.is_root:
                assert item.path == item.name
            else:
                parent = manifest.items[item.parent_index]
                assert item.path == parent.path + "/" + item.name

        assert manifest.items[6].path == "root/level1/level2/level3/level4/level5/leaf.bin"

    def test_parent_after_child(self):
        data = build_manifest([("child.txt", 1, FILE, 1), ("root", 0, DIR, NO_PARENT)])
        manifest = Manifest.from_bytes(data)
        assert manifest.items[0].path == "root/child.txt"

    def test_unnamed_root_adds_no_component(self):
        data = build_manifest(
            [
                ("", 0, DIR, NO_PARENT),
                ("a.txt", 5, FILE, 0),
                ("sub", 0, DIR, 0),
                ("b.bin", 6, FILE, 2),
            ]
        )
        manifest = Manifest.from_bytes(data)

        assert [item.path for item in manifest.items] == ["", "a.txt", "sub", "sub/b.bin"]

    def test_empty_manifest(self):
        manifest = Manifest.from_bytes(build_manifest([]))
        assert manifest.items == []

    def test_to_dict(self):
        manifest = Manifest.from_bytes(build_manifest([("data", 0, DIR, NO_PARENT)]))
        data = manifest.to_dict()

        assert data["depot_id"] == 7
        assert data["items"][0]["path"] == "data"

    def test_from_file(self, tmp_path):
        (tmp_path / "7_3.manifest").write_bytes(build_manifest([("data", 0, DIR, NO_PARENT)]))
        manifest = Manifest.from_file(tmp_path, 7, 3)
        assert manifest.items[0].path == "data"


class TestNames:
    def test_long_name_truncated(self, caplog):
        data = build_manifest([("x" * 300, 1, FILE, NO_PARENT)])
        with caplog.at_level(logging.WARNING):
            manifest = Manifest.from_bytes(data)

        assert manifest.items[0].name == "x" * 255
        assert "longer than 255" in caplog.text

    def test_name_of_exactly_cap_length(self):
        manifest = Manifest.from_bytes(build_manifest([("y" * 254, 1, FILE, NO_PARENT)]))
        assert manifest.items[0].name == "y" * 254

    def test_sanitize(self):
        data = build_manifest([('a<b>:c*"d|e', 1, FILE, NO_PARENT), ("next", 2, FILE, NO_PARENT)])
        manifest = Manifest.from_bytes(data, sanitize=True)

        assert manifest.items[0].name == "abcde"
        assert manifest.items[1].name == "next"

    def test_no_sanitize(self):
        manifest = Manifest.from_bytes(build_manifest([("a:b", 1, FILE, NO_PARENT)]), sanitize=False)
        assert manifest.items[0].name == "a:b"

    def test_sanitize_name(self):
        assert sanitize_name("dir\\file/name") == "dirfilename"

    def test_utf8_name(self):
        manifest = Manifest.from_bytes(build_manifest([("café", 1, FILE, NO_PARENT)]), sanitize=False)
        assert manifest.items[0].name == "café"


class TestCorruption:
    def test_truncated_header(self):
        with pytest.raises(FormatError, match="truncated manifest header"):
            Manifest.from_bytes(b"\x00" * 40)

    def test_truncated_items(self):
        data = build_manifest([("data", 0, DIR, NO_PARENT)], num_items=3)
        with pytest.raises(FormatError):
            Manifest.from_bytes(data[: HEADER_SIZE + 30])

    def test_name_offset_out_of_range(self):
        data = bytearray(build_manifest([("data", 0, DIR, NO_PARENT)]))
        data[HEADER_SIZE : HEADER_SIZE + 4] = (1000).to_bytes(4, "little")
        with pytest.raises(FormatError, match="outside the manifest") as exc_info:
            Manifest.from_bytes(bytes(data))
        assert exc_info.value.offset is not None

    def test_unterminated_name(self):
        data = build_manifest([("data", 0, DIR, NO_PARENT)])
        with pytest.raises(FormatError, match="unterminated"):
            Manifest.from_bytes(data[:-1])

    def test_parent_index_out_of_range(self):
        data = build_manifest([("a", 1, FILE, 5)])
        with pytest.raises(FormatError, match="out of range"):
            Manifest.from_bytes(data)

    def test_self_parent(self):
        data = build_manifest([("loop", 0, DIR, 0)])
        with pytest.raises(FormatError, match="cycle"):
            Manifest.from_bytes(data)

    def test_parent_cycle(self):
        data = build_manifest([("a", 0, DIR, 1), ("b", 0, DIR, 2), ("c", 0, DIR, 0)])
        with pytest.raises(FormatError, match="cycle"):
            Manifest.from_bytes(data)

    def test_error_names_source(self, tmp_path):
        (tmp_path / "1_1.manifest").write_bytes(b"\x00" * 8)
        with pytest.raises(FormatError) as exc_info:
            Manifest.from_file(tmp_path, 1, 1)
        assert "1_1.manifest" in str(exc_info.value)
