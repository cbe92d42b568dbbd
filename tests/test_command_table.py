from __future__ import annotations

from pathlib import Path

import pytest

from qcedl.core.command_table import load_command_table, load_packaged_table
from qcedl.core.errors import CommandTableLoadError, CommandTableValidationError
from qcedl.core.model import AttributeKind, PayloadFormat


def _write_table(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


@pytest.fixture(autouse=True)
def _isolated_config(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "cfg"))


def test_load_packaged_table() -> None:
    table = load_packaged_table()
    assert table.id == "sahara"
    assert table.entries[AttributeKind.SERIAL_NUMBER].code == 0x01
    assert table.entries[AttributeKind.SERIAL_NUMBER].width == 4
    assert table.entries[AttributeKind.HARDWARE_ID].code == 0x02
    assert table.entries[AttributeKind.HARDWARE_ID].width == 8
    assert table.entries[AttributeKind.OEM_PK_HASH].format is PayloadFormat.BYTES


def test_no_user_table_means_no_warnings() -> None:
    loaded = load_command_table()
    assert loaded.warnings == ()
    assert loaded.table.id == "sahara"


def test_user_table_overrides_entry(tmp_path: Path) -> None:
    _write_table(
        tmp_path / "cfg" / "qcedl" / "commands.yaml",
        """
id: newer-pbl
name: Newer PBL
commands:
  sbl-version:
    code: 0x07
    format: uint
    width: 4
    min_version: 3
""",
    )

    loaded = load_command_table()

    assert loaded.table.id == "newer-pbl"
    assert loaded.table.entries[AttributeKind.SBL_VERSION].min_version == 3
    assert loaded.table.entries[AttributeKind.SERIAL_NUMBER].code == 0x01
    assert loaded.warnings == ("Command table 'newer-pbl' overrides sbl-version",)


def test_explicit_path_is_used(tmp_path: Path) -> None:
    path = tmp_path / "custom.yaml"
    _write_table(
        path,
        """
id: custom
name: Custom
commands:
  serial-number:
    code: 0x01
    format: uint
    width: 4
""",
    )
    loaded = load_command_table(path)
    assert loaded.table.id == "custom"
    assert loaded.table.entries[AttributeKind.SERIAL_NUMBER].description == ""
    assert loaded.table.entries[AttributeKind.HARDWARE_ID].code == 0x02


def test_missing_explicit_path(tmp_path: Path) -> None:
    with pytest.raises(CommandTableLoadError):
        load_command_table(tmp_path / "absent.yaml")


def test_unknown_attribute_rejected(tmp_path: Path) -> None:
    path = tmp_path / "bad.yaml"
    _write_table(
        path,
        """
id: bad
name: Bad
commands:
  flash-everything:
    code: 0x10
    format: bytes
""",
    )
    with pytest.raises(CommandTableValidationError):
        load_command_table(path)


def test_duplicate_key_rejected(tmp_path: Path) -> None:
    path = tmp_path / "dup.yaml"
    _write_table(
        path,
        """
id: dup
name: Dup
commands:
  serial-number:
    code: 0x01
    format: uint
    width: 4
  serial-number:
    code: 0x02
    format: uint
    width: 4
""",
    )
    with pytest.raises(CommandTableValidationError):
        load_command_table(path)


def test_duplicate_code_rejected(tmp_path: Path) -> None:
    path = tmp_path / "clash.yaml"
    _write_table(
        path,
        """
id: clash
name: Clash
commands:
  sbl-version:
    code: 0x02
    format: uint
    width: 4
""",
    )
    with pytest.raises(CommandTableValidationError) as excinfo:
        load_command_table(path)
    assert "0x02" in str(excinfo.value)


def test_uint_needs_width(tmp_path: Path) -> None:
    path = tmp_path / "nowidth.yaml"
    _write_table(
        path,
        """
id: nowidth
name: No width
commands:
  serial-number:
    code: 0x01
    format: uint
""",
    )
    with pytest.raises(CommandTableValidationError):
        load_command_table(path)


def test_width_only_for_uint(tmp_path: Path) -> None:
    path = tmp_path / "byteswidth.yaml"
    _write_table(
        path,
        """
id: byteswidth
name: Bytes width
commands:
  oem-pk-hash:
    code: 0x03
    format: bytes
    width: 4
""",
    )
    with pytest.raises(CommandTableValidationError):
        load_command_table(path)


def test_root_must_be_mapping(tmp_path: Path) -> None:
    path = tmp_path / "list.yaml"
    _write_table(path, "- serial-number\n")
    with pytest.raises(CommandTableValidationError):
        load_command_table(path)
