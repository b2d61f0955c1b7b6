"""Tests for storage/iso.py - oscdimg command construction and mastering."""

from pathlib import Path
from unittest.mock import Mock, patch

import pytest

from conftest import FakeMasteringService
from iso_remaster.domain.models import BootAssetSet, BootPlatform, FirmwareVariant
from iso_remaster.storage.exceptions import (
    MasteringFailureError,
    PreconditionError,
    ToolNotFoundError,
)
from iso_remaster.storage.iso import (
    ImageMaster,
    OscdimgMasteringService,
    find_mastering_tool,
)


@pytest.fixture
def staged(tmp_path):
    root = tmp_path / "staging area" / "media"
    (root / "boot").mkdir(parents=True)
    (root / "boot" / "etfsboot.com").write_bytes(b"BIOS")
    efi = root / "efi" / "microsoft" / "boot"
    efi.mkdir(parents=True)
    (efi / "efisys_noprompt.bin").write_bytes(b"EFI")
    return root


@pytest.fixture
def boot_assets(staged):
    return BootAssetSet(
        legacy=staged / "boot" / "etfsboot.com",
        firmware=staged / "efi" / "microsoft" / "boot" / "efisys_noprompt.bin",
        firmware_variant=FirmwareVariant.NO_PROMPT,
    )


class TestOscdimgCommand:
    """Tests for OscdimgMasteringService.command()."""

    def test_full_command(self, staged, boot_assets, tmp_path):
        output = tmp_path / "out.iso"
        options = ImageMaster(FakeMasteringService()).options_for(staged, boot_assets, output)

        command = OscdimgMasteringService(Path("oscdimg.exe")).command(options)

        assert command == [
            "oscdimg.exe",
            "-m",
            "-o",
            "-u2",
            "-udfver102",
            "-bootdata:2"
            "#p0,e,bboot\\etfsboot.com"
            "#pEF,e,befi\\microsoft\\boot\\efisys_noprompt.bin",
            str(staged.resolve()),
            str(output.resolve()),
        ]

    def test_bios_entry_precedes_efi_entry(self, staged, boot_assets, tmp_path):
        options = ImageMaster(FakeMasteringService()).options_for(
            staged, boot_assets, tmp_path / "out.iso"
        )

        assert [e.platform for e in options.boot_entries] == [BootPlatform.BIOS, BootPlatform.EFI]
        assert all(e.no_emulation for e in options.boot_entries)

    def test_label_is_passed(self, staged, boot_assets, tmp_path):
        options = ImageMaster(FakeMasteringService(), label="WIN11_AUTO").options_for(
            staged, boot_assets, tmp_path / "out.iso"
        )

        command = OscdimgMasteringService(Path("oscdimg")).command(options)

        assert "-lWIN11_AUTO" in command

    def test_boot_file_outside_tree_uses_absolute_path(self, staged, tmp_path):
        outside = tmp_path / "etfsboot.com"
        assets = BootAssetSet(
            legacy=outside,
            firmware=staged / "efi" / "microsoft" / "boot" / "efisys_noprompt.bin",
            firmware_variant=FirmwareVariant.NO_PROMPT,
        )
        options = ImageMaster(FakeMasteringService()).options_for(
            staged, assets, tmp_path / "out.iso"
        )

        command = OscdimgMasteringService(Path("oscdimg")).command(options)

        assert f"#p0,e,b{outside}#" in command[-3]

    def test_relative_source_dir_passed_as_absolute(self, staged, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        relative = Path("staging area") / "media"
        assets = BootAssetSet(
            legacy=relative / "boot" / "etfsboot.com",
            firmware=relative / "efi" / "microsoft" / "boot" / "efisys_noprompt.bin",
            firmware_variant=FirmwareVariant.NO_PROMPT,
        )
        options = ImageMaster(FakeMasteringService()).options_for(
            relative, assets, Path("out.iso")
        )

        command = OscdimgMasteringService(Path("oscdimg")).command(options)

        assert command[-2] == str(staged.resolve())
        assert command[-1] == str((tmp_path / "out.iso").resolve())
        assert "#p0,e,bboot\\etfsboot.com#" in command[-3]

    @patch("iso_remaster.storage.iso.run_status_command", return_value=0)
    def test_master_runs_from_staged_root(self, mock_run, staged, boot_assets, tmp_path):
        options = ImageMaster(FakeMasteringService()).options_for(
            staged, boot_assets, tmp_path / "out.iso"
        )

        code = OscdimgMasteringService(Path("oscdimg")).master(options)

        assert code == 0
        assert mock_run.call_args.kwargs == {"tool": "oscdimg", "cwd": staged}


class TestImageMaster:
    """Tests for ImageMaster.build()."""

    def test_build_creates_output_parent(self, staged, boot_assets, tmp_path):
        service = FakeMasteringService()
        output = tmp_path / "isos" / "custom" / "out.iso"

        ImageMaster(service).build(staged, boot_assets, output)

        assert output.exists()
        assert service.calls[0].output_path == output

    def test_nonzero_status_raises(self, staged, boot_assets, tmp_path):
        output = tmp_path / "out.iso"

        with pytest.raises(MasteringFailureError) as exc_info:
            ImageMaster(FakeMasteringService(code=5)).build(staged, boot_assets, output)

        assert exc_info.value.code == 5
        assert exc_info.value.output_path == output
        assert "status 5" in str(exc_info.value)


class TestFindMasteringTool:
    """Tests for find_mastering_tool()."""

    def test_explicit_path(self, tmp_path):
        tool = tmp_path / "oscdimg.exe"
        tool.write_bytes(b"MZ")

        assert find_mastering_tool(tool) == tool

    def test_explicit_path_missing(self, tmp_path):
        with pytest.raises(PreconditionError, match="Mastering tool not found"):
            find_mastering_tool(tmp_path / "missing.exe")

    def test_first_existing_candidate_wins(self, tmp_path):
        first = tmp_path / "amd64" / "oscdimg.exe"
        second = tmp_path / "x86" / "oscdimg.exe"
        for path in (first, second):
            path.parent.mkdir()
            path.write_bytes(b"MZ")
        search = Mock()

        found = find_mastering_tool(
            None, [tmp_path / "arm64" / "oscdimg.exe", first, second], search=search
        )

        assert found == first
        search.assert_not_called()

    def test_falls_back_to_search_path(self, tmp_path):
        search = Mock(return_value="/usr/local/bin/oscdimg")

        found = find_mastering_tool(None, [tmp_path / "nope.exe"], search=search)

        assert found == Path("/usr/local/bin/oscdimg")
        search.assert_called_once_with("oscdimg")

    def test_not_found_names_searched_locations(self, tmp_path):
        candidate = tmp_path / "nope.exe"

        with pytest.raises(ToolNotFoundError) as exc_info:
            find_mastering_tool(None, [candidate], search=lambda _: None)

        assert exc_info.value.tool == "oscdimg"
        assert exc_info.value.searched == [str(candidate)]
        assert "Windows ADK" in str(exc_info.value)

    def test_default_search_is_which(self):
        with patch("iso_remaster.storage.iso.shutil.which", return_value=None):
            with pytest.raises(ToolNotFoundError):
                find_mastering_tool()
