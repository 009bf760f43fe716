"""Tests for the conflict-aware installer."""

import os
import stat
import tempfile
from pathlib import Path

import pytest
from rich.console import Console

from confkit.exceptions import InstallError
from confkit.installer import Installer, backup_path_for, context_diff
from confkit.models import InstallOutcome


class FakeConfirm:
    """Records prompts and answers with a fixed reply."""

    def __init__(self, answer: bool) -> None:
        self.answer = answer
        self.prompts: list[str] = []

    def __call__(self, prompt: str) -> bool:
        self.prompts.append(prompt)
        return self.answer


class TestBackupPath:
    """Test the backup mirror layout."""

    def test_absolute_destination_is_mirrored(self) -> None:
        """Test the destination path is reproduced under the backup root."""
        assert backup_path_for(Path("/var/backup"), Path("/etc/a.conf")) == Path(
            "/var/backup/etc/a.conf",
        )

    def test_home_is_expanded(self) -> None:
        """Test ~ is expanded before mirroring."""
        home = Path.home()
        mirrored = backup_path_for(Path("/b"), Path("~/.bashrc"))
        assert mirrored == Path("/b") / home.relative_to(home.anchor) / ".bashrc"


class TestContextDiff:
    """Test diff rendering."""

    def test_identical_content_has_no_diff(self) -> None:
        """Test equal inputs produce an empty diff."""
        assert context_diff(b"X=1\n", b"X=1\n", "a", "b") == ""

    def test_changed_line_shown(self) -> None:
        """Test a changed line appears on both sides of the diff."""
        diff = context_diff(b"X=1\n", b"X=2\n", "backup", "dest")
        assert "*** backup" in diff
        assert "--- dest" in diff
        assert "! X=1" in diff
        assert "! X=2" in diff

    def test_missing_final_newline(self) -> None:
        """Test lines without a trailing newline still end the diff line."""
        diff = context_diff(b"X=1", b"X=2", "a", "b")
        assert all(line.endswith("\n") for line in diff.splitlines(keepends=True))


class TestInstaller:
    """Test the install decision table."""

    @pytest.fixture
    def temp_dir(self) -> Path:
        """Create a temporary host root."""
        with tempfile.TemporaryDirectory() as temp_dir:
            yield Path(temp_dir)

    @pytest.fixture
    def console(self) -> Console:
        """Console writing to a throwaway buffer."""
        return Console(file=open(os.devnull, "w"), width=120)

    def _generated(self, temp_dir: Path, content: str) -> Path:
        path = temp_dir / "work" / "generated"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path

    def _installer(
        self,
        temp_dir: Path,
        console: Console,
        confirm: FakeConfirm,
        **kwargs: bool,
    ) -> Installer:
        return Installer(temp_dir / "backup", console=console, confirm=confirm, **kwargs)

    def test_first_install(self, temp_dir: Path, console: Console) -> None:
        """Test a missing destination is installed without prompting."""
        confirm = FakeConfirm(False)
        installer = self._installer(temp_dir, console, confirm)
        destination = temp_dir / "etc" / "a.conf"

        outcome = installer.install(self._generated(temp_dir, "X=1\n"), destination)

        assert outcome == InstallOutcome.INSTALLED
        assert confirm.prompts == []
        assert destination.read_text() == "X=1\n"
        assert installer.backup_path(destination).read_text() == "X=1\n"

    def test_reinstall_is_silent_and_unchanged(self, temp_dir: Path, console: Console) -> None:
        """Test an untouched destination is not prompted for on the next run."""
        confirm = FakeConfirm(False)
        installer = self._installer(temp_dir, console, confirm)
        destination = temp_dir / "etc" / "a.conf"
        installer.install(self._generated(temp_dir, "X=1\n"), destination)

        outcome = installer.install(self._generated(temp_dir, "X=1\n"), destination)

        assert outcome == InstallOutcome.UNCHANGED
        assert confirm.prompts == []

    def test_template_change_installs_without_prompt(
        self, temp_dir: Path, console: Console,
    ) -> None:
        """Test new generated content replaces an unmodified destination silently."""
        confirm = FakeConfirm(False)
        installer = self._installer(temp_dir, console, confirm)
        destination = temp_dir / "etc" / "a.conf"
        installer.install(self._generated(temp_dir, "X=1\n"), destination)

        outcome = installer.install(self._generated(temp_dir, "X=3\n"), destination)

        assert outcome == InstallOutcome.INSTALLED
        assert confirm.prompts == []
        assert destination.read_text() == "X=3\n"
        assert installer.backup_path(destination).read_text() == "X=3\n"

    def test_hand_edit_prompts_and_decline_keeps_files(
        self, temp_dir: Path, console: Console,
    ) -> None:
        """Test an out-of-band edit prompts and declining leaves both files alone."""
        installer = self._installer(temp_dir, console, FakeConfirm(True))
        destination = temp_dir / "etc" / "a.conf"
        installer.install(self._generated(temp_dir, "X=1\n"), destination)
        destination.write_text("X=2\n")

        confirm = FakeConfirm(False)
        outcome = self._installer(temp_dir, console, confirm).install(
            self._generated(temp_dir, "X=1\n"), destination,
        )

        assert outcome == InstallOutcome.DECLINED
        assert len(confirm.prompts) == 1
        assert destination.read_text() == "X=2\n"
        assert installer.backup_path(destination).read_text() == "X=1\n"

    def test_hand_edit_accept_restores(self, temp_dir: Path, console: Console) -> None:
        """Test accepting the prompt restores generated content and backup."""
        installer = self._installer(temp_dir, console, FakeConfirm(True))
        destination = temp_dir / "etc" / "a.conf"
        installer.install(self._generated(temp_dir, "X=1\n"), destination)
        destination.write_text("X=2\n")

        confirm = FakeConfirm(True)
        outcome = self._installer(temp_dir, console, confirm).install(
            self._generated(temp_dir, "X=1\n"), destination, name="a.conf",
        )

        assert outcome == InstallOutcome.INSTALLED
        assert confirm.prompts == ["Overwrite a.conf?"]
        assert destination.read_text() == "X=1\n"
        assert installer.backup_path(destination).read_text() == "X=1\n"

    def test_foreign_file_prompts(self, temp_dir: Path, console: Console) -> None:
        """Test an existing file without a backup needs confirmation."""
        confirm = FakeConfirm(False)
        installer = self._installer(temp_dir, console, confirm)
        destination = temp_dir / "etc" / "a.conf"
        destination.parent.mkdir(parents=True)
        destination.write_text("mine\n")

        outcome = installer.install(self._generated(temp_dir, "X=1\n"), destination)

        assert outcome == InstallOutcome.DECLINED
        assert len(confirm.prompts) == 1
        assert destination.read_text() == "mine\n"
        assert not installer.backup_path(destination).exists()

    def test_foreign_file_with_same_content_is_adopted(
        self, temp_dir: Path, console: Console,
    ) -> None:
        """Test an existing identical file is adopted without a prompt."""
        confirm = FakeConfirm(False)
        installer = self._installer(temp_dir, console, confirm)
        destination = temp_dir / "etc" / "a.conf"
        destination.parent.mkdir(parents=True)
        destination.write_text("X=1\n")

        outcome = installer.install(self._generated(temp_dir, "X=1\n"), destination)

        assert outcome == InstallOutcome.UNCHANGED
        assert confirm.prompts == []
        assert installer.backup_path(destination).read_text() == "X=1\n"

    def test_force_skips_prompt(self, temp_dir: Path, console: Console) -> None:
        """Test force mode overwrites an edited file without asking."""
        confirm = FakeConfirm(False)
        installer = self._installer(temp_dir, console, confirm, force=True)
        destination = temp_dir / "etc" / "a.conf"
        destination.parent.mkdir(parents=True)
        destination.write_text("mine\n")

        outcome = installer.install(self._generated(temp_dir, "X=1\n"), destination)

        assert outcome == InstallOutcome.INSTALLED
        assert confirm.prompts == []
        assert destination.read_text() == "X=1\n"
        assert installer.backup_path(destination).read_text() == "X=1\n"

    def test_dry_run_writes_nothing(self, temp_dir: Path, console: Console) -> None:
        """Test dry-run mode neither writes nor prompts."""
        confirm = FakeConfirm(True)
        installer = self._installer(temp_dir, console, confirm, dry_run=True)
        destination = temp_dir / "etc" / "a.conf"

        first = installer.install(self._generated(temp_dir, "X=1\n"), destination)

        destination.parent.mkdir(parents=True)
        destination.write_text("mine\n")
        second = installer.install(self._generated(temp_dir, "X=1\n"), destination)

        assert first == InstallOutcome.INSTALLED
        assert second == InstallOutcome.DECLINED
        assert confirm.prompts == []
        assert destination.read_text() == "mine\n"
        assert not installer.backup_path(destination).exists()

    def test_existing_permissions_kept(self, temp_dir: Path, console: Console) -> None:
        """Test overwriting keeps the destination's permission bits."""
        installer = self._installer(temp_dir, console, FakeConfirm(True))
        destination = temp_dir / "etc" / "secret.conf"
        installer.install(self._generated(temp_dir, "a\n"), destination)
        os.chmod(destination, 0o600)

        installer.install(self._generated(temp_dir, "b\n"), destination)

        assert stat.S_IMODE(destination.stat().st_mode) == 0o600
        assert destination.read_text() == "b\n"

    def test_symlinked_destination_written_through(
        self, temp_dir: Path, console: Console,
    ) -> None:
        """Test a symlinked destination keeps its link and updates its target."""
        installer = self._installer(temp_dir, console, FakeConfirm(True))
        real = temp_dir / "dotfiles" / "rc"
        link = temp_dir / "home" / ".rc"
        installer.install(self._generated(temp_dir, "old\n"), real)
        link.parent.mkdir(parents=True)
        link.symlink_to(real)
        installer.install(self._generated(temp_dir, "old\n"), link)

        installer.install(self._generated(temp_dir, "new\n"), link)

        assert link.is_symlink()
        assert real.read_text() == "new\n"

    def test_directory_destination_is_an_error(
        self, temp_dir: Path, console: Console,
    ) -> None:
        """Test installing over a directory raises InstallError."""
        installer = self._installer(temp_dir, console, FakeConfirm(True))
        destination = temp_dir / "etc"
        destination.mkdir()

        with pytest.raises(InstallError, match="is a directory"):
            installer.install(self._generated(temp_dir, "X=1\n"), destination)

    def test_missing_generated_file_is_an_error(
        self, temp_dir: Path, console: Console,
    ) -> None:
        """Test an unreadable generated file raises InstallError."""
        installer = self._installer(temp_dir, console, FakeConfirm(True))

        with pytest.raises(InstallError, match="Failed to install"):
            installer.install(temp_dir / "nope", temp_dir / "etc" / "a.conf")
