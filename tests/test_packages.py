import logging
import types

import pytest

import postinstall
from conftest import FakePackageManager


def test_read_package_list_skips_blank_and_comment_lines(tmp_path):
    path = tmp_path / "packages.txt"
    path.write_text("vim\n\n# editors\n   # indented comment\n  curl  \n\t\nvim\ngit")

    assert list(postinstall.read_package_list(path)) == ["vim", "curl", "vim", "git"]


def test_read_package_list_tolerates_latin1_comments(tmp_path):
    path = tmp_path / "packages.txt"
    path.write_bytes(b"# Mise \xe0 jour\nvim\n")

    assert list(postinstall.read_package_list(path)) == ["vim"]


def test_incomplete_package_manager_cannot_be_created():
    class RefreshOnly(postinstall.PackageManager):
        def refresh(self):
            return True

    with pytest.raises(TypeError):
        RefreshOnly()


def test_already_installed_package_is_not_reinstalled(ctx, caplog):
    caplog.set_level(logging.DEBUG, logger=postinstall.LOGGER_NAME)
    ctx.packages = FakePackageManager(installed={"vim"})

    status = postinstall.SystemUpdater(ctx).check_and_install("vim")

    assert status == postinstall.StepStatus.SKIPPED
    assert ctx.packages.install_calls == []
    assert "vim is already installed." in caplog.messages


def test_missing_package_is_installed_once(ctx, caplog):
    caplog.set_level(logging.DEBUG, logger=postinstall.LOGGER_NAME)

    status = postinstall.SystemUpdater(ctx).check_and_install("curl")

    assert status == postinstall.StepStatus.SUCCESS
    assert ctx.packages.is_installed("curl")
    assert caplog.messages.count("curl successfully installed.") == 1
    assert "Failed to install curl." not in caplog.messages


def test_failed_install_is_reported(ctx, caplog):
    caplog.set_level(logging.DEBUG, logger=postinstall.LOGGER_NAME)
    ctx.packages = FakePackageManager(broken={"nosuchpkg"})

    status = postinstall.SystemUpdater(ctx).check_and_install("nosuchpkg")

    assert status == postinstall.StepStatus.FAILED
    assert "Failed to install nosuchpkg." in caplog.messages
    assert "nosuchpkg successfully installed." not in caplog.messages


def test_package_list_is_installed_in_file_order(ctx, config):
    config.PACKAGE_LIST.write_text("# base\nvim\n\ncurl\n  # net\ngit\n")
    ctx.packages = FakePackageManager(installed={"vim"})

    status = postinstall.SystemUpdater(ctx).install_package_list()

    assert status == postinstall.StepStatus.SUCCESS
    assert ctx.packages.checked == ["vim", "curl", "git"]
    assert ctx.packages.install_calls == ["curl", "git"]


def test_failed_package_does_not_stop_the_rest(ctx, config, caplog):
    caplog.set_level(logging.DEBUG, logger=postinstall.LOGGER_NAME)
    config.PACKAGE_LIST.write_text("curl\ngit\n")
    ctx.packages = FakePackageManager(broken={"curl"})

    status = postinstall.SystemUpdater(ctx).install_package_list()

    assert status == postinstall.StepStatus.FAILED
    assert ctx.packages.install_calls == ["curl", "git"]
    assert "git successfully installed." in caplog.messages


def test_missing_package_list_skips_installation(ctx, config, caplog):
    caplog.set_level(logging.DEBUG, logger=postinstall.LOGGER_NAME)

    status = postinstall.SystemUpdater(ctx).install_package_list()

    assert status == postinstall.StepStatus.SKIPPED
    assert ctx.packages.checked == []
    assert ctx.packages.install_calls == []
    assert any("not found" in m for m in caplog.messages)


def test_refresh_failure_is_fatal(ctx):
    ctx.packages = FakePackageManager(refresh_ok=False)

    with pytest.raises(postinstall.UpgradeError):
        postinstall.SystemUpdater(ctx).upgrade_system()
    assert ctx.packages.calls == ["refresh"]


def test_upgrade_failure_is_fatal(ctx):
    ctx.packages = FakePackageManager(upgrade_ok=False)

    with pytest.raises(postinstall.UpgradeError):
        postinstall.SystemUpdater(ctx).upgrade_system()
    assert ctx.packages.calls == ["refresh", "upgrade"]


class SpyRun:
    def __init__(self, returncode=0, stdout="", stderr=""):
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.calls = []

    def __call__(self, argv, **kwargs):
        self.calls.append((argv, kwargs))
        return types.SimpleNamespace(
            returncode=self.returncode, stdout=self.stdout, stderr=self.stderr
        )


@pytest.mark.parametrize(
    "returncode, stdout, expected",
    [
        (0, "install ok installed\n", True),
        (0, "deinstall ok config-files\n", False),
        (1, "", False),
    ],
)
def test_apt_installed_check_reads_dpkg_status(monkeypatch, logger, returncode, stdout, expected):
    spy = SpyRun(returncode=returncode, stdout=stdout)
    monkeypatch.setattr(postinstall.subprocess, "run", spy)

    assert postinstall.AptPackageManager(logger).is_installed("vim") is expected
    assert spy.calls[0][0] == ["dpkg-query", "-W", "-f=${Status}\n", "vim"]


def test_apt_install_runs_noninteractively_and_logs_output(monkeypatch, logger, caplog):
    caplog.set_level(logging.DEBUG, logger=postinstall.LOGGER_NAME)
    spy = SpyRun(stdout="Setting up curl ...\n")
    monkeypatch.setattr(postinstall.subprocess, "run", spy)

    assert postinstall.AptPackageManager(logger).install("curl") is True

    argv, kwargs = spy.calls[0]
    assert argv == ["apt", "install", "-y", "curl"]
    assert kwargs["env"]["DEBIAN_FRONTEND"] == "noninteractive"
    assert "Setting up curl ..." in caplog.messages


def test_apt_install_failure_returns_false(monkeypatch, logger):
    monkeypatch.setattr(postinstall.subprocess, "run", SpyRun(returncode=100))

    apt = postinstall.AptPackageManager(logger)
    assert apt.install("nosuchpkg") is False
    assert apt.refresh() is False
    assert apt.upgrade() is False


def test_missing_executable_raises_execution_error(monkeypatch, logger):
    def missing(argv, **kwargs):
        raise FileNotFoundError(argv[0])

    monkeypatch.setattr(postinstall.subprocess, "run", missing)

    with pytest.raises(postinstall.ExecutionError):
        postinstall.run_command(["dpkg-query", "-W", "vim"], logger)
