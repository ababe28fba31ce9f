import logging
import os
import pwd
from pathlib import Path

import pytest

import postinstall


class FakePackageManager(postinstall.PackageManager):
    def __init__(self, installed=(), broken=(), refresh_ok=True, upgrade_ok=True):
        self.installed = set(installed)
        self.broken = set(broken)
        self.refresh_ok = refresh_ok
        self.upgrade_ok = upgrade_ok
        self.calls = []
        self.checked = []
        self.install_calls = []

    def is_installed(self, name):
        self.checked.append(name)
        return name in self.installed

    def install(self, name):
        self.install_calls.append(name)
        if name in self.broken:
            return False
        self.installed.add(name)
        return True

    def refresh(self):
        self.calls.append("refresh")
        return self.refresh_ok

    def upgrade(self):
        self.calls.append("upgrade")
        return self.upgrade_ok


class FakeServiceManager(postinstall.ServiceManager):
    def __init__(self, ok=True):
        self.ok = ok
        self.restarted = []

    def restart_service(self, name):
        self.restarted.append(name)
        return self.ok


class FakePrompt(postinstall.ConsolePrompt):
    """Answers prompts from a list instead of the terminal."""

    def __init__(self, answers=()):
        self.answers = list(answers)
        self.asked = []

    def ask(self, prompt):
        self.asked.append(prompt)
        if not self.answers:
            raise AssertionError(f"unexpected prompt: {prompt}")
        return self.answers.pop(0)


@pytest.fixture
def config(tmp_path: Path) -> postinstall.Config:
    (tmp_path / "config").mkdir()
    (tmp_path / "lists").mkdir()
    (tmp_path / "etc" / "ssh").mkdir(parents=True)
    return postinstall.Config(
        CONFIG_DIR=tmp_path / "config",
        PACKAGE_LIST=tmp_path / "lists" / "packages.txt",
        LOG_DIR=tmp_path / "logs",
        MOTD_FILE=tmp_path / "etc" / "motd",
        SSHD_CONFIG=tmp_path / "etc" / "ssh" / "sshd_config",
        SHOW_BANNER=False,
    )


@pytest.fixture
def user(tmp_path: Path) -> postinstall.TargetUser:
    home = tmp_path / "home" / "operator"
    home.mkdir(parents=True)
    record = pwd.getpwuid(os.getuid())
    return postinstall.TargetUser(record.pw_name, os.getuid(), os.getgid(), home)


@pytest.fixture
def logger():
    logger = logging.getLogger(postinstall.LOGGER_NAME)
    logger.setLevel(logging.DEBUG)
    yield logger
    for h in logger.handlers[:]:
        logger.removeHandler(h)
        h.close()


@pytest.fixture
def ctx(config, user, logger) -> postinstall.RunContext:
    return postinstall.RunContext(
        config=config,
        logger=logger,
        packages=FakePackageManager(),
        services=FakeServiceManager(),
        prompt=FakePrompt(),
        user=user,
    )
