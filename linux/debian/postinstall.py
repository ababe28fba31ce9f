#!/usr/bin/env python3
"""
Debian/Ubuntu Post-Installation Script
--------------------------------------

Run once on a freshly installed Debian or Ubuntu machine, as root. The script:

  • Updates the package index and upgrades every installed package
  • Installs the packages listed in ./lists/packages.txt (already installed ones are skipped)
  • Copies ./config/motd.txt to /etc/motd
  • Appends ./config/bashrc.append and ./config/nanorc.append to the logged-in user's rc files
  • Optionally registers a public SSH key for the logged-in user
  • Restricts the SSH daemon to key-based authentication

Every step logs its outcome to ./logs/postinstall_<timestamp>.log and to the terminal.
A missing input file or a failed package only skips that step; lacking root privileges
or a failed system upgrade aborts the run.

Usage:
    sudo ./postinstall.py
    sudo ./postinstall.py --non-interactive --ssh-key "ssh-ed25519 AAAA... user@host"

Version: 1.0.0
"""

import abc
import datetime
import logging
import os
import pwd
import re
import shutil
import subprocess
import sys
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional, Union

import click
import pyfiglet
from rich import box
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from rich.theme import Theme
from rich.traceback import install as install_rich_traceback

APP_NAME = "Post Install"
APP_SUBTITLE = "Debian/Ubuntu Post-Installation Setup"
VERSION = "1.0.0"
LOGGER_NAME = "postinstall"


# ----------------------------------------------------------------
# Nord-Themed Console
# ----------------------------------------------------------------
class NordColors:
    """Nord color palette used by the console theme and the banner."""

    SNOW_STORM_1: str = "#D8DEE9"
    SNOW_STORM_2: str = "#E5E9F0"

    FROST_1: str = "#8FBCBB"
    FROST_2: str = "#88C0D0"
    FROST_3: str = "#81A1C1"
    FROST_4: str = "#5E81AC"

    RED: str = "#BF616A"
    YELLOW: str = "#EBCB8B"
    GREEN: str = "#A3BE8C"
    PURPLE: str = "#B48EAD"


console = Console(
    theme=Theme(
        {
            "info": f"bold {NordColors.FROST_2}",
            "warning": f"bold {NordColors.YELLOW}",
            "error": f"bold {NordColors.RED}",
            "success": f"bold {NordColors.GREEN}",
            "prompt": f"bold {NordColors.PURPLE}",
            "path": f"italic {NordColors.FROST_1}",
        }
    )
)


# ----------------------------------------------------------------
# Exceptions
# ----------------------------------------------------------------
class SetupError(Exception):
    """Base exception for provisioning errors."""

    exit_code: int = 1


class PrivilegeError(SetupError):
    """Raised when the script is not running as root."""

    pass


class UpgradeError(SetupError):
    """Raised when refreshing the package index or upgrading the system fails."""

    pass


class ExecutionError(SetupError):
    """Raised when an external command cannot be run or exits non-zero."""

    pass


# ----------------------------------------------------------------
# Configuration
# ----------------------------------------------------------------
@dataclass
class Config:
    """Paths and options for a single provisioning run."""

    CONFIG_DIR: Path = field(default_factory=lambda: Path("./config"))
    PACKAGE_LIST: Path = field(default_factory=lambda: Path("./lists/packages.txt"))
    LOG_DIR: Path = field(default_factory=lambda: Path("./logs"))
    MOTD_FILE: Path = field(default_factory=lambda: Path("/etc/motd"))
    SSHD_CONFIG: Path = field(default_factory=lambda: Path("/etc/ssh/sshd_config"))
    SSH_SERVICE: str = "ssh"

    # A key given up front replaces the interactive prompt.
    SSH_KEY: Optional[str] = None
    INTERACTIVE: bool = True
    MANAGED_BLOCKS: bool = False
    SHOW_BANNER: bool = True

    SSH_SETTINGS: Dict[str, str] = field(
        default_factory=lambda: {
            "PasswordAuthentication": "no",
            "ChallengeResponseAuthentication": "no",
            "PubkeyAuthentication": "yes",
        }
    )

    TIMESTAMP: str = field(
        default_factory=lambda: datetime.datetime.now().strftime("%Y%m%d_%H%M%S")
    )
    LOG_FILE: Path = field(init=False)

    def __post_init__(self) -> None:
        self.CONFIG_DIR = Path(self.CONFIG_DIR)
        self.PACKAGE_LIST = Path(self.PACKAGE_LIST)
        self.LOG_DIR = Path(self.LOG_DIR)
        self.MOTD_FILE = Path(self.MOTD_FILE)
        self.SSHD_CONFIG = Path(self.SSHD_CONFIG)
        self.LOG_FILE = self.LOG_DIR / f"postinstall_{self.TIMESTAMP}.log"


# ----------------------------------------------------------------
# Logging and Banner Helpers
# ----------------------------------------------------------------
def setup_logger(log_file: Union[str, Path]) -> logging.Logger:
    """
    Configure the run logger: INFO and above to the terminal, everything to the log file.

    Args:
        log_file: Path of the log file for this run; its directory is created if needed.

    Returns:
        The configured "postinstall" logger.
    """
    log_file = Path(log_file)
    log_file.parent.mkdir(parents=True, exist_ok=True)
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)
    for h in logger.handlers[:]:
        logger.removeHandler(h)
        h.close()

    console_handler = RichHandler(console=console, show_path=False, rich_tracebacks=True)
    console_handler.setLevel(logging.INFO)
    logger.addHandler(console_handler)

    file_handler = logging.FileHandler(log_file)
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(
        logging.Formatter("[%(asctime)s] %(message)s", "%Y-%m-%d %H:%M:%S")
    )
    logger.addHandler(file_handler)
    try:
        os.chmod(log_file, 0o600)
    except OSError as e:
        logger.warning(f"Could not set permissions on log file {log_file}: {e}")
    return logger


def create_header() -> Panel:
    """Render the application name as a Frost-gradient ASCII banner."""
    width = min(shutil.get_terminal_size((80, 24)).columns - 10, 80)
    try:
        ascii_art = pyfiglet.Figlet(font="slant", width=width).renderText(APP_NAME)
    except pyfiglet.FigletError:
        ascii_art = f"=== {APP_NAME} ===\n"

    colors = [NordColors.FROST_1, NordColors.FROST_2, NordColors.FROST_3, NordColors.FROST_4]
    lines = [line for line in ascii_art.splitlines() if line.strip()]
    banner = Text("\n").join(
        Text(line, style=f"bold {colors[i % len(colors)]}") for i, line in enumerate(lines)
    )
    return Panel(
        banner,
        border_style=NordColors.FROST_1,
        box=box.ROUNDED,
        padding=(1, 2),
        title=f"[bold {NordColors.SNOW_STORM_2}]v{VERSION}[/]",
        title_align="right",
        subtitle=f"[bold {NordColors.SNOW_STORM_1}]{APP_SUBTITLE}[/]",
        subtitle_align="center",
    )


# ----------------------------------------------------------------
# Target User
# ----------------------------------------------------------------
@dataclass
class TargetUser:
    """The human operator whose home directory receives the per-user changes."""

    name: str
    uid: int
    gid: int
    home: Path

    @classmethod
    def from_name(cls, name: str) -> "TargetUser":
        record = pwd.getpwnam(name)
        return cls(record.pw_name, record.pw_uid, record.pw_gid, Path(record.pw_dir))


def resolve_login_name() -> Optional[str]:
    """Name the operator logged in with, before sudo/su switched to root."""
    try:
        name = os.getlogin()
    except OSError:
        name = None
    if not name or name == "root":
        name = os.environ.get("SUDO_USER") or name
    return name


def resolve_target_user() -> Optional[TargetUser]:
    name = resolve_login_name()
    if not name:
        return None
    try:
        user = TargetUser.from_name(name)
    except KeyError:
        return None
    # Never hand root's home to the per-user steps.
    if user.uid == 0:
        return None
    return user


# ----------------------------------------------------------------
# Command Execution
# ----------------------------------------------------------------
def run_command(
    cmd: List[str],
    logger: logging.Logger,
    env: Optional[Dict[str, str]] = None,
    check: bool = True,
) -> subprocess.CompletedProcess:
    """
    Run a command, writing its output to the log file only.

    Args:
        cmd: Command and arguments
        logger: Run logger; output goes out at DEBUG level, below the terminal threshold
        env: Environment for the child process (defaults to the current one)
        check: Raise ExecutionError on a non-zero exit status

    Returns:
        The completed process with text stdout/stderr

    Raises:
        ExecutionError: If the command cannot be started, or fails while check is set
    """
    cmd_str = " ".join(cmd)
    logger.debug(f"Executing: {cmd_str}")
    try:
        result = subprocess.run(
            cmd,
            env=env or os.environ.copy(),
            text=True,
            capture_output=True,
            check=False,
        )
    except OSError as e:
        raise ExecutionError(f"Error executing command: {cmd_str}: {e}") from e

    for output in (result.stdout, result.stderr):
        if output and output.strip():
            logger.debug(output.rstrip())
    if check and result.returncode != 0:
        raise ExecutionError(f"Command failed (code {result.returncode}): {cmd_str}")
    return result


class PackageManager(abc.ABC):
    """Operations the provisioner needs from the system package manager."""

    @abc.abstractmethod
    def is_installed(self, name: str) -> bool:
        """Whether the package is fully installed."""

    @abc.abstractmethod
    def install(self, name: str) -> bool:
        """Install one package; False on failure."""

    @abc.abstractmethod
    def refresh(self) -> bool:
        """Refresh the package index; False on failure."""

    @abc.abstractmethod
    def upgrade(self) -> bool:
        """Upgrade every installed package; False on failure."""


class ServiceManager(abc.ABC):
    """Operations the provisioner needs from the service manager."""

    @abc.abstractmethod
    def restart_service(self, name: str) -> bool:
        """Restart a service; False on failure."""


class AptPackageManager(PackageManager):
    """apt/dpkg backed package manager."""

    def __init__(self, logger: logging.Logger) -> None:
        self.logger = logger
        self.env = os.environ.copy()
        self.env["DEBIAN_FRONTEND"] = "noninteractive"

    def _run(self, cmd: List[str]) -> bool:
        try:
            run_command(cmd, self.logger, env=self.env)
            return True
        except ExecutionError as e:
            self.logger.debug(str(e))
            return False

    def is_installed(self, name: str) -> bool:
        # Removed packages keep a dpkg record with a "deinstall" status.
        result = run_command(
            ["dpkg-query", "-W", "-f=${Status}\n", name], self.logger, env=self.env, check=False
        )
        if result.returncode != 0:
            return False
        return "install ok installed" in (line.strip() for line in result.stdout.splitlines())

    def install(self, name: str) -> bool:
        return self._run(["apt", "install", "-y", name])

    def refresh(self) -> bool:
        return self._run(["apt", "update"])

    def upgrade(self) -> bool:
        return self._run(["apt", "upgrade", "-y"])


class SystemdServiceManager(ServiceManager):
    def __init__(self, logger: logging.Logger) -> None:
        self.logger = logger

    def restart_service(self, name: str) -> bool:
        try:
            run_command(["systemctl", "restart", name], self.logger)
            return True
        except ExecutionError as e:
            self.logger.debug(str(e))
            return False


# ----------------------------------------------------------------
# Operator Prompt
# ----------------------------------------------------------------
class ConsolePrompt:
    """Reads the operator's answers from the terminal."""

    def confirm(self, question: str) -> bool:
        """Yes/no question; only an answer starting with "y" counts as yes."""
        answer = self.ask(f"{question} [y/N]: ")
        return answer.strip().lower().startswith("y")

    def ask(self, prompt: str) -> str:
        try:
            return console.input(f"[prompt]{escape(prompt)}[/prompt]")
        except EOFError:
            return ""


# ----------------------------------------------------------------
# Run Context and Steps
# ----------------------------------------------------------------
class StepStatus(str, Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class RunContext:
    """Everything a step may touch, built once per run."""

    config: Config
    logger: logging.Logger
    packages: PackageManager
    services: ServiceManager
    prompt: ConsolePrompt
    user: Optional[TargetUser] = None


@dataclass
class Step:
    name: str
    description: str
    action: Callable[[], StepStatus]
    fatal: bool = False


def read_package_list(path: Union[str, Path]) -> Iterator[str]:
    """Yield package names from a list file, skipping blank lines and # comments."""
    with open(path, encoding="utf-8", errors="surrogateescape") as f:
        for line in f:
            name = line.strip()
            if not name or name.startswith("#"):
                continue
            yield name


def backup_file(path: Path, logger: logging.Logger) -> Optional[Path]:
    timestamp = datetime.datetime.now().strftime("%Y%m%d%H%M%S")
    backup = path.with_name(f"{path.name}.bak.{timestamp}")
    try:
        shutil.copy2(path, backup)
        logger.debug(f"Backed up {path} to {backup}")
        return backup
    except OSError as e:
        logger.warning(f"Backup failed for {path}: {e}")
        return None


class SystemUpdater:
    """System upgrade and package installation."""

    def __init__(self, ctx: RunContext) -> None:
        self.ctx = ctx

    def upgrade_system(self) -> StepStatus:
        logger = self.ctx.logger
        logger.info("Updating system packages...")
        if not self.ctx.packages.refresh():
            logger.error("An error occurred while refreshing the package index.")
            raise UpgradeError("Package index refresh failed")
        if not self.ctx.packages.upgrade():
            logger.error("An error occurred while upgrading system packages.")
            raise UpgradeError("System upgrade failed")
        logger.info("System packages updated.")
        return StepStatus.SUCCESS

    def check_and_install(self, name: str) -> StepStatus:
        """
        Install a package unless it is already present.

        Returns:
            SKIPPED if it was already installed, SUCCESS if the install worked,
            FAILED otherwise. Failures are logged, never raised.
        """
        logger = self.ctx.logger
        try:
            if self.ctx.packages.is_installed(name):
                logger.info(f"{name} is already installed.")
                return StepStatus.SKIPPED
            logger.info(f"Installing {name}...")
            installed = self.ctx.packages.install(name)
        except ExecutionError as e:
            logger.debug(str(e))
            installed = False

        if installed:
            logger.info(f"{name} successfully installed.")
            return StepStatus.SUCCESS
        logger.error(f"Failed to install {name}.")
        return StepStatus.FAILED

    def install_package_list(self) -> StepStatus:
        logger = self.ctx.logger
        path = self.ctx.config.PACKAGE_LIST
        if not path.is_file():
            logger.info(f"Package list file {path} not found. Skipping package installation.")
            return StepStatus.SKIPPED

        logger.info(f"Reading package list from {path}")
        failed = []
        for name in read_package_list(path):
            if self.check_and_install(name) == StepStatus.FAILED:
                failed.append(name)
        if failed:
            logger.warning(f"Packages that failed to install: {', '.join(failed)}")
            return StepStatus.FAILED
        return StepStatus.SUCCESS


def upsert_managed_block(existing: str, content: str, label: str) -> str:
    """Insert content between postinstall markers, replacing an earlier block for the same label."""
    begin = f"# >>> postinstall: {label} >>>"
    end = f"# <<< postinstall: {label} <<<"
    body = content if content.endswith("\n") or not content else content + "\n"
    block = f"{begin}\n{body}{end}\n"
    pattern = re.compile(
        rf"^{re.escape(begin)}\n.*?^{re.escape(end)}(?:\n|\Z)", re.MULTILINE | re.DOTALL
    )
    if pattern.search(existing):
        return pattern.sub(lambda _: block, existing, count=1)
    if existing and not existing.endswith("\n"):
        existing += "\n"
    return existing + block


class ConfigOverlays:
    """Copies and appends the optional files found in the config directory."""

    def __init__(self, ctx: RunContext) -> None:
        self.ctx = ctx

    def update_motd(self) -> StepStatus:
        source = self.ctx.config.CONFIG_DIR / "motd.txt"
        if not source.is_file():
            self.ctx.logger.info("motd.txt not found.")
            return StepStatus.SKIPPED
        shutil.copyfile(source, self.ctx.config.MOTD_FILE)
        self.ctx.logger.info("MOTD updated.")
        return StepStatus.SUCCESS

    def customize_bashrc(self) -> StepStatus:
        return self.append_overlay("bashrc.append", ".bashrc")

    def customize_nanorc(self) -> StepStatus:
        return self.append_overlay("nanorc.append", ".nanorc")

    def append_overlay(self, source_name: str, target_name: str) -> StepStatus:
        logger = self.ctx.logger
        source = self.ctx.config.CONFIG_DIR / source_name
        if not source.is_file():
            logger.info(f"{source_name} not found.")
            return StepStatus.SKIPPED
        user = self.ctx.user
        if user is None:
            logger.warning(f"No non-root login user found; skipping {target_name}.")
            return StepStatus.SKIPPED

        target = user.home / target_name
        if self.ctx.config.MANAGED_BLOCKS:
            text = {"encoding": "utf-8", "errors": "surrogateescape"}
            existing = target.read_text(**text) if target.is_file() else ""
            content = source.read_text(**text)
            target.write_text(upsert_managed_block(existing, content, source_name), **text)
        else:
            with open(source, "rb") as src, open(target, "ab") as dst:
                shutil.copyfileobj(src, dst)
        os.chown(target, user.uid, user.gid)
        logger.info(f"{target_name} customized.")
        return StepStatus.SUCCESS


# ----------------------------------------------------------------
# SSH
# ----------------------------------------------------------------
_DIRECTIVE_RE = re.compile(r"^\s*(#?)([A-Za-z][A-Za-z0-9]*)(?:[\s=]|$)")


class SshdConfig:
    """
    Line-preserving model of an sshd_config file.

    Keywords are matched case-insensitively, as sshd does. Only the global section
    (everything before the first Match block) is rewritten; Match blocks and all
    unrelated lines and comments are kept verbatim.
    """

    def __init__(self, lines: List[str]) -> None:
        self.lines = lines

    @classmethod
    def parse(cls, text: str) -> "SshdConfig":
        return cls(text.splitlines())

    @classmethod
    def load(cls, path: Union[str, Path]) -> "SshdConfig":
        return cls.parse(Path(path).read_text(encoding="utf-8", errors="surrogateescape"))

    def to_text(self) -> str:
        return "\n".join(self.lines) + "\n"

    def _global_end(self) -> int:
        for i, line in enumerate(self.lines):
            m = _DIRECTIVE_RE.match(line)
            if m and not m.group(1) and m.group(2).lower() == "match":
                return i
        return len(self.lines)

    def settings(self) -> Dict[str, str]:
        """Effective global values keyed by lowercased keyword; the first occurrence wins."""
        values: Dict[str, str] = {}
        for line in self.lines[: self._global_end()]:
            m = _DIRECTIVE_RE.match(line)
            if not m or m.group(1):
                continue
            key = m.group(2).lower()
            value = line[m.end():].strip().lstrip("=").strip()
            values.setdefault(key, value)
        return values

    def get(self, name: str) -> Optional[str]:
        return self.settings().get(name.lower())

    def apply(self, overrides: Dict[str, str]) -> bool:
        """
        Give each directive exactly one uncommented global value.

        The first occurrence (commented or not) is rewritten in place, later ones are
        dropped, and missing directives are added just before the first Match block.

        Returns:
            True if the file content changed.
        """
        wanted = {name.lower(): f"{name} {value}" for name, value in overrides.items()}
        end = self._global_end()
        head: List[str] = []
        seen = set()
        for line in self.lines[:end]:
            m = _DIRECTIVE_RE.match(line)
            key = m.group(2).lower() if m else None
            if key not in wanted:
                head.append(line)
                continue
            if key not in seen:
                head.append(wanted[key])
                seen.add(key)
        head.extend(directive for key, directive in wanted.items() if key not in seen)

        new_lines = head + self.lines[end:]
        changed = new_lines != self.lines
        self.lines = new_lines
        return changed


class SecurityHardener:
    """SSH key registration and sshd hardening."""

    def __init__(self, ctx: RunContext) -> None:
        self.ctx = ctx

    def add_ssh_key(self) -> StepStatus:
        logger = self.ctx.logger
        config = self.ctx.config
        user = self.ctx.user
        if user is None:
            logger.warning("No non-root login user found; skipping SSH key registration.")
            return StepStatus.SKIPPED

        key = config.SSH_KEY
        if key is None:
            if not config.INTERACTIVE:
                logger.info("Non-interactive run; skipping SSH key registration.")
                return StepStatus.SKIPPED
            if not self.ctx.prompt.confirm("Would you like to add a public SSH key?"):
                logger.info("SSH key registration skipped.")
                return StepStatus.SKIPPED
            key = self.ctx.prompt.ask("Paste your public SSH key: ")

        key = key.strip()
        if not key:
            logger.warning("No SSH key provided; nothing added.")
            return StepStatus.SKIPPED

        ssh_dir = user.home / ".ssh"
        authorized_keys = ssh_dir / "authorized_keys"
        ssh_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
        prefix = ""
        if authorized_keys.is_file():
            existing = authorized_keys.read_bytes()
            if existing and not existing.endswith(b"\n"):
                prefix = "\n"
        with open(authorized_keys, "a") as f:
            f.write(f"{prefix}{key}\n")

        self.chown_tree(ssh_dir, user)
        os.chmod(ssh_dir, 0o700)
        os.chmod(authorized_keys, 0o600)
        logger.info("SSH public key added.")
        return StepStatus.SUCCESS

    @staticmethod
    def chown_tree(path: Path, user: TargetUser) -> None:
        os.chown(path, user.uid, user.gid)
        for root, dirs, files in os.walk(path):
            for name in dirs + files:
                # Like chown -R: links are re-owned, their targets are not.
                os.chown(
                    os.path.join(root, name), user.uid, user.gid, follow_symlinks=False
                )

    def harden_sshd(self) -> StepStatus:
        logger = self.ctx.logger
        path = self.ctx.config.SSHD_CONFIG
        if not path.is_file():
            logger.info("sshd_config file not found.")
            return StepStatus.SKIPPED

        sshd = SshdConfig.load(path)
        if sshd.apply(self.ctx.config.SSH_SETTINGS):
            backup_file(path, logger)
            path.write_text(sshd.to_text(), encoding="utf-8", errors="surrogateescape")
            logger.debug(f"Updated {path}")
        else:
            logger.debug(f"{path} already enforces key-based authentication")

        service = self.ctx.config.SSH_SERVICE
        if not self.ctx.services.restart_service(service):
            logger.error(f"Failed to restart the {service} service.")
            return StepStatus.FAILED
        logger.info("SSH configured to accept key-based authentication only.")
        return StepStatus.SUCCESS


# ----------------------------------------------------------------
# Orchestration
# ----------------------------------------------------------------
class PostInstallSetup:
    """Runs the provisioning steps in order and reports how each one ended."""

    def __init__(self, ctx: RunContext) -> None:
        self.ctx = ctx
        updater = SystemUpdater(ctx)
        overlays = ConfigOverlays(ctx)
        security = SecurityHardener(ctx)
        self.steps: List[Step] = [
            Step("system_update", "System update", updater.upgrade_system, fatal=True),
            Step("packages", "Package installation", updater.install_package_list),
            Step("motd", "MOTD", overlays.update_motd),
            Step("bashrc", ".bashrc customization", overlays.customize_bashrc),
            Step("nanorc", ".nanorc customization", overlays.customize_nanorc),
            Step("ssh_key", "SSH public key", security.add_ssh_key),
            Step("sshd", "SSH hardening", security.harden_sshd),
        ]
        self.results: Dict[str, StepStatus] = {}
        self.timings: Dict[str, float] = {}

    def check_root(self) -> None:
        if os.geteuid() != 0:
            self.ctx.logger.error("This script must be run as root.")
            raise PrivilegeError("This script must be run as root")

    def run_step(self, step: Step) -> StepStatus:
        self.ctx.logger.debug(f"Starting: {step.description}")
        start = time.time()
        try:
            status = step.action()
        except Exception as e:
            if step.fatal:
                raise
            self.ctx.logger.error(f"{step.description} failed: {e}")
            status = StepStatus.FAILED
        finally:
            self.timings[step.name] = time.time() - start
        self.results[step.name] = status
        return status

    def run(self) -> int:
        """
        Run the guard and every step.

        Returns:
            0 once all steps ran, whatever their individual outcome; the exit code of
            the fatal error otherwise.
        """
        logger = self.ctx.logger
        login = self.ctx.user.name if self.ctx.user else resolve_login_name() or "unknown"
        logger.info(f"Starting post-installation script. Logged user: {login}")
        try:
            self.check_root()
            for step in self.steps:
                self.run_step(step)
        except SetupError as e:
            logger.error(f"Post-installation aborted: {e}")
            return e.exit_code

        self.print_summary()
        logger.info("Post-installation script completed.")
        return 0

    def print_summary(self) -> None:
        styles = {
            StepStatus.SUCCESS: "success",
            StepStatus.SKIPPED: "warning",
            StepStatus.FAILED: "error",
        }
        table = Table(title="Post-Installation Summary", box=box.ROUNDED, style=NordColors.FROST_3)
        table.add_column("Step", style=NordColors.FROST_2)
        table.add_column("Status")
        table.add_column("Time", justify="right")
        for step in self.steps:
            status = self.results.get(step.name)
            if status is None:
                continue
            table.add_row(
                step.description,
                f"[{styles[status]}]{status.value}[/]",
                f"{self.timings.get(step.name, 0.0):.2f}s",
            )
        console.print(table)
        for step in self.steps:
            status = self.results.get(step.name)
            if status is not None:
                self.ctx.logger.debug(f"{step.description}: {status.value}")


# ----------------------------------------------------------------
# Main Entry Point
# ----------------------------------------------------------------
def run_postinstall(
    config: Config,
    packages: Optional[PackageManager] = None,
    services: Optional[ServiceManager] = None,
    prompt: Optional[ConsolePrompt] = None,
    user: Optional[TargetUser] = None,
) -> int:
    """Build the run context and execute the provisioning. Returns the process exit code."""
    logger = setup_logger(config.LOG_FILE)
    ctx = RunContext(
        config=config,
        logger=logger,
        packages=packages or AptPackageManager(logger),
        services=services or SystemdServiceManager(logger),
        prompt=prompt or ConsolePrompt(),
        user=user or resolve_target_user(),
    )
    if config.SHOW_BANNER:
        console.print(create_header())
    try:
        return PostInstallSetup(ctx).run()
    except KeyboardInterrupt:
        logger.warning("Post-installation interrupted by user.")
        return 130


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option(
    "--config-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=Path("./config"),
    show_default=True,
    help="Directory holding motd.txt, bashrc.append and nanorc.append.",
)
@click.option(
    "--package-list",
    type=click.Path(dir_okay=False, path_type=Path),
    default=Path("./lists/packages.txt"),
    show_default=True,
    help="File with one package name per line.",
)
@click.option(
    "--log-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=Path("./logs"),
    show_default=True,
    help="Directory for the per-run log file.",
)
@click.option(
    "--sshd-config",
    type=click.Path(dir_okay=False, path_type=Path),
    default=Path("/etc/ssh/sshd_config"),
    show_default=True,
    help="SSH daemon configuration to harden.",
)
@click.option("--ssh-service", default="ssh", show_default=True, help="Service restarted after hardening.")
@click.option("--ssh-key", default=None, help="Public key to register without prompting.")
@click.option("--non-interactive", is_flag=True, help="Never prompt; skip the SSH key step unless --ssh-key is given.")
@click.option("--managed-blocks", is_flag=True, help="Replace earlier rc appends instead of appending again.")
@click.option("--no-banner", is_flag=True, help="Do not print the ASCII banner.")
@click.version_option(VERSION, prog_name=APP_NAME)
def main(
    config_dir: Path,
    package_list: Path,
    log_dir: Path,
    sshd_config: Path,
    ssh_service: str,
    ssh_key: Optional[str],
    non_interactive: bool,
    managed_blocks: bool,
    no_banner: bool,
) -> None:
    """Provision a freshly installed Debian or Ubuntu machine. Must run as root."""
    install_rich_traceback(show_locals=False)
    config = Config(
        CONFIG_DIR=config_dir,
        PACKAGE_LIST=package_list,
        LOG_DIR=log_dir,
        SSHD_CONFIG=sshd_config,
        SSH_SERVICE=ssh_service,
        SSH_KEY=ssh_key,
        INTERACTIVE=not non_interactive,
        MANAGED_BLOCKS=managed_blocks,
        SHOW_BANNER=not no_banner,
    )
    sys.exit(run_postinstall(config))


if __name__ == "__main__":
    main()
