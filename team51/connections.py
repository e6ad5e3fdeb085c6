"""
SSH and SFTP access to Pressable and WordPress.com (Atomic) sites.

Pressable logins use the concierge@wordpress.com SFTP user of the site,
WordPress.com logins the site's first SSH user. Either password is reset
through the host's API on first use and kept for the rest of the process,
so several connections to the same site share one reset.
"""

import logging
import time
from typing import Callable, Dict, Optional, Tuple

import paramiko

from team51.clients.pressable_client import PressableClient
from team51.clients.wpcom_client import WPCOMClient

logger = logging.getLogger(__name__)

PRESSABLE_SSH_HOST = "ssh.atomicsites.net"
PRESSABLE_SFTP_HOST = "sftp.pressable.com"
WPCOM_SSH_HOST = "sftp.wp.com"
CONCIERGE_EMAIL = "concierge@wordpress.com"
SSH_PORT = 22

SFTP_ONLY_RESPONSE = "This service allows sftp connections only.\n"


class ConnectionHelperError(Exception):
    """Raised when an SSH/SFTP session can't be established."""


_login_cache: Dict[int, Tuple[str, str]] = {}
_wpcom_login_cache: Dict[int, Tuple[str, str]] = {}


def get_login_data(pressable: PressableClient, site_id: int) -> Tuple[str, str]:
    """Return (username, password) for the site's concierge SFTP user."""
    if site_id not in _login_cache:
        sftp_user = pressable.get_sftp_user_by_email(site_id, CONCIERGE_EMAIL)
        if sftp_user is None:
            raise ConnectionHelperError(f"Could not find the Pressable SFTP user {CONCIERGE_EMAIL} on site {site_id}")

        password = pressable.reset_sftp_password(site_id, sftp_user.username)
        _login_cache[site_id] = (sftp_user.username, password)

    return _login_cache[site_id]


def get_wpcom_login_data(wpcom: WPCOMClient, site_id: int) -> Tuple[str, str]:
    """Return (username, password) for the first SSH user of a WordPress.com site."""
    if site_id not in _wpcom_login_cache:
        users = wpcom.list_ssh_users(site_id)
        if not users:
            raise ConnectionHelperError(f"There is no SFTP user added to the WordPress.com site {site_id}")

        password = wpcom.reset_ssh_password(site_id)
        _wpcom_login_cache[site_id] = (users[0], password)

    return _wpcom_login_cache[site_id]


def clear_login_cache():
    _login_cache.clear()
    _wpcom_login_cache.clear()


class SSHConnection:
    """
    A password-authenticated SSH session.

    Usage:
        with SSHConnection(host, username, password) as ssh:
            status, output = ssh.exec("ls -la")
    """

    def __init__(self, host: str, username: str, password: str, port: int = SSH_PORT, timeout: float = 10):
        self.host = host
        self.username = username
        self.client = paramiko.SSHClient()
        self.client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            self.client.connect(host, port=port, username=username, password=password, timeout=timeout)
        except paramiko.AuthenticationException as e:
            raise ConnectionHelperError(f"SSH authentication failed for {username}@{host}") from e
        except (paramiko.SSHException, OSError) as e:
            raise ConnectionHelperError(f"SSH connection error for {host}: {e}") from e
        self._closed = False

    def exec(self, command: str, stream: Optional[Callable[[str], None]] = None, timeout: Optional[float] = None) -> Tuple[int, str]:
        """
        Run a command and return (exit_status, output).

        When ``stream`` is given, output is also passed to it chunk by chunk
        as it arrives (used for long-running WP-CLI commands).
        """
        stdin, stdout, stderr = self.client.exec_command(command, timeout=timeout, get_pty=stream is not None)
        chunks = []
        if stream is not None:
            for line in iter(stdout.readline, ""):
                chunks.append(line)
                stream(line)
        else:
            chunks.append(stdout.read().decode("utf-8", errors="replace"))

        exit_status = stdout.channel.recv_exit_status()
        return exit_status, "".join(chunks)

    def open_sftp(self) -> paramiko.SFTPClient:
        return self.client.open_sftp()

    def close(self):
        if not self._closed:
            self.client.close()
            self._closed = True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


class PressableConnection(SSHConnection):
    """
    An SSH session on a Pressable site.

    Usage:
        with PressableConnection.for_site(pressable, site.id) as ssh:
            status, output = ssh.exec("wp option get home")
    """

    @classmethod
    def for_site(cls, pressable: PressableClient, site_id: int, host: str = PRESSABLE_SSH_HOST) -> "PressableConnection":
        username, password = get_login_data(pressable, site_id)
        return cls(host, username, password)


class WPCOMConnection(SSHConnection):
    """An SSH session on a WordPress.com Atomic site."""

    @classmethod
    def for_site(cls, wpcom: WPCOMClient, site_id: int, host: str = WPCOM_SSH_HOST) -> "WPCOMConnection":
        username, password = get_wpcom_login_data(wpcom, site_id)
        return cls(host, username, password)

    def is_ready(self) -> bool:
        """
        Whether the site accepts shell commands yet.

        Freshly transferred sites authenticate SSH logins but answer every
        command with an SFTP-only notice for a while.
        """
        status, output = self.exec("ls -la")
        return status == 0 and output != SFTP_ONLY_RESPONSE

    @classmethod
    def wait_for_site(
        cls,
        wpcom: WPCOMClient,
        site_id: int,
        attempts: int = 10,
        interval: float = 5,
        sleep: Callable[[float], None] = time.sleep,
    ) -> "WPCOMConnection":
        """
        Connect once the site accepts shell commands.

        Raises:
            ConnectionHelperError: If it still doesn't after ``attempts`` tries
        """
        for attempt in range(1, attempts + 1):
            connection = cls.for_site(wpcom, site_id)
            if connection.is_ready():
                return connection
            connection.close()
            logger.info(f"WordPress.com site {site_id} does not accept SSH commands yet (attempt {attempt})")
            sleep(interval)

        raise ConnectionHelperError(f"WordPress.com site {site_id} does not accept SSH commands")
