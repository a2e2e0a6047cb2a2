from __future__ import annotations

import ftplib
import logging
import threading
from concurrent.futures import Future
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Tuple

from core.errors import ConnectivityError, ValidationError
from core.exporters.csv_feed import FEED_FILENAME
from core.models import PROTOCOL_SFTP, TestOutcome, UploadCredentials, UploadOutcome

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT = 30
REMOTE_FILENAME = FEED_FILENAME


def remote_dir(credentials: UploadCredentials) -> str:
    path = (credentials.remote_path or "").strip().strip("/")
    return f"/{path}" if path else "/"


def _path_error(path: str) -> ConnectivityError:
    return ConnectivityError(
        f'Directory inaccessible: remote path "{path}" is not accessible or does not exist.',
        kind="path",
    )


class FtpSession:
    def __init__(self, ftp: ftplib.FTP, credentials: UploadCredentials) -> None:
        self.ftp = ftp
        self.directory = remote_dir(credentials)

    def change_dir(self) -> None:
        if self.directory == "/":
            return  # login directory
        try:
            self.ftp.cwd(self.directory)
        except ftplib.all_errors:
            raise _path_error(self.directory)

    def put(self, local_path: Path) -> None:
        self.change_dir()
        try:
            with open(local_path, "rb") as fh:
                self.ftp.storbinary(f"STOR {REMOTE_FILENAME}", fh)
        except ftplib.all_errors as exc:
            raise ConnectivityError(f"FTP transfer failed: {exc}", kind="transfer") from exc


class SftpSession:
    def __init__(self, sftp, credentials: UploadCredentials, errors: Tuple[type, ...] = (OSError,)) -> None:
        self.sftp = sftp
        self.directory = remote_dir(credentials)
        # paramiko.SSHException is not an OSError (dropped connections).
        self.errors = errors

    def change_dir(self) -> None:
        try:
            self.sftp.stat(self.directory)
        except self.errors:
            raise _path_error(self.directory)

    def put(self, local_path: Path) -> None:
        self.change_dir()
        target = f"{self.directory.rstrip('/')}/{REMOTE_FILENAME}"
        try:
            self.sftp.put(str(local_path), target)
        except self.errors as exc:
            raise ConnectivityError(f"SFTP transfer failed: {exc}", kind="transfer") from exc


def _close_ftp(ftp: ftplib.FTP) -> None:
    if ftp.sock is None:
        ftp.close()
        return
    try:
        ftp.quit()
    except ftplib.all_errors:
        ftp.close()


@contextmanager
def ftp_session(credentials: UploadCredentials, timeout: int = CONNECT_TIMEOUT) -> Iterator[FtpSession]:
    """Connected, logged-in, passive-mode FTP(S) session; always closed on exit."""
    label = credentials.label
    if credentials.use_tls and not hasattr(ftplib, "FTP_TLS"):
        raise ConnectivityError(
            "FTPS is not available: this Python build has no SSL support. Use standard FTP instead.",
            kind="unavailable",
        )
    ftp = ftplib.FTP_TLS(timeout=timeout) if credentials.use_tls else ftplib.FTP(timeout=timeout)
    try:
        try:
            ftp.connect(credentials.host, credentials.port, timeout=timeout)
        except ftplib.all_errors as exc:
            raise ConnectivityError(
                f"Could not connect to {label} server: {credentials.host}:{credentials.port}",
                kind="connect",
            ) from exc
        try:
            ftp.login(credentials.username, credentials.password)
            if credentials.use_tls:
                ftp.prot_p()
        except ftplib.all_errors as exc:
            raise ConnectivityError(
                f"{label} authentication failed. Please check your username and password.",
                kind="auth",
            ) from exc
        ftp.set_pasv(True)
        logger.info("Connected to %s server %s:%s", label, credentials.host, credentials.port)
        yield FtpSession(ftp, credentials)
    finally:
        _close_ftp(ftp)


@contextmanager
def sftp_session(credentials: UploadCredentials, timeout: int = CONNECT_TIMEOUT) -> Iterator[SftpSession]:
    """Connected, authenticated SFTP session; always closed on exit."""
    try:
        import paramiko
    except ImportError:
        raise ConnectivityError(
            "SFTP support is not installed (paramiko). Install it or use standard FTP instead.",
            kind="unavailable",
        )

    client = paramiko.SSHClient()
    client.load_system_host_keys()
    # Marketplace endpoints are configured by host name only; unknown keys are accepted.
    client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
    try:
        try:
            client.connect(
                credentials.host,
                port=credentials.port,
                username=credentials.username,
                password=credentials.password,
                timeout=timeout,
                banner_timeout=timeout,
                auth_timeout=timeout,
                allow_agent=False,
                look_for_keys=False,
            )
        except paramiko.AuthenticationException as exc:
            raise ConnectivityError(
                "SFTP authentication failed. Please check your username and password.",
                kind="auth",
            ) from exc
        except (paramiko.SSHException, OSError) as exc:
            raise ConnectivityError(
                f"Could not connect to SFTP server: {credentials.host}:{credentials.port}",
                kind="connect",
            ) from exc
        try:
            sftp = client.open_sftp()
        except (paramiko.SSHException, OSError) as exc:
            raise ConnectivityError("Could not initialize SFTP subsystem.", kind="connect") from exc
        logger.info("Connected to SFTP server %s:%s", credentials.host, credentials.port)
        try:
            yield SftpSession(sftp, credentials, errors=(paramiko.SSHException, OSError))
        finally:
            sftp.close()
    finally:
        client.close()


def open_session(credentials: UploadCredentials, timeout: int = CONNECT_TIMEOUT):
    if credentials.protocol == PROTOCOL_SFTP:
        return sftp_session(credentials, timeout)
    return ftp_session(credentials, timeout)


class UploadDispatcher:
    """
    Pushes the finished feed to the marketplace's FTP/SFTP drop.

    Single-flight: while one upload is in progress, further upload() calls
    wait for it and get the same outcome instead of opening a second
    connection.
    """

    def __init__(self, timeout: int = CONNECT_TIMEOUT) -> None:
        self.timeout = timeout
        self._lock = threading.Lock()
        self._inflight: Optional[Future] = None

    def upload(self, file_path: Path, credentials: UploadCredentials) -> UploadOutcome:
        if not credentials.enabled:
            return UploadOutcome(attempted=False)

        with self._lock:
            inflight = self._inflight
            if inflight is None:
                inflight = self._inflight = Future()
                owner = True
            else:
                owner = False
        if not owner:
            logger.info("Upload already in progress; waiting for its outcome.")
            return inflight.result()

        try:
            outcome = self._upload(Path(file_path), credentials)
            inflight.set_result(outcome)
            return outcome
        except BaseException as exc:
            inflight.set_exception(exc)
            raise
        finally:
            with self._lock:
                self._inflight = None

    def _upload(self, file_path: Path, credentials: UploadCredentials) -> UploadOutcome:
        try:
            credentials.validate()
        except ValidationError as exc:
            logger.warning("Upload skipped: %s", exc)
            return UploadOutcome(attempted=True, success=False, error=str(exc))
        if not file_path.is_file():
            return UploadOutcome(attempted=True, success=False, error=f"CSV file not found: {file_path}")

        try:
            with open_session(credentials, self.timeout) as session:
                session.put(file_path)
        except ConnectivityError as exc:
            logger.warning("%s upload to %s failed: %s", credentials.label, credentials.host, exc)
            return UploadOutcome(attempted=True, success=False, error=str(exc))
        except Exception as exc:
            logger.exception("%s upload to %s failed unexpectedly", credentials.label, credentials.host)
            return UploadOutcome(attempted=True, success=False, error=f"{credentials.label} upload failed: {exc}")
        logger.info(
            "Uploaded %s to %s:%s%s",
            file_path.name,
            credentials.host,
            credentials.port,
            remote_dir(credentials),
        )
        return UploadOutcome(attempted=True, success=True)

    def test_connection(self, credentials: UploadCredentials) -> TestOutcome:
        """Connect, authenticate and check the remote path without transferring anything."""
        try:
            credentials.validate()
        except ValidationError as exc:
            return TestOutcome(success=False, message=str(exc))

        label = credentials.label
        try:
            with open_session(credentials, self.timeout) as session:
                session.change_dir()
        except ConnectivityError as exc:
            if exc.kind == "path":
                message = (
                    f'Connection successful, but remote path "{remote_dir(credentials)}" '
                    "is not accessible or does not exist."
                )
            else:
                message = str(exc)
            logger.info("Connection test against %s failed (%s): %s", credentials.host, exc.kind, message)
            return TestOutcome(success=False, message=message)
        except Exception as exc:
            logger.exception("Connection test against %s failed unexpectedly", credentials.host)
            return TestOutcome(success=False, message=f"{label} connection test failed: {exc}")
        return TestOutcome(
            success=True,
            message=f"{label} connection successful! The server and credentials are working correctly.",
        )
