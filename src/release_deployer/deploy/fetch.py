"""Fetch utilities for downloading release assets and unpacking them."""

from __future__ import annotations

import os
import shutil
import time
import zipfile
from pathlib import Path
from typing import Iterable, Optional

import httpx
import structlog

from release_deployer.core.exceptions import DownloadError, ExtractionError
from release_deployer.deploy.resolver import api_headers

# ZIP local file header and end-of-central-directory signatures
ZIP_LOCAL_HEADER = b"PK\x03\x04"
ZIP_EOCD = b"PK\x05\x06"
EOCD_MIN_SIZE = 22
FRAMING_BOUNDARY = b"--"


def _write_stream_to_file(stream_iter: Iterable[bytes], dest_path: Path, max_size_bytes: int) -> int:
    """Write streaming bytes to file with max-size enforcement.

    Returns number of bytes written.
    """
    tmp_file = dest_path.with_suffix(".downloading")
    bytes_written = 0
    try:
        with open(tmp_file, "wb") as f:
            for chunk in stream_iter:
                if not chunk:
                    continue
                bytes_written += len(chunk)
                if bytes_written > max_size_bytes:
                    raise DownloadError("Asset exceeds maximum allowed size")
                f.write(chunk)
    except BaseException:
        tmp_file.unlink(missing_ok=True)
        raise
    os.replace(tmp_file, dest_path)
    return bytes_written


def _archive_end(raw: bytes, start: int) -> int:
    """Offset one past the archive that begins at ``start``.

    Uses the end-of-central-directory record when present; otherwise falls back
    to the last ``--`` boundary marker of the surrounding framing.
    """
    eocd = raw.rfind(ZIP_EOCD, start)
    if eocd != -1 and eocd + EOCD_MIN_SIZE <= len(raw):
        comment_len = int.from_bytes(raw[eocd + 20:eocd + 22], "little")
        return min(len(raw), eocd + EOCD_MIN_SIZE + comment_len)
    boundary = raw.rfind(FRAMING_BOUNDARY, start)
    return boundary if boundary != -1 else len(raw)


def sanitize_archive(raw: bytes) -> bytes:
    """Strip transfer framing from around a ZIP payload.

    Raises ExtractionError when no archive signature is present or nothing
    remains after stripping.
    """
    start = raw.find(ZIP_LOCAL_HEADER)
    if start == -1:
        raise ExtractionError("ZIP header not found in file")
    payload = raw[start:_archive_end(raw, start)]
    if not payload:
        raise ExtractionError("File is empty after cleaning")
    return payload


def _safe_extract_zip(zf: zipfile.ZipFile, dest_dir: Path) -> None:
    """Safely extract a zipfile to dest_dir, preventing zip-slip."""
    dest_dir.mkdir(parents=True, exist_ok=True)
    base = dest_dir.resolve()
    for member in zf.infolist():
        member_path = Path(member.filename)
        if member_path.is_absolute() or ".." in member_path.parts:
            raise ExtractionError("Zip contains unsafe paths (zip-slip)")
        target = (base / member_path).resolve()
        if base != target and base not in target.parents:
            raise ExtractionError("Zip extraction escaped destination (zip-slip)")
        if member.is_dir():
            target.mkdir(parents=True, exist_ok=True)
        else:
            target.parent.mkdir(parents=True, exist_ok=True)
            with zf.open(member, "r") as src, open(target, "wb") as dst:
                shutil.copyfileobj(src, dst)
            mode = (member.external_attr >> 16) & 0o777
            if mode:
                os.chmod(target, mode)


def clear_directory(path: Path) -> None:
    """Remove everything inside ``path`` but keep the directory."""
    for entry in path.iterdir():
        if entry.is_dir() and not entry.is_symlink():
            shutil.rmtree(entry)
        else:
            entry.unlink()


def extract_archive(archive_path: Path, target_dir: Path) -> None:
    """Unpack ``archive_path`` into ``target_dir``.

    On failure the target directory is emptied again before ExtractionError
    propagates.
    """
    try:
        with zipfile.ZipFile(archive_path, "r") as zf:
            _safe_extract_zip(zf, target_dir)
    except Exception as e:
        # Corrupt deflate data, encrypted members and unknown compression land here too
        if target_dir.is_dir():
            clear_directory(target_dir)
        if isinstance(e, ExtractionError):
            raise
        raise ExtractionError(f"unzip failed: {e}")


class ReleaseFetcher:
    """Downloads release assets and unpacks them into a release directory."""

    def __init__(
        self,
        client: httpx.Client,
        token: Optional[str] = None,
        *,
        max_size_bytes: int = 512 * 1024 * 1024,
        total_timeout_sec: float = 300.0,
        max_retries: int = 3,
        backoff_base: float = 0.5,
        logger=None,
    ):
        self.client = client
        self.token = token
        self.max_size_bytes = max_size_bytes
        self.total_timeout_sec = total_timeout_sec
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.logger = (logger or structlog.get_logger()).bind(component="ReleaseFetcher")

    def download(self, url: str, dest_path: Path) -> Path:
        """Fetch ``url`` to ``dest_path`` with bounded retries.

        Enforces a maximum size and a total timeout across retries.
        """
        dest_path.parent.mkdir(parents=True, exist_ok=True)
        headers = api_headers(self.token, "application/octet-stream")

        start = time.time()
        attempt = 0
        last_error: Optional[Exception] = None

        while attempt < self.max_retries and (time.time() - start) < self.total_timeout_sec:
            attempt += 1
            try:
                self.logger.info("Downloading release", url=url, dest=str(dest_path), attempt=attempt)
                timeout = httpx.Timeout(self.total_timeout_sec - (time.time() - start))
                with self.client.stream("GET", url, headers=headers, timeout=timeout, follow_redirects=True) as resp:
                    resp.raise_for_status()
                    bytes_written = _write_stream_to_file(resp.iter_bytes(), dest_path, self.max_size_bytes)
                self.logger.info("Downloaded release", bytes=bytes_written)
                return dest_path
            except DownloadError:
                # Oversized assets will not shrink on retry
                raise
            except (httpx.HTTPError, OSError) as e:
                last_error = e
                elapsed = time.time() - start
                remaining = self.total_timeout_sec - elapsed
                self.logger.warning(
                    "Fetch attempt failed",
                    attempt=attempt,
                    error=str(e),
                    remaining_time_sec=max(0.0, remaining),
                )
                if attempt >= self.max_retries or remaining <= 0:
                    break
                sleep_for = min(self.backoff_base * (2 ** (attempt - 1)), max(0.0, remaining))
                time.sleep(sleep_for)

        raise DownloadError(f"Failed to fetch release asset after {attempt} attempts: {last_error}")

    def extract(self, archive_path: Path, target_dir: Path) -> None:
        """Sanitize the downloaded archive in place and unpack it.

        The archive is removed after a successful extraction and kept for
        diagnosis when extraction fails.
        """
        raw = archive_path.read_bytes()
        cleaned = sanitize_archive(raw)
        if len(cleaned) != len(raw):
            self.logger.debug("Stripped transfer framing", raw_bytes=len(raw), archive_bytes=len(cleaned))
            archive_path.write_bytes(cleaned)
        self.logger.debug("File size after cleaning", bytes=len(cleaned))

        try:
            extract_archive(archive_path, target_dir)
        except ExtractionError:
            self.logger.error("Failed to extract release; keeping archive for diagnosis", archive=str(archive_path))
            raise

        archive_path.unlink(missing_ok=True)
        self.logger.debug("Release extracted successfully", target=str(target_dir))

    def fetch_and_extract(self, url: str, archive_path: Path, target_dir: Path) -> Path:
        self.download(url, archive_path)
        self.extract(archive_path, target_dir)
        return target_dir
