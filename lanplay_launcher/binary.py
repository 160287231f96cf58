"""
lan-play binary acquisition - download on first run.
"""

import os
import stat
import sys
from pathlib import Path
from typing import Optional
from urllib.parse import urljoin

import httpx

from .console import console, log
from .exceptions import DownloadError

USER_AGENT = "lan-play-bridge-launcher"
MAX_REDIRECTS = 5
REDIRECT_STATUSES = (301, 302, 303, 307, 308)
DOWNLOAD_CHUNK_SIZE = 64 * 1024

NPCAP_DLL_PATHS = [
    r"C:\Windows\System32\Npcap\wpcap.dll",
    r"C:\Windows\System32\wpcap.dll",
]


class BinaryAcquirer:
    """Ensures the lan-play executable exists locally, downloading it if missing."""

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None, timeout: float = 300.0):
        """
        Args:
            transport: Optional httpx transport (tests pass a MockTransport)
            timeout: Per-operation network timeout in seconds
        """
        self.transport = transport
        self.timeout = timeout

    async def ensure(self, path, url: str) -> Path:
        """
        Make sure an executable is present at path.

        A file that already exists is trusted as-is. Otherwise the binary is
        downloaded from url, following up to MAX_REDIRECTS redirects. The body
        is streamed to a ".part" file next to path and only renamed into place
        once it has fully arrived.

        Raises:
            DownloadError: If the download fails; no partial file is left behind
        """
        path = Path(path)
        if path.exists():
            log(f"lan-play binary found: {path}")
            return path

        partial = partial_path(path)
        log(f"Downloading lan-play from {url} ...")
        try:
            with console.status("[bold green]Downloading lan-play...", spinner="dots"):
                await self._download(url, partial)
            if not sys.platform.startswith("win"):
                self._set_executable_permissions(partial)
            os.replace(partial, path)
        except (httpx.HTTPError, httpx.InvalidURL, OSError) as e:
            raise DownloadError(f"Failed to download lan-play: {e}") from e
        finally:
            # Also runs on cancellation (Ctrl-C mid-download)
            self._discard(partial)

        log("Download complete.", "green")
        return path

    async def _download(self, url: str, path: Path):
        """Follow redirects by hand and stream the final 200 response to path"""
        async with httpx.AsyncClient(
            transport=self.transport,
            timeout=self.timeout,
            follow_redirects=False,
            headers={"User-Agent": USER_AGENT},
        ) as client:
            current = url
            for _ in range(MAX_REDIRECTS + 1):
                async with client.stream("GET", current) as response:
                    location = response.headers.get("location")
                    if response.status_code in REDIRECT_STATUSES and location:
                        current = urljoin(current, location)
                        continue
                    if response.status_code != 200:
                        raise DownloadError(f"Failed to download lan-play: HTTP {response.status_code}")

                    with open(path, "wb") as f:
                        async for chunk in response.aiter_bytes(chunk_size=DOWNLOAD_CHUNK_SIZE):
                            if chunk:
                                f.write(chunk)
                    return
        raise DownloadError("Failed to download lan-play: Too many redirects")

    @staticmethod
    def _discard(path: Path):
        """Remove a partial download"""
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            log(f"Could not remove partial download {path}: {e}", "yellow")

    @staticmethod
    def _set_executable_permissions(path: Path):
        """Mark the binary executable (rwxr-xr-x)"""
        mode = os.stat(path).st_mode
        os.chmod(path, mode | stat.S_IRUSR | stat.S_IWUSR | stat.S_IXUSR | stat.S_IRGRP | stat.S_IXGRP | stat.S_IROTH | stat.S_IXOTH)


def partial_path(path: Path) -> Path:
    """Where an in-progress download of path is written"""
    return path.with_name(path.name + ".part")


def npcap_installed() -> bool:
    """Check the usual Npcap install locations (Windows only)"""
    return any(os.path.exists(p) for p in NPCAP_DLL_PATHS)


def warn_if_npcap_missing():
    """lan-play captures packets through Npcap on Windows; warn if it looks absent"""
    if not sys.platform.startswith("win") or npcap_installed():
        return
    log("WARNING: Npcap does not appear to be installed.", "yellow")
    log("lan-play requires Npcap to capture network packets.", "yellow")
    log("Download from: https://npcap.com/#download", "yellow")
    log('Install with "WinPcap API-compatible Mode" checked.', "yellow")
    log("Continuing anyway - lan-play will fail if Npcap is truly missing.", "yellow")
