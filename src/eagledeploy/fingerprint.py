"""Operating system fingerprinting for discovered hosts.

Detection is layered:

1. TCP probe stage: short connection attempts to the SSH port and the
   Windows service ports (445, 139, 135), evaluated in that order. An open
   Windows service port means "Windows"; an SSH banner naming a known
   distribution short-circuits with that label.
2. Remote command stage: over an SSH session, run an ordered list of
   detection commands until one yields a parsed label.
3. Nothing conclusive: the label is "Unknown" and the result carries an
   error describing why.

The remote stage is retried with a fixed delay and bounded by an overall
timeout. On timeout the in-flight attempt is cancelled, not left running.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable

from .exceptions import CommandError, DetectionError, TransportError
from .logging import StructuredLogger, get_logger
from .retry import RetryConfig, RetryState, retry_with_backoff
from .ssh import Transport
from .types import UNKNOWN_OS, Credentials

WINDOWS_PORTS = (445, 139, 135)

LINUX_DISTROS = {
    "ubuntu": "Ubuntu",
    "debian": "Debian",
    "fedora": "Fedora",
    "centos": "CentOS",
}


@dataclass
class DetectionResult:
    """Outcome of fingerprinting one host.

    Attributes:
        address: Host that was fingerprinted
        os: Detected label, "Unknown" when inconclusive
        method: Name of the probe or command that produced the label
        error: Why detection was inconclusive, if it was
        attempts: Remote detection attempts made
    """

    address: str
    os: str = UNKNOWN_OS
    method: str = ""
    error: str | None = None
    attempts: int = 0


def parse_banner(banner: str) -> str:
    """Map an SSH banner to an OS label, or "" if it names none.

    Example:
        >>> parse_banner("SSH-2.0-OpenSSH_8.9p1 Ubuntu-3ubuntu0.1")
        'Linux - Ubuntu'
        >>> parse_banner("SSH-2.0-OpenSSH_for_Windows_8.1")
        'Windows'
    """
    lowered = banner.lower()
    if "openssh" in lowered and "windows" in lowered:
        return "Windows"
    for marker in ("ubuntu", "debian", "fedora"):
        if marker in lowered:
            return f"Linux - {LINUX_DISTROS[marker]}"
    return ""


def parse_windows_caption(output: str) -> str:
    """Parse the PowerShell OS caption, dropping the "Microsoft " prefix."""
    caption = output.strip()
    if "windows" not in caption.lower():
        return ""
    return caption.replace("Microsoft ", "", 1)


def _key_values(output: str, separator: str = "=") -> dict[str, str]:
    values = {}
    for line in output.splitlines():
        if separator not in line:
            continue
        key, _, value = line.partition(separator)
        values[key.strip()] = value.strip().strip('"').strip("'")
    return values


def _linux_label(name: str, version: str = "") -> str:
    if not name:
        return ""
    return f"Linux - {name} {version}" if version else f"Linux - {name}"


def parse_os_release(output: str) -> str:
    """Parse /etc/os-release NAME and VERSION_ID.

    Example:
        >>> parse_os_release('NAME="Ubuntu"\\nVERSION_ID="22.04"\\n')
        'Linux - Ubuntu 22.04'
    """
    values = _key_values(output)
    return _linux_label(values.get("NAME", ""), values.get("VERSION_ID", ""))


def parse_lsb_release(output: str) -> str:
    """Parse lsb_release -a or /etc/lsb-release output."""
    values = _key_values(output)
    if values.get("DISTRIB_ID"):
        return _linux_label(values["DISTRIB_ID"], values.get("DISTRIB_RELEASE", ""))

    values = _key_values(output, separator=":")
    return _linux_label(values.get("Distributor ID", ""), values.get("Release", ""))


def parse_redhat_release(output: str) -> str:
    """Parse /etc/redhat-release content."""
    for line in output.splitlines():
        if line.strip():
            return _linux_label(line.strip())
    return ""


def parse_hostnamectl(output: str) -> str:
    """Parse the "Operating System:" line of hostnamectl."""
    for line in output.splitlines():
        line = line.strip()
        if line.startswith("Operating System:"):
            value = line.split(":", 1)[1].strip()
            if "windows" in value.lower():
                return value
            return _linux_label(value)
    return ""


def parse_uname(output: str) -> str:
    """Map uname -a output to a distribution label, "Linux - Generic" otherwise."""
    lowered = output.lower()
    if not lowered.strip():
        return ""
    for marker, name in LINUX_DISTROS.items():
        if marker in lowered:
            return f"Linux - {name}"
    return "Linux - Generic"


@dataclass
class DetectionMethod:
    """One remote detection command and its output parser.

    Attributes:
        name: Method name reported in DetectionResult.method
        command: Command run over the session
        parse: Maps command output to a label, "" when inconclusive
    """

    name: str
    command: str
    parse: Callable[[str], str]


DEFAULT_METHODS = [
    DetectionMethod(
        "windows-caption",
        'powershell.exe -Command "(Get-CimInstance Win32_OperatingSystem).Caption"',
        parse_windows_caption,
    ),
    DetectionMethod("os-release", "cat /etc/os-release", parse_os_release),
    DetectionMethod(
        "lsb-release",
        "lsb_release -a 2>/dev/null || cat /etc/lsb-release",
        parse_lsb_release,
    ),
    DetectionMethod("redhat-release", "cat /etc/redhat-release", parse_redhat_release),
    DetectionMethod("hostnamectl", "hostnamectl", parse_hostnamectl),
    DetectionMethod("uname", "uname -a", parse_uname),
]


@dataclass
class PortProbe:
    """Result of one TCP probe."""

    port: int
    open: bool = False
    banner: str = ""


class OSFingerprinter:
    """Determine a host's operating system.

    Example:
        fingerprinter = OSFingerprinter(SSHTransport())
        result = await fingerprinter.detect("10.0.0.5", Credentials("deploy", "hunter2"))
        print(result.os)  # "Linux - Ubuntu 22.04"
    """

    def __init__(
        self,
        transport: Transport,
        ssh_port: int = 22,
        windows_ports: tuple[int, ...] = WINDOWS_PORTS,
        probe_timeout: float = 2.0,
        banner_size: int = 256,
        methods: list[DetectionMethod] | None = None,
        retry_config: RetryConfig | None = None,
        detection_timeout: float | None = 5.0,
        logger: StructuredLogger | None = None,
    ) -> None:
        """Initialize the fingerprinter.

        Args:
            transport: Transport used for the remote command stage
            ssh_port: Port probed for an SSH banner and used for sessions
            windows_ports: Ports whose availability indicates Windows
            probe_timeout: Timeout for each TCP probe and banner read
            banner_size: Maximum banner bytes read from the SSH port
            methods: Remote detection methods in the order tried
            retry_config: Retry policy for the remote stage (3 attempts,
                fixed 2s delay by default)
            detection_timeout: Overall bound on the remote stage in seconds;
                None disables it
            logger: Logger for detection events
        """
        self.transport = transport
        self.ssh_port = ssh_port
        self.windows_ports = windows_ports
        self.probe_timeout = probe_timeout
        self.banner_size = banner_size
        self.methods = list(methods) if methods is not None else list(DEFAULT_METHODS)
        self.retry_config = retry_config or RetryConfig(max_attempts=3, initial_delay=2.0)
        self.detection_timeout = detection_timeout
        self.logger = logger or get_logger(__name__)

    async def _probe_port(self, address: str, port: int, read_banner: bool) -> PortProbe:
        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(address, port), timeout=self.probe_timeout
            )
        except (OSError, asyncio.TimeoutError):
            return PortProbe(port=port)

        banner = ""
        try:
            if read_banner:
                try:
                    data = await asyncio.wait_for(
                        reader.read(self.banner_size), timeout=self.probe_timeout
                    )
                    banner = data.decode("utf-8", errors="ignore").strip()
                except (OSError, asyncio.TimeoutError):
                    self.logger.debug("No banner received", host=address, port=port)
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except OSError:
                pass

        return PortProbe(port=port, open=True, banner=banner)

    async def probe_tcp(self, address: str) -> DetectionResult | None:
        """Run the TCP probe stage.

        All ports are probed concurrently and evaluated in order: the SSH
        port first, then the Windows ports.

        Returns:
            A conclusive DetectionResult, or None if the stage was inconclusive
        """
        ports = [self.ssh_port, *self.windows_ports]
        probes = await asyncio.gather(
            *(self._probe_port(address, port, port == self.ssh_port) for port in ports)
        )

        for probe in probes:
            if not probe.open:
                continue
            if probe.port == self.ssh_port:
                label = parse_banner(probe.banner)
                if label:
                    return DetectionResult(address=address, os=label, method=f"banner:{probe.port}")
                self.logger.debug("SSH banner inconclusive", host=address, banner=probe.banner[:60])
            elif probe.port in self.windows_ports:
                return DetectionResult(address=address, os="Windows", method=f"tcp:{probe.port}")

        return None

    async def detect_remote(self, address: str, credentials: Credentials, port: int | None = None) -> DetectionResult:
        """Run the remote command stage once.

        Raises:
            ConnectError: If the session cannot be opened
            DetectionError: If every method failed or returned nothing
        """
        port = port or self.ssh_port
        session = await self.transport.connect(address, credentials.username, credentials.password, port)
        failures: list[str] = []
        try:
            for method in self.methods:
                self.logger.event(
                    logging.DEBUG, "Detection", "Trying detection method",
                    host=address, method=method.name,
                )
                try:
                    output = await self.transport.run(session, method.command)
                except CommandError as e:
                    failures.append(f"{method.name}: {e.msg.splitlines()[0]}")
                    continue

                label = method.parse(output)
                if label:
                    return DetectionResult(address=address, os=label, method=method.name)
                failures.append(f"{method.name}: no result")
        finally:
            await self.transport.close(session)

        raise DetectionError(
            f"Unable to determine OS for host {address} ({'; '.join(failures)})",
            host=address,
            failures=failures,
        )

    async def detect(
        self,
        address: str,
        credentials: Credentials | None = None,
        port: int | None = None,
    ) -> DetectionResult:
        """Fingerprint a host.

        Never raises for connectivity or detection failures; an inconclusive
        host gets the "Unknown" label with an error description.

        Args:
            address: Host to fingerprint
            credentials: Credentials for the remote stage (skipped if incomplete)
            port: SSH port for the remote stage (defaults to ssh_port)
        """
        self.logger.event(logging.INFO, "Detection", "Detecting OS", host=address)

        result = await self.probe_tcp(address)
        if result is not None:
            self.logger.event(
                logging.INFO, "Detection", "OS detected",
                host=address, os=result.os, method=result.method,
            )
            return result

        if credentials is None or not credentials.is_complete:
            return DetectionResult(
                address=address,
                error="TCP probes inconclusive and no credentials for remote detection",
            )

        state = RetryState(name=address)
        try:
            result = await asyncio.wait_for(
                retry_with_backoff(
                    lambda: self.detect_remote(address, credentials, port),
                    self.retry_config,
                    name=address,
                    retry_on=(TransportError, DetectionError),
                    state=state,
                ),
                timeout=self.detection_timeout,
            )
        except asyncio.TimeoutError:
            self.logger.event(
                logging.WARNING, "Detection", "OS detection timed out",
                host=address, timeout=self.detection_timeout, attempts=state.attempts,
            )
            return DetectionResult(
                address=address,
                error=f"OS detection timed out after {self.detection_timeout}s",
                attempts=state.attempts,
            )
        except (TransportError, DetectionError) as e:
            self.logger.event(
                logging.WARNING, "Detection", "OS detection failed",
                host=address, error=e, attempts=state.attempts,
            )
            return DetectionResult(address=address, error=str(e), attempts=state.attempts)

        result.attempts = state.attempts
        self.logger.event(
            logging.INFO, "Detection", "OS detected",
            host=address, os=result.os, method=result.method,
        )
        return result
