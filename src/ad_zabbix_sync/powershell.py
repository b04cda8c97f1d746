"""
PowerShell script runners.

The directory lister needs the ActiveDirectory module, which only exists
on Windows. Scripts run either on a remote Windows host over WinRM or
through a local pwsh/powershell executable.
"""

import asyncio
import logging
import shutil
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class ScriptResult:
    """Result of one PowerShell script run."""
    success: bool
    target: str
    stdout: str = ""
    stderr: str = ""
    exit_code: Optional[int] = None
    duration_seconds: float = 0.0
    error: Optional[str] = None


class WinRMPowerShellRunner:
    """
    Run PowerShell on a Windows host via WinRM.

    Uses the pywinrm library. Supports NTLM, Kerberos and certificate
    transports.
    """

    def __init__(
        self,
        hostname: str,
        username: str = "",
        password: str = "",
        port: int = 5985,
        use_ssl: bool = False,
        verify_ssl: bool = True,
        transport: str = "ntlm",
        cert_pem: Optional[str] = None,
        cert_key_pem: Optional[str] = None,
    ):
        """
        Initialize runner.

        Args:
            hostname: Windows host with the ActiveDirectory module (usually a DC)
            username: DOMAIN\\user or user@domain
            password: Password for username
            port: WinRM port (5985 HTTP, 5986 HTTPS)
            use_ssl: Use HTTPS for WinRM
            verify_ssl: Validate the WinRM server certificate
            transport: ntlm, kerberos or certificate
            cert_pem: Client certificate file (certificate transport)
            cert_key_pem: Client certificate key file (certificate transport)
        """
        self.hostname = hostname
        self.username = username
        self.password = password
        self.port = port
        self.use_ssl = use_ssl
        self.verify_ssl = verify_ssl
        self.transport = transport
        self.cert_pem = cert_pem
        self.cert_key_pem = cert_key_pem
        self._session = None

    def _get_session(self):
        """
        Get or create WinRM session.

        Returns:
            winrm.Session object
        """
        try:
            import winrm
        except ImportError:
            raise ImportError(
                "pywinrm is required for WinRM directory queries. "
                "Install with: pip install pywinrm"
            )

        if self._session is None:
            protocol = "https" if self.use_ssl else "http"
            endpoint = f"{protocol}://{self.hostname}:{self.port}/wsman"

            kwargs = {}
            if self.transport == "certificate":
                kwargs["cert_pem"] = self.cert_pem
                kwargs["cert_key_pem"] = self.cert_key_pem

            self._session = winrm.Session(
                endpoint,
                auth=(self.username, self.password),
                transport=self.transport,
                server_cert_validation='validate' if self.verify_ssl else 'ignore',
                **kwargs
            )

        return self._session

    def _run_sync(self, script: str) -> Dict[str, Any]:
        """Synchronous script execution (runs in thread pool)."""
        session = self._get_session()
        result = session.run_ps(script)

        return {
            "status_code": result.status_code,
            "std_out": result.std_out.decode('utf-8', errors='replace') if result.std_out else "",
            "std_err": result.std_err.decode('utf-8', errors='replace') if result.std_err else "",
        }

    async def run_script(self, script: str, timeout: int = 120) -> ScriptResult:
        """
        Execute PowerShell script on the remote host.

        Args:
            script: PowerShell source
            timeout: Execution timeout in seconds

        Returns:
            ScriptResult with script output
        """
        start_time = datetime.now(timezone.utc)

        try:
            # pywinrm is synchronous
            loop = asyncio.get_running_loop()
            output = await asyncio.wait_for(
                loop.run_in_executor(None, self._run_sync, script),
                timeout=timeout
            )
            duration = (datetime.now(timezone.utc) - start_time).total_seconds()

            return ScriptResult(
                success=output["status_code"] == 0,
                target=self.hostname,
                stdout=output["std_out"],
                stderr=output["std_err"],
                exit_code=output["status_code"],
                duration_seconds=duration,
                error=(output["std_err"].strip() or f"exit code {output['status_code']}") if output["status_code"] != 0 else None,
            )

        except asyncio.TimeoutError:
            duration = (datetime.now(timezone.utc) - start_time).total_seconds()
            return ScriptResult(
                success=False,
                target=self.hostname,
                duration_seconds=duration,
                error=f"Execution timed out after {timeout}s"
            )

        except ImportError:
            raise

        except Exception as e:
            duration = (datetime.now(timezone.utc) - start_time).total_seconds()
            logger.exception(f"Script execution failed on {self.hostname}")
            return ScriptResult(
                success=False,
                target=self.hostname,
                duration_seconds=duration,
                error=str(e)
            )


class LocalPowerShellRunner:
    """Run PowerShell through a local pwsh or powershell executable."""

    def __init__(self, executable: Optional[str] = None):
        self.executable = executable or shutil.which("pwsh") or shutil.which("powershell")

    def _command(self, script: str) -> List[str]:
        return [self.executable, "-NoProfile", "-NonInteractive", "-Command", script]

    async def run_script(self, script: str, timeout: int = 120) -> ScriptResult:
        """
        Execute PowerShell script locally.

        Args:
            script: PowerShell source
            timeout: Execution timeout in seconds

        Returns:
            ScriptResult with script output
        """
        if not self.executable:
            return ScriptResult(
                success=False,
                target="localhost",
                error="No pwsh or powershell executable found on PATH",
            )

        start_time = datetime.now(timezone.utc)

        try:
            proc = await asyncio.create_subprocess_exec(
                *self._command(script),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            return ScriptResult(success=False, target="localhost", error=str(e))

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            duration = (datetime.now(timezone.utc) - start_time).total_seconds()
            return ScriptResult(
                success=False,
                target="localhost",
                duration_seconds=duration,
                error=f"Execution timed out after {timeout}s"
            )

        duration = (datetime.now(timezone.utc) - start_time).total_seconds()
        stdout_text = stdout.decode('utf-8', errors='replace')
        stderr_text = stderr.decode('utf-8', errors='replace')

        return ScriptResult(
            success=proc.returncode == 0,
            target="localhost",
            stdout=stdout_text,
            stderr=stderr_text,
            exit_code=proc.returncode,
            duration_seconds=duration,
            error=(stderr_text.strip() or f"exit code {proc.returncode}") if proc.returncode != 0 else None,
        )
