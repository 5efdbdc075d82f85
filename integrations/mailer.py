"""
GATHERLY - Email Handle

Outbound mail relay reached over SMTP. Connect and probe open a short
session (EHLO, optional STARTTLS and login, NOOP) and close it again; no
session is held between checks. ``smtplib`` is blocking, so each session
runs in a worker thread.
"""
import asyncio
import logging
import smtplib
from typing import Optional

from core.errors import SubsystemConnectionError
from core.subsystems import Criticality, SubsystemHandleBase, SubsystemStatus


logger = logging.getLogger("gatherly.integrations.mailer")

SMTP_OK = 250


class EmailHandle(SubsystemHandleBase):
    """Subsystem handle for the SMTP relay."""

    def __init__(
        self,
        host: str,
        port: int = 587,
        starttls: bool = True,
        username: Optional[str] = None,
        password: Optional[str] = None,
        criticality: Criticality = Criticality.OPTIONAL,
        name: str = "email",
        timeout: float = 5.0,
    ):
        super().__init__(name, criticality)
        self.host = host
        self.port = port
        self.starttls = starttls
        self.username = username
        self.password = password
        self.timeout = timeout

    def _session(self) -> int:
        """Run one EHLO/NOOP exchange and return the NOOP reply code."""
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
            smtp.ehlo()
            if self.starttls:
                smtp.starttls()
                smtp.ehlo()
            if self.username:
                smtp.login(self.username, self.password or "")
            code, _ = smtp.noop()
            return code

    async def _open(self) -> None:
        code = await asyncio.to_thread(self._session)
        if code != SMTP_OK:
            raise SubsystemConnectionError(
                f"SMTP relay {self.host}:{self.port} answered NOOP with {code}",
                subsystem=self.name,
            )
        logger.info(f"SMTP relay reachable at {self.host}:{self.port}")

    async def _ping(self) -> SubsystemStatus:
        code = await asyncio.to_thread(self._session)
        if code == SMTP_OK:
            return SubsystemStatus.connected()
        return SubsystemStatus.disconnected(f"NOOP {code}")
