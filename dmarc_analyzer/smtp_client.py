import ssl
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from smtplib import SMTP
from typing import ContextManager, Generator, Optional

import structlog

from dmarc_analyzer.notification import Notification

logger = structlog.get_logger()


@dataclass
class ConnectionConfig:
    username: str
    password: str
    host: str = "localhost"
    port: int = 587


class _EstablishedSmtpConnection:
    def __init__(self, smtp: SMTP):
        self._smtp = smtp

    def send_notification(self, notification: Notification) -> None:
        self._smtp.sendmail(
            notification.sender, [notification.recipient], notification.as_bytes()
        )


ConnectionManager = ContextManager[_EstablishedSmtpConnection]


@contextmanager
def smtp_connection(
    connection: ConnectionConfig,
) -> Generator[_EstablishedSmtpConnection, None, None]:
    context = ssl.create_default_context()
    context.check_hostname = True
    with SMTP(connection.host, connection.port) as smtp:
        smtp.starttls(context=context)
        smtp.login(connection.username, connection.password)
        yield _EstablishedSmtpConnection(smtp)


def write_to_outbox(notification: Notification, outbox: Path) -> Path:
    outbox.mkdir(parents=True, exist_ok=True)
    path = outbox / f"{notification.id}.eml"
    path.write_bytes(notification.as_bytes())
    return path


def deliver(
    notification: Notification,
    *,
    connection: Optional[ConnectionConfig] = None,
    outbox: Optional[Path] = None,
) -> Optional[Path]:
    """Send ``notification`` or, if an outbox is given, write it there instead.

    Returns the path of the written file in the latter case. Without a
    connection and without an outbox the notification is only logged.
    """
    log = logger.bind(
        recipient=notification.recipient,
        subject=notification.subject,
        id=notification.id,
    )
    if outbox is not None:
        path = write_to_outbox(notification, outbox)
        log.info("Wrote notification to outbox.", path=str(path))
        return path
    if connection is None:
        log.warning("No SMTP server configured, dropping notification.")
        return None
    with smtp_connection(connection) as smtp:
        smtp.send_notification(notification)
    log.info("Sent notification.")
    return None
