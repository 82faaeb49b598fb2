"""
Adapter pour les notifications.

Seule l'interface fait partie du cœur ; l'envoi concret (SMTP ici)
est un collaborateur externe, remplacé par un fake dans les tests.
"""

from __future__ import annotations

import abc
import smtplib

from batch_inventory import config


class AbstractNotifications(abc.ABC):
    @abc.abstractmethod
    def send(self, destination: str, message: str) -> None:
        raise NotImplementedError


class EmailNotifications(AbstractNotifications):
    def __init__(self, smtp_host: str | None = None, smtp_port: int | None = None):
        self.smtp_host = smtp_host or config.get_smtp_host()
        self.smtp_port = smtp_port or config.get_smtp_port()

    def send(self, destination: str, message: str) -> None:
        msg = f"Subject: Alerte stock par lots\n\n{message}"
        with smtplib.SMTP(self.smtp_host, self.smtp_port) as smtp:
            smtp.sendmail(
                from_addr="inventory@example.com",
                to_addrs=[destination],
                msg=msg,
            )
