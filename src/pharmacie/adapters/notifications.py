"""
Adapter pour les notifications.

Trois types de canaux (email, SMS, push) partagent le même contrat :
    send(destinataire, sujet, corps) -> bool

Le booléen indique si l'envoi a abouti ; un échec n'est ni
réessayé ni remonté sous forme d'exception.

Les canaux par défaut se contentent de journaliser l'envoi.
Les vrais transports (relais SMTP, passerelle HTTP) sont
injectés par le bootstrap quand ils sont configurés.
"""

from __future__ import annotations

import abc
import enum
import logging
import smtplib
from email.message import EmailMessage
from typing import Mapping, Optional, Union

import requests

logger = logging.getLogger(__name__)


class TypeCanal(str, enum.Enum):
    EMAIL = "email"
    SMS = "sms"
    PUSH = "push"


class TypeCanalNonSupporté(ValueError):
    """Levée quand on demande un canal hors de {email, sms, push}."""
    pass


class AbstractNotifications(abc.ABC):
    """Interface abstraite d'un canal de notification."""

    type_canal: TypeCanal

    @abc.abstractmethod
    def send(self, destinataire: str, sujet: str, corps: str) -> bool:
        raise NotImplementedError


# --- Canaux journalisés (comportement par défaut) ---


class _CanalJournalisé(AbstractNotifications):
    def send(self, destinataire: str, sujet: str, corps: str) -> bool:
        logger.info(
            "Envoi %s à %s [%s] : %s",
            self.type_canal.value.upper(), destinataire, sujet, corps,
        )
        return True


class EmailNotifications(_CanalJournalisé):
    type_canal = TypeCanal.EMAIL


class SmsNotifications(_CanalJournalisé):
    type_canal = TypeCanal.SMS


class PushNotifications(_CanalJournalisé):
    type_canal = TypeCanal.PUSH


# --- Transports réels ---


class SmtpEmailNotifications(AbstractNotifications):
    """Envoi d'emails via un relais SMTP."""

    type_canal = TypeCanal.EMAIL

    def __init__(
        self,
        host: str = "localhost",
        port: int = 587,
        expéditeur: str = "alertes@pharmacy.com",
    ):
        self.host = host
        self.port = port
        self.expéditeur = expéditeur

    def send(self, destinataire: str, sujet: str, corps: str) -> bool:
        msg = EmailMessage()
        msg["From"] = self.expéditeur
        msg["To"] = destinataire
        msg["Subject"] = sujet
        msg.set_content(corps)
        try:
            with smtplib.SMTP(self.host, self.port) as smtp:
                smtp.send_message(msg)
        except (smtplib.SMTPException, OSError):
            logger.warning("Échec de l'envoi email à %s via %s:%s", destinataire, self.host, self.port)
            return False
        return True


class PasserelleHttp(AbstractNotifications):
    """
    Passerelle SMS ou push exposée en HTTP.

    Poste {"to", "subject", "body"} en JSON ; tout statut hors 2xx
    ou toute erreur réseau compte comme un échec d'envoi.
    """

    def __init__(
        self,
        url: str,
        type_canal: TypeCanal,
        token: Optional[str] = None,
        timeout: float = 5,
    ):
        self.url = url
        self.type_canal = TypeCanal(type_canal)
        self.token = token
        self.timeout = timeout

    def send(self, destinataire: str, sujet: str, corps: str) -> bool:
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        try:
            response = requests.post(
                self.url,
                json={"to": destinataire, "subject": sujet, "body": corps},
                headers=headers,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException:
            logger.warning("Passerelle %s injoignable (%s)", self.type_canal.value, self.url)
            return False
        if not response.ok:
            logger.warning(
                "Passerelle %s a répondu %s pour %s",
                self.type_canal.value, response.status_code, destinataire,
            )
            return False
        return True


# --- Répartiteur ---


class RépartiteurNotifications:
    """
    Résout un type de canal vers l'implémentation à utiliser.

    Simple lookup sans état, sans repli : un type inconnu
    lève TypeCanalNonSupporté.
    """

    def __init__(self, canaux: Optional[Mapping[TypeCanal, AbstractNotifications]] = None):
        self._canaux: dict[TypeCanal, AbstractNotifications] = {
            TypeCanal.EMAIL: EmailNotifications(),
            TypeCanal.SMS: SmsNotifications(),
            TypeCanal.PUSH: PushNotifications(),
        }
        self._canaux.update(canaux or {})

    def resolve(self, type_canal: Union[TypeCanal, str]) -> AbstractNotifications:
        if isinstance(type_canal, TypeCanal):
            return self._canaux[type_canal]
        try:
            return self._canaux[TypeCanal(str(type_canal).lower())]
        except ValueError:
            raise TypeCanalNonSupporté(f"Type de notification non supporté : {type_canal}") from None
