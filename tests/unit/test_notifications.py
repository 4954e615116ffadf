"""
Tests des canaux de notification et du répartiteur.

Les transports réels (SMTP, HTTP) sont neutralisés avec monkeypatch :
aucun test ne sort sur le réseau.
"""

import smtplib

import pytest
import requests

from pharmacie.adapters import notifications
from pharmacie.adapters.notifications import TypeCanal, TypeCanalNonSupporté


class TestRépartiteur:
    @pytest.mark.parametrize("nom", ["email", "Email", "EMAIL"])
    def test_résolution_insensible_à_la_casse(self, nom):
        canal = notifications.RépartiteurNotifications().resolve(nom)
        assert canal.type_canal is TypeCanal.EMAIL

    @pytest.mark.parametrize("type_canal, classe", [
        (TypeCanal.EMAIL, notifications.EmailNotifications),
        (TypeCanal.SMS, notifications.SmsNotifications),
        (TypeCanal.PUSH, notifications.PushNotifications),
    ])
    def test_canaux_par_défaut(self, type_canal, classe):
        assert isinstance(notifications.RépartiteurNotifications().resolve(type_canal), classe)

    def test_type_inconnu_lève(self):
        with pytest.raises(TypeCanalNonSupporté, match="fax"):
            notifications.RépartiteurNotifications().resolve("fax")

    def test_un_canal_injecté_remplace_le_défaut(self):
        passerelle = notifications.PasserelleHttp("http://sms.local/send", TypeCanal.SMS)
        répartiteur = notifications.RépartiteurNotifications({TypeCanal.SMS: passerelle})

        assert répartiteur.resolve("sms") is passerelle
        assert isinstance(répartiteur.resolve("email"), notifications.EmailNotifications)


def test_canal_journalisé_réussit_toujours(caplog):
    caplog.set_level("INFO")
    assert notifications.SmsNotifications().send("+33600000000", "Test", "Bonjour")
    assert "+33600000000" in caplog.text


class FakeRéponse:
    def __init__(self, status_code: int):
        self.status_code = status_code
        self.ok = status_code < 400


class TestPasserelleHttp:
    def test_poste_le_message_en_json(self, monkeypatch):
        appels = []

        def fake_post(url, **kwargs):
            appels.append((url, kwargs))
            return FakeRéponse(200)

        monkeypatch.setattr(notifications.requests, "post", fake_post)
        passerelle = notifications.PasserelleHttp(
            "http://push.local/send", TypeCanal.PUSH, token="secret", timeout=2
        )

        assert passerelle.send("device-42", "Alerte", "Stock bas")

        [(url, kwargs)] = appels
        assert url == "http://push.local/send"
        assert kwargs["json"] == {"to": "device-42", "subject": "Alerte", "body": "Stock bas"}
        assert kwargs["headers"] == {"Authorization": "Bearer secret"}
        assert kwargs["timeout"] == 2

    def test_statut_d_erreur_retourne_false(self, monkeypatch):
        monkeypatch.setattr(notifications.requests, "post", lambda url, **kw: FakeRéponse(503))
        passerelle = notifications.PasserelleHttp("http://sms.local/send", TypeCanal.SMS)

        assert passerelle.send("+1234567890", "Alerte", "Stock bas") is False

    def test_erreur_réseau_retourne_false(self, monkeypatch):
        def fake_post(url, **kwargs):
            raise requests.exceptions.ConnectionError("refusé")

        monkeypatch.setattr(notifications.requests, "post", fake_post)
        passerelle = notifications.PasserelleHttp("http://sms.local/send", TypeCanal.SMS)

        assert passerelle.send("+1234567890", "Alerte", "Stock bas") is False


class TestSmtpEmailNotifications:
    def test_envoie_le_message(self, monkeypatch):
        envoyés = []

        class FakeSMTP:
            def __init__(self, host, port):
                self.host, self.port = host, port

            def __enter__(self):
                return self

            def __exit__(self, *args):
                return False

            def send_message(self, msg):
                envoyés.append(msg)

        monkeypatch.setattr(notifications.smtplib, "SMTP", FakeSMTP)
        canal = notifications.SmtpEmailNotifications("smtp.local", 25, "alertes@pharmacy.com")

        assert canal.send("admin@pharmacy.com", "Low Stock Alert", "LOW STOCK ALERT")

        [msg] = envoyés
        assert msg["To"] == "admin@pharmacy.com"
        assert msg["Subject"] == "Low Stock Alert"

    def test_relais_injoignable_retourne_false(self, monkeypatch):
        def fake_smtp(host, port):
            raise smtplib.SMTPConnectError(421, "indisponible")

        monkeypatch.setattr(notifications.smtplib, "SMTP", fake_smtp)
        canal = notifications.SmtpEmailNotifications("smtp.local", 25)

        assert canal.send("admin@pharmacy.com", "Sujet", "Corps") is False
