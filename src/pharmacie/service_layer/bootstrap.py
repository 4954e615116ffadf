"""
Bootstrap : assemblage de l'application (Composition Root).

Ce module construit le message bus avec toutes ses dépendances :
canaux de notification, répartiteur, règles d'alerte et sujet
d'inventaire. C'est le seul endroit qui connaît les implémentations
concrètes ; les tests y injectent leurs fakes.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Callable, Mapping, Optional

from pharmacie import config
from pharmacie.adapters import notifications, orm
from pharmacie.adapters.notifications import TypeCanal
from pharmacie.domain import commands, events
from pharmacie.service_layer import handlers, messagebus, observateurs, unit_of_work


def canaux_configurés() -> dict[TypeCanal, notifications.AbstractNotifications]:
    """
    Transports réels disponibles d'après la configuration.

    Les types absents retombent sur les canaux journalisés
    du répartiteur.
    """
    canaux: dict[TypeCanal, notifications.AbstractNotifications] = {}
    smtp = config.get_smtp_config()
    if smtp is not None:
        canaux[TypeCanal.EMAIL] = notifications.SmtpEmailNotifications(**smtp)
    if config.SMS_GATEWAY_URL:
        canaux[TypeCanal.SMS] = notifications.PasserelleHttp(
            config.SMS_GATEWAY_URL, TypeCanal.SMS, token=config.GATEWAY_TOKEN
        )
    if config.PUSH_GATEWAY_URL:
        canaux[TypeCanal.PUSH] = notifications.PasserelleHttp(
            config.PUSH_GATEWAY_URL, TypeCanal.PUSH, token=config.GATEWAY_TOKEN
        )
    return canaux


def construire_sujet_inventaire(
    répartiteur: notifications.RépartiteurNotifications,
    aujourd_hui: Callable[[], date] = date.today,
) -> observateurs.SujetInventaire:
    """Sujet avec les deux règles d'alerte : stock bas puis péremption."""
    sujet = observateurs.SujetInventaire()
    sujet.register(
        observateurs.RègleStockBas(répartiteur, destinataire=config.ALERT_EMAIL_RECIPIENT)
    )
    sujet.register(
        observateurs.RèglePéremption(
            répartiteur,
            destinataire=config.ALERT_SMS_RECIPIENT,
            fenêtre_jours=config.EXPIRY_WARNING_DAYS,
            aujourd_hui=aujourd_hui,
        )
    )
    return sujet


def bootstrap(
    start_orm: bool = True,
    uow: Optional[unit_of_work.AbstractUnitOfWork] = None,
    canaux: Optional[Mapping[TypeCanal, notifications.AbstractNotifications]] = None,
    sujet_inventaire: Optional[observateurs.SujetInventaire] = None,
    aujourd_hui: Callable[[], date] = date.today,
    **extra_dependencies: Any,
) -> messagebus.MessageBus:
    """
    Construit et retourne un MessageBus configuré.

    En production, utilise les implémentations concrètes.
    En test, on injecte des fakes via les paramètres.
    """
    if start_orm:
        orm.start_mappers()

    if uow is None:
        uow = unit_of_work.SqlAlchemyUnitOfWork()

    if sujet_inventaire is None:
        répartiteur = notifications.RépartiteurNotifications(
            canaux if canaux is not None else canaux_configurés()
        )
        sujet_inventaire = construire_sujet_inventaire(répartiteur, aujourd_hui)

    dependencies: dict[str, Any] = {
        "sujet_inventaire": sujet_inventaire,
        **extra_dependencies,
    }

    return messagebus.MessageBus(
        uow=uow,
        event_handlers=EVENT_HANDLERS,
        command_handlers=COMMAND_HANDLERS,
        dependencies=dependencies,
    )


# --- Routage des messages vers les handlers ---

EVENT_HANDLERS: dict[type[events.Event], list] = {
    events.InventaireModifié: [handlers.notifier_inventaire],
}

COMMAND_HANDLERS: dict[type[commands.Command], Any] = {
    commands.CréerMédicament: handlers.ajouter_médicament,
    commands.ModifierMédicament: handlers.modifier_médicament,
    commands.AjusterStock: handlers.ajuster_stock,
    commands.SupprimerMédicament: handlers.supprimer_médicament,
    commands.CréerFournisseur: handlers.ajouter_fournisseur,
    commands.ModifierFournisseur: handlers.modifier_fournisseur,
    commands.SupprimerFournisseur: handlers.supprimer_fournisseur,
    commands.CréerCommande: handlers.ajouter_commande,
    commands.AjouterLigneCommande: handlers.ajouter_ligne_commande,
    commands.SupprimerLigneCommande: handlers.supprimer_ligne_commande,
    commands.ModifierCommande: handlers.modifier_commande,
    commands.SupprimerCommande: handlers.supprimer_commande,
    commands.CréerPatient: handlers.ajouter_patient,
    commands.ModifierPatient: handlers.modifier_patient,
    commands.SupprimerPatient: handlers.supprimer_patient,
    commands.CréerMédecin: handlers.ajouter_médecin,
    commands.ModifierMédecin: handlers.modifier_médecin,
    commands.SupprimerMédecin: handlers.supprimer_médecin,
    commands.CréerOrdonnance: handlers.ajouter_ordonnance,
    commands.AjouterLigneOrdonnance: handlers.ajouter_ligne_ordonnance,
    commands.ModifierOrdonnance: handlers.modifier_ordonnance,
    commands.SupprimerOrdonnance: handlers.supprimer_ordonnance,
    commands.CréerTransaction: handlers.ajouter_transaction,
    commands.ChangerStatutPaiement: handlers.changer_statut_paiement,
    commands.CréerUtilisateur: handlers.ajouter_utilisateur,
}
