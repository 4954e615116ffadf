"""
Handlers pour les commands et events.

Les handlers sont les fonctions qui traitent les commands et events
transitant par le message bus.

- Command handlers : exécutent une écriture (peuvent échouer)
- Event handlers : réagissent à un fait passé (ne doivent pas échouer)
"""

from __future__ import annotations

import dataclasses
import logging
from typing import TYPE_CHECKING, Any

from werkzeug.security import generate_password_hash

from pharmacie.domain import commands, events, model

if TYPE_CHECKING:
    from pharmacie.service_layer.observateurs import SujetInventaire
    from pharmacie.service_layer.unit_of_work import AbstractUnitOfWork

logger = logging.getLogger(__name__)


# --- Exceptions ---


class EntitéIntrouvable(Exception):
    """Levée quand une entité référencée n'existe pas dans le système."""
    pass


class MédicamentInconnu(EntitéIntrouvable):
    pass


class FournisseurInconnu(EntitéIntrouvable):
    pass


class PatientInconnu(EntitéIntrouvable):
    pass


class MédecinInconnu(EntitéIntrouvable):
    pass


class OrdonnanceInconnue(EntitéIntrouvable):
    pass


class TransactionInconnue(EntitéIntrouvable):
    pass


class CommandeInconnue(EntitéIntrouvable):
    pass


class LigneCommandeInconnue(EntitéIntrouvable):
    pass


class RôleInconnu(ValueError):
    pass


class UtilisateurExistant(Exception):
    """Nom d'utilisateur ou email déjà pris."""
    pass


def _champs_modifiés(cmd: commands.Command, *exclus: str) -> dict[str, Any]:
    return {
        f.name: getattr(cmd, f.name)
        for f in dataclasses.fields(cmd)
        if f.name not in exclus
    }


def _obtenir(repo, id: int, erreur: type[EntitéIntrouvable], libellé: str):
    entité = repo.get(id)
    if entité is None:
        raise erreur(f"{libellé} inconnu(e) : {id}")
    return entité


# --- Inventaire ---


def ajouter_médicament(
    cmd: commands.CréerMédicament,
    uow: AbstractUnitOfWork,
) -> int:
    """
    Crée un médicament et retourne son id.

    L'état est publié après le commit pour que l'instantané
    porte l'id attribué par la base.
    """
    with uow:
        if cmd.id_fournisseur is not None:
            _obtenir(uow.fournisseurs, cmd.id_fournisseur, FournisseurInconnu, "Fournisseur")
        médicament = model.Médicament(**_champs_modifiés(cmd))
        uow.médicaments.add(médicament)
        uow.commit()
        médicament.publier_état()
        return médicament.id


def modifier_médicament(
    cmd: commands.ModifierMédicament,
    uow: AbstractUnitOfWork,
) -> None:
    """Mise à jour partielle ; notifie l'inventaire si un champ surveillé change."""
    with uow:
        médicament = _obtenir(uow.médicaments, cmd.id_médicament, MédicamentInconnu, "Médicament")
        if cmd.id_fournisseur is not None:
            _obtenir(uow.fournisseurs, cmd.id_fournisseur, FournisseurInconnu, "Fournisseur")
        médicament.modifier(**_champs_modifiés(cmd, "id_médicament"))
        uow.commit()


def ajuster_stock(
    cmd: commands.AjusterStock,
    uow: AbstractUnitOfWork,
) -> None:
    with uow:
        médicament = _obtenir(uow.médicaments, cmd.id_médicament, MédicamentInconnu, "Médicament")
        médicament.ajuster_stock(cmd.quantité)
        uow.commit()


def supprimer_médicament(
    cmd: commands.SupprimerMédicament,
    uow: AbstractUnitOfWork,
) -> None:
    with uow:
        médicament = _obtenir(uow.médicaments, cmd.id_médicament, MédicamentInconnu, "Médicament")
        uow.médicaments.delete(médicament)
        uow.commit()


def ajouter_fournisseur(
    cmd: commands.CréerFournisseur,
    uow: AbstractUnitOfWork,
) -> int:
    with uow:
        fournisseur = model.Fournisseur(**_champs_modifiés(cmd))
        uow.fournisseurs.add(fournisseur)
        uow.commit()
        return fournisseur.id


def modifier_fournisseur(
    cmd: commands.ModifierFournisseur,
    uow: AbstractUnitOfWork,
) -> None:
    with uow:
        fournisseur = _obtenir(uow.fournisseurs, cmd.id_fournisseur, FournisseurInconnu, "Fournisseur")
        fournisseur.modifier(**_champs_modifiés(cmd, "id_fournisseur"))
        uow.commit()


def supprimer_fournisseur(
    cmd: commands.SupprimerFournisseur,
    uow: AbstractUnitOfWork,
) -> None:
    """Refusé tant qu'un médicament ou une commande référence le fournisseur."""
    with uow:
        fournisseur = _obtenir(uow.fournisseurs, cmd.id_fournisseur, FournisseurInconnu, "Fournisseur")
        if (
            uow.médicaments.get_par(id_fournisseur=cmd.id_fournisseur) is not None
            or uow.commandes.get_par(id_fournisseur=cmd.id_fournisseur) is not None
        ):
            raise model.DonnéesInvalides(
                f"Le fournisseur {cmd.id_fournisseur} est encore référencé"
            )
        uow.fournisseurs.delete(fournisseur)
        uow.commit()


# --- Commandes fournisseurs ---


def ajouter_commande(
    cmd: commands.CréerCommande,
    uow: AbstractUnitOfWork,
) -> int:
    with uow:
        _obtenir(uow.fournisseurs, cmd.id_fournisseur, FournisseurInconnu, "Fournisseur")
        commande = model.Commande(
            id_fournisseur=cmd.id_fournisseur,
            date_commande=cmd.date_commande,
            notes=cmd.notes,
        )
        for ligne in cmd.lignes:
            _obtenir(uow.médicaments, ligne.id_médicament, MédicamentInconnu, "Médicament")
            commande.ajouter_ligne(ligne.id_médicament, ligne.quantité, ligne.prix_unitaire)
        uow.commandes.add(commande)
        uow.commit()
        return commande.id


def ajouter_ligne_commande(
    cmd: commands.AjouterLigneCommande,
    uow: AbstractUnitOfWork,
) -> None:
    with uow:
        commande = _obtenir(uow.commandes, cmd.id_commande, CommandeInconnue, "Commande")
        _obtenir(uow.médicaments, cmd.id_médicament, MédicamentInconnu, "Médicament")
        commande.ajouter_ligne(cmd.id_médicament, cmd.quantité, cmd.prix_unitaire)
        uow.commit()


def supprimer_ligne_commande(
    cmd: commands.SupprimerLigneCommande,
    uow: AbstractUnitOfWork,
) -> None:
    with uow:
        commande = _obtenir(uow.commandes, cmd.id_commande, CommandeInconnue, "Commande")
        if not commande.retirer_ligne(cmd.id_ligne):
            raise LigneCommandeInconnue(
                f"Ligne {cmd.id_ligne} inconnue dans la commande {cmd.id_commande}"
            )
        uow.commit()


def modifier_commande(
    cmd: commands.ModifierCommande,
    uow: AbstractUnitOfWork,
) -> None:
    """
    Mise à jour partielle d'une commande.

    À la livraison, chaque ligne crédite le stock de son médicament :
    les alertes d'inventaire partent après le commit, une par médicament.
    """
    with uow:
        commande = _obtenir(uow.commandes, cmd.id_commande, CommandeInconnue, "Commande")
        commande.modifier(date_commande=cmd.date_commande, notes=cmd.notes)
        if cmd.statut is not None and commande.changer_statut(cmd.statut):
            for ligne in commande.lignes:
                médicament = _obtenir(
                    uow.médicaments, ligne.id_médicament, MédicamentInconnu, "Médicament"
                )
                médicament.ajuster_stock(ligne.quantité)
            logger.info("Commande %s livrée : %d ligne(s) en stock", commande.id, len(commande.lignes))
        uow.commit()


def supprimer_commande(
    cmd: commands.SupprimerCommande,
    uow: AbstractUnitOfWork,
) -> None:
    with uow:
        commande = _obtenir(uow.commandes, cmd.id_commande, CommandeInconnue, "Commande")
        uow.commandes.delete(commande)
        uow.commit()


# --- Patients et médecins ---


def ajouter_patient(cmd: commands.CréerPatient, uow: AbstractUnitOfWork) -> int:
    with uow:
        patient = model.Patient(**_champs_modifiés(cmd))
        uow.patients.add(patient)
        uow.commit()
        return patient.id


def modifier_patient(cmd: commands.ModifierPatient, uow: AbstractUnitOfWork) -> None:
    with uow:
        patient = _obtenir(uow.patients, cmd.id_patient, PatientInconnu, "Patient")
        patient.modifier(**_champs_modifiés(cmd, "id_patient"))
        uow.commit()


def supprimer_patient(cmd: commands.SupprimerPatient, uow: AbstractUnitOfWork) -> None:
    with uow:
        patient = _obtenir(uow.patients, cmd.id_patient, PatientInconnu, "Patient")
        uow.patients.delete(patient)
        uow.commit()


def ajouter_médecin(cmd: commands.CréerMédecin, uow: AbstractUnitOfWork) -> int:
    with uow:
        médecin = model.Médecin(**_champs_modifiés(cmd))
        uow.médecins.add(médecin)
        uow.commit()
        return médecin.id


def modifier_médecin(cmd: commands.ModifierMédecin, uow: AbstractUnitOfWork) -> None:
    with uow:
        médecin = _obtenir(uow.médecins, cmd.id_médecin, MédecinInconnu, "Médecin")
        médecin.modifier(**_champs_modifiés(cmd, "id_médecin"))
        uow.commit()


def supprimer_médecin(cmd: commands.SupprimerMédecin, uow: AbstractUnitOfWork) -> None:
    with uow:
        médecin = _obtenir(uow.médecins, cmd.id_médecin, MédecinInconnu, "Médecin")
        uow.médecins.delete(médecin)
        uow.commit()


# --- Ordonnances ---


def ajouter_ordonnance(
    cmd: commands.CréerOrdonnance,
    uow: AbstractUnitOfWork,
) -> int:
    with uow:
        _obtenir(uow.patients, cmd.id_patient, PatientInconnu, "Patient")
        _obtenir(uow.médecins, cmd.id_médecin, MédecinInconnu, "Médecin")
        ordonnance = model.Ordonnance(**_champs_modifiés(cmd))
        uow.ordonnances.add(ordonnance)
        uow.commit()
        return ordonnance.id


def ajouter_ligne_ordonnance(
    cmd: commands.AjouterLigneOrdonnance,
    uow: AbstractUnitOfWork,
) -> None:
    """
    Ajoute une ligne à une ordonnance et délivre le médicament.

    Le stock est décrémenté : les alertes d'inventaire suivent
    après le commit.
    """
    with uow:
        ordonnance = _obtenir(uow.ordonnances, cmd.id_ordonnance, OrdonnanceInconnue, "Ordonnance")
        médicament = _obtenir(uow.médicaments, cmd.id_médicament, MédicamentInconnu, "Médicament")
        ordonnance.ajouter_ligne(médicament, cmd.quantité, cmd.posologie)
        uow.commit()


def modifier_ordonnance(
    cmd: commands.ModifierOrdonnance,
    uow: AbstractUnitOfWork,
) -> None:
    with uow:
        ordonnance = _obtenir(uow.ordonnances, cmd.id_ordonnance, OrdonnanceInconnue, "Ordonnance")
        ordonnance.modifier(**_champs_modifiés(cmd, "id_ordonnance"))
        uow.commit()


def supprimer_ordonnance(
    cmd: commands.SupprimerOrdonnance,
    uow: AbstractUnitOfWork,
) -> None:
    with uow:
        ordonnance = _obtenir(uow.ordonnances, cmd.id_ordonnance, OrdonnanceInconnue, "Ordonnance")
        uow.ordonnances.delete(ordonnance)
        uow.commit()


# --- Ventes ---


def ajouter_transaction(
    cmd: commands.CréerTransaction,
    uow: AbstractUnitOfWork,
) -> int:
    """
    Enregistre une vente : chaque ligne décrémente le stock
    de son médicament. Si une ligne échoue (médicament inconnu,
    stock insuffisant), rien n'est écrit et aucune alerte ne part.
    """
    if not cmd.lignes:
        raise model.DonnéesInvalides("Une transaction doit contenir au moins une ligne")
    with uow:
        if cmd.id_patient is not None:
            _obtenir(uow.patients, cmd.id_patient, PatientInconnu, "Patient")
        if cmd.id_ordonnance is not None:
            _obtenir(uow.ordonnances, cmd.id_ordonnance, OrdonnanceInconnue, "Ordonnance")
        transaction = model.Transaction(
            id_patient=cmd.id_patient,
            id_ordonnance=cmd.id_ordonnance,
            mode_paiement=cmd.mode_paiement,
            remise=cmd.remise,
            taxe=cmd.taxe,
        )
        for ligne in cmd.lignes:
            médicament = _obtenir(uow.médicaments, ligne.id_médicament, MédicamentInconnu, "Médicament")
            transaction.ajouter_ligne(médicament, ligne.quantité, remise=ligne.remise)
        uow.transactions.add(transaction)
        uow.commit()
        logger.info("Transaction %s enregistrée (%s)", transaction.numéro_reçu, transaction.montant_total)
        return transaction.id


def changer_statut_paiement(
    cmd: commands.ChangerStatutPaiement,
    uow: AbstractUnitOfWork,
) -> None:
    with uow:
        transaction = _obtenir(uow.transactions, cmd.id_transaction, TransactionInconnue, "Transaction")
        transaction.changer_statut(cmd.statut)
        uow.commit()


# --- Utilisateurs ---


def _nom_rôle(nom: str) -> model.NomRôle:
    nom = nom.upper()
    if not nom.startswith("ROLE_"):
        nom = f"ROLE_{nom}"
    try:
        return model.NomRôle(nom)
    except ValueError:
        raise RôleInconnu(f"Rôle inconnu : {nom}") from None


def ajouter_utilisateur(
    cmd: commands.CréerUtilisateur,
    uow: AbstractUnitOfWork,
) -> int:
    """
    Crée un compte. Sans rôle explicite, l'utilisateur est pharmacien.

    Les rôles sont créés à la volée la première fois qu'on les attribue.
    """
    noms_rôles = {_nom_rôle(r) for r in cmd.rôles} or {model.NomRôle.PHARMACIEN}
    with uow:
        if uow.utilisateurs.get_par(nom_utilisateur=cmd.nom_utilisateur) is not None:
            raise UtilisateurExistant(f"Nom d'utilisateur déjà utilisé : {cmd.nom_utilisateur}")
        if uow.utilisateurs.get_par(email=cmd.email) is not None:
            raise UtilisateurExistant(f"Email déjà utilisé : {cmd.email}")

        rôles = set()
        for nom in noms_rôles:
            rôle = uow.rôles.get_par(nom=nom.value)
            if rôle is None:
                rôle = model.Rôle(nom)
                uow.rôles.add(rôle)
            rôles.add(rôle)

        utilisateur = model.Utilisateur(
            nom_utilisateur=cmd.nom_utilisateur,
            email=cmd.email,
            mot_de_passe_haché=generate_password_hash(cmd.mot_de_passe) if cmd.mot_de_passe else "",
            prénom=cmd.prénom,
            nom=cmd.nom,
            téléphone=cmd.téléphone,
            rôles=rôles,
        )
        uow.utilisateurs.add(utilisateur)
        uow.commit()
        return utilisateur.id


# --- Event Handlers ---


def notifier_inventaire(
    event: events.InventaireModifié,
    sujet_inventaire: SujetInventaire,
) -> None:
    """Diffuse l'instantané aux règles d'alerte enregistrées."""
    sujet_inventaire.notify(event.instantané)
