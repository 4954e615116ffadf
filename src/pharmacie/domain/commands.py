"""
Commands du domaine.

Les commands représentent des intentions : quelque chose que
le système doit faire. Contrairement aux events (faits passés),
les commands sont des demandes qui peuvent échouer.

Pour les commands Modifier*, un champ à None signifie
« ne pas toucher » (mise à jour partielle).
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional


class Command:
    """Classe de base pour toutes les commands."""
    pass


# --- Inventaire ---


@dataclass(frozen=True)
class CréerMédicament(Command):
    nom: str
    fabricant: str
    catégorie: str
    prix_unitaire: Decimal
    stock: int
    date_péremption: date
    seuil_réappro: Optional[int] = 10
    description: Optional[str] = None
    numéro_lot: Optional[str] = None
    emplacement: Optional[str] = None
    ordonnance_requise: bool = False
    id_fournisseur: Optional[int] = None


@dataclass(frozen=True)
class ModifierMédicament(Command):
    id_médicament: int
    nom: Optional[str] = None
    description: Optional[str] = None
    fabricant: Optional[str] = None
    catégorie: Optional[str] = None
    prix_unitaire: Optional[Decimal] = None
    stock: Optional[int] = None
    seuil_réappro: Optional[int] = None
    date_péremption: Optional[date] = None
    numéro_lot: Optional[str] = None
    emplacement: Optional[str] = None
    ordonnance_requise: Optional[bool] = None
    actif: Optional[bool] = None
    id_fournisseur: Optional[int] = None


@dataclass(frozen=True)
class AjusterStock(Command):
    """Ajoute (quantité > 0) ou retire (quantité < 0) des unités du stock."""

    id_médicament: int
    quantité: int


@dataclass(frozen=True)
class SupprimerMédicament(Command):
    id_médicament: int


@dataclass(frozen=True)
class CréerFournisseur(Command):
    nom: str
    adresse: Optional[str] = None
    téléphone: Optional[str] = None
    email: Optional[str] = None
    contact: Optional[str] = None


@dataclass(frozen=True)
class ModifierFournisseur(Command):
    id_fournisseur: int
    nom: Optional[str] = None
    adresse: Optional[str] = None
    téléphone: Optional[str] = None
    email: Optional[str] = None
    contact: Optional[str] = None
    actif: Optional[bool] = None


@dataclass(frozen=True)
class SupprimerFournisseur(Command):
    id_fournisseur: int


# --- Commandes fournisseurs ---


@dataclass(frozen=True)
class LigneCommandée:
    id_médicament: int
    quantité: int
    prix_unitaire: Decimal = Decimal("0")


@dataclass(frozen=True)
class CréerCommande(Command):
    id_fournisseur: int
    lignes: tuple[LigneCommandée, ...] = ()
    date_commande: Optional[date] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class ModifierCommande(Command):
    """Passer le statut à "delivered" crédite le stock des médicaments commandés."""

    id_commande: int
    statut: Optional[str] = None
    date_commande: Optional[date] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class SupprimerCommande(Command):
    id_commande: int


@dataclass(frozen=True)
class AjouterLigneCommande(Command):
    id_commande: int
    id_médicament: int
    quantité: int
    prix_unitaire: Decimal = Decimal("0")


@dataclass(frozen=True)
class SupprimerLigneCommande(Command):
    id_commande: int
    id_ligne: int


# --- Patients et médecins ---


@dataclass(frozen=True)
class CréerPatient(Command):
    prénom: str
    nom: str
    téléphone: str
    date_naissance: Optional[date] = None
    email: Optional[str] = None
    adresse: Optional[str] = None
    antécédents: Optional[str] = None
    allergies: Optional[str] = None
    assurance: Optional[str] = None


@dataclass(frozen=True)
class ModifierPatient(Command):
    id_patient: int
    prénom: Optional[str] = None
    nom: Optional[str] = None
    téléphone: Optional[str] = None
    date_naissance: Optional[date] = None
    email: Optional[str] = None
    adresse: Optional[str] = None
    antécédents: Optional[str] = None
    allergies: Optional[str] = None
    assurance: Optional[str] = None


@dataclass(frozen=True)
class SupprimerPatient(Command):
    id_patient: int


@dataclass(frozen=True)
class CréerMédecin(Command):
    prénom: str
    nom: str
    spécialité: str
    numéro_licence: str
    téléphone: str
    email: Optional[str] = None
    adresse: Optional[str] = None


@dataclass(frozen=True)
class ModifierMédecin(Command):
    id_médecin: int
    prénom: Optional[str] = None
    nom: Optional[str] = None
    spécialité: Optional[str] = None
    numéro_licence: Optional[str] = None
    téléphone: Optional[str] = None
    email: Optional[str] = None
    adresse: Optional[str] = None


@dataclass(frozen=True)
class SupprimerMédecin(Command):
    id_médecin: int


# --- Ordonnances ---


@dataclass(frozen=True)
class CréerOrdonnance(Command):
    id_patient: int
    id_médecin: int
    date_ordonnance: Optional[date] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class AjouterLigneOrdonnance(Command):
    id_ordonnance: int
    id_médicament: int
    quantité: int
    posologie: Optional[str] = None


@dataclass(frozen=True)
class ModifierOrdonnance(Command):
    id_ordonnance: int
    date_ordonnance: Optional[date] = None
    notes: Optional[str] = None
    délivrée: Optional[bool] = None


@dataclass(frozen=True)
class SupprimerOrdonnance(Command):
    id_ordonnance: int


# --- Ventes ---


@dataclass(frozen=True)
class LigneDemandée:
    id_médicament: int
    quantité: int
    remise: Decimal = Decimal("0")


@dataclass(frozen=True)
class CréerTransaction(Command):
    lignes: tuple[LigneDemandée, ...]
    id_patient: Optional[int] = None
    id_ordonnance: Optional[int] = None
    mode_paiement: Optional[str] = None
    remise: Decimal = Decimal("0")
    taxe: Decimal = Decimal("0")


@dataclass(frozen=True)
class ChangerStatutPaiement(Command):
    id_transaction: int
    statut: str


# --- Utilisateurs ---


@dataclass(frozen=True)
class CréerUtilisateur(Command):
    nom_utilisateur: str
    email: str
    mot_de_passe: str
    prénom: Optional[str] = None
    nom: Optional[str] = None
    téléphone: Optional[str] = None
    rôles: tuple[str, ...] = ()
