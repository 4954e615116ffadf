"""
Modèle de domaine de la pharmacie.

Les entités sont de simples classes Python : elles ignorent tout
de la persistance (le mapping SQLAlchemy est fait dans adapters/orm.py).

L'agrégat central est le Médicament : c'est lui qui garantit que
le stock ne devient jamais négatif, et c'est lui qui émet l'événement
InventaireModifié chaque fois qu'un champ surveillé par les règles
d'alerte change (stock, seuil, péremption, nom, prix).
"""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from pharmacie.domain import events


class StockInsuffisant(Exception):
    """Levée quand un ajustement rendrait le stock d'un médicament négatif."""
    pass


class DonnéesInvalides(ValueError):
    """Levée quand une entité reçoit des valeurs incohérentes."""
    pass


class StatutPaiement(str, enum.Enum):
    EN_ATTENTE = "PENDING"
    PAYÉ = "COMPLETED"
    ÉCHOUÉ = "FAILED"
    REMBOURSÉ = "REFUNDED"


class NomRôle(str, enum.Enum):
    ADMIN = "ROLE_ADMIN"
    PHARMACIEN = "ROLE_PHARMACIST"
    MÉDECIN = "ROLE_DOCTOR"
    PATIENT = "ROLE_PATIENT"


def _décimal(valeur: Any) -> Decimal:
    # str() évite de propager l'imprécision des floats (0.1 -> 0.1000000000000000055...)
    return valeur if isinstance(valeur, Decimal) else Decimal(str(valeur))


@dataclass(frozen=True)
class InstantanéMédicament:
    """
    Value Object : photographie d'un médicament au moment d'un
    changement d'inventaire.

    C'est ce qui circule jusqu'aux règles d'alerte. Immuable (frozen),
    il ne reflète pas forcément l'état le plus récent en base si
    quelqu'un le conserve après coup.
    """

    nom: str
    stock: Optional[int]
    seuil_réappro: Optional[int]
    date_péremption: Optional[date]
    prix_unitaire: Optional[Decimal]
    id: Optional[int] = None


class _Modifiable:
    """
    Mise à jour partielle : seuls les champs fournis (non None) sont appliqués.

    Retourne l'ensemble des champs effectivement modifiés. Un champ
    de CHAMPS_OBLIGATOIRES fourni vide est refusé sans rien modifier.
    """

    CHAMPS_MODIFIABLES: frozenset[str] = frozenset()
    CHAMPS_OBLIGATOIRES: frozenset[str] = frozenset()

    def modifier(self, **champs: Any) -> set[str]:
        inconnus = set(champs) - self.CHAMPS_MODIFIABLES
        if inconnus:
            raise DonnéesInvalides(f"Champs non modifiables : {', '.join(sorted(inconnus))}")
        vidés = sorted(
            nom for nom, valeur in champs.items()
            if nom in self.CHAMPS_OBLIGATOIRES and valeur is not None and not valeur
        )
        if vidés:
            raise DonnéesInvalides(f"Champs obligatoires vides : {', '.join(vidés)}")
        modifiés = set()
        for nom, valeur in champs.items():
            if valeur is None:
                continue
            setattr(self, nom, valeur)
            modifiés.add(nom)
        if modifiés:
            self.modifié_le = datetime.now()
        return modifiés


class Fournisseur(_Modifiable):
    CHAMPS_MODIFIABLES = frozenset({"nom", "adresse", "téléphone", "email", "contact", "actif"})
    CHAMPS_OBLIGATOIRES = frozenset({"nom"})

    def __init__(
        self,
        nom: str,
        adresse: Optional[str] = None,
        téléphone: Optional[str] = None,
        email: Optional[str] = None,
        contact: Optional[str] = None,
        actif: bool = True,
    ):
        if not nom:
            raise DonnéesInvalides("Le nom du fournisseur est obligatoire")
        self.id: Optional[int] = None
        self.nom = nom
        self.adresse = adresse
        self.téléphone = téléphone
        self.email = email
        self.contact = contact
        self.actif = actif
        self.créé_le = self.modifié_le = datetime.now()

    def __repr__(self) -> str:
        return f"<Fournisseur {self.nom}>"


class Médicament(_Modifiable):
    """
    Agrégat racine de l'inventaire.

    Toute modification d'un champ listé dans CHAMPS_INVENTAIRE
    ajoute un événement InventaireModifié à self.événements ;
    le Unit of Work les transmet au message bus après le commit.
    """

    CHAMPS_MODIFIABLES = frozenset({
        "nom", "description", "fabricant", "numéro_lot", "prix_unitaire",
        "stock", "seuil_réappro", "date_péremption", "catégorie",
        "emplacement", "ordonnance_requise", "actif", "id_fournisseur",
    })
    CHAMPS_OBLIGATOIRES = frozenset({"nom", "fabricant", "catégorie", "date_péremption"})
    CHAMPS_INVENTAIRE = frozenset({
        "nom", "stock", "seuil_réappro", "date_péremption", "prix_unitaire",
    })

    def __init__(
        self,
        nom: str,
        fabricant: str,
        catégorie: str,
        prix_unitaire: Decimal,
        stock: int,
        date_péremption: date,
        seuil_réappro: Optional[int] = 10,
        description: Optional[str] = None,
        numéro_lot: Optional[str] = None,
        emplacement: Optional[str] = None,
        ordonnance_requise: bool = False,
        actif: bool = True,
        id_fournisseur: Optional[int] = None,
    ):
        manquants = [
            champ for champ, valeur in (
                ("nom", nom), ("fabricant", fabricant), ("catégorie", catégorie),
                ("date_péremption", date_péremption),
            )
            if not valeur
        ]
        if manquants:
            raise DonnéesInvalides(f"Champs obligatoires manquants : {', '.join(manquants)}")
        self.id: Optional[int] = None
        self.nom = nom
        self.fabricant = fabricant
        self.catégorie = catégorie
        self.prix_unitaire = self._vérifier_prix(prix_unitaire)
        self.stock = self._vérifier_stock(stock)
        self.date_péremption = date_péremption
        self.seuil_réappro = seuil_réappro
        self.description = description
        self.numéro_lot = numéro_lot
        self.emplacement = emplacement
        self.ordonnance_requise = ordonnance_requise
        self.actif = actif
        self.id_fournisseur = id_fournisseur
        self.créé_le = self.modifié_le = datetime.now()
        self.événements: list[events.Event] = []

    def __repr__(self) -> str:
        return f"<Médicament {self.nom}>"

    @staticmethod
    def _vérifier_prix(prix: Any) -> Decimal:
        if prix is None:
            raise DonnéesInvalides("Le prix unitaire est obligatoire")
        prix = _décimal(prix)
        if prix < 0:
            raise DonnéesInvalides("Le prix unitaire ne peut pas être négatif")
        return prix

    @staticmethod
    def _vérifier_stock(stock: Any) -> int:
        if stock is None or int(stock) < 0:
            raise DonnéesInvalides("Le stock doit être un entier positif ou nul")
        return int(stock)

    def instantané(self) -> InstantanéMédicament:
        return InstantanéMédicament(
            id=self.id,
            nom=self.nom,
            stock=self.stock,
            seuil_réappro=self.seuil_réappro,
            date_péremption=self.date_péremption,
            prix_unitaire=self.prix_unitaire,
        )

    def publier_état(self) -> None:
        """
        Enregistre un InventaireModifié portant l'état courant.

        Un seul InventaireModifié en attente par médicament : le dernier
        remplace les précédents, pour que l'instantané diffusé après le
        commit soit celui de l'état écrit en base, pas un état intermédiaire
        (deux lignes d'une même vente, par exemple).
        """
        self.événements[:] = [
            e for e in self.événements if not isinstance(e, events.InventaireModifié)
        ]
        self.événements.append(events.InventaireModifié(instantané=self.instantané()))

    def modifier(self, **champs: Any) -> set[str]:
        if champs.get("prix_unitaire") is not None:
            champs["prix_unitaire"] = self._vérifier_prix(champs["prix_unitaire"])
        if champs.get("stock") is not None:
            champs["stock"] = self._vérifier_stock(champs["stock"])
        modifiés = super().modifier(**champs)
        if modifiés & self.CHAMPS_INVENTAIRE:
            self.publier_état()
        return modifiés

    def ajuster_stock(self, delta: int) -> None:
        """
        Ajoute (delta > 0) ou retire (delta < 0) des unités du stock.

        Lève StockInsuffisant sans rien modifier si le résultat
        serait négatif.
        """
        nouveau_stock = self.stock + delta
        if nouveau_stock < 0:
            raise StockInsuffisant(
                f"Stock insuffisant pour {self.nom} : "
                f"{self.stock} disponible(s), {-delta} demandé(s)"
            )
        self.stock = nouveau_stock
        self.modifié_le = datetime.now()
        self.publier_état()


class Patient(_Modifiable):
    CHAMPS_MODIFIABLES = frozenset({
        "prénom", "nom", "date_naissance", "téléphone", "email", "adresse",
        "antécédents", "allergies", "assurance",
    })
    CHAMPS_OBLIGATOIRES = frozenset({"prénom", "nom", "téléphone"})

    def __init__(
        self,
        prénom: str,
        nom: str,
        téléphone: str,
        date_naissance: Optional[date] = None,
        email: Optional[str] = None,
        adresse: Optional[str] = None,
        antécédents: Optional[str] = None,
        allergies: Optional[str] = None,
        assurance: Optional[str] = None,
    ):
        if not (prénom and nom and téléphone):
            raise DonnéesInvalides("Prénom, nom et téléphone du patient sont obligatoires")
        self.id: Optional[int] = None
        self.prénom = prénom
        self.nom = nom
        self.téléphone = téléphone
        self.date_naissance = date_naissance
        self.email = email
        self.adresse = adresse
        self.antécédents = antécédents
        self.allergies = allergies
        self.assurance = assurance
        self.créé_le = self.modifié_le = datetime.now()

    def __repr__(self) -> str:
        return f"<Patient {self.prénom} {self.nom}>"


class Médecin(_Modifiable):
    CHAMPS_MODIFIABLES = frozenset({
        "prénom", "nom", "spécialité", "numéro_licence", "téléphone", "email", "adresse",
    })
    CHAMPS_OBLIGATOIRES = frozenset({"prénom", "nom", "spécialité", "numéro_licence", "téléphone"})

    def __init__(
        self,
        prénom: str,
        nom: str,
        spécialité: str,
        numéro_licence: str,
        téléphone: str,
        email: Optional[str] = None,
        adresse: Optional[str] = None,
    ):
        if not (prénom and nom and spécialité and numéro_licence and téléphone):
            raise DonnéesInvalides(
                "Prénom, nom, spécialité, numéro de licence et téléphone sont obligatoires"
            )
        self.id: Optional[int] = None
        self.prénom = prénom
        self.nom = nom
        self.spécialité = spécialité
        self.numéro_licence = numéro_licence
        self.téléphone = téléphone
        self.email = email
        self.adresse = adresse
        self.créé_le = self.modifié_le = datetime.now()

    def __repr__(self) -> str:
        return f"<Médecin {self.prénom} {self.nom}>"


def _vérifier_quantité(quantité: int) -> int:
    if quantité is None or int(quantité) < 1:
        raise DonnéesInvalides("La quantité doit être au moins égale à 1")
    return int(quantité)


class LigneOrdonnance:
    def __init__(
        self,
        id_médicament: int,
        quantité: int,
        posologie: Optional[str] = None,
        délivrée: bool = False,
    ):
        self.id: Optional[int] = None
        self.id_médicament = id_médicament
        self.quantité = _vérifier_quantité(quantité)
        self.posologie = posologie
        self.délivrée = délivrée


class Ordonnance(_Modifiable):
    CHAMPS_MODIFIABLES = frozenset({
        "id_patient", "id_médecin", "date_ordonnance", "notes", "délivrée",
    })

    def __init__(
        self,
        id_patient: int,
        id_médecin: int,
        date_ordonnance: Optional[date] = None,
        notes: Optional[str] = None,
    ):
        self.id: Optional[int] = None
        self.id_patient = id_patient
        self.id_médecin = id_médecin
        self.date_ordonnance = date_ordonnance or date.today()
        self.notes = notes
        self.délivrée = False
        self.lignes: list[LigneOrdonnance] = []
        self.créé_le = self.modifié_le = datetime.now()

    def __repr__(self) -> str:
        return f"<Ordonnance {self.id}>"

    def ajouter_ligne(
        self, médicament: Médicament, quantité: int, posologie: Optional[str] = None
    ) -> LigneOrdonnance:
        """
        Délivre `quantité` unités du médicament : le stock est décrémenté
        (et l'inventaire notifié) au moment de l'ajout de la ligne.
        """
        quantité = _vérifier_quantité(quantité)
        médicament.ajuster_stock(-quantité)
        ligne = LigneOrdonnance(
            id_médicament=médicament.id,
            quantité=quantité,
            posologie=posologie,
            délivrée=True,
        )
        self.lignes.append(ligne)
        self.modifié_le = datetime.now()
        return ligne


class LigneTransaction:
    def __init__(
        self,
        id_médicament: int,
        quantité: int,
        prix_unitaire: Decimal,
        remise: Decimal = Decimal("0"),
    ):
        self.id: Optional[int] = None
        self.id_médicament = id_médicament
        self.quantité = _vérifier_quantité(quantité)
        self.prix_unitaire = _décimal(prix_unitaire)
        self.remise = _décimal(remise or 0)
        self.sous_total = self.prix_unitaire * self.quantité - self.remise


class Transaction:
    """
    Vente au comptoir, éventuellement rattachée à un patient
    et à une ordonnance.

    montant_total = somme des sous-totaux - remise + taxe
    """

    def __init__(
        self,
        id_patient: Optional[int] = None,
        id_ordonnance: Optional[int] = None,
        mode_paiement: Optional[str] = None,
        remise: Decimal = Decimal("0"),
        taxe: Decimal = Decimal("0"),
    ):
        self.id: Optional[int] = None
        self.id_patient = id_patient
        self.id_ordonnance = id_ordonnance
        self.mode_paiement = mode_paiement
        self.remise = _décimal(remise or 0)
        self.taxe = _décimal(taxe or 0)
        self.statut_paiement = StatutPaiement.EN_ATTENTE.value
        self.numéro_reçu = f"REC-{uuid.uuid4().hex[:10].upper()}"
        self.date_transaction = self.créé_le = self.modifié_le = datetime.now()
        self.lignes: list[LigneTransaction] = []
        self.montant_total = self._calculer_total()

    def __repr__(self) -> str:
        return f"<Transaction {self.numéro_reçu}>"

    def _calculer_total(self) -> Decimal:
        return sum((l.sous_total for l in self.lignes), Decimal("0")) - self.remise + self.taxe

    def ajouter_ligne(
        self,
        médicament: Médicament,
        quantité: int,
        prix_unitaire: Optional[Decimal] = None,
        remise: Decimal = Decimal("0"),
    ) -> LigneTransaction:
        """Vend `quantité` unités : décrémente le stock et recalcule le total."""
        ligne = LigneTransaction(
            id_médicament=médicament.id,
            quantité=quantité,
            prix_unitaire=médicament.prix_unitaire if prix_unitaire is None else prix_unitaire,
            remise=remise,
        )
        médicament.ajuster_stock(-ligne.quantité)
        self.lignes.append(ligne)
        self.montant_total = self._calculer_total()
        self.modifié_le = datetime.now()
        return ligne

    def changer_statut(self, statut: str) -> None:
        try:
            self.statut_paiement = StatutPaiement(str(statut).upper()).value
        except ValueError:
            raise DonnéesInvalides(f"Statut de paiement inconnu : {statut}") from None
        self.modifié_le = datetime.now()


class StatutCommande(str, enum.Enum):
    EN_ATTENTE = "pending"
    PASSÉE = "ordered"
    LIVRÉE = "delivered"
    ANNULÉE = "cancelled"


class LigneCommande:
    def __init__(
        self,
        id_médicament: int,
        quantité: int,
        prix_unitaire: Decimal = Decimal("0"),
    ):
        self.id: Optional[int] = None
        self.id_médicament = id_médicament
        self.quantité = _vérifier_quantité(quantité)
        self.prix_unitaire = _décimal(prix_unitaire or 0)
        if self.prix_unitaire < 0:
            raise DonnéesInvalides("Le prix unitaire ne peut pas être négatif")


class Commande(_Modifiable):
    """
    Bon de commande passé à un fournisseur.

    Le stock n'augmente qu'à la livraison : c'est le passage au statut
    "delivered" qui ajoute les quantités commandées aux médicaments.
    Une commande livrée ne se modifie plus (ni lignes ni statut), ce qui
    garantit que le stock n'est crédité qu'une fois.
    """

    CHAMPS_MODIFIABLES = frozenset({"date_commande", "notes"})

    def __init__(
        self,
        id_fournisseur: int,
        date_commande: Optional[date] = None,
        notes: Optional[str] = None,
    ):
        self.id: Optional[int] = None
        self.id_fournisseur = id_fournisseur
        self.date_commande = date_commande or date.today()
        self.notes = notes
        self.statut = StatutCommande.EN_ATTENTE.value
        self.lignes: list[LigneCommande] = []
        self.montant_total = Decimal("0")
        self.créé_le = self.modifié_le = datetime.now()

    def __repr__(self) -> str:
        return f"<Commande {self.id} ({self.statut})>"

    @property
    def livrée(self) -> bool:
        return self.statut == StatutCommande.LIVRÉE.value

    def _vérifier_non_livrée(self) -> None:
        if self.livrée:
            raise DonnéesInvalides(f"La commande {self.id} est déjà livrée")

    def _recalculer(self) -> None:
        self.montant_total = sum(
            (l.prix_unitaire * l.quantité for l in self.lignes), Decimal("0")
        )
        self.modifié_le = datetime.now()

    def ajouter_ligne(
        self, id_médicament: int, quantité: int, prix_unitaire: Decimal = Decimal("0")
    ) -> LigneCommande:
        self._vérifier_non_livrée()
        ligne = LigneCommande(id_médicament, quantité, prix_unitaire)
        self.lignes.append(ligne)
        self._recalculer()
        return ligne

    def retirer_ligne(self, id_ligne: int) -> bool:
        """Retourne False si la ligne n'appartient pas à cette commande."""
        self._vérifier_non_livrée()
        ligne = next((l for l in self.lignes if l.id == id_ligne), None)
        if ligne is None:
            return False
        self.lignes.remove(ligne)
        self._recalculer()
        return True

    def changer_statut(self, statut: str) -> bool:
        """
        Change le statut (insensible à la casse).

        Retourne True si la commande vient de passer à "delivered" :
        l'appelant doit alors créditer le stock des lignes.
        """
        try:
            nouveau = StatutCommande(str(statut).lower()).value
        except ValueError:
            raise DonnéesInvalides(f"Statut de commande inconnu : {statut}") from None
        if nouveau == self.statut:
            return False
        self._vérifier_non_livrée()
        self.statut = nouveau
        self.modifié_le = datetime.now()
        return self.livrée


class Rôle:
    def __init__(self, nom: NomRôle):
        self.id: Optional[int] = None
        self.nom = NomRôle(nom).value

    def __repr__(self) -> str:
        return f"<Rôle {self.nom}>"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Rôle):
            return NotImplemented
        return self.nom == other.nom

    def __hash__(self) -> int:
        return hash(self.nom)


class Utilisateur:
    """Compte applicatif. Le mot de passe n'est jamais stocké en clair."""

    def __init__(
        self,
        nom_utilisateur: str,
        email: str,
        mot_de_passe_haché: str,
        prénom: Optional[str] = None,
        nom: Optional[str] = None,
        téléphone: Optional[str] = None,
        rôles: Optional[set[Rôle]] = None,
    ):
        if not (nom_utilisateur and email and mot_de_passe_haché):
            raise DonnéesInvalides("Nom d'utilisateur, email et mot de passe sont obligatoires")
        self.id: Optional[int] = None
        self.nom_utilisateur = nom_utilisateur
        self.email = email
        self.mot_de_passe_haché = mot_de_passe_haché
        self.prénom = prénom
        self.nom = nom
        self.téléphone = téléphone
        self.actif = True
        self.rôles = rôles or set()
        self.créé_le = datetime.now()
        self.dernière_connexion: Optional[datetime] = None

    def __repr__(self) -> str:
        return f"<Utilisateur {self.nom_utilisateur}>"
