"""
Views (lecture) pour le pattern CQRS.

Les views sont des fonctions de lecture pure qui interrogent
directement la base de données, sans passer par le modèle de domaine.

Chaque fonction retourne des dicts prêts à être sérialisés en JSON,
avec les noms de colonnes SQL comme clés.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import Date, DateTime, bindparam, text

from pharmacie.service_layer import unit_of_work

COLONNES_MÉDICAMENT = (
    "id, name, description, manufacturer, batch_number, unit_price, "
    "quantity_in_stock, reorder_level, expiry_date, category, location, "
    "is_prescription_required, is_active, supplier_id"
)
COLONNES_PATIENT = (
    "id, first_name, last_name, date_of_birth, phone, email, address, "
    "medical_history, allergies, insurance_info, created_at"
)
COLONNES_MÉDECIN = (
    "id, first_name, last_name, specialization, license_number, phone, email, address"
)
COLONNES_ORDONNANCE = "id, patient_id, doctor_id, prescription_date, notes, is_filled, created_at"
COLONNES_TRANSACTION = (
    "id, patient_id, prescription_id, transaction_date, total_amount, "
    "discount_amount, tax_amount, payment_method, payment_status, receipt_number"
)


def _valeur_json(valeur: Any) -> Any:
    if isinstance(valeur, (date, datetime)):
        return valeur.isoformat()
    if isinstance(valeur, Decimal):
        return float(valeur)
    return valeur


def _lignes(résultats) -> list[dict]:
    return [
        {clé: _valeur_json(v) for clé, v in r._mapping.items()}
        for r in résultats
    ]


def _requête(uow: unit_of_work.AbstractUnitOfWork, sql, **params: Any) -> list[dict]:
    with uow:
        return _lignes(uow.session.execute(text(sql) if isinstance(sql, str) else sql, params))


def _premier(lignes: list[dict]) -> Optional[dict]:
    return lignes[0] if lignes else None


# --- Médicaments ---


def médicaments(uow: unit_of_work.AbstractUnitOfWork) -> list[dict]:
    return _requête(uow, f"SELECT {COLONNES_MÉDICAMENT} FROM medicines ORDER BY name")


def médicament(id_médicament: int, uow: unit_of_work.AbstractUnitOfWork) -> Optional[dict]:
    return _premier(_requête(
        uow,
        f"SELECT {COLONNES_MÉDICAMENT} FROM medicines WHERE id = :id",
        id=id_médicament,
    ))


def rechercher_médicaments(nom: str, uow: unit_of_work.AbstractUnitOfWork) -> list[dict]:
    """Recherche insensible à la casse sur une partie du nom."""
    return _requête(
        uow,
        f"SELECT {COLONNES_MÉDICAMENT} FROM medicines"
        " WHERE LOWER(name) LIKE :motif ORDER BY name",
        motif=f"%{nom.lower()}%",
    )


def médicaments_par_catégorie(catégorie: str, uow: unit_of_work.AbstractUnitOfWork) -> list[dict]:
    return _requête(
        uow,
        f"SELECT {COLONNES_MÉDICAMENT} FROM medicines WHERE category = :categorie ORDER BY name",
        categorie=catégorie,
    )


def médicaments_stock_bas(uow: unit_of_work.AbstractUnitOfWork) -> list[dict]:
    return _requête(
        uow,
        f"SELECT {COLONNES_MÉDICAMENT} FROM medicines"
        " WHERE quantity_in_stock <= reorder_level ORDER BY quantity_in_stock",
    )


def médicaments_expirant(
    jours: int,
    uow: unit_of_work.AbstractUnitOfWork,
    aujourd_hui: Optional[date] = None,
) -> list[dict]:
    """Médicaments actifs dont la péremption tombe avant aujourd'hui + `jours`."""
    limite = (aujourd_hui or date.today()) + timedelta(days=jours)
    requête = text(
        f"SELECT {COLONNES_MÉDICAMENT} FROM medicines"
        " WHERE expiry_date <= :limite AND is_active = :actif ORDER BY expiry_date"
    ).bindparams(bindparam("limite", type_=Date))
    return _requête(uow, requête, limite=limite, actif=True)


def valeur_inventaire(uow: unit_of_work.AbstractUnitOfWork) -> float:
    with uow:
        valeur = uow.session.execute(
            text("SELECT SUM(unit_price * quantity_in_stock) FROM medicines")
        ).scalar()
    return float(valeur or 0)


# --- Patients et médecins ---


def patients(uow: unit_of_work.AbstractUnitOfWork) -> list[dict]:
    return _requête(uow, f"SELECT {COLONNES_PATIENT} FROM patients ORDER BY last_name, first_name")


def patient(id_patient: int, uow: unit_of_work.AbstractUnitOfWork) -> Optional[dict]:
    return _premier(_requête(
        uow, f"SELECT {COLONNES_PATIENT} FROM patients WHERE id = :id", id=id_patient
    ))


def rechercher_patients(nom: str, uow: unit_of_work.AbstractUnitOfWork) -> list[dict]:
    return _requête(
        uow,
        f"SELECT {COLONNES_PATIENT} FROM patients"
        " WHERE LOWER(first_name) LIKE :motif OR LOWER(last_name) LIKE :motif"
        " ORDER BY last_name, first_name",
        motif=f"%{nom.lower()}%",
    )


def patients_récents(limite: int, uow: unit_of_work.AbstractUnitOfWork) -> list[dict]:
    return _requête(
        uow,
        f"SELECT {COLONNES_PATIENT} FROM patients ORDER BY created_at DESC, id DESC LIMIT :limite",
        limite=limite,
    )


def médecins(uow: unit_of_work.AbstractUnitOfWork) -> list[dict]:
    return _requête(uow, f"SELECT {COLONNES_MÉDECIN} FROM doctors ORDER BY last_name, first_name")


def médecin(id_médecin: int, uow: unit_of_work.AbstractUnitOfWork) -> Optional[dict]:
    return _premier(_requête(
        uow, f"SELECT {COLONNES_MÉDECIN} FROM doctors WHERE id = :id", id=id_médecin
    ))


def rechercher_médecins(nom: str, uow: unit_of_work.AbstractUnitOfWork) -> list[dict]:
    return _requête(
        uow,
        f"SELECT {COLONNES_MÉDECIN} FROM doctors"
        " WHERE LOWER(first_name) LIKE :motif OR LOWER(last_name) LIKE :motif"
        " ORDER BY last_name, first_name",
        motif=f"%{nom.lower()}%",
    )


# --- Ordonnances ---


def ordonnances(
    uow: unit_of_work.AbstractUnitOfWork,
    id_patient: Optional[int] = None,
    id_médecin: Optional[int] = None,
) -> list[dict]:
    """Ordonnances les plus récentes d'abord, filtrables par patient ou médecin."""
    conditions, params = [], {}
    if id_patient is not None:
        conditions.append("patient_id = :id_patient")
        params["id_patient"] = id_patient
    if id_médecin is not None:
        conditions.append("doctor_id = :id_medecin")
        params["id_medecin"] = id_médecin
    where = f" WHERE {' AND '.join(conditions)}" if conditions else ""
    return _requête(
        uow,
        f"SELECT {COLONNES_ORDONNANCE} FROM prescriptions{where}"
        " ORDER BY prescription_date DESC, id DESC",
        **params,
    )


def ordonnance(id_ordonnance: int, uow: unit_of_work.AbstractUnitOfWork) -> Optional[dict]:
    """Ordonnance avec ses lignes (clé "items"), ou None."""
    résultat = _premier(_requête(
        uow, f"SELECT {COLONNES_ORDONNANCE} FROM prescriptions WHERE id = :id", id=id_ordonnance
    ))
    if résultat is None:
        return None
    résultat["items"] = _requête(
        uow,
        "SELECT pi.id, pi.medicine_id, m.name AS medicine_name, pi.quantity,"
        " pi.dosage_instructions, pi.is_dispensed"
        " FROM prescription_items pi JOIN medicines m ON m.id = pi.medicine_id"
        " WHERE pi.prescription_id = :id ORDER BY pi.id",
        id=id_ordonnance,
    )
    return résultat


# --- Transactions ---


def transactions(uow: unit_of_work.AbstractUnitOfWork, limite: Optional[int] = None) -> list[dict]:
    sql = f"SELECT {COLONNES_TRANSACTION} FROM transactions ORDER BY transaction_date DESC, id DESC"
    if limite is not None:
        return _requête(uow, sql + " LIMIT :limite", limite=limite)
    return _requête(uow, sql)


def transaction(id_transaction: int, uow: unit_of_work.AbstractUnitOfWork) -> Optional[dict]:
    """Transaction avec ses lignes (clé "items"), ou None."""
    résultat = _premier(_requête(
        uow, f"SELECT {COLONNES_TRANSACTION} FROM transactions WHERE id = :id", id=id_transaction
    ))
    if résultat is None:
        return None
    résultat["items"] = _requête(
        uow,
        "SELECT ti.id, ti.medicine_id, m.name AS medicine_name, ti.quantity,"
        " ti.unit_price, ti.discount, ti.subtotal"
        " FROM transaction_items ti JOIN medicines m ON m.id = ti.medicine_id"
        " WHERE ti.transaction_id = :id ORDER BY ti.id",
        id=id_transaction,
    )
    return résultat


# --- Fournisseurs et utilisateurs ---


COLONNES_FOURNISSEUR = "id, name, address, phone, email, contact_person, is_active"


def fournisseurs(uow: unit_of_work.AbstractUnitOfWork) -> list[dict]:
    return _requête(uow, f"SELECT {COLONNES_FOURNISSEUR} FROM suppliers ORDER BY name")


def fournisseur(id_fournisseur: int, uow: unit_of_work.AbstractUnitOfWork) -> Optional[dict]:
    return _premier(_requête(
        uow, f"SELECT {COLONNES_FOURNISSEUR} FROM suppliers WHERE id = :id", id=id_fournisseur
    ))


# --- Commandes fournisseurs ---

REQUÊTE_COMMANDES = (
    "SELECT o.id, o.supplier_id, s.name AS supplier, o.order_date, o.status,"
    " o.total_amount, o.notes, o.created_at"
    " FROM orders o JOIN suppliers s ON s.id = o.supplier_id"
)


def commandes(
    uow: unit_of_work.AbstractUnitOfWork,
    id_fournisseur: Optional[int] = None,
    limite: Optional[int] = None,
) -> list[dict]:
    """Commandes les plus récentes d'abord, avec le nom du fournisseur."""
    sql, params = REQUÊTE_COMMANDES, {}
    if id_fournisseur is not None:
        sql += " WHERE o.supplier_id = :id_fournisseur"
        params["id_fournisseur"] = id_fournisseur
    sql += " ORDER BY o.order_date DESC, o.id DESC"
    if limite is not None:
        sql += " LIMIT :limite"
        params["limite"] = limite
    return _requête(uow, sql, **params)


def commande(id_commande: int, uow: unit_of_work.AbstractUnitOfWork) -> Optional[dict]:
    """Commande avec ses lignes (clé "items"), ou None."""
    résultat = _premier(_requête(uow, REQUÊTE_COMMANDES + " WHERE o.id = :id", id=id_commande))
    if résultat is None:
        return None
    résultat["items"] = _requête(
        uow,
        "SELECT oi.id, oi.medicine_id, m.name AS medicine_name, oi.quantity, oi.unit_price"
        " FROM order_items oi JOIN medicines m ON m.id = oi.medicine_id"
        " WHERE oi.order_id = :id ORDER BY oi.id",
        id=id_commande,
    )
    return résultat


def _avec_rôles(utilisateurs: list[dict], uow: unit_of_work.AbstractUnitOfWork) -> list[dict]:
    for u in utilisateurs:
        u["roles"] = sorted(
            r["name"] for r in _requête(
                uow,
                "SELECT r.name FROM roles r JOIN user_roles ur ON ur.role_id = r.id"
                " WHERE ur.user_id = :id",
                id=u["id"],
            )
        )
    return utilisateurs


COLONNES_UTILISATEUR = (
    "id, username, email, first_name, last_name, phone, is_active, created_at, last_login"
)


def utilisateurs(uow: unit_of_work.AbstractUnitOfWork) -> list[dict]:
    """Jamais de hash de mot de passe côté lecture."""
    return _avec_rôles(
        _requête(uow, f"SELECT {COLONNES_UTILISATEUR} FROM users ORDER BY username"), uow
    )


def utilisateur(id_utilisateur: int, uow: unit_of_work.AbstractUnitOfWork) -> Optional[dict]:
    return _premier(_avec_rôles(
        _requête(uow, f"SELECT {COLONNES_UTILISATEUR} FROM users WHERE id = :id", id=id_utilisateur),
        uow,
    ))


# --- Tableau de bord ---


def statistiques(
    uow: unit_of_work.AbstractUnitOfWork,
    jours_péremption: int = 30,
    aujourd_hui: Optional[date] = None,
) -> dict:
    aujourd_hui = aujourd_hui or date.today()
    début_journée = datetime.combine(aujourd_hui, time.min)
    with uow:
        ordonnances_du_jour = uow.session.execute(
            text("SELECT COUNT(*) FROM prescriptions WHERE prescription_date = :jour")
            .bindparams(bindparam("jour", type_=Date)),
            dict(jour=aujourd_hui),
        ).scalar()
        recette_du_jour = uow.session.execute(
            text(
                "SELECT SUM(total_amount) FROM transactions"
                " WHERE transaction_date >= :debut AND payment_status = :statut"
            ).bindparams(bindparam("debut", type_=DateTime)),
            dict(debut=début_journée, statut="COMPLETED"),
        ).scalar()
    return {
        "total_inventory": valeur_inventaire(uow),
        "low_stock": len(médicaments_stock_bas(uow)),
        "expiring_soon": len(médicaments_expirant(jours_péremption, uow, aujourd_hui)),
        "prescriptions_today": ordonnances_du_jour or 0,
        "revenue_today": float(recette_du_jour or 0),
    }
