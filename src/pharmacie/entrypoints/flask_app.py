"""
Point d'entrée Flask.

L'API Flask est un thin adapter : elle convertit les requêtes
HTTP en commands, les envoie au message bus, et lit les résultats
via les views (CQRS). Elle ne contient aucune logique métier.

Les exceptions métier sont traduites en codes HTTP par les
error handlers en bas de module.
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from flask import Flask, abort, jsonify, request

from pharmacie import config
from pharmacie.adapters import orm
from pharmacie.domain import commands, model
from pharmacie.service_layer import bootstrap, handlers, unit_of_work
from pharmacie.views import views

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

app = Flask(__name__)
bus = bootstrap.bootstrap()


class RequêteInvalide(Exception):
    pass


# --- Conversion du JSON ---


def _corps() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise RequêteInvalide("Le corps de la requête doit être un objet JSON")
    return data


def _lignes(data: dict, *clés: str, obligatoire: bool = True) -> list[dict]:
    """Champ "items" : une liste d'objets JSON portant chacun `clés`."""
    items = data.get("items")
    if items is None and not obligatoire:
        return []
    if not isinstance(items, list) or (obligatoire and not items):
        raise RequêteInvalide("Champ 'items' obligatoire (liste non vide)")
    for item in items:
        if not isinstance(item, dict):
            raise RequêteInvalide("Chaque élément de 'items' doit être un objet JSON")
        _requis(item, *clés)
    return items


def _requis(data: dict, *clés: str) -> None:
    manquantes = [c for c in clés if data.get(c) in (None, "")]
    if manquantes:
        raise RequêteInvalide(f"Champs obligatoires manquants : {', '.join(manquantes)}")


def _date(valeur: Any) -> Optional[date]:
    if valeur is None:
        return None
    try:
        return date.fromisoformat(valeur)
    except (TypeError, ValueError):
        raise RequêteInvalide(f"Date invalide : {valeur}") from None


def _décimal(valeur: Any) -> Optional[Decimal]:
    if valeur is None:
        return None
    try:
        return Decimal(str(valeur))
    except InvalidOperation:
        raise RequêteInvalide(f"Montant invalide : {valeur}") from None


def _entier(valeur: Any) -> Optional[int]:
    if valeur is None:
        return None
    # int() tronquerait 1.7 en 1 ; un booléen n'est pas une quantité
    if isinstance(valeur, bool) or (isinstance(valeur, float) and not valeur.is_integer()):
        raise RequêteInvalide(f"Entier invalide : {valeur}")
    try:
        return int(valeur)
    except (TypeError, ValueError):
        raise RequêteInvalide(f"Entier invalide : {valeur}") from None


def _trouvé(résultat: Optional[dict]):
    if résultat is None:
        abort(404)
    return jsonify(résultat), 200


def _champs_médicament(data: dict) -> dict:
    return dict(
        nom=data.get("name"),
        fabricant=data.get("manufacturer"),
        catégorie=data.get("category"),
        prix_unitaire=_décimal(data.get("unit_price")),
        stock=_entier(data.get("quantity_in_stock")),
        date_péremption=_date(data.get("expiry_date")),
        description=data.get("description"),
        numéro_lot=data.get("batch_number"),
        emplacement=data.get("location"),
        id_fournisseur=_entier(data.get("supplier_id")),
    )


def _champs_patient(data: dict) -> dict:
    return dict(
        prénom=data.get("first_name"),
        nom=data.get("last_name"),
        téléphone=data.get("phone"),
        date_naissance=_date(data.get("date_of_birth")),
        email=data.get("email"),
        adresse=data.get("address"),
        antécédents=data.get("medical_history"),
        allergies=data.get("allergies"),
        assurance=data.get("insurance_info"),
    )


def _champs_médecin(data: dict) -> dict:
    return dict(
        prénom=data.get("first_name"),
        nom=data.get("last_name"),
        spécialité=data.get("specialization"),
        numéro_licence=data.get("license_number"),
        téléphone=data.get("phone"),
        email=data.get("email"),
        adresse=data.get("address"),
    )


# --- Médicaments ---


@app.route("/api/medicines", methods=["GET"])
def list_medicines():
    return jsonify(views.médicaments(bus.uow)), 200


@app.route("/api/medicines/<int:id_medicament>", methods=["GET"])
def get_medicine(id_medicament: int):
    return _trouvé(views.médicament(id_medicament, bus.uow))


@app.route("/api/medicines/search", methods=["GET"])
def search_medicines():
    return jsonify(views.rechercher_médicaments(request.args.get("name", ""), bus.uow)), 200


@app.route("/api/medicines/category/<categorie>", methods=["GET"])
def medicines_by_category(categorie: str):
    return jsonify(views.médicaments_par_catégorie(categorie, bus.uow)), 200


@app.route("/api/medicines/low-stock", methods=["GET"])
def low_stock_medicines():
    return jsonify(views.médicaments_stock_bas(bus.uow)), 200


@app.route("/api/medicines/expiring", methods=["GET"])
def expiring_medicines():
    jours = request.args.get("days", config.EXPIRY_WARNING_DAYS, type=int)
    return jsonify(views.médicaments_expirant(jours, bus.uow)), 200


@app.route("/api/medicines/inventory-value", methods=["GET"])
def inventory_value():
    return jsonify({"value": views.valeur_inventaire(bus.uow)}), 200


@app.route("/api/medicines", methods=["POST"])
def create_medicine():
    """
    POST /api/medicines
    Body JSON : { name, manufacturer, category, unit_price,
                  quantity_in_stock, expiry_date, reorder_level?, ... }

    Déclenche les alertes d'inventaire pour le nouveau médicament.
    """
    data = _corps()
    _requis(data, "name", "manufacturer", "category", "unit_price",
            "quantity_in_stock", "expiry_date")
    cmd = commands.CréerMédicament(
        **_champs_médicament(data),
        seuil_réappro=_entier(data.get("reorder_level", 10)),
        ordonnance_requise=bool(data.get("is_prescription_required", False)),
    )
    id_médicament = bus.handle(cmd).pop(0)
    return jsonify({"id": id_médicament}), 201


@app.route("/api/medicines/<int:id_medicament>", methods=["PUT"])
def update_medicine(id_medicament: int):
    data = _corps()
    cmd = commands.ModifierMédicament(
        id_médicament=id_medicament,
        **_champs_médicament(data),
        seuil_réappro=_entier(data.get("reorder_level")),
        ordonnance_requise=data.get("is_prescription_required"),
        actif=data.get("is_active"),
    )
    bus.handle(cmd)
    return _trouvé(views.médicament(id_medicament, bus.uow))


@app.route("/api/medicines/<int:id_medicament>/stock", methods=["PATCH"])
def update_stock(id_medicament: int):
    """
    PATCH /api/medicines/<id>/stock
    Body JSON : { quantity }  (négatif pour retirer du stock)
    """
    data = _corps()
    _requis(data, "quantity")
    bus.handle(commands.AjusterStock(id_medicament, _entier(data["quantity"])))
    return _trouvé(views.médicament(id_medicament, bus.uow))


@app.route("/api/medicines/<int:id_medicament>", methods=["DELETE"])
def delete_medicine(id_medicament: int):
    bus.handle(commands.SupprimerMédicament(id_medicament))
    return "", 204


# --- Fournisseurs ---


@app.route("/api/suppliers", methods=["GET"])
def list_suppliers():
    return jsonify(views.fournisseurs(bus.uow)), 200


@app.route("/api/suppliers", methods=["POST"])
def create_supplier():
    data = _corps()
    _requis(data, "name")
    cmd = commands.CréerFournisseur(
        nom=data["name"],
        adresse=data.get("address"),
        téléphone=data.get("phone"),
        email=data.get("email"),
        contact=data.get("contact_person"),
    )
    return jsonify({"id": bus.handle(cmd).pop(0)}), 201


@app.route("/api/suppliers/<int:id_fournisseur>", methods=["GET"])
def get_supplier(id_fournisseur: int):
    return _trouvé(views.fournisseur(id_fournisseur, bus.uow))


@app.route("/api/suppliers/<int:id_fournisseur>", methods=["PUT"])
def update_supplier(id_fournisseur: int):
    data = _corps()
    bus.handle(commands.ModifierFournisseur(
        id_fournisseur=id_fournisseur,
        nom=data.get("name"),
        adresse=data.get("address"),
        téléphone=data.get("phone"),
        email=data.get("email"),
        contact=data.get("contact_person"),
        actif=data.get("is_active"),
    ))
    return _trouvé(views.fournisseur(id_fournisseur, bus.uow))


@app.route("/api/suppliers/<int:id_fournisseur>", methods=["DELETE"])
def delete_supplier(id_fournisseur: int):
    bus.handle(commands.SupprimerFournisseur(id_fournisseur))
    return "", 204


@app.route("/api/suppliers/<int:id_fournisseur>/orders", methods=["GET"])
def orders_by_supplier(id_fournisseur: int):
    return jsonify(views.commandes(bus.uow, id_fournisseur=id_fournisseur)), 200


# --- Commandes fournisseurs ---


def _ligne_commandée(item: dict) -> commands.LigneCommandée:
    return commands.LigneCommandée(
        id_médicament=_entier(item["medicine_id"]),
        quantité=_entier(item["quantity"]),
        prix_unitaire=_décimal(item.get("unit_price", 0)),
    )


@app.route("/api/orders", methods=["GET"])
def list_orders():
    return jsonify(views.commandes(bus.uow)), 200


@app.route("/api/orders/recent", methods=["GET"])
def recent_orders():
    return jsonify(views.commandes(bus.uow, limite=request.args.get("limit", 5, type=int))), 200


@app.route("/api/orders/<int:id_commande>", methods=["GET"])
def get_order(id_commande: int):
    return _trouvé(views.commande(id_commande, bus.uow))


@app.route("/api/orders", methods=["POST"])
def create_order():
    """
    POST /api/orders
    Body JSON : { supplier_id, order_date?, notes?,
                  items?: [{ medicine_id, quantity, unit_price? }] }
    """
    data = _corps()
    _requis(data, "supplier_id")
    items = _lignes(data, "medicine_id", "quantity", obligatoire=False)
    cmd = commands.CréerCommande(
        id_fournisseur=_entier(data["supplier_id"]),
        lignes=tuple(_ligne_commandée(item) for item in items),
        date_commande=_date(data.get("order_date")),
        notes=data.get("notes"),
    )
    id_commande = bus.handle(cmd).pop(0)
    return _trouvé(views.commande(id_commande, bus.uow))[0], 201


@app.route("/api/orders/<int:id_commande>", methods=["PUT"])
def update_order(id_commande: int):
    """
    PUT /api/orders/<id>
    Body JSON : { status?, order_date?, notes? }

    Passer status à "delivered" ajoute les quantités commandées au stock.
    """
    data = _corps()
    bus.handle(commands.ModifierCommande(
        id_commande=id_commande,
        statut=data.get("status"),
        date_commande=_date(data.get("order_date")),
        notes=data.get("notes"),
    ))
    return _trouvé(views.commande(id_commande, bus.uow))


@app.route("/api/orders/<int:id_commande>", methods=["DELETE"])
def delete_order(id_commande: int):
    bus.handle(commands.SupprimerCommande(id_commande))
    return "", 204


@app.route("/api/orders/<int:id_commande>/items", methods=["POST"])
def add_order_item(id_commande: int):
    data = _corps()
    _requis(data, "medicine_id", "quantity")
    ligne = _ligne_commandée(data)
    bus.handle(commands.AjouterLigneCommande(
        id_commande=id_commande,
        id_médicament=ligne.id_médicament,
        quantité=ligne.quantité,
        prix_unitaire=ligne.prix_unitaire,
    ))
    return _trouvé(views.commande(id_commande, bus.uow))[0], 201


@app.route("/api/orders/<int:id_commande>/items/<int:id_ligne>", methods=["DELETE"])
def delete_order_item(id_commande: int, id_ligne: int):
    bus.handle(commands.SupprimerLigneCommande(id_commande, id_ligne))
    return "", 204


# --- Patients ---


@app.route("/api/patients", methods=["GET"])
def list_patients():
    return jsonify(views.patients(bus.uow)), 200


@app.route("/api/patients/<int:id_patient>", methods=["GET"])
def get_patient(id_patient: int):
    return _trouvé(views.patient(id_patient, bus.uow))


@app.route("/api/patients/search", methods=["GET"])
def search_patients():
    return jsonify(views.rechercher_patients(request.args.get("name", ""), bus.uow)), 200


@app.route("/api/patients/recent", methods=["GET"])
def recent_patients():
    return jsonify(views.patients_récents(request.args.get("limit", 5, type=int), bus.uow)), 200


@app.route("/api/patients", methods=["POST"])
def create_patient():
    data = _corps()
    _requis(data, "first_name", "last_name", "phone")
    id_patient = bus.handle(commands.CréerPatient(**_champs_patient(data))).pop(0)
    return jsonify({"id": id_patient}), 201


@app.route("/api/patients/<int:id_patient>", methods=["PUT"])
def update_patient(id_patient: int):
    bus.handle(commands.ModifierPatient(id_patient=id_patient, **_champs_patient(_corps())))
    return _trouvé(views.patient(id_patient, bus.uow))


@app.route("/api/patients/<int:id_patient>", methods=["DELETE"])
def delete_patient(id_patient: int):
    bus.handle(commands.SupprimerPatient(id_patient))
    return "", 204


# --- Médecins ---


@app.route("/api/doctors", methods=["GET"])
def list_doctors():
    return jsonify(views.médecins(bus.uow)), 200


@app.route("/api/doctors/<int:id_medecin>", methods=["GET"])
def get_doctor(id_medecin: int):
    return _trouvé(views.médecin(id_medecin, bus.uow))


@app.route("/api/doctors/search", methods=["GET"])
def search_doctors():
    return jsonify(views.rechercher_médecins(request.args.get("name", ""), bus.uow)), 200


@app.route("/api/doctors", methods=["POST"])
def create_doctor():
    data = _corps()
    _requis(data, "first_name", "last_name", "specialization", "license_number", "phone")
    id_médecin = bus.handle(commands.CréerMédecin(**_champs_médecin(data))).pop(0)
    return jsonify({"id": id_médecin}), 201


@app.route("/api/doctors/<int:id_medecin>", methods=["PUT"])
def update_doctor(id_medecin: int):
    bus.handle(commands.ModifierMédecin(id_médecin=id_medecin, **_champs_médecin(_corps())))
    return _trouvé(views.médecin(id_medecin, bus.uow))


@app.route("/api/doctors/<int:id_medecin>", methods=["DELETE"])
def delete_doctor(id_medecin: int):
    bus.handle(commands.SupprimerMédecin(id_medecin))
    return "", 204


# --- Ordonnances ---


@app.route("/api/prescriptions", methods=["GET"])
def list_prescriptions():
    return jsonify(views.ordonnances(bus.uow)), 200


@app.route("/api/prescriptions/<int:id_ordonnance>", methods=["GET"])
def get_prescription(id_ordonnance: int):
    return _trouvé(views.ordonnance(id_ordonnance, bus.uow))


@app.route("/api/prescriptions/patient/<int:id_patient>", methods=["GET"])
def prescriptions_by_patient(id_patient: int):
    return jsonify(views.ordonnances(bus.uow, id_patient=id_patient)), 200


@app.route("/api/prescriptions/doctor/<int:id_medecin>", methods=["GET"])
def prescriptions_by_doctor(id_medecin: int):
    return jsonify(views.ordonnances(bus.uow, id_médecin=id_medecin)), 200


@app.route("/api/prescriptions", methods=["POST"])
def create_prescription():
    data = _corps()
    _requis(data, "patient_id", "doctor_id")
    cmd = commands.CréerOrdonnance(
        id_patient=_entier(data["patient_id"]),
        id_médecin=_entier(data["doctor_id"]),
        date_ordonnance=_date(data.get("prescription_date")),
        notes=data.get("notes"),
    )
    return jsonify({"id": bus.handle(cmd).pop(0)}), 201


@app.route("/api/prescriptions/<int:id_ordonnance>/items", methods=["POST"])
def add_prescription_item(id_ordonnance: int):
    """
    POST /api/prescriptions/<id>/items
    Body JSON : { medicine_id, quantity, dosage_instructions? }

    Délivre le médicament : son stock est décrémenté.
    """
    data = _corps()
    _requis(data, "medicine_id", "quantity")
    bus.handle(commands.AjouterLigneOrdonnance(
        id_ordonnance=id_ordonnance,
        id_médicament=_entier(data["medicine_id"]),
        quantité=_entier(data["quantity"]),
        posologie=data.get("dosage_instructions"),
    ))
    return _trouvé(views.ordonnance(id_ordonnance, bus.uow))[0], 201


@app.route("/api/prescriptions/<int:id_ordonnance>", methods=["PUT"])
def update_prescription(id_ordonnance: int):
    data = _corps()
    bus.handle(commands.ModifierOrdonnance(
        id_ordonnance=id_ordonnance,
        date_ordonnance=_date(data.get("prescription_date")),
        notes=data.get("notes"),
        délivrée=data.get("is_filled"),
    ))
    return _trouvé(views.ordonnance(id_ordonnance, bus.uow))


@app.route("/api/prescriptions/<int:id_ordonnance>", methods=["DELETE"])
def delete_prescription(id_ordonnance: int):
    bus.handle(commands.SupprimerOrdonnance(id_ordonnance))
    return "", 204


# --- Transactions ---


@app.route("/api/transactions", methods=["GET"])
def list_transactions():
    return jsonify(views.transactions(bus.uow)), 200


@app.route("/api/transactions/<int:id_transaction>", methods=["GET"])
def get_transaction(id_transaction: int):
    return _trouvé(views.transaction(id_transaction, bus.uow))


@app.route("/api/transactions", methods=["POST"])
def create_transaction():
    """
    POST /api/transactions
    Body JSON : { items: [{ medicine_id, quantity, discount? }],
                  patient_id?, prescription_id?, payment_method?,
                  discount_amount?, tax_amount? }
    """
    data = _corps()
    items = _lignes(data, "medicine_id", "quantity")
    cmd = commands.CréerTransaction(
        lignes=tuple(
            commands.LigneDemandée(
                id_médicament=_entier(item["medicine_id"]),
                quantité=_entier(item["quantity"]),
                remise=_décimal(item.get("discount", 0)),
            )
            for item in items
        ),
        id_patient=_entier(data.get("patient_id")),
        id_ordonnance=_entier(data.get("prescription_id")),
        mode_paiement=data.get("payment_method"),
        remise=_décimal(data.get("discount_amount", 0)),
        taxe=_décimal(data.get("tax_amount", 0)),
    )
    id_transaction = bus.handle(cmd).pop(0)
    return _trouvé(views.transaction(id_transaction, bus.uow))[0], 201


@app.route("/api/transactions/<int:id_transaction>/status", methods=["PATCH"])
def update_payment_status(id_transaction: int):
    data = _corps()
    _requis(data, "payment_status")
    bus.handle(commands.ChangerStatutPaiement(id_transaction, data["payment_status"]))
    return _trouvé(views.transaction(id_transaction, bus.uow))


# --- Utilisateurs ---


@app.route("/api/users", methods=["GET"])
def list_users():
    return jsonify(views.utilisateurs(bus.uow)), 200


@app.route("/api/users/<int:id_utilisateur>", methods=["GET"])
def get_user(id_utilisateur: int):
    return _trouvé(views.utilisateur(id_utilisateur, bus.uow))


@app.route("/api/users", methods=["POST"])
def create_user():
    data = _corps()
    _requis(data, "username", "email", "password")
    cmd = commands.CréerUtilisateur(
        nom_utilisateur=data["username"],
        email=data["email"],
        mot_de_passe=data["password"],
        prénom=data.get("first_name"),
        nom=data.get("last_name"),
        téléphone=data.get("phone"),
        rôles=tuple(data.get("roles") or ()),
    )
    id_utilisateur = bus.handle(cmd).pop(0)
    return _trouvé(views.utilisateur(id_utilisateur, bus.uow))[0], 201


# --- Tableau de bord ---


@app.route("/api/dashboard/stats", methods=["GET"])
def dashboard_stats():
    return jsonify(views.statistiques(bus.uow, config.EXPIRY_WARNING_DAYS)), 200


@app.route("/api/dashboard/expiring-medications", methods=["GET"])
def dashboard_expiring():
    jours = request.args.get("days", config.EXPIRY_WARNING_DAYS, type=int)
    return jsonify(views.médicaments_expirant(jours, bus.uow)), 200


@app.route("/api/dashboard/low-stock", methods=["GET"])
def dashboard_low_stock():
    return jsonify(views.médicaments_stock_bas(bus.uow)), 200


@app.route("/api/dashboard/recent-patients", methods=["GET"])
def dashboard_recent_patients():
    return jsonify(views.patients_récents(request.args.get("limit", 5, type=int), bus.uow)), 200


@app.route("/api/dashboard/recent-transactions", methods=["GET"])
def dashboard_recent_transactions():
    return jsonify(views.transactions(bus.uow, limite=request.args.get("limit", 5, type=int))), 200


# --- Erreurs ---


def _erreur(e: Exception, statut: int):
    return jsonify({"message": str(e)}), statut


@app.errorhandler(handlers.EntitéIntrouvable)
def entité_introuvable(e: handlers.EntitéIntrouvable):
    return _erreur(e, 404)


@app.errorhandler(404)
def ressource_introuvable(e):
    return jsonify({"message": "not found"}), 404


@app.errorhandler(RequêteInvalide)
@app.errorhandler(model.StockInsuffisant)
@app.errorhandler(model.DonnéesInvalides)
@app.errorhandler(handlers.RôleInconnu)
def requête_invalide(e: Exception):
    return _erreur(e, 400)


@app.errorhandler(handlers.UtilisateurExistant)
def conflit(e: handlers.UtilisateurExistant):
    return _erreur(e, 409)


# --- CLI ---


@app.cli.command("init-db")
def init_db() -> None:
    """Crée les tables dans la base configurée (DATABASE_URL)."""
    orm.metadata.create_all(unit_of_work.DEFAULT_ENGINE)
    logging.getLogger(__name__).info("Tables créées sur %s", config.get_database_uri())
