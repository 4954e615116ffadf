"""
Mapping ORM avec SQLAlchemy (classical mapping).

On définit les tables séparément, puis on mappe les classes
du domaine sur ces tables. Le modèle de domaine reste ainsi
ignorant de la persistance.

Les noms de colonnes SQL restent en ASCII (et en anglais, comme
le schéma d'origine) ; le mapping traduit vers les attributs
français du domaine.
"""

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    Text,
    event,
)
from sqlalchemy.orm import registry, relationship

from pharmacie.domain import model

metadata = MetaData()
mapper_registry = registry(metadata=metadata)

# --- Définition des tables ---

suppliers = Table(
    "suppliers",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(100), nullable=False),
    Column("address", String(255)),
    Column("phone", String(20)),
    Column("email", String(100)),
    Column("contact_person", String(100)),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("created_at", DateTime),
    Column("updated_at", DateTime),
)

medicines = Table(
    "medicines",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(100), nullable=False),
    Column("description", String(255)),
    Column("manufacturer", String(100), nullable=False),
    Column("batch_number", String(50)),
    Column("unit_price", Numeric(10, 2), nullable=False),
    Column("quantity_in_stock", Integer, nullable=False),
    Column("reorder_level", Integer, default=10),
    Column("expiry_date", Date, nullable=False),
    Column("category", String(50), nullable=False),
    Column("location", String(50)),
    Column("is_prescription_required", Boolean, nullable=False, default=False),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("supplier_id", Integer, ForeignKey("suppliers.id"), nullable=True),
    Column("created_at", DateTime),
    Column("updated_at", DateTime),
)

patients = Table(
    "patients",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("first_name", String(50), nullable=False),
    Column("last_name", String(50), nullable=False),
    Column("date_of_birth", Date),
    Column("phone", String(20), nullable=False),
    Column("email", String(50)),
    Column("address", String(255)),
    Column("medical_history", String(1000)),
    Column("allergies", Text),
    Column("insurance_info", Text),
    Column("created_at", DateTime),
    Column("updated_at", DateTime),
)

doctors = Table(
    "doctors",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("first_name", String(50), nullable=False),
    Column("last_name", String(50), nullable=False),
    Column("specialization", String(50), nullable=False),
    Column("license_number", String(50), nullable=False),
    Column("phone", String(20), nullable=False),
    Column("email", String(50)),
    Column("address", String(255)),
    Column("created_at", DateTime),
    Column("updated_at", DateTime),
)

prescriptions = Table(
    "prescriptions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("patient_id", Integer, ForeignKey("patients.id"), nullable=False),
    Column("doctor_id", Integer, ForeignKey("doctors.id"), nullable=False),
    Column("prescription_date", Date),
    Column("notes", String(1000)),
    Column("is_filled", Boolean, nullable=False, default=False),
    Column("created_at", DateTime),
    Column("updated_at", DateTime),
)

prescription_items = Table(
    "prescription_items",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("prescription_id", Integer, ForeignKey("prescriptions.id"), nullable=False),
    Column("medicine_id", Integer, ForeignKey("medicines.id"), nullable=False),
    Column("quantity", Integer, nullable=False),
    Column("dosage_instructions", String(255)),
    Column("is_dispensed", Boolean, nullable=False, default=False),
)

transactions = Table(
    "transactions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("patient_id", Integer, ForeignKey("patients.id"), nullable=True),
    Column("prescription_id", Integer, ForeignKey("prescriptions.id"), nullable=True),
    Column("transaction_date", DateTime),
    Column("total_amount", Numeric(12, 2), nullable=False),
    Column("discount_amount", Numeric(12, 2), nullable=False),
    Column("tax_amount", Numeric(12, 2), nullable=False),
    Column("payment_method", String(30)),
    Column("payment_status", String(20), nullable=False),
    Column("receipt_number", String(30), unique=True),
    Column("created_at", DateTime),
    Column("updated_at", DateTime),
)

transaction_items = Table(
    "transaction_items",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("transaction_id", Integer, ForeignKey("transactions.id"), nullable=False),
    Column("medicine_id", Integer, ForeignKey("medicines.id"), nullable=False),
    Column("quantity", Integer, nullable=False),
    Column("unit_price", Numeric(10, 2), nullable=False),
    Column("discount", Numeric(10, 2), nullable=False),
    Column("subtotal", Numeric(12, 2), nullable=False),
)

orders = Table(
    "orders",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("supplier_id", Integer, ForeignKey("suppliers.id"), nullable=False),
    Column("order_date", Date),
    Column("status", String(20), nullable=False),
    Column("total_amount", Numeric(12, 2), nullable=False),
    Column("notes", String(1000)),
    Column("created_at", DateTime),
    Column("updated_at", DateTime),
)

order_items = Table(
    "order_items",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("order_id", Integer, ForeignKey("orders.id"), nullable=False),
    Column("medicine_id", Integer, ForeignKey("medicines.id"), nullable=False),
    Column("quantity", Integer, nullable=False),
    Column("unit_price", Numeric(10, 2), nullable=False),
)

roles = Table(
    "roles",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(20), unique=True, nullable=False),
)

users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(50), unique=True, nullable=False),
    Column("email", String(100), unique=True, nullable=False),
    Column("password_hash", String(255), nullable=False),
    Column("first_name", String(50)),
    Column("last_name", String(50)),
    Column("phone", String(20)),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("created_at", DateTime),
    Column("last_login", DateTime),
)

user_roles = Table(
    "user_roles",
    metadata,
    Column("user_id", Integer, ForeignKey("users.id"), primary_key=True),
    Column("role_id", Integer, ForeignKey("roles.id"), primary_key=True),
)


def start_mappers() -> None:
    """
    Configure le mapping entre les classes du domaine et les tables SQL.

    Idempotent : le bootstrap et les fixtures de test peuvent
    l'appeler plusieurs fois sans erreur de double mapping.
    """
    if mapper_registry.mappers:
        return

    mapper_registry.map_imperatively(
        model.Fournisseur,
        suppliers,
        properties={
            "nom": suppliers.c.name,
            "adresse": suppliers.c.address,
            "téléphone": suppliers.c.phone,
            "contact": suppliers.c.contact_person,
            "actif": suppliers.c.is_active,
            "créé_le": suppliers.c.created_at,
            "modifié_le": suppliers.c.updated_at,
        },
    )
    mapper_registry.map_imperatively(
        model.Médicament,
        medicines,
        properties={
            "nom": medicines.c.name,
            "fabricant": medicines.c.manufacturer,
            "numéro_lot": medicines.c.batch_number,
            "prix_unitaire": medicines.c.unit_price,
            "stock": medicines.c.quantity_in_stock,
            "seuil_réappro": medicines.c.reorder_level,
            "date_péremption": medicines.c.expiry_date,
            "catégorie": medicines.c.category,
            "emplacement": medicines.c.location,
            "ordonnance_requise": medicines.c.is_prescription_required,
            "actif": medicines.c.is_active,
            "id_fournisseur": medicines.c.supplier_id,
            "créé_le": medicines.c.created_at,
            "modifié_le": medicines.c.updated_at,
        },
    )
    mapper_registry.map_imperatively(
        model.Patient,
        patients,
        properties={
            "prénom": patients.c.first_name,
            "nom": patients.c.last_name,
            "date_naissance": patients.c.date_of_birth,
            "téléphone": patients.c.phone,
            "adresse": patients.c.address,
            "antécédents": patients.c.medical_history,
            "assurance": patients.c.insurance_info,
            "créé_le": patients.c.created_at,
            "modifié_le": patients.c.updated_at,
        },
    )
    mapper_registry.map_imperatively(
        model.Médecin,
        doctors,
        properties={
            "prénom": doctors.c.first_name,
            "nom": doctors.c.last_name,
            "spécialité": doctors.c.specialization,
            "numéro_licence": doctors.c.license_number,
            "téléphone": doctors.c.phone,
            "adresse": doctors.c.address,
            "créé_le": doctors.c.created_at,
            "modifié_le": doctors.c.updated_at,
        },
    )
    lignes_ordonnance_mapper = mapper_registry.map_imperatively(
        model.LigneOrdonnance,
        prescription_items,
        properties={
            "id_ordonnance": prescription_items.c.prescription_id,
            "id_médicament": prescription_items.c.medicine_id,
            "quantité": prescription_items.c.quantity,
            "posologie": prescription_items.c.dosage_instructions,
            "délivrée": prescription_items.c.is_dispensed,
        },
    )
    mapper_registry.map_imperatively(
        model.Ordonnance,
        prescriptions,
        properties={
            "id_patient": prescriptions.c.patient_id,
            "id_médecin": prescriptions.c.doctor_id,
            "date_ordonnance": prescriptions.c.prescription_date,
            "délivrée": prescriptions.c.is_filled,
            "créé_le": prescriptions.c.created_at,
            "modifié_le": prescriptions.c.updated_at,
            "lignes": relationship(
                lignes_ordonnance_mapper,
                cascade="all, delete-orphan",
                order_by=prescription_items.c.id,
            ),
        },
    )
    lignes_transaction_mapper = mapper_registry.map_imperatively(
        model.LigneTransaction,
        transaction_items,
        properties={
            "id_transaction": transaction_items.c.transaction_id,
            "id_médicament": transaction_items.c.medicine_id,
            "quantité": transaction_items.c.quantity,
            "prix_unitaire": transaction_items.c.unit_price,
            "remise": transaction_items.c.discount,
            "sous_total": transaction_items.c.subtotal,
        },
    )
    mapper_registry.map_imperatively(
        model.Transaction,
        transactions,
        properties={
            "id_patient": transactions.c.patient_id,
            "id_ordonnance": transactions.c.prescription_id,
            "date_transaction": transactions.c.transaction_date,
            "montant_total": transactions.c.total_amount,
            "remise": transactions.c.discount_amount,
            "taxe": transactions.c.tax_amount,
            "mode_paiement": transactions.c.payment_method,
            "statut_paiement": transactions.c.payment_status,
            "numéro_reçu": transactions.c.receipt_number,
            "créé_le": transactions.c.created_at,
            "modifié_le": transactions.c.updated_at,
            "lignes": relationship(
                lignes_transaction_mapper,
                cascade="all, delete-orphan",
                order_by=transaction_items.c.id,
            ),
        },
    )
    lignes_commande_mapper = mapper_registry.map_imperatively(
        model.LigneCommande,
        order_items,
        properties={
            "id_commande": order_items.c.order_id,
            "id_médicament": order_items.c.medicine_id,
            "quantité": order_items.c.quantity,
            "prix_unitaire": order_items.c.unit_price,
        },
    )
    mapper_registry.map_imperatively(
        model.Commande,
        orders,
        properties={
            "id_fournisseur": orders.c.supplier_id,
            "date_commande": orders.c.order_date,
            "statut": orders.c.status,
            "montant_total": orders.c.total_amount,
            "créé_le": orders.c.created_at,
            "modifié_le": orders.c.updated_at,
            "lignes": relationship(
                lignes_commande_mapper,
                cascade="all, delete-orphan",
                order_by=order_items.c.id,
            ),
        },
    )
    rôles_mapper = mapper_registry.map_imperatively(
        model.Rôle,
        roles,
        properties={"nom": roles.c.name},
    )
    mapper_registry.map_imperatively(
        model.Utilisateur,
        users,
        properties={
            "nom_utilisateur": users.c.username,
            "mot_de_passe_haché": users.c.password_hash,
            "prénom": users.c.first_name,
            "nom": users.c.last_name,
            "téléphone": users.c.phone,
            "actif": users.c.is_active,
            "créé_le": users.c.created_at,
            "dernière_connexion": users.c.last_login,
            "rôles": relationship(rôles_mapper, secondary=user_roles, collection_class=set),
        },
    )


@event.listens_for(model.Médicament, "load")
def receive_load(médicament: model.Médicament, _: object) -> None:
    """Initialise la liste d'événements quand un Médicament est chargé depuis la BDD."""
    médicament.événements = []
