"""
Tests end-to-end de l'API Flask.

Ces tests vérifient le flux complet :
HTTP request → Flask → Message Bus → Handlers → Repository → SQLite

On utilise le test client Flask avec une base SQLite en mémoire,
ce qui donne des tests rapides tout en couvrant toute la chaîne.
"""

from datetime import date, timedelta

import pytest

from pharmacie.adapters import notifications
from pharmacie.adapters.notifications import TypeCanal
from pharmacie.entrypoints.flask_app import app
from pharmacie.service_layer import bootstrap, unit_of_work


class FakeNotifications(notifications.AbstractNotifications):
    def __init__(self, type_canal):
        self.type_canal = type_canal
        self.envoyés = []

    def send(self, destinataire: str, sujet: str, corps: str) -> bool:
        self.envoyés.append({"destinataire": destinataire, "corps": corps})
        return True


@pytest.fixture
def email():
    return FakeNotifications(TypeCanal.EMAIL)


@pytest.fixture
def sqlite_bus(session_factory, email):
    """Crée un message bus configuré avec SQLite en mémoire."""
    uow = unit_of_work.SqlAlchemyUnitOfWork(session_factory=session_factory)
    return bootstrap.bootstrap(
        start_orm=False,
        uow=uow,
        canaux={TypeCanal.EMAIL: email, TypeCanal.SMS: FakeNotifications(TypeCanal.SMS)},
    )


@pytest.fixture
def client(sqlite_bus):
    """Client de test Flask avec le bus injecté."""
    import pharmacie.entrypoints.flask_app as flask_module

    original_bus = flask_module.bus
    flask_module.bus = sqlite_bus
    app.config["TESTING"] = True

    with app.test_client() as client:
        yield client

    flask_module.bus = original_bus


def médicament(**surcharges):
    données = {
        "name": "Doliprane",
        "manufacturer": "Sanofi",
        "category": "Analgésique",
        "unit_price": 2.5,
        "quantity_in_stock": 50,
        "reorder_level": 10,
        "expiry_date": (date.today() + timedelta(days=365)).isoformat(),
    }
    données.update(surcharges)
    return données


def créer(client, url, données) -> int:
    response = client.post(url, json=données)
    assert response.status_code == 201, response.get_json()
    return response.get_json()["id"]


class TestMédicaments:
    def test_créer_puis_lire(self, client):
        id_médicament = créer(client, "/api/medicines", médicament())

        response = client.get(f"/api/medicines/{id_médicament}")

        assert response.status_code == 200
        assert response.get_json()["name"] == "Doliprane"

    def test_champs_obligatoires(self, client):
        response = client.post("/api/medicines", json={"name": "Doliprane"})

        assert response.status_code == 400
        assert "manufacturer" in response.get_json()["message"]

    def test_créer_en_stock_bas_envoie_un_email(self, client, email):
        créer(client, "/api/medicines", médicament(name="Amoxicillin", quantity_in_stock=3))

        [envoi] = email.envoyés
        assert envoi["destinataire"] == "admin@pharmacy.com"
        assert envoi["corps"].startswith("LOW STOCK ALERT: Amoxicillin")

    def test_ajuster_le_stock(self, client, email):
        id_médicament = créer(client, "/api/medicines", médicament(quantity_in_stock=12))

        response = client.patch(f"/api/medicines/{id_médicament}/stock", json={"quantity": -4})

        assert response.status_code == 200
        assert response.get_json()["quantity_in_stock"] == 8
        assert len(email.envoyés) == 1

    def test_stock_insuffisant_retourne_400(self, client, email):
        id_médicament = créer(client, "/api/medicines", médicament(quantity_in_stock=2))
        email.envoyés.clear()

        response = client.patch(f"/api/medicines/{id_médicament}/stock", json={"quantity": -3})

        assert response.status_code == 400
        assert "Stock insuffisant" in response.get_json()["message"]
        assert email.envoyés == []

    def test_quantité_manquante_retourne_400(self, client):
        id_médicament = créer(client, "/api/medicines", médicament())
        response = client.patch(f"/api/medicines/{id_médicament}/stock", json={})
        assert response.status_code == 400

    def test_modifier(self, client):
        id_médicament = créer(client, "/api/medicines", médicament())

        response = client.put(f"/api/medicines/{id_médicament}", json={"location": "Rayon C2"})

        assert response.status_code == 200
        assert response.get_json()["location"] == "Rayon C2"
        assert response.get_json()["name"] == "Doliprane"

    def test_supprimer(self, client):
        id_médicament = créer(client, "/api/medicines", médicament())

        assert client.delete(f"/api/medicines/{id_médicament}").status_code == 204
        assert client.get(f"/api/medicines/{id_médicament}").status_code == 404

    def test_médicament_inconnu_retourne_404(self, client):
        response = client.patch("/api/medicines/999/stock", json={"quantity": 1})

        assert response.status_code == 404
        assert "999" in response.get_json()["message"]

    def test_recherche_et_stock_bas(self, client):
        créer(client, "/api/medicines", médicament(name="Doliprane"))
        créer(client, "/api/medicines", médicament(name="Spasfon", quantity_in_stock=1))

        recherche = client.get("/api/medicines/search?name=doli").get_json()
        stock_bas = client.get("/api/medicines/low-stock").get_json()

        assert [m["name"] for m in recherche] == ["Doliprane"]
        assert [m["name"] for m in stock_bas] == ["Spasfon"]


class TestParcoursPatient:
    def test_ordonnance_puis_vente(self, client):
        id_médicament = créer(client, "/api/medicines", médicament(quantity_in_stock=20, unit_price=3))
        id_patient = créer(client, "/api/patients", {
            "first_name": "Marie", "last_name": "Curie", "phone": "0600000000",
        })
        id_médecin = créer(client, "/api/doctors", {
            "first_name": "Louis", "last_name": "Pasteur", "specialization": "Généraliste",
            "license_number": "LIC-001", "phone": "0100000000",
        })
        id_ordonnance = créer(client, "/api/prescriptions", {
            "patient_id": id_patient, "doctor_id": id_médecin,
        })

        response = client.post(f"/api/prescriptions/{id_ordonnance}/items", json={
            "medicine_id": id_médicament, "quantity": 5,
        })
        assert response.status_code == 201
        assert response.get_json()["items"][0]["medicine_name"] == "Doliprane"

        response = client.post("/api/transactions", json={
            "patient_id": id_patient,
            "prescription_id": id_ordonnance,
            "items": [{"medicine_id": id_médicament, "quantity": 5}],
        })
        assert response.status_code == 201
        transaction = response.get_json()
        assert transaction["total_amount"] == pytest.approx(15.0)

        response = client.patch(
            f"/api/transactions/{transaction['id']}/status", json={"payment_status": "COMPLETED"}
        )
        assert response.get_json()["payment_status"] == "COMPLETED"

        stock = client.get(f"/api/medicines/{id_médicament}").get_json()["quantity_in_stock"]
        assert stock == 10

    def test_ordonnance_pour_un_patient_inconnu(self, client):
        response = client.post("/api/prescriptions", json={"patient_id": 1, "doctor_id": 1})
        assert response.status_code == 404

    def test_transaction_sans_ligne(self, client):
        response = client.post("/api/transactions", json={"items": []})
        assert response.status_code == 400


class TestUtilisateurs:
    def test_créer_un_utilisateur(self, client):
        response = client.post("/api/users", json={
            "username": "jdupont", "email": "jdupont@pharmacy.com", "password": "s3cret",
        })

        assert response.status_code == 201
        data = response.get_json()
        assert data["roles"] == ["ROLE_PHARMACIST"]
        assert "password_hash" not in data

    def test_doublon_retourne_409(self, client):
        utilisateur = {"username": "jdupont", "email": "jdupont@pharmacy.com", "password": "pw"}
        client.post("/api/users", json=utilisateur)

        response = client.post("/api/users", json=utilisateur)

        assert response.status_code == 409


def test_tableau_de_bord(client):
    créer(client, "/api/medicines", médicament(quantity_in_stock=4, unit_price=10))

    stats = client.get("/api/dashboard/stats").get_json()

    assert stats["low_stock"] == 1
    assert stats["total_inventory"] == pytest.approx(40.0)


class TestValidationDesEntrées:
    def test_quantité_décimale_refusée(self, client):
        id_médicament = créer(client, "/api/medicines", médicament(quantity_in_stock=12))

        response = client.patch(f"/api/medicines/{id_médicament}/stock", json={"quantity": 1.7})

        assert response.status_code == 400
        assert "1.7" in response.get_json()["message"]
        assert client.get(f"/api/medicines/{id_médicament}").get_json()["quantity_in_stock"] == 12

    def test_quantité_entière_en_flottant_acceptée(self, client):
        id_médicament = créer(client, "/api/medicines", médicament(quantity_in_stock=12))

        response = client.patch(f"/api/medicines/{id_médicament}/stock", json={"quantity": 2.0})

        assert response.get_json()["quantity_in_stock"] == 14

    def test_ligne_de_vente_qui_n_est_pas_un_objet(self, client):
        response = client.post("/api/transactions", json={"items": [3]})

        assert response.status_code == 400
        assert "items" in response.get_json()["message"]

    def test_vider_le_nom_d_un_médicament(self, client):
        id_médicament = créer(client, "/api/medicines", médicament())

        response = client.put(f"/api/medicines/{id_médicament}", json={"name": ""})

        assert response.status_code == 400
        assert client.get(f"/api/medicines/{id_médicament}").get_json()["name"] == "Doliprane"


class TestFournisseursEtCommandes:
    def test_lire_modifier_supprimer_un_fournisseur(self, client):
        id_fournisseur = créer(client, "/api/suppliers", {"name": "Sanofi"})

        response = client.put(f"/api/suppliers/{id_fournisseur}", json={"phone": "0102030405"})
        assert response.status_code == 200
        assert response.get_json()["phone"] == "0102030405"
        assert client.get(f"/api/suppliers/{id_fournisseur}").get_json()["name"] == "Sanofi"

        assert client.delete(f"/api/suppliers/{id_fournisseur}").status_code == 204
        assert client.get(f"/api/suppliers/{id_fournisseur}").status_code == 404

    def test_livraison_réapprovisionne_et_alerte(self, client, email):
        id_fournisseur = créer(client, "/api/suppliers", {"name": "Sanofi"})
        id_médicament = créer(client, "/api/medicines", médicament(quantity_in_stock=50))
        id_commande = créer(client, "/api/orders", {
            "supplier_id": id_fournisseur,
            "notes": "Urgent",
            "items": [{"medicine_id": id_médicament, "quantity": 5, "unit_price": 1.5}],
        })
        client.patch(f"/api/medicines/{id_médicament}/stock", json={"quantity": -48})
        email.envoyés.clear()

        commande = client.get(f"/api/orders/{id_commande}").get_json()
        assert commande["supplier"] == "Sanofi"
        assert commande["total_amount"] == pytest.approx(7.5)
        assert [l["quantity"] for l in commande["items"]] == [5]

        response = client.put(f"/api/orders/{id_commande}", json={"status": "delivered"})

        assert response.status_code == 200
        assert response.get_json()["status"] == "delivered"
        stock = client.get(f"/api/medicines/{id_médicament}").get_json()["quantity_in_stock"]
        assert stock == 7
        [envoi] = email.envoyés
        assert "Current stock: 7" in envoi["corps"]

    def test_commande_livrée_figée(self, client):
        id_fournisseur = créer(client, "/api/suppliers", {"name": "Sanofi"})
        id_commande = créer(client, "/api/orders", {"supplier_id": id_fournisseur})
        client.put(f"/api/orders/{id_commande}", json={"status": "delivered"})

        response = client.put(f"/api/orders/{id_commande}", json={"status": "pending"})

        assert response.status_code == 400

    def test_lignes_récentes_et_par_fournisseur(self, client):
        id_fournisseur = créer(client, "/api/suppliers", {"name": "Sanofi"})
        id_médicament = créer(client, "/api/medicines", médicament())
        id_commande = créer(client, "/api/orders", {"supplier_id": id_fournisseur})

        response = client.post(f"/api/orders/{id_commande}/items", json={
            "medicine_id": id_médicament, "quantity": 3, "unit_price": 2,
        })
        assert response.status_code == 201
        [ligne] = response.get_json()["items"]

        récentes = client.get("/api/orders/recent?limit=1").get_json()
        du_fournisseur = client.get(f"/api/suppliers/{id_fournisseur}/orders").get_json()
        assert [c["id"] for c in récentes] == [id_commande]
        assert [c["id"] for c in du_fournisseur] == [id_commande]

        response = client.delete(f"/api/orders/{id_commande}/items/{ligne['id']}")
        assert response.status_code == 204
        assert client.get(f"/api/orders/{id_commande}").get_json()["items"] == []

        assert client.delete(f"/api/orders/{id_commande}").status_code == 204
        assert client.get("/api/orders").get_json() == []

    def test_commande_pour_un_fournisseur_inconnu(self, client):
        response = client.post("/api/orders", json={"supplier_id": 42})
        assert response.status_code == 404

    def test_ligne_de_commande_invalide(self, client):
        id_fournisseur = créer(client, "/api/suppliers", {"name": "Sanofi"})

        response = client.post("/api/orders", json={"supplier_id": id_fournisseur, "items": ["x"]})

        assert response.status_code == 400
