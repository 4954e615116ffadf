"""
Tests d'intégration du Repository avec SQLite en mémoire.

Ces tests vérifient que le mapping ORM fonctionne correctement :
- Sauvegarder et recharger un Médicament
- Les lignes d'une transaction suivent leur transaction
- Les rôles d'un utilisateur passent par la table d'association
"""

from datetime import date
from decimal import Decimal

from pharmacie.adapters import repository
from pharmacie.domain.model import Médicament, NomRôle, Rôle, Transaction, Utilisateur


def créer_médicament(nom: str = "Doliprane", stock: int = 40) -> Médicament:
    return Médicament(
        nom=nom,
        fabricant="Sanofi",
        catégorie="Analgésique",
        prix_unitaire=Decimal("2.50"),
        stock=stock,
        date_péremption=date(2027, 6, 30),
        seuil_réappro=15,
    )


class TestSqlAlchemyRepository:
    def test_sauvegarder_et_recharger_un_médicament(self, session_factory):
        session = session_factory()
        repo = repository.SqlAlchemyRepository(session, Médicament)
        médicament = créer_médicament()

        repo.add(médicament)
        session.commit()
        id_médicament = médicament.id

        # Recharger depuis une nouvelle session
        repo2 = repository.SqlAlchemyRepository(session_factory(), Médicament)
        rechargé = repo2.get(id_médicament)
        assert rechargé is not None
        assert rechargé.nom == "Doliprane"
        assert rechargé.stock == 40
        assert rechargé.prix_unitaire == Decimal("2.50")
        assert rechargé.date_péremption == date(2027, 6, 30)
        assert rechargé.événements == []

    def test_get_retourne_none_si_id_inexistant(self, session_factory):
        repo = repository.SqlAlchemyRepository(session_factory(), Médicament)
        assert repo.get(999) is None

    def test_get_par_critères(self, session_factory):
        session = session_factory()
        repo = repository.SqlAlchemyRepository(session, Médicament)
        repo.add(créer_médicament("Doliprane"))
        repo.add(créer_médicament("Smecta"))
        session.commit()

        trouvé = repo.get_par(nom="Smecta")
        assert trouvé is not None
        assert trouvé.fabricant == "Sanofi"
        assert repo.get_par(nom="Inexistant") is None

    def test_supprimer(self, session_factory):
        session = session_factory()
        repo = repository.SqlAlchemyRepository(session, Médicament)
        médicament = créer_médicament()
        repo.add(médicament)
        session.commit()

        repo.delete(médicament)
        session.commit()

        assert repo.get(médicament.id) is None

    def test_seen_trace_les_entités(self, session_factory):
        session = session_factory()
        repo = repository.SqlAlchemyRepository(session, Médicament)
        médicament = créer_médicament()

        repo.add(médicament)
        session.commit()

        assert médicament in repo.seen
        repo2 = repository.SqlAlchemyRepository(session, Médicament)
        repo2.get(médicament.id)
        assert len(repo2.seen) == 1


class TestAgrégatsComposés:
    def test_les_lignes_de_transaction_survivent_au_rechargement(self, session_factory):
        session = session_factory()
        médicament = créer_médicament(stock=10)
        session.add(médicament)
        session.flush()
        transaction = Transaction(taxe=Decimal("0.50"))
        transaction.ajouter_ligne(médicament, 2)
        repository.SqlAlchemyRepository(session, Transaction).add(transaction)
        session.commit()
        id_transaction = transaction.id

        rechargée = repository.SqlAlchemyRepository(session_factory(), Transaction).get(id_transaction)
        assert len(rechargée.lignes) == 1
        assert rechargée.lignes[0].sous_total == Decimal("5.00")
        assert rechargée.montant_total == Decimal("5.50")
        assert rechargée.numéro_reçu.startswith("REC-")

    def test_rôles_d_un_utilisateur(self, session_factory):
        session = session_factory()
        utilisateur = Utilisateur(
            "jdupont", "jdupont@pharmacy.com", "hash",
            rôles={Rôle(NomRôle.PHARMACIEN), Rôle(NomRôle.ADMIN)},
        )
        repository.SqlAlchemyRepository(session, Utilisateur).add(utilisateur)
        session.commit()

        repo = repository.SqlAlchemyRepository(session_factory(), Utilisateur)
        rechargé = repo.get_par(nom_utilisateur="jdupont")
        assert {r.nom for r in rechargé.rôles} == {"ROLE_PHARMACIST", "ROLE_ADMIN"}
