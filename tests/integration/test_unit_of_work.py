"""
Tests d'intégration du Unit of Work SQLAlchemy.

Le bus, et donc son UoW, est partagé par les threads du serveur
Flask : deux requêtes simultanées ne doivent pas se voler leur
session ni leurs événements.
"""

import threading
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker

from pharmacie.adapters import orm
from pharmacie.domain.model import Médicament
from pharmacie.service_layer import unit_of_work


@pytest.fixture
def fichier_session_factory(tmp_path):
    """Base SQLite sur fichier : chaque thread y ouvre sa propre connexion."""
    engine = create_engine(f"sqlite:///{tmp_path / 'pharmacie.db'}")
    orm.metadata.create_all(engine)
    yield sessionmaker(bind=engine)
    engine.dispose()


def insérer_médicament(session_factory, stock: int = 20) -> int:
    session = session_factory()
    médicament = Médicament(
        nom="Doliprane",
        fabricant="Sanofi",
        catégorie="Analgésique",
        prix_unitaire=Decimal("2.50"),
        stock=stock,
        date_péremption=date(2027, 6, 30),
        seuil_réappro=10,
    )
    session.add(médicament)
    session.commit()
    id_médicament = médicament.id
    session.close()
    return id_médicament


def lire_stock(session_factory, id_médicament: int) -> int:
    session = session_factory()
    [[stock]] = session.execute(
        text("SELECT quantity_in_stock FROM medicines WHERE id = :id"),
        dict(id=id_médicament),
    )
    session.close()
    return stock


def lancer(*cibles):
    """Exécute chaque cible dans son thread et remonte la première erreur."""
    erreurs = []

    def capturer(cible):
        try:
            cible()
        except Exception as e:  # remontée dans le thread principal
            erreurs.append(e)

    threads = [threading.Thread(target=capturer, args=(c,)) for c in cibles]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10)
    if erreurs:
        raise erreurs[0]


def test_commit_et_rollback(fichier_session_factory):
    id_médicament = insérer_médicament(fichier_session_factory, stock=20)
    uow = unit_of_work.SqlAlchemyUnitOfWork(fichier_session_factory)

    with uow:
        uow.médicaments.get(id_médicament).ajuster_stock(-5)
        uow.commit()
    with uow:
        uow.médicaments.get(id_médicament).ajuster_stock(-5)

    assert lire_stock(fichier_session_factory, id_médicament) == 15


def test_une_écriture_qui_échoue_jette_ses_événements(fichier_session_factory):
    id_médicament = insérer_médicament(fichier_session_factory)
    uow = unit_of_work.SqlAlchemyUnitOfWork(fichier_session_factory)

    with pytest.raises(RuntimeError):
        with uow:
            uow.médicaments.get(id_médicament).ajuster_stock(-5)
            raise RuntimeError("coupure")

    assert list(uow.collect_new_events()) == []


def test_deux_threads_entrelacés_gardent_chacun_leur_session(fichier_session_factory):
    """
    Le thread A modifie un médicament ; pendant qu'il est dans son bloc,
    le thread B ouvre et referme le même UoW. A doit committer sa
    propre session et retrouver son événement.
    """
    id_médicament = insérer_médicament(fichier_session_factory, stock=20)
    uow = unit_of_work.SqlAlchemyUnitOfWork(fichier_session_factory)
    a_commencé, b_a_fini = threading.Event(), threading.Event()
    collectés = []

    def thread_a():
        with uow:
            uow.médicaments.get(id_médicament).ajuster_stock(-15)
            a_commencé.set()
            assert b_a_fini.wait(timeout=5)
            uow.commit()
        collectés.extend(uow.collect_new_events())

    def thread_b():
        assert a_commencé.wait(timeout=5)
        with uow:
            assert uow.médicaments.get(id_médicament).stock == 20
        b_a_fini.set()

    lancer(thread_a, thread_b)

    [event] = collectés
    assert event.instantané.stock == 5
    assert lire_stock(fichier_session_factory, id_médicament) == 5


def test_repositories_absents_hors_du_bloc_dans_un_autre_thread(fichier_session_factory):
    uow = unit_of_work.SqlAlchemyUnitOfWork(fichier_session_factory)
    with uow:
        pass

    def lire_hors_bloc():
        with pytest.raises(AttributeError, match="with uow"):
            uow.médicaments

    lancer(lire_hors_bloc)
