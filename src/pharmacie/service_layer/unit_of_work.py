"""
Pattern Unit of Work.

Le Unit of Work (UoW) gère la notion de transaction atomique.
Il coordonne l'écriture en base de données et la collecte
des événements émis par les médicaments au cours de la transaction.

Le UoW agit comme un context manager :
    with uow:
        # ... opérations sur les repositories ...
        uow.commit()

Si le bloc lève une exception, le rollback est fait et les
événements en attente sont jetés : une écriture qui échoue ne
déclenche jamais d'alerte.
"""

from __future__ import annotations

import abc
import threading

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from pharmacie import config
from pharmacie.adapters import repository
from pharmacie.domain import model

DEFAULT_ENGINE = create_engine(
    config.get_database_uri(),
    isolation_level="SERIALIZABLE",
)
DEFAULT_SESSION_FACTORY = sessionmaker(bind=DEFAULT_ENGINE)


class AbstractUnitOfWork(abc.ABC):
    """
    Interface abstraite du Unit of Work.

    Fournit un repository par entité et gère commit/rollback.
    Le rollback est automatique si commit() n'est pas appelé
    (grâce au __exit__ du context manager).
    """

    médicaments: repository.AbstractRepository
    fournisseurs: repository.AbstractRepository
    patients: repository.AbstractRepository
    médecins: repository.AbstractRepository
    ordonnances: repository.AbstractRepository
    transactions: repository.AbstractRepository
    utilisateurs: repository.AbstractRepository
    rôles: repository.AbstractRepository
    commandes: repository.AbstractRepository

    def __enter__(self) -> AbstractUnitOfWork:
        return self

    def __exit__(self, exc_type: object, *args: object) -> None:
        if exc_type is not None:
            self._jeter_événements()
        self.rollback()

    def commit(self) -> None:
        self._commit()

    def collect_new_events(self):
        """
        Collecte les événements émis par les médicaments vus
        pendant cette transaction, pour les passer au message bus.
        """
        for médicament in self.médicaments.seen:
            while médicament.événements:
                yield médicament.événements.pop(0)

    def _jeter_événements(self) -> None:
        for médicament in self.médicaments.seen:
            médicament.événements.clear()

    @abc.abstractmethod
    def _commit(self) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    def rollback(self) -> None:
        raise NotImplementedError


class _ParThread:
    """
    Attribut dont la valeur est propre au thread courant.

    Le bus (et donc son UoW) est partagé par toutes les requêtes
    Flask ; chaque thread garde ainsi sa session et ses repositories,
    et collect_new_events lit les entités vues par son propre thread.
    """

    def __set_name__(self, owner: type, nom: str) -> None:
        self.nom = nom

    def __get__(self, instance: object, owner: type | None = None):
        if instance is None:
            return self
        try:
            return getattr(instance._local, self.nom)
        except AttributeError:
            raise AttributeError(
                f"{self.nom} n'existe qu'à l'intérieur d'un bloc `with uow`"
            ) from None

    def __set__(self, instance: object, valeur: object) -> None:
        setattr(instance._local, self.nom, valeur)


class SqlAlchemyUnitOfWork(AbstractUnitOfWork):
    """
    Implémentation concrète du UoW avec SQLAlchemy.

    Crée une session à l'entrée du context manager,
    la ferme à la sortie. Rollback automatique si pas de commit.
    Session et repositories sont propres à chaque thread.
    """

    session = _ParThread()
    médicaments = _ParThread()
    fournisseurs = _ParThread()
    patients = _ParThread()
    médecins = _ParThread()
    ordonnances = _ParThread()
    transactions = _ParThread()
    utilisateurs = _ParThread()
    rôles = _ParThread()
    commandes = _ParThread()

    def __init__(self, session_factory: sessionmaker = DEFAULT_SESSION_FACTORY):
        self.session_factory = session_factory
        self._local = threading.local()

    def __enter__(self) -> SqlAlchemyUnitOfWork:
        self.session: Session = self.session_factory()
        self.médicaments = repository.SqlAlchemyRepository(self.session, model.Médicament)
        self.fournisseurs = repository.SqlAlchemyRepository(self.session, model.Fournisseur)
        self.patients = repository.SqlAlchemyRepository(self.session, model.Patient)
        self.médecins = repository.SqlAlchemyRepository(self.session, model.Médecin)
        self.ordonnances = repository.SqlAlchemyRepository(self.session, model.Ordonnance)
        self.transactions = repository.SqlAlchemyRepository(self.session, model.Transaction)
        self.utilisateurs = repository.SqlAlchemyRepository(self.session, model.Utilisateur)
        self.rôles = repository.SqlAlchemyRepository(self.session, model.Rôle)
        self.commandes = repository.SqlAlchemyRepository(self.session, model.Commande)
        return super().__enter__()

    def __exit__(self, *args: object) -> None:
        super().__exit__(*args)
        self.session.close()

    def _commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()
